"""
Repositorio de dimensiones del CRP Portal.
Empresas, marcas, áreas, restaurantes y portales. Las tablas guardan un snapshot
por mes (``pk_ts_month``), así que todo pasa por deduplicado antes de mapear.
"""

from datetime import date
from typing import Dict, List, Optional, Sequence

from deliverybi.infra.db import fetch_all
from deliverybi.domain.catalog import (
    deduplicate_by,
    deduplicate_by_name_keeping_latest,
    group_addresses_by_name,
    slugify,
)
from deliverybi.domain.dates import parse_numeric_ids
from deliverybi.domain.models import (
    VALID_COMPANY_STATUSES,
    Area,
    Brand,
    Company,
    DimAddress,
    DimCompany,
    DimPortal,
    DimStore,
    HierarchyDimensions,
    Portal,
    Restaurant,
)
from deliverybi.core.logging import db_logger


def current_month_filter(today: Optional[date] = None) -> str:
    """Primer día del mes en curso, ``YYYY-MM-01``."""
    today = today or date.today()
    return today.replace(day=1).isoformat()


def _is_deleted(row: dict) -> bool:
    return row.get("flg_deleted") in (1, True, "1")


def _float_or_none(value) -> Optional[float]:
    return float(value) if value is not None else None


class DimensionRepository:
    """
    Acceso a las tablas de dimensiones.
    Todas las consultas son de solo lectura.
    """

    @staticmethod
    def get_companies(company_ids: Optional[Sequence[str]] = None) -> List[Company]:
        """
        Empresas del mes actual con estado válido, sin duplicados por nombre.
        """
        query = """
            SELECT pk_id_company, des_company_name, des_status, des_key_account_manager,
                   td_firma_contrato, flg_deleted, pk_ts_month
            FROM crp_portal__dt_company
            WHERE pk_ts_month = :month
              AND des_status = ANY(:statuses)
        """
        params: dict = {
            "month": current_month_filter(),
            "statuses": list(VALID_COMPANY_STATUSES),
        }
        numeric_ids = parse_numeric_ids(company_ids)
        if numeric_ids:
            query += " AND pk_id_company = ANY(:company_ids)"
            params["company_ids"] = numeric_ids
        query += " ORDER BY des_company_name"

        rows = fetch_all(query, params, timeout_ms=3000)
        unique = deduplicate_by_name_keeping_latest(
            rows, lambda r: (r.get("des_company_name") or "").lower()
        )
        return [
            Company(
                id=str(r["pk_id_company"]),
                external_id=int(r["pk_id_company"]),
                name=r["des_company_name"],
                slug=slugify(r["des_company_name"]),
                status=r.get("des_status"),
                key_account_manager=r.get("des_key_account_manager"),
                created_at=str(r["td_firma_contrato"]) if r.get("td_firma_contrato") else None,
            )
            for r in unique
            if not _is_deleted(r)
        ]

    @staticmethod
    def get_brands(company_ids: Optional[Sequence[str]] = None) -> List[Brand]:
        """
        Marcas del mes actual agrupadas por nombre (sin distinguir mayúsculas).
        ``all_ids`` reúne los ids de cada portal que comparten nombre.
        """
        query = """
            SELECT pk_id_store, des_store, pfk_id_company, pk_ts_month
            FROM crp_portal__dt_store
            WHERE pk_ts_month = :month
        """
        params: dict = {"month": current_month_filter()}
        numeric_ids = parse_numeric_ids(company_ids)
        if numeric_ids:
            query += " AND pfk_id_company = ANY(:company_ids)"
            params["company_ids"] = numeric_ids
        query += " ORDER BY des_store"

        rows = fetch_all(query, params, timeout_ms=3000)

        ids_by_name: Dict[str, List[str]] = {}
        for r in rows:
            ids = ids_by_name.setdefault((r.get("des_store") or "").lower(), [])
            sid = str(r["pk_id_store"])
            if sid not in ids:
                ids.append(sid)

        unique = deduplicate_by_name_keeping_latest(rows, lambda r: (r.get("des_store") or "").lower())
        return [
            Brand(
                id=str(r["pk_id_store"]),
                external_id=int(r["pk_id_store"]),
                company_id=str(r["pfk_id_company"]),
                name=r["des_store"],
                slug=slugify(r["des_store"]),
                all_ids=ids_by_name.get((r.get("des_store") or "").lower(), [str(r["pk_id_store"])]),
            )
            for r in unique
        ]

    @staticmethod
    def get_areas() -> List[Area]:
        rows = fetch_all(
            """
            SELECT pk_id_business_area, des_business_area
            FROM crp_portal__ct_business_area
            ORDER BY des_business_area
            """,
            timeout_ms=2000,
        )
        return [
            Area(
                id=str(r["pk_id_business_area"]),
                external_id=int(r["pk_id_business_area"]),
                name=r["des_business_area"],
            )
            for r in rows
        ]

    @staticmethod
    def get_restaurants(
        company_ids: Optional[Sequence[str]] = None,
        area_ids: Optional[Sequence[str]] = None,
    ) -> List[Restaurant]:
        """
        Direcciones activas agrupadas por dirección normalizada.

        Se deduplica por id (snapshot más reciente) ANTES de descartar borrados.
        """
        query = """
            SELECT pk_id_address, des_address, pfk_id_company, pfk_id_store,
                   pfk_id_business_area, des_latitude, des_longitude, flg_deleted, pk_ts_month
            FROM crp_portal__dt_address
        """
        conditions: List[str] = []
        params: dict = {}
        numeric_companies = parse_numeric_ids(company_ids)
        if numeric_companies:
            conditions.append("pfk_id_company = ANY(:company_ids)")
            params["company_ids"] = numeric_companies
        numeric_areas = parse_numeric_ids(area_ids)
        if numeric_areas:
            conditions.append("pfk_id_business_area = ANY(:area_ids)")
            params["area_ids"] = numeric_areas
        if conditions:
            query += " WHERE " + " AND ".join(conditions)
        query += " ORDER BY pk_ts_month DESC, des_address"

        rows = fetch_all(query, params or None, timeout_ms=5000)
        latest = deduplicate_by(rows, lambda r: str(r["pk_id_address"]))
        active = [r for r in latest if not _is_deleted(r)]
        grouped = group_addresses_by_name(active)

        return [
            Restaurant(
                id=str(g["pk_id_address"]),
                external_id=int(g["pk_id_address"]),
                company_id=str(g["pfk_id_company"]),
                brand_id=str(g.get("pfk_id_store") or 0),
                area_id=str(g["pfk_id_business_area"]) if g.get("pfk_id_business_area") else None,
                name=g["des_address"],
                address=g["des_address"],
                all_ids=g["all_ids"],
                latitude=_float_or_none(g.get("des_latitude")),
                longitude=_float_or_none(g.get("des_longitude")),
            )
            for g in grouped
        ]

    @staticmethod
    def get_portals() -> List[Portal]:
        rows = fetch_all(
            "SELECT pk_id_portal, des_portal, pk_ts_month FROM crp_portal__dt_portal "
            "ORDER BY pk_ts_month DESC, des_portal",
            timeout_ms=2000,
        )
        unique = deduplicate_by(rows, lambda r: str(r["pk_id_portal"]))
        return [Portal(id=str(r["pk_id_portal"]), name=r["des_portal"]) for r in unique]

    @staticmethod
    def fetch_all_dimensions(company_ids: Sequence[str]) -> HierarchyDimensions:
        """
        Dimensiones completas para la jerarquía del controlling, haya pedidos o no.

        Empresas: se descartan las borradas. Marcas, direcciones y portales se
        conservan con ``deleted`` para que la jerarquía decida.
        """
        numeric_ids = parse_numeric_ids(company_ids)
        params = {"company_ids": numeric_ids}

        company_rows = fetch_all(
            """
            SELECT pk_id_company, des_company_name, des_status, des_key_account_manager, flg_deleted
            FROM crp_portal__dt_company
            WHERE pk_id_company = ANY(:company_ids)
            ORDER BY pk_ts_month DESC
            """,
            params,
            timeout_ms=3000,
        )
        store_rows = fetch_all(
            """
            SELECT pk_id_store, des_store, pfk_id_company, flg_deleted
            FROM crp_portal__dt_store
            WHERE pfk_id_company = ANY(:company_ids)
            ORDER BY pk_ts_month DESC
            """,
            params,
            timeout_ms=3000,
        )
        address_rows = fetch_all(
            """
            SELECT pk_id_address, des_address, pfk_id_company, pfk_id_store, flg_deleted
            FROM crp_portal__dt_address
            WHERE pfk_id_company = ANY(:company_ids)
            ORDER BY pk_ts_month DESC
            """,
            params,
            timeout_ms=5000,
        )
        portal_rows = fetch_all(
            """
            SELECT pk_id_portal, des_portal, flg_deleted
            FROM crp_portal__dt_portal
            ORDER BY pk_ts_month DESC
            """,
            timeout_ms=2000,
        )

        companies = [
            DimCompany(
                id=str(r["pk_id_company"]),
                name=r["des_company_name"],
                status=r.get("des_status"),
                key_account_manager=r.get("des_key_account_manager"),
            )
            for r in deduplicate_by(company_rows, lambda r: str(r["pk_id_company"]))
            if not _is_deleted(r)
        ]
        stores = [
            DimStore(
                id=str(r["pk_id_store"]),
                name=r["des_store"],
                company_id=str(r["pfk_id_company"]),
                deleted=_is_deleted(r),
            )
            for r in deduplicate_by(store_rows, lambda r: str(r["pk_id_store"]))
        ]
        addresses = [
            DimAddress(
                id=str(r["pk_id_address"]),
                name=r["des_address"],
                company_id=str(r["pfk_id_company"]),
                store_id=str(r["pfk_id_store"]) if r.get("pfk_id_store") is not None else None,
                all_ids=[str(r["pk_id_address"])],
                deleted=_is_deleted(r),
            )
            for r in deduplicate_by(address_rows, lambda r: str(r["pk_id_address"]))
        ]
        portals = [
            DimPortal(id=str(r["pk_id_portal"]), name=r["des_portal"], deleted=_is_deleted(r))
            for r in deduplicate_by(portal_rows, lambda r: str(r["pk_id_portal"]))
        ]

        db_logger.debug(
            "Dimensions loaded",
            raw_companies=len(company_rows),
            raw_stores=len(store_rows),
            raw_addresses=len(address_rows),
            companies=len(companies),
            stores=len(stores),
            addresses=len(addresses),
            portals=len(portals),
        )
        return HierarchyDimensions(
            companies=companies, stores=stores, addresses=addresses, portals=portals
        )
