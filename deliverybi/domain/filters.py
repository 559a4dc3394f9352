"""
Filtros de datos reutilizables.
Centraliza el filtrado de las tablas de hechos del CRP Portal (pedidos, reseñas).
"""

from dataclasses import dataclass
from datetime import date
from typing import List, Optional, Sequence

from deliverybi.domain.channels import portal_ids_for_channels
from deliverybi.domain.dates import parse_numeric_ids


@dataclass
class DataFilters:
    """
    Filtros comunes a las consultas de pedidos y reseñas.
    Las fechas son días completos: ``start_date`` 00:00:00 hasta ``end_date`` 23:59:59.
    """

    start_date: date
    end_date: date
    company_ids: Optional[Sequence[str]] = None
    brand_ids: Optional[Sequence[str]] = None
    address_ids: Optional[Sequence[str]] = None
    channel_ids: Optional[Sequence[str]] = None

    @property
    def portal_ids(self) -> Optional[List[str]]:
        return portal_ids_for_channels(self.channel_ids)

    def to_sql_conditions(
        self,
        alias: str = "o",
        time_column: str = "td_creation_time",
    ) -> tuple[list[str], dict]:
        """
        Convierte los filtros en condiciones WHERE y parámetros.

        Returns:
            Tupla con la lista de condiciones y el diccionario de parámetros
        """
        conditions = [
            f"{alias}.{time_column} >= :start_ts",
            f"{alias}.{time_column} <= :end_ts",
        ]
        params: dict = {
            "start_ts": f"{self.start_date.isoformat()}T00:00:00",
            "end_ts": f"{self.end_date.isoformat()}T23:59:59",
        }

        company_ids = parse_numeric_ids(self.company_ids)
        if company_ids:
            conditions.append(f"{alias}.pfk_id_company = ANY(:company_ids)")
            params["company_ids"] = company_ids

        brand_ids = parse_numeric_ids(self.brand_ids)
        if brand_ids:
            conditions.append(f"{alias}.pfk_id_store = ANY(:brand_ids)")
            params["brand_ids"] = brand_ids

        address_ids = parse_numeric_ids(self.address_ids)
        if address_ids:
            conditions.append(f"{alias}.pfk_id_store_address = ANY(:address_ids)")
            params["address_ids"] = address_ids

        portal_ids = self.portal_ids
        if portal_ids is not None:
            conditions.append(f"{alias}.pfk_id_portal = ANY(:portal_ids)")
            params["portal_ids"] = portal_ids

        return conditions, params

    def apply_to_query(self, base_query: str, alias: str = "o") -> tuple[str, dict]:
        conditions, params = self.to_sql_conditions(alias=alias)
        return f"{base_query} WHERE {' AND '.join(conditions)}", params

    def rpc_params(self) -> dict:
        """Parámetros con nombre para las RPC de reseñas."""
        return {
            "p_company_ids": [str(c) for c in self.company_ids] if self.company_ids else None,
            "p_brand_ids": [str(b) for b in self.brand_ids] if self.brand_ids else None,
            "p_address_ids": [str(a) for a in self.address_ids] if self.address_ids else None,
            "p_channel_portal_ids": self.portal_ids,
            "p_start_date": f"{self.start_date.isoformat()}T00:00:00",
            "p_end_date": f"{self.end_date.isoformat()}T23:59:59",
        }
