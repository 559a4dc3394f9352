"""
Repositorio de pedidos (``crp_portal__ft_order_head``).
"""

from datetime import datetime
from typing import List, Optional

from deliverybi.infra.db import fetch_all, fetch_one
from deliverybi.domain.channels import portal_to_channel
from deliverybi.domain.filters import DataFilters
from deliverybi.domain.models import Order, PortalOrderAggregate


def _to_datetime(value) -> Optional[datetime]:
    if value is None or isinstance(value, datetime):
        return value
    return datetime.fromisoformat(str(value).replace("Z", "+00:00"))


ORDER_COLUMNS = """
    SELECT o.pk_uuid_order, o.pfk_id_company, o.pfk_id_store, o.pfk_id_store_address,
           o.pfk_id_portal, o.td_creation_time, o.amt_total_price,
           o.amt_promotions, o.amt_refunds, o.cod_id_customer, o.flg_customer_new
    FROM crp_portal__ft_order_head o
"""


def row_to_order(r: dict) -> Order:
    return Order(
        id=str(r["pk_uuid_order"]),
        company_id=str(r["pfk_id_company"]),
        brand_id=str(r["pfk_id_store"]) if r.get("pfk_id_store") is not None else None,
        address_id=str(r["pfk_id_store_address"]) if r.get("pfk_id_store_address") is not None else None,
        portal_id=r.get("pfk_id_portal"),
        channel=portal_to_channel(r.get("pfk_id_portal")),
        created_at=_to_datetime(r.get("td_creation_time")),
        total_price=float(r.get("amt_total_price") or 0),
        promotions=float(r.get("amt_promotions") or 0),
        refunds=float(r.get("amt_refunds") or 0),
        customer_id=r.get("cod_id_customer"),
        is_new_customer=bool(r.get("flg_customer_new")),
    )


class OrderRepository:
    """
    Consultas sobre las cabeceras de pedido.
    Los filtros de canal se traducen a ids de portal en ``DataFilters``.
    """

    @staticmethod
    def get_orders(filters: DataFilters, limit: Optional[int] = None) -> List[Order]:
        """
        Cabeceras de pedido del periodo.

        Args:
            filters: Filtros de empresa, marca, dirección, canal y fechas
            limit: Máximo de filas (sin límite por defecto)
        """
        query, params = filters.apply_to_query(ORDER_COLUMNS)
        query += " ORDER BY o.td_creation_time"
        if limit:
            query += " LIMIT :limit"
            params["limit"] = int(limit)

        return [row_to_order(r) for r in fetch_all(query, params, timeout_ms=10000)]

    @staticmethod
    def get_customer_orders(filters: DataFilters) -> List[Order]:
        """Pedidos con cliente identificado, ordenados por cliente y fecha."""
        query, params = filters.apply_to_query(ORDER_COLUMNS)
        query += " AND o.cod_id_customer IS NOT NULL ORDER BY o.cod_id_customer, o.td_creation_time"
        return [row_to_order(r) for r in fetch_all(query, params, timeout_ms=15000)]

    @staticmethod
    def get_aggregated_by_portal(filters: DataFilters) -> List[PortalOrderAggregate]:
        """Sumas por portal: ventas, pedidos, descuentos, reembolsos y clientes únicos."""
        base_query = """
            SELECT o.pfk_id_portal AS portal_id,
                   COALESCE(SUM(o.amt_total_price), 0) AS revenue,
                   COUNT(*) AS orders,
                   COALESCE(SUM(o.amt_promotions), 0) AS discounts,
                   COALESCE(SUM(o.amt_refunds), 0) AS refunds,
                   COUNT(DISTINCT o.cod_id_customer) AS unique_customers
            FROM crp_portal__ft_order_head o
        """
        query, params = filters.apply_to_query(base_query)
        query += " GROUP BY o.pfk_id_portal"

        rows = fetch_all(query, params, timeout_ms=10000)
        return [
            PortalOrderAggregate(
                portal_id=str(r["portal_id"]),
                revenue=float(r["revenue"] or 0),
                orders=int(r["orders"] or 0),
                discounts=float(r["discounts"] or 0),
                refunds=float(r["refunds"] or 0),
                unique_customers=int(r["unique_customers"] or 0),
            )
            for r in rows
        ]

    @staticmethod
    def get_unique_customers(filters: DataFilters) -> int:
        """Clientes únicos entre todos los portales (un cliente puede pedir en varios)."""
        base_query = """
            SELECT COUNT(DISTINCT o.cod_id_customer) AS unique_customers
            FROM crp_portal__ft_order_head o
        """
        query, params = filters.apply_to_query(base_query)
        row = fetch_one(query, params, timeout_ms=10000)
        return int(row["unique_customers"] or 0) if row else 0
