"""
Repositorio de KPIs precalculados por restaurante (``restaurant_kpis``).
"""

from datetime import date
from typing import Dict, List, Optional, Sequence

from deliverybi.infra.db import fetch_all
from deliverybi.domain.models import RestaurantKpis


def _opt_float(value) -> Optional[float]:
    return float(value) if value is not None else None


def _to_date(value) -> date:
    if isinstance(value, date):
        return value
    return date.fromisoformat(str(value)[:10])


def row_to_kpis(r: Dict) -> RestaurantKpis:
    return RestaurantKpis(
        id=str(r["id"]),
        restaurant_id=str(r["restaurant_id"]),
        period_date=_to_date(r["period_date"]),
        period_type=r.get("period_type") or "daily",
        total_orders=int(r.get("total_orders") or 0),
        total_revenue=float(r.get("total_revenue") or 0),
        avg_ticket=float(r.get("avg_ticket") or 0),
        avg_delivery_time_min=_opt_float(r.get("avg_delivery_time_min")),
        avg_rating=_opt_float(r.get("avg_rating")),
        new_customers=int(r.get("new_customers") or 0),
        new_customer_pct=float(r.get("new_customer_pct") or 0),
        orders_glovo=int(r.get("orders_glovo") or 0),
        orders_ubereats=int(r.get("orders_ubereats") or 0),
        orders_justeat=int(r.get("orders_justeat") or 0),
        revenue_glovo=float(r.get("revenue_glovo") or 0),
        revenue_ubereats=float(r.get("revenue_ubereats") or 0),
        revenue_justeat=float(r.get("revenue_justeat") or 0),
        incidence_count=int(r.get("incidence_count") or 0),
        incidence_rate=float(r.get("incidence_rate") or 0),
    )


class KpiRepository:

    @staticmethod
    def get_restaurant_kpis(
        restaurant_ids: Optional[Sequence[str]] = None,
        start_date: Optional[str] = None,
        end_date: Optional[str] = None,
        period_type: Optional[str] = None,
    ) -> List[RestaurantKpis]:
        """KPIs ordenados del periodo más reciente al más antiguo."""
        conditions: List[str] = []
        params: Dict = {}
        if restaurant_ids:
            conditions.append("restaurant_id = ANY(:restaurant_ids)")
            params["restaurant_ids"] = [str(r) for r in restaurant_ids]
        if start_date:
            conditions.append("period_date >= :start_date")
            params["start_date"] = start_date
        if end_date:
            conditions.append("period_date <= :end_date")
            params["end_date"] = end_date
        if period_type:
            conditions.append("period_type = :period_type")
            params["period_type"] = period_type

        query = "SELECT * FROM restaurant_kpis"
        if conditions:
            query += " WHERE " + " AND ".join(conditions)
        query += " ORDER BY period_date DESC"
        return [row_to_kpis(r) for r in fetch_all(query, params or None, timeout_ms=5000)]
