"""
Repositorio de publicidad.
Las series salen de las funciones ``get_ads_*`` de Postgres con los mismos
parámetros que las RPC de reseñas.
"""

from datetime import date, datetime
from typing import List, Optional

from deliverybi.infra.db import call_rpc
from deliverybi.domain.filters import DataFilters
from deliverybi.domain.models import AdsMetrics


def _to_date(value) -> Optional[date]:
    if value is None:
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    return date.fromisoformat(str(value)[:10])


def _metrics(r: dict, **extra) -> AdsMetrics:
    return AdsMetrics(
        impressions=int(r.get("impressions") or 0),
        clicks=int(r.get("clicks") or 0),
        orders=int(r.get("orders") or 0),
        ad_spent=float(r.get("ad_spent") or 0),
        ad_revenue=float(r.get("ad_revenue") or 0),
        **extra,
    )


class AdsRepository:

    @staticmethod
    def get_daily_timeseries(filters: DataFilters) -> List[AdsMetrics]:
        rows = call_rpc("get_ads_daily_timeseries", filters.rpc_params(), timeout_ms=10000)
        return [_metrics(r, day=_to_date(r.get("day"))) for r in rows]

    @staticmethod
    def get_hourly_distribution(filters: DataFilters) -> List[AdsMetrics]:
        rows = call_rpc("get_ads_hourly_distribution", filters.rpc_params(), timeout_ms=10000)
        return [_metrics(r, hour_of_day=int(r["hour_of_day"])) for r in rows]

    @staticmethod
    def get_weekly_heatmap(filters: DataFilters) -> List[AdsMetrics]:
        rows = call_rpc("get_ads_weekly_heatmap", filters.rpc_params(), timeout_ms=10000)
        return [
            _metrics(r, day_of_week=int(r["day_of_week"]), hour_of_day=int(r["hour_of_day"]))
            for r in rows
        ]
