"""
Publicidad: scorecards frente al periodo anterior, serie diaria, reparto por
hora y mapa de calor día × hora.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from typing import Dict, List, Optional, Sequence

from deliverybi.core.logging import api_logger
from deliverybi.domain.dates import ensure_date, get_last_n_weeks, get_previous_period_range
from deliverybi.domain.filters import DataFilters
from deliverybi.domain.models import AdsMetrics
from deliverybi.repositories.ads_repository import AdsRepository
from deliverybi.repositories.dimension_repository import DimensionRepository
from deliverybi.repositories.protocols import AdsRepositoryProtocol, DimensionRepositoryProtocol
from deliverybi.services.heatmap import DAY_LABELS
from deliverybi.services.hierarchy import RowRef
from deliverybi.services.scope import expand_filters

DETAIL_HEATMAP_WEEKS = 8

SCORECARD_LABELS: Dict[str, str] = {
    "impressions": "Impresiones",
    "clicks": "Clicks",
    "adOrders": "Pedidos Ads",
    "adSpent": "Inversión Ads",
    "roas": "ROAS",
    "ctr": "CTR",
    "cpc": "CPC",
    "cac": "CAC",
}


# -----------------------------------------------------------------------------
# 1) Totales y ratios
# -----------------------------------------------------------------------------

@dataclass
class AdsTotals:
    impressions: int = 0
    clicks: int = 0
    orders: int = 0
    ad_spent: float = 0.0
    ad_revenue: float = 0.0

    def add(self, m: AdsMetrics) -> None:
        self.impressions += m.impressions
        self.clicks += m.clicks
        self.orders += m.orders
        self.ad_spent += m.ad_spent
        self.ad_revenue += m.ad_revenue

    @property
    def roas(self) -> float:
        return self.ad_revenue / self.ad_spent if self.ad_spent > 0 else 0.0

    @property
    def ctr(self) -> float:
        return self.clicks / self.impressions * 100 if self.impressions > 0 else 0.0

    @property
    def cpc(self) -> float:
        return self.ad_spent / self.clicks if self.clicks > 0 else 0.0

    @property
    def cac(self) -> float:
        return self.ad_spent / self.orders if self.orders > 0 else 0.0

    def values(self) -> Dict[str, float]:
        return {
            "impressions": self.impressions,
            "clicks": self.clicks,
            "adOrders": self.orders,
            "adSpent": self.ad_spent,
            "roas": self.roas,
            "ctr": self.ctr,
            "cpc": self.cpc,
            "cac": self.cac,
        }


def sum_ads(rows: Sequence[AdsMetrics]) -> AdsTotals:
    totals = AdsTotals()
    for row in rows:
        totals.add(row)
    return totals


def _change(current: float, previous: float) -> float:
    return (current - previous) / previous * 100 if previous > 0 else 0.0


def build_scorecards(current: AdsTotals, previous: AdsTotals) -> List[dict]:
    current_values, previous_values = current.values(), previous.values()
    return [
        {
            "key": key,
            "label": label,
            "value": round(current_values[key], 2),
            "previous": round(previous_values[key], 2),
            "change": round(_change(current_values[key], previous_values[key]), 1),
        }
        for key, label in SCORECARD_LABELS.items()
    ]


def _point(t: AdsTotals) -> dict:
    return {
        "impressions": t.impressions,
        "clicks": t.clicks,
        "orders": t.orders,
        "ad_spent": round(t.ad_spent, 2),
        "ad_revenue": round(t.ad_revenue, 2),
        "roas": round(t.roas, 2),
        "ctr": round(t.ctr, 2),
    }


# -----------------------------------------------------------------------------
# 2) Series y mapa de calor
# -----------------------------------------------------------------------------

def fill_hours(rows: Sequence[AdsMetrics]) -> List[dict]:
    """Las 24 horas, a cero las que no tienen datos."""
    by_hour = {h: AdsTotals() for h in range(24)}
    for row in rows:
        if row.hour_of_day is not None and 0 <= row.hour_of_day < 24:
            by_hour[row.hour_of_day].add(row)
    return [{"hour": h, **_point(t)} for h, t in by_hour.items()]


def build_ads_heatmap(rows: Sequence[AdsMetrics]) -> dict:
    """
    Matriz ``[día][hora]`` con lunes = 0. Las filas llegan con ISODOW
    (lunes = 1, domingo = 7).
    """
    matrix = [[AdsTotals() for _ in range(24)] for _ in range(7)]
    for row in rows:
        if row.day_of_week is None or row.hour_of_day is None:
            continue
        if 1 <= row.day_of_week <= 7 and 0 <= row.hour_of_day < 24:
            matrix[row.day_of_week - 1][row.hour_of_day].add(row)

    max_spent = max((cell.ad_spent for day in matrix for cell in day), default=0.0)
    max_orders = max((cell.orders for day in matrix for cell in day), default=0)
    return {
        "day_labels": DAY_LABELS,
        "max_ad_spent": round(max_spent, 2),
        "max_orders": max_orders,
        "matrix": [
            [
                {
                    "day_of_week": d,
                    "hour": h,
                    "impressions": cell.impressions,
                    "clicks": cell.clicks,
                    "orders": cell.orders,
                    "ad_spent": round(cell.ad_spent, 2),
                    "ad_revenue": round(cell.ad_revenue, 2),
                    "roas": round(cell.roas, 2),
                }
                for h, cell in enumerate(day)
            ]
            for d, day in enumerate(matrix)
        ],
    }


def row_filters(ref: RowRef, start: date, end: date) -> DataFilters:
    """Filtros de una fila de la jerarquía. Las filas de canal filtran por su dirección."""
    return DataFilters(
        start_date=start,
        end_date=end,
        company_ids=[ref.company_id],
        brand_ids=[ref.brand_id] if ref.brand_id else None,
        address_ids=[ref.address_id] if ref.address_id else None,
    )


# -----------------------------------------------------------------------------
# 3) Servicio
# -----------------------------------------------------------------------------

class AdsService:
    """Service for the marketing screen and the controlling detail heatmap."""

    def __init__(
        self,
        repository: AdsRepositoryProtocol | None = None,
        dimensions: DimensionRepositoryProtocol | None = None,
    ):
        self.repository = repository or AdsRepository()
        self.dimensions = dimensions or DimensionRepository()

    def get_overview(self, filters: DataFilters) -> dict:
        """Scorecards frente al periodo anterior de igual duración y serie diaria."""
        current_filters = expand_filters(filters, self.dimensions)
        previous_range = get_previous_period_range(filters.start_date, filters.end_date)
        previous_filters = DataFilters(
            start_date=previous_range.start,
            end_date=previous_range.end,
            company_ids=current_filters.company_ids,
            brand_ids=current_filters.brand_ids,
            address_ids=current_filters.address_ids,
            channel_ids=current_filters.channel_ids,
        )
        daily = self.repository.get_daily_timeseries(current_filters)
        previous = self.repository.get_daily_timeseries(previous_filters)
        api_logger.info("Ads overview built", days=len(daily), previous_days=len(previous))
        return {
            "scorecards": build_scorecards(sum_ads(daily), sum_ads(previous)),
            "daily": [
                {"day": m.day.isoformat() if m.day else None, **_point(sum_ads([m]))}
                for m in sorted(daily, key=lambda m: m.day or date.min)
            ],
        }

    def get_hourly(self, filters: DataFilters) -> List[dict]:
        return fill_hours(self.repository.get_hourly_distribution(expand_filters(filters, self.dimensions)))

    def get_heatmap(self, filters: DataFilters) -> dict:
        return build_ads_heatmap(self.repository.get_weekly_heatmap(expand_filters(filters, self.dimensions)))

    def get_row_heatmap(self, ref: RowRef, today: Optional[date] = None) -> dict:
        """Mapa de calor de una fila del controlling sobre las últimas 8 semanas completas."""
        weeks = get_last_n_weeks(DETAIL_HEATMAP_WEEKS, today=today)
        filters = row_filters(ref, ensure_date(weeks[0].start), ensure_date(weeks[-1].end))
        payload = build_ads_heatmap(self.repository.get_weekly_heatmap(filters))
        payload["period"] = {"start": weeks[0].start, "end": weeks[-1].end}
        return payload
