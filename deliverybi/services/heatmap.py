"""
Mapa de calor hora × día de la semana a partir de las cabeceras de pedido.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, List, Literal, Sequence

import pandas as pd

from deliverybi.core.logging import api_logger
from deliverybi.domain.filters import DataFilters
from deliverybi.domain.models import Order
from deliverybi.repositories.dimension_repository import DimensionRepository
from deliverybi.repositories.order_repository import OrderRepository
from deliverybi.repositories.protocols import DimensionRepositoryProtocol, OrderRepositoryProtocol
from deliverybi.services.scope import expand_filters

HeatmapMetric = Literal["revenue", "orders", "avgTicket"]

HEATMAP_METRICS: tuple[str, ...] = ("revenue", "orders", "avgTicket")
DAY_LABELS: List[str] = ["Lun", "Mar", "Mié", "Jue", "Vie", "Sáb", "Dom"]
LOCAL_TIMEZONE = "Europe/Madrid"

HOURS = 24
DAYS = 7


@dataclass
class HeatmapCell:
    hour: int
    day_of_week: int
    revenue: float = 0.0
    orders: int = 0
    avg_ticket: float = 0.0

    def value(self, metric: str) -> float:
        if metric == "revenue":
            return self.revenue
        if metric == "orders":
            return float(self.orders)
        if metric == "avgTicket":
            return self.avg_ticket
        raise ValueError(f"Métrica desconocida: {metric}")


HeatmapMatrix = List[List[HeatmapCell]]


def create_empty_matrix() -> HeatmapMatrix:
    return [[HeatmapCell(hour=h, day_of_week=d) for d in range(DAYS)] for h in range(HOURS)]


def _orders_frame(orders: Sequence[Order]) -> pd.DataFrame:
    df = pd.DataFrame(
        [{"created_at": o.created_at, "revenue": o.total_price or 0.0} for o in orders if o.created_at is not None]
    )
    if df.empty:
        return df
    # con offsets mezclados (+01:00 / +02:00) se pasa por UTC antes de ir a Madrid;
    # las fechas sin zona se toman tal cual
    aware = df["created_at"].map(lambda v: v.tzinfo is not None).astype(bool)
    df["hour"] = 0
    df["dow"] = 0
    if aware.any():
        local = pd.to_datetime(df.loc[aware, "created_at"], utc=True).dt.tz_convert(LOCAL_TIMEZONE)
        df.loc[aware, "hour"] = local.dt.hour
        # dayofweek: lunes = 0
        df.loc[aware, "dow"] = local.dt.dayofweek
    if (~aware).any():
        naive = pd.to_datetime(df.loc[~aware, "created_at"])
        df.loc[~aware, "hour"] = naive.dt.hour
        df.loc[~aware, "dow"] = naive.dt.dayofweek
    return df


def build_heatmap_matrix(orders: Sequence[Order]) -> HeatmapMatrix:
    """
    Matriz ``[hora][día]`` (lunes = 0) con ingresos, pedidos y ticket medio.
    Los pedidos sin fecha de creación se ignoran.
    """
    matrix = create_empty_matrix()
    df = _orders_frame(orders)
    if df.empty:
        return matrix

    grouped = df.groupby(["hour", "dow"]).agg(revenue=("revenue", "sum"), orders=("revenue", "size"))
    for (hour, dow), row in grouped.iterrows():
        cell = matrix[int(hour)][int(dow)]
        cell.revenue = float(row["revenue"])
        cell.orders = int(row["orders"])
        cell.avg_ticket = cell.revenue / cell.orders if cell.orders > 0 else 0.0
    return matrix


def normalize_cell(value: float, max_value: float) -> float:
    if max_value <= 0:
        return 0.0
    return value / max_value


def matrix_max(matrix: HeatmapMatrix, metric: str) -> float:
    return max((cell.value(metric) for row in matrix for cell in row), default=0.0)


def matrix_totals(matrix: HeatmapMatrix) -> Dict[str, float]:
    revenue = sum(cell.revenue for row in matrix for cell in row)
    orders = sum(cell.orders for row in matrix for cell in row)
    return {
        "revenue": round(revenue, 2),
        "orders": orders,
        "avgTicket": round(revenue / orders, 2) if orders else 0.0,
    }


class HeatmapService:
    """Service for the hour × weekday heatmap."""

    def __init__(
        self,
        repository: OrderRepositoryProtocol | None = None,
        dimensions: DimensionRepositoryProtocol | None = None,
    ):
        self.repository = repository or OrderRepository()
        self.dimensions = dimensions or DimensionRepository()

    def get_heatmap(self, filters: DataFilters, metric: str = "revenue") -> dict:
        if metric not in HEATMAP_METRICS:
            raise ValueError(f"Métrica desconocida: {metric}")

        orders = self.repository.get_orders(expand_filters(filters, self.dimensions))
        matrix = build_heatmap_matrix(orders)
        max_value = matrix_max(matrix, metric)
        api_logger.info("Heatmap built", orders=len(orders), metric=metric)

        return {
            "metric": metric,
            "day_labels": DAY_LABELS,
            "max": max_value,
            "totals": matrix_totals(matrix),
            "matrix": [
                [
                    {
                        "hour": c.hour,
                        "day_of_week": c.day_of_week,
                        "revenue": round(c.revenue, 2),
                        "orders": c.orders,
                        "avgTicket": round(c.avg_ticket, 2),
                        "intensity": round(normalize_cell(c.value(metric), max_value), 4),
                    }
                    for c in row
                ]
                for row in matrix
            ],
        }
