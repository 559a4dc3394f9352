"""
Mapa de restaurantes: colores de marcador por métrica, leyenda, intensidad
del mapa de calor y servicio que monta marcadores y puntos de entrega.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Callable, Dict, List, Literal, Optional, Sequence

from deliverybi.core.logging import api_logger
from deliverybi.domain.channels import ALL_CHANNELS, CHANNEL_INFO
from deliverybi.domain.filters import DataFilters
from deliverybi.domain.formatters import format_number
from deliverybi.domain.models import Order, Restaurant, RestaurantKpis
from deliverybi.repositories.dimension_repository import DimensionRepository
from deliverybi.repositories.kpi_repository import KpiRepository
from deliverybi.repositories.order_repository import OrderRepository
from deliverybi.repositories.protocols import (
    DimensionRepositoryProtocol,
    KpiRepositoryProtocol,
    OrderRepositoryProtocol,
)

MapMetric = Literal["ventas", "pedidos", "rating", "tiempoEspera"]
ColorLevel = Literal["high", "mid", "low"]

COLORS: Dict[str, str] = {
    "high": "#22c55e",
    "mid": "#eab308",
    "low": "#ef4444",
    "neutral": "#6b7280",
}

DEFAULT_DELIVERY_RADIUS_KM = 3.0


@dataclass
class ChannelKpi:
    channel_id: str
    channel_name: str
    color: str
    ventas: float
    pedidos: int
    percentage: float


@dataclass
class MapRestaurantKpis:
    ventas: float = 0.0
    ventas_change: float = 0.0
    pedidos: int = 0
    ticket_medio: float = 0.0
    nuevos_clientes: int = 0
    porcentaje_nuevos: float = 0.0
    tiempo_espera: str = "0m"
    tiempo_espera_min: float = 0.0
    valoraciones: float = 0.0
    channel_breakdown: List[ChannelKpi] = field(default_factory=list)


@dataclass
class MapRestaurant:
    id: str
    name: str
    address: str
    company_id: str
    brand_id: Optional[str]
    area_id: Optional[str]
    latitude: float
    longitude: float
    delivery_radius_km: float
    active_channels: List[str]
    kpis: MapRestaurantKpis
    color: str = COLORS["neutral"]
    color_level: ColorLevel = "mid"


@dataclass
class DeliveryPoint:
    id: str
    restaurant_id: str
    restaurant_name: str
    channel: Optional[str]
    latitude: float
    longitude: float
    order_value: float
    rating: Optional[float]
    delivery_time_min: float
    is_new_customer: bool
    timestamp: Optional[str]
    intensity: float = 0.5


@dataclass(frozen=True)
class MetricConfig:
    id: str
    label: str
    short_label: str
    format: Callable[[float], str]
    get_value: Callable[[MapRestaurantKpis], float]
    ascending: bool


# -----------------------------------------------------------------------------
# 1) Configuración por métrica
# -----------------------------------------------------------------------------

def _format_euros(value: float) -> str:
    return f"{format_number(value)} €"


def _format_rating(value: float) -> str:
    return f"{value:.1f}"


def _format_minutes(value: float) -> str:
    return f"{int(round(value))}m"


METRIC_CONFIGS: Dict[str, MetricConfig] = {
    "ventas": MetricConfig("ventas", "Ventas", "Ventas", _format_euros, lambda k: k.ventas, True),
    "pedidos": MetricConfig("pedidos", "Pedidos", "Pedidos", format_number, lambda k: k.pedidos, True),
    "rating": MetricConfig("rating", "Valoraciones", "Rating", _format_rating, lambda k: k.valoraciones, True),
    "tiempoEspera": MetricConfig(
        "tiempoEspera", "Tiempo de espera", "Tiempo", _format_minutes, lambda k: k.tiempo_espera_min, False
    ),
}

METRIC_THRESHOLDS: Dict[str, Dict[str, float]] = {
    "ventas": {"low": 8000, "high": 15000},
    "pedidos": {"low": 300, "high": 600},
    "rating": {"low": 4.0, "high": 4.5},
    "tiempoEspera": {"low": 5, "high": 10},
}


def _metric(metric: str) -> MetricConfig:
    try:
        return METRIC_CONFIGS[metric]
    except KeyError:
        raise ValueError(f"Métrica desconocida: {metric}") from None


def get_color_level(kpis: MapRestaurantKpis, metric: str) -> ColorLevel:
    config = _metric(metric)
    thresholds = METRIC_THRESHOLDS[metric]
    value = config.get_value(kpis)

    if not config.ascending:
        if value <= thresholds["low"]:
            return "high"
        if value >= thresholds["high"]:
            return "low"
        return "mid"

    if value >= thresholds["high"]:
        return "high"
    if value <= thresholds["low"]:
        return "low"
    return "mid"


def get_marker_color(kpis: MapRestaurantKpis, metric: str) -> str:
    return COLORS[get_color_level(kpis, metric)]


def get_legend_items(metric: str) -> List[Dict[str, str]]:
    """Tres bandas de la leyenda, de mejor a peor."""
    config = _metric(metric)
    low = config.format(METRIC_THRESHOLDS[metric]["low"])
    high = config.format(METRIC_THRESHOLDS[metric]["high"])

    if not config.ascending:
        return [
            {"color": COLORS["high"], "label": f"< {low}"},
            {"color": COLORS["mid"], "label": f"{low} - {high}"},
            {"color": COLORS["low"], "label": f"> {high}"},
        ]
    return [
        {"color": COLORS["high"], "label": f"> {high}"},
        {"color": COLORS["mid"], "label": f"{low} - {high}"},
        {"color": COLORS["low"], "label": f"< {low}"},
    ]


def _clamp(value: float, lo: float = 0.0, hi: float = 1.0) -> float:
    return max(lo, min(value, hi))


def get_heatmap_intensity(point: DeliveryPoint, metric: str) -> float:
    """Intensidad 0-1 de un punto de entrega para la capa de calor."""
    if metric == "ventas":
        return min(point.order_value / 50, 1)
    if metric == "pedidos":
        return 0.5
    if metric == "rating":
        if point.rating is None:
            return 0.3
        return _clamp((point.rating - 3) / 2)
    if metric == "tiempoEspera":
        return _clamp(1 - (point.delivery_time_min - 15) / 40)
    return 0.5


# -----------------------------------------------------------------------------
# 2) KPIs del marcador
# -----------------------------------------------------------------------------

def _pct_change(current: float, previous: float) -> float:
    if not previous:
        return 0.0
    return round((current - previous) / previous * 100, 1)


def build_marker_kpis(latest: Optional[RestaurantKpis], previous: Optional[RestaurantKpis] = None) -> MapRestaurantKpis:
    if latest is None:
        return MapRestaurantKpis()

    by_channel = {
        "glovo": (latest.revenue_glovo, latest.orders_glovo),
        "ubereats": (latest.revenue_ubereats, latest.orders_ubereats),
        "justeat": (latest.revenue_justeat, latest.orders_justeat),
    }
    breakdown = [
        ChannelKpi(
            channel_id=ch,
            channel_name=CHANNEL_INFO[ch]["name"],
            color=CHANNEL_INFO[ch]["color"],
            ventas=revenue,
            pedidos=orders,
            percentage=round(revenue / latest.total_revenue * 100, 1) if latest.total_revenue else 0.0,
        )
        for ch, (revenue, orders) in by_channel.items()
        if orders or revenue
    ]
    wait = latest.avg_delivery_time_min or 0.0

    return MapRestaurantKpis(
        ventas=latest.total_revenue,
        ventas_change=_pct_change(latest.total_revenue, previous.total_revenue) if previous else 0.0,
        pedidos=latest.total_orders,
        ticket_medio=latest.avg_ticket,
        nuevos_clientes=latest.new_customers,
        porcentaje_nuevos=latest.new_customer_pct,
        tiempo_espera=_format_minutes(wait),
        tiempo_espera_min=wait,
        valoraciones=latest.avg_rating or 0.0,
        channel_breakdown=breakdown,
    )


def _latest_two(kpis: Sequence[RestaurantKpis]) -> Dict[str, List[RestaurantKpis]]:
    """Las dos filas más recientes por restaurante (la entrada ya viene ordenada DESC)."""
    result: Dict[str, List[RestaurantKpis]] = {}
    for k in kpis:
        bucket = result.setdefault(k.restaurant_id, [])
        if len(bucket) < 2:
            bucket.append(k)
    return result


# -----------------------------------------------------------------------------
# 3) Servicio
# -----------------------------------------------------------------------------

@dataclass
class MapData:
    metric: str
    restaurants: List[MapRestaurant]
    delivery_points: List[DeliveryPoint]
    legend: List[Dict[str, str]]


class MapService:
    """Service for the restaurants map."""

    def __init__(
        self,
        dimensions: DimensionRepositoryProtocol | None = None,
        kpis: KpiRepositoryProtocol | None = None,
        orders: OrderRepositoryProtocol | None = None,
    ):
        self.dimensions = dimensions or DimensionRepository()
        self.kpis = kpis or KpiRepository()
        self.orders = orders or OrderRepository()

    def get_restaurants(
        self,
        company_ids: Sequence[str],
        metric: str = "ventas",
        brand_ids: Optional[Sequence[str]] = None,
        area_ids: Optional[Sequence[str]] = None,
        restaurant_ids: Optional[Sequence[str]] = None,
        channel_ids: Optional[Sequence[str]] = None,
        period_type: str = "monthly",
    ) -> List[MapRestaurant]:
        """
        Restaurantes con coordenadas y sus KPIs más recientes.
        Los restaurantes sin coordenadas no se pintan.
        """
        _metric(metric)
        restaurants: List[Restaurant] = self.dimensions.get_restaurants(company_ids, area_ids)
        if brand_ids:
            brands = {str(b) for b in brand_ids}
            restaurants = [r for r in restaurants if r.brand_id in brands]
        if restaurant_ids:
            selected = {str(r) for r in restaurant_ids}
            restaurants = [r for r in restaurants if r.id in selected or selected & set(r.all_ids)]
        if channel_ids:
            restaurants = [r for r in restaurants if any(ch in channel_ids for ch in r.active_channels)]
        restaurants = [r for r in restaurants if r.latitude is not None and r.longitude is not None]

        kpi_rows = (
            self.kpis.get_restaurant_kpis([r.id for r in restaurants], period_type=period_type)
            if restaurants
            else []
        )
        latest = _latest_two(kpi_rows)

        markers: List[MapRestaurant] = []
        for r in restaurants:
            history = latest.get(r.id, [])
            kpis = build_marker_kpis(
                history[0] if history else None,
                history[1] if len(history) > 1 else None,
            )
            markers.append(
                MapRestaurant(
                    id=r.id,
                    name=r.name,
                    address=r.address or r.name,
                    company_id=r.company_id,
                    brand_id=r.brand_id,
                    area_id=r.area_id,
                    latitude=r.latitude,
                    longitude=r.longitude,
                    delivery_radius_km=r.delivery_radius_km or DEFAULT_DELIVERY_RADIUS_KM,
                    active_channels=[ch for ch in r.active_channels if ch in ALL_CHANNELS],
                    kpis=kpis,
                    color=get_marker_color(kpis, metric),
                    color_level=get_color_level(kpis, metric),
                )
            )
        return markers

    def get_delivery_points(
        self,
        restaurants: Sequence[MapRestaurant],
        filters: DataFilters,
        metric: str = "ventas",
        limit: int = 2000,
    ) -> List[DeliveryPoint]:
        """
        Un punto por pedido, situado en su restaurante.
        El tiempo de entrega es la media del restaurante.
        """
        by_address: Dict[str, MapRestaurant] = {r.id: r for r in restaurants}
        orders: List[Order] = self.orders.get_orders(filters, limit=limit)

        points: List[DeliveryPoint] = []
        for order in orders:
            restaurant = by_address.get(order.address_id or "")
            if restaurant is None:
                continue
            point = DeliveryPoint(
                id=order.id,
                restaurant_id=restaurant.id,
                restaurant_name=restaurant.name,
                channel=order.channel,
                latitude=restaurant.latitude,
                longitude=restaurant.longitude,
                order_value=order.total_price,
                rating=None,
                delivery_time_min=restaurant.kpis.tiempo_espera_min,
                is_new_customer=order.is_new_customer,
                timestamp=order.created_at.isoformat() if order.created_at else None,
            )
            point.intensity = get_heatmap_intensity(point, metric)
            points.append(point)
        return points

    def get_map(
        self,
        filters: DataFilters,
        metric: str = "ventas",
        area_ids: Optional[Sequence[str]] = None,
        include_points: bool = True,
    ) -> MapData:
        restaurants = self.get_restaurants(
            filters.company_ids or [],
            metric=metric,
            brand_ids=filters.brand_ids,
            area_ids=area_ids,
            restaurant_ids=filters.address_ids,
            channel_ids=filters.channel_ids,
        )
        points = self.get_delivery_points(restaurants, filters, metric) if include_points else []
        api_logger.info("Map built", restaurants=len(restaurants), points=len(points), metric=metric)
        return MapData(
            metric=metric,
            restaurants=restaurants,
            delivery_points=points,
            legend=get_legend_items(metric),
        )
