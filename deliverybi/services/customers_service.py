"""
Clientes: métricas de base, comportamiento por canal, cohortes de retención,
riesgo de abandono, distribución del gasto, uso multiplataforma, salud
post-promoción y evolución semanal de la base.

Todo se calcula en memoria a partir de los pedidos con cliente identificado.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from datetime import date, datetime, timedelta
from typing import Dict, List, Literal, Optional, Sequence, Tuple
from zoneinfo import ZoneInfo

from deliverybi.core.logging import api_logger
from deliverybi.domain.channels import ALL_CHANNELS, CHANNEL_INFO
from deliverybi.domain.dates import ensure_date, get_last_n_weeks, get_previous_period_range
from deliverybi.domain.filters import DataFilters
from deliverybi.domain.models import Order
from deliverybi.repositories.dimension_repository import DimensionRepository
from deliverybi.repositories.order_repository import OrderRepository
from deliverybi.repositories.protocols import DimensionRepositoryProtocol, OrderRepositoryProtocol
from deliverybi.services.heatmap import LOCAL_TIMEZONE
from deliverybi.services.scope import expand_filters

CohortGranularity = Literal["week", "month"]

COHORT_PERIODS = 7
MAX_COHORTS = 8
DEFAULT_CHURN_LIMIT = 20
HISTOGRAM_BUCKETS = 10
TOP_TRANSITIONS = 10
DORMANT_GAP_DAYS = 45
BASE_TREND_WEEKS = 8
BASE_LOOKBACK_DAYS = 183

SPEND_SEGMENT_LABELS: Dict[str, str] = {
    "vip": "VIP (Top 10%)",
    "high": "Alto (70-90%)",
    "medium": "Medio (30-70%)",
    "low": "Bajo (10-30%)",
    "single_order": "Único pedido",
}

_ZONE = ZoneInfo(LOCAL_TIMEZONE)


# -----------------------------------------------------------------------------
# 1) Agrupación por cliente
# -----------------------------------------------------------------------------

def _local(value: datetime) -> datetime:
    """Hora local sin zona; las fechas sin zona se toman tal cual."""
    if value.tzinfo is None:
        return value
    return value.astimezone(_ZONE).replace(tzinfo=None)


def group_by_customer(orders: Sequence[Order]) -> Dict[str, List[Order]]:
    """Pedidos de cada cliente ordenados por fecha. Se ignoran los que no tienen cliente o fecha."""
    customers: Dict[str, List[Order]] = {}
    for order in orders:
        if not order.customer_id or order.created_at is None:
            continue
        customers.setdefault(str(order.customer_id), []).append(order)
    for customer_orders in customers.values():
        customer_orders.sort(key=lambda o: _local(o.created_at))
    return customers


def _avg_gap_days(customer_orders: Sequence[Order]) -> float:
    first = _local(customer_orders[0].created_at)
    last = _local(customer_orders[-1].created_at)
    return (last - first).total_seconds() / 86400 / (len(customer_orders) - 1)


def _spend(customer_orders: Sequence[Order]) -> float:
    return sum(o.total_price for o in customer_orders)


def _pct(part: float, total: float) -> float:
    return part / total * 100 if total > 0 else 0.0


def calc_change(current: float, previous: float) -> float:
    if previous == 0:
        return 100.0 if current > 0 else 0.0
    return (current - previous) / previous * 100


# -----------------------------------------------------------------------------
# 2) Métricas de la base de clientes
# -----------------------------------------------------------------------------

@dataclass
class CustomerMetrics:
    total_customers: int = 0
    new_customers: int = 0
    returning_customers: int = 0
    retention_rate: float = 0.0
    avg_frequency_days: float = 0.0
    avg_orders_per_customer: float = 0.0
    avg_ticket: float = 0.0
    clv: float = 0.0
    total_orders: int = 0
    total_revenue: float = 0.0


def calculate_customer_metrics(orders: Sequence[Order]) -> CustomerMetrics:
    """
    Un cliente es nuevo si alguno de sus pedidos lleva la marca de cliente nuevo.
    La retención es el porcentaje de clientes con más de un pedido y el CLV
    anualiza ticket medio × pedidos por cliente.
    """
    customers = group_by_customer(orders)
    metrics = CustomerMetrics(total_customers=len(customers))
    if not customers:
        return metrics

    metrics.new_customers = sum(1 for os in customers.values() if any(o.is_new_customer for o in os))
    metrics.returning_customers = metrics.total_customers - metrics.new_customers

    repeaters = [os for os in customers.values() if len(os) > 1]
    metrics.retention_rate = _pct(len(repeaters), metrics.total_customers)
    if repeaters:
        metrics.avg_frequency_days = sum(_avg_gap_days(os) for os in repeaters) / len(repeaters)

    metrics.total_orders = sum(len(os) for os in customers.values())
    metrics.total_revenue = sum(_spend(os) for os in customers.values())
    metrics.avg_ticket = metrics.total_revenue / metrics.total_orders
    metrics.avg_orders_per_customer = metrics.total_orders / metrics.total_customers
    metrics.clv = metrics.avg_ticket * metrics.avg_orders_per_customer * 12
    return metrics


def compare_metrics(current: CustomerMetrics, previous: CustomerMetrics) -> Dict[str, float]:
    return {
        "total_customers_change": calc_change(current.total_customers, previous.total_customers),
        "new_customers_change": calc_change(current.new_customers, previous.new_customers),
        "returning_customers_change": calc_change(current.returning_customers, previous.returning_customers),
        "retention_rate_change": calc_change(current.retention_rate, previous.retention_rate),
        "avg_frequency_days_change": calc_change(current.avg_frequency_days, previous.avg_frequency_days),
        "avg_ticket_change": calc_change(current.avg_ticket, previous.avg_ticket),
        "clv_change": calc_change(current.clv, previous.clv),
    }


@dataclass
class ChannelCustomerMetrics:
    channel: str
    channel_name: str
    total_customers: int
    new_customers: int
    returning_customers: int
    repetition_rate: float
    new_customers_percentage: float
    orders: int
    revenue: float
    avg_ticket: float


def metrics_by_channel(orders: Sequence[Order]) -> List[ChannelCustomerMetrics]:
    """Glovo, Uber Eats y Just Eat en ese orden; solo canales con clientes."""
    result: List[ChannelCustomerMetrics] = []
    for channel in ALL_CHANNELS:
        customers = group_by_customer([o for o in orders if o.channel == channel])
        if not customers:
            continue
        total = len(customers)
        new = sum(1 for os in customers.values() if any(o.is_new_customer for o in os))
        returning = sum(1 for os in customers.values() if len(os) > 1)
        order_count = sum(len(os) for os in customers.values())
        revenue = sum(_spend(os) for os in customers.values())
        result.append(
            ChannelCustomerMetrics(
                channel=channel,
                channel_name=CHANNEL_INFO[channel]["name"],
                total_customers=total,
                new_customers=new,
                returning_customers=returning,
                repetition_rate=_pct(returning, total),
                new_customers_percentage=_pct(new, total),
                orders=order_count,
                revenue=revenue,
                avg_ticket=revenue / order_count if order_count else 0.0,
            )
        )
    return result


# -----------------------------------------------------------------------------
# 3) Cohortes de retención
# -----------------------------------------------------------------------------

def period_key(value: datetime, granularity: CohortGranularity) -> str:
    """``2026-02`` por mes o ``2026-W06`` por semana ISO."""
    local = _local(value)
    if granularity == "week":
        iso_year, iso_week, _ = local.isocalendar()
        return f"{iso_year}-W{iso_week:02d}"
    return f"{local.year}-{local.month:02d}"


@dataclass
class Cohort:
    cohort: str
    size: int
    retention: List[Optional[float]] = field(default_factory=list)
    cumulative_retention: List[Optional[float]] = field(default_factory=list)


def build_cohorts(orders: Sequence[Order], granularity: CohortGranularity = "month") -> List[Cohort]:
    """
    Agrupa a los clientes por el periodo de su primer pedido y mide qué parte
    vuelve a pedir en los periodos 0 a 6. El índice relativo se cuenta sobre
    los periodos con pedidos, no sobre el calendario. Los periodos todavía no
    observados quedan a ``None``. Se devuelven las 8 cohortes más recientes.
    """
    customers = group_by_customer(orders)
    if not customers:
        return []

    active: Dict[str, set] = {}
    for customer_id, os in customers.items():
        active[customer_id] = {period_key(o.created_at, granularity) for o in os}
    periods = sorted(set().union(*active.values()))
    index = {p: i for i, p in enumerate(periods)}

    members: Dict[str, List[str]] = {}
    for customer_id, os in customers.items():
        members.setdefault(period_key(os[0].created_at, granularity), []).append(customer_id)

    cohorts: List[Cohort] = []
    for cohort_period in sorted(members)[-MAX_COHORTS:]:
        ids = members[cohort_period]
        size = len(ids)
        start = index[cohort_period]
        item = Cohort(cohort=cohort_period, size=size)
        returned: set = set()
        for offset in range(COHORT_PERIODS):
            if start + offset >= len(periods):
                item.retention.append(None)
                item.cumulative_retention.append(None)
                continue
            target = periods[start + offset]
            in_period = {cid for cid in ids if target in active[cid]}
            item.retention.append(round(_pct(len(in_period), size), 1))
            if offset == 0:
                item.cumulative_retention.append(100.0)
            else:
                returned |= in_period
                item.cumulative_retention.append(round(_pct(len(returned), size), 1))
        cohorts.append(item)
    return cohorts


# -----------------------------------------------------------------------------
# 4) Riesgo de abandono
# -----------------------------------------------------------------------------

@dataclass
class ChurnRiskCustomer:
    customer_id: str
    orders: int
    total_spent: float
    last_order: str
    days_since_last_order: int
    avg_frequency_days: int
    risk_score: float
    risk_level: str


def churn_risk(
    orders: Sequence[Order],
    today: Optional[date] = None,
    limit: int = DEFAULT_CHURN_LIMIT,
) -> List[ChurnRiskCustomer]:
    """
    Clientes con al menos dos pedidos cuyo silencio supera su frecuencia habitual.
    ``risk_score`` = días desde el último pedido / frecuencia media;
    alto por encima de 2, medio por encima de 1,5. Los de riesgo bajo no se devuelven.
    """
    today = today or date.today()
    result: List[ChurnRiskCustomer] = []
    for customer_id, os in group_by_customer(orders).items():
        if len(os) < 2:
            continue
        last = _local(os[-1].created_at).date()
        days_since = (today - last).days
        # pedidos del mismo día: frecuencia mínima de un día
        avg_frequency = max(_avg_gap_days(os), 1.0)
        score = days_since / avg_frequency
        if score > 2:
            level = "high"
        elif score > 1.5:
            level = "medium"
        else:
            continue
        result.append(
            ChurnRiskCustomer(
                customer_id=customer_id,
                orders=len(os),
                total_spent=round(_spend(os), 2),
                last_order=last.isoformat(),
                days_since_last_order=days_since,
                avg_frequency_days=round(avg_frequency),
                risk_score=round(score, 2),
                risk_level=level,
            )
        )
    result.sort(key=lambda c: c.risk_score, reverse=True)
    return result[:limit]


# -----------------------------------------------------------------------------
# 5) Distribución del gasto
# -----------------------------------------------------------------------------

def _percentile(sorted_values: Sequence[float], q: float) -> float:
    return sorted_values[min(int(len(sorted_values) * q), len(sorted_values) - 1)]


def _spend_segment(spend: float, order_count: int, p30: float, p70: float, p90: float) -> str:
    if order_count == 1:
        return "single_order"
    if spend >= p90:
        return "vip"
    if spend >= p70:
        return "high"
    if spend >= p30:
        return "medium"
    return "low"


def spend_distribution(orders: Sequence[Order]) -> dict:
    """Estadísticos del gasto por cliente, segmentos por percentil e histograma de 10 tramos."""
    customers = group_by_customer(orders)
    if not customers:
        return {"stats": None, "segments": [], "histogram": []}

    spends = sorted(_spend(os) for os in customers.values())
    n = len(spends)
    p30, p70, p90 = _percentile(spends, 0.3), _percentile(spends, 0.7), _percentile(spends, 0.9)
    stats = {
        "customers": n,
        "min": round(spends[0], 2),
        "max": round(spends[-1], 2),
        "avg": round(sum(spends) / n, 2),
        "median": round(spends[n // 2], 2),
        "p75": round(_percentile(spends, 0.75), 2),
        "p90": round(p90, 2),
    }

    buckets: Dict[str, List[List[Order]]] = {key: [] for key in SPEND_SEGMENT_LABELS}
    for os in customers.values():
        buckets[_spend_segment(_spend(os), len(os), p30, p70, p90)].append(os)

    segments = []
    for key, label in SPEND_SEGMENT_LABELS.items():
        members = buckets[key]
        count = len(members)
        revenue = sum(_spend(os) for os in members)
        order_count = sum(len(os) for os in members)
        repeaters = [os for os in members if len(os) > 1]
        segments.append(
            {
                "segment": key,
                "label": label,
                "count": count,
                "percentage": round(_pct(count, n), 1),
                "avg_spend": round(revenue / count, 2) if count else 0.0,
                "total_revenue": round(revenue, 2),
                "repeat_customers": len(repeaters),
                "repetition_rate": round(_pct(len(repeaters), count), 1),
                "avg_orders_per_customer": round(order_count / count, 2) if count else 0.0,
                "avg_frequency_days": (
                    round(sum(_avg_gap_days(os) for os in repeaters) / len(repeaters)) if repeaters else None
                ),
            }
        )

    low, high = spends[0], spends[-1]
    width = (high - low) / HISTOGRAM_BUCKETS or 1.0
    counts = [0] * HISTOGRAM_BUCKETS
    for spend in spends:
        # el último tramo incluye el máximo
        counts[min(int((spend - low) / width), HISTOGRAM_BUCKETS - 1)] += 1
    histogram = [
        {
            "range_start": round(low + i * width, 2),
            "range_end": round(low + (i + 1) * width, 2),
            "count": counts[i],
        }
        for i in range(HISTOGRAM_BUCKETS)
    ]
    return {"stats": stats, "segments": segments, "histogram": histogram}


# -----------------------------------------------------------------------------
# 6) Multiplataforma y salud post-promoción
# -----------------------------------------------------------------------------

def multi_platform(orders: Sequence[Order]) -> dict:
    customers = group_by_customer(orders)
    only = {channel: 0 for channel in ALL_CHANNELS}
    multi = 0
    known = 0
    transitions: Dict[Tuple[str, str], int] = {}

    for os in customers.values():
        channels = [o.channel for o in os if o.channel]
        used = set(channels)
        if not used:
            continue
        known += 1
        if len(used) > 1:
            multi += 1
        else:
            only[channels[0]] += 1
        for previous, current in zip(channels, channels[1:]):
            if previous != current:
                transitions[(previous, current)] = transitions.get((previous, current), 0) + 1

    top = sorted(transitions.items(), key=lambda item: (-item[1], item[0]))[:TOP_TRANSITIONS]
    return {
        "glovo_only": only["glovo"],
        "ubereats_only": only["ubereats"],
        "justeat_only": only["justeat"],
        "multi_platform": multi,
        "multi_platform_percentage": round(_pct(multi, known), 1),
        "transitions": [{"from": a, "to": b, "count": count} for (a, b), count in top],
    }


def _post_promo_segment(customer_orders: Sequence[Order]) -> str:
    for previous, current in zip(customer_orders, customer_orders[1:]):
        gap = _local(current.created_at) - _local(previous.created_at)
        if current.promotions > 0 and gap > timedelta(days=DORMANT_GAP_DAYS):
            return "dormidos"
    if customer_orders[0].promotions <= 0:
        return "organico"
    if any(o.promotions <= 0 for o in customer_orders[1:]):
        return "sticky"
    return "promocioneros"


def post_promo_health(orders: Sequence[Order]) -> dict:
    """
    Clasifica a cada cliente por su relación con las promociones:
    ``dormidos`` vuelven con promo tras más de 45 días sin pedir,
    ``organico`` empezó sin promo, ``sticky`` empezó con promo y repitió sin ella
    y ``promocioneros`` solo piden con promo.
    """
    counts = {"sticky": 0, "promocioneros": 0, "organico": 0, "dormidos": 0}
    for os in group_by_customer(orders).values():
        counts[_post_promo_segment(os)] += 1
    total = sum(counts.values())
    result: dict = {"total": total}
    for key, count in counts.items():
        result[key] = {"count": count, "percentage": round(_pct(count, total), 1)}
    return result


# -----------------------------------------------------------------------------
# 7) Evolución semanal de la base
# -----------------------------------------------------------------------------

def _base_bucket(prior_orders: int) -> str:
    if prior_orders == 0:
        return "nuevos"
    if prior_orders <= 3:
        return "recurrentes"
    if prior_orders <= 9:
        return "frecuentes"
    return "vip"


def customer_base_trend(
    orders: Sequence[Order],
    today: Optional[date] = None,
    n_weeks: int = BASE_TREND_WEEKS,
) -> List[dict]:
    """
    Para cada una de las últimas semanas completas, reparte a los clientes que
    pidieron según sus pedidos en los 183 días previos al lunes de la semana:
    0 nuevos, 1-3 recurrentes, 4-9 frecuentes y 10 o más vip.
    """
    history: Dict[Tuple[str, str], List[date]] = {}
    for order in orders:
        if not order.customer_id or order.created_at is None:
            continue
        key = (str(order.company_id), str(order.customer_id))
        history.setdefault(key, []).append(_local(order.created_at).date())

    result = []
    for i, week in enumerate(get_last_n_weeks(n_weeks, today=today), start=1):
        week_start, week_end = ensure_date(week.start), ensure_date(week.end)
        lookback = week_start - timedelta(days=BASE_LOOKBACK_DAYS)
        counts = {"nuevos": 0, "recurrentes": 0, "frecuentes": 0, "vip": 0}
        for days in history.values():
            if not any(week_start <= d <= week_end for d in days):
                continue
            prior = sum(1 for d in days if lookback <= d < week_start)
            counts[_base_bucket(prior)] += 1
        result.append(
            {"label": f"S{i}", "week_start": week.start, "week_end": week.end, **counts, "total": sum(counts.values())}
        )
    return result


# -----------------------------------------------------------------------------
# 8) Servicio
# -----------------------------------------------------------------------------

class CustomerService:
    """Service for the customers screen."""

    def __init__(
        self,
        repository: OrderRepositoryProtocol | None = None,
        dimensions: DimensionRepositoryProtocol | None = None,
    ):
        self.repository = repository or OrderRepository()
        self.dimensions = dimensions or DimensionRepository()

    def _orders(self, filters: DataFilters) -> List[Order]:
        orders = self.repository.get_customer_orders(expand_filters(filters, self.dimensions))
        api_logger.info(
            "Customer orders loaded",
            orders=len(orders),
            start=filters.start_date.isoformat(),
            end=filters.end_date.isoformat(),
        )
        return orders

    def get_metrics(self, filters: DataFilters) -> dict:
        """Métricas del periodo frente al periodo anterior de igual duración."""
        previous_range = get_previous_period_range(filters.start_date, filters.end_date)
        previous_filters = DataFilters(
            start_date=previous_range.start,
            end_date=previous_range.end,
            company_ids=filters.company_ids,
            brand_ids=filters.brand_ids,
            address_ids=filters.address_ids,
            channel_ids=filters.channel_ids,
        )
        current = calculate_customer_metrics(self._orders(filters))
        previous = calculate_customer_metrics(self._orders(previous_filters))
        return {
            "current": asdict(current),
            "previous": asdict(previous),
            "changes": compare_metrics(current, previous),
        }

    def get_by_channel(self, filters: DataFilters) -> List[dict]:
        return [asdict(m) for m in metrics_by_channel(self._orders(filters))]

    def get_cohorts(self, filters: DataFilters, granularity: CohortGranularity = "month") -> List[dict]:
        return [asdict(c) for c in build_cohorts(self._orders(filters), granularity)]

    def get_churn_risk(
        self,
        filters: DataFilters,
        limit: int = DEFAULT_CHURN_LIMIT,
        today: Optional[date] = None,
    ) -> List[dict]:
        return [asdict(c) for c in churn_risk(self._orders(filters), today=today, limit=limit)]

    def get_spend_distribution(self, filters: DataFilters) -> dict:
        return spend_distribution(self._orders(filters))

    def get_multi_platform(self, filters: DataFilters) -> dict:
        return multi_platform(self._orders(filters))

    def get_post_promo_health(self, filters: DataFilters) -> dict:
        return post_promo_health(self._orders(filters))

    def get_base_trend(self, filters: DataFilters, today: Optional[date] = None) -> List[dict]:
        """Ignora las fechas de ``filters``: usa las últimas 8 semanas y sus 183 días previos."""
        weeks = get_last_n_weeks(BASE_TREND_WEEKS, today=today)
        window = DataFilters(
            start_date=ensure_date(weeks[0].start) - timedelta(days=BASE_LOOKBACK_DAYS),
            end_date=ensure_date(weeks[-1].end),
            company_ids=filters.company_ids,
            brand_ids=filters.brand_ids,
            address_ids=filters.address_ids,
            channel_ids=filters.channel_ids,
        )
        return customer_base_trend(self._orders(window), today=today)
