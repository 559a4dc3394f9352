"""
Portfolio KPIs and channel cards for the controlling dashboard.

Sales, discounts, refunds and customers come from the order heads; ad spend
comes from the ``get_controlling_metrics`` rows of the same period.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Mapping, Optional, Sequence

from deliverybi.domain.channels import ALL_CHANNELS, CHANNEL_INFO, portal_to_channel
from deliverybi.domain.models import PortalOrderAggregate

DEFAULT_OPEN_TIME_PERCENT = 80


# -----------------------------------------------------------------------------
# 1) Agregación de pedidos
# -----------------------------------------------------------------------------

@dataclass
class ChannelAggregation:
    revenue: float = 0.0
    orders: int = 0
    discounts: float = 0.0
    refunds: float = 0.0
    net_revenue: float = 0.0
    unique_customers: int = 0
    ad_spent: float = 0.0


@dataclass
class OrdersAggregation:
    total_revenue: float = 0.0
    total_orders: int = 0
    avg_ticket: float = 0.0
    total_discounts: float = 0.0
    total_refunds: float = 0.0
    net_revenue: float = 0.0
    promotion_rate: float = 0.0
    refund_rate: float = 0.0
    avg_discount_per_order: float = 0.0
    unique_customers: int = 0
    orders_per_customer: float = 0.0
    total_ad_spent: float = 0.0
    by_channel: Dict[str, ChannelAggregation] = field(
        default_factory=lambda: {ch: ChannelAggregation() for ch in ALL_CHANNELS}
    )


def _ratio(a: float, b: float) -> float:
    return a / b if b > 0 else 0.0


def calc_change(curr: float, prev: float) -> float:
    return (curr - prev) / prev * 100 if prev > 0 else 0.0


def aggregate_orders(
    portal_rows: Iterable[PortalOrderAggregate],
    total_unique_customers: int,
    ad_rows: Iterable[Mapping] = (),
) -> OrdersAggregation:
    """
    Folds per-portal order sums into totals plus a glovo/ubereats/justeat breakdown.

    ``total_unique_customers`` is counted across portals by the database, since
    the same customer may order on both channels.
    """
    result = OrdersAggregation()
    channel_customers: Dict[str, int] = {ch: 0 for ch in ALL_CHANNELS}

    for row in portal_rows:
        result.total_revenue += row.revenue
        result.total_orders += row.orders
        result.total_discounts += row.discounts
        result.total_refunds += row.refunds
        channel = portal_to_channel(row.portal_id)
        if channel:
            ch = result.by_channel[channel]
            ch.revenue += row.revenue
            ch.orders += row.orders
            ch.discounts += row.discounts
            ch.refunds += row.refunds
            channel_customers[channel] += row.unique_customers

    for row in ad_rows:
        spent = float(row.get("ad_spent") or 0)
        result.total_ad_spent += spent
        channel = portal_to_channel(str(row.get("pfk_id_portal")))
        if channel:
            result.by_channel[channel].ad_spent += spent

    result.avg_ticket = _ratio(result.total_revenue, result.total_orders)
    result.net_revenue = result.total_revenue - result.total_refunds
    result.promotion_rate = _ratio(result.total_discounts, result.total_revenue) * 100
    result.refund_rate = _ratio(result.total_refunds, result.total_revenue) * 100
    result.avg_discount_per_order = _ratio(result.total_discounts, result.total_orders)
    result.unique_customers = total_unique_customers
    result.orders_per_customer = _ratio(result.total_orders, result.unique_customers)

    for channel, ch in result.by_channel.items():
        ch.net_revenue = ch.revenue - ch.refunds
        ch.unique_customers = channel_customers[channel]

    return result


@dataclass
class OrdersChanges:
    revenue_change: float
    orders_change: float
    avg_ticket_change: float
    net_revenue_change: float
    discounts_change: float
    refunds_change: float
    promotion_rate_change: float
    refund_rate_change: float
    unique_customers_change: float
    orders_per_customer_change: float
    ad_spent_change: float


def compare_orders(current: OrdersAggregation, previous: OrdersAggregation) -> OrdersChanges:
    return OrdersChanges(
        revenue_change=calc_change(current.total_revenue, previous.total_revenue),
        orders_change=calc_change(current.total_orders, previous.total_orders),
        avg_ticket_change=calc_change(current.avg_ticket, previous.avg_ticket),
        net_revenue_change=calc_change(current.net_revenue, previous.net_revenue),
        discounts_change=calc_change(current.total_discounts, previous.total_discounts),
        refunds_change=calc_change(current.total_refunds, previous.total_refunds),
        promotion_rate_change=calc_change(current.promotion_rate, previous.promotion_rate),
        refund_rate_change=calc_change(current.refund_rate, previous.refund_rate),
        unique_customers_change=calc_change(current.unique_customers, previous.unique_customers),
        orders_per_customer_change=calc_change(current.orders_per_customer, previous.orders_per_customer),
        ad_spent_change=calc_change(current.total_ad_spent, previous.total_ad_spent),
    )


# -----------------------------------------------------------------------------
# 2) Portfolio
# -----------------------------------------------------------------------------

@dataclass
class PortfolioMetrics:
    ventas: float = 0.0
    ventas_change: float = 0.0
    pedidos: int = 0
    pedidos_change: float = 0.0
    ticket_medio: float = 0.0
    ticket_medio_change: float = 0.0
    open_time: float = 0.0
    open_time_change: float = 0.0
    inversion_ads: float = 0.0
    inversion_ads_change: float = 0.0
    ads_percentage: float = 0.0
    inversion_promos: float = 0.0
    inversion_promos_change: float = 0.0
    promos_percentage: float = 0.0
    reembolsos: float = 0.0
    reembolsos_change: float = 0.0
    reembolsos_percentage: float = 0.0
    net_revenue: float = 0.0
    net_revenue_change: float = 0.0
    unique_customers: int = 0
    unique_customers_change: float = 0.0
    orders_per_customer: float = 0.0
    orders_per_customer_change: float = 0.0
    avg_discount_per_order: float = 0.0


def build_portfolio(current: OrdersAggregation, changes: OrdersChanges) -> PortfolioMetrics:
    return PortfolioMetrics(
        ventas=current.total_revenue,
        ventas_change=changes.revenue_change,
        pedidos=current.total_orders,
        pedidos_change=changes.orders_change,
        ticket_medio=current.avg_ticket,
        ticket_medio_change=changes.avg_ticket_change,
        open_time=DEFAULT_OPEN_TIME_PERCENT,
        open_time_change=0.0,
        inversion_ads=current.total_ad_spent,
        inversion_ads_change=changes.ad_spent_change,
        ads_percentage=_ratio(current.total_ad_spent, current.total_revenue) * 100,
        inversion_promos=current.total_discounts,
        inversion_promos_change=changes.discounts_change,
        promos_percentage=current.promotion_rate,
        reembolsos=current.total_refunds,
        reembolsos_change=changes.refunds_change,
        reembolsos_percentage=current.refund_rate,
        net_revenue=current.net_revenue,
        net_revenue_change=changes.net_revenue_change,
        unique_customers=current.unique_customers,
        unique_customers_change=changes.unique_customers_change,
        orders_per_customer=current.orders_per_customer,
        orders_per_customer_change=changes.orders_per_customer_change,
        avg_discount_per_order=current.avg_discount_per_order,
    )


# -----------------------------------------------------------------------------
# 3) Tarjetas por canal
# -----------------------------------------------------------------------------

@dataclass
class ChannelCard:
    channel: str
    name: str
    color: str
    revenue: float = 0.0
    revenue_change: float = 0.0
    percentage: float = 0.0
    pedidos: int = 0
    pedidos_percentage: float = 0.0
    ticket_medio: float = 0.0
    open_time: float = DEFAULT_OPEN_TIME_PERCENT
    ads: float = 0.0
    ads_percentage: float = 0.0
    promos: float = 0.0
    promos_percentage: float = 0.0
    reembolsos: float = 0.0
    reembolsos_percentage: float = 0.0
    net_revenue: float = 0.0
    unique_customers: int = 0


def build_channel_cards(
    current: OrdersAggregation,
    previous: OrdersAggregation,
    selected_channels: Optional[Sequence[str]] = None,
) -> List[ChannelCard]:
    total_revenue = sum(c.revenue for c in current.by_channel.values())
    total_orders = sum(c.orders for c in current.by_channel.values())

    cards: List[ChannelCard] = []
    for channel in ALL_CHANNELS:
        data = current.by_channel[channel]
        prev = previous.by_channel[channel]
        info = CHANNEL_INFO[channel]
        cards.append(
            ChannelCard(
                channel=channel,
                name=info["name"],
                color=info["color"],
                revenue=data.revenue,
                revenue_change=calc_change(data.revenue, prev.revenue),
                percentage=_ratio(data.revenue, total_revenue) * 100,
                pedidos=data.orders,
                pedidos_percentage=_ratio(data.orders, total_orders) * 100,
                ticket_medio=_ratio(data.revenue, data.orders),
                ads=data.ad_spent,
                ads_percentage=_ratio(data.ad_spent, data.revenue) * 100,
                promos=data.discounts,
                promos_percentage=_ratio(data.discounts, data.revenue) * 100,
                reembolsos=data.refunds,
                reembolsos_percentage=_ratio(data.refunds, data.revenue) * 100,
                net_revenue=data.net_revenue,
                unique_customers=data.unique_customers,
            )
        )

    if selected_channels:
        cards = [c for c in cards if c.channel in selected_channels]
        filtered_revenue = sum(c.revenue for c in cards)
        filtered_orders = sum(c.pedidos for c in cards)
        for card in cards:
            card.percentage = _ratio(card.revenue, filtered_revenue) * 100
            card.pedidos_percentage = _ratio(card.pedidos, filtered_orders) * 100

    return cards
