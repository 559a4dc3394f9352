"""Weekly revenue series for the controlling table and channel cards."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date
from typing import Callable, Dict, Iterable, List, Mapping, Optional, Sequence

from deliverybi.domain.channels import ALL_CHANNELS, portal_to_channel
from deliverybi.domain.dates import WeekRange, get_last_n_weeks

MetricsFetcher = Callable[[Sequence[str], str, str], List[Mapping]]


@dataclass
class WeekRevenue:
    by_row_id: Dict[str, float] = field(default_factory=dict)
    by_channel: Dict[str, float] = field(default_factory=dict)


@dataclass
class WeeklySparklines:
    weeks: List[WeekRange]
    by_row_id: Dict[str, List[float]]
    by_channel: Dict[str, List[float]]


def aggregate_revenue_by_row_id(rows: Iterable[Mapping]) -> WeekRevenue:
    week = WeekRevenue()

    def add(key: str, amount: float) -> None:
        week.by_row_id[key] = week.by_row_id.get(key, 0.0) + amount

    for row in rows:
        revenue = float(row.get("ventas") or 0)
        company_id = row.get("pfk_id_company")
        store_id = row.get("pfk_id_store")
        address_id = row.get("pfk_id_store_address")
        portal_id = row.get("pfk_id_portal")

        add(f"company-{company_id}", revenue)
        add(f"brand::{company_id}::{store_id}", revenue)
        add(f"address::{company_id}::{address_id}", revenue)
        add(f"channel::{company_id}::{address_id}::{portal_id}", revenue)

        channel = portal_to_channel(str(portal_id) if portal_id is not None else None)
        if channel:
            week.by_channel[channel] = week.by_channel.get(channel, 0.0) + revenue

    return week


def merge_weeks(weeks: Sequence[WeekRange], aggregates: Sequence[WeekRevenue]) -> WeeklySparklines:
    row_ids: List[str] = []
    seen = set()
    for agg in aggregates:
        for key in agg.by_row_id:
            if key not in seen:
                seen.add(key)
                row_ids.append(key)

    by_row_id = {rid: [agg.by_row_id.get(rid, 0.0) for agg in aggregates] for rid in row_ids}
    by_channel = {ch: [agg.by_channel.get(ch, 0.0) for agg in aggregates] for ch in ALL_CHANNELS}
    return WeeklySparklines(weeks=list(weeks), by_row_id=by_row_id, by_channel=by_channel)


def build_weekly_sparklines(
    fetch_metrics: MetricsFetcher,
    company_ids: Sequence[str],
    n_weeks: int,
    today: Optional[date] = None,
) -> WeeklySparklines:
    """Fetches each complete week with ``fetch_metrics`` and merges the revenue series (oldest first)."""
    weeks = get_last_n_weeks(n_weeks, today=today)
    aggregates = [
        aggregate_revenue_by_row_id(fetch_metrics(company_ids, week.start, week.end))
        for week in weeks
    ]
    return merge_weeks(weeks, aggregates)


SEGMENT_KEYS: tuple[str, ...] = ("new_customers", "occasional_customers", "frequent_customers")


def aggregate_segments_by_row_id(rows: Iterable[Mapping]) -> Dict[str, Dict[str, int]]:
    """Suma los segmentos de clientes en cada nivel de la jerarquía, con los mismos ids de fila."""
    result: Dict[str, Dict[str, int]] = {}

    for row in rows:
        company_id = row.get("pfk_id_company")
        store_id = row.get("pfk_id_store")
        address_id = row.get("pfk_id_store_address")
        portal_id = row.get("pfk_id_portal")
        for key in (
            f"company-{company_id}",
            f"brand::{company_id}::{store_id}",
            f"address::{company_id}::{address_id}",
            f"channel::{company_id}::{address_id}::{portal_id}",
        ):
            totals = result.setdefault(key, {k: 0 for k in SEGMENT_KEYS})
            for k in SEGMENT_KEYS:
                totals[k] += int(row.get(k) or 0)

    return result
