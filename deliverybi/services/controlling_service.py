"""Controlling dashboard service: hierarchy, portfolio, channel cards and sparklines."""

from __future__ import annotations

from dataclasses import asdict, dataclass
from datetime import date
from typing import Dict, Iterable, List, Literal, Mapping, Optional, Sequence, Set

from deliverybi.core.config import settings
from deliverybi.core.logging import api_logger
from deliverybi.domain.catalog import expand_ids
from deliverybi.domain.channels import portal_ids_for_channels
from deliverybi.domain.dates import (
    DateRange,
    format_range_label,
    get_last_n_weeks,
    get_period_labels,
    get_previous_period_range,
    get_year_over_year_range,
)
from deliverybi.domain.filters import DataFilters
from deliverybi.repositories.controlling_repository import ControllingRepository
from deliverybi.repositories.dimension_repository import DimensionRepository
from deliverybi.repositories.order_repository import OrderRepository
from deliverybi.repositories.protocols import (
    ControllingRepositoryProtocol,
    DimensionRepositoryProtocol,
    OrderRepositoryProtocol,
)
from deliverybi.services.hierarchy import (
    ControllingRow,
    RowRef,
    aggregate_rpc_metrics,
    build_hierarchy,
    transform_row,
)
from deliverybi.services.hierarchy_table import SortDirection, VisibleRow, visible_rows
from deliverybi.services.portfolio import (
    ChannelCard,
    PortfolioMetrics,
    aggregate_orders,
    build_channel_cards,
    build_portfolio,
    compare_orders,
)
from deliverybi.services.sparklines import (
    SEGMENT_KEYS,
    WeeklySparklines,
    aggregate_segments_by_row_id,
    build_weekly_sparklines,
)

CompareMode = Literal["previous", "year"]


@dataclass
class ControllingDashboard:
    rows: List[ControllingRow]
    portfolio: PortfolioMetrics
    channels: List[ChannelCard]
    period_labels: Dict[str, str]
    comparison: DateRange
    sparklines: Optional[WeeklySparklines] = None

    def to_dict(self) -> dict:
        data = {
            "rows": [r.to_dict() for r in self.rows],
            "portfolio": asdict(self.portfolio),
            "channels": [asdict(c) for c in self.channels],
            "period_labels": self.period_labels,
            "comparison": {
                "start": self.comparison.start.isoformat(),
                "end": self.comparison.end.isoformat(),
            },
            "sparklines": None,
        }
        if self.sparklines is not None:
            data["sparklines"] = {
                "weeks": [asdict(w) for w in self.sparklines.weeks],
                "by_row_id": self.sparklines.by_row_id,
                "by_channel": self.sparklines.by_channel,
            }
        return data


def _filter_rpc_rows(
    rows: Iterable[Mapping],
    brand_ids: Sequence[str],
    address_ids: Sequence[str],
    portal_ids: Optional[Sequence[str]],
) -> List[Mapping]:
    """Applies the brand, address and channel selection to controlling RPC rows."""
    brands: Set[str] = {str(b) for b in brand_ids}
    addresses: Set[str] = {str(a) for a in address_ids}
    portals: Optional[Set[str]] = set(portal_ids) if portal_ids is not None else None
    result = []
    for row in rows:
        if brands and str(row.get("pfk_id_store")) not in brands:
            continue
        if addresses and str(row.get("pfk_id_store_address")) not in addresses:
            continue
        if portals is not None and str(row.get("pfk_id_portal")) not in portals:
            continue
        result.append(row)
    return result


class ControllingService:
    """Service for the controlling dashboard."""

    def __init__(
        self,
        dimensions: DimensionRepositoryProtocol | None = None,
        controlling: ControllingRepositoryProtocol | None = None,
        orders: OrderRepositoryProtocol | None = None,
    ):
        self.dimensions = dimensions or DimensionRepository()
        self.controlling = controlling or ControllingRepository()
        self.orders = orders or OrderRepository()

    def _resolve_companies(self, company_ids: Optional[Sequence[str]]) -> List[str]:
        """Sin selección (admin) se usan todas las empresas activas del mes."""
        if company_ids:
            return [str(c) for c in company_ids]
        return [str(c.id) for c in self.dimensions.get_companies()]

    def comparison_range(self, start: date, end: date, compare: CompareMode = "previous") -> DateRange:
        if compare == "year":
            return get_year_over_year_range(start, end)
        return get_previous_period_range(start, end)

    def get_dashboard(
        self,
        company_ids: Sequence[str],
        start: date,
        end: date,
        brand_ids: Optional[Sequence[str]] = None,
        address_ids: Optional[Sequence[str]] = None,
        channel_ids: Optional[Sequence[str]] = None,
        compare: CompareMode = "previous",
        include_sparklines: bool = True,
        today: Optional[date] = None,
    ) -> ControllingDashboard:
        """
        Builds the full dashboard for ``[start, end]``.

        Brand and restaurant selections are expanded to every grouped id before
        filtering. The hierarchy always covers the whole companies; portfolio
        and channel cards honour the brand, restaurant and channel filters.
        """
        company_ids = self._resolve_companies(company_ids)
        expanded_brands = expand_ids(brand_ids, self.dimensions.get_brands(company_ids)) if brand_ids else []
        expanded_addresses = (
            expand_ids(address_ids, self.dimensions.get_restaurants(company_ids)) if address_ids else []
        )
        comparison = self.comparison_range(start, end, compare)

        dims = self.dimensions.fetch_all_dimensions(company_ids)
        current_rows = self.controlling.get_controlling_metrics(company_ids, start, end)
        previous_rows = self.controlling.get_controlling_metrics(company_ids, comparison.start, comparison.end)

        hierarchy = build_hierarchy(
            dims,
            aggregate_rpc_metrics(current_rows),
            aggregate_rpc_metrics(previous_rows),
        )
        rows = [transform_row(r) for r in hierarchy]

        current_filters = DataFilters(
            start_date=start,
            end_date=end,
            company_ids=company_ids,
            brand_ids=expanded_brands or None,
            address_ids=expanded_addresses or None,
            channel_ids=channel_ids,
        )
        previous_filters = DataFilters(
            start_date=comparison.start,
            end_date=comparison.end,
            company_ids=company_ids,
            brand_ids=expanded_brands or None,
            address_ids=expanded_addresses or None,
            channel_ids=channel_ids,
        )
        portal_ids = portal_ids_for_channels(channel_ids)

        current_orders = aggregate_orders(
            self.orders.get_aggregated_by_portal(current_filters),
            self.orders.get_unique_customers(current_filters),
            _filter_rpc_rows(current_rows, expanded_brands, expanded_addresses, portal_ids),
        )
        previous_orders = aggregate_orders(
            self.orders.get_aggregated_by_portal(previous_filters),
            self.orders.get_unique_customers(previous_filters),
            _filter_rpc_rows(previous_rows, expanded_brands, expanded_addresses, portal_ids),
        )
        portfolio = build_portfolio(current_orders, compare_orders(current_orders, previous_orders))
        channels = build_channel_cards(current_orders, previous_orders, channel_ids)

        sparklines = None
        if include_sparklines:
            sparklines = build_weekly_sparklines(
                self.controlling.get_controlling_metrics,
                company_ids,
                settings.SPARKLINE_WEEKS,
                today=today,
            )

        if compare == "year":
            period_labels = {
                "current": format_range_label(start, end),
                "comparison": format_range_label(comparison.start, comparison.end),
            }
        else:
            period_labels = get_period_labels(start, end)

        api_logger.info(
            "Controlling dashboard built",
            companies=len(company_ids),
            rows=len(rows),
            current_rpc_rows=len(current_rows),
            previous_rpc_rows=len(previous_rows),
            sparkline_weeks=len(sparklines.weeks) if sparklines else 0,
        )
        return ControllingDashboard(
            rows=rows,
            portfolio=portfolio,
            channels=channels,
            period_labels=period_labels,
            comparison=comparison,
            sparklines=sparklines,
        )

    def get_table(
        self,
        company_ids: Sequence[str],
        start: date,
        end: date,
        expanded: Optional[Set[str]] = None,
        sort_column: Optional[str] = None,
        sort_direction: Optional[SortDirection] = None,
        compare: CompareMode = "previous",
    ) -> List[VisibleRow]:
        """Hierarchy rows visible under the given expand and sort state."""
        company_ids = self._resolve_companies(company_ids)
        comparison = self.comparison_range(start, end, compare)
        dims = self.dimensions.fetch_all_dimensions(company_ids)
        hierarchy = build_hierarchy(
            dims,
            aggregate_rpc_metrics(self.controlling.get_controlling_metrics(company_ids, start, end)),
            aggregate_rpc_metrics(
                self.controlling.get_controlling_metrics(company_ids, comparison.start, comparison.end)
            ),
        )
        rows = [transform_row(r) for r in hierarchy]
        return visible_rows(rows, set(expanded or ()), sort_column, sort_direction)

    def get_detail_segments(self, ref: RowRef, today: Optional[date] = None) -> List[dict]:
        """
        Clientes nuevos, ocasionales y frecuentes de una fila en cada una de las
        últimas semanas completas (la más antigua primero).
        """
        result = []
        for week in get_last_n_weeks(settings.SPARKLINE_WEEKS, today=today):
            rows = self.controlling.get_customer_segments([ref.company_id], week.start, week.end)
            segments = aggregate_segments_by_row_id(rows).get(ref.row_id, {k: 0 for k in SEGMENT_KEYS})
            result.append({"week_label": week.label, "week_start": week.start, **segments})
        api_logger.info("Detail segments built", row_id=ref.row_id, weeks=len(result))
        return result
