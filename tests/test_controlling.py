from __future__ import annotations

from datetime import date
from unittest.mock import MagicMock

import pytest

from deliverybi.domain.models import (
    Brand,
    Company,
    DimAddress,
    DimCompany,
    DimPortal,
    DimStore,
    HierarchyDimensions,
    PortalOrderAggregate,
)
from deliverybi.services.controlling_service import ControllingService, _filter_rpc_rows
from deliverybi.services.hierarchy import RowRef, parse_row_id
from deliverybi.services.portfolio import (
    DEFAULT_OPEN_TIME_PERCENT,
    aggregate_orders,
    build_channel_cards,
    build_portfolio,
    calc_change,
    compare_orders,
)
from deliverybi.services.sparklines import aggregate_segments_by_row_id

GLOVO = "E22BC362"
UBER = "3CCD6861"


def _portal(portal_id, revenue, orders, discounts=0.0, refunds=0.0, customers=0):
    return PortalOrderAggregate(
        portal_id=portal_id,
        revenue=revenue,
        orders=orders,
        discounts=discounts,
        refunds=refunds,
        unique_customers=customers,
    )


class TestPortfolio:
    def test_calc_change(self):
        assert calc_change(150, 100) == 50
        assert calc_change(10, 0) == 0

    def test_aggregate_orders_totals_and_channels(self):
        agg = aggregate_orders(
            [
                _portal(GLOVO, 600, 20, discounts=60, refunds=30, customers=15),
                _portal("E22BC362-2", 200, 10, customers=5),
                _portal(UBER, 200, 10, discounts=20, customers=8),
            ],
            total_unique_customers=25,
            ad_rows=[{"pfk_id_portal": GLOVO, "ad_spent": 50}, {"pfk_id_portal": UBER, "ad_spent": None}],
        )
        assert agg.total_revenue == 1000
        assert agg.total_orders == 40
        assert agg.avg_ticket == 25
        assert agg.net_revenue == 970
        assert agg.promotion_rate == pytest.approx(8)
        assert agg.orders_per_customer == pytest.approx(1.6)
        assert agg.total_ad_spent == 50
        assert agg.by_channel["glovo"].revenue == 800
        assert agg.by_channel["glovo"].unique_customers == 20
        assert agg.by_channel["justeat"].orders == 0

    def test_portfolio_uses_default_open_time(self):
        current = aggregate_orders([_portal(GLOVO, 200, 10)], 5)
        previous = aggregate_orders([_portal(GLOVO, 100, 5)], 5)
        portfolio = build_portfolio(current, compare_orders(current, previous))
        assert portfolio.ventas_change == 100
        assert portfolio.open_time == DEFAULT_OPEN_TIME_PERCENT

    def test_channel_filter_recomputes_shares(self):
        current = aggregate_orders([_portal(GLOVO, 300, 30), _portal(UBER, 100, 10)], 0)
        previous = aggregate_orders([], 0)

        all_cards = build_channel_cards(current, previous)
        assert [c.channel for c in all_cards] == ["glovo", "ubereats", "justeat"]
        assert all_cards[0].percentage == 75

        only_uber = build_channel_cards(current, previous, ["ubereats"])
        assert len(only_uber) == 1
        assert only_uber[0].percentage == 100
        assert only_uber[0].pedidos_percentage == 100


def test_filter_rpc_rows_by_selection():
    rows = [
        {"pfk_id_store": 1, "pfk_id_store_address": 10, "pfk_id_portal": GLOVO},
        {"pfk_id_store": 2, "pfk_id_store_address": 20, "pfk_id_portal": UBER},
    ]
    assert _filter_rpc_rows(rows, ["2"], [], None) == [rows[1]]
    assert _filter_rpc_rows(rows, [], [], [GLOVO]) == [rows[0]]
    assert _filter_rpc_rows(rows, [], [], None) == rows


@pytest.fixture
def service():
    dimensions = MagicMock()
    dimensions.get_companies.return_value = [Company(id="1", external_id=1, name="Grupo", slug="grupo")]
    dimensions.get_brands.return_value = [
        Brand(id="10", external_id=10, company_id="1", name="Burger Lab", slug="burger-lab", all_ids=["10", "11"])
    ]
    dimensions.fetch_all_dimensions.return_value = HierarchyDimensions(
        companies=[DimCompany(id="1", name="Grupo")],
        stores=[DimStore(id="10", name="Burger Lab", company_id="1")],
        addresses=[DimAddress(id="100", name="Gran Via 1", company_id="1", store_id="10")],
        portals=[DimPortal(id=GLOVO, name="Glovo")],
    )

    controlling = MagicMock()
    controlling.get_controlling_metrics.return_value = [
        {
            "pfk_id_company": "1",
            "pfk_id_store": "10",
            "pfk_id_store_address": "100",
            "pfk_id_portal": GLOVO,
            "ventas": 500,
            "pedidos": 20,
            "ad_spent": 25,
        }
    ]

    orders = MagicMock()
    orders.get_aggregated_by_portal.return_value = [_portal(GLOVO, 500, 20)]
    orders.get_unique_customers.return_value = 12
    return ControllingService(dimensions, controlling, orders)


class TestControllingService:
    def test_dashboard_builds_every_section(self, service):
        dashboard = service.get_dashboard(
            ["1"], date(2026, 1, 19), date(2026, 1, 25), include_sparklines=False
        )
        assert [r.id for r in dashboard.rows] == [
            "company-1",
            "brand::1::10",
            "address::1::100",
            f"channel::1::100::{GLOVO}",
        ]
        assert dashboard.portfolio.ventas == 500
        assert dashboard.portfolio.inversion_ads == 25
        assert dashboard.period_labels == {"current": "19-25 Ene", "comparison": "12-18 Ene"}
        assert dashboard.sparklines is None
        assert dashboard.to_dict()["comparison"] == {"start": "2026-01-12", "end": "2026-01-18"}

    def test_brand_selection_is_expanded(self, service):
        service.get_dashboard(["1"], date(2026, 1, 19), date(2026, 1, 25), brand_ids=["11"], include_sparklines=False)
        filters = service.orders.get_aggregated_by_portal.call_args_list[0].args[0]
        assert list(filters.brand_ids) == ["10", "11"]

    def test_year_comparison(self, service):
        dashboard = service.get_dashboard(
            ["1"], date(2026, 1, 19), date(2026, 1, 25), compare="year", include_sparklines=False
        )
        assert dashboard.comparison.start == date(2025, 1, 19)
        assert dashboard.period_labels["comparison"] == "19-25 Ene"

    def test_sparklines_fetch_each_week(self, service):
        dashboard = service.get_dashboard(["1"], date(2026, 1, 19), date(2026, 1, 25), today=date(2026, 2, 4))
        assert len(dashboard.sparklines.weeks) == 8
        assert dashboard.sparklines.by_row_id["company-1"] == [500.0] * 8
        # periodo actual, anterior y 8 semanas
        assert service.controlling.get_controlling_metrics.call_count == 10

    def test_empty_scope_uses_every_company(self, service):
        service.get_dashboard([], date(2026, 1, 19), date(2026, 1, 25), include_sparklines=False)
        service.dimensions.fetch_all_dimensions.assert_called_once_with(["1"])

    def test_table_visible_rows(self, service):
        visible = service.get_table(["1"], date(2026, 1, 19), date(2026, 1, 25), expanded={"company-1"})
        assert [v.row.id for v in visible] == ["company-1", "brand::1::10"]
        assert visible[1].depth == 1


class TestRowIds:
    @pytest.mark.parametrize(
        "row_id, expected",
        [
            ("company-1", RowRef(level="company", company_id="1")),
            ("brand::1::10", RowRef(level="brand", company_id="1", brand_id="10")),
            ("address::1::100", RowRef(level="address", company_id="1", address_id="100")),
            (
                f"channel::1::100::{GLOVO}",
                RowRef(level="channel", company_id="1", address_id="100", portal_id=GLOVO),
            ),
        ],
    )
    def test_parse_and_rebuild(self, row_id, expected):
        ref = parse_row_id(row_id)
        assert ref == expected
        assert ref.row_id == row_id

    @pytest.mark.parametrize("row_id", ["company-", "brand::1", "address::1::", "store::1::2", "1"])
    def test_invalid(self, row_id):
        with pytest.raises(ValueError):
            parse_row_id(row_id)


class TestDetailSegments:
    ROWS = [
        {
            "pfk_id_company": 1,
            "pfk_id_store": 10,
            "pfk_id_store_address": 100,
            "pfk_id_portal": GLOVO,
            "new_customers": 3,
            "occasional_customers": 2,
            "frequent_customers": 1,
        },
        {
            "pfk_id_company": 1,
            "pfk_id_store": 10,
            "pfk_id_store_address": 100,
            "pfk_id_portal": UBER,
            "new_customers": 1,
            "occasional_customers": None,
            "frequent_customers": 4,
        },
    ]

    def test_aggregate_by_row_id(self):
        totals = aggregate_segments_by_row_id(self.ROWS)
        assert totals["company-1"] == {"new_customers": 4, "occasional_customers": 2, "frequent_customers": 5}
        assert totals["address::1::100"] == totals["company-1"]
        assert totals[f"channel::1::100::{UBER}"]["occasional_customers"] == 0

    def test_weekly_segments_for_a_row(self, service):
        service.controlling.get_customer_segments.return_value = self.ROWS

        weeks = service.get_detail_segments(parse_row_id("brand::1::10"), today=date(2026, 2, 4))

        assert len(weeks) == 8
        assert weeks[0]["week_start"] == "2025-12-08"
        assert weeks[-1]["week_label"] == "26/01"
        assert weeks[-1]["new_customers"] == 4
        service.controlling.get_customer_segments.assert_called_with(["1"], "2026-01-26", "2026-02-01")

    def test_row_without_data_is_zero(self, service):
        service.controlling.get_customer_segments.return_value = []
        weeks = service.get_detail_segments(parse_row_id("company-2"), today=date(2026, 2, 4))
        assert weeks[0]["frequent_customers"] == 0
