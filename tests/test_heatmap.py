from __future__ import annotations

from datetime import date, datetime, timedelta, timezone
from unittest.mock import MagicMock

import pytest

from deliverybi.domain.filters import DataFilters
from deliverybi.domain.models import Order
from deliverybi.services.heatmap import (
    HeatmapService,
    build_heatmap_matrix,
    matrix_max,
    matrix_totals,
    normalize_cell,
)


def _order(order_id, created_at, total):
    return Order(
        id=order_id,
        company_id="1",
        brand_id="10",
        address_id="100",
        portal_id=None,
        channel="glovo",
        created_at=created_at,
        total_price=total,
    )


class TestHeatmapMatrix:
    def test_shape_when_empty(self):
        matrix = build_heatmap_matrix([])
        assert len(matrix) == 24
        assert all(len(row) == 7 for row in matrix)
        assert matrix_totals(matrix) == {"revenue": 0, "orders": 0, "avgTicket": 0.0}

    def test_naive_timestamps_keep_their_hour(self):
        matrix = build_heatmap_matrix(
            [
                _order("1", datetime(2026, 2, 2, 13, 10), 20.0),
                _order("2", datetime(2026, 2, 2, 13, 50), 30.0),
                _order("3", datetime(2026, 2, 8, 21, 0), 15.0),
                _order("4", None, 99.0),
            ]
        )
        monday = matrix[13][0]
        assert monday.orders == 2
        assert monday.revenue == 50
        assert monday.avg_ticket == 25
        assert matrix[21][6].orders == 1
        assert matrix_totals(matrix) == {"revenue": 65.0, "orders": 3, "avgTicket": 21.67}

    def test_utc_is_converted_to_madrid(self):
        # 12:00 UTC en febrero son las 13:00 en Madrid
        matrix = build_heatmap_matrix([_order("1", datetime(2026, 2, 2, 12, 0, tzinfo=timezone.utc), 10.0)])
        assert matrix[13][0].orders == 1
        assert matrix[12][0].orders == 0

    def test_mixed_offsets_across_dst_change(self):
        # el cambio de hora de 2026 es el domingo 29 de marzo
        winter = timezone(timedelta(hours=1))
        summer = timezone(timedelta(hours=2))
        matrix = build_heatmap_matrix(
            [
                _order("1", datetime(2026, 3, 28, 12, 0, tzinfo=winter), 10.0),
                _order("2", datetime(2026, 3, 30, 12, 0, tzinfo=summer), 20.0),
                _order("3", datetime(2026, 3, 30, 9, 0), 5.0),
            ]
        )
        assert matrix[12][5].orders == 1
        assert matrix[12][0].orders == 1
        assert matrix[12][0].revenue == 20.0
        assert matrix[9][0].orders == 1
        assert matrix_totals(matrix)["orders"] == 3

    def test_normalize(self):
        assert normalize_cell(5, 0) == 0
        assert normalize_cell(5, 10) == 0.5


class TestHeatmapService:
    def test_payload(self):
        repo = MagicMock()
        repo.get_orders.return_value = [
            _order("1", datetime(2026, 2, 2, 13, 0), 40.0),
            _order("2", datetime(2026, 2, 3, 20, 0), 10.0),
        ]
        service = HeatmapService(repo, MagicMock())
        filters = DataFilters(start_date=date(2026, 2, 1), end_date=date(2026, 2, 7), company_ids=["1"])

        data = service.get_heatmap(filters, "revenue")

        assert data["max"] == 40
        assert data["day_labels"][0] == "Lun"
        assert data["matrix"][13][0]["intensity"] == 1
        assert data["matrix"][20][1]["intensity"] == 0.25
        assert matrix_max(build_heatmap_matrix(repo.get_orders.return_value), "orders") == 1

    def test_unknown_metric(self):
        service = HeatmapService(MagicMock(), MagicMock())
        filters = DataFilters(start_date=date(2026, 2, 1), end_date=date(2026, 2, 7))
        with pytest.raises(ValueError):
            service.get_heatmap(filters, "margin")
