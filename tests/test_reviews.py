from __future__ import annotations

from datetime import date, datetime
from unittest.mock import MagicMock

import pytest

from deliverybi.domain.filters import DataFilters
from deliverybi.domain.models import Brand, ChannelReviewAggregate, Review, ReviewHeatmapCell
from deliverybi.services.reviews_service import (
    ReviewsAggregation,
    ReviewsService,
    aggregate_reviews,
    compute_changes,
    get_tag_category,
    normalize_tag_label,
)


class TestTags:
    @pytest.mark.parametrize(
        "raw,expected",
        [
            ("MISSING_OR_MISTAKEN_ITEMS", "Missing or mistaken items"),
            ("TASTY", "TASTY"),
            ("Too slow", "Too slow"),
        ],
    )
    def test_normalize(self, raw, expected):
        assert normalize_tag_label(raw) == expected

    def test_category(self):
        assert get_tag_category("Poorly packed") == "packaging"
        assert get_tag_category("Good value") == "precio"
        assert get_tag_category("Unknown tag") is None


class TestAggregation:
    def test_weighted_by_review_count(self):
        agg = aggregate_reviews(
            [
                ChannelReviewAggregate("glovo", total_reviews=30, avg_rating=4.0, positive_reviews=20,
                                       negative_reviews=5, rating_5=20, avg_delivery_time_minutes=30),
                ChannelReviewAggregate("ubereats", total_reviews=10, avg_rating=5.0, positive_reviews=10,
                                       rating_5=10, avg_delivery_time_minutes=0),
            ]
        )
        assert agg.total_reviews == 40
        assert agg.avg_rating == pytest.approx(4.25)
        assert agg.positive_percent == pytest.approx(75)
        assert agg.negative_percent == pytest.approx(12.5)
        assert agg.avg_delivery_time == 30
        assert agg.rating_distribution.rating5 == 30
        assert agg.by_channel["glovo"].negative_percent == pytest.approx(100 / 6)
        assert agg.by_channel["ubereats"].avg_delivery_time is None
        assert agg.by_channel["justeat"] is None

    def test_empty(self):
        agg = aggregate_reviews([])
        assert agg.avg_rating == 0
        assert agg.avg_delivery_time is None

    def test_changes_without_previous(self):
        current = ReviewsAggregation(total_reviews=10, avg_rating=4.0)
        changes = compute_changes(current, ReviewsAggregation())
        assert changes["total_reviews_change"] == 0
        changes = compute_changes(current, ReviewsAggregation(total_reviews=5, avg_rating=5.0))
        assert changes["total_reviews_change"] == 100
        assert changes["avg_rating_change"] == pytest.approx(-20)


@pytest.fixture
def filters():
    return DataFilters(start_date=date(2026, 2, 2), end_date=date(2026, 2, 8), company_ids=["1"])


class TestReviewsService:
    def test_comparison_uses_previous_period(self, filters):
        repo = MagicMock()
        repo.get_aggregation.side_effect = [
            [ChannelReviewAggregate("glovo", total_reviews=20, avg_rating=4.5)],
            [ChannelReviewAggregate("glovo", total_reviews=10, avg_rating=4.5)],
        ]
        data = ReviewsService(repo, MagicMock()).get_comparison(filters)

        previous_filters = repo.get_aggregation.call_args_list[1].args[0]
        assert previous_filters.start_date == date(2026, 1, 26)
        assert previous_filters.end_date == date(2026, 2, 1)
        assert previous_filters.company_ids == ["1"]
        assert data["changes"]["total_reviews_change"] == 100
        assert data["current"]["by_channel"]["glovo"]["total_reviews"] == 20

    def test_brand_filter_is_expanded(self, filters):
        repo = MagicMock()
        repo.get_aggregation.return_value = []
        dimensions = MagicMock()
        dimensions.get_brands.return_value = [
            Brand(id="10", external_id=10, company_id="1", name="Burger Lab", slug="burger-lab", all_ids=["10", "11"])
        ]
        filters.brand_ids = ["10"]
        ReviewsService(repo, dimensions).get_aggregation(filters)
        assert list(repo.get_aggregation.call_args.args[0].brand_ids) == ["10", "11"]

    def test_heatmap(self, filters):
        repo = MagicMock()
        repo.get_heatmap.return_value = [ReviewHeatmapCell(day_of_week=1, hour_of_day=21, review_count=4)]
        assert ReviewsService(repo, MagicMock()).get_heatmap(filters) == [
            {"day_of_week": 1, "hour_of_day": 21, "count": 4}
        ]

    def test_reviews_with_tags(self, filters):
        repo = MagicMock()
        repo.get_raw.return_value = [
            Review(id="r1", order_id="o1", company_id="1", brand_id="10", address_id="100", portal_id=None,
                   channel="glovo", created_at=datetime(2026, 2, 3, 21, 15), rating=2),
        ]
        repo.get_tags.return_value = {"r1": ["POORLY_PACKED", "Too slow"]}

        reviews = ReviewsService(repo, MagicMock()).get_reviews(filters, limit=50)

        repo.get_raw.assert_called_once()
        assert reviews[0]["tags"] == ["Poorly packed", "Too slow"]
        assert reviews[0]["tag_categories"] == {"Poorly packed": "packaging", "Too slow": "servicio"}
        assert reviews[0]["created_at"] == "2026-02-03T21:15:00"

    def test_no_reviews_skips_tag_query(self, filters):
        repo = MagicMock()
        repo.get_raw.return_value = []
        assert ReviewsService(repo, MagicMock()).get_reviews(filters) == []
        repo.get_tags.assert_not_called()
