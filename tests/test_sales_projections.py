from __future__ import annotations

import json
from unittest.mock import MagicMock, patch

import pytest
from fastapi import HTTPException

from deliverybi.domain.models import SalesProjection
from deliverybi.repositories.sales_projection_repository import SalesProjectionRepository, row_to_projection
from deliverybi.services.sales_projections import (
    DEFAULT_CONFIG,
    SalesProjectionService,
    with_baseline_defaults,
    with_config_defaults,
)


def _projection(**kwargs):
    data = dict(id="sp1", company_id="1", target_revenue={"glovo": 1000})
    data.update(kwargs)
    return SalesProjection(**data)


class TestDefaults:
    def test_config(self):
        assert with_config_defaults(None) == DEFAULT_CONFIG
        config = with_config_defaults({"maxAdsPercent": 8})
        assert config["maxAdsPercent"] == 8
        assert config["investmentMode"] == "global"

    def test_baseline(self):
        assert with_baseline_defaults({"glovo": 1200.0}) == {"glovo": 1200.0, "ubereats": 0, "justeat": 0}


class TestSalesProjectionService:
    def test_creates_when_scope_is_new(self):
        repo = MagicMock()
        repo.get_by_scope.return_value = None
        repo.create.return_value = _projection()

        SalesProjectionService(repo).upsert({"company_id": "1", "brand_id": "10"}, "user-1")

        repo.get_by_scope.assert_called_once_with("1", "10", None)
        values = repo.create.call_args.args[0]
        assert values["config"] == DEFAULT_CONFIG
        assert values["baseline_revenue"] == {"glovo": 0, "ubereats": 0, "justeat": 0}
        assert values["target_ads"] == {}
        assert values["created_by"] == values["updated_by"] == "user-1"

    def test_updates_existing_scope(self):
        repo = MagicMock()
        repo.get_by_scope.return_value = _projection()
        repo.update.return_value = _projection(config={"maxAdsPercent": 5})

        SalesProjectionService(repo).upsert({"company_id": "1", "config": {"maxAdsPercent": 5}}, "user-2")

        projection_id, values = repo.update.call_args.args
        assert projection_id == "sp1"
        assert values["config"]["maxAdsPercent"] == 5
        assert values["config"]["activeChannels"] == []
        assert values["updated_by"] == "user-2"
        assert "created_by" not in values
        repo.create.assert_not_called()

    def test_update_targets_is_partial(self):
        repo = MagicMock()
        repo.update.return_value = _projection()

        SalesProjectionService(repo).update_targets(
            "sp1", {"target_ads": {"glovo": 50}, "target_promos": None, "config": {"x": 1}}, "user-1"
        )

        assert repo.update.call_args.args[1] == {"target_ads": {"glovo": 50}, "updated_by": "user-1"}

    def test_missing_projection(self):
        repo = MagicMock()
        repo.get.return_value = None
        repo.update.return_value = None
        repo.delete.return_value = False
        service = SalesProjectionService(repo)

        for call in (
            lambda: service.get("nope"),
            lambda: service.update_targets("nope", {"target_ads": {}}, "u"),
            lambda: service.delete("nope"),
        ):
            with pytest.raises(HTTPException) as exc:
                call()
            assert exc.value.status_code == 404


class TestSalesProjectionRepository:
    ROW = {
        "id": 7,
        "company_id": 1,
        "brand_id": None,
        "address_id": 100,
        "config": json.dumps({"investmentMode": "per_channel"}),
        "baseline_revenue": {"glovo": 10},
        "target_revenue": None,
        "target_ads": "{}",
        "target_promos": {},
        "created_at": "2026-02-01T10:00:00Z",
    }

    def test_row_mapping(self):
        projection = row_to_projection(self.ROW)
        assert (projection.id, projection.company_id, projection.address_id) == ("7", "1", "100")
        assert projection.brand_id is None
        assert projection.config == {"investmentMode": "per_channel"}
        assert projection.target_revenue == {}
        assert projection.created_at.year == 2026

    def test_scope_lookup_matches_null(self):
        with patch("deliverybi.repositories.sales_projection_repository.fetch_one", return_value=None) as fetch:
            assert SalesProjectionRepository.get_by_scope("1") is None

        query, params = fetch.call_args.args
        assert "brand_id IS NOT DISTINCT FROM :brand_id" in query
        assert params == {"company_id": "1", "brand_id": None, "address_id": None}

    def test_create_serializes_json(self):
        with patch(
            "deliverybi.repositories.sales_projection_repository.execute_returning", return_value=[self.ROW]
        ) as run:
            SalesProjectionRepository.create({"company_id": "1", "config": {"a": 1}, "unknown": "x"})

        query, values = run.call_args.args
        assert query.startswith("INSERT INTO sales_projections (company_id, config)")
        assert values == {"company_id": "1", "config": '{"a": 1}'}
