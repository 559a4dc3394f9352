from __future__ import annotations

from datetime import date
from unittest.mock import MagicMock

import pytest
from fastapi import HTTPException

from deliverybi.domain.models import PromotionalCampaign
from deliverybi.services.campaigns_service import CampaignService, derive_campaign_status, month_window

TODAY = date(2026, 2, 4)


def _campaign(campaign_id, start, end, status="scheduled", **kwargs):
    return PromotionalCampaign(
        id=campaign_id,
        restaurant_id="r1",
        platform="glovo",
        campaign_type="discount",
        start_date=start,
        end_date=end,
        status=status,
        **kwargs,
    )


class TestCampaignStatus:
    @pytest.mark.parametrize(
        "start,end,current,expected",
        [
            ("2026-01-01", "2026-01-31", None, "completed"),
            ("2026-02-01", "2026-02-04", None, "active"),
            ("2026-02-04T00:00:00", "2026-02-10T23:59:59", None, "active"),
            ("2026-02-05", "2026-02-10", None, "scheduled"),
            ("2026-01-01", "2026-01-31", "cancelled", "cancelled"),
        ],
    )
    def test_derived_from_dates(self, start, end, current, expected):
        assert derive_campaign_status(start, end, current, today=TODAY) == expected

    def test_month_window(self):
        assert month_window(2026, 2) == ("2026-02-01", "2026-02-28")
        assert month_window(2024, 2) == ("2024-02-01", "2024-02-29")


@pytest.fixture
def repo():
    repo = MagicMock()
    repo.list_campaigns.return_value = [
        _campaign("c1", "2026-01-01", "2026-01-31", status="active"),
        _campaign("c2", "2026-02-01", "2026-02-28"),
        _campaign("c3", "2026-03-01", "2026-03-15"),
        _campaign("c4", "2026-02-01", "2026-02-28", status="cancelled"),
    ]
    return repo


class TestCampaignService:
    def test_status_refreshed_on_read(self, repo):
        campaigns = CampaignService(repo).list_campaigns(today=TODAY)
        assert [c.status for c in campaigns] == ["completed", "active", "scheduled", "cancelled"]

    def test_status_filter_after_derivation(self, repo):
        campaigns = CampaignService(repo).list_campaigns(statuses=["active"], today=TODAY)
        assert [c.id for c in campaigns] == ["c2"]

    def test_month_passes_window(self, repo):
        CampaignService(repo).list_for_month(2026, 2, restaurant_ids=["r1"], today=TODAY)
        repo.list_campaigns.assert_called_once_with(["r1"], None, "2026-02-01", "2026-02-28")

    def test_get_missing(self, repo):
        repo.get.return_value = None
        with pytest.raises(HTTPException) as exc:
            CampaignService(repo).get("nope")
        assert exc.value.status_code == 404

    def test_create_rejects_inverted_dates(self, repo):
        with pytest.raises(HTTPException) as exc:
            CampaignService(repo).create({"start_date": "2026-02-10", "end_date": "2026-02-01"})
        assert exc.value.status_code == 400
        repo.create.assert_not_called()

    def test_create_derives_status(self, repo):
        repo.create.side_effect = lambda values: _campaign("c9", values["start_date"], values["end_date"], values["status"])
        campaign = CampaignService(repo).create(
            {"restaurant_id": "r1", "platform": "glovo", "campaign_type": "2x1",
             "start_date": date(2026, 2, 1), "end_date": date(2026, 2, 10)},
            today=TODAY,
        )
        assert campaign.status == "active"
        assert repo.create.call_args.args[0]["start_date"] == "2026-02-01"

    def test_update_dates_recomputes_status(self, repo):
        repo.get.return_value = _campaign("c2", "2026-02-01", "2026-02-28", status="active")
        repo.update.side_effect = lambda cid, values: _campaign(cid, values["start_date"], values["end_date"], values["status"])
        campaign = CampaignService(repo).update("c2", {"start_date": "2026-02-20"}, today=TODAY)
        assert campaign.status == "scheduled"

    def test_cancel(self, repo):
        repo.update.return_value = _campaign("c2", "2026-02-01", "2026-02-28", status="cancelled")
        assert CampaignService(repo).cancel("c2").status == "cancelled"
        repo.update.assert_called_once_with("c2", {"status": "cancelled"})

    def test_delete_missing(self, repo):
        repo.delete.return_value = False
        with pytest.raises(HTTPException) as exc:
            CampaignService(repo).delete("c1")
        assert exc.value.status_code == 404
