"""Campañas promocionales con estado derivado de sus fechas."""

from __future__ import annotations

import calendar
from dataclasses import replace
from datetime import date
from typing import Any, Dict, List, Optional, Sequence

from fastapi import HTTPException, status

from deliverybi.core.logging import api_logger
from deliverybi.domain.models import PromotionalCampaign
from deliverybi.repositories.campaign_repository import CampaignRepository
from deliverybi.repositories.protocols import CampaignRepositoryProtocol


def derive_campaign_status(
    start_date: str,
    end_date: str,
    current_status: Optional[str] = None,
    today: Optional[date] = None,
) -> str:
    """
    Estado según las fechas ISO frente a hoy. Una campaña cancelada no cambia.

    >>> derive_campaign_status("2026-01-01", "2026-01-31", today=date(2026, 2, 1))
    'completed'
    """
    if current_status == "cancelled":
        return "cancelled"
    today_iso = (today or date.today()).isoformat()
    if today_iso > end_date[:10]:
        return "completed"
    if start_date[:10] <= today_iso <= end_date[:10]:
        return "active"
    return "scheduled"


def month_window(year: int, month: int) -> tuple[str, str]:
    last_day = calendar.monthrange(year, month)[1]
    return date(year, month, 1).isoformat(), date(year, month, last_day).isoformat()


class CampaignService:
    """Service for promotional campaigns."""

    def __init__(self, repository: CampaignRepositoryProtocol | None = None):
        self.repository = repository or CampaignRepository()

    def _with_status(self, campaign: PromotionalCampaign, today: Optional[date]) -> PromotionalCampaign:
        derived = derive_campaign_status(campaign.start_date, campaign.end_date, campaign.status, today)
        return campaign if derived == campaign.status else replace(campaign, status=derived)

    def list_campaigns(
        self,
        restaurant_ids: Optional[Sequence[str]] = None,
        platforms: Optional[Sequence[str]] = None,
        statuses: Optional[Sequence[str]] = None,
        start_date: Optional[str] = None,
        end_date: Optional[str] = None,
        today: Optional[date] = None,
    ) -> List[PromotionalCampaign]:
        campaigns = [
            self._with_status(c, today)
            for c in self.repository.list_campaigns(restaurant_ids, platforms, start_date, end_date)
        ]
        if statuses:
            campaigns = [c for c in campaigns if c.status in statuses]
        return campaigns

    def list_for_month(
        self,
        year: int,
        month: int,
        restaurant_ids: Optional[Sequence[str]] = None,
        today: Optional[date] = None,
    ) -> List[PromotionalCampaign]:
        start, end = month_window(year, month)
        return self.list_campaigns(restaurant_ids=restaurant_ids, start_date=start, end_date=end, today=today)

    def list_for_restaurant(self, restaurant_id: str, today: Optional[date] = None) -> List[PromotionalCampaign]:
        return self.list_campaigns(restaurant_ids=[restaurant_id], today=today)

    def get(self, campaign_id: str, today: Optional[date] = None) -> PromotionalCampaign:
        campaign = self.repository.get(campaign_id)
        if campaign is None:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Campaña no encontrada.")
        return self._with_status(campaign, today)

    def create(self, data: Dict[str, Any], today: Optional[date] = None) -> PromotionalCampaign:
        start, end = str(data["start_date"]), str(data["end_date"])
        if end[:10] < start[:10]:
            raise HTTPException(status_code=400, detail="'start_date' debe ser anterior a 'end_date'.")
        values = dict(data, start_date=start[:10], end_date=end[:10])
        values["status"] = derive_campaign_status(start, end, today=today)
        campaign = self.repository.create(values)
        api_logger.info("Campaign created", campaign_id=campaign.id, platform=campaign.platform)
        return campaign

    def update(self, campaign_id: str, data: Dict[str, Any], today: Optional[date] = None) -> PromotionalCampaign:
        """Si cambian las fechas se recalcula el estado."""
        values = dict(data)
        if "start_date" in values or "end_date" in values:
            existing = self.get(campaign_id, today)
            start = str(values.get("start_date") or existing.start_date)[:10]
            end = str(values.get("end_date") or existing.end_date)[:10]
            if end < start:
                raise HTTPException(status_code=400, detail="'start_date' debe ser anterior a 'end_date'.")
            values.update(
                start_date=start,
                end_date=end,
                status=derive_campaign_status(start, end, values.get("status") or existing.status, today),
            )
        campaign = self.repository.update(campaign_id, values)
        if campaign is None:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Campaña no encontrada.")
        return campaign

    def cancel(self, campaign_id: str) -> PromotionalCampaign:
        return self.update(campaign_id, {"status": "cancelled"})

    def delete(self, campaign_id: str) -> None:
        if not self.repository.delete(campaign_id):
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Campaña no encontrada.")
