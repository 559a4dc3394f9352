"""Promotional campaign calendar endpoints."""

from __future__ import annotations

from dataclasses import asdict, dataclass
from datetime import date
from typing import Any, Dict, List, Literal, Optional, Set

from fastapi import APIRouter, Depends, HTTPException, Query, status
from pydantic import BaseModel, Field

from deliverybi.core.security import ALL_ROLES, ROLE_ADMIN, ROLE_MANAGER, AccessClaims, require_roles
from deliverybi.domain.models import PromotionalCampaign
from deliverybi.routers.params import company_scope, parse_csv
from deliverybi.services.campaigns_service import CampaignService
from deliverybi.services.catalog_service import CatalogService
from deliverybi.services.dependencies import get_campaign_service, get_catalog_service


router = APIRouter(prefix="/campaigns", tags=["campaigns"])

Platform = Literal["glovo", "ubereats", "justeat", "google_ads"]
CAMPAIGN_STATUSES = ("scheduled", "active", "completed", "cancelled")


class CampaignCreate(BaseModel):
    restaurant_id: str
    platform: Platform
    campaign_type: str = Field(..., min_length=1)
    start_date: date
    end_date: date
    name: Optional[str] = None
    config: Dict[str, Any] = Field(default_factory=dict)
    product_ids: List[str] = Field(default_factory=list)


class CampaignUpdate(BaseModel):
    name: Optional[str] = None
    campaign_type: Optional[str] = None
    start_date: Optional[date] = None
    end_date: Optional[date] = None
    config: Optional[Dict[str, Any]] = None
    product_ids: Optional[List[str]] = None
    metrics: Optional[Dict[str, Any]] = None


def _parse_statuses(value: Optional[str]) -> Optional[List[str]]:
    statuses = parse_csv(value)
    if statuses:
        unknown = [s for s in statuses if s not in CAMPAIGN_STATUSES]
        if unknown:
            raise HTTPException(status_code=400, detail=f"Estados desconocidos: {', '.join(unknown)}")
    return statuses


# -----------------------------------------------------------------------------
# Alcance por restaurante
# -----------------------------------------------------------------------------

@dataclass
class RestaurantScope:
    """Restaurantes visibles para el usuario; ``allowed=None`` para un admin."""

    allowed: Optional[Set[str]]

    def check(self, restaurant_id: str) -> None:
        if self.allowed is not None and str(restaurant_id) not in self.allowed:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail="Restaurante fuera del alcance del usuario.",
            )

    def restrict(self, requested: Optional[List[str]]) -> Optional[List[str]]:
        """Los pedidos explícitos se validan; sin selección se limita a lo permitido."""
        if requested:
            for restaurant_id in requested:
                self.check(restaurant_id)
            return requested
        if self.allowed is None:
            return None
        return sorted(self.allowed)


def get_restaurant_scope(
    claims: AccessClaims = Depends(require_roles(*ALL_ROLES)),
    catalog: CatalogService = Depends(get_catalog_service),
) -> RestaurantScope:
    if claims.is_admin:
        return RestaurantScope(allowed=None)
    allowed: Set[str] = set()
    for restaurant in catalog.get_restaurants(company_scope(claims, None)):
        allowed.add(str(restaurant.id))
        allowed.update(str(i) for i in restaurant.all_ids)
    return RestaurantScope(allowed=allowed)


def _scoped_campaign(service: CampaignService, scope: RestaurantScope, campaign_id: str) -> PromotionalCampaign:
    campaign = service.get(campaign_id)
    scope.check(campaign.restaurant_id)
    return campaign


# -----------------------------------------------------------------------------
# Endpoints
# -----------------------------------------------------------------------------

@router.get("")
def list_campaigns(
    restaurants: Optional[str] = Query(None),
    platforms: Optional[str] = Query(None),
    statuses: Optional[str] = Query(None, alias="status"),
    start: Optional[date] = Query(None),
    end: Optional[date] = Query(None),
    scope: RestaurantScope = Depends(get_restaurant_scope),
    service: CampaignService = Depends(get_campaign_service),
):
    status_filter = _parse_statuses(statuses)
    restaurant_ids = scope.restrict(parse_csv(restaurants))
    if restaurant_ids == []:
        return []
    campaigns = service.list_campaigns(
        restaurant_ids=restaurant_ids,
        platforms=parse_csv(platforms),
        statuses=status_filter,
        start_date=start.isoformat() if start else None,
        end_date=end.isoformat() if end else None,
    )
    return [asdict(c) for c in campaigns]


@router.get("/calendar/{year}/{month}")
def month_calendar(
    year: int,
    month: int,
    restaurants: Optional[str] = Query(None),
    scope: RestaurantScope = Depends(get_restaurant_scope),
    service: CampaignService = Depends(get_campaign_service),
):
    if not 1 <= month <= 12:
        raise HTTPException(status_code=400, detail="Mes fuera de rango (1-12).")
    restaurant_ids = scope.restrict(parse_csv(restaurants))
    if restaurant_ids == []:
        return []
    return [asdict(c) for c in service.list_for_month(year, month, restaurant_ids)]


@router.get("/restaurant/{restaurant_id}")
def restaurant_campaigns(
    restaurant_id: str,
    scope: RestaurantScope = Depends(get_restaurant_scope),
    service: CampaignService = Depends(get_campaign_service),
):
    scope.check(restaurant_id)
    return [asdict(c) for c in service.list_for_restaurant(restaurant_id)]


@router.get("/{campaign_id}")
def get_campaign(
    campaign_id: str,
    scope: RestaurantScope = Depends(get_restaurant_scope),
    service: CampaignService = Depends(get_campaign_service),
):
    return asdict(_scoped_campaign(service, scope, campaign_id))


@router.post("", status_code=status.HTTP_201_CREATED)
def create_campaign(
    payload: CampaignCreate,
    claims: AccessClaims = Depends(require_roles(*ALL_ROLES)),
    scope: RestaurantScope = Depends(get_restaurant_scope),
    service: CampaignService = Depends(get_campaign_service),
):
    scope.check(payload.restaurant_id)
    data = payload.model_dump()
    data["created_by"] = claims.sub
    return asdict(service.create(data))


@router.patch("/{campaign_id}")
def update_campaign(
    campaign_id: str,
    payload: CampaignUpdate,
    claims: AccessClaims = Depends(require_roles(*ALL_ROLES)),
    scope: RestaurantScope = Depends(get_restaurant_scope),
    service: CampaignService = Depends(get_campaign_service),
):
    _scoped_campaign(service, scope, campaign_id)
    data = payload.model_dump(exclude_unset=True)
    for key in ("start_date", "end_date"):
        if data.get(key) is not None:
            data[key] = data[key].isoformat()
    data["updated_by"] = claims.sub
    return asdict(service.update(campaign_id, data))


@router.post("/{campaign_id}/cancel")
def cancel_campaign(
    campaign_id: str,
    scope: RestaurantScope = Depends(get_restaurant_scope),
    service: CampaignService = Depends(get_campaign_service),
):
    _scoped_campaign(service, scope, campaign_id)
    return asdict(service.cancel(campaign_id))


@router.delete("/{campaign_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_campaign(
    campaign_id: str,
    _: AccessClaims = Depends(require_roles(ROLE_MANAGER, ROLE_ADMIN)),
    scope: RestaurantScope = Depends(get_restaurant_scope),
    service: CampaignService = Depends(get_campaign_service),
):
    _scoped_campaign(service, scope, campaign_id)
    service.delete(campaign_id)
