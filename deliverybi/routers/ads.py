"""Advertising performance: scorecards, daily series, hours and heatmap."""

from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, Query, Request
from fastapi.responses import Response

from deliverybi.core.cache import etag_json
from deliverybi.core.security import ALL_ROLES, AccessClaims, require_roles
from deliverybi.domain.filters import DataFilters
from deliverybi.routers.params import build_filters
from deliverybi.services.ads_service import AdsService
from deliverybi.services.dependencies import get_ads_service


router = APIRouter(prefix="/ads", tags=["ads"])


def ads_filters(
    start: Optional[str] = Query(None),
    end: Optional[str] = Query(None),
    preset: Optional[str] = Query(None),
    companies: Optional[str] = Query(None),
    brands: Optional[str] = Query(None),
    restaurants: Optional[str] = Query(None),
    channels: Optional[str] = Query(None),
    claims: AccessClaims = Depends(require_roles(*ALL_ROLES)),
) -> DataFilters:
    return build_filters(
        claims,
        start=start,
        end=end,
        preset=preset,
        companies=companies,
        brands=brands,
        restaurants=restaurants,
        channels=channels,
    )


@router.get("/overview")
def ads_overview(
    request: Request,
    filters: DataFilters = Depends(ads_filters),
    service: AdsService = Depends(get_ads_service),
) -> Response:
    """Scorecards (Impresiones, Clicks, Pedidos Ads, Inversión, ROAS, CTR, CPC, CAC) y serie diaria."""
    return etag_json(request, service.get_overview(filters))


@router.get("/hourly")
def ads_hourly(
    filters: DataFilters = Depends(ads_filters),
    service: AdsService = Depends(get_ads_service),
):
    return service.get_hourly(filters)


@router.get("/heatmap")
def ads_heatmap(
    request: Request,
    filters: DataFilters = Depends(ads_filters),
    service: AdsService = Depends(get_ads_service),
) -> Response:
    return etag_json(request, service.get_heatmap(filters))
