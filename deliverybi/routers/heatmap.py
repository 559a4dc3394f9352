"""Hour × weekday sales heatmap."""

from __future__ import annotations

from typing import Literal, Optional

from fastapi import APIRouter, Depends, Query, Request
from fastapi.responses import Response

from deliverybi.core.cache import etag_json
from deliverybi.core.security import ALL_ROLES, AccessClaims, require_roles
from deliverybi.routers.params import build_filters
from deliverybi.services.dependencies import get_heatmap_service
from deliverybi.services.heatmap import HeatmapService


router = APIRouter(prefix="/heatmap", tags=["heatmap"])


@router.get("")
def sales_heatmap(
    request: Request,
    metric: Literal["revenue", "orders", "avgTicket"] = Query("revenue"),
    start: Optional[str] = Query(None),
    end: Optional[str] = Query(None),
    preset: Optional[str] = Query(None),
    companies: Optional[str] = Query(None),
    brands: Optional[str] = Query(None),
    restaurants: Optional[str] = Query(None),
    channels: Optional[str] = Query(None),
    claims: AccessClaims = Depends(require_roles(*ALL_ROLES)),
    service: HeatmapService = Depends(get_heatmap_service),
) -> Response:
    filters = build_filters(
        claims,
        start=start,
        end=end,
        preset=preset,
        companies=companies,
        brands=brands,
        restaurants=restaurants,
        channels=channels,
    )
    return etag_json(request, service.get_heatmap(filters, metric))
