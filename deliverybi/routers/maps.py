"""Restaurant map: markers, delivery points and legend."""

from __future__ import annotations

from dataclasses import asdict
from typing import Literal, Optional

from fastapi import APIRouter, Depends, Query

from deliverybi.core.security import ALL_ROLES, AccessClaims, require_roles
from deliverybi.routers.params import build_filters, parse_csv
from deliverybi.services.dependencies import get_map_service
from deliverybi.services.maps import MapService, get_legend_items


router = APIRouter(prefix="/maps", tags=["maps"])

MetricParam = Literal["ventas", "pedidos", "rating", "tiempoEspera"]


@router.get("")
def restaurant_map(
    metric: MetricParam = Query("ventas"),
    start: Optional[str] = Query(None),
    end: Optional[str] = Query(None),
    preset: Optional[str] = Query(None),
    companies: Optional[str] = Query(None),
    brands: Optional[str] = Query(None),
    areas: Optional[str] = Query(None),
    restaurants: Optional[str] = Query(None),
    channels: Optional[str] = Query(None),
    points: bool = Query(True, description="Incluir los puntos de entrega"),
    claims: AccessClaims = Depends(require_roles(*ALL_ROLES)),
    service: MapService = Depends(get_map_service),
):
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
    data = service.get_map(filters, metric=metric, area_ids=parse_csv(areas), include_points=points)
    return asdict(data)


@router.get("/legend")
def map_legend(
    metric: MetricParam = Query("ventas"),
    _: AccessClaims = Depends(require_roles(*ALL_ROLES)),
):
    return {"metric": metric, "items": get_legend_items(metric)}
