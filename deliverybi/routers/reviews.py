"""Reputation endpoints: review aggregates, comparison, heatmap and raw list."""

from __future__ import annotations

from dataclasses import asdict
from typing import Optional

from fastapi import APIRouter, Depends, Query, Request
from fastapi.responses import Response

from deliverybi.core.cache import etag_json
from deliverybi.core.security import ALL_ROLES, AccessClaims, require_roles
from deliverybi.routers.params import build_filters
from deliverybi.services.dependencies import get_reviews_service
from deliverybi.services.reviews_service import ReviewsService


router = APIRouter(prefix="/reviews", tags=["reviews"])


def _filters(
    claims: AccessClaims = Depends(require_roles(*ALL_ROLES)),
    start: Optional[str] = Query(None, description="Inicio del periodo (YYYY-MM-DD)"),
    end: Optional[str] = Query(None, description="Fin del periodo (YYYY-MM-DD)"),
    preset: Optional[str] = Query(None),
    companies: Optional[str] = Query(None),
    brands: Optional[str] = Query(None),
    restaurants: Optional[str] = Query(None),
    channels: Optional[str] = Query(None),
):
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


@router.get("/summary")
def reviews_summary(
    request: Request,
    filters=Depends(_filters),
    service: ReviewsService = Depends(get_reviews_service),
) -> Response:
    return etag_json(request, asdict(service.get_aggregation(filters)))


@router.get("/comparison")
def reviews_comparison(
    request: Request,
    filters=Depends(_filters),
    service: ReviewsService = Depends(get_reviews_service),
) -> Response:
    """Periodo actual frente al anterior con las variaciones en %."""
    return etag_json(request, service.get_comparison(filters))


@router.get("/heatmap")
def reviews_heatmap(
    request: Request,
    filters=Depends(_filters),
    service: ReviewsService = Depends(get_reviews_service),
) -> Response:
    return etag_json(request, {"cells": service.get_heatmap(filters)})


@router.get("")
def list_reviews(
    request: Request,
    limit: int = Query(200, ge=1, le=1000),
    filters=Depends(_filters),
    service: ReviewsService = Depends(get_reviews_service),
) -> Response:
    return etag_json(request, {"reviews": service.get_reviews(filters, limit)})
