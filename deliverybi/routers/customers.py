"""Customer base analytics: metrics, channels, cohorts, churn and spend."""

from __future__ import annotations

from typing import Literal, Optional

from fastapi import APIRouter, Depends, Query

from deliverybi.core.security import ALL_ROLES, AccessClaims, require_roles
from deliverybi.domain.filters import DataFilters
from deliverybi.routers.params import build_filters
from deliverybi.services.customers_service import DEFAULT_CHURN_LIMIT, CustomerService
from deliverybi.services.dependencies import get_customer_service


router = APIRouter(prefix="/customers", tags=["customers"])


def customer_filters(
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


@router.get("/metrics")
def customer_metrics(
    filters: DataFilters = Depends(customer_filters),
    service: CustomerService = Depends(get_customer_service),
):
    """Métricas del periodo, del periodo anterior y variación porcentual."""
    return service.get_metrics(filters)


@router.get("/by-channel")
def customers_by_channel(
    filters: DataFilters = Depends(customer_filters),
    service: CustomerService = Depends(get_customer_service),
):
    return service.get_by_channel(filters)


@router.get("/cohorts")
def customer_cohorts(
    granularity: Literal["week", "month"] = Query("month"),
    filters: DataFilters = Depends(customer_filters),
    service: CustomerService = Depends(get_customer_service),
):
    return service.get_cohorts(filters, granularity)


@router.get("/churn-risk")
def customer_churn_risk(
    limit: int = Query(DEFAULT_CHURN_LIMIT, ge=1, le=200),
    filters: DataFilters = Depends(customer_filters),
    service: CustomerService = Depends(get_customer_service),
):
    return service.get_churn_risk(filters, limit=limit)


@router.get("/spend-distribution")
def customer_spend_distribution(
    filters: DataFilters = Depends(customer_filters),
    service: CustomerService = Depends(get_customer_service),
):
    return service.get_spend_distribution(filters)


@router.get("/multi-platform")
def customer_multi_platform(
    filters: DataFilters = Depends(customer_filters),
    service: CustomerService = Depends(get_customer_service),
):
    return service.get_multi_platform(filters)


@router.get("/post-promo-health")
def customer_post_promo_health(
    filters: DataFilters = Depends(customer_filters),
    service: CustomerService = Depends(get_customer_service),
):
    return service.get_post_promo_health(filters)


@router.get("/base-trend")
def customer_base_trend(
    filters: DataFilters = Depends(customer_filters),
    service: CustomerService = Depends(get_customer_service),
):
    """Últimas 8 semanas completas; las fechas del filtro no se usan."""
    return service.get_base_trend(filters)
