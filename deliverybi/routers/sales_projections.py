"""Sales projections per company, brand or address."""

from __future__ import annotations

from dataclasses import asdict
from typing import Any, Dict, List, Literal, Optional

from fastapi import APIRouter, Depends, Query, status
from pydantic import BaseModel, Field

from deliverybi.core.security import ALL_ROLES, AccessClaims, require_roles
from deliverybi.routers.params import company_scope
from deliverybi.services.dependencies import get_sales_projection_service
from deliverybi.services.sales_projections import SalesProjectionService


router = APIRouter(prefix="/sales-projections", tags=["sales-projections"])

Channel = Literal["glovo", "ubereats", "justeat"]


class ProjectionConfig(BaseModel):
    activeChannels: List[Channel] = Field(default_factory=list)
    investmentMode: Literal["global", "per_channel"] = "global"
    maxAdsPercent: float = Field(0, ge=0, le=100)
    maxPromosPercent: float = Field(0, ge=0, le=100)
    startDate: str = ""
    endDate: str = ""


class ProjectionIn(BaseModel):
    company_id: str
    brand_id: Optional[str] = None
    address_id: Optional[str] = None
    config: Optional[ProjectionConfig] = None
    baseline_revenue: Optional[Dict[str, float]] = None
    target_revenue: Optional[Dict[str, Any]] = None
    target_ads: Optional[Dict[str, Any]] = None
    target_promos: Optional[Dict[str, Any]] = None


class TargetsIn(BaseModel):
    target_revenue: Optional[Dict[str, Any]] = None
    target_ads: Optional[Dict[str, Any]] = None
    target_promos: Optional[Dict[str, Any]] = None


@router.get("")
def get_projection(
    company_id: str = Query(...),
    brand_id: Optional[str] = Query(None),
    address_id: Optional[str] = Query(None),
    claims: AccessClaims = Depends(require_roles(*ALL_ROLES)),
    service: SalesProjectionService = Depends(get_sales_projection_service),
):
    """La proyección del ámbito o ``null`` si todavía no existe."""
    company_scope(claims, company_id)
    projection = service.get_by_scope(company_id, brand_id, address_id)
    return asdict(projection) if projection else None


@router.put("")
def save_projection(
    payload: ProjectionIn,
    claims: AccessClaims = Depends(require_roles(*ALL_ROLES)),
    service: SalesProjectionService = Depends(get_sales_projection_service),
):
    company_scope(claims, payload.company_id)
    return asdict(service.upsert(payload.model_dump(exclude_unset=True), claims.sub))


@router.patch("/{projection_id}/targets")
def update_targets(
    projection_id: str,
    payload: TargetsIn,
    claims: AccessClaims = Depends(require_roles(*ALL_ROLES)),
    service: SalesProjectionService = Depends(get_sales_projection_service),
):
    company_scope(claims, service.get(projection_id).company_id)
    return asdict(service.update_targets(projection_id, payload.model_dump(exclude_unset=True), claims.sub))


@router.delete("/{projection_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_projection(
    projection_id: str,
    claims: AccessClaims = Depends(require_roles(*ALL_ROLES)),
    service: SalesProjectionService = Depends(get_sales_projection_service),
):
    company_scope(claims, service.get(projection_id).company_id)
    service.delete(projection_id)
