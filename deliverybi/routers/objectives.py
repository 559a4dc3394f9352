"""Strategic objectives (OKR) endpoints and their share-link management."""

from __future__ import annotations

from dataclasses import asdict
from datetime import date, datetime
from typing import Any, Dict, List, Literal, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status
from pydantic import BaseModel, EmailStr, Field

from deliverybi.core.security import ALL_ROLES, ROLE_ADMIN, ROLE_MANAGER, AccessClaims, require_roles
from deliverybi.domain.models import ObjectiveShareLink, StrategicObjective
from deliverybi.routers.params import company_scope, parse_csv
from deliverybi.services.dependencies import get_objective_service
from deliverybi.services.objectives import ObjectiveService, get_share_link_url


router = APIRouter(prefix="/objectives", tags=["objectives"])

Category = Literal["finanzas", "operaciones", "clientes", "marca", "reputacion", "proveedores", "menu"]
Horizon = Literal["short", "medium", "long"]
Status = Literal["pending", "in_progress", "completed"]
Priority = Literal["low", "medium", "high", "critical"]
Direction = Literal["increase", "decrease", "maintain"]


# -----------------------------------------------------------------------------
# Request Models
# -----------------------------------------------------------------------------


class ObjectiveCreate(BaseModel):
    company_id: str
    title: str = Field(..., min_length=1)
    category: Category
    objective_type_id: str
    horizon: Horizon = "short"
    status: Status = "pending"
    responsible: Optional[str] = None
    brand_id: Optional[str] = None
    address_id: Optional[str] = None
    description: Optional[str] = None
    kpi_type: Optional[str] = None
    kpi_current_value: Optional[float] = None
    kpi_target_value: Optional[float] = None
    kpi_unit: Optional[str] = None
    baseline_value: Optional[float] = None
    baseline_date: Optional[date] = None
    target_direction: Direction = "increase"
    priority: Priority = "medium"
    field_data: Optional[Dict[str, Any]] = None
    evaluation_date: Optional[date] = None
    display_order: int = 0


class ObjectiveUpdate(BaseModel):
    title: Optional[str] = None
    category: Optional[Category] = None
    horizon: Optional[Horizon] = None
    status: Optional[Status] = None
    responsible: Optional[str] = None
    description: Optional[str] = None
    kpi_type: Optional[str] = None
    kpi_current_value: Optional[float] = None
    kpi_target_value: Optional[float] = None
    kpi_unit: Optional[str] = None
    baseline_value: Optional[float] = None
    baseline_date: Optional[date] = None
    target_direction: Optional[Direction] = None
    priority: Optional[Priority] = None
    is_archived: Optional[bool] = None
    field_data: Optional[Dict[str, Any]] = None
    evaluation_date: Optional[date] = None


class OrderItem(BaseModel):
    id: str
    display_order: int


class ShareLinkCreate(BaseModel):
    expires_at: Optional[datetime] = None
    allowed_emails: List[EmailStr] = Field(default_factory=list)


class ShareLinkUpdate(BaseModel):
    is_active: Optional[bool] = None
    expires_at: Optional[datetime] = None
    allowed_emails: Optional[List[EmailStr]] = None


# -----------------------------------------------------------------------------
# Helpers
# -----------------------------------------------------------------------------


def _check_scope(claims: AccessClaims, company_id: str) -> None:
    if not claims.is_admin and str(company_id) not in {str(c) for c in claims.companies}:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Empresa fuera del alcance del usuario.")


def _objective_out(objective: StrategicObjective) -> dict:
    return asdict(objective)


def _link_out(link: ObjectiveShareLink) -> dict:
    data = asdict(link)
    data["url"] = get_share_link_url(link.token)
    return data


# -----------------------------------------------------------------------------
# Objetivos
# -----------------------------------------------------------------------------


@router.get("")
def list_objectives(
    companies: Optional[str] = Query(None),
    brands: Optional[str] = Query(None),
    restaurants: Optional[str] = Query(None),
    horizon: Optional[Horizon] = Query(None),
    status_filter: Optional[Status] = Query(None, alias="status"),
    claims: AccessClaims = Depends(require_roles(*ALL_ROLES)),
    service: ObjectiveService = Depends(get_objective_service),
):
    objectives = service.list_objectives(
        company_scope(claims, companies),
        parse_csv(brands),
        parse_csv(restaurants),
        horizon,
        status_filter,
    )
    return [_objective_out(o) for o in objectives]


@router.post("", status_code=status.HTTP_201_CREATED)
def create_objective(
    payload: ObjectiveCreate,
    claims: AccessClaims = Depends(require_roles(*ALL_ROLES)),
    service: ObjectiveService = Depends(get_objective_service),
):
    _check_scope(claims, payload.company_id)
    data = payload.model_dump()
    data["created_by"] = claims.sub
    return _objective_out(service.create(data))


@router.put("/order", status_code=status.HTTP_204_NO_CONTENT)
def reorder_objectives(
    items: List[OrderItem],
    claims: AccessClaims = Depends(require_roles(*ALL_ROLES)),
    service: ObjectiveService = Depends(get_objective_service),
):
    for item in items:
        _check_scope(claims, service.get(item.id).company_id)
    service.reorder([(item.id, item.display_order) for item in items])


@router.get("/{objective_id}")
def get_objective(
    objective_id: str,
    claims: AccessClaims = Depends(require_roles(*ALL_ROLES)),
    service: ObjectiveService = Depends(get_objective_service),
):
    objective = service.get(objective_id)
    _check_scope(claims, objective.company_id)
    return _objective_out(objective)


@router.get("/{objective_id}/progress")
def get_objective_progress(
    objective_id: str,
    claims: AccessClaims = Depends(require_roles(*ALL_ROLES)),
    service: ObjectiveService = Depends(get_objective_service),
):
    _check_scope(claims, service.get(objective_id).company_id)
    return asdict(service.get_progress(objective_id))


@router.patch("/{objective_id}")
def update_objective(
    objective_id: str,
    payload: ObjectiveUpdate,
    claims: AccessClaims = Depends(require_roles(*ALL_ROLES)),
    service: ObjectiveService = Depends(get_objective_service),
):
    _check_scope(claims, service.get(objective_id).company_id)
    data = payload.model_dump(exclude_unset=True)
    data["updated_by"] = claims.sub
    return _objective_out(service.update(objective_id, data))


@router.delete("/{objective_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_objective(
    objective_id: str,
    claims: AccessClaims = Depends(require_roles(ROLE_MANAGER, ROLE_ADMIN)),
    service: ObjectiveService = Depends(get_objective_service),
):
    _check_scope(claims, service.get(objective_id).company_id)
    service.delete(objective_id)


# -----------------------------------------------------------------------------
# Enlaces compartidos
# -----------------------------------------------------------------------------


@router.get("/{objective_id}/share")
def get_share_link(
    objective_id: str,
    claims: AccessClaims = Depends(require_roles(*ALL_ROLES)),
    service: ObjectiveService = Depends(get_objective_service),
):
    _check_scope(claims, service.get(objective_id).company_id)
    link = service.get_share_link(objective_id)
    if link is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Enlace no encontrado.")
    return _link_out(link)


@router.post("/{objective_id}/share", status_code=status.HTTP_201_CREATED)
def create_share_link(
    objective_id: str,
    payload: ShareLinkCreate,
    claims: AccessClaims = Depends(require_roles(*ALL_ROLES)),
    service: ObjectiveService = Depends(get_objective_service),
):
    _check_scope(claims, service.get(objective_id).company_id)
    link = service.create_share_link(objective_id, payload.expires_at, [str(e) for e in payload.allowed_emails])
    return _link_out(link)


@router.patch("/{objective_id}/share")
def update_share_link(
    objective_id: str,
    payload: ShareLinkUpdate,
    claims: AccessClaims = Depends(require_roles(*ALL_ROLES)),
    service: ObjectiveService = Depends(get_objective_service),
):
    _check_scope(claims, service.get(objective_id).company_id)
    link = service.get_share_link(objective_id)
    if link is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Enlace no encontrado.")
    data = payload.model_dump(exclude_unset=True)
    if data.get("allowed_emails") is not None:
        data["allowed_emails"] = [str(e) for e in data["allowed_emails"]]
    return _link_out(service.update_share_link(link.id, data))


@router.post("/{objective_id}/share/regenerate")
def regenerate_share_link(
    objective_id: str,
    claims: AccessClaims = Depends(require_roles(*ALL_ROLES)),
    service: ObjectiveService = Depends(get_objective_service),
):
    _check_scope(claims, service.get(objective_id).company_id)
    return _link_out(service.regenerate_share_link(objective_id))


@router.delete("/{objective_id}/share", status_code=status.HTTP_204_NO_CONTENT)
def delete_share_link(
    objective_id: str,
    claims: AccessClaims = Depends(require_roles(*ALL_ROLES)),
    service: ObjectiveService = Depends(get_objective_service),
):
    _check_scope(claims, service.get(objective_id).company_id)
    link = service.get_share_link(objective_id)
    if link is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Enlace no encontrado.")
    service.delete_share_link(link.id)
