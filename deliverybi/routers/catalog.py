"""Filter catalog endpoints (companies, brands, areas, restaurants)."""

from __future__ import annotations

from dataclasses import asdict
from typing import Optional

from fastapi import APIRouter, Depends, Query

from deliverybi.core.security import ALL_ROLES, AccessClaims, require_roles
from deliverybi.routers.params import company_scope, parse_csv
from deliverybi.services.catalog_service import CatalogService
from deliverybi.services.dependencies import get_catalog_service


router = APIRouter(prefix="/catalog", tags=["catalog"])


@router.get("/companies")
def list_companies(
    companies: Optional[str] = Query(None, description="Ids de empresa separados por coma"),
    claims: AccessClaims = Depends(require_roles(*ALL_ROLES)),
    service: CatalogService = Depends(get_catalog_service),
):
    scope = company_scope(claims, companies)
    return [asdict(c) for c in service.get_companies(scope)]


@router.get("/brands")
def list_brands(
    companies: Optional[str] = Query(None),
    claims: AccessClaims = Depends(require_roles(*ALL_ROLES)),
    service: CatalogService = Depends(get_catalog_service),
):
    scope = company_scope(claims, companies)
    return [asdict(b) for b in service.get_brands(scope)]


@router.get("/areas")
def list_areas(
    _: AccessClaims = Depends(require_roles(*ALL_ROLES)),
    service: CatalogService = Depends(get_catalog_service),
):
    return [asdict(a) for a in service.get_areas()]


@router.get("/restaurants")
def list_restaurants(
    companies: Optional[str] = Query(None),
    areas: Optional[str] = Query(None, description="Ids de área separados por coma"),
    brands: Optional[str] = Query(None, description="Ids de marca separados por coma"),
    claims: AccessClaims = Depends(require_roles(*ALL_ROLES)),
    service: CatalogService = Depends(get_catalog_service),
):
    scope = company_scope(claims, companies)
    restaurants = service.get_restaurants(scope, parse_csv(areas), parse_csv(brands))
    return [asdict(r) for r in restaurants]


@router.get("/portals")
def list_portals(
    _: AccessClaims = Depends(require_roles(*ALL_ROLES)),
    service: CatalogService = Depends(get_catalog_service),
):
    return [asdict(p) for p in service.get_portals()]
