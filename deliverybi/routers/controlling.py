"""Controlling dashboard endpoints."""

from __future__ import annotations

from typing import Literal, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Request
from fastapi.responses import Response

from deliverybi.core.cache import etag_json
from deliverybi.core.security import ALL_ROLES, AccessClaims, require_roles
from deliverybi.routers.params import build_filters, company_scope, parse_csv
from deliverybi.services.ads_service import AdsService
from deliverybi.services.controlling_service import ControllingService
from deliverybi.services.dependencies import get_ads_service, get_controlling_service
from deliverybi.services.hierarchy import RowRef, parse_row_id
from deliverybi.services.hierarchy_table import SortState, toggle_sort, with_depth


router = APIRouter(prefix="/controlling", tags=["controlling"])


@router.get("")
def controlling_dashboard(
    request: Request,
    start: Optional[str] = Query(None, description="Inicio del periodo (YYYY-MM-DD)"),
    end: Optional[str] = Query(None, description="Fin del periodo (YYYY-MM-DD)"),
    preset: Optional[str] = Query(None, description="Preset de fechas si no hay start/end"),
    companies: Optional[str] = Query(None, description="Ids de empresa separados por coma"),
    brands: Optional[str] = Query(None),
    restaurants: Optional[str] = Query(None),
    channels: Optional[str] = Query(None, description="glovo,ubereats,justeat"),
    compare: Literal["previous", "year"] = Query("previous"),
    sparklines: bool = Query(True, description="Incluir las series semanales"),
    claims: AccessClaims = Depends(require_roles(*ALL_ROLES)),
    service: ControllingService = Depends(get_controlling_service),
) -> Response:
    """
    Jerarquía empresa → marca → dirección → canal, cartera, tarjetas por canal
    y sparklines semanales. La respuesta lleva ETag.
    """
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
    dashboard = service.get_dashboard(
        filters.company_ids or [],
        filters.start_date,
        filters.end_date,
        brand_ids=filters.brand_ids,
        address_ids=filters.address_ids,
        channel_ids=filters.channel_ids,
        compare=compare,
        include_sparklines=sparklines,
    )
    payload = dashboard.to_dict()
    payload["period"] = {"start": filters.start_date.isoformat(), "end": filters.end_date.isoformat()}
    return etag_json(request, payload)


@router.get("/table")
def controlling_table(
    request: Request,
    start: Optional[str] = Query(None),
    end: Optional[str] = Query(None),
    preset: Optional[str] = Query(None),
    companies: Optional[str] = Query(None),
    expanded: Optional[str] = Query(None, description="Ids de fila expandidos separados por coma"),
    sort: Optional[str] = Query(None, description="Columna de orden (p. ej. ventas, ticketMedio)"),
    direction: Optional[Literal["asc", "desc"]] = Query(None),
    compare: Literal["previous", "year"] = Query("previous"),
    claims: AccessClaims = Depends(require_roles(*ALL_ROLES)),
    service: ControllingService = Depends(get_controlling_service),
) -> Response:
    """Filas visibles de la tabla según el estado de expansión y orden."""
    filters = build_filters(
        claims,
        start=start,
        end=end,
        preset=preset,
        companies=companies,
        brands=None,
        restaurants=None,
        channels=None,
    )
    try:
        rows = service.get_table(
            filters.company_ids or [],
            filters.start_date,
            filters.end_date,
            expanded=set(parse_csv(expanded) or []),
            sort_column=sort,
            sort_direction=direction if sort else None,
            compare=compare,
        )
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    return etag_json(request, {"rows": [with_depth(r) for r in rows]})


@router.get("/sort/next")
def next_sort_state(
    column: str = Query(..., description="Columna pulsada"),
    current_column: Optional[str] = Query(None),
    current_direction: Optional[Literal["asc", "desc"]] = Query(None),
    _: AccessClaims = Depends(require_roles(*ALL_ROLES)),
):
    """Siguiente estado de orden al pulsar ``column``."""
    try:
        state = toggle_sort(SortState(current_column, current_direction), column)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    return {"column": state.column, "direction": state.direction}


def detail_row(
    row_id: str,
    claims: AccessClaims = Depends(require_roles(*ALL_ROLES)),
) -> RowRef:
    """Fila de la jerarquía dentro del alcance del usuario."""
    try:
        ref = parse_row_id(row_id)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    company_scope(claims, ref.company_id)
    return ref


@router.get("/detail/{row_id}/segments")
def detail_segments(
    ref: RowRef = Depends(detail_row),
    service: ControllingService = Depends(get_controlling_service),
):
    """Clientes nuevos, ocasionales y frecuentes de la fila en las últimas semanas."""
    return {"row_id": ref.row_id, "weeks": service.get_detail_segments(ref)}


@router.get("/detail/{row_id}/ads-heatmap")
def detail_ads_heatmap(
    ref: RowRef = Depends(detail_row),
    service: AdsService = Depends(get_ads_service),
):
    payload = service.get_row_heatmap(ref)
    payload["row_id"] = ref.row_id
    return payload
