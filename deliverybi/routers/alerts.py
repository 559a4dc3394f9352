"""Consultant alert preferences, urgency preview and the daily cron trigger."""

from __future__ import annotations

from dataclasses import asdict
from typing import List, Literal, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from deliverybi.core.security import (
    ALL_ROLES,
    ROLE_ADMIN,
    ROLE_MANAGER,
    AccessClaims,
    require_cron_secret,
    require_roles,
)
from deliverybi.routers.params import company_scope
from deliverybi.services.alert_preferences_service import AlertPreferencesService
from deliverybi.services.alert_preview import FREQUENCY_OPTIONS, Thresholds, get_next_send_label, severity_dict
from deliverybi.services.catalog_service import CatalogService
from deliverybi.services.daily_alerts import DailyAlertsService
from deliverybi.services.dependencies import (
    get_alert_preferences_service,
    get_catalog_service,
    get_daily_alerts_service,
)


router = APIRouter(prefix="/alerts", tags=["alerts"])

Frequency = Literal["weekdays", "daily", "weekly"]


# -----------------------------------------------------------------------------
# Models (entrada)
# -----------------------------------------------------------------------------

class PreferenceIn(BaseModel):
    consultant_id: str
    company_id: str
    orders_enabled: Optional[bool] = None
    reviews_enabled: Optional[bool] = None
    ads_enabled: Optional[bool] = None
    promos_enabled: Optional[bool] = None
    slack_enabled: Optional[bool] = None
    email_enabled: Optional[bool] = None
    orders_threshold: Optional[float] = None
    reviews_threshold: Optional[float] = None
    ads_roas_threshold: Optional[float] = None
    promos_threshold: Optional[float] = None


class ThresholdsIn(BaseModel):
    orders: float = -20
    reviews: float = 3.5
    ads_roas: float = 3.0
    promos: float = 15


class SendTestIn(BaseModel):
    channel: Literal["slack", "email"] = "slack"
    consultant_name: Optional[str] = None


# -----------------------------------------------------------------------------
# Helpers
# -----------------------------------------------------------------------------

def _own_or_manager(claims: AccessClaims, consultant_id: str) -> None:
    roles = {r.lower() for r in claims.roles}
    if consultant_id != claims.sub and roles.isdisjoint({ROLE_MANAGER, ROLE_ADMIN}):
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Permiso denegado.")


# -----------------------------------------------------------------------------
# Preferencias
# -----------------------------------------------------------------------------

@router.get("/preferences")
def list_preferences(
    consultant_id: Optional[str] = Query(None),
    company_id: Optional[str] = Query(None),
    claims: AccessClaims = Depends(require_roles(*ALL_ROLES)),
    service: AlertPreferencesService = Depends(get_alert_preferences_service),
):
    if company_id:
        company_scope(claims, company_id)
        return [asdict(p) for p in service.list_by_company(company_id)]
    consultant = consultant_id or claims.sub
    _own_or_manager(claims, consultant)
    return [asdict(p) for p in service.list_by_consultant(consultant)]


@router.put("/preferences")
def upsert_preference(
    payload: PreferenceIn,
    claims: AccessClaims = Depends(require_roles(*ALL_ROLES)),
    service: AlertPreferencesService = Depends(get_alert_preferences_service),
):
    _own_or_manager(claims, payload.consultant_id)
    company_scope(claims, payload.company_id)
    return asdict(service.upsert(payload.model_dump()))


@router.put("/preferences/bulk")
def bulk_upsert_preferences(
    payload: List[PreferenceIn],
    claims: AccessClaims = Depends(require_roles(*ALL_ROLES)),
    service: AlertPreferencesService = Depends(get_alert_preferences_service),
):
    for item in payload:
        _own_or_manager(claims, item.consultant_id)
        company_scope(claims, item.company_id)
    return [asdict(p) for p in service.bulk_upsert(item.model_dump() for item in payload)]


@router.delete("/preferences/{preference_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_preference(
    preference_id: str,
    _: AccessClaims = Depends(require_roles(ROLE_MANAGER, ROLE_ADMIN)),
    service: AlertPreferencesService = Depends(get_alert_preferences_service),
):
    if not service.delete(preference_id):
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Preferencia no encontrada.")


# -----------------------------------------------------------------------------
# Vista previa
# -----------------------------------------------------------------------------

@router.get("/frequencies")
def frequency_options(_: AccessClaims = Depends(require_roles(*ALL_ROLES))):
    return FREQUENCY_OPTIONS


@router.post("/preview")
def alert_preview(
    thresholds: ThresholdsIn = ThresholdsIn(),
    frequency: Frequency = Query("weekdays"),
    consultant_id: Optional[str] = Query(None),
    claims: AccessClaims = Depends(require_roles(*ALL_ROLES)),
    service: AlertPreferencesService = Depends(get_alert_preferences_service),
    catalog: CatalogService = Depends(get_catalog_service),
):
    """Puntuación de urgencia por empresa con los umbrales indicados."""
    consultant = consultant_id or claims.sub
    _own_or_manager(claims, consultant)
    companies = catalog.get_companies(company_scope(claims, None))

    preview = service.build_preview(consultant, companies, Thresholds(**thresholds.model_dump()))
    return {
        "date_label": preview.date_label,
        "next_send": get_next_send_label(frequency),
        "monitored_count": preview.monitored_count,
        "alerts": [
            {
                "company_id": a.company_id,
                "name": a.name,
                "score": a.score,
                "severity": severity_dict(a.severity),
                "deviations": [asdict(d) for d in a.deviations],
            }
            for a in preview.alerts
        ],
    }


# -----------------------------------------------------------------------------
# Cron
# -----------------------------------------------------------------------------

@router.post("/daily", dependencies=[Depends(require_cron_secret)])
async def run_daily_alerts(service: DailyAlertsService = Depends(get_daily_alerts_service)) -> JSONResponse:
    status_code, body = await service.run()
    return JSONResponse(status_code=status_code, content=body)


@router.api_route("/test", methods=["GET", "POST"], dependencies=[Depends(require_cron_secret)])
def dry_run_daily_alerts(service: DailyAlertsService = Depends(get_daily_alerts_service)):
    """Ejecución en seco del cron: anomalías en bruto y agrupadas, sin enviar nada."""
    return service.dry_run()


@router.post("/send-test")
async def send_test_alert(
    payload: SendTestIn = SendTestIn(),
    _: AccessClaims = Depends(require_roles(*ALL_ROLES)),
    service: DailyAlertsService = Depends(get_daily_alerts_service),
) -> JSONResponse:
    status_code, body = await service.send_test(payload.consultant_name, payload.channel)
    return JSONResponse(status_code=status_code, content=body)
