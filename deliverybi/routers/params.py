"""Query-string helpers shared by the routers."""

from __future__ import annotations

from datetime import date
from typing import List, Optional

from fastapi import HTTPException

from deliverybi.core.security import AccessClaims, resolve_company_scope
from deliverybi.domain.channels import ALL_CHANNELS
from deliverybi.domain.dates import PRESET_LABELS, DateRange, get_date_range_from_preset
from deliverybi.domain.filters import DataFilters


def parse_csv(value: Optional[str]) -> Optional[List[str]]:
    """``"1, 2,,3"`` -> ``["1", "2", "3"]``; vacío -> ``None``."""
    if not value:
        return None
    items = [v.strip() for v in value.split(",") if v.strip()]
    return items or None


def parse_channels(value: Optional[str]) -> Optional[List[str]]:
    channels = parse_csv(value)
    if channels is None:
        return None
    unknown = [c for c in channels if c not in ALL_CHANNELS]
    if unknown:
        raise HTTPException(status_code=400, detail=f"Canales desconocidos: {', '.join(unknown)}")
    return channels


def parse_date(value: str, name: str) -> date:
    try:
        return date.fromisoformat(value[:10])
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=f"Fecha inválida en '{name}': {value}") from exc


def resolve_range(
    start: Optional[str],
    end: Optional[str],
    preset: Optional[str] = None,
    today: Optional[date] = None,
) -> DateRange:
    """Fechas explícitas o, si faltan, las del preset (últimos 7 días por defecto)."""
    if start and end:
        start_day, end_day = parse_date(start, "start"), parse_date(end, "end")
        if start_day > end_day:
            raise HTTPException(status_code=400, detail="'start' debe ser anterior o igual a 'end'.")
        return DateRange(start_day, end_day)
    if start or end:
        raise HTTPException(status_code=400, detail="Indica 'start' y 'end' o un preset.")
    if preset is not None and preset not in PRESET_LABELS:
        raise HTTPException(status_code=400, detail=f"Preset desconocido: {preset}")
    return get_date_range_from_preset(preset or "last_7_days", today)


def company_scope(claims: AccessClaims, companies: Optional[str]) -> Optional[List[str]]:
    """
    Empresas a consultar. ``None`` solo para un admin sin selección (todas).
    Un usuario sin empresas asignadas recibe 403.
    """
    scope = resolve_company_scope(claims, parse_csv(companies))
    if scope:
        return scope
    if claims.is_admin:
        return None
    raise HTTPException(status_code=403, detail="El usuario no tiene empresas asignadas.")


def build_filters(
    claims: AccessClaims,
    *,
    start: Optional[str],
    end: Optional[str],
    preset: Optional[str],
    companies: Optional[str],
    brands: Optional[str],
    restaurants: Optional[str],
    channels: Optional[str],
) -> DataFilters:
    period = resolve_range(start, end, preset)
    return DataFilters(
        start_date=period.start,
        end_date=period.end,
        company_ids=company_scope(claims, companies),
        brand_ids=parse_csv(brands),
        address_ids=parse_csv(restaurants),
        channel_ids=parse_channels(channels),
    )
