"""
Vista previa de alertas: puntuación de urgencia determinista por empresa,
severidad y etiquetas de fecha para el resumen diario.

Los valores "actuales" salen de un generador con semilla (hash del nombre de
la empresa), así la vista previa es estable entre peticiones sin tocar datos reales.
"""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta, timezone
from typing import Dict, List, Literal, Optional, Union

AlertFrequency = Literal["weekdays", "daily", "weekly"]
AlertChannel = Literal["slack", "email"]

ALERT_CHANNELS: tuple[str, ...] = ("slack", "email")

FREQUENCY_OPTIONS = [
    {"value": "weekdays", "label": "Diaria (L-V)"},
    {"value": "daily", "label": "Diaria (7 dias)"},
    {"value": "weekly", "label": "Semanal (lunes)"},
]

# Python weekday(): lunes = 0
_DAYS_LONG = ["lunes", "martes", "miercoles", "jueves", "viernes", "sabado", "domingo"]
_DAYS_SHORT = ["lun", "mar", "mie", "jue", "vie", "sab", "dom"]
_MONTHS = ["ene", "feb", "mar", "abr", "may", "jun", "jul", "ago", "sep", "oct", "nov", "dic"]


@dataclass(frozen=True)
class Thresholds:
    orders: float = -20
    reviews: float = 3.5
    ads_roas: float = 3.0
    promos: float = 15


@dataclass
class Deviation:
    label: str
    value: str
    threshold: str
    deviation: str


@dataclass
class UrgencyResult:
    score: int
    deviations: List[Deviation] = field(default_factory=list)


@dataclass(frozen=True)
class Severity:
    label: str
    color: str


SEVERITY_CRITICAL = Severity("CRITICO", "red")
SEVERITY_URGENT = Severity("URGENTE", "orange")
SEVERITY_ATTENTION = Severity("ATENCION", "amber")


# -----------------------------------------------------------------------------
# 1) Hash y aleatorio con semilla
# -----------------------------------------------------------------------------

def _to_int32(value: int) -> int:
    value &= 0xFFFFFFFF
    return value - 0x100000000 if value & 0x80000000 else value


def hash_string(text: str) -> int:
    """
    djb2 sobre unidades UTF-16 con desbordamiento a 32 bits con signo.

    >>> hash_string("")
    5381
    """
    h = 5381
    data = text.encode("utf-16-le")
    for i in range(0, len(data), 2):
        code = data[i] | (data[i + 1] << 8)
        h = _to_int32((h << 5) + h + code)
    return abs(h)


def seeded_random(seed: int) -> float:
    """Valor en [0, 1) derivado de ``seed``."""
    x = math.sin(seed * 9301 + 49297) * 10000
    return x - math.floor(x)


def _round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def _num(value: float) -> str:
    """Número sin decimales sobrantes: ``-20.0`` -> ``-20``."""
    if float(value).is_integer():
        return str(int(value))
    return str(value)


# -----------------------------------------------------------------------------
# 2) Puntuación de urgencia
# -----------------------------------------------------------------------------

def _pick(override: Optional[float], default: float) -> float:
    return override if override is not None else default


def compute_urgency_score(thresholds: Thresholds, pref, company_name: str) -> UrgencyResult:
    """
    Suma la desviación de cada categoría activa, con tope por categoría.

    ``pref`` es cualquier objeto con los flags ``*_enabled`` y los umbrales
    opcionales de ``AlertPreference``. Un umbral nulo usa el de ``thresholds``.
    """
    total = 0.0
    deviations: List[Deviation] = []

    if pref.orders_enabled:
        th = _pick(pref.orders_threshold, thresholds.orders)
        r = seeded_random(hash_string(company_name + "orders"))
        actual = -(abs(th) + math.floor(r * 20))
        if actual < th:
            total += min(abs(actual - th) * 1.5, 30)
            deviations.append(
                Deviation("Pedidos", f"{_num(actual)}%", f"{_num(th)}%", f"{_num(actual - th)}%")
            )

    if pref.reviews_enabled:
        th = _pick(pref.reviews_threshold, thresholds.reviews)
        r = seeded_random(hash_string(company_name + "reviews"))
        actual = th - (0.3 + r * 0.8)
        if actual < th:
            total += min(abs(actual - th) * 8, 25)
            deviations.append(
                Deviation("Resenas", f"{actual:.1f}", f"{th:.1f}", f"-{th - actual:.1f}")
            )

    if pref.ads_enabled:
        th = _pick(pref.ads_roas_threshold, thresholds.ads_roas)
        r = seeded_random(hash_string(company_name + "adsRoas"))
        actual = th - (0.5 + r * 1.5)
        if actual < th:
            total += min(abs(actual - th) * 10, 25)
            deviations.append(
                Deviation("Ads ROAS", f"{actual:.1f}x", f"{th:.1f}x", f"-{th - actual:.1f}x")
            )

    if pref.promos_enabled:
        th = _pick(pref.promos_threshold, thresholds.promos)
        r = seeded_random(hash_string(company_name + "promos"))
        actual = th + (2 + math.floor(r * 10))
        if actual > th:
            total += min(abs(actual - th) * 2, 20)
            deviations.append(
                Deviation("Promos", f"{_num(actual)}%", f"{_num(th)}%", f"+{_num(actual - th)}%")
            )

    return UrgencyResult(score=_round_half_up(total), deviations=deviations)


def get_severity(score: int) -> Severity:
    if score >= 60:
        return SEVERITY_CRITICAL
    if score >= 30:
        return SEVERITY_URGENT
    return SEVERITY_ATTENTION


# -----------------------------------------------------------------------------
# 3) Etiquetas de fecha
# -----------------------------------------------------------------------------

def get_date_label(now: Optional[datetime] = None) -> str:
    """Ayer como ``"lunes 3 feb"``."""
    yesterday = (now or datetime.now()).date() - timedelta(days=1)
    return f"{_DAYS_LONG[yesterday.weekday()]} {yesterday.day} {_MONTHS[yesterday.month - 1]}"


def get_daily_date_label(now: Optional[datetime] = None) -> str:
    """Ayer con año, para la cabecera del mensaje diario: ``"lunes 3 feb 2026"``."""
    yesterday = (now or datetime.now()).date() - timedelta(days=1)
    return f"{get_date_label(now)} {yesterday.year}"


def get_next_send_label(frequency: str, now: Optional[datetime] = None) -> str:
    """Próximo envío según la frecuencia, p. ej. ``"lun 3 feb · 08:30 CET"``."""
    today: date = (now or datetime.now()).date()
    weekday = today.weekday()

    if frequency == "daily":
        next_date = today + timedelta(days=1)
    elif frequency == "weekdays":
        if weekday == 4:
            next_date = today + timedelta(days=3)
        elif weekday == 5:
            next_date = today + timedelta(days=2)
        else:
            next_date = today + timedelta(days=1)
    else:
        next_date = today + timedelta(days=7 - weekday)

    return f"{_DAYS_SHORT[next_date.weekday()]} {next_date.day} {_MONTHS[next_date.month - 1]} · 08:30 CET"


def get_first_name(full_name: Optional[str]) -> str:
    if not full_name:
        return "Consultor"
    return full_name.split(" ")[0]


def get_relative_time(
    iso_date: Optional[Union[str, datetime]],
    now: Optional[datetime] = None,
) -> Optional[str]:
    if not iso_date:
        return None
    moment = (
        iso_date
        if isinstance(iso_date, datetime)
        else datetime.fromisoformat(str(iso_date).replace("Z", "+00:00"))
    )
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    current = now or datetime.now(timezone.utc)
    if current.tzinfo is None:
        current = current.replace(tzinfo=timezone.utc)

    seconds = math.floor((current - moment).total_seconds())
    if seconds < 10:
        return "ahora"
    if seconds < 60:
        return f"hace {seconds}s"
    minutes = seconds // 60
    if minutes < 60:
        return f"hace {minutes} min"
    return f"hace {minutes // 60}h"


def severity_dict(severity: Severity) -> Dict[str, str]:
    return {"label": severity.label, "color": severity.color}
