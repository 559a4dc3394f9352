"""
Utilidades de fechas: periodos de comparación, presets del selector y semanas completas.
Todas las funciones trabajan a granularidad de día y aceptan ``today`` inyectable.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime, timedelta
from typing import Iterable, List, Literal, Optional, Union

DatePreset = Literal[
    "this_week",
    "this_month",
    "last_week",
    "last_month",
    "last_7_days",
    "last_30_days",
    "last_12_weeks",
    "last_12_months",
    "custom",
]

PRESET_LABELS = {
    "this_week": "Esta semana",
    "this_month": "Este mes",
    "last_week": "La semana pasada",
    "last_month": "El mes pasado",
    "last_7_days": "Los últimos 7 días",
    "last_30_days": "Los últimos 30 días",
    "last_12_weeks": "Últimas 12 semanas",
    "last_12_months": "Últimos 12 meses",
    "custom": "Personalizado",
}

MONTH_SHORT = ["Ene", "Feb", "Mar", "Abr", "May", "Jun", "Jul", "Ago", "Sep", "Oct", "Nov", "Dic"]

DateLike = Union[date, datetime, str]


@dataclass(frozen=True)
class DateRange:
    start: date
    end: date


@dataclass(frozen=True)
class WeekRange:
    start: str
    end: str
    label: str


def ensure_date(value: DateLike) -> date:
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    return datetime.fromisoformat(value.replace("Z", "+00:00")).date()


def format_date(value: DateLike) -> str:
    return ensure_date(value).isoformat()


def parse_numeric_ids(ids: Optional[Iterable[object]]) -> List[int]:
    """Parses ids in order, dropping anything that is not a positive integer."""
    result: List[int] = []
    for raw in ids or []:
        try:
            parsed = int(str(raw).strip())
        except (TypeError, ValueError):
            continue
        if parsed > 0:
            result.append(parsed)
    return result


def get_previous_period_range(start: DateLike, end: DateLike) -> DateRange:
    """
    Previous period of the same length, ending the day before ``start``.

    For Feb 2-8 the previous period is Jan 26 - Feb 1.
    """
    start_day = ensure_date(start)
    end_day = ensure_date(end)
    duration = end_day - start_day
    previous_end = start_day - timedelta(days=1)
    return DateRange(start=previous_end - duration, end=previous_end)


def _shift_year(d: date, years: int) -> date:
    try:
        return d.replace(year=d.year + years)
    except ValueError:
        # 29 de febrero
        return d.replace(year=d.year + years, day=28)


def get_year_over_year_range(start: DateLike, end: DateLike) -> DateRange:
    return DateRange(start=_shift_year(ensure_date(start), -1), end=_shift_year(ensure_date(end), -1))


# -----------------------------------------------------------------------------
# Presets
# -----------------------------------------------------------------------------

def _monday(d: date) -> date:
    return d - timedelta(days=d.weekday())


def _first_of_month(d: date) -> date:
    return d.replace(day=1)


def _sub_months(d: date, months: int) -> date:
    month_index = d.year * 12 + (d.month - 1) - months
    return date(month_index // 12, month_index % 12 + 1, 1)


def get_date_range_from_preset(preset: str, today: Optional[date] = None) -> DateRange:
    today = today or date.today()
    yesterday = today - timedelta(days=1)

    if preset == "this_week":
        return DateRange(_monday(today), today)
    if preset == "this_month":
        return DateRange(_first_of_month(today), today)
    if preset == "last_week":
        start = _monday(today) - timedelta(days=7)
        return DateRange(start, start + timedelta(days=6))
    if preset == "last_month":
        start = _sub_months(today, 1)
        return DateRange(start, _first_of_month(today) - timedelta(days=1))
    if preset == "last_30_days":
        return DateRange(today - timedelta(days=30), yesterday)
    if preset == "last_12_weeks":
        this_monday = _monday(today)
        return DateRange(this_monday - timedelta(weeks=12), this_monday - timedelta(days=1))
    if preset == "last_12_months":
        return DateRange(_sub_months(today, 12), _first_of_month(today) - timedelta(days=1))
    # last_7_days y custom
    return DateRange(today - timedelta(days=7), yesterday)


def get_preset_label(preset: str) -> str:
    return PRESET_LABELS.get(preset, PRESET_LABELS["custom"])


def _short(d: date) -> str:
    return f"{d.day} {MONTH_SHORT[d.month - 1]}"


def format_range_label(start: date, end: date) -> str:
    if start.month == end.month:
        return f"{start.day}-{end.day} {MONTH_SHORT[start.month - 1]}"
    return f"{_short(start)} - {_short(end)}"


def get_period_labels(start: DateLike, end: DateLike) -> dict:
    """``{"current": "19-25 Ene", "comparison": "12-18 Ene"}``"""
    start_day, end_day = ensure_date(start), ensure_date(end)
    previous = get_previous_period_range(start_day, end_day)
    return {
        "current": format_range_label(start_day, end_day),
        "comparison": format_range_label(previous.start, previous.end),
    }


def get_last_n_weeks(n: int, today: Optional[date] = None) -> List[WeekRange]:
    """The ``n`` complete Mon-Sun weeks before the current one, oldest first."""
    today = today or date.today()
    current_monday = _monday(today)
    weeks: List[WeekRange] = []
    for i in range(1, n + 1):
        week_start = current_monday - timedelta(days=7 * i)
        week_end = week_start + timedelta(days=6)
        weeks.insert(
            0,
            WeekRange(
                start=week_start.isoformat(),
                end=week_end.isoformat(),
                label=f"{week_start.day:02d}/{week_start.month:02d}",
            ),
        )
    return weeks
