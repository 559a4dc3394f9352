"""Formato es-ES para importes, números y porcentajes."""

from __future__ import annotations

from typing import Optional


def _group_es(value: float, decimals: int) -> str:
    # es-ES no agrupa los miles por debajo de 10.000 (8000, no 8.000)
    if abs(round(value, decimals)) < 10_000:
        return f"{value:.{decimals}f}".replace(".", ",")
    text = f"{value:,.{decimals}f}"
    # 12,345.67 -> 12.345,67
    return text.replace(",", "_").replace(".", ",").replace("_", ".")


def format_currency(amount: float, compact: bool = False) -> str:
    if compact:
        if amount >= 1_000_000:
            return f"{amount / 1_000_000:.1f}".replace(".", ",") + "M €"
        if amount >= 1000:
            return f"{amount / 1000:.1f}".replace(".", ",") + "K €"
    return f"{_group_es(amount, 2)} €"


def format_number(value: float, decimals: int = 0) -> str:
    return _group_es(value, decimals)


def format_percentage(value: float, decimals: int = 1, is_decimal: bool = True) -> str:
    pct = value * 100 if is_decimal else value
    return f"{pct:.{decimals}f}".replace(".", ",") + "%"


def format_kpi_value(value: Optional[float], unit: Optional[str]) -> str:
    if value is None:
        return "-"
    if value >= 1000:
        text = f"{value / 1000:.1f}k"
    elif float(value).is_integer():
        text = f"{value:.0f}"
    else:
        text = f"{value:.1f}"
    return f"{text}{unit}" if unit else text
