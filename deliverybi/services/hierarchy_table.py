"""Sort and expand state for the controlling table."""

from __future__ import annotations

import unicodedata
from dataclasses import dataclass
from typing import Dict, Iterable, List, Literal, Optional, Sequence, Set

from deliverybi.services.hierarchy import ControllingRow

SortDirection = Literal["asc", "desc"]

# id de columna expuesto en la API -> atributo de ControllingRow
SORTABLE_COLUMNS: Dict[str, str] = {
    "name": "name",
    "ventas": "ventas",
    "ventasChange": "ventas_change",
    "pedidos": "pedidos",
    "ticketMedio": "ticket_medio",
    "nuevosClientes": "nuevos_clientes",
    "porcentajeNuevos": "porcentaje_nuevos",
    "recurrentesClientes": "recurrentes_clientes",
    "porcentajeRecurrentes": "porcentaje_recurrentes",
    "inversionAds": "inversion_ads",
    "adsPercentage": "ads_percentage",
    "roas": "roas",
    "impressions": "impressions",
    "clicks": "clicks",
    "adOrders": "ad_orders",
    "inversionPromos": "inversion_promos",
    "promosPercentage": "promos_percentage",
    "promosRoas": "promos_roas",
    "organicOrders": "organic_orders",
    "ratingGlovo": "rating_glovo",
    "reviewsGlovo": "reviews_glovo",
    "ratingUber": "rating_uber",
    "reviewsUber": "reviews_uber",
}


@dataclass(frozen=True)
class SortState:
    column: Optional[str] = None
    direction: Optional[SortDirection] = None


@dataclass(frozen=True)
class VisibleRow:
    row: ControllingRow
    depth: int
    has_children: bool
    expanded: bool


def _check_column(column: str) -> None:
    if column not in SORTABLE_COLUMNS:
        raise ValueError(f"Columna no ordenable: {column}")


def _initial_direction(column: str) -> SortDirection:
    return "asc" if column == "name" else "desc"


def toggle_sort(state: SortState, column: str) -> SortState:
    """
    Cycles the sort on ``column``: its starting direction, the opposite one, then off.

    ``name`` starts ascending and every metric starts descending.
    """
    _check_column(column)
    if state.column != column or state.direction is None:
        return SortState(column, _initial_direction(column))
    if state.direction == _initial_direction(column):
        return SortState(column, "desc" if state.direction == "asc" else "asc")
    return SortState()


def _children_index(rows: Iterable[ControllingRow]) -> Dict[Optional[str], List[ControllingRow]]:
    index: Dict[Optional[str], List[ControllingRow]] = {}
    for row in rows:
        index.setdefault(row.parent_id, []).append(row)
    return index


def _name_key(name: Optional[str]) -> str:
    # sin acentos y sin mayúsculas: "Ávila" va antes que "Burgos"
    decomposed = unicodedata.normalize("NFKD", name or "")
    return "".join(c for c in decomposed if not unicodedata.combining(c)).casefold()


def sort_rows_with_hierarchy(
    rows: Sequence[ControllingRow],
    column: Optional[str],
    direction: Optional[SortDirection],
) -> List[ControllingRow]:
    """Sorts siblings inside each parent and rebuilds the list depth-first from the roots."""
    if not column or not direction:
        return list(rows)
    _check_column(column)
    attr = SORTABLE_COLUMNS[column]
    reverse = direction == "desc"

    def key(row: ControllingRow):
        if attr == "name":
            return _name_key(row.name)
        value = getattr(row, attr, None)
        return value if value is not None else 0

    index = _children_index(rows)
    for siblings in index.values():
        siblings.sort(key=key, reverse=reverse)

    result: List[ControllingRow] = []

    def add(parent_id: Optional[str]) -> None:
        for child in index.get(parent_id, []):
            result.append(child)
            add(child.id)

    add(None)
    return result


def visible_rows(
    rows: Sequence[ControllingRow],
    expanded: Set[str],
    column: Optional[str] = None,
    direction: Optional[SortDirection] = None,
) -> List[VisibleRow]:
    index = _children_index(sort_rows_with_hierarchy(rows, column, direction))
    result: List[VisibleRow] = []

    def add(row: ControllingRow, depth: int) -> None:
        children = index.get(row.id, [])
        is_expanded = row.id in expanded
        result.append(VisibleRow(row=row, depth=depth, has_children=bool(children), expanded=is_expanded))
        if is_expanded:
            for child in children:
                add(child, depth + 1)

    for root in index.get(None, []):
        add(root, 0)
    return result


def descendant_ids(rows: Sequence[ControllingRow], row_id: str) -> Set[str]:
    index = _children_index(rows)
    found: Set[str] = set()
    stack = [row_id]
    while stack:
        current = stack.pop()
        for child in index.get(current, []):
            if child.id not in found:
                found.add(child.id)
                stack.append(child.id)
    return found


def toggle_row(expanded: Set[str], rows: Sequence[ControllingRow], row_id: str) -> Set[str]:
    """Returns a new expanded set; collapsing also collapses every descendant."""
    result = set(expanded)
    if row_id in result:
        result.discard(row_id)
        result -= descendant_ids(rows, row_id)
    else:
        result.add(row_id)
    return result


def with_depth(row: VisibleRow) -> dict:
    data = row.row.to_dict()
    data.update(depth=row.depth, has_children=row.has_children, expanded=row.expanded)
    return data


__all__ = [
    "SORTABLE_COLUMNS",
    "SortState",
    "VisibleRow",
    "descendant_ids",
    "sort_rows_with_hierarchy",
    "toggle_row",
    "toggle_sort",
    "visible_rows",
    "with_depth",
]
