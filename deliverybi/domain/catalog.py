"""
Helpers de catálogo: normalización de direcciones, deduplicado de snapshots
mensuales y expansión de ids agrupados.
"""

from __future__ import annotations

import re
import unicodedata
from typing import Any, Callable, Dict, Hashable, Iterable, List, Optional, Sequence, TypeVar

T = TypeVar("T")

_POSTAL_CODE_RE = re.compile(r"\s+\d{5}\s*.*$")
_STREET_PREFIX_RE = re.compile(
    r"^(c/|calle|carretera|carrer|avenida|avinguda|av\.|avda\.|paseo|passeig|plaza|plaça|pl\.|ronda|travesía|travessera)\s*",
    re.IGNORECASE,
)
_PREPOSITION_RE = re.compile(r"\b(de les|de la|dels|del|de|d')\b", re.IGNORECASE)
_PUNCT_RE = re.compile(r"[,.\-/]")
_SPACES_RE = re.compile(r"\s+")


def _strip_accents(text: str) -> str:
    decomposed = unicodedata.normalize("NFD", text)
    return "".join(ch for ch in decomposed if not unicodedata.combining(ch))


def normalize_address(address: Optional[str]) -> str:
    """
    Key used to merge the same street written in different ways.

    >>> normalize_address("C/ de Sancho de Ávila 175, Barcelona")
    'sancho avila 175'
    >>> normalize_address("Calle de Mozart 5, 28008 Madrid, Spain")
    'mozart 5'
    """
    street = (address or "").split(",")[0]
    street = _POSTAL_CODE_RE.sub("", street).strip()

    text = street.lower()
    text = _STREET_PREFIX_RE.sub("", text)
    text = _PREPOSITION_RE.sub("", text)
    text = _strip_accents(text)
    text = _PUNCT_RE.sub(" ", text)
    return _SPACES_RE.sub(" ", text).strip()


def deduplicate_by(items: Iterable[T], key: Callable[[T], Hashable]) -> List[T]:
    seen: Dict[Hashable, T] = {}
    for item in items:
        k = key(item)
        if k not in seen:
            seen[k] = item
    return list(seen.values())


def _month(row: Dict[str, Any]) -> str:
    return str(row.get("pk_ts_month") or "")


def deduplicate_by_name_keeping_latest(
    rows: Iterable[Dict[str, Any]], name_key: Callable[[Dict[str, Any]], Hashable]
) -> List[Dict[str, Any]]:
    ordered = sorted(rows, key=_month, reverse=True)
    return deduplicate_by(ordered, name_key)


def group_addresses_by_name(
    rows: Iterable[Dict[str, Any]],
    *,
    address_key: str = "des_address",
    id_key: str = "pk_id_address",
) -> List[Dict[str, Any]]:
    """
    Groups address rows by their normalized street.

    The representative row is the longest address text, then the latest month.
    It inherits coordinates from any sibling when it has none, and ``all_ids``
    lists every id in the group.
    """
    groups: Dict[str, List[Dict[str, Any]]] = {}
    for row in rows:
        groups.setdefault(normalize_address(row.get(address_key)), []).append(row)

    result: List[Dict[str, Any]] = []
    for group in groups.values():
        ordered = sorted(
            group,
            key=lambda r: (len(r.get(address_key) or ""), _month(r)),
            reverse=True,
        )
        best = dict(ordered[0])
        if not best.get("des_latitude") or not best.get("des_longitude"):
            for row in group:
                if row.get("des_latitude") and row.get("des_longitude"):
                    best["des_latitude"] = row["des_latitude"]
                    best["des_longitude"] = row["des_longitude"]
                    break
        all_ids: List[str] = []
        for row in group:
            rid = str(row[id_key])
            if rid not in all_ids:
                all_ids.append(rid)
        best["all_ids"] = all_ids
        result.append(best)
    return result


def expand_ids(selected: Optional[Sequence[str]], entities: Iterable[Any]) -> List[str]:
    """
    Expands grouped selections to every underlying id.

    ``entities`` are objects with ``id`` and ``all_ids`` (brands, restaurants).
    Unknown ids pass through unchanged.
    """
    if not selected:
        return []
    entities = list(entities)
    out: List[str] = []
    for raw in selected:
        sid = str(raw)
        match = next(
            (e for e in entities if str(e.id) == sid or sid in [str(i) for i in (e.all_ids or [])]),
            None,
        )
        ids = [str(i) for i in match.all_ids] if match is not None and match.all_ids else [sid]
        for i in ids:
            if i not in out:
                out.append(i)
    return out


def slugify(text: str) -> str:
    return _SPACES_RE.sub("-", (text or "").lower())
