"""
Repositorio de proyecciones de ventas (``sales_projections``).
Una proyección por ámbito (empresa, marca, dirección); ``NULL`` casa con ``NULL``.
"""

import json
from datetime import datetime
from typing import Any, Dict, Optional

from deliverybi.infra.db import execute_returning, fetch_one
from deliverybi.domain.models import SalesProjection

PROJECTION_COLUMNS = (
    "company_id",
    "brand_id",
    "address_id",
    "config",
    "baseline_revenue",
    "target_revenue",
    "target_ads",
    "target_promos",
    "created_by",
    "updated_by",
)

JSON_COLUMNS = ("config", "baseline_revenue", "target_revenue", "target_ads", "target_promos")


def _to_datetime(value) -> Optional[datetime]:
    if value is None or isinstance(value, datetime):
        return value
    return datetime.fromisoformat(str(value).replace("Z", "+00:00"))


def _json(value) -> Dict[str, Any]:
    if value is None:
        return {}
    if isinstance(value, dict):
        return value
    return json.loads(value)


def _opt_str(value) -> Optional[str]:
    return str(value) if value is not None else None


def row_to_projection(r: Dict[str, Any]) -> SalesProjection:
    return SalesProjection(
        id=str(r["id"]),
        company_id=str(r["company_id"]),
        brand_id=_opt_str(r.get("brand_id")),
        address_id=_opt_str(r.get("address_id")),
        config=_json(r.get("config")),
        baseline_revenue=_json(r.get("baseline_revenue")),
        target_revenue=_json(r.get("target_revenue")),
        target_ads=_json(r.get("target_ads")),
        target_promos=_json(r.get("target_promos")),
        created_by=r.get("created_by"),
        updated_by=r.get("updated_by"),
        created_at=_to_datetime(r.get("created_at")),
        updated_at=_to_datetime(r.get("updated_at")),
    )


def _to_db_values(data: Dict[str, Any]) -> Dict[str, Any]:
    values = {k: v for k, v in data.items() if k in PROJECTION_COLUMNS}
    for column in JSON_COLUMNS:
        if values.get(column) is not None:
            values[column] = json.dumps(values[column])
    return values


class SalesProjectionRepository:

    @staticmethod
    def get_by_scope(
        company_id: str,
        brand_id: Optional[str] = None,
        address_id: Optional[str] = None,
    ) -> Optional[SalesProjection]:
        row = fetch_one(
            """
            SELECT * FROM sales_projections
            WHERE company_id = :company_id
              AND brand_id IS NOT DISTINCT FROM :brand_id
              AND address_id IS NOT DISTINCT FROM :address_id
            ORDER BY updated_at DESC NULLS LAST
            LIMIT 1
            """,
            {"company_id": str(company_id), "brand_id": brand_id, "address_id": address_id},
            timeout_ms=2000,
        )
        return row_to_projection(row) if row else None

    @staticmethod
    def get(projection_id: str) -> Optional[SalesProjection]:
        row = fetch_one(
            "SELECT * FROM sales_projections WHERE id = :id",
            {"id": projection_id},
            timeout_ms=2000,
        )
        return row_to_projection(row) if row else None

    @staticmethod
    def create(data: Dict[str, Any]) -> SalesProjection:
        values = _to_db_values(data)
        columns = ", ".join(values)
        placeholders = ", ".join(f":{k}" for k in values)
        rows = execute_returning(
            f"INSERT INTO sales_projections ({columns}) VALUES ({placeholders}) RETURNING *",
            values,
        )
        return row_to_projection(rows[0])

    @staticmethod
    def update(projection_id: str, data: Dict[str, Any]) -> Optional[SalesProjection]:
        values = _to_db_values(data)
        if not values:
            return SalesProjectionRepository.get(projection_id)
        assignments = ", ".join(f"{k} = :{k}" for k in values)
        rows = execute_returning(
            f"UPDATE sales_projections SET {assignments}, updated_at = now() WHERE id = :id RETURNING *",
            dict(values, id=projection_id),
        )
        return row_to_projection(rows[0]) if rows else None

    @staticmethod
    def delete(projection_id: str) -> bool:
        rows = execute_returning(
            "DELETE FROM sales_projections WHERE id = :id RETURNING id",
            {"id": projection_id},
        )
        return bool(rows)
