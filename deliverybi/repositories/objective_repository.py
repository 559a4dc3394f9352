"""
Repositorio de objetivos estratégicos, sus snapshots y los enlaces públicos.
"""

import json
from datetime import date, datetime
from typing import Any, Dict, List, Optional, Sequence

from deliverybi.infra.db import call_rpc, execute, execute_returning, fetch_all, fetch_one
from deliverybi.domain.models import ObjectiveShareLink, ObjectiveSnapshot, StrategicObjective

# La columna priority es entera en BD
PRIORITY_DB_TO_API = {1: "high", 2: "medium", 3: "low"}
PRIORITY_API_TO_DB = {"critical": 1, "high": 1, "medium": 2, "low": 3}

OBJECTIVE_COLUMNS = (
    "company_id",
    "brand_id",
    "address_id",
    "title",
    "description",
    "category",
    "objective_type_id",
    "horizon",
    "status",
    "responsible",
    "kpi_type",
    "kpi_current_value",
    "kpi_target_value",
    "kpi_unit",
    "baseline_value",
    "baseline_date",
    "target_direction",
    "priority",
    "is_archived",
    "field_data",
    "evaluation_date",
    "completed_at",
    "display_order",
    "created_by",
    "updated_by",
)

SHARE_LINK_COLUMNS = ("is_active", "expires_at", "allowed_emails", "token")


def _opt_float(value) -> Optional[float]:
    return float(value) if value is not None else None


def _to_date(value) -> Optional[date]:
    if value is None or isinstance(value, date) and not isinstance(value, datetime):
        return value
    if isinstance(value, datetime):
        return value.date()
    return date.fromisoformat(str(value)[:10])


def _to_datetime(value) -> Optional[datetime]:
    if value is None or isinstance(value, datetime):
        return value
    return datetime.fromisoformat(str(value).replace("Z", "+00:00"))


def _field_data(value) -> Optional[Dict[str, Any]]:
    if value is None or isinstance(value, dict):
        return value
    return json.loads(value)


def _priority_from_db(value) -> str:
    if isinstance(value, str) and not value.isdigit():
        return value
    try:
        return PRIORITY_DB_TO_API.get(int(value), "medium")
    except (TypeError, ValueError):
        return "medium"


def row_to_objective(r: Dict[str, Any]) -> StrategicObjective:
    return StrategicObjective(
        id=str(r["id"]),
        company_id=str(r["company_id"]),
        brand_id=str(r["brand_id"]) if r.get("brand_id") is not None else None,
        address_id=str(r["address_id"]) if r.get("address_id") is not None else None,
        title=r["title"],
        description=r.get("description"),
        category=r["category"],
        objective_type_id=r.get("objective_type_id") or "",
        horizon=r.get("horizon") or "short",
        status=r.get("status") or "pending",
        responsible=r.get("responsible"),
        kpi_type=r.get("kpi_type"),
        kpi_current_value=_opt_float(r.get("kpi_current_value")),
        kpi_target_value=_opt_float(r.get("kpi_target_value")),
        kpi_unit=r.get("kpi_unit"),
        baseline_value=_opt_float(r.get("baseline_value")),
        baseline_date=_to_date(r.get("baseline_date")),
        target_direction=r.get("target_direction") or "increase",
        priority=_priority_from_db(r.get("priority")),
        is_archived=bool(r.get("is_archived")),
        field_data=_field_data(r.get("field_data")),
        evaluation_date=_to_date(r.get("evaluation_date")),
        completed_at=_to_datetime(r.get("completed_at")),
        display_order=int(r.get("display_order") or 0),
        created_by=r.get("created_by"),
        updated_by=r.get("updated_by"),
        created_at=_to_datetime(r.get("created_at")),
        updated_at=_to_datetime(r.get("updated_at")),
    )


def row_to_share_link(r: Dict[str, Any]) -> ObjectiveShareLink:
    return ObjectiveShareLink(
        id=str(r["id"]),
        objective_id=str(r["objective_id"]),
        token=r["token"],
        is_active=bool(r.get("is_active")),
        expires_at=_to_datetime(r.get("expires_at")),
        view_count=int(r.get("view_count") or 0),
        allowed_emails=list(r.get("allowed_emails") or []),
        created_at=_to_datetime(r.get("created_at")),
    )


def _to_db_values(data: Dict[str, Any]) -> Dict[str, Any]:
    """Filtra columnas conocidas y adapta priority y field_data al formato de BD."""
    values = {k: v for k, v in data.items() if k in OBJECTIVE_COLUMNS}
    if "priority" in values and values["priority"] is not None:
        values["priority"] = PRIORITY_API_TO_DB.get(values["priority"], 2)
    if values.get("field_data") is not None:
        values["field_data"] = json.dumps(values["field_data"])
    return values


class ObjectiveRepository:
    """
    CRUD de ``strategic_objectives`` y tablas relacionadas.
    """

    # -------------------------------------------------------------------------
    # Objetivos
    # -------------------------------------------------------------------------

    @staticmethod
    def list_objectives(
        company_ids: Optional[Sequence[str]] = None,
        brand_ids: Optional[Sequence[str]] = None,
        address_ids: Optional[Sequence[str]] = None,
        horizon: Optional[str] = None,
        status: Optional[str] = None,
    ) -> List[StrategicObjective]:
        conditions: List[str] = []
        params: Dict[str, Any] = {}
        if company_ids:
            conditions.append("company_id = ANY(:company_ids)")
            params["company_ids"] = [str(c) for c in company_ids]
        if brand_ids:
            conditions.append("brand_id = ANY(:brand_ids)")
            params["brand_ids"] = [str(b) for b in brand_ids]
        if address_ids:
            conditions.append("address_id = ANY(:address_ids)")
            params["address_ids"] = [str(a) for a in address_ids]
        if horizon:
            conditions.append("horizon = :horizon")
            params["horizon"] = horizon
        if status:
            conditions.append("status = :status")
            params["status"] = status

        query = "SELECT * FROM strategic_objectives"
        if conditions:
            query += " WHERE " + " AND ".join(conditions)
        query += " ORDER BY display_order ASC"
        return [row_to_objective(r) for r in fetch_all(query, params or None, timeout_ms=3000)]

    @staticmethod
    def get(objective_id: str) -> Optional[StrategicObjective]:
        row = fetch_one(
            "SELECT * FROM strategic_objectives WHERE id = :id",
            {"id": objective_id},
            timeout_ms=2000,
        )
        return row_to_objective(row) if row else None

    @staticmethod
    def create(data: Dict[str, Any]) -> StrategicObjective:
        values = _to_db_values(data)
        columns = ", ".join(values)
        placeholders = ", ".join(f":{k}" for k in values)
        rows = execute_returning(
            f"INSERT INTO strategic_objectives ({columns}) VALUES ({placeholders}) RETURNING *",
            values,
        )
        return row_to_objective(rows[0])

    @staticmethod
    def update(objective_id: str, data: Dict[str, Any]) -> Optional[StrategicObjective]:
        values = _to_db_values(data)
        if not values:
            return ObjectiveRepository.get(objective_id)
        assignments = ", ".join(f"{k} = :{k}" for k in values)
        params = dict(values, id=objective_id)
        rows = execute_returning(
            f"UPDATE strategic_objectives SET {assignments}, updated_at = now() "
            "WHERE id = :id RETURNING *",
            params,
        )
        return row_to_objective(rows[0]) if rows else None

    @staticmethod
    def update_display_order(orders: Sequence[tuple[str, int]]) -> None:
        for objective_id, display_order in orders:
            execute(
                "UPDATE strategic_objectives SET display_order = :display_order WHERE id = :id",
                {"id": objective_id, "display_order": int(display_order)},
            )

    @staticmethod
    def delete(objective_id: str) -> bool:
        rows = execute_returning(
            "DELETE FROM strategic_objectives WHERE id = :id RETURNING id",
            {"id": objective_id},
        )
        return bool(rows)

    # -------------------------------------------------------------------------
    # Snapshots
    # -------------------------------------------------------------------------

    @staticmethod
    def get_snapshots(objective_id: str, limit: int = 10) -> List[ObjectiveSnapshot]:
        """Últimos ``limit`` snapshots, del más reciente al más antiguo."""
        rows = fetch_all(
            """
            SELECT objective_id, snapshot_date, kpi_value
            FROM objective_snapshots
            WHERE objective_id = :objective_id
            ORDER BY snapshot_date DESC
            LIMIT :limit
            """,
            {"objective_id": objective_id, "limit": int(limit)},
            timeout_ms=2000,
        )
        return [
            ObjectiveSnapshot(
                objective_id=str(r["objective_id"]),
                snapshot_date=_to_date(r["snapshot_date"]),
                kpi_value=float(r["kpi_value"] or 0),
            )
            for r in rows
        ]

    # -------------------------------------------------------------------------
    # Enlaces compartidos
    # -------------------------------------------------------------------------

    @staticmethod
    def get_share_link_by_objective(objective_id: str) -> Optional[ObjectiveShareLink]:
        row = fetch_one(
            "SELECT * FROM objective_share_links WHERE objective_id = :objective_id",
            {"objective_id": objective_id},
            timeout_ms=2000,
        )
        return row_to_share_link(row) if row else None

    @staticmethod
    def get_share_links_by_objectives(objective_ids: Sequence[str]) -> List[ObjectiveShareLink]:
        if not objective_ids:
            return []
        rows = fetch_all(
            "SELECT * FROM objective_share_links WHERE objective_id = ANY(:objective_ids)",
            {"objective_ids": [str(i) for i in objective_ids]},
            timeout_ms=2000,
        )
        return [row_to_share_link(r) for r in rows]

    @staticmethod
    def get_share_link_by_token(token: str) -> Optional[ObjectiveShareLink]:
        row = fetch_one(
            "SELECT * FROM objective_share_links WHERE token = :token",
            {"token": token},
            timeout_ms=2000,
        )
        return row_to_share_link(row) if row else None

    @staticmethod
    def create_share_link(
        objective_id: str,
        token: str,
        expires_at: Optional[datetime] = None,
        allowed_emails: Optional[Sequence[str]] = None,
    ) -> ObjectiveShareLink:
        rows = execute_returning(
            """
            INSERT INTO objective_share_links
                (objective_id, token, is_active, expires_at, allowed_emails, view_count)
            VALUES (:objective_id, :token, true, :expires_at, :allowed_emails, 0)
            RETURNING *
            """,
            {
                "objective_id": objective_id,
                "token": token,
                "expires_at": expires_at,
                "allowed_emails": list(allowed_emails or []),
            },
        )
        return row_to_share_link(rows[0])

    @staticmethod
    def update_share_link(link_id: str, data: Dict[str, Any]) -> Optional[ObjectiveShareLink]:
        values = {k: v for k, v in data.items() if k in SHARE_LINK_COLUMNS}
        if "allowed_emails" in values:
            values["allowed_emails"] = list(values["allowed_emails"] or [])
        if not values:
            row = fetch_one(
                "SELECT * FROM objective_share_links WHERE id = :id", {"id": link_id}, timeout_ms=2000
            )
            return row_to_share_link(row) if row else None
        assignments = ", ".join(f"{k} = :{k}" for k in values)
        rows = execute_returning(
            f"UPDATE objective_share_links SET {assignments} WHERE id = :id RETURNING *",
            dict(values, id=link_id),
        )
        return row_to_share_link(rows[0]) if rows else None

    @staticmethod
    def delete_share_link(link_id: str) -> bool:
        rows = execute_returning(
            "DELETE FROM objective_share_links WHERE id = :id RETURNING id",
            {"id": link_id},
        )
        return bool(rows)

    @staticmethod
    def increment_share_link_view(token: str) -> None:
        call_rpc("increment_share_link_view", {"link_token": token}, timeout_ms=2000)
