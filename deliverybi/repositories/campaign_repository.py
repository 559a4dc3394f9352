"""
Repositorio de campañas promocionales (``promotional_campaigns``).
"""

import json
from datetime import date, datetime
from typing import Any, Dict, List, Optional, Sequence

from deliverybi.infra.db import execute_returning, fetch_all, fetch_one
from deliverybi.domain.models import PromotionalCampaign

CAMPAIGN_COLUMNS = (
    "restaurant_id",
    "platform",
    "campaign_type",
    "name",
    "config",
    "product_ids",
    "start_date",
    "end_date",
    "status",
    "metrics",
    "created_by",
    "updated_by",
)
JSON_COLUMNS = ("config", "metrics")


def _iso(value) -> str:
    if isinstance(value, (date, datetime)):
        return value.isoformat()[:10]
    return str(value)[:10]


def _json(value) -> Optional[Dict[str, Any]]:
    if value is None or isinstance(value, dict):
        return value
    return json.loads(value)


def _to_datetime(value) -> Optional[datetime]:
    if value is None or isinstance(value, datetime):
        return value
    return datetime.fromisoformat(str(value).replace("Z", "+00:00"))


def row_to_campaign(r: Dict[str, Any]) -> PromotionalCampaign:
    return PromotionalCampaign(
        id=str(r["id"]),
        restaurant_id=str(r["restaurant_id"]),
        platform=r["platform"],
        campaign_type=r["campaign_type"],
        name=r.get("name"),
        config=_json(r.get("config")) or {},
        product_ids=list(r.get("product_ids") or []),
        start_date=_iso(r["start_date"]),
        end_date=_iso(r["end_date"]),
        status=r.get("status") or "scheduled",
        metrics=_json(r.get("metrics")),
        created_by=r.get("created_by"),
        updated_by=r.get("updated_by"),
        created_at=_to_datetime(r.get("created_at")),
        updated_at=_to_datetime(r.get("updated_at")),
    )


def _to_db_values(data: Dict[str, Any]) -> Dict[str, Any]:
    values = {k: v for k, v in data.items() if k in CAMPAIGN_COLUMNS}
    for key in JSON_COLUMNS:
        if values.get(key) is not None:
            values[key] = json.dumps(values[key])
    if "product_ids" in values:
        values["product_ids"] = list(values["product_ids"] or [])
    return values


class CampaignRepository:

    @staticmethod
    def list_campaigns(
        restaurant_ids: Optional[Sequence[str]] = None,
        platforms: Optional[Sequence[str]] = None,
        start_date: Optional[str] = None,
        end_date: Optional[str] = None,
    ) -> List[PromotionalCampaign]:
        """
        Campañas que se solapan con la ventana ``[start_date, end_date]``,
        ordenadas por fecha de inicio.
        """
        conditions: List[str] = []
        params: Dict[str, Any] = {}
        if restaurant_ids:
            conditions.append("restaurant_id = ANY(:restaurant_ids)")
            params["restaurant_ids"] = [str(r) for r in restaurant_ids]
        if platforms:
            conditions.append("platform = ANY(:platforms)")
            params["platforms"] = list(platforms)
        if start_date:
            conditions.append("end_date >= :start_date")
            params["start_date"] = start_date
        if end_date:
            conditions.append("start_date <= :end_date")
            params["end_date"] = end_date

        query = "SELECT * FROM promotional_campaigns"
        if conditions:
            query += " WHERE " + " AND ".join(conditions)
        query += " ORDER BY start_date"
        return [row_to_campaign(r) for r in fetch_all(query, params or None, timeout_ms=3000)]

    @staticmethod
    def get(campaign_id: str) -> Optional[PromotionalCampaign]:
        row = fetch_one(
            "SELECT * FROM promotional_campaigns WHERE id = :id",
            {"id": campaign_id},
            timeout_ms=2000,
        )
        return row_to_campaign(row) if row else None

    @staticmethod
    def create(data: Dict[str, Any]) -> PromotionalCampaign:
        values = _to_db_values(data)
        columns = ", ".join(values)
        placeholders = ", ".join(f":{k}" for k in values)
        rows = execute_returning(
            f"INSERT INTO promotional_campaigns ({columns}) VALUES ({placeholders}) RETURNING *",
            values,
        )
        return row_to_campaign(rows[0])

    @staticmethod
    def update(campaign_id: str, data: Dict[str, Any]) -> Optional[PromotionalCampaign]:
        values = _to_db_values(data)
        if not values:
            return CampaignRepository.get(campaign_id)
        assignments = ", ".join(f"{k} = :{k}" for k in values)
        rows = execute_returning(
            f"UPDATE promotional_campaigns SET {assignments}, updated_at = now() "
            "WHERE id = :id RETURNING *",
            dict(values, id=campaign_id),
        )
        return row_to_campaign(rows[0]) if rows else None

    @staticmethod
    def delete(campaign_id: str) -> bool:
        rows = execute_returning(
            "DELETE FROM promotional_campaigns WHERE id = :id RETURNING id",
            {"id": campaign_id},
        )
        return bool(rows)
