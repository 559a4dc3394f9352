"""
Repositorio de alertas: preferencias por consultor y empresa, perfiles de
consultores y las RPC de anomalías diarias.
"""

from dataclasses import fields
from typing import Any, Dict, List, Optional, Sequence, Type, TypeVar

from deliverybi.infra.db import call_rpc, execute_returning, fetch_all
from deliverybi.domain.models import (
    AdsAnomaly,
    AlertPreference,
    ConsultantProfile,
    OrderAnomaly,
    PromoAnomaly,
    ReviewAnomaly,
)

A = TypeVar("A")

PREFERENCE_COLUMNS = (
    "consultant_id",
    "company_id",
    "orders_enabled",
    "reviews_enabled",
    "ads_enabled",
    "promos_enabled",
    "slack_enabled",
    "email_enabled",
    "orders_threshold",
    "reviews_threshold",
    "ads_roas_threshold",
    "promos_threshold",
)

CONSULTANT_ROLES = ("consultant", "manager", "admin")

_UPSERT_SQL = f"""
    INSERT INTO alert_preferences ({", ".join(PREFERENCE_COLUMNS)})
    VALUES ({", ".join(":" + c for c in PREFERENCE_COLUMNS)})
    ON CONFLICT (consultant_id, company_id) DO UPDATE SET
        {", ".join(f"{c} = EXCLUDED.{c}" for c in PREFERENCE_COLUMNS[2:])},
        updated_at = now()
    RETURNING *
"""


def _opt_float(value) -> Optional[float]:
    return float(value) if value is not None else None


def row_to_preference(r: Dict[str, Any]) -> AlertPreference:
    return AlertPreference(
        id=str(r["id"]),
        consultant_id=str(r["consultant_id"]),
        company_id=str(r["company_id"]),
        orders_enabled=bool(r["orders_enabled"]),
        reviews_enabled=bool(r["reviews_enabled"]),
        ads_enabled=bool(r["ads_enabled"]),
        promos_enabled=bool(r["promos_enabled"]),
        slack_enabled=bool(r["slack_enabled"]),
        email_enabled=bool(r["email_enabled"]),
        orders_threshold=_opt_float(r.get("orders_threshold")),
        reviews_threshold=_opt_float(r.get("reviews_threshold")),
        ads_roas_threshold=_opt_float(r.get("ads_roas_threshold")),
        promos_threshold=_opt_float(r.get("promos_threshold")),
        created_at=r.get("created_at"),
        updated_at=r.get("updated_at"),
    )


def row_to_anomaly(cls: Type[A], row: Dict[str, Any]) -> A:
    """Mapea una fila de RPC al dataclass, ignorando columnas desconocidas."""
    known = {f.name for f in fields(cls)}
    values = {k: v for k, v in row.items() if k in known}
    values["company_id"] = str(values.get("company_id", ""))
    return cls(**values)


class AlertRepository:

    # -------------------------------------------------------------------------
    # Preferencias
    # -------------------------------------------------------------------------

    @staticmethod
    def list_by_consultant(consultant_id: str) -> List[AlertPreference]:
        rows = fetch_all(
            "SELECT * FROM alert_preferences WHERE consultant_id = :consultant_id ORDER BY created_at ASC",
            {"consultant_id": consultant_id},
            timeout_ms=2000,
        )
        return [row_to_preference(r) for r in rows]

    @staticmethod
    def list_by_company(company_id: str) -> List[AlertPreference]:
        rows = fetch_all(
            "SELECT * FROM alert_preferences WHERE company_id = :company_id ORDER BY created_at ASC",
            {"company_id": company_id},
            timeout_ms=2000,
        )
        return [row_to_preference(r) for r in rows]

    @staticmethod
    def upsert(values: Dict[str, Any]) -> AlertPreference:
        """``values`` debe traer todas las columnas de ``PREFERENCE_COLUMNS``."""
        rows = execute_returning(_UPSERT_SQL, {c: values[c] for c in PREFERENCE_COLUMNS})
        return row_to_preference(rows[0])

    @staticmethod
    def bulk_upsert(items: Sequence[Dict[str, Any]]) -> List[AlertPreference]:
        return [AlertRepository.upsert(item) for item in items]

    @staticmethod
    def delete(preference_id: str) -> bool:
        rows = execute_returning(
            "DELETE FROM alert_preferences WHERE id = :id RETURNING id",
            {"id": preference_id},
        )
        return bool(rows)

    # -------------------------------------------------------------------------
    # Perfiles de consultores
    # -------------------------------------------------------------------------

    @staticmethod
    def get_consultant_profiles() -> List[ConsultantProfile]:
        rows = fetch_all(
            """
            SELECT id, email, full_name, assigned_company_ids, role, slack_user_id
            FROM profiles
            WHERE role = ANY(:roles)
            """,
            {"roles": list(CONSULTANT_ROLES)},
            timeout_ms=3000,
        )
        return [
            ConsultantProfile(
                id=str(r["id"]),
                email=r["email"],
                full_name=r.get("full_name"),
                assigned_company_ids=[str(c) for c in (r.get("assigned_company_ids") or [])],
                role=r.get("role") or "consultant",
                slack_user_id=r.get("slack_user_id"),
            )
            for r in rows
        ]

    # -------------------------------------------------------------------------
    # Anomalías diarias (comparan ayer con el mismo día de semanas anteriores)
    # -------------------------------------------------------------------------

    @staticmethod
    def get_order_anomalies(threshold: float) -> List[OrderAnomaly]:
        rows = call_rpc("get_daily_order_anomalies", {"p_threshold": threshold}, timeout_ms=30000)
        return [row_to_anomaly(OrderAnomaly, r) for r in rows]

    @staticmethod
    def get_review_anomalies(
        min_reviews: int = 3,
        rating_threshold: float = 3.5,
        negative_spike_pct: float = 50,
    ) -> List[ReviewAnomaly]:
        rows = call_rpc(
            "get_daily_review_anomalies",
            {
                "p_min_reviews": min_reviews,
                "p_rating_threshold": rating_threshold,
                "p_negative_spike_pct": negative_spike_pct,
            },
            timeout_ms=30000,
        )
        return [row_to_anomaly(ReviewAnomaly, r) for r in rows]

    @staticmethod
    def get_ads_anomalies(
        roas_threshold: float = 3.0,
        spend_threshold: float = 10,
        spend_deviation_pct: float = 50,
    ) -> List[AdsAnomaly]:
        rows = call_rpc(
            "get_daily_ads_anomalies",
            {
                "p_roas_threshold": roas_threshold,
                "p_spend_threshold": spend_threshold,
                "p_spend_deviation_pct": spend_deviation_pct,
            },
            timeout_ms=30000,
        )
        return [row_to_anomaly(AdsAnomaly, r) for r in rows]

    @staticmethod
    def get_promo_anomalies(
        promo_rate_threshold: float = 15,
        promo_spike_pct: float = 50,
        min_orders: int = 10,
    ) -> List[PromoAnomaly]:
        rows = call_rpc(
            "get_daily_promo_anomalies",
            {
                "p_promo_rate_threshold": promo_rate_threshold,
                "p_promo_spike_pct": promo_spike_pct,
                "p_min_orders": min_orders,
            },
            timeout_ms=30000,
        )
        return [row_to_anomaly(PromoAnomaly, r) for r in rows]
