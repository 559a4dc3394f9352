"""
Alertas diarias por Slack.

Lanza las cuatro RPC de anomalías (pedidos, reseñas, publicidad y promos),
agrupa las anomalías por consultor asignado y envía un único mensaje al webhook.
El texto lo redacta Gemini; si no está disponible se usa la plantilla fija.
"""

from __future__ import annotations

import json
from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Sequence, Tuple

import httpx
from sqlalchemy.exc import SQLAlchemyError

from deliverybi.core.ai import AIIntegrationError, format_alert_message
from deliverybi.core.config import settings
from deliverybi.core.logging import alerts_logger
from deliverybi.domain.models import (
    AdsAnomaly,
    ConsultantProfile,
    OrderAnomaly,
    PromoAnomaly,
    ReviewAnomaly,
)
from deliverybi.infra.slack_client import SlackError, send_slack_message
from deliverybi.repositories.alert_repository import AlertRepository
from deliverybi.repositories.protocols import AlertRepositoryProtocol
from deliverybi.services.alert_preview import get_daily_date_label, get_date_label, get_first_name

UNASSIGNED_KEY = "__unassigned__"
UNASSIGNED_NAME = "Sin asignar"
CRITICAL_ORDERS_DEVIATION = -25


@dataclass
class ConsultantRef:
    name: str
    email: str
    slack_user_id: Optional[str] = None


@dataclass
class ConsultantGroup:
    consultant: ConsultantRef
    orders: List[OrderAnomaly] = field(default_factory=list)
    reviews: List[ReviewAnomaly] = field(default_factory=list)
    ads: List[AdsAnomaly] = field(default_factory=list)
    promos: List[PromoAnomaly] = field(default_factory=list)

    @property
    def total(self) -> int:
        return len(self.orders) + len(self.reviews) + len(self.ads) + len(self.promos)


def _n(value: Any) -> str:
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value)


# -----------------------------------------------------------------------------
# 1) Agrupado por consultor
# -----------------------------------------------------------------------------

def group_anomalies_by_consultant(
    profiles: Sequence[ConsultantProfile],
    orders: Sequence[OrderAnomaly],
    reviews: Sequence[ReviewAnomaly],
    ads: Sequence[AdsAnomaly],
    promos: Sequence[PromoAnomaly],
) -> Dict[str, ConsultantGroup]:
    """
    Cada anomalía va a todos los consultores asignados a su empresa.
    Las empresas sin consultor caen en el grupo ``__unassigned__``.
    """
    groups: Dict[str, ConsultantGroup] = {}
    company_to_consultants: Dict[str, List[ConsultantProfile]] = {}
    for profile in profiles:
        for company_id in profile.assigned_company_ids or []:
            company_to_consultants.setdefault(str(company_id), []).append(profile)

    def group_for(profile: ConsultantProfile) -> ConsultantGroup:
        if profile.id not in groups:
            groups[profile.id] = ConsultantGroup(
                consultant=ConsultantRef(
                    name=profile.full_name or "",
                    email=profile.email,
                    slack_user_id=profile.slack_user_id,
                )
            )
        return groups[profile.id]

    def unassigned() -> ConsultantGroup:
        if UNASSIGNED_KEY not in groups:
            groups[UNASSIGNED_KEY] = ConsultantGroup(consultant=ConsultantRef(name=UNASSIGNED_NAME, email=""))
        return groups[UNASSIGNED_KEY]

    for attr, anomalies in (("orders", orders), ("reviews", reviews), ("ads", ads), ("promos", promos)):
        for anomaly in anomalies:
            consultants = company_to_consultants.get(str(anomaly.company_id))
            if consultants:
                for consultant in consultants:
                    getattr(group_for(consultant), attr).append(anomaly)
            else:
                getattr(unassigned(), attr).append(anomaly)

    return groups


# -----------------------------------------------------------------------------
# 2) Mensaje
# -----------------------------------------------------------------------------

def _place(a) -> str:
    return f"*{a.company_name} — {a.store_name}* | {a.address_name} ({a.channel})"


def build_fallback_message(groups: Dict[str, ConsultantGroup], date_label: str) -> str:
    lines: List[str] = [f"*Alertas diarias — {date_label}*\n"]

    for group in groups.values():
        if group.total == 0:
            continue
        c = group.consultant
        mention = f"<@{c.slack_user_id}>" if c.slack_user_id else f"*{c.name}*"
        lines.append(f"\n{mention}\n")

        if group.orders:
            lines.append("*Pedidos:*")
            for a in group.orders:
                emoji = ":red_circle:" if a.orders_deviation_pct <= CRITICAL_ORDERS_DEVIATION else ":large_yellow_circle:"
                lines.append(
                    f"{emoji} {_place(a)} — {_n(a.yesterday_orders)} pedidos "
                    f"(media: {_n(a.avg_orders_baseline)}) → *{_n(a.orders_deviation_pct)}%*"
                )

        if group.reviews:
            lines.append("*Resenas:*")
            for a in group.reviews:
                lines.append(
                    f":star: {_place(a)} — Rating: *{_n(a.yesterday_avg_rating)}* "
                    f"(media: {_n(a.baseline_avg_rating)}) | {_n(a.yesterday_negative_count)} negativas"
                )

        if group.promos:
            lines.append("*Promos:*")
            for a in group.promos:
                lines.append(
                    f":ticket: {_place(a)} — Promos: *{_n(a.yesterday_promos)}€* "
                    f"({_n(a.yesterday_promo_rate)}% de ventas, media: {_n(a.baseline_avg_promo_rate)}%) "
                    f"→ *+{_n(a.promo_spend_deviation_pct)}%*"
                )

        if group.ads:
            lines.append("*Publicidad:*")
            for a in group.ads:
                lines.append(
                    f":loudspeaker: {_place(a)} — ROAS: *{_n(a.yesterday_roas)}x* "
                    f"(media: {_n(a.baseline_avg_roas)}x) | Gasto: {_n(a.yesterday_ad_spent)}€"
                )

    return "\n".join(lines)


def groups_to_json(groups: Dict[str, ConsultantGroup]) -> str:
    data = [
        {
            "consultant": asdict(g.consultant),
            "orders": [asdict(a) for a in g.orders],
            "reviews": [asdict(a) for a in g.reviews],
            "promos": [asdict(a) for a in g.promos],
            "ads": [asdict(a) for a in g.ads],
        }
        for g in groups.values()
        if g.total > 0
    ]
    return json.dumps(data, ensure_ascii=False, indent=2) if data else ""


async def format_message(groups: Dict[str, ConsultantGroup], date_label: str) -> str:
    try:
        return await format_alert_message(groups_to_json(groups), date_label)
    except AIIntegrationError as exc:
        alerts_logger.warning("AI formatting unavailable, using template", reason=str(exc))
        return build_fallback_message(groups, date_label)


# -----------------------------------------------------------------------------
# 3) Pruebas: ejecución en seco y mensaje de prueba
# -----------------------------------------------------------------------------

def build_test_message(first_name: str, date_label: str) -> str:
    return "\n".join(
        [
            f":test_tube: *Alerta de prueba — {date_label}*",
            "",
            f"Buenos dias, *{first_name}* :wave:",
            "",
            "Este es un mensaje de prueba enviado desde Delivery BI.",
            "Si ves este mensaje, tu integracion de Slack esta funcionando correctamente.",
            "",
            ":red_circle: *Ejemplo CRITICO* — Burger Lab | Gran Via (Glovo) — 12 pedidos (media: 35) → *-66%*",
            ":large_yellow_circle: *Ejemplo ATENCION* — Pizza Nostra | Malasana (UberEats) — Rating: 3.2 (media: 4.1) → *-22%*",
            "",
            "_Mensaje de prueba desde Delivery BI Alertas_",
        ]
    )


def groups_to_dict(groups: Dict[str, ConsultantGroup]) -> Dict[str, Dict[str, Any]]:
    return {
        key: {
            "consultant": g.consultant.name,
            "email": g.consultant.email,
            "slack_user_id": g.consultant.slack_user_id,
            "orders": [asdict(a) for a in g.orders],
            "reviews": [asdict(a) for a in g.reviews],
            "ads": [asdict(a) for a in g.ads],
            "promos": [asdict(a) for a in g.promos],
        }
        for key, g in groups.items()
    }


# -----------------------------------------------------------------------------
# 4) Ejecución diaria
# -----------------------------------------------------------------------------

class DailyAlertsService:
    """Runs the daily anomaly check and posts the summary to Slack."""

    def __init__(self, repository: AlertRepositoryProtocol | None = None):
        self.repository = repository or AlertRepository()

    async def _send(self, text: str) -> bool:
        try:
            return await send_slack_message(text)
        except SlackError as exc:
            alerts_logger.error("Slack webhook failed", exc=exc, status_code=exc.status_code)
            return False
        except httpx.HTTPError as exc:
            alerts_logger.error("Slack webhook unreachable", exc=exc)
            return False

    def _fetch(self, label: str, fetch, errors: List[str]) -> list:
        try:
            return fetch()
        except SQLAlchemyError as exc:
            alerts_logger.error("Anomaly RPC failed", exc=exc, category=label)
            errors.append(f"{label}: {exc}")
            return []

    def _fetch_anomalies(self, threshold: float, errors: List[str]) -> tuple:
        orders = self._fetch("Orders", lambda: self.repository.get_order_anomalies(threshold), errors)
        reviews = self._fetch("Reviews", self.repository.get_review_anomalies, errors)
        ads = self._fetch("Ads", self.repository.get_ads_anomalies, errors)
        promos = self._fetch("Promos", self.repository.get_promo_anomalies, errors)
        return orders, reviews, ads, promos

    def _profiles(self) -> List[ConsultantProfile]:
        try:
            return self.repository.get_consultant_profiles()
        except SQLAlchemyError as exc:
            alerts_logger.error("Profiles query failed", exc=exc)
            return []

    def dry_run(self, now: Optional[datetime] = None) -> Dict[str, Any]:
        """
        Mismas consultas que ``run`` pero sin Slack ni IA.
        Devuelve las anomalías en bruto y agrupadas por consultor.
        """
        threshold = settings.ALERT_ORDERS_THRESHOLD
        errors: List[str] = []
        orders, reviews, ads, promos = self._fetch_anomalies(threshold, errors)
        groups = group_anomalies_by_consultant(self._profiles(), orders, reviews, ads, promos)
        alerts_logger.info("Daily alerts dry run", groups=len(groups), errors=len(errors))

        total = len(orders) + len(reviews) + len(ads) + len(promos)
        return {
            "timestamp": (now or datetime.now(timezone.utc)).isoformat(),
            "threshold": threshold,
            "errors": errors or None,
            "summary": {
                "order_anomalies": len(orders),
                "review_anomalies": len(reviews),
                "ads_anomalies": len(ads),
                "promo_anomalies": len(promos),
                "total": total,
                "consultants": len(groups),
            },
            "raw": {
                "orders": [asdict(a) for a in orders],
                "reviews": [asdict(a) for a in reviews],
                "ads": [asdict(a) for a in ads],
                "promos": [asdict(a) for a in promos],
            },
            "grouped": groups_to_dict(groups),
        }

    async def send_test(
        self,
        consultant_name: Optional[str],
        channel: str = "slack",
        now: Optional[datetime] = None,
    ) -> Tuple[int, Dict[str, Any]]:
        """Mensaje de prueba al webhook. El canal email todavía no envía nada."""
        if channel != "slack":
            return 200, {"ok": True, "channel": channel, "message": "Email test not implemented yet"}
        if not settings.SLACK_WEBHOOK_URL:
            return 500, {"error": "SLACK_WEBHOOK_URL not configured"}

        text = build_test_message(get_first_name(consultant_name), get_date_label(now))
        if not await self._send(text):
            return 502, {"error": "Slack webhook failed"}
        return 200, {"ok": True, "channel": "slack"}

    async def run(self, now: Optional[datetime] = None) -> Tuple[int, Dict[str, Any]]:
        """Returns ``(status_code, body)`` for the cron endpoint."""
        date_label = get_daily_date_label(now)
        threshold = settings.ALERT_ORDERS_THRESHOLD
        alerts_logger.info("Daily alerts started", threshold=threshold)

        errors: List[str] = []
        orders, reviews, ads, promos = self._fetch_anomalies(threshold, errors)

        if errors:
            await self._send(":warning: Errores en alertas diarias:\n" + "\n".join(errors))
            if len(errors) == 4:
                return 500, {"errors": errors}

        total = len(orders) + len(reviews) + len(ads) + len(promos)
        alerts_logger.info(
            "Anomalies found",
            orders=len(orders),
            reviews=len(reviews),
            ads=len(ads),
            promos=len(promos),
        )

        if total == 0:
            await self._send(
                f":large_green_circle: *Alertas diarias — {date_label}*\n"
                "Todos los restaurantes dentro de rango normal ayer (pedidos, resenas, promos y ads)."
            )
            return 200, {"message": "No anomalies", "count": 0}

        groups = group_anomalies_by_consultant(self._profiles(), orders, reviews, ads, promos)
        alerts_logger.info("Anomalies grouped", groups=len(groups))

        message = await format_message(groups, date_label)
        await self._send(message)

        return 200, {
            "message": "Alerts sent",
            "order_anomalies": len(orders),
            "review_anomalies": len(reviews),
            "ads_anomalies": len(ads),
            "promo_anomalies": len(promos),
            "consultants_notified": len(groups),
        }
