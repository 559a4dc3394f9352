"""Alert preferences and the urgency preview built on top of them."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, Iterable, List, Optional

from deliverybi.core.logging import alerts_logger
from deliverybi.domain.models import AlertPreference, Company
from deliverybi.repositories.alert_repository import PREFERENCE_COLUMNS, AlertRepository
from deliverybi.repositories.protocols import AlertRepositoryProtocol
from deliverybi.services.alert_preview import (
    Deviation,
    Severity,
    Thresholds,
    compute_urgency_score,
    get_date_label,
    get_severity,
)

ALERT_DEFAULTS: Dict[str, Any] = {
    "orders_enabled": True,
    "reviews_enabled": True,
    "ads_enabled": True,
    "promos_enabled": True,
    "slack_enabled": True,
    "email_enabled": False,
    "orders_threshold": -20,
    "reviews_threshold": 3.5,
    "ads_roas_threshold": 3.0,
    "promos_threshold": 15,
}

_FLAG_KEYS = (
    "orders_enabled",
    "reviews_enabled",
    "ads_enabled",
    "promos_enabled",
    "slack_enabled",
    "email_enabled",
)
_THRESHOLD_KEYS = (
    "orders_threshold",
    "reviews_threshold",
    "ads_roas_threshold",
    "promos_threshold",
)


def default_thresholds() -> Thresholds:
    return Thresholds(
        orders=ALERT_DEFAULTS["orders_threshold"],
        reviews=ALERT_DEFAULTS["reviews_threshold"],
        ads_roas=ALERT_DEFAULTS["ads_roas_threshold"],
        promos=ALERT_DEFAULTS["promos_threshold"],
    )


def with_defaults(data: Dict[str, Any]) -> Dict[str, Any]:
    """
    Completa una preferencia para el upsert.
    Los flags omitidos toman su valor por defecto; los umbrales omitidos quedan a
    ``None`` (usar el umbral global).
    """
    values = {
        "consultant_id": str(data["consultant_id"]),
        "company_id": str(data["company_id"]),
    }
    for key in _FLAG_KEYS:
        value = data.get(key)
        values[key] = ALERT_DEFAULTS[key] if value is None else bool(value)
    for key in _THRESHOLD_KEYS:
        values[key] = data.get(key)
    return {k: values[k] for k in PREFERENCE_COLUMNS}


def is_tracking(pref: AlertPreference) -> bool:
    return bool(pref.orders_enabled or pref.reviews_enabled or pref.ads_enabled or pref.promos_enabled)


@dataclass
class CompanyAlertPreview:
    company_id: str
    name: str
    score: int
    severity: Severity
    deviations: List[Deviation] = field(default_factory=list)


@dataclass
class AlertPreview:
    date_label: str
    monitored_count: int
    alerts: List[CompanyAlertPreview]


class AlertPreferencesService:
    """Service for consultant alert preferences."""

    def __init__(self, repository: AlertRepositoryProtocol | None = None):
        self.repository = repository or AlertRepository()

    def list_by_consultant(self, consultant_id: str) -> List[AlertPreference]:
        return self.repository.list_by_consultant(consultant_id)

    def list_by_company(self, company_id: str) -> List[AlertPreference]:
        return self.repository.list_by_company(company_id)

    def upsert(self, data: Dict[str, Any]) -> AlertPreference:
        return self.repository.upsert(with_defaults(data))

    def bulk_upsert(self, items: Iterable[Dict[str, Any]]) -> List[AlertPreference]:
        values = [with_defaults(item) for item in items]
        if not values:
            return []
        saved = self.repository.bulk_upsert(values)
        alerts_logger.info("Alert preferences saved", count=len(saved))
        return saved

    def delete(self, preference_id: str) -> bool:
        return self.repository.delete(preference_id)

    def build_preview(
        self,
        consultant_id: str,
        companies: Iterable[Company],
        thresholds: Optional[Thresholds] = None,
        now: Optional[datetime] = None,
    ) -> AlertPreview:
        """
        Scores every tracked company of the consultant and sorts by score, highest first.
        Companies without deviations are left out.
        """
        thresholds = thresholds or default_thresholds()
        prefs = {p.company_id: p for p in self.repository.list_by_consultant(consultant_id)}

        monitored = 0
        alerts: List[CompanyAlertPreview] = []
        for company in companies:
            pref = prefs.get(str(company.id))
            if pref is None or not is_tracking(pref):
                continue
            monitored += 1
            result = compute_urgency_score(thresholds, pref, company.name)
            if result.deviations:
                alerts.append(
                    CompanyAlertPreview(
                        company_id=str(company.id),
                        name=company.name,
                        score=result.score,
                        severity=get_severity(result.score),
                        deviations=result.deviations,
                    )
                )

        alerts.sort(key=lambda a: a.score, reverse=True)
        return AlertPreview(date_label=get_date_label(now), monitored_count=monitored, alerts=alerts)
