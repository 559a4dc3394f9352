"""
Objetivos estratégicos: cálculo de progreso, salud y proyección,
CRUD y enlaces públicos de solo lectura.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass
from datetime import date, datetime, timezone
from typing import Any, Dict, List, Literal, Optional, Sequence

from fastapi import HTTPException, status

from deliverybi.core.config import settings
from deliverybi.core.logging import api_logger
from deliverybi.core.security import create_share_token, decode_share_token
from deliverybi.domain.models import ObjectiveShareLink, ObjectiveSnapshot, StrategicObjective
from deliverybi.repositories.objective_repository import ObjectiveRepository
from deliverybi.repositories.protocols import ObjectiveRepositoryProtocol

HealthStatus = Literal["on_track", "at_risk", "off_track", "completed", "exceeded"]
TrendDirection = Literal["up", "down", "stable"]

MAINTAIN_TOLERANCE = 0.05
MAINTAIN_MAX_DEVIATION = 0.2
STABLE_VELOCITY = 0.01


# -----------------------------------------------------------------------------
# 1) Cálculos de progreso
# -----------------------------------------------------------------------------

def calculate_simple_progress(current: Optional[float], target: Optional[float]) -> int:
    if current is None or not target:
        return 0
    return min(int(round(current / target * 100)), 100)


def calculate_progress(current: float, baseline: float, target: float, direction: str) -> float:
    """
    Porcentaje de avance desde ``baseline`` hacia ``target``.

    ``maintain`` da 100 dentro de ±5% del objetivo y cae linealmente hasta 0
    al alejarse otro 20%.
    """
    if baseline == target:
        return 100.0 if current == target else 0.0

    if direction == "increase":
        return max(0.0, (current - baseline) / (target - baseline) * 100)
    if direction == "decrease":
        return max(0.0, (baseline - current) / (baseline - target) * 100)
    if direction == "maintain":
        tolerance = target * MAINTAIN_TOLERANCE
        deviation = abs(current - target)
        if deviation <= tolerance:
            return 100.0
        max_deviation = target * MAINTAIN_MAX_DEVIATION
        if max_deviation == 0:
            return 0.0
        return max(0.0, (1 - (deviation - tolerance) / max_deviation) * 100)
    return 0.0


def calculate_expected_progress(days_elapsed: int, total_days: int) -> float:
    if total_days <= 0:
        return 100.0
    return min(100.0, days_elapsed / total_days * 100)


def calculate_health_status(progress: float, expected: float, objective_status: str) -> HealthStatus:
    if objective_status == "completed":
        return "exceeded" if progress >= 110 else "completed"
    if progress >= 110:
        return "exceeded"
    if progress >= 100:
        return "completed"
    if expected <= 0:
        return "on_track" if progress > 0 else "off_track"

    ratio = progress / expected
    if ratio >= 0.9:
        return "on_track"
    if ratio >= 0.7:
        return "at_risk"
    return "off_track"


def calculate_velocity(snapshots: Sequence[ObjectiveSnapshot]) -> Optional[float]:
    """Pendiente por mínimos cuadrados del valor del KPI por día."""
    if len(snapshots) < 2:
        return None

    ordered = sorted(snapshots, key=lambda s: s.snapshot_date)
    first = ordered[0].snapshot_date
    n = len(ordered)
    sum_x = sum_y = sum_xy = sum_x2 = 0.0
    for s in ordered:
        x = float((s.snapshot_date - first).days)
        y = s.kpi_value
        sum_x += x
        sum_y += y
        sum_xy += x * y
        sum_x2 += x * x

    denominator = n * sum_x2 - sum_x * sum_x
    if denominator == 0:
        return None
    return (n * sum_xy - sum_x * sum_y) / denominator


def calculate_trend(velocity: Optional[float], direction: str) -> TrendDirection:
    if velocity is None or abs(velocity) < STABLE_VELOCITY:
        return "stable"
    if direction == "decrease":
        return "up" if velocity < 0 else "down"
    return "up" if velocity > 0 else "down"


def calculate_projected_value(current: float, velocity: Optional[float], days_remaining: int) -> Optional[float]:
    if velocity is None or days_remaining <= 0:
        return None
    return current + velocity * days_remaining


def calculate_will_complete(projected: Optional[float], target: float, direction: str) -> bool:
    if projected is None:
        return False
    if direction == "increase":
        return projected >= target
    if direction == "decrease":
        return projected <= target
    if direction == "maintain":
        return abs(projected - target) <= target * MAINTAIN_TOLERANCE
    return False


@dataclass
class ObjectiveProgress:
    current_value: Optional[float]
    progress_percentage: Optional[float]
    expected_progress: Optional[float]
    health_status: HealthStatus
    velocity: Optional[float]
    projected_value: Optional[float]
    will_complete: bool
    trend: TrendDirection
    days_elapsed: int
    days_remaining: int
    total_days: int


def _as_date(value: Any) -> Optional[date]:
    if value is None:
        return None
    if isinstance(value, datetime):
        return value.date()
    return value


def get_objective_progress(
    objective: StrategicObjective,
    current_value: Optional[float] = None,
    snapshots: Sequence[ObjectiveSnapshot] = (),
    today: Optional[date] = None,
) -> ObjectiveProgress:
    """
    Estado completo de un objetivo a ``today``.
    Sin valor actual se usa ``kpi_current_value``.
    """
    today = today or date.today()
    current = current_value if current_value is not None else objective.kpi_current_value
    baseline = objective.baseline_value or 0.0
    target = objective.kpi_target_value or 0.0
    direction = objective.target_direction or "increase"

    start = _as_date(objective.baseline_date) or _as_date(objective.created_at) or today
    evaluation = _as_date(objective.evaluation_date)
    days_elapsed = (today - start).days
    days_remaining = (evaluation - today).days if evaluation else 0
    total_days = days_elapsed + days_remaining

    if current is None or target == 0:
        return ObjectiveProgress(
            current_value=current,
            progress_percentage=None,
            expected_progress=None,
            health_status="completed" if objective.status == "completed" else "off_track",
            velocity=None,
            projected_value=None,
            will_complete=False,
            trend="stable",
            days_elapsed=days_elapsed,
            days_remaining=days_remaining,
            total_days=total_days,
        )

    progress = calculate_progress(current, baseline, target, direction)
    expected = calculate_expected_progress(days_elapsed, total_days)
    velocity = calculate_velocity(snapshots)
    projected = calculate_projected_value(current, velocity, days_remaining)

    return ObjectiveProgress(
        current_value=current,
        progress_percentage=progress,
        expected_progress=expected,
        health_status=calculate_health_status(progress, expected, objective.status),
        velocity=velocity,
        projected_value=projected,
        will_complete=calculate_will_complete(projected, target, direction),
        trend=calculate_trend(velocity, direction),
        days_elapsed=days_elapsed,
        days_remaining=days_remaining,
        total_days=total_days,
    )


# -----------------------------------------------------------------------------
# 2) Enlaces compartidos
# -----------------------------------------------------------------------------

def _aware(value: datetime) -> datetime:
    return value if value.tzinfo is not None else value.replace(tzinfo=timezone.utc)


def is_share_link_valid(link: ObjectiveShareLink, now: Optional[datetime] = None) -> tuple[bool, Optional[str]]:
    if not link.is_active:
        return False, "El enlace está desactivado."
    if link.expires_at is not None:
        current = _aware(now or datetime.now(timezone.utc))
        if _aware(link.expires_at) < current:
            return False, "El enlace ha caducado."
    return True, None


def is_email_allowed(link: ObjectiveShareLink, email: str) -> bool:
    if not link.allowed_emails:
        return True
    return any(allowed.lower() == email.lower() for allowed in link.allowed_emails)


def get_share_link_url(token: str) -> str:
    return f"{settings.SHARE_LINK_BASE_URL.rstrip('/')}/shared/objective/{token}"


# -----------------------------------------------------------------------------
# 3) Servicio
# -----------------------------------------------------------------------------

def _not_found() -> HTTPException:
    return HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Objetivo no encontrado.")


class ObjectiveService:
    """Service for strategic objectives and their public share links."""

    def __init__(self, repository: ObjectiveRepositoryProtocol | None = None):
        self.repository = repository or ObjectiveRepository()

    # Objetivos -----------------------------------------------------------------

    def list_objectives(
        self,
        company_ids: Optional[Sequence[str]] = None,
        brand_ids: Optional[Sequence[str]] = None,
        address_ids: Optional[Sequence[str]] = None,
        horizon: Optional[str] = None,
        status: Optional[str] = None,
    ) -> List[StrategicObjective]:
        return self.repository.list_objectives(company_ids, brand_ids, address_ids, horizon, status)

    def get(self, objective_id: str) -> StrategicObjective:
        objective = self.repository.get(objective_id)
        if objective is None:
            raise _not_found()
        return objective

    def create(self, data: Dict[str, Any]) -> StrategicObjective:
        objective = self.repository.create(data)
        api_logger.info("Objective created", objective_id=objective.id, company_id=objective.company_id)
        return objective

    def update(self, objective_id: str, data: Dict[str, Any]) -> StrategicObjective:
        if data.get("status") == "completed" and "completed_at" not in data:
            data = dict(data, completed_at=datetime.now(timezone.utc))
        objective = self.repository.update(objective_id, data)
        if objective is None:
            raise _not_found()
        return objective

    def reorder(self, orders: Sequence[tuple[str, int]]) -> None:
        self.repository.update_display_order(list(orders))

    def delete(self, objective_id: str) -> None:
        if not self.repository.delete(objective_id):
            raise _not_found()

    def get_progress(self, objective_id: str, today: Optional[date] = None) -> ObjectiveProgress:
        objective = self.get(objective_id)
        snapshots = self.repository.get_snapshots(objective_id)
        return get_objective_progress(objective, snapshots=snapshots, today=today)

    # Enlaces -------------------------------------------------------------------

    def get_share_link(self, objective_id: str) -> Optional[ObjectiveShareLink]:
        return self.repository.get_share_link_by_objective(objective_id)

    def get_share_links(self, objective_ids: Sequence[str]) -> List[ObjectiveShareLink]:
        return self.repository.get_share_links_by_objectives(objective_ids)

    def create_share_link(
        self,
        objective_id: str,
        expires_at: Optional[datetime] = None,
        allowed_emails: Optional[Sequence[str]] = None,
    ) -> ObjectiveShareLink:
        """Un único enlace por objetivo; un segundo intento devuelve 409."""
        self.get(objective_id)
        if self.repository.get_share_link_by_objective(objective_id) is not None:
            raise HTTPException(
                status_code=status.HTTP_409_CONFLICT,
                detail="El objetivo ya tiene un enlace compartido.",
            )
        token = create_share_token(objective_id=objective_id)
        link = self.repository.create_share_link(objective_id, token, expires_at, allowed_emails)
        api_logger.info("Share link created", objective_id=objective_id)
        return link

    def update_share_link(self, link_id: str, data: Dict[str, Any]) -> ObjectiveShareLink:
        link = self.repository.update_share_link(link_id, data)
        if link is None:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Enlace no encontrado.")
        return link

    def regenerate_share_link(self, objective_id: str) -> ObjectiveShareLink:
        link = self.repository.get_share_link_by_objective(objective_id)
        if link is None:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Enlace no encontrado.")
        token = create_share_token(objective_id=objective_id)
        return self.update_share_link(link.id, {"token": token})

    def delete_share_link(self, link_id: str) -> None:
        if not self.repository.delete_share_link(link_id):
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Enlace no encontrado.")

    def resolve_shared(
        self,
        token: str,
        email: Optional[str] = None,
        now: Optional[datetime] = None,
        today: Optional[date] = None,
    ) -> Dict[str, Any]:
        """
        Vista pública de un objetivo a partir del token del enlace.

        Raises:
            HTTPException 401: token con firma inválida
            HTTPException 404: enlace u objetivo inexistente
            HTTPException 410: enlace desactivado o caducado
            HTTPException 403: email fuera de la lista permitida
        """
        claims = decode_share_token(token)
        link = self.repository.get_share_link_by_token(token)
        if link is None or link.objective_id != claims.objective_id:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Enlace no encontrado.")

        valid, reason = is_share_link_valid(link, now)
        if not valid:
            raise HTTPException(status_code=status.HTTP_410_GONE, detail=reason)
        if link.allowed_emails and (not email or not is_email_allowed(link, email)):
            raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Email no autorizado.")

        objective = self.get(link.objective_id)
        self.repository.increment_share_link_view(token)
        progress = get_objective_progress(
            objective,
            snapshots=self.repository.get_snapshots(objective.id),
            today=today,
        )
        return {
            "objective": asdict(objective),
            "progress": asdict(progress),
            "view_count": link.view_count + 1,
        }
