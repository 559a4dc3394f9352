"""
Proyecciones de ventas: configuración, ventas base y objetivos de ingresos,
publicidad y promociones por ámbito (empresa, marca, dirección).
"""

from __future__ import annotations

from typing import Any, Dict, Optional

from fastapi import HTTPException, status

from deliverybi.core.logging import api_logger
from deliverybi.domain.channels import ALL_CHANNELS
from deliverybi.domain.models import SalesProjection
from deliverybi.repositories.protocols import SalesProjectionRepositoryProtocol
from deliverybi.repositories.sales_projection_repository import SalesProjectionRepository

TARGET_FIELDS: tuple[str, ...] = ("target_revenue", "target_ads", "target_promos")

DEFAULT_CONFIG: Dict[str, Any] = {
    "activeChannels": [],
    "investmentMode": "global",
    "maxAdsPercent": 0,
    "maxPromosPercent": 0,
    "startDate": "",
    "endDate": "",
}


def with_config_defaults(config: Optional[Dict[str, Any]]) -> Dict[str, Any]:
    return {**DEFAULT_CONFIG, **(config or {})}


def with_baseline_defaults(baseline: Optional[Dict[str, float]]) -> Dict[str, float]:
    return {**{channel: 0 for channel in ALL_CHANNELS}, **(baseline or {})}


def _not_found() -> HTTPException:
    return HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Proyección no encontrada.")


class SalesProjectionService:

    def __init__(self, repository: SalesProjectionRepositoryProtocol | None = None):
        self.repository = repository or SalesProjectionRepository()

    def get_by_scope(
        self,
        company_id: str,
        brand_id: Optional[str] = None,
        address_id: Optional[str] = None,
    ) -> Optional[SalesProjection]:
        return self.repository.get_by_scope(company_id, brand_id, address_id)

    def get(self, projection_id: str) -> SalesProjection:
        projection = self.repository.get(projection_id)
        if projection is None:
            raise _not_found()
        return projection

    def upsert(self, data: Dict[str, Any], user_id: str) -> SalesProjection:
        """Actualiza la proyección del ámbito si existe; si no, la crea."""
        values = dict(data)
        if "config" in values:
            values["config"] = with_config_defaults(values["config"])
        if "baseline_revenue" in values:
            values["baseline_revenue"] = with_baseline_defaults(values["baseline_revenue"])

        existing = self.repository.get_by_scope(
            values["company_id"], values.get("brand_id"), values.get("address_id")
        )
        if existing is not None:
            projection = self.repository.update(existing.id, dict(values, updated_by=user_id))
            if projection is None:
                raise _not_found()
            api_logger.info("Sales projection updated", projection_id=projection.id)
            return projection

        values.setdefault("config", with_config_defaults(None))
        values.setdefault("baseline_revenue", with_baseline_defaults(None))
        for target in TARGET_FIELDS:
            values.setdefault(target, {})
        projection = self.repository.create(dict(values, created_by=user_id, updated_by=user_id))
        api_logger.info("Sales projection created", projection_id=projection.id, company_id=projection.company_id)
        return projection

    def update_targets(self, projection_id: str, targets: Dict[str, Any], user_id: str) -> SalesProjection:
        """Solo cambia los objetivos presentes en ``targets``."""
        values = {k: v for k, v in targets.items() if k in TARGET_FIELDS and v is not None}
        projection = self.repository.update(projection_id, dict(values, updated_by=user_id))
        if projection is None:
            raise _not_found()
        return projection

    def delete(self, projection_id: str) -> None:
        if not self.repository.delete(projection_id):
            raise _not_found()
        api_logger.info("Sales projection deleted", projection_id=projection_id)
