"""
Repositorios para acceso a datos.
Encapsulan el SQL sobre las tablas del CRP Portal y las tablas propias de la aplicación.
"""

from .alert_repository import AlertRepository
from .campaign_repository import CampaignRepository
from .controlling_repository import ControllingRepository
from .dimension_repository import DimensionRepository
from .kpi_repository import KpiRepository
from .objective_repository import ObjectiveRepository
from .order_repository import OrderRepository
from .review_repository import ReviewRepository

__all__ = [
    "AlertRepository",
    "CampaignRepository",
    "ControllingRepository",
    "DimensionRepository",
    "KpiRepository",
    "ObjectiveRepository",
    "OrderRepository",
    "ReviewRepository",
]
