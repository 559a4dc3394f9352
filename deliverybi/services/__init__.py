"""
Servicios de dominio separados de las rutas.

Incluye el controlling jerárquico, reputación, mapas, objetivos, campañas y alertas
(con formateo opcional del mensaje diario vía LangChain + Gemini).
"""

from .alert_preferences_service import AlertPreferencesService  # noqa: F401
from .campaigns_service import CampaignService  # noqa: F401
from .catalog_service import CatalogService  # noqa: F401
from .controlling_service import ControllingService  # noqa: F401
from .daily_alerts import DailyAlertsService  # noqa: F401
from .heatmap import HeatmapService  # noqa: F401
from .maps import MapService  # noqa: F401
from .objectives import ObjectiveService  # noqa: F401
from .reviews_service import ReviewsService  # noqa: F401

__all__ = [
    "AlertPreferencesService",
    "CampaignService",
    "CatalogService",
    "ControllingService",
    "DailyAlertsService",
    "HeatmapService",
    "MapService",
    "ObjectiveService",
    "ReviewsService",
]
