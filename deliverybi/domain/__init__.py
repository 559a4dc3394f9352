"""
Modelos de dominio y utilidades puras (fechas, canales, formato).
Capa de dominio independiente de la infraestructura.
"""

from .filters import DataFilters
from .models import (
    Area,
    Brand,
    Company,
    Order,
    PromotionalCampaign,
    Restaurant,
    Review,
    StrategicObjective,
)

__all__ = [
    "Area",
    "Brand",
    "Company",
    "DataFilters",
    "Order",
    "PromotionalCampaign",
    "Restaurant",
    "Review",
    "StrategicObjective",
]
