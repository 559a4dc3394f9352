"""API routers module."""

from . import (
    ads,
    alerts,
    auth,
    campaigns,
    catalog,
    controlling,
    customers,
    health,
    heatmap,
    maps,
    objectives,
    reviews,
    sales_projections,
    share,
)

__all__ = [
    "ads",
    "alerts",
    "auth",
    "campaigns",
    "catalog",
    "controlling",
    "customers",
    "health",
    "heatmap",
    "maps",
    "objectives",
    "reviews",
    "sales_projections",
    "share",
]
