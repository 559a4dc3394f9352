"""
Modelos de dominio y DTOs.
Reflejan las tablas del CRP Portal y las tablas propias de la aplicación
(objetivos, campañas, preferencias de alertas) sin depender de la infraestructura.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Any, Dict, List, Literal, Optional

CompanyStatus = Literal["Onboarding", "Cliente Activo", "Stand By", "PiP"]
VALID_COMPANY_STATUSES: tuple[str, ...] = ("Onboarding", "Cliente Activo", "Stand By", "PiP")

ObjectiveCategory = Literal[
    "finanzas", "operaciones", "clientes", "marca", "reputacion", "proveedores", "menu"
]
ObjectiveHorizon = Literal["short", "medium", "long"]
ObjectiveStatus = Literal["pending", "in_progress", "completed"]
ObjectivePriority = Literal["low", "medium", "high", "critical"]
TargetDirection = Literal["increase", "decrease", "maintain"]

CampaignPlatform = Literal["glovo", "ubereats", "justeat", "google_ads"]
CampaignStatus = Literal["scheduled", "active", "completed", "cancelled"]

PeriodType = Literal["daily", "weekly", "monthly"]


# -----------------------------------------------------------------------------
# 1) Dimensiones (snapshots mensuales del CRP Portal)
# -----------------------------------------------------------------------------

@dataclass
class Company:
    id: str
    external_id: int
    name: str
    slug: str
    status: Optional[str] = None
    key_account_manager: Optional[str] = None
    logo_url: Optional[str] = None
    is_active: bool = True
    created_at: Optional[str] = None
    updated_at: Optional[str] = None


@dataclass
class Brand:
    id: str
    external_id: int
    company_id: str
    name: str
    slug: str
    all_ids: List[str] = field(default_factory=list)
    logo_url: Optional[str] = None
    is_active: bool = True


@dataclass
class Area:
    id: str
    external_id: int
    name: str
    country: str = "ES"
    timezone: str = "Europe/Madrid"
    is_active: bool = True


@dataclass
class Restaurant:
    id: str
    external_id: int
    company_id: str
    brand_id: Optional[str]
    name: str
    address: Optional[str] = None
    area_id: Optional[str] = None
    all_ids: List[str] = field(default_factory=list)
    latitude: Optional[float] = None
    longitude: Optional[float] = None
    delivery_radius_km: Optional[float] = None
    active_channels: List[str] = field(default_factory=lambda: ["glovo", "ubereats", "justeat"])
    is_active: bool = True


@dataclass
class Portal:
    id: str
    name: str


# -----------------------------------------------------------------------------
# 2) Dimensiones para el controlling (con marca de borrado)
# -----------------------------------------------------------------------------

@dataclass
class DimCompany:
    id: str
    name: str
    status: Optional[str] = None
    key_account_manager: Optional[str] = None


@dataclass
class DimStore:
    id: str
    name: str
    company_id: str
    deleted: bool = False


@dataclass
class DimAddress:
    id: str
    name: str
    company_id: str
    store_id: Optional[str]
    all_ids: List[str] = field(default_factory=list)
    deleted: bool = False


@dataclass
class DimPortal:
    id: str
    name: str
    deleted: bool = False


@dataclass
class HierarchyDimensions:
    companies: List[DimCompany] = field(default_factory=list)
    stores: List[DimStore] = field(default_factory=list)
    addresses: List[DimAddress] = field(default_factory=list)
    portals: List[DimPortal] = field(default_factory=list)


# -----------------------------------------------------------------------------
# 3) Hechos: pedidos, KPIs, reseñas
# -----------------------------------------------------------------------------

@dataclass
class Order:
    id: str
    company_id: str
    brand_id: Optional[str]
    address_id: Optional[str]
    portal_id: Optional[str]
    channel: Optional[str]
    created_at: Optional[datetime]
    total_price: float = 0.0
    promotions: float = 0.0
    refunds: float = 0.0
    customer_id: Optional[str] = None
    is_new_customer: bool = False


@dataclass
class PortalOrderAggregate:
    """Suma de pedidos por portal en un periodo."""

    portal_id: str
    revenue: float
    orders: int
    discounts: float
    refunds: float
    unique_customers: int


@dataclass
class RestaurantKpis:
    id: str
    restaurant_id: str
    period_date: date
    period_type: PeriodType
    total_orders: int = 0
    total_revenue: float = 0.0
    avg_ticket: float = 0.0
    avg_delivery_time_min: Optional[float] = None
    avg_rating: Optional[float] = None
    new_customers: int = 0
    new_customer_pct: float = 0.0
    orders_glovo: int = 0
    orders_ubereats: int = 0
    orders_justeat: int = 0
    revenue_glovo: float = 0.0
    revenue_ubereats: float = 0.0
    revenue_justeat: float = 0.0
    incidence_count: int = 0
    incidence_rate: float = 0.0


@dataclass
class Review:
    id: str
    order_id: Optional[str]
    company_id: Optional[str]
    brand_id: Optional[str]
    address_id: Optional[str]
    portal_id: Optional[str]
    channel: Optional[str]
    created_at: Optional[datetime]
    rating: Optional[float]
    comment: Optional[str] = None
    delivery_time_minutes: Optional[float] = None
    refunds: Optional[float] = None
    total_price: Optional[float] = None
    tags: List[str] = field(default_factory=list)


@dataclass
class ChannelReviewAggregate:
    """Fila de la RPC ``get_reviews_aggregation``."""

    channel: str
    total_reviews: int = 0
    avg_rating: float = 0.0
    positive_reviews: int = 0
    negative_reviews: int = 0
    rating_1: int = 0
    rating_2: int = 0
    rating_3: int = 0
    rating_4: int = 0
    rating_5: int = 0
    avg_delivery_time_minutes: Optional[float] = None


@dataclass
class ReviewHeatmapCell:
    day_of_week: int
    hour_of_day: int
    review_count: int


# -----------------------------------------------------------------------------
# 4) Objetivos estratégicos
# -----------------------------------------------------------------------------

@dataclass
class StrategicObjective:
    id: str
    company_id: str
    title: str
    category: ObjectiveCategory
    objective_type_id: str
    horizon: ObjectiveHorizon = "short"
    status: ObjectiveStatus = "pending"
    responsible: Optional[str] = None
    brand_id: Optional[str] = None
    address_id: Optional[str] = None
    description: Optional[str] = None
    kpi_type: Optional[str] = None
    kpi_current_value: Optional[float] = None
    kpi_target_value: Optional[float] = None
    kpi_unit: Optional[str] = None
    baseline_value: Optional[float] = None
    baseline_date: Optional[date] = None
    target_direction: TargetDirection = "increase"
    priority: ObjectivePriority = "medium"
    is_archived: bool = False
    field_data: Optional[Dict[str, Any]] = None
    evaluation_date: Optional[date] = None
    completed_at: Optional[datetime] = None
    display_order: int = 0
    created_by: Optional[str] = None
    updated_by: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


@dataclass
class ObjectiveSnapshot:
    objective_id: str
    snapshot_date: date
    kpi_value: float


@dataclass
class ObjectiveShareLink:
    id: str
    objective_id: str
    token: str
    is_active: bool = True
    expires_at: Optional[datetime] = None
    view_count: int = 0
    allowed_emails: List[str] = field(default_factory=list)
    created_at: Optional[datetime] = None


# -----------------------------------------------------------------------------
# 5) Campañas promocionales
# -----------------------------------------------------------------------------

@dataclass
class PromotionalCampaign:
    id: str
    restaurant_id: str
    platform: CampaignPlatform
    campaign_type: str
    start_date: str
    end_date: str
    status: CampaignStatus = "scheduled"
    name: Optional[str] = None
    config: Dict[str, Any] = field(default_factory=dict)
    product_ids: List[str] = field(default_factory=list)
    metrics: Optional[Dict[str, Any]] = None
    created_by: Optional[str] = None
    updated_by: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


# -----------------------------------------------------------------------------
# 6) Alertas
# -----------------------------------------------------------------------------

@dataclass
class AlertPreference:
    id: str
    consultant_id: str
    company_id: str
    orders_enabled: bool = True
    reviews_enabled: bool = True
    ads_enabled: bool = True
    promos_enabled: bool = True
    slack_enabled: bool = True
    email_enabled: bool = False
    orders_threshold: Optional[float] = None
    reviews_threshold: Optional[float] = None
    ads_roas_threshold: Optional[float] = None
    promos_threshold: Optional[float] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


@dataclass
class ConsultantProfile:
    id: str
    email: str
    full_name: Optional[str]
    assigned_company_ids: List[str] = field(default_factory=list)
    role: str = "consultant"
    slack_user_id: Optional[str] = None


@dataclass
class AnomalyBase:
    company_id: str
    company_name: str
    store_name: str
    address_name: str
    channel: str
    key_account_manager: Optional[str] = None


@dataclass
class OrderAnomaly(AnomalyBase):
    yesterday_orders: int = 0
    yesterday_revenue: float = 0.0
    avg_orders_baseline: float = 0.0
    avg_revenue_baseline: float = 0.0
    orders_deviation_pct: float = 0.0
    revenue_deviation_pct: float = 0.0
    weeks_with_data: int = 0


@dataclass
class ReviewAnomaly(AnomalyBase):
    anomaly_type: str = ""
    yesterday_reviews: int = 0
    yesterday_avg_rating: float = 0.0
    yesterday_negative_count: int = 0
    baseline_avg_rating: float = 0.0
    baseline_avg_negative_count: float = 0.0
    rating_deviation_pct: float = 0.0
    negative_spike_pct: float = 0.0
    weeks_with_data: int = 0


@dataclass
class AdsAnomaly(AnomalyBase):
    anomaly_type: str = ""
    yesterday_ad_spent: float = 0.0
    yesterday_ad_revenue: float = 0.0
    yesterday_roas: float = 0.0
    yesterday_impressions: int = 0
    yesterday_clicks: int = 0
    yesterday_ad_orders: int = 0
    baseline_avg_ad_spent: float = 0.0
    baseline_avg_roas: float = 0.0
    baseline_avg_impressions: float = 0.0
    roas_deviation_pct: float = 0.0
    spend_deviation_pct: float = 0.0
    impressions_deviation_pct: float = 0.0
    weeks_with_data: int = 0


@dataclass
class PromoAnomaly(AnomalyBase):
    anomaly_type: str = ""
    yesterday_orders: int = 0
    yesterday_revenue: float = 0.0
    yesterday_promos: float = 0.0
    yesterday_promo_rate: float = 0.0
    baseline_avg_promos: float = 0.0
    baseline_avg_promo_rate: float = 0.0
    promo_rate_deviation_pct: float = 0.0
    promo_spend_deviation_pct: float = 0.0
    weeks_with_data: int = 0


# -----------------------------------------------------------------------------
# 7) Publicidad
# -----------------------------------------------------------------------------

@dataclass
class AdsMetrics:
    """Métricas de publicidad de un día, una hora o una celda día × hora."""

    impressions: int = 0
    clicks: int = 0
    orders: int = 0
    ad_spent: float = 0.0
    ad_revenue: float = 0.0
    day: Optional[date] = None
    hour_of_day: Optional[int] = None
    # ISODOW: lunes = 1, domingo = 7
    day_of_week: Optional[int] = None


# -----------------------------------------------------------------------------
# 8) Proyecciones de ventas
# -----------------------------------------------------------------------------

@dataclass
class SalesProjection:
    id: str
    company_id: str
    brand_id: Optional[str] = None
    address_id: Optional[str] = None
    config: Dict[str, Any] = field(default_factory=dict)
    baseline_revenue: Dict[str, float] = field(default_factory=dict)
    target_revenue: Dict[str, Any] = field(default_factory=dict)
    target_ads: Dict[str, Any] = field(default_factory=dict)
    target_promos: Dict[str, Any] = field(default_factory=dict)
    created_by: Optional[str] = None
    updated_by: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
