"""FastAPI dependency providers for service layer."""

from deliverybi.repositories.ads_repository import AdsRepository
from deliverybi.repositories.alert_repository import AlertRepository
from deliverybi.repositories.campaign_repository import CampaignRepository
from deliverybi.repositories.controlling_repository import ControllingRepository
from deliverybi.repositories.dimension_repository import DimensionRepository
from deliverybi.repositories.kpi_repository import KpiRepository
from deliverybi.repositories.objective_repository import ObjectiveRepository
from deliverybi.repositories.order_repository import OrderRepository
from deliverybi.repositories.review_repository import ReviewRepository
from deliverybi.repositories.sales_projection_repository import SalesProjectionRepository
from deliverybi.services.ads_service import AdsService
from deliverybi.services.alert_preferences_service import AlertPreferencesService
from deliverybi.services.campaigns_service import CampaignService
from deliverybi.services.catalog_service import CatalogService
from deliverybi.services.controlling_service import ControllingService
from deliverybi.services.customers_service import CustomerService
from deliverybi.services.daily_alerts import DailyAlertsService
from deliverybi.services.heatmap import HeatmapService
from deliverybi.services.maps import MapService
from deliverybi.services.objectives import ObjectiveService
from deliverybi.services.reviews_service import ReviewsService
from deliverybi.services.sales_projections import SalesProjectionService


def get_catalog_service() -> CatalogService:
    return CatalogService(DimensionRepository())


def get_controlling_service() -> ControllingService:
    return ControllingService(DimensionRepository(), ControllingRepository(), OrderRepository())


def get_reviews_service() -> ReviewsService:
    return ReviewsService(ReviewRepository(), DimensionRepository())


def get_heatmap_service() -> HeatmapService:
    return HeatmapService(OrderRepository(), DimensionRepository())


def get_map_service() -> MapService:
    return MapService(DimensionRepository(), KpiRepository(), OrderRepository())


def get_objective_service() -> ObjectiveService:
    return ObjectiveService(ObjectiveRepository())


def get_campaign_service() -> CampaignService:
    return CampaignService(CampaignRepository())


def get_alert_preferences_service() -> AlertPreferencesService:
    return AlertPreferencesService(AlertRepository())


def get_daily_alerts_service() -> DailyAlertsService:
    return DailyAlertsService(AlertRepository())


def get_customer_service() -> CustomerService:
    return CustomerService(OrderRepository(), DimensionRepository())


def get_ads_service() -> AdsService:
    return AdsService(AdsRepository(), DimensionRepository())


def get_sales_projection_service() -> SalesProjectionService:
    return SalesProjectionService(SalesProjectionRepository())
