"""Repository protocol definitions used by domain services."""

from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, List, Optional, Protocol, Sequence

from deliverybi.domain.filters import DataFilters
from deliverybi.domain.models import (
    AdsAnomaly,
    AdsMetrics,
    AlertPreference,
    Area,
    Brand,
    ChannelReviewAggregate,
    Company,
    ConsultantProfile,
    HierarchyDimensions,
    ObjectiveShareLink,
    ObjectiveSnapshot,
    Order,
    OrderAnomaly,
    Portal,
    PortalOrderAggregate,
    PromoAnomaly,
    PromotionalCampaign,
    Restaurant,
    RestaurantKpis,
    Review,
    ReviewAnomaly,
    ReviewHeatmapCell,
    SalesProjection,
    StrategicObjective,
)


class DimensionRepositoryProtocol(Protocol):
    """Contract for CRP Portal dimension tables."""

    def get_companies(self, company_ids: Optional[Sequence[str]] = None) -> List[Company]: ...

    def get_brands(self, company_ids: Optional[Sequence[str]] = None) -> List[Brand]: ...

    def get_areas(self) -> List[Area]: ...

    def get_restaurants(
        self,
        company_ids: Optional[Sequence[str]] = None,
        area_ids: Optional[Sequence[str]] = None,
    ) -> List[Restaurant]: ...

    def get_portals(self) -> List[Portal]: ...

    def fetch_all_dimensions(self, company_ids: Sequence[str]) -> HierarchyDimensions: ...


class ControllingRepositoryProtocol(Protocol):

    def get_controlling_metrics(self, company_ids: Sequence[str], start: Any, end: Any) -> List[dict]: ...

    def get_customer_segments(self, company_ids: Sequence[str], start: Any, end: Any) -> List[dict]: ...


class OrderRepositoryProtocol(Protocol):
    """Contract for order head queries."""

    def get_orders(self, filters: DataFilters, limit: Optional[int] = None) -> List[Order]: ...

    def get_customer_orders(self, filters: DataFilters) -> List[Order]: ...

    def get_aggregated_by_portal(self, filters: DataFilters) -> List[PortalOrderAggregate]: ...

    def get_unique_customers(self, filters: DataFilters) -> int: ...


class ReviewRepositoryProtocol(Protocol):

    def get_aggregation(self, filters: DataFilters) -> List[ChannelReviewAggregate]: ...

    def get_heatmap(self, filters: DataFilters) -> List[ReviewHeatmapCell]: ...

    def get_raw(self, filters: DataFilters, limit: int = 200) -> List[Review]: ...

    def get_tags(self, review_ids: Sequence[str]) -> Dict[str, List[str]]: ...


class ObjectiveRepositoryProtocol(Protocol):
    """Contract for objectives, snapshots and share links."""

    def list_objectives(
        self,
        company_ids: Optional[Sequence[str]] = None,
        brand_ids: Optional[Sequence[str]] = None,
        address_ids: Optional[Sequence[str]] = None,
        horizon: Optional[str] = None,
        status: Optional[str] = None,
    ) -> List[StrategicObjective]: ...

    def get(self, objective_id: str) -> Optional[StrategicObjective]: ...

    def create(self, data: Dict[str, Any]) -> StrategicObjective: ...

    def update(self, objective_id: str, data: Dict[str, Any]) -> Optional[StrategicObjective]: ...

    def update_display_order(self, orders: Sequence[tuple[str, int]]) -> None: ...

    def delete(self, objective_id: str) -> bool: ...

    def get_snapshots(self, objective_id: str, limit: int = 10) -> List[ObjectiveSnapshot]: ...

    def get_share_link_by_objective(self, objective_id: str) -> Optional[ObjectiveShareLink]: ...

    def get_share_links_by_objectives(self, objective_ids: Sequence[str]) -> List[ObjectiveShareLink]: ...

    def get_share_link_by_token(self, token: str) -> Optional[ObjectiveShareLink]: ...

    def create_share_link(
        self,
        objective_id: str,
        token: str,
        expires_at: Optional[datetime] = None,
        allowed_emails: Optional[Sequence[str]] = None,
    ) -> ObjectiveShareLink: ...

    def update_share_link(self, link_id: str, data: Dict[str, Any]) -> Optional[ObjectiveShareLink]: ...

    def delete_share_link(self, link_id: str) -> bool: ...

    def increment_share_link_view(self, token: str) -> None: ...


class CampaignRepositoryProtocol(Protocol):

    def list_campaigns(
        self,
        restaurant_ids: Optional[Sequence[str]] = None,
        platforms: Optional[Sequence[str]] = None,
        start_date: Optional[str] = None,
        end_date: Optional[str] = None,
    ) -> List[PromotionalCampaign]: ...

    def get(self, campaign_id: str) -> Optional[PromotionalCampaign]: ...

    def create(self, data: Dict[str, Any]) -> PromotionalCampaign: ...

    def update(self, campaign_id: str, data: Dict[str, Any]) -> Optional[PromotionalCampaign]: ...

    def delete(self, campaign_id: str) -> bool: ...


class AdsRepositoryProtocol(Protocol):

    def get_daily_timeseries(self, filters: DataFilters) -> List[AdsMetrics]: ...

    def get_hourly_distribution(self, filters: DataFilters) -> List[AdsMetrics]: ...

    def get_weekly_heatmap(self, filters: DataFilters) -> List[AdsMetrics]: ...


class SalesProjectionRepositoryProtocol(Protocol):

    def get_by_scope(
        self,
        company_id: str,
        brand_id: Optional[str] = None,
        address_id: Optional[str] = None,
    ) -> Optional[SalesProjection]: ...

    def get(self, projection_id: str) -> Optional[SalesProjection]: ...

    def create(self, data: Dict[str, Any]) -> SalesProjection: ...

    def update(self, projection_id: str, data: Dict[str, Any]) -> Optional[SalesProjection]: ...

    def delete(self, projection_id: str) -> bool: ...


class AlertRepositoryProtocol(Protocol):
    """Contract for alert preferences, consultant profiles and anomaly RPCs."""

    def list_by_consultant(self, consultant_id: str) -> List[AlertPreference]: ...

    def list_by_company(self, company_id: str) -> List[AlertPreference]: ...

    def upsert(self, values: Dict[str, Any]) -> AlertPreference: ...

    def bulk_upsert(self, items: Sequence[Dict[str, Any]]) -> List[AlertPreference]: ...

    def delete(self, preference_id: str) -> bool: ...

    def get_consultant_profiles(self) -> List[ConsultantProfile]: ...

    def get_order_anomalies(self, threshold: float) -> List[OrderAnomaly]: ...

    def get_review_anomalies(self) -> List[ReviewAnomaly]: ...

    def get_ads_anomalies(self) -> List[AdsAnomaly]: ...

    def get_promo_anomalies(self) -> List[PromoAnomaly]: ...


class KpiRepositoryProtocol(Protocol):

    def get_restaurant_kpis(
        self,
        restaurant_ids: Optional[Sequence[str]] = None,
        start_date: Optional[str] = None,
        end_date: Optional[str] = None,
        period_type: Optional[str] = None,
    ) -> List[RestaurantKpis]: ...
