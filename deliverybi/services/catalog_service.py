"""Catalog of companies, brands, areas and restaurants scoped to the caller."""

from __future__ import annotations

from typing import List, Optional, Sequence

from deliverybi.domain.models import Area, Brand, Company, Portal, Restaurant
from deliverybi.repositories.dimension_repository import DimensionRepository
from deliverybi.repositories.protocols import DimensionRepositoryProtocol


class CatalogService:
    """Service for the filter catalog."""

    def __init__(self, repository: DimensionRepositoryProtocol | None = None):
        self.repository = repository or DimensionRepository()

    def get_companies(self, company_ids: Optional[Sequence[str]] = None) -> List[Company]:
        return self.repository.get_companies(company_ids)

    def get_brands(self, company_ids: Optional[Sequence[str]] = None) -> List[Brand]:
        return self.repository.get_brands(company_ids)

    def get_areas(self) -> List[Area]:
        return self.repository.get_areas()

    def get_restaurants(
        self,
        company_ids: Optional[Sequence[str]] = None,
        area_ids: Optional[Sequence[str]] = None,
        brand_ids: Optional[Sequence[str]] = None,
    ) -> List[Restaurant]:
        restaurants = self.repository.get_restaurants(company_ids, area_ids)
        if brand_ids:
            brands = {str(b) for b in brand_ids}
            restaurants = [r for r in restaurants if r.brand_id in brands]
        return restaurants

    def get_portals(self) -> List[Portal]:
        return self.repository.get_portals()
