"""Expansión de marcas y restaurantes agrupados a todos sus ids."""

from __future__ import annotations

from dataclasses import replace

from deliverybi.domain.catalog import expand_ids
from deliverybi.domain.filters import DataFilters
from deliverybi.repositories.protocols import DimensionRepositoryProtocol


def expand_filters(filters: DataFilters, dimensions: DimensionRepositoryProtocol) -> DataFilters:
    """
    Devuelve una copia de ``filters`` con las marcas y direcciones seleccionadas
    sustituidas por todos los ids de su grupo.
    """
    company_ids = [str(c) for c in filters.company_ids or []]
    brand_ids = filters.brand_ids
    address_ids = filters.address_ids
    if brand_ids:
        brand_ids = expand_ids(brand_ids, dimensions.get_brands(company_ids or None))
    if address_ids:
        address_ids = expand_ids(address_ids, dimensions.get_restaurants(company_ids or None))
    return replace(filters, brand_ids=brand_ids or None, address_ids=address_ids or None)
