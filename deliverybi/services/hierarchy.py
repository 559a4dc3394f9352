"""
Controlling rollup: company → brand → address → channel.

Rows from ``get_controlling_metrics`` are summed bottom-up at portal level and
then folded into address, store and company totals. Derived ratios are only
computed after summing so every level stays consistent with its children.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass, field, fields
from typing import Dict, Iterable, List, Literal, Mapping, Optional

from deliverybi.domain.channels import PORTAL_IDS, portal_to_channel
from deliverybi.domain.models import DimStore, HierarchyDimensions

RowLevel = Literal["company", "brand", "address", "channel"]

_GLOVO_PORTALS = (PORTAL_IDS["GLOVO"], PORTAL_IDS["GLOVO_NEW"])


# -----------------------------------------------------------------------------
# 1) Métricas base (sumables)
# -----------------------------------------------------------------------------

@dataclass
class BaseMetrics:
    ventas: float = 0.0
    pedidos: float = 0.0
    nuevos: float = 0.0
    descuentos: float = 0.0
    reembolsos: float = 0.0
    promoted_orders: float = 0.0
    ad_spent: float = 0.0
    ad_revenue: float = 0.0
    impressions: float = 0.0
    clicks: float = 0.0
    ad_orders: float = 0.0
    glovo_rating_sum: float = 0.0
    glovo_reviews: float = 0.0
    uber_rating_sum: float = 0.0
    uber_reviews: float = 0.0
    delivery_time_sum: float = 0.0
    delivery_time_count: float = 0.0

    def add(self, other: "BaseMetrics") -> None:
        for f in fields(self):
            setattr(self, f.name, getattr(self, f.name) + getattr(other, f.name))


@dataclass
class AggregatedMetrics:
    by_portal: Dict[str, BaseMetrics] = field(default_factory=dict)
    by_address: Dict[str, BaseMetrics] = field(default_factory=dict)
    by_store: Dict[str, BaseMetrics] = field(default_factory=dict)
    by_company: Dict[str, BaseMetrics] = field(default_factory=dict)


def _num(row: Mapping, key: str) -> float:
    value = row.get(key)
    return float(value) if value else 0.0


def aggregate_rpc_metrics(rows: Iterable[Mapping]) -> AggregatedMetrics:
    agg = AggregatedMetrics()

    for row in rows:
        portal_id = str(row.get("pfk_id_portal"))
        key = (
            f"{row.get('pfk_id_company')}::{row.get('pfk_id_store')}"
            f"::{row.get('pfk_id_store_address')}::{portal_id}"
        )
        m = agg.by_portal.setdefault(key, BaseMetrics())
        m.ventas += _num(row, "ventas")
        m.pedidos += _num(row, "pedidos")
        m.nuevos += _num(row, "nuevos")
        m.descuentos += _num(row, "descuentos")
        m.reembolsos += _num(row, "reembolsos")
        m.promoted_orders += _num(row, "promoted_orders")
        m.ad_spent += _num(row, "ad_spent")
        m.ad_revenue += _num(row, "ad_revenue")
        m.impressions += _num(row, "impressions")
        m.clicks += _num(row, "clicks")
        m.ad_orders += _num(row, "ad_orders")

        avg_rating = _num(row, "avg_rating")
        total_reviews = _num(row, "total_reviews")
        if portal_id in _GLOVO_PORTALS:
            m.glovo_rating_sum += avg_rating * total_reviews
            m.glovo_reviews += total_reviews
        elif portal_id == PORTAL_IDS["UBEREATS"]:
            m.uber_rating_sum += avg_rating * total_reviews
            m.uber_reviews += total_reviews

        count = _num(row, "delivery_time_count")
        m.delivery_time_sum += _num(row, "avg_delivery_time") * count
        m.delivery_time_count += count

    for key, m in agg.by_portal.items():
        company_id, store_id, address_id, _ = key.split("::")
        agg.by_address.setdefault(f"{company_id}::{store_id}::{address_id}", BaseMetrics()).add(m)
    for key, m in agg.by_address.items():
        company_id, store_id, _ = key.split("::")
        agg.by_store.setdefault(f"{company_id}::{store_id}", BaseMetrics()).add(m)
    for key, m in agg.by_store.items():
        company_id = key.split("::")[0]
        agg.by_company.setdefault(company_id, BaseMetrics()).add(m)

    return agg


# -----------------------------------------------------------------------------
# 2) Métricas finales (derivadas)
# -----------------------------------------------------------------------------

@dataclass
class HierarchyMetrics:
    ventas: float = 0.0
    ventas_change: float = 0.0
    pedidos: float = 0.0
    ticket_medio: float = 0.0
    nuevos_clientes: float = 0.0
    porcentaje_nuevos: float = 0.0
    descuentos: float = 0.0
    reembolsos: float = 0.0
    promoted_orders: float = 0.0
    ad_spent: float = 0.0
    ad_revenue: float = 0.0
    roas: float = 0.0
    impressions: float = 0.0
    clicks: float = 0.0
    ad_orders: float = 0.0
    rating_glovo: float = 0.0
    reviews_glovo: float = 0.0
    rating_uber: float = 0.0
    reviews_uber: float = 0.0
    avg_delivery_time: float = 0.0


def _div(a: float, b: float) -> float:
    return a / b if b > 0 else 0.0


def to_final_metrics(base: Optional[BaseMetrics], prev: Optional[BaseMetrics]) -> HierarchyMetrics:
    if base is None:
        return HierarchyMetrics()
    prev_ventas = prev.ventas if prev else 0.0
    return HierarchyMetrics(
        ventas=base.ventas,
        ventas_change=_div(base.ventas - prev_ventas, prev_ventas) * 100,
        pedidos=base.pedidos,
        ticket_medio=_div(base.ventas, base.pedidos),
        nuevos_clientes=base.nuevos,
        porcentaje_nuevos=_div(base.nuevos, base.pedidos) * 100,
        descuentos=base.descuentos,
        reembolsos=base.reembolsos,
        promoted_orders=base.promoted_orders,
        ad_spent=base.ad_spent,
        ad_revenue=base.ad_revenue,
        roas=_div(base.ad_revenue, base.ad_spent),
        impressions=base.impressions,
        clicks=base.clicks,
        ad_orders=base.ad_orders,
        rating_glovo=_div(base.glovo_rating_sum, base.glovo_reviews),
        reviews_glovo=base.glovo_reviews,
        rating_uber=_div(base.uber_rating_sum, base.uber_reviews),
        reviews_uber=base.uber_reviews,
        avg_delivery_time=_div(base.delivery_time_sum, base.delivery_time_count),
    )


@dataclass
class HierarchyDataRow:
    id: str
    level: RowLevel
    name: str
    company_id: str
    metrics: HierarchyMetrics
    parent_id: Optional[str] = None
    brand_id: Optional[str] = None
    channel_id: Optional[str] = None


# -----------------------------------------------------------------------------
# 3) Construcción de filas
# -----------------------------------------------------------------------------

def _sum_keys(source: Dict[str, BaseMetrics], keys: Iterable[str]) -> Optional[BaseMetrics]:
    result: Optional[BaseMetrics] = None
    for key in keys:
        m = source.get(key)
        if m is not None:
            if result is None:
                result = BaseMetrics()
            result.add(m)
    return result


def _address_to_store(current: AggregatedMetrics, previous: AggregatedMetrics) -> Dict[str, str]:
    mapping: Dict[str, str] = {}
    for agg in (current, previous):
        for key in agg.by_portal:
            _, store_id, address_id, _ = key.split("::")
            if address_id and store_id and address_id not in mapping:
                mapping[address_id] = store_id
    return mapping


@dataclass(frozen=True)
class RowRef:
    """Partes de un id de fila de la jerarquía."""

    level: RowLevel
    company_id: str
    brand_id: Optional[str] = None
    address_id: Optional[str] = None
    portal_id: Optional[str] = None

    @property
    def row_id(self) -> str:
        if self.level == "company":
            return f"company-{self.company_id}"
        if self.level == "brand":
            return f"brand::{self.company_id}::{self.brand_id}"
        if self.level == "address":
            return f"address::{self.company_id}::{self.address_id}"
        return f"channel::{self.company_id}::{self.address_id}::{self.portal_id}"


def parse_row_id(row_id: str) -> RowRef:
    """
    ``company-1``, ``brand::1::10``, ``address::1::100`` o
    ``channel::1::100::E22BC362``. Cualquier otra forma es un ``ValueError``.
    """
    if row_id.startswith("company-") and len(row_id) > len("company-"):
        return RowRef(level="company", company_id=row_id[len("company-"):])
    parts = row_id.split("::")
    if parts[0] == "brand" and len(parts) == 3 and all(parts[1:]):
        return RowRef(level="brand", company_id=parts[1], brand_id=parts[2])
    if parts[0] == "address" and len(parts) == 3 and all(parts[1:]):
        return RowRef(level="address", company_id=parts[1], address_id=parts[2])
    if parts[0] == "channel" and len(parts) == 4 and all(parts[1:]):
        return RowRef(level="channel", company_id=parts[1], address_id=parts[2], portal_id=parts[3])
    raise ValueError(f"Id de fila inválido: {row_id}")


def build_hierarchy(
    dimensions: HierarchyDimensions,
    current: AggregatedMetrics,
    previous: AggregatedMetrics,
) -> List[HierarchyDataRow]:
    address_to_store = _address_to_store(current, previous)
    rows: List[HierarchyDataRow] = []

    for company in dimensions.companies:
        cid = str(company.id)
        rows.append(
            HierarchyDataRow(
                id=f"company-{cid}",
                level="company",
                name=company.name,
                company_id=cid,
                metrics=to_final_metrics(current.by_company.get(cid), previous.by_company.get(cid)),
            )
        )

    for store in dimensions.stores:
        key = f"{store.company_id}::{store.id}"
        cur, prev = current.by_store.get(key), previous.by_store.get(key)
        if store.deleted and cur is None and prev is None:
            continue
        rows.append(
            HierarchyDataRow(
                id=f"brand::{store.company_id}::{store.id}",
                level="brand",
                name=store.name,
                parent_id=f"company-{store.company_id}",
                company_id=str(store.company_id),
                brand_id=str(store.id),
                metrics=to_final_metrics(cur, prev),
            )
        )

    for address in dimensions.addresses:
        all_ids = address.all_ids or [address.id]
        mapped_store = next((address_to_store[a] for a in all_ids if a in address_to_store), None)
        if mapped_store is None:
            mapped_store = address.store_id
        address_row_id = f"address::{address.company_id}::{address.id}"

        if mapped_store:
            parent_store: Optional[DimStore] = next(
                (s for s in dimensions.stores if s.id == mapped_store and s.company_id == address.company_id),
                None,
            )
            parent_id = (
                f"brand::{parent_store.company_id}::{parent_store.id}"
                if parent_store
                else f"company-{address.company_id}"
            )
            prefix = f"{address.company_id}::{mapped_store}"
            address_keys = [f"{prefix}::{a}" for a in all_ids]
            cur = _sum_keys(current.by_address, address_keys)
            prev = _sum_keys(previous.by_address, address_keys)
            if address.deleted and cur is None and prev is None:
                continue

            rows.append(
                HierarchyDataRow(
                    id=address_row_id,
                    level="address",
                    name=address.name,
                    parent_id=parent_id,
                    company_id=str(address.company_id),
                    brand_id=parent_store.id if parent_store else None,
                    metrics=to_final_metrics(cur, prev),
                )
            )

            for portal in dimensions.portals:
                portal_keys = [f"{k}::{portal.id}" for k in address_keys]
                p_cur = _sum_keys(current.by_portal, portal_keys)
                p_prev = _sum_keys(previous.by_portal, portal_keys)
                if p_cur is None and p_prev is None:
                    continue
                rows.append(
                    HierarchyDataRow(
                        id=f"channel::{address.company_id}::{address.id}::{portal.id}",
                        level="channel",
                        name=portal.name,
                        parent_id=address_row_id,
                        company_id=str(address.company_id),
                        brand_id=parent_store.id if parent_store else None,
                        channel_id=portal_to_channel(portal.id),
                        metrics=to_final_metrics(p_cur, p_prev),
                    )
                )
        else:
            if address.deleted:
                continue
            first_store = next((s for s in dimensions.stores if s.company_id == address.company_id), None)
            rows.append(
                HierarchyDataRow(
                    id=address_row_id,
                    level="address",
                    name=address.name,
                    parent_id=(
                        f"brand::{first_store.company_id}::{first_store.id}"
                        if first_store
                        else f"company-{address.company_id}"
                    ),
                    company_id=str(address.company_id),
                    brand_id=first_store.id if first_store else None,
                    metrics=HierarchyMetrics(),
                )
            )

    return rows


# -----------------------------------------------------------------------------
# 4) Fila de presentación
# -----------------------------------------------------------------------------

@dataclass
class ControllingRow:
    id: str
    level: RowLevel
    name: str
    company_id: str
    parent_id: Optional[str] = None
    brand_id: Optional[str] = None
    channel_id: Optional[str] = None
    # rendimiento
    ventas: float = 0.0
    ventas_change: float = 0.0
    pedidos: float = 0.0
    ticket_medio: float = 0.0
    nuevos_clientes: float = 0.0
    porcentaje_nuevos: float = 0.0
    recurrentes_clientes: float = 0.0
    porcentaje_recurrentes: float = 0.0
    # publicidad
    inversion_ads: float = 0.0
    ads_percentage: float = 0.0
    roas: float = 0.0
    impressions: float = 0.0
    clicks: float = 0.0
    ad_orders: float = 0.0
    # promociones
    inversion_promos: float = 0.0
    promos_percentage: float = 0.0
    promos_roas: float = 0.0
    organic_orders: float = 0.0
    # reembolsos
    reembolsos: float = 0.0
    # reseñas y operaciones
    rating_glovo: float = 0.0
    reviews_glovo: float = 0.0
    rating_uber: float = 0.0
    reviews_uber: float = 0.0
    avg_delivery_time: float = 0.0

    def to_dict(self) -> dict:
        return asdict(self)


def transform_row(row: HierarchyDataRow) -> ControllingRow:
    m = row.metrics
    recurrentes = m.pedidos - m.nuevos_clientes
    return ControllingRow(
        id=row.id,
        level=row.level,
        name=row.name,
        company_id=row.company_id,
        parent_id=row.parent_id,
        brand_id=row.brand_id,
        channel_id=row.channel_id,
        ventas=m.ventas,
        ventas_change=m.ventas_change,
        pedidos=m.pedidos,
        ticket_medio=m.ticket_medio,
        nuevos_clientes=m.nuevos_clientes,
        porcentaje_nuevos=m.porcentaje_nuevos,
        recurrentes_clientes=recurrentes,
        porcentaje_recurrentes=_div(recurrentes, m.pedidos) * 100,
        inversion_ads=m.ad_spent,
        ads_percentage=_div(m.ad_spent, m.ventas) * 100,
        roas=m.roas,
        impressions=m.impressions,
        clicks=m.clicks,
        ad_orders=m.ad_orders,
        inversion_promos=m.descuentos,
        promos_percentage=_div(m.descuentos, m.ventas) * 100,
        promos_roas=_div(m.ventas, m.descuentos),
        organic_orders=_div(m.pedidos - m.promoted_orders, m.pedidos) * 100,
        reembolsos=m.reembolsos,
        rating_glovo=m.rating_glovo,
        reviews_glovo=m.reviews_glovo,
        rating_uber=m.rating_uber,
        reviews_uber=m.reviews_uber,
        avg_delivery_time=m.avg_delivery_time,
    )
