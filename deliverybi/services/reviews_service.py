"""
Reputación: agregados de reseñas por canal, comparación entre periodos,
mapa de calor de reseñas negativas y listado de reseñas con etiquetas.
"""

from __future__ import annotations

import re
from dataclasses import asdict, dataclass, field
from typing import Dict, List, Optional, Sequence

from deliverybi.core.logging import api_logger
from deliverybi.domain.dates import get_previous_period_range
from deliverybi.domain.filters import DataFilters
from deliverybi.domain.models import ChannelReviewAggregate, Review
from deliverybi.repositories.dimension_repository import DimensionRepository
from deliverybi.repositories.protocols import DimensionRepositoryProtocol, ReviewRepositoryProtocol
from deliverybi.repositories.review_repository import DEFAULT_RAW_LIMIT, ReviewRepository
from deliverybi.services.scope import expand_filters

TAG_CATEGORIES: tuple[str, ...] = ("producto", "servicio", "packaging", "precio", "cantidad")

# Claves en minúsculas, ya normalizadas
TAG_CATEGORY_MAP: Dict[str, str] = {
    # producto
    "tasty": "producto",
    "tasted bad": "producto",
    "quality": "producto",
    "not fresh": "producto",
    "freshness": "producto",
    "not so tasty": "producto",
    "perfectly cooked": "producto",
    "high-quality ingredients": "producto",
    "delicious options": "producto",
    "perfectly seasoned": "producto",
    "fresh ingredients": "producto",
    "authentic dishes": "producto",
    "unique flavours": "producto",
    "creative menu": "producto",
    "comfort food": "producto",
    "healthy options": "producto",
    "great for sharing": "producto",
    "great for one": "producto",
    "hidden gem": "producto",
    "upmarket": "producto",
    "consistent": "producto",
    # servicio
    "speed and reliability": "servicio",
    "communication": "servicio",
    "not followed order notes": "servicio",
    "missing or mistaken items": "servicio",
    "too slow": "servicio",
    "reliable service": "servicio",
    "missed order notes": "servicio",
    "convenient": "servicio",
    "accommodating": "servicio",
    # packaging
    "packaging quality": "packaging",
    "sustainable packaging": "packaging",
    "poorly packed": "packaging",
    "unsustainable packaging": "packaging",
    "nicely presented": "packaging",
    # precio
    "good value": "precio",
    "expensive": "precio",
    "not worth what it costs": "precio",
    "not worth the price": "precio",
    # cantidad
    "small portion size": "cantidad",
    "portion size": "cantidad",
    "perfect portions": "cantidad",
    "large portions": "cantidad",
}

_FIRST_WORD_CHAR = re.compile(r"^\w")


def normalize_tag_label(tag: str) -> str:
    """
    Glovo envía SCREAMING_SNAKE_CASE; Uber Eats ya viene legible.

    >>> normalize_tag_label("MISSING_OR_MISTAKEN_ITEMS")
    'Missing or mistaken items'
    >>> normalize_tag_label("Too slow")
    'Too slow'
    """
    if tag == tag.upper() and "_" in tag:
        text = tag.lower().replace("_", " ")
        return _FIRST_WORD_CHAR.sub(lambda m: m.group(0).upper(), text)
    return tag


def get_tag_category(tag: str) -> Optional[str]:
    return TAG_CATEGORY_MAP.get(tag.lower())


# -----------------------------------------------------------------------------
# 1) Agregados
# -----------------------------------------------------------------------------

@dataclass
class RatingDistribution:
    rating1: int = 0
    rating2: int = 0
    rating3: int = 0
    rating4: int = 0
    rating5: int = 0


@dataclass
class ChannelReviewSummary:
    channel: str
    total_reviews: int = 0
    avg_rating: float = 0.0
    positive_reviews: int = 0
    negative_reviews: int = 0
    positive_percent: float = 0.0
    negative_percent: float = 0.0
    avg_delivery_time: Optional[float] = None
    rating_distribution: RatingDistribution = field(default_factory=RatingDistribution)


@dataclass
class ReviewsAggregation:
    total_reviews: int = 0
    avg_rating: float = 0.0
    total_positive: int = 0
    total_negative: int = 0
    positive_percent: float = 0.0
    negative_percent: float = 0.0
    avg_delivery_time: Optional[float] = None
    rating_distribution: RatingDistribution = field(default_factory=RatingDistribution)
    by_channel: Dict[str, Optional[ChannelReviewSummary]] = field(
        default_factory=lambda: {"glovo": None, "ubereats": None, "justeat": None}
    )


def _pct(part: int, total: int) -> float:
    return part / total * 100 if total > 0 else 0.0


def aggregate_reviews(rows: Sequence[ChannelReviewAggregate]) -> ReviewsAggregation:
    """
    Combina las filas por canal de la RPC.
    La media de rating y el tiempo de entrega se ponderan por número de reseñas.
    """
    result = ReviewsAggregation()
    weighted_rating = 0.0
    delivery_sum = 0.0
    delivery_count = 0

    for row in rows:
        total = row.total_reviews
        result.total_reviews += total
        result.total_positive += row.positive_reviews
        result.total_negative += row.negative_reviews
        dist = result.rating_distribution
        dist.rating1 += row.rating_1
        dist.rating2 += row.rating_2
        dist.rating3 += row.rating_3
        dist.rating4 += row.rating_4
        dist.rating5 += row.rating_5
        weighted_rating += row.avg_rating * total

        delivery = row.avg_delivery_time_minutes
        if delivery is not None and delivery > 0:
            delivery_sum += delivery * total
            delivery_count += total

        if row.channel in ("glovo", "ubereats"):
            result.by_channel[row.channel] = ChannelReviewSummary(
                channel=row.channel,
                total_reviews=total,
                avg_rating=row.avg_rating,
                positive_reviews=row.positive_reviews,
                negative_reviews=row.negative_reviews,
                positive_percent=_pct(row.positive_reviews, total),
                negative_percent=_pct(row.negative_reviews, total),
                avg_delivery_time=round(delivery, 1) if delivery is not None and delivery > 0 else None,
                rating_distribution=RatingDistribution(
                    row.rating_1, row.rating_2, row.rating_3, row.rating_4, row.rating_5
                ),
            )

    if result.total_reviews > 0:
        result.avg_rating = weighted_rating / result.total_reviews
    result.positive_percent = _pct(result.total_positive, result.total_reviews)
    result.negative_percent = _pct(result.total_negative, result.total_reviews)
    if delivery_count > 0:
        result.avg_delivery_time = round(delivery_sum / delivery_count, 1)
    return result


def _change(current: float, previous: float) -> float:
    return (current - previous) / previous * 100 if previous > 0 else 0.0


def compute_changes(current: ReviewsAggregation, previous: ReviewsAggregation) -> Dict[str, float]:
    return {
        "total_reviews_change": _change(current.total_reviews, previous.total_reviews),
        "avg_rating_change": _change(current.avg_rating, previous.avg_rating),
        "positive_change": _change(current.total_positive, previous.total_positive),
        "negative_change": _change(current.total_negative, previous.total_negative),
    }


# -----------------------------------------------------------------------------
# 2) Servicio
# -----------------------------------------------------------------------------

class ReviewsService:
    """Service for the reputation screen."""

    def __init__(
        self,
        repository: ReviewRepositoryProtocol | None = None,
        dimensions: DimensionRepositoryProtocol | None = None,
    ):
        self.repository = repository or ReviewRepository()
        self.dimensions = dimensions or DimensionRepository()

    def get_aggregation(self, filters: DataFilters) -> ReviewsAggregation:
        return aggregate_reviews(self.repository.get_aggregation(expand_filters(filters, self.dimensions)))

    def get_comparison(self, filters: DataFilters) -> dict:
        """Periodo actual frente al periodo anterior de igual duración."""
        current_filters = expand_filters(filters, self.dimensions)
        previous_range = get_previous_period_range(filters.start_date, filters.end_date)
        previous_filters = DataFilters(
            start_date=previous_range.start,
            end_date=previous_range.end,
            company_ids=current_filters.company_ids,
            brand_ids=current_filters.brand_ids,
            address_ids=current_filters.address_ids,
            channel_ids=current_filters.channel_ids,
        )
        current = aggregate_reviews(self.repository.get_aggregation(current_filters))
        previous = aggregate_reviews(self.repository.get_aggregation(previous_filters))
        api_logger.info(
            "Reviews comparison built",
            current_reviews=current.total_reviews,
            previous_reviews=previous.total_reviews,
        )
        return {
            "current": asdict(current),
            "previous": asdict(previous),
            "changes": compute_changes(current, previous),
        }

    def get_heatmap(self, filters: DataFilters) -> List[dict]:
        cells = self.repository.get_heatmap(expand_filters(filters, self.dimensions))
        return [
            {"day_of_week": c.day_of_week, "hour_of_day": c.hour_of_day, "count": c.review_count}
            for c in cells
        ]

    def get_reviews(self, filters: DataFilters, limit: int = DEFAULT_RAW_LIMIT) -> List[dict]:
        """Reseñas con sus etiquetas normalizadas y la categoría de cada etiqueta."""
        reviews: List[Review] = self.repository.get_raw(expand_filters(filters, self.dimensions), limit)
        raw_tags = self.repository.get_tags([r.id for r in reviews]) if reviews else {}

        result = []
        for review in reviews:
            tags = [normalize_tag_label(t) for t in raw_tags.get(review.id, [])]
            review.tags = tags
            data = asdict(review)
            data["created_at"] = review.created_at.isoformat() if review.created_at else None
            data["tag_categories"] = {t: get_tag_category(t) for t in tags}
            result.append(data)
        return result
