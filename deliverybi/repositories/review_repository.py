"""
Repositorio de reseñas.
Agregados y heatmap vía RPC; las etiquetas se leen de ``crp_portal__ft_review_tag``.
"""

from datetime import datetime
from typing import Dict, List, Optional, Sequence

from deliverybi.infra.db import call_rpc, fetch_all
from deliverybi.domain.channels import portal_to_channel
from deliverybi.domain.filters import DataFilters
from deliverybi.domain.models import ChannelReviewAggregate, Review, ReviewHeatmapCell

TAG_CHUNK_SIZE = 200
DEFAULT_RAW_LIMIT = 200


def _opt_float(value) -> Optional[float]:
    return float(value) if value is not None else None


def _to_datetime(value) -> Optional[datetime]:
    if value is None or isinstance(value, datetime):
        return value
    return datetime.fromisoformat(str(value).replace("Z", "+00:00"))


class ReviewRepository:

    @staticmethod
    def get_aggregation(filters: DataFilters) -> List[ChannelReviewAggregate]:
        rows = call_rpc("get_reviews_aggregation", filters.rpc_params(), timeout_ms=10000)
        return [
            ChannelReviewAggregate(
                channel=str(r["channel"]),
                total_reviews=int(r.get("total_reviews") or 0),
                avg_rating=float(r.get("avg_rating") or 0),
                positive_reviews=int(r.get("positive_reviews") or 0),
                negative_reviews=int(r.get("negative_reviews") or 0),
                rating_1=int(r.get("rating_1") or 0),
                rating_2=int(r.get("rating_2") or 0),
                rating_3=int(r.get("rating_3") or 0),
                rating_4=int(r.get("rating_4") or 0),
                rating_5=int(r.get("rating_5") or 0),
                avg_delivery_time_minutes=_opt_float(r.get("avg_delivery_time_minutes")),
            )
            for r in rows
        ]

    @staticmethod
    def get_heatmap(filters: DataFilters) -> List[ReviewHeatmapCell]:
        rows = call_rpc("get_reviews_heatmap", filters.rpc_params(), timeout_ms=10000)
        return [
            ReviewHeatmapCell(
                day_of_week=int(r["day_of_week"]),
                hour_of_day=int(r["hour_of_day"]),
                review_count=int(r.get("review_count") or 0),
            )
            for r in rows
        ]

    @staticmethod
    def get_raw(filters: DataFilters, limit: int = DEFAULT_RAW_LIMIT) -> List[Review]:
        params = filters.rpc_params()
        params["p_limit"] = int(limit)
        rows = call_rpc("get_reviews_raw", params, timeout_ms=10000)
        return [
            Review(
                id=str(r["pk_id_review"]),
                order_id=r.get("fk_id_order"),
                company_id=str(r["pfk_id_company"]) if r.get("pfk_id_company") is not None else None,
                brand_id=str(r["pfk_id_store"]) if r.get("pfk_id_store") is not None else None,
                address_id=(
                    str(r["pfk_id_store_address"]) if r.get("pfk_id_store_address") is not None else None
                ),
                portal_id=r.get("pfk_id_portal"),
                channel=portal_to_channel(r.get("pfk_id_portal")),
                created_at=_to_datetime(r.get("ts_creation_time")),
                rating=_opt_float(r.get("val_rating")),
                comment=r.get("txt_comment"),
                delivery_time_minutes=_opt_float(r.get("delivery_time_minutes")),
                refunds=_opt_float(r.get("amt_refunds")),
                total_price=_opt_float(r.get("amt_total_price")),
            )
            for r in rows
        ]

    @staticmethod
    def get_tags(review_ids: Sequence[str]) -> Dict[str, List[str]]:
        """
        Etiquetas crudas por reseña, consultadas en bloques de ``TAG_CHUNK_SIZE`` ids.
        """
        tags: Dict[str, List[str]] = {}
        ids = [str(i) for i in review_ids]
        for start in range(0, len(ids), TAG_CHUNK_SIZE):
            chunk = ids[start:start + TAG_CHUNK_SIZE]
            rows = fetch_all(
                """
                SELECT pk_id_review, pk_des_tag
                FROM crp_portal__ft_review_tag
                WHERE pk_id_review = ANY(:review_ids)
                """,
                {"review_ids": chunk},
                timeout_ms=5000,
            )
            for r in rows:
                tags.setdefault(str(r["pk_id_review"]), []).append(r["pk_des_tag"])
        return tags
