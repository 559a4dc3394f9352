"""
Repositorio del controlling.
La agregación pesada vive en la función ``get_controlling_metrics`` de Postgres.
"""

from datetime import date, timedelta
from typing import List, Sequence, Union

from deliverybi.infra.db import call_rpc
from deliverybi.domain.dates import ensure_date, format_date

DateLike = Union[date, str]


class ControllingRepository:

    @staticmethod
    def get_controlling_metrics(
        company_ids: Sequence[str],
        start: DateLike,
        end: DateLike,
    ) -> List[dict]:
        """
        Filas por (empresa, marca, dirección, portal) con ventas, pedidos,
        publicidad y reseñas del periodo.
        """
        params = {
            "p_company_ids": [str(c) for c in company_ids],
            "p_start_date": f"{format_date(start)}T00:00:00",
            "p_end_date": f"{format_date(end)}T23:59:59",
        }
        return call_rpc("get_controlling_metrics", params, timeout_ms=15000)

    @staticmethod
    def get_customer_segments(company_ids: Sequence[str], start: DateLike, end: DateLike) -> List[dict]:
        """
        Clientes nuevos, ocasionales y frecuentes por (empresa, marca, dirección, portal).
        La función recibe el fin de semana exclusivo: se pasa el día siguiente a ``end``.
        """
        params = {
            "p_company_ids": [str(c) for c in company_ids],
            "p_week_start": f"{format_date(start)}T00:00:00",
            "p_week_end": f"{(ensure_date(end) + timedelta(days=1)).isoformat()}T00:00:00",
        }
        return call_rpc("get_customer_segments", params, timeout_ms=15000)
