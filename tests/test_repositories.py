from __future__ import annotations

from datetime import date, datetime
from unittest.mock import patch

from deliverybi.domain.filters import DataFilters
from deliverybi.repositories.order_repository import OrderRepository


def _filters(**kwargs):
    return DataFilters(start_date=date(2026, 2, 1), end_date=date(2026, 2, 7), **kwargs)


def _order_row(**kwargs):
    row = {
        "pk_uuid_order": "a1",
        "pfk_id_company": 1,
        "pfk_id_store": 10,
        "pfk_id_store_address": 100,
        "pfk_id_portal": "E22BC362",
        "td_creation_time": "2026-02-02T13:10:00Z",
        "amt_total_price": 24.5,
        "amt_promotions": 3,
        "amt_refunds": None,
        "cod_id_customer": "c-1",
        "flg_customer_new": True,
    }
    row.update(kwargs)
    return row


class TestOrderRepository:
    def test_maps_new_customer_flag(self):
        rows = [_order_row(), _order_row(pk_uuid_order="a2", flg_customer_new=False), _order_row(pk_uuid_order="a3", flg_customer_new=None)]
        with patch("deliverybi.repositories.order_repository.fetch_all", return_value=rows) as fetch:
            orders = OrderRepository.get_orders(_filters(company_ids=["1"]))

        query, params = fetch.call_args.args
        assert "o.flg_customer_new" in query
        assert params["company_ids"] == [1]
        assert [o.is_new_customer for o in orders] == [True, False, False]

    def test_row_mapping(self):
        with patch("deliverybi.repositories.order_repository.fetch_all", return_value=[_order_row()]):
            (order,) = OrderRepository.get_orders(_filters(), limit=5)

        assert order.company_id == "1"
        assert order.channel == "glovo"
        assert order.created_at == datetime.fromisoformat("2026-02-02T13:10:00+00:00")
        assert order.refunds == 0.0
        assert order.customer_id == "c-1"
