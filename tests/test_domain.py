from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date
from typing import List

import pytest

from deliverybi.domain.catalog import (
    deduplicate_by_name_keeping_latest,
    expand_ids,
    group_addresses_by_name,
    normalize_address,
)
from deliverybi.domain.channels import (
    PORTAL_IDS,
    channel_to_portals,
    portal_ids_for_channels,
    portal_to_channel,
    should_apply_channel_filter,
)
from deliverybi.domain.dates import (
    get_date_range_from_preset,
    get_last_n_weeks,
    get_period_labels,
    get_previous_period_range,
    get_year_over_year_range,
    parse_numeric_ids,
)
from deliverybi.domain.filters import DataFilters
from deliverybi.domain.formatters import format_currency, format_kpi_value, format_number, format_percentage


class TestChannels:
    def test_both_glovo_portals_map_to_glovo(self):
        assert portal_to_channel(PORTAL_IDS["GLOVO"]) == "glovo"
        assert portal_to_channel(PORTAL_IDS["GLOVO_NEW"]) == "glovo"
        assert portal_to_channel("3CCD6861") == "ubereats"
        assert portal_to_channel("unknown") is None

    def test_justeat_has_no_portals(self):
        assert channel_to_portals("justeat") == []
        assert channel_to_portals("glovo") == ["E22BC362", "E22BC362-2"]

    def test_selecting_every_channel_with_data_disables_filter(self):
        assert should_apply_channel_filter(["glovo", "ubereats"]) is False
        assert should_apply_channel_filter([]) is False
        assert should_apply_channel_filter(["glovo"]) is True

    def test_portal_ids_for_channels(self):
        assert portal_ids_for_channels(["glovo", "ubereats", "justeat"]) is None
        assert portal_ids_for_channels(["ubereats", "justeat"]) == ["3CCD6861"]


class TestDates:
    def test_parse_numeric_ids_drops_invalid_and_non_positive(self):
        assert parse_numeric_ids(["3", "abc", "0", "-2", " 7 "]) == [3, 7]
        assert parse_numeric_ids(None) == []

    def test_previous_period_has_same_length(self):
        prev = get_previous_period_range(date(2026, 2, 2), date(2026, 2, 8))
        assert prev.start == date(2026, 1, 26)
        assert prev.end == date(2026, 2, 1)

    def test_year_over_year_handles_leap_day(self):
        yoy = get_year_over_year_range(date(2024, 2, 29), date(2024, 3, 6))
        assert yoy.start == date(2023, 2, 28)
        assert yoy.end == date(2023, 3, 6)

    @pytest.mark.parametrize(
        "preset,start,end",
        [
            ("this_week", date(2026, 2, 2), date(2026, 2, 4)),
            ("this_month", date(2026, 2, 1), date(2026, 2, 4)),
            ("last_week", date(2026, 1, 26), date(2026, 2, 1)),
            ("last_month", date(2026, 1, 1), date(2026, 1, 31)),
            ("last_7_days", date(2026, 1, 28), date(2026, 2, 3)),
            ("last_30_days", date(2026, 1, 5), date(2026, 2, 3)),
            ("last_12_weeks", date(2025, 11, 10), date(2026, 2, 1)),
            ("last_12_months", date(2025, 2, 1), date(2026, 1, 31)),
            ("custom", date(2026, 1, 28), date(2026, 2, 3)),
        ],
    )
    def test_presets(self, today, preset, start, end):
        period = get_date_range_from_preset(preset, today)
        assert (period.start, period.end) == (start, end)

    def test_period_labels_same_and_cross_month(self):
        assert get_period_labels(date(2026, 1, 19), date(2026, 1, 25)) == {
            "current": "19-25 Ene",
            "comparison": "12-18 Ene",
        }
        labels = get_period_labels(date(2026, 1, 28), date(2026, 2, 3))
        assert labels["current"] == "28 Ene - 3 Feb"

    def test_last_n_weeks_oldest_first(self, today):
        weeks = get_last_n_weeks(3, today)
        assert [w.start for w in weeks] == ["2026-01-12", "2026-01-19", "2026-01-26"]
        assert weeks[-1].end == "2026-02-01"
        assert weeks[0].label == "12/01"


class TestFormatters:
    def test_currency(self):
        assert format_currency(1234.56) == "1234,56 €"
        assert format_currency(12345.6) == "12.345,60 €"
        assert format_currency(1_250_000, compact=True) == "1,2M €"
        assert format_currency(1500, compact=True) == "1,5K €"
        assert format_currency(999, compact=True) == "999,00 €"

    def test_number_and_percentage(self):
        assert format_number(1234567) == "1.234.567"
        assert format_number(8000) == "8000"
        assert format_number(10000) == "10.000"
        assert format_number(-9999) == "-9999"
        assert format_percentage(0.123) == "12,3%"
        assert format_percentage(45, is_decimal=False) == "45,0%"

    def test_kpi_value(self):
        assert format_kpi_value(1200, "€") == "1.2k€"
        assert format_kpi_value(42, "%") == "42%"
        assert format_kpi_value(None, "%") == "-"


@dataclass
class _Grouped:
    id: str
    all_ids: List[str] = field(default_factory=list)


class TestCatalog:
    def test_normalize_address_merges_variants(self):
        assert normalize_address("Carrer de Mallorca 200, 08036 Barcelona") == normalize_address(
            "C/ Mallorca 200"
        )
        assert normalize_address("Avda. de la Constitución 12") == "constitucion 12"
        assert normalize_address(None) == ""

    def test_dedupe_by_name_keeps_latest_month(self):
        rows = [
            {"name": "Pizza", "pk_ts_month": "2025-12-01", "id": "old"},
            {"name": "Pizza", "pk_ts_month": "2026-01-01", "id": "new"},
        ]
        result = deduplicate_by_name_keeping_latest(rows, lambda r: r["name"].lower())
        assert [r["id"] for r in result] == ["new"]

    def test_group_addresses_uses_longest_text_and_collects_ids(self):
        rows = [
            {"pk_id_address": 1, "des_address": "C/ Mallorca 200", "pk_ts_month": "2026-01-01"},
            {
                "pk_id_address": 2,
                "des_address": "Carrer de Mallorca 200, Barcelona",
                "pk_ts_month": "2025-12-01",
                "des_latitude": 41.39,
                "des_longitude": 2.16,
            },
            {"pk_id_address": 3, "des_address": "Gran Via 1", "pk_ts_month": "2026-01-01"},
        ]
        groups = group_addresses_by_name(rows)
        assert len(groups) == 2
        mallorca = next(g for g in groups if g["pk_id_address"] == 2)
        assert mallorca["all_ids"] == ["1", "2"]

    def test_expand_ids(self):
        brands = [_Grouped("10", ["10", "11"]), _Grouped("20", ["20"])]
        assert expand_ids(["11", "99", "10"], brands) == ["10", "11", "99"]
        assert expand_ids([], brands) == []


class TestDataFilters:
    def test_sql_conditions_skip_invalid_ids_and_full_channel_selection(self):
        filters = DataFilters(
            start_date=date(2026, 1, 1),
            end_date=date(2026, 1, 31),
            company_ids=["1", "x"],
            channel_ids=["glovo", "ubereats"],
        )
        conditions, params = filters.to_sql_conditions()
        assert "o.pfk_id_company = ANY(:company_ids)" in conditions
        assert params["company_ids"] == [1]
        assert params["end_ts"] == "2026-01-31T23:59:59"
        assert "portal_ids" not in params
