import logging
from datetime import date

import pytest

from cashplan.services.normalize import (
    month_end_after,
    parse_bool,
    parse_date,
    parse_number,
    round2,
)
from cashplan.services.settings_normalizer import normalize_settings


@pytest.mark.parametrize(
    "raw,expected",
    [
        ("1.234,56", 1234.56),
        ("12,5", 12.5),
        ("1.234", 1234.0),
        ("1.5", 1.5),
        ("19 %", 19.0),
        ("€ 368,50", 368.5),
        (4090, 4090.0),
        ("abc", None),
        ("", None),
        (None, None),
        (True, None),
    ],
)
def test_parse_number_handles_german_and_plain_formats(raw, expected):
    assert parse_number(raw) == expected


def test_parse_date_accepts_iso_and_german():
    assert parse_date("2025-02-21") == date(2025, 2, 21)
    assert parse_date("2025-02-21T10:00:00Z") == date(2025, 2, 21)
    assert parse_date("21.02.2025") == date(2025, 2, 21)
    assert parse_date("31.02.2025") is None
    assert parse_date("next week") is None


def test_parse_bool_recognises_german_flags():
    assert parse_bool("ja") is True
    assert parse_bool("nein") is False
    assert parse_bool("maybe", default=True) is True


def test_round2_rounds_half_up():
    assert round2(0.125) == 0.13
    assert round2(-0.125) == -0.13
    assert round2(float("nan")) is None


def test_month_end_after_crosses_year_boundary():
    assert month_end_after(date(2025, 6, 21), 2) == date(2025, 8, 31)
    assert month_end_after(date(2025, 12, 5), 2) == date(2026, 2, 28)


def test_normalize_settings_reads_aliases_and_defaults():
    settings = normalize_settings(
        {
            "fxRate": "0,86",
            "fxFeePct": "0,5",
            "eust_rate_pct": 19,
            "freightLagDays": "14",
            "vatRefundLagMonths": 2,
        }
    )

    assert settings.fx_rate == pytest.approx(0.86)
    assert settings.fx_fee_pct == pytest.approx(0.5)
    assert settings.eust_rate_pct == 19
    assert settings.freight_lag_days == 14
    assert settings.vat_refund_lag_months == 2
    assert settings.duty_include_freight is True
    assert settings.vat_refund_enabled is True


def test_normalize_settings_missing_or_invalid_values_fall_back_to_zero():
    settings = normalize_settings({"fxRate": "n/a", "freightLagDays": -3, "vatRefundEnabled": "false"})

    assert settings.fx_rate == 0.0
    assert settings.freight_lag_days == 0
    assert settings.vat_refund_enabled is False
    assert normalize_settings(None).fx_rate == 0.0


def test_normalize_settings_drops_invalid_cny_windows(caplog):
    caplog.set_level(logging.WARNING, logger="cashplan.settings")

    settings = normalize_settings(
        {
            "cnyBlackoutByYear": {
                "2025": {"start": "2025-01-28", "end": "2025-02-04"},
                "2026": {"start": "2026-02-20", "end": "2026-02-10"},
            },
            "cny": {"start": "garbage", "end": "2025-02-01"},
        }
    )

    assert set(settings.cny_blackout_by_year) == {2025}
    assert settings.cny_blackout_by_year[2025].start == date(2025, 1, 28)
    assert settings.cny_window is None
    assert [r.getMessage() for r in caplog.records].count("cny_window_invalid") == 2
