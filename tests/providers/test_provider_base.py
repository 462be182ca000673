"""Tests for the shared provider helpers."""

from datetime import UTC, datetime, timedelta, timezone

import pytest

from x402_transfer_sync.errors import MalformedResponseError
from x402_transfer_sync.providers.base import (
    format_timestamp,
    parse_timestamp,
    require,
    scale_amount,
)

USDC = 1_000_000


class TestScaleAmount:
    """Tests for scale_amount."""

    def test_scales_decimal_string(self) -> None:
        assert scale_amount("1.5", USDC) == 1_500_000

    def test_scales_float(self) -> None:
        assert scale_amount(1.5, USDC) == 1_500_000

    def test_half_unit_rounds_up(self) -> None:
        """Dust rounds half-up instead of truncating to zero."""
        assert scale_amount("0.0000005", USDC) == 1
        assert scale_amount(0.0000005, USDC) == 1

    def test_below_half_rounds_down(self) -> None:
        assert scale_amount("0.0000004", USDC) == 0

    def test_float_noise_is_rounded(self) -> None:
        # 0.1 + 0.2 == 0.30000000000000004
        assert scale_amount(0.1 + 0.2, USDC) == 300_000

    def test_integer_amount(self) -> None:
        assert scale_amount(25, USDC) == 25_000_000

    @pytest.mark.parametrize("raw", [None, "abc", "", True, "NaN", "Infinity"])
    def test_invalid_amount_raises(self, raw: object) -> None:
        with pytest.raises(MalformedResponseError):
            scale_amount(raw, USDC)


class TestParseTimestamp:
    """Tests for parse_timestamp."""

    def test_iso_with_z(self) -> None:
        assert parse_timestamp("2025-06-01T12:30:00Z") == datetime(2025, 6, 1, 12, 30, tzinfo=UTC)

    def test_space_separated_naive_is_utc(self) -> None:
        assert parse_timestamp("2025-06-01 12:30:00") == datetime(2025, 6, 1, 12, 30, tzinfo=UTC)

    def test_bigquery_epoch_string(self) -> None:
        assert parse_timestamp("1.7480000E9") == datetime.fromtimestamp(1_748_000_000, tz=UTC)

    def test_epoch_number(self) -> None:
        assert parse_timestamp(1_748_000_000) == datetime.fromtimestamp(1_748_000_000, tz=UTC)

    def test_offset_is_converted_to_utc(self) -> None:
        plus_two = timezone(timedelta(hours=2))
        result = parse_timestamp(datetime(2025, 6, 1, 14, 0, tzinfo=plus_two))
        assert result == datetime(2025, 6, 1, 12, 0, tzinfo=UTC)
        assert result.tzinfo == UTC

    def test_utc_suffix(self) -> None:
        assert parse_timestamp("2025-06-01 12:30:00 UTC") == datetime(2025, 6, 1, 12, 30, tzinfo=UTC)

    @pytest.mark.parametrize("raw", [None, "", "yesterday", [], True])
    def test_invalid_timestamp_raises(self, raw: object) -> None:
        with pytest.raises(MalformedResponseError):
            parse_timestamp(raw)


def test_require_walks_nested_fields() -> None:
    assert require({"a": {"b": 3}}, "a", "b") == 3


def test_require_missing_field_names_path() -> None:
    with pytest.raises(MalformedResponseError, match="a.b"):
        require({"a": {}}, "a", "b")


def test_format_timestamp_is_utc_millis() -> None:
    assert format_timestamp(datetime(2025, 6, 1, 12, 0, 0, 123456, tzinfo=UTC)) == "2025-06-01T12:00:00.123Z"
