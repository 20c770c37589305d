"""Test balance parsing, stabilisation and reveal handling."""
from __future__ import annotations

from decimal import Decimal

import pytest

from auto_balance.core.balance_reader import (
    is_masked,
    parse_amount,
    read_stable_amount,
    read_stable_sum,
    read_with_retries,
)
from auto_balance.core.exceptions import BalanceNotStableError, ElementNotFoundError


class Script:
    """Provider that replays a fixed list of texts and counts calls."""

    def __init__(self, *values):
        self.values = list(values)
        self.calls = 0

    def __call__(self):
        value = self.values[min(self.calls, len(self.values) - 1)]
        self.calls += 1
        return value


def _no_sleep(_seconds):
    return None


class TestParseAmount:
    @pytest.mark.parametrize(
        "text, expected",
        [
            ("100.00", Decimal("100.00")),
            ("1,234.565", Decimal("1234.57")),
            ("¥ 88", Decimal("88.00")),
            ("0.004", Decimal("0.00")),
        ],
    )
    def test_valid(self, text, expected):
        assert parse_amount(text) == expected

    @pytest.mark.parametrize("text", [None, "", "abc", "12元3角", "NaN"])
    def test_invalid(self, text):
        assert parse_amount(text) is None

    def test_digit_run_beyond_precision(self):
        assert parse_amount("1234567890123456789012345678") is None

    def test_masked(self):
        assert is_masked("****")
        assert is_masked(" --")
        assert not is_masked("12.00")


class TestReadStableAmount:
    def test_two_equal_samples(self):
        provider = Script("100.00", "100.00")
        assert read_stable_amount(provider, sleep=_no_sleep) == Decimal("100.00")
        assert provider.calls == 2

    def test_three_samples(self):
        provider = Script("100.00", "100.01", "100.01")
        assert read_stable_amount(provider, sleep=_no_sleep) == Decimal("100.01")
        assert provider.calls == 3

    def test_never_stable(self):
        provider = Script("1", "2", "3", "4", "5", "6")
        with pytest.raises(BalanceNotStableError):
            read_stable_amount(provider, max_samples=5, sleep=_no_sleep)
        assert provider.calls == 5

    def test_unparsable_breaks_streak(self):
        provider = Script("1.00", "garbled", "1.00", "1.00")
        assert read_stable_amount(provider, sleep=_no_sleep) == Decimal("1.00")
        assert provider.calls == 4

    def test_overlong_misread_counts_as_unparsable(self):
        provider = Script("1234567890123456789012345678", "5", "5")
        assert read_stable_amount(provider, sleep=_no_sleep) == Decimal("5.00")
        assert provider.calls == 3

    def test_hidden_reveals_once_without_spending_budget(self):
        provider = Script("****", "12.30", "12.30")
        reveals = []
        value = read_stable_amount(
            provider,
            max_samples=2,
            reveal=lambda: reveals.append(1),
            sleep=_no_sleep,
        )
        assert value == Decimal("12.30")
        assert len(reveals) == 1

    def test_restore_mask_toggles_back(self):
        provider = Script("****", "5", "5")
        reveals = []
        read_stable_amount(provider, reveal=lambda: reveals.append(1), restore_mask=True, sleep=_no_sleep)
        assert len(reveals) == 2

    def test_loading_placeholder_waits(self):
        provider = Script("--", "--", "5", "5")
        sleeps = []
        assert read_stable_amount(provider, max_samples=2, sample_delay=0.5, sleep=sleeps.append) == Decimal("5.00")
        assert sleeps.count(0.5) == 3

    def test_placeholder_wait_is_bounded(self):
        provider = Script("--")
        with pytest.raises(BalanceNotStableError):
            read_stable_amount(provider, max_placeholder_waits=2, sleep=_no_sleep)
        assert provider.calls == 3

    def test_sum(self):
        total = read_stable_sum(
            [Script("12.50", "12.50"), Script("100", "100")],
            sleep=_no_sleep,
        )
        assert total == Decimal("112.50")


class TestReadWithRetries:
    def test_recovers_after_failure(self):
        outcomes = [BalanceNotStableError("first"), ElementNotFoundError("second"), Decimal("7.00")]
        sleeps = []

        def read():
            item = outcomes.pop(0)
            if isinstance(item, Exception):
                raise item
            return item

        assert read_with_retries(read, attempts=3, retry_delay=2.0, sleep=sleeps.append) == Decimal("7.00")
        assert sleeps == [2.0, 2.0]

    def test_exhaustion_chains_cause(self):
        def read():
            raise ValueError("bad text")

        with pytest.raises(BalanceNotStableError) as info:
            read_with_retries(read, attempts=2, sleep=_no_sleep)
        assert isinstance(info.value.__cause__, ValueError)

    def test_other_errors_propagate(self):
        def read():
            raise KeyError("boom")

        with pytest.raises(KeyError):
            read_with_retries(read, attempts=3, sleep=_no_sleep)
