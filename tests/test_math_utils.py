import pytest

from rawmove.errors import InsufficientBalanceError, SlippageBoundError
from rawmove.math_utils import bps_to_fraction, min_out, trade_size


def test_trade_size_ninety_percent_of_balance() -> None:
    assert trade_size(1000, 90) == 900


def test_trade_size_floors_and_stays_integer() -> None:
    # 18-decimal balances overflow float precision; the result must be exact.
    balance = 123_456_789_012_345_678_901
    assert trade_size(balance, 90) == balance * 90 // 100
    assert trade_size(999, 33) == 329
    assert trade_size(1, 100) == 1


@pytest.mark.parametrize("balance", [0, 1])
def test_trade_size_rejects_empty_result(balance: int) -> None:
    with pytest.raises(InsufficientBalanceError):
        trade_size(balance, 90)


@pytest.mark.parametrize("percent", [0, 101, -5])
def test_trade_size_rejects_out_of_range_percent(percent: int) -> None:
    with pytest.raises(ValueError):
        trade_size(1000, percent)


def test_min_out_applies_slippage_bps() -> None:
    assert min_out(1000, 100) == 990
    assert min_out(1000, 0) == 1000
    assert min_out(12345, 37) == 12345 * (10_000 - 37) // 10_000


def test_min_out_never_exceeds_quote() -> None:
    for quoted in (1, 7, 999, 10**18 + 3):
        for bps in (0, 1, 50, 9_999):
            try:
                bound = min_out(quoted, bps)
            except SlippageBoundError:
                continue
            assert 0 < bound <= quoted


def test_min_out_fails_when_bound_is_zero() -> None:
    with pytest.raises(SlippageBoundError):
        min_out(1000, 10_000)
    with pytest.raises(SlippageBoundError):
        min_out(0, 0)
    with pytest.raises(SlippageBoundError):
        min_out(1, 1)


def test_min_out_rejects_out_of_range_slippage() -> None:
    with pytest.raises(ValueError):
        min_out(1000, 10_001)
    with pytest.raises(ValueError):
        min_out(1000, -1)


def test_bps_to_fraction() -> None:
    assert bps_to_fraction(150) == "0.015"
    assert bps_to_fraction(100) == "0.01"
    assert bps_to_fraction(5) == "0.0005"
    assert bps_to_fraction(0) == "0"
    assert bps_to_fraction(10_000) == "1"
