from __future__ import annotations

from rawmove.errors import InsufficientBalanceError, SlippageBoundError

BPS_DENOMINATOR = 10_000


def trade_size(balance: int, percent: int) -> int:
    """Integer share of `balance` (minor units), floored. Never goes through floats."""
    if not 1 <= percent <= 100:
        raise ValueError("percent must be within [1, 100]")
    if balance < 0:
        raise ValueError("balance must be >= 0")
    amount = balance * percent // 100
    if balance == 0 or amount <= 0:
        raise InsufficientBalanceError(
            f"Insufficient balance for {percent}% model",
            balance=str(balance),
            percent=percent,
        )
    return amount


def min_out(quoted: int, slippage_bps: int) -> int:
    if not 0 <= slippage_bps <= BPS_DENOMINATOR:
        raise ValueError("slippage_bps must be within [0, 10000]")
    if quoted < 0:
        raise ValueError("quoted amount must be >= 0")
    bound = quoted * (BPS_DENOMINATOR - slippage_bps) // BPS_DENOMINATOR
    if bound <= 0:
        raise SlippageBoundError(
            "minimum output is zero: quote too small or slippage too aggressive",
            quoted=str(quoted),
            slippageBps=slippage_bps,
        )
    return bound


def bps_to_fraction(slippage_bps: int) -> str:
    """Render bps as the decimal fraction string aggregators expect (100 -> "0.01")."""
    if not 0 <= slippage_bps <= BPS_DENOMINATOR:
        raise ValueError("slippage_bps must be within [0, 10000]")
    whole, frac = divmod(slippage_bps, BPS_DENOMINATOR)
    if frac == 0:
        return str(whole)
    return f"{whole}.{frac:04d}".rstrip("0")
