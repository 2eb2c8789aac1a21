import asyncio

import pytest

from rawmove.errors import ConfigurationError, QuoteError
from rawmove.types import NATIVE_EEEE, Signal
from rawmove.venues.router import RouterVenue, select_best_tier

WETH = "0x4200000000000000000000000000000000000006"
USDC = "0x833589fcd6edb6e08f4c7c32d4f71b54bda02913"
ROUTER = "0x2626664c2603336e57b271c5c0b26f421741e481"
QUOTER = "0x3d4e44eb1374240ce5f1b871ab261cd16335b76a"


class _TierChain:
    """Quoter fake: per-fee output, or an exception to raise."""

    def __init__(self, outputs: dict[int, object]) -> None:
        self.outputs = outputs
        self.calls: list[int] = []

    async def quote_exact_input_single(
        self,
        *,
        quoter: str,
        token_in: str,
        token_out: str,
        fee: int,
        amount_in: int,
    ) -> int:
        self.calls.append(fee)
        out = self.outputs[fee]
        if isinstance(out, Exception):
            raise out
        return int(out)  # type: ignore[arg-type]


def _signal(src: str = USDC, dst: str = NATIVE_EEEE) -> Signal:
    return Signal(
        action="swap",
        side="BUY",
        chain_id=8453,
        src_token=src,
        dst_token=dst,
        amount_mode="exact_in",
        amount_value=90,
        slippage_bps=100,
        deadline_sec=300,
        symbol="ETHUSDC",
        tf="15",
        signal_id="sig-1",
    )


def _venue(chain: _TierChain, *, quoter: str = QUOTER, allow_unguarded: bool = False) -> RouterVenue:
    return RouterVenue(
        chain=chain,  # type: ignore[arg-type]
        router=ROUTER,
        quoter=quoter,
        wrapped_native=WETH,
        fee_tiers=[100, 500, 3000, 10000],
        allow_unguarded_swap=allow_unguarded,
    )


def test_select_best_tier_first_seen_wins_ties() -> None:
    outputs = {100: 100, 500: 300, 3000: 300, 10000: 50}

    async def _quote(fee: int) -> int:
        return outputs[fee]

    selection = asyncio.run(select_best_tier(_quote, [100, 500, 3000, 10000]))

    assert selection.best is not None
    assert selection.best.fee == 500
    assert selection.best.amount_out == 300


def test_select_best_tier_discards_failures_and_non_positive() -> None:
    async def _quote(fee: int) -> int:
        if fee == 500:
            raise RuntimeError("execution reverted")
        return {100: 0, 3000: 42}[fee]

    selection = asyncio.run(select_best_tier(_quote, [100, 500, 3000]))

    assert selection.best is not None
    assert selection.best.fee == 3000
    assert set(selection.failures) == {100, 500}
    assert "execution reverted" in selection.failures[500]


def test_router_quote_applies_slippage_to_best_tier() -> None:
    chain = _TierChain({100: 100, 500: 1000, 3000: 1000, 10000: 50})
    venue = _venue(chain)
    route = venue.resolve_route(_signal())

    quote = asyncio.run(venue.quote(route=route, amount_in=900, slippage_bps=100, taker="0xme"))

    assert quote.fee == 500
    assert quote.expected_out == 1000
    assert quote.min_out == 990
    assert quote.degraded is False
    assert chain.calls == [100, 500, 3000, 10000]


def test_router_quote_falls_back_when_all_tiers_fail() -> None:
    boom = RuntimeError("execution reverted")
    chain = _TierChain({100: boom, 500: boom, 3000: boom, 10000: 0})
    venue = _venue(chain, allow_unguarded=True)
    route = venue.resolve_route(_signal())

    quote = asyncio.run(venue.quote(route=route, amount_in=900, slippage_bps=100, taker="0xme"))

    assert quote.degraded is True
    assert quote.min_out == 0
    assert quote.fee == 100
    assert "all fee tiers failed" in quote.fallback_reason


def test_router_quote_refuses_fallback_unless_enabled() -> None:
    boom = RuntimeError("execution reverted")
    chain = _TierChain({100: boom, 500: boom, 3000: boom, 10000: boom})
    venue = _venue(chain, allow_unguarded=False)
    route = venue.resolve_route(_signal())

    with pytest.raises(QuoteError):
        asyncio.run(venue.quote(route=route, amount_in=900, slippage_bps=100, taker="0xme"))


def test_router_quote_without_quoter_is_degraded_only_when_allowed() -> None:
    chain = _TierChain({})
    route = _venue(chain, quoter="").resolve_route(_signal())

    with pytest.raises(QuoteError):
        asyncio.run(
            _venue(chain, quoter="").quote(route=route, amount_in=900, slippage_bps=100, taker="0x")
        )

    quote = asyncio.run(
        _venue(chain, quoter="", allow_unguarded=True).quote(
            route=route, amount_in=900, slippage_bps=100, taker="0x"
        )
    )
    assert quote.degraded is True
    assert quote.fallback_reason == "no quoter configured"
    assert chain.calls == []


def test_resolve_route_maps_native_legs_to_wrapped_native() -> None:
    venue = _venue(_TierChain({}))

    buy = venue.resolve_route(_signal(src=USDC, dst=NATIVE_EEEE))
    assert buy.token_out == WETH
    assert buy.native_out is True
    assert buy.unwrap_token == WETH

    sell = venue.resolve_route(_signal(src="0x0000000000000000000000000000000000000000", dst=USDC))
    assert sell.token_in == WETH
    assert sell.native_in is True
    assert sell.unwrap_token is None


def test_router_venue_requires_router_address() -> None:
    with pytest.raises(ConfigurationError):
        RouterVenue(
            chain=_TierChain({}),  # type: ignore[arg-type]
            router="",
            quoter=QUOTER,
            wrapped_native=WETH,
            fee_tiers=[500],
        )
