from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Awaitable, Callable, Optional

from rawmove.chain.client import ChainGateway
from rawmove.errors import ConfigurationError, QuoteError
from rawmove.math_utils import min_out
from rawmove.types import Quote, Route, Signal, TxRequest, is_native
from rawmove.venues.base import SwapVenue

logger = logging.getLogger("rawmove.venues.router")


@dataclass(frozen=True)
class TierQuote:
    fee: int
    amount_out: int


@dataclass(frozen=True)
class TierSelection:
    best: Optional[TierQuote]
    failures: dict[int, str] = field(default_factory=dict)

    def failure_reason(self) -> str:
        if not self.failures:
            return "no fee tiers configured"
        parts = [f"{fee}: {reason}" for fee, reason in self.failures.items()]
        return "all fee tiers failed (" + "; ".join(parts) + ")"


async def select_best_tier(
    quote_tier: Callable[[int], Awaitable[int]],
    fee_tiers: list[int],
) -> TierSelection:
    """
    Query every tier independently and keep the largest output.

    Failed or non-positive tiers are skipped. Comparison is strictly-greater,
    so the first tier seen wins a tie.
    """
    best: Optional[TierQuote] = None
    failures: dict[int, str] = {}
    for fee in fee_tiers:
        try:
            amount_out = int(await quote_tier(fee))
        except Exception as e:  # noqa: BLE001
            failures[fee] = f"{type(e).__name__}: {e}"
            continue
        if amount_out <= 0:
            failures[fee] = "non-positive amount"
            continue
        if best is None or amount_out > best.amount_out:
            best = TierQuote(fee=fee, amount_out=amount_out)
    return TierSelection(best=best, failures=failures)


class RouterVenue(SwapVenue):
    """Direct `exactInputSingle` on a fixed-pool router, priced by an on-chain quoter."""

    venue_id = "router"

    def __init__(
        self,
        *,
        chain: ChainGateway,
        router: str,
        quoter: str,
        wrapped_native: str,
        fee_tiers: list[int],
        allow_unguarded_swap: bool = False,
    ) -> None:
        if not router:
            raise ConfigurationError("ROUTER_ADDRESS not configured")
        if not wrapped_native:
            raise ConfigurationError("WRAPPED_NATIVE_ADDRESS not configured")
        if not fee_tiers:
            raise ConfigurationError("FEE_TIERS is empty")
        self._chain = chain
        self._router = router
        self._quoter = quoter
        self._wrapped_native = wrapped_native
        self._fee_tiers = list(fee_tiers)
        self._allow_unguarded_swap = allow_unguarded_swap

    def resolve_route(self, signal: Signal) -> Route:
        native_in = is_native(signal.src_token)
        native_out = is_native(signal.dst_token)
        if native_in and native_out:
            raise QuoteError("native to native is not a swap")
        return Route(
            token_in=self._wrapped_native if native_in else signal.src_token,
            token_out=self._wrapped_native if native_out else signal.dst_token,
            native_in=native_in,
            native_out=native_out,
            unwrap_token=self._wrapped_native if native_out else None,
        )

    async def quote(
        self,
        *,
        route: Route,
        amount_in: int,
        slippage_bps: int,
        taker: str,
    ) -> Quote:
        if not self._quoter:
            return self._degraded(route=route, amount_in=amount_in, reason="no quoter configured")

        async def _quote_tier(fee: int) -> int:
            return await self._chain.quote_exact_input_single(
                quoter=self._quoter,
                token_in=route.token_in,
                token_out=route.token_out,
                fee=fee,
                amount_in=amount_in,
            )

        selection = await select_best_tier(_quote_tier, self._fee_tiers)
        if selection.best is None:
            return self._degraded(
                route=route,
                amount_in=amount_in,
                reason=selection.failure_reason(),
            )

        logger.info(
            "quote_selected",
            extra={"fee": selection.best.fee, "amount_in": str(amount_in), "venue": self.venue_id},
        )
        return Quote(
            token_in=route.token_in,
            token_out=route.token_out,
            amount_in=amount_in,
            expected_out=selection.best.amount_out,
            min_out=min_out(selection.best.amount_out, slippage_bps),
            venue=self.venue_id,
            fee=selection.best.fee,
        )

    def spender(self, quote: Quote) -> Optional[str]:
        return self._router

    def build_swap(self, *, route: Route, quote: Quote, recipient: str, deadline: int) -> TxRequest:
        if quote.fee is None:
            raise QuoteError("router quote has no fee tier")
        return self._chain.encode_exact_input_single(
            router=self._router,
            token_in=route.token_in,
            token_out=route.token_out,
            fee=quote.fee,
            recipient=recipient,
            deadline=deadline,
            amount_in=quote.amount_in,
            amount_out_minimum=quote.min_out,
            value=quote.amount_in if route.native_in else 0,
        )

    def _degraded(self, *, route: Route, amount_in: int, reason: str) -> Quote:
        if not self._allow_unguarded_swap:
            raise QuoteError(f"no usable quote: {reason}", reason=reason)
        logger.warning("quote_fallback", extra={"reason": reason, "venue": self.venue_id})
        return Quote(
            token_in=route.token_in,
            token_out=route.token_out,
            amount_in=amount_in,
            expected_out=0,
            min_out=0,
            venue=self.venue_id,
            fee=self._fee_tiers[0],
            degraded=True,
            fallback_reason=reason,
        )
