from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Optional

from rawmove.types import Quote, Route, Signal, TxRequest


class SwapVenue(ABC):
    venue_id: str

    @abstractmethod
    def resolve_route(self, signal: Signal) -> Route:
        raise NotImplementedError

    @abstractmethod
    async def quote(
        self,
        *,
        route: Route,
        amount_in: int,
        slippage_bps: int,
        taker: str,
    ) -> Quote:
        raise NotImplementedError

    @abstractmethod
    def spender(self, quote: Quote) -> Optional[str]:
        raise NotImplementedError

    @abstractmethod
    def build_swap(self, *, route: Route, quote: Quote, recipient: str, deadline: int) -> TxRequest:
        raise NotImplementedError

    async def aclose(self) -> None:
        return
