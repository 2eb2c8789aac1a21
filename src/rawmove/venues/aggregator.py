from __future__ import annotations

import asyncio
import logging
from typing import Any, Optional, cast

import httpx

from rawmove.errors import AggregatorApiError, QuoteError, RouterNotAllowedError
from rawmove.math_utils import bps_to_fraction, min_out
from rawmove.types import NATIVE_EEEE, Quote, Route, Signal, TxRequest, is_native
from rawmove.venues.base import SwapVenue

logger = logging.getLogger("rawmove.venues.aggregator")

_DEFAULT_MAX_RETRIES = 2
_DEFAULT_RETRY_BASE_SECONDS = 0.5
_DEFAULT_RETRY_MAX_SECONDS = 4.0


class ZeroExClient:
    def __init__(
        self,
        *,
        base_url: str = "https://base.api.0x.org",
        api_key: str = "",
        timeout_seconds: float = 10.0,
        max_retries: int = _DEFAULT_MAX_RETRIES,
        retry_base_seconds: float = _DEFAULT_RETRY_BASE_SECONDS,
        retry_max_seconds: float = _DEFAULT_RETRY_MAX_SECONDS,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._max_retries = int(max(0, max_retries))
        self._retry_base_seconds = float(max(0.0, retry_base_seconds))
        self._retry_max_seconds = float(max(self._retry_base_seconds, retry_max_seconds))
        self._client = httpx.AsyncClient(
            base_url=base_url.rstrip("/"),
            timeout=httpx.Timeout(timeout_seconds),
            headers={"0x-api-key": api_key} if api_key else {},
            transport=transport,
        )

    async def aclose(self) -> None:
        await self._client.aclose()

    async def swap_quote(
        self,
        *,
        sell_token: str,
        buy_token: str,
        sell_amount: int,
        taker_address: str,
        slippage_bps: int,
    ) -> dict[str, Any]:
        data = await self._request(
            "GET",
            "/swap/v1/quote",
            params={
                "sellToken": sell_token,
                "buyToken": buy_token,
                "sellAmount": str(sell_amount),
                "takerAddress": taker_address,
                "slippagePercentage": bps_to_fraction(slippage_bps),
            },
        )
        if not isinstance(data, dict):
            raise QuoteError("aggregator quote is not an object", quote=data)
        return cast(dict[str, Any], data)

    async def _request(self, method: str, path: str, *, params: dict[str, Any]) -> Any:
        attempt = 0
        while True:
            try:
                response = await self._client.request(method, path, params=params)
            except (httpx.TimeoutException, httpx.TransportError):
                if attempt >= self._max_retries:
                    raise
                await asyncio.sleep(self._retry_delay_seconds(attempt=attempt, response=None))
                attempt += 1
                continue

            if response.status_code >= 400:
                payload: Any
                try:
                    payload = response.json()
                except ValueError:
                    payload = response.text

                if _should_retry_http_error(status_code=response.status_code) and (
                    attempt < self._max_retries
                ):
                    await asyncio.sleep(
                        self._retry_delay_seconds(attempt=attempt, response=response)
                    )
                    attempt += 1
                    continue

                raise AggregatorApiError(status_code=response.status_code, payload=payload)

            return response.json()

    def _retry_delay_seconds(self, *, attempt: int, response: httpx.Response | None) -> float:
        if response is not None:
            retry_after = response.headers.get("Retry-After")
            if retry_after:
                try:
                    value = float(retry_after)
                    if value > 0:
                        return value
                except ValueError:
                    pass
        delay = self._retry_base_seconds * (2**attempt)
        return float(min(delay, self._retry_max_seconds))


def _should_retry_http_error(*, status_code: int) -> bool:
    return status_code == 429 or status_code >= 500


def _int_field(quote: dict[str, Any], key: str) -> Optional[int]:
    value = quote.get(key)
    if value is None or value == "":
        return None
    try:
        return int(str(value))
    except ValueError as e:
        raise QuoteError(f"aggregator quote field {key} is not an integer: {value!r}") from e


class AggregatorVenue(SwapVenue):
    """Quote-and-relay: the aggregator returns the encoded swap transaction."""

    venue_id = "aggregator"

    def __init__(
        self,
        *,
        client: ZeroExClient,
        default_gas_limit: int = 350_000,
        allowed_routers: list[str] | None = None,
    ) -> None:
        self._client = client
        self._default_gas_limit = int(default_gas_limit)
        self._allowed_routers = [r.lower() for r in (allowed_routers or [])]

    async def aclose(self) -> None:
        await self._client.aclose()

    def resolve_route(self, signal: Signal) -> Route:
        native_in = is_native(signal.src_token)
        native_out = is_native(signal.dst_token)
        return Route(
            token_in=NATIVE_EEEE if native_in else signal.src_token,
            token_out=NATIVE_EEEE if native_out else signal.dst_token,
            native_in=native_in,
            native_out=native_out,
        )

    async def quote(
        self,
        *,
        route: Route,
        amount_in: int,
        slippage_bps: int,
        taker: str,
    ) -> Quote:
        raw = await self._client.swap_quote(
            sell_token=route.token_in,
            buy_token=route.token_out,
            sell_amount=amount_in,
            taker_address=taker,
            slippage_bps=slippage_bps,
        )
        to = str(raw.get("to") or "")
        data = str(raw.get("data") or "")
        if not to or not data:
            raise QuoteError("0x quote failed", quote=raw)
        if self._allowed_routers and to.lower() not in self._allowed_routers:
            raise RouterNotAllowedError(f"quote target {to} is not in ALLOWED_ROUTERS", to=to)

        allowance_target = raw.get("allowanceTarget")
        spender = str(allowance_target) if allowance_target else to
        # Native sells grant no allowance, so only token sells check the spender.
        if (
            self._allowed_routers
            and not route.native_in
            and spender.lower() not in self._allowed_routers
        ):
            raise RouterNotAllowedError(
                f"allowance target {spender} is not in ALLOWED_ROUTERS",
                allowanceTarget=spender,
            )

        buy_amount = _int_field(raw, "buyAmount")
        if buy_amount is None:
            raise QuoteError("0x quote has no buyAmount", quote=raw)
        gas = _int_field(raw, "gas")
        value = _int_field(raw, "value") or 0

        return Quote(
            token_in=route.token_in,
            token_out=route.token_out,
            amount_in=amount_in,
            expected_out=buy_amount,
            min_out=min_out(buy_amount, slippage_bps),
            venue=self.venue_id,
            tx=TxRequest(
                to=to,
                data=data,
                value=value,
                gas=gas if gas and gas > 0 else self._default_gas_limit,
            ),
            allowance_target=str(allowance_target) if allowance_target else None,
            sources=raw.get("sources"),
            price=str(raw["price"]) if raw.get("price") is not None else None,
        )

    def spender(self, quote: Quote) -> Optional[str]:
        return quote.allowance_target or (quote.tx.to if quote.tx else None)

    def build_swap(self, *, route: Route, quote: Quote, recipient: str, deadline: int) -> TxRequest:
        # Recipient and deadline are baked into the aggregator's calldata.
        if quote.tx is None:
            raise QuoteError("aggregator quote carries no transaction")
        return quote.tx
