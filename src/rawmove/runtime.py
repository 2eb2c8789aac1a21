from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from rawmove.chain import ChainClient, LocalSigner
from rawmove.engine.executor import SwapExecutor
from rawmove.notifications import TelegramNotifier
from rawmove.settings import Settings
from rawmove.venues import AggregatorVenue, RouterVenue, SwapVenue, ZeroExClient


@dataclass
class Runtime:
    settings: Settings
    chain: ChainClient
    venue: SwapVenue
    executor: SwapExecutor
    notifier: Optional[TelegramNotifier] = None

    async def aclose(self) -> None:
        await self.venue.aclose()
        if self.notifier is not None:
            await self.notifier.aclose()
        await self.chain.aclose()


def build_venue(settings: Settings, chain: ChainClient) -> SwapVenue:
    if settings.venue == "router":
        return RouterVenue(
            chain=chain,
            router=settings.router_address,
            quoter=settings.quoter_address,
            wrapped_native=settings.wrapped_native_address,
            fee_tiers=settings.fee_tiers(),
            allow_unguarded_swap=settings.allow_unguarded_swap,
        )
    return AggregatorVenue(
        client=ZeroExClient(
            base_url=settings.aggregator_url,
            api_key=settings.aggregator_api_key,
            timeout_seconds=settings.http_timeout_seconds,
        ),
        default_gas_limit=settings.default_gas_limit,
        allowed_routers=settings.allowed_routers(),
    )


def build_runtime(settings: Settings) -> Runtime:
    """Wire the process-wide collaborators once; fails fast on missing RPC URL or key."""
    signer = LocalSigner(settings.private_key)
    chain = ChainClient(
        rpc_url=settings.rpc_url,
        chain_id=settings.chain_id,
        signer=signer,
        receipt_timeout_seconds=settings.receipt_timeout_seconds,
    )
    venue = build_venue(settings, chain)
    notifier = TelegramNotifier(
        bot_token=settings.telegram_bot_token,
        chat_id=settings.telegram_chat_id,
        timeout_seconds=settings.http_timeout_seconds,
    )
    executor = SwapExecutor(settings=settings, chain=chain, venue=venue, notifier=notifier)
    return Runtime(settings=settings, chain=chain, venue=venue, executor=executor, notifier=notifier)
