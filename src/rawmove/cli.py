from __future__ import annotations

import asyncio
import logging
import time

import typer
import uvicorn

from rawmove.logging_utils import configure_logging
from rawmove.notifications.telegram import TelegramNotifier
from rawmove.runtime import build_runtime
from rawmove.settings import Settings
from rawmove.types import NATIVE_EEEE, Signal
from rawmove.web.app import create_app

app = typer.Typer(no_args_is_help=True, add_completion=False)
logger = logging.getLogger("rawmove")


@app.command()
def serve(
    host: str | None = typer.Option(None, help="Bind address (default: HOST)."),
    port: int | None = typer.Option(None, help="Bind port (default: PORT)."),
) -> None:
    """
    Run the signal webhook.
    """
    settings = Settings()
    configure_logging(settings.log_level)
    if not settings.live_trading_enabled():
        logger.warning("dry_run_mode", extra={"chain_id": settings.chain_id})
    uvicorn.run(
        create_app(settings),
        host=host or settings.host,
        port=port or settings.port,
        log_config=None,
    )


@app.command()
def show_config() -> None:
    settings = Settings()
    configure_logging(settings.log_level)
    redacted = settings.model_dump()
    for key in ("private_key", "shared_secret", "aggregator_api_key", "telegram_bot_token"):
        redacted[key] = "***" if redacted[key] else ""
    logger.info("loaded_config", extra={"chain_id": settings.chain_id, "venue": settings.venue})
    typer.echo(redacted)


@app.command()
def health() -> None:
    """
    Connect to the RPC node and print chain id, wallet and balances.
    """
    settings = Settings()
    configure_logging(settings.log_level)

    async def _run() -> None:
        runtime = build_runtime(settings)
        try:
            chain = runtime.chain
            remote_chain_id = await chain.remote_chain_id()
            native = await chain.native_balance(chain.address)
            tokens = {
                token: str(await chain.token_balance(token, chain.address))
                for token in settings.watch_tokens()
            }
            typer.echo(
                {
                    "ok": remote_chain_id == settings.chain_id,
                    "chain_id": remote_chain_id,
                    "wallet": chain.address,
                    "balance_native": str(native),
                    "balances": tokens,
                }
            )
        finally:
            await runtime.aclose()

    asyncio.run(_run())


@app.command()
def quote(
    side: str = typer.Option("SELL", help="BUY or SELL (informational)."),
    src: str = typer.Option(NATIVE_EEEE, help="Token to sell (native sentinel by default)."),
    dst: str = typer.Option(
        "0x833589fCD6eDb6E08f4c7C32D4f71b54bdA02913",
        help="Token to buy.",
    ),
    percent: int = typer.Option(0, help="Percent of balance (default: TRADE_PERCENT)."),
    slippage_bps: int = typer.Option(100, help="Slippage tolerance in bps."),
) -> None:
    """
    Dry-run a swap: read balance, quote and allowance without sending anything.
    """
    settings = Settings().model_copy(update={"trading_mode": "dry_run"})
    configure_logging(settings.log_level)

    side_u = side.strip().upper()
    if side_u not in ("BUY", "SELL"):
        raise typer.BadParameter("side must be BUY or SELL")

    signal = Signal(
        action="quote",
        side=side_u,  # type: ignore[arg-type]
        chain_id=settings.chain_id,
        src_token=src,
        dst_token=dst,
        amount_mode="exact_in",
        amount_value=percent or settings.trade_percent,
        slippage_bps=slippage_bps,
        deadline_sec=300,
        symbol="cli",
        tf="-",
        signal_id=f"cli-{int(time.time())}",
    )

    async def _run() -> None:
        runtime = build_runtime(settings)
        try:
            report = await runtime.executor.execute(signal)
        finally:
            await runtime.aclose()
        typer.echo(report.to_payload())
        if not report.ok:
            typer.echo(f"error: {type(report.error).__name__}: {report.error}", err=True)
            raise typer.Exit(code=1)

    asyncio.run(_run())


@app.command()
def alerts_test(
    message: str = typer.Option("rawmove test alert", help="Message to send."),
) -> None:
    settings = Settings()
    configure_logging(settings.log_level)

    async def _run() -> None:
        notifier = TelegramNotifier(
            bot_token=settings.telegram_bot_token,
            chat_id=settings.telegram_chat_id,
        )
        try:
            await notifier.send(message)
            typer.echo({"ok": True, "channel": "telegram", "enabled": notifier.enabled()})
        finally:
            await notifier.aclose()

    asyncio.run(_run())
