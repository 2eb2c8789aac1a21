from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import Any, Optional

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from rawmove.errors import PayloadError, RawmoveError
from rawmove.runtime import Runtime, build_runtime
from rawmove.settings import Settings
from rawmove.web.gate import check_secret, check_wallet, extract_secret
from rawmove.web.payload import parse_body, parse_signal

logger = logging.getLogger("rawmove.web")


def _runtime(request: Request) -> Runtime:
    runtime = getattr(request.app.state, "runtime", None)
    if runtime is None:
        raise RuntimeError("runtime not initialized. Check app lifespan startup.")
    return runtime


def _failure_payload(error: Optional[Exception]) -> tuple[int, dict[str, Any]]:
    if isinstance(error, RawmoveError):
        return error.status_code, error.to_payload()
    message = str(error) if error is not None else "unknown error"
    return 500, {"ok": False, "error": "internal_error", "message": message}


def create_app(settings: Settings, runtime: Optional[Runtime] = None) -> FastAPI:
    @asynccontextmanager
    async def lifespan(app: FastAPI):
        owned = runtime is None
        app.state.runtime = runtime if runtime is not None else build_runtime(settings)
        logger.info(
            "webhook_started",
            extra={"chain_id": settings.chain_id, "venue": settings.venue},
        )
        try:
            yield
        finally:
            if owned:
                await app.state.runtime.aclose()
            logger.info("webhook_stopped")

    app = FastAPI(title="rawmove", version="0.1.0", lifespan=lifespan)
    app.state.settings = settings
    if runtime is not None:
        app.state.runtime = runtime

    @app.exception_handler(RawmoveError)
    async def _rawmove_error(_: Request, exc: RawmoveError) -> JSONResponse:
        return JSONResponse(status_code=exc.status_code, content=exc.to_payload())

    mode = "live" if settings.live_trading_enabled() else "dry_run"

    @app.get("/")
    async def root() -> dict[str, Any]:
        return {"ok": True, "mode": mode}

    @app.get("/test")
    async def test() -> dict[str, Any]:
        return {"ok": True, "mode": mode, "venue": settings.venue}

    @app.get("/addr")
    async def addr(request: Request) -> dict[str, Any]:
        return {"ok": True, "wallet": _runtime(request).chain.address}

    @app.get("/env")
    async def env() -> dict[str, Any]:
        return {"ok": True, **settings.public_flags()}

    @app.get("/diag")
    async def diag(request: Request) -> JSONResponse:
        chain = _runtime(request).chain
        wallet = chain.address
        try:
            native = await chain.native_balance(wallet)
            tokens = {
                token: str(await chain.token_balance(token, wallet))
                for token in settings.watch_tokens()
            }
        except Exception as e:
            logger.exception("diag_failed")
            return JSONResponse(status_code=500, content={"ok": False, "error": str(e)})
        return JSONResponse(
            content={
                "ok": True,
                "chainId": settings.chain_id,
                "wallet": wallet,
                "balanceNative": str(native),
                "balances": tokens,
                "DRY_RUN": not settings.live_trading_enabled(),
                **settings.public_flags(),
            }
        )

    async def _handle_signal(request: Request) -> JSONResponse:
        runtime = _runtime(request)
        raw = await request.body()
        body: dict[str, Any] = {}
        body_error: Optional[PayloadError] = None
        try:
            body = parse_body(raw)
        except PayloadError as e:
            body_error = e

        check_secret(extract_secret(request.headers, body), settings.shared_secret)
        if body_error is not None:
            raise body_error
        check_wallet(runtime.chain.address, settings.allowed_wallets())

        signal = parse_signal(
            body,
            chain_id=settings.chain_id,
            max_slippage_bps=settings.max_slippage_bps,
        )
        report = await runtime.executor.execute(signal)
        if report.ok:
            return JSONResponse(content=report.to_payload())

        status_code, content = _failure_payload(report.error)
        content.update(
            {
                "signalId": signal.signal_id,
                "side": signal.side,
                "states": [s.value for s in report.history],
            }
        )
        if report.swap_tx_hash:
            content["txHash"] = report.swap_tx_hash
        if report.approval_tx_hash:
            content["approvalTxHash"] = report.approval_tx_hash
        return JSONResponse(status_code=status_code, content=content)

    app.add_api_route("/", _handle_signal, methods=["POST"])
    app.add_api_route("/hook", _handle_signal, methods=["POST"])
    return app
