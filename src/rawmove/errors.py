from __future__ import annotations

from typing import Any


class RawmoveError(RuntimeError):
    code = "internal_error"
    status_code = 500

    def __init__(self, message: str, **details: Any) -> None:
        super().__init__(message)
        self.details = details

    def to_payload(self) -> dict[str, Any]:
        payload: dict[str, Any] = {"ok": False, "error": self.code, "message": str(self)}
        payload.update(self.details)
        return payload


class ConfigurationError(RawmoveError):
    code = "config_error"


class PayloadError(RawmoveError):
    code = "invalid_payload"
    status_code = 400

    def __init__(
        self,
        message: str = "invalid payload",
        *,
        missing: list[str] | None = None,
        invalid: dict[str, str] | None = None,
    ) -> None:
        details: dict[str, Any] = {}
        if missing:
            details["missing"] = list(missing)
        if invalid:
            details["invalid"] = dict(invalid)
        super().__init__(message, **details)
        self.missing = list(missing or [])
        self.invalid = dict(invalid or {})

    def to_payload(self) -> dict[str, Any]:
        payload: dict[str, Any] = {"ok": False, "error": self.code}
        payload.update(self.details)
        return payload


class UnauthorizedError(RawmoveError):
    code = "unauthorized"
    status_code = 401

    def to_payload(self) -> dict[str, Any]:
        return {"ok": False, "error": self.code}


class ForbiddenError(RawmoveError):
    code = "wallet_not_allowed"
    status_code = 403


class InsufficientBalanceError(RawmoveError):
    code = "insufficient_balance"


class SlippageBoundError(RawmoveError):
    code = "slippage_bound"


class QuoteError(RawmoveError):
    code = "quote_failed"


class AggregatorApiError(QuoteError):
    def __init__(self, *, status_code: int, payload: Any) -> None:
        super().__init__(f"Aggregator API error: status={status_code} payload={payload!r}")
        self.upstream_status = status_code
        self.payload = payload


class RouterNotAllowedError(RawmoveError):
    code = "router_not_allowed"


class ChainError(RawmoveError):
    code = "chain_error"


class TransactionRevertedError(ChainError):
    code = "tx_reverted"

    def __init__(self, *, tx_hash: str, step: str) -> None:
        super().__init__(f"transaction reverted: step={step} tx={tx_hash}", txHash=tx_hash, step=step)
        self.tx_hash = tx_hash
        self.step = step
