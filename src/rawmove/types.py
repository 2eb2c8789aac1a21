from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Literal, Optional

Side = Literal["BUY", "SELL"]

NATIVE_ZERO = "0x0000000000000000000000000000000000000000"
NATIVE_EEEE = "0xeeeeeeeeeeeeeeeeeeeeeeeeeeeeeeeeeeeeeeee"


def is_native(token: str) -> bool:
    return token.strip().lower() in (NATIVE_ZERO, NATIVE_EEEE)


@dataclass(frozen=True)
class Signal:
    action: str
    side: Side
    chain_id: int
    src_token: str
    dst_token: str
    amount_mode: Literal["exact_in"]
    amount_value: int
    slippage_bps: int
    deadline_sec: int
    symbol: str
    tf: str
    signal_id: str


@dataclass(frozen=True)
class Route:
    # Venue-level token addresses; native legs are already mapped to the
    # venue's representation (sentinel or wrapped native).
    token_in: str
    token_out: str
    native_in: bool
    native_out: bool
    unwrap_token: Optional[str] = None


@dataclass(frozen=True)
class TxRequest:
    to: str
    data: str
    value: int = 0
    # None lets the chain client estimate.
    gas: Optional[int] = None


@dataclass(frozen=True)
class Quote:
    """
    A venue's answer for one exact-input swap.

    `degraded` quotes carry `min_out == 0` and a `fallback_reason`; they only
    exist when unguarded swaps are explicitly allowed.
    """

    token_in: str
    token_out: str
    amount_in: int
    expected_out: int
    min_out: int
    venue: str
    fee: Optional[int] = None
    tx: Optional[TxRequest] = None
    allowance_target: Optional[str] = None
    sources: Optional[object] = None
    price: Optional[str] = None
    degraded: bool = False
    fallback_reason: str = ""


class ExecutionState(str, Enum):
    VALIDATED = "validated"
    ALLOWANCE_CHECKED = "allowance_checked"
    APPROVED = "approved"
    SUBMITTED = "submitted"
    CONFIRMED = "confirmed"
    UNWRAPPED = "unwrapped"
    DONE = "done"
    FAILED = "failed"


@dataclass
class ExecutionReport:
    signal: Signal
    live: bool
    state: ExecutionState = ExecutionState.VALIDATED
    history: list[ExecutionState] = field(default_factory=lambda: [ExecutionState.VALIDATED])
    balance: int = 0
    percent: int = 0
    amount_in: int = 0
    quote: Optional[Quote] = None
    allowance: Optional[int] = None
    approval_tx_hash: Optional[str] = None
    swap_tx_hash: Optional[str] = None
    unwrap_tx_hash: Optional[str] = None
    unwrapped_amount: int = 0
    planned_steps: list[str] = field(default_factory=list)
    error: Optional[Exception] = None

    @property
    def ok(self) -> bool:
        return self.state == ExecutionState.DONE

    def to_payload(self) -> dict[str, object]:
        payload: dict[str, object] = {
            "ok": self.ok,
            "mode": "live" if self.live else "dry_run",
            "side": self.signal.side,
            "signalId": self.signal.signal_id,
            "symbol": self.signal.symbol,
            "balance": str(self.balance),
            "percent": self.percent,
            "sellAmount": str(self.amount_in),
            "states": [s.value for s in self.history],
        }
        if self.quote is not None:
            payload.update(
                {
                    "venue": self.quote.venue,
                    "expectedOut": str(self.quote.expected_out),
                    "amountOutMinimum": str(self.quote.min_out),
                    "usedFallback": self.quote.degraded,
                }
            )
            if self.quote.degraded:
                payload["fallbackReason"] = self.quote.fallback_reason
            if self.quote.fee is not None:
                payload["fee"] = self.quote.fee
            if self.quote.sources is not None:
                payload["route"] = self.quote.sources
            if self.quote.price is not None:
                payload["price"] = self.quote.price
        if self.allowance is not None:
            payload["allowance"] = str(self.allowance)
        if self.approval_tx_hash:
            payload["approvalTxHash"] = self.approval_tx_hash
        if self.swap_tx_hash:
            payload["txHash"] = self.swap_tx_hash
        if self.unwrap_tx_hash:
            payload["unwrapTxHash"] = self.unwrap_tx_hash
            payload["unwrappedAmount"] = str(self.unwrapped_amount)
        if not self.live:
            payload["plannedSteps"] = list(self.planned_steps)
        return payload
