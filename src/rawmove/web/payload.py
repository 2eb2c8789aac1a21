from __future__ import annotations

import json
import re
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, ValidationError, ValidationInfo, field_validator
from web3 import Web3

from rawmove.errors import PayloadError
from rawmove.types import Signal

REQUIRED_FIELDS = (
    "action",
    "side",
    "chainId",
    "srcToken",
    "dstToken",
    "amountMode",
    "amountValue",
    "slippageBps",
    "deadlineSec",
    "symbol",
    "tf",
    "signalId",
)

_EXACT_IN_ALIASES = {"exactin", "exactinput", "exact_in", "exact_input", "exact-in"}
_PAIR_SPLIT = re.compile(r"[\n&;]+")


def parse_body(raw: bytes) -> dict[str, Any]:
    """
    Accept a JSON object, or alert-style text: `key=value` pairs separated by
    newlines, `&` or `;`.
    """
    text = raw.decode("utf-8", errors="replace").strip()
    if not text:
        return {}
    if text.startswith("{") or text.startswith("["):
        try:
            data = json.loads(text)
        except ValueError as e:
            raise PayloadError(
                f"body is not valid JSON: {e}", invalid={"body": "malformed json"}
            ) from e
        if not isinstance(data, dict):
            raise PayloadError("body must be an object", invalid={"body": "not an object"})
        return data

    body: dict[str, Any] = {}
    for chunk in _PAIR_SPLIT.split(text):
        if "=" not in chunk:
            continue
        key, _, value = chunk.partition("=")
        key = key.strip()
        if key:
            body[key] = value.strip()
    if not body:
        raise PayloadError("body has no fields", invalid={"body": "no key=value pairs"})
    return body


class SignalPayload(BaseModel):
    model_config = ConfigDict(extra="ignore", str_strip_whitespace=True)

    action: str = Field(validation_alias="action", min_length=1)
    side: Literal["BUY", "SELL"] = Field(validation_alias="side")
    chain_id: int = Field(validation_alias="chainId")
    src_token: str = Field(validation_alias="srcToken")
    dst_token: str = Field(validation_alias="dstToken")
    amount_mode: Literal["exact_in"] = Field(validation_alias="amountMode")
    amount_value: int = Field(validation_alias="amountValue", ge=1, le=100)
    slippage_bps: int = Field(validation_alias="slippageBps", ge=0, le=10_000)
    deadline_sec: int = Field(validation_alias="deadlineSec", gt=0)
    symbol: str = Field(validation_alias="symbol")
    tf: str = Field(validation_alias="tf")
    signal_id: str = Field(validation_alias="signalId")

    @field_validator("side", mode="before")
    @classmethod
    def _upper_side(cls, v: Any) -> Any:
        return str(v).strip().upper() if v is not None else v

    @field_validator("amount_mode", mode="before")
    @classmethod
    def _normalize_mode(cls, v: Any) -> Any:
        s = str(v).strip().lower()
        if s in _EXACT_IN_ALIASES:
            return "exact_in"
        raise ValueError("only exact input is supported")

    @field_validator("chain_id")
    @classmethod
    def _supported_chain(cls, v: int, info: ValidationInfo) -> int:
        expected = (info.context or {}).get("chain_id")
        if expected is not None and v != int(expected):
            raise ValueError(f"unsupported chain {v}")
        return v

    @field_validator("src_token", "dst_token")
    @classmethod
    def _address(cls, v: str) -> str:
        if not Web3.is_address(v.lower()):
            raise ValueError("not an address")
        return v

    @field_validator("slippage_bps")
    @classmethod
    def _slippage_cap(cls, v: int, info: ValidationInfo) -> int:
        cap = (info.context or {}).get("max_slippage_bps")
        if cap is not None and v > int(cap):
            raise ValueError(f"slippage above configured maximum {cap}")
        return v

    def to_signal(self) -> Signal:
        if self.src_token.lower() == self.dst_token.lower():
            raise PayloadError(invalid={"dstToken": "same as srcToken"})
        return Signal(
            action=self.action,
            side=self.side,
            chain_id=self.chain_id,
            src_token=self.src_token,
            dst_token=self.dst_token,
            amount_mode=self.amount_mode,
            amount_value=self.amount_value,
            slippage_bps=self.slippage_bps,
            deadline_sec=self.deadline_sec,
            symbol=self.symbol,
            tf=self.tf,
            signal_id=self.signal_id,
        )


def parse_signal(
    body: dict[str, Any],
    *,
    chain_id: int | None = None,
    max_slippage_bps: int | None = None,
) -> Signal:
    present = {k: v for k, v in body.items() if v is not None and v != ""}
    missing = [f for f in REQUIRED_FIELDS if f not in present]
    if missing:
        raise PayloadError(missing=missing)

    context = {"chain_id": chain_id, "max_slippage_bps": max_slippage_bps}
    try:
        payload = SignalPayload.model_validate(present, context=context)
    except ValidationError as e:
        invalid: dict[str, str] = {}
        for err in e.errors():
            loc = err.get("loc") or ("body",)
            invalid[str(loc[0])] = str(err.get("msg", "invalid"))
        raise PayloadError(invalid=invalid) from e
    return payload.to_signal()
