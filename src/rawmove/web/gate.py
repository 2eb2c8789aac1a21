from __future__ import annotations

import hmac
from typing import Any, Mapping

from rawmove.errors import ForbiddenError, UnauthorizedError

SECRET_HEADER = "X-Secret"


def extract_secret(headers: Mapping[str, str], body: Mapping[str, Any]) -> str:
    provided = headers.get(SECRET_HEADER) or headers.get(SECRET_HEADER.lower())
    if not provided:
        provided = body.get("secret") or ""
    return str(provided)


def check_secret(provided: str, configured: str) -> None:
    configured = configured.strip()
    # An unset secret locks the endpoint rather than opening it.
    if not configured:
        raise UnauthorizedError("shared secret not configured")
    if not hmac.compare_digest(provided.encode("utf-8"), configured.encode("utf-8")):
        raise UnauthorizedError("secret mismatch")


def check_wallet(address: str, allowed: list[str]) -> None:
    if allowed and address.lower() not in allowed:
        raise ForbiddenError(f"wallet {address} is not in ALLOWED_WALLETS", wallet=address)
