from __future__ import annotations

from typing import Any, Protocol

from eth_account import Account
from eth_account.signers.local import LocalAccount

from rawmove.errors import ConfigurationError


class Signer(Protocol):
    @property
    def address(self) -> str: ...

    def sign_transaction(self, tx: dict[str, Any]) -> bytes: ...


def normalize_private_key(raw: str) -> str:
    key = raw.strip()
    if not key:
        raise ConfigurationError("PRIVATE_KEY is not configured")
    return key if key.startswith("0x") else "0x" + key


class LocalSigner:
    """Hot-wallet signer backed by an in-process key."""

    def __init__(self, private_key: str) -> None:
        try:
            self._account: LocalAccount = Account.from_key(normalize_private_key(private_key))
        except ConfigurationError:
            raise
        except (ValueError, TypeError) as e:
            raise ConfigurationError(f"invalid PRIVATE_KEY: {type(e).__name__}") from e

    @property
    def address(self) -> str:
        return self._account.address

    def sign_transaction(self, tx: dict[str, Any]) -> bytes:
        signed = self._account.sign_transaction(tx)
        return bytes(signed.raw_transaction)
