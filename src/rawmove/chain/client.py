from __future__ import annotations

import logging
from typing import Any, Protocol

from web3 import AsyncHTTPProvider, AsyncWeb3
from web3.exceptions import TimeExhausted, Web3Exception

from rawmove.chain.abi import ERC20_ABI, QUOTER_V2_ABI, SWAP_ROUTER_ABI, WRAPPED_NATIVE_ABI
from rawmove.chain.signer import Signer
from rawmove.errors import ChainError, ConfigurationError, TransactionRevertedError
from rawmove.types import TxRequest

logger = logging.getLogger("rawmove.chain")

_GAS_HEADROOM_NUM = 12
_GAS_HEADROOM_DEN = 10
_DEFAULT_TIP_WEI = 1_000_000_000
_RECEIPT_POLL_SECONDS = 1.0


class ChainGateway(Protocol):
    """What the swap sequencer needs from the chain."""

    @property
    def address(self) -> str: ...

    async def native_balance(self, owner: str) -> int: ...

    async def token_balance(self, token: str, owner: str) -> int: ...

    async def allowance(self, token: str, owner: str, spender: str) -> int: ...

    async def quote_exact_input_single(
        self,
        *,
        quoter: str,
        token_in: str,
        token_out: str,
        fee: int,
        amount_in: int,
    ) -> int: ...

    def encode_approve(self, *, token: str, spender: str, amount: int) -> TxRequest: ...

    def encode_exact_input_single(
        self,
        *,
        router: str,
        token_in: str,
        token_out: str,
        fee: int,
        recipient: str,
        deadline: int,
        amount_in: int,
        amount_out_minimum: int,
        value: int,
    ) -> TxRequest: ...

    def encode_withdraw(self, *, wrapped_native: str, amount: int) -> TxRequest: ...

    async def send_transaction(self, tx: TxRequest) -> str: ...

    async def wait_for_receipt(self, tx_hash: str, *, step: str) -> dict[str, Any]: ...


def checksum(address: str) -> str:
    return AsyncWeb3.to_checksum_address(address.strip())


class ChainClient:
    def __init__(
        self,
        *,
        rpc_url: str,
        chain_id: int,
        signer: Signer,
        receipt_timeout_seconds: float = 120.0,
        w3: AsyncWeb3 | None = None,
    ) -> None:
        if not rpc_url and w3 is None:
            raise ConfigurationError("RPC_URL not configured")
        self._chain_id = int(chain_id)
        self._signer = signer
        self._receipt_timeout_seconds = float(receipt_timeout_seconds)
        self._w3 = w3 if w3 is not None else AsyncWeb3(AsyncHTTPProvider(rpc_url))

    @property
    def address(self) -> str:
        return self._signer.address

    @property
    def chain_id(self) -> int:
        return self._chain_id

    async def aclose(self) -> None:
        provider = self._w3.provider
        disconnect = getattr(provider, "disconnect", None)
        if disconnect is not None:
            await disconnect()

    async def remote_chain_id(self) -> int:
        return int(await self._w3.eth.chain_id)

    async def native_balance(self, owner: str) -> int:
        try:
            return int(await self._w3.eth.get_balance(checksum(owner)))
        except Web3Exception as e:
            raise ChainError(f"balance read failed: {e}") from e

    async def token_balance(self, token: str, owner: str) -> int:
        contract = self._w3.eth.contract(address=checksum(token), abi=ERC20_ABI)
        try:
            return int(await contract.functions.balanceOf(checksum(owner)).call())
        except Web3Exception as e:
            raise ChainError(f"token balance read failed: {e}", token=token) from e

    async def allowance(self, token: str, owner: str, spender: str) -> int:
        contract = self._w3.eth.contract(address=checksum(token), abi=ERC20_ABI)
        try:
            value = await contract.functions.allowance(checksum(owner), checksum(spender)).call()
        except Web3Exception as e:
            raise ChainError(f"allowance read failed: {e}", token=token) from e
        return int(value)

    async def quote_exact_input_single(
        self,
        *,
        quoter: str,
        token_in: str,
        token_out: str,
        fee: int,
        amount_in: int,
    ) -> int:
        contract = self._w3.eth.contract(address=checksum(quoter), abi=QUOTER_V2_ABI)
        params = {
            "tokenIn": checksum(token_in),
            "tokenOut": checksum(token_out),
            "amountIn": int(amount_in),
            "fee": int(fee),
            "sqrtPriceLimitX96": 0,
        }
        amount_out, _sqrt_after, _ticks, _gas = await contract.functions.quoteExactInputSingle(
            params
        ).call()
        return int(amount_out)

    def encode_approve(self, *, token: str, spender: str, amount: int) -> TxRequest:
        contract = self._w3.eth.contract(address=checksum(token), abi=ERC20_ABI)
        data = contract.encode_abi("approve", args=[checksum(spender), int(amount)])
        return TxRequest(to=checksum(token), data=data)

    def encode_exact_input_single(
        self,
        *,
        router: str,
        token_in: str,
        token_out: str,
        fee: int,
        recipient: str,
        deadline: int,
        amount_in: int,
        amount_out_minimum: int,
        value: int,
    ) -> TxRequest:
        contract = self._w3.eth.contract(address=checksum(router), abi=SWAP_ROUTER_ABI)
        params = (
            checksum(token_in),
            checksum(token_out),
            int(fee),
            checksum(recipient),
            int(deadline),
            int(amount_in),
            int(amount_out_minimum),
            0,
        )
        data = contract.encode_abi("exactInputSingle", args=[params])
        return TxRequest(to=checksum(router), data=data, value=int(value))

    def encode_withdraw(self, *, wrapped_native: str, amount: int) -> TxRequest:
        contract = self._w3.eth.contract(address=checksum(wrapped_native), abi=WRAPPED_NATIVE_ABI)
        data = contract.encode_abi("withdraw", args=[int(amount)])
        return TxRequest(to=checksum(wrapped_native), data=data)

    async def send_transaction(self, tx: TxRequest) -> str:
        try:
            payload = await self._fill_transaction(tx)
            raw = self._signer.sign_transaction(payload)
            tx_hash = await self._w3.eth.send_raw_transaction(raw)
        except Web3Exception as e:
            raise ChainError(f"transaction submit failed: {e}", to=tx.to) from e
        return AsyncWeb3.to_hex(tx_hash)

    async def wait_for_receipt(self, tx_hash: str, *, step: str) -> dict[str, Any]:
        try:
            receipt = await self._w3.eth.wait_for_transaction_receipt(
                tx_hash,
                timeout=self._receipt_timeout_seconds,
                poll_latency=_RECEIPT_POLL_SECONDS,
            )
        except TimeExhausted as e:
            raise ChainError(
                f"receipt not found within {self._receipt_timeout_seconds}s",
                txHash=tx_hash,
                step=step,
            ) from e
        if int(receipt.get("status", 0)) != 1:
            raise TransactionRevertedError(tx_hash=tx_hash, step=step)
        return dict(receipt)

    async def suggest_fees(self) -> tuple[int, int]:
        try:
            hist = await self._w3.eth.fee_history(5, "latest", [15])
            base = int(hist["baseFeePerGas"][-1])
            rewards = hist.get("reward") or []
            tip = (
                int(sum(int(r[0]) for r in rewards) / max(len(rewards), 1))
                if rewards
                else _DEFAULT_TIP_WEI
            )
            # 2x tip headroom over the latest base fee.
            return base + tip * 2, tip
        except Web3Exception:
            gas_price = int(await self._w3.eth.gas_price)
            return gas_price, _DEFAULT_TIP_WEI

    async def _fill_transaction(self, tx: TxRequest) -> dict[str, Any]:
        sender = checksum(self._signer.address)
        payload: dict[str, Any] = {
            "from": sender,
            "to": checksum(tx.to),
            "data": tx.data,
            "value": int(tx.value),
            "chainId": self._chain_id,
            "type": 2,
        }
        max_fee, tip = await self.suggest_fees()
        payload["maxFeePerGas"] = max_fee
        payload["maxPriorityFeePerGas"] = min(tip, max_fee)
        payload["nonce"] = int(await self._w3.eth.get_transaction_count(sender, "pending"))
        if tx.gas is not None:
            payload["gas"] = int(tx.gas)
        else:
            estimate = int(await self._w3.eth.estimate_gas(payload))
            payload["gas"] = estimate * _GAS_HEADROOM_NUM // _GAS_HEADROOM_DEN
        # `from` is only needed for estimation; the signature implies the sender.
        payload.pop("from")
        return payload
