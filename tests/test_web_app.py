from typing import Any

from fastapi.testclient import TestClient

from rawmove.engine.executor import SwapExecutor
from rawmove.runtime import Runtime
from rawmove.settings import Settings
from rawmove.types import NATIVE_EEEE, Quote, Route, Signal, TxRequest, is_native
from rawmove.venues.base import SwapVenue
from rawmove.web.app import create_app

WALLET = "0x2c7536E3605D9C16a7a3D7b1898e529396a65c23"
USDC = "0x833589fCD6eDb6E08f4c7C32D4f71b54bdA02913"
SECRET = "s3cret"


class _Chain:
    def __init__(self, *, usdc: int = 1000, fail_reads: bool = False) -> None:
        self.usdc = usdc
        self.fail_reads = fail_reads
        self.sent: list[str] = []

    @property
    def address(self) -> str:
        return WALLET

    async def native_balance(self, owner: str) -> int:
        if self.fail_reads:
            raise ConnectionError("rpc down")
        return 5 * 10**17

    async def token_balance(self, token: str, owner: str) -> int:
        return self.usdc if token.lower() == USDC.lower() else 0

    async def allowance(self, token: str, owner: str, spender: str) -> int:
        return 0

    def encode_approve(self, *, token: str, spender: str, amount: int) -> TxRequest:
        return TxRequest(to=token, data="approve")

    async def send_transaction(self, tx: TxRequest) -> str:
        self.sent.append(tx.data)
        return "0x" + f"{len(self.sent):064x}"

    async def wait_for_receipt(self, tx_hash: str, *, step: str) -> dict[str, Any]:
        return {"status": 1}


class _Venue(SwapVenue):
    venue_id = "aggregator"

    def resolve_route(self, signal: Signal) -> Route:
        return Route(
            token_in=signal.src_token,
            token_out=signal.dst_token,
            native_in=is_native(signal.src_token),
            native_out=is_native(signal.dst_token),
        )

    async def quote(self, *, route: Route, amount_in: int, slippage_bps: int, taker: str) -> Quote:
        return Quote(
            token_in=route.token_in,
            token_out=route.token_out,
            amount_in=amount_in,
            expected_out=2000,
            min_out=2000 * (10_000 - slippage_bps) // 10_000,
            venue=self.venue_id,
            price="2.22",
        )

    def spender(self, quote: Quote) -> str:
        return "0xdef1c0ded9bec7f1a1670819833240f027b25eff"

    def build_swap(self, *, route: Route, quote: Quote, recipient: str, deadline: int) -> TxRequest:
        return TxRequest(to="0xdef1c0ded9bec7f1a1670819833240f027b25eff", data="swap")


def _client(settings: Settings, chain: _Chain | None = None) -> tuple[TestClient, _Chain]:
    chain = chain or _Chain()
    venue = _Venue()
    executor = SwapExecutor(settings=settings, chain=chain, venue=venue)  # type: ignore[arg-type]
    runtime = Runtime(settings=settings, chain=chain, venue=venue, executor=executor)  # type: ignore[arg-type]
    return TestClient(create_app(settings, runtime=runtime)), chain


def _settings(**overrides: Any) -> Settings:
    values: dict[str, Any] = {"SHARED_SECRET": SECRET, "TRADING_MODE": "dry_run"}
    values.update(overrides)
    return Settings(**values)


def _body(**overrides: Any) -> dict[str, Any]:
    body: dict[str, Any] = {
        "action": "swap",
        "side": "BUY",
        "chainId": 8453,
        "srcToken": USDC,
        "dstToken": NATIVE_EEEE,
        "amountMode": "exact_in",
        "amountValue": 90,
        "slippageBps": 100,
        "deadlineSec": 300,
        "symbol": "ETHUSDC",
        "tf": "15",
        "signalId": "sig-1",
    }
    body.update(overrides)
    return body


def test_health_endpoints() -> None:
    client, _ = _client(_settings())
    with client:
        assert client.get("/").json() == {"ok": True, "mode": "dry_run"}
        assert client.get("/test").json()["venue"] == "aggregator"
        assert client.get("/addr").json() == {"ok": True, "wallet": WALLET}
        env = client.get("/env").json()
        assert env["hasSharedSecret"] is True
        assert SECRET not in repr(env)


def test_diag_reports_balances() -> None:
    client, _ = _client(_settings())
    with client:
        data = client.get("/diag").json()
    assert data["ok"] is True
    assert data["wallet"] == WALLET
    assert data["balanceNative"] == str(5 * 10**17)
    assert data["balances"] == {USDC: "1000"}
    assert data["DRY_RUN"] is True


def test_diag_failure_is_500() -> None:
    client, _ = _client(_settings(), chain=_Chain(fail_reads=True))
    with client:
        response = client.get("/diag")
    assert response.status_code == 500
    assert response.json()["ok"] is False


def test_wrong_secret_is_401() -> None:
    client, chain = _client(_settings())
    with client:
        response = client.post("/hook", json=_body(), headers={"X-Secret": "nope"})
    assert response.status_code == 401
    assert response.json() == {"ok": False, "error": "unauthorized"}
    assert chain.sent == []


def test_secret_checked_before_payload() -> None:
    client, _ = _client(_settings())
    with client:
        response = client.post("/hook", content=b"{broken")
    assert response.status_code == 401


def test_missing_field_is_400() -> None:
    body = _body()
    body.pop("slippageBps")
    client, _ = _client(_settings())
    with client:
        response = client.post("/hook", json=body, headers={"X-Secret": SECRET})
    assert response.status_code == 400
    assert response.json() == {"ok": False, "error": "invalid_payload", "missing": ["slippageBps"]}


def test_dry_run_signal_returns_plan() -> None:
    client, chain = _client(_settings())
    with client:
        response = client.post("/", json={**_body(), "secret": SECRET})
    assert response.status_code == 200
    data = response.json()
    assert data["ok"] is True
    assert data["mode"] == "dry_run"
    assert data["sellAmount"] == "900"
    assert data["amountOutMinimum"] == "1980"
    assert data["plannedSteps"] == ["approve", "swap"]
    assert chain.sent == []


def test_live_signal_approves_then_swaps() -> None:
    client, chain = _client(_settings(TRADING_MODE="live", CONFIRM_LIVE_TRADING="YES"))
    with client:
        response = client.post("/hook", json=_body(), headers={"X-Secret": SECRET})
    assert response.status_code == 200
    data = response.json()
    assert data["mode"] == "live"
    assert "approvalTxHash" in data
    assert "txHash" in data
    assert chain.sent == ["approve", "swap"]


def test_failed_execution_maps_error_status() -> None:
    client, _ = _client(_settings(), chain=_Chain(usdc=0))
    with client:
        response = client.post("/hook", json=_body(), headers={"X-Secret": SECRET})
    assert response.status_code == 500
    data = response.json()
    assert data["ok"] is False
    assert data["error"] == "insufficient_balance"
    assert data["signalId"] == "sig-1"
    assert data["states"] == ["validated", "failed"]


def test_wallet_outside_allow_list_is_403() -> None:
    settings = _settings(ALLOWED_WALLETS="0x0000000000000000000000000000000000000001")
    client, chain = _client(settings)
    with client:
        response = client.post("/hook", json=_body(), headers={"X-Secret": SECRET})
    assert response.status_code == 403
    assert response.json()["error"] == "wallet_not_allowed"
    assert chain.sent == []
