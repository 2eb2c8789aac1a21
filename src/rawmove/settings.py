from __future__ import annotations

from typing import Literal

from pydantic import AliasChoices, Field
from pydantic_settings import BaseSettings, SettingsConfigDict


def _split_csv(raw: str) -> list[str]:
    return [s.strip() for s in raw.split(",") if s.strip()]


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        frozen=True,
    )

    # Chain
    chain_id: int = Field(default=8453, validation_alias="CHAIN_ID")
    rpc_url: str = Field(default="", validation_alias=AliasChoices("RPC_URL", "RPC_URL_BASE"))
    private_key: str = Field(default="", validation_alias="PRIVATE_KEY")

    # Webhook
    shared_secret: str = Field(default="", validation_alias="SHARED_SECRET")
    host: str = Field(default="0.0.0.0", validation_alias="HOST")
    port: int = Field(default=10000, validation_alias="PORT")

    # Venue
    venue: Literal["aggregator", "router"] = Field(default="aggregator", validation_alias="VENUE")
    aggregator_url: str = Field(default="https://base.api.0x.org", validation_alias="AGGREGATOR_URL")
    aggregator_api_key: str = Field(default="", validation_alias="AGGREGATOR_API_KEY")
    router_address: str = Field(default="", validation_alias="ROUTER_ADDRESS")
    quoter_address: str = Field(default="", validation_alias="QUOTER_ADDRESS")
    wrapped_native_address: str = Field(
        default="0x4200000000000000000000000000000000000006",
        validation_alias="WRAPPED_NATIVE_ADDRESS",
    )
    fee_tiers_raw: str = Field(default="500,3000,10000", validation_alias="FEE_TIERS")

    # Sizing / risk
    trade_percent: int = Field(default=90, ge=1, le=100, validation_alias="TRADE_PERCENT")
    max_slippage_bps: int = Field(default=10_000, ge=0, le=10_000, validation_alias="MAX_SLIPPAGE_BPS")
    default_gas_limit: int = Field(default=350_000, gt=0, validation_alias="DEFAULT_GAS_LIMIT")
    allow_unguarded_swap: bool = Field(default=False, validation_alias="ALLOW_UNGUARDED_SWAP")
    allowed_wallets_raw: str = Field(default="", validation_alias="ALLOWED_WALLETS")
    allowed_routers_raw: str = Field(default="", validation_alias="ALLOWED_ROUTERS")
    watch_tokens_raw: str = Field(
        default="0x833589fCD6eDb6E08f4c7C32D4f71b54bdA02913",
        validation_alias="WATCH_TOKENS",
    )

    # Mode
    trading_mode: Literal["dry_run", "live"] = Field(
        default="dry_run",
        validation_alias="TRADING_MODE",
    )
    confirm_live_trading: str = Field(default="", validation_alias="CONFIRM_LIVE_TRADING")

    # Timeouts
    http_timeout_seconds: float = Field(default=10.0, gt=0, validation_alias="HTTP_TIMEOUT_SECONDS")
    receipt_timeout_seconds: float = Field(
        default=120.0,
        gt=0,
        validation_alias="RECEIPT_TIMEOUT_SECONDS",
    )

    # Telegram
    telegram_bot_token: str = Field(default="", validation_alias="TELEGRAM_BOT_TOKEN")
    telegram_chat_id: str = Field(default="", validation_alias="TELEGRAM_CHAT_ID")

    # Logging
    log_level: str = Field(default="INFO", validation_alias="LOG_LEVEL")

    def live_trading_enabled(self) -> bool:
        return self.trading_mode == "live" and self.confirm_live_trading.strip().upper() == "YES"

    def fee_tiers(self) -> list[int]:
        tiers: list[int] = []
        for item in _split_csv(self.fee_tiers_raw):
            fee = int(item)
            if fee <= 0:
                raise ValueError(f"fee tier must be > 0: {item}")
            tiers.append(fee)
        return tiers

    def allowed_wallets(self) -> list[str]:
        return [s.lower() for s in _split_csv(self.allowed_wallets_raw)]

    def allowed_routers(self) -> list[str]:
        return [s.lower() for s in _split_csv(self.allowed_routers_raw)]

    def watch_tokens(self) -> list[str]:
        return _split_csv(self.watch_tokens_raw)

    def public_flags(self) -> dict[str, object]:
        return {
            "chainId": self.chain_id,
            "venue": self.venue,
            "mode": "live" if self.live_trading_enabled() else "dry_run",
            "tradePercent": self.trade_percent,
            "maxSlippageBps": self.max_slippage_bps,
            "feeTiers": self.fee_tiers_raw,
            "allowUnguardedSwap": self.allow_unguarded_swap,
            "hasRpcUrl": bool(self.rpc_url),
            "hasPrivateKey": bool(self.private_key),
            "hasSharedSecret": bool(self.shared_secret),
            "hasQuoter": bool(self.quoter_address),
            "hasRouter": bool(self.router_address),
            "walletAllowList": bool(self.allowed_wallets_raw.strip()),
            "routerAllowList": bool(self.allowed_routers_raw.strip()),
        }
