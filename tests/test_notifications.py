import asyncio
import json

import httpx

from rawmove.errors import QuoteError
from rawmove.notifications.telegram import TelegramNotifier, format_report
from rawmove.types import ExecutionReport, ExecutionState, Quote, Signal


def _signal() -> Signal:
    return Signal(
        action="swap",
        side="SELL",
        chain_id=8453,
        src_token="0xEeeeeEeeeEeEeeEeEeEeeEEEeeeeEeeeeeeeEEeE",
        dst_token="0x833589fCD6eDb6E08f4c7C32D4f71b54bdA02913",
        amount_mode="exact_in",
        amount_value=90,
        slippage_bps=100,
        deadline_sec=300,
        symbol="ETHUSDC",
        tf="15",
        signal_id="sig-9",
    )


def test_format_report_success() -> None:
    report = ExecutionReport(signal=_signal(), live=True, balance=1000, percent=90, amount_in=900)
    report.quote = Quote(
        token_in="a",
        token_out="b",
        amount_in=900,
        expected_out=1000,
        min_out=990,
        venue="aggregator",
    )
    report.swap_tx_hash = "0xswap"
    report.state = ExecutionState.DONE

    text = format_report(report)

    assert text.startswith("[LIVE] ETHUSDC 15 SELL id=sig-9")
    assert "sell=900 (90% of 1000)" in text
    assert "expected=1000 min=990" in text
    assert "swap=0xswap" in text


def test_format_report_failure_names_last_state() -> None:
    report = ExecutionReport(signal=_signal(), live=False)
    report.history.append(ExecutionState.FAILED)
    report.state = ExecutionState.FAILED
    report.error = QuoteError("all fee tiers failed")

    text = format_report(report)

    assert text.startswith("[FAILED] [DRY_RUN]")
    assert "state=validated" in text
    assert "QuoteError: all fee tiers failed" in text


def test_notifier_posts_message() -> None:
    captured: dict[str, object] = {}

    def handler(request: httpx.Request) -> httpx.Response:
        captured["url"] = str(request.url)
        captured["body"] = json.loads(request.content)
        return httpx.Response(200, json={"ok": True})

    notifier = TelegramNotifier(
        bot_token="123:abc", chat_id="42", transport=httpx.MockTransport(handler)
    )
    try:
        asyncio.run(notifier.send("hello"))
    finally:
        asyncio.run(notifier.aclose())

    assert captured["url"] == "https://api.telegram.org/bot123:abc/sendMessage"
    assert captured["body"] == {"chat_id": "42", "text": "hello", "disable_web_page_preview": True}


def test_notifier_disabled_without_credentials() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        raise AssertionError("should not send")

    notifier = TelegramNotifier(bot_token="", chat_id="42", transport=httpx.MockTransport(handler))
    assert notifier.enabled() is False
    try:
        asyncio.run(notifier.send("hello"))
    finally:
        asyncio.run(notifier.aclose())
