from __future__ import annotations

import httpx

from rawmove.types import ExecutionReport


def format_report(report: ExecutionReport) -> str:
    signal = report.signal
    tag = "[LIVE]" if report.live else "[DRY_RUN]"
    head = f"{tag} {signal.symbol} {signal.tf} {signal.side} id={signal.signal_id}"
    if not report.ok:
        err = report.error
        reason = f"{type(err).__name__}: {err}" if err is not None else "unknown"
        return "\n".join([f"[FAILED] {head}", f"state={report.history[-2].value}", reason])

    lines = [head, f"sell={report.amount_in} ({report.percent}% of {report.balance})"]
    if report.quote is not None:
        lines.append(f"expected={report.quote.expected_out} min={report.quote.min_out}")
        if report.quote.degraded:
            lines.append(f"UNGUARDED: {report.quote.fallback_reason}")
    if report.approval_tx_hash:
        lines.append(f"approve={report.approval_tx_hash}")
    if report.swap_tx_hash:
        lines.append(f"swap={report.swap_tx_hash}")
    if report.unwrap_tx_hash:
        lines.append(f"unwrap={report.unwrap_tx_hash}")
    return "\n".join(lines)


class TelegramNotifier:
    def __init__(
        self,
        *,
        bot_token: str,
        chat_id: str,
        timeout_seconds: float = 10.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._bot_token = bot_token.strip()
        self._chat_id = chat_id.strip()
        self._client = httpx.AsyncClient(timeout=httpx.Timeout(timeout_seconds), transport=transport)

    def enabled(self) -> bool:
        return bool(self._bot_token and self._chat_id)

    async def aclose(self) -> None:
        await self._client.aclose()

    async def send(self, text: str) -> None:
        if not self.enabled():
            return
        url = f"https://api.telegram.org/bot{self._bot_token}/sendMessage"
        payload = {"chat_id": self._chat_id, "text": text, "disable_web_page_preview": True}
        resp = await self._client.post(url, json=payload)
        resp.raise_for_status()

    async def send_report(self, report: ExecutionReport) -> None:
        await self.send(format_report(report))
