from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass
from typing import Awaitable, Callable, Optional, Protocol

from rawmove.chain.client import ChainGateway
from rawmove.errors import RawmoveError
from rawmove.math_utils import trade_size
from rawmove.settings import Settings
from rawmove.types import ExecutionReport, ExecutionState, Quote, Route, Signal
from rawmove.venues.base import SwapVenue

logger = logging.getLogger("rawmove.executor")

_TRANSITIONS: dict[ExecutionState, frozenset[ExecutionState]] = {
    ExecutionState.VALIDATED: frozenset({ExecutionState.ALLOWANCE_CHECKED}),
    ExecutionState.ALLOWANCE_CHECKED: frozenset(
        {ExecutionState.APPROVED, ExecutionState.SUBMITTED, ExecutionState.DONE}
    ),
    ExecutionState.APPROVED: frozenset({ExecutionState.SUBMITTED}),
    ExecutionState.SUBMITTED: frozenset({ExecutionState.CONFIRMED}),
    ExecutionState.CONFIRMED: frozenset({ExecutionState.UNWRAPPED, ExecutionState.DONE}),
    ExecutionState.UNWRAPPED: frozenset({ExecutionState.DONE}),
    ExecutionState.DONE: frozenset(),
    ExecutionState.FAILED: frozenset(),
}


class Notifier(Protocol):
    def enabled(self) -> bool: ...

    async def send_report(self, report: ExecutionReport) -> None: ...


class IllegalTransitionError(RuntimeError):
    pass


def advance(report: ExecutionReport, target: ExecutionState) -> None:
    current = report.state
    if target == ExecutionState.FAILED:
        if current in (ExecutionState.DONE, ExecutionState.FAILED):
            raise IllegalTransitionError(f"{current.value} is terminal")
    elif target not in _TRANSITIONS[current]:
        raise IllegalTransitionError(f"{current.value} -> {target.value}")
    report.state = target
    report.history.append(target)


@dataclass
class _Run:
    report: ExecutionReport
    route: Route
    finished: bool = False
    wrapped_before: int = 0

    @property
    def signal(self) -> Signal:
        return self.report.signal

    @property
    def quote(self) -> Quote:
        if self.report.quote is None:
            raise RuntimeError("no quote fetched for this signal")
        return self.report.quote


class SwapExecutor:
    """
    Runs one validated signal through balance -> quote -> allowance -> approve
    -> swap -> confirm -> unwrap.

    Each step either completes or raises; the first exception marks the signal
    FAILED and no later step runs. Transactions are never retried.
    """

    def __init__(
        self,
        *,
        settings: Settings,
        chain: ChainGateway,
        venue: SwapVenue,
        notifier: Optional[Notifier] = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._settings = settings
        self._chain = chain
        self._venue = venue
        self._notifier = notifier
        self._clock = clock
        # One signal at a time: balance and nonce reads must not interleave.
        self._lock = asyncio.Lock()

    @property
    def venue(self) -> SwapVenue:
        return self._venue

    async def execute(self, signal: Signal) -> ExecutionReport:
        async with self._lock:
            report = ExecutionReport(signal=signal, live=self._settings.live_trading_enabled())
            steps: list[Callable[[_Run], Awaitable[None]]] = [
                self._size_trade,
                self._fetch_quote,
                self._check_allowance,
                self._approve,
                self._submit_swap,
                self._unwrap,
            ]
            logger.info("signal_received", extra=self._log_extra(report))
            try:
                run = _Run(report=report, route=self._venue.resolve_route(signal))
                for step in steps:
                    await step(run)
                    if run.finished:
                        break
                advance(report, ExecutionState.DONE)
            except asyncio.CancelledError:
                raise
            except RawmoveError as e:
                report.error = e
                advance(report, ExecutionState.FAILED)
                logger.warning("signal_failed", extra=self._log_extra(report, reason=str(e)))
            except Exception as e:
                report.error = e
                advance(report, ExecutionState.FAILED)
                logger.exception("signal_failed", extra=self._log_extra(report))
            else:
                logger.info("signal_done", extra=self._log_extra(report))

        await self._safe_notify(report)
        return report

    async def _size_trade(self, run: _Run) -> None:
        report = run.report
        owner = self._chain.address
        if run.route.native_in:
            balance = await self._chain.native_balance(owner)
        else:
            balance = await self._chain.token_balance(run.signal.src_token, owner)
        percent = min(run.signal.amount_value, self._settings.trade_percent)
        report.balance = balance
        report.percent = percent
        report.amount_in = trade_size(balance, percent)

    async def _fetch_quote(self, run: _Run) -> None:
        run.report.quote = await self._venue.quote(
            route=run.route,
            amount_in=run.report.amount_in,
            slippage_bps=run.signal.slippage_bps,
            taker=self._chain.address,
        )

    async def _check_allowance(self, run: _Run) -> None:
        report = run.report
        spender = self._venue.spender(run.quote)
        if not run.route.native_in and spender:
            report.allowance = await self._chain.allowance(
                run.route.token_in,
                self._chain.address,
                spender,
            )
        advance(report, ExecutionState.ALLOWANCE_CHECKED)

        if not report.live:
            if self._needs_approval(report):
                report.planned_steps.append("approve")
            report.planned_steps.append("swap")
            if run.route.unwrap_token:
                report.planned_steps.append("unwrap")
            logger.info("dry_run_planned", extra=self._log_extra(report))
            run.finished = True

    async def _approve(self, run: _Run) -> None:
        report = run.report
        spender = self._venue.spender(run.quote)
        if not spender or not self._needs_approval(report):
            return
        tx = self._chain.encode_approve(
            token=run.route.token_in,
            spender=spender,
            amount=report.amount_in,
        )
        tx_hash = await self._chain.send_transaction(tx)
        report.approval_tx_hash = tx_hash
        logger.info("approval_submitted", extra=self._log_extra(report, tx_hash=tx_hash))
        await self._chain.wait_for_receipt(tx_hash, step="approve")
        advance(report, ExecutionState.APPROVED)
        logger.info("approval_confirmed", extra=self._log_extra(report, tx_hash=tx_hash))

    async def _submit_swap(self, run: _Run) -> None:
        report = run.report
        if run.route.unwrap_token:
            run.wrapped_before = await self._chain.token_balance(
                run.route.unwrap_token,
                self._chain.address,
            )
        deadline = int(self._clock()) + run.signal.deadline_sec
        tx = self._venue.build_swap(
            route=run.route,
            quote=run.quote,
            recipient=self._chain.address,
            deadline=deadline,
        )
        tx_hash = await self._chain.send_transaction(tx)
        report.swap_tx_hash = tx_hash
        advance(report, ExecutionState.SUBMITTED)
        logger.info("swap_submitted", extra=self._log_extra(report, tx_hash=tx_hash))
        await self._chain.wait_for_receipt(tx_hash, step="swap")
        advance(report, ExecutionState.CONFIRMED)
        logger.info("swap_confirmed", extra=self._log_extra(report, tx_hash=tx_hash))

    async def _unwrap(self, run: _Run) -> None:
        report = run.report
        wrapped = run.route.unwrap_token
        if not wrapped:
            return
        # Only the swap's output is withdrawn; wrapped native held before stays wrapped.
        balance = await self._chain.token_balance(wrapped, self._chain.address)
        amount = balance - run.wrapped_before
        if amount <= 0:
            logger.info("unwrap_skipped", extra=self._log_extra(report))
            return
        tx = self._chain.encode_withdraw(wrapped_native=wrapped, amount=amount)
        tx_hash = await self._chain.send_transaction(tx)
        report.unwrap_tx_hash = tx_hash
        await self._chain.wait_for_receipt(tx_hash, step="unwrap")
        report.unwrapped_amount = amount
        advance(report, ExecutionState.UNWRAPPED)
        logger.info("unwrap_confirmed", extra=self._log_extra(report, tx_hash=tx_hash))

    @staticmethod
    def _needs_approval(report: ExecutionReport) -> bool:
        return report.allowance is not None and report.allowance < report.amount_in

    async def _safe_notify(self, report: ExecutionReport) -> None:
        if self._notifier is None or not self._notifier.enabled():
            return
        try:
            await self._notifier.send_report(report)
        except Exception:
            logger.exception("notify_failed", extra=self._log_extra(report))

    def _log_extra(self, report: ExecutionReport, **extra: object) -> dict[str, object]:
        payload: dict[str, object] = {
            "signal_id": report.signal.signal_id,
            "side": report.signal.side,
            "symbol": report.signal.symbol,
            "chain_id": report.signal.chain_id,
            "venue": self._venue.venue_id,
            "state": report.state.value,
        }
        if report.amount_in:
            payload["amount_in"] = str(report.amount_in)
        payload.update(extra)
        return payload
