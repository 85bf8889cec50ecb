"""Fallback polling for PIX transactions.

The gateway webhook is the primary signal. A watcher polls the gateway at a
fixed interval only until a terminal state, its timeout, or cancellation, and
the registry lets the webhook stop the poller for a transaction it already
settled.
"""
from __future__ import annotations

import asyncio
import logging
from typing import Awaitable, Callable

from novaera.services.misticpay import TERMINAL_STATES


logger = logging.getLogger(__name__)

CheckFn = Callable[[str], Awaitable[str]]


class WatchHandle:
    def __init__(self, transaction_id: str, task: asyncio.Task) -> None:
        self.transaction_id = transaction_id
        self.task = task

    @property
    def done(self) -> bool:
        return self.task.done()

    @property
    def cancelled(self) -> bool:
        return self.task.cancelled()

    def result(self) -> str | None:
        if not self.task.done() or self.task.cancelled():
            return None
        if self.task.exception() is not None:
            return None
        return self.task.result()

    def cancel(self) -> None:
        if not self.task.done():
            self.task.cancel()

    async def wait(self) -> str | None:
        try:
            return await self.task
        except asyncio.CancelledError:
            return None


class PaymentWatcher:
    def __init__(
        self,
        check: CheckFn,
        *,
        interval_s: float = 5.0,
        timeout_s: float | None = None,
    ) -> None:
        self._check = check
        self._interval_s = max(0.0, float(interval_s))
        self._timeout_s = float(timeout_s) if timeout_s else None

    def watch(self, transaction_id: str) -> WatchHandle:
        task = asyncio.create_task(self._run(transaction_id), name=f"pix-watch:{transaction_id}")
        return WatchHandle(transaction_id, task)

    async def _run(self, transaction_id: str) -> str | None:
        loop = asyncio.get_running_loop()
        deadline = loop.time() + self._timeout_s if self._timeout_s else None
        attempts = 0
        while True:
            await asyncio.sleep(self._interval_s)
            attempts += 1
            try:
                state = str(await self._check(transaction_id) or "").upper()
            except asyncio.CancelledError:
                raise
            except Exception:
                logger.exception("watcher.check.error transaction_id=%s attempt=%s", transaction_id, attempts)
                state = ""
            if state in TERMINAL_STATES:
                logger.info("watcher.terminal transaction_id=%s state=%s attempts=%s", transaction_id, state, attempts)
                return state
            if deadline is not None and loop.time() >= deadline:
                logger.info("watcher.timeout transaction_id=%s attempts=%s", transaction_id, attempts)
                return None


class WatcherRegistry:
    def __init__(self) -> None:
        self._handles: dict[str, WatchHandle] = {}

    def __len__(self) -> int:
        return len(self._handles)

    def get(self, transaction_id: str) -> WatchHandle | None:
        return self._handles.get(transaction_id)

    def start(self, watcher: PaymentWatcher, transaction_id: str) -> WatchHandle:
        existing = self._handles.get(transaction_id)
        if existing is not None and not existing.done:
            return existing
        handle = watcher.watch(transaction_id)
        self._handles[transaction_id] = handle

        def _forget(_task: asyncio.Task) -> None:
            if self._handles.get(transaction_id) is handle:
                self._handles.pop(transaction_id, None)

        handle.task.add_done_callback(_forget)
        return handle

    def notify(self, transaction_id: str, state: str) -> bool:
        """Stop polling a transaction the webhook has already settled."""
        if str(state or "").upper() not in TERMINAL_STATES:
            return False
        handle = self._handles.pop(transaction_id, None)
        if handle is None:
            return False
        handle.cancel()
        logger.info("watcher.stopped_by_webhook transaction_id=%s state=%s", transaction_id, state)
        return True

    async def shutdown(self) -> None:
        handles = list(self._handles.values())
        self._handles.clear()
        for handle in handles:
            handle.cancel()
        if handles:
            await asyncio.gather(*(h.task for h in handles), return_exceptions=True)
