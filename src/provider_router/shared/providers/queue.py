"""Pending queue — parks callers while no slot is selectable.

Requests are served strictly FIFO.  Draining happens synchronously
whenever the router observes new capacity (a success, a lifted
suspension, a forced availability); a background task covers recovery
that only the clock can bring, waking at the earlier of the next known
cooldown expiry and the drain interval.  The task exits once the queue is
empty and is restarted lazily by the next enqueue.
"""

from __future__ import annotations

import asyncio
import time
import uuid
from collections import deque
from collections.abc import Callable
from dataclasses import dataclass, field

import structlog

from provider_router.domain.exceptions import ProvidersUnavailableError
from provider_router.shared.observability.metrics import (
    QUEUE_LENGTH,
    QUEUE_TIMEOUTS_TOTAL,
    QUEUE_WAIT,
)
from provider_router.shared.providers.types import SelectedSlot, TaskType

logger = structlog.get_logger(__name__)

_MIN_WAKE_S = 0.01

Resolver = Callable[["QueuedRequest"], "SelectedSlot | None"]
WakeHint = Callable[[], "float | None"]


@dataclass
class QueuedRequest:
    id: str
    task: TaskType
    require_vision: bool
    created_at: float
    timeout_s: float
    future: asyncio.Future[SelectedSlot]
    _timeout_handle: asyncio.TimerHandle | None = field(default=None, repr=False)


class PendingQueue:
    """FIFO of callers waiting for a slot."""

    def __init__(
        self,
        resolver: Resolver,
        *,
        timeout_s: float = 120.0,
        drain_interval_s: float = 5.0,
        wake_hint: WakeHint | None = None,
        on_change: Callable[[], None] | None = None,
    ) -> None:
        self._resolver = resolver
        self._timeout = timeout_s
        self._interval = drain_interval_s
        self._wake_hint = wake_hint
        self._on_change = on_change

        self._entries: deque[QueuedRequest] = deque()
        self._task: asyncio.Task[None] | None = None
        self._wake = asyncio.Event()

    def __len__(self) -> int:
        return len(self._entries)

    @property
    def timer_running(self) -> bool:
        return self._task is not None and not self._task.done()

    def enqueue(self, task: TaskType, *, require_vision: bool = False) -> asyncio.Future[SelectedSlot]:
        """Park a request; must be called from inside the running loop."""
        loop = asyncio.get_running_loop()
        entry = QueuedRequest(
            id=f"req_{uuid.uuid4().hex[:12]}",
            task=task,
            require_vision=require_vision,
            created_at=time.monotonic(),
            timeout_s=self._timeout,
            future=loop.create_future(),
        )
        entry._timeout_handle = loop.call_later(self._timeout, self._expire, entry.id)
        self._entries.append(entry)
        self._changed()

        logger.info(
            "request_queued",
            request_id=entry.id,
            task=task.value,
            require_vision=require_vision,
            queue_length=len(self._entries),
            timeout_s=self._timeout,
        )

        if not self.timer_running:
            self._task = loop.create_task(self._run())
        return entry.future

    def drain(self) -> int:
        """Serve as many queued requests as current capacity allows."""
        served = 0
        while self._entries:
            head = self._entries[0]
            if head.future.done():
                # Caller went away; nothing to deliver.
                self._discard(head)
                continue

            selected = self._resolver(head)
            if selected is None:
                break

            self._discard(head)
            waited = time.monotonic() - head.created_at
            QUEUE_WAIT.observe(waited)
            head.future.set_result(selected)
            served += 1
            logger.info(
                "queued_request_served",
                request_id=head.id,
                slot=str(selected.slot_id),
                waited_s=round(waited, 3),
            )

        if served:
            self._changed()
        return served

    def notify(self) -> None:
        """Ask the background task to recompute its next wake-up."""
        self._wake.set()

    async def close(self, reason: str = "Router closed") -> None:
        task, self._task = self._task, None
        if task is not None and not task.done():
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass

        pending = list(self._entries)
        for entry in pending:
            self._discard(entry)
            if not entry.future.done():
                entry.future.set_exception(ProvidersUnavailableError(reason))
        if pending:
            logger.info("queue_closed", rejected=len(pending))
            self._changed()

    # ── Internals ────────────────────────────────────────────
    async def _run(self) -> None:
        try:
            while self._entries:
                delay = self._interval
                if self._wake_hint is not None:
                    hint = self._wake_hint()
                    if hint is not None:
                        delay = min(delay, max(hint, _MIN_WAKE_S))

                self._wake.clear()
                try:
                    await asyncio.wait_for(self._wake.wait(), timeout=delay)
                except asyncio.TimeoutError:
                    pass
                self.drain()
        finally:
            if self._task is asyncio.current_task():
                self._task = None
            logger.debug("queue_timer_stopped", queue_length=len(self._entries))

    def _expire(self, request_id: str) -> None:
        entry = next((e for e in self._entries if e.id == request_id), None)
        if entry is None:
            return
        self._discard(entry)
        QUEUE_TIMEOUTS_TOTAL.inc()
        if not entry.future.done():
            entry.future.set_exception(ProvidersUnavailableError())
        logger.warning(
            "queued_request_timeout",
            request_id=entry.id,
            task=entry.task.value,
            timeout_s=entry.timeout_s,
            queue_length=len(self._entries),
        )
        self._changed()

    def _discard(self, entry: QueuedRequest) -> None:
        try:
            self._entries.remove(entry)
        except ValueError:
            return
        if entry._timeout_handle is not None:
            entry._timeout_handle.cancel()

    def _changed(self) -> None:
        QUEUE_LENGTH.set(len(self._entries))
        if self._on_change is not None:
            self._on_change()
