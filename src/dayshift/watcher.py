"""File-system change intake and debounced commit triggering.

Events flow through an ``asyncio.Queue`` of :class:`ChangeEvent`:
``watch_tree`` (watchfiles) produces them, :class:`ChangeScheduler` consumes
them, so the trigger logic can be exercised without a real file system.
"""

from __future__ import annotations

import asyncio
import logging
import os
import time
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Any, Awaitable, Callable

from watchfiles import DefaultFilter, awatch

from .config import DayshiftSettings
from .message import MessageGate

logger = logging.getLogger(__name__)


class ChangeKind(str, Enum):
    MESSAGE_CHANGED = "message_changed"
    OTHER_CHANGED = "other_changed"


@dataclass(frozen=True)
class ChangeEvent:
    kind: ChangeKind
    path: str
    change: str = "modified"


@dataclass
class RunState:
    """Process-lifetime change timestamps (epoch seconds)."""

    last_any_change: float = 0.0
    last_non_msg_change: float = 0.0

    def record(self, event: ChangeEvent, at: float) -> None:
        self.last_any_change = at
        if event.kind is ChangeKind.OTHER_CHANGED:
            self.last_non_msg_change = at


class Debouncer:
    """Runs ``callback`` once ``delay_ms`` after the latest ``trigger()``.

    Re-triggering while the timer is pending restarts it. A callback that is
    already running is never cancelled.
    """

    def __init__(self, delay_ms: int, callback: Callable[[], Awaitable[Any]]) -> None:
        self._delay = max(delay_ms, 0) / 1000
        self._callback = callback
        self._handle: asyncio.TimerHandle | None = None
        self._tasks: set[asyncio.Task[Any]] = set()

    @property
    def pending(self) -> bool:
        return self._handle is not None

    def trigger(self) -> None:
        loop = asyncio.get_running_loop()
        if self._handle is not None:
            self._handle.cancel()
        self._handle = loop.call_later(self._delay, self._fire)

    def cancel(self) -> None:
        if self._handle is not None:
            self._handle.cancel()
            self._handle = None

    async def drain(self) -> None:
        """Wait for callbacks already started."""

        if self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    def _fire(self) -> None:
        self._handle = None
        task = asyncio.ensure_future(self._callback())
        self._tasks.add(task)
        task.add_done_callback(self._done)

    def _done(self, task: asyncio.Task[Any]) -> None:
        self._tasks.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.error("debounced callback failed", exc_info=exc)


def _same_path(a: str | Path, b: str | Path) -> bool:
    return os.path.normcase(str(Path(a).resolve())) == os.path.normcase(str(Path(b).resolve()))


class ChangeScheduler:
    """Classifies change events and drives the two debounce timers.

    A message-file change restarts the message timer; when it fires and the
    message is ready, ``commit`` runs once. The legacy quiet-period timer is
    used only when message triggering is disabled and ``AC_QUIET_MS`` > 0.
    """

    def __init__(
        self,
        settings: DayshiftSettings,
        gate: MessageGate,
        commit: Callable[[], Awaitable[Any]],
        *,
        message_path: Path,
        state: RunState | None = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._settings = settings
        self._gate = gate
        self._commit = commit
        self._clock = clock
        self.message_path = Path(message_path)
        self.state = state or RunState()
        self.message_timer = Debouncer(settings.msg_debounce_ms, self._on_message_settled)
        self.quiet_timer: Debouncer | None = None
        if settings.quiet_ms > 0 and not settings.trigger_on_msg:
            self.quiet_timer = Debouncer(settings.quiet_ms, self._on_quiet)

    def classify(self, path: str | Path, change: str = "modified") -> ChangeEvent:
        kind = ChangeKind.MESSAGE_CHANGED if _same_path(path, self.message_path) else ChangeKind.OTHER_CHANGED
        return ChangeEvent(kind=kind, path=str(path), change=change)

    def handle(self, event: ChangeEvent) -> None:
        self.state.record(event, self._clock())
        logger.debug("watcher: %s %s", event.change, event.path)

        if event.kind is ChangeKind.MESSAGE_CHANGED and self._settings.trigger_on_msg:
            self.message_timer.trigger()
            return
        if self.quiet_timer is not None:
            self.quiet_timer.trigger()

    async def run(self, queue: "asyncio.Queue[ChangeEvent]") -> None:
        while True:
            event = await queue.get()
            try:
                self.handle(event)
            finally:
                queue.task_done()

    def cancel(self) -> None:
        self.message_timer.cancel()
        if self.quiet_timer is not None:
            self.quiet_timer.cancel()

    async def drain(self) -> None:
        await self.message_timer.drain()
        if self.quiet_timer is not None:
            await self.quiet_timer.drain()

    async def _on_message_settled(self) -> None:
        if self._gate.is_ready(self.message_path, last_non_msg_change=self.state.last_non_msg_change):
            await self._commit()
        else:
            logger.debug("message changed but not ready yet")

    async def _on_quiet(self) -> None:
        if self._clock() - self.state.last_any_change < self._settings.quiet_ms / 1000:
            return
        if not self._gate.is_ready(self.message_path, last_non_msg_change=self.state.last_non_msg_change):
            logger.debug("not committing: message not ready or updated yet")
            return
        await self._commit()


def build_filter(settings: DayshiftSettings) -> DefaultFilter:
    return DefaultFilter(
        ignore_dirs=(*DefaultFilter.ignore_dirs, *settings.watch_ignore),
    )


async def watch_tree(
    root: Path,
    scheduler: ChangeScheduler,
    queue: "asyncio.Queue[ChangeEvent]",
    *,
    settings: DayshiftSettings,
    stop_event: asyncio.Event | None = None,
) -> None:
    """Feed classified change events for the whole working tree into ``queue``."""

    async for changes in awatch(
        root,
        watch_filter=build_filter(settings),
        stop_event=stop_event,
        force_polling=settings.use_polling,
    ):
        for change, path in changes:
            await queue.put(scheduler.classify(path, change.name))


__all__ = [
    "ChangeEvent",
    "ChangeKind",
    "ChangeScheduler",
    "Debouncer",
    "RunState",
    "build_filter",
    "watch_tree",
]
