"""Wires the components together and exposes the engine's public operations."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from pathlib import Path

from .clock import BranchNamer, Clock, utc_now
from .config import DayshiftSettings
from .git import GitClient, Repository, StatusSummary
from .message import MessageGate, header_of, load_rules
from .orchestrator import CommitOrchestrator, CommitOutcome
from .push import PushRetryPolicy
from .rollover import (
    Confirm,
    RolloverExecutor,
    RolloverPlanner,
    RolloverService,
    RolloverState,
    auto_confirm,
)
from .watcher import ChangeEvent, ChangeScheduler, watch_tree

logger = logging.getLogger(__name__)

EXIT_COMMIT_MESSAGE = "chore: session cleanup - final commit before exit"


@dataclass(frozen=True)
class StatusSnapshot:
    branch: str
    cwd: Path
    message_file: str
    message_header: str
    push_enabled: bool
    rollover_state: RolloverState
    busy: bool
    changes: StatusSummary
    last_any_change: float
    last_non_msg_change: float


class Engine:
    """Owns one working tree's commit/rollover machinery.

    Interactive surfaces talk to the engine only through ``status``,
    ``force_commit``, ``force_push``, ``has_pending_changes`` and ``shutdown``.
    """

    def __init__(
        self,
        settings: DayshiftSettings,
        git: GitClient,
        *,
        confirm: Confirm | None = None,
        clock: Clock = utc_now,
    ) -> None:
        self.settings = settings
        self.repo = Repository(git)
        self.namer = BranchNamer(settings, clock)
        self.gate = MessageGate(settings, git.cwd)
        self.pusher = PushRetryPolicy(self.repo, settings)
        self.rollover = RolloverService(
            self.repo,
            settings,
            RolloverPlanner(self.repo, settings, self.namer),
            RolloverExecutor(self.repo, self.pusher),
            confirm=confirm or auto_confirm,
        )
        self.message_path = self.gate.resolve_path()
        self.orchestrator = CommitOrchestrator(
            settings,
            self.repo,
            self.gate,
            self.rollover,
            self.pusher,
            message_path=self.message_path,
            rules=load_rules(settings.infra_rules_path),
        )
        self.scheduler = ChangeScheduler(
            settings,
            self.gate,
            self.orchestrator.commit_once,
            message_path=self.message_path,
        )
        self._stop = asyncio.Event()
        self._shut_down = False

    @property
    def root(self) -> Path:
        return self.repo.root

    @property
    def stopped(self) -> bool:
        return self._stop.is_set()

    @property
    def shut_down(self) -> bool:
        return self._shut_down

    def _message_rel(self) -> str:
        return self.gate.relative(self.message_path)

    async def startup(self, confirm_start: Confirm | None = None) -> None:
        """Initial rollover check, branch checkout and optional startup commit."""

        settings = self.settings
        logger.info("repo=%s", self.root)
        logger.info(
            "prefix=%s, tz=%s, style=%s, push=%s",
            settings.daily_prefix,
            settings.timezone,
            settings.date_style,
            settings.push,
        )
        logger.info("static branch=%s", settings.static_branch or "(dynamic daily)")

        outcome = await self.rollover.run_if_due(exclude=(self._message_rel(),))

        message = self.gate.read(self.message_path)
        logger.info(
            "message file=%s exists=%s size=%d",
            self._message_rel(),
            self.message_path.exists(),
            len(message),
        )
        target = self.orchestrator.target_branch(outcome)
        if target is not None and outcome.state is not RolloverState.ROLLOVER_FAILED:
            await self.repo.ensure_branch(target)

        pending = await self.has_pending_changes()
        ready = bool(message) and self.gate.is_ready(self.message_path)
        if not (pending and ready):
            logger.info("watching…")
            return

        summary = await self.repo.summarize_status()
        logger.info(
            "pending changes: files=%d (A=%d, M=%d, D=%d, ?=%d) on %s",
            summary.count,
            summary.added,
            summary.modified,
            summary.deleted,
            summary.untracked,
            await self.repo.current_branch(),
        )
        logger.debug("status preview:\n%s", summary.preview)
        logger.info("message header: %s", header_of(message)[:120])

        proceed = settings.commit_on_start
        if not proceed and settings.confirm_on_start and confirm_start is not None:
            proceed = await confirm_start("Commit these changes now using the message file? (y/N) ")
        if proceed:
            await self.orchestrator.commit_once()
        else:
            logger.info("startup commit skipped; watching…")

    async def watch(self) -> None:
        """Watch the working tree until :meth:`request_stop` is called."""

        queue: asyncio.Queue[ChangeEvent] = asyncio.Queue()
        consumer = asyncio.create_task(self.scheduler.run(queue))
        try:
            await watch_tree(
                self.root,
                self.scheduler,
                queue,
                settings=self.settings,
                stop_event=self._stop,
            )
        finally:
            consumer.cancel()
            await asyncio.gather(consumer, return_exceptions=True)

    def start_watch(self) -> asyncio.Task[None]:
        """Run :meth:`watch` as a task that stops the engine if it dies."""

        task = asyncio.create_task(self.watch())
        task.add_done_callback(self._watch_done)
        return task

    def _watch_done(self, task: asyncio.Task[None]) -> None:
        if task.cancelled() or task.exception() is None:
            return
        logger.error("file watcher failed; stopping", exc_info=task.exception())
        self.request_stop()

    def request_stop(self) -> None:
        self._stop.set()

    async def wait_stopped(self) -> None:
        await self._stop.wait()

    async def status(self) -> StatusSnapshot:
        return StatusSnapshot(
            branch=await self.repo.current_branch(),
            cwd=self.root,
            message_file=self._message_rel(),
            message_header=header_of(self.gate.read(self.message_path)),
            push_enabled=self.settings.push,
            rollover_state=self.rollover.state,
            busy=self.orchestrator.busy,
            changes=await self.repo.summarize_status(max_lines=10),
            last_any_change=self.scheduler.state.last_any_change,
            last_non_msg_change=self.scheduler.state.last_non_msg_change,
        )

    async def has_pending_changes(self) -> bool:
        return await self.repo.has_uncommitted_changes(exclude=(self._message_rel(),))

    def message_text(self) -> str:
        return self.gate.read(self.message_path)

    async def force_commit(self, message: str | None = None) -> CommitOutcome:
        """Run a commit cycle now, optionally writing ``message`` to the message file first."""

        if message is not None:
            self.message_path.parent.mkdir(parents=True, exist_ok=True)
            self.message_path.write_text(message, encoding="utf-8")
        return await self.orchestrator.commit_once()

    async def force_push(self) -> bool:
        return await self.orchestrator.push_current()

    async def shutdown(self, *, commit_pending: bool = True) -> None:
        """Final commit-if-dirty, final push, message file removal, then stop."""

        if self._shut_down:
            return
        self._shut_down = True
        logger.info("Initiating clean shutdown...")
        self.scheduler.cancel()
        await self.scheduler.drain()

        if commit_pending and await self.has_pending_changes():
            message = self.message_text()
            await self.force_commit(None if self.gate.header_ok(message) else EXIT_COMMIT_MESSAGE)

        if self.settings.push:
            logger.info("Pushing final changes...")
            await self.force_push()

        if self.message_path.exists():
            self.message_path.unlink()
        self.request_stop()


__all__ = ["EXIT_COMMIT_MESSAGE", "Engine", "StatusSnapshot"]
