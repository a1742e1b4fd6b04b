"""The commit cycle: rollover check, branch, stage, message, commit, push."""

from __future__ import annotations

import asyncio
import logging
from enum import Enum
from pathlib import Path
from typing import Iterable

from .config import DayshiftSettings
from .git.repo import Repository, resolve_git_dir
from .message import (
    DEFAULT_RULES,
    InfraRule,
    MessageGate,
    append_changelog,
    augment_message,
    classify,
    header_of,
)
from .push import PushRetryPolicy
from .rollover import RolloverOutcome, RolloverService, RolloverState

logger = logging.getLogger(__name__)

DEFAULT_COMMIT_MESSAGE = "chore: automated commit"
TEMP_MESSAGE_NAME = ".ac-msg.txt"


class CommitOutcome(str, Enum):
    BUSY = "busy"
    ROLLOVER_FAILED = "rollover_failed"
    BRANCH_FAILED = "branch_failed"
    NOTHING_STAGED = "nothing_staged"
    MESSAGE_NOT_READY = "message_not_ready"
    COMMIT_FAILED = "commit_failed"
    COMMITTED = "committed"
    PUSHED = "pushed"
    PUSH_FAILED = "push_failed"

    @property
    def committed(self) -> bool:
        return self in {CommitOutcome.COMMITTED, CommitOutcome.PUSHED, CommitOutcome.PUSH_FAILED}


class CommitOrchestrator:
    """Runs at most one commit cycle at a time.

    A trigger arriving while a cycle is in flight is dropped, not queued: the
    next debounce period observes the latest working tree anyway.
    """

    def __init__(
        self,
        settings: DayshiftSettings,
        repo: Repository,
        gate: MessageGate,
        rollover: RolloverService,
        pusher: PushRetryPolicy,
        *,
        message_path: Path,
        rules: Iterable[InfraRule] = DEFAULT_RULES,
    ) -> None:
        self._settings = settings
        self._repo = repo
        self._gate = gate
        self._rollover = rollover
        self._pusher = pusher
        self._rules = tuple(rules)
        self._lock = asyncio.Lock()
        self.message_path = Path(message_path)

    @property
    def busy(self) -> bool:
        return self._lock.locked()

    async def commit_once(self) -> CommitOutcome:
        if self._lock.locked():
            logger.debug("commit cycle already running; trigger dropped")
            return CommitOutcome.BUSY
        async with self._lock:
            return await self._cycle()

    async def push_current(self) -> bool:
        branch = await self._repo.current_branch()
        if not branch or branch == "HEAD":
            logger.error("Cannot push: no branch checked out")
            return False
        return await self._pusher.push(branch)

    def target_branch(self, outcome: RolloverOutcome) -> str | None:
        """Branch the cycle commits to, given how the rollover check ended.

        A blocked or declined rollover keeps work on the latest existing daily
        branch. With no daily branch at all it returns ``None``: work stays on
        the current branch and today's daily is only ever created by a rollover.
        """

        if self._settings.static_branch:
            return self._settings.static_branch
        if outcome.branch_ready:
            return outcome.today_daily
        return outcome.previous_daily

    async def _cycle(self) -> CommitOutcome:
        settings = self._settings
        repo = self._repo
        gate = self._gate
        msg_path = self.message_path
        rel_msg = gate.relative(msg_path)

        outcome = await self._rollover.run_if_due(exclude=(rel_msg,))
        if outcome.state is RolloverState.ROLLOVER_FAILED:
            logger.error("rollover failed; commit skipped until it is resolved")
            return CommitOutcome.ROLLOVER_FAILED

        branch = self.target_branch(outcome)
        if branch is None:
            branch = await repo.current_branch()
            logger.info("no daily branch yet; committing on %s until the rollover runs", branch)
            if not branch or branch == "HEAD":
                return CommitOutcome.BRANCH_FAILED
        else:
            ensured = await repo.ensure_branch(branch)
            logger.info(
                "branch target=%s ensured ok=%s created=%s switched=%s",
                branch,
                ensured.ok,
                ensured.created,
                ensured.switched,
            )
            if not ensured.ok:
                return CommitOutcome.BRANCH_FAILED

        changed = [path for path in await repo.changed_files() if path != rel_msg]
        report = classify(changed, self._rules)
        if report.has_infra_changes:
            logger.info(report.summary)

        await repo.stage_all()
        await repo.unstage(rel_msg)
        staged = await repo.staged_files()
        logger.info("staged files=%d", len(staged))
        if not staged:
            return CommitOutcome.NOTHING_STAGED

        message = gate.read(msg_path)
        logger.debug(
            "msgPath: %s size: %d header: %s", rel_msg, len(message), header_of(message)[:120]
        )
        if settings.require_msg:
            if not gate.header_ok(message):
                logger.info("message not ready; skipping commit")
                return CommitOutcome.MESSAGE_NOT_READY
        elif not message:
            message = DEFAULT_COMMIT_MESSAGE

        message = augment_message(message, report)
        doc: Path | None = None
        doc_before: str | None = None
        if report.has_infra_changes and settings.track_infra:
            doc = repo.root / settings.infra_doc_path
            doc_before = doc.read_text(encoding="utf-8") if doc.exists() else None
            append_changelog(doc, report, header_of(message), author=settings.agent_name)
            await repo.stage(gate.relative(doc))

        if not await self._commit(message):
            logger.error("commit failed")
            if doc is not None:
                await self._restore_doc(doc, doc_before)
            return CommitOutcome.COMMIT_FAILED
        if settings.clear_msg_when == "commit":
            gate.clear(msg_path)

        logger.info("committed %s on %s", await repo.short_head(), branch)
        if not settings.push:
            return CommitOutcome.COMMITTED

        pushed = await self._pusher.push(branch)
        logger.info("push %s", "ok" if pushed else "failed")
        if not pushed:
            return CommitOutcome.PUSH_FAILED
        if settings.clear_msg_when == "push":
            gate.clear(msg_path)
        return CommitOutcome.PUSHED

    async def _restore_doc(self, doc: Path, before: str | None) -> None:
        """Undo the changelog entry of a commit that did not happen."""

        if before is None:
            doc.unlink(missing_ok=True)
        else:
            doc.write_text(before, encoding="utf-8")
        await self._repo.unstage(self._gate.relative(doc))

    async def _commit(self, message: str) -> bool:
        tmp = resolve_git_dir(self._repo.root) / TEMP_MESSAGE_NAME
        try:
            tmp.write_text(message + "\n", encoding="utf-8")
        except OSError as exc:
            logger.error("cannot write commit message to %s: %s", tmp, exc)
            return False
        try:
            return await self._repo.commit_from_file(tmp)
        finally:
            tmp.unlink(missing_ok=True)


__all__ = ["CommitOrchestrator", "CommitOutcome", "DEFAULT_COMMIT_MESSAGE"]
