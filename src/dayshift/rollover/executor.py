"""Execution of rollover plans and the rollover-if-due entry point."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Awaitable, Callable, Iterable

from ..config import DayshiftSettings
from ..git.repo import Repository
from ..push import PushRetryPolicy
from .planner import (
    RolloverDecision,
    RolloverPlan,
    RolloverPlanner,
    RolloverState,
    RolloverStep,
    StepAction,
)

logger = logging.getLogger(__name__)

Confirm = Callable[[str], Awaitable[bool]]


async def auto_confirm(_question: str) -> bool:
    return True


@dataclass(frozen=True)
class RolloverOutcome:
    state: RolloverState
    today_daily: str
    previous_daily: str | None = None
    plan: RolloverPlan | None = None

    @property
    def branch_ready(self) -> bool:
        """Today's branch exists and may be checked out."""

        return self.state in {RolloverState.NO_ROLLOVER_NEEDED, RolloverState.ROLLOVER_COMPLETE}


class RolloverExecutor:
    """Run a :class:`RolloverPlan` strictly in order, halting on the first failure."""

    def __init__(self, repo: Repository, pusher: PushRetryPolicy) -> None:
        self._repo = repo
        self._pusher = pusher

    async def execute(self, plan: RolloverPlan) -> RolloverState:
        origin = await self._repo.current_branch()
        created: list[str] = []
        for index, step in enumerate(plan.steps, start=1):
            logger.info("rollover step %d/%d: %s", index, len(plan.steps), step.describe())
            fresh = step.action is StepAction.CREATE and not await self._repo.branch_exists(step.target)
            if not await self._run_step(step):
                logger.error("rollover halted at step %d: %s", index, step.describe())
                await self._roll_back(origin, created)
                return RolloverState.ROLLOVER_FAILED
            if fresh:
                created.append(step.target)
        logger.info(
            "Daily rollover complete: %s -> %s",
            plan.next_version,
            plan.today_daily,
            extra={"version": plan.next_version, "daily": plan.today_daily},
        )
        return RolloverState.ROLLOVER_COMPLETE

    async def _roll_back(self, origin: str, created: list[str]) -> None:
        """Return to ``origin`` and drop the branches the halted plan created."""

        if origin and origin != "HEAD" and await self._repo.current_branch() != origin:
            if not (await self._repo.git.run("checkout", origin)).ok:
                logger.error("cannot return to %s; leaving created branches %s in place", origin, created)
                return
        for branch in reversed(created):
            if await self._repo.delete_branch(branch):
                logger.info("removed %s left by the halted rollover", branch)

    async def _run_step(self, step: RolloverStep) -> bool:
        repo = self._repo
        git = repo.git
        if step.action is StepAction.FETCH:
            return await repo.fetch_all()
        if step.action is StepAction.CHECKOUT:
            if (await git.run("checkout", step.target)).ok:
                return True
            for start in step.fallbacks:
                if (await git.run("checkout", "-b", step.target, start)).ok:
                    return True
            return False
        if step.action is StepAction.PULL:
            pulled = (await git.run("pull", "--no-rebase", "--no-edit", step.source or "origin", step.target)).ok
            if not pulled:
                await repo.merge_abort()
            return pulled
        if step.action is StepAction.MERGE:
            merged = await repo.merge(
                step.source or "", message=f"rollup: merge {step.source} into {step.target}"
            )
            if not merged:
                await repo.merge_abort()
                logger.error(
                    "Failed to merge %s into %s. Resolve the conflicts manually, push, then restart.",
                    step.source,
                    step.target,
                )
            return merged
        if step.action is StepAction.CREATE:
            start = await self._resolve_start(step)
            if start is None:
                logger.error("No start point for %s (tried %s)", step.target, step.source)
                return False
            return (await git.run("checkout", "-B", step.target, start)).ok
        if step.action is StepAction.PUSH:
            pushed = await self._pusher.push(step.target)
            logger.info("push %s: %s", step.target, "ok" if pushed else "failed")
            return pushed
        raise ValueError(f"Unknown rollover action {step.action!r}")

    async def _resolve_start(self, step: RolloverStep) -> str | None:
        for candidate in (step.source, *step.fallbacks):
            if candidate and await self._repo.ref_exists(candidate):
                return candidate
        return None


class RolloverService:
    """Check for a due rollover and carry it out, once per calendar day."""

    def __init__(
        self,
        repo: Repository,
        settings: DayshiftSettings,
        planner: RolloverPlanner,
        executor: RolloverExecutor,
        confirm: Confirm = auto_confirm,
    ) -> None:
        self._repo = repo
        self._settings = settings
        self._planner = planner
        self._executor = executor
        self._confirm = confirm
        self._force_pending = settings.force_rollover
        self.state = RolloverState.NO_ROLLOVER_NEEDED

    async def run_if_due(self, *, exclude: Iterable[str] = ()) -> RolloverOutcome:
        decision = await self._planner.decide(exclude=exclude, force=self._force_pending)
        self.state = decision.state

        if decision.state is RolloverState.NO_ROLLOVER_NEEDED:
            if not self._settings.static_branch:
                await self._ensure_on(decision.today_daily, reason="Day changed while running")
            return self._outcome(decision)

        if decision.plan is None:
            return self._outcome(decision)
        if decision.state is RolloverState.ROLLOVER_BLOCKED_DIRTY_TREE:
            logger.warning(decision.plan.describe(dirty=True))
            if decision.previous_daily:
                await self._ensure_on(decision.previous_daily, reason="Rollover deferred")
            return self._outcome(decision)

        proceed = True
        if self._settings.rollover_prompt and not self._force_pending:
            logger.info(decision.plan.describe())
            proceed = await self._confirm("Proceed with daily rollover? (y/N) ")
        if not proceed:
            logger.info("Rollover declined; staying on the existing branch")
            self.state = RolloverState.ROLLOVER_DECLINED
            return self._outcome(decision, RolloverState.ROLLOVER_DECLINED)

        self.state = RolloverState.ROLLOVER_IN_PROGRESS
        self.state = await self._executor.execute(decision.plan)
        if self.state is RolloverState.ROLLOVER_COMPLETE:
            # a forced rollover happens once per process, not once per commit
            self._force_pending = False
        return self._outcome(decision, self.state)

    async def _ensure_on(self, branch: str, *, reason: str) -> None:
        if await self._repo.current_branch() == branch:
            return
        if not await self._repo.branch_exists(branch):
            return
        logger.info("%s - switching to %s", reason, branch)
        await self._repo.ensure_branch(branch)

    @staticmethod
    def _outcome(decision: RolloverDecision, state: RolloverState | None = None) -> RolloverOutcome:
        return RolloverOutcome(
            state=state or decision.state,
            today_daily=decision.today_daily,
            previous_daily=decision.previous_daily,
            plan=decision.plan,
        )


__all__ = ["Confirm", "RolloverExecutor", "RolloverOutcome", "RolloverService", "auto_confirm"]
