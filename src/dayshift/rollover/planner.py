"""Daily rollover decision and plan construction."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Iterable

from ..clock import BranchNamer, next_minor
from ..config import DayshiftSettings
from ..git.repo import Repository


class RolloverState(str, Enum):
    NO_ROLLOVER_NEEDED = "no_rollover_needed"
    ROLLOVER_PENDING_CONFIRMATION = "rollover_pending_confirmation"
    ROLLOVER_BLOCKED_DIRTY_TREE = "rollover_blocked_dirty_tree"
    ROLLOVER_DECLINED = "rollover_declined"
    ROLLOVER_IN_PROGRESS = "rollover_in_progress"
    ROLLOVER_COMPLETE = "rollover_complete"
    ROLLOVER_FAILED = "rollover_failed"


class StepAction(str, Enum):
    FETCH = "fetch"
    CHECKOUT = "checkout"
    PULL = "pull"
    MERGE = "merge"
    CREATE = "create"
    PUSH = "push"


@dataclass(frozen=True)
class RolloverStep:
    """One git operation of a rollover.

    ``source`` is the merge source, the start point of a created branch, or the
    remote for fetch/pull. ``fallbacks`` are alternative start points tried in
    order when ``source`` does not resolve.
    """

    action: StepAction
    target: str
    source: str | None = None
    fallbacks: tuple[str, ...] = ()

    def describe(self) -> str:
        if self.action is StepAction.MERGE:
            return f"merge {self.source} -> {self.target}"
        if self.action is StepAction.CREATE:
            return f"create {self.target} from {self.source}"
        if self.action is StepAction.PULL:
            return f"pull {self.source}/{self.target}"
        if self.action is StepAction.FETCH:
            return "fetch all remotes"
        return f"{self.action.value} {self.target}"


@dataclass(frozen=True)
class RolloverPlan:
    today_daily: str
    next_version: str
    previous_daily: str | None
    last_version: str | None
    base_ref: str
    increment: int
    steps: tuple[RolloverStep, ...] = field(default_factory=tuple)

    def describe(self, *, dirty: bool = False) -> str:
        lines = [
            "New day detected. Daily rollover plan:",
            f"  1) merge last version {self.last_version} -> trunk"
            if self.last_version
            else "  1) (no previous version to merge into trunk)",
            f"  2) create new version branch: {self.next_version} from {self.base_ref}"
            f" (increment {self.increment / 100:.2f})",
            f"  3) merge {self.previous_daily} -> {self.next_version}"
            if self.previous_daily
            else "  3) (no previous daily to merge)",
            f"  4) push {self.next_version}",
            f"  5) create today's branch: {self.today_daily} from {self.next_version} and push",
        ]
        if dirty:
            lines.append("Working tree has uncommitted changes; rollover will be skipped.")
        return "\n".join(lines)


@dataclass(frozen=True)
class RolloverDecision:
    state: RolloverState
    today_daily: str
    plan: RolloverPlan | None = None
    previous_daily: str | None = None


class RolloverPlanner:
    """Decide whether today's rollover is due and build its plan.

    The planner only reads repository state; nothing is mutated here.
    """

    def __init__(self, repo: Repository, settings: DayshiftSettings, namer: BranchNamer) -> None:
        self._repo = repo
        self._settings = settings
        self._namer = namer

    async def version_minors(self) -> list[int]:
        branches = await self._repo.local_branches(f"{self._settings.version_prefix}*")
        return [minor for minor in (self._namer.minor_of(b) for b in branches) if minor is not None]

    async def decide(
        self, *, exclude: Iterable[str] = (), force: bool | None = None
    ) -> RolloverDecision:
        """Return the rollover decision for today.

        ``exclude`` lists repository-relative paths that never count as a
        dirty working tree (the commit message file). ``force`` overrides
        ``AC_FORCE_ROLLOVER``.
        """

        settings = self._settings
        if force is None:
            force = settings.force_rollover
        if settings.static_branch:
            return RolloverDecision(RolloverState.NO_ROLLOVER_NEEDED, today_daily=settings.static_branch)

        today_daily = self._namer.daily()
        if not force and await self._repo.branch_exists(today_daily):
            return RolloverDecision(RolloverState.NO_ROLLOVER_NEEDED, today_daily=today_daily)

        previous_daily = await self._repo.latest_branch(settings.daily_prefix)
        plan = await self.build_plan(today_daily, previous_daily)

        if await self._repo.has_uncommitted_changes(exclude=exclude):
            return RolloverDecision(
                RolloverState.ROLLOVER_BLOCKED_DIRTY_TREE,
                today_daily=today_daily,
                plan=plan,
                previous_daily=previous_daily,
            )
        return RolloverDecision(
            RolloverState.ROLLOVER_PENDING_CONFIRMATION,
            today_daily=today_daily,
            plan=plan,
            previous_daily=previous_daily,
        )

    async def build_plan(self, today_daily: str, previous_daily: str | None) -> RolloverPlan:
        settings = self._settings
        minors = await self.version_minors()
        last_version = self._namer.version(max(minors)) if minors else None
        next_version = self._namer.version(
            next_minor(minors, start=settings.version_start_minor, increment=settings.version_increment)
        )
        remote = await self._repo.default_remote()
        can_push = settings.push and remote is not None
        trunk = settings.trunk

        steps: list[RolloverStep] = []
        if remote is not None:
            steps.append(RolloverStep(StepAction.FETCH, target="--all"))
        if last_version:
            fallbacks = (f"{remote}/{trunk}",) if remote else ()
            steps.append(RolloverStep(StepAction.CHECKOUT, target=trunk, fallbacks=fallbacks))
            if remote is not None:
                steps.append(RolloverStep(StepAction.PULL, target=trunk, source=remote))
            steps.append(RolloverStep(StepAction.MERGE, target=trunk, source=last_version))
            if can_push:
                steps.append(RolloverStep(StepAction.PUSH, target=trunk))
        steps.append(
            RolloverStep(
                StepAction.CREATE,
                target=next_version,
                source=settings.version_base_ref,
                fallbacks=(trunk, "HEAD"),
            )
        )
        if previous_daily and previous_daily != next_version:
            steps.append(RolloverStep(StepAction.MERGE, target=next_version, source=previous_daily))
        if can_push:
            steps.append(RolloverStep(StepAction.PUSH, target=next_version))
        steps.append(RolloverStep(StepAction.CREATE, target=today_daily, source=next_version))
        if can_push:
            steps.append(RolloverStep(StepAction.PUSH, target=today_daily))

        return RolloverPlan(
            today_daily=today_daily,
            next_version=next_version,
            previous_daily=previous_daily,
            last_version=last_version,
            base_ref=settings.version_base_ref,
            increment=settings.version_increment,
            steps=tuple(steps),
        )


__all__ = [
    "RolloverDecision",
    "RolloverPlan",
    "RolloverPlanner",
    "RolloverState",
    "RolloverStep",
    "StepAction",
]
