"""dayshift diagnostics CLI (read-only)."""

from __future__ import annotations

import argparse
import asyncio
import json
from pathlib import Path

from dayshift.clock import BranchNamer, next_minor
from dayshift.config import DayshiftSettings
from dayshift.git import GitClient, Repository
from dayshift.message import MessageGate, header_of
from dayshift.rollover import RolloverPlanner, RolloverState


def load_repository(cwd: Path | None = None) -> Repository:
    cwd = cwd or Path.cwd()
    root = asyncio.run(Repository(GitClient(cwd)).toplevel())
    if root is None:
        print(f"Not a git repository: {cwd}")
        raise SystemExit(1)
    return Repository(GitClient(root))


def cmd_plan(args: argparse.Namespace) -> None:
    settings = DayshiftSettings()
    repo = load_repository()
    planner = RolloverPlanner(repo, settings, BranchNamer(settings))
    gate = MessageGate(settings, repo.root)
    exclude = (gate.relative(gate.resolve_path()),)
    decision = asyncio.run(planner.decide(exclude=exclude, force=args.force or None))

    if args.json:
        payload = {
            "state": decision.state.value,
            "today_daily": decision.today_daily,
            "previous_daily": decision.previous_daily,
            "steps": [step.describe() for step in decision.plan.steps] if decision.plan else [],
        }
        print(json.dumps(payload, indent=2))
        return

    print(f"{decision.state.value}: {decision.today_daily}")
    if decision.plan is not None:
        dirty = decision.state is RolloverState.ROLLOVER_BLOCKED_DIRTY_TREE
        print(decision.plan.describe(dirty=dirty))
        for index, step in enumerate(decision.plan.steps, start=1):
            print(f"  [{index}] {step.describe()}")


def cmd_message(args: argparse.Namespace) -> None:
    settings = DayshiftSettings()
    repo = load_repository()
    gate = MessageGate(settings, repo.root)
    path = gate.resolve_path()
    message = gate.read(path)
    header = header_of(message)
    payload = {
        "path": gate.relative(path),
        "exists": path.exists(),
        "header": header,
        "header_bytes": len(header.encode("utf-8")),
        "min_bytes": settings.msg_min_bytes,
        "pattern": settings.msg_pattern,
        "ready": gate.is_ready(path),
    }
    print(json.dumps(payload, indent=2))


async def _branches(repo: Repository, settings: DayshiftSettings) -> dict:
    namer = BranchNamer(settings)
    dailies = await repo.local_branches(f"{settings.daily_prefix}*")
    versions = await repo.local_branches(f"{settings.version_prefix}*")
    minors = [minor for minor in (namer.minor_of(b) for b in versions) if minor is not None]
    return {
        "current": await repo.current_branch(),
        "today_daily": namer.daily(),
        "daily_branches": dailies,
        "version_branches": versions,
        "next_version": namer.version(
            next_minor(minors, start=settings.version_start_minor, increment=settings.version_increment)
        ),
    }


def cmd_branches(args: argparse.Namespace) -> None:
    settings = DayshiftSettings()
    repo = load_repository()
    print(json.dumps(asyncio.run(_branches(repo, settings)), indent=2))


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="dayshift diagnostics")
    sub = parser.add_subparsers(dest="cmd")

    p_plan = sub.add_parser("plan", help="Show today's rollover decision and plan")
    p_plan.add_argument("--json", action="store_true", help="Output JSON")
    p_plan.add_argument("--force", action="store_true", help="Plan as if AC_FORCE_ROLLOVER were set")
    p_plan.set_defaults(func=cmd_plan)

    p_message = sub.add_parser("message", help="Show the resolved message file and readiness")
    p_message.set_defaults(func=cmd_message)

    p_branches = sub.add_parser("branches", help="List daily and version branches")
    p_branches.set_defaults(func=cmd_branches)

    return parser


def main(argv: list[str] | None = None) -> None:
    parser = build_parser()
    args = parser.parse_args(argv)
    if not hasattr(args, "func"):
        parser.print_help()
        return
    args.func(args)


if __name__ == "__main__":
    main()
