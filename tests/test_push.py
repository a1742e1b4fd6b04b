from __future__ import annotations

import asyncio
import logging
from pathlib import Path

import pytest

from dayshift.git import Repository
from dayshift.push import PushRetryPolicy

from fakes import SimulatedGit, build_settings


def _diverged(tmp_path: Path) -> SimulatedGit:
    sim = SimulatedGit(tmp_path)
    sim.add_branch("feature", "main")
    sim.head = "feature"
    sim.add_remote("origin", mirror=("main", "feature"))
    sim.advance_remote("feature", "feat: remote change A", files=("a.txt",))
    sim.modify("b.txt")
    sim.staged = {"b.txt"}
    (tmp_path / "msg").write_text("feat: local change B", encoding="utf-8")
    asyncio.run(sim.run("commit", "-F", str(tmp_path / "msg")))
    return sim


def _policy(sim: SimulatedGit, **overrides) -> PushRetryPolicy:
    return PushRetryPolicy(Repository(sim), build_settings(**overrides))


def test_push_without_remote_fails(tmp_path: Path, caplog: pytest.LogCaptureFixture) -> None:
    sim = SimulatedGit(tmp_path)

    with caplog.at_level(logging.ERROR, logger="dayshift.push"):
        assert asyncio.run(_policy(sim).push("main")) is False

    assert "No git remote configured" in caplog.text
    assert not [call for call in sim.calls if call[0] == "push"]


def test_first_push_sets_upstream(tmp_path: Path) -> None:
    sim = SimulatedGit(tmp_path)
    sim.add_remote("origin")

    assert asyncio.run(_policy(sim).push("main"))

    assert ("push", "-u", "origin", "main") in sim.calls
    assert sim.remotes["origin"].branches["main"] == sim.branches["main"]


def test_rejected_push_pulls_and_retries(tmp_path: Path) -> None:
    sim = SimulatedGit(tmp_path)
    sim.add_remote("origin", mirror=("main",))
    sim.reject_pushes = 1

    assert asyncio.run(_policy(sim).push("main"))

    pushes = [call for call in sim.calls if call[0] in {"push", "pull"}]
    assert pushes == [
        ("push", "origin", "main"),
        ("pull", "--no-rebase", "--no-edit", "origin", "main"),
        ("push", "origin", "main"),
    ]


def test_divergent_non_conflicting_history_is_merged(tmp_path: Path) -> None:
    sim = _diverged(tmp_path)

    assert asyncio.run(_policy(sim).push("feature"))

    messages = sim.messages("feature")
    assert "feat: remote change A" in messages
    assert "feat: local change B" in messages
    assert any(message.startswith("Merge origin/feature") for message in messages)
    assert sim.remotes["origin"].branches["feature"] == sim.branches["feature"]


def test_conflicting_pull_fails_without_force_flag(tmp_path: Path) -> None:
    sim = _diverged(tmp_path)
    sim.conflicts.add(("origin/feature", "feature"))

    assert asyncio.run(_policy(sim).push("feature")) is False

    assert not sim.merging
    assert not [call for call in sim.calls if "--force-with-lease" in call]
    assert sim.remotes["origin"].branches["feature"][-1] != sim.branches["feature"][-1]


def test_force_fallback_only_when_enabled(tmp_path: Path) -> None:
    sim = _diverged(tmp_path)
    sim.conflicts.add(("origin/feature", "feature"))

    assert asyncio.run(_policy(sim, push_force_fallback=True).push("feature"))

    assert ("push", "--force-with-lease", "-u", "origin", "feature") in sim.calls
    assert sim.remotes["origin"].branches["feature"] == sim.branches["feature"]
