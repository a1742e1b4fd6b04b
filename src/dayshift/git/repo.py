"""Repository queries and mutations built on :class:`GitClient`.

Every method maps to one (occasionally two) git commands so callers can reason
about side effects. Failures come back as ``False``/empty values, never as
exceptions.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from pathlib import Path
from typing import Iterable

from .runner import GitClient, GitResult


@dataclass(frozen=True)
class EnsureBranchResult:
    ok: bool
    created: bool
    switched: bool


@dataclass(frozen=True)
class StatusSummary:
    count: int
    added: int
    modified: int
    deleted: int
    untracked: int
    preview: str


def resolve_git_dir(repo_root: Path) -> Path:
    """Return the real git metadata directory for ``repo_root``.

    In a linked worktree ``.git`` is a file holding ``gitdir: <path>``; the
    path may be relative to the worktree.
    """

    dot_git = Path(repo_root) / ".git"
    if dot_git.is_file():
        content = dot_git.read_text(encoding="utf-8")
        match = re.search(r"gitdir:\s*(.+)", content)
        if match:
            target = Path(match.group(1).strip())
            if not target.is_absolute():
                target = (Path(repo_root) / target).resolve()
            return target
    return dot_git


def parse_status(porcelain: str, max_lines: int = 20) -> StatusSummary:
    lines = [line for line in porcelain.splitlines() if line.strip()]
    added = modified = deleted = untracked = 0
    for line in lines:
        code = line[:2]
        if code == "??":
            untracked += 1
        elif "D" in code:
            deleted += 1
        elif "M" in code:
            modified += 1
        else:
            added += 1
    return StatusSummary(
        count=len(lines),
        added=added,
        modified=modified,
        deleted=deleted,
        untracked=untracked,
        preview="\n".join(lines[:max_lines]),
    )


def porcelain_paths(porcelain: str) -> list[str]:
    paths: list[str] = []
    for line in porcelain.splitlines():
        if len(line) < 4:
            continue
        path = line[3:]
        if " -> " in path:
            path = path.split(" -> ", 1)[1]
        paths.append(path.strip().strip('"'))
    return paths


def _lines(result: GitResult) -> list[str]:
    if not result.ok:
        return []
    return [line.strip() for line in result.stdout.splitlines() if line.strip()]


class Repository:
    """Higher-level view of one working tree."""

    def __init__(self, git: GitClient) -> None:
        self.git = git

    @property
    def root(self) -> Path:
        return self.git.cwd

    async def toplevel(self) -> Path | None:
        result = await self.git.run("rev-parse", "--show-toplevel")
        if not result.ok or not result.stdout.strip():
            return None
        return Path(result.stdout.strip())

    async def current_branch(self) -> str:
        result = await self.git.run("rev-parse", "--abbrev-ref", "HEAD")
        return result.stdout.strip() if result.ok else ""

    async def branch_exists(self, name: str) -> bool:
        result = await self.git.run("show-ref", "--verify", "--quiet", f"refs/heads/{name}", probe=True)
        return result.ok

    async def ref_exists(self, ref: str) -> bool:
        result = await self.git.run("rev-parse", "--verify", "--quiet", f"{ref}^{{commit}}", probe=True)
        return result.ok

    async def ensure_branch(self, name: str) -> EnsureBranchResult:
        """Check out ``name``, creating it from the current HEAD when absent."""

        if await self.current_branch() == name:
            return EnsureBranchResult(ok=True, created=False, switched=False)
        if await self.branch_exists(name):
            result = await self.git.run("checkout", name)
            return EnsureBranchResult(ok=result.ok, created=False, switched=result.ok)
        result = await self.git.run("checkout", "-b", name)
        return EnsureBranchResult(ok=result.ok, created=result.ok, switched=result.ok)

    async def status_porcelain(self) -> str:
        result = await self.git.run("status", "--porcelain")
        return result.stdout if result.ok else ""

    async def has_uncommitted_changes(self, *, exclude: Iterable[str] = ()) -> bool:
        """True when anything other than the ``exclude``d paths is modified or untracked."""

        skip = set(exclude)
        return any(path not in skip for path in porcelain_paths(await self.status_porcelain()))

    async def summarize_status(self, max_lines: int = 20) -> StatusSummary:
        return parse_status(await self.status_porcelain(), max_lines=max_lines)

    async def changed_files(self) -> list[str]:
        """Tracked files differing from HEAD plus untracked, non-ignored files."""

        tracked = _lines(await self.git.run("diff", "--name-only", "HEAD", probe=True))
        untracked = _lines(await self.git.run("ls-files", "--others", "--exclude-standard"))
        seen: dict[str, None] = dict.fromkeys(tracked)
        for path in untracked:
            seen.setdefault(path, None)
        return list(seen)

    async def stage_all(self) -> bool:
        return (await self.git.run("add", "-A")).ok

    async def stage(self, *paths: str) -> bool:
        return (await self.git.run("add", "--", *paths)).ok

    async def unstage(self, path: str) -> None:
        await self.git.run("restore", "--staged", "--", path, probe=True)

    async def staged_files(self) -> list[str]:
        return _lines(await self.git.run("diff", "--cached", "--name-only"))

    async def commit_from_file(self, message_file: Path) -> bool:
        return (await self.git.run("commit", "-F", str(message_file))).ok

    async def short_head(self) -> str:
        result = await self.git.run("rev-parse", "--short", "HEAD")
        return result.stdout.strip() if result.ok else ""

    async def remotes(self) -> list[str]:
        return _lines(await self.git.run("remote"))

    async def default_remote(self) -> str | None:
        remotes = await self.remotes()
        if "origin" in remotes:
            return "origin"
        return remotes[0] if remotes else None

    async def remote_branch_exists(self, remote: str, branch: str) -> bool:
        result = await self.git.run("ls-remote", "--heads", remote, branch)
        return result.ok and bool(result.stdout.strip())

    async def local_branches(self, pattern: str = "*") -> list[str]:
        return _lines(
            await self.git.run("for-each-ref", "--format=%(refname:short)", f"refs/heads/{pattern}")
        )

    async def latest_branch(self, prefix: str) -> str | None:
        """Most recently committed-to local branch whose name starts with ``prefix``."""

        result = await self.git.run(
            "for-each-ref",
            "--format=%(refname:short)",
            "--sort=-committerdate",
            f"refs/heads/{prefix}*",
        )
        lines = _lines(result)
        return lines[0] if lines else None

    async def merge(self, source: str, *, message: str) -> bool:
        return (await self.git.run("merge", "--no-ff", "-m", message, source)).ok

    async def merge_abort(self) -> None:
        await self.git.run("merge", "--abort", probe=True)

    async def delete_branch(self, name: str) -> bool:
        return (await self.git.run("branch", "-D", name)).ok

    async def fetch_all(self) -> bool:
        return (await self.git.run("fetch", "--all", "--prune")).ok


__all__ = [
    "EnsureBranchResult",
    "Repository",
    "StatusSummary",
    "parse_status",
    "porcelain_paths",
    "resolve_git_dir",
]
