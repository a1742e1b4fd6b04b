"""In-memory git simulator used by the orchestration tests.

``SimulatedGit`` implements the subset of git that :class:`Repository`,
:class:`PushRetryPolicy` and the rollover executor issue. Branches are lists
of commit ids; a merge appends the missing source commits plus a merge commit.
"""

from __future__ import annotations

import asyncio
import fnmatch
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path

from dayshift.config import DayshiftSettings
from dayshift.git import GitClient, GitResult

# 2025-01-02 12:00 in Asia/Dubai
FIXED_NOW = datetime(2025, 1, 2, 8, 0, tzinfo=timezone.utc)


def fixed_clock() -> datetime:
    return FIXED_NOW


def build_settings(**overrides) -> DayshiftSettings:
    return DayshiftSettings(_env_file=None).model_copy(update=overrides)


@dataclass
class Commit:
    sha: str
    message: str
    files: tuple[str, ...] = ()
    parents: tuple[str, ...] = ()


@dataclass
class SimulatedRemote:
    branches: dict[str, list[str]] = field(default_factory=dict)


def _ok(args: tuple[str, ...], stdout: str = "") -> GitResult:
    return GitResult(args=args, returncode=0, stdout=stdout, stderr="")


def _fail(args: tuple[str, ...], stderr: str = "error", returncode: int = 1) -> GitResult:
    return GitResult(args=args, returncode=returncode, stdout="", stderr=stderr)


class SimulatedGit(GitClient):
    def __init__(self, cwd: Path, *, head: str = "main") -> None:
        super().__init__(cwd)
        (Path(cwd) / ".git").mkdir(parents=True, exist_ok=True)
        self.commits: dict[str, Commit] = {}
        self.branches: dict[str, list[str]] = {}
        self.updated: dict[str, int] = {}
        self.head = head
        self.remotes: dict[str, SimulatedRemote] = {}
        self.dirty: dict[str, str] = {}
        self.staged: set[str] = set()
        self.merging = False
        self.conflicts: set[tuple[str, str]] = set()
        self.reject_pushes = 0
        self.fail_commits = 0
        self.calls: list[tuple[str, ...]] = []
        self._tick = 0
        self.branches[head] = [self._new_commit("initial commit").sha]
        self._touch(head)

    # -- scenario helpers -------------------------------------------------

    def _new_commit(self, message: str, files: tuple[str, ...] = (), parents: tuple[str, ...] = ()) -> Commit:
        sha = f"{len(self.commits) + 1:07x}"
        commit = Commit(sha=sha, message=message, files=files, parents=parents)
        self.commits[sha] = commit
        return commit

    def _touch(self, branch: str) -> None:
        self._tick += 1
        self.updated[branch] = self._tick

    def add_branch(self, name: str, start: str | None = None, *, commit: str | None = None) -> None:
        self.branches[name] = list(self._resolve(start or self.head) or [])
        if commit:
            self.branches[name].append(self._new_commit(commit).sha)
        self._touch(name)

    def add_remote(self, name: str = "origin", *, mirror: tuple[str, ...] = ()) -> SimulatedRemote:
        remote = self.remotes.setdefault(name, SimulatedRemote())
        for branch in mirror:
            remote.branches[branch] = list(self.branches[branch])
        return remote

    def advance_remote(self, branch: str, message: str, *, remote: str = "origin", files: tuple[str, ...] = ()) -> str:
        commit = self._new_commit(message, files)
        self.remotes[remote].branches.setdefault(branch, []).append(commit.sha)
        return commit.sha

    def modify(self, path: str, code: str = " M") -> None:
        self.dirty[path] = code

    def messages(self, branch: str) -> list[str]:
        return [self.commits[sha].message for sha in self.branches.get(branch, [])]

    def command_names(self) -> list[str]:
        return [" ".join(args[:2]) for args in self.calls]

    # -- ref resolution ---------------------------------------------------

    def _resolve(self, ref: str) -> list[str] | None:
        if ref == "HEAD":
            return self.branches.get(self.head)
        if ref in self.branches:
            return self.branches[ref]
        remote, _, branch = ref.partition("/")
        if remote in self.remotes and branch in self.remotes[remote].branches:
            return self.remotes[remote].branches[branch]
        return None

    def _merge_into(self, target: str, source_commits: list[str], label: str) -> None:
        current = self.branches[target]
        missing = [sha for sha in source_commits if sha not in current]
        if not missing:
            return
        tip = current[-1] if current else ""
        merge = self._new_commit(f"Merge {label} into {target}", parents=(tip, source_commits[-1]))
        self.branches[target] = current + missing + [merge.sha]
        self._touch(target)

    # -- command dispatch -------------------------------------------------

    async def _invoke(self, *args: str) -> GitResult:  # type: ignore[override]
        self.calls.append(tuple(args))
        await asyncio.sleep(0)
        handler = getattr(self, "_git_" + args[0].replace("-", "_"), None)
        if handler is None:
            return _fail(args, f"unsupported command {args[0]}")
        return handler(tuple(args))

    def _git_rev_parse(self, args: tuple[str, ...]) -> GitResult:
        if args[1] == "--show-toplevel":
            return _ok(args, f"{self.cwd}\n")
        if args[1:3] == ("--abbrev-ref", "HEAD"):
            return _ok(args, f"{self.head}\n")
        if args[1:3] == ("--short", "HEAD"):
            return _ok(args, f"{self.branches[self.head][-1]}\n")
        if args[1] == "--verify":
            ref = args[-1].removesuffix("^{commit}")
            commits = self._resolve(ref)
            return _ok(args, f"{commits[-1]}\n") if commits else _fail(args, "")
        return _fail(args)

    def _git_show_ref(self, args: tuple[str, ...]) -> GitResult:
        name = args[-1].removeprefix("refs/heads/")
        return _ok(args) if name in self.branches else _fail(args, "")

    def _git_checkout(self, args: tuple[str, ...]) -> GitResult:
        if args[1] in ("-b", "-B"):
            name = args[2]
            if args[1] == "-b" and name in self.branches:
                return _fail(args, f"fatal: a branch named '{name}' already exists")
            start = args[3] if len(args) > 3 else "HEAD"
            commits = self._resolve(start)
            if commits is None:
                return _fail(args, f"fatal: invalid reference: {start}")
            self.branches[name] = list(commits)
            self._touch(name)
            self.head = name
            return _ok(args)
        if args[1] not in self.branches:
            return _fail(args, f"error: pathspec '{args[1]}' did not match")
        self.head = args[1]
        return _ok(args)

    def _git_status(self, args: tuple[str, ...]) -> GitResult:
        lines = [f"{code} {path}" for path, code in sorted(self.dirty.items())]
        return _ok(args, "\n".join(lines) + ("\n" if lines else ""))

    def _git_diff(self, args: tuple[str, ...]) -> GitResult:
        if "--cached" in args:
            return _ok(args, "\n".join(sorted(self.staged)))
        tracked = [path for path, code in sorted(self.dirty.items()) if code != "??"]
        return _ok(args, "\n".join(tracked))

    def _git_ls_files(self, args: tuple[str, ...]) -> GitResult:
        untracked = [path for path, code in sorted(self.dirty.items()) if code == "??"]
        return _ok(args, "\n".join(untracked))

    def _git_add(self, args: tuple[str, ...]) -> GitResult:
        if args[1] == "-A":
            self.staged = set(self.dirty)
            return _ok(args)
        for path in args[2:]:
            self.dirty.setdefault(path, "??")
            self.staged.add(path)
        return _ok(args)

    def _git_restore(self, args: tuple[str, ...]) -> GitResult:
        self.staged.discard(args[-1])
        return _ok(args)

    def _git_commit(self, args: tuple[str, ...]) -> GitResult:
        if self.fail_commits > 0:
            self.fail_commits -= 1
            return _fail(args, "error: unable to write new index file")
        if not self.staged:
            return _fail(args, "nothing to commit")
        message = Path(args[2]).read_text(encoding="utf-8").rstrip("\n")
        commit = self._new_commit(message, tuple(sorted(self.staged)))
        self.branches[self.head].append(commit.sha)
        self._touch(self.head)
        for path in self.staged:
            self.dirty.pop(path, None)
        self.staged = set()
        return _ok(args)

    def _git_branch(self, args: tuple[str, ...]) -> GitResult:
        name = args[-1]
        if args[1] != "-D" or name not in self.branches:
            return _fail(args, f"error: branch '{name}' not found")
        if name == self.head:
            return _fail(args, f"error: cannot delete branch '{name}' checked out")
        del self.branches[name]
        self.updated.pop(name, None)
        return _ok(args)

    def _git_remote(self, args: tuple[str, ...]) -> GitResult:
        return _ok(args, "\n".join(self.remotes))

    def _git_ls_remote(self, args: tuple[str, ...]) -> GitResult:
        remote, branch = args[2], args[3]
        commits = self.remotes[remote].branches.get(branch) if remote in self.remotes else None
        if not commits:
            return _ok(args)
        return _ok(args, f"{commits[-1]}\trefs/heads/{branch}\n")

    def _git_for_each_ref(self, args: tuple[str, ...]) -> GitResult:
        pattern = args[-1].removeprefix("refs/heads/")
        names = [name for name in self.branches if fnmatch.fnmatchcase(name, pattern)]
        if "--sort=-committerdate" in args:
            names.sort(key=lambda name: self.updated.get(name, 0), reverse=True)
        else:
            names.sort()
        return _ok(args, "\n".join(names))

    def _git_merge(self, args: tuple[str, ...]) -> GitResult:
        if args[1] == "--abort":
            if not self.merging:
                return _fail(args, "fatal: There is no merge to abort")
            self.merging = False
            return _ok(args)
        source = args[-1]
        if (source, self.head) in self.conflicts:
            self.merging = True
            return _fail(args, f"CONFLICT: merge of {source} into {self.head}")
        commits = self._resolve(source)
        if commits is None:
            return _fail(args, f"merge: {source} - not something we can merge")
        self._merge_into(self.head, commits, source)
        return _ok(args)

    def _git_fetch(self, args: tuple[str, ...]) -> GitResult:
        return _ok(args)

    def _git_pull(self, args: tuple[str, ...]) -> GitResult:
        remote, branch = args[-2], args[-1]
        if (f"{remote}/{branch}", self.head) in self.conflicts:
            self.merging = True
            return _fail(args, "CONFLICT")
        commits = self.remotes[remote].branches.get(branch, [])
        self._merge_into(self.head, commits, f"{remote}/{branch}")
        return _ok(args)

    def _git_push(self, args: tuple[str, ...]) -> GitResult:
        remote, branch = args[-2], args[-1]
        local = self.branches.get(branch)
        if local is None:
            return _fail(args, f"error: src refspec {branch} does not match any")
        target = self.remotes[remote].branches
        forced = "--force-with-lease" in args
        if self.reject_pushes > 0 and not forced:
            self.reject_pushes -= 1
            return _fail(args, "! [rejected] (fetch first)")
        existing = target.get(branch, [])
        if not forced and any(sha not in local for sha in existing):
            return _fail(args, "! [rejected] (non-fast-forward)")
        target[branch] = list(local)
        return _ok(args)


__all__ = ["FIXED_NOW", "Commit", "SimulatedGit", "SimulatedRemote", "build_settings", "fixed_clock"]
