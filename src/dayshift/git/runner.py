"""Async runner for the git binary."""

from __future__ import annotations

import asyncio
import logging
import shlex
from dataclasses import dataclass
from pathlib import Path
from typing import Iterable, Mapping

from .utils import sanitize_environment

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class GitResult:
    """Holds the outcome of a git invocation."""

    args: tuple[str, ...]
    returncode: int
    stdout: str
    stderr: str

    @property
    def ok(self) -> bool:
        return self.returncode == 0


def format_command(args: Iterable[str]) -> str:
    return shlex.join(["git", *args])


class GitClient:
    """Execute git subcommands asynchronously inside one working tree.

    ``run`` never raises: a non-zero exit (or a missing binary) is logged and
    returned as a failed :class:`GitResult`. Callers treat ``ok=False`` as
    "the operation did not happen".
    """

    def __init__(self, cwd: Path, *, executable: str = "git") -> None:
        self._cwd = Path(cwd)
        self._executable = executable

    @property
    def cwd(self) -> Path:
        return self._cwd

    async def run(self, *args: str, probe: bool = False) -> GitResult:
        """Run ``git <args>``.

        ``probe`` marks commands whose failure is an expected answer (for
        example "does this ref exist"); their stderr is logged at DEBUG only.
        """

        logger.debug("[cmd] %s", format_command(args), extra={"cwd": str(self._cwd)})
        result = await self._invoke(*args)
        if not result.ok:
            logger.log(
                logging.DEBUG if probe else logging.WARNING,
                "[err] %s\n%s",
                format_command(args),
                result.stderr.strip() or f"exit code {result.returncode}",
            )
        return result

    async def _invoke(self, *args: str) -> GitResult:
        cmd = [self._executable, *args]
        try:
            process = await asyncio.create_subprocess_exec(
                *cmd,
                cwd=str(self._cwd),
                stdin=asyncio.subprocess.DEVNULL,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
                env=sanitize_environment(),
            )
        except OSError as exc:
            return GitResult(args=tuple(args), returncode=127, stdout="", stderr=str(exc))
        stdout_bytes, stderr_bytes = await process.communicate()
        stdout = stdout_bytes.decode("utf-8", errors="replace")
        stderr = stderr_bytes.decode("utf-8", errors="replace")
        return GitResult(args=tuple(args), returncode=process.returncode, stdout=stdout, stderr=stderr)


class FakeGitClient(GitClient):
    """Test double that answers git commands from a script instead of a subprocess.

    ``responses`` maps an argument prefix to a result (or a list of results
    consumed in order). Unmatched commands succeed with empty output.
    """

    def __init__(  # type: ignore[override]
        self,
        responses: Mapping[tuple[str, ...], GitResult | list[GitResult]] | None = None,
        *,
        cwd: Path = Path("/tmp/fake-repo"),
    ) -> None:
        self._cwd = Path(cwd)
        self._executable = "git"
        self._responses: dict[tuple[str, ...], list[GitResult]] = {}
        for prefix, value in (responses or {}).items():
            self._responses[tuple(prefix)] = list(value) if isinstance(value, list) else [value]
        self._invocations: list[tuple[str, ...]] = []

    async def _invoke(self, *args: str) -> GitResult:  # type: ignore[override]
        self._invocations.append(tuple(args))
        best: tuple[str, ...] | None = None
        for prefix in self._responses:
            if args[: len(prefix)] == prefix and (best is None or len(prefix) > len(best)):
                best = prefix
        if best is not None:
            queue = self._responses[best]
            result = queue.pop(0) if len(queue) > 1 else queue[0]
            return GitResult(
                args=tuple(args),
                returncode=result.returncode,
                stdout=result.stdout,
                stderr=result.stderr,
            )
        return GitResult(args=tuple(args), returncode=0, stdout="", stderr="")

    @property
    def invocations(self) -> list[tuple[str, ...]]:
        return self._invocations


def ok(stdout: str = "") -> GitResult:
    return GitResult(args=(), returncode=0, stdout=stdout, stderr="")


def failed(stderr: str = "", returncode: int = 1) -> GitResult:
    return GitResult(args=(), returncode=returncode, stdout="", stderr=stderr)
