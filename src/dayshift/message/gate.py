"""Commit message file discovery and readiness checks."""

from __future__ import annotations

import logging
from pathlib import Path

from ..config import DayshiftSettings

logger = logging.getLogger(__name__)

DEFAULT_MESSAGE_FILE = ".claude-commit-msg"
SESSION_PREFIX = ".devops-commit-"
SESSION_SUFFIX = ".msg"


def header_of(message: str) -> str:
    return message.split("\n", 1)[0].strip()


class MessageGate:
    """Locates the agent's commit message file and decides whether it is ready.

    Resolution order:

    1. ``AC_MSG_FILE`` relative to the repository root, even if it does not
       exist yet (the agent may create it later).
    2. The most recently modified ``.devops-commit-*.msg`` session file.
    3. ``.claude-commit-msg`` at the repository root, if present.
    4. The legacy nested locations from ``AC_MSG_FALLBACKS``, if present.
    5. ``.claude-commit-msg`` at the root, even if absent.
    """

    def __init__(self, settings: DayshiftSettings, repo_root: Path) -> None:
        self._settings = settings
        self._root = Path(repo_root)
        self._pattern = settings.compiled_msg_pattern

    def resolve_path(self) -> Path:
        settings = self._settings
        if settings.msg_file:
            path = (self._root / settings.msg_file).resolve()
            logger.info("Using message file from AC_MSG_FILE: %s", settings.msg_file)
            return path

        sessions = [
            p
            for p in self._root.glob(f"{SESSION_PREFIX}*{SESSION_SUFFIX}")
            if p.is_file()
        ]
        if sessions:
            latest = max(sessions, key=lambda p: p.stat().st_mtime)
            logger.info("Found session message file: %s", latest.name)
            return latest

        root_default = self._root / DEFAULT_MESSAGE_FILE
        if root_default.exists():
            return root_default

        for candidate in settings.msg_fallbacks:
            path = self._root / candidate
            if path.exists():
                return path

        return root_default

    def relative(self, path: Path) -> str:
        """Repository-relative POSIX path, or the absolute path outside the repo."""

        try:
            return Path(path).resolve().relative_to(self._root.resolve()).as_posix()
        except ValueError:
            return str(path)

    @staticmethod
    def read(path: Path) -> str:
        try:
            return Path(path).read_text(encoding="utf-8").strip()
        except (OSError, UnicodeDecodeError):
            return ""

    @staticmethod
    def mtime(path: Path) -> float:
        try:
            return Path(path).stat().st_mtime
        except OSError:
            return 0.0

    def header_ok(self, message: str) -> bool:
        """Header matches the conventional-commit pattern and is long enough."""

        header = header_of(message)
        if not header or len(header.encode("utf-8")) < self._settings.msg_min_bytes:
            return False
        return self._pattern.search(header) is not None

    def is_ready(self, path: Path, *, last_non_msg_change: float = 0.0) -> bool:
        if not self._settings.require_msg:
            return True
        if not self.header_ok(self.read(path)):
            return False
        if not self._settings.require_msg_after_change:
            return True
        return self.mtime(path) >= last_non_msg_change

    def clear(self, path: Path) -> None:
        try:
            Path(path).write_text("", encoding="utf-8")
        except OSError as exc:
            logger.debug("clear message file failed: %s", exc)
            return
        logger.info("cleared message file %s", self.relative(path))


__all__ = ["DEFAULT_MESSAGE_FILE", "MessageGate", "header_of"]
