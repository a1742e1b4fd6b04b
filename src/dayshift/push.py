"""Layered push with pull-merge recovery."""

from __future__ import annotations

import logging

from .config import DayshiftSettings
from .git.repo import Repository

logger = logging.getLogger(__name__)


class PushRetryPolicy:
    """Push a branch, escalating through up to three strategies.

    1. No remote branch yet: ``push -u`` (first push wins, no retry).
    2. Remote branch exists: plain push; on rejection ``pull --no-rebase`` and
       push once more.
    3. Still rejected: ``push --force-with-lease -u``, only when
       ``AC_PUSH_FORCE_FALLBACK`` is enabled. Otherwise the push fails.

    Only the final boolean is reported to callers.
    """

    def __init__(self, repo: Repository, settings: DayshiftSettings) -> None:
        self._repo = repo
        self._settings = settings

    async def push(self, branch: str) -> bool:
        git = self._repo.git
        remote = await self._repo.default_remote()
        if remote is None:
            logger.error("No git remote configured. Run: git remote add origin <git-url>")
            return False

        if not await self._repo.remote_branch_exists(remote, branch):
            logger.info("Creating new remote branch %s on %s", branch, remote)
            result = await git.run("push", "-u", remote, branch)
            if not result.ok:
                logger.error("Failed to create remote branch %s", branch)
            return result.ok

        result = await git.run("push", remote, branch)
        if result.ok:
            return True

        logger.info("Push of %s rejected, pulling remote changes", branch)
        pulled = await git.run("pull", "--no-rebase", "--no-edit", remote, branch)
        if pulled.ok:
            logger.info("Merged remote %s/%s, retrying push", remote, branch)
            result = await git.run("push", remote, branch)
            if result.ok:
                return True
        else:
            await self._repo.merge_abort()

        if not self._settings.push_force_fallback:
            logger.error(
                "Push of %s failed; remote has diverged. Resolve manually or set AC_PUSH_FORCE_FALLBACK=true",
                branch,
            )
            return False

        logger.warning("Falling back to forced upstream push for %s", branch)
        result = await git.run("push", "--force-with-lease", "-u", remote, branch)
        if not result.ok:
            logger.error("Push of %s failed", branch)
        return result.ok


__all__ = ["PushRetryPolicy"]
