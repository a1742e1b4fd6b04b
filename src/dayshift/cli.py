"""Command-line entry point: ``dayshift`` / ``python -m dayshift``."""

from __future__ import annotations

import asyncio
import logging
import signal
import sys
from pathlib import Path

from pydantic import ValidationError

from . import __version__
from .config import DayshiftSettings, get_settings
from .engine import Engine
from .errors import DayshiftError, RepositoryNotFoundError
from .git import GitClient, Repository
from .repl import Console, Repl
from .rollover import auto_confirm

logger = logging.getLogger(__name__)


def configure_logging(level: str) -> None:
    """Configure root logging for the dayshift process."""

    logging.basicConfig(
        level=getattr(logging, level, logging.INFO),
        format="[%(asctime)s] [%(levelname)s] %(name)s: %(message)s",
    )


async def find_repository(cwd: Path) -> Path:
    root = await Repository(GitClient(cwd)).toplevel()
    if root is None:
        raise RepositoryNotFoundError(f"{cwd} is not inside a git work tree")
    return root


def _install_signal_handlers(engine: Engine) -> None:
    loop = asyncio.get_running_loop()
    for signum in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(signum, engine.request_stop)
        except (NotImplementedError, RuntimeError):
            logger.debug("signal handler for %s not supported", signum)


async def run(settings: DayshiftSettings, *, cwd: Path | None = None) -> int:
    """Run the engine until ``exit`` or a termination signal, then shut down."""

    root = await find_repository(cwd or Path.cwd())
    console = Console()
    interactive = sys.stdin.isatty()
    engine = Engine(
        settings,
        GitClient(root),
        confirm=console.confirm if settings.rollover_prompt and interactive else auto_confirm,
    )

    await console.start()
    _install_signal_handlers(engine)
    try:
        await engine.startup(confirm_start=console.confirm if interactive else None)
        watch_task = engine.start_watch()
        repl_task = asyncio.create_task(Repl(engine, console).run())
        try:
            await engine.wait_stopped()
        finally:
            if not engine.shut_down:
                await engine.shutdown(commit_pending=True)
            repl_task.cancel()
            await asyncio.gather(watch_task, repl_task, return_exceptions=True)
    finally:
        await console.close()
    logger.info("dayshift stopped")
    return 0


def main() -> int:
    """Entry point for running the auto-commit engine via CLI."""

    try:
        settings = get_settings()
    except ValidationError as exc:
        configure_logging("INFO")
        logger.error("invalid configuration:\n%s", exc)
        return 1
    configure_logging(settings.log_level)

    logger.info(
        "Launching dayshift",
        extra={"version": __version__, "log_level": settings.log_level},
    )
    try:
        return asyncio.run(run(settings))
    except DayshiftError as exc:
        logger.error("%s", exc)
        return 1
    except KeyboardInterrupt:
        return 0


if __name__ == "__main__":
    sys.exit(main())
