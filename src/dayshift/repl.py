"""Interactive command surface on standard input."""

from __future__ import annotations

import asyncio
import json
import logging
import re
import sys
from dataclasses import dataclass
from typing import IO, Awaitable, Callable, Protocol

from .config import DayshiftSettings
from .engine import StatusSnapshot
from .orchestrator import CommitOutcome

logger = logging.getLogger(__name__)

_YES = re.compile(r"^y(es)?$", re.IGNORECASE)


class Console:
    """Single reader of standard input.

    One pump task owns stdin. A line goes to the pending :meth:`ask` future
    when a prompt is waiting, otherwise to the command queue read by
    :meth:`readline`. ``None`` marks end of input.
    """

    def __init__(self, out: Callable[..., None] = print) -> None:
        self._out = out
        self._lines: asyncio.Queue[str | None] = asyncio.Queue()
        self._pending: asyncio.Future[str | None] | None = None
        self._pump: asyncio.Task[None] | None = None
        self._closed = False

    async def start(self, stdin: IO[str] | None = None) -> None:
        loop = asyncio.get_running_loop()
        reader = asyncio.StreamReader()
        try:
            await loop.connect_read_pipe(
                lambda: asyncio.StreamReaderProtocol(reader), stdin or sys.stdin
            )
        except (OSError, ValueError) as exc:
            logger.debug("stdin not readable as a pipe (%s); commands disabled", exc)
            self.feed(None)
            return
        self._pump = asyncio.create_task(self._read(reader))

    async def _read(self, reader: asyncio.StreamReader) -> None:
        while True:
            raw = await reader.readline()
            if not raw:
                self.feed(None)
                return
            self.feed(raw.decode("utf-8", errors="replace").rstrip("\r\n"))

    def feed(self, line: str | None) -> None:
        if self._closed:
            return
        if line is None:
            self._closed = True
        if self._pending is not None and not self._pending.done():
            self._pending.set_result(line)
            self._pending = None
            if line is not None:
                return
        self._lines.put_nowait(line)

    async def readline(self) -> str | None:
        return await self._lines.get()

    async def ask(self, question: str) -> str | None:
        if self._closed:
            return None
        self._out(question, end="", flush=True)
        self._pending = asyncio.get_running_loop().create_future()
        return await self._pending

    async def confirm(self, question: str) -> bool:
        answer = await self.ask(question)
        return bool(answer and _YES.match(answer.strip()))

    def write(self, text: str = "") -> None:
        self._out(text)

    async def close(self) -> None:
        if self._pump is not None:
            self._pump.cancel()
            await asyncio.gather(self._pump, return_exceptions=True)
            self._pump = None


class EngineOperations(Protocol):
    settings: DayshiftSettings

    async def status(self) -> StatusSnapshot: ...

    async def has_pending_changes(self) -> bool: ...

    def message_text(self) -> str: ...

    async def force_commit(self, message: str | None = None) -> CommitOutcome: ...

    async def force_push(self) -> bool: ...

    async def shutdown(self, *, commit_pending: bool = True) -> None: ...


Handler = Callable[[str], Awaitable[bool]]


@dataclass(frozen=True)
class Command:
    name: str
    aliases: tuple[str, ...]
    summary: str
    handler: Handler


class Repl:
    """Dispatches typed commands to the engine. Handlers return ``False`` to stop."""

    def __init__(self, engine: EngineOperations, console: Console) -> None:
        self._engine = engine
        self._console = console
        self._commands = [
            Command("help", ("h", "?"), "Show this help message", self._help),
            Command("status", ("s",), "Show current status", self._status),
            Command("settings", ("config",), "Show the effective settings", self._settings),
            Command("verbose", ("v",), "Toggle debug logging", self._verbose),
            Command("commit", ("c",), "Commit pending changes now", self._commit),
            Command("push", ("p",), "Push the current branch", self._push),
            Command("exit", ("quit", "q"), "Commit, push and exit", self._exit),
            Command("clear", ("cls",), "Clear the screen", self._clear),
        ]
        self._table = {
            alias: command
            for command in self._commands
            for alias in (command.name, *command.aliases)
        }

    async def run(self) -> None:
        self._console.write("Type 'help' for available commands.")
        while True:
            line = await self._console.readline()
            if line is None:
                logger.debug("stdin closed; command loop finished")
                return
            if not await self.dispatch(line):
                return

    async def dispatch(self, line: str) -> bool:
        name, _, arg = line.strip().partition(" ")
        if not name:
            return True
        command = self._table.get(name.lower())
        if command is None:
            self._console.write(f"Unknown command: {name}. Type 'help' for available commands.")
            return True
        return await command.handler(arg.strip())

    async def _help(self, _arg: str) -> bool:
        out = self._console.write
        out("Available commands:")
        for command in self._commands:
            names = ", ".join((command.name, *command.aliases))
            out(f"  {names:<20} {command.summary}")
        return True

    async def _status(self, _arg: str) -> bool:
        snap = await self._engine.status()
        out = self._console.write
        out(f"Branch:        {snap.branch}")
        out(f"Directory:     {snap.cwd}")
        out(f"Message file:  {snap.message_file}")
        out(f"Message:       {snap.message_header or '(empty)'}")
        out(f"Push enabled:  {snap.push_enabled}")
        out(f"Rollover:      {snap.rollover_state.value}")
        out(f"Commit busy:   {snap.busy}")
        out(f"Debug logging: {logging.getLogger().isEnabledFor(logging.DEBUG)}")
        changes = snap.changes
        if changes.count:
            out(
                f"Changes:       {changes.count} "
                f"(A={changes.added}, M={changes.modified}, D={changes.deleted}, ?={changes.untracked})"
            )
            for entry in changes.preview.splitlines():
                out(f"  {entry}")
        else:
            out("Changes:       none")
        return True

    async def _settings(self, _arg: str) -> bool:
        payload = self._engine.settings.model_dump(mode="json")
        self._console.write(json.dumps(payload, indent=2, sort_keys=True))
        return True

    async def _verbose(self, _arg: str) -> bool:
        root = logging.getLogger()
        if root.isEnabledFor(logging.DEBUG):
            root.setLevel(self._engine.settings.log_level)
            self._console.write("Debug logging disabled")
        else:
            root.setLevel(logging.DEBUG)
            self._console.write("Debug logging enabled")
        return True

    async def _commit(self, arg: str) -> bool:
        if not await self._engine.has_pending_changes():
            self._console.write("No changes to commit.")
            return True

        message: str | None = arg or None
        if message is None and not self._engine.message_text():
            answer = await self._console.ask("Enter commit message (or 'cancel' to abort): ")
            if answer is None or not answer.strip() or answer.strip().lower() == "cancel":
                self._console.write("Commit cancelled.")
                return True
            message = answer.strip()

        outcome = await self._engine.force_commit(message)
        if outcome.committed:
            self._console.write(f"Commit finished: {outcome.value}")
        else:
            self._console.write(f"Nothing committed: {outcome.value}")
        return True

    async def _push(self, _arg: str) -> bool:
        pushed = await self._engine.force_push()
        self._console.write("Push succeeded." if pushed else "Push failed.")
        return True

    async def _exit(self, _arg: str) -> bool:
        commit_pending = False
        if await self._engine.has_pending_changes():
            commit_pending = await self._console.confirm(
                "You have uncommitted changes. Commit them before exit? (y/n) "
            )
        await self._engine.shutdown(commit_pending=commit_pending)
        self._console.write("Goodbye!")
        return False

    async def _clear(self, _arg: str) -> bool:
        self._console.write("\033[2J\033[H")
        return True


__all__ = ["Command", "Console", "EngineOperations", "Repl"]
