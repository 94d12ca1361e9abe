"""Process supervisor: spawn one child, tee its output, observe its exit.

logpopup runtime module

This module provides:
- PATH resolution and spawn with inherited environment and stdin
- stdout/stderr pipes drained by StreamReader tasks
- Exit observation that does not depend on the pipes closing
- Non-forced termination and ordered, idempotent resource release

Key design points:
- The child shares our process group so terminal stdin passthrough keeps
  working; termination only targets the child itself
- Process.wait() only returns once every pipe has closed, so a background
  grandchild would hide the exit; the exit task watches returncode instead
- Pipes are closed only after the child has been reaped
"""

from __future__ import annotations

import asyncio
import logging
import os
import shutil
import sys
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any, BinaryIO

import anyio

from ..config import DEFAULT_DRAIN_TIMEOUT, DEFAULT_TERM_TIMEOUT, RunConfig
from ..errors import SpawnError
from .stream_reader import DEFAULT_CHUNK_SIZE, StreamReader

__all__ = [
    "ProcessSession",
    "ProcessSupervisor",
    "TerminationOutcome",
]

logger = logging.getLogger(__name__)

# Platform detection
IS_WINDOWS = sys.platform == "win32"

# How often the exit task checks returncode (seconds)
EXIT_POLL_INTERVAL = 0.02


@dataclass(frozen=True)
class TerminationOutcome:
    """How the child ended.

    Attributes:
        exit_code: Exit status, or the signal number when signaled_kill is set
        signaled_kill: True when the child was ended by a signal
    """

    exit_code: int
    signaled_kill: bool = False

    @classmethod
    def from_returncode(cls, returncode: int) -> TerminationOutcome:
        """Build from a subprocess return code (negative means killed by signal)."""
        if returncode < 0:
            return cls(exit_code=-returncode, signaled_kill=True)
        return cls(exit_code=returncode)

    @property
    def success(self) -> bool:
        return self.exit_code == 0 and not self.signaled_kill


@dataclass
class ProcessSession:
    """Live child handle plus the tasks that watch it.

    Owned by ProcessSupervisor; readers only borrow the streams.
    """

    argv: list[str]
    process: asyncio.subprocess.Process
    exit_task: asyncio.Task[int]
    readers: dict[str, StreamReader] = field(default_factory=dict)
    reader_tasks: dict[str, asyncio.Task[int]] = field(default_factory=dict)

    @property
    def pid(self) -> int:
        return self.process.pid

    @property
    def running(self) -> bool:
        return self.process.returncode is None


def _default_tee(name: str) -> BinaryIO | None:
    stream = sys.stdout if name == "stdout" else sys.stderr
    return getattr(stream, "buffer", None)


async def _watch_exit(process: asyncio.subprocess.Process) -> int:
    """Return the child's return code as soon as it has been reaped."""
    while process.returncode is None:
        await asyncio.sleep(EXIT_POLL_INTERVAL)
    return process.returncode


@dataclass
class ProcessSupervisor:
    """Spawns and owns exactly one child process.

    Example:
        supervisor = ProcessSupervisor()
        await supervisor.start(RunConfig(command="make", args=("test",)), buffer.push)
        outcome = await supervisor.wait()
        await supervisor.stop_readers()
        buffer.close()
        await supervisor.release()
    """

    term_timeout: float = DEFAULT_TERM_TIMEOUT
    drain_timeout: float = DEFAULT_DRAIN_TIMEOUT
    chunk_size: int = DEFAULT_CHUNK_SIZE
    stdout_tee: BinaryIO | None = None
    stderr_tee: BinaryIO | None = None
    tee_enabled: bool = True

    _session: ProcessSession | None = field(default=None, init=False, repr=False)
    _started: bool = field(default=False, init=False, repr=False)
    _outcome: TerminationOutcome | None = field(default=None, init=False, repr=False)
    _released: bool = field(default=False, init=False, repr=False)

    @property
    def session(self) -> ProcessSession | None:
        return self._session

    @property
    def is_running(self) -> bool:
        return self._session is not None and self._session.running

    @property
    def outcome(self) -> TerminationOutcome | None:
        return self._outcome

    # ------------------------------------------------------------------
    # Spawn
    # ------------------------------------------------------------------

    async def start(
        self,
        config: RunConfig,
        on_output: Callable[[str], None],
    ) -> ProcessSession:
        """Spawn the child and start draining its output.

        Args:
            config: What to run
            on_output: Receives decoded text from both streams

        Returns:
            The live ProcessSession

        Raises:
            SpawnError: If the command cannot be resolved or launched
            RuntimeError: If this supervisor has already started a child
        """
        if self._started:
            raise RuntimeError("ProcessSupervisor already started a child")
        self._started = True

        env = dict(config.env) if config.env is not None else dict(os.environ)

        executable = shutil.which(config.command, path=env.get("PATH"))
        if executable is None:
            raise SpawnError(config.command, "command not found")

        try:
            process = await asyncio.create_subprocess_exec(
                *config.argv,
                stdin=None,  # inherit: passthrough to the child
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
                **self._build_kwargs(executable, env),
            )
        except OSError as e:
            raise SpawnError(config.command, e.strerror or str(e)) from e

        logger.debug(
            f"Started subprocess pid={process.pid} "
            f"argv={config.argv} executable={executable}"
        )

        session = ProcessSession(
            argv=config.argv,
            process=process,
            exit_task=asyncio.create_task(
                _watch_exit(process), name=f"exit-watch-{process.pid}"
            ),
        )
        self._session = session

        for name, stream in (("stdout", process.stdout), ("stderr", process.stderr)):
            assert stream is not None
            reader = StreamReader(
                name,
                stream,
                on_text=on_output,
                tee=self._tee_for(name),
                chunk_size=self.chunk_size,
                cancel_scope=anyio.CancelScope(),
            )
            session.readers[name] = reader
            session.reader_tasks[name] = asyncio.create_task(
                reader.run(), name=f"{name}-reader"
            )

        return session

    def _build_kwargs(self, executable: str, env: dict[str, str]) -> dict[str, Any]:
        """Build platform-specific subprocess kwargs.

        Returns:
            Dict of kwargs for asyncio.create_subprocess_exec
        """
        kwargs: dict[str, Any] = {
            # argv[0] stays the command as typed
            "executable": executable,
            "env": env,
        }
        if not IS_WINDOWS:
            kwargs["close_fds"] = True
        return kwargs

    def _tee_for(self, name: str) -> BinaryIO | None:
        if not self.tee_enabled:
            return None
        explicit = self.stdout_tee if name == "stdout" else self.stderr_tee
        return explicit if explicit is not None else _default_tee(name)

    # ------------------------------------------------------------------
    # Exit
    # ------------------------------------------------------------------

    async def wait(self) -> TerminationOutcome:
        """Wait for the child to exit and its pipes to drain.

        Draining is bounded by drain_timeout so a grandchild holding the
        pipes open cannot stall the session. Readers that were already
        stopped are not waited for.

        Returns:
            The TerminationOutcome (computed once, then cached)
        """
        if self._outcome is not None:
            return self._outcome

        session = self._session
        if session is None:
            raise RuntimeError("No child process to wait for")

        returncode = await asyncio.shield(session.exit_task)

        pending = [t for t in session.reader_tasks.values() if not t.done()]
        if pending:
            _, still_running = await asyncio.wait(pending, timeout=self.drain_timeout)
            if still_running:
                logger.debug(
                    f"{len(still_running)} reader(s) still open after "
                    f"{self.drain_timeout}s drain timeout"
                )

        if self._outcome is None:
            self._outcome = TerminationOutcome.from_returncode(returncode)
            logger.debug(
                f"Subprocess completed pid={session.pid} "
                f"returncode={returncode}"
            )
        return self._outcome

    def terminate(self) -> bool:
        """Ask a running child to exit (SIGTERM / TerminateProcess).

        Does not wait and does not escalate to a forced kill.

        Returns:
            True if a termination request was sent
        """
        session = self._session
        if session is None or not session.running:
            return False

        try:
            session.process.terminate()
            logger.debug(f"Sent termination request to pid={session.pid}")
            return True
        except ProcessLookupError:
            logger.debug(f"Subprocess already exited pid={session.pid}")
            return False
        except OSError as e:
            logger.warning(f"Error terminating subprocess pid={session.pid}: {e}")
            return False

    # ------------------------------------------------------------------
    # Release
    # ------------------------------------------------------------------

    async def stop_readers(self) -> None:
        """Stop accepting new reads, then cancel and await outstanding reads."""
        session = self._session
        if session is None:
            return

        for reader in session.readers.values():
            reader.stop()

        tasks = [t for t in session.reader_tasks.values() if not t.done()]
        for task in tasks:
            task.cancel()
        if tasks:
            results = await asyncio.gather(*tasks, return_exceptions=True)
            for result in results:
                if isinstance(result, Exception):
                    logger.debug(f"Reader ended with error: {result}")

    async def release(self) -> None:
        """Release pipes, then the process handle. Idempotent.

        A child that is still running gets a termination request and is
        given term_timeout seconds to be reaped.
        """
        if self._released:
            return
        self._released = True

        session = self._session
        if session is None:
            return

        await self.stop_readers()

        if session.running:
            self.terminate()

        if not session.exit_task.done():
            try:
                with anyio.fail_after(self.term_timeout):
                    await asyncio.shield(session.exit_task)
            except TimeoutError:
                logger.warning(
                    f"Subprocess did not exit within {self.term_timeout}s pid={session.pid}"
                )
                session.exit_task.cancel()

        if not session.running:
            self._close_pipes(session)

        self._session = None
        logger.debug(f"Released subprocess pid={session.pid}")

    @staticmethod
    def _close_pipes(session: ProcessSession) -> None:
        """Close the pipe transports of a reaped child.

        asyncio.subprocess.Process has no close(); its transport's close()
        kills a child that is still alive, so this runs only after reaping.
        """
        transport = getattr(session.process, "_transport", None)
        if transport is not None and not transport.is_closing():
            transport.close()
            logger.debug(f"Closed pipes for pid={session.pid}")
