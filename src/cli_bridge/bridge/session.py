"""One CLI subprocess serving one chat request.

The session spawns the provider's executable, delivers the prompt, and
exposes the normalized output as an async iterator of StreamEvents. Prompt
delivery and the stdout and stderr readers run as background tasks; stdout
events reach the consumer through a bounded queue. Closing the iterator
early (client disconnect) terminates the process.
"""

from __future__ import annotations

import asyncio
import os
from collections.abc import AsyncIterator, Awaitable
from enum import Enum
from typing import TypeVar

import structlog

from cli_bridge.bridge.models import StreamEvent
from cli_bridge.bridge.normalizer import StreamNormalizer
from cli_bridge.providers.models import InputMode, ProviderSpec

logger = structlog.get_logger()

T = TypeVar("T")

_EOF = object()


class SessionState(str, Enum):
    CREATED = "created"
    SPAWNING = "spawning"
    SPAWN_FAILED = "spawn_failed"
    RUNNING = "running"
    DRAINING = "draining"
    CLOSED = "closed"


class SubprocessSession:
    """Drives a single CLI invocation from spawn to exit.

    Args:
        spec: Provider to run.
        prompt: Prompt text built for ``spec``.
        model: Optional model name passed to the CLI.
        system_prompt: Passed as a flag unless ``spec`` embeds it in the prompt.
        timeout: Max seconds for the whole session; None or 0 disables.
        terminate_grace: Seconds between SIGTERM and SIGKILL.
        queue_size: Bound of the stdout event queue.
        read_chunk_size: Bytes per stdout read.
    """

    def __init__(
        self,
        spec: ProviderSpec,
        prompt: str,
        model: str | None = None,
        system_prompt: str | None = None,
        *,
        timeout: float | None = None,
        terminate_grace: float = 5.0,
        queue_size: int = 256,
        read_chunk_size: int = 65536,
    ) -> None:
        self._spec = spec
        self._prompt = prompt
        self._model = model
        self._system_prompt = system_prompt
        self._timeout = timeout or None
        self._terminate_grace = terminate_grace
        self._queue_size = queue_size
        self._read_chunk_size = read_chunk_size

        self._normalizer = StreamNormalizer(spec)
        self._proc: asyncio.subprocess.Process | None = None
        self._tasks: list[asyncio.Task] = []
        self._terminated = False
        self._log = logger.bind(provider=spec.name)
        self.state = SessionState.CREATED

    @property
    def text_sent(self) -> bool:
        return self._normalizer.text_sent

    @property
    def returncode(self) -> int | None:
        return self._proc.returncode if self._proc else None

    @property
    def terminated(self) -> bool:
        return self._terminated

    async def events(self) -> AsyncIterator[StreamEvent]:
        """Run the CLI and yield its events; the last one is always ``done``."""
        self.state = SessionState.SPAWNING
        argv = self._spec.build_argv(self._prompt, self._model, self._system_prompt)
        try:
            self._proc = await asyncio.create_subprocess_exec(
                *argv,
                stdin=asyncio.subprocess.PIPE,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
                env=dict(os.environ),
            )
        except (OSError, ValueError) as e:
            # ValueError: an argument the OS cannot take, e.g. an embedded NUL
            self.state = SessionState.SPAWN_FAILED
            self._log.error("cli_spawn_failed", command=self._spec.command, error=str(e))
            yield StreamEvent.error_event(
                f"Failed to start {self._spec.name} CLI. Is it installed?"
            )
            self.state = SessionState.CLOSED
            yield StreamEvent.done()
            return

        self.state = SessionState.RUNNING
        self._log.info(
            "cli_spawned",
            pid=self._proc.pid,
            command=self._spec.command,
            input_mode=self._spec.input_mode.value,
            prompt_length=len(self._prompt),
        )

        queue: asyncio.Queue = asyncio.Queue(maxsize=self._queue_size)
        stdout_task = asyncio.create_task(
            self._read_stdout(queue), name=f"{self._spec.name}-stdout-reader"
        )
        stderr_task = asyncio.create_task(
            self._read_stderr(), name=f"{self._spec.name}-stderr-reader"
        )
        stdin_task = asyncio.create_task(
            self._deliver_prompt(), name=f"{self._spec.name}-stdin-writer"
        )
        self._tasks = [stdout_task, stderr_task, stdin_task]

        loop = asyncio.get_running_loop()
        deadline = loop.time() + self._timeout if self._timeout else None

        try:
            try:
                while True:
                    item = await self._within(queue.get(), deadline)
                    if item is _EOF:
                        break
                    yield item

                self.state = SessionState.DRAINING
                returncode = await self._within(self._proc.wait(), deadline)
                await asyncio.wait([stderr_task], timeout=self._terminate_grace)
                if returncode != 0:
                    self._log.warning("cli_exit_nonzero", returncode=returncode)
                self._log.info(
                    "cli_session_complete",
                    returncode=returncode,
                    text_sent=self.text_sent,
                )
            except asyncio.TimeoutError:
                self._log.warning("cli_timeout", timeout=self._timeout)
                await self._shutdown()
                yield StreamEvent.error_event(
                    f"{self._spec.name} CLI timed out after {self._timeout:g}s"
                )
            self.state = SessionState.CLOSED
            yield StreamEvent.done()
        finally:
            await self._shutdown()

    def terminate(self) -> bool:
        """Send SIGTERM to the CLI, at most once per session.

        A process that already exited is left alone. Returns True if a
        signal was sent by this call.
        """
        if self._terminated or self._proc is None:
            return False
        self._terminated = True
        if self._proc.returncode is not None:
            return False
        try:
            self._proc.terminate()
        except ProcessLookupError:
            return False
        self._log.info("cli_terminated", pid=self._proc.pid)
        return True

    async def _within(self, aw: Awaitable[T], deadline: float | None) -> T:
        if deadline is None:
            return await aw
        remaining = deadline - asyncio.get_running_loop().time()
        return await asyncio.wait_for(aw, max(remaining, 0))

    async def _deliver_prompt(self) -> None:
        stdin = self._proc.stdin
        try:
            if self._spec.input_mode is InputMode.STDIN:
                stdin.write(self._prompt.encode("utf-8"))
                await stdin.drain()
        except ConnectionError as e:
            # CLI exited before reading its input; stdout/exit code tell the rest
            self._log.warning("cli_stdin_closed", error=str(e))
        finally:
            stdin.close()

    async def _read_stdout(self, queue: asyncio.Queue) -> None:
        stdout = self._proc.stdout
        try:
            while data := await stdout.read(self._read_chunk_size):
                for fragment in self._normalizer.feed(data):
                    await queue.put(StreamEvent.text_event(fragment))
            for fragment in self._normalizer.finish():
                await queue.put(StreamEvent.text_event(fragment))
        except Exception:
            self._log.exception("cli_stdout_read_failed")
        await queue.put(_EOF)

    async def _read_stderr(self) -> None:
        stderr = self._proc.stderr
        while data := await stderr.read(self._read_chunk_size):
            for line in data.decode("utf-8", errors="replace").splitlines():
                if line.strip():
                    self._log.warning("cli_stderr", line=line.strip())

    async def _shutdown(self) -> None:
        """Stop the process (if still running) and the reader tasks."""
        proc = self._proc
        if proc is None:
            return
        if proc.returncode is None:
            self.terminate()
            try:
                await asyncio.wait_for(proc.wait(), self._terminate_grace)
            except asyncio.TimeoutError:
                self._log.warning("cli_kill", pid=proc.pid)
                try:
                    proc.kill()
                except ProcessLookupError:
                    pass
                await proc.wait()

        for task in self._tasks:
            if not task.done():
                task.cancel()
        await asyncio.gather(*self._tasks, return_exceptions=True)
        self.state = SessionState.CLOSED
