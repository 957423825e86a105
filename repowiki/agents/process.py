"""Lifecycle management for a single external agent process.

Two invocation styles are supported:

* exec mode runs one shell command string with a working directory, a hard
  timeout and an output ceiling. Agents invoked this way write their own
  output file, so completion within the timeout is success.
* stdin mode spawns the executable with an argument list, streams the prompt
  over standard input and captures standard output as the document body. The
  captured body is judged by an output validator before the caller sees it.

Every public coroutine resolves an :class:`InvocationResult`; process level
failures are reported as values, never raised.
"""

from __future__ import annotations

import asyncio
import os
import signal
import sys
import time
from enum import Enum
from pathlib import Path
from typing import Optional, Sequence, Tuple

from ..logging import get_logger
from ..models import InvocationResult
from ..validators import OutputValidator, describe_issues

DEFAULT_TIMEOUT = 300.0
PROBE_TIMEOUT = 5.0
MAX_BUFFER = 10 * 1024 * 1024
TERMINATE_GRACE = 5.0
_READ_CHUNK = 64 * 1024
_COMMAND_PREVIEW = 120
_STDERR_TAIL = 500
_UTF8_LOCALE = "en_US.UTF-8" if sys.platform == "darwin" else "C.UTF-8"
_POSIX = os.name == "posix"

logger = get_logger("agents.process")


class InvocationState(str, Enum):
    """States of a stdin-mode invocation."""

    RUNNING = "running"
    TIMED_OUT = "timed_out"
    RESOLVED = "resolved"


class Settlement:
    """Guards the timer/exit/error race: the first event to claim wins."""

    def __init__(self) -> None:
        self.state = InvocationState.RUNNING

    def claim(self, target: InvocationState) -> bool:
        if self.state is not InvocationState.RUNNING:
            return False
        self.state = target
        return True


class OutputLimitExceeded(RuntimeError):
    """Raised when a child writes more than the configured buffer ceiling."""


class AgentProcess:
    """Runs external agent commands and reports one result per invocation."""

    def __init__(
        self,
        *,
        timeout: float = DEFAULT_TIMEOUT,
        max_buffer: int = MAX_BUFFER,
        probe_timeout: float = PROBE_TIMEOUT,
        terminate_grace: float = TERMINATE_GRACE,
    ) -> None:
        self.timeout = timeout
        self.max_buffer = max_buffer
        self.probe_timeout = probe_timeout
        self.terminate_grace = terminate_grace

    # ------------------------------------------------------------------
    # Availability

    async def probe(self, executable: str) -> bool:
        """Return True when ``<executable> --version`` can be run at all."""
        return await self._run_version(executable) is not None

    async def version(self, executable: str) -> Optional[str]:
        outcome = await self._run_version(executable)
        if outcome is None:
            return None
        returncode, output = outcome
        text = output.strip()
        if returncode != 0 or not text:
            return None
        return text.splitlines()[0]

    async def _run_version(self, executable: str) -> Optional[Tuple[int, str]]:
        try:
            proc = await asyncio.create_subprocess_exec(
                executable,
                "--version",
                stdin=asyncio.subprocess.DEVNULL,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.DEVNULL,
                start_new_session=_POSIX,
            )
        except OSError as exc:
            logger.debug("Probe of %s failed: %s", executable, exc)
            return None
        try:
            stdout, _ = await asyncio.wait_for(proc.communicate(), timeout=self.probe_timeout)
        except asyncio.TimeoutError:
            logger.debug("Probe of %s timed out after %ss", executable, self.probe_timeout)
            await self._reap(proc)
            return None
        return proc.returncode if proc.returncode is not None else -1, _decode(stdout)

    # ------------------------------------------------------------------
    # Exec mode

    async def run_shell(self, command: str, *, cwd: Path) -> InvocationResult:
        """Run a shell command string and capture its output."""
        start = time.monotonic()
        logger.debug("exec: %s (cwd=%s)", command, cwd)
        try:
            proc = await asyncio.create_subprocess_shell(
                command,
                cwd=str(cwd),
                stdin=asyncio.subprocess.DEVNULL,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
                start_new_session=_POSIX,
            )
        except OSError as exc:
            return InvocationResult.failure(
                f"Failed to start command: {exc}",
                duration=time.monotonic() - start,
            )

        stdout_buf, stderr_buf = bytearray(), bytearray()
        try:
            stdout, stderr = await asyncio.wait_for(
                self._collect(proc, stdout_buf, stderr_buf, limit=self.max_buffer),
                timeout=self.timeout,
            )
            returncode = await proc.wait()
        except asyncio.TimeoutError:
            await self._reap(proc)
            # Readers were cancelled; the buffers keep what arrived before the deadline.
            stderr_text = _decode(bytes(stderr_buf))
            return InvocationResult.failure(
                _with_stderr(
                    f"Command timed out after {self.timeout:g}s: {_abbreviate(command)}",
                    stderr_text,
                ),
                stdout=_decode(bytes(stdout_buf)),
                stderr=stderr_text,
                duration=time.monotonic() - start,
            )
        except OutputLimitExceeded as exc:
            await self._reap(proc)
            return InvocationResult.failure(str(exc), duration=time.monotonic() - start)
        finally:
            if proc.returncode is None:
                await self._reap(proc)

        stdout_text = _decode(stdout)
        stderr_text = _decode(stderr)
        duration = time.monotonic() - start
        if returncode != 0:
            detail = stderr_text.strip() or f"no output, exit code {returncode}"
            return InvocationResult.failure(
                f"Command failed with exit code {returncode}: {detail}",
                stdout=stdout_text,
                stderr=stderr_text,
                duration=duration,
            )
        return InvocationResult.ok(stdout=stdout_text, stderr=stderr_text, duration=duration)

    # ------------------------------------------------------------------
    # Stdin mode

    async def run_stdin(
        self,
        executable: str,
        args: Sequence[str],
        prompt: str,
        *,
        cwd: Path,
        validator: OutputValidator | None = None,
    ) -> InvocationResult:
        """Stream ``prompt`` to the executable and judge what it prints."""
        start = time.monotonic()
        logger.debug("stdin: %s %s (cwd=%s, %d prompt chars)", executable, " ".join(args), cwd, len(prompt))
        try:
            proc = await asyncio.create_subprocess_exec(
                executable,
                *args,
                cwd=str(cwd),
                env=_utf8_environment(),
                stdin=asyncio.subprocess.PIPE,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
                start_new_session=_POSIX,
            )
        except OSError as exc:
            return InvocationResult.failure(
                f"Failed to start {executable}: {exc}",
                duration=time.monotonic() - start,
            )

        loop = asyncio.get_running_loop()
        settlement = Settlement()
        outcome: asyncio.Future[InvocationResult] = loop.create_future()
        stdout_buf, stderr_buf = bytearray(), bytearray()

        def _on_timeout() -> None:
            if not settlement.claim(InvocationState.TIMED_OUT):
                return
            logger.warning("%s timed out after %ss; terminating", executable, self.timeout)
            _send_signal(proc, signal.SIGTERM)
            stderr_text = _decode(bytes(stderr_buf))
            outcome.set_result(
                InvocationResult.failure(
                    _with_stderr(f"{executable} timed out after {self.timeout:g}s", stderr_text),
                    stderr=stderr_text,
                    duration=time.monotonic() - start,
                )
            )

        def _on_finished(task: asyncio.Future[Tuple[bytes, bytes, int]]) -> None:
            if task.cancelled():
                return
            error = task.exception()
            if error is not None:
                result = InvocationResult.failure(
                    f"{executable} failed: {error}",
                    duration=time.monotonic() - start,
                )
            else:
                stdout, stderr, returncode = task.result()
                result = self._judge(
                    stdout,
                    stderr,
                    returncode,
                    validator=validator,
                    duration=time.monotonic() - start,
                )
            if settlement.claim(InvocationState.RESOLVED):
                outcome.set_result(result)

        timer = loop.call_later(self.timeout, _on_timeout)
        worker = asyncio.ensure_future(
            self._feed_and_collect(proc, prompt, stdout_buf, stderr_buf)
        )
        worker.add_done_callback(_on_finished)
        try:
            return await outcome
        finally:
            timer.cancel()
            if not worker.done():
                worker.cancel()
            await self._reap(proc)

    async def _feed_and_collect(
        self,
        proc: asyncio.subprocess.Process,
        prompt: str,
        stdout_buf: bytearray,
        stderr_buf: bytearray,
    ) -> Tuple[bytes, bytes, int]:
        assert proc.stdin is not None
        readers = self._start_readers(proc, stdout_buf, stderr_buf, limit=None)
        try:
            try:
                proc.stdin.write(prompt.encode("utf-8"))
                await proc.stdin.drain()
            except (BrokenPipeError, ConnectionResetError) as exc:
                logger.debug("Child closed stdin early: %s", exc)
            finally:
                proc.stdin.close()
            stdout, stderr = await asyncio.gather(*readers)
            returncode = await proc.wait()
        except BaseException:
            for reader in readers:
                reader.cancel()
            raise
        return stdout, stderr, returncode

    @staticmethod
    def _judge(
        stdout: bytes,
        stderr: bytes,
        returncode: int,
        *,
        validator: OutputValidator | None,
        duration: float,
    ) -> InvocationResult:
        stdout_text = _decode(stdout)
        stderr_text = _decode(stderr)
        if returncode == 0 and stdout_text.strip():
            issues = validator.validate(stdout_text) if validator is not None else []
            if issues:
                return InvocationResult.failure(
                    f"Output failed validation: {describe_issues(issues)}",
                    stdout=stdout_text,
                    stderr=stderr_text,
                    duration=duration,
                    should_retry=True,
                )
            return InvocationResult.ok(stdout=stdout_text, stderr=stderr_text, duration=duration)
        detail = stderr_text.strip() or f"no output, exit code {returncode}"
        return InvocationResult.failure(
            detail,
            stdout=stdout_text,
            stderr=stderr_text,
            duration=duration,
        )

    # ------------------------------------------------------------------
    # Stream plumbing

    async def _collect(
        self,
        proc: asyncio.subprocess.Process,
        stdout_buf: bytearray,
        stderr_buf: bytearray,
        *,
        limit: Optional[int],
    ) -> Tuple[bytes, bytes]:
        readers = self._start_readers(proc, stdout_buf, stderr_buf, limit=limit)
        try:
            stdout, stderr = await asyncio.gather(*readers)
        except BaseException:
            for reader in readers:
                reader.cancel()
            raise
        return stdout, stderr

    def _start_readers(
        self,
        proc: asyncio.subprocess.Process,
        stdout_buf: bytearray,
        stderr_buf: bytearray,
        *,
        limit: Optional[int],
    ) -> list[asyncio.Future[bytes]]:
        assert proc.stdout is not None and proc.stderr is not None
        return [
            asyncio.ensure_future(_read_stream(proc.stdout, stdout_buf, limit, "stdout")),
            asyncio.ensure_future(_read_stream(proc.stderr, stderr_buf, limit, "stderr")),
        ]

    async def _reap(self, proc: asyncio.subprocess.Process) -> None:
        """Terminate gracefully, then kill if the child ignores the signal."""
        if proc.returncode is not None:
            return
        _send_signal(proc, signal.SIGTERM)
        try:
            await asyncio.wait_for(proc.wait(), timeout=self.terminate_grace)
            return
        except asyncio.TimeoutError:
            logger.debug("Process %s ignored SIGTERM; killing", proc.pid)
        _send_signal(proc, getattr(signal, "SIGKILL", signal.SIGTERM))
        try:
            await asyncio.wait_for(proc.wait(), timeout=self.terminate_grace)
        except asyncio.TimeoutError:
            logger.warning("Process %s did not exit after SIGKILL", proc.pid)


async def _read_stream(
    stream: asyncio.StreamReader, buffer: bytearray, limit: Optional[int], label: str
) -> bytes:
    """Append ``stream`` into ``buffer`` so a cancelled read keeps its partial data."""
    while True:
        chunk = await stream.read(_READ_CHUNK)
        if not chunk:
            return bytes(buffer)
        buffer.extend(chunk)
        if limit is not None and len(buffer) > limit:
            raise OutputLimitExceeded(f"{label} exceeded the {limit} byte buffer limit")


def _send_signal(proc: asyncio.subprocess.Process, sig: int) -> None:
    if proc.returncode is not None:
        return
    try:
        if _POSIX:
            # Children run in their own session so shell grandchildren go too.
            os.killpg(proc.pid, sig)
        elif sig == signal.SIGTERM:
            proc.terminate()
        else:
            proc.kill()
    except (ProcessLookupError, PermissionError):
        pass


def _utf8_environment() -> dict[str, str]:
    env = os.environ.copy()
    env["LANG"] = _UTF8_LOCALE
    env["LC_ALL"] = _UTF8_LOCALE
    env["PYTHONIOENCODING"] = "utf-8"
    return env


def _decode(data: bytes | None) -> str:
    if not data:
        return ""
    return data.decode("utf-8", errors="replace")


def _abbreviate(command: str, limit: int = _COMMAND_PREVIEW) -> str:
    # Exec commands carry the whole prompt; errors only need the head.
    text = " ".join(command.split())
    if len(text) <= limit:
        return text
    return text[:limit] + "..."


def _with_stderr(message: str, stderr_text: str) -> str:
    detail = stderr_text.strip()
    if not detail:
        return message
    return f"{message} (stderr: {detail[-_STDERR_TAIL:]})"


__all__ = [
    "AgentProcess",
    "DEFAULT_TIMEOUT",
    "InvocationState",
    "MAX_BUFFER",
    "OutputLimitExceeded",
    "PROBE_TIMEOUT",
    "Settlement",
    "TERMINATE_GRACE",
]
