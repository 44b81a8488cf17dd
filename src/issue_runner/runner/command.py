"""External command execution.

Runs git, build and test commands as async subprocesses inside a
workspace, with timeout enforcement, line-by-line output streaming to the
log and structured result capture.
"""

import asyncio
import logging
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Optional, Sequence, Union

logger = logging.getLogger(__name__)

PathLike = Union[str, Path]

READ_CHUNK_SIZE = 65536


@dataclass
class CommandResult:
    """Result of one external command.

    Attributes:
        command: The command as run (for logs and diagnostics).
        success: True when the process exited with code 0.
        exit_code: Process exit code (-1 for timeout/OS errors).
        stdout: Captured standard output.
        stderr: Captured standard error.
        duration_seconds: Wall-clock execution time.
    """

    command: str
    success: bool
    exit_code: int
    stdout: str
    stderr: str
    duration_seconds: float

    @property
    def output(self) -> str:
        """Combined stdout and stderr."""
        return "\n".join(part for part in (self.stdout, self.stderr) if part)

    def tail(self, lines: int = 40) -> str:
        """Last lines of the combined output, for diagnostics."""
        return "\n".join(self.output.splitlines()[-lines:])


class CommandRunner:
    """Runs external commands as async subprocesses.

    Output is streamed line-by-line to the debug log and an optional
    callback. A process that exceeds its timeout is killed and reported as
    a failure with exit code -1.

    Attributes:
        timeout_seconds: Default maximum execution time per command.
    """

    def __init__(self, timeout_seconds: float = 1800):
        self.timeout_seconds = timeout_seconds

    async def run_shell(
        self,
        command: str,
        cwd: PathLike,
        timeout_seconds: Optional[float] = None,
        log_callback: Optional[Callable[[str], None]] = None,
    ) -> CommandResult:
        """Run a shell command line (build and test commands).

        Args:
            command: Command line passed to the shell.
            cwd: Working directory.
            timeout_seconds: Override for the default timeout.
            log_callback: Optional function called with each output line.
        """
        return await self._run(
            command,
            lambda: asyncio.create_subprocess_shell(
                command,
                cwd=str(cwd),
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            ),
            timeout_seconds,
            log_callback,
        )

    async def run_exec(
        self,
        args: Sequence[str],
        cwd: PathLike,
        timeout_seconds: Optional[float] = None,
        log_callback: Optional[Callable[[str], None]] = None,
    ) -> CommandResult:
        """Run a program with explicit arguments, without a shell."""
        return await self._run(
            " ".join(args),
            lambda: asyncio.create_subprocess_exec(
                *args,
                cwd=str(cwd),
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            ),
            timeout_seconds,
            log_callback,
        )

    async def _run(
        self,
        display: str,
        start: Callable,
        timeout_seconds: Optional[float],
        log_callback: Optional[Callable[[str], None]],
    ) -> CommandResult:
        timeout = timeout_seconds or self.timeout_seconds
        start_time = time.monotonic()

        logger.debug(
            "Running command",
            extra={"command": display, "timeout": timeout},
        )

        try:
            process = await start()
        except OSError as exc:
            return self._handle_os_error(display, exc, start_time)

        try:
            stdout, stderr = await self._collect_output_with_timeout(
                process, timeout, log_callback
            )
        except asyncio.TimeoutError:
            return await self._handle_timeout(display, process, timeout, start_time)
        finally:
            if process.returncode is None:
                await self._kill(process)

        exit_code = process.returncode if process.returncode is not None else -1
        duration = time.monotonic() - start_time
        return self._build_result(display, exit_code, stdout, stderr, duration)

    async def _collect_output_with_timeout(
        self,
        process: asyncio.subprocess.Process,
        timeout: float,
        log_callback: Optional[Callable[[str], None]],
    ) -> tuple:
        """Stream and collect process output within the timeout window.

        Raises:
            asyncio.TimeoutError: If the process exceeds the timeout.
        """
        stdout_lines: list[str] = []
        stderr_lines: list[str] = []

        async def stream_stdout():
            async for line in self._read_stream(process.stdout):
                stdout_lines.append(line)
                self._emit_line("stdout", line, log_callback)

        async def stream_stderr():
            async for line in self._read_stream(process.stderr):
                stderr_lines.append(line)
                self._emit_line("stderr", line, log_callback)

        async def gather_and_wait():
            await asyncio.gather(stream_stdout(), stream_stderr())
            await process.wait()

        await asyncio.wait_for(gather_and_wait(), timeout=timeout)

        return "\n".join(stdout_lines), "\n".join(stderr_lines)

    async def _read_stream(self, stream: Optional[asyncio.StreamReader]):
        """Yield decoded lines from an async stream.

        Reads fixed-size chunks so a single line may exceed the
        StreamReader line limit (minified files, lockfiles).
        """
        if stream is None:
            return

        buffer = b""
        while True:
            chunk = await stream.read(READ_CHUNK_SIZE)
            if not chunk:
                break
            buffer += chunk
            if b"\n" not in chunk:
                continue
            *lines, buffer = buffer.split(b"\n")
            for raw_line in lines:
                yield raw_line.decode("utf-8", errors="replace")

        if buffer:
            yield buffer.decode("utf-8", errors="replace")

    @staticmethod
    async def _kill(process: asyncio.subprocess.Process) -> None:
        try:
            process.kill()
        except ProcessLookupError:
            pass
        await process.wait()

    def _emit_line(
        self,
        stream_name: str,
        line: str,
        log_callback: Optional[Callable[[str], None]],
    ) -> None:
        logger.debug("%s: %s", stream_name, line)
        if log_callback is not None:
            log_callback(f"[{stream_name}] {line}")

    async def _handle_timeout(
        self,
        display: str,
        process: asyncio.subprocess.Process,
        timeout: float,
        start_time: float,
    ) -> CommandResult:
        """Kill the process and return a timeout failure result."""
        await self._kill(process)
        duration = time.monotonic() - start_time
        logger.error("Command timed out after %ds: %s", timeout, display)
        return CommandResult(
            command=display,
            success=False,
            exit_code=-1,
            stdout="",
            stderr=f"Process timed out after {timeout:g}s",
            duration_seconds=duration,
        )

    def _handle_os_error(
        self,
        display: str,
        exc: OSError,
        start_time: float,
    ) -> CommandResult:
        """Return a failure result for OS-level errors (e.g., missing binary)."""
        duration = time.monotonic() - start_time
        logger.error("Failed to start command %s: %s", display, exc)
        return CommandResult(
            command=display,
            success=False,
            exit_code=-1,
            stdout="",
            stderr=f"Failed to start command: {exc}",
            duration_seconds=duration,
        )

    def _build_result(
        self,
        display: str,
        exit_code: int,
        stdout: str,
        stderr: str,
        duration: float,
    ) -> CommandResult:
        is_success = exit_code == 0

        if is_success:
            logger.debug("Command completed in %.1fs: %s", duration, display)
        else:
            logger.warning(
                "Command failed with exit code %d in %.1fs: %s",
                exit_code,
                duration,
                display,
            )

        return CommandResult(
            command=display,
            success=is_success,
            exit_code=exit_code,
            stdout=stdout,
            stderr=stderr,
            duration_seconds=duration,
        )
