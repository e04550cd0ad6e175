"""
Async external process execution.

The runner keeps only the last lines of a child's stderr and guarantees
that the child is gone when run() returns or raises, including on timeout
and task cancellation.
"""

import asyncio
import logging
from collections import deque
from collections.abc import Sequence
from dataclasses import dataclass, field
from typing import Protocol

from mediafuse.core.exceptions import ProcessTimeoutError

logger = logging.getLogger(__name__)

# ffmpeg can emit very long stats lines; raise the default StreamReader limit
STREAM_LIMIT = 1024 * 1024


@dataclass(frozen=True)
class ProcessResult:
    """
    Outcome of a finished process.

    Attributes:
        exit_code: Process exit status
        stderr_tail: Last non-empty lines written to stderr
    """

    exit_code: int
    stderr_tail: list[str] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return self.exit_code == 0


class ProcessPort(Protocol):
    """Runs an external program to completion."""

    async def run(self, args: Sequence[str], timeout: float) -> ProcessResult: ...


class AsyncProcessRunner:
    """
    ProcessPort backed by asyncio subprocesses.

    Example:
        ```python
        runner = AsyncProcessRunner(tail_lines=30)
        result = await runner.run(["ffmpeg", "-version"], timeout=10)
        ```
    """

    def __init__(self, tail_lines: int = 30) -> None:
        self._tail_lines = tail_lines

    async def run(self, args: Sequence[str], timeout: float) -> ProcessResult:
        """
        Run a program and wait for it to exit.

        Args:
            args: Program and arguments
            timeout: Seconds before the child is killed

        Returns:
            ProcessResult with exit code and stderr tail

        Raises:
            ProcessTimeoutError: If the child exceeded the timeout
            FileNotFoundError: If the program does not exist
        """
        program = args[0]
        process = await asyncio.create_subprocess_exec(
            *args,
            stdin=asyncio.subprocess.DEVNULL,
            stdout=asyncio.subprocess.DEVNULL,
            stderr=asyncio.subprocess.PIPE,
            limit=STREAM_LIMIT,
        )
        tail: deque[str] = deque(maxlen=self._tail_lines)

        async def drain() -> int:
            assert process.stderr is not None
            async for raw in process.stderr:
                line = raw.decode("utf-8", errors="replace").rstrip()
                if line:
                    tail.append(line)
            return await process.wait()

        logger.debug("Process started", extra={"program": program, "pid": process.pid})

        try:
            exit_code = await asyncio.wait_for(drain(), timeout=timeout)
        except asyncio.TimeoutError:
            await self._kill(process)
            logger.warning(
                "Process timed out and was killed",
                extra={"program": program, "timeout": timeout},
            )
            raise ProcessTimeoutError(program, timeout, list(tail)) from None
        except asyncio.CancelledError:
            await self._kill(process)
            raise

        logger.debug(
            "Process exited",
            extra={"program": program, "exit_code": exit_code},
        )
        return ProcessResult(exit_code=exit_code, stderr_tail=list(tail))

    @staticmethod
    async def _kill(process: asyncio.subprocess.Process) -> None:
        if process.returncode is None:
            try:
                process.kill()
            except ProcessLookupError:
                pass
        await process.wait()
