"""Process harness: one piped child process per rubric criterion."""

import asyncio
import os
import shlex
from dataclasses import dataclass, field
from typing import Mapping, Optional, Tuple

from utils.logger import get_logger
from utils.error_handler import GradingError

logger = get_logger()

# Raised by the pipe when the child exits (or closes stdin) before reading everything
INPUT_DELIVERY_ERRORS = (BrokenPipeError, ConnectionResetError)


@dataclass(frozen=True)
class ProcessSpec:
    """Everything needed to start one test command."""
    program: str
    arguments: Tuple[str, ...]
    cwd: str
    env: Mapping[str, str] = field(default_factory=dict)

    @classmethod
    def from_command(cls, command: str, cwd: str, env: Mapping[str, str]) -> "ProcessSpec":
        try:
            parts = shlex.split(command)
        except ValueError as e:
            raise GradingError(f"Test command cannot be parsed: {e}") from e
        if not parts:
            raise GradingError("Test command is empty.")
        return cls(program=parts[0], arguments=tuple(parts[1:]), cwd=cwd, env=dict(env))

    def child_environment(self) -> dict[str, str]:
        """Parent environment overlaid with the criterion contract variables."""
        return {**os.environ, **self.env}


@dataclass(frozen=True)
class ExitStatus:
    returncode: int

    @property
    def success(self) -> bool:
        return self.returncode == 0


class ChildProcess:
    """Handles to a running test command: input writer, output readers, exit status."""

    def __init__(self, process: asyncio.subprocess.Process, spec: ProcessSpec):
        self._process = process
        self.spec = spec

    @property
    def pid(self) -> int:
        return self._process.pid

    @property
    def stdout(self) -> asyncio.StreamReader:
        assert self._process.stdout is not None
        return self._process.stdout

    @property
    def stderr(self) -> asyncio.StreamReader:
        assert self._process.stderr is not None
        return self._process.stderr

    async def write_input(self, text: str) -> Optional[BaseException]:
        """Writes `text` to the child's stdin in full, then closes it.

        A child that exits or closes stdin early makes the pipe fail; that is
        logged and returned instead of raised, the exit status still decides
        the verdict.
        """
        stdin = self._process.stdin
        assert stdin is not None
        try:
            stdin.write(text.encode("utf-8"))
            await stdin.drain()
            stdin.close()
            await stdin.wait_closed()
        except INPUT_DELIVERY_ERRORS as e:
            logger.warning(f"Failed writing input of {self.spec.program} (pid {self.pid}): {e!r}")
            stdin.close()
            return e
        return None

    async def kill(self) -> None:
        """Kills the child if it is still running and reaps it."""
        if self._process.returncode is None:
            logger.warning(f"Killing {self.spec.program} (pid {self.pid}).")
            try:
                self._process.kill()
            except ProcessLookupError:
                pass
        await self._process.wait()

    async def wait(self) -> ExitStatus:
        returncode = await self._process.wait()
        logger.debug(f"Process {self.pid} exited with status {returncode}.")
        return ExitStatus(returncode)


async def spawn(spec: ProcessSpec) -> ChildProcess:
    """Starts the child described by `spec` with all three standard streams piped.

    Raises:
        GradingError: If the command cannot be started.
    """
    logger.debug(f"Executing {spec.program} {list(spec.arguments)} in {spec.cwd} with {dict(spec.env)}")
    try:
        process = await asyncio.create_subprocess_exec(
            spec.program, *spec.arguments,
            cwd=spec.cwd,
            env=spec.child_environment(),
            stdin=asyncio.subprocess.PIPE,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
        )
    except OSError as e:
        logger.error(f"Could not start test command {spec.program!r}: {e}")
        raise GradingError(f"Could not start test command {spec.program!r}: {e}") from e
    return ChildProcess(process, spec)
