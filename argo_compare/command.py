"""Library for issuing commands using asyncio and returning the result.

External tools (helm, tar, a diff viewer) are run to completion with no
timeout; a hung tool blocks the run.
"""

import asyncio
from abc import ABC, abstractmethod
import logging
import shlex
import subprocess
from dataclasses import dataclass
from collections.abc import Awaitable, Callable, Sequence

from .exceptions import CommandException

_LOGGER = logging.getLogger(__name__)

_CONCURRENCY = 4
_SEM = asyncio.Semaphore(_CONCURRENCY)


__all__ = [
    "Task",
    "Command",
    "Runner",
    "run",
    "run_piped",
]


class Task(ABC):
    """An instance of a async task to execute."""

    @abstractmethod
    async def run(self, stdin: bytes | None = None) -> bytes:
        """Execute the task and return the result."""


@dataclass
class Command(Task):
    """An instance of a command to run."""

    cmd: list[str]
    """Array of command line arguments."""

    exc: type[CommandException] = CommandException
    """Exception to throw in case of an error."""

    combine_output: bool = False
    """Interleave stderr into stdout, like a terminal would show it."""

    secrets: list[str] | None = None
    """Arguments masked when the command line is logged or reported."""

    @property
    def string(self) -> str:
        """Render the command as a single string."""
        return " ".join([shlex.quote(arg) for arg in self.cmd])

    def __str__(self) -> str:
        """Render as a debug string."""
        masked = self.string
        for secret in self.secrets or ():
            if secret:
                masked = masked.replace(shlex.quote(secret), "******")
        return masked

    async def run(self, stdin: bytes | None = None) -> bytes:
        """Run the command, returning stdout."""
        _LOGGER.debug("Running command: %s", self)
        proc = await asyncio.create_subprocess_shell(
            self.string,
            stdin=subprocess.PIPE,
            stdout=subprocess.PIPE,
            stderr=subprocess.STDOUT if self.combine_output else subprocess.PIPE,
        )
        out, err = await proc.communicate(stdin)
        if proc.returncode:
            errors = [f"Command '{self}' failed with return code {proc.returncode}"]
            if out:
                errors.append(out.decode("utf-8", errors="replace"))
            if err:
                errors.append(err.decode("utf-8", errors="replace"))
            _LOGGER.debug("\n".join(errors))
            raise self.exc("\n".join(errors))
        return out


Runner = Callable[[Task], Awaitable[str]]
"""Signature of `run`, injectable where callers want to fake subprocesses."""


async def _run_piped_with_sem(cmds: Sequence[Task], stdin: bytes | None) -> str:
    """Run a set of commands, piped together, returning stdout of last."""
    out = None
    for cmd in cmds:
        out = await cmd.run(stdin)
        stdin = out
    return out.decode("utf-8") if out else ""


async def run_piped(cmds: Sequence[Task], stdin: bytes | None = None) -> str:
    """Run a set of commands, piped together, returning stdout of last."""
    async with _SEM:
        result = await _run_piped_with_sem(cmds, stdin)
    return result


async def run(cmd: Task) -> str:
    """Run the specified command and return stdout."""
    return await run_piped([cmd])
