"""
Async execution of external commands.

Commands are always passed as argv lists; nothing goes through a shell.
"""

import asyncio
import logging
import os
from dataclasses import dataclass
from typing import Dict, List, Optional

from ..errors import ExternalCommandError

logger = logging.getLogger(__name__)


@dataclass
class CommandResult:
    """Captured output of a finished command."""
    argv: List[str]
    returncode: int
    stdout: str
    stderr: str

    @property
    def ok(self) -> bool:
        return self.returncode == 0


class CommandRunner:
    """
    Runs external commands and captures their output.

    A non-zero exit, a timeout or a missing executable raises
    ExternalCommandError with the tool's own error text.
    """

    def __init__(self, default_timeout: Optional[float] = None):
        self.default_timeout = default_timeout

    async def run(
        self,
        argv: List[str],
        description: str = "",
        timeout: Optional[float] = None,
        env: Optional[Dict[str, str]] = None,
    ) -> CommandResult:
        description = description or " ".join(argv)
        timeout = timeout if timeout is not None else self.default_timeout
        logger.info(f"Executing: {description}")

        proc_env = None
        if env:
            proc_env = {**os.environ, **env}

        try:
            proc = await asyncio.create_subprocess_exec(
                *argv,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
                env=proc_env,
            )
        except FileNotFoundError as e:
            logger.error(f"Error: {argv[0]} not found")
            raise ExternalCommandError(argv, None, f"{argv[0]}: command not found") from e

        try:
            stdout, stderr = await asyncio.wait_for(proc.communicate(), timeout=timeout)
        except asyncio.TimeoutError:
            proc.kill()
            await proc.wait()
            logger.error(f"Error: {description} timed out after {timeout}s")
            raise ExternalCommandError(argv, None, timed_out=True)

        result = CommandResult(
            argv=list(argv),
            returncode=proc.returncode,
            stdout=stdout.decode("utf-8", errors="replace"),
            stderr=stderr.decode("utf-8", errors="replace"),
        )

        if not result.ok:
            logger.error(f"Error: {description} exited with {result.returncode}: {result.stderr.strip()}")
            raise ExternalCommandError(argv, result.returncode, result.stderr or result.stdout)

        if result.stderr and "Warning" not in result.stderr:
            logger.warning(f"Stderr: {result.stderr.strip()}")

        logger.info(f"Success: {description}")
        return result
