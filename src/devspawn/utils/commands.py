"""Subprocess utilities."""

import logging
import shlex
import subprocess
from dataclasses import dataclass
from typing import Optional, List


logger = logging.getLogger(__name__)


@dataclass
class CommandResult:
    """Result from running a command."""
    returncode: int
    stdout: str = ""
    stderr: str = ""

    @property
    def ok(self) -> bool:
        return self.returncode == 0


def run_command(
    cmd: List[str],
    check: bool = True,
    capture_output: bool = True,
    timeout: Optional[float] = None,
    input: Optional[str] = None,
    **kwargs
) -> CommandResult:
    """Run a command and wait for it to finish.

    Raises ``subprocess.TimeoutExpired`` when the timeout elapses (the child
    is killed first) and ``subprocess.CalledProcessError`` on a non-zero exit
    when ``check`` is set.
    """
    logger.debug(f"Running command: {shlex.join(cmd)}")

    try:
        completed = subprocess.run(
            cmd,
            stdout=subprocess.PIPE if capture_output else None,
            stderr=subprocess.PIPE if capture_output else None,
            input=input,
            text=True,
            timeout=timeout,
            **kwargs
        )
    except subprocess.TimeoutExpired:
        logger.debug(f"Command timed out after {timeout}s: {cmd[0]}")
        raise

    result = CommandResult(
        returncode=completed.returncode,
        stdout=completed.stdout or "",
        stderr=completed.stderr or "",
    )

    if check and completed.returncode != 0:
        error = subprocess.CalledProcessError(completed.returncode, cmd)
        error.stdout = result.stdout
        error.stderr = result.stderr
        raise error

    return result


def command_succeeds(cmd: List[str], timeout: Optional[float] = None) -> bool:
    """Return True when ``cmd`` exits zero within ``timeout``.

    A missing binary or a timeout counts as failure.
    """
    try:
        return run_command(cmd, check=False, timeout=timeout).returncode == 0
    except (OSError, subprocess.TimeoutExpired) as e:
        logger.debug(f"Probe {cmd[0]} failed: {e}")
        return False
