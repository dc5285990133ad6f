"""External command execution for framework bundlers and package managers."""
import logging
import os
import subprocess
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Dict, List, Optional, Sequence, Union

from preview_deploy.exceptions import SubprocessFailure

logger = logging.getLogger(__name__)

# Exit status reported when the executable itself cannot be found
COMMAND_NOT_FOUND = 127


@dataclass(frozen=True)
class CommandResult:
    """Outcome of one external command. Streams are None when inherited."""
    command: List[str]
    cwd: str
    returncode: int
    stdout: Optional[str] = None
    stderr: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.returncode == 0


CommandRunner = Callable[..., CommandResult]


def run_command(
    command: Sequence[str],
    cwd: Union[str, Path],
    env: Optional[Dict[str, str]] = None,
    capture_output: bool = False,
    check: bool = True,
) -> CommandResult:
    """
    Run an external program and block until it exits.

    By default the child inherits this process's stdin/stdout/stderr so build
    tool output streams straight to the user.

    Args:
        command: Program and arguments
        cwd: Working directory for the child
        env: Extra environment variables layered over os.environ
        capture_output: Capture stdout/stderr instead of inheriting them
        check: Raise SubprocessFailure on a non-zero exit code

    Raises:
        SubprocessFailure: If check is set and the command fails or cannot start
    """
    argv = [str(part) for part in command]
    cwd = str(cwd)
    child_env = {**os.environ, **(env or {})}

    logger.debug(f"├ Running '{' '.join(argv)}' in {cwd}")
    try:
        completed = subprocess.run(
            argv,
            cwd=cwd,
            env=child_env,
            capture_output=capture_output,
            text=True,
        )
        result = CommandResult(
            command=argv,
            cwd=cwd,
            returncode=completed.returncode,
            stdout=completed.stdout,
            stderr=completed.stderr,
        )
    except FileNotFoundError:
        logger.error(f"Executable not found: {argv[0]}")
        result = CommandResult(command=argv, cwd=cwd, returncode=COMMAND_NOT_FOUND)

    if check and not result.ok:
        raise SubprocessFailure(result.command, result.returncode, cwd=cwd)
    return result
