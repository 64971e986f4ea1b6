"""Shell tools — the single subprocess wrapper every pipe goes through."""

import os
import shutil
import subprocess
import time
from typing import Dict, List, Optional, Sequence

from loguru import logger

from pipesmith.config import settings
from pipesmith.models.reports import CommandResult


_SECRET_FLAGS = {"--password", "-p", "--token", "--kubeconfig-data"}
_SECRET_PREFIXES = ("-Dsonar.login=", "-Dsonar.token=")


def redact(args: Sequence[str]) -> List[str]:
    """Mask values that follow secret-bearing flags before logging argv."""
    masked: List[str] = []
    hide_next = False
    for arg in args:
        if hide_next:
            masked.append("****")
            hide_next = False
            continue
        if arg in _SECRET_FLAGS:
            hide_next = True
            masked.append(arg)
            continue
        prefix = next((p for p in _SECRET_PREFIXES if arg.startswith(p)), None)
        if prefix:
            masked.append(prefix + "****")
            continue
        masked.append(arg)
    return masked


def tool_available(name: str) -> bool:
    """True if an executable is on PATH."""
    return shutil.which(name) is not None


def run(
    args: Sequence[str],
    cwd: Optional[str] = None,
    env: Optional[Dict[str, str]] = None,
    timeout: Optional[int] = None,
    input_text: Optional[str] = None,
) -> CommandResult:
    """
    Run an external command and capture its output.

    Never raises for a missing binary or a timeout: those come back as a
    failed CommandResult (127 and 124, like a shell would report them).

    Args:
        args: argv of the command.
        cwd: Working directory (defaults to WORKING_DIR).
        env: Extra environment variables layered over os.environ.
        timeout: Seconds before the command is killed.
        input_text: Text written to the child's stdin.

    Returns:
        CommandResult with exit code and captured output.
    """
    argv = [str(a) for a in args]
    cwd = cwd or settings.WORKING_DIR
    timeout = timeout or settings.COMMAND_TIMEOUT_SECONDS
    child_env = {**os.environ, **env} if env else None

    logger.debug("$ {}", " ".join(redact(argv)))
    start = time.time()

    try:
        proc = subprocess.run(
            argv,
            capture_output=True,
            text=True,
            timeout=timeout,
            cwd=cwd,
            env=child_env,
            input=input_text,
        )
        result = CommandResult(
            args=argv,
            returncode=proc.returncode,
            stdout=proc.stdout or "",
            stderr=proc.stderr or "",
            duration_ms=(time.time() - start) * 1000,
        )
    except FileNotFoundError:
        logger.warning("{} not installed — cannot run command", argv[0])
        result = CommandResult(
            args=argv,
            returncode=127,
            stderr=f"{argv[0]}: command not found",
            duration_ms=(time.time() - start) * 1000,
        )
    except subprocess.TimeoutExpired:
        logger.error("{} timed out after {}s", argv[0], timeout)
        result = CommandResult(
            args=argv,
            returncode=124,
            stderr=f"{argv[0]} timed out after {timeout}s",
            duration_ms=(time.time() - start) * 1000,
        )

    if not result.ok:
        logger.debug("{} exited with {}: {}", argv[0], result.returncode, result.stderr[:500])
    return result


def tail(text: str, lines: int = 40) -> str:
    """Last N lines of command output."""
    return "\n".join(text.strip().splitlines()[-lines:])
