"""
Run external tools (docker, minikube, eksctl, aws) as child processes.
"""

import asyncio
import logging
import shutil
import time
from dataclasses import dataclass
from typing import List, Optional, Iterable

from deployx.src.errors import ValidationError

logger = logging.getLogger(__name__)

@dataclass
class CommandResult:
    args: List[str]
    returncode: int
    stdout: str
    stderr: str
    duration_ms: int

    @property
    def ok(self) -> bool:
        return self.returncode == 0

    def excerpt(self, lines: int = 20) -> str:
        """Last lines of combined output, for stage results and errors."""
        output = "\n".join(part for part in (self.stdout, self.stderr) if part)
        return "\n".join(output.strip().splitlines()[-lines:])

async def run_command(
    args: List[str],
    input: Optional[str] = None,
    timeout: Optional[float] = None,
    cwd: Optional[str] = None,
) -> CommandResult:
    """
    Run a command and capture its output.
    The child is killed if the caller is cancelled or the timeout expires.
    """
    logger.info(f"Running: {' '.join(args)}")
    start_time = time.monotonic()

    try:
        proc = await asyncio.create_subprocess_exec(
            *args,
            stdin=asyncio.subprocess.PIPE if input is not None else None,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
            cwd=cwd,
        )
    except FileNotFoundError as e:
        return CommandResult(args, 127, "", str(e), 0)

    try:
        stdout, stderr = await asyncio.wait_for(
            proc.communicate(input.encode() if input is not None else None),
            timeout=timeout,
        )
    except asyncio.TimeoutError:
        await _kill(proc)
        duration_ms = int((time.monotonic() - start_time) * 1000)
        return CommandResult(args, 124, "", f"Timed out after {timeout}s", duration_ms)
    except asyncio.CancelledError:
        logger.warning(f"Cancelled, killing: {args[0]}")
        await _kill(proc)
        raise

    duration_ms = int((time.monotonic() - start_time) * 1000)
    result = CommandResult(
        args=args,
        returncode=proc.returncode,
        stdout=stdout.decode("utf-8", errors="replace"),
        stderr=stderr.decode("utf-8", errors="replace"),
        duration_ms=duration_ms,
    )
    if not result.ok:
        logger.error(f"{args[0]} exited with {result.returncode}")
    return result

async def _kill(proc: asyncio.subprocess.Process):
    if proc.returncode is None:
        proc.kill()
        await proc.wait()

def ensure_tools(names: Iterable[str]):
    """Fail before any stage runs when a required binary is missing."""
    missing = [name for name in names if shutil.which(name) is None]
    if missing:
        raise ValidationError("tools", f"Required tools not found on PATH: {', '.join(missing)}")
