"""Async subprocess utilities for remote enforcement transports.

Transports shell out to ``ssh`` and ``mco``; running them through asyncio
keeps every in-flight node on the scheduler's event loop without blocking
it.

Example:
    >>> stdout, stderr, code = await run_command("ssh", "root@web01", "puppet agent -t", check=False)
    >>> code == 0
    True
"""

import asyncio
import subprocess
from pathlib import Path


async def run_command(
    *args: str,
    cwd: Path | str | None = None,
    check: bool = True,
    timeout: float | None = None,
    env: dict[str, str] | None = None,
) -> tuple[str, str, int]:
    """Run a command asynchronously without shell interpolation.

    Args:
        *args: Executable followed by its arguments.
        cwd: Working directory, or None for the current one.
        check: Raise CalledProcessError on a non-zero exit code.
        timeout: Seconds to wait before killing the process. None waits
            indefinitely.
        env: Environment for the child process, or None to inherit.

    Returns:
        Tuple of (stdout, stderr, return_code), decoded as UTF-8 with
        replacement for invalid bytes.

    Raises:
        subprocess.CalledProcessError: If check=True and the command exits
            non-zero.
        TimeoutError: If the timeout is exceeded. The process is killed
            before this is raised.
        FileNotFoundError: If the executable is not found.
    """
    process = await asyncio.create_subprocess_exec(
        *args,
        cwd=cwd,
        env=env,
        stdin=asyncio.subprocess.DEVNULL,
        stdout=asyncio.subprocess.PIPE,
        stderr=asyncio.subprocess.PIPE,
    )

    try:
        stdout_bytes, stderr_bytes = await asyncio.wait_for(process.communicate(), timeout=timeout)
    except (TimeoutError, asyncio.CancelledError):
        process.kill()
        await process.wait()
        raise

    stdout = (stdout_bytes or b"").decode("utf-8", errors="replace")
    stderr = (stderr_bytes or b"").decode("utf-8", errors="replace")

    if check and process.returncode != 0:
        raise subprocess.CalledProcessError(process.returncode, args, stdout, stderr)

    return stdout, stderr, process.returncode or 0
