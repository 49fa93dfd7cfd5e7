"""Run a command inside a bound scope.

Reference executor: runs a subprocess with the scope's bound environment
and streams its stdout and stderr through the scope's output maskers as the
bytes arrive. Nothing the process prints reaches the real sinks unmasked.

The chunk size is deliberately small so output that straddles chunk
boundaries is routine rather than exceptional.

Example:
    >>> async with binder.scope(scope, bindings) as bound:
    ...     code = await run_in_scope(bound, "sh", "-c", "curl -u \\"$AUTH\\" ...")
"""

from __future__ import annotations

import asyncio
from pathlib import Path

import structlog

from credbind.masking.masker import OutputMasker
from credbind.scope.binder import BoundScope

log = structlog.get_logger(__name__)

READ_CHUNK_SIZE = 1024


async def _pump(stream: asyncio.StreamReader, masker: OutputMasker) -> None:
    while True:
        chunk = await stream.read(READ_CHUNK_SIZE)
        if not chunk:
            break
        masker.write(chunk)


async def run_in_scope(
    bound: BoundScope,
    *args: str,
    cwd: Path | str | None = None,
    timeout: float | None = None,
) -> int:
    """Run a command with the bound environment and masked output.

    Args:
        bound: Active scope from ``ScopeBinder.scope``
        *args: Command and arguments (no shell interpolation)
        cwd: Working directory, defaults to the scope's workspace
        timeout: Maximum seconds to wait; the process is killed if exceeded

    Returns:
        The process exit code

    Raises:
        TimeoutError: If timeout is exceeded. The process is killed first.
        FileNotFoundError: If the executable is not found.
    """
    if cwd is None:
        cwd = bound.context.workspace

    process = await asyncio.create_subprocess_exec(
        *args,
        cwd=cwd,
        env=bound.build_environment(),
        stdout=asyncio.subprocess.PIPE,
        stderr=asyncio.subprocess.PIPE,
    )
    log.info("scope_command_started", scope_id=bound.context.scope_id, pid=process.pid)

    assert process.stdout is not None and process.stderr is not None
    pumps = asyncio.gather(
        _pump(process.stdout, bound.stdout),
        _pump(process.stderr, bound.stderr),
    )

    try:
        async with asyncio.timeout(timeout):
            await pumps
            returncode = await process.wait()
    except BaseException:
        # Timeout or cancellation: never leave the process running
        if process.returncode is None:
            process.kill()
            await process.wait()
        pumps.cancel()
        raise

    log.info("scope_command_finished", scope_id=bound.context.scope_id, returncode=returncode)
    return returncode
