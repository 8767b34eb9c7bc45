"""
Async command executor.

Uses asyncio.create_subprocess_exec — no local shell involved. Callers pass
argument vectors; in bastion mode the vector is quoted token by token with
shlex before it is handed to the remote shell, so no caller-supplied value is
ever interpreted by a shell unquoted.

Safety features:
  - Local vs bastion routing decided once from the ExecutionTarget
  - Per-call timeout; timed-out and cancelled processes are killed and reaped
  - Remote commands wrapped in `timeout` so the bastion reaps them on its own
  - Output capped per stream while reading
  - Concurrency semaphore to limit parallel subprocess count
  - Enriched error messages for common failure modes
"""

from __future__ import annotations

import asyncio
import math
import os
import shlex
from typing import NamedTuple, Sequence

from openshift_mcp.config import AuthMethod, ExecutionMode, ExecutionTarget
from openshift_mcp.errors import ErrorKind, ExecutionError

_READ_CHUNK = 64 * 1024
SSH_CONNECTION_EXIT_CODE = 255

_SSH_OPTIONS = [
    "-o", "StrictHostKeyChecking=no",
    "-o", "UserKnownHostsFile=/dev/null",
    "-o", "ServerAliveInterval=60",
    "-o", "ServerAliveCountMax=3",
    "-o", "LogLevel=ERROR",
]

# ---------------------------------------------------------------------------
# Error enrichment
# ---------------------------------------------------------------------------

_ERROR_HINTS = {
    "Unable to connect to the server": (
        "Cannot reach the Kubernetes API server. Check that the cluster is running, "
        "the kubeconfig is correct, and any VPN or proxy is up."
    ),
    "error: You must be logged in": (
        "Authentication failed. The kubeconfig credentials may have expired."
    ),
    "the server has asked for the client to provide credentials": (
        "Cluster rejected credentials. Token may be expired."
    ),
    "was refused": (
        "Connection refused. The cluster or bastion may be down or the endpoint is wrong."
    ),
    "Permission denied (publickey": (
        "The bastion rejected the SSH key. Check MCP_SSH_KEY and MCP_BASTION_USER."
    ),
    "Could not resolve hostname": (
        "The bastion host name does not resolve. Check MCP_BASTION_HOST."
    ),
}

_CONNECTION_PATTERNS = (
    "Unable to connect to the server",
    "was refused",
    "Could not resolve hostname",
    "Connection timed out",
    "No route to host",
)


def _enrich_error(raw_stderr: str) -> str:
    """Prepend an actionable hint to common kubectl and ssh errors."""
    for pattern, hint in _ERROR_HINTS.items():
        if pattern in raw_stderr:
            return f"{hint}\n\nstderr: {raw_stderr}"
    return raw_stderr


class ExecResult(NamedTuple):
    stdout: str
    stderr: str
    exit_code: int
    truncated: bool = False


# ---------------------------------------------------------------------------
# Executor
# ---------------------------------------------------------------------------

class CommandExecutor:
    """Runs argument vectors locally or through the configured bastion."""

    def __init__(self, target: ExecutionTarget, max_concurrent: int = 10):
        self.target = target
        self._max_concurrent = max_concurrent
        self._semaphore: asyncio.Semaphore | None = None

    def _get_semaphore(self) -> asyncio.Semaphore:
        if self._semaphore is None:
            self._semaphore = asyncio.Semaphore(self._max_concurrent)
        return self._semaphore

    # -- command composition ------------------------------------------------

    def build_invocation(
        self, argv: Sequence[str], timeout: float
    ) -> tuple[list[str], dict[str, str] | None]:
        """Return the local argv and environment that realize ``argv`` on the target."""
        target = self.target
        if target.mode is ExecutionMode.LOCAL:
            env = None
            if target.kubeconfig_path:
                env = {**os.environ, "KUBECONFIG": target.kubeconfig_path}
            return list(argv), env

        remote: list[str] = ["timeout", f"{math.ceil(timeout)}s"]
        if target.kubeconfig_path:
            remote += ["env", f"KUBECONFIG={target.kubeconfig_path}"]
        remote += list(argv)
        destination = f"{target.bastion_user}@{target.bastion_host}"

        if target.auth_method is AuthMethod.PASSWORD:
            local = ["sshpass", "-e", "ssh", *_SSH_OPTIONS, destination, shlex.join(remote)]
            return local, {**os.environ, "SSHPASS": target.credential or ""}

        local = ["ssh"]
        if target.credential:
            local += ["-i", target.credential]
        local += [*_SSH_OPTIONS, "-o", "BatchMode=yes", destination, shlex.join(remote)]
        return local, None

    # -- execution ------------------------------------------------------------

    async def run(
        self,
        argv: Sequence[str],
        *,
        stdin: str | None = None,
        timeout: float | None = None,
        max_output_bytes: int | None = None,
        check: bool = True,
    ) -> ExecResult:
        """Run ``argv`` and return its output.

        Raises ExecutionError with kind ``timeout`` when the deadline passes,
        ``connection_failure`` when the binary is missing or the bastion or API
        server cannot be reached, and ``non_zero_exit`` for any other failure
        (unless ``check`` is false).
        """
        timeout = timeout or self.target.timeout
        cap = max_output_bytes or self.target.max_output_bytes
        local_argv, env = self.build_invocation(argv, timeout)
        label = " ".join(argv[:3])

        async with self._get_semaphore():
            try:
                proc = await asyncio.create_subprocess_exec(
                    *local_argv,
                    stdin=asyncio.subprocess.PIPE if stdin is not None else asyncio.subprocess.DEVNULL,
                    stdout=asyncio.subprocess.PIPE,
                    stderr=asyncio.subprocess.PIPE,
                    env=env,
                )
            except FileNotFoundError:
                raise ExecutionError(
                    ErrorKind.CONNECTION_FAILURE,
                    f"{local_argv[0]} not found on PATH. Install it and try again.",
                )
            except OSError as e:
                raise ExecutionError(
                    ErrorKind.CONNECTION_FAILURE,
                    f"Cannot start {local_argv[0]}: {e.strerror or e}",
                )

            try:
                stdout, truncated, stderr = await asyncio.wait_for(
                    _communicate(proc, stdin, cap), timeout=timeout
                )
            except asyncio.TimeoutError:
                await _terminate(proc)
                raise ExecutionError(
                    ErrorKind.TIMEOUT, f"Command timed out after {timeout:g}s: {label}"
                )
            except asyncio.CancelledError:
                await _terminate(proc)
                raise

        out = stdout.decode(errors="replace")
        if truncated:
            out += f"\n[... output truncated at {cap} bytes ...]"
        err = stderr.decode(errors="replace").strip()
        code = proc.returncode if proc.returncode is not None else -1

        if code != 0 and check:
            raise self._failure(code, err, out, label)
        return ExecResult(out.strip(), err, code, truncated)

    def _failure(self, code: int, err: str, out: str, label: str) -> ExecutionError:
        bastion = self.target.mode is ExecutionMode.BASTION
        if (bastion and code == SSH_CONNECTION_EXIT_CODE) or any(
            p in err for p in _CONNECTION_PATTERNS
        ):
            kind = ErrorKind.CONNECTION_FAILURE
        else:
            kind = ErrorKind.NON_ZERO_EXIT
        message = _enrich_error(err) if err else f"{label} exited with code {code}"
        return ExecutionError(kind, message, raw=err, exit_code=code, stdout=out)


async def _read_capped(stream, limit: int) -> tuple[bytes, bool]:
    """Read a stream to EOF, keeping at most ``limit`` bytes."""
    if stream is None:
        return b"", False
    chunks: list[bytes] = []
    size = 0
    truncated = False
    while True:
        chunk = await stream.read(_READ_CHUNK)
        if not chunk:
            break
        if size < limit:
            kept = chunk[: limit - size]
            chunks.append(kept)
            size += len(kept)
            truncated = truncated or len(kept) < len(chunk)
        else:
            truncated = True
    return b"".join(chunks), truncated


async def _feed(proc, data: str | None) -> None:
    if data is None or proc.stdin is None:
        return
    try:
        proc.stdin.write(data.encode())
        await proc.stdin.drain()
    except (BrokenPipeError, ConnectionResetError):
        # Child exited before reading everything; its exit code tells the story.
        pass
    finally:
        proc.stdin.close()


async def _communicate(proc, stdin: str | None, cap: int) -> tuple[bytes, bool, bytes]:
    _, (stdout, truncated), (stderr, _) = await asyncio.gather(
        _feed(proc, stdin),
        _read_capped(proc.stdout, cap),
        _read_capped(proc.stderr, cap),
    )
    await proc.wait()
    return stdout, truncated, stderr


async def _terminate(proc) -> None:
    if proc.returncode is not None:
        return
    try:
        proc.kill()
    except ProcessLookupError:
        return
    await proc.wait()
