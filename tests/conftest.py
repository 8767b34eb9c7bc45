"""
Shared fixtures for the test suite.
"""

from __future__ import annotations

from datetime import datetime, timezone
from unittest.mock import AsyncMock, MagicMock

import pytest

from openshift_mcp.cluster import ClusterClient
from openshift_mcp.config import Settings
from openshift_mcp.context import ServerContext
from openshift_mcp.executor import CommandExecutor

NOW = datetime(2026, 3, 1, 12, 0, 0, tzinfo=timezone.utc)


# ---------------------------------------------------------------------------
# Subprocess mock factory
# ---------------------------------------------------------------------------

class FakeStream:
    """Minimal asyncio.StreamReader stand-in."""

    def __init__(self, data: bytes):
        self._data = data

    async def read(self, n: int = -1) -> bytes:
        if n < 0:
            chunk, self._data = self._data, b""
        else:
            chunk, self._data = self._data[:n], self._data[n:]
        return chunk


def make_proc(stdout: bytes = b"", stderr: bytes = b"", returncode: int = 0):
    """Mimics the object returned by asyncio.create_subprocess_exec."""
    proc = MagicMock()
    proc.returncode = returncode
    proc.stdout = FakeStream(stdout)
    proc.stderr = FakeStream(stderr)
    proc.stdin = MagicMock()
    proc.stdin.drain = AsyncMock()
    proc.wait = AsyncMock(return_value=returncode)
    proc.kill = MagicMock()
    return proc


@pytest.fixture
def mock_run(monkeypatch):
    """
    Patches asyncio.create_subprocess_exec with a fake that pops responses
    from a queue. Every call is recorded on ``queue.calls`` as (argv, kwargs, proc).

    Usage:
        mock_run((b"output", b"", 0))
        mock_run((b"out1", b"", 0), (b"out2", b"", 0))  # multiple calls
    """
    responses: list[tuple[bytes, bytes, int]] = []
    calls: list[tuple[tuple, dict, MagicMock]] = []

    async def fake_exec(*args, **kwargs):
        assert responses, f"Unexpected command: {args}"
        stdout, stderr, rc = responses.pop(0)
        proc = make_proc(stdout, stderr, rc)
        calls.append((args, kwargs, proc))
        return proc

    monkeypatch.setattr("asyncio.create_subprocess_exec", fake_exec)

    def queue(*items: tuple[bytes, bytes, int]):
        responses.extend(items)

    queue.calls = calls
    return queue


# ---------------------------------------------------------------------------
# Handler context
# ---------------------------------------------------------------------------

@pytest.fixture
def cluster():
    return AsyncMock(spec=ClusterClient)


@pytest.fixture
def ctx(cluster):
    settings = Settings(poll_initial_interval=0.001, poll_max_interval=0.001)
    return ServerContext(
        settings=settings,
        executor=MagicMock(spec=CommandExecutor),
        cluster=cluster,
        now=lambda: NOW,
    )


# ---------------------------------------------------------------------------
# Sample cluster objects
# ---------------------------------------------------------------------------

def make_node(name: str, ready: bool = True, conditions=(), taints=None) -> dict:
    node = {
        "metadata": {"name": name},
        "status": {
            "conditions": [
                {"type": "Ready", "status": "True" if ready else "False", "reason": "KubeletReady", "message": ""},
                *conditions,
            ],
        },
    }
    if taints:
        node["spec"] = {"taints": taints}
    return node


def make_pod(
    name: str,
    namespace: str = "default",
    phase: str = "Running",
    restarts: int = 0,
    created: str = "2026-03-01T11:00:00Z",
    node: str | None = None,
) -> dict:
    pod = {
        "metadata": {"name": name, "namespace": namespace, "creationTimestamp": created},
        "status": {
            "phase": phase,
            "containerStatuses": [{"name": name, "restartCount": restarts}],
        },
    }
    if node:
        pod["spec"] = {"nodeName": node}
    return pod


NODES = [make_node("worker-0"), make_node("worker-1"), make_node("worker-2")]

PODS = [
    make_pod("app-abc"),
    make_pod("app-done", phase="Succeeded"),
    make_pod("app-pending", phase="Pending", created="2026-03-01T11:50:00Z"),
    make_pod("crasher", namespace="openshift-monitoring", restarts=10),
]

KUBELET_LOG = "\n".join([
    "Mar 01 11:58:01 worker-0 kubelet[2211]: I0301 reconciler.go:224] attached volume",
    "Mar 01 11:58:02 worker-0 kubelet[2211]: E0301 pod_workers.go:1298] Error syncing pod, skipping",
    "Mar 01 11:58:03 worker-0 kubelet[2211]: W0301 watcher.go:93] warning: watch closed",
    "Mar 01 11:58:04 worker-0 kubelet[2211]: E0301 kuberuntime.go:118] failed to pull image",
])

JOURNAL_LOG = "\n".join([
    "Mar 01 10:00:00 worker-0 kubelet[2211]: E0301 ContainerStatus from runtime service failed: rpc error: container with ID abc not found",
    "Mar 01 10:05:00 worker-0 kubelet[2211]: E0301 eviction_manager.go:360] MemoryPressure detected, error evicting pod/web-1",
    "Mar 01 10:06:00 worker-0 crio[1133]: time=x level=warning msg=\"image pull slow\"",
    "Mar 01 10:07:00 worker-0 systemd[1]: Starting pod/debug-node-xyz",
    "Mar 01 10:08:00 worker-0 kubelet[2211]: I0301 status ok",
])
