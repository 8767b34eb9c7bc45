"""
Integration test fixtures — requires a reachable cluster in the current kubeconfig context.

Node diagnostics additionally need the ``oc`` client and an OpenShift cluster.
"""

from __future__ import annotations

import shutil
import subprocess

import pytest

from openshift_mcp.config import load_settings
from openshift_mcp.context import ServerContext


def _cluster_reachable() -> bool:
    try:
        result = subprocess.run(
            ["kubectl", "cluster-info"],
            capture_output=True,
            timeout=5,
        )
        return result.returncode == 0
    except (OSError, subprocess.SubprocessError):
        return False


def _is_openshift() -> bool:
    if shutil.which("oc") is None:
        return False
    try:
        result = subprocess.run(
            ["kubectl", "api-resources", "--api-group=config.openshift.io", "--no-headers"],
            capture_output=True,
            timeout=10,
        )
        return result.returncode == 0 and bool(result.stdout.strip())
    except (OSError, subprocess.SubprocessError):
        return False


CLUSTER_REACHABLE = _cluster_reachable()

skip_no_cluster = pytest.mark.skipif(
    not CLUSTER_REACHABLE,
    reason="cluster not reachable — skipping integration tests",
)

skip_no_openshift = pytest.mark.skipif(
    not (CLUSTER_REACHABLE and _is_openshift()),
    reason="oc client or OpenShift cluster not available — skipping node diagnostics",
)


@pytest.fixture
def live_ctx() -> ServerContext:
    return ServerContext.from_settings(load_settings())
