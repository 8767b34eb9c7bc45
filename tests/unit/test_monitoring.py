"""
Unit tests for openshift_mcp/tools/monitoring.py — the cluster client is mocked.
"""

from __future__ import annotations

import pytest

from openshift_mcp.errors import ErrorKind, ExecutionError
from openshift_mcp.tools.monitoring import (
    handle_cluster_health,
    handle_monitor_deployments,
    handle_node_conditions,
    handle_performance_metrics,
    handle_pod_disruptions,
    handle_resource_issues,
    overall_status,
)
from tests.conftest import NODES, PODS, make_node, make_pod


# ---------------------------------------------------------------------------
# check_cluster_health
# ---------------------------------------------------------------------------

@pytest.mark.parametrize(
    "issues,nodes,pods,expected",
    [
        (0, 0, 0, "healthy"),
        (3, 91, 96, "warning"),
        (3, 90, 96, "critical"),
        (2, 100, 95, "critical"),
        (4, 100, 100, "critical"),
    ],
)
def test_overall_status(issues, nodes, pods, expected):
    assert overall_status(issues, nodes, pods) == expected


async def test_cluster_health_all_good(ctx, cluster):
    cluster.list_nodes.return_value = NODES
    cluster.list_pods.return_value = [make_pod("a"), make_pod("b", phase="Succeeded")]
    report = await handle_cluster_health(ctx, {})
    assert report["status"] == "healthy"
    assert report["issuesFound"] == 0
    assert report["metrics"] == {"nodeHealth": 100.0, "podHealth": 100.0}
    assert "detailedIssues" not in report


async def test_cluster_health_sample_pods(ctx, cluster):
    cluster.list_nodes.return_value = NODES
    cluster.list_pods.return_value = PODS
    report = await handle_cluster_health(ctx, {"detailed": True})
    # app-pending is 10 minutes old, crasher has 10 restarts.
    assert report["issuesFound"] == 2
    assert report["healthyPods"] == 3
    assert report["status"] == "critical"
    assert any("stuck in Pending" in i for i in report["detailedIssues"])
    assert any("has 10 restarts" in i for i in report["detailedIssues"])


async def test_cluster_health_warning_boundary(ctx, cluster):
    cluster.list_nodes.return_value = [make_node(f"n{i}") for i in range(19)] + [make_node("down", ready=False)]
    cluster.list_pods.return_value = [make_pod(f"p{i}") for i in range(24)] + [make_pod("bad", phase="Failed")]
    report = await handle_cluster_health(ctx, {"detailed": True})
    assert report["metrics"] == {"nodeHealth": 95.0, "podHealth": 96.0}
    assert report["issuesFound"] == 2
    assert report["status"] == "warning"


async def test_cluster_health_pod_health_at_threshold_is_critical(ctx, cluster):
    cluster.list_nodes.return_value = NODES
    cluster.list_pods.return_value = [make_pod(f"p{i}") for i in range(19)] + [make_pod("bad", phase="Failed")]
    report = await handle_cluster_health(ctx, {})
    assert report["issuesFound"] == 1
    assert report["status"] == "critical"


async def test_cluster_health_young_pending_pod_is_fine(ctx, cluster):
    cluster.list_nodes.return_value = NODES
    cluster.list_pods.return_value = [make_pod("new", phase="Pending", created="2026-03-01T11:58:00Z")]
    report = await handle_cluster_health(ctx, {})
    assert report["issuesFound"] == 0


async def test_cluster_health_reports_node_conditions(ctx, cluster):
    pressure = {"type": "MemoryPressure", "status": "True", "message": "low memory"}
    cluster.list_nodes.return_value = [make_node("n0", conditions=[pressure])]
    cluster.list_pods.return_value = []
    report = await handle_cluster_health(ctx, {"detailed": True})
    assert report["detailedIssues"] == ["Node n0: MemoryPressure - low memory"]
    assert report["metrics"]["podHealth"] == 0


# ---------------------------------------------------------------------------
# get_performance_metrics
# ---------------------------------------------------------------------------

TOP_NODES = "worker-0 250m 12% 1024Mi 30%\nworker-1 1 50% 2Gi 60%\n"
TOP_PODS = "default app-abc 5m 20Mi\nopenshift-monitoring crasher 10m 64Mi\nother ghost 1m 1Mi\n"


async def test_performance_metrics(ctx, cluster):
    cluster.top_nodes.return_value = TOP_NODES
    cluster.list_nodes.return_value = NODES
    cluster.top_pods.return_value = TOP_PODS
    cluster.list_pods.return_value = PODS

    metrics = await handle_performance_metrics(ctx, {"timeRange": "24h"})
    assert metrics["timeRange"] == "24h"
    assert metrics["nodes"][0] == {
        "name": "worker-0",
        "cpu": 0.25,
        "memory": 1024 ** 3,
        "cpuPercent": "12%",
        "memoryPercent": "30%",
        "status": "True",
    }
    assert [p["name"] for p in metrics["pods"]] == ["app-abc", "crasher"]
    assert metrics["pods"][0]["age"] == "1h0m"
    assert metrics["pods"][1]["restarts"] == 10


async def test_performance_metrics_namespaced(ctx, cluster):
    cluster.top_nodes.return_value = ""
    cluster.list_nodes.return_value = []
    cluster.top_pods.return_value = "app-abc 5m 20Mi\n"
    cluster.list_pods.return_value = [make_pod("app-abc")]

    metrics = await handle_performance_metrics(ctx, {"namespace": "default"})
    cluster.top_pods.assert_awaited_once_with("default")
    assert metrics["pods"][0]["namespace"] == "default"


async def test_performance_metrics_without_metrics_server(ctx, cluster):
    cluster.top_nodes.side_effect = ExecutionError(ErrorKind.NON_ZERO_EXIT, "Metrics API not available")
    cluster.list_nodes.return_value = NODES
    cluster.top_pods.return_value = ""
    cluster.list_pods.return_value = []

    metrics = await handle_performance_metrics(ctx, {})
    assert metrics["nodes"] == [{"error": "Metrics unavailable - check metrics-server deployment"}]
    assert metrics["pods"] == []


# ---------------------------------------------------------------------------
# detect_resource_issues
# ---------------------------------------------------------------------------

def _pod_with_resources(name: str, cpu: tuple[str, str], memory: tuple[str, str]) -> dict:
    pod = make_pod(name)
    pod["spec"] = {
        "containers": [
            {
                "name": "main",
                "resources": {
                    "requests": {"cpu": cpu[0], "memory": memory[0]},
                    "limits": {"cpu": cpu[1], "memory": memory[1]},
                },
            }
        ]
    }
    return pod


async def test_resource_issues_default_thresholds(ctx, cluster):
    cluster.list_pods.return_value = [
        _pod_with_resources("tight", ("450m", "500m"), ("100Mi", "512Mi")),
        _pod_with_resources("roomy", ("100m", "1"), ("500Mi", "512Mi")),
        make_pod("crasher", restarts=10),
        make_pod("no-resources"),
    ]
    issues = await handle_resource_issues(ctx, {})
    assert [p["pod"] for p in issues["highCpuPods"]] == ["tight"]
    assert issues["highCpuPods"][0]["cpuRequestPercent"] == pytest.approx(90)
    assert [p["pod"] for p in issues["highMemoryPods"]] == ["roomy"]
    assert [p["name"] for p in issues["frequentRestartPods"]] == ["crasher"]
    assert issues["resourceQuotaIssues"] == []


async def test_resource_issues_custom_thresholds(ctx, cluster):
    cluster.list_pods.return_value = [
        _pod_with_resources("tight", ("450m", "500m"), ("100Mi", "512Mi")),
        make_pod("crasher", restarts=10),
    ]
    issues = await handle_resource_issues(ctx, {"thresholds": {"cpu": 95, "restarts": 20}})
    assert issues["highCpuPods"] == []
    assert issues["frequentRestartPods"] == []


# ---------------------------------------------------------------------------
# analyze_pod_disruptions
# ---------------------------------------------------------------------------

def _event(reason: str, message: str, ts: str | None, pod: str = "web-1") -> dict:
    event = {"reason": reason, "message": message, "involvedObject": {"name": pod, "namespace": "apps"}}
    if ts:
        event["firstTimestamp"] = ts
    return event


async def test_pod_disruptions(ctx, cluster):
    cluster.list_events.return_value = [
        _event("Evicted", "The node was low on resource: memory.", "2026-03-01T11:00:00Z"),
        _event("OOMKilling", "Memory cgroup out of memory", "2026-03-01T10:00:00Z"),
        _event("Started", "Started container web", "2026-03-01T09:00:00Z"),
        _event("Killing", "Stopping container web", "2026-02-27T09:00:00Z"),
        _event("Evicted", "no timestamp", None),
        _event("Pulled", "Successfully pulled image", "2026-03-01T11:30:00Z"),
    ]
    result = await handle_pod_disruptions(ctx, {"hours": 24})
    assert result["summary"] == {"totalRestarts": 1, "totalEvictions": 1, "totalOOMKills": 1}
    assert result["recentRestarts"][0]["container"] == "web"
    assert result["evictions"][0]["reason"] == "Evicted"
    assert result["oomKills"][0]["pod"] == "web-1"


async def test_pod_disruptions_event_time_fallback(ctx, cluster):
    event = _event("OOMKilling", "oom", None)
    event["eventTime"] = "2026-03-01T11:59:00.000000Z"
    cluster.list_events.return_value = [event]
    result = await handle_pod_disruptions(ctx, {"namespace": "apps", "hours": 1})
    cluster.list_events.assert_awaited_once_with("apps")
    assert result["summary"]["totalOOMKills"] == 1


# ---------------------------------------------------------------------------
# check_node_conditions
# ---------------------------------------------------------------------------

async def test_node_conditions(ctx, cluster):
    cluster.list_nodes.return_value = [
        make_node("ok"),
        make_node("down", ready=False),
        make_node("pressure", conditions=[{"type": "DiskPressure", "status": "True", "reason": "r", "message": "m"}]),
        make_node("pid", conditions=[{"type": "PIDPressure", "status": "True"}]),
        make_node("cordoned", taints=[{"key": "node.kubernetes.io/unschedulable", "effect": "NoSchedule"}]),
    ]
    result = await handle_node_conditions(ctx, {})
    assert result["totalNodes"] == 5
    by_name = {d["name"]: d for d in result["details"]}
    assert set(by_name) == {"down", "pressure", "pid", "cordoned"}
    assert by_name["down"]["conditions"][0]["severity"] == "critical"
    assert by_name["pressure"]["conditions"][0]["severity"] == "critical"
    assert by_name["pid"]["conditions"][0]["severity"] == "warning"
    assert by_name["cordoned"]["conditions"] == []


# ---------------------------------------------------------------------------
# monitor_deployments
# ---------------------------------------------------------------------------

def _deployment(name: str, desired: int, ready: int, conditions=()) -> dict:
    return {
        "metadata": {"name": name, "namespace": "apps"},
        "spec": {"replicas": desired},
        "status": {
            "readyReplicas": ready,
            "availableReplicas": ready,
            "updatedReplicas": ready,
            "conditions": list(conditions),
        },
    }


async def test_monitor_deployments(ctx, cluster):
    cluster.list_deployments.return_value = [
        _deployment("good", 2, 2, [{"type": "Available", "status": "True"}]),
        _deployment("short", 3, 1, [{"type": "Available", "status": "False", "message": "min not met"}]),
        _deployment("scaled-down", 0, 0),
    ]
    result = await handle_monitor_deployments(ctx, {})
    assert result["totalDeployments"] == 3
    assert result["deploymentsWithIssues"] == 1
    detail = result["details"][0]
    assert detail["name"] == "short"
    assert detail["issues"] == [
        "Only 1/3 replicas ready",
        "Only 1/3 replicas available",
        "Available: min not met",
    ]
