"""
Cluster monitoring tools (read-only).

Tools:
  check_cluster_health     — node readiness, pod phases, restart counts, overall status
  get_performance_metrics  — kubectl top for nodes and pods, joined with status
  detect_resource_issues   — request/limit ratios and restart counts over thresholds
  analyze_pod_disruptions  — evictions, OOM kills and container starts from events
  check_node_conditions    — nodes with bad conditions or taints
  monitor_deployments      — deployments with missing replicas or failed conditions
"""

from __future__ import annotations

import asyncio
import re
import sys
from datetime import timedelta

from mcp.types import Tool, ToolAnnotations

from openshift_mcp.errors import ToolFailure
from openshift_mcp.formatters import condition_severity, ready_status, total_restarts
from openshift_mcp.manifests import validate_name
from openshift_mcp.quantities import calculate_age, format_age, parse_resource_value, parse_timestamp

PENDING_POD_TIMEOUT = 300
DEFAULT_RESTART_THRESHOLD = 5
DEFAULT_CPU_THRESHOLD = 80
DEFAULT_MEMORY_THRESHOLD = 85

_READ_ONLY = ToolAnnotations(readOnlyHint=True, destructiveHint=False, idempotentHint=True, openWorldHint=True)

_NAMESPACE = {"type": "string", "description": "Namespace to inspect (optional, all namespaces when omitted)."}


MONITORING_TOOLS: list[Tool] = [
    Tool(
        name="check_cluster_health",
        description="Check overall OpenShift cluster health and identify stability issues.",
        inputSchema={
            "type": "object",
            "properties": {
                "detailed": {
                    "type": "boolean",
                    "description": "Include the list of individual issues.",
                    "default": False,
                },
            },
            "additionalProperties": False,
        },
        annotations=_READ_ONLY,
    ),
    Tool(
        name="get_performance_metrics",
        description="Retrieve current CPU and memory usage for nodes and pods (requires metrics-server).",
        inputSchema={
            "type": "object",
            "properties": {
                "namespace": _NAMESPACE,
                "timeRange": {
                    "type": "string",
                    "description": "Time range label echoed in the report (e.g. '1h', '24h').",
                    "default": "1h",
                },
            },
            "additionalProperties": False,
        },
        annotations=_READ_ONLY,
    ),
    Tool(
        name="detect_resource_issues",
        description="Detect pods whose requests sit close to their limits or that restart frequently.",
        inputSchema={
            "type": "object",
            "properties": {
                "thresholds": {
                    "type": "object",
                    "properties": {
                        "cpu": {"type": "number", "minimum": 0, "default": DEFAULT_CPU_THRESHOLD},
                        "memory": {"type": "number", "minimum": 0, "default": DEFAULT_MEMORY_THRESHOLD},
                        "restarts": {"type": "number", "minimum": 0, "default": DEFAULT_RESTART_THRESHOLD},
                    },
                    "additionalProperties": False,
                },
            },
            "additionalProperties": False,
        },
        annotations=_READ_ONLY,
    ),
    Tool(
        name="analyze_pod_disruptions",
        description="Analyze pod evictions, OOM kills and container restarts over a lookback window.",
        inputSchema={
            "type": "object",
            "properties": {
                "namespace": _NAMESPACE,
                "hours": {
                    "type": "number",
                    "description": "Number of hours to look back.",
                    "minimum": 0,
                    "default": 24,
                },
            },
            "additionalProperties": False,
        },
        annotations=_READ_ONLY,
    ),
    Tool(
        name="check_node_conditions",
        description="Check node conditions and taints and list the nodes that have issues.",
        inputSchema={"type": "object", "properties": {}, "additionalProperties": False},
        annotations=_READ_ONLY,
    ),
    Tool(
        name="monitor_deployments",
        description="Monitor deployment status and rollout health.",
        inputSchema={
            "type": "object",
            "properties": {"namespace": _NAMESPACE},
            "additionalProperties": False,
        },
        annotations=_READ_ONLY,
    ),
]


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def overall_status(issue_count: int, node_health: float, pod_health: float) -> str:
    """Issue count first, then the compound health threshold."""
    if issue_count == 0:
        return "healthy"
    if issue_count <= 3 and node_health > 90 and pod_health > 95:
        return "warning"
    return "critical"


def _meta(obj: dict) -> dict:
    return obj.get("metadata") or {}


def _optional_namespace(args: dict) -> str | None:
    ns = args.get("namespace")
    return validate_name(ns, "namespace") if ns else None


# ---------------------------------------------------------------------------
# Handlers
# ---------------------------------------------------------------------------

async def handle_cluster_health(ctx, args: dict) -> dict:
    nodes, pods = await asyncio.gather(ctx.cluster.list_nodes(), ctx.cluster.list_pods())
    now = ctx.now()
    issues: list[str] = []

    healthy_nodes = 0
    for node in nodes:
        name = _meta(node).get("name")
        conditions = (node.get("status") or {}).get("conditions") or []
        if ready_status(node) == "True":
            healthy_nodes += 1
        else:
            issues.append(f"Node {name} is not ready")
        for c in conditions:
            if c.get("type") != "Ready" and c.get("status") == "True":
                issues.append(f"Node {name}: {c.get('type')} - {c.get('message')}")

    healthy_pods = 0
    for pod in pods:
        meta = _meta(pod)
        phase = (pod.get("status") or {}).get("phase")
        if phase in ("Running", "Succeeded"):
            healthy_pods += 1
        elif phase == "Pending":
            if calculate_age(meta.get("creationTimestamp"), now) > PENDING_POD_TIMEOUT:
                issues.append(f"Pod {meta.get('name')} in {meta.get('namespace')} stuck in Pending state")
        elif phase == "Failed":
            issues.append(f"Pod {meta.get('name')} in {meta.get('namespace')} in Failed state")

        for cs in (pod.get("status") or {}).get("containerStatuses") or []:
            restarts = int(cs.get("restartCount") or 0)
            if restarts > DEFAULT_RESTART_THRESHOLD:
                issues.append(f"Container {cs.get('name')} in pod {meta.get('name')} has {restarts} restarts")

    node_health = healthy_nodes / len(nodes) * 100 if nodes else 0
    pod_health = healthy_pods / len(pods) * 100 if pods else 0

    report = {
        "status": overall_status(len(issues), node_health, pod_health),
        "totalNodes": len(nodes),
        "healthyNodes": healthy_nodes,
        "totalPods": len(pods),
        "healthyPods": healthy_pods,
        "issuesFound": len(issues),
        "metrics": {"nodeHealth": round(node_health, 2), "podHealth": round(pod_health, 2)},
    }
    if args.get("detailed"):
        report["detailedIssues"] = issues
    return report


def _parse_top_nodes(output: str, nodes: list[dict]) -> list[dict]:
    status = {_meta(n).get("name"): ready_status(n) for n in nodes}
    rows = []
    for line in output.splitlines():
        parts = line.split()
        if len(parts) < 5:
            continue
        name, cpu, cpu_pct, memory, memory_pct = parts[:5]
        rows.append({
            "name": name,
            "cpu": parse_resource_value(cpu),
            "memory": parse_resource_value(memory),
            "cpuPercent": cpu_pct,
            "memoryPercent": memory_pct,
            "status": status.get(name, "Unknown"),
        })
    return rows


def _parse_top_pods(output: str, pods: list[dict], namespace: str | None, now) -> list[dict]:
    index = {(_meta(p).get("namespace"), _meta(p).get("name")): p for p in pods}
    rows = []
    for line in output.splitlines():
        parts = line.split()
        if namespace:
            if len(parts) < 3:
                continue
            pod_ns, (name, cpu, memory) = namespace, parts[:3]
        else:
            if len(parts) < 4:
                continue
            pod_ns, name, cpu, memory = parts[:4]
        pod = index.get((pod_ns, name))
        if pod is None:
            continue
        rows.append({
            "name": name,
            "namespace": pod_ns,
            "cpu": parse_resource_value(cpu),
            "memory": parse_resource_value(memory),
            "restarts": total_restarts(pod),
            "age": format_age(_meta(pod).get("creationTimestamp"), now),
        })
    return rows


async def handle_performance_metrics(ctx, args: dict) -> dict:
    namespace = _optional_namespace(args)
    now = ctx.now()
    metrics = {"timestamp": now.isoformat(), "timeRange": args.get("timeRange", "1h"), "nodes": [], "pods": []}

    try:
        top, nodes = await asyncio.gather(ctx.cluster.top_nodes(), ctx.cluster.list_nodes())
        metrics["nodes"] = _parse_top_nodes(top, nodes)
    except ToolFailure as e:
        print(f"WARNING: node metrics unavailable: {e}", file=sys.stderr)
        metrics["nodes"] = [{"error": "Metrics unavailable - check metrics-server deployment"}]

    try:
        top, pods = await asyncio.gather(ctx.cluster.top_pods(namespace), ctx.cluster.list_pods(namespace))
        metrics["pods"] = _parse_top_pods(top, pods, namespace, now)
    except ToolFailure as e:
        print(f"WARNING: pod metrics unavailable: {e}", file=sys.stderr)
        metrics["pods"] = [{"error": "Pod metrics unavailable - check metrics-server deployment"}]

    return metrics


async def handle_resource_issues(ctx, args: dict) -> dict:
    thresholds = {
        "cpu": DEFAULT_CPU_THRESHOLD,
        "memory": DEFAULT_MEMORY_THRESHOLD,
        "restarts": DEFAULT_RESTART_THRESHOLD,
        **(args.get("thresholds") or {}),
    }
    issues = {"highCpuPods": [], "highMemoryPods": [], "frequentRestartPods": [], "resourceQuotaIssues": []}

    for pod in await ctx.cluster.list_pods():
        meta = _meta(pod)
        statuses = (pod.get("status") or {}).get("containerStatuses") or []
        restarts = total_restarts(pod)
        if restarts >= thresholds["restarts"]:
            issues["frequentRestartPods"].append({
                "name": meta.get("name"),
                "namespace": meta.get("namespace"),
                "restarts": restarts,
                "containers": [
                    {
                        "name": c.get("name"),
                        "restarts": c.get("restartCount", 0),
                        "reason": ((c.get("lastState") or {}).get("terminated") or {}).get("reason"),
                    }
                    for c in statuses
                ],
            })

        for container in (pod.get("spec") or {}).get("containers") or []:
            resources = container.get("resources") or {}
            requests, limits = resources.get("requests"), resources.get("limits")
            if not requests or not limits:
                continue
            for key, bucket, field in (
                ("cpu", "highCpuPods", "cpuRequestPercent"),
                ("memory", "highMemoryPods", "memoryRequestPercent"),
            ):
                request = parse_resource_value(requests.get(key) or "0")
                limit = parse_resource_value(limits.get(key) or "0")
                if limit > 0 and request / limit * 100 > thresholds[key]:
                    issues[bucket].append({
                        "pod": meta.get("name"),
                        "namespace": meta.get("namespace"),
                        "container": container.get("name"),
                        field: request / limit * 100,
                    })
    return issues


_STARTED_RE = re.compile(r"Started container (.+)")


async def handle_pod_disruptions(ctx, args: dict) -> dict:
    namespace = _optional_namespace(args)
    hours = args.get("hours", 24)
    cutoff = ctx.now() - timedelta(hours=hours)
    result = {
        "hours": hours,
        "recentRestarts": [],
        "evictions": [],
        "oomKills": [],
        "summary": {"totalRestarts": 0, "totalEvictions": 0, "totalOOMKills": 0},
    }

    for event in await ctx.cluster.list_events(namespace):
        when = parse_timestamp(
            event.get("firstTimestamp") or event.get("eventTime") or event.get("lastTimestamp")
        )
        if when is None or when < cutoff:
            continue
        involved = event.get("involvedObject") or {}
        reason = event.get("reason")
        message = event.get("message") or ""
        base = {"pod": involved.get("name"), "namespace": involved.get("namespace")}

        if reason in ("Killing", "Evicted"):
            result["evictions"].append({**base, "reason": reason, "message": message, "time": when.isoformat()})
            result["summary"]["totalEvictions"] += 1
        elif reason == "OOMKilling":
            result["oomKills"].append({**base, "message": message, "time": when.isoformat()})
            result["summary"]["totalOOMKills"] += 1
        elif reason == "Started" and "Started container" in message:
            match = _STARTED_RE.search(message)
            result["recentRestarts"].append({
                **base,
                "container": match.group(1) if match else "unknown",
                "time": when.isoformat(),
            })
            result["summary"]["totalRestarts"] += 1
    return result


async def handle_node_conditions(ctx, args: dict) -> dict:
    nodes = await ctx.cluster.list_nodes()
    details = []
    for node in nodes:
        status = node.get("status") or {}
        info = {
            "name": _meta(node).get("name"),
            "conditions": [],
            "taints": (node.get("spec") or {}).get("taints") or [],
            "allocatable": status.get("allocatable"),
            "capacity": status.get("capacity"),
        }
        for c in status.get("conditions") or []:
            if c.get("type") == "Ready":
                if c.get("status") == "True":
                    continue
                severity = "critical"
            elif c.get("status") == "True":
                severity = condition_severity(c.get("type", ""))
            else:
                continue
            info["conditions"].append({
                "type": c.get("type"),
                "status": c.get("status"),
                "reason": c.get("reason"),
                "message": c.get("message"),
                "severity": severity,
            })
        if info["conditions"] or info["taints"]:
            details.append(info)
    return {"totalNodes": len(nodes), "nodesWithIssues": len(details), "details": details}


async def handle_monitor_deployments(ctx, args: dict) -> dict:
    deployments = await ctx.cluster.list_deployments(_optional_namespace(args))
    flagged = []
    for d in deployments:
        spec, status = d.get("spec") or {}, d.get("status") or {}
        replicas = {
            "desired": spec.get("replicas") or 0,
            "ready": status.get("readyReplicas") or 0,
            "available": status.get("availableReplicas") or 0,
            "updated": status.get("updatedReplicas") or 0,
        }
        conditions = status.get("conditions") or []
        problems = []
        if replicas["ready"] < replicas["desired"]:
            problems.append(f"Only {replicas['ready']}/{replicas['desired']} replicas ready")
        if replicas["available"] < replicas["desired"]:
            problems.append(f"Only {replicas['available']}/{replicas['desired']} replicas available")
        for c in conditions:
            if c.get("status") == "False":
                problems.append(f"{c.get('type')}: {c.get('message')}")
        if problems:
            flagged.append({
                "name": _meta(d).get("name"),
                "namespace": _meta(d).get("namespace"),
                "replicas": replicas,
                "conditions": conditions,
                "issues": problems,
            })
    return {"totalDeployments": len(deployments), "deploymentsWithIssues": len(flagged), "details": flagged}


MONITORING_HANDLERS = {
    "check_cluster_health": handle_cluster_health,
    "get_performance_metrics": handle_performance_metrics,
    "detect_resource_issues": handle_resource_issues,
    "analyze_pod_disruptions": handle_pod_disruptions,
    "check_node_conditions": handle_node_conditions,
    "monitor_deployments": handle_monitor_deployments,
}
