"""
Node-level diagnostic tools (read-only).

Every probe runs on the node host through ``oc debug node/<name> -- chroot
/host ...``, routed through the bastion when one is configured. Nodes are
probed concurrently; a node that cannot be reached is reported as
inaccessible and the remaining nodes are still analyzed.

Tools:
  check_kubelet_status            — kubelet unit state and recent journal errors
  check_crio_status               — CRI-O unit state and recent journal errors
  analyze_journalctl_pod_errors   — classify journal errors by severity and category
"""

from __future__ import annotations

import asyncio
import math
import re
import sys

from mcp.types import Tool, ToolAnnotations

from openshift_mcp.classifier import (
    DEFAULT_ERROR_TYPES,
    classify_lines,
    matching_lines,
    scan_service_log,
    summarize,
)
from openshift_mcp.errors import ErrorKind, ExecutionError, NotFoundError, ToolFailure
from openshift_mcp.manifests import (
    journal_command,
    service_status_command,
    validate_node_name,
    validate_unit,
)

SERVICE_LOG_LINES = 50
JOURNAL_SCAN_LINES = 5000
JOURNAL_KEEP_LINES = 50

_READ_ONLY = ToolAnnotations(readOnlyHint=True, destructiveHint=False, idempotentHint=True, openWorldHint=True)

_HOURS_BACK = {
    "type": "number",
    "description": "Number of hours to look back in the journal.",
    "minimum": 0,
    "default": 24,
}


DIAGNOSTIC_TOOLS: list[Tool] = [
    Tool(
        name="check_kubelet_status",
        description="Check the kubelet service state and recent kubelet log errors on every node.",
        inputSchema={
            "type": "object",
            "properties": {
                "hoursBack": _HOURS_BACK,
                "includeSystemErrors": {
                    "type": "boolean",
                    "description": "Also scan the node journal for systemd, kernel and OOM messages.",
                    "default": False,
                },
            },
            "additionalProperties": False,
        },
        annotations=_READ_ONLY,
    ),
    Tool(
        name="check_crio_status",
        description="Check the CRI-O container runtime state and recent CRI-O log errors on every node.",
        inputSchema={
            "type": "object",
            "properties": {
                "hoursBack": _HOURS_BACK,
                "includeContainerErrors": {
                    "type": "boolean",
                    "description": "Also scan the node journal for container, pod and image errors.",
                    "default": True,
                },
            },
            "additionalProperties": False,
        },
        annotations=_READ_ONLY,
    ),
    Tool(
        name="analyze_journalctl_pod_errors",
        description=(
            "Analyze node journal logs for pod-related errors and system issues, classified by "
            "severity and category with recommendations."
        ),
        inputSchema={
            "type": "object",
            "properties": {
                "pod": {"type": "string", "description": "Only keep lines mentioning this pod (optional)."},
                "hoursBack": _HOURS_BACK,
                "service": {
                    "type": "string",
                    "description": "Restrict the journal to one systemd unit, e.g. kubelet or crio (optional).",
                },
                "errorTypes": {
                    "type": "array",
                    "description": "Keywords that mark a line as an error, e.g. ['error', 'fail', 'warn'].",
                    "items": {"type": "string"},
                    "default": list(DEFAULT_ERROR_TYPES),
                },
                "node": {"type": "string", "description": "Only scan this node (optional, all nodes by default)."},
            },
            "additionalProperties": False,
        },
        annotations=_READ_ONLY,
    ),
]


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def _hours(args: dict) -> int:
    return max(1, math.ceil(args.get("hoursBack", 24)))


async def _node_names(ctx) -> list[str]:
    nodes = await ctx.cluster.list_nodes()
    names = [(n.get("metadata") or {}).get("name") for n in nodes]
    names = [n for n in names if n]
    if not names:
        raise NotFoundError("No nodes found in cluster")
    return names


async def _unit_status(ctx, node: str, unit: str) -> str:
    """``systemctl is-active`` exits non-zero for inactive units, so only a silent failure is an error."""
    result = await ctx.cluster.node_exec(node, service_status_command(unit), check=False)
    lines = result.stdout.strip().splitlines()
    if lines:
        return lines[-1].strip()
    if result.exit_code != 0:
        raise ExecutionError(
            ErrorKind.NON_ZERO_EXIT,
            result.stderr or f"status probe on {node} exited with code {result.exit_code}",
            raw=result.stderr,
            exit_code=result.exit_code,
        )
    return "unknown"


async def _extra_scan(ctx, node: str, hours: int, lines: int, keep) -> list[dict]:
    """Best-effort journal scan; a failure is logged, never fatal for the node."""
    try:
        result = await ctx.cluster.node_exec(node, journal_command(hours, lines=lines))
    except ToolFailure as e:
        print(f"WARNING: extra journal scan failed on node {node}: {e}", file=sys.stderr)
        return []
    return [{"node": node, "message": line.strip()} for line in result.stdout.splitlines() if keep(line)]


_SYSTEM_RE = re.compile(r"systemd|kernel|oom", re.IGNORECASE)
_CONTAINER_RE = re.compile(r"container|pod|image", re.IGNORECASE)
_FAILURE_RE = re.compile(r"error|failed", re.IGNORECASE)


def _is_system_error(line: str) -> bool:
    return bool(line.strip() and _SYSTEM_RE.search(line))


def _is_container_error(line: str) -> bool:
    return bool(line.strip() and _CONTAINER_RE.search(line) and _FAILURE_RE.search(line))


async def _service_report(ctx, args: dict, unit: str, label: str, extra_flag: str, extra_key: str, extra_lines: int, keep) -> dict:
    hours = _hours(args)
    include_extra = bool(args.get(extra_flag))
    nodes = await _node_names(ctx)

    async def probe(node: str):
        status = await _unit_status(ctx, node, unit)
        logs = await ctx.cluster.node_exec(node, journal_command(hours, unit=unit, lines=SERVICE_LOG_LINES))
        extra = await _extra_scan(ctx, node, hours, extra_lines, keep) if include_extra else []
        return status, scan_service_log(logs.stdout, node), extra

    results = await asyncio.gather(*(probe(n) for n in nodes), return_exceptions=True)

    status: dict[str, str] = {}
    issues: list[dict] = []
    extras: list[dict] = []
    inaccessible: list[dict] = []
    for node, outcome in zip(nodes, results):
        if isinstance(outcome, Exception):
            print(f"WARNING: cannot access {label} on node {node}: {outcome}", file=sys.stderr)
            status[node] = "inaccessible"
            inaccessible.append({"node": node, "error": str(outcome)})
            issues.append({
                "node": node,
                "timestamp": ctx.now().isoformat(),
                "level": "error",
                "message": f"Cannot access {label} service on node {node}: {outcome}",
            })
            continue
        if isinstance(outcome, BaseException):
            raise outcome
        status[node], found, extra = outcome
        issues.extend(found)
        extras.extend(extra)

    count_key = "systemErrors" if extra_key == "systemIssues" else "containerErrors"
    return {
        "nodesChecked": len(nodes),
        "status": status,
        "logsAnalyzed": len(issues),
        count_key: len(extras) if include_extra else "not_requested",
        "recentIssues": issues[:10],
        extra_key: extras[:5],
        "inaccessibleNodes": inaccessible,
    }


# ---------------------------------------------------------------------------
# Handlers
# ---------------------------------------------------------------------------

async def handle_kubelet_status(ctx, args: dict) -> dict:
    return await _service_report(
        ctx, args, "kubelet.service", "kubelet",
        "includeSystemErrors", "systemIssues", 20, _is_system_error,
    )


async def handle_crio_status(ctx, args: dict) -> dict:
    return await _service_report(
        ctx, args, "crio.service", "CRI-O",
        "includeContainerErrors", "containerIssues", 30, _is_container_error,
    )


async def handle_journal_errors(ctx, args: dict) -> dict:
    hours = _hours(args)
    pod = args.get("pod") or None
    service = validate_unit(args["service"]) if args.get("service") else None
    error_types = [t for t in args.get("errorTypes") or DEFAULT_ERROR_TYPES if t]
    nodes = [validate_node_name(args["node"])] if args.get("node") else await _node_names(ctx)
    command = journal_command(hours, unit=service, lines=JOURNAL_SCAN_LINES)

    async def scan(node: str) -> list[str]:
        result = await ctx.cluster.node_exec(node, command)
        return matching_lines(result.stdout, pod=pod, error_types=error_types)[-JOURNAL_KEEP_LINES:]

    results = await asyncio.gather(*(scan(n) for n in nodes), return_exceptions=True)

    selected: list[str] = []
    analyzed, inaccessible = [], []
    for node, outcome in zip(nodes, results):
        if isinstance(outcome, Exception):
            print(f"WARNING: cannot read journal on node {node}: {outcome}", file=sys.stderr)
            inaccessible.append({"node": node, "error": str(outcome)})
            continue
        if isinstance(outcome, BaseException):
            raise outcome
        analyzed.append(node)
        selected.extend(outcome)

    entries = classify_lines("\n".join(selected), pod=pod, service=service, error_types=error_types)
    return {
        **summarize(entries),
        "pod": pod or "all",
        "service": service or "all",
        "timeRange": f"last {hours} hours",
        "nodesAnalyzed": analyzed,
        "inaccessibleNodes": inaccessible,
    }


DIAGNOSTIC_HANDLERS = {
    "check_kubelet_status": handle_kubelet_status,
    "check_crio_status": handle_crio_status,
    "analyze_journalctl_pod_errors": handle_journal_errors,
}
