"""
Log and event classification.

Turns raw journal text into structured findings: each line gets a timestamp,
error type, service, pod, fault category and severity, and the whole batch is
summarized into counts, pattern totals and recommendations.
"""

from __future__ import annotations

import re
from collections import Counter
from dataclasses import asdict, dataclass
from typing import Iterable, Sequence

DEFAULT_ERROR_TYPES = ("error", "fail", "warn")
DEFAULT_ENTRY_LIMIT = 20

_TIMESTAMP_RE = re.compile(r"^(\w{3}\s+\d{1,2}\s+\d{2}:\d{2}:\d{2})")
_POD_RE = re.compile(r'pod[/\s]+"?([^"\s]+)"?', re.IGNORECASE)

_NOISE = ("Starting pod/", "Removing debug pod")

# Later matches win: a line mentioning both kubelet and crio is attributed to crio.
_SERVICES = ("kubelet", "crio", "systemd")

_CATEGORIES = (
    ("container_cleanup", lambda line: "ContainerStatus from runtime service failed" in line),
    ("container_deletion", lambda line: "DeleteContainer returned error" in line),
    ("cadvisor_watch", lambda line: "Failed to process watch event" in line),
    ("container_not_found", lambda line: "container with ID" in line and "not found" in line),
    (
        "resource_pressure",
        lambda line: any(p in line for p in ("OutOfDisk", "MemoryPressure", "DiskPressure")),
    ),
)

CRITICAL_PATTERNS = (
    "OutOfDisk", "MemoryPressure", "DiskPressure", "resource_pressure",
    "failed to start", "panic", "fatal", "oom", "killed",
)
WARNING_PATTERNS = (
    "container_cleanup", "container_deletion", "cadvisor_watch",
    "container_not_found", "DeleteContainer", "ContainerStatus",
)

SEVERITY_RANK = {"critical": 3, "warning": 2, "info": 1}


@dataclass(frozen=True)
class ClassifiedLogEntry:
    timestamp: str
    errorType: str
    service: str
    pod: str | None
    category: str
    message: str
    severity: str

    def to_dict(self) -> dict:
        return asdict(self)


def severity_for(category: str, message: str) -> str:
    lowered = message.lower()
    for pattern in CRITICAL_PATTERNS:
        if pattern in category or pattern.lower() in lowered:
            return "critical"
    for pattern in WARNING_PATTERNS:
        if pattern in category or pattern.lower() in lowered:
            return "warning"
    return "info"


def _category(line: str) -> str:
    for name, matches in _CATEGORIES:
        if matches(line):
            return name
    return "general"


def extract_timestamp(line: str) -> str:
    match = _TIMESTAMP_RE.match(line)
    return match.group(1) if match else "unknown"


def classify_line(
    line: str,
    *,
    error_types: Sequence[str] = DEFAULT_ERROR_TYPES,
    pod: str | None = None,
    service: str | None = None,
) -> ClassifiedLogEntry:
    lowered = line.lower()
    error_type = next((t for t in error_types if t.lower() in lowered), "unknown")

    service_name = service or "unknown"
    for known in _SERVICES:
        if known in line:
            service_name = known

    pod_name = pod
    pod_match = _POD_RE.search(line)
    if pod_match:
        pod_name = pod_match.group(1)

    category = _category(line)
    idx = line.find(service_name)
    message = line[idx + len(service_name):].strip() if idx >= 0 else ""

    return ClassifiedLogEntry(
        timestamp=extract_timestamp(line),
        errorType=error_type,
        service=service_name,
        pod=pod_name,
        category=category,
        message=message or line,
        severity=severity_for(category, line),
    )


def matching_lines(
    raw: str,
    *,
    pod: str | None = None,
    error_types: Sequence[str] = DEFAULT_ERROR_TYPES,
) -> list[str]:
    """Lines of ``raw`` worth classifying.

    Lines that match none of ``error_types`` (case-insensitive), lines that do
    not mention ``pod`` when one is given, and debug-pod lifecycle noise are
    dropped.
    """
    wanted = [t.lower() for t in error_types if t]
    selected = []
    for line in raw.splitlines():
        line = line.strip()
        if not line or any(n in line for n in _NOISE):
            continue
        lowered = line.lower()
        if wanted and not any(t in lowered for t in wanted):
            continue
        if pod and pod.lower() not in lowered:
            continue
        selected.append(line)
    return selected


def classify_lines(
    raw: str,
    *,
    pod: str | None = None,
    service: str | None = None,
    error_types: Sequence[str] = DEFAULT_ERROR_TYPES,
) -> list[ClassifiedLogEntry]:
    """Classify every relevant line of ``raw``, most severe and most recent first."""
    entries = [
        classify_line(line, error_types=error_types, pod=pod, service=service)
        for line in matching_lines(raw, pod=pod, error_types=error_types)
    ]

    # Two stable passes: timestamp descending, then severity descending.
    entries.sort(key=lambda e: e.timestamp, reverse=True)
    entries.sort(key=lambda e: SEVERITY_RANK[e.severity], reverse=True)
    return entries


def analyze_patterns(entries: Iterable[ClassifiedLogEntry]) -> dict:
    patterns = {
        "containerCleanupRaceConditions": 0,
        "resourcePressureIssues": 0,
        "podStartupFailures": 0,
        "networkIssues": 0,
        "storageIssues": 0,
    }
    for entry in entries:
        msg = entry.message
        if entry.category in ("container_cleanup", "container_deletion"):
            patterns["containerCleanupRaceConditions"] += 1
        elif entry.category == "resource_pressure":
            patterns["resourcePressureIssues"] += 1
        elif "failed to start" in msg or "startup" in msg:
            patterns["podStartupFailures"] += 1
        elif "network" in msg or "dns" in msg:
            patterns["networkIssues"] += 1
        elif "disk" in msg or "volume" in msg:
            patterns["storageIssues"] += 1
    return {"patterns": patterns, "recommendations": recommendations(patterns)}


def recommendations(patterns: dict) -> list[str]:
    recs = []
    if patterns["containerCleanupRaceConditions"] > 10:
        recs.append(
            "High number of container cleanup race conditions detected. This is typically "
            "normal but monitor for performance impact."
        )
    if patterns["resourcePressureIssues"] > 0:
        recs.append(
            "Resource pressure detected. Consider reviewing node resource allocation and "
            "pod resource requests/limits."
        )
    if patterns["podStartupFailures"] > 5:
        recs.append(
            "Multiple pod startup failures detected. Check pod specifications and resource "
            "availability."
        )
    if patterns["networkIssues"] > 0:
        recs.append("Network-related errors detected. Review network configuration and connectivity.")
    if patterns["storageIssues"] > 0:
        recs.append(
            "Storage-related errors detected. Check persistent volume claims and storage capacity."
        )
    if not recs:
        recs.append("No significant issues detected. System appears to be operating normally.")
    return recs


def summarize(entries: Sequence[ClassifiedLogEntry], limit: int = DEFAULT_ENTRY_LIMIT) -> dict:
    """Aggregate counts over every entry; only the first ``limit`` are listed."""
    counts = Counter(f"{e.category}_{e.errorType}" for e in entries)
    if entries:
        by_severity = Counter(e.severity for e in entries)
        top = counts.most_common(1)[0][0]
        summary = (
            f"Found {len(entries)} errors: {by_severity['critical']} critical, "
            f"{by_severity['warning']} warnings, {by_severity['info']} info. Most common: {top}"
        )
    else:
        summary = "No errors found in the specified time range"
    return {
        "summary": summary,
        "totalErrors": len(entries),
        "errorCounts": dict(counts),
        "entries": [e.to_dict() for e in entries[:limit]],
        "patternAnalysis": analyze_patterns(entries),
    }


def classify(
    raw: str,
    *,
    pod: str | None = None,
    service: str | None = None,
    error_types: Sequence[str] = DEFAULT_ERROR_TYPES,
    limit: int = DEFAULT_ENTRY_LIMIT,
) -> dict:
    return summarize(classify_lines(raw, pod=pod, service=service, error_types=error_types), limit)


def scan_service_log(raw: str, node: str) -> list[dict]:
    """Pick error and warning lines out of a unit's journal for one node."""
    findings = []
    for line in raw.splitlines():
        lowered = line.lower()
        if not line.strip():
            continue
        if "error" in lowered or "failed" in lowered:
            level = "error"
        elif "warn" in lowered:
            level = "warning"
        else:
            continue
        findings.append(
            {"node": node, "timestamp": extract_timestamp(line), "level": level, "message": line.strip()}
        )
    return findings
