"""Shared output formatting helpers."""

from __future__ import annotations

import json
import re
from typing import Any

from mcp.types import CallToolResult, TextContent

REDACTED = "[REDACTED]"

# Keyword, the rest of the word, then an optional ``: value`` / ``=value``.
_SECRET_RE = re.compile(
    r"(token|password|passwd|secret)[^,\s:=]*(?:\s*[:=]\s*[^,\s]*)?",
    re.IGNORECASE,
)
_BEARER_RE = re.compile(r"bearer\s+[^,\s]+", re.IGNORECASE)
_SSHPASS_RE = re.compile(r"(SSHPASS)=\S+")


def sanitize(message: str) -> str:
    """Redact credential-looking substrings. Applying it twice changes nothing."""
    message = _SECRET_RE.sub(lambda m: f"{m.group(1)}{REDACTED}", message)
    message = _SSHPASS_RE.sub(lambda m: f"{m.group(1)}{REDACTED}", message)
    return _BEARER_RE.sub(f"Bearer {REDACTED}", message)


def sanitize_value(value: Any) -> Any:
    """Apply :func:`sanitize` to every string inside a JSON-like structure."""
    if isinstance(value, str):
        return sanitize(value)
    if isinstance(value, dict):
        return {k: sanitize_value(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [sanitize_value(v) for v in value]
    return value


def to_json(payload: Any) -> str:
    return json.dumps(payload, indent=2, default=str)


def text_result(payload: Any) -> CallToolResult:
    return CallToolResult(content=[TextContent(type="text", text=to_json(payload))], isError=False)


def error_result(message: str) -> CallToolResult:
    return CallToolResult(content=[TextContent(type="text", text=message)], isError=True)


def truncate(text: str, limit: int = 1000) -> str:
    return text if len(text) <= limit else text[:limit]


def condition_severity(condition_type: str) -> str:
    """Severity of a node condition that is reporting True."""
    if condition_type in ("OutOfDisk", "MemoryPressure", "DiskPressure"):
        return "critical"
    if condition_type in ("PIDPressure", "NetworkUnavailable"):
        return "warning"
    return "info"


def ready_status(node: dict) -> str:
    for c in (node.get("status") or {}).get("conditions") or []:
        if c.get("type") == "Ready":
            return c.get("status") or "Unknown"
    return "Unknown"


def total_restarts(pod: dict) -> int:
    statuses = (pod.get("status") or {}).get("containerStatuses") or []
    return sum(int(c.get("restartCount") or 0) for c in statuses)
