"""
Dispatcher: name + raw arguments in, CallToolResult out.

Nothing raised by validation or by a handler escapes ``dispatch``; every
outcome becomes a result envelope, with error text sanitized first.
"""

from __future__ import annotations

import sys
import traceback
from datetime import datetime, timezone
from typing import Any, Mapping

from mcp.types import CallToolResult

from openshift_mcp.catalog import ToolCatalog
from openshift_mcp.context import ServerContext
from openshift_mcp.errors import ToolFailure, ValidationError
from openshift_mcp.formatters import error_result, sanitize, sanitize_value, text_result
from openshift_mcp.validation import validate_arguments

# Arguments that can be large or structured are summarized in the audit log.
_SUMMARIZED_ARGS = ("ingress", "egress", "ports")


def audit_line(name: str, args: Mapping[str, Any]) -> str:
    ts = datetime.now(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")
    safe_args = {k: v for k, v in args.items() if k not in _SUMMARIZED_ARGS}
    for key in _SUMMARIZED_ARGS:
        if key in args:
            safe_args[f"{key}_count"] = len(args[key])
    return f"[AUDIT] {ts} {name} {sanitize_value(safe_args)}"


class Dispatcher:
    def __init__(self, catalog: ToolCatalog, context: ServerContext):
        self.catalog = catalog
        self.context = context

    async def dispatch(self, name: str, arguments: Mapping[str, Any] | None) -> CallToolResult:
        entry = self.catalog.get(name)
        if entry is None:
            return error_result(sanitize(f"Unknown tool: {name}"))

        try:
            args = validate_arguments(arguments, entry.tool.inputSchema)
        except ValidationError as exc:
            return error_result(f"Error executing {name}: {sanitize(str(exc))}")

        if entry.writes:
            print(audit_line(name, args), file=sys.stderr)

        try:
            payload = await entry.handler(self.context, args)
        except ToolFailure as exc:
            print(f"{name} failed: {sanitize(str(exc))}", file=sys.stderr)
            return error_result(f"Error executing {name}: {sanitize(str(exc))}")
        except Exception as exc:  # noqa: BLE001
            print(f"Unexpected error in {name}:\n{sanitize(traceback.format_exc())}", file=sys.stderr)
            return error_result(f"Error executing {name}: {sanitize(str(exc) or type(exc).__name__)}")

        return text_result(payload)
