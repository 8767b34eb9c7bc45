"""
Tool catalog.

Built once at startup from the tool modules' ``*_TOOLS`` / ``*_HANDLERS``
pairs. Construction fails loudly if a tool has no handler (or a handler no
tool), if a name is registered twice, or if an enum default is not one of the
enum's values.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Iterable, Mapping

from mcp.types import Tool

from openshift_mcp.tools.deployment import DEPLOYMENT_HANDLERS, DEPLOYMENT_TOOLS
from openshift_mcp.tools.diagnostics import DIAGNOSTIC_HANDLERS, DIAGNOSTIC_TOOLS
from openshift_mcp.tools.monitoring import MONITORING_HANDLERS, MONITORING_TOOLS
from openshift_mcp.tools.performance import PERFORMANCE_HANDLERS, PERFORMANCE_TOOLS
from openshift_mcp.validation import iter_enum_defaults

Handler = Callable[[Any, dict], Awaitable[Any]]


@dataclass(frozen=True)
class ToolEntry:
    tool: Tool
    handler: Handler
    writes: bool = False

    @property
    def name(self) -> str:
        return self.tool.name


def pair(tools: Iterable[Tool], handlers: Mapping[str, Handler], *, writes: bool = False) -> list[ToolEntry]:
    tools = list(tools)
    tool_names = {t.name for t in tools}
    missing = tool_names - handlers.keys()
    orphaned = handlers.keys() - tool_names
    if missing or orphaned:
        raise ValueError(
            f"tool/handler mismatch: no handler for {sorted(missing)}, no tool for {sorted(orphaned)}"
        )
    return [ToolEntry(t, handlers[t.name], writes) for t in tools]


class ToolCatalog:
    def __init__(self, entries: Iterable[ToolEntry]):
        self._entries: dict[str, ToolEntry] = {}
        for entry in entries:
            if entry.name in self._entries:
                raise ValueError(f"duplicate tool name: {entry.name}")
            for path, default, allowed in iter_enum_defaults(entry.tool.inputSchema):
                if default not in allowed:
                    raise ValueError(
                        f"{entry.name}: default {default!r} for {path} is not in {allowed}"
                    )
            self._entries[entry.name] = entry

    def list_tools(self) -> list[Tool]:
        return [e.tool for e in self._entries.values()]

    def get(self, name: str) -> ToolEntry | None:
        return self._entries.get(name)

    @property
    def write_tools(self) -> set[str]:
        return {name for name, e in self._entries.items() if e.writes}

    def __contains__(self, name: object) -> bool:
        return name in self._entries

    def __len__(self) -> int:
        return len(self._entries)


def build_catalog(read_only: bool = False) -> ToolCatalog:
    entries = pair(MONITORING_TOOLS, MONITORING_HANDLERS) + pair(DIAGNOSTIC_TOOLS, DIAGNOSTIC_HANDLERS)
    if not read_only:
        entries += pair(DEPLOYMENT_TOOLS, DEPLOYMENT_HANDLERS, writes=True)
        entries += pair(PERFORMANCE_TOOLS, PERFORMANCE_HANDLERS, writes=True)
    return ToolCatalog(entries)
