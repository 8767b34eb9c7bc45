"""The per-process context handed to every tool handler."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Callable

from openshift_mcp.cluster import ClusterClient
from openshift_mcp.config import Settings
from openshift_mcp.errors import ProtectedNamespaceError
from openshift_mcp.executor import CommandExecutor


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class ServerContext:
    settings: Settings
    executor: CommandExecutor
    cluster: ClusterClient
    now: Callable[[], datetime] = field(default=_utcnow)

    @classmethod
    def from_settings(cls, settings: Settings) -> "ServerContext":
        executor = CommandExecutor(settings.target, settings.max_concurrent_commands)
        cluster = ClusterClient(executor, settings.node_command_timeout)
        return cls(settings=settings, executor=executor, cluster=cluster)

    def check_namespace_writable(self, namespace: str) -> None:
        """Raise if ``namespace`` is protected from create and test tools."""
        blocklist = self.settings.namespace_blocklist
        if namespace in blocklist:
            raise ProtectedNamespaceError(
                f"Namespace '{namespace}' is protected from write operations. "
                f"Set OPENSHIFT_MCP_NAMESPACE_BLOCKLIST to adjust (current: {sorted(blocklist)})."
            )
