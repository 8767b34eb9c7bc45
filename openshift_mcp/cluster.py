"""
Cluster client.

Typed cluster operations expressed as kubectl argument vectors and run through
the CommandExecutor, so local and bastion execution share one code path.
Listings come back as parsed JSON; writes go through ``kubectl apply -f -``
with YAML on stdin.
"""

from __future__ import annotations

import json
from typing import Any, Iterable, Mapping, Sequence

from openshift_mcp import manifests
from openshift_mcp.errors import ErrorKind, ExecutionError, NotFoundError
from openshift_mcp.executor import CommandExecutor, ExecResult


class ClusterClient:
    def __init__(self, executor: CommandExecutor, node_command_timeout: float = 120.0):
        self.executor = executor
        self.node_command_timeout = node_command_timeout

    # -- plumbing -------------------------------------------------------------

    async def kubectl(
        self, args: Sequence[str], *, stdin: str | None = None, timeout: float | None = None
    ) -> str:
        try:
            result = await self.executor.run(["kubectl", *args], stdin=stdin, timeout=timeout)
        except ExecutionError as exc:
            if exc.kind is ErrorKind.NON_ZERO_EXIT and exc.not_found:
                raise NotFoundError(str(exc)) from exc
            raise
        return result.stdout

    async def kubectl_json(self, args: Sequence[str], **kwargs) -> Any:
        out = await self.kubectl([*args, "-o", "json"], **kwargs)
        try:
            return json.loads(out)
        except json.JSONDecodeError as exc:
            raise ExecutionError(
                ErrorKind.NON_ZERO_EXIT,
                f"kubectl {' '.join(args[:2])} returned output that is not JSON: {exc}",
                raw=out[:500],
            ) from exc

    async def _items(self, args: Sequence[str]) -> list[dict]:
        data = await self.kubectl_json(args)
        return list(data.get("items") or [])

    @staticmethod
    def _scope(namespace: str | None) -> list[str]:
        return ["-n", namespace] if namespace else ["--all-namespaces"]

    # -- reads ----------------------------------------------------------------

    async def list_nodes(self) -> list[dict]:
        return await self._items(["get", "nodes"])

    async def list_pods(self, namespace: str | None = None, selector: str | None = None) -> list[dict]:
        args = ["get", "pods", *self._scope(namespace)]
        if selector:
            args += ["-l", selector]
        return await self._items(args)

    async def list_events(self, namespace: str | None = None) -> list[dict]:
        return await self._items(["get", "events", *self._scope(namespace)])

    async def list_deployments(self, namespace: str | None = None) -> list[dict]:
        return await self._items(["get", "deployments", *self._scope(namespace)])

    async def get(self, kind: str, name: str, namespace: str | None = None) -> dict:
        args = ["get", kind, name]
        if namespace:
            args += ["-n", namespace]
        return await self.kubectl_json(args)

    async def read_namespace(self, name: str) -> dict:
        return await self.get("namespace", manifests.validate_name(name, "namespace"))

    async def logs(self, target: str, namespace: str, *, tail: int | None = None) -> str:
        args = ["logs", target, "-n", namespace]
        if tail:
            args.append(f"--tail={tail}")
        return await self.kubectl(args)

    async def top_nodes(self) -> str:
        return await self.kubectl(["top", "nodes", "--no-headers"])

    async def top_pods(self, namespace: str | None = None) -> str:
        return await self.kubectl(["top", "pods", *self._scope(namespace), "--no-headers"])

    # -- writes ---------------------------------------------------------------

    async def create_namespace(self, name: str) -> None:
        await self.kubectl(["create", "namespace", manifests.validate_name(name, "namespace")])

    async def ensure_namespace(self, name: str) -> bool:
        """Create ``name`` unless it exists. Returns True when it was created."""
        try:
            await self.read_namespace(name)
            return False
        except NotFoundError:
            pass
        try:
            await self.create_namespace(name)
        except ExecutionError as exc:
            if exc.already_exists:
                return False
            raise
        return True

    async def apply(self, docs: Iterable[Mapping[str, Any]], timeout: float | None = None) -> str:
        return await self.kubectl(["apply", "-f", "-"], stdin=manifests.render(docs), timeout=timeout)

    async def delete(
        self,
        kind: str,
        name: str,
        namespace: str | None = None,
        *,
        wait: bool = False,
        timeout: str | None = None,
        ignore_not_found: bool = True,
        exec_timeout: float | None = None,
    ) -> str:
        args = ["delete", kind, name]
        if namespace:
            args += ["-n", namespace]
        if ignore_not_found:
            args.append("--ignore-not-found")
        if wait:
            args.append("--wait=true")
        if timeout:
            args.append(f"--timeout={timeout}")
        return await self.kubectl(args, timeout=exec_timeout)

    async def delete_selected(self, kinds: Sequence[str], selector: str, namespace: str | None = None) -> str:
        args = ["delete", ",".join(kinds), "-l", selector, "--ignore-not-found"]
        if namespace:
            args += ["-n", namespace]
        return await self.kubectl(args)

    # -- node access ----------------------------------------------------------

    async def node_exec(self, node: str, command: Sequence[str], *, check: bool = True) -> ExecResult:
        """Run ``command`` on ``node``'s host filesystem through ``oc debug``."""
        return await self.executor.run(
            manifests.node_debug_command(node, command),
            timeout=self.node_command_timeout,
            check=check,
        )
