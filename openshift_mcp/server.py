"""
OpenShift MCP server.

Exposes cluster tools over MCP stdio transport across four categories:
  • Monitoring  — cluster health, metrics, resource issues, disruptions, node conditions, deployments
  • Diagnostics — kubelet and CRI-O status, journal error classification (via oc debug node)
  • Deployment  — deployments, databases, HPAs, services, network policies
  • Performance — density, storage, network, stress and database benchmarks

Commands run locally, or on a bastion host over ssh when MCP_BASTION_HOST is
set. Environment variables:
  MCP_REMOTE_KUBECONFIG / KUBECONFIG   — kubeconfig path (on the bastion in bastion mode)
  MCP_BASTION_HOST, MCP_BASTION_USER   — bastion target (user defaults to root)
  MCP_BASTION_PASSWORD / MCP_SSH_KEY   — password auth via sshpass, or key auth (default ~/.ssh/id_rsa)
  RUNNING_ON_BASTION=true              — force local execution
  MCP_COMMAND_TIMEOUT=60               — per-command timeout in seconds
  MCP_NODE_COMMAND_TIMEOUT=120         — timeout for oc debug node commands
  OPENSHIFT_MCP_READ_ONLY=true         — only register monitoring and diagnostic tools
  OPENSHIFT_MCP_NAMESPACE_BLOCKLIST=.. — namespaces protected from create and test tools

Run with:
    python -m openshift_mcp.server
"""

from __future__ import annotations

import asyncio
import shutil
import signal
import sys

from mcp.server import Server
from mcp.server.stdio import stdio_server
from mcp.types import CallToolResult, ListToolsResult

from openshift_mcp.catalog import build_catalog
from openshift_mcp.config import AuthMethod, ExecutionMode, load_settings
from openshift_mcp.context import ServerContext
from openshift_mcp.dispatcher import Dispatcher
from openshift_mcp.errors import ConfigError, ToolFailure

server = Server("openshift")

# Populated by _run() once the environment has been read.
_dispatcher: Dispatcher | None = None


@server.list_tools()
async def list_tools() -> ListToolsResult:
    return ListToolsResult(tools=_dispatcher.catalog.list_tools())


# The dispatcher validates arguments and fills defaults itself.
@server.call_tool(validate_input=False)
async def call_tool(name: str, arguments: dict) -> CallToolResult:
    return await _dispatcher.dispatch(name, arguments)


# ---------------------------------------------------------------------------
# Startup preflight
# ---------------------------------------------------------------------------

async def _preflight(ctx: ServerContext) -> None:
    """Check required binaries and cluster connectivity before serving."""
    target = ctx.settings.target
    if target.mode is ExecutionMode.BASTION:
        required = ["ssh"]
        if target.auth_method is AuthMethod.PASSWORD:
            required.append("sshpass")
    else:
        required = ["kubectl"]
    for binary in required:
        if not shutil.which(binary):
            print(f"FATAL: {binary} not found on PATH. Install {binary} and try again.", file=sys.stderr)
            sys.exit(1)
    if target.mode is ExecutionMode.LOCAL and not shutil.which("oc"):
        print("WARNING: oc not found on PATH. Node diagnostic tools will fail.", file=sys.stderr)

    try:
        await ctx.cluster.kubectl(["get", "namespaces", "--no-headers"], timeout=15)
        print("Cluster connectivity: OK", file=sys.stderr)
    except ToolFailure as e:
        print(
            f"WARNING: Cluster unreachable ({e}). Tools will fail until the cluster is reachable.",
            file=sys.stderr,
        )


# ---------------------------------------------------------------------------
# Entry point
# ---------------------------------------------------------------------------

async def _serve(ctx: ServerContext) -> None:
    mode = "read-only" if ctx.settings.read_only else "full"
    print(
        f"openshift MCP server starting — {len(_dispatcher.catalog)} tools registered ({mode} mode), "
        f"target: {ctx.settings.target.describe()}",
        file=sys.stderr,
    )
    await _preflight(ctx)
    async with stdio_server() as (read_stream, write_stream):
        await server.run(
            read_stream,
            write_stream,
            server.create_initialization_options(),
        )


async def _run() -> None:
    global _dispatcher
    try:
        settings = load_settings()
    except ConfigError as e:
        print(f"FATAL: {e}", file=sys.stderr)
        sys.exit(2)

    ctx = ServerContext.from_settings(settings)
    _dispatcher = Dispatcher(build_catalog(read_only=settings.read_only), ctx)

    task = asyncio.current_task()
    loop = asyncio.get_running_loop()
    try:
        loop.add_signal_handler(signal.SIGTERM, task.cancel)
    except NotImplementedError:
        pass  # Windows event loops have no signal handlers

    try:
        await _serve(ctx)
    except asyncio.CancelledError:
        print("openshift MCP server stopping", file=sys.stderr)


def main() -> None:
    try:
        asyncio.run(_run())
    except KeyboardInterrupt:
        print("openshift MCP server interrupted", file=sys.stderr)


if __name__ == "__main__":
    main()
