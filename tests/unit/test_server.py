"""
Unit tests for openshift_mcp/server.py — MCP handlers and startup preflight.
"""

from __future__ import annotations

import json

import pytest

from openshift_mcp import server
from openshift_mcp.catalog import build_catalog
from openshift_mcp.config import AuthMethod, ExecutionMode, ExecutionTarget, Settings
from openshift_mcp.context import ServerContext
from openshift_mcp.dispatcher import Dispatcher
from openshift_mcp.errors import ErrorKind, ExecutionError


@pytest.fixture
def installed(monkeypatch, ctx):
    dispatcher = Dispatcher(build_catalog(read_only=True), ctx)
    monkeypatch.setattr(server, "_dispatcher", dispatcher)
    return dispatcher


async def test_list_tools(installed):
    result = await server.list_tools()
    assert len(result.tools) == 9


async def test_call_tool_routes_through_dispatcher(installed, cluster):
    cluster.list_nodes.return_value = []
    result = await server.call_tool("check_node_conditions", {})
    assert result.isError is False
    assert json.loads(result.content[0].text)["totalNodes"] == 0


def _ctx(cluster, **target) -> ServerContext:
    return ServerContext(
        settings=Settings(target=ExecutionTarget(**target)),
        executor=None,
        cluster=cluster,
    )


async def test_preflight_missing_kubectl_is_fatal(monkeypatch, cluster, capsys):
    monkeypatch.setattr(server.shutil, "which", lambda name: None)
    with pytest.raises(SystemExit) as exc:
        await server._preflight(_ctx(cluster))
    assert exc.value.code == 1
    assert "FATAL: kubectl not found" in capsys.readouterr().err
    cluster.kubectl.assert_not_called()


async def test_preflight_password_bastion_needs_sshpass(monkeypatch, cluster, capsys):
    monkeypatch.setattr(server.shutil, "which", lambda name: None if name == "sshpass" else f"/usr/bin/{name}")
    ctx = _ctx(
        cluster, mode=ExecutionMode.BASTION, bastion_host="bastion", auth_method=AuthMethod.PASSWORD, credential="pw"
    )
    with pytest.raises(SystemExit):
        await server._preflight(ctx)
    assert "sshpass not found" in capsys.readouterr().err


async def test_preflight_unreachable_cluster_only_warns(monkeypatch, cluster, capsys):
    monkeypatch.setattr(server.shutil, "which", lambda name: f"/usr/bin/{name}")
    cluster.kubectl.side_effect = ExecutionError(ErrorKind.CONNECTION_FAILURE, "Unable to connect to the server")
    await server._preflight(_ctx(cluster))
    assert "WARNING: Cluster unreachable" in capsys.readouterr().err


async def test_preflight_ok(monkeypatch, cluster, capsys):
    monkeypatch.setattr(server.shutil, "which", lambda name: f"/usr/bin/{name}")
    cluster.kubectl.return_value = "default   Active   1d"
    await server._preflight(_ctx(cluster))
    err = capsys.readouterr().err
    assert "Cluster connectivity: OK" in err
    assert "WARNING" not in err
    cluster.kubectl.assert_awaited_once_with(["get", "namespaces", "--no-headers"], timeout=15)
