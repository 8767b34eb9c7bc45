"""
Startup configuration.

Everything here is resolved once from the environment and is read-only for the
life of the process:

  MCP_REMOTE_KUBECONFIG / KUBECONFIG   — kubeconfig path (remote path in bastion mode)
  KUBERNETES_SERVICE_HOST              — in-cluster config when no kubeconfig is given
  MCP_BASTION_HOST / MCP_BASTION_USER  — route every command through a bastion over ssh
  MCP_BASTION_PASSWORD / MCP_SSH_KEY   — password auth (via sshpass) or key auth
  RUNNING_ON_BASTION                   — already on the bastion, run locally
  MCP_REMOTE_NODE_ENV                  — runtime-env tag reported at startup
  MCP_COMMAND_TIMEOUT / MCP_NODE_COMMAND_TIMEOUT / MCP_MAX_OUTPUT_BYTES /
  MCP_MAX_CONCURRENT_COMMANDS          — execution limits
  OPENSHIFT_MCP_READ_ONLY              — only register monitoring and diagnostic tools
  OPENSHIFT_MCP_NAMESPACE_BLOCKLIST    — namespaces the write tools refuse to touch
"""

from __future__ import annotations

import enum
import os
from dataclasses import dataclass, field
from typing import Mapping

from openshift_mcp.errors import ConfigError

DEFAULT_COMMAND_TIMEOUT = 60.0
DEFAULT_NODE_COMMAND_TIMEOUT = 120.0
DEFAULT_MAX_OUTPUT_BYTES = 10 * 1024 * 1024
DEFAULT_MAX_CONCURRENT_COMMANDS = 10
DEFAULT_NAMESPACE_BLOCKLIST = "kube-system,kube-public,kube-node-lease"


class ExecutionMode(str, enum.Enum):
    LOCAL = "local"
    BASTION = "bastion"


class AuthMethod(str, enum.Enum):
    SSH_KEY = "ssh-key"
    PASSWORD = "password"


@dataclass(frozen=True)
class ExecutionTarget:
    mode: ExecutionMode = ExecutionMode.LOCAL
    bastion_host: str | None = None
    bastion_user: str = "root"
    auth_method: AuthMethod = AuthMethod.SSH_KEY
    credential: str | None = field(default=None, repr=False)
    kubeconfig_path: str | None = None
    kubeconfig_source: str = "default"
    timeout: float = DEFAULT_COMMAND_TIMEOUT
    max_output_bytes: int = DEFAULT_MAX_OUTPUT_BYTES
    runtime_env: str = "production"

    def describe(self) -> str:
        """One-line description safe for logs (no credentials)."""
        if self.mode is ExecutionMode.BASTION:
            where = f"bastion {self.bastion_user}@{self.bastion_host} ({self.auth_method.value})"
        else:
            where = "local"
        kubeconfig = self.kubeconfig_path or self.kubeconfig_source
        return f"{where}, kubeconfig={kubeconfig}, env={self.runtime_env}"


@dataclass(frozen=True)
class Settings:
    target: ExecutionTarget = field(default_factory=ExecutionTarget)
    read_only: bool = False
    namespace_blocklist: frozenset[str] = frozenset(DEFAULT_NAMESPACE_BLOCKLIST.split(","))
    node_command_timeout: float = DEFAULT_NODE_COMMAND_TIMEOUT
    max_concurrent_commands: int = DEFAULT_MAX_CONCURRENT_COMMANDS
    poll_initial_interval: float = 1.0
    poll_max_interval: float = 15.0


def _flag(environ: Mapping[str, str], name: str) -> bool:
    return environ.get(name, "").lower() in ("1", "true", "yes")


def _positive_number(environ: Mapping[str, str], name: str, default: float, cast=float):
    raw = environ.get(name, "").strip()
    if not raw:
        return default
    try:
        value = cast(raw)
    except ValueError:
        raise ConfigError(f"{name} must be a number, got {raw!r}")
    if value <= 0:
        raise ConfigError(f"{name} must be positive, got {raw!r}")
    return value


def resolve_target(environ: Mapping[str, str]) -> ExecutionTarget:
    """Decide between local execution and tunnelling through the bastion."""
    bastion_host = environ.get("MCP_BASTION_HOST", "").strip() or None
    use_bastion = (
        bastion_host is not None
        and bastion_host != "localhost"
        and not _flag(environ, "RUNNING_ON_BASTION")
    )

    if environ.get("MCP_REMOTE_KUBECONFIG"):
        kubeconfig, source = environ["MCP_REMOTE_KUBECONFIG"], "remote-file"
    elif environ.get("KUBECONFIG"):
        kubeconfig, source = environ["KUBECONFIG"], "file"
    elif environ.get("KUBERNETES_SERVICE_HOST"):
        kubeconfig, source = None, "in-cluster"
    else:
        kubeconfig, source = None, "default"

    password = environ.get("MCP_BASTION_PASSWORD") or None
    if password:
        auth, credential = AuthMethod.PASSWORD, password
    else:
        auth = AuthMethod.SSH_KEY
        credential = os.path.expanduser(environ.get("MCP_SSH_KEY") or "~/.ssh/id_rsa")

    return ExecutionTarget(
        mode=ExecutionMode.BASTION if use_bastion else ExecutionMode.LOCAL,
        bastion_host=bastion_host if use_bastion else None,
        bastion_user=environ.get("MCP_BASTION_USER") or "root",
        auth_method=auth,
        credential=credential if use_bastion else None,
        kubeconfig_path=kubeconfig,
        kubeconfig_source=source,
        timeout=_positive_number(environ, "MCP_COMMAND_TIMEOUT", DEFAULT_COMMAND_TIMEOUT),
        max_output_bytes=_positive_number(
            environ, "MCP_MAX_OUTPUT_BYTES", DEFAULT_MAX_OUTPUT_BYTES, cast=int
        ),
        runtime_env=environ.get("MCP_REMOTE_NODE_ENV") or "production",
    )


def load_settings(environ: Mapping[str, str] | None = None) -> Settings:
    env = os.environ if environ is None else environ
    blocklist = env.get("OPENSHIFT_MCP_NAMESPACE_BLOCKLIST", DEFAULT_NAMESPACE_BLOCKLIST)
    return Settings(
        target=resolve_target(env),
        read_only=_flag(env, "OPENSHIFT_MCP_READ_ONLY"),
        namespace_blocklist=frozenset(ns.strip() for ns in blocklist.split(",") if ns.strip()),
        node_command_timeout=_positive_number(
            env, "MCP_NODE_COMMAND_TIMEOUT", DEFAULT_NODE_COMMAND_TIMEOUT
        ),
        max_concurrent_commands=_positive_number(
            env, "MCP_MAX_CONCURRENT_COMMANDS", DEFAULT_MAX_CONCURRENT_COMMANDS, cast=int
        ),
    )
