"""
Deployment tools — create workloads and supporting objects.

Every tool validates and renders its manifests first, then refuses protected
namespaces, makes sure the target namespace exists and applies the rendered
YAML with ``kubectl apply -f -``.

Tools:
  create_deployment      — deployment with resources and container ports
  deploy_database        — PostgreSQL / MySQL / MongoDB / Redis with PVC, Secret and Service
  create_hpa             — autoscaling/v2 HPA on CPU and memory utilization
  create_service         — ClusterIP / NodePort / LoadBalancer service
  create_network_policy  — network policy (deny-all when no rules are given)
"""

from __future__ import annotations

import secrets
from typing import NamedTuple

from mcp.types import Tool, ToolAnnotations

from openshift_mcp import manifests
from openshift_mcp.errors import NotFoundError, UnsupportedValueError

_CREATE = ToolAnnotations(readOnlyHint=False, destructiveHint=False, idempotentHint=True, openWorldHint=True)

_NAMESPACE = {"type": "string", "description": "Target namespace.", "default": "default"}


def _resources_schema(cpu_request: str, memory_request: str, cpu_limit: str, memory_limit: str) -> dict:
    return {
        "type": "object",
        "description": "Container resource requests and limits.",
        "properties": {
            "cpuRequest": {"type": "string", "default": cpu_request},
            "memoryRequest": {"type": "string", "default": memory_request},
            "cpuLimit": {"type": "string", "default": cpu_limit},
            "memoryLimit": {"type": "string", "default": memory_limit},
        },
        "additionalProperties": False,
    }


DEPLOYMENT_TOOLS: list[Tool] = [
    Tool(
        name="create_deployment",
        description="Create a deployment with the given image, replica count, resources and ports.",
        inputSchema={
            "type": "object",
            "required": ["name", "image"],
            "properties": {
                "name": {"type": "string", "description": "Deployment name (DNS-1123 label)."},
                "namespace": _NAMESPACE,
                "image": {"type": "string", "description": "Container image reference."},
                "replicas": {"type": "integer", "minimum": 0, "default": 1},
                "resources": _resources_schema("100m", "128Mi", "500m", "512Mi"),
                "ports": {
                    "type": "array",
                    "items": {
                        "type": "object",
                        "required": ["containerPort"],
                        "properties": {
                            "containerPort": {"type": "integer", "minimum": 1, "maximum": 65535},
                            "protocol": {"type": "string", "enum": list(manifests.PROTOCOLS), "default": "TCP"},
                        },
                        "additionalProperties": False,
                    },
                    "default": [],
                },
            },
            "additionalProperties": False,
        },
        annotations=_CREATE,
    ),
    Tool(
        name="deploy_database",
        description=(
            "Deploy a single-instance database with persistent storage, a credentials Secret "
            "and a Service."
        ),
        inputSchema={
            "type": "object",
            "required": ["type", "name"],
            "properties": {
                "type": {
                    "type": "string",
                    "enum": ["postgresql", "mysql", "mongodb", "redis"],
                    "description": "Database engine.",
                },
                "name": {"type": "string", "description": "Database instance name (DNS-1123 label)."},
                "namespace": _NAMESPACE,
                "storageSize": {"type": "string", "description": "Persistent volume size.", "default": "10Gi"},
                "resources": _resources_schema("250m", "512Mi", "1000m", "1Gi"),
            },
            "additionalProperties": False,
        },
        annotations=_CREATE,
    ),
    Tool(
        name="create_hpa",
        description="Create a horizontal pod autoscaler for an existing deployment.",
        inputSchema={
            "type": "object",
            "required": ["targetDeployment"],
            "properties": {
                "targetDeployment": {"type": "string", "description": "Deployment to scale."},
                "namespace": _NAMESPACE,
                "minReplicas": {"type": "integer", "minimum": 1, "default": 1},
                "maxReplicas": {"type": "integer", "minimum": 1, "default": 10},
                "cpuTarget": {
                    "type": "integer",
                    "description": "Target CPU utilization percentage.",
                    "minimum": 1,
                    "maximum": 100,
                    "default": 70,
                },
                "memoryTarget": {
                    "type": "integer",
                    "description": "Target memory utilization percentage.",
                    "minimum": 1,
                    "maximum": 100,
                    "default": 80,
                },
            },
            "additionalProperties": False,
        },
        annotations=_CREATE,
    ),
    Tool(
        name="create_service",
        description="Create a service exposing the pods matched by a label selector.",
        inputSchema={
            "type": "object",
            "required": ["name", "selector", "ports"],
            "properties": {
                "name": {"type": "string", "description": "Service name (DNS-1123 label)."},
                "namespace": _NAMESPACE,
                "selector": {"type": "object", "description": "Pod selector labels."},
                "ports": {
                    "type": "array",
                    "minItems": 1,
                    "items": {
                        "type": "object",
                        "required": ["port", "targetPort"],
                        "properties": {
                            "port": {"type": "integer", "minimum": 1, "maximum": 65535},
                            "targetPort": {"type": "integer", "minimum": 1, "maximum": 65535},
                            "protocol": {"type": "string", "enum": list(manifests.PROTOCOLS), "default": "TCP"},
                        },
                        "additionalProperties": False,
                    },
                },
                "type": {
                    "type": "string",
                    "enum": ["ClusterIP", "NodePort", "LoadBalancer"],
                    "default": "ClusterIP",
                },
            },
            "additionalProperties": False,
        },
        annotations=_CREATE,
    ),
    Tool(
        name="create_network_policy",
        description=(
            "Create a network policy for the selected pods. With no ingress and no egress rules "
            "the policy denies all traffic in both directions."
        ),
        inputSchema={
            "type": "object",
            "required": ["name", "podSelector"],
            "properties": {
                "name": {"type": "string", "description": "Network policy name (DNS-1123 label)."},
                "namespace": _NAMESPACE,
                "podSelector": {
                    "type": "object",
                    "description": "Label map, or a selector with matchLabels / matchExpressions. {} selects every pod.",
                },
                "ingress": {"type": "array", "items": {"type": "object"}, "default": []},
                "egress": {"type": "array", "items": {"type": "object"}, "default": []},
            },
            "additionalProperties": False,
        },
        annotations=_CREATE,
    ),
]


# ---------------------------------------------------------------------------
# Databases
# ---------------------------------------------------------------------------

class DatabaseEngine(NamedTuple):
    image: str
    port: int
    data_path: str
    env: tuple  # (variable, literal value or None for the generated password)


DATABASE_ENGINES = {
    "postgresql": DatabaseEngine(
        "postgres:13", 5432, "/var/lib/postgresql/data",
        (("POSTGRES_DB", "{name}"), ("POSTGRES_USER", "postgres"), ("POSTGRES_PASSWORD", None),
         ("PGDATA", "/var/lib/postgresql/data/pgdata")),
    ),
    "mysql": DatabaseEngine(
        "mysql:8.0", 3306, "/var/lib/mysql",
        (("MYSQL_DATABASE", "{name}"), ("MYSQL_ROOT_PASSWORD", None)),
    ),
    "mongodb": DatabaseEngine(
        "mongo:5.0", 27017, "/data/db",
        (("MONGO_INITDB_DATABASE", "{name}"), ("MONGO_INITDB_ROOT_USERNAME", "admin"),
         ("MONGO_INITDB_ROOT_PASSWORD", None)),
    ),
    "redis": DatabaseEngine("redis:6-alpine", 6379, "/data", ()),
}


def database_manifests(db_type: str, name: str, namespace: str, storage_size: str, resources: dict) -> tuple[list[dict], dict]:
    """Render the Secret, PVC, Deployment and Service for one database instance."""
    engine = DATABASE_ENGINES.get(db_type)
    if engine is None:
        raise UnsupportedValueError(f"Unsupported database type: {db_type}")

    labels = {"db-type": db_type}
    secret_name = f"{name}-credentials"
    claim_name = f"{name}-storage"
    docs: list[dict] = []

    env = []
    for var, value in engine.env:
        if value is None:
            env.append({
                "name": var,
                "valueFrom": {"secretKeyRef": {"name": secret_name, "key": "password"}},
            })
        else:
            env.append({"name": var, "value": value.format(name=name)})
    if any(value is None for _, value in engine.env):
        docs.append(manifests.secret(secret_name, namespace, {"password": secrets.token_urlsafe(18)}, labels))

    docs.append(manifests.persistent_volume_claim(claim_name, namespace, storage_size, extra_labels=labels))
    docs.append(manifests.deployment(
        name, namespace, engine.image,
        replicas=1,
        resources=resources,
        ports=[{"containerPort": engine.port, "protocol": "TCP"}],
        env=env,
        volume_mounts=[{"name": "data", "mountPath": engine.data_path}],
        volumes=[{"name": "data", "persistentVolumeClaim": {"claimName": claim_name}}],
        extra_labels=labels,
    ))
    docs.append(manifests.service(
        name, namespace, {"app": name},
        [{"port": engine.port, "targetPort": engine.port, "protocol": "TCP"}],
        extra_labels=labels,
    ))
    info = {
        "image": engine.image,
        "port": engine.port,
        "credentialsSecret": secret_name if docs[0]["kind"] == "Secret" else None,
        "persistentVolumeClaim": claim_name,
    }
    return docs, info


# ---------------------------------------------------------------------------
# Handlers
# ---------------------------------------------------------------------------

async def _prepare_namespace(ctx, namespace: str) -> bool:
    ctx.check_namespace_writable(namespace)
    return await ctx.cluster.ensure_namespace(namespace)


async def handle_create_deployment(ctx, args: dict) -> dict:
    name, namespace, image = args["name"], args["namespace"], args["image"]
    doc = manifests.deployment(
        name, namespace, image,
        replicas=args["replicas"],
        resources=args["resources"],
        ports=args.get("ports") or [],
    )
    created = await _prepare_namespace(ctx, namespace)
    await ctx.cluster.apply([doc])
    return {
        "name": name,
        "namespace": namespace,
        "replicas": doc["spec"]["replicas"],
        "image": image,
        "ports": doc["spec"]["template"]["spec"]["containers"][0]["ports"],
        "namespaceCreated": created,
        "status": "Created",
    }


async def handle_deploy_database(ctx, args: dict) -> dict:
    db_type, name, namespace = args["type"], args["name"], args["namespace"]
    manifests.validate_name(namespace, "namespace")
    docs, info = database_manifests(db_type, name, namespace, args["storageSize"], args["resources"])
    created = await _prepare_namespace(ctx, namespace)
    await ctx.cluster.apply(docs)
    return {
        "name": name,
        "namespace": namespace,
        "type": db_type,
        **info,
        "storageSize": args["storageSize"],
        "namespaceCreated": created,
        "status": "Deployed",
    }


async def handle_create_hpa(ctx, args: dict) -> dict:
    target, namespace = args["targetDeployment"], args["namespace"]
    doc = manifests.horizontal_pod_autoscaler(
        target, namespace,
        min_replicas=args["minReplicas"],
        max_replicas=args["maxReplicas"],
        cpu_target=args["cpuTarget"],
        memory_target=args["memoryTarget"],
    )
    ctx.check_namespace_writable(namespace)
    try:
        await ctx.cluster.get("deployment", target, namespace)
    except NotFoundError:
        raise NotFoundError(f"Deployment '{target}' not found in namespace '{namespace}'")
    await ctx.cluster.apply([doc])
    return {
        "name": doc["metadata"]["name"],
        "namespace": namespace,
        "targetDeployment": target,
        "minReplicas": args["minReplicas"],
        "maxReplicas": args["maxReplicas"],
        "cpuTarget": f"{args['cpuTarget']}%",
        "memoryTarget": f"{args['memoryTarget']}%",
        "status": "Created",
    }


async def handle_create_service(ctx, args: dict) -> dict:
    name, namespace = args["name"], args["namespace"]
    doc = manifests.service(name, namespace, args["selector"], args["ports"], args["type"])
    created = await _prepare_namespace(ctx, namespace)
    await ctx.cluster.apply([doc])
    return {
        "name": name,
        "namespace": namespace,
        "type": args["type"],
        "ports": doc["spec"]["ports"],
        "selector": doc["spec"]["selector"],
        "namespaceCreated": created,
        "status": "Created",
    }


async def handle_create_network_policy(ctx, args: dict) -> dict:
    name, namespace = args["name"], args["namespace"]
    doc = manifests.network_policy(
        name, namespace, args["podSelector"], args.get("ingress") or [], args.get("egress") or []
    )
    created = await _prepare_namespace(ctx, namespace)
    await ctx.cluster.apply([doc])
    spec = doc["spec"]
    return {
        "name": name,
        "namespace": namespace,
        "podSelector": spec["podSelector"],
        "policyTypes": spec["policyTypes"],
        "denyAll": not spec.get("ingress") and not spec.get("egress"),
        "namespaceCreated": created,
        "status": "Created",
    }


DEPLOYMENT_HANDLERS = {
    "create_deployment": handle_create_deployment,
    "deploy_database": handle_deploy_database,
    "create_hpa": handle_create_hpa,
    "create_service": handle_create_service,
    "create_network_policy": handle_create_network_policy,
}
