"""
Manifest and command builder.

Every user-supplied identifier goes through an allow-list check before it lands
in a manifest or a command vector; anything that fails raises InvalidParameter
instead of producing text. Manifests are plain dicts serialized with PyYAML,
commands are argument lists.
"""

from __future__ import annotations

import re
from typing import Any, Iterable, Mapping, Sequence

import yaml

from openshift_mcp.errors import InvalidParameter
from openshift_mcp.quantities import parse_resource_value

MANAGED_BY_LABEL = "managed-by"
MANAGED_BY = "openshift-mcp-server"
TEST_LABEL = "openshift-mcp/test"

PAUSE_IMAGE = "registry.k8s.io/pause:3.8"

# ---------------------------------------------------------------------------
# Allow-lists
# ---------------------------------------------------------------------------

_DNS1123_LABEL = re.compile(r"^[a-z0-9]([-a-z0-9]*[a-z0-9])?$")
_DNS1123_SUBDOMAIN = re.compile(r"^[a-z0-9]([-a-z0-9]*[a-z0-9])?(\.[a-z0-9]([-a-z0-9]*[a-z0-9])?)*$")
_LABEL_NAME = re.compile(r"^([A-Za-z0-9][-A-Za-z0-9_.]*)?[A-Za-z0-9]$")
_LABEL_VALUE = re.compile(r"^(([A-Za-z0-9][-A-Za-z0-9_.]*)?[A-Za-z0-9])?$")
_QUANTITY = re.compile(r"^\d+(\.\d+)?(m|k|Ki|Mi|Gi|Ti|Pi|Ei|K|M|G|T|P|E)?$")
_IMAGE = re.compile(r"^[A-Za-z0-9][A-Za-z0-9._\-/:@]*$")
_UNIT = re.compile(r"^[A-Za-z0-9][A-Za-z0-9@._:\-]*$")
_BLOCK_SIZE = re.compile(r"^\d+[kKmM]?$")
_BANDWIDTH = re.compile(r"^\d+(\.\d+)?[KMG]?$")

PROTOCOLS = ("TCP", "UDP", "SCTP")


def validate_name(value, field: str = "name") -> str:
    """DNS-1123 label: namespaces, object names, container names."""
    if not isinstance(value, str) or not value:
        raise InvalidParameter(field, "must be a non-empty string")
    if len(value) > 63 or not _DNS1123_LABEL.fullmatch(value):
        raise InvalidParameter(
            field,
            f"{value!r} is not a valid DNS-1123 label (lowercase alphanumerics and '-', "
            "at most 63 characters, starting and ending with an alphanumeric)",
        )
    return value


def validate_subdomain(value, field: str) -> str:
    """DNS-1123 subdomain: node names, storage classes, secret and claim names."""
    if not isinstance(value, str) or not value:
        raise InvalidParameter(field, "must be a non-empty string")
    if len(value) > 253 or not _DNS1123_SUBDOMAIN.fullmatch(value):
        raise InvalidParameter(field, f"{value!r} is not a valid DNS-1123 subdomain")
    return value


def validate_node_name(value, field: str = "node") -> str:
    return validate_subdomain(value, field)


def validate_label_key(key, field: str) -> str:
    if not isinstance(key, str) or not key:
        raise InvalidParameter(field, "label keys must be non-empty strings")
    prefix, _, name = key.rpartition("/")
    if prefix and (len(prefix) > 253 or not _DNS1123_SUBDOMAIN.fullmatch(prefix)):
        raise InvalidParameter(field, f"label key {key!r} has an invalid prefix")
    if len(name) > 63 or not _LABEL_NAME.fullmatch(name):
        raise InvalidParameter(field, f"label key {key!r} is invalid")
    return key


def validate_label_value(value, field: str) -> str:
    if isinstance(value, bool) or not isinstance(value, (str, int)):
        raise InvalidParameter(field, "label values must be strings")
    value = str(value)
    if len(value) > 63 or not _LABEL_VALUE.fullmatch(value):
        raise InvalidParameter(field, f"label value {value!r} is invalid")
    return value


def validate_labels(labels, field: str, *, allow_empty: bool = True) -> dict[str, str]:
    if not isinstance(labels, Mapping):
        raise InvalidParameter(field, "must be an object of label key/value pairs")
    if not labels and not allow_empty:
        raise InvalidParameter(field, "must contain at least one label")
    return {
        validate_label_key(k, field): validate_label_value(v, f"{field}.{k}")
        for k, v in labels.items()
    }


def validate_quantity(value, field: str) -> str:
    if not isinstance(value, str) or not _QUANTITY.fullmatch(value):
        raise InvalidParameter(field, f"{value!r} is not a valid resource quantity")
    return value


def validate_image(value, field: str = "image") -> str:
    if not isinstance(value, str) or len(value) > 512 or not _IMAGE.fullmatch(value):
        raise InvalidParameter(field, f"{value!r} is not a valid image reference")
    return value


def validate_unit(value, field: str = "service") -> str:
    if not isinstance(value, str) or len(value) > 256 or not _UNIT.fullmatch(value):
        raise InvalidParameter(field, f"{value!r} is not a valid systemd unit name")
    return value


def validate_port(value, field: str) -> int:
    if isinstance(value, bool) or not isinstance(value, (int, float)) or int(value) != value:
        raise InvalidParameter(field, "must be an integer port")
    port = int(value)
    if not 1 <= port <= 65535:
        raise InvalidParameter(field, f"{port} is outside 1-65535")
    return port


def validate_protocol(value, field: str) -> str:
    if value not in PROTOCOLS:
        raise InvalidParameter(field, f"must be one of {', '.join(PROTOCOLS)}")
    return value


def validate_block_size(value, field: str = "blockSize") -> str:
    if not isinstance(value, str) or not _BLOCK_SIZE.fullmatch(value):
        raise InvalidParameter(field, f"{value!r} is not a valid block size (e.g. 4k, 1M)")
    return value


def validate_bandwidth(value, field: str = "bandwidth") -> str:
    if not isinstance(value, str) or not _BANDWIDTH.fullmatch(value):
        raise InvalidParameter(field, f"{value!r} is not a valid bandwidth (e.g. 100M, 1G)")
    return value


# ---------------------------------------------------------------------------
# Rendering
# ---------------------------------------------------------------------------

def render(manifests: Iterable[Mapping[str, Any]]) -> str:
    """Serialize manifests into a multi-document YAML stream."""
    return yaml.safe_dump_all(list(manifests), sort_keys=False, default_flow_style=False)


def _labels(extra: Mapping[str, str] | None = None) -> dict[str, str]:
    labels = {MANAGED_BY_LABEL: MANAGED_BY}
    if extra:
        labels.update(extra)
    return labels


def _metadata(name: str, namespace: str | None, labels: Mapping[str, str] | None = None) -> dict:
    meta: dict[str, Any] = {"name": name}
    if namespace is not None:
        meta["namespace"] = namespace
    meta["labels"] = _labels(labels)
    return meta


def resource_requirements(resources: Mapping[str, str], field: str = "resources") -> dict:
    """Validate request/limit quantities and check requests do not exceed limits."""
    cpu_request = validate_quantity(resources["cpuRequest"], f"{field}.cpuRequest")
    memory_request = validate_quantity(resources["memoryRequest"], f"{field}.memoryRequest")
    cpu_limit = validate_quantity(resources["cpuLimit"], f"{field}.cpuLimit")
    memory_limit = validate_quantity(resources["memoryLimit"], f"{field}.memoryLimit")

    if parse_resource_value(cpu_request) > parse_resource_value(cpu_limit):
        raise InvalidParameter(f"{field}.cpuRequest", f"{cpu_request} exceeds cpuLimit {cpu_limit}")
    if parse_resource_value(memory_request) > parse_resource_value(memory_limit):
        raise InvalidParameter(
            f"{field}.memoryRequest", f"{memory_request} exceeds memoryLimit {memory_limit}"
        )
    return {
        "requests": {"cpu": cpu_request, "memory": memory_request},
        "limits": {"cpu": cpu_limit, "memory": memory_limit},
    }


# ---------------------------------------------------------------------------
# Workloads
# ---------------------------------------------------------------------------

def deployment(
    name: str,
    namespace: str,
    image: str,
    *,
    replicas: int = 1,
    resources: Mapping[str, str],
    ports: Sequence[Mapping[str, Any]] = (),
    container_name: str | None = None,
    env: Sequence[Mapping[str, Any]] = (),
    volume_mounts: Sequence[Mapping[str, Any]] = (),
    volumes: Sequence[Mapping[str, Any]] = (),
    extra_labels: Mapping[str, str] | None = None,
) -> dict:
    validate_name(name)
    validate_name(namespace, "namespace")
    validate_image(image)
    container: dict[str, Any] = {
        "name": container_name or name,
        "image": image,
        "ports": [
            {
                "containerPort": validate_port(p["containerPort"], f"ports[{i}].containerPort"),
                "protocol": validate_protocol(p.get("protocol", "TCP"), f"ports[{i}].protocol"),
            }
            for i, p in enumerate(ports)
        ],
        "resources": resource_requirements(resources),
    }
    if env:
        container["env"] = list(env)
    if volume_mounts:
        container["volumeMounts"] = list(volume_mounts)

    pod_spec: dict[str, Any] = {"containers": [container]}
    if volumes:
        pod_spec["volumes"] = list(volumes)

    selector = {"app": name}
    return {
        "apiVersion": "apps/v1",
        "kind": "Deployment",
        "metadata": _metadata(name, namespace, {"app": name, **(extra_labels or {})}),
        "spec": {
            "replicas": int(replicas),
            "selector": {"matchLabels": selector},
            "template": {
                "metadata": {"labels": {**selector, **(extra_labels or {})}},
                "spec": pod_spec,
            },
        },
    }


def service(
    name: str,
    namespace: str,
    selector: Mapping[str, str],
    ports: Sequence[Mapping[str, Any]],
    service_type: str = "ClusterIP",
    extra_labels: Mapping[str, str] | None = None,
) -> dict:
    validate_name(name)
    validate_name(namespace, "namespace")
    if not ports:
        raise InvalidParameter("ports", "at least one port is required")
    return {
        "apiVersion": "v1",
        "kind": "Service",
        "metadata": _metadata(name, namespace, extra_labels),
        "spec": {
            "selector": validate_labels(selector, "selector", allow_empty=False),
            "ports": [
                {
                    "port": validate_port(p["port"], f"ports[{i}].port"),
                    "targetPort": validate_port(p["targetPort"], f"ports[{i}].targetPort"),
                    "protocol": validate_protocol(p.get("protocol", "TCP"), f"ports[{i}].protocol"),
                }
                for i, p in enumerate(ports)
            ],
            "type": service_type,
        },
    }


def persistent_volume_claim(
    name: str,
    namespace: str,
    size: str,
    *,
    storage_class: str | None = None,
    extra_labels: Mapping[str, str] | None = None,
) -> dict:
    validate_subdomain(name, "name")
    validate_name(namespace, "namespace")
    spec: dict[str, Any] = {
        "accessModes": ["ReadWriteOnce"],
        "resources": {"requests": {"storage": validate_quantity(size, "storageSize")}},
    }
    if storage_class:
        spec["storageClassName"] = validate_subdomain(storage_class, "storageClass")
    return {
        "apiVersion": "v1",
        "kind": "PersistentVolumeClaim",
        "metadata": _metadata(name, namespace, extra_labels),
        "spec": spec,
    }


def local_persistent_volume(
    name: str,
    size: str,
    path: str,
    node: str,
    storage_class: str,
    extra_labels: Mapping[str, str] | None = None,
) -> dict:
    validate_subdomain(name, "name")
    return {
        "apiVersion": "v1",
        "kind": "PersistentVolume",
        "metadata": _metadata(name, None, extra_labels),
        "spec": {
            "capacity": {"storage": validate_quantity(size, "volumeSize")},
            "volumeMode": "Filesystem",
            "accessModes": ["ReadWriteOnce"],
            "persistentVolumeReclaimPolicy": "Delete",
            "storageClassName": validate_subdomain(storage_class, "storageClass"),
            "local": {"path": path},
            "nodeAffinity": {
                "required": {
                    "nodeSelectorTerms": [
                        {
                            "matchExpressions": [
                                {
                                    "key": "kubernetes.io/hostname",
                                    "operator": "In",
                                    "values": [validate_node_name(node)],
                                }
                            ]
                        }
                    ]
                }
            },
        },
    }


def secret(
    name: str,
    namespace: str,
    data: Mapping[str, str],
    extra_labels: Mapping[str, str] | None = None,
) -> dict:
    validate_subdomain(name, "name")
    validate_name(namespace, "namespace")
    return {
        "apiVersion": "v1",
        "kind": "Secret",
        "metadata": _metadata(name, namespace, extra_labels),
        "type": "Opaque",
        "stringData": dict(data),
    }


def horizontal_pod_autoscaler(
    target: str,
    namespace: str,
    *,
    min_replicas: int,
    max_replicas: int,
    cpu_target: int,
    memory_target: int,
) -> dict:
    validate_name(target, "targetDeployment")
    validate_name(namespace, "namespace")
    if min_replicas > max_replicas:
        raise InvalidParameter(
            "minReplicas", f"{min_replicas} is greater than maxReplicas {max_replicas}"
        )

    def _metric(resource: str, utilization: int) -> dict:
        return {
            "type": "Resource",
            "resource": {
                "name": resource,
                "target": {"type": "Utilization", "averageUtilization": int(utilization)},
            },
        }

    return {
        "apiVersion": "autoscaling/v2",
        "kind": "HorizontalPodAutoscaler",
        "metadata": _metadata(f"{target}-hpa", namespace),
        "spec": {
            "scaleTargetRef": {"apiVersion": "apps/v1", "kind": "Deployment", "name": target},
            "minReplicas": int(min_replicas),
            "maxReplicas": int(max_replicas),
            "metrics": [_metric("cpu", cpu_target), _metric("memory", memory_target)],
        },
    }


def _pod_selector(selector: Mapping[str, Any]) -> dict:
    if selector and set(selector) <= {"matchLabels", "matchExpressions"}:
        result: dict[str, Any] = {}
        if "matchLabels" in selector:
            result["matchLabels"] = validate_labels(selector["matchLabels"], "podSelector.matchLabels")
        if "matchExpressions" in selector:
            if not isinstance(selector["matchExpressions"], list):
                raise InvalidParameter("podSelector.matchExpressions", "must be an array")
            result["matchExpressions"] = selector["matchExpressions"]
        return result
    labels = validate_labels(selector, "podSelector")
    return {"matchLabels": labels} if labels else {}


def network_policy(
    name: str,
    namespace: str,
    pod_selector: Mapping[str, Any],
    ingress: Sequence[Mapping[str, Any]] = (),
    egress: Sequence[Mapping[str, Any]] = (),
) -> dict:
    """With no ingress and no egress rules the policy denies all traffic both ways."""
    validate_name(name)
    validate_name(namespace, "namespace")
    for field, rules in (("ingress", ingress), ("egress", egress)):
        for i, rule in enumerate(rules):
            if not isinstance(rule, Mapping):
                raise InvalidParameter(f"{field}[{i}]", "each rule must be an object")

    spec: dict[str, Any] = {"podSelector": _pod_selector(pod_selector), "policyTypes": []}
    if ingress:
        spec["policyTypes"].append("Ingress")
        spec["ingress"] = [dict(r) for r in ingress]
    if egress:
        spec["policyTypes"].append("Egress")
        spec["egress"] = [dict(r) for r in egress]
    if not ingress and not egress:
        spec["policyTypes"] = ["Ingress", "Egress"]
        spec["ingress"] = []
        spec["egress"] = []
    return {
        "apiVersion": "networking.k8s.io/v1",
        "kind": "NetworkPolicy",
        "metadata": _metadata(name, namespace),
        "spec": spec,
    }


def pause_pod(name: str, namespace: str, app: str, iteration: int, test: str) -> dict:
    """Minimal placeholder pod used by density tests."""
    validate_name(name)
    validate_name(namespace, "namespace")
    return {
        "apiVersion": "v1",
        "kind": "Pod",
        "metadata": _metadata(
            name,
            namespace,
            {"app": app, "test-iteration": str(iteration), TEST_LABEL: test},
        ),
        "spec": {
            "containers": [
                {
                    "name": "pause",
                    "image": PAUSE_IMAGE,
                    "resources": {
                        "requests": {"memory": "10Mi", "cpu": "1m"},
                        "limits": {"memory": "20Mi", "cpu": "10m"},
                    },
                }
            ],
            "restartPolicy": "Never",
        },
    }


def workload_pod(
    name: str,
    namespace: str,
    image: str,
    command: Sequence[str],
    *,
    test: str,
    ports: Sequence[int] = (),
    labels: Mapping[str, str] | None = None,
) -> dict:
    validate_name(name)
    validate_name(namespace, "namespace")
    container: dict[str, Any] = {"name": name, "image": validate_image(image), "command": list(command)}
    if ports:
        container["ports"] = [{"containerPort": p} for p in ports]
    return {
        "apiVersion": "v1",
        "kind": "Pod",
        "metadata": _metadata(name, namespace, {**(labels or {}), TEST_LABEL: test}),
        "spec": {"containers": [container]},
    }


def job(
    name: str,
    namespace: str,
    image: str,
    command: Sequence[str],
    *,
    test: str,
    args: Sequence[str] = (),
    resources: Mapping[str, Any] | None = None,
    env: Sequence[Mapping[str, Any]] = (),
    volume_mounts: Sequence[Mapping[str, Any]] = (),
    volumes: Sequence[Mapping[str, Any]] = (),
    node_selector: Mapping[str, str] | None = None,
    container_name: str = "benchmark",
) -> dict:
    """One-shot benchmark job: never restarted, no retries."""
    validate_name(name)
    validate_name(namespace, "namespace")
    container: dict[str, Any] = {
        "name": container_name,
        "image": validate_image(image),
        "command": list(command),
    }
    if args:
        container["args"] = list(args)
    if resources:
        container["resources"] = dict(resources)
    if env:
        container["env"] = list(env)
    if volume_mounts:
        container["volumeMounts"] = list(volume_mounts)

    pod_spec: dict[str, Any] = {"containers": [container], "restartPolicy": "Never"}
    if volumes:
        pod_spec["volumes"] = list(volumes)
    if node_selector:
        pod_spec["nodeSelector"] = validate_labels(node_selector, "nodeSelector")

    labels = {TEST_LABEL: test}
    return {
        "apiVersion": "batch/v1",
        "kind": "Job",
        "metadata": _metadata(name, namespace, labels),
        "spec": {
            "backoffLimit": 0,
            "template": {"metadata": {"labels": _labels(labels)}, "spec": pod_spec},
        },
    }


# ---------------------------------------------------------------------------
# Node commands
# ---------------------------------------------------------------------------

def node_debug_command(node: str, command: Sequence[str]) -> list[str]:
    """Run ``command`` in the host namespace of ``node`` through a debug pod."""
    return ["oc", "debug", f"node/{validate_node_name(node)}", "--", "chroot", "/host", *command]


def service_status_command(unit: str) -> list[str]:
    return ["systemctl", "is-active", validate_unit(unit)]


def journal_command(hours: int, *, unit: str | None = None, lines: int = 50) -> list[str]:
    if isinstance(hours, bool) or not isinstance(hours, int) or hours < 1:
        raise InvalidParameter("hoursBack", "must be a positive whole number of hours")
    command = ["journalctl", f"--since=-{hours}h", f"--lines={int(lines)}", "--no-pager"]
    if unit:
        command += ["-u", validate_unit(unit)]
    return command
