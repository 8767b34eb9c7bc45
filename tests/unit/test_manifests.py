"""
Unit tests for openshift_mcp/manifests.py — allow-lists, manifest shapes and node commands.
"""

from __future__ import annotations

import pytest
import yaml

from openshift_mcp import manifests
from openshift_mcp.errors import InvalidParameter, ValidationError

RESOURCES = {"cpuRequest": "100m", "memoryRequest": "128Mi", "cpuLimit": "500m", "memoryLimit": "512Mi"}


# ---------------------------------------------------------------------------
# Allow-lists
# ---------------------------------------------------------------------------

@pytest.mark.parametrize("name", ["web", "web-1", "a", "x" * 63, "0abc"])
def test_validate_name_accepts_dns_labels(name):
    assert manifests.validate_name(name) == name


@pytest.mark.parametrize(
    "name",
    ["", "Web", "-web", "web-", "web_1", "x" * 64, "web;rm -rf /", "web\nkind: Secret", "a.b", None, 5],
)
def test_validate_name_rejects(name):
    with pytest.raises(InvalidParameter) as exc:
        manifests.validate_name(name, "namespace")
    assert exc.value.field == "namespace"


def test_invalid_parameter_is_a_validation_error():
    with pytest.raises(ValidationError):
        manifests.validate_name("BAD")


def test_validate_subdomain_allows_dots():
    assert manifests.validate_subdomain("ip-10-0-1-5.ec2.internal", "node") == "ip-10-0-1-5.ec2.internal"
    with pytest.raises(InvalidParameter):
        manifests.validate_subdomain("bad..name", "node")


@pytest.mark.parametrize("value", ["100m", "2", "1.5", "128Mi", "10Gi", "1G"])
def test_validate_quantity_accepts(value):
    assert manifests.validate_quantity(value, "size") == value


@pytest.mark.parametrize("value", ["", "lots", "10 Gi", "-1", "1Gi; echo", 10])
def test_validate_quantity_rejects(value):
    with pytest.raises(InvalidParameter):
        manifests.validate_quantity(value, "size")


@pytest.mark.parametrize(
    "image", ["nginx", "nginx:1.25", "quay.io/org/app@sha256:abcdef", "registry.local:5000/team/app:v1"]
)
def test_validate_image_accepts(image):
    assert manifests.validate_image(image) == image


@pytest.mark.parametrize("image", ["", "nginx latest", "$(whoami)", "app\n---"])
def test_validate_image_rejects(image):
    with pytest.raises(InvalidParameter):
        manifests.validate_image(image)


def test_validate_labels_rejects_bad_key_and_value():
    with pytest.raises(InvalidParameter):
        manifests.validate_labels({"bad key": "x"}, "selector")
    with pytest.raises(InvalidParameter):
        manifests.validate_labels({"app": "x" * 64}, "selector")


def test_validate_labels_prefixed_key():
    assert manifests.validate_labels({"app.kubernetes.io/name": "web"}, "selector") == {
        "app.kubernetes.io/name": "web"
    }


def test_validate_labels_empty_when_required():
    with pytest.raises(InvalidParameter):
        manifests.validate_labels({}, "selector", allow_empty=False)


@pytest.mark.parametrize("port", [0, 65536, True, "80", 8.5])
def test_validate_port_rejects(port):
    with pytest.raises(InvalidParameter):
        manifests.validate_port(port, "port")


def test_validate_unit():
    assert manifests.validate_unit("kubelet.service") == "kubelet.service"
    with pytest.raises(InvalidParameter):
        manifests.validate_unit("kubelet; reboot")


# ---------------------------------------------------------------------------
# Manifests
# ---------------------------------------------------------------------------

def test_deployment_shape():
    doc = manifests.deployment(
        "web", "apps", "nginx:1.25", replicas=3, resources=RESOURCES, ports=[{"containerPort": 8080}]
    )
    assert doc["kind"] == "Deployment"
    assert doc["metadata"]["labels"][manifests.MANAGED_BY_LABEL] == manifests.MANAGED_BY
    assert doc["spec"]["replicas"] == 3
    assert doc["spec"]["selector"]["matchLabels"] == {"app": "web"}
    container = doc["spec"]["template"]["spec"]["containers"][0]
    assert container["ports"] == [{"containerPort": 8080, "protocol": "TCP"}]
    assert container["resources"]["limits"] == {"cpu": "500m", "memory": "512Mi"}


def test_deployment_request_above_limit_rejected():
    bad = {**RESOURCES, "cpuRequest": "2"}
    with pytest.raises(InvalidParameter) as exc:
        manifests.deployment("web", "apps", "nginx", resources=bad)
    assert exc.value.field == "resources.cpuRequest"


def test_deployment_rejects_injection_in_namespace():
    with pytest.raises(InvalidParameter):
        manifests.deployment("web", "apps\n---\nkind: ClusterRole", "nginx", resources=RESOURCES)


def test_service_requires_selector():
    with pytest.raises(InvalidParameter):
        manifests.service("web", "apps", {}, [{"port": 80, "targetPort": 8080}])


def test_network_policy_deny_all_when_no_rules():
    doc = manifests.network_policy("deny", "apps", {})
    assert doc["spec"] == {
        "podSelector": {},
        "policyTypes": ["Ingress", "Egress"],
        "ingress": [],
        "egress": [],
    }


def test_network_policy_ingress_only():
    rule = {"from": [{"podSelector": {"matchLabels": {"role": "frontend"}}}]}
    doc = manifests.network_policy("allow-fe", "apps", {"app": "api"}, ingress=[rule])
    assert doc["spec"]["policyTypes"] == ["Ingress"]
    assert doc["spec"]["podSelector"] == {"matchLabels": {"app": "api"}}
    assert doc["spec"]["ingress"] == [rule]
    assert "egress" not in doc["spec"]


def test_network_policy_explicit_selector():
    selector = {"matchExpressions": [{"key": "tier", "operator": "In", "values": ["db"]}]}
    doc = manifests.network_policy("db", "apps", selector, egress=[{}])
    assert doc["spec"]["podSelector"] == selector
    assert doc["spec"]["policyTypes"] == ["Egress"]


def test_hpa_min_above_max_rejected():
    with pytest.raises(InvalidParameter) as exc:
        manifests.horizontal_pod_autoscaler(
            "web", "apps", min_replicas=5, max_replicas=2, cpu_target=70, memory_target=80
        )
    assert exc.value.field == "minReplicas"


def test_hpa_metrics():
    doc = manifests.horizontal_pod_autoscaler(
        "web", "apps", min_replicas=1, max_replicas=4, cpu_target=60, memory_target=75
    )
    assert doc["metadata"]["name"] == "web-hpa"
    assert doc["apiVersion"] == "autoscaling/v2"
    targets = {m["resource"]["name"]: m["resource"]["target"]["averageUtilization"] for m in doc["spec"]["metrics"]}
    assert targets == {"cpu": 60, "memory": 75}


def test_local_persistent_volume_is_pinned_to_node():
    doc = manifests.local_persistent_volume("fio-pv-1", "10Gi", "/tmp/data", "worker-0", "local-storage")
    term = doc["spec"]["nodeAffinity"]["required"]["nodeSelectorTerms"][0]["matchExpressions"][0]
    assert term == {"key": "kubernetes.io/hostname", "operator": "In", "values": ["worker-0"]}
    assert "namespace" not in doc["metadata"]


def test_job_never_retries():
    doc = manifests.job("bench", "perf", "busybox", ["true"], test="stress", node_selector={"role": "worker"})
    assert doc["spec"]["backoffLimit"] == 0
    pod_spec = doc["spec"]["template"]["spec"]
    assert pod_spec["restartPolicy"] == "Never"
    assert pod_spec["nodeSelector"] == {"role": "worker"}
    assert doc["spec"]["template"]["metadata"]["labels"][manifests.TEST_LABEL] == "stress"


def test_pause_pod_labels():
    doc = manifests.pause_pod("density-test-pod-3", "kb", "node-density-test", 3, "kube-burner")
    labels = doc["metadata"]["labels"]
    assert labels["app"] == "node-density-test"
    assert labels["test-iteration"] == "3"
    assert doc["spec"]["containers"][0]["image"] == manifests.PAUSE_IMAGE


def test_render_multi_document():
    docs = [manifests.pause_pod(f"p-{i}", "kb", "x", i, "t") for i in range(3)]
    loaded = list(yaml.safe_load_all(manifests.render(docs)))
    assert [d["metadata"]["name"] for d in loaded] == ["p-0", "p-1", "p-2"]


# ---------------------------------------------------------------------------
# Node commands
# ---------------------------------------------------------------------------

def test_node_debug_command():
    assert manifests.node_debug_command("worker-0", ["systemctl", "is-active", "kubelet"]) == [
        "oc", "debug", "node/worker-0", "--", "chroot", "/host", "systemctl", "is-active", "kubelet",
    ]


def test_node_debug_command_rejects_bad_node():
    with pytest.raises(InvalidParameter):
        manifests.node_debug_command("worker-0 && reboot", ["true"])


def test_journal_command_with_unit():
    assert manifests.journal_command(6, unit="crio.service", lines=30) == [
        "journalctl", "--since=-6h", "--lines=30", "--no-pager", "-u", "crio.service",
    ]


@pytest.mark.parametrize("hours", [0, -1, 1.5, True])
def test_journal_command_rejects_bad_hours(hours):
    with pytest.raises(InvalidParameter):
        manifests.journal_command(hours)
