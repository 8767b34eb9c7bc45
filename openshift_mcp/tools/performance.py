"""
Performance test tools.

Each runner has three phases selected by ``operation``: ``create`` sets up
the test objects and runs the workload, ``cleanup`` tears them down, ``both``
does the two in sequence (teardown runs even when the workload fails).
Readiness and completion are awaited by polling cluster state with backoff,
bounded by the test duration plus a grace period.

Tools:
  run_kube_burner         — pod density test (node-density, cluster-density-v2, ...)
  run_storage_benchmark   — fio job against a fresh PVC
  run_network_test        — iperf3 client job against an iperf3 server pod
  run_cpu_stress_test     — stress job with CPU and/or memory workers
  run_database_benchmark  — pgbench / sysbench job against an existing database
"""

from __future__ import annotations

import json
import re
import shlex
import sys
import time
import uuid
from collections import Counter

from mcp.types import Tool, ToolAnnotations

from openshift_mcp import manifests
from openshift_mcp.errors import (
    ErrorKind,
    ExecutionError,
    InvalidParameter,
    NotFoundError,
    ToolFailure,
    UnsupportedValueError,
)
from openshift_mcp.formatters import truncate
from openshift_mcp.manifests import TEST_LABEL
from openshift_mcp.polling import wait_until
from openshift_mcp.quantities import parse_duration, parse_memory_size

KUBE_BURNER_TEST = "kube-burner"
NAMESPACE_DELETE_TIMEOUT = "300s"
JOB_GRACE_SECONDS = 60
DB_PREPARE_GRACE_SECONDS = 300
SERVER_READY_TIMEOUT = 120

FIO_IMAGE = "quay.io/openshift/origin-tests:latest"
IPERF_IMAGE = "networkstatic/iperf3"
STRESS_IMAGE = "polinux/stress"
PGBENCH_IMAGE = "postgres:13"
SYSBENCH_IMAGE = "perconalab/sysbench"

FIO_DATA_PATH = "/tmp/fio-test-data"
LOCAL_STORAGE_CLASS = "local-storage"
IPERF_PORT = 5201
IPERF_SERVER = "iperf3-server"

_RUN = ToolAnnotations(readOnlyHint=False, destructiveHint=True, idempotentHint=False, openWorldHint=True)

_OPERATION = {
    "type": "string",
    "enum": ["create", "cleanup", "both"],
    "description": "create: set up and run; cleanup: delete test objects; both: run then clean up.",
    "default": "both",
}


def _namespace(default: str) -> dict:
    return {"type": "string", "description": "Namespace for test resources.", "default": default}


PERFORMANCE_TOOLS: list[Tool] = [
    Tool(
        name="run_kube_burner",
        description="Execute cluster density testing with kube-burner style pod batches to measure scheduling performance.",
        inputSchema={
            "type": "object",
            "properties": {
                "testType": {
                    "type": "string",
                    "enum": ["cluster-density-v2", "node-density", "pvc-density", "crd-scale"],
                    "description": "Type of density test to run.",
                    "default": "cluster-density-v2",
                },
                "iterations": {
                    "type": "integer",
                    "description": "Number of test iterations (node-density: 10 pods each, others: 5).",
                    "minimum": 1,
                    "maximum": 100,
                    "default": 5,
                },
                "namespace": _namespace("kube-burner-test"),
                "timeout": {
                    "type": "string",
                    "description": "Test timeout, e.g. '10m' or '90s'.",
                    "default": "10m",
                },
                "operation": {**_OPERATION, "default": "create"},
                "cleanup": {
                    "type": "boolean",
                    "description": "Delete the test namespace after a create run.",
                    "default": True,
                },
            },
            "additionalProperties": False,
        },
        annotations=_RUN,
    ),
    Tool(
        name="run_storage_benchmark",
        description="Run storage performance benchmarks using fio workloads.",
        inputSchema={
            "type": "object",
            "properties": {
                "testType": {
                    "type": "string",
                    "enum": ["sequential-read", "sequential-write", "random-read", "random-write", "mixed"],
                    "description": "Type of storage test.",
                    "default": "mixed",
                },
                "blockSize": {"type": "string", "description": "I/O block size.", "default": "4k"},
                "duration": {"type": "string", "description": "Test duration.", "default": "60s"},
                "storageClass": {
                    "type": "string",
                    "description": "Storage class to test (optional; a node-local volume is used when omitted).",
                },
                "volumeSize": {"type": "string", "description": "Size of the test volume.", "default": "10Gi"},
                "namespace": _namespace("storage-benchmark"),
                "operation": _OPERATION,
            },
            "additionalProperties": False,
        },
        annotations=_RUN,
    ),
    Tool(
        name="run_network_test",
        description="Test network throughput between pods using iperf3.",
        inputSchema={
            "type": "object",
            "properties": {
                "testType": {
                    "type": "string",
                    "enum": ["throughput", "latency", "packet-loss"],
                    "description": "Type of network test (latency and packet-loss run over UDP).",
                    "default": "throughput",
                },
                "duration": {"type": "string", "description": "Test duration.", "default": "30s"},
                "parallel": {
                    "type": "integer",
                    "description": "Number of parallel streams.",
                    "minimum": 1,
                    "maximum": 128,
                    "default": 1,
                },
                "protocol": {
                    "type": "string",
                    "enum": ["tcp", "udp"],
                    "description": "Network protocol.",
                    "default": "tcp",
                },
                "bandwidth": {"type": "string", "description": "Target bandwidth for UDP tests.", "default": "1G"},
                "namespace": _namespace("network-test"),
                "operation": _OPERATION,
            },
            "additionalProperties": False,
        },
        annotations=_RUN,
    ),
    Tool(
        name="run_cpu_stress_test",
        description="Perform CPU and memory stress testing on worker nodes.",
        inputSchema={
            "type": "object",
            "properties": {
                "testType": {
                    "type": "string",
                    "enum": ["cpu", "memory", "combined"],
                    "description": "Type of stress test.",
                    "default": "combined",
                },
                "duration": {"type": "string", "description": "Test duration.", "default": "2m"},
                "cpuCores": {
                    "type": "integer",
                    "description": "Number of CPU workers (and cores requested).",
                    "minimum": 1,
                    "default": 2,
                },
                "memorySize": {"type": "string", "description": "Amount of memory to stress, e.g. 512M or 1G.", "default": "1G"},
                "nodeSelector": {"type": "object", "description": "Node selector for targeting specific nodes."},
                "namespace": _namespace("stress-test"),
                "operation": _OPERATION,
            },
            "additionalProperties": False,
        },
        annotations=_RUN,
    ),
    Tool(
        name="run_database_benchmark",
        description="Execute database performance tests with pgbench (PostgreSQL) or sysbench (MySQL).",
        inputSchema={
            "type": "object",
            "required": ["dbType"],
            "properties": {
                "dbType": {
                    "type": "string",
                    "enum": ["postgresql", "mysql"],
                    "description": "Database type to test.",
                },
                "testType": {
                    "type": "string",
                    "enum": ["oltp_read_write", "oltp_read_only", "oltp_write_only"],
                    "description": "Type of database test.",
                    "default": "oltp_read_write",
                },
                "threads": {"type": "integer", "description": "Number of client threads.", "minimum": 1, "default": 10},
                "duration": {"type": "string", "description": "Test duration.", "default": "60s"},
                "tableSize": {
                    "type": "integer",
                    "description": "Number of rows in the test tables.",
                    "minimum": 1,
                    "default": 100000,
                },
                "host": {
                    "type": "string",
                    "description": "Database service host. Defaults to the dbType, the service name deploy_database uses for an instance named after its engine.",
                },
                "port": {"type": "integer", "minimum": 1, "maximum": 65535, "description": "Database port (engine default when omitted)."},
                "user": {"type": "string", "description": "Database user (postgres / root when omitted)."},
                "database": {"type": "string", "description": "Database name (first label of host when omitted)."},
                "credentialsSecret": {
                    "type": "string",
                    "description": "Secret in the test namespace whose 'password' key holds the password (<host>-credentials when omitted).",
                },
                "namespace": _namespace("db-benchmark"),
                "operation": _OPERATION,
            },
            "additionalProperties": False,
        },
        annotations=_RUN,
    ),
]


# ---------------------------------------------------------------------------
# Shared phases
# ---------------------------------------------------------------------------

def _suffix() -> str:
    return uuid.uuid4().hex[:8]


async def _poll(ctx, probe, timeout: float):
    return await wait_until(
        probe,
        timeout=timeout,
        initial_interval=ctx.settings.poll_initial_interval,
        max_interval=ctx.settings.poll_max_interval,
    )


async def _wait_for_job(ctx, name: str, namespace: str, timeout: float) -> tuple[bool, dict]:
    async def probe():
        job = await ctx.cluster.get("job", name, namespace)
        status = job.get("status") or {}
        return bool(status.get("succeeded") or status.get("failed")), status

    return await _poll(ctx, probe, timeout)


async def _job_logs(ctx, name: str, namespace: str) -> str:
    try:
        return await ctx.cluster.logs(f"job/{name}", namespace)
    except ToolFailure as e:
        print(f"WARNING: could not read logs of job {name}: {e}", file=sys.stderr)
        return f"Failed to retrieve logs: {e}"


async def _run_job(ctx, docs: list[dict], name: str, namespace: str, timeout: float) -> dict:
    """Apply ``docs`` (ending with the job), wait for the job and collect its logs."""
    await ctx.cluster.apply(docs)
    completed, status = await _wait_for_job(ctx, name, namespace, timeout)
    if not completed:
        print(f"WARNING: job {name} did not finish within {timeout:g}s", file=sys.stderr)
    logs = await _job_logs(ctx, name, namespace)
    return {
        "job": name,
        "completed": completed,
        "succeeded": int(status.get("succeeded") or 0),
        "failed": int(status.get("failed") or 0),
        "logs": logs,
    }


async def _teardown(ctx, test: str, namespace: str, cluster_scoped: tuple = ()) -> dict:
    selector = f"{TEST_LABEL}={test}"
    await ctx.cluster.delete_selected(["job", "pod", "persistentvolumeclaim"], selector, namespace)
    for kind in cluster_scoped:
        await ctx.cluster.delete_selected([kind], selector)
    return {"selector": selector, "status": "Completed"}


async def _run_phases(ctx, args: dict, test: str, execute, cluster_scoped: tuple = ()) -> dict:
    namespace = manifests.validate_name(args["namespace"], "namespace")
    operation = args["operation"]
    ctx.check_namespace_writable(namespace)
    result: dict = {"namespace": namespace, "operation": operation}

    if operation == "cleanup":
        result["cleanup"] = await _teardown(ctx, test, namespace, cluster_scoped)
    else:
        try:
            result["namespaceCreated"] = await ctx.cluster.ensure_namespace(namespace)
            result.update(await execute(namespace))
        finally:
            if operation == "both":
                try:
                    result["cleanup"] = await _teardown(ctx, test, namespace, cluster_scoped)
                except ToolFailure as e:
                    print(f"WARNING: cleanup of {test} objects in {namespace} failed: {e}", file=sys.stderr)
                    result["cleanup"] = {"status": f"Cleanup failed: {e}"}
    result["status"] = "Completed"
    return result


def _json_document(logs: str):
    """The JSON object embedded in ``logs``, or None when there is none."""
    start = logs.find("{")
    if start < 0:
        return None
    try:
        return json.loads(logs[start:])
    except ValueError:
        return None


# ---------------------------------------------------------------------------
# kube-burner style density
# ---------------------------------------------------------------------------

def density_pods(test_type: str, iterations: int, namespace: str) -> list[dict]:
    if test_type == "node-density":
        count, prefix, app = iterations * 10, "density-test-pod", "node-density-test"
    else:
        count, prefix, app = iterations * 5, "test-pod", f"{test_type}-test"
    return [
        manifests.pause_pod(f"{prefix}-{i}", namespace, app, i, KUBE_BURNER_TEST)
        for i in range(1, count + 1)
    ]


async def _delete_density_namespace(ctx, namespace: str) -> dict:
    try:
        await ctx.cluster.read_namespace(namespace)
    except NotFoundError:
        return {"status": "Namespace not found - already clean"}
    pods = await ctx.cluster.list_pods(namespace)
    start = time.monotonic()
    await ctx.cluster.delete(
        "namespace", namespace,
        wait=True,
        timeout=NAMESPACE_DELETE_TIMEOUT,
        exec_timeout=parse_duration(NAMESPACE_DELETE_TIMEOUT) + 30,
    )
    return {
        "podsDeleted": len(pods),
        "duration": f"{round(time.monotonic() - start)}s",
        "status": "Completed",
    }


async def _create_density(ctx, test_type: str, namespace: str, pods: list[dict], budget: int) -> dict:
    namespace_created = await ctx.cluster.ensure_namespace(namespace)
    start = time.monotonic()
    await ctx.cluster.apply(pods, timeout=budget)
    selector = f"{TEST_LABEL}={KUBE_BURNER_TEST}"

    async def scheduled():
        current = await ctx.cluster.list_pods(namespace, selector=selector)
        pending = [p for p in current if (p.get("status") or {}).get("phase", "Pending") == "Pending"]
        return len(current) >= len(pods) and not pending, current

    remaining = max(budget - (time.monotonic() - start), 1)
    reached, current = await _poll(ctx, scheduled, remaining)
    if not reached:
        print(f"WARNING: density pods in {namespace} still pending after {budget}s", file=sys.stderr)

    phases = Counter((p.get("status") or {}).get("phase", "Unknown") for p in current)
    nodes = Counter((p.get("spec") or {}).get("nodeName") or "<unscheduled>" for p in current)
    return {
        "podsCreated": len(pods),
        "testType": test_type,
        "namespaceCreated": namespace_created,
        "duration": f"{round(time.monotonic() - start)}s",
        "readinessReached": reached,
        "phases": dict(phases),
        "nodes": dict(nodes),
        "status": "Completed",
    }


async def handle_kube_burner(ctx, args: dict) -> dict:
    test_type, iterations = args["testType"], args["iterations"]
    namespace = manifests.validate_name(args["namespace"], "namespace")
    operation = args["operation"]
    budget = parse_duration(args["timeout"])
    pods = density_pods(test_type, iterations, namespace) if operation != "cleanup" else []
    ctx.check_namespace_writable(namespace)

    result: dict = {
        "testType": test_type,
        "iterations": iterations,
        "namespace": namespace,
        "timeout": args["timeout"],
        "operation": operation,
        "status": "Started",
    }

    if operation in ("cleanup", "both"):
        print(f"Starting cleanup of namespace {namespace}", file=sys.stderr)
        result["cleanup"] = await _delete_density_namespace(ctx, namespace)

    if operation in ("create", "both"):
        print(f"Creating {len(pods)} {test_type} pods in {namespace}", file=sys.stderr)
        result["creation"] = await _create_density(ctx, test_type, namespace, pods, budget)

        if args["cleanup"] and operation == "create":
            try:
                await ctx.cluster.delete(
                    "namespace", namespace,
                    wait=True,
                    timeout=NAMESPACE_DELETE_TIMEOUT,
                    exec_timeout=parse_duration(NAMESPACE_DELETE_TIMEOUT) + 30,
                )
                result["cleanup"] = {"status": "Automatic cleanup completed"}
            except ToolFailure as e:
                print(f"WARNING: automatic cleanup of {namespace} failed: {e}", file=sys.stderr)
                result["cleanup"] = {"status": f"Cleanup failed: {e}"}

    result["status"] = "Completed"
    return result


# ---------------------------------------------------------------------------
# Storage (fio)
# ---------------------------------------------------------------------------

_FIO_RW = {
    "sequential-read": ["--rw=read"],
    "sequential-write": ["--rw=write"],
    "random-read": ["--rw=randread"],
    "random-write": ["--rw=randwrite"],
    "mixed": ["--rw=randrw", "--rwmixread=70"],
}


def fio_args(test_type: str, block_size: str, seconds: int) -> list[str]:
    return [
        "--name=test",
        "--filename=/data/testfile",
        "--size=1G",
        f"--bs={block_size}",
        f"--runtime={seconds}s",
        "--output-format=json",
        *_FIO_RW.get(test_type, _FIO_RW["mixed"]),
    ]


def fio_summary(logs: str) -> dict | None:
    """Per-direction IOPS, bandwidth (KiB/s) and mean latency (us) from fio JSON output."""
    doc = _json_document(logs)
    if not isinstance(doc, dict) or not doc.get("jobs"):
        return None
    job = doc["jobs"][0]
    summary = {}
    for direction in ("read", "write"):
        stats = job.get(direction) or {}
        if not stats.get("io_bytes") and not stats.get("iops"):
            continue
        summary[direction] = {
            "iops": round(float(stats.get("iops") or 0), 2),
            "bandwidthKiBps": stats.get("bw", 0),
            "meanLatencyUs": round(float((stats.get("lat_ns") or {}).get("mean") or 0) / 1000, 2),
        }
    return summary


async def _first_node(ctx) -> str:
    for node in await ctx.cluster.list_nodes():
        name = (node.get("metadata") or {}).get("name")
        if name:
            return name
    raise NotFoundError("No nodes found in cluster")


async def handle_storage_benchmark(ctx, args: dict) -> dict:
    test_type = args["testType"]
    block_size = manifests.validate_block_size(args["blockSize"])
    volume_size = manifests.validate_quantity(args["volumeSize"], "volumeSize")
    storage_class = args.get("storageClass")
    if storage_class:
        manifests.validate_subdomain(storage_class, "storageClass")
    seconds = parse_duration(args["duration"])
    suffix = _suffix()
    claim_name = f"fio-test-{suffix}"
    job_name = f"fio-{test_type}-{suffix}"
    labels = {TEST_LABEL: "storage"}

    async def execute(namespace: str) -> dict:
        docs: list[dict] = []
        node = None
        if not storage_class:
            node = await _first_node(ctx)
            try:
                await ctx.cluster.node_exec(node, ["mkdir", "-p", FIO_DATA_PATH])
            except ToolFailure as e:
                print(f"WARNING: could not create {FIO_DATA_PATH} on {node}: {e}", file=sys.stderr)
            docs.append(manifests.local_persistent_volume(
                f"fio-pv-{suffix}", volume_size, FIO_DATA_PATH, node, LOCAL_STORAGE_CLASS, labels
            ))
        docs.append(manifests.persistent_volume_claim(
            claim_name, namespace, volume_size,
            storage_class=storage_class or LOCAL_STORAGE_CLASS,
            extra_labels=labels,
        ))
        docs.append(manifests.job(
            job_name, namespace, FIO_IMAGE, ["fio"],
            test="storage",
            args=fio_args(test_type, block_size, seconds),
            volume_mounts=[{"name": "test-data", "mountPath": "/data"}],
            volumes=[{"name": "test-data", "persistentVolumeClaim": {"claimName": claim_name}}],
            container_name="fio",
        ))
        run = await _run_job(ctx, docs, job_name, namespace, seconds + JOB_GRACE_SECONDS)
        logs = run.pop("logs")
        return {
            "testType": test_type,
            "blockSize": block_size,
            "duration": args["duration"],
            "volumeSize": volume_size,
            "storageClass": storage_class or LOCAL_STORAGE_CLASS,
            "node": node,
            **run,
            "results": fio_summary(logs),
            "logs": truncate(logs),
        }

    return await _run_phases(ctx, args, "storage", execute, cluster_scoped=("persistentvolume",))


# ---------------------------------------------------------------------------
# Network (iperf3)
# ---------------------------------------------------------------------------

def iperf_client_command(server_ip: str, seconds: int, parallel: int, udp: bool, bandwidth: str) -> list[str]:
    command = ["iperf3", "-c", server_ip, "-t", str(seconds), "-P", str(parallel), "--json"]
    if udp:
        command += ["-u", "-b", bandwidth]
    return command


def iperf_summary(logs: str) -> dict | None:
    doc = _json_document(logs)
    if not isinstance(doc, dict) or "end" not in doc:
        return None
    end = doc["end"]
    summary = {}
    sent, received = end.get("sum_sent") or {}, end.get("sum_received") or {}
    if sent:
        summary["sentMbps"] = round(sent.get("bits_per_second", 0) / 1e6, 2)
        if "retransmits" in sent:
            summary["retransmits"] = sent["retransmits"]
    if received:
        summary["receivedMbps"] = round(received.get("bits_per_second", 0) / 1e6, 2)
    udp = end.get("sum") or {}
    if "jitter_ms" in udp:
        summary["throughputMbps"] = round(udp.get("bits_per_second", 0) / 1e6, 2)
        summary["jitterMs"] = udp["jitter_ms"]
        summary["lostPercent"] = udp.get("lost_percent", 0)
    return summary


async def _server_ip(ctx, namespace: str) -> str:
    async def probe():
        pod = await ctx.cluster.get("pod", IPERF_SERVER, namespace)
        status = pod.get("status") or {}
        ip = status.get("podIP")
        return bool(ip and status.get("phase") == "Running"), ip

    ready, ip = await _poll(ctx, probe, SERVER_READY_TIMEOUT)
    if not ready:
        raise ExecutionError(
            ErrorKind.TIMEOUT,
            f"iperf3 server pod did not become ready within {SERVER_READY_TIMEOUT}s",
        )
    return ip


async def handle_network_test(ctx, args: dict) -> dict:
    test_type, protocol = args["testType"], args["protocol"]
    bandwidth = manifests.validate_bandwidth(args["bandwidth"])
    parallel = args["parallel"]
    seconds = parse_duration(args["duration"])
    udp = protocol == "udp" or test_type in ("latency", "packet-loss")
    job_name = f"iperf3-client-{_suffix()}"

    async def execute(namespace: str) -> dict:
        await ctx.cluster.apply([manifests.workload_pod(
            IPERF_SERVER, namespace, IPERF_IMAGE, ["iperf3", "-s"],
            test="network", ports=[IPERF_PORT], labels={"app": IPERF_SERVER},
        )])
        server_ip = await _server_ip(ctx, namespace)
        client = manifests.job(
            job_name, namespace, IPERF_IMAGE,
            iperf_client_command(server_ip, seconds, parallel, udp, bandwidth),
            test="network",
            container_name="iperf3",
        )
        run = await _run_job(ctx, [client], job_name, namespace, seconds + JOB_GRACE_SECONDS)
        logs = run.pop("logs")
        return {
            "testType": test_type,
            "duration": args["duration"],
            "parallel": parallel,
            "protocol": "udp" if udp else "tcp",
            "bandwidth": bandwidth if udp else None,
            "serverIP": server_ip,
            **run,
            "results": iperf_summary(logs),
            "logs": truncate(logs),
        }

    return await _run_phases(ctx, args, "network", execute)


# ---------------------------------------------------------------------------
# CPU / memory stress
# ---------------------------------------------------------------------------

STRESS_MEMORY_HEADROOM = 64 * 1024 ** 2


def stress_args(test_type: str, seconds: int, cpu_cores: int, memory_bytes: int) -> list[str]:
    args = ["--timeout", f"{seconds}s"]
    if test_type in ("cpu", "combined"):
        args += ["--cpu", str(cpu_cores)]
    if test_type in ("memory", "combined"):
        args += ["--vm", "1", "--vm-bytes", f"{memory_bytes}b"]
    return args


def stress_resources(test_type: str, cpu_cores: int, memory_bytes: int) -> dict:
    """Requests equal limits so the pod lands on a node that can actually take the load."""
    memory = STRESS_MEMORY_HEADROOM
    if test_type in ("memory", "combined"):
        memory += memory_bytes
    amounts = {"cpu": f"{cpu_cores * 1000}m", "memory": f"{memory // 1024 ** 2}Mi"}
    return {"requests": dict(amounts), "limits": dict(amounts)}


async def handle_cpu_stress_test(ctx, args: dict) -> dict:
    test_type, cpu_cores = args["testType"], args["cpuCores"]
    seconds = parse_duration(args["duration"])
    memory_bytes = parse_memory_size(args["memorySize"])
    node_selector = manifests.validate_labels(args.get("nodeSelector") or {}, "nodeSelector")
    job_name = f"stress-test-{test_type}-{_suffix()}"

    async def execute(namespace: str) -> dict:
        doc = manifests.job(
            job_name, namespace, STRESS_IMAGE, ["stress"],
            test="stress",
            args=stress_args(test_type, seconds, cpu_cores, memory_bytes),
            resources=stress_resources(test_type, cpu_cores, memory_bytes),
            node_selector=node_selector,
            container_name="stress",
        )
        run = await _run_job(ctx, [doc], job_name, namespace, seconds + JOB_GRACE_SECONDS)
        return {
            "testType": test_type,
            "duration": args["duration"],
            "cpuCores": cpu_cores,
            "memorySize": args["memorySize"],
            "nodeSelector": node_selector,
            **run,
            "logs": truncate(run["logs"]),
        }

    return await _run_phases(ctx, args, "stress", execute)


# ---------------------------------------------------------------------------
# Database benchmark
# ---------------------------------------------------------------------------

_DB_DEFAULTS = {
    "postgresql": {"port": 5432, "user": "postgres", "image": PGBENCH_IMAGE, "password_env": "PGPASSWORD"},
    "mysql": {"port": 3306, "user": "root", "image": SYSBENCH_IMAGE, "password_env": "DB_PASSWORD"},
}

_PGBENCH_MODE = {"oltp_read_write": [], "oltp_read_only": ["-S"], "oltp_write_only": ["-N"]}

_USER = re.compile(r"^[A-Za-z_][A-Za-z0-9_.\-]*$")


def benchmark_script(
    db_type: str,
    test_type: str,
    *,
    host: str,
    port: int,
    user: str,
    database: str,
    threads: int,
    seconds: int,
    table_size: int,
) -> str:
    """Shell script that prepares the benchmark data and then runs the benchmark."""
    if db_type == "postgresql":
        conn = ["-h", host, "-p", str(port), "-U", user]
        scale = max(1, table_size // 100000)
        prepare = ["pgbench", "-i", "-s", str(scale), *conn, database]
        run = [
            "pgbench", *conn,
            "-c", str(threads), "-j", str(min(threads, 4)), "-T", str(seconds),
            *_PGBENCH_MODE[test_type], database,
        ]
        return f"{shlex.join(prepare)} && {shlex.join(run)}"
    if db_type == "mysql":
        base = shlex.join([
            "sysbench", test_type,
            f"--mysql-host={host}", f"--mysql-port={port}", f"--mysql-user={user}",
            f"--mysql-db={database}", f"--threads={threads}", f"--time={seconds}",
            f"--table-size={table_size}",
        ])
        password = '--mysql-password="$DB_PASSWORD"'
        return f"{base} {password} prepare && {base} {password} run"
    raise UnsupportedValueError(f"Unsupported database type: {db_type}")


_PGBENCH_TPS = re.compile(r"tps = ([\d.]+)")
_PGBENCH_LATENCY = re.compile(r"latency average = ([\d.]+) ms")
_SYSBENCH_TPS = re.compile(r"transactions:\s+\d+\s+\(([\d.]+) per sec")
_SYSBENCH_QPS = re.compile(r"queries:\s+\d+\s+\(([\d.]+) per sec")
_SYSBENCH_LATENCY = re.compile(r"avg:\s+([\d.]+)")


def benchmark_summary(db_type: str, logs: str) -> dict | None:
    patterns = (
        (("tps", _PGBENCH_TPS), ("latencyAvgMs", _PGBENCH_LATENCY))
        if db_type == "postgresql"
        else (("tps", _SYSBENCH_TPS), ("qps", _SYSBENCH_QPS), ("latencyAvgMs", _SYSBENCH_LATENCY))
    )
    summary = {}
    for key, pattern in patterns:
        match = pattern.search(logs)
        if match:
            summary[key] = float(match.group(1))
    return summary or None


async def handle_database_benchmark(ctx, args: dict) -> dict:
    db_type, test_type = args["dbType"], args["testType"]
    defaults = _DB_DEFAULTS.get(db_type)
    if defaults is None:
        raise UnsupportedValueError(f"Unsupported database type: {db_type}")
    host = manifests.validate_subdomain(args.get("host") or db_type, "host")
    port = manifests.validate_port(args.get("port") or defaults["port"], "port")
    user = args.get("user") or defaults["user"]
    if not _USER.fullmatch(user):
        raise InvalidParameter("user", f"{user!r} is not a valid database user name")
    instance = host.split(".")[0]
    database = args.get("database") or instance
    if not _USER.fullmatch(database):
        raise InvalidParameter("database", f"{database!r} is not a valid database name")
    secret_name = manifests.validate_subdomain(
        args.get("credentialsSecret") or f"{instance}-credentials", "credentialsSecret"
    )
    seconds = parse_duration(args["duration"])
    script = benchmark_script(
        db_type, test_type,
        host=host, port=port, user=user, database=database,
        threads=args["threads"], seconds=seconds, table_size=args["tableSize"],
    )
    job_name = f"db-benchmark-{db_type}-{_suffix()}"

    async def execute(namespace: str) -> dict:
        doc = manifests.job(
            job_name, namespace, defaults["image"], ["sh", "-c", script],
            test="db-benchmark",
            env=[{
                "name": defaults["password_env"],
                "valueFrom": {"secretKeyRef": {"name": secret_name, "key": "password", "optional": True}},
            }],
        )
        run = await _run_job(
            ctx, [doc], job_name, namespace, seconds + JOB_GRACE_SECONDS + DB_PREPARE_GRACE_SECONDS
        )
        logs = run.pop("logs")
        return {
            "dbType": db_type,
            "testType": test_type,
            "threads": args["threads"],
            "duration": args["duration"],
            "tableSize": args["tableSize"],
            "host": host,
            "port": port,
            "credentialsSecret": secret_name,
            **run,
            "results": benchmark_summary(db_type, logs),
            "logs": truncate(logs),
        }

    return await _run_phases(ctx, args, "db-benchmark", execute)


PERFORMANCE_HANDLERS = {
    "run_kube_burner": handle_kube_burner,
    "run_storage_benchmark": handle_storage_benchmark,
    "run_network_test": handle_network_test,
    "run_cpu_stress_test": handle_cpu_stress_test,
    "run_database_benchmark": handle_database_benchmark,
}
