"""Translate simulated nodes and jobs to KWOK-backed Kubernetes objects and back."""

from __future__ import annotations

import re
from decimal import Decimal
from typing import Dict, Optional

from kubernetes.client import (
    V1Affinity,
    V1Container,
    V1Node,
    V1NodeAffinity,
    V1NodeSelector,
    V1NodeSelectorRequirement,
    V1NodeSelectorTerm,
    V1NodeSpec,
    V1NodeStatus,
    V1NodeSystemInfo,
    V1ObjectMeta,
    V1Pod,
    V1PodSpec,
    V1ResourceRequirements,
    V1Taint,
    V1Toleration,
)
from kubernetes.utils import parse_quantity

from simbridge.state import Job, JobStatus, Node

NODE_PREFIX = "csnode-"
POD_PREFIX = "cspod-"

ID_ANNOTATION = "cloudsim.io/id"
PES_ANNOTATION = "cloudsim.io/pes"
BW_ANNOTATION = "cloudsim.io/bw"
SIZE_ANNOTATION = "cloudsim.io/size"
TYPE_ANNOTATION = "cloudsim.io/type"
MANAGED_LABEL = "app.kubernetes.io/managed-by"
MANAGED_BY = "simbridge"
HOSTNAME_LABEL = "kubernetes.io/hostname"

KWOK_TAINT_KEY = "kwok.x-k8s.io/node"
KWOK_SELECTOR = "type=kwok"

_NODE_NAME_RE = re.compile(r"csnode-(\d+)")
_MIB = 1024 * 1024


def node_object_name(node_id: int) -> str:
    return f"{NODE_PREFIX}{node_id}"


def pod_object_name(job_id: int) -> str:
    return f"{POD_PREFIX}{job_id}"


def _cpu_quantity(mips: int) -> str:
    # 1 MIPS is modelled as 1 millicore
    return f"{mips}m"


def _memory_quantity(mb: int) -> str:
    return f"{mb}Mi"


def _resource_list(mips: int, ram_mb: int) -> Dict[str, str]:
    return {"cpu": _cpu_quantity(mips), "memory": _memory_quantity(ram_mb)}


def build_node(node: Node) -> V1Node:
    """Generate a KWOK fake node for a simulated VM/container."""
    resources = _resource_list(node.mips_available, node.ram_available)
    resources["pods"] = "110"

    metadata = V1ObjectMeta(
        name=node_object_name(node.id),
        labels={
            "beta.kubernetes.io/arch": "amd64",
            "beta.kubernetes.io/os": "linux",
            "kubernetes.io/arch": "amd64",
            HOSTNAME_LABEL: node.name,
            "kubernetes.io/os": "linux",
            "kubernetes.io/role": "agent",
            "node-role.kubernetes.io/agent": "",
            "type": "kwok",
            MANAGED_LABEL: MANAGED_BY,
        },
        annotations={
            KWOK_TAINT_KEY: "fake",
            "node.alpha.kubernetes.io/ttl": "0",
            ID_ANNOTATION: str(node.id),
            PES_ANNOTATION: str(node.pes),
            BW_ANNOTATION: str(node.bw),
            SIZE_ANNOTATION: str(node.size),
            TYPE_ANNOTATION: node.type,
        },
    )
    spec = V1NodeSpec(
        taints=[V1Taint(key=KWOK_TAINT_KEY, value="fake", effect="NoSchedule")],
    )
    status = V1NodeStatus(
        phase="Running",
        allocatable=dict(resources),
        capacity=dict(resources),
        node_info=V1NodeSystemInfo(
            architecture="amd64",
            operating_system="linux",
            kubelet_version="fake",
            kube_proxy_version="fake",
            kernel_version="",
            machine_id="",
            boot_id="",
            os_image="",
            system_uuid="",
            container_runtime_version="",
        ),
    )
    return V1Node(api_version="v1", kind="Node", metadata=metadata, spec=spec, status=status)


def build_pod(job: Job, namespace: str = "default") -> V1Pod:
    """
    Generate a KWOK-compatible pod for a simulated job.

    A scheduled job is bound directly through spec.nodeName so the
    orchestrator realizes the bridge's decision instead of re-deciding it.
    """
    resources = _resource_list(job.mips_requested, job.ram_requested)
    container = V1Container(
        name="fake-container",
        image="fake-image",
        resources=V1ResourceRequirements(requests=dict(resources), limits=dict(resources)),
    )

    node_name = None
    if job.status == JobStatus.SCHEDULED and job.node_id is not None:
        node_name = node_object_name(job.node_id)

    affinity = V1Affinity(
        node_affinity=V1NodeAffinity(
            required_during_scheduling_ignored_during_execution=V1NodeSelector(
                node_selector_terms=[
                    V1NodeSelectorTerm(
                        match_expressions=[
                            V1NodeSelectorRequirement(key="type", operator="In", values=["kwok"]),
                        ]
                    )
                ]
            )
        )
    )
    spec = V1PodSpec(
        containers=[container],
        affinity=affinity,
        tolerations=[V1Toleration(key=KWOK_TAINT_KEY, operator="Exists", effect="NoSchedule")],
        node_name=node_name,
        scheduler_name=job.scheduler_name,
        restart_policy="Never",
    )
    metadata = V1ObjectMeta(
        name=pod_object_name(job.id),
        namespace=namespace,
        labels={"app": job.name or pod_object_name(job.id), MANAGED_LABEL: MANAGED_BY},
        annotations={ID_ANNOTATION: str(job.id)},
    )
    return V1Pod(api_version="v1", kind="Pod", metadata=metadata, spec=spec)


def _annotation_int(annotations: Dict[str, str], key: str, default: int = 0) -> int:
    try:
        return int(annotations.get(key, default))
    except (TypeError, ValueError):
        return default


def _id_from_name(name: Optional[str], prefix: str) -> Optional[int]:
    if name and name.startswith(prefix):
        try:
            return int(name[len(prefix):])
        except ValueError:
            return None
    return None


def _millicores(quantity: Optional[str]) -> int:
    if not quantity:
        return 0
    return int(parse_quantity(quantity) * 1000)


def _mebibytes(quantity: Optional[str]) -> int:
    if not quantity:
        return 0
    return int(parse_quantity(quantity) / Decimal(_MIB))


def node_from_k8s(obj: V1Node) -> Optional[Node]:
    """Recover a simulated node from a Kubernetes node; None if it is not one of ours."""
    metadata = obj.metadata
    annotations = metadata.annotations or {}
    labels = metadata.labels or {}

    node_id = _id_from_name(metadata.name, NODE_PREFIX)
    if ID_ANNOTATION in annotations:
        node_id = _annotation_int(annotations, ID_ANNOTATION, node_id if node_id is not None else -1)
    if node_id is None or node_id < 0:
        return None

    capacity = (obj.status.capacity if obj.status else None) or {}
    return Node(
        id=node_id,
        name=labels.get(HOSTNAME_LABEL, metadata.name),
        mips_available=_millicores(capacity.get("cpu")),
        ram_available=_mebibytes(capacity.get("memory")),
        pes=_annotation_int(annotations, PES_ANNOTATION),
        bw=_annotation_int(annotations, BW_ANNOTATION),
        size=_annotation_int(annotations, SIZE_ANNOTATION),
        type=annotations.get(TYPE_ANNOTATION, ""),
    )


def job_from_k8s(obj: V1Pod) -> Optional[Job]:
    """Recover a simulated job from a pod; None if it is not one of ours."""
    metadata = obj.metadata
    annotations = metadata.annotations or {}

    job_id = _id_from_name(metadata.name, POD_PREFIX)
    if ID_ANNOTATION in annotations:
        job_id = _annotation_int(annotations, ID_ANNOTATION, job_id if job_id is not None else -1)
    if job_id is None or job_id < 0:
        return None

    spec = obj.spec
    mips = ram = 0
    if spec and spec.containers:
        requests = (spec.containers[0].resources.requests if spec.containers[0].resources else None) or {}
        mips = _millicores(requests.get("cpu"))
        ram = _mebibytes(requests.get("memory"))

    status = JobStatus.PENDING
    node_id = None
    bound_to = spec.node_name if spec else None
    if bound_to:
        match = _NODE_NAME_RE.search(bound_to)
        if match:
            node_id = int(match.group(1))
            status = JobStatus.SCHEDULED
    elif obj.status and obj.status.conditions:
        for cond in obj.status.conditions:
            if cond.type == "PodScheduled" and cond.status == "False" and cond.reason == "Unschedulable":
                status = JobStatus.UNSCHEDULABLE
                break

    return Job(
        id=job_id,
        name=(metadata.labels or {}).get("app", metadata.name),
        mips_requested=mips,
        ram_requested=ram,
        status=status,
        node_name=bound_to if status == JobStatus.SCHEDULED else None,
        node_id=node_id,
        scheduler_name=spec.scheduler_name if spec else None,
    )
