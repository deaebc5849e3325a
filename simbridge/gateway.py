"""Orchestrator gateways: where scheduling decisions become real placements."""

from __future__ import annotations

import logging
import threading
from abc import ABC, abstractmethod
from dataclasses import replace
from typing import Dict, List, Optional

from kubernetes import client, config
from kubernetes.client.exceptions import ApiException

from simbridge.errors import OrchestratorError
from simbridge.k8s_objects import (
    KWOK_SELECTOR,
    MANAGED_BY,
    MANAGED_LABEL,
    build_node,
    build_pod,
    job_from_k8s,
    node_from_k8s,
    node_object_name,
    pod_object_name,
)
from simbridge.state import Job, JobStatus, Node

logger = logging.getLogger(__name__)


class OrchestratorGateway(ABC):
    """Operations the bridge needs from the downstream orchestrator."""

    @abstractmethod
    def list_nodes(self) -> List[Node]:
        raise NotImplementedError

    @abstractmethod
    def list_jobs(self, namespace: Optional[str] = None) -> List[Job]:
        raise NotImplementedError

    @abstractmethod
    def create_node(self, node: Node) -> None:
        """Create the node, replacing an existing one with the same id."""
        raise NotImplementedError

    @abstractmethod
    def delete_node(self, node_id: int) -> None:
        raise NotImplementedError

    @abstractmethod
    def create_job(self, job: Job) -> None:
        raise NotImplementedError

    @abstractmethod
    def delete_job(self, job_id: int) -> None:
        raise NotImplementedError

    @abstractmethod
    def is_node_ready(self, node_id: int) -> bool:
        raise NotImplementedError

    @abstractmethod
    def is_job_placed(self, job_id: int) -> bool:
        raise NotImplementedError

    @abstractmethod
    def delete_all_jobs(self) -> None:
        raise NotImplementedError

    @abstractmethod
    def delete_all_nodes(self) -> None:
        raise NotImplementedError


class KubernetesGateway(OrchestratorGateway):
    """Gateway backed by a Kubernetes API server with KWOK fake nodes."""

    def __init__(
        self,
        namespace: str = "default",
        kubeconfig: Optional[str] = None,
        core_api: Optional[client.CoreV1Api] = None,
    ) -> None:
        """
        Initialize the gateway with a Kubernetes client.

        Args:
            namespace: Namespace in which job pods are created
            kubeconfig: Optional kubeconfig path; in-cluster config is tried first otherwise
            core_api: Pre-built CoreV1Api (skips config loading)
        """
        self.namespace = namespace
        if core_api is None:
            if kubeconfig:
                config.load_kube_config(config_file=kubeconfig)
                logger.info(f"Loaded kubeconfig from {kubeconfig}")
            else:
                try:
                    config.load_incluster_config()
                    logger.info("Loaded in-cluster Kubernetes config")
                except config.ConfigException:
                    config.load_kube_config()
                    logger.info("Loaded kubeconfig")
            core_api = client.CoreV1Api()
        self.core = core_api

    # -------- nodes --------

    def list_nodes(self) -> List[Node]:
        try:
            items = self.core.list_node(label_selector=KWOK_SELECTOR).items
        except ApiException as e:
            raise OrchestratorError("list nodes", e.reason, e.status) from e
        nodes = []
        for item in items:
            node = node_from_k8s(item)
            if node is not None:
                nodes.append(node)
        return nodes

    def create_node(self, node: Node) -> None:
        body = build_node(node)
        name = body.metadata.name
        try:
            self.core.create_node(body)
            logger.info(f"Created node {name} for {node.name}")
        except ApiException as e:
            if e.status != 409:
                raise OrchestratorError(f"create node {name}", e.reason, e.status) from e
            # an update keeps the stored status, so capacity goes through the status subresource
            try:
                self.core.replace_node(name, body)
                self.core.patch_node_status(name, {"status": {
                    "capacity": body.status.capacity,
                    "allocatable": body.status.allocatable,
                }})
                logger.info(f"Replaced node {name} for {node.name}")
            except ApiException as e2:
                raise OrchestratorError(f"replace node {name}", e2.reason, e2.status) from e2

    def delete_node(self, node_id: int) -> None:
        name = node_object_name(node_id)
        try:
            self.core.delete_node(name, grace_period_seconds=0)
            logger.info(f"Deleted node {name}")
        except ApiException as e:
            if e.status == 404:
                return
            raise OrchestratorError(f"delete node {name}", e.reason, e.status) from e

    def is_node_ready(self, node_id: int) -> bool:
        name = node_object_name(node_id)
        try:
            node = self.core.read_node(name)
        except ApiException as e:
            if e.status == 404:
                return False
            raise OrchestratorError(f"read node {name}", e.reason, e.status) from e
        conditions = (node.status.conditions if node.status else None) or []
        return any(c.type == "Ready" and c.status == "True" for c in conditions)

    def delete_all_nodes(self) -> None:
        try:
            self.core.delete_collection_node(label_selector=KWOK_SELECTOR)
        except ApiException as e:
            raise OrchestratorError("delete all nodes", e.reason, e.status) from e

    # -------- jobs --------

    def list_jobs(self, namespace: Optional[str] = None) -> List[Job]:
        namespace = namespace or self.namespace
        try:
            items = self.core.list_namespaced_pod(
                namespace, label_selector=f"{MANAGED_LABEL}={MANAGED_BY}"
            ).items
        except ApiException as e:
            raise OrchestratorError("list pods", e.reason, e.status) from e
        jobs = []
        for item in items:
            job = job_from_k8s(item)
            if job is not None:
                jobs.append(job)
        return jobs

    def create_job(self, job: Job) -> None:
        body = build_pod(job, self.namespace)
        name = body.metadata.name
        try:
            self.core.create_namespaced_pod(namespace=self.namespace, body=body)
        except ApiException as e:
            if e.status != 409:
                raise OrchestratorError(f"create pod {name}", e.reason, e.status) from e
            # pods are immutable: replace the stale one
            logger.info(f"Pod {name} already exists, recreating it")
            self.delete_job(job.id)
            try:
                self.core.create_namespaced_pod(namespace=self.namespace, body=body)
            except ApiException as e2:
                raise OrchestratorError(f"create pod {name}", e2.reason, e2.status) from e2
        logger.info(f"Created pod {name} for job {job.id} on node {job.node_name}")

    def delete_job(self, job_id: int) -> None:
        name = pod_object_name(job_id)
        try:
            self.core.delete_namespaced_pod(name, self.namespace, grace_period_seconds=0)
            logger.info(f"Deleted pod {name}")
        except ApiException as e:
            if e.status == 404:
                return
            raise OrchestratorError(f"delete pod {name}", e.reason, e.status) from e

    def is_job_placed(self, job_id: int) -> bool:
        name = pod_object_name(job_id)
        try:
            pod = self.core.read_namespaced_pod(name, self.namespace)
        except ApiException as e:
            if e.status == 404:
                return False
            raise OrchestratorError(f"read pod {name}", e.reason, e.status) from e
        return bool(pod.spec and pod.spec.node_name)

    def delete_all_jobs(self) -> None:
        try:
            self.core.delete_collection_namespaced_pod(
                self.namespace, label_selector=f"{MANAGED_LABEL}={MANAGED_BY}"
            )
        except ApiException as e:
            raise OrchestratorError("delete all pods", e.reason, e.status) from e


class InMemoryGateway(OrchestratorGateway):
    """
    Fake-backed orchestrator kept in process memory.

    Nodes report ready as soon as they are created (unless auto_ready is
    off) and a job counts as placed once it is created with a node
    assignment. fail_next() makes the next call of an operation raise
    OrchestratorError.
    """

    def __init__(self, namespace: str = "default", auto_ready: bool = True) -> None:
        self.namespace = namespace
        self.auto_ready = auto_ready
        self._lock = threading.RLock()
        self._nodes: Dict[int, Node] = {}
        self._ready: Dict[int, bool] = {}
        self._jobs: Dict[int, Job] = {}
        self._failures: Dict[str, str] = {}
        self.calls: List[str] = []

    def fail_next(self, operation: str, message: str = "injected failure") -> None:
        with self._lock:
            self._failures[operation] = message

    def set_node_ready(self, node_id: int, ready: bool = True) -> None:
        with self._lock:
            if node_id in self._nodes:
                self._ready[node_id] = ready

    def _record(self, operation: str) -> None:
        self.calls.append(operation)
        message = self._failures.pop(operation, None)
        if message is not None:
            raise OrchestratorError(operation, message)

    def list_nodes(self) -> List[Node]:
        with self._lock:
            self._record("list_nodes")
            return list(self._nodes.values())

    def create_node(self, node: Node) -> None:
        with self._lock:
            self._record("create_node")
            self._nodes[node.id] = node
            self._ready[node.id] = self.auto_ready

    def delete_node(self, node_id: int) -> None:
        with self._lock:
            self._record("delete_node")
            self._nodes.pop(node_id, None)
            self._ready.pop(node_id, None)

    def is_node_ready(self, node_id: int) -> bool:
        with self._lock:
            self._record("is_node_ready")
            return self._ready.get(node_id, False)

    def delete_all_nodes(self) -> None:
        with self._lock:
            self._record("delete_all_nodes")
            self._nodes.clear()
            self._ready.clear()

    def list_jobs(self, namespace: Optional[str] = None) -> List[Job]:
        with self._lock:
            self._record("list_jobs")
            return [replace(job) for job in self._jobs.values()]

    def create_job(self, job: Job) -> None:
        with self._lock:
            self._record("create_job")
            self._jobs[job.id] = replace(job)

    def delete_job(self, job_id: int) -> None:
        with self._lock:
            self._record("delete_job")
            self._jobs.pop(job_id, None)

    def is_job_placed(self, job_id: int) -> bool:
        with self._lock:
            self._record("is_job_placed")
            job = self._jobs.get(job_id)
            return bool(job and job.status == JobStatus.SCHEDULED and job.node_name)

    def delete_all_jobs(self) -> None:
        with self._lock:
            self._record("delete_all_jobs")
            self._jobs.clear()
