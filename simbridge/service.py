"""Submission workflows tying the store, engine, gateway and poller together."""

from __future__ import annotations

import logging
from dataclasses import dataclass, replace
from typing import Any, Dict, List, Optional, Sequence

from simbridge.config import BridgeConfig
from simbridge.convergence import ConvergencePoller
from simbridge.engine import SchedulingEngine
from simbridge.errors import ValidationError
from simbridge.gateway import OrchestratorGateway
from simbridge.reconcile import NodeDiff, ReconcileResult, Reconciler
from simbridge.state import ClusterStateStore, Job, JobStatus, Node

logger = logging.getLogger(__name__)


@dataclass
class NodeSyncReport:
    received: int
    reconcile: Optional[ReconcileResult] = None
    ready: bool = False

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {"received": self.received, "ready": self.ready}
        if self.reconcile is not None:
            data.update(self.reconcile.to_dict())
        else:
            data.update({"deleted": [], "upserted": [], "reconciled": False})
        return data


class BridgeService:
    """
    Node and job submission as seen by the simulator.

    Nodes: replace the store's node set, reconcile the orchestrator and
    wait for readiness. Jobs: store them (Pending unless the simulator sent
    a status), run scheduling passes until none of them is Pending, realize
    the scheduled ones at the orchestrator and wait until they are placed
    there.
    """

    def __init__(
        self,
        store: ClusterStateStore,
        engine: SchedulingEngine,
        gateway: Optional[OrchestratorGateway] = None,
        poller: Optional[ConvergencePoller] = None,
        config: Optional[BridgeConfig] = None,
    ) -> None:
        self.store = store
        self.engine = engine
        self.gateway = gateway
        self.poller = poller or ConvergencePoller()
        self.config = config or BridgeConfig(gateway="none")
        self.reconciler = Reconciler(gateway) if gateway is not None else None

    # -------- nodes --------

    def submit_nodes(self, nodes: Sequence[Node]) -> NodeSyncReport:
        nodes = list(nodes)
        self.store.upsert_nodes(nodes)
        logger.info(f"Received {len(nodes)} nodes from the simulator")

        report = NodeSyncReport(received=len(nodes))
        if self.reconciler is None:
            report.reconcile = ReconcileResult(diff=NodeDiff(), applied=False)
            report.ready = True
            return report

        report.reconcile = self.reconciler.reconcile(nodes)
        if not report.reconcile.applied:
            return report

        if nodes:
            result = self.poller.wait(
                lambda: self._unready_nodes(nodes) == [],
                self.config.node_ready_attempts,
                self.config.node_ready_delay_s,
            )
            if not result.converged:
                result.raise_for_outcome("all nodes ready", {"unready": self._unready_nodes(nodes)})
        report.ready = True
        return report

    def _unready_nodes(self, nodes: Sequence[Node]) -> List[int]:
        return [node.id for node in nodes if not self.gateway.is_node_ready(node.id)]

    def reset_nodes(self) -> int:
        if self.gateway is not None:
            self.gateway.delete_all_nodes()
        return self.store.clear_nodes()

    # -------- jobs --------

    def submit_job(self, job: Job) -> Job:
        """Queue a single job; the ticker or the next batch schedules it."""
        (stored,) = self.store.upsert_jobs([_as_pending(job)])
        logger.info(f"Received job {stored.id} for scheduling")
        return stored

    def submit_jobs(self, jobs: Sequence[Job]) -> List[Job]:
        """
        Schedule a batch and wait for the outcome.

        Raises:
            ConvergenceTimeoutError: jobs still Pending after the schedule
                budget, or scheduled jobs not placed after the placement budget
            ValidationError: a job arrives Scheduled on a node that is not known
            OrchestratorError: the gateway rejected a create or a status read
        """
        jobs = list(jobs)
        self._check_assignments(jobs)
        job_ids = [job.id for job in jobs]
        self.store.upsert_jobs(jobs)
        logger.info(f"Received batch of {len(job_ids)} jobs")

        def all_decided() -> bool:
            self.engine.run_scheduling_pass()
            return not self._pending(job_ids)

        result = self.poller.wait(
            all_decided,
            self.config.schedule_attempts,
            self.config.schedule_delay_s,
        )
        if not result.converged:
            result.raise_for_outcome("all jobs scheduled", {"pending": self._pending(job_ids)})

        scheduled = [job for job in self._records(job_ids) if job.status == JobStatus.SCHEDULED]
        if self.gateway is not None and scheduled:
            for job in scheduled:
                self.gateway.create_job(job)
            logger.info(f"Sent {len(scheduled)} scheduled jobs to the orchestrator")

            scheduled_ids = [job.id for job in scheduled]
            result = self.poller.wait(
                lambda: self._unplaced(scheduled_ids) == [],
                self.config.placement_attempts,
                self.config.placement_delay_s,
            )
            if not result.converged:
                result.raise_for_outcome("all jobs placed", {"unplaced": self._unplaced(scheduled_ids)})

        records = self._records(job_ids)
        for job in records:
            logger.info(f"Job {job.id} -> {job.status.value} (node {job.node_name})")
        return records

    def _check_assignments(self, jobs: Sequence[Job]) -> None:
        for job in jobs:
            if job.status != JobStatus.SCHEDULED:
                continue
            node = self.store.get_node(job.node_id) if job.node_id is not None else None
            if node is None or node.name != job.node_name:
                raise ValidationError(
                    f"pod {job.id}: assigned node {job.node_name} (id {job.node_id}) is not a known node"
                )

    def _records(self, job_ids: Sequence[int]) -> List[Job]:
        return [self.store.get_job(job_id) for job_id in job_ids]

    def _pending(self, job_ids: Sequence[int]) -> List[int]:
        return [job.id for job in self._records(job_ids) if job.status == JobStatus.PENDING]

    def _unplaced(self, job_ids: Sequence[int]) -> List[int]:
        return [job_id for job_id in job_ids if not self.gateway.is_job_placed(job_id)]

    def job_status(self, job_id: int) -> Job:
        return self.store.get_job(job_id)

    def reset_jobs(self) -> int:
        if self.gateway is not None:
            self.gateway.delete_all_jobs()
        return self.store.clear_jobs()


def _as_pending(job: Job) -> Job:
    return replace(job, status=JobStatus.PENDING, node_name=None, node_id=None)
