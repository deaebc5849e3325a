"""Scheduling engine: drives filter -> prioritize -> select for pending jobs."""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from simbridge.errors import ExtenderError, NotFoundError
from simbridge.extender import ExtenderClient
from simbridge.policy.base import SelectionPolicy
from simbridge.policy.highest_score import HighestScorePolicy
from simbridge.state import ClusterStateStore, Job, JobStatus

logger = logging.getLogger(__name__)


@dataclass
class PassReport:
	"""Outcome of one scheduling pass."""
	scheduled: Dict[int, str] = field(default_factory=dict)  # job id -> node name
	unschedulable: List[int] = field(default_factory=list)
	deferred: List[int] = field(default_factory=list)  # left Pending after an extender failure
	skipped: List[int] = field(default_factory=list)  # removed or resubmitted mid-pass

	def to_dict(self) -> Dict[str, Any]:
		return {
			"scheduled": {str(job_id): node for job_id, node in self.scheduled.items()},
			"unschedulable": list(self.unschedulable),
			"deferred": list(self.deferred),
			"skipped": list(self.skipped),
		}


class SchedulingEngine:
	"""
	Runs scheduling passes over the store's pending jobs.

	Only one pass runs at a time. Submission handlers call
	run_scheduling_pass() and wait for the running pass to finish; the
	background ticker uses try_scheduling_pass() and simply drops its tick
	when a pass is already in flight.
	"""

	def __init__(
		self,
		store: ClusterStateStore,
		extender: ExtenderClient,
		policy: Optional[SelectionPolicy] = None,
		interval_s: float = 0.5,
	) -> None:
		"""
		Initialize the engine.

		Args:
			store: Cluster state the engine reads and writes back to
			extender: Filter/prioritize client
			policy: Node selection policy (highest score by default)
			interval_s: Background ticker period in seconds
		"""
		self.store = store
		self.extender = extender
		self.policy = policy or HighestScorePolicy()
		self.interval_s = interval_s

		self._pass_lock = threading.Lock()
		self._stop_event = threading.Event()
		self._thread: Optional[threading.Thread] = None

	# -------- passes --------

	def run_scheduling_pass(self) -> PassReport:
		"""Run one pass, waiting for any pass already in flight to finish."""
		with self._pass_lock:
			return self._run_pass_locked()

	def try_scheduling_pass(self) -> Optional[PassReport]:
		"""Run one pass unless another is in flight; returns None when dropped."""
		if not self._pass_lock.acquire(blocking=False):
			logger.debug("Scheduling pass already running, dropping trigger")
			return None
		try:
			return self._run_pass_locked()
		finally:
			self._pass_lock.release()

	def _run_pass_locked(self) -> PassReport:
		report = PassReport()
		pending = self.store.pending_jobs()
		if not pending:
			return report

		logger.info(f"Scheduling pass started for {len(pending)} pending job(s)")
		for job in pending:
			self._schedule_job(job, report)
		logger.info(
			f"Scheduling pass done: scheduled={len(report.scheduled)} "
			f"unschedulable={len(report.unschedulable)} deferred={len(report.deferred)}"
		)
		return report

	def _schedule_job(self, job: Job, report: PassReport) -> None:
		logger.info(f"Attempting to schedule job {job.id} ({job.name})")

		nodes = self.store.snapshot_nodes()
		if not nodes:
			logger.info(f"No nodes available for job {job.id}. Marking unschedulable.")
			self._commit(job, JobStatus.UNSCHEDULABLE, report)
			return

		try:
			filtered = self.extender.filter(job, nodes)
		except ExtenderError as e:
			logger.warning(f"Extender filter failed for job {job.id}, leaving it pending: {e}")
			report.deferred.append(job.id)
			return

		if not filtered:
			logger.info(f"Extender filtered out all nodes for job {job.id}. Marking unschedulable.")
			self._commit(job, JobStatus.UNSCHEDULABLE, report)
			return

		try:
			priorities = self.extender.prioritize(job, filtered)
		except ExtenderError as e:
			logger.warning(f"Extender prioritize failed for job {job.id}, leaving it pending: {e}")
			report.deferred.append(job.id)
			return

		node, found = self.policy.select(filtered, priorities)
		if not found:
			logger.info(f"No prioritized node matched the filtered set for job {job.id}. Marking unschedulable.")
			self._commit(job, JobStatus.UNSCHEDULABLE, report)
			return

		self._commit(job, JobStatus.SCHEDULED, report, node.name, node.id)
		logger.info(f"Job {job.id} scheduled on node {node.name} (id {node.id})")

	def _commit(
		self,
		job: Job,
		status: JobStatus,
		report: PassReport,
		node_name: Optional[str] = None,
		node_id: Optional[int] = None,
	) -> None:
		# compare-and-set against the snapshot the pass decided on
		try:
			stored = self.store.set_job_outcome(job.id, status, node_name, node_id, expected=job)
		except NotFoundError:
			logger.info(f"Job {job.id} was deleted during the pass, dropping its outcome")
			report.skipped.append(job.id)
			return
		if stored is None:
			logger.info(f"Job {job.id} changed during the pass, dropping its outcome")
			report.skipped.append(job.id)
			return

		if status == JobStatus.SCHEDULED:
			report.scheduled[job.id] = node_name
		else:
			report.unschedulable.append(job.id)

	# -------- background ticker --------

	def start(self) -> None:
		"""Start the background ticker."""
		if self._thread and self._thread.is_alive():
			logger.warning("Scheduling ticker already running")
			return
		if self.interval_s <= 0:
			logger.info("Scheduling ticker disabled (interval <= 0)")
			return

		self._stop_event.clear()
		self._thread = threading.Thread(
			target=self._tick_loop,
			name="scheduling-ticker",
			daemon=True
		)
		self._thread.start()
		logger.info(f"Scheduling ticker started (every {self.interval_s}s)")

	def stop(self) -> None:
		"""Stop the background ticker."""
		self._stop_event.set()
		if self._thread:
			self._thread.join(timeout=5.0)
			self._thread = None

	@property
	def running(self) -> bool:
		return bool(self._thread and self._thread.is_alive())

	def _tick_loop(self) -> None:
		while not self._stop_event.is_set():
			try:
				self.try_scheduling_pass()
			except Exception as e:
				logger.error(f"Scheduling tick failed: {e}")

			self._stop_event.wait(self.interval_s)
