from __future__ import annotations

import logging
import threading
from contextlib import contextmanager
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Any, Dict, Iterable, Iterator, List, Optional, Tuple

from simbridge.errors import NotFoundError, ValidationError

logger = logging.getLogger(__name__)

UNASSIGNED_NODE_ID = -1


class JobStatus(str, Enum):
    PENDING = "Pending"
    SCHEDULED = "Scheduled"
    UNSCHEDULABLE = "Unschedulable"


@dataclass(frozen=True)
class Node:
    """A simulated VM or container exposed to the orchestrator as a node."""
    id: int
    name: str
    mips_available: int = 0
    ram_available: int = 0  # MB
    pes: int = 0
    bw: int = 0
    size: int = 0
    type: str = ""  # vm | container


@dataclass
class Job:
    """A simulated cloudlet submitted for placement."""
    id: int
    name: str = ""
    mips_requested: int = 0
    ram_requested: int = 0  # MB
    status: Optional[JobStatus] = None
    node_name: Optional[str] = None
    node_id: Optional[int] = None
    scheduler_name: Optional[str] = None
    utilization_cpu: Optional[float] = None
    utilization_ram: Optional[float] = None
    utilization_bw: Optional[float] = None
    length: int = 0
    pes: int = 0
    file_size: int = 0
    output_size: int = 0


@dataclass(frozen=True)
class ExtenderArgs:
    """Payload for both extender calls: one job and its candidate nodes."""
    job: Job
    nodes: Tuple[Node, ...] = field(default_factory=tuple)

    def to_dict(self) -> Dict[str, Any]:
        return {"pod": job_to_dict(self.job), "nodes": [node_to_dict(n) for n in self.nodes]}


@dataclass(frozen=True)
class HostPriority:
    host: str
    score: int


# ----------------------------- wire format -----------------------------

def _int_field(data: Dict[str, Any], key: str, default: Optional[int], what: str) -> Optional[int]:
    value = data.get(key)
    if value is None:
        return default
    if isinstance(value, bool):
        raise ValidationError(f"{what}: '{key}' must be an integer")
    if isinstance(value, float) and value.is_integer():
        return int(value)
    if not isinstance(value, int):
        raise ValidationError(f"{what}: '{key}' must be an integer")
    return value


def _fraction_field(data: Dict[str, Any], key: str, what: str) -> Optional[float]:
    value = data.get(key)
    if value is None:
        return None
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ValidationError(f"{what}: '{key}' must be a number")
    if not 0.0 <= float(value) <= 1.0:
        raise ValidationError(f"{what}: '{key}' must be between 0 and 1")
    return float(value)


def _str_field(data: Dict[str, Any], key: str, default: Optional[str], what: str) -> Optional[str]:
    value = data.get(key)
    if value is None:
        return default
    if not isinstance(value, str):
        raise ValidationError(f"{what}: '{key}' must be a string")
    return value


def node_from_dict(data: Any) -> Node:
    if not isinstance(data, dict):
        raise ValidationError("node must be a JSON object")
    node_id = _int_field(data, "id", None, "node")
    if node_id is None:
        raise ValidationError("node: missing 'id'")
    what = f"node {node_id}"
    name = _str_field(data, "name", "", what)
    if not name:
        raise ValidationError(f"{what}: missing 'name'")
    return Node(
        id=node_id,
        name=name,
        mips_available=_int_field(data, "mipsAvailable", 0, what),
        ram_available=_int_field(data, "ramAvailable", 0, what),
        pes=_int_field(data, "pes", 0, what),
        bw=_int_field(data, "bw", 0, what),
        size=_int_field(data, "size", 0, what),
        type=_str_field(data, "type", "", what),
    )


def node_to_dict(node: Node) -> Dict[str, Any]:
    return {
        "id": node.id,
        "name": node.name,
        "mipsAvailable": node.mips_available,
        "ramAvailable": node.ram_available,
        "pes": node.pes,
        "bw": node.bw,
        "size": node.size,
        "type": node.type,
    }


def nodes_from_payload(payload: Any) -> List[Node]:
    """Parse a node-list submission, rejecting duplicate ids or names."""
    if not isinstance(payload, list):
        raise ValidationError("expected a JSON list of nodes")
    nodes = [node_from_dict(item) for item in payload]
    seen_ids = set()
    seen_names = set()
    for node in nodes:
        if node.id in seen_ids:
            raise ValidationError(f"duplicate node id {node.id}")
        if node.name in seen_names:
            raise ValidationError(f"duplicate node name '{node.name}'")
        seen_ids.add(node.id)
        seen_names.add(node.name)
    return nodes


def job_from_dict(data: Any) -> Job:
    if not isinstance(data, dict):
        raise ValidationError("pod must be a JSON object")
    job_id = _int_field(data, "id", None, "pod")
    if job_id is None:
        raise ValidationError("pod: missing 'id'")
    what = f"pod {job_id}"

    status = None
    raw_status = _str_field(data, "status", None, what)
    if raw_status:
        try:
            status = JobStatus(raw_status)
        except ValueError:
            raise ValidationError(f"{what}: unknown status '{raw_status}'") from None

    node_id = _int_field(data, "vmId", None, what)
    if node_id is not None and node_id < 0:
        node_id = None
    node_name = _str_field(data, "nodeName", None, what) or None
    if status == JobStatus.SCHEDULED and (node_id is None or node_name is None):
        raise ValidationError(f"{what}: status Scheduled needs both 'nodeName' and 'vmId'")

    return Job(
        id=job_id,
        name=_str_field(data, "name", "", what),
        mips_requested=_int_field(data, "mipsRequested", 0, what),
        ram_requested=_int_field(data, "ramRequested", 0, what),
        status=status,
        node_name=node_name,
        node_id=node_id,
        scheduler_name=_str_field(data, "schedulerName", None, what) or None,
        utilization_cpu=_fraction_field(data, "utilizationCpu", what),
        utilization_ram=_fraction_field(data, "utilizationRam", what),
        utilization_bw=_fraction_field(data, "utilizationBw", what),
        length=_int_field(data, "length", 0, what),
        pes=_int_field(data, "pes", 0, what),
        file_size=_int_field(data, "fileSize", 0, what),
        output_size=_int_field(data, "outputSize", 0, what),
    )


def job_to_dict(job: Job) -> Dict[str, Any]:
    data: Dict[str, Any] = {
        "id": job.id,
        "name": job.name,
        "mipsRequested": job.mips_requested,
        "ramRequested": job.ram_requested,
        "status": (job.status or JobStatus.PENDING).value,
        # vmId is always present; the simulator reads -1 as "not placed"
        "vmId": UNASSIGNED_NODE_ID if job.node_id is None else job.node_id,
        "length": job.length,
        "pes": job.pes,
        "fileSize": job.file_size,
        "outputSize": job.output_size,
    }
    if job.node_name:
        data["nodeName"] = job.node_name
    if job.scheduler_name:
        data["schedulerName"] = job.scheduler_name
    for key, value in (
        ("utilizationCpu", job.utilization_cpu),
        ("utilizationRam", job.utilization_ram),
        ("utilizationBw", job.utilization_bw),
    ):
        if value is not None:
            data[key] = value
    return data


def jobs_from_payload(payload: Any) -> List[Job]:
    if not isinstance(payload, list):
        raise ValidationError("expected a JSON list of pods")
    jobs = [job_from_dict(item) for item in payload]
    seen = set()
    for job in jobs:
        if job.id in seen:
            raise ValidationError(f"duplicate pod id {job.id}")
        seen.add(job.id)
    return jobs


# ----------------------------- locking -----------------------------

class ReadWriteLock:
    """Many readers or one writer. Waiting writers block new readers."""

    def __init__(self) -> None:
        self._cond = threading.Condition(threading.Lock())
        self._readers = 0
        self._writer = False
        self._writers_waiting = 0

    @contextmanager
    def read_locked(self) -> Iterator[None]:
        with self._cond:
            while self._writer or self._writers_waiting:
                self._cond.wait()
            self._readers += 1
        try:
            yield
        finally:
            with self._cond:
                self._readers -= 1
                if self._readers == 0:
                    self._cond.notify_all()

    @contextmanager
    def write_locked(self) -> Iterator[None]:
        with self._cond:
            self._writers_waiting += 1
            try:
                while self._writer or self._readers:
                    self._cond.wait()
            finally:
                self._writers_waiting -= 1
            self._writer = True
        try:
            yield
        finally:
            with self._cond:
                self._writer = False
                self._cond.notify_all()


# ----------------------------- store -----------------------------

class ClusterStateStore:
    """
    Authoritative in-memory registry of nodes and jobs, keyed by id.

    Reads take the shared lock, mutations the exclusive one. Callers only
    ever receive copies; the internal maps never leave this object.
    """

    def __init__(self) -> None:
        self._lock = ReadWriteLock()
        self._nodes: Dict[int, Node] = {}
        self._jobs: Dict[int, Job] = {}

    # -------- nodes --------

    def upsert_nodes(self, nodes: Iterable[Node]) -> None:
        """Replace the entire node set."""
        fresh = {node.id: node for node in nodes}
        with self._lock.write_locked():
            self._nodes = fresh
        logger.info(f"Node set replaced: {len(fresh)} nodes")

    def snapshot_nodes(self) -> List[Node]:
        with self._lock.read_locked():
            return list(self._nodes.values())

    def get_node(self, node_id: int) -> Optional[Node]:
        with self._lock.read_locked():
            return self._nodes.get(node_id)

    def clear_nodes(self) -> int:
        with self._lock.write_locked():
            count = len(self._nodes)
            self._nodes = {}
        return count

    # -------- jobs --------

    def upsert_jobs(self, jobs: Iterable[Job]) -> List[Job]:
        """Merge jobs by id. Status defaults to Pending when unset."""
        records = []
        for job in jobs:
            record = replace(job)
            if record.status is None:
                record.status = JobStatus.PENDING
            if record.status != JobStatus.SCHEDULED:
                record.node_name = None
                record.node_id = None
            records.append(record)

        with self._lock.write_locked():
            for record in records:
                self._jobs[record.id] = record
        return [replace(record) for record in records]

    def get_job(self, job_id: int) -> Job:
        with self._lock.read_locked():
            job = self._jobs.get(job_id)
            if job is None:
                raise NotFoundError(job_id)
            return replace(job)

    def list_jobs(self) -> List[Job]:
        with self._lock.read_locked():
            return [replace(job) for job in self._jobs.values()]

    def pending_jobs(self) -> List[Job]:
        with self._lock.read_locked():
            return [replace(job) for job in self._jobs.values() if job.status == JobStatus.PENDING]

    def set_job_outcome(
        self,
        job_id: int,
        status: JobStatus,
        node_name: Optional[str] = None,
        node_id: Optional[int] = None,
        expected: Optional[Job] = None,
    ) -> Optional[Job]:
        """
        Record a scheduling result. The only mutation path for outcomes.

        With `expected`, the write only happens if the stored job still
        equals it and is Pending; otherwise nothing changes and None is
        returned. Check and write share one exclusive section.
        """
        if status == JobStatus.SCHEDULED and (node_name is None or node_id is None):
            raise ValueError("a scheduled job needs both node_name and node_id")
        if status != JobStatus.SCHEDULED:
            node_name, node_id = None, None

        with self._lock.write_locked():
            job = self._jobs.get(job_id)
            if job is None:
                raise NotFoundError(job_id)
            if expected is not None and (job.status != JobStatus.PENDING or job != expected):
                return None
            job.status = status
            job.node_name = node_name
            job.node_id = node_id
            return replace(job)

    def delete_job(self, job_id: int) -> None:
        with self._lock.write_locked():
            if self._jobs.pop(job_id, None) is None:
                raise NotFoundError(job_id)

    def clear_jobs(self) -> int:
        with self._lock.write_locked():
            count = len(self._jobs)
            self._jobs = {}
        return count

    def counts(self) -> Tuple[int, int]:
        with self._lock.read_locked():
            return len(self._nodes), len(self._jobs)
