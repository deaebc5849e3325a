import threading
import time

from conftest import StubExtender
from simbridge.engine import SchedulingEngine
from simbridge.state import ClusterStateStore, Job, JobStatus


def test_schedules_on_highest_scored_node(store, sample_job):
    extender = StubExtender(scores={"vm-1": 80, "vm-2": 95})
    store.upsert_jobs([sample_job])

    report = SchedulingEngine(store, extender).run_scheduling_pass()

    job = store.get_job(1)
    assert job.status == JobStatus.SCHEDULED
    assert (job.node_name, job.node_id) == ("vm-2", 2)
    assert report.scheduled == {1: "vm-2"}
    assert report.to_dict()["scheduled"] == {"1": "vm-2"}


def test_empty_filter_marks_unschedulable(store, sample_job):
    extender = StubExtender(keep=[], scores={"vm-1": 80})
    store.upsert_jobs([sample_job])

    report = SchedulingEngine(store, extender).run_scheduling_pass()

    job = store.get_job(1)
    assert job.status == JobStatus.UNSCHEDULABLE
    assert job.node_name is None and job.node_id is None
    assert report.unschedulable == [1]
    assert extender.prioritize_calls == []


def test_filter_failure_leaves_job_pending_for_next_pass(store, sample_job):
    extender = StubExtender(filter_error="connection refused", scores={"vm-1": 10})
    store.upsert_jobs([sample_job])
    engine = SchedulingEngine(store, extender)

    report = engine.run_scheduling_pass()
    assert store.get_job(1).status == JobStatus.PENDING
    assert report.deferred == [1]

    extender.filter_error = None
    engine.run_scheduling_pass()
    assert store.get_job(1).status == JobStatus.SCHEDULED
    assert extender.filter_calls == [1, 1]


def test_prioritize_failure_leaves_job_pending(store, sample_job):
    extender = StubExtender(prioritize_error="HTTP 503")
    store.upsert_jobs([sample_job])

    report = SchedulingEngine(store, extender).run_scheduling_pass()
    assert store.get_job(1).status == JobStatus.PENDING
    assert report.deferred == [1]


def test_no_nodes_marks_unschedulable_without_calling_extender(sample_job):
    store = ClusterStateStore()
    extender = StubExtender(scores={"vm-1": 1})
    store.upsert_jobs([sample_job, Job(id=2)])

    SchedulingEngine(store, extender).run_scheduling_pass()

    assert {j.status for j in store.list_jobs()} == {JobStatus.UNSCHEDULABLE}
    assert extender.filter_calls == []


def test_unmatched_priorities_mark_unschedulable(store, sample_job):
    extender = StubExtender(scores={"elsewhere": 100})
    store.upsert_jobs([sample_job])
    SchedulingEngine(store, extender).run_scheduling_pass()
    assert store.get_job(1).status == JobStatus.UNSCHEDULABLE


def test_only_pending_jobs_are_considered(store):
    extender = StubExtender(scores={"vm-1": 1})
    store.upsert_jobs([
        Job(id=1),
        Job(id=2, status=JobStatus.UNSCHEDULABLE),
        Job(id=3, status=JobStatus.SCHEDULED, node_name="vm-2", node_id=2),
    ])
    SchedulingEngine(store, extender).run_scheduling_pass()

    assert extender.filter_calls == [1]
    assert store.get_job(3).node_name == "vm-2"


def test_job_resubmitted_mid_pass_keeps_new_version(store, sample_job):
    extender = StubExtender(scores={"vm-1": 1})
    store.upsert_jobs([sample_job])
    extender.on_filter = lambda job: store.upsert_jobs([Job(id=job.id, name="resubmitted")])

    report = SchedulingEngine(store, extender).run_scheduling_pass()

    job = store.get_job(1)
    assert job.name == "resubmitted"
    assert job.status == JobStatus.PENDING
    assert report.skipped == [1]


def test_job_deleted_mid_pass_is_skipped(store, sample_job):
    extender = StubExtender(scores={"vm-1": 1})
    store.upsert_jobs([sample_job])
    extender.on_filter = lambda job: store.delete_job(job.id)

    report = SchedulingEngine(store, extender).run_scheduling_pass()
    assert report.skipped == [1]
    assert store.counts() == (2, 0)


def test_try_pass_drops_trigger_while_pass_runs(store, sample_job):
    entered = threading.Event()
    release = threading.Event()

    def block(job):
        entered.set()
        release.wait(5)

    extender = StubExtender(scores={"vm-1": 1})
    extender.on_filter = block
    store.upsert_jobs([sample_job])
    engine = SchedulingEngine(store, extender)

    worker = threading.Thread(target=engine.run_scheduling_pass)
    worker.start()
    assert entered.wait(5)
    assert engine.try_scheduling_pass() is None
    release.set()
    worker.join(5)

    assert store.get_job(1).status == JobStatus.SCHEDULED
    assert extender.filter_calls == [1]


def test_ticker_schedules_in_background(store, sample_job):
    extender = StubExtender(scores={"vm-1": 1})
    engine = SchedulingEngine(store, extender, interval_s=0.01)
    engine.start()
    try:
        assert engine.running
        store.upsert_jobs([sample_job])
        deadline = time.time() + 5
        while store.get_job(1).status == JobStatus.PENDING and time.time() < deadline:
            time.sleep(0.01)
    finally:
        engine.stop()

    assert not engine.running
    assert store.get_job(1).status == JobStatus.SCHEDULED


def test_ticker_disabled_with_zero_interval(store):
    engine = SchedulingEngine(store, StubExtender(), interval_s=0)
    engine.start()
    assert not engine.running


def test_resubmission_racing_the_commit_keeps_new_version(store, sample_job):
    extender = StubExtender(scores={"vm-1": 1})
    store.upsert_jobs([sample_job])
    write_outcome = store.set_job_outcome

    def resubmit_then_write(*args, **kwargs):
        store.upsert_jobs([Job(id=1, name="resubmitted")])
        return write_outcome(*args, **kwargs)

    store.set_job_outcome = resubmit_then_write
    report = SchedulingEngine(store, extender).run_scheduling_pass()

    job = store.get_job(1)
    assert job.name == "resubmitted"
    assert job.status == JobStatus.PENDING
    assert job.node_name is None
    assert report.skipped == [1]
    assert report.scheduled == {}
