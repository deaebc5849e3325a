import pytest
import requests

from conftest import build_response
from simbridge.errors import ExtenderError
from simbridge.extender import ExtenderClient
from simbridge.state import HostPriority, Job, Node


@pytest.fixture
def client(scorer_session):
    return ExtenderClient("http://scorer:8081/", timeout_s=3.0, session=scorer_session)


def test_filter_against_reference_extender(client, scorer_session, sample_nodes, sample_job):
    small = Node(id=3, name="vm-3", mips_available=500, ram_available=8192)
    kept = client.filter(sample_job, sample_nodes + [small])

    assert [n.name for n in kept] == ["vm-1", "vm-2"]
    call = scorer_session.calls[0]
    assert call["path"] == "/filter"
    assert call["timeout"] == 3.0
    assert call["json"]["pod"]["mipsRequested"] == 1000
    assert call["json"]["pod"]["vmId"] == -1
    assert [n["name"] for n in call["json"]["nodes"]] == ["vm-1", "vm-2", "vm-3"]


def test_prioritize_against_reference_extender(client, sample_nodes, sample_job):
    priorities = client.prioritize(sample_job, sample_nodes)
    assert priorities == [HostPriority("vm-1", 75), HostPriority("vm-2", 50)]


def test_filter_null_nodes_passes_everything(canned_session, sample_nodes, sample_job):
    session = canned_session({"/filter": build_response(200, {"nodes": None})})
    client = ExtenderClient("http://x", session=session)
    assert client.filter(sample_job, sample_nodes) == sample_nodes


def test_filter_empty_list_means_no_node(canned_session, sample_nodes, sample_job):
    session = canned_session({"/filter": build_response(200, {"nodes": []})})
    assert ExtenderClient("http://x", session=session).filter(sample_job, sample_nodes) == []


def test_filter_drops_nodes_that_were_not_candidates(canned_session, sample_nodes, sample_job):
    body = {"nodes": [
        {"id": 2, "name": "vm-2"},
        {"id": 9, "name": "vm-9"},
        {"id": 1, "name": "renamed"},
    ]}
    session = canned_session({"/filter": build_response(200, body)})
    kept = ExtenderClient("http://x", session=session).filter(sample_job, sample_nodes)
    # resolved to the candidate objects, not the echoed copies
    assert kept == [sample_nodes[1]]


@pytest.mark.parametrize("reply", [
    requests.ConnectionError("connection refused"),
    requests.Timeout("read timed out"),
    build_response(500, {"error": "boom"}),
    build_response(200, text="<html>"),
    build_response(200, {"nodes": [], "error": "scorer offline"}),
    build_response(200, ["not", "an", "object"]),
])
def test_filter_failures_raise_extender_error(canned_session, sample_nodes, sample_job, reply):
    session = canned_session({"/filter": reply})
    with pytest.raises(ExtenderError) as exc:
        ExtenderClient("http://x", session=session).filter(sample_job, sample_nodes)
    assert exc.value.phase == "filter"


@pytest.mark.parametrize("body", [
    {"host": "vm-1", "score": 1},
    [{"host": "vm-1", "score": "high"}],
    [{"host": "vm-1", "score": True}],
    [{"score": 5}],
    [{"host": "vm-1", "score": 2 ** 63}],
    [{"host": "vm-1", "score": -2 ** 63 - 1}],
])
def test_malformed_priorities_raise(canned_session, sample_nodes, sample_job, body):
    session = canned_session({"/prioritize": build_response(200, body)})
    with pytest.raises(ExtenderError) as exc:
        ExtenderClient("http://x", session=session).prioritize(sample_job, sample_nodes)
    assert exc.value.phase == "prioritize"


def test_prioritize_null_body_is_empty(canned_session, sample_nodes, sample_job):
    session = canned_session({"/prioritize": build_response(200, text="null")})
    assert ExtenderClient("http://x", session=session).prioritize(sample_job, sample_nodes) == []


def test_reference_extender_rejects_oversized_job(scorer_client):
    reply = scorer_client.post("/filter", json={
        "pod": {"id": 1, "mipsRequested": 100, "ramRequested": 9000},
        "nodes": [{"id": 1, "name": "vm-1", "mipsAvailable": 4000, "ramAvailable": 8192}],
    })
    assert reply.status_code == 200
    assert reply.get_json()["nodes"] == []

    reply = scorer_client.post("/prioritize", json={
        "pod": {"id": 1, "mipsRequested": 5000},
        "nodes": [{"id": 1, "name": "vm-1", "mipsAvailable": 4000}, {"id": 2, "name": "vm-2", "mipsAvailable": 0}],
    })
    assert reply.get_json() == [{"host": "vm-1", "score": 0}, {"host": "vm-2", "score": 0}]


def test_int64_score_bounds_are_accepted(canned_session, sample_nodes, sample_job):
    body = [{"host": "vm-1", "score": 2 ** 63 - 1}, {"host": "vm-2", "score": -2 ** 63}]
    session = canned_session({"/prioritize": build_response(200, body)})
    priorities = ExtenderClient("http://x", session=session).prioritize(sample_job, sample_nodes)
    assert [p.score for p in priorities] == [2 ** 63 - 1, -2 ** 63]
