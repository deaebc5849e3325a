import json
import sys
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional
from urllib.parse import urlparse

sys.path.append(str(Path(__file__).resolve().parents[1]))

import pytest
import requests

from k8s_plugins.scorer.server import app as scorer_app
from simbridge.errors import ExtenderError
from simbridge.state import ClusterStateStore, HostPriority, Job, Node


def build_response(status: int, payload: Any = None, text: Optional[str] = None) -> requests.Response:
    response = requests.Response()
    response.status_code = status
    body = text if text is not None else json.dumps(payload)
    response._content = body.encode("utf-8")
    response.headers["Content-Type"] = "application/json"
    return response


class ScorerSession:
    """Stands in for requests.Session, answering from the reference extender's test client."""

    def __init__(self, client) -> None:
        self.client = client
        self.calls: List[Dict[str, Any]] = []

    def post(self, url, json=None, timeout=None, headers=None):
        path = urlparse(url).path
        self.calls.append({"path": path, "json": json, "timeout": timeout})
        reply = self.client.post(path, json=json)
        return build_response(reply.status_code, text=reply.get_data(as_text=True))


class CannedSession:
    """Session returning scripted responses (or raising scripted exceptions) per path."""

    def __init__(self, replies: Dict[str, Any]) -> None:
        self.replies = replies
        self.calls: List[str] = []

    def post(self, url, json=None, timeout=None, headers=None):
        path = urlparse(url).path
        self.calls.append(path)
        reply = self.replies[path]
        if isinstance(reply, Exception):
            raise reply
        return reply


class StubExtender:
    """
    Scripted extender for engine tests.

    keep: names surviving the filter (None passes everything through).
    scores: host -> score, returned in insertion order.
    """

    def __init__(
        self,
        keep: Optional[List[str]] = None,
        scores: Optional[Dict[str, int]] = None,
        filter_error: Optional[str] = None,
        prioritize_error: Optional[str] = None,
    ) -> None:
        self.keep = keep
        self.scores = scores or {}
        self.filter_error = filter_error
        self.prioritize_error = prioritize_error
        self.filter_calls: List[int] = []
        self.prioritize_calls: List[int] = []
        self.on_filter: Optional[Callable[[Job], None]] = None

    def filter(self, job: Job, nodes):
        self.filter_calls.append(job.id)
        if self.on_filter is not None:
            self.on_filter(job)
        if self.filter_error:
            raise ExtenderError("filter", self.filter_error)
        if self.keep is None:
            return list(nodes)
        return [n for n in nodes if n.name in self.keep]

    def prioritize(self, job: Job, nodes):
        self.prioritize_calls.append(job.id)
        if self.prioritize_error:
            raise ExtenderError("prioritize", self.prioritize_error)
        return [HostPriority(host=host, score=score) for host, score in self.scores.items()]


@pytest.fixture
def sample_nodes():
    return [
        Node(id=1, name="vm-1", mips_available=4000, ram_available=8192, pes=4, type="vm"),
        Node(id=2, name="vm-2", mips_available=2000, ram_available=4096, pes=2, type="vm"),
    ]


@pytest.fixture
def sample_job():
    return Job(id=1, name="cloudlet-1", mips_requested=1000, ram_requested=1024)


@pytest.fixture
def store(sample_nodes):
    store = ClusterStateStore()
    store.upsert_nodes(sample_nodes)
    return store


@pytest.fixture
def scorer_client():
    scorer_app.config["TESTING"] = True
    return scorer_app.test_client()


@pytest.fixture
def scorer_session(scorer_client):
    return ScorerSession(scorer_client)


@pytest.fixture
def canned_session():
    def make(replies: Dict[str, Any]) -> CannedSession:
        return CannedSession(replies)
    return make


@pytest.fixture
def no_sleep():
    slept: List[float] = []
    return slept.append, slept
