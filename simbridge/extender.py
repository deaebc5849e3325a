"""HTTP client for the scheduler extender filter/prioritize protocol."""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional, Sequence

import requests

from simbridge.errors import ExtenderError, ValidationError
from simbridge.state import ExtenderArgs, HostPriority, Job, Node, node_from_dict

logger = logging.getLogger(__name__)

FILTER = "filter"
PRIORITIZE = "prioritize"

SCORE_MIN = -2 ** 63
SCORE_MAX = 2 ** 63 - 1


class ExtenderClient:
    """
    Client for an external scorer implementing the two extender calls.

    POST {base_url}/filter      body: ExtenderArgs -> {"nodes": [...] | null}
    POST {base_url}/prioritize  body: ExtenderArgs -> [{"host": ..., "score": ...}]

    Any transport failure, non-2xx status or undecodable body raises
    ExtenderError tagged with the phase.
    """

    def __init__(
        self,
        base_url: str,
        timeout_s: float = 10.0,
        session: Optional[requests.Session] = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.timeout_s = timeout_s
        self.session = session or requests.Session()

    def _post(self, phase: str, args: ExtenderArgs) -> Any:
        url = f"{self.base_url}/{phase}"
        try:
            response = self.session.post(
                url,
                json=args.to_dict(),
                timeout=self.timeout_s,
                headers={"Content-Type": "application/json"},
            )
        except requests.RequestException as e:
            raise ExtenderError(phase, e) from e

        if not 200 <= response.status_code < 300:
            raise ExtenderError(phase, f"non-OK status {response.status_code}")

        try:
            return response.json()
        except ValueError as e:
            raise ExtenderError(phase, f"failed to decode response: {e}") from e

    def filter(self, job: Job, nodes: Sequence[Node]) -> List[Node]:
        """
        Ask the extender which candidates can host the job.

        A missing or null node list means every candidate passes; an empty
        list means none does. Returned entries are resolved against the
        candidates by id, unknown ones are dropped.
        """
        candidates = list(nodes)
        body = self._post(FILTER, ExtenderArgs(job=job, nodes=tuple(candidates)))

        if body is None:
            return candidates
        if not isinstance(body, dict):
            raise ExtenderError(FILTER, "response is not a JSON object")
        error = body.get("error")
        if error:
            raise ExtenderError(FILTER, error)

        raw_nodes = body.get("nodes")
        if raw_nodes is None:
            return candidates
        if not isinstance(raw_nodes, list):
            raise ExtenderError(FILTER, "'nodes' is not a list")

        by_id: Dict[int, Node] = {node.id: node for node in candidates}
        survivors: List[Node] = []
        for item in raw_nodes:
            try:
                returned = node_from_dict(item)
            except ValidationError as e:
                raise ExtenderError(FILTER, f"malformed node in response: {e}") from e
            node = by_id.get(returned.id)
            if node is None or node.name != returned.name:
                logger.warning(
                    f"Extender returned node {returned.name} (id {returned.id}) "
                    f"that was not a candidate for job {job.id}; ignoring it"
                )
                continue
            survivors.append(node)
        return survivors

    def prioritize(self, job: Job, nodes: Sequence[Node]) -> List[HostPriority]:
        """Ask the extender to score the filtered nodes."""
        body = self._post(PRIORITIZE, ExtenderArgs(job=job, nodes=tuple(nodes)))

        if body is None:
            return []
        if not isinstance(body, list):
            raise ExtenderError(PRIORITIZE, "response is not a JSON list")

        priorities: List[HostPriority] = []
        for entry in body:
            if not isinstance(entry, dict):
                raise ExtenderError(PRIORITIZE, "priority entry is not a JSON object")
            host = entry.get("host")
            score = entry.get("score")
            if not isinstance(host, str) or isinstance(score, bool) or not isinstance(score, int):
                raise ExtenderError(PRIORITIZE, f"malformed priority entry: {entry}")
            if not SCORE_MIN <= score <= SCORE_MAX:
                raise ExtenderError(PRIORITIZE, f"score out of int64 range for host {host}: {score}")
            priorities.append(HostPriority(host=host, score=score))
        return priorities
