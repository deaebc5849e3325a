"""Reconcile the desired (simulated) node set against the orchestrator's view."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Optional

from simbridge.errors import OrchestratorError
from simbridge.gateway import OrchestratorGateway
from simbridge.state import Node

logger = logging.getLogger(__name__)


@dataclass
class NodeDiff:
    to_delete: List[Node] = field(default_factory=list)
    to_upsert: List[Node] = field(default_factory=list)

    @property
    def empty(self) -> bool:
        return not self.to_delete and not self.to_upsert


@dataclass
class ReconcileResult:
    diff: NodeDiff
    applied: bool
    error: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "deleted": [n.id for n in self.diff.to_delete] if self.applied else [],
            "upserted": [n.id for n in self.diff.to_upsert] if self.applied else [],
            "reconciled": self.applied,
        }
        if self.error:
            data["error"] = self.error
        return data


def diff_nodes(desired: Iterable[Node], observed: Iterable[Node]) -> NodeDiff:
    """
    Compute what to delete and what to create or replace.

    Observed nodes whose id is not desired are deleted. Desired nodes that
    are missing from the observed set, or differ from their observed
    counterpart in any field, are upserted. Both lists are ordered by id.
    """
    desired_by_id = {node.id: node for node in desired}
    observed_by_id = {node.id: node for node in observed}

    to_delete = [observed_by_id[i] for i in sorted(observed_by_id) if i not in desired_by_id]
    to_upsert = [
        desired_by_id[i]
        for i in sorted(desired_by_id)
        if observed_by_id.get(i) != desired_by_id[i]
    ]
    return NodeDiff(to_delete=to_delete, to_upsert=to_upsert)


class Reconciler:
    """Applies node diffs through an orchestrator gateway."""

    def __init__(self, gateway: OrchestratorGateway) -> None:
        self.gateway = gateway

    def reconcile(self, desired: Iterable[Node]) -> ReconcileResult:
        """
        Bring the orchestrator's node set in line with `desired`.

        If the observed state cannot be read, nothing is applied and the
        result is a no-op carrying the error. Deletions are applied before
        upserts; a failure while applying raises OrchestratorError. Steps
        applied before the failure are not rolled back: the next call diffs
        against what the orchestrator then reports and applies the rest.
        """
        desired = list(desired)
        try:
            observed = self.gateway.list_nodes()
        except OrchestratorError as e:
            logger.warning(f"Could not observe orchestrator nodes, skipping reconciliation: {e}")
            return ReconcileResult(diff=NodeDiff(), applied=False, error=str(e))

        diff = diff_nodes(desired, observed)
        if diff.empty:
            logger.info("Orchestrator nodes already match the desired set")
            return ReconcileResult(diff=diff, applied=True)

        for node in diff.to_delete:
            self.gateway.delete_node(node.id)
        for node in diff.to_upsert:
            self.gateway.create_node(node)

        logger.info(
            f"Reconciled nodes: deleted={len(diff.to_delete)} upserted={len(diff.to_upsert)}"
        )
        return ReconcileResult(diff=diff, applied=True)
