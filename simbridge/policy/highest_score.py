from typing import Optional, Sequence, Tuple

from simbridge.policy.base import SelectionPolicy
from simbridge.state import HostPriority, Node


class HighestScorePolicy(SelectionPolicy):
    """
    Pick the filtered node with the highest extender score.

    Priorities are walked in the order the extender returned them. Each
    entry is matched to the first filtered node with the same name, and a
    node only replaces the current best on a strictly greater score, so a
    tie at the top goes to the earliest entry. Entries naming nodes outside
    the filtered set are ignored.
    """

    def select(
        self,
        filtered_nodes: Sequence[Node],
        priorities: Sequence[HostPriority],
    ) -> Tuple[Optional[Node], bool]:
        best_node: Optional[Node] = None
        # None sits below every int64 score
        best_score: Optional[int] = None
        for priority in priorities:
            node = next((n for n in filtered_nodes if n.name == priority.host), None)
            if node is None:
                continue
            if best_score is None or priority.score > best_score:
                best_score = priority.score
                best_node = node
        return best_node, best_node is not None
