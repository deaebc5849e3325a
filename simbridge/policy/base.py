from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Optional, Sequence, Tuple

from simbridge.state import HostPriority, Node


class SelectionPolicy(ABC):
	@abstractmethod
	def select(
		self,
		filtered_nodes: Sequence[Node],
		priorities: Sequence[HostPriority],
	) -> Tuple[Optional[Node], bool]:
		raise NotImplementedError
