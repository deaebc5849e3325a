"""Node selection policies applied to extender priorities."""

from simbridge.policy.base import SelectionPolicy
from simbridge.policy.highest_score import HighestScorePolicy

__all__ = ['SelectionPolicy', 'HighestScorePolicy']
