"""
Bridge exceptions.

Operational failures (extender or orchestrator unreachable, convergence
budget exhausted) are exceptions. An unschedulable job is not: it is a
normal terminal status recorded in the store.
"""

from typing import Any, Optional


class BridgeError(Exception):
    """Base exception for all bridge errors."""
    pass


class ValidationError(BridgeError):
    """Raised when a submitted payload is malformed. Nothing is mutated."""
    pass


class NotFoundError(BridgeError):
    """Raised when a requested job does not exist."""

    def __init__(self, job_id: int):
        self.job_id = job_id
        super().__init__(f"Job not found: {job_id}")


class ExtenderError(BridgeError):
    """
    Raised when a filter or prioritize call fails.

    Covers transport errors, non-2xx responses, undecodable bodies and
    explicit errors reported by the extender.
    """

    def __init__(self, phase: str, cause: Any):
        self.phase = phase
        self.cause = cause
        super().__init__(f"extender {phase} failed: {cause}")


class OrchestratorError(BridgeError):
    """Raised when an orchestrator gateway call fails."""

    def __init__(self, operation: str, cause: Any, status: Optional[int] = None):
        self.operation = operation
        self.cause = cause
        self.status = status
        super().__init__(f"orchestrator {operation} failed: {cause}")


class ConvergenceTimeoutError(BridgeError, TimeoutError):
    """
    Raised when a convergence wait runs out of attempts.

    Carries what was awaited, how many attempts were made and the last
    state the predicate observed.
    """

    def __init__(self, what: str, attempts: int, last_state: Any = None):
        self.what = what
        self.attempts = attempts
        self.last_state = last_state
        message = f"Timeout: {what} not reached after {attempts} attempts"
        if last_state is not None:
            message += f" (last state: {last_state})"
        super().__init__(message)
