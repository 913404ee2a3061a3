"""Exception taxonomy shared by the orchestrator, the backend and the API."""

from __future__ import annotations

from typing import Sequence


class PlanFlowError(Exception):
    """Base class for every error raised by the package."""


class EmptyInputError(PlanFlowError):
    """Raised when a user utterance or instruction trims to nothing."""


class SessionBusyError(PlanFlowError):
    """Raised when an operation is submitted while the same kind is in flight."""


class NoPlanError(PlanFlowError):
    """Raised when a plan-dependent operation runs before a plan exists."""


class InvalidIndexError(PlanFlowError):
    """Raised when an index does not address a valid entry."""


class StaleResultError(PlanFlowError):
    """Raised when a session was reset while a call was in flight."""


class PlanFlowBackendError(PlanFlowError):
    """Base class for failures of a generative backend call."""


class BackendCallError(PlanFlowBackendError):
    """Network, transport or provider-side failure.

    ``retryable`` is false for failures a second attempt cannot fix, such as
    missing credentials or a rejected request.
    """

    def __init__(self, message: str, *, retryable: bool = True):
        self.retryable = retryable
        super().__init__(message)


class BackendTimeoutError(BackendCallError):
    """The backend did not answer within the configured timeout."""


class ParseError(PlanFlowBackendError):
    """The backend response is not valid JSON."""


class SchemaViolationError(PlanFlowBackendError):
    """The backend response is JSON but does not match the required shape."""

    def __init__(self, contract: str, problems: Sequence[str]):
        self.contract = contract
        self.problems = list(problems)
        detail = "; ".join(self.problems) or "unknown mismatch"
        super().__init__(f"{contract} response failed validation: {detail}")
