"""Gateway failures and backend error classification."""

from __future__ import annotations

from dataclasses import dataclass

from openai import (
    APIConnectionError,
    APIStatusError,
    APITimeoutError,
    RateLimitError,
)

OUTCOME_SERVED = "served"
OUTCOME_RATE_LIMITED = "rate_limited"
OUTCOME_TIMEOUT = "timeout"
OUTCOME_UNREACHABLE = "unreachable"
OUTCOME_BACKEND_ERROR = "backend_error"
OUTCOME_ERROR = "error"


def classify_backend_error(exc: BaseException) -> str:
    """Coarse outcome label for logs and metrics."""
    if isinstance(exc, RateLimitError):
        return OUTCOME_RATE_LIMITED
    # APITimeoutError subclasses APIConnectionError.
    if isinstance(exc, (APITimeoutError, TimeoutError)):
        return OUTCOME_TIMEOUT
    if isinstance(exc, APIConnectionError):
        return OUTCOME_UNREACHABLE
    if isinstance(exc, APIStatusError):
        return OUTCOME_BACKEND_ERROR
    return OUTCOME_ERROR


@dataclass(frozen=True)
class AttemptError:
    """Why one candidate was skipped."""

    model_id: str
    outcome: str
    message: str

    def as_dict(self) -> dict[str, str]:
        return {"model": self.model_id, "outcome": self.outcome, "message": self.message}


class CandidatesExhausted(Exception):
    """Every candidate failed before producing any output."""

    def __init__(self, errors: list[AttemptError]):
        self.errors = list(errors)
        summary = "; ".join(f"{e.model_id}: {e.outcome}" for e in self.errors)
        super().__init__(f"All model candidates failed ({summary})")

    @property
    def last_error(self) -> AttemptError | None:
        return self.errors[-1] if self.errors else None
