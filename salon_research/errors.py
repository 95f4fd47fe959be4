"""
Exceptions raised by the research pipeline.

Transport failures are classified by the request governor: interim ones surface
as RetryableError, exhausted or non-retryable ones as TerminalRequestError.
Parse and validation failures are never retried by the core.
"""
from typing import Any, Dict, List, Optional


class ResearchError(Exception):
    """Base exception for all pipeline errors."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None) -> None:
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def __str__(self) -> str:
        if self.details:
            return f"{self.message} | Details: {self.details}"
        return self.message


class RetryableError(ResearchError):
    """
    A transport failure the governor will retry.

    Carries enough state for a UI to render live retry progress without
    re-deriving the backoff math.
    """

    def __init__(
        self,
        reason: str,
        attempt: int,
        max_attempts: int,
        wait_seconds: float,
        status: Optional[int] = None,
    ) -> None:
        message = (
            f"{reason} (Retrying {attempt}/{max_attempts} in {round(wait_seconds)}s)"
        )
        super().__init__(message)
        self.reason = reason
        self.attempt = attempt
        self.max_attempts = max_attempts
        self.wait_seconds = wait_seconds
        self.status = status

    @property
    def next_retry_in(self) -> int:
        return round(self.wait_seconds)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "error": self.message,
            "isRetrying": True,
            "attempt": self.attempt,
            "maxAttempts": self.max_attempts,
            "nextRetryIn": self.next_retry_in,
        }


class TerminalRequestError(ResearchError):
    """The upstream call failed for good: retries exhausted or not retryable."""

    def __init__(self, reason: str, status: Optional[int] = None, attempts: int = 1) -> None:
        super().__init__(
            f"{reason} (final after {attempts} attempt{'s' if attempts != 1 else ''})",
            {"status": status, "attempts": attempts},
        )
        self.reason = reason
        self.status = status
        self.attempts = attempts


class UnrecoverableParseError(ResearchError):
    """Every extraction strategy abstained."""

    def __init__(self, expected: str, excerpt: str) -> None:
        super().__init__(
            f"Failed to extract a {expected} from the response - all strategies exhausted",
            {"excerpt": excerpt},
        )
        self.expected = expected
        self.excerpt = excerpt


class ValidationRejectedError(ResearchError):
    """The candidate parsed but nothing plausible survived validation."""

    def __init__(self, subject: str, issues: List[Any]) -> None:
        reasons = ", ".join(str(issue) for issue in issues)
        super().__init__(f"Invalid {subject}: {reasons}")
        self.subject = subject
        self.issues = list(issues)
