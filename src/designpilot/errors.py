"""Error types raised across the copilot core.

Every error carries a machine-readable ``error_code``, a human-readable
``message`` and an optional ``suggestion`` telling the operator how to recover.
Script failures are not represented here: the executor reports them as an
``ExecutionResult`` instead of raising.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, ClassVar


class ErrorCode:
    """Constants for the error codes surfaced to hosts."""

    MISSING_CREDENTIAL = "missing_credential"
    INVALID_CREDENTIAL = "invalid_credential"
    RATE_LIMITED = "rate_limited"
    PROVIDER_UNREACHABLE = "provider_unreachable"
    PROVIDER_ERROR = "provider_error"
    MALFORMED_RESPONSE = "malformed_response"
    PROPOSAL_STATE = "proposal_state"


@dataclass
class CopilotError(Exception):
    """Base exception for everything the session reports to the operator.

    Attributes:
        error_code: Machine-readable error identifier.
        message: Human-readable error description.
        details: Additional structured error information.
        suggestion: Actionable guidance for recovery.
    """

    error_code: str
    message: str
    details: dict[str, Any] = field(default_factory=dict)
    suggestion: str = ""

    retryable: ClassVar[bool] = False

    def __post_init__(self) -> None:
        Exception.__init__(self, self.message)

    @property
    def user_message(self) -> str:
        if self.suggestion:
            return f"{self.message} {self.suggestion}"
        return self.message

    def to_dict(self) -> dict[str, Any]:
        result: dict[str, Any] = {
            "error": self.error_code,
            "message": self.message,
        }
        if self.details:
            result["details"] = dict(self.details)
        if self.suggestion:
            result["suggestion"] = self.suggestion
        return result

    def __str__(self) -> str:
        return f"[{self.error_code}] {self.message}"


@dataclass
class MissingCredentialError(CopilotError):
    error_code: str = field(default=ErrorCode.MISSING_CREDENTIAL)
    message: str = field(default="Please set your API key in settings first.")
    details: dict[str, Any] = field(default_factory=dict)
    suggestion: str = field(default="")


@dataclass
class InvalidCredentialError(CopilotError):
    error_code: str = field(default=ErrorCode.INVALID_CREDENTIAL)
    message: str = field(default="Invalid API key.")
    details: dict[str, Any] = field(default_factory=dict)
    suggestion: str = field(default="Please update your key in settings.")


@dataclass
class RateLimitedError(CopilotError):
    error_code: str = field(default=ErrorCode.RATE_LIMITED)
    message: str = field(default="Rate limited by the model provider.")
    details: dict[str, Any] = field(default_factory=dict)
    suggestion: str = field(default="Please wait a moment and try again.")

    retryable: ClassVar[bool] = True


@dataclass
class ProviderUnreachableError(CopilotError):
    error_code: str = field(default=ErrorCode.PROVIDER_UNREACHABLE)
    message: str = field(default="Can't reach the model provider.")
    details: dict[str, Any] = field(default_factory=dict)
    suggestion: str = field(default="Check your connection.")

    retryable: ClassVar[bool] = True


@dataclass
class ProviderError(CopilotError):
    """Any other non-success answer from the provider."""

    error_code: str = field(default=ErrorCode.PROVIDER_ERROR)
    message: str = field(default="The model provider returned an error.")
    details: dict[str, Any] = field(default_factory=dict)
    suggestion: str = field(default="")

    status_code: int | None = field(default=None)

    def to_dict(self) -> dict[str, Any]:
        result = super().to_dict()
        if self.status_code is not None:
            result["status_code"] = self.status_code
        return result


@dataclass
class MalformedResponseError(CopilotError):
    """The model answered with something that is not a JSON object."""

    error_code: str = field(default=ErrorCode.MALFORMED_RESPONSE)
    message: str = field(default="The model response was not valid JSON.")
    details: dict[str, Any] = field(default_factory=dict)
    suggestion: str = field(default="Please try again.")

    raw_text: str | None = field(default=None, repr=False)


@dataclass
class ProposalStateError(CopilotError):
    """An inbound message is not valid for the current proposal lifecycle state."""

    error_code: str = field(default=ErrorCode.PROPOSAL_STATE)
    message: str = field(default="A proposal is already awaiting confirmation.")
    details: dict[str, Any] = field(default_factory=dict)
    suggestion: str = field(default="Confirm or cancel it before sending a new request.")


__all__ = [
    "ErrorCode",
    "CopilotError",
    "MissingCredentialError",
    "InvalidCredentialError",
    "RateLimitedError",
    "ProviderUnreachableError",
    "ProviderError",
    "MalformedResponseError",
    "ProposalStateError",
]
