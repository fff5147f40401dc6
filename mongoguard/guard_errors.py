# -*- coding: utf-8 -*-

# Mongo Guard
# Copyright (C) 2025 Mongo Guard contributors
#
# This program is free software: you can redistribute it and/or modify
# it under the terms of the GNU Affero General Public License as published by
# the Free Software Foundation, either version 3 of the License, or
# (at your option) any later version.
#
# This program is distributed in the hope that it will be useful,
# but WITHOUT ANY WARRANTY; without even the implied warranty of
# MERCHANTABILITY or FITNESS FOR A PARTICULAR PURPOSE. See the
# GNU Affero General Public License for more details.
#
# You should have received a copy of the GNU Affero General Public License
# along with this program. If not, see <https://www.gnu.org/licenses/>.

"""
Guard error taxonomy and result types.

Every rejection produced by the guard layer is a GuardError: a kind, a
human-readable message with enough detail for the caller to self-correct,
and a details dict with the raw values (paths, counts, limits, names).

Architecture:
- GuardErrorKind: Enum of rejection kinds
- GuardError: Structured rejection
- Ok / Err: Result values returned at the API boundary
- GuardViolation: Exception form, used only by strict helpers and the
  FastAPI bridge in mongoguard.exceptions

Example:
    >>> result = check_no_dangerous_operators({"$where": "sleep(1)"}, "query filter")
    >>> isinstance(result, Err)
    True
    >>> result.error.kind
    <GuardErrorKind.BLOCKED_OPERATOR: 'BlockedOperator'>
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Generic, Optional, TypeVar, Union

T = TypeVar("T")


class GuardErrorKind(str, Enum):
    """Known rejection kinds."""

    BLOCKED_OPERATOR = "BlockedOperator"
    DEPTH_EXCEEDED = "DepthExceeded"
    PIPELINE_BUDGET_EXCEEDED = "PipelineBudgetExceeded"
    EMPTY_FILTER_REJECTED = "EmptyFilterRejected"
    UNKNOWN_OPERATION_TYPE = "UnknownOperationType"
    MALFORMED_BATCH_ENTRY = "MalformedBatchEntry"
    UNRECOGNIZED_PARAMETER = "UnrecognizedParameter"
    RATE_LIMIT_EXCEEDED = "RateLimitExceeded"
    NAME_REJECTED = "NameRejected"
    COMMAND_NOT_ALLOWED = "CommandNotAllowed"
    WRITE_STAGE_BLOCKED = "WriteStageBlocked"
    CONNECTION_LOST = "ConnectionLost"


# Soft failures: the agent should report them and may try again later.
_RETRYABLE_KINDS = frozenset(
    {GuardErrorKind.RATE_LIMIT_EXCEEDED, GuardErrorKind.CONNECTION_LOST}
)


@dataclass(frozen=True)
class GuardError:
    """
    Structured information about a guard rejection.

    Attributes:
        kind: Rejection kind
        message: User-facing message naming the offending path/count/limit
        details: Raw values behind the message (operator, path, counts, ...)
    """

    kind: GuardErrorKind
    message: str
    details: Dict[str, Any] = field(default_factory=dict)

    @property
    def is_retryable(self) -> bool:
        """Whether the caller may retry the same request later."""
        return self.kind in _RETRYABLE_KINDS

    def to_dict(self) -> Dict[str, Any]:
        """Serializable form for responses and logs."""
        return {
            "error": self.kind.value,
            "message": self.message,
            "details": dict(self.details),
            "retryable": self.is_retryable,
        }


@dataclass(frozen=True)
class Ok(Generic[T]):
    """Successful guard result carrying the sanitized value."""

    value: T

    @property
    def ok(self) -> bool:
        return True


@dataclass(frozen=True)
class Err:
    """Rejected guard result carrying the GuardError."""

    error: GuardError

    @property
    def ok(self) -> bool:
        return False


GuardResult = Union[Ok[T], Err]


class GuardViolation(Exception):
    """Exception form of a GuardError."""

    def __init__(self, error: GuardError):
        super().__init__(error.message)
        self.error = error

    @property
    def kind(self) -> GuardErrorKind:
        return self.error.kind


class BlockedOperatorError(GuardViolation):
    """Raised by assert_no_dangerous_operators when a denylisted operator is found."""

    @property
    def operator(self) -> str:
        return self.error.details.get("operator", "")

    @property
    def path(self) -> str:
        return self.error.details.get("path", "")

    @property
    def context(self) -> str:
        return self.error.details.get("context", "")


def unwrap(result: "GuardResult[T]") -> T:
    """
    Return the value of an Ok result, raising GuardViolation for Err.

    Useful for callers that prefer exceptions over result checking.
    """
    if isinstance(result, Err):
        raise GuardViolation(result.error)
    return result.value


@dataclass(frozen=True)
class ValidationResult:
    """
    Plain validator outcome: valid flag plus the first error found.

    Attributes:
        valid: Whether the input passed
        error: Human-readable reason when invalid
        kind: Rejection kind when invalid
        details: Raw values behind the error
    """

    valid: bool
    error: Optional[str] = None
    kind: Optional[GuardErrorKind] = None
    details: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def passed(cls) -> "ValidationResult":
        return cls(valid=True)

    @classmethod
    def failed(
        cls, kind: GuardErrorKind, error: str, **details: Any
    ) -> "ValidationResult":
        return cls(valid=False, error=error, kind=kind, details=details)

    def to_error(self) -> Optional[GuardError]:
        """GuardError for an invalid result, None for a valid one."""
        if self.valid:
            return None
        return GuardError(
            kind=self.kind or GuardErrorKind.MALFORMED_BATCH_ENTRY,
            message=self.error or "Validation failed",
            details=dict(self.details),
        )
