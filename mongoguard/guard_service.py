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
Guard service for Mongo Guard.

Ties the whole guard layer together for the outer call-handling layer:

    inbound call -> check_names -> prepare_* -> execute
                                                 |- rate limit gate
                                                 |- engine call
                                                 |- admin redaction
                                                 |- response sanitation
                                                 `- result capping

The engine itself is an external collaborator passed to execute() as an async
callable. The rate limiter is the only shared mutable state; it is owned by
the service and stopped by close().
"""

from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Iterable, List, Mapping, Optional, Sequence, Union

from loguru import logger

from mongoguard.config import (
    ALLOWED_DATABASE,
    EXCLUDE_SENSITIVE_OPS,
    MAX_RESULT_BYTES,
    READ_ONLY,
)
from mongoguard.connection_guard import connection_lost_error, is_connection_error
from mongoguard.guard_errors import Err, GuardError, GuardErrorKind, GuardResult, Ok
from mongoguard.log_redactor import log_tool_error, log_tool_usage
from mongoguard.middleware.name_validator import (
    NameValidation,
    validate_collection_name,
    validate_database_name,
    validate_field_name,
)
from mongoguard.middleware.pipeline import (
    PreparedAdminCommand,
    PreparedPipeline,
    run_admin_pipeline,
    run_aggregate_pipeline,
    run_bulk_pipeline,
    run_document_pipeline,
    run_filter_pipeline,
)
from mongoguard.middleware.response_redactor import (
    redact_admin_response,
    sanitize_response,
    strip_current_op_metadata,
)
from mongoguard.middleware.result_capper import cap_result_size, clamp_limit_for
from mongoguard.rate_limiter import RateLimiter

EngineCall = Callable[[Any], Awaitable[Any]]


@dataclass
class ExecutionResult:
    """
    Engine result after redaction and capping.

    Attributes:
        data: Sanitized response
        truncated: Whether the result list was cut to the byte budget
        warnings: Non-fatal notes for the caller (stripped parameters, truncation)
    """

    data: Any
    truncated: bool = False
    warnings: List[str] = field(default_factory=list)


def _name_error(validation: NameValidation) -> Err:
    return Err(
        GuardError(
            kind=GuardErrorKind.NAME_REJECTED,
            message=validation.error or "Name rejected",
        )
    )


class GuardService:
    """
    Guard and redaction layer in front of the document store.

    Attributes:
        allowed_database: The only database name accepted by check_names
        read_only: Whether aggregation write stages are blocked
        rate_limiter: Fixed-window limiter for high-cost operations

    Example:
        >>> guard = GuardService(allowed_database="shop")
        >>> prepared = guard.prepare_filter({"userId": "507f1f77bcf86cd799439011"})
        >>> result = await guard.execute("find", prepared.value, engine_find, cap_results=True)
    """

    def __init__(
        self,
        allowed_database: str = ALLOWED_DATABASE,
        rate_limiter: Optional[RateLimiter] = None,
        read_only: bool = READ_ONLY,
        max_result_bytes: int = MAX_RESULT_BYTES,
    ):
        """
        Initializes the guard service.

        Args:
            allowed_database: Database the agent may access
            rate_limiter: Limiter to use; a new one is created when omitted
            read_only: Block $out/$merge aggregation stages
            max_result_bytes: Byte budget for capped results
        """
        self.allowed_database = allowed_database
        self.read_only = read_only
        self.max_result_bytes = max_result_bytes
        self._owns_rate_limiter = rate_limiter is None
        self.rate_limiter = rate_limiter if rate_limiter is not None else RateLimiter()

    # ----------------------------------------------------------------------------------------------
    # Request preparation
    # ----------------------------------------------------------------------------------------------

    def check_names(
        self,
        database: Optional[str] = None,
        collection: Optional[str] = None,
        fields: Iterable[str] = (),
    ) -> GuardResult[None]:
        """
        Validate the resource names of a call.

        Only the names actually passed are checked.
        """
        if database is not None:
            validation = validate_database_name(database, self.allowed_database)
            if not validation.valid:
                return _name_error(validation)

        if collection is not None:
            validation = validate_collection_name(collection)
            if not validation.valid:
                return _name_error(validation)

        for field_name in fields:
            validation = validate_field_name(field_name)
            if not validation.valid:
                return _name_error(validation)

        return Ok(None)

    def prepare_filter(
        self,
        filter_doc: Optional[Mapping[str, Any]],
        operation: Optional[str] = None,
        allow_empty_filter: bool = False,
        context: str = "query filter",
    ) -> GuardResult[dict]:
        """Preprocess and validate a filter. See run_filter_pipeline."""
        return run_filter_pipeline(
            filter_doc,
            context=context,
            allow_empty_filter=allow_empty_filter,
            operation=operation,
        )

    def prepare_update(
        self,
        document: Union[Mapping[str, Any], Sequence[Mapping[str, Any]]],
        context: str = "update document",
    ) -> GuardResult[Any]:
        """Validate an update or replacement document, or a pipeline-style update."""
        return run_document_pipeline(document, context)

    def prepare_pipeline(
        self,
        stages: Sequence[Mapping[str, Any]],
        options: Optional[Mapping[str, Any]] = None,
    ) -> GuardResult[PreparedPipeline]:
        """Preprocess and validate an aggregation pipeline."""
        return run_aggregate_pipeline(stages, read_only=self.read_only, options=options)

    def prepare_bulk(
        self, operations: Sequence[Any], allow_empty_filter: bool = False
    ) -> GuardResult[list]:
        """Validate a bulkWrite batch."""
        return run_bulk_pipeline(operations, allow_empty_filter=allow_empty_filter)

    def prepare_admin_command(
        self, command: Mapping[str, Any], timeout_ms: Optional[int] = None
    ) -> GuardResult[PreparedAdminCommand]:
        """Allowlist, sanitize and time-bound an admin command."""
        return run_admin_pipeline(command, timeout_ms=timeout_ms)

    def clamp_limit(self, requested: Optional[int], kind: str = "query") -> int:
        """Clamp a caller-supplied document limit to the configured ceiling for kind."""
        return clamp_limit_for(kind, requested)

    def check_rate_limit(self, operation: str) -> GuardResult[None]:
        """
        Count one call of operation against the rate limit.

        Returns:
            Ok(None), or Err(RateLimitExceeded) naming the limit
        """
        if self.rate_limiter.check_rate_limit(operation):
            return Ok(None)

        window = self.rate_limiter.window_seconds
        period = "minute" if window == 60 else f"{window:g} seconds"
        return Err(
            GuardError(
                kind=GuardErrorKind.RATE_LIMIT_EXCEEDED,
                message=(
                    f"Rate limit exceeded for {operation}. Maximum "
                    f"{self.rate_limiter.max_calls} requests per {period}."
                ),
                details={
                    "operation": operation,
                    "max_calls": self.rate_limiter.max_calls,
                    "window_seconds": window,
                },
            )
        )

    # ----------------------------------------------------------------------------------------------
    # Execution
    # ----------------------------------------------------------------------------------------------

    def _redact_admin(self, command_name: str, raw: Any) -> Any:
        if not isinstance(raw, Mapping):
            return raw
        redacted = redact_admin_response(command_name, raw)
        if command_name == "currentop" and EXCLUDE_SENSITIVE_OPS:
            operations = redacted.get("inprog")
            if isinstance(operations, list):
                redacted = {
                    **redacted,
                    "inprog": [
                        strip_current_op_metadata(op) if isinstance(op, Mapping) else op
                        for op in operations
                    ],
                }
        return redacted

    async def execute(
        self,
        operation: str,
        prepared: Any,
        engine_call: EngineCall,
        *,
        admin_command: Optional[str] = None,
        rate_limited: bool = False,
        cap_results: bool = False,
    ) -> GuardResult[ExecutionResult]:
        """
        Run a prepared request through the engine and scrub the response.

        Args:
            operation: Logical operation name (rate-limit key, log label)
            prepared: Value produced by one of the prepare_* methods
            engine_call: Async callable receiving prepared and returning the raw response
            admin_command: Command name for admin redaction; taken from
                prepared when it is a PreparedAdminCommand
            rate_limited: Apply the rate limit gate before the engine call
            cap_results: Truncate a list response to the byte budget

        Returns:
            Ok(ExecutionResult), Err(RateLimitExceeded) or Err(ConnectionLost).
            Other engine failures propagate.
        """
        warnings: List[str] = []
        if isinstance(prepared, PreparedAdminCommand):
            admin_command = admin_command or prepared.command_name
            warnings.extend(prepared.warnings)

        if rate_limited:
            gate = self.check_rate_limit(operation)
            if isinstance(gate, Err):
                return gate

        if isinstance(prepared, PreparedAdminCommand):
            log_tool_usage(operation, prepared.command)
        else:
            log_tool_usage(operation, prepared)

        try:
            raw = await engine_call(prepared)
        except Exception as error:
            if is_connection_error(error):
                log_tool_error(operation, error)
                return Err(connection_lost_error(operation))
            log_tool_error(operation, error)
            raise

        if admin_command:
            raw = self._redact_admin(admin_command.lower(), raw)

        data = sanitize_response(raw)

        truncated = False
        if cap_results and isinstance(data, list):
            capped = cap_result_size(data, self.max_result_bytes)
            data = capped.result
            truncated = capped.truncated
            if capped.warning:
                warnings.append(capped.warning)

        logger.debug("[GuardService] {} completed (truncated={})", operation, truncated)
        return Ok(ExecutionResult(data=data, truncated=truncated, warnings=warnings))

    # ----------------------------------------------------------------------------------------------
    # Lifecycle
    # ----------------------------------------------------------------------------------------------

    def close(self) -> None:
        """Stop the background sweep of an owned rate limiter."""
        if self._owns_rate_limiter:
            self.rate_limiter.stop()

    def __enter__(self) -> "GuardService":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()
