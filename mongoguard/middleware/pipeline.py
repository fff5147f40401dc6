# -*- coding: utf-8 -*-

# Mongo Guard
# Copyright (C) 2025 Mongo Guard contributors
#
# This program is free software: you can redistribute it and/or modify
# it under the terms of the GNU Affero General Public License as published by
# the Free Software Foundation, either version 3 of the License, or
# (at your option) any later version.

"""
Guard pipeline orchestrator.

Composes the validators for each request shape, in a fixed order, and returns
a GuardResult. This is the single entry point used by GuardService.

Filter pipeline:
  1. QueryPreprocessor - Coerce identifier fields to ObjectId
  2. OperatorScanner - Reject server-side JavaScript operators
  3. FilterValidator - Depth limit, then empty-filter protection for
     multi-document writes

Aggregate pipeline:
  1. QueryPreprocessor (per stage)
  2. OperatorScanner
  3. Write-stage check ($out, $merge) in read-only mode
  4. PipelineValidator - Total and expensive stage budgets
  5. Aggregate options allowlist

Bulk pipeline:
  1. BulkValidator - Structure, types, empty filters, operators
  2. QueryPreprocessor (per filter)

Admin pipeline:
  1. Command allowlist
  2. OperatorScanner
  3. AdminCommandValidator - Strip unknown parameters, bound nesting
  4. Timeout injection
"""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional, Sequence, Union

from loguru import logger

from mongoguard.config import (
    ADMIN_MAX_PARAM_DEPTH,
    MAX_BULK_OPERATIONS,
    MAX_EXPENSIVE_STAGES,
    MAX_FILTER_DEPTH,
    MAX_PIPELINE_STAGES,
    READ_ONLY,
)
from mongoguard.guard_errors import Err, GuardError, GuardErrorKind, GuardResult, Ok
from mongoguard.middleware.admin_command_validator import (
    apply_admin_timeout,
    resolve_admin_command,
    validate_admin_command_params,
)
from mongoguard.middleware.bulk_validator import (
    MULTI_DOC_OPERATIONS,
    validate_bulk_operations,
)
from mongoguard.middleware.filter_validator import should_block_filter, validate_depth
from mongoguard.middleware.operator_scanner import check_no_dangerous_operators
from mongoguard.middleware.pipeline_validator import (
    find_write_stages,
    sanitize_aggregate_options,
    validate_pipeline,
)
from mongoguard.middleware.query_preprocessor import preprocess_query


@dataclass
class PreparedPipeline:
    """Aggregation request ready for the engine."""

    stages: List[Dict[str, Any]]
    options: Dict[str, Any] = field(default_factory=dict)
    stage_count: int = 0
    expensive_stage_count: int = 0


@dataclass
class PreparedAdminCommand:
    """
    Admin command ready for the engine.

    Attributes:
        command_name: Lower-cased command name (policy and redaction key)
        command: Sanitized command with maxTimeMS applied
        warnings: Non-fatal notes, one per stripped parameter
    """

    command_name: str
    command: Dict[str, Any]
    warnings: List[str] = field(default_factory=list)


def run_filter_pipeline(
    filter_doc: Optional[Mapping[str, Any]],
    context: str = "query filter",
    max_depth: int = MAX_FILTER_DEPTH,
    allow_empty_filter: bool = False,
    operation: Optional[str] = None,
) -> GuardResult[Dict[str, Any]]:
    """
    Prepare a filter for the engine.

    Args:
        filter_doc: Caller-supplied filter (None is treated as {})
        context: Where the filter is used, for error messages
        max_depth: Maximum filter depth
        allow_empty_filter: Explicit override of empty-filter protection
        operation: Operation name; updateMany/deleteMany get empty-filter protection

    Returns:
        Ok(preprocessed filter) or Err with the first violation
    """
    processed = preprocess_query(filter_doc or {})

    scan = check_no_dangerous_operators(processed, context)
    if isinstance(scan, Err):
        return scan

    depth = validate_depth(processed, max_depth=max_depth)
    if not depth.valid:
        return Err(depth.to_error())

    if operation in MULTI_DOC_OPERATIONS:
        decision = should_block_filter(
            processed, allow_empty_filter=allow_empty_filter, operation=operation
        )
        if decision.blocked:
            logger.warning("[Pipeline] Blocked {} with empty filter", operation)
            return Err(
                GuardError(
                    kind=GuardErrorKind.EMPTY_FILTER_REJECTED,
                    message=decision.reason,
                    details={"operation": operation},
                )
            )

    return Ok(processed)


def run_document_pipeline(
    document: Union[Mapping[str, Any], Sequence[Mapping[str, Any]]],
    context: str = "update document",
) -> GuardResult[Union[Dict[str, Any], List[Dict[str, Any]]]]:
    """
    Scan an update or replacement document for blocked operators.

    Pipeline-style updates ([{"$set": ...}, ...]) are scanned and copied as lists.
    """
    if isinstance(document, Mapping):
        copied = dict(document)
    else:
        copied = [dict(stage) if isinstance(stage, Mapping) else stage for stage in document]
    return check_no_dangerous_operators(copied, context)


def run_aggregate_pipeline(
    stages: Sequence[Mapping[str, Any]],
    read_only: bool = READ_ONLY,
    options: Optional[Mapping[str, Any]] = None,
    max_stages: int = MAX_PIPELINE_STAGES,
    max_expensive: int = MAX_EXPENSIVE_STAGES,
) -> GuardResult[PreparedPipeline]:
    """
    Prepare an aggregation pipeline for the engine.

    Args:
        stages: Stage documents
        read_only: Reject $out/$merge when True
        options: Caller-supplied aggregate() options
        max_stages: Total stage budget, nested stages included
        max_expensive: Expensive stage budget, nested stages included

    Returns:
        Ok(PreparedPipeline) or Err with the first violation
    """
    processed = [preprocess_query(stage) for stage in stages]

    scan = check_no_dangerous_operators(processed, "aggregation pipeline")
    if isinstance(scan, Err):
        return scan

    if read_only:
        write_stages = find_write_stages(processed)
        if write_stages:
            logger.warning("[Pipeline] Blocked write stages in read-only mode: {}", write_stages)
            return Err(
                GuardError(
                    kind=GuardErrorKind.WRITE_STAGE_BLOCKED,
                    message=(
                        f"Write stages ({', '.join(write_stages)}) are not allowed in "
                        "read-only mode."
                    ),
                    details={"stages": write_stages},
                )
            )

    budget = validate_pipeline(processed, max_stages=max_stages, max_expensive=max_expensive)
    if not budget.valid:
        logger.warning(
            "[Pipeline] Pipeline rejected: {} stages, {} expensive",
            budget.stage_count,
            budget.expensive_stage_count,
        )
        return Err(
            GuardError(
                kind=GuardErrorKind.PIPELINE_BUDGET_EXCEEDED,
                message=budget.error,
                details={
                    "stage_count": budget.stage_count,
                    "expensive_stage_count": budget.expensive_stage_count,
                    "expensive_stages": budget.expensive_stage_names,
                    "max_stages": max_stages,
                    "max_expensive": max_expensive,
                },
            )
        )

    return Ok(
        PreparedPipeline(
            stages=processed,
            options=sanitize_aggregate_options(options or {}),
            stage_count=budget.stage_count,
            expensive_stage_count=budget.expensive_stage_count,
        )
    )


def _preprocess_bulk_entry(op: Mapping[str, Any]) -> Dict[str, Any]:
    op_type = next(iter(op))
    body = op[op_type]
    if isinstance(body, Mapping) and isinstance(body.get("filter"), Mapping):
        body = {**body, "filter": preprocess_query(body["filter"])}
    return {op_type: body}


def run_bulk_pipeline(
    operations: Sequence[Any],
    allow_empty_filter: bool = False,
    max_operations: int = MAX_BULK_OPERATIONS,
) -> GuardResult[List[Dict[str, Any]]]:
    """
    Prepare a bulkWrite batch for the engine.

    Returns:
        Ok(batch with preprocessed filters) or Err with the first violation
    """
    validation = validate_bulk_operations(
        operations, max_operations=max_operations, allow_empty_filter=allow_empty_filter
    )
    if not validation.valid:
        logger.warning("[Pipeline] Bulk batch rejected: {}", validation.error)
        return Err(validation.to_error())

    return Ok([_preprocess_bulk_entry(op) for op in operations])


def run_admin_pipeline(
    command: Mapping[str, Any], timeout_ms: Optional[int] = None
) -> GuardResult[PreparedAdminCommand]:
    """
    Prepare an admin command for the engine.

    Unknown parameters are stripped and reported as warnings; they never fail
    the call on their own.

    Returns:
        Ok(PreparedAdminCommand) or Err with the first violation
    """
    if not command:
        return Err(
            GuardError(
                kind=GuardErrorKind.COMMAND_NOT_ALLOWED,
                message="Admin command is empty. Provide a command document such as {\"ping\": 1}.",
            )
        )

    resolved = resolve_admin_command(command)
    if isinstance(resolved, Err):
        logger.warning("[Pipeline] {}", resolved.error.message)
        return resolved
    command_name = resolved.value

    scan = check_no_dangerous_operators(command, "admin command")
    if isinstance(scan, Err):
        return scan

    display_name = str(next(iter(command)))
    validation = validate_admin_command_params(command, display_name)
    if not validation.valid:
        return Err(
            GuardError(
                kind=GuardErrorKind.DEPTH_EXCEEDED,
                message=validation.warnings[-1],
                details={
                    "command": command_name,
                    "max_depth": ADMIN_MAX_PARAM_DEPTH,
                    "warnings": list(validation.warnings),
                },
            )
        )

    return Ok(
        PreparedAdminCommand(
            command_name=command_name,
            command=apply_admin_timeout(validation.sanitized_command, timeout_ms),
            warnings=list(validation.warnings),
        )
    )
