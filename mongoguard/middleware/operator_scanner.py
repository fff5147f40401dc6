# -*- coding: utf-8 -*-

# Mongo Guard
# Copyright (C) 2025 Mongo Guard contributors
#
# This program is free software: you can redistribute it and/or modify
# it under the terms of the GNU Affero General Public License as published by
# the Free Software Foundation, either version 3 of the License, or
# (at your option) any later version.

"""
Dangerous operator scanner.

Blocks operators that run server-side JavaScript. The scan covers every key at
every depth, so an operator hidden inside $expr, $facet or $lookup
sub-pipelines, or $group accumulators is still found.

Run on every filter, update document, replacement document and pipeline
before it reaches the database.
"""

from dataclasses import dataclass
from typing import Any, Optional

from loguru import logger

from mongoguard.guard_errors import (
    BlockedOperatorError,
    Err,
    GuardError,
    GuardErrorKind,
    GuardResult,
    Ok,
)
from mongoguard.middleware.tree_walker import walk

DANGEROUS_OPERATORS = ("$where", "$function", "$accumulator", "$eval")

_DANGEROUS_LOWER = frozenset(op.lower() for op in DANGEROUS_OPERATORS)


@dataclass(frozen=True)
class ScanResult:
    """Outcome of a dangerous operator scan."""

    found: bool
    operator: Optional[str] = None
    path: Optional[str] = None


def is_dangerous_operator(key: str) -> bool:
    """Case-insensitive denylist check for a single key."""
    return key.lower() in _DANGEROUS_LOWER


def scan_for_dangerous_operators(body: Any) -> ScanResult:
    """
    Find the first denylisted operator anywhere in a request body.

    Args:
        body: Filter, update, pipeline or any nested value

    Returns:
        ScanResult with found=True, the key as written and its path
        (e.g. "$and[0].$where"), or found=False
    """
    for node in walk(body):
        if node.key is not None and is_dangerous_operator(node.key):
            return ScanResult(found=True, operator=node.key, path=node.path)
    return ScanResult(found=False)


def _blocked_operator_error(result: ScanResult, context: str) -> GuardError:
    return GuardError(
        kind=GuardErrorKind.BLOCKED_OPERATOR,
        message=(
            f"Operator {result.operator} is blocked in {context}: server-side "
            f"JavaScript execution is not allowed. Found at: {result.path}"
        ),
        details={"operator": result.operator, "path": result.path, "context": context},
    )


def check_no_dangerous_operators(body: Any, context: str) -> GuardResult[Any]:
    """
    Result form of the scan.

    Returns:
        Ok(body) when clean, Err(BlockedOperator) otherwise
    """
    result = scan_for_dangerous_operators(body)
    if not result.found:
        return Ok(body)

    logger.warning(
        "[OperatorScanner] Blocked {} in {} at {}", result.operator, context, result.path
    )
    return Err(_blocked_operator_error(result, context))


def assert_no_dangerous_operators(body: Any, context: str) -> None:
    """
    Strict form of the scan.

    Raises:
        BlockedOperatorError: carrying operator, path and context
    """
    result = scan_for_dangerous_operators(body)
    if result.found:
        raise BlockedOperatorError(_blocked_operator_error(result, context))
