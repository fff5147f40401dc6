# -*- coding: utf-8 -*-

# Mongo Guard
# Copyright (C) 2025 Mongo Guard contributors
#
# This program is free software: you can redistribute it and/or modify
# it under the terms of the GNU Affero General Public License as published by
# the Free Software Foundation, either version 3 of the License, or
# (at your option) any later version.

"""
Filter safety checks.

1) Depth limiting: pathological nesting ($or inside $and inside $or ...) is
   rejected before it reaches the server.
2) Empty-filter protection: a multi-document write with {} matches every
   document and is blocked unless the caller opts in explicitly.
3) Operation size warnings for previews of large writes.
"""

from dataclasses import dataclass
from typing import Any, Mapping, Optional

from mongoguard.config import MAX_FILTER_DEPTH
from mongoguard.guard_errors import GuardErrorKind, ValidationResult
from mongoguard.middleware.tree_walker import NodeKind, walk


@dataclass(frozen=True)
class FilterValidation:
    """Emptiness information about a filter."""

    is_valid: bool
    is_empty: bool
    is_match_all: bool
    warning: Optional[str] = None


@dataclass(frozen=True)
class BlockDecision:
    """Whether a filter must be blocked, and why."""

    blocked: bool
    reason: Optional[str] = None


def measure_depth(body: Any, limit: Optional[int] = None) -> int:
    """
    Return the maximum nesting level of mappings/sequences in body.

    The top-level object is depth 0; each nested map or array adds one.
    Every item of an array sits one level below the array, scalars
    included, so {"a": [1]} has depth 2. Scalar mapping values do not
    add depth.

    Args:
        body: Filter or any nested value
        limit: When given, stop as soon as a container deeper than limit is seen
            (the returned value is then only guaranteed to be > limit)

    Returns:
        Measured depth
    """
    deepest = 0
    for node in walk(body):
        # Scalar array items have no key and still count.
        if node.kind is NodeKind.SCALAR and node.key is not None:
            continue
        if node.depth > deepest:
            deepest = node.depth
            if limit is not None and deepest > limit:
                break
    return deepest


def validate_depth(body: Any, max_depth: int = MAX_FILTER_DEPTH) -> ValidationResult:
    """
    Reject filters nested deeper than max_depth (inclusive boundary).

    Args:
        body: Filter document
        max_depth: Maximum allowed depth

    Returns:
        ValidationResult; invalid results carry DepthExceeded with depth and limit
    """
    depth = measure_depth(body, limit=max_depth)
    if depth > max_depth:
        return ValidationResult.failed(
            GuardErrorKind.DEPTH_EXCEEDED,
            f"Filter nesting depth ({depth}) exceeds maximum allowed depth of "
            f"{max_depth}. Simplify the query.",
            depth=depth,
            max_depth=max_depth,
        )
    return ValidationResult.passed()


def validate_filter(filter_doc: Optional[Mapping[str, Any]]) -> FilterValidation:
    """Report whether a filter is empty, i.e. matches all documents."""
    is_empty = not filter_doc
    warning = None
    if is_empty:
        warning = "Empty filter will match ALL documents in the collection"
    return FilterValidation(
        is_valid=True,
        is_empty=is_empty,
        is_match_all=is_empty,
        warning=warning,
    )


def should_block_filter(
    filter_doc: Optional[Mapping[str, Any]],
    allow_empty_filter: bool = False,
    operation: Optional[str] = None,
) -> BlockDecision:
    """
    Decide whether a multi-document write must be blocked for an empty filter.

    Args:
        filter_doc: Filter of the write
        allow_empty_filter: Explicit caller override
        operation: Operation name used in the hint text (e.g. "deleteMany")

    Returns:
        BlockDecision with a reason that tells the caller how to proceed
    """
    validation = validate_filter(filter_doc)
    if not validation.is_empty or allow_empty_filter:
        return BlockDecision(blocked=False)

    operation_name = operation or "operation"
    preview_name = operation_name[:1].upper() + operation_name[1:]
    return BlockDecision(
        blocked=True,
        reason=(
            "⚠ Operation blocked for safety\n\n"
            "Filter: {} (empty - matches ALL documents)\n\n"
            "To preview impact: Add {dryRun: true}\n"
            "To proceed anyway: Add {allowEmptyFilter: true}\n"
            f"Recommended: Use preview{preview_name}() first"
        ),
    )


def get_operation_warning(count: int, operation: str) -> Optional[str]:
    """
    Warning text for a write that will touch count documents.

    Small operations (up to 10 documents) get no warning.
    """
    if count >= 1000:
        return f"⚠⚠ LARGE OPERATION: Will {operation} {count:,} documents"
    if count >= 100:
        return f"⚠ Large operation: Will {operation} {count} documents"
    if count > 10:
        return f"Will {operation} {count} documents"
    return None
