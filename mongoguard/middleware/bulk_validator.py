# -*- coding: utf-8 -*-

# Mongo Guard
# Copyright (C) 2025 Mongo Guard contributors
#
# This program is free software: you can redistribute it and/or modify
# it under the terms of the GNU Affero General Public License as published by
# the Free Software Foundation, either version 3 of the License, or
# (at your option) any later version.

"""
Bulk write batch validator.

A batch is a list of single-key tagged objects such as
{"updateMany": {"filter": {...}, "update": {...}}}. Validation is
all-or-nothing: the first problem found anywhere in the batch is returned and
nothing else is checked. Messages use 1-based operation indexes.

Checks, in order, per entry:
  1. Entry is a non-null object with exactly one key
  2. The key is a known operation type
  3. updateMany/deleteMany carry a non-empty filter (unless overridden)
  4. filter / update / replacement contain no dangerous operators
"""

from typing import Any, Mapping, Sequence

from mongoguard.config import MAX_BULK_OPERATIONS
from mongoguard.guard_errors import GuardErrorKind, ValidationResult
from mongoguard.middleware.operator_scanner import scan_for_dangerous_operators

VALID_BULK_OPERATION_TYPES = (
    "insertOne",
    "updateOne",
    "updateMany",
    "deleteOne",
    "deleteMany",
    "replaceOne",
)

# Operations that may touch more than one document
MULTI_DOC_OPERATIONS = ("updateMany", "deleteMany")

# Operation type -> body fields that are scanned for dangerous operators
_SCANNED_FIELDS = {
    "updateOne": ("filter", "update"),
    "updateMany": ("filter", "update"),
    "deleteOne": ("filter",),
    "deleteMany": ("filter",),
    "replaceOne": ("filter", "replacement"),
}


def _describe_type(value: Any) -> str:
    """JSON-ish type name for error messages."""
    if value is None:
        return "null"
    if isinstance(value, (list, tuple)):
        return "array"
    if isinstance(value, str):
        return "string"
    if isinstance(value, bool):
        return "boolean"
    if isinstance(value, (int, float)):
        return "number"
    return type(value).__name__


def _has_usable_filter(body: Any) -> bool:
    """True when body.filter is a non-empty mapping."""
    if not isinstance(body, Mapping):
        return False
    filter_doc = body.get("filter")
    return isinstance(filter_doc, Mapping) and len(filter_doc) > 0


def validate_bulk_operations(
    operations: Sequence[Any],
    max_operations: int = MAX_BULK_OPERATIONS,
    allow_empty_filter: bool = False,
) -> ValidationResult:
    """
    Validate a bulkWrite batch.

    Args:
        operations: Batch entries
        max_operations: Maximum batch size (equality accepted)
        allow_empty_filter: Explicit override of the multi-document
            empty-filter protection

    Returns:
        ValidationResult with the first error found, or valid
    """
    count = len(operations)
    if count == 0:
        return ValidationResult.failed(
            GuardErrorKind.MALFORMED_BATCH_ENTRY,
            "Operations array is empty. Provide at least one operation.",
            count=0,
        )

    if count > max_operations:
        return ValidationResult.failed(
            GuardErrorKind.MALFORMED_BATCH_ENTRY,
            f"Operations count ({count}) exceeds the maximum of {max_operations}.",
            count=count,
            max_operations=max_operations,
        )

    for position, op in enumerate(operations, start=1):
        if not isinstance(op, Mapping):
            return ValidationResult.failed(
                GuardErrorKind.MALFORMED_BATCH_ENTRY,
                f"Operation {position}: expected a non-null object, got {_describe_type(op)}.",
                index=position,
            )

        keys = list(op.keys())
        if not keys:
            return ValidationResult.failed(
                GuardErrorKind.MALFORMED_BATCH_ENTRY,
                f"Operation {position}: empty operation object.",
                index=position,
            )

        if len(keys) > 1:
            return ValidationResult.failed(
                GuardErrorKind.MALFORMED_BATCH_ENTRY,
                f"Operation {position}: contains multiple operation types "
                f"({', '.join(map(str, keys))}). Each operation object must have "
                "exactly one type.",
                index=position,
                keys=keys,
            )

        op_type = keys[0]
        if op_type not in VALID_BULK_OPERATION_TYPES:
            return ValidationResult.failed(
                GuardErrorKind.UNKNOWN_OPERATION_TYPE,
                f"Operation {position}: unknown operation type '{op_type}'. "
                f"Valid types: {', '.join(VALID_BULK_OPERATION_TYPES)}.",
                index=position,
                operation_type=op_type,
            )

        body = op[op_type]

        if (
            op_type in MULTI_DOC_OPERATIONS
            and not allow_empty_filter
            and not _has_usable_filter(body)
        ):
            return ValidationResult.failed(
                GuardErrorKind.EMPTY_FILTER_REJECTED,
                f"Operation {position} ({op_type}): empty filter would affect ALL "
                f"documents. Use a specific filter or dedicated {op_type} tool with "
                "allowEmptyFilter option.",
                index=position,
                operation_type=op_type,
            )

        if not isinstance(body, Mapping):
            continue

        for field_name in _SCANNED_FIELDS.get(op_type, ()):
            value = body.get(field_name)
            if not value:
                continue
            scan = scan_for_dangerous_operators(value)
            if scan.found:
                return ValidationResult.failed(
                    GuardErrorKind.BLOCKED_OPERATOR,
                    f"Operation {position} ({op_type}): {field_name} contains blocked "
                    f"operator {scan.operator} at {scan.path}. Server-side JavaScript "
                    "execution is not allowed.",
                    index=position,
                    operation_type=op_type,
                    operator=scan.operator,
                    path=scan.path,
                )

    return ValidationResult.passed()
