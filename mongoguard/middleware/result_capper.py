# -*- coding: utf-8 -*-

# Mongo Guard
# Copyright (C) 2025 Mongo Guard contributors
#
# This program is free software: you can redistribute it and/or modify
# it under the terms of the GNU Affero General Public License as published by
# the Free Software Foundation, either version 3 of the License, or
# (at your option) any later version.

"""
Result size capping.

Oversized result sets are truncated from the end until they fit the byte
budget. Sizes are UTF-8 bytes of the compact Extended JSON rendering, so
multi-byte characters are measured correctly. At least one item is always
kept, even if it alone exceeds the budget.
"""

import json
from dataclasses import dataclass
from typing import Any, List, Optional, Sequence

from bson import json_util
from loguru import logger

from mongoguard.config import (
    MAX_EXPORT_LIMIT,
    MAX_QUERY_LIMIT,
    MAX_RESULT_BYTES,
    MAX_SAMPLE_SIZE,
)


@dataclass
class CappedResult:
    """Outcome of cap_result_size."""

    result: List[Any]
    truncated: bool
    warning: Optional[str] = None
    total_bytes: int = 0


def serialized_size_bytes(value: Any) -> int:
    """Return the UTF-8 byte length of the compact Extended JSON rendering."""
    rendered = json.dumps(
        value, default=json_util.default, ensure_ascii=False, separators=(",", ":")
    )
    return len(rendered.encode("utf-8"))


def _list_size(item_sizes: Sequence[int]) -> int:
    """Size of "[a,b,c]" given the sizes of a, b and c."""
    if not item_sizes:
        return 2
    return 2 + sum(item_sizes) + len(item_sizes) - 1


def cap_result_size(items: Sequence[Any], max_bytes: int = MAX_RESULT_BYTES) -> CappedResult:
    """
    Truncate items from the end until the serialized list fits max_bytes.

    Args:
        items: Result documents
        max_bytes: Byte budget for the whole list

    Returns:
        CappedResult; untouched input with truncated=False when it fits
    """
    item_sizes = [serialized_size_bytes(item) for item in items]
    total = _list_size(item_sizes)
    if total <= max_bytes:
        return CappedResult(result=list(items), truncated=False, total_bytes=total)

    kept = len(item_sizes)
    size = total
    while kept > 1 and size > max_bytes:
        kept -= 1
        # Dropping the last item also drops the comma before it.
        size -= item_sizes[kept] + 1

    logger.warning(
        "[ResultCapper] Result truncated: {} -> {} items ({} -> {} bytes, limit {})",
        len(item_sizes),
        kept,
        total,
        size,
        max_bytes,
    )
    return CappedResult(
        result=list(items[:kept]),
        truncated=True,
        warning=(
            f"Result truncated to {kept} of {len(item_sizes)} items to stay within the "
            f"{max_bytes:,} byte response size limit. Use a narrower filter, a projection "
            "or a smaller limit."
        ),
        total_bytes=size,
    )


def clamp_limit(requested: Optional[int], maximum: int = MAX_QUERY_LIMIT) -> int:
    """Clamp a caller-supplied document limit to (0, maximum]."""
    if not requested or requested <= 0:
        return maximum
    return min(requested, maximum)


# Limit kind -> configured ceiling
LIMIT_CEILINGS = {
    "query": MAX_QUERY_LIMIT,
    "export": MAX_EXPORT_LIMIT,
    "sample": MAX_SAMPLE_SIZE,
}


def clamp_limit_for(kind: str, requested: Optional[int]) -> int:
    """
    Clamp a limit against the configured ceiling for its kind.

    Args:
        kind: "query" (find/aggregate results), "export" or "sample"
        requested: Caller-supplied limit, None or non-positive for the ceiling

    Returns:
        Effective limit

    Raises:
        ValueError: Unknown kind
    """
    if kind not in LIMIT_CEILINGS:
        raise ValueError(
            f"Unknown limit kind '{kind}'. Valid kinds: {', '.join(LIMIT_CEILINGS)}."
        )
    return clamp_limit(requested, LIMIT_CEILINGS[kind])
