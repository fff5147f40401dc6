# -*- coding: utf-8 -*-

# Mongo Guard
# Copyright (C) 2025 Mongo Guard contributors
#
# This program is free software: you can redistribute it and/or modify
# it under the terms of the GNU Affero General Public License as published by
# the Free Software Foundation, either version 3 of the License, or
# (at your option) any later version.

"""
Generic traversal over nested request bodies.

Request bodies (filters, update documents, pipelines, admin commands) are
untyped trees of mappings, sequences and scalars. Every structural scanner in
this package walks them through walk(), which yields one TreeNode per value in
depth-first pre-order. Consumers stop early simply by stopping iteration.

Depth and path are carried on each node; nothing is kept in module state.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Iterator, Mapping, Optional


class NodeKind(Enum):
    """Tagged variant of a request body value."""

    SCALAR = "scalar"
    SEQUENCE = "sequence"
    MAPPING = "mapping"


@dataclass(frozen=True)
class TreeNode:
    """
    One value visited by walk().

    Attributes:
        value: The value itself
        path: Locator such as "$and[0].$where" ("" for the root)
        depth: Nesting level, 0 for the root
        key: Mapping key this value sits under (None for root and sequence items)
    """

    value: Any
    path: str
    depth: int
    key: Optional[str]

    @property
    def kind(self) -> NodeKind:
        return node_kind(self.value)


def node_kind(value: Any) -> NodeKind:
    """Classify a value. Strings, bytes and BSON values are scalars."""
    if isinstance(value, Mapping):
        return NodeKind.MAPPING
    if isinstance(value, (list, tuple)):
        return NodeKind.SEQUENCE
    return NodeKind.SCALAR


def join_key(path: str, key: str) -> str:
    """Append a mapping key to a path."""
    return f"{path}.{key}" if path else key


def join_index(path: str, index: int) -> str:
    """Append a sequence index to a path."""
    return f"{path}[{index}]"


def walk(
    body: Any,
    path: str = "",
    *,
    count_sequences: bool = True,
    prune: Optional[Callable[[TreeNode], bool]] = None,
) -> Iterator[TreeNode]:
    """
    Walk a request body depth-first, yielding every value as a TreeNode.

    Args:
        body: Root value
        path: Path prefix for the root
        count_sequences: When False, sequence items stay at their sequence's depth
            (only mapping nesting counts towards depth)
        prune: Optional predicate; children of nodes for which it returns True
            are not visited (the node itself is still yielded)

    Yields:
        TreeNode for the root, then its descendants in key/index order
    """
    stack = [TreeNode(body, path, 0, None)]
    while stack:
        node = stack.pop()
        yield node

        if prune is not None and prune(node):
            continue

        value = node.value
        kind = node_kind(value)
        if kind is NodeKind.MAPPING:
            children = [
                TreeNode(child, join_key(node.path, str(key)), node.depth + 1, str(key))
                for key, child in value.items()
            ]
        elif kind is NodeKind.SEQUENCE:
            step = 1 if count_sequences else 0
            children = [
                TreeNode(child, join_index(node.path, index), node.depth + step, None)
                for index, child in enumerate(value)
            ]
        else:
            continue

        # Reversed so the first child is popped first (pre-order, input order).
        stack.extend(reversed(children))
