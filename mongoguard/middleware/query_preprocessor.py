# -*- coding: utf-8 -*-

# Mongo Guard
# Copyright (C) 2025 Mongo Guard contributors
#
# This program is free software: you can redistribute it and/or modify
# it under the terms of the GNU Affero General Public License as published by
# the Free Software Foundation, either version 3 of the License, or
# (at your option) any later version.

"""
Identifier coercion for agent-supplied queries.

Agents send identifiers as plain hex strings or as Extended JSON wrappers
({"$oid": "..."}), but the server only matches native ObjectId values. This
preprocessor rewrites likely-identifier fields into bson.ObjectId.

Which fields are identifiers is a name heuristic (see is_object_id_field). It
is a best-effort guess: a field named "customerRef" holding a free-text
reference is converted if its value happens to be 24 hex characters, and an
identifier stored under an unusual name is left alone. Only syntactically
valid identifiers are ever converted.

Hex digits are accepted in either case, but str(ObjectId) is always lower
case. Converting back therefore reproduces the original string only for
lower-case input; "507F1F77BCF86CD799439011" comes back as
"507f1f77bcf86cd799439011".

The preprocessor does not reject anything. Callers must still run the operator
scanner; values under denylisted operators are copied without coercion.
"""

import copy
import re
from typing import Any, Mapping, Optional

from bson import ObjectId

from mongoguard.middleware.operator_scanner import is_dangerous_operator

_OBJECT_ID_FIELD_PATTERNS = (
    re.compile(r"^_id$"),
    re.compile(r"Id$"),
    re.compile(r"^id$", re.IGNORECASE),
    re.compile(r"_id$"),
    re.compile(r"^ref", re.IGNORECASE),
)

_OBJECT_ID_HEX = re.compile(r"^[0-9a-fA-F]{24}$")

EXTENDED_OID_KEY = "$oid"


def is_object_id_field(field_name: str) -> bool:
    """Heuristic: does this field name usually hold an ObjectId?"""
    return any(pattern.search(field_name) for pattern in _OBJECT_ID_FIELD_PATTERNS)


def is_object_id_string(value: Any) -> bool:
    """True for a 24-character hex string."""
    return isinstance(value, str) and bool(_OBJECT_ID_HEX.match(value))


def coerce_object_id(value: Any) -> Optional[ObjectId]:
    """
    Convert a hex string or {"$oid": hex} wrapper to ObjectId.

    Returns:
        ObjectId, or None when the value is not a valid identifier
    """
    if isinstance(value, ObjectId):
        return value
    if is_object_id_string(value):
        return ObjectId(value)
    if (
        isinstance(value, Mapping)
        and len(value) == 1
        and EXTENDED_OID_KEY in value
        and is_object_id_string(value[EXTENDED_OID_KEY])
    ):
        return ObjectId(value[EXTENDED_OID_KEY])
    return None


def _preprocess_value(value: Any) -> Any:
    """Structural recursion outside identifier context."""
    if isinstance(value, Mapping):
        return preprocess_query(value)
    if isinstance(value, (list, tuple)):
        return [_preprocess_value(item) for item in value]
    return value


def _coerce_id_value(value: Any) -> Any:
    """Coerce a value found under an identifier field (or an operator on one)."""
    converted = coerce_object_id(value)
    if converted is not None:
        return converted

    if isinstance(value, Mapping):
        result = {}
        for key, operand in value.items():
            if is_dangerous_operator(str(key)):
                result[key] = copy.deepcopy(operand)
            elif str(key).startswith("$"):
                result[key] = _coerce_id_value(operand)
            else:
                result[key] = _preprocess_entry(key, operand)
        return result

    if isinstance(value, (list, tuple)):
        return [_coerce_id_value(item) for item in value]

    return value


def _preprocess_entry(key: Any, value: Any) -> Any:
    name = str(key)
    if is_dangerous_operator(name):
        return copy.deepcopy(value)
    if is_object_id_field(name):
        return _coerce_id_value(value)
    return _preprocess_value(value)


def preprocess_query(query: Any) -> Any:
    """
    Return a copy of query with identifier fields converted to ObjectId.

    Every key is preserved in its original order; only convertible identifier
    leaves change. Non-mapping input (including None) is returned unchanged.

    Example:
        >>> preprocess_query({"userId": {"$in": ["507f1f77bcf86cd799439011", "n/a"]}})
        {'userId': {'$in': [ObjectId('507f1f77bcf86cd799439011'), 'n/a']}}
    """
    if not isinstance(query, Mapping):
        return query
    return {key: _preprocess_entry(key, value) for key, value in query.items()}
