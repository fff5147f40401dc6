# -*- coding: utf-8 -*-

# Mongo Guard
# Copyright (C) 2025 Mongo Guard contributors
#
# This program is free software: you can redistribute it and/or modify
# it under the terms of the GNU Affero General Public License as published by
# the Free Software Foundation, either version 3 of the License, or
# (at your option) any later version.

"""
Response redaction.

Two independent layers scrub what the server returns before the agent sees it:

1) sanitize_response(): generic pass over every response. Any key whose name
   contains a sensitive substring (password, key, secret, token,
   connectionString) is replaced by the redaction marker at any depth.
   ObjectIds are rendered as Extended JSON {"$oid": hex}.

2) redact_admin_response(): per-command policies for admin commands whose
   output leaks operational detail. Denylist policies drop named fields and
   keep the rest. Allowlist policies keep only reviewed fields, so a field
   added by a future server version is hidden by default.
"""

import copy
from typing import Any, Callable, Dict, Iterable, Mapping, Optional

from bson import ObjectId

from mongoguard.config import REDACTION_MARKER

# Lower-cased substrings; a key containing any of them is redacted.
SENSITIVE_FIELDS = ("password", "key", "secret", "token", "connectionstring")

REDACTED_NOTE_KEY = "_redacted"

RedactionPolicy = Callable[[Mapping[str, Any]], Dict[str, Any]]


def is_sensitive_key(key: Any) -> bool:
    """Case-insensitive substring match against SENSITIVE_FIELDS."""
    lowered = str(key).lower()
    return any(field in lowered for field in SENSITIVE_FIELDS)


def convert_object_ids(obj: Any) -> Any:
    """Return a copy of obj with every ObjectId replaced by {"$oid": hex}."""
    if isinstance(obj, ObjectId):
        return {"$oid": str(obj)}
    if isinstance(obj, Mapping):
        return {key: convert_object_ids(value) for key, value in obj.items()}
    if isinstance(obj, (list, tuple)):
        return [convert_object_ids(item) for item in obj]
    return obj


def _redact_copy(value: Any) -> Any:
    if isinstance(value, ObjectId):
        return {"$oid": str(value)}
    if isinstance(value, Mapping):
        return {
            key: REDACTION_MARKER if is_sensitive_key(key) else _redact_copy(item)
            for key, item in value.items()
        }
    if isinstance(value, (list, tuple)):
        return [_redact_copy(item) for item in value]
    return copy.deepcopy(value)


def sanitize_response(data: Any) -> Any:
    """
    Deep-copy a server response and redact sensitive keys at any depth.

    Args:
        data: Response document, list of documents or scalar

    Returns:
        New structure; the input is never modified
    """
    if not isinstance(data, (Mapping, list, tuple)):
        return data
    return _redact_copy(data)


# ==================================================================================================
# Per-command admin redaction
# ==================================================================================================


def deny_keys(
    keys: Iterable[str] = (),
    nested: Optional[Mapping[str, Iterable[str]]] = None,
    note: Optional[str] = None,
) -> RedactionPolicy:
    """
    Build a denylist policy.

    Args:
        keys: Top-level keys to remove
        nested: Sub-document name -> keys to remove inside it
        note: Text stored under "_redacted" when the policy applies
    """
    denied = frozenset(keys)
    nested_denied = {parent: frozenset(children) for parent, children in (nested or {}).items()}

    def redact(response: Mapping[str, Any]) -> Dict[str, Any]:
        result = {key: value for key, value in response.items() if key not in denied}
        for parent, children in nested_denied.items():
            sub_document = result.get(parent)
            if isinstance(sub_document, Mapping):
                result[parent] = {
                    key: value for key, value in sub_document.items() if key not in children
                }
        if note:
            result[REDACTED_NOTE_KEY] = note
        return result

    return redact


def allow_keys(
    keys: Iterable[str],
    nested: Optional[Mapping[str, Iterable[str]]] = None,
    note: Optional[str] = None,
    count_note: Optional[str] = None,
) -> RedactionPolicy:
    """
    Build a fail-closed allowlist policy.

    Args:
        keys: Top-level keys to keep
        nested: Sub-document name -> keys to keep inside it
        note: Fixed text stored under "_redacted"
        count_note: Template with {count} stored under "_redacted" when
            top-level keys were dropped (takes precedence over note)
    """
    allowed = frozenset(keys)
    nested_allowed = {parent: frozenset(children) for parent, children in (nested or {}).items()}

    def redact(response: Mapping[str, Any]) -> Dict[str, Any]:
        result: Dict[str, Any] = {}
        dropped = 0
        for key, value in response.items():
            if key in allowed:
                result[key] = value
            elif key in nested_allowed:
                if isinstance(value, Mapping):
                    result[key] = {
                        sub_key: sub_value
                        for sub_key, sub_value in value.items()
                        if sub_key in nested_allowed[key]
                    }
            else:
                dropped += 1

        if count_note and dropped:
            result[REDACTED_NOTE_KEY] = count_note.format(count=dropped)
        elif note:
            result[REDACTED_NOTE_KEY] = note
        return result

    return redact


SAFE_GETPARAMETER_KEYS = (
    "ok",
    "maxBSONObjectSize",
    "maxMessageSizeBytes",
    "maxWriteBatchSize",
    "maxWireVersion",
    "minWireVersion",
    "internalQueryMaxBlockingSortMemoryUsageBytes",
    "internalQueryExecMaxBlockingSortBytes",
    "internalQueryFacetBufferSizeBytes",
    "internalDocumentSourceGroupMaxMemoryBytes",
    "internalQueryMaxAddToSetBytes",
    "cursor",
)

SAFE_HOSTINFO_SYSTEM_KEYS = ("numCores", "numPhysicalCores", "cpuArch", "memSizeMB")
SAFE_HOSTINFO_OS_KEYS = ("type", "name")

# Lower-cased command name -> policy
REDACTION_POLICIES: Dict[str, RedactionPolicy] = {
    "connectionstatus": deny_keys(
        nested={"authInfo": ("authenticatedUserPrivileges", "authenticatedUserRoles")},
    ),
    "getlog": deny_keys(
        ("log",),
        note="Log entries redacted. Use MongoDB shell for direct log access.",
    ),
    "getcmdlineopts": allow_keys(
        ("ok",),
        note="Startup configuration redacted. Use MongoDB shell for direct access.",
    ),
    "getparameter": allow_keys(
        SAFE_GETPARAMETER_KEYS,
        count_note="{count} parameter(s) redacted. Only safe operational params are shown.",
    ),
    "hostinfo": allow_keys(
        ("ok",),
        nested={"system": SAFE_HOSTINFO_SYSTEM_KEYS, "os": SAFE_HOSTINFO_OS_KEYS},
    ),
}


def redact_admin_response(command_name: str, response: Mapping[str, Any]) -> Mapping[str, Any]:
    """
    Apply the redaction policy registered for command_name.

    Commands without a policy are returned unchanged.
    """
    policy = REDACTION_POLICIES.get(command_name.lower())
    if policy is None:
        return response
    return policy(response)


def strip_current_op_metadata(operation: Mapping[str, Any]) -> Dict[str, Any]:
    """Sanitize a currentOp entry: redact its command body, drop client metadata."""
    result = {key: value for key, value in operation.items() if key != "clientMetadata"}
    if result.get("command"):
        result["command"] = sanitize_response(result["command"])
    return result
