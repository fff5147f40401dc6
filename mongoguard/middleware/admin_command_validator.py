# -*- coding: utf-8 -*-

# Mongo Guard
# Copyright (C) 2025 Mongo Guard contributors
#
# This program is free software: you can redistribute it and/or modify
# it under the terms of the GNU Affero General Public License as published by
# the Free Software Foundation, either version 3 of the License, or
# (at your option) any later version.

"""
Administrative command validator.

Admin commands are allowlisted by name, and each known command may only carry
the parameters listed for it in ADMIN_COMMAND_POLICY. Unknown parameters are
stripped with a warning instead of failing the call. Parameter values are also
bounded in nesting depth.

New commands are added to ADMIN_COMMAND_POLICY as data; no code changes are
needed.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional

from loguru import logger

from mongoguard.config import (
    ADMIN_DEFAULT_TIMEOUT_MS,
    ADMIN_MAX_PARAM_DEPTH,
    ADMIN_MAX_TIMEOUT_MS,
)
from mongoguard.guard_errors import Err, GuardError, GuardErrorKind, GuardResult, Ok
from mongoguard.middleware.tree_walker import walk

# Lower-cased command name -> parameter keys allowed for it (matched case-insensitively)
ADMIN_COMMAND_POLICY: Dict[str, frozenset] = {
    "serverstatus": frozenset({"serverStatus"}),
    "dbstats": frozenset({"dbStats", "scale"}),
    "collstats": frozenset({"collStats", "scale"}),
    "replsetstatus": frozenset({"replSetGetStatus", "replsetstatus"}),
    "replsetgetconfig": frozenset({"replSetGetConfig"}),
    "ismaster": frozenset({"isMaster"}),
    "hello": frozenset({"hello"}),
    "ping": frozenset({"ping"}),
    "buildinfo": frozenset({"buildInfo"}),
    "connectionstatus": frozenset(
        {"connectionStatus", "showPrivileges", "showAuthenticatedUsers"}
    ),
    "getcmdlineopts": frozenset({"getCmdLineOpts"}),
    "hostinfo": frozenset({"hostInfo"}),
    "listdatabases": frozenset(
        {"listDatabases", "filter", "nameOnly", "authorizedDatabases"}
    ),
    "listcommands": frozenset({"listCommands"}),
    "profile": frozenset({"profile", "slowms", "sampleRate"}),
    "currentop": frozenset({"currentOp", "$all", "$ownOps", "$local", "$truncateOps"}),
    "top": frozenset({"top"}),
    "validate": frozenset({"validate", "full", "repair"}),
    "explain": frozenset({"explain", "verbosity"}),
    "getlog": frozenset({"getLog"}),
    "getparameter": frozenset({"getParameter", "allParameters"}),
    "connpoolstats": frozenset({"connPoolStats"}),
    "shardingstatus": frozenset({"shardingState", "shardingstatus"}),
}

# Every command may carry a server-side timeout.
TIMEOUT_PARAM = "maxTimeMS"

ALLOWED_ADMIN_COMMANDS = tuple(ADMIN_COMMAND_POLICY)


@dataclass
class AdminCommandValidation:
    """
    Outcome of validate_admin_command_params.

    Attributes:
        valid: False only for depth violations; stripped keys are warnings
        sanitized_command: Command with unknown parameters removed
        warnings: One entry per stripped key, plus the depth error if any
        stripped_keys: Keys removed from the command
    """

    valid: bool
    sanitized_command: Dict[str, Any]
    warnings: List[str] = field(default_factory=list)
    stripped_keys: List[str] = field(default_factory=list)


def _exceeds_depth(value: Any, max_depth: int) -> bool:
    """True when a mapping nested inside value sits deeper than max_depth.

    Arrays do not add depth; only object nesting counts.
    """
    return any(node.depth > max_depth for node in walk(value, count_sequences=False))


def validate_admin_command_params(
    command: Mapping[str, Any],
    command_name: str,
    max_depth: int = ADMIN_MAX_PARAM_DEPTH,
) -> AdminCommandValidation:
    """
    Strip parameters not allowed for command_name and bound value nesting.

    Args:
        command: Admin command document, e.g. {"dbStats": 1, "scale": 1024}
        command_name: Command name, matched case-insensitively against the policy
        max_depth: Maximum object nesting per parameter value

    Returns:
        AdminCommandValidation. Commands without a policy entry pass through
        unchanged (depth is still checked).
    """
    allowed_keys = ADMIN_COMMAND_POLICY.get(command_name.lower())

    warnings: List[str] = []
    stripped: List[str] = []

    if allowed_keys is None:
        sanitized = dict(command)
    else:
        allowed_lower = {key.lower() for key in allowed_keys}
        allowed_lower.add(TIMEOUT_PARAM.lower())

        sanitized = {}
        for key, value in command.items():
            if str(key).lower() in allowed_lower:
                sanitized[key] = value
            else:
                stripped.append(key)
                warnings.append(
                    f"Stripped unknown parameter '{key}' from {command_name} command."
                )

        if stripped:
            logger.warning(
                "[AdminCommandValidator] Stripped {} unknown parameter(s) from {}: {}",
                len(stripped),
                command_name,
                stripped,
            )

    for key, value in sanitized.items():
        if _exceeds_depth(value, max_depth):
            warnings.append(
                f"Parameter '{key}' contains deeply nested objects "
                f"(depth > {max_depth}), which is not allowed."
            )
            return AdminCommandValidation(
                valid=False,
                sanitized_command=sanitized,
                warnings=warnings,
                stripped_keys=stripped,
            )

    return AdminCommandValidation(
        valid=True,
        sanitized_command=sanitized,
        warnings=warnings,
        stripped_keys=stripped,
    )


def resolve_admin_command(command: Mapping[str, Any]) -> GuardResult[str]:
    """
    Return the lower-cased command name if it is on the allowlist.

    The command name is the first key of the command document.
    """
    command_name = str(next(iter(command), "")).lower()
    if command_name in ADMIN_COMMAND_POLICY:
        return Ok(command_name)

    return Err(
        GuardError(
            kind=GuardErrorKind.COMMAND_NOT_ALLOWED,
            message=(
                f"Command '{command_name}' is not in the list of allowed commands. "
                f"Allowed: {', '.join(ALLOWED_ADMIN_COMMANDS)}"
            ),
            details={"command": command_name},
        )
    )


def apply_admin_timeout(
    command: Mapping[str, Any], timeout_ms: Optional[int] = None
) -> Dict[str, Any]:
    """Return a copy of command with maxTimeMS set, clamped to ADMIN_MAX_TIMEOUT_MS."""
    requested = timeout_ms if timeout_ms and timeout_ms > 0 else ADMIN_DEFAULT_TIMEOUT_MS
    return {**command, TIMEOUT_PARAM: min(requested, ADMIN_MAX_TIMEOUT_MS)}
