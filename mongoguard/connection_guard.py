# -*- coding: utf-8 -*-

# Mongo Guard
# Copyright (C) 2025 Mongo Guard contributors
#
# This program is free software: you can redistribute it and/or modify
# it under the terms of the GNU Affero General Public License as published by
# the Free Software Foundation, either version 3 of the License, or
# (at your option) any later version.

"""
Connection loss detection for engine calls.

A lost server connection is not something the agent can fix by changing its
request, so it is reported as a ConnectionLost soft error instead of leaking a
driver traceback. Every other engine failure propagates unchanged.
"""

import functools
from typing import Any, Awaitable, Callable, TypeVar

from loguru import logger
from pymongo.errors import ConnectionFailure

from mongoguard.guard_errors import Err, GuardError, GuardErrorKind
from mongoguard.log_redactor import log_tool_error

R = TypeVar("R")

# Driver exception class names that always mean the connection is gone
CONNECTION_ERROR_NAMES = frozenset(
    {
        "AutoReconnect",
        "ConnectionFailure",
        "NetworkTimeout",
        "ServerSelectionTimeoutError",
        "MongoNetworkError",
        "MongoServerClosedError",
        "MongoNotConnectedError",
        "MongoTopologyClosedError",
        "MongoNetworkTimeoutError",
    }
)

# Lower-cased message fragments for failures raised as generic errors
CONNECTION_ERROR_PATTERNS = (
    "topology was destroyed",
    "topology is closed",
    "connection closed",
    "connection pool cleared",
    "server selection timed out",
    "not connected",
    "client must be connected",
    "cannot use mongoclient after close",
)

CONNECTION_LOST_MESSAGE = (
    "MongoDB connection lost. The server can no longer communicate with the database. "
    "Please restart the server to re-establish the connection."
)


def is_connection_error(error: BaseException) -> bool:
    """
    Check whether an engine failure means the server connection is lost.

    Args:
        error: Exception raised by the engine call

    Returns:
        True for pymongo ConnectionFailure (and subclasses), known driver
        class names, or messages matching CONNECTION_ERROR_PATTERNS
    """
    if isinstance(error, ConnectionFailure):
        return True
    if type(error).__name__ in CONNECTION_ERROR_NAMES:
        return True
    message = str(error).lower()
    return any(pattern in message for pattern in CONNECTION_ERROR_PATTERNS)


def connection_lost_error(tool_name: str) -> GuardError:
    """ConnectionLost error for tool_name."""
    return GuardError(
        kind=GuardErrorKind.CONNECTION_LOST,
        message=f"[{tool_name}] {CONNECTION_LOST_MESSAGE}",
        details={"tool": tool_name},
    )


def with_connection_guard(
    tool_name: str, handler: Callable[..., Awaitable[R]]
) -> Callable[..., Awaitable[Any]]:
    """
    Wrap an async handler so connection failures become Err(ConnectionLost).

    Args:
        tool_name: Name used in the error message and log
        handler: Async callable performing the engine call

    Returns:
        Async callable returning the handler's result, or Err on connection loss
    """

    @functools.wraps(handler)
    async def guarded(*args: Any, **kwargs: Any) -> Any:
        try:
            return await handler(*args, **kwargs)
        except Exception as error:
            if not is_connection_error(error):
                raise
            log_tool_error(tool_name, error, kwargs or None)
            logger.warning("[ConnectionGuard] {}: connection lost", tool_name)
            return Err(connection_lost_error(tool_name))

    return guarded
