# -*- coding: utf-8 -*-

# Mongo Guard
# Copyright (C) 2025 Mongo Guard contributors
#
# This program is free software: you can redistribute it and/or modify
# it under the terms of the GNU Affero General Public License as published by
# the Free Software Foundation, either version 3 of the License, or
# (at your option) any later version.
#
# This program is distributed in the hope that it will be useful,
# but WITHOUT ANY WARRANTY; without even the implied warranty of
# MERCHANTABILITY or FITNESS FOR A PARTICULAR PURPOSE. See the
# GNU Affero General Public License for more details.
#
# You should have received a copy of the GNU Affero General Public License
# along with this program. If not, see <https://www.gnu.org/licenses/>.

"""
FastAPI exception bridge for Mongo Guard.

Maps guard rejections to HTTP responses for an outer call-handling layer that
is served over FastAPI:

    app.add_exception_handler(GuardViolation, guard_violation_handler)

Every response body is GuardError.to_dict(), so the caller always receives the
offending path, counts and limits.
"""

from fastapi import Request
from fastapi.responses import JSONResponse
from loguru import logger

from mongoguard.guard_errors import GuardError, GuardErrorKind, GuardViolation

_STATUS_BY_KIND = {
    GuardErrorKind.RATE_LIMIT_EXCEEDED: 429,
    GuardErrorKind.CONNECTION_LOST: 503,
    GuardErrorKind.NAME_REJECTED: 403,
    GuardErrorKind.COMMAND_NOT_ALLOWED: 403,
    GuardErrorKind.WRITE_STAGE_BLOCKED: 403,
}


def status_code_for(kind: GuardErrorKind) -> int:
    """HTTP status for a rejection kind (400 unless listed in _STATUS_BY_KIND)."""
    return _STATUS_BY_KIND.get(kind, 400)


def guard_error_response(error: GuardError) -> JSONResponse:
    """
    Build the JSON response for a GuardError.

    Retryable errors carry a Retry-After header when the window is known.
    """
    headers = {}
    window = error.details.get("window_seconds")
    if error.kind is GuardErrorKind.RATE_LIMIT_EXCEEDED and window:
        headers["Retry-After"] = str(int(window))
    return JSONResponse(
        status_code=status_code_for(error.kind),
        content=error.to_dict(),
        headers=headers or None,
    )


async def guard_violation_handler(request: Request, exc: GuardViolation) -> JSONResponse:
    """
    FastAPI handler for GuardViolation.

    Args:
        request: FastAPI Request object
        exc: Raised GuardViolation

    Returns:
        JSONResponse built by guard_error_response
    """
    logger.warning(
        "[Exceptions] {} {} rejected: {} - {}",
        request.method,
        request.url.path,
        exc.kind.value,
        exc.error.message,
    )
    return guard_error_response(exc.error)
