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
Mongo Guard - guard and redaction layer for a document database.

This package sits between an automated agent and MongoDB, rejecting
dangerous requests and scrubbing responses.

Modules:
    - config: Configuration and limits
    - guard_errors: Error taxonomy and Ok/Err results
    - rate_limiter: Fixed-window rate limiter
    - log_redactor: Redacted logging helpers
    - connection_guard: Connection loss detection
    - guard_service: Orchestrating service object
    - exceptions: FastAPI exception bridge
    - middleware: Validators, preprocessor, redactor and capper
"""

# Version is imported from config.py, the single source of truth
from mongoguard.config import APP_VERSION as __version__

# Main components for convenient import
from mongoguard.guard_service import ExecutionResult, GuardService
from mongoguard.rate_limiter import RateLimiter

# Errors
from mongoguard.guard_errors import (
    BlockedOperatorError,
    Err,
    GuardError,
    GuardErrorKind,
    GuardViolation,
    Ok,
    unwrap,
)

# Validators
from mongoguard.middleware.operator_scanner import (
    assert_no_dangerous_operators,
    scan_for_dangerous_operators,
)
from mongoguard.middleware.filter_validator import measure_depth, validate_depth
from mongoguard.middleware.pipeline_validator import validate_pipeline
from mongoguard.middleware.bulk_validator import validate_bulk_operations
from mongoguard.middleware.admin_command_validator import validate_admin_command_params
from mongoguard.middleware.query_preprocessor import preprocess_query

# Redaction
from mongoguard.middleware.response_redactor import redact_admin_response, sanitize_response
from mongoguard.middleware.result_capper import cap_result_size, clamp_limit, clamp_limit_for

__all__ = [
    # Version
    "__version__",

    # Main classes
    "GuardService",
    "ExecutionResult",
    "RateLimiter",

    # Errors
    "GuardError",
    "GuardErrorKind",
    "GuardViolation",
    "BlockedOperatorError",
    "Ok",
    "Err",
    "unwrap",

    # Validators
    "scan_for_dangerous_operators",
    "assert_no_dangerous_operators",
    "measure_depth",
    "validate_depth",
    "validate_pipeline",
    "validate_bulk_operations",
    "validate_admin_command_params",
    "preprocess_query",

    # Redaction
    "sanitize_response",
    "redact_admin_response",
    "cap_result_size",
    "clamp_limit",
    "clamp_limit_for",
]
