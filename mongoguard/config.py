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
Mongo Guard Configuration.

Centralized storage for all guard limits, policies and logging settings.
Loads environment variables and provides typed access to them.
"""

import os
import sys

from dotenv import load_dotenv

# Load environment variables
load_dotenv()

_TRUE_VALUES = ("true", "1", "yes", "enabled", "on")

# ==================================================================================================
# Access Settings
# ==================================================================================================

# The only database the agent may touch. Every other name is rejected by the name validator.
ALLOWED_DATABASE: str = os.getenv("MONGODB_DATABASE", "test")

# Access mode: "read-only" (default) or "read-write".
# Read-only mode additionally blocks aggregation write stages ($out, $merge).
# Invalid values fall back to read-only for safety.
_ACCESS_MODE_RAW: str = os.getenv("ACCESS_MODE", "read-only").lower().strip()

if _ACCESS_MODE_RAW in ("read-only", "read-write"):
    ACCESS_MODE: str = _ACCESS_MODE_RAW
else:
    print(
        f'Invalid ACCESS_MODE "{_ACCESS_MODE_RAW}". Must be "read-only" or "read-write". '
        "Defaulting to read-only for safety.",
        file=sys.stderr,
    )
    ACCESS_MODE: str = "read-only"

READ_ONLY: bool = ACCESS_MODE == "read-only"

# ==================================================================================================
# Filter Limits
# ==================================================================================================

# Maximum nesting depth of a filter document (top-level object is depth 0).
# Depth equal to the limit is accepted.
MAX_FILTER_DEPTH: int = int(os.getenv("MAX_FILTER_DEPTH", "10"))

# ==================================================================================================
# Aggregation Pipeline Limits
# ==================================================================================================

# Total number of stages, including stages nested in $lookup/$facet/$unionWith sub-pipelines.
MAX_PIPELINE_STAGES: int = int(os.getenv("MAX_PIPELINE_STAGES", "20"))

# Number of $lookup/$graphLookup/$facet/$unionWith stages, nested ones included.
MAX_EXPENSIVE_STAGES: int = int(os.getenv("MAX_EXPENSIVE_STAGES", "3"))

# ==================================================================================================
# Bulk Write Limits
# ==================================================================================================

# Maximum number of entries in a single bulkWrite batch.
MAX_BULK_OPERATIONS: int = int(os.getenv("MAX_BULK_OPERATIONS", "1000"))

# ==================================================================================================
# Admin Command Settings
# ==================================================================================================

# Maximum object nesting inside a single admin command parameter.
ADMIN_MAX_PARAM_DEPTH: int = int(os.getenv("ADMIN_MAX_PARAM_DEPTH", "2"))

# maxTimeMS injected into admin commands (milliseconds).
# Caller-supplied timeouts are clamped to ADMIN_MAX_TIMEOUT_MS.
ADMIN_DEFAULT_TIMEOUT_MS: int = int(os.getenv("ADMIN_DEFAULT_TIMEOUT_MS", "30000"))
ADMIN_MAX_TIMEOUT_MS: int = int(os.getenv("ADMIN_MAX_TIMEOUT_MS", "60000"))

# ==================================================================================================
# Rate Limiting
# ==================================================================================================

# Fixed-window limit for administrative and other high-cost calls, per operation name.
RATE_LIMIT_MAX_CALLS: int = int(os.getenv("RATE_LIMIT_MAX_CALLS", "100"))

# Window duration in seconds (default: 1 minute).
RATE_LIMIT_WINDOW_SECONDS: float = float(os.getenv("RATE_LIMIT_WINDOW_SECONDS", "60"))

# How often stale rate-limit entries are swept (default: 5 minutes).
RATE_LIMIT_SWEEP_INTERVAL_SECONDS: float = float(
    os.getenv("RATE_LIMIT_SWEEP_INTERVAL_SECONDS", "300")
)

# ==================================================================================================
# Result Limits
# ==================================================================================================

# Byte budget for a single result set returned to the agent (default: 1 MiB).
# Measured as UTF-8 bytes of the serialized result, not characters.
MAX_RESULT_BYTES: int = int(os.getenv("MAX_RESULT_BYTES", str(1024 * 1024)))

# Maximum number of documents returned by general query operations.
MAX_QUERY_LIMIT: int = int(os.getenv("MAX_QUERY_LIMIT", "10000"))

# Maximum number of documents returned by collection exports.
MAX_EXPORT_LIMIT: int = int(os.getenv("MAX_EXPORT_LIMIT", "50000"))

# Maximum sample size for schema inference and data quality scans.
MAX_SAMPLE_SIZE: int = int(os.getenv("MAX_SAMPLE_SIZE", "10000"))

# ==================================================================================================
# Redaction Settings
# ==================================================================================================

# Replacement value for sensitive fields in responses and log records.
REDACTION_MARKER: str = "[REDACTED]"

# Redact sensitive keys from currentOp output (command bodies, client metadata).
_EXCLUDE_SENSITIVE_OPS_RAW: str = os.getenv("EXCLUDE_SENSITIVE_OPS", "true").lower()
EXCLUDE_SENSITIVE_OPS: bool = _EXCLUDE_SENSITIVE_OPS_RAW in _TRUE_VALUES

# ==================================================================================================
# Logging Settings
# ==================================================================================================

# Log level for the application
# Available levels: TRACE, DEBUG, INFO, WARNING, ERROR, CRITICAL
# Default: INFO (recommended for production)
LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO").upper()

# Log every guarded call (with redacted arguments) at INFO level.
_LOG_TOOL_USAGE_RAW: str = os.getenv("LOG_TOOL_USAGE", "false").lower()
LOG_TOOL_USAGE: bool = _LOG_TOOL_USAGE_RAW in _TRUE_VALUES

# ==================================================================================================
# Application Version
# ==================================================================================================

APP_VERSION: str = "1.0"
