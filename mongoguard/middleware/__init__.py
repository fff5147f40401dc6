# -*- coding: utf-8 -*-

# Mongo Guard
# Copyright (C) 2025 Mongo Guard contributors
#
# This program is free software: you can redistribute it and/or modify
# it under the terms of the GNU Affero General Public License as published by
# the Free Software Foundation, either version 3 of the License, or
# (at your option) any later version.

"""
Request guard middleware for Mongo Guard.

This package holds the structural checks that stand between an
agent-constructed request and the document store, plus the redaction applied
to what comes back.

Architecture:
    Every validator is a pure function of its input and keeps no state. All
    structural scanners share one traversal primitive (tree_walker.walk). The
    pipeline orchestrator composes them per request shape and returns
    Ok/Err results.

Request order:
    1. QueryPreprocessor - Coerce identifier fields to ObjectId
    2. OperatorScanner - Block server-side JavaScript operators
    3. FilterValidator - Depth limit, empty-filter protection
    4. PipelineValidator - Stage budgets, write stages, option allowlist
    5. BulkValidator - Batch structure and per-entry rules
    6. AdminCommandValidator - Command and parameter allowlists

Response order:
    1. ResponseRedactor - Per-command admin policies, sensitive keys
    2. ResultCapper - Byte budget for result lists
"""

from mongoguard.middleware.pipeline import (
    PreparedAdminCommand,
    PreparedPipeline,
    run_admin_pipeline,
    run_aggregate_pipeline,
    run_bulk_pipeline,
    run_document_pipeline,
    run_filter_pipeline,
)

__all__ = [
    "PreparedAdminCommand",
    "PreparedPipeline",
    "run_admin_pipeline",
    "run_aggregate_pipeline",
    "run_bulk_pipeline",
    "run_document_pipeline",
    "run_filter_pipeline",
]
