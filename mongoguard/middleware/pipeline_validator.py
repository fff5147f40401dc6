# -*- coding: utf-8 -*-

# Mongo Guard
# Copyright (C) 2025 Mongo Guard contributors
#
# This program is free software: you can redistribute it and/or modify
# it under the terms of the GNU Affero General Public License as published by
# the Free Software Foundation, either version 3 of the License, or
# (at your option) any later version.

"""
Aggregation pipeline budget validator.

Bounds the total number of stages and the number of expensive stages
($lookup, $graphLookup, $facet, $unionWith). Stages nested inside the
sub-pipelines of those operators are counted too, so hiding a $lookup inside a
$facet branch does not escape the budget.

Also provides write-stage detection ($out, $merge) for read-only deployments
and an allowlist for aggregate() options.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, Iterator, List, Mapping, Sequence, Tuple

from mongoguard.config import MAX_EXPENSIVE_STAGES, MAX_PIPELINE_STAGES

EXPENSIVE_STAGES = ("$lookup", "$graphLookup", "$facet", "$unionWith")

WRITE_STAGES = ("$out", "$merge")

SAFE_AGGREGATE_OPTIONS = frozenset(
    {
        "allowDiskUse",
        "batchSize",
        "collation",
        "comment",
        "cursor",
        "hint",
        "let",
        "maxTimeMS",
        "readConcern",
        "readPreference",
    }
)

# Operators whose "pipeline" field is a nested pipeline
_PIPELINE_FIELD_STAGES = ("$lookup", "$graphLookup", "$unionWith")


@dataclass
class PipelineValidation:
    """Outcome of validate_pipeline, with counts for diagnostics."""

    valid: bool
    error: str = ""
    stage_count: int = 0
    expensive_stage_count: int = 0
    expensive_stage_names: List[str] = field(default_factory=list)


def _sub_pipelines(stage_op: str, stage_body: Any) -> List[Sequence[Any]]:
    """Return the nested pipelines carried by a stage, if any."""
    if not isinstance(stage_body, Mapping):
        return []
    if stage_op in _PIPELINE_FIELD_STAGES:
        nested = stage_body.get("pipeline")
        return [nested] if isinstance(nested, list) else []
    if stage_op == "$facet":
        return [branch for branch in stage_body.values() if isinstance(branch, list)]
    return []


def iter_stages(pipeline: Sequence[Any]) -> Iterator[Tuple[str, Any]]:
    """
    Yield (stage_operator, stage_body) for every stage, nested ones included.

    Entries that are not mappings, or are empty mappings, are skipped. The
    stage operator is the first key of the stage document.
    """
    for stage in pipeline:
        if not isinstance(stage, Mapping) or not stage:
            continue
        stage_op = next(iter(stage))
        stage_body = stage[stage_op]
        yield stage_op, stage_body
        for nested in _sub_pipelines(stage_op, stage_body):
            yield from iter_stages(nested)


def validate_pipeline(
    pipeline: Sequence[Any],
    max_stages: int = MAX_PIPELINE_STAGES,
    max_expensive: int = MAX_EXPENSIVE_STAGES,
) -> PipelineValidation:
    """
    Check a pipeline against the stage and expensive-stage budgets.

    Args:
        pipeline: List of stage documents
        max_stages: Maximum total stages, nested included (equality accepted)
        max_expensive: Maximum expensive stages, nested included (equality accepted)

    Returns:
        PipelineValidation with counts; the total-stage budget is checked first
    """
    stage_count = 0
    expensive_names: List[str] = []
    for stage_op, _ in iter_stages(pipeline):
        stage_count += 1
        if stage_op in EXPENSIVE_STAGES:
            expensive_names.append(stage_op)

    expensive_count = len(expensive_names)

    if stage_count > max_stages:
        return PipelineValidation(
            valid=False,
            error=(
                f"Pipeline has {stage_count} stages (including nested), exceeding the "
                f"maximum of {max_stages}. Simplify the pipeline or break it into "
                "multiple queries."
            ),
            stage_count=stage_count,
            expensive_stage_count=expensive_count,
            expensive_stage_names=expensive_names,
        )

    if expensive_count > max_expensive:
        return PipelineValidation(
            valid=False,
            error=(
                f"Pipeline has {expensive_count} expensive stages "
                f"({', '.join(expensive_names)}), exceeding the maximum of "
                f"{max_expensive}. Reduce the number of {'/'.join(EXPENSIVE_STAGES)} stages."
            ),
            stage_count=stage_count,
            expensive_stage_count=expensive_count,
            expensive_stage_names=expensive_names,
        )

    return PipelineValidation(
        valid=True,
        stage_count=stage_count,
        expensive_stage_count=expensive_count,
        expensive_stage_names=expensive_names,
    )


def find_write_stages(pipeline: Sequence[Any]) -> List[str]:
    """Return the write stages ($out, $merge) present anywhere in the pipeline."""
    return [stage_op for stage_op, _ in iter_stages(pipeline) if stage_op in WRITE_STAGES]


def sanitize_aggregate_options(options: Mapping[str, Any]) -> Dict[str, Any]:
    """
    Keep only read-safe aggregate() options.

    Write-enabling options such as "out" would bypass pipeline validation,
    so anything not on the allowlist is dropped.
    """
    return {key: value for key, value in options.items() if key in SAFE_AGGREGATE_OPTIONS}
