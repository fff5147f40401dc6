# -*- coding: utf-8 -*-

"""Unit tests for the guard pipeline orchestrator."""

import pytest
from bson import ObjectId

from mongoguard.guard_errors import Err, GuardErrorKind, Ok
from mongoguard.middleware.pipeline import (
    PreparedAdminCommand,
    PreparedPipeline,
    run_admin_pipeline,
    run_aggregate_pipeline,
    run_bulk_pipeline,
    run_document_pipeline,
    run_filter_pipeline,
)

HEX = "507f1f77bcf86cd799439011"


class TestRunFilterPipeline:
    """Tests for run_filter_pipeline()."""

    def test_preprocesses_valid_filter(self):
        """
        What it does: Returns the preprocessed filter for a valid request.
        Purpose: Identifier coercion runs before the engine call.
        """
        result = run_filter_pipeline({"userId": HEX, "status": "active"})

        print(f"Result: {result}")
        assert isinstance(result, Ok)
        assert result.value == {"userId": ObjectId(HEX), "status": "active"}

    def test_blocked_operator(self):
        result = run_filter_pipeline({"$where": "sleep(1000)"})

        assert isinstance(result, Err)
        assert result.error.kind is GuardErrorKind.BLOCKED_OPERATOR

    def test_depth_exceeded(self, nest_mappings):
        result = run_filter_pipeline(nest_mappings(11))

        assert isinstance(result, Err)
        assert result.error.kind is GuardErrorKind.DEPTH_EXCEEDED
        assert result.error.details["max_depth"] == 10

    def test_operator_checked_before_depth(self, nest_mappings):
        """
        What it does: Reports the blocked operator when both checks would fail.
        Purpose: The more severe violation wins.
        """
        result = run_filter_pipeline(nest_mappings(11, leaf={"$where": "1"}))
        assert result.error.kind is GuardErrorKind.BLOCKED_OPERATOR

    @pytest.mark.parametrize("operation", ["deleteMany", "updateMany"])
    def test_empty_filter_for_multi_document_write(self, operation):
        """
        What it does: Rejects an empty filter for deleteMany/updateMany.
        Purpose: A match-all write needs an explicit override.
        """
        result = run_filter_pipeline({}, operation=operation)

        print(f"Message: {result.error.message}")
        assert result.error.kind is GuardErrorKind.EMPTY_FILTER_REJECTED
        assert "allowEmptyFilter" in result.error.message

    def test_empty_filter_allowed_with_override_or_for_reads(self):
        assert isinstance(run_filter_pipeline({}, operation="deleteMany", allow_empty_filter=True), Ok)
        assert isinstance(run_filter_pipeline(None, operation="find"), Ok)
        assert isinstance(run_filter_pipeline({}, operation="deleteOne"), Ok)


class TestRunDocumentPipeline:
    """Tests for run_document_pipeline()."""

    def test_update_document_scanned(self):
        result = run_document_pipeline({"$set": {"x": {"$function": {}}}})

        assert isinstance(result, Err)
        assert result.error.details["path"] == "$set.x.$function"
        assert "update document" in result.error.message

    def test_clean_update(self):
        assert isinstance(run_document_pipeline({"$inc": {"n": 1}}), Ok)

    def test_pipeline_style_update_is_scanned_as_list(self):
        """
        What it does: Accepts an update given as a list of stages.
        Purpose: Aggregation-pipeline updates are a valid update form.
        """
        stages = [{"$set": {"total": {"$add": ["$a", "$b"]}}}, {"$unset": "tmp"}]

        result = run_document_pipeline(stages)

        print(f"Result: {result}")
        assert isinstance(result, Ok)
        assert result.value == stages
        assert result.value is not stages

    def test_pipeline_style_update_with_blocked_operator(self):
        result = run_document_pipeline([{"$set": {"x": {"$function": {}}}}])

        assert isinstance(result, Err)
        assert result.error.details["path"] == "[0].$set.x.$function"


class TestRunAggregatePipeline:
    """Tests for run_aggregate_pipeline()."""

    def test_valid_pipeline(self):
        """
        What it does: Preprocesses $match stages and filters options.
        Purpose: Aggregations get the same identifier coercion as filters.
        """
        result = run_aggregate_pipeline(
            [{"$match": {"_id": HEX}}, {"$limit": 5}],
            read_only=True,
            options={"allowDiskUse": True, "out": "x"},
        )

        print(f"Result: {result}")
        assert isinstance(result, Ok)
        assert isinstance(result.value, PreparedPipeline)
        assert result.value.stages[0] == {"$match": {"_id": ObjectId(HEX)}}
        assert result.value.options == {"allowDiskUse": True}
        assert result.value.stage_count == 2

    def test_write_stage_in_read_only_mode(self):
        """
        What it does: Rejects $out in read-only mode.
        Purpose: Aggregation must not write when writes are disabled.
        """
        result = run_aggregate_pipeline([{"$match": {}}, {"$out": "copy"}], read_only=True)

        assert result.error.kind is GuardErrorKind.WRITE_STAGE_BLOCKED
        assert "$out" in result.error.message

    def test_write_stage_allowed_in_read_write_mode(self):
        result = run_aggregate_pipeline([{"$merge": {"into": "copy"}}], read_only=False)
        assert isinstance(result, Ok)

    def test_budget_exceeded(self):
        stages = [{"$lookup": {"from": "c", "pipeline": [], "as": f"a{i}"}} for i in range(4)]

        result = run_aggregate_pipeline(stages, read_only=True)

        assert result.error.kind is GuardErrorKind.PIPELINE_BUDGET_EXCEEDED
        assert result.error.details["expensive_stage_count"] == 4
        assert result.error.details["expensive_stages"] == ["$lookup"] * 4

    def test_blocked_operator_in_sub_pipeline(self):
        stages = [{"$unionWith": {"coll": "c", "pipeline": [{"$match": {"$where": "1"}}]}}]

        result = run_aggregate_pipeline(stages, read_only=True)

        assert result.error.kind is GuardErrorKind.BLOCKED_OPERATOR
        assert result.error.details["path"] == "[0].$unionWith.pipeline[0].$match.$where"


class TestRunBulkPipeline:
    """Tests for run_bulk_pipeline()."""

    def test_valid_batch_is_preprocessed(self):
        result = run_bulk_pipeline(
            [
                {"deleteOne": {"filter": {"_id": HEX}}},
                {"insertOne": {"document": {"refId": HEX}}},
            ]
        )

        assert isinstance(result, Ok)
        assert result.value[0] == {"deleteOne": {"filter": {"_id": ObjectId(HEX)}}}
        assert result.value[1] == {"insertOne": {"document": {"refId": HEX}}}

    def test_invalid_batch(self):
        result = run_bulk_pipeline([{"deleteMany": {"filter": {}}}])

        assert result.error.kind is GuardErrorKind.EMPTY_FILTER_REJECTED


class TestRunAdminPipeline:
    """Tests for run_admin_pipeline()."""

    def test_prepares_allowed_command(self):
        """
        What it does: Strips unknown parameters and applies the timeout.
        Purpose: Admin commands reach the server sanitized and time-bound.
        """
        result = run_admin_pipeline({"dbStats": 1, "scale": 1024, "evil": 1}, timeout_ms=5000)

        print(f"Result: {result}")
        assert isinstance(result, Ok)
        assert isinstance(result.value, PreparedAdminCommand)
        assert result.value.command_name == "dbstats"
        assert result.value.command == {"dbStats": 1, "scale": 1024, "maxTimeMS": 5000}
        assert result.value.warnings == ["Stripped unknown parameter 'evil' from dbStats command."]

    def test_disallowed_command(self):
        result = run_admin_pipeline({"dropDatabase": 1})
        assert result.error.kind is GuardErrorKind.COMMAND_NOT_ALLOWED

    def test_empty_command(self):
        result = run_admin_pipeline({})
        assert result.error.kind is GuardErrorKind.COMMAND_NOT_ALLOWED

    def test_deep_parameter(self):
        result = run_admin_pipeline({"listDatabases": 1, "filter": {"a": {"b": {"c": 1}}}})

        assert result.error.kind is GuardErrorKind.DEPTH_EXCEEDED
        assert "deeply nested" in result.error.message

    def test_blocked_operator_in_command(self):
        result = run_admin_pipeline({"listDatabases": 1, "filter": {"$where": "1"}})
        assert result.error.kind is GuardErrorKind.BLOCKED_OPERATOR
