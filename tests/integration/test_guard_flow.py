# -*- coding: utf-8 -*-

"""
Integration tests for the complete guard flow.
Checks interaction of names, preparation, rate limiting, engine call and redaction.
"""

from unittest.mock import AsyncMock

import pytest
from bson import ObjectId

from mongoguard.guard_errors import Err, GuardErrorKind, Ok, unwrap

HEX = "507f1f77bcf86cd799439011"


class FakeEngine:
    """In-memory stand-in for the document store."""

    def __init__(self, documents):
        self.documents = documents
        self.calls = []

    async def find(self, prepared_filter):
        self.calls.append(("find", prepared_filter))
        return [
            doc
            for doc in self.documents
            if all(doc.get(key) == value for key, value in prepared_filter.items())
        ]

    async def run_command(self, prepared):
        self.calls.append(("command", prepared.command))
        return {
            "ok": 1,
            "authInfo": {
                "authenticatedUsers": [{"user": "agent", "db": "shop"}],
                "authenticatedUserPrivileges": [{"actions": ["find"]}],
            },
        }


@pytest.fixture
def engine():
    return FakeEngine(
        [
            {"_id": ObjectId(HEX), "name": "alice", "apiKey": "k-1"},
            {"_id": ObjectId(), "name": "bob", "apiKey": "k-2"},
        ]
    )


class TestFindFlow:
    """Integration tests for a guarded find."""

    @pytest.mark.asyncio
    async def test_full_find_flow(self, guard_service, engine):
        """
        What it does: Runs names -> filter -> engine -> redaction -> capping.
        Purpose: Ensure all stages work together for a normal query.
        """
        print("Step 1: Name checks...")
        assert isinstance(guard_service.check_names("shop", "users"), Ok)

        print("Step 2: Prepare filter with a string identifier...")
        prepared = unwrap(guard_service.prepare_filter({"_id": HEX}))
        assert prepared == {"_id": ObjectId(HEX)}

        print("Step 3: Execute...")
        result = await guard_service.execute("find", prepared, engine.find, cap_results=True)

        print(f"Result: {result}")
        assert isinstance(result, Ok)
        assert result.value.data == [{"_id": {"$oid": HEX}, "name": "alice", "apiKey": "[REDACTED]"}]
        assert engine.calls == [("find", {"_id": ObjectId(HEX)})]

    @pytest.mark.asyncio
    async def test_rejected_request_never_reaches_engine(self, guard_service, engine):
        """
        What it does: Stops a $where filter before execution.
        Purpose: Rejections are returned, not executed.
        """
        prepared = guard_service.prepare_filter({"$or": [{"name": "a"}, {"$where": "sleep(100)"}]})

        assert isinstance(prepared, Err)
        assert prepared.error.details["path"] == "$or[1].$where"
        assert engine.calls == []


class TestAdminFlow:
    """Integration tests for a guarded admin command."""

    @pytest.mark.asyncio
    async def test_connection_status_flow(self, guard_service, engine):
        """
        What it does: Prepares, rate-limits, executes and redacts connectionStatus.
        Purpose: Privilege lists are stripped from the response.
        """
        prepared = unwrap(
            guard_service.prepare_admin_command({"connectionStatus": 1, "showPrivileges": True})
        )

        result = await guard_service.execute(
            "runAdminCommand", prepared, engine.run_command, rate_limited=True
        )

        print(f"Result: {result}")
        assert engine.calls == [
            ("command", {"connectionStatus": 1, "showPrivileges": True, "maxTimeMS": 30000})
        ]
        assert result.value.data == {
            "ok": 1,
            "authInfo": {"authenticatedUsers": [{"user": "agent", "db": "shop"}]},
        }

    @pytest.mark.asyncio
    async def test_rate_limit_then_recovery(self, guard_service, engine, fake_clock):
        """
        What it does: Denies the sixth call and allows calls after the window.
        Purpose: Rate limiting is a soft, recoverable failure.
        """
        prepared = unwrap(guard_service.prepare_admin_command({"ping": 1}))
        for _ in range(5):
            assert isinstance(
                await guard_service.execute("runAdminCommand", prepared, engine.run_command, rate_limited=True),
                Ok,
            )

        denied = await guard_service.execute("runAdminCommand", prepared, engine.run_command, rate_limited=True)
        assert denied.error.kind is GuardErrorKind.RATE_LIMIT_EXCEEDED

        print("Action: advance virtual time past the window...")
        fake_clock.advance(61)

        allowed = await guard_service.execute("runAdminCommand", prepared, engine.run_command, rate_limited=True)
        assert isinstance(allowed, Ok)


class TestBulkFlow:
    """Integration tests for a guarded bulk write."""

    @pytest.mark.asyncio
    async def test_bulk_flow(self, guard_service):
        batch = [
            {"updateOne": {"filter": {"_id": HEX}, "update": {"$set": {"seen": True}}}},
            {"deleteMany": {"filter": {"expired": True}}},
        ]
        engine_call = AsyncMock(return_value={"ok": 1, "nModified": 1, "nRemoved": 3})

        prepared = unwrap(guard_service.prepare_bulk(batch))
        result = await guard_service.execute("bulkWrite", prepared, engine_call)

        sent = engine_call.await_args.args[0]
        assert sent[0]["updateOne"]["filter"] == {"_id": ObjectId(HEX)}
        assert result.value.data == {"ok": 1, "nModified": 1, "nRemoved": 3}
