# -*- coding: utf-8 -*-

"""Unit tests for the FastAPI exception bridge."""

import json

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

from mongoguard.exceptions import guard_error_response, guard_violation_handler, status_code_for
from mongoguard.guard_errors import GuardError, GuardErrorKind, GuardViolation


@pytest.fixture
def test_client():
    """FastAPI app that raises a GuardViolation per kind."""
    app = FastAPI()
    app.add_exception_handler(GuardViolation, guard_violation_handler)

    @app.get("/raise/{kind}")
    async def raise_kind(kind: str):
        raise GuardViolation(
            GuardError(
                kind=GuardErrorKind(kind),
                message=f"{kind} happened",
                details={"window_seconds": 60} if kind == "RateLimitExceeded" else {},
            )
        )

    return TestClient(app)


class TestStatusCodes:
    """Tests for status_code_for()."""

    @pytest.mark.parametrize(
        "kind, expected",
        [
            (GuardErrorKind.RATE_LIMIT_EXCEEDED, 429),
            (GuardErrorKind.CONNECTION_LOST, 503),
            (GuardErrorKind.NAME_REJECTED, 403),
            (GuardErrorKind.COMMAND_NOT_ALLOWED, 403),
            (GuardErrorKind.BLOCKED_OPERATOR, 400),
            (GuardErrorKind.DEPTH_EXCEEDED, 400),
            (GuardErrorKind.MALFORMED_BATCH_ENTRY, 400),
        ],
    )
    def test_mapping(self, kind, expected):
        assert status_code_for(kind) == expected


class TestGuardErrorResponse:
    """Tests for guard_error_response()."""

    def test_body_is_error_dict(self):
        """
        What it does: Serializes GuardError.to_dict() as the response body.
        Purpose: HTTP callers get the same detail as in-process callers.
        """
        error = GuardError(
            kind=GuardErrorKind.BLOCKED_OPERATOR,
            message="blocked",
            details={"operator": "$where", "path": "$where"},
        )

        response = guard_error_response(error)

        body = json.loads(response.body)
        print(f"Body: {body}")
        assert response.status_code == 400
        assert body["error"] == "BlockedOperator"
        assert body["details"]["path"] == "$where"
        assert "retry-after" not in response.headers


class TestGuardViolationHandler:
    """Tests for the handler installed on a FastAPI app."""

    def test_rate_limit_response(self, test_client):
        """
        What it does: Returns 429 with Retry-After for rate limit violations.
        Purpose: HTTP clients can back off correctly.
        """
        response = test_client.get("/raise/RateLimitExceeded")

        print(f"Status: {response.status_code}, body: {response.json()}")
        assert response.status_code == 429
        assert response.headers["retry-after"] == "60"
        assert response.json()["retryable"] is True

    def test_name_rejected_response(self, test_client):
        response = test_client.get("/raise/NameRejected")

        assert response.status_code == 403
        assert response.json()["message"] == "NameRejected happened"

    def test_connection_lost_response(self, test_client):
        response = test_client.get("/raise/ConnectionLost")
        assert response.status_code == 503
