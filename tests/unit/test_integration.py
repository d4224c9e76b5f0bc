"""
Unit tests for the FastAPI integration.
"""

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

from mdb_policy.database.store import Document
from mdb_policy.exceptions import UnauthorizedError
from mdb_policy.integration import register_policy_handlers


@pytest.fixture
def app():
    app = register_policy_handlers(FastAPI())

    @app.get("/activities/{activity_id}")
    async def get_activity(activity_id: str):
        raise UnauthorizedError(Document("Activity", {"_id": activity_id}), "remove")

    @app.get("/health")
    async def health():
        return {"ok": True}

    return app


@pytest.mark.unit
class TestUnauthorizedHandler:
    """Test the 403 response."""

    def test_unauthorized_becomes_403(self, app):
        client = TestClient(app)

        response = client.get("/activities/a1")

        assert response.status_code == 403
        assert response.json() == {
            "detail": "Unauthorized: No permission to remove this document (Activity[a1]).",
            "model": "Activity",
            "permission": "remove",
            "id": "a1",
        }

    def test_other_routes_are_unaffected(self, app):
        client = TestClient(app)
        assert client.get("/health").json() == {"ok": True}
