"""
Pytest configuration and shared fixtures for MDB_POLICY tests.

This module provides:
- Mock MongoDB database and collection fixtures
- An in-memory document store
- Policy engine fixtures
- Common test data
"""

from typing import Any, Dict, List
from unittest.mock import AsyncMock, MagicMock

import pytest
from motor.motor_asyncio import AsyncIOMotorCollection, AsyncIOMotorDatabase

from mdb_policy.config import PolicyConfig
from mdb_policy.core.engine import PolicyEngine
from mdb_policy.core.privilege import PrivilegeStack
from mdb_policy.database.store import Document, DocumentStore
from mdb_policy.observability import get_metrics_collector


def pytest_configure(config):
    config.addinivalue_line("markers", "unit: fast tests without external services")


# ============================================================================
# MOCK MONGODB FIXTURES
# ============================================================================


def make_mock_collection(name: str) -> MagicMock:
    """Create a mock Motor collection with async data access methods."""
    collection = MagicMock(spec=AsyncIOMotorCollection)
    collection.name = name
    cursor = MagicMock()
    cursor.to_list = AsyncMock(return_value=[])
    # Motor's find is synchronous and returns a cursor
    collection.find = MagicMock(return_value=cursor)
    collection.find_one = AsyncMock(return_value=None)
    collection.insert_one = AsyncMock(return_value=MagicMock(inserted_id="test_id"))
    collection.insert_many = AsyncMock(return_value=MagicMock(inserted_ids=["id1", "id2"]))
    collection.replace_one = AsyncMock(return_value=MagicMock(modified_count=1))
    collection.update_one = AsyncMock(return_value=MagicMock(modified_count=1))
    collection.update_many = AsyncMock(return_value=MagicMock(modified_count=2))
    collection.delete_one = AsyncMock(return_value=MagicMock(deleted_count=1))
    collection.delete_many = AsyncMock(return_value=MagicMock(deleted_count=2))
    collection.count_documents = AsyncMock(return_value=0)
    return collection


@pytest.fixture
def mock_mongo_collection() -> MagicMock:
    """Create a mock MongoDB collection."""
    return make_mock_collection("activities")


@pytest.fixture
def mock_mongo_database() -> MagicMock:
    """Create a mock MongoDB database caching one mock per collection name."""
    db = MagicMock(spec=AsyncIOMotorDatabase)
    db.name = "test_db"
    collections: Dict[str, MagicMock] = {}

    def get_collection(self, name: str) -> MagicMock:
        if name not in collections:
            collections[name] = make_mock_collection(name)
        return collections[name]

    # Python calls type(db).__getitem__(db, name)
    db.__getitem__ = get_collection
    return db


# ============================================================================
# STORE FIXTURES
# ============================================================================


class InMemoryDocumentStore(DocumentStore):
    """
    DocumentStore answering from preset results.

    `results[model_name]` is returned for every lookup of that model; every
    call is recorded in `calls` together with the privilege state it ran in.
    """

    def __init__(self, privilege: PrivilegeStack = None) -> None:
        self.results: Dict[str, List[Dict[str, Any]]] = {}
        self.calls: List[Dict[str, Any]] = []
        self.privilege = privilege

    async def find_by_filter(self, model_name: str, filter: Dict[str, Any]) -> List[Any]:
        self.calls.append(
            {
                "model_name": model_name,
                "filter": filter,
                "privileged": self.privilege.is_privileged() if self.privilege else None,
            }
        )
        return list(self.results.get(model_name, []))


@pytest.fixture
def privilege() -> PrivilegeStack:
    return PrivilegeStack()


@pytest.fixture
def memory_store(privilege: PrivilegeStack) -> InMemoryDocumentStore:
    return InMemoryDocumentStore(privilege)


# ============================================================================
# ENGINE FIXTURES
# ============================================================================


@pytest.fixture
def policy_config() -> PolicyConfig:
    return PolicyConfig(record_metrics=False)


@pytest.fixture
def policy_engine(
    memory_store: InMemoryDocumentStore,
    privilege: PrivilegeStack,
    policy_config: PolicyConfig,
) -> PolicyEngine:
    """Engine with the default domains and an in-memory store, no rules."""
    return PolicyEngine(store=memory_store, config=policy_config, privilege=privilege)


@pytest.fixture
def activity_document() -> Document:
    """A persisted Activity document."""
    return Document(
        "Activity",
        {"_id": "a1", "category": "sport", "owner": "joe", "budget": 120},
    )


@pytest.fixture
def new_activity_document() -> Document:
    """An Activity document not inserted yet."""
    return Document("Activity", {"category": "music", "owner": "joe"})


@pytest.fixture
def sample_manifest() -> Dict[str, Any]:
    """Sample policy manifest for testing."""
    return {
        "default_policy": "deny",
        "models": {
            "Activity": {
                "grant_all": ["create"],
                "read": [{"category": "sport"}, {"owner": "{{user_id}}"}],
                "read_fields": [{"budget": False}],
            },
            "Comment": {
                "grant_all": True,
            },
        },
    }


@pytest.fixture(autouse=True)
def reset_metrics():
    """Start every test with an empty metrics collector."""
    get_metrics_collector().reset()
    yield
    get_metrics_collector().reset()
