"""
Unit tests for the PolicyEngine facade.

Tests permission decisions, read filters, query redaction, privileged
execution and metrics recording.
"""

import asyncio
import logging

import pytest

from mdb_policy.config import PolicyConfig
from mdb_policy.core.builder import PolicyBuilder
from mdb_policy.core.domains import DocumentDomain, ModelDomain
from mdb_policy.core.engine import PolicyEngine
from mdb_policy.core.parameters import bind_parameters, request_parameters
from mdb_policy.database.query import Query
from mdb_policy.database.secured_wrapper import SecuredMongoWrapper
from mdb_policy.exceptions import (ConfigurationError, RuleEvaluationError,
                                   TemplateParameterMissing)
from mdb_policy.observability import get_metrics_collector


@pytest.fixture
def activity_engine(policy_engine):
    """Engine with the Activity policy and request-scoped parameters."""
    policy_engine.add_model_provider(request_parameters)
    policy_engine.build_policy("Activity") \
        .read({"category": "sport"}) \
        .read({"owner": "{{user_id}}"}) \
        .update({"owner": "{{user_id}}"}) \
        .read_fields({"budget": False}) \
        .grant_all("create")
    return policy_engine


@pytest.mark.unit
class TestEngineConfiguration:
    """Test engine construction and registration."""

    def test_default_domains(self, policy_engine):
        assert policy_engine.permissions == ("read", "update", "remove", "create", "read_fields")

    def test_conflicting_domains_are_rejected(self, privilege):
        with pytest.raises(ConfigurationError):
            PolicyEngine(domains=[DocumentDomain(privilege), ModelDomain(permissions=["update"])])

    def test_store_reaches_the_document_domain(self, memory_store):
        engine = PolicyEngine()
        engine.store = memory_store
        document_domain = engine.policy.get_domain("read")
        assert document_domain.store is memory_store

    def test_build_policy_returns_builder(self, policy_engine):
        builder = policy_engine.build_policy("Activity")
        assert isinstance(builder, PolicyBuilder)
        assert builder.model_name == "Activity"

    def test_register_rule_unknown_permission(self, policy_engine):
        with pytest.raises(ConfigurationError):
            policy_engine.register_rule("Activity", "publish", True)

    def test_model_provider_must_be_callable(self, policy_engine):
        with pytest.raises(ConfigurationError):
            policy_engine.add_model_provider({"user_id": "joe"})


@pytest.mark.unit
class TestAskPermission:
    """Test single permission decisions."""

    @pytest.mark.asyncio
    async def test_create_is_granted(self, activity_engine, new_activity_document):
        assert await activity_engine.ask_permission("Activity", "create") is True
        assert await activity_engine.ask_permission(new_activity_document, "create") is True

    @pytest.mark.asyncio
    async def test_model_target_with_filter_condition_is_denied(self, activity_engine):
        with bind_parameters(user_id="joe"):
            assert await activity_engine.ask_permission("Activity", "read") is False

    @pytest.mark.asyncio
    async def test_document_is_revalidated(
        self, activity_engine, memory_store, activity_document
    ):
        memory_store.results["Activity"] = [{"_id": "a1"}]

        with bind_parameters(user_id="joe"):
            assert await activity_engine.ask_permission(activity_document, "update") is True

        assert memory_store.calls[-1]["filter"] == {
            "$and": [{"_id": "a1"}, {"owner": "joe"}]
        }
        assert memory_store.calls[-1]["privileged"] is True

    @pytest.mark.asyncio
    async def test_undeclared_permission_is_denied(self, activity_engine, activity_document):
        assert await activity_engine.ask_permission(activity_document, "remove") is False

    @pytest.mark.asyncio
    async def test_privileged_callers_are_always_granted(self, activity_engine, memory_store):
        async def check():
            return await activity_engine.ask_permission("Comment", "remove")

        assert await activity_engine.run_privileged_async(check()) is True
        assert memory_store.calls == []

    @pytest.mark.asyncio
    async def test_field_permission_is_rejected(self, activity_engine):
        with pytest.raises(ConfigurationError):
            await activity_engine.ask_permission("Activity", "read_fields")

    @pytest.mark.asyncio
    async def test_unknown_permission_is_rejected(self, activity_engine):
        with pytest.raises(ConfigurationError):
            await activity_engine.ask_permission("Activity", "publish")

    @pytest.mark.asyncio
    async def test_missing_parameter_propagates(self, activity_engine, activity_document):
        with pytest.raises(TemplateParameterMissing):
            await activity_engine.ask_permission(activity_document, "update")

    @pytest.mark.asyncio
    async def test_failing_rule_propagates(self, policy_engine):
        policy_engine.register_rule("Activity", "create", lambda parameters: 1 / 0)
        with pytest.raises(RuleEvaluationError):
            await policy_engine.ask_permission("Activity", "create")

    @pytest.mark.asyncio
    async def test_decisions_are_logged(self, memory_store, activity_document, caplog):
        engine = PolicyEngine(store=memory_store, config=PolicyConfig(log_decisions=True))
        engine.build_policy("Activity").grant_all("create")

        with caplog.at_level(logging.INFO, logger="mdb_policy.core.engine"):
            await engine.ask_permission("Activity", "create")

        assert any("policy.ask_permission" in record.getMessage() for record in caplog.records)

    @pytest.mark.asyncio
    async def test_decisions_are_timed(self, memory_store):
        engine = PolicyEngine(store=memory_store)
        engine.build_policy("Activity").grant_all("create")

        await engine.ask_permission("Activity", "create")

        assert get_metrics_collector().get_operation_count("policy.ask_permission") == 1

    @pytest.mark.asyncio
    async def test_metrics_can_be_disabled(self, activity_engine):
        await activity_engine.ask_permission("Activity", "create")
        assert get_metrics_collector().get_operation_count("policy.ask_permission") == 0


@pytest.mark.unit
class TestGetPermissions:
    """Test batched decisions."""

    @pytest.mark.asyncio
    async def test_defaults_to_decision_permissions(self, activity_engine, activity_document):
        with bind_parameters(user_id="ann"):
            permissions = await activity_engine.get_permissions(activity_document)

        assert permissions == {
            "read": False,
            "update": False,
            "remove": False,
            "create": True,
        }

    @pytest.mark.asyncio
    async def test_single_and_duplicate_permissions(self, activity_engine):
        assert await activity_engine.get_permissions("Activity", "create") == {"create": True}
        assert await activity_engine.get_permissions("Activity", ["create", "create"]) == {
            "create": True
        }

    @pytest.mark.asyncio
    async def test_each_permission_is_evaluated_independently(self, policy_engine):
        calls = []

        def rule(parameters):
            calls.append(parameters["target"])
            return True

        policy_engine.register_rule("Activity", "create", rule)
        policy_engine.register_rule("Activity", "read", rule)

        result = await policy_engine.get_permissions("Activity", ["create", "read"])

        assert result == {"create": True, "read": True}
        assert calls == ["Activity", "Activity"]


@pytest.mark.unit
class TestQueryHelpers:
    """Test read filters and query redaction."""

    @pytest.mark.asyncio
    async def test_filter_for_read(self, activity_engine):
        with bind_parameters(user_id="joe"):
            condition = await activity_engine.filter_for_read("Activity")
        assert condition == {"$or": [{"category": "sport"}, {"owner": "joe"}]}

    @pytest.mark.asyncio
    async def test_filter_for_read_without_rules(self, activity_engine):
        assert await activity_engine.filter_for_read("Comment") == {"_id": {"$exists": False}}

    @pytest.mark.asyncio
    async def test_redact_query(self, activity_engine):
        query = Query({"budget": {"$gt": 100}, "category": "sport"}, sort=[("budget", -1)])

        await activity_engine.redact_query("Activity", query)

        assert query.filter == {"category": "sport"}
        assert query.projection == {"budget": 0}
        assert query.sort == []

    @pytest.mark.asyncio
    async def test_redact_query_without_field_rules(self, activity_engine):
        query = Query({"budget": 1})
        await activity_engine.redact_query("Comment", query)
        assert query.filter == {"budget": 1}
        assert query.projection is None


@pytest.mark.unit
class TestPrivilegedExecution:
    """Test privilege helpers of the facade."""

    def test_run_privileged(self, policy_engine):
        assert policy_engine.run_privileged(policy_engine.is_privileged) is True
        assert policy_engine.is_privileged() is False

    def test_run_unprivileged_inside_privileged(self, policy_engine):
        def outer():
            return policy_engine.run_unprivileged(policy_engine.is_privileged)

        assert policy_engine.run_privileged(outer) is False

    def test_privileged_block(self, policy_engine):
        with policy_engine.privileged():
            assert policy_engine.is_privileged() is True
        assert policy_engine.is_privileged() is False

    @pytest.mark.asyncio
    async def test_concurrent_requests_are_isolated(self, activity_engine, memory_store):
        memory_store.results["Activity"] = [{"_id": "a1"}]
        started = asyncio.Event()
        release = asyncio.Event()

        async def privileged_request():
            async def hold():
                started.set()
                await release.wait()
                return await activity_engine.ask_permission("Activity", "remove")

            return await activity_engine.run_privileged_async(hold())

        async def regular_request():
            await started.wait()
            try:
                return await activity_engine.ask_permission("Activity", "remove")
            finally:
                release.set()

        privileged_result, regular_result = await asyncio.gather(
            privileged_request(), regular_request()
        )

        assert privileged_result is True
        assert regular_result is False

    @pytest.mark.asyncio
    async def test_parameters_are_isolated_between_tasks(self, activity_engine):
        async def request(user_id):
            with bind_parameters(user_id=user_id):
                await asyncio.sleep(0)
                return await activity_engine.get_condition("Activity", "update")

        joe, ann = await asyncio.gather(request("joe"), request("ann"))

        assert joe == {"owner": "joe"}
        assert ann == {"owner": "ann"}


@pytest.mark.unit
def test_secure_db_wraps_database(policy_engine, mock_mongo_database):
    secured = policy_engine.secure_db(mock_mongo_database, collections={"activities": "Activity"})
    assert isinstance(secured, SecuredMongoWrapper)
    assert secured.activities.model_name == "Activity"
