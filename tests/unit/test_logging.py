"""
Unit tests for contextual logging.
"""

import logging

import pytest

from mdb_policy.observability.logging import (get_logger, get_logging_context,
                                              log_operation, policy_context)


@pytest.mark.unit
class TestPolicyContext:
    """Test evaluation fields attached to log records."""

    def test_nested_blocks_extend_and_restore(self):
        with policy_context(model_name="Activity"):
            with policy_context(permission="read"):
                assert get_logging_context() == {"model_name": "Activity", "permission": "read"}
            assert get_logging_context() == {"model_name": "Activity"}
        assert get_logging_context() == {}

    def test_adapter_adds_context_to_records(self, caplog):
        logger = get_logger("mdb_policy.tests")
        with caplog.at_level(logging.INFO, logger="mdb_policy.tests"):
            with policy_context(model_name="Activity", permission="read"):
                logger.info("resolving", extra={"permission": "update"})

        record = caplog.records[-1]
        assert record.model_name == "Activity"
        assert record.permission == "update"


@pytest.mark.unit
class TestLogOperation:
    """Test the operation outcome message."""

    def test_success_message_and_fields(self, caplog):
        logger = logging.getLogger("mdb_policy.tests")
        with caplog.at_level(logging.INFO, logger="mdb_policy.tests"):
            log_operation(logger, "policy.ask_permission", duration_ms=1.234, decision=True)

        record = caplog.records[-1]
        assert record.getMessage() == "policy.ask_permission ok (decision=True)"
        assert record.duration_ms == 1.23
        assert record.success is True

    def test_failure_message(self, caplog):
        logger = logging.getLogger("mdb_policy.tests")
        with caplog.at_level(logging.WARNING, logger="mdb_policy.tests"):
            log_operation(logger, "database.find", level=logging.WARNING, success=False)

        assert caplog.records[-1].getMessage() == "database.find failed"
