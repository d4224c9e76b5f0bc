"""
Unit tests for PolicyConfig.
"""

import pytest
from pydantic import ValidationError

from mdb_policy.config import PolicyConfig
from mdb_policy.exceptions import ConfigurationError


@pytest.mark.unit
class TestPolicyConfig:
    """Test defaults, validation and environment loading."""

    def test_defaults(self):
        config = PolicyConfig()
        assert config.identity_field == "_id"
        assert config.strict_outcomes is True
        assert config.log_decisions is False
        assert config.record_metrics is True
        assert config.store_match_limit == 2

    def test_is_frozen(self):
        config = PolicyConfig()
        with pytest.raises(ValidationError):
            config.log_decisions = True

    def test_unknown_fields_are_rejected(self):
        with pytest.raises(ValidationError):
            PolicyConfig(identity="uuid")

    def test_create_wraps_validation_errors(self):
        with pytest.raises(ConfigurationError) as exc_info:
            PolicyConfig.create(store_match_limit=1)
        assert exc_info.value.config_key == "store_match_limit"

    def test_operator_identity_field_is_rejected(self):
        with pytest.raises(ConfigurationError):
            PolicyConfig.create(identity_field="$id")

    def test_from_env(self, monkeypatch):
        monkeypatch.setenv("POLICY_IDENTITY_FIELD", "uuid")
        monkeypatch.setenv("POLICY_STRICT_OUTCOMES", "false")
        monkeypatch.setenv("POLICY_LOG_DECISIONS", "yes")
        monkeypatch.setenv("POLICY_RECORD_METRICS", "0")
        monkeypatch.setenv("POLICY_STORE_MATCH_LIMIT", "5")

        config = PolicyConfig.from_env()

        assert config.identity_field == "uuid"
        assert config.strict_outcomes is False
        assert config.log_decisions is True
        assert config.record_metrics is False
        assert config.store_match_limit == 5

    def test_from_env_defaults(self, monkeypatch):
        for name in (
            "POLICY_IDENTITY_FIELD",
            "POLICY_STRICT_OUTCOMES",
            "POLICY_LOG_DECISIONS",
            "POLICY_RECORD_METRICS",
            "POLICY_STORE_MATCH_LIMIT",
        ):
            monkeypatch.delenv(name, raising=False)
        assert PolicyConfig.from_env() == PolicyConfig()

    def test_from_env_invalid_limit(self, monkeypatch):
        monkeypatch.setenv("POLICY_STORE_MATCH_LIMIT", "many")
        with pytest.raises(ConfigurationError):
            PolicyConfig.from_env()
