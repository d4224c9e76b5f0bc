"""
Configuration management for MDB_POLICY.

PolicyEngine can be created without any configuration; PolicyConfig only
tunes evaluation details. Values come from direct parameters or, through
`PolicyConfig.from_env()`, from environment variables.
"""

import os
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from .constants import (DEFAULT_IDENTITY_FIELD, DEFAULT_STORE_MATCH_LIMIT,
                        ENV_IDENTITY_FIELD, ENV_LOG_DECISIONS,
                        ENV_RECORD_METRICS, ENV_STORE_MATCH_LIMIT,
                        ENV_STRICT_OUTCOMES)
from .exceptions import ConfigurationError

_TRUE_VALUES = ("1", "true", "yes", "on")


def _env_flag(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    return value.strip().lower() in _TRUE_VALUES


class PolicyConfig(BaseModel):
    """
    Policy engine configuration.

    Example:
        # Using environment variables
        config = PolicyConfig.from_env()
        engine = PolicyEngine(store=store, config=config)

        # Or using direct parameters
        engine = PolicyEngine(store=store, config=PolicyConfig(log_decisions=True))
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    identity_field: str = Field(
        DEFAULT_IDENTITY_FIELD,
        min_length=1,
        description="Field holding the document identity",
    )
    strict_outcomes: bool = Field(
        True,
        description="Reject computed rule outcomes the domain cannot aggregate",
    )
    log_decisions: bool = Field(
        False,
        description="Log every permission decision at INFO instead of DEBUG",
    )
    record_metrics: bool = Field(
        True,
        description="Record evaluation timings in the metrics collector",
    )
    store_match_limit: int = Field(
        DEFAULT_STORE_MATCH_LIMIT,
        ge=2,
        description="Documents fetched when re-validating a single document",
    )

    @field_validator("identity_field")
    @classmethod
    def _no_operator_identity(cls, value: str) -> str:
        if value.startswith("$"):
            raise ValueError("identity_field cannot be an operator")
        return value

    @classmethod
    def create(cls, **values: Any) -> "PolicyConfig":
        """
        Build a config, turning validation failures into ConfigurationError.

        Raises:
            ConfigurationError: If a value is missing or invalid
        """
        try:
            return cls(**values)
        except ValidationError as e:
            first = e.errors()[0] if e.errors() else {}
            key = ".".join(str(part) for part in first.get("loc", ()))
            raise ConfigurationError(
                f"Invalid policy configuration: {first.get('msg', e)}",
                config_key=key or None,
                config_value=first.get("input"),
            ) from e

    @classmethod
    def from_env(cls) -> "PolicyConfig":
        """
        Build a config from POLICY_* environment variables.

        Raises:
            ConfigurationError: If an environment value is invalid
        """
        limit = os.getenv(ENV_STORE_MATCH_LIMIT, str(DEFAULT_STORE_MATCH_LIMIT))
        try:
            store_match_limit = int(limit)
        except ValueError as e:
            raise ConfigurationError(
                f"{ENV_STORE_MATCH_LIMIT} must be an integer",
                config_key=ENV_STORE_MATCH_LIMIT,
                config_value=limit,
            ) from e

        return cls.create(
            identity_field=os.getenv(ENV_IDENTITY_FIELD, DEFAULT_IDENTITY_FIELD),
            strict_outcomes=_env_flag(ENV_STRICT_OUTCOMES, True),
            log_decisions=_env_flag(ENV_LOG_DECISIONS, False),
            record_metrics=_env_flag(ENV_RECORD_METRICS, True),
            store_match_limit=store_match_limit,
        )
