"""
Policy manifest loading.

A manifest declares the rules of several models at once, as plain data:

    {
        "default_policy": "grant_all",
        "models": {
            "Activity": {
                "grant_all": ["create"],
                "read": [{"category": "sport"}, {"owner": "{{user_id}}"}],
                "read_fields": [{"budget": False}]
            }
        }
    }

Rules in a manifest are literals (booleans and mappings); rule functions are
registered in code through `PolicyBuilder`. Models the application knows
about but the manifest does not declare get a default policy: everything
granted (the default), nothing granted, or whatever a callable builds.

This module is part of MDB_POLICY - MongoDB Policy Engine.
"""

import logging
from typing import TYPE_CHECKING, Any, Callable, Dict, Iterable, List, Mapping, Union

from jsonschema import SchemaError, ValidationError, validate

from ..constants import (DEFAULT_POLICIES, DEFAULT_POLICY_DENY,
                         DEFAULT_POLICY_GRANT_ALL, MANIFEST_GRANT_ALL_KEY)
from ..exceptions import ConfigurationError, PolicyManifestError
from .builder import PolicyBuilder

if TYPE_CHECKING:
    from .engine import PolicyEngine
    from .policy import Policy

logger = logging.getLogger(__name__)

DefaultPolicy = Union[str, Callable[[PolicyBuilder], Any], None]

_RULE_SCHEMA = {
    "oneOf": [
        {"type": "boolean"},
        {"type": "object"},
    ],
    "description": "A literal rule: a boolean or a condition mapping",
}

POLICY_MANIFEST_SCHEMA: Dict[str, Any] = {
    "type": "object",
    "properties": {
        "default_policy": {
            "type": "string",
            "enum": list(DEFAULT_POLICIES),
            "default": DEFAULT_POLICY_GRANT_ALL,
            "description": "Policy for models the manifest does not declare",
        },
        "models": {
            "type": "object",
            "additionalProperties": {
                "type": "object",
                "properties": {
                    MANIFEST_GRANT_ALL_KEY: {
                        "oneOf": [
                            {"type": "boolean"},
                            {"type": "array", "items": {"type": "string", "minLength": 1}},
                        ],
                        "description": (
                            "true grants every decision permission; a list grants "
                            "the listed permissions"
                        ),
                    },
                },
                "additionalProperties": {
                    "type": "array",
                    "items": _RULE_SCHEMA,
                },
            },
            "description": "Model name -> permission -> ordered rule list",
        },
    },
    "additionalProperties": False,
}


def _error_path(error: ValidationError) -> str:
    return ".".join(str(part) for part in error.absolute_path) or "$"


def validate_policy_manifest(manifest: Mapping[str, Any]) -> None:
    """
    Validate a manifest against POLICY_MANIFEST_SCHEMA.

    Raises:
        PolicyManifestError: If the manifest is invalid
    """
    try:
        validate(instance=manifest, schema=POLICY_MANIFEST_SCHEMA)
    except ValidationError as e:
        path = _error_path(e)
        raise PolicyManifestError(
            f"Invalid policy manifest at '{path}': {e.message}",
            error_paths=[path],
        ) from e
    except SchemaError as e:
        raise PolicyManifestError(f"Invalid policy manifest schema: {e.message}") from e


def check_manifest_rules(policy: "Policy", models: Mapping[str, Mapping[str, Any]]) -> None:
    """
    Check every rule of a manifest against its domain before any is registered.

    Raises:
        ConfigurationError: If a permission is unknown or a rule has the wrong
            shape for its domain
    """
    for permissions in models.values():
        for permission, rules in permissions.items():
            if permission == MANIFEST_GRANT_ALL_KEY:
                # `true` grants the deciding permissions, always valid
                if rules is not True:
                    for granted in rules or ():
                        policy.check_rule(granted, True)
                continue
            for rule in rules:
                policy.check_rule(permission, rule)


def apply_default_policy(builder: PolicyBuilder, default_policy: DefaultPolicy) -> None:
    """
    Apply a named or callable default policy to one model.

    Raises:
        ConfigurationError: If the named policy is unknown
    """
    if default_policy is None or default_policy == DEFAULT_POLICY_GRANT_ALL:
        builder.grant_all()
    elif default_policy == DEFAULT_POLICY_DENY:
        # no rules: every document permission aggregates to the deny filter
        return
    elif callable(default_policy):
        default_policy(builder)
    else:
        raise ConfigurationError(
            f"Unknown default policy '{default_policy}'",
            config_key="default_policy",
            config_value=default_policy,
        )


def load_policy_manifest(
    engine: "PolicyEngine",
    manifest: Mapping[str, Any],
    model_names: Iterable[str] = (),
    default_policy: DefaultPolicy = None,
) -> List[str]:
    """
    Register the rules of a manifest on an engine.

    Args:
        engine: Engine to register the rules on
        manifest: Policy manifest (see module docstring)
        model_names: Models known to the application; those missing from the
            manifest get the default policy
        default_policy: Overrides the manifest's `default_policy`; may be a
            callable receiving the model's PolicyBuilder

    Returns:
        Names of the models that received the default policy

    Raises:
        PolicyManifestError: If the manifest fails schema validation
        ConfigurationError: If a permission is unknown or a rule has the wrong
            shape for its domain
    """
    validate_policy_manifest(manifest)

    models: Mapping[str, Mapping[str, Any]] = manifest.get("models", {})
    check_manifest_rules(engine.policy, models)

    if default_policy is None:
        default_policy = manifest.get("default_policy", DEFAULT_POLICY_GRANT_ALL)
    if isinstance(default_policy, str) and default_policy not in DEFAULT_POLICIES:
        raise ConfigurationError(
            f"Unknown default policy '{default_policy}'",
            config_key="default_policy",
            config_value=default_policy,
        )

    for model_name, permissions in models.items():
        builder = engine.build_policy(model_name)
        for permission, rules in permissions.items():
            if permission == MANIFEST_GRANT_ALL_KEY:
                if rules is True:
                    builder.grant_all()
                elif rules:
                    builder.grant_all(rules)
                continue
            for rule in rules:
                builder.rule(permission, rule)
        logger.info(f"Loaded policy for model '{model_name}' from manifest")

    defaulted: List[str] = []
    for model_name in model_names:
        if model_name in models:
            continue
        logger.warning(
            f"No policy declared for model '{model_name}'. "
            f"Applying default policy: {getattr(default_policy, '__name__', default_policy)}"
        )
        apply_default_policy(engine.build_policy(model_name), default_policy)
        defaulted.append(model_name)
    return defaulted

