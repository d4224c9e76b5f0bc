"""
Policy (rule store)

Holds, per model and permission, the ordered rules registered by the
application, and routes every permission to the one domain that owns it.

The permission -> domain mapping is built and checked once, when the policy
is created: a permission claimed by two domains is a configuration error.
Asking about, or registering a rule for, a permission no domain owns is a
configuration error too.

This module is part of MDB_POLICY - MongoDB Policy Engine.
"""

import logging
from collections.abc import Sequence
from typing import Any, Dict, List, Tuple, Union

from ..exceptions import ConfigurationError
from .conditions import ConditionBuilder
from .domains import Domain
from .privilege import PrivilegeStack
from .rules import Rule, make_rule
from .types import (ConditionValue, DocumentHandle, ModelProvider, Target,
                    resolve_target)

logger = logging.getLogger(__name__)


def build_domain_map(domains: Sequence[Domain]) -> Dict[str, Domain]:
    """
    Map every permission to its domain.

    Raises:
        ConfigurationError: If a permission is accepted by more than one domain
    """
    mapping: Dict[str, Domain] = {}
    for domain in domains:
        for permission in domain.permissions:
            owner = mapping.get(permission)
            if owner is not None:
                raise ConfigurationError(
                    f"Permission '{permission}' is accepted by both the {owner.name} "
                    f"and the {domain.name} domain",
                    config_key="permission",
                    config_value=permission,
                )
            mapping[permission] = domain
    return mapping


class Policy:
    """In-memory rule store with permission -> domain dispatch."""

    def __init__(
        self,
        domains: Sequence[Domain],
        model_providers: List[ModelProvider],
        privilege: PrivilegeStack,
        strict_outcomes: bool = True,
    ) -> None:
        self._domains = tuple(domains)
        self._domain_map = build_domain_map(self._domains)
        self._rules: Dict[str, Dict[str, List[Rule]]] = {}
        # shared with the engine so providers added later are seen here
        self._model_providers = model_providers
        self._privilege = privilege
        self._strict_outcomes = strict_outcomes

    @property
    def domains(self) -> Tuple[Domain, ...]:
        return self._domains

    @property
    def permissions(self) -> Tuple[str, ...]:
        """Every known permission, in domain declaration order."""
        return tuple(self._domain_map)

    @property
    def decision_permissions(self) -> Tuple[str, ...]:
        """Permissions whose domain answers with a boolean decision."""
        return tuple(p for p, domain in self._domain_map.items() if domain.decides)

    def get_domain(self, permission: str) -> Domain:
        """
        Raises:
            ConfigurationError: If no domain accepts the permission
        """
        domain = self._domain_map.get(permission)
        if domain is None:
            raise ConfigurationError(
                f"Permission '{permission}' is not a valid permission. Supported are: "
                f"{', '.join(repr(p) for p in self._domain_map)}.",
                config_key="permission",
                config_value=permission,
            )
        return domain

    def check_rule(self, permission: str, rule: Any) -> Rule:
        """
        Normalize `rule` and check it fits the domain of `permission`,
        without registering it.

        Raises:
            ConfigurationError: If the permission is unknown or the rule has a
                shape its domain cannot aggregate
        """
        normalized = make_rule(rule)
        self.get_domain(permission).validate_rule(normalized)
        return normalized

    def add_rule(self, model_name: str, permission: str, rule: Any) -> Rule:
        """
        Append a rule for (model_name, permission).

        Raises:
            ConfigurationError: If the permission is unknown or the rule has a
                shape its domain cannot aggregate
        """
        normalized = self.check_rule(permission, rule)
        self._rules.setdefault(model_name, {}).setdefault(permission, []).append(normalized)
        logger.debug(
            f"Registered {type(normalized).__name__} for {model_name}.{permission}"
        )
        return normalized

    def get_rules(self, model_name: str, permission: str) -> Tuple[Rule, ...]:
        """Rules in registration order; empty when none were registered."""
        return tuple(self._rules.get(model_name, {}).get(permission, ()))

    def models(self) -> Tuple[str, ...]:
        """Models that have at least one rule."""
        return tuple(self._rules)

    async def get_condition(
        self, target: Union[str, DocumentHandle, Target], permission: str
    ) -> ConditionValue:
        resolved = resolve_target(target)
        domain = self.get_domain(permission)
        model_name = domain.resolve_model_name(resolved)
        builder = ConditionBuilder(
            domain,
            resolved,
            self.get_rules(model_name, permission),
            self._model_providers,
            self._privilege,
            model_name=model_name,
            permission=permission,
            strict_outcomes=self._strict_outcomes,
        )
        return await builder.build()

    async def evaluate_condition(
        self, target: Union[str, DocumentHandle, Target], permission: str
    ) -> bool:
        resolved = resolve_target(target)
        domain = self.get_domain(permission)
        if not domain.decides:
            # fail before running any rule
            return await domain.evaluate_target_condition(resolved, None)
        condition = await self.get_condition(resolved, permission)
        return await domain.evaluate_target_condition(resolved, condition)
