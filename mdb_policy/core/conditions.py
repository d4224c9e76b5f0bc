"""
Condition Builder

Resolves the ordered rule list of one (model, permission) pair into a single
condition:

1. No rules: the domain's default (deny filter, False, or an empty field map).
2. Collect parameters from every model provider, plus the target.
3. Evaluate all rules concurrently; computed rules run privileged.
4. Fail fast: one failing rule fails the whole resolution.
5. Aggregate the outcomes in registration order.
6. Substitute `{{placeholders}}` in the aggregated condition.

This module is part of MDB_POLICY - MongoDB Policy Engine.
"""

import asyncio
import inspect
import logging
from collections.abc import Mapping, Sequence
from typing import Any, List

from ..constants import PARAMETER_TARGET
from ..exceptions import ConfigurationError, PolicyEngineError, RuleEvaluationError
from .domains import Domain
from .privilege import PrivilegeStack
from .rules import Rule
from .templating import substitute
from .types import ConditionValue, ModelProvider, ParameterMapping, Target

logger = logging.getLogger(__name__)


async def collect_parameters(
    model_providers: Sequence[ModelProvider], target: Target
) -> ParameterMapping:
    """
    Build the parameter mapping for one evaluation.

    Providers are applied in registration order, so a later provider
    overrides keys of an earlier one (including `target`).

    Raises:
        ConfigurationError: If a provider returns something other than a
            mapping or None
    """
    parameters: ParameterMapping = {PARAMETER_TARGET: target.raw}
    for provider in model_providers:
        provided = provider()
        if inspect.isawaitable(provided):
            provided = await provided
        if provided is None:
            continue
        if not isinstance(provided, Mapping):
            raise ConfigurationError(
                f"Model provider {getattr(provider, '__name__', provider)!r} returned "
                f"{type(provided).__name__}, expected a mapping",
                config_key="model_provider",
                config_value=provider,
            )
        parameters.update(provided)
    return parameters


class ConditionBuilder:
    """Builds the aggregated condition for one target and permission."""

    def __init__(
        self,
        domain: Domain,
        target: Target,
        rules: Sequence[Rule],
        model_providers: Sequence[ModelProvider],
        privilege: PrivilegeStack,
        model_name: str,
        permission: str,
        strict_outcomes: bool = True,
    ) -> None:
        self.domain = domain
        self.target = target
        self.rules = tuple(rules)
        self.model_providers = tuple(model_providers)
        self.privilege = privilege
        self.model_name = model_name
        self.permission = permission
        self.strict_outcomes = strict_outcomes

    async def _evaluate_rule(self, index: int, rule: Rule, parameters: ParameterMapping) -> Any:
        try:
            outcome = await rule.evaluate(parameters, self.privilege)
        except Exception as e:
            logger.warning(
                f"Rule {index} for {self.model_name}.{self.permission} failed: "
                f"{type(e).__name__}: {e}"
            )
            raise RuleEvaluationError(
                f"Rule {index} for '{self.model_name}' permission "
                f"'{self.permission}' failed: {e}",
                model_name=self.model_name,
                permission=self.permission,
                rule_index=index,
            ) from e

        if self.strict_outcomes:
            try:
                self.domain.validate_outcome(outcome)
            except ValueError as e:
                raise RuleEvaluationError(
                    f"Rule {index} for '{self.model_name}' permission "
                    f"'{self.permission}' returned an invalid outcome: {e}",
                    model_name=self.model_name,
                    permission=self.permission,
                    rule_index=index,
                ) from e
        return outcome

    async def build(self) -> ConditionValue:
        """
        Resolve the rules into one condition.

        Raises:
            RuleEvaluationError: If a rule fails or returns an invalid outcome
            TemplateError: If a placeholder cannot be substituted
        """
        if not self.rules:
            return self.domain.aggregate([])

        parameters = await collect_parameters(self.model_providers, self.target)

        # gather keeps results in argument order, whatever the completion order
        outcomes: List[Any] = await asyncio.gather(
            *(
                self._evaluate_rule(index, rule, parameters)
                for index, rule in enumerate(self.rules)
            )
        )

        condition = self.domain.aggregate(outcomes)
        try:
            return substitute(condition, parameters)
        except PolicyEngineError:
            logger.warning(
                f"Placeholder substitution failed for {self.model_name}.{self.permission}"
            )
            raise
