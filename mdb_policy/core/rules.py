"""
Rule representations.

Whatever the application registers (a boolean, a condition mapping, a
function of the parameters, a pending future) is normalized into one of two
immutable shapes:

- `LiteralRule`: a fixed condition value.
- `ComputedRule`: a function of the parameter mapping returning a condition
  value or an awaitable of one. Functions run with permission checks
  disabled so they can read the store through intercepted paths.

This module is part of MDB_POLICY - MongoDB Policy Engine.
"""

import asyncio
import copy
import inspect
from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any, Callable, Union

from ..exceptions import ConfigurationError
from .privilege import PrivilegeStack
from .types import ConditionValue, ParameterMapping


@dataclass(frozen=True)
class LiteralRule:
    """A rule whose outcome is known at registration time."""

    value: ConditionValue

    async def evaluate(
        self, parameters: ParameterMapping, privilege: PrivilegeStack
    ) -> ConditionValue:
        return self.value


@dataclass(frozen=True)
class ComputedRule:
    """A rule whose outcome is computed from the parameters for every evaluation."""

    fn: Callable[[ParameterMapping], Any]

    async def evaluate(self, parameters: ParameterMapping, privilege: PrivilegeStack) -> Any:
        result = privilege.run_privileged(self.fn, parameters)
        if inspect.isawaitable(result):
            result = await privilege.run_privileged_async(result)
        return result


Rule = Union[LiteralRule, ComputedRule]


def make_rule(rule: Any) -> Rule:
    """
    Normalize a registered rule.

    Raises:
        ConfigurationError: If the rule has an unsupported shape
    """
    if isinstance(rule, (LiteralRule, ComputedRule)):
        return rule
    if isinstance(rule, bool):
        return LiteralRule(rule)
    if isinstance(rule, Mapping):
        return LiteralRule(copy.deepcopy(dict(rule)))
    if asyncio.isfuture(rule):
        future = rule
        return ComputedRule(lambda _parameters: future)
    if inspect.iscoroutine(rule):
        # Close it so Python does not warn about a never-awaited coroutine.
        rule.close()
        raise ConfigurationError(
            "A coroutine object can only be awaited once; register the "
            "coroutine function instead",
            config_key="rule",
        )
    if callable(rule):
        return ComputedRule(rule)
    raise ConfigurationError(
        f"Unsupported rule type {type(rule).__name__}: expected a boolean, a "
        f"condition mapping, a callable or a future",
        config_key="rule",
        config_value=repr(rule),
    )
