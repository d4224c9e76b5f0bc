"""
Policy Builder

Chainable helper for registering the rules of one model:

    engine.build_policy("Activity") \\
        .read({"category": "sport"}) \\
        .read({"owner": "{{user_id}}"}) \\
        .read_fields({"budget": False}) \\
        .grant_all("create")

Every permission known to the engine is available as a method, including
permissions of custom domains.

This module is part of MDB_POLICY - MongoDB Policy Engine.
"""

from typing import TYPE_CHECKING, Any, Callable, Iterable, Optional, Union

if TYPE_CHECKING:
    from .policy import Policy


class PolicyBuilder:
    """Registers rules for a single model."""

    __slots__ = ("_policy", "_model_name")

    def __init__(self, policy: "Policy", model_name: str) -> None:
        self._policy = policy
        self._model_name = model_name

    @property
    def model_name(self) -> str:
        return self._model_name

    def rule(self, permission: str, rule: Any) -> "PolicyBuilder":
        """Register `rule` for `permission` on this model."""
        self._policy.add_rule(self._model_name, permission, rule)
        return self

    def grant_all(
        self, permissions: Optional[Union[str, Iterable[str]]] = None
    ) -> "PolicyBuilder":
        """
        Grant the given permissions unconditionally to everyone.

        Args:
            permissions: None (every permission that yields a decision), one
                permission, or several
        """
        if permissions is None:
            permissions = self._policy.decision_permissions
        elif isinstance(permissions, str):
            permissions = [permissions]
        for permission in permissions:
            self._policy.add_rule(self._model_name, permission, True)
        return self

    def __getattr__(self, name: str) -> Callable[[Any], "PolicyBuilder"]:
        if name.startswith("_") or name not in self._policy.permissions:
            raise AttributeError(f"'{type(self).__name__}' object has no attribute '{name}'")

        def register(rule: Any) -> "PolicyBuilder":
            return self.rule(name, rule)

        register.__name__ = name
        return register

    def __dir__(self) -> Iterable[str]:
        return [*super().__dir__(), *self._policy.permissions]

    def __repr__(self) -> str:
        return f"PolicyBuilder(model_name={self._model_name!r})"
