"""
Permission Domains

A domain owns a set of permissions and decides how the outcomes of the rules
registered for one (model, permission) pair combine into a single condition:

- DocumentDomain: per-document permissions (read, update, remove). Outcomes
  are filters OR-ed together; the result is merged into queries or used to
  re-validate one document against the store.
- ModelDomain: model-wide permissions (create). Outcomes are booleans; one
  `True` grants.
- FieldDomain: field visibility (read_fields). Outcomes are field -> bool
  maps applied in registration order.

This module is part of MDB_POLICY - MongoDB Policy Engine.
"""

from __future__ import annotations

import abc
import logging
from collections.abc import Iterable, Mapping, Sequence
from typing import TYPE_CHECKING, Any, ClassVar, Optional

from ..constants import (DEFAULT_IDENTITY_FIELD, DOCUMENT_PERMISSIONS,
                         FIELD_PERMISSIONS, MODEL_PERMISSIONS, OR_OPERATOR)
from ..database.query import merge_filters
from ..exceptions import ConfigurationError
from .privilege import PrivilegeStack
from .rules import LiteralRule, Rule
from .types import (ConditionValue, DocumentRef, FieldVisibility, FilterTree,
                    Target)

if TYPE_CHECKING:
    from ..database.store import DocumentStore

logger = logging.getLogger(__name__)


class Domain(abc.ABC):
    """
    Strategy shared by all permissions of one kind.

    Subclasses set `decides` to False when their condition is not a yes/no
    answer (field visibility), which excludes their permissions from
    `ask_permission` and from the default permission lists.
    """

    name: ClassVar[str] = "domain"
    decides: ClassVar[bool] = True

    def __init__(self, permissions: Iterable[str]) -> None:
        self._permissions = tuple(dict.fromkeys(permissions))
        if not self._permissions:
            raise ConfigurationError(f"{type(self).__name__} must accept at least one permission")

    @property
    def permissions(self) -> tuple[str, ...]:
        return self._permissions

    def accepts(self, permission: str) -> bool:
        return permission in self._permissions

    def resolve_model_name(self, target: Target) -> str:
        return target.model_name

    async def evaluate_target_condition(self, target: Target, condition: ConditionValue) -> bool:
        raise ConfigurationError(
            f"Permissions of the {self.name} domain do not produce a decision",
            config_key="permission",
            config_value=", ".join(self._permissions),
        )

    @abc.abstractmethod
    def aggregate(self, conditions: Sequence[Any]) -> ConditionValue:
        """Combine rule outcomes, given in registration order, into one condition."""

    def validate_outcome(self, outcome: Any) -> None:
        """
        Check that a rule outcome can be aggregated by this domain.

        Raises:
            ValueError: If it cannot
        """

    def validate_rule(self, rule: Rule) -> None:
        """
        Check a rule at registration time. Only literal rules can be checked.

        Raises:
            ConfigurationError: If the literal value cannot be aggregated
        """
        if isinstance(rule, LiteralRule):
            try:
                self.validate_outcome(rule.value)
            except ValueError as e:
                raise ConfigurationError(
                    f"Invalid rule for the {self.name} domain: {e}",
                    config_key="rule",
                    config_value=repr(rule.value),
                ) from e

    def __repr__(self) -> str:
        return f"{type(self).__name__}(permissions={list(self._permissions)!r})"


class DocumentDomain(Domain):
    """
    Per-document permissions.

    An empty rule list, or one where every rule denies, aggregates to a
    filter no document satisfies, so an undeclared permission never grants.
    """

    name = "document"

    def __init__(
        self,
        privilege: PrivilegeStack,
        store: Optional[DocumentStore] = None,
        permissions: Iterable[str] = DOCUMENT_PERMISSIONS,
        identity_field: str = DEFAULT_IDENTITY_FIELD,
    ) -> None:
        super().__init__(permissions)
        self._privilege = privilege
        self._store = store
        self._identity_field = identity_field

    @property
    def identity_field(self) -> str:
        return self._identity_field

    def unsatisfiable_condition(self) -> FilterTree:
        # every stored document has an identity, so requiring its absence matches nothing
        return {self._identity_field: {"$exists": False}}

    def grant_condition(self) -> FilterTree:
        return {}

    def is_unsatisfiable(self, condition: ConditionValue) -> bool:
        return condition == self.unsatisfiable_condition()

    @property
    def store(self) -> Optional[DocumentStore]:
        return self._store

    @store.setter
    def store(self, store: Optional[DocumentStore]) -> None:
        self._store = store

    def validate_outcome(self, outcome: Any) -> None:
        if outcome is None or isinstance(outcome, (bool, Mapping)):
            return
        raise ValueError(
            f"expected a boolean or a filter mapping, got {type(outcome).__name__}"
        )

    def aggregate(self, conditions: Sequence[Any]) -> ConditionValue:
        remaining = [c for c in conditions if c is not False and c is not None]
        if not remaining:
            return self.unsatisfiable_condition()
        if any(c is True for c in remaining):
            return self.grant_condition()
        if len(remaining) == 1:
            return remaining[0]
        return {OR_OPERATOR: list(remaining)}

    async def evaluate_target_condition(self, target: Target, condition: ConditionValue) -> bool:
        if condition is True:
            condition = self.grant_condition()
        elif condition is False:
            condition = self.unsatisfiable_condition()

        if not isinstance(target, DocumentRef):
            # a bare model name only qualifies when every document does
            return condition == self.grant_condition()

        document = target.document
        if not document.is_persisted:
            # creation is decided by the model domain
            return True
        if self.is_unsatisfiable(condition):
            return False

        store = self._store
        if store is None:
            raise ConfigurationError(
                "A document store is required to evaluate document permissions",
                config_key="store",
            )

        identity_filter = {self._identity_field: document.identity}
        filter = merge_filters(identity_filter, condition)
        documents = await self._privilege.run_privileged_async(
            store.find_by_filter(document.model_name, filter)
        )
        matched = documents is not None and len(documents) == 1
        logger.debug(
            f"Re-validated {document.model_name}[{document.identity}] against "
            f"condition: matched={matched}"
        )
        return matched


class ModelDomain(Domain):
    """Model-wide permissions; one literal `True` outcome grants."""

    name = "model"

    def __init__(self, permissions: Iterable[str] = MODEL_PERMISSIONS) -> None:
        super().__init__(permissions)

    def validate_outcome(self, outcome: Any) -> None:
        if not isinstance(outcome, bool):
            raise ValueError(f"expected a boolean, got {type(outcome).__name__}")

    def aggregate(self, conditions: Sequence[Any]) -> ConditionValue:
        return any(c is True for c in conditions)

    async def evaluate_target_condition(self, target: Target, condition: ConditionValue) -> bool:
        return condition is True


class FieldDomain(Domain):
    """
    Field visibility. Later rules overwrite earlier ones field by field;
    fields no rule mentions stay visible.
    """

    name = "field"
    decides = False

    def __init__(self, permissions: Iterable[str] = FIELD_PERMISSIONS) -> None:
        super().__init__(permissions)

    def validate_outcome(self, outcome: Any) -> None:
        if outcome is None:
            return
        if not isinstance(outcome, Mapping):
            raise ValueError(
                f"expected a mapping of field names to booleans, got {type(outcome).__name__}"
            )
        for field, visible in outcome.items():
            if not isinstance(field, str) or not isinstance(visible, bool):
                raise ValueError(
                    f"expected a mapping of field names to booleans, got "
                    f"{field!r}: {visible!r}"
                )

    def aggregate(self, conditions: Sequence[Any]) -> FieldVisibility:
        result: FieldVisibility = {}
        for condition in conditions:
            if condition:
                result.update(condition)
        return result
