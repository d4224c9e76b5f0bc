"""
Policy Engine

The facade of MDB_POLICY. It owns:
- the privilege stack shared by every evaluation,
- the domains and the rule store,
- the model providers contributing rule parameters,

and exposes the operations interception layers need: permission decisions,
read filters and query redaction.

This module is part of MDB_POLICY - MongoDB Policy Engine.
"""

import asyncio
import logging
from collections.abc import Awaitable, Callable, Iterator, Mapping, Sequence
from contextlib import contextmanager
from typing import TYPE_CHECKING, Any, Dict, Iterable, List, Optional, TypeVar, Union

from ..config import PolicyConfig
from ..constants import PERMISSION_READ, PERMISSION_READ_FIELDS
from ..database.query import Query
from ..database.redactor import QueryRedactor
from ..exceptions import ConfigurationError
from ..observability import get_logger as get_contextual_logger
from ..observability import log_operation, policy_context, timed_operation
from .builder import PolicyBuilder
from .domains import Domain, DocumentDomain, FieldDomain, ModelDomain
from .manifest import DefaultPolicy, load_policy_manifest
from .policy import Policy
from .privilege import PrivilegeStack
from .types import (ConditionValue, DocumentHandle, FilterTree, ModelProvider,
                    resolve_target)

if TYPE_CHECKING:
    from motor.motor_asyncio import AsyncIOMotorDatabase

    from ..database.secured_wrapper import SecuredMongoWrapper
    from ..database.store import DocumentStore

logger = logging.getLogger(__name__)
# Use contextual logger for better observability
contextual_logger = get_contextual_logger(__name__)

T = TypeVar("T")

TargetInput = Union[str, DocumentHandle]


class PolicyEngine:
    """
    Declarative per-model, per-permission authorization for MongoDB.

    Example:
        >>> engine = PolicyEngine(store=MotorDocumentStore(db))
        >>> engine.add_model_provider(request_parameters)
        >>> engine.build_policy("Activity").read({"owner": "{{user_id}}"})
        >>> secured = engine.secure_db(db)
        >>> with bind_parameters(user_id="joe"):
        ...     docs = await (await secured.Activity.find({})).to_list(None)
    """

    def __init__(
        self,
        store: Optional["DocumentStore"] = None,
        config: Optional[PolicyConfig] = None,
        domains: Optional[Sequence[Domain]] = None,
        privilege: Optional[PrivilegeStack] = None,
    ) -> None:
        """
        Initialize the engine.

        Args:
            store: Persistence adapter used to re-validate documents; required
                for document permissions on persisted documents
            config: Evaluation settings (defaults to PolicyConfig())
            domains: Replaces the default Document/Model/Field domains
            privilege: Privilege stack to share with other components

        Raises:
            ConfigurationError: If two domains accept the same permission
        """
        self.config = config or PolicyConfig()
        self._privilege = privilege or PrivilegeStack()
        self._model_providers: List[ModelProvider] = []
        if domains is None:
            domains = (
                DocumentDomain(
                    self._privilege, store=store, identity_field=self.config.identity_field
                ),
                ModelDomain(),
                FieldDomain(),
            )
        self._domains = tuple(domains)
        self._policy = Policy(
            self._domains,
            self._model_providers,
            self._privilege,
            strict_outcomes=self.config.strict_outcomes,
        )
        self._redactor = QueryRedactor(identity_field=self.config.identity_field)
        self._store: Optional["DocumentStore"] = None
        self.store = store

    # ------------------------------------------------------------------
    # Configuration
    # ------------------------------------------------------------------

    @property
    def store(self) -> Optional["DocumentStore"]:
        return self._store

    @store.setter
    def store(self, store: Optional["DocumentStore"]) -> None:
        self._store = store
        for domain in self._domains:
            if isinstance(domain, DocumentDomain):
                domain.store = store

    @property
    def policy(self) -> Policy:
        return self._policy

    @property
    def privilege(self) -> PrivilegeStack:
        return self._privilege

    @property
    def permissions(self) -> tuple:
        """Every permission known to the engine."""
        return self._policy.permissions

    def add_model_provider(self, provider: ModelProvider) -> None:
        """
        Add a provider of rule parameters.

        Providers take no arguments and return a mapping (or an awaitable of
        one); the values are available to rule functions and as
        `{{name}}` placeholders.
        """
        if not callable(provider):
            raise ConfigurationError(
                "Model providers must be callables returning a mapping",
                config_key="model_provider",
                config_value=repr(provider),
            )
        self._model_providers.append(provider)

    def register_rule(self, model_name: str, permission: str, rule: Any) -> None:
        """
        Register a rule for a model and permission.

        Raises:
            ConfigurationError: If the permission is unknown or the rule shape
                does not fit the permission's domain
        """
        self._policy.add_rule(model_name, permission, rule)

    def build_policy(self, model_name: str) -> PolicyBuilder:
        """Get a chainable builder registering rules for `model_name`."""
        return PolicyBuilder(self._policy, model_name)

    def load_manifest(
        self,
        manifest: Mapping[str, Any],
        model_names: Iterable[str] = (),
        default_policy: DefaultPolicy = None,
    ) -> List[str]:
        """
        Register the rules declared by a policy manifest.

        Returns:
            Models from `model_names` that received the default policy
        """
        return load_policy_manifest(self, manifest, model_names, default_policy)

    # ------------------------------------------------------------------
    # Evaluation
    # ------------------------------------------------------------------

    async def get_condition(self, target: TargetInput, permission: str) -> ConditionValue:
        """
        Resolve the aggregated condition of a permission for a target.

        Raises:
            ConfigurationError: If the permission is unknown
            RuleEvaluationError: If a rule fails
            TemplateError: If a placeholder cannot be substituted
        """
        resolved = resolve_target(target)
        with policy_context(model_name=resolved.model_name, permission=permission):
            with timed_operation(
                "policy.get_condition",
                enabled=self.config.record_metrics,
                model=resolved.model_name,
                permission=permission,
            ):
                condition = await self._policy.get_condition(resolved, permission)
            contextual_logger.debug(f"Resolved condition: {condition!r}")
            return condition

    async def ask_permission(self, target: TargetInput, permission: str) -> bool:
        """
        Decide whether `permission` is granted on `target`.

        Always granted while privileged.

        Raises:
            ConfigurationError: If the permission is unknown or yields no decision
            RuleEvaluationError: If a rule fails
            TemplateError: If a placeholder cannot be substituted
        """
        if self._privilege.is_privileged():
            return True

        resolved = resolve_target(target)
        with policy_context(model_name=resolved.model_name, permission=permission):
            with timed_operation(
                "policy.ask_permission",
                enabled=self.config.record_metrics,
                model=resolved.model_name,
                permission=permission,
            ):
                decision = await self._policy.evaluate_condition(resolved, permission)
            log_operation(
                contextual_logger,
                "policy.ask_permission",
                level=logging.INFO if self.config.log_decisions else logging.DEBUG,
                success=True,
                decision=decision,
            )
            return decision

    async def get_permissions(
        self,
        target: TargetInput,
        permissions: Optional[Union[str, Iterable[str]]] = None,
    ) -> Dict[str, bool]:
        """
        Decide several permissions on one target concurrently.

        Args:
            target: Model name or document
            permissions: None (every permission yielding a decision), one
                permission, or several

        Returns:
            Permission -> decision
        """
        if permissions is None:
            permissions = self._policy.decision_permissions
        elif isinstance(permissions, str):
            permissions = [permissions]
        permissions = list(dict.fromkeys(permissions))

        decisions = await asyncio.gather(
            *(self.ask_permission(target, permission) for permission in permissions)
        )
        result: Dict[str, bool] = {}
        for permission, decision in zip(permissions, decisions):
            result.setdefault(permission, decision)
        return result

    async def filter_for_read(self, model_name: str) -> FilterTree:
        """Aggregated read condition, to be merged into outgoing find operations."""
        condition = await self.get_condition(model_name, PERMISSION_READ)
        return dict(condition)

    async def redact_query(self, model_name: str, query: Query) -> None:
        """Resolve field visibility for `model_name` and redact `query` in place."""
        visibility = await self.get_condition(model_name, PERMISSION_READ_FIELDS)
        if visibility:
            self._redactor.redact(query, visibility)

    # ------------------------------------------------------------------
    # Privilege
    # ------------------------------------------------------------------

    def is_privileged(self) -> bool:
        return self._privilege.is_privileged()

    def run_privileged(self, fn: Callable[..., T], *args: Any, **kwargs: Any) -> T:
        """Call `fn` with permission checks disabled."""
        return self._privilege.run_privileged(fn, *args, **kwargs)

    async def run_privileged_async(self, awaitable: Awaitable[T]) -> T:
        """Await `awaitable` with permission checks disabled."""
        return await self._privilege.run_privileged_async(awaitable)

    def run_unprivileged(self, fn: Callable[..., T], *args: Any, **kwargs: Any) -> T:
        """Call `fn` with permission checks enabled."""
        return self._privilege.run_unprivileged(fn, *args, **kwargs)

    @contextmanager
    def privileged(self) -> Iterator[None]:
        """Disable permission checks inside the block."""
        with self._privilege.privileged():
            yield

    # ------------------------------------------------------------------
    # Database integration
    # ------------------------------------------------------------------

    def secure_db(
        self,
        database: "AsyncIOMotorDatabase",
        collections: Optional[Mapping[str, str]] = None,
    ) -> "SecuredMongoWrapper":
        """
        Wrap a Motor database so every collection access is policy-checked.

        Args:
            database: The Motor database
            collections: Collection name -> model name, for collections whose
                model has a different name

        Returns:
            SecuredMongoWrapper instance
        """
        from ..database.secured_wrapper import SecuredMongoWrapper

        return SecuredMongoWrapper(database, self, collections=collections)
