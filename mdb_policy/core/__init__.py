"""
Core policy components.

This module contains the PolicyEngine facade and the evaluation machinery
behind it: privilege stack, domains, rules, templating and the rule store.
"""

from .builder import PolicyBuilder
from .conditions import ConditionBuilder, collect_parameters
from .domains import DocumentDomain, Domain, FieldDomain, ModelDomain
from .engine import PolicyEngine
from .manifest import (POLICY_MANIFEST_SCHEMA, apply_default_policy,
                       load_policy_manifest, validate_policy_manifest)
from .parameters import bind_parameters, request_parameters
from .policy import Policy
from .privilege import PrivilegeStack
from .rules import ComputedRule, LiteralRule, make_rule
from .templating import substitute
from .types import (DocumentHandle, DocumentRef, ModelRef, Target,
                    resolve_target)

__all__ = [
    # Facade
    "PolicyEngine",
    "PolicyBuilder",
    # Evaluation
    "Policy",
    "ConditionBuilder",
    "collect_parameters",
    "PrivilegeStack",
    "substitute",
    # Domains
    "Domain",
    "DocumentDomain",
    "ModelDomain",
    "FieldDomain",
    # Rules
    "LiteralRule",
    "ComputedRule",
    "make_rule",
    # Targets
    "DocumentHandle",
    "DocumentRef",
    "ModelRef",
    "Target",
    "resolve_target",
    # Parameters
    "bind_parameters",
    "request_parameters",
    # Manifest
    "POLICY_MANIFEST_SCHEMA",
    "validate_policy_manifest",
    "load_policy_manifest",
    "apply_default_policy",
]
