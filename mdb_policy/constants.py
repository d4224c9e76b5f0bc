"""
Constants for MDB_POLICY.

This module contains all shared constants used across the codebase to avoid
magic strings and improve maintainability.
"""

import re
from typing import Final

# ============================================================================
# PERMISSIONS
# ============================================================================

PERMISSION_CREATE: Final[str] = "create"
"""Creation of new documents (Model domain)."""

PERMISSION_READ: Final[str] = "read"
"""Reading documents (Document domain)."""

PERMISSION_UPDATE: Final[str] = "update"
"""Updating persisted documents (Document domain)."""

PERMISSION_REMOVE: Final[str] = "remove"
"""Removing persisted documents (Document domain)."""

PERMISSION_READ_FIELDS: Final[str] = "read_fields"
"""Field visibility (Field domain)."""

DOCUMENT_PERMISSIONS: Final[tuple[str, ...]] = (
    PERMISSION_READ,
    PERMISSION_UPDATE,
    PERMISSION_REMOVE,
)
"""Permissions accepted by the default DocumentDomain."""

MODEL_PERMISSIONS: Final[tuple[str, ...]] = (PERMISSION_CREATE,)
"""Permissions accepted by the default ModelDomain."""

FIELD_PERMISSIONS: Final[tuple[str, ...]] = (PERMISSION_READ_FIELDS,)
"""Permissions accepted by the default FieldDomain."""

# ============================================================================
# CONDITIONS
# ============================================================================

DEFAULT_IDENTITY_FIELD: Final[str] = "_id"
"""Field holding a document's identity. Every stored document has it."""

OR_OPERATOR: Final[str] = "$or"
AND_OPERATOR: Final[str] = "$and"
NOR_OPERATOR: Final[str] = "$nor"

LOGICAL_OPERATORS: Final[tuple[str, ...]] = (OR_OPERATOR, AND_OPERATOR, NOR_OPERATOR)
"""List-valued filter combinators the redactor descends into."""

PARAMETER_TARGET: Final[str] = "target"
"""Name under which the evaluated target is exposed to rules and templates."""

PLACEHOLDER_PATTERN: Final[re.Pattern] = re.compile(r"\{\{(.+?)\}\}")
"""Matches `{{expression}}` placeholders in condition strings."""

PARAMETER_PATH_PATTERN: Final[re.Pattern] = re.compile(
    r"^[A-Za-z_][A-Za-z0-9_]*(\.[A-Za-z0-9_]+)*$"
)
"""Accepted placeholder expressions: a name optionally followed by dotted keys."""

# ============================================================================
# STORE / INTERCEPTION
# ============================================================================

DEFAULT_STORE_MATCH_LIMIT: Final[int] = 2
"""Documents fetched when re-validating one document; two suffice to tell 'exactly one'."""

UNAUTHORIZED_STATUS_CODE: Final[int] = 403
"""HTTP status suggested for denied operations."""

# ============================================================================
# ENVIRONMENT VARIABLES
# ============================================================================

ENV_IDENTITY_FIELD: Final[str] = "POLICY_IDENTITY_FIELD"
ENV_STRICT_OUTCOMES: Final[str] = "POLICY_STRICT_OUTCOMES"
ENV_LOG_DECISIONS: Final[str] = "POLICY_LOG_DECISIONS"
ENV_RECORD_METRICS: Final[str] = "POLICY_RECORD_METRICS"
ENV_STORE_MATCH_LIMIT: Final[str] = "POLICY_STORE_MATCH_LIMIT"

# ============================================================================
# MANIFEST
# ============================================================================

DEFAULT_POLICY_GRANT_ALL: Final[str] = "grant_all"
DEFAULT_POLICY_DENY: Final[str] = "deny"
DEFAULT_POLICIES: Final[tuple[str, ...]] = (DEFAULT_POLICY_GRANT_ALL, DEFAULT_POLICY_DENY)
"""Named default policies for models a manifest does not declare."""

MANIFEST_GRANT_ALL_KEY: Final[str] = "grant_all"
"""Model-level manifest key listing permissions granted unconditionally."""
