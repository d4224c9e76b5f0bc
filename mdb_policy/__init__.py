"""
MDB_POLICY - MongoDB Policy Engine

Declarative per-model, per-permission authorization for MongoDB
applications, with query filtering, field redaction and privileged execution.
"""

# Configuration
from .config import PolicyConfig
# Core policy engine
from .core import (PolicyBuilder, PolicyEngine, PrivilegeStack,
                   bind_parameters, load_policy_manifest, request_parameters)
# Database layer
from .database import (Document, DocumentStore, MotorDocumentStore, Query,
                       QueryRedactor, SecuredMongoWrapper)
# Errors
from .exceptions import (ConfigurationError, PolicyEngineError,
                         PolicyManifestError, RuleEvaluationError,
                         TemplateError, TemplateParameterMissing,
                         UnauthorizedError)

__version__ = "0.1.0"

__all__ = [
    # Core
    "PolicyEngine",
    "PolicyBuilder",
    "PrivilegeStack",
    "PolicyConfig",
    "bind_parameters",
    "request_parameters",
    "load_policy_manifest",
    # Database
    "Document",
    "DocumentStore",
    "MotorDocumentStore",
    "Query",
    "QueryRedactor",
    "SecuredMongoWrapper",
    # Errors
    "PolicyEngineError",
    "ConfigurationError",
    "PolicyManifestError",
    "TemplateError",
    "TemplateParameterMissing",
    "RuleEvaluationError",
    "UnauthorizedError",
]
