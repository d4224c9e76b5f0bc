"""
Database layer.

Query representation and redaction, the Motor persistence adapter, and the
policy-enforcing collection wrappers.
"""

from .query import Query, merge_filters
from .redactor import QueryRedactor
from .secured_wrapper import SecuredCollectionWrapper, SecuredMongoWrapper
from .store import Document, DocumentStore, MotorDocumentStore

__all__ = [
    # Queries
    "Query",
    "merge_filters",
    "QueryRedactor",
    # Persistence
    "Document",
    "DocumentStore",
    "MotorDocumentStore",
    # Secured wrappers
    "SecuredMongoWrapper",
    "SecuredCollectionWrapper",
]
