"""
Custom exceptions for MDB_POLICY.

Evaluation faults (configuration, templating, rule failures) derive from
PolicyEngineError and propagate to the caller. UnauthorizedError is the
designed negative outcome of an interception point and carries enough
context for the caller to reject the operation with an access-denied status.
"""

from typing import Any, Dict, List, Optional

from .constants import UNAUTHORIZED_STATUS_CODE


class PolicyEngineError(RuntimeError):
    """
    Base exception for policy engine errors.

    Attributes:
        message: Error message
        context: Optional dictionary with additional context (model_name,
                 permission, etc.)
    """

    def __init__(self, message: str, context: Optional[Dict[str, Any]] = None) -> None:
        """
        Initialize the exception.

        Args:
            message: Error message
            context: Optional dictionary with additional context information
        """
        super().__init__(message)
        self.message = message
        self.context = context or {}

    def __str__(self) -> str:
        """Return formatted error message with context if available."""
        if self.context:
            context_str = ", ".join(f"{k}={v}" for k, v in self.context.items())
            return f"{self.message} (context: {context_str})"
        return self.message


class ConfigurationError(PolicyEngineError):
    """
    Raised when the policy configuration is invalid.

    Covers permissions no domain accepts, permissions claimed by more than one
    domain, rules of the wrong shape and invalid engine settings. These are
    start-up faults, not per-request ones.

    Attributes:
        message: Error message
        config_key: Configuration key that caused the error (if available)
        config_value: Configuration value that caused the error (if available)
        context: Additional context information
    """

    def __init__(
        self,
        message: str,
        config_key: Optional[str] = None,
        config_value: Optional[Any] = None,
        context: Optional[Dict[str, Any]] = None,
    ) -> None:
        context = context or {}
        if config_key:
            context["config_key"] = config_key
        if config_value is not None:
            context["config_value"] = config_value
        super().__init__(message, context=context)
        self.config_key = config_key
        self.config_value = config_value


class PolicyManifestError(ConfigurationError):
    """
    Raised when a policy manifest fails schema validation.

    Attributes:
        error_paths: List of JSON paths with validation errors
    """

    def __init__(
        self,
        message: str,
        error_paths: Optional[List[str]] = None,
        context: Optional[Dict[str, Any]] = None,
    ) -> None:
        context = context or {}
        if error_paths:
            context["error_paths"] = error_paths
        super().__init__(message, context=context)
        self.error_paths = error_paths


class TemplateError(PolicyEngineError):
    """Raised when a placeholder in a condition cannot be substituted."""


class TemplateParameterMissing(TemplateError):
    """
    Raised when a `{{placeholder}}` has no matching parameter.

    Attributes:
        parameter: The placeholder expression that could not be resolved
    """

    def __init__(
        self,
        message: str,
        parameter: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
    ) -> None:
        context = context or {}
        if parameter:
            context["parameter"] = parameter
        super().__init__(message, context=context)
        self.parameter = parameter


class RuleEvaluationError(PolicyEngineError):
    """
    Raised when a rule function raises, its awaitable fails, or it returns a
    value its domain cannot aggregate.

    Attributes:
        model_name: Model the rule was registered for
        permission: Permission the rule was registered for
        rule_index: Position of the rule in registration order
    """

    def __init__(
        self,
        message: str,
        model_name: Optional[str] = None,
        permission: Optional[str] = None,
        rule_index: Optional[int] = None,
        context: Optional[Dict[str, Any]] = None,
    ) -> None:
        context = context or {}
        if model_name:
            context["model_name"] = model_name
        if permission:
            context["permission"] = permission
        if rule_index is not None:
            context["rule_index"] = rule_index
        super().__init__(message, context=context)
        self.model_name = model_name
        self.permission = permission
        self.rule_index = rule_index


class UnauthorizedError(PolicyEngineError):
    """
    Raised by interception points when a permission is denied.

    Not an internal fault: this is the negative decision itself. `cause` is
    set when the decision could not be made because evaluation failed.

    Attributes:
        target: The model name or document the permission was asked for
        model_name: Model name of the target
        identity: Identity of the document ("" for a model name)
        permission: The denied permission
        cause: Optional underlying exception
        status_code: HTTP status suggested for the rejection (403)
    """

    status_code = UNAUTHORIZED_STATUS_CODE

    def __init__(
        self,
        target: Any,
        permission: str,
        cause: Optional[BaseException] = None,
    ) -> None:
        if isinstance(target, str):
            model_name = target
            identity: Any = ""
        else:
            model_name = getattr(target, "model_name", type(target).__name__)
            identity = getattr(target, "identity", None)
            if identity is None:
                identity = ""
        message = (
            f"Unauthorized: No permission to {permission} this document "
            f"({model_name}[{identity}])."
        )
        context: Dict[str, Any] = {"model_name": model_name, "permission": permission}
        if cause is not None:
            context["cause"] = f"{type(cause).__name__}: {cause}"
        super().__init__(message, context=context)
        self.reason = "Unauthorized"
        self.target = target
        self.model_name = model_name
        self.identity = identity
        self.permission = permission
        self.cause = cause

    def to_dict(self) -> Dict[str, Any]:
        """Serializable view for HTTP responses."""
        return {
            "detail": self.message,
            "reason": self.reason,
            "model": self.model_name,
            "permission": self.permission,
            "id": str(self.identity),
        }
