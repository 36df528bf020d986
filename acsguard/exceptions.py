"""ACS Guard Custom Exception Hierarchy.

This module provides the exception hierarchy for ACS Guard with rich
error context for debugging, monitoring, and operator feedback.

Exception Hierarchy:
    AcsGuardException (base)
    └── ValidationEngineException
        ├── ConfigurationError
        ├── RuleRegistrationError
        ├── RuleExecutionError
        └── ValidationTimeoutError

Rule failures are never raised to callers of the validation engine; they
are reported as violations. These exceptions cover engine faults:
misconfiguration at construction time, bad rule registration, and the
internal wrapper used when a rule itself blows up.

All exceptions include rich context:
- error_code: Unique error identifier
- rule_id: Identifier of the rule involved (optional)
- context: Dictionary with error-specific details
- timestamp: When the error occurred

Example:
    >>> from acsguard.exceptions import ConfigurationError
    >>> raise ConfigurationError(
    ...     message="Persistence gateway is required",
    ...     context={"collaborator": "persistence_gateway"}
    ... )
"""

import json
import re
import traceback as tb
from datetime import datetime
from typing import Any, Dict, Optional


# ==============================================================================
# Base Exception
# ==============================================================================

class AcsGuardException(Exception):
    """Base exception for all ACS Guard errors.

    Attributes:
        message: Human-readable error message
        error_code: Unique error identifier (e.g., "ACS_ENGINE_CONFIGURATION_ERROR")
        rule_id: Identifier of the rule that raised or caused the error
        context: Dictionary with error-specific details
        timestamp: When the error occurred
        traceback_str: Stack at the point the exception was created
    """

    ERROR_PREFIX = "ACS"

    def __init__(
        self,
        message: str,
        error_code: Optional[str] = None,
        rule_id: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
    ):
        """Initialize exception with rich context.

        Args:
            message: Human-readable error message
            error_code: Unique error identifier (auto-generated if not provided)
            rule_id: Identifier of the rule involved
            context: Dictionary with error-specific details
        """
        super().__init__(message)
        self.message = message
        self.error_code = error_code or self._generate_error_code()
        self.rule_id = rule_id
        self.context = context or {}
        self.timestamp = datetime.now()
        self.traceback_str = "".join(tb.format_stack()[:-1])

    def _generate_error_code(self) -> str:
        """Generate error code based on exception class.

        Returns:
            Error code like "ACS_ENGINE_CONFIGURATION_ERROR"
        """
        class_name = self.__class__.__name__
        error_type = re.sub(r'(?<!^)(?=[A-Z])', '_', class_name).upper()
        return f"{self.ERROR_PREFIX}_{error_type}"

    def to_dict(self) -> Dict[str, Any]:
        """Convert exception to dictionary for serialization.

        Returns:
            Dictionary with all error details
        """
        return {
            "error_type": self.__class__.__name__,
            "error_code": self.error_code,
            "message": self.message,
            "rule_id": self.rule_id,
            "context": self.context,
            "timestamp": self.timestamp.isoformat(),
            "traceback": self.traceback_str,
        }

    def to_json(self) -> str:
        """Convert exception to JSON string."""
        return json.dumps(self.to_dict(), indent=2, default=str)

    def __str__(self) -> str:
        """String representation with error code and message."""
        parts = [f"[{self.error_code}]"]
        if self.rule_id:
            parts.append(f"Rule: {self.rule_id}")
        parts.append(self.message)
        return " - ".join(parts)

    def __repr__(self) -> str:
        return (
            f"{self.__class__.__name__}("
            f"message='{self.message}', "
            f"error_code='{self.error_code}', "
            f"rule_id='{self.rule_id}')"
        )


# ==============================================================================
# Validation Engine Exceptions
# ==============================================================================

class ValidationEngineException(AcsGuardException):
    """Base exception for validation engine faults."""
    ERROR_PREFIX = "ACS_ENGINE"


class ConfigurationError(ValidationEngineException):
    """Engine configuration is invalid or a required collaborator is missing.

    This is the only engine fault that reaches callers: it is raised while
    the service is being constructed, never during validation.

    Example:
        >>> raise ConfigurationError(
        ...     message="max_validation_depth must be positive",
        ...     context={"max_validation_depth": 0}
        ... )
    """

    def __init__(
        self,
        message: str,
        context: Optional[Dict[str, Any]] = None,
        collaborator: Optional[str] = None,
    ):
        """Initialize configuration error.

        Args:
            message: Error message
            context: Error context
            collaborator: Name of the missing or broken collaborator
        """
        context = context or {}
        if collaborator:
            context["collaborator"] = collaborator
        super().__init__(message, context=context)


class RuleRegistrationError(ValidationEngineException):
    """A rule could not be added to the registry.

    Raised for duplicate rule identifiers within one entity type, or when
    a rule is registered for an entity type it does not support.
    """

    def __init__(
        self,
        message: str,
        rule_id: Optional[str] = None,
        entity_type: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
    ):
        context = context or {}
        if entity_type:
            context["entity_type"] = entity_type
        super().__init__(message, rule_id=rule_id, context=context)


class RuleExecutionError(ValidationEngineException):
    """A rule raised an unexpected error while evaluating an entity.

    The orchestrator converts this into a single Error-severity violation;
    it is never propagated out of a validation call.

    Example:
        >>> raise RuleExecutionError(
        ...     message="Business rule validation error: boom",
        ...     rule_id="BR001_MAX_USER_ROLES",
        ...     entity_type="User",
        ...     cause=RuntimeError("boom"),
        ... )
    """

    def __init__(
        self,
        message: str,
        rule_id: Optional[str] = None,
        entity_type: Optional[str] = None,
        cause: Optional[BaseException] = None,
        context: Optional[Dict[str, Any]] = None,
    ):
        context = context or {}
        if entity_type:
            context["entity_type"] = entity_type
        if cause is not None:
            context["cause"] = str(cause)
            context["cause_type"] = type(cause).__name__
        super().__init__(message, rule_id=rule_id, context=context)


class ValidationTimeoutError(ValidationEngineException):
    """A validation call exceeded its deadline."""

    def __init__(
        self,
        message: str,
        timeout_seconds: Optional[float] = None,
        context: Optional[Dict[str, Any]] = None,
    ):
        context = context or {}
        if timeout_seconds is not None:
            context["timeout_seconds"] = timeout_seconds
        super().__init__(message, context=context)


# ==============================================================================
# Exception Utilities
# ==============================================================================

def format_exception_chain(exc: BaseException) -> str:
    """Format exception chain for logging/display.

    Args:
        exc: Exception to format

    Returns:
        Formatted string with full exception chain
    """
    lines = []
    current: Optional[BaseException] = exc

    while current is not None:
        if isinstance(current, AcsGuardException):
            lines.append(str(current))
            lines.append(f"  Context: {current.context}")
        else:
            lines.append(f"{type(current).__name__}: {current}")
        current = getattr(current, "__cause__", None)

    return "\n".join(lines)


__all__ = [
    "AcsGuardException",
    "ValidationEngineException",
    "ConfigurationError",
    "RuleRegistrationError",
    "RuleExecutionError",
    "ValidationTimeoutError",
    "format_exception_chain",
]
