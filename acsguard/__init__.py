"""
ACS Guard: Domain Validation for Multi-Tenant Access Control
=============================================================

ACS Guard is the invariant-enforcement engine that sits in front of the
access-control store. It verifies the user/group/role/permission/resource
graph before the persistence layer commits a change.

Platform = Validation SDK + CLI
"""

from ._version import __version__

__author__ = "ACS Platform Team"
__license__ = "MIT"

from acsguard.exceptions import (
    AcsGuardException,
    ConfigurationError,
    RuleExecutionError,
    RuleRegistrationError,
    ValidationEngineException,
    ValidationTimeoutError,
)

__all__ = [
    "__version__",
    "AcsGuardException",
    "ValidationEngineException",
    "ConfigurationError",
    "RuleRegistrationError",
    "RuleExecutionError",
    "ValidationTimeoutError",
]
