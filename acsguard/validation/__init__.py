# -*- coding: utf-8 -*-
"""
ACS Guard Domain Validation SDK

Invariant-enforcement engine for the user/group/role/permission/resource
graph of a multi-tenant access-control store. Verifies entities before
the persistence layer commits them:

    - Field constraints and domain rules (unique names, cyclic
      hierarchies, URI patterns)
    - Business rules: priority ordered, severity tagged, bypassable by
      administrators, Critical stops the stage
    - Structural invariants per entity, per batch and system-wide

Example:
    >>> from acsguard.validation import ValidationService, EntityGraph, Group
    >>> admins = Group(id=1, name="Admins", child_ids={2})
    >>> ops = Group(id=2, name="Ops")
    >>> service = ValidationService()
    >>> result = service.validate_entity(admins, graph=EntityGraph([admins, ops]))
    >>> result.errors
    ['Child entity Ops does not reference Admins as parent']
"""

from acsguard.validation.cache import CACHE_MISS, ValidationCache
from acsguard.validation.config import (
    EntityValidationSettings,
    ValidationConfig,
    get_config,
    reset_config,
    set_config,
)
from acsguard.validation.gateways import (
    AccessEntry,
    InMemoryPersistenceGateway,
    PermissionEvaluator,
    PersistenceGateway,
)
from acsguard.validation.graph import EntityGraph, HierarchyChecker
from acsguard.validation.models import (
    UNSET_ID,
    CycleStatus,
    Entity,
    EntityType,
    Group,
    HttpVerb,
    OperationType,
    Permission,
    Resource,
    Role,
    RuleSeverity,
    Scheme,
    TemporaryPermission,
    User,
    UserContext,
    ValidationOperationContext,
    ValidationResult,
    Violation,
    ViolationKind,
)
from acsguard.validation.registry import RuleRegistry, build_default_registry
from acsguard.validation.rules import BusinessRule, DomainRule, RuleContext
from acsguard.validation.setup import (
    ValidationService,
    configure_validation_service,
    get_validation_service,
    reset_validation_service,
)

__all__ = [
    # Service
    "ValidationService",
    "configure_validation_service",
    "get_validation_service",
    "reset_validation_service",
    # Config
    "EntityValidationSettings",
    "ValidationConfig",
    "get_config",
    "set_config",
    "reset_config",
    # Graph
    "EntityGraph",
    "HierarchyChecker",
    # Rules
    "BusinessRule",
    "DomainRule",
    "RuleContext",
    "RuleRegistry",
    "build_default_registry",
    # Collaborators
    "AccessEntry",
    "InMemoryPersistenceGateway",
    "PermissionEvaluator",
    "PersistenceGateway",
    # Cache
    "CACHE_MISS",
    "ValidationCache",
    # Models
    "UNSET_ID",
    "CycleStatus",
    "Entity",
    "EntityType",
    "Group",
    "HttpVerb",
    "OperationType",
    "Permission",
    "Resource",
    "Role",
    "RuleSeverity",
    "Scheme",
    "TemporaryPermission",
    "User",
    "UserContext",
    "ValidationOperationContext",
    "ValidationResult",
    "Violation",
    "ViolationKind",
]
