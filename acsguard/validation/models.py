# -*- coding: utf-8 -*-
"""
Validation Data Models - ACS Guard Domain Validation

Pydantic v2 data models for the domain validation engine. Entities form
a multi-parent hierarchy; edges are stored as integer identifier sets and
resolved through an ``EntityGraph`` (see ``graph.py``), so models never
hold direct object cycles.

Models are deliberately lenient: malformed values (empty names, unknown
HTTP verbs, grant and deny both set) can be constructed so that the engine
reports them as violations instead of failing at construction.

Models:
    - Enums: EntityType, HttpVerb, Scheme, OperationType, RuleSeverity,
             ViolationKind, CycleStatus
    - Graph: Entity, User, Group, Role, Resource, Permission,
             TemporaryPermission
    - Context: UserContext, ValidationOperationContext
    - Results: Violation, ValidationResult, CacheStatistics
    - Constants: UNSET_ID, OPERATION_VERBS, operation data markers
"""

from __future__ import annotations

import re
import uuid
from datetime import datetime, timezone
from enum import Enum
from typing import Any, ClassVar, Dict, List, Optional, Set

from pydantic import BaseModel, Field, field_validator


# =============================================================================
# Enumerations
# =============================================================================


class EntityType(str, Enum):
    """Discriminator for entity kinds in the access-control graph."""
    USER = "User"
    GROUP = "Group"
    ROLE = "Role"
    RESOURCE = "Resource"


class HttpVerb(str, Enum):
    """HTTP verbs a permission can cover."""
    GET = "GET"
    POST = "POST"
    PUT = "PUT"
    PATCH = "PATCH"
    DELETE = "DELETE"
    HEAD = "HEAD"
    OPTIONS = "OPTIONS"


class Scheme(str, Enum):
    """Authorization schemes a permission can be evaluated under."""
    API_URI_AUTHORIZATION = "ApiUriAuthorization"


class OperationType(str, Enum):
    """Kind of mutation being validated."""
    CREATE = "Create"
    READ = "Read"
    UPDATE = "Update"
    DELETE = "Delete"

    @classmethod
    def _missing_(cls, value: object) -> Optional[OperationType]:
        if isinstance(value, str):
            for member in cls:
                if member.value.lower() == value.lower():
                    return member
        return None


class RuleSeverity(str, Enum):
    """Severity of a business rule; Critical stops the rule stage."""
    WARNING = "Warning"
    ERROR = "Error"
    CRITICAL = "Critical"


class ViolationKind(str, Enum):
    """Violation taxonomy.

    STRUCTURAL violations come from non-bypassable invariants. CONSTRAINT
    violations come from field constraints and domain rules. SYSTEM
    invariant violations are informational and never block a single save.
    """
    STRUCTURAL = "structural"
    CONSTRAINT = "constraint"
    BUSINESS_RULE = "business_rule"
    SYSTEM_INVARIANT = "system_invariant"


class CycleStatus(str, Enum):
    """Outcome of a bounded hierarchy traversal."""
    NO_CYCLE = "no_cycle"
    CYCLE = "cycle"
    DEPTH_EXCEEDED = "depth_exceeded"


# =============================================================================
# Constants
# =============================================================================

UNSET_ID = -1
MAX_NAME_LENGTH = 255

OPERATION_VERBS: Dict[OperationType, HttpVerb] = {
    OperationType.CREATE: HttpVerb.POST,
    OperationType.READ: HttpVerb.GET,
    OperationType.UPDATE: HttpVerb.PUT,
    OperationType.DELETE: HttpVerb.DELETE,
}

# Keys looked up in ValidationOperationContext.operation_data
JUSTIFICATION_MARKER = "Justification"
AUDIT_JUSTIFICATION_MARKER = "AuditJustification"
APPROVAL_MARKER = "ApprovalId"
CONSENT_MARKER = "DataProcessingConsent"
ASSIGNED_ROLE_MARKER = "AssignedRole"

_PARAMETER_RE = re.compile(r"\{([^}]+)\}")


# =============================================================================
# Utility
# =============================================================================


def _utcnow() -> datetime:
    """Return current UTC datetime with microseconds zeroed."""
    return datetime.now(timezone.utc).replace(microsecond=0)


def _new_uuid() -> str:
    """Generate a new UUID4 string."""
    return str(uuid.uuid4())


def _coerce_enum(enum_cls: Any, value: Any) -> Any:
    """Convert a string to ``enum_cls`` when it names a member.

    Unknown values are returned unchanged so that invariants can report
    them.
    """
    if isinstance(value, enum_cls):
        return value
    if isinstance(value, str):
        for member in enum_cls:
            if value == member.value or value.upper() == member.name:
                return member
    return value


# =============================================================================
# Permission Models
# =============================================================================


class Permission(BaseModel):
    """A grant or deny of one HTTP verb on one URI pattern."""
    id: int = Field(default=UNSET_ID, description="Persisted identifier")
    entity_id: Optional[int] = Field(
        None, description="Identifier of the entity holding the permission",
    )
    uri: str = Field(default="", description="Path or absolute URI pattern")
    http_verb: Any = Field(default=HttpVerb.GET, description="HttpVerb member")
    scheme: Any = Field(
        default=Scheme.API_URI_AUTHORIZATION, description="Scheme member",
    )
    grant: bool = Field(default=True, description="Permission grants access")
    deny: bool = Field(default=False, description="Permission denies access")

    @field_validator("http_verb", mode="before")
    @classmethod
    def _coerce_verb(cls, v: Any) -> Any:
        """Convert string to HttpVerb if it names a member."""
        return _coerce_enum(HttpVerb, v)

    @field_validator("scheme", mode="before")
    @classmethod
    def _coerce_scheme(cls, v: Any) -> Any:
        """Convert string to Scheme if it names a member."""
        return _coerce_enum(Scheme, v)

    @property
    def verb_is_defined(self) -> bool:
        return isinstance(self.http_verb, HttpVerb)

    @property
    def scheme_is_defined(self) -> bool:
        return isinstance(self.scheme, Scheme)


class TemporaryPermission(Permission):
    """A permission valid only between ``granted_at`` and ``expires_at``."""
    granted_at: datetime = Field(default_factory=_utcnow)
    expires_at: datetime = Field(default_factory=_utcnow)
    granted_by: str = Field(default="")
    reason: str = Field(default="")

    def is_expired(self, now: Optional[datetime] = None) -> bool:
        return (now or _utcnow()) > self.expires_at


# =============================================================================
# Entity Models
# =============================================================================


class Entity(BaseModel):
    """Node of the access-control graph.

    ``parent_ids`` and ``child_ids`` must mirror each other across nodes;
    the engine reports asymmetry and never repairs it. ``ref`` is a stable
    handle used to key bulk results, since every unpersisted entity has
    the identifier ``UNSET_ID``.
    """

    KIND: ClassVar[Optional[EntityType]] = None

    ref: str = Field(default_factory=_new_uuid, description="Result handle")
    id: int = Field(default=UNSET_ID, description="Persisted identifier")
    name: str = Field(default="", description="Display name")
    entity_type: Optional[EntityType] = Field(
        None, description="Discriminator matching the concrete kind",
    )
    description: Optional[str] = Field(None)
    parent_ids: Set[int] = Field(default_factory=set)
    child_ids: Set[int] = Field(default_factory=set)
    permissions: List[Permission] = Field(default_factory=list)
    attributes: Dict[str, Any] = Field(
        default_factory=dict,
        description="Scope properties and personal-data fields",
    )

    def model_post_init(self, __context: Any) -> None:
        if self.entity_type is None and self.KIND is not None:
            self.entity_type = self.KIND

    @field_validator("entity_type", mode="before")
    @classmethod
    def _coerce_entity_type(cls, v: Any) -> Any:
        return _coerce_enum(EntityType, v)

    @property
    def is_persisted(self) -> bool:
        return self.id >= 0

    @property
    def type_name(self) -> str:
        """Concrete kind name used for rule lookup and duplicate grouping."""
        if self.KIND is not None:
            return self.KIND.value
        if isinstance(self.entity_type, EntityType):
            return self.entity_type.value
        return type(self).__name__

    def get_field(self, field_name: str) -> Any:
        """Look up a model field, falling back to the attributes bag."""
        if field_name in type(self).model_fields:
            return getattr(self, field_name)
        return self.attributes.get(field_name)

    def __str__(self) -> str:
        return f"{self.type_name}({self.id}, {self.name!r})"


class User(Entity):
    """A principal; Role parents are its role memberships."""
    KIND: ClassVar[Optional[EntityType]] = EntityType.USER

    email: Optional[str] = Field(None)


class Group(Entity):
    """A collection of users, roles and subgroups."""
    KIND: ClassVar[Optional[EntityType]] = EntityType.GROUP


class Role(Entity):
    """A named bundle of permissions."""
    KIND: ClassVar[Optional[EntityType]] = EntityType.ROLE


class Resource(Entity):
    """A protected URI pattern."""
    KIND: ClassVar[Optional[EntityType]] = EntityType.RESOURCE

    uri: str = Field(default="")
    resource_type: Optional[str] = Field(None)
    is_active: bool = Field(default=True)
    version: Optional[str] = Field(None)
    parent_resource_id: Optional[int] = Field(None)

    def _uri_regex(self) -> Optional[str]:
        if "*" in self.uri:
            return "^" + ".*".join(re.escape(p) for p in self.uri.split("*")) + "$"
        if "{" in self.uri and "}" in self.uri:
            parts = _PARAMETER_RE.split(self.uri)
            # split() alternates literal text and parameter names
            pattern = "".join(
                re.escape(part) if i % 2 == 0 else "([^/]+)"
                for i, part in enumerate(parts)
            )
            return f"^{pattern}$"
        return None

    def matches_uri(self, request_uri: str) -> bool:
        """Match a request URI against this resource's pattern.

        Supports exact (case-insensitive), ``*`` wildcard and ``{param}``
        segment patterns.
        """
        if not self.uri or not self.uri.strip():
            return False
        if self.uri.lower() == request_uri.lower():
            return True
        pattern = self._uri_regex()
        if pattern is None:
            return False
        return re.match(pattern, request_uri, re.IGNORECASE) is not None

    def extract_parameters(self, request_uri: str) -> Dict[str, str]:
        """Extract ``{param}`` values from a matching request URI."""
        names = _PARAMETER_RE.findall(self.uri)
        if not names:
            return {}
        pattern = self._uri_regex()
        if pattern is None:
            return {}
        match = re.match(pattern, request_uri, re.IGNORECASE)
        if match is None:
            return {}
        return dict(zip(names, match.groups()))


ENTITY_CLASSES: Dict[EntityType, type] = {
    EntityType.USER: User,
    EntityType.GROUP: Group,
    EntityType.ROLE: Role,
    EntityType.RESOURCE: Resource,
}


# =============================================================================
# Context Models
# =============================================================================


class UserContext(BaseModel):
    """The calling principal as supplied by the user-context provider."""
    user_id: int = Field(..., description="Identifier of the caller")
    user_name: str = Field(default="")
    roles: List[str] = Field(default_factory=list)
    claims: Dict[str, Any] = Field(default_factory=dict)

    def has_role(self, role_name: str) -> bool:
        return role_name in self.roles


class ValidationOperationContext(BaseModel):
    """Per-call context threaded through every rule.

    Created at the start of a validation call and discarded at its end.
    It is never shared between unrelated calls; bulk validation hands
    each worker its own copy with ``is_bulk_operation`` set.
    """
    operation_type: OperationType = Field(default=OperationType.UPDATE)
    entity: Optional[Any] = Field(None, description="Entity under validation")
    operation_data: Dict[str, Any] = Field(default_factory=dict)
    is_bulk_operation: bool = Field(default=False)
    user_context: Optional[UserContext] = Field(None)
    validation_path: List[str] = Field(default_factory=list)
    start_time: datetime = Field(default_factory=_utcnow)

    @field_validator("operation_type", mode="before")
    @classmethod
    def _coerce_operation(cls, v: Any) -> Any:
        if isinstance(v, str):
            return OperationType(v)
        return v

    def has_marker(self, marker: str) -> bool:
        return marker in self.operation_data

    def for_entity(self, entity: Any) -> ValidationOperationContext:
        """Copy of this context targeting another entity."""
        return self.model_copy(
            update={
                "entity": entity,
                "operation_data": dict(self.operation_data),
                "validation_path": list(self.validation_path),
            },
        )


# =============================================================================
# Result Models
# =============================================================================


class Violation(BaseModel):
    """One failed check."""
    kind: ViolationKind = Field(..., description="Taxonomy bucket")
    message: str = Field(..., description="Human-readable failure message")
    code: Optional[str] = Field(None, description="Invariant or error code")
    rule_id: Optional[str] = Field(None, description="Rule that failed")
    severity: RuleSeverity = Field(default=RuleSeverity.ERROR)
    member_names: List[str] = Field(default_factory=list)
    entity_name: Optional[str] = Field(None)

    def __str__(self) -> str:
        return self.message


class ValidationResult(BaseModel):
    """Aggregated outcome of one validation call."""
    violations: List[Violation] = Field(default_factory=list)

    @classmethod
    def success(cls) -> ValidationResult:
        return cls()

    @property
    def is_valid(self) -> bool:
        return not self.violations

    @property
    def errors(self) -> List[str]:
        return [v.message for v in self.violations]

    def of_kind(self, kind: ViolationKind) -> List[Violation]:
        return [v for v in self.violations if v.kind == kind]

    def merge(self, *others: ValidationResult) -> ValidationResult:
        combined = list(self.violations)
        for other in others:
            combined.extend(other.violations)
        return ValidationResult(violations=combined)

    def error_message(self) -> str:
        return "; ".join(self.errors)

    def __str__(self) -> str:
        return "Valid" if self.is_valid else self.error_message()


class CacheStatistics(BaseModel):
    """Snapshot of validation cache counters."""
    entries: int = 0
    hits: int = 0
    misses: int = 0
    hit_rate: float = 0.0
    entries_by_type: Dict[str, int] = Field(default_factory=dict)
    evictions: int = 0
    expirations: int = 0
    last_reset: datetime = Field(default_factory=_utcnow)


__all__ = [
    "EntityType",
    "HttpVerb",
    "Scheme",
    "OperationType",
    "RuleSeverity",
    "ViolationKind",
    "CycleStatus",
    "UNSET_ID",
    "MAX_NAME_LENGTH",
    "OPERATION_VERBS",
    "JUSTIFICATION_MARKER",
    "AUDIT_JUSTIFICATION_MARKER",
    "APPROVAL_MARKER",
    "CONSENT_MARKER",
    "ASSIGNED_ROLE_MARKER",
    "ENTITY_CLASSES",
    "Permission",
    "TemporaryPermission",
    "Entity",
    "User",
    "Group",
    "Role",
    "Resource",
    "UserContext",
    "ValidationOperationContext",
    "Violation",
    "ValidationResult",
    "CacheStatistics",
]
