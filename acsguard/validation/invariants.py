# -*- coding: utf-8 -*-
"""
Structural Invariants - ACS Guard Domain Validation

Non-bypassable checks. They ignore skip lists, administrator bypass and
the bulk flag; ``strict_mode`` only toggles the optional ones (inactive
resource, permanently empty group).

Invariant codes:
    INV001-INV007  every entity (identifier, name, self-reference,
                   permission grant/deny, bidirectional edges, kind)
    INV203-INV204  groups (acyclic hierarchy, not permanently empty)
    INV303         roles (permission URI present)
    INV401-INV405  permissions (URI, grant/deny, verb, scheme, URI form)
    INV501-INV505  resources (URI, URI form, type, active, version)
    INV901-INV903  batches (duplicate names, mirrored edges, inheritance
                   cycles over all parents)
    SYSINV001-003  system (administrator exists, required roles exist,
                   system resources protected)

Field constraints (lengths and formats not covered by an invariant) live
here too and run as the first pipeline stage.
"""

from __future__ import annotations

import logging
import re
from collections import defaultdict
from typing import Dict, Iterable, List, Optional, Tuple

from acsguard.validation.config import ValidationConfig
from acsguard.validation.gateways import PersistenceGateway
from acsguard.validation.graph import EntityGraph, HierarchyChecker
from acsguard.validation.models import (
    MAX_NAME_LENGTH,
    UNSET_ID,
    CycleStatus,
    Entity,
    Group,
    Permission,
    Resource,
    Role,
    User,
    Violation,
    ViolationKind,
)

logger = logging.getLogger(__name__)

MAX_DESCRIPTION_LENGTH = 1000
MAX_RESOURCE_TYPE_LENGTH = 100
VERSION_RE = re.compile(r"^(\d+\.)?(\d+\.)?(\*|\d+)$")
EMAIL_RE = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")


def is_valid_uri_pattern(uri: Optional[str]) -> bool:
    """A path (leading ``/``) or an absolute URI (contains ``://``)."""
    if not uri:
        return False
    return uri.startswith("/") or "://" in uri


def _structural(
    code: str,
    message: str,
    member_names: Optional[List[str]] = None,
    entity_name: Optional[str] = None,
) -> Violation:
    return Violation(
        kind=ViolationKind.STRUCTURAL,
        message=message,
        code=code,
        rule_id=code,
        member_names=list(member_names or []),
        entity_name=entity_name,
    )


# =============================================================================
# Field constraints
# =============================================================================


def check_field_constraints(subject: object) -> List[Violation]:
    """Length and format limits on individual fields."""
    violations: List[Violation] = []

    def constraint(message: str, member: str) -> None:
        violations.append(Violation(
            kind=ViolationKind.CONSTRAINT,
            message=message,
            member_names=[member],
            entity_name=getattr(subject, "name", None),
        ))

    if isinstance(subject, Resource):
        if subject.description and len(subject.description) > MAX_DESCRIPTION_LENGTH:
            constraint(
                f"Resource description cannot exceed {MAX_DESCRIPTION_LENGTH} characters",
                "description",
            )
        if subject.resource_type and len(subject.resource_type) > MAX_RESOURCE_TYPE_LENGTH:
            constraint(
                f"Resource type cannot exceed {MAX_RESOURCE_TYPE_LENGTH} characters",
                "resource_type",
            )
        if subject.version and not VERSION_RE.match(subject.version):
            constraint(
                "Resource version must look like 1, 1.2, 1.2.3 or 1.2.*",
                "version",
            )
    elif isinstance(subject, User):
        if subject.email and not EMAIL_RE.match(subject.email):
            constraint("User email address is not well-formed", "email")

    return violations


# =============================================================================
# Per-entity invariants
# =============================================================================


class StructuralInvariants:
    """Entity, permission and cross-entity invariants over one graph view.

    Attributes:
        config: Supplies ``strict_mode`` and ``max_validation_depth``.
        graph: Graph used to resolve edges.
    """

    def __init__(self, config: ValidationConfig, graph: EntityGraph) -> None:
        self.config = config
        self.graph = graph
        self.checker = HierarchyChecker(graph, config.max_validation_depth)

    def validate(self, subject: object, cascade: bool = True) -> List[Violation]:
        """All invariants that apply to one entity or permission."""
        if isinstance(subject, Permission):
            return self.permission_invariants(subject)
        if not isinstance(subject, Entity):
            return []

        violations = self.entity_invariants(subject)
        if isinstance(subject, Group):
            violations.extend(self.group_invariants(subject))
        elif isinstance(subject, Role):
            violations.extend(self.role_invariants(subject))
        elif isinstance(subject, Resource):
            violations.extend(self.resource_invariants(subject))
        if cascade:
            violations.extend(self.embedded_permission_shape(subject))
        return violations

    def entity_invariants(self, entity: Entity) -> List[Violation]:
        name = entity.name
        found: List[Violation] = []

        if entity.id < 0 and entity.id != UNSET_ID:
            found.append(_structural(
                "INV001", "Entity ID cannot be negative", ["id"], name,
            ))
        if not name or not name.strip():
            found.append(_structural(
                "INV002", "Entity name cannot be null or empty", ["name"], name,
            ))
        if len(name or "") > MAX_NAME_LENGTH:
            found.append(_structural(
                "INV003",
                f"Entity name cannot exceed {MAX_NAME_LENGTH} characters",
                ["name"], name,
            ))
        if entity.is_persisted and (
            entity.id in entity.parent_ids or entity.id in entity.child_ids
        ):
            found.append(_structural(
                "INV004", "Entity cannot be its own parent or child", entity_name=name,
            ))

        for permission in entity.permissions:
            if permission.grant and permission.deny:
                found.append(_structural(
                    "INV005",
                    f"Permission for {permission.uri} cannot both grant and deny access",
                    entity_name=name,
                ))
            elif not permission.grant and not permission.deny:
                found.append(_structural(
                    "INV005",
                    f"Permission for {permission.uri} must either grant or deny access",
                    entity_name=name,
                ))

        for direction, other in self.checker.missing_back_references(entity):
            if direction == "child":
                message = (
                    f"Child entity {other.name} does not reference "
                    f"{name} as parent"
                )
            else:
                message = (
                    f"Parent entity {other.name} does not reference "
                    f"{name} as child"
                )
            found.append(_structural("INV006", message, entity_name=name))

        if entity.KIND is not None and entity.entity_type != entity.KIND:
            found.append(_structural(
                "INV007",
                f"Entity type {entity.entity_type} does not match {entity.KIND.value}",
                ["entity_type"], name,
            ))
        return found

    def group_invariants(self, group: Group) -> List[Violation]:
        found: List[Violation] = []
        status = self.checker.has_cycle(group, group_only=True)
        if status is CycleStatus.CYCLE:
            found.append(_structural(
                "INV203", "Group hierarchy contains a cycle", entity_name=group.name,
            ))
        elif status is CycleStatus.DEPTH_EXCEEDED:
            found.append(_structural(
                "INV203",
                f"Group hierarchy depth exceeded maximum of "
                f"{self.config.max_validation_depth} levels",
                entity_name=group.name,
            ))
        if self.config.strict_mode and not group.child_ids:
            found.append(_structural(
                "INV204", "Group cannot be permanently empty", entity_name=group.name,
            ))
        return found

    def role_invariants(self, role: Role) -> List[Violation]:
        return [
            _structural(
                "INV303", "Role permission cannot have empty URI", entity_name=role.name,
            )
            for permission in role.permissions if not permission.uri
        ]

    def permission_invariants(self, permission: Permission) -> List[Violation]:
        label = permission.uri
        found: List[Violation] = []
        if not permission.uri:
            found.append(_structural(
                "INV401", "Permission URI cannot be null or empty", ["uri"], label,
            ))
        if permission.grant and permission.deny:
            found.append(_structural(
                "INV402", "Permission cannot both grant and deny access", entity_name=label,
            ))
        if not permission.grant and not permission.deny:
            found.append(_structural(
                "INV402", "Permission must either grant or deny access", entity_name=label,
            ))
        found.extend(self._permission_shape(permission, label))
        return found

    def _permission_shape(
        self, permission: Permission, label: Optional[str],
    ) -> List[Violation]:
        found: List[Violation] = []
        if not permission.verb_is_defined:
            found.append(_structural(
                "INV403", "Permission HTTP verb must be valid", ["http_verb"], label,
            ))
        if not permission.scheme_is_defined:
            found.append(_structural(
                "INV404", "Permission scheme must be valid", ["scheme"], label,
            ))
        if permission.uri and not is_valid_uri_pattern(permission.uri):
            found.append(_structural(
                "INV405", "Permission URI is not well-formed", ["uri"], label,
            ))
        return found

    def embedded_permission_shape(self, entity: Entity) -> List[Violation]:
        """URI form, verb and scheme of the permissions an entity holds."""
        found: List[Violation] = []
        for permission in entity.permissions:
            found.extend(self._permission_shape(permission, entity.name))
        return found

    def resource_invariants(self, resource: Resource) -> List[Violation]:
        name = resource.name
        found: List[Violation] = []
        if not resource.uri:
            found.append(_structural(
                "INV501", "Resource URI cannot be null or empty", ["uri"], name,
            ))
        elif not is_valid_uri_pattern(resource.uri):
            found.append(_structural(
                "INV502", "Resource URI is not well-formed", ["uri"], name,
            ))
        if not resource.resource_type:
            found.append(_structural(
                "INV503", "Resource type cannot be null or empty", ["resource_type"], name,
            ))
        if self.config.strict_mode and not resource.is_active:
            found.append(_structural("INV504", "Resource must be active", entity_name=name))
        if resource.version is not None and not resource.version.strip():
            found.append(_structural(
                "INV505", "Resource version cannot be empty if specified",
                ["version"], name,
            ))
        return found

    # ------------------------------------------------------------------
    # Cross-entity
    # ------------------------------------------------------------------

    def cross_entity(self, entities: Iterable[Entity]) -> List[Violation]:
        """Batch invariants, evaluated once per batch."""
        batch = [e for e in entities if isinstance(e, Entity)]
        found: List[Violation] = []

        groups: Dict[Tuple[str, str], int] = defaultdict(int)
        order: List[Tuple[str, str]] = []
        for entity in batch:
            key = (entity.type_name, entity.name)
            if key not in groups:
                order.append(key)
            groups[key] += 1
        for type_name, name in order:
            if groups[(type_name, name)] > 1:
                found.append(_structural(
                    "INV901", f"Duplicate {type_name} name found: {name}",
                    ["name"], name,
                ))

        for entity in batch:
            for child in self.graph.children_of(entity):
                if entity.id not in child.parent_ids:
                    found.append(_structural(
                        "INV902",
                        f"Inconsistent parent-child relationship: "
                        f"{entity.name} -> {child.name}",
                        entity_name=entity.name,
                    ))

        for entity in batch:
            status = self.checker.has_cycle(entity, group_only=False)
            if status is CycleStatus.CYCLE:
                found.append(_structural(
                    "INV903",
                    f"Circular permission inheritance detected for entity: {entity.name}",
                    entity_name=entity.name,
                ))
            elif status is CycleStatus.DEPTH_EXCEEDED:
                found.append(_structural(
                    "INV903",
                    f"Permission inheritance depth exceeded maximum of "
                    f"{self.config.max_validation_depth} levels for entity: {entity.name}",
                    entity_name=entity.name,
                ))
        return found


# =============================================================================
# System-wide invariants
# =============================================================================


def _system(code: str, message: str) -> Violation:
    return Violation(
        kind=ViolationKind.SYSTEM_INVARIANT, message=message, code=code, rule_id=code,
    )


async def check_system_invariants(
    gateway: PersistenceGateway, config: ValidationConfig,
) -> List[Violation]:
    """Properties of the whole persisted population.

    Gateway failures become a single violation instead of propagating.
    """
    found: List[Violation] = []
    try:
        admins = await gateway.count_users_with_role(config.admin_role_name)
        if admins == 0:
            found.append(_system(
                "SYSINV001", "System must have at least one administrator user",
            ))

        existing = set(await gateway.list_roles_by_name(config.required_roles))
        for role_name in config.required_roles:
            if role_name not in existing:
                found.append(_system(
                    "SYSINV002", f"Required system role missing: {role_name}",
                ))

        resources = await gateway.list_resources_by_uri_prefix(
            config.system_resource_prefix,
        )
        for resource in resources:
            if not await gateway.has_access_entry(resource.uri):
                found.append(_system(
                    "SYSINV003", f"System resource not protected: {resource.uri}",
                ))
    except Exception as exc:
        logger.error("System invariant query failed: %s", exc, exc_info=True)
        found.append(_system(
            "SYSINV000", f"Error validating system invariants: {exc}",
        ))
    return found


__all__ = [
    "MAX_DESCRIPTION_LENGTH",
    "MAX_RESOURCE_TYPE_LENGTH",
    "StructuralInvariants",
    "check_field_constraints",
    "check_system_invariants",
    "is_valid_uri_pattern",
]
