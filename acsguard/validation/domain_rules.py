# -*- coding: utf-8 -*-
"""
Domain Rules - ACS Guard Domain Validation

Structural domain checks declared per entity type (or per property) and
run in the constraint stage of the pipeline:

    - UniqueEntityNameRule: name unused by another persisted entity of the
      same type (and scope), via the persistence gateway, cached.
    - NoCyclicHierarchyRule: no parent of the entity has it as an ancestor.
    - MaxChildrenRule: child count below a ceiling.
    - ValidUriPatternRule: URI parses once ``{param}`` and ``*`` tokens are
      substituted; optional scheme allow-list.
    - ValidPermissionCombinationRule: exactly one of grant/deny.
    - RequiresPermissionRule: caller holds a verb on a resource.
    - EntityRelationshipRule: related entities are of allowed kinds and
      within a count.
"""

from __future__ import annotations

import logging
import re
from typing import Any, Iterable, List, Optional, Sequence
from urllib.parse import urlsplit

from acsguard.validation.cache import CACHE_MISS
from acsguard.validation.models import (
    CycleStatus,
    Entity,
    EntityType,
    HttpVerb,
    Permission,
    Violation,
)
from acsguard.validation.rules import DomainRule, RuleContext

logger = logging.getLogger(__name__)

URI_PARAMETER_RE = re.compile(r"\{[a-zA-Z_][a-zA-Z0-9_]*\}")
WILDCARD_RE = re.compile(r"\*+")


class UniqueEntityNameRule(DomainRule):
    """No other persisted entity of the same type shares the name.

    The existence check goes to the persistence gateway and is cached
    under ``unique_name_{type}_{name}_{property=value}_{exclude_id}`` for
    ``cache_expiration_seconds``. Without a gateway the rule passes; the
    in-batch duplicate check is a cross-entity invariant.
    """

    rule_id = "DR_UNIQUE_ENTITY_NAME"
    property_name = "name"
    priority = 100
    skip_in_bulk = True

    def __init__(
        self,
        entity_type: str,
        scope_property: Optional[str] = None,
        case_insensitive: bool = True,
    ) -> None:
        self.entity_type = entity_type
        self.scope_property = scope_property
        self.case_insensitive = case_insensitive

    def applies_to(self, subject: Any) -> bool:
        return isinstance(subject, Entity)

    def evaluate_value(
        self, value: Any, subject: Any, ctx: RuleContext,
    ) -> Optional[Violation]:
        if not isinstance(value, str) or not value:
            return None
        if ctx.gateway is None:
            return None

        scope = None
        if self.scope_property:
            scope_value = subject.get_field(self.scope_property)
            if scope_value is not None:
                scope = (self.scope_property, scope_value)

        exclude_id = subject.id if subject.is_persisted else None
        scope_key = f"{scope[0]}={scope[1]!r}" if scope is not None else ""
        key = (
            f"unique_name_{self.entity_type}_{value}_{scope_key}"
            f"_{exclude_id if exclude_id is not None else ''}"
        )
        use_cache = ctx.cache is not None and ctx.config.enable_validation_caching

        exists = CACHE_MISS
        if use_cache:
            exists = ctx.cache.get(key)
        if exists is CACHE_MISS:
            exists = ctx.gateway.entity_exists_by_name(
                self.entity_type, value, scope, exclude_id, self.case_insensitive,
            )
            if use_cache:
                ctx.cache.set(
                    key, exists, ttl_seconds=ctx.config.cache_expiration_seconds,
                )

        if exists:
            return self._violation(
                f"An entity with name '{value}' already exists",
                self._member(), subject,
            )
        return None


class NoCyclicHierarchyRule(DomainRule):
    """Attaching any current parent must not close a loop."""

    rule_id = "DR_NO_CYCLIC_HIERARCHY"
    property_name = "parent_ids"
    priority = 90

    def applies_to(self, subject: Any) -> bool:
        return isinstance(subject, Entity)

    def evaluate_value(
        self, value: Any, subject: Any, ctx: RuleContext,
    ) -> Optional[Violation]:
        checker = ctx.checker
        for parent in ctx.graph.parents_of(subject):
            if subject.is_persisted and parent.id == subject.id:
                return self._violation(
                    "Entity cannot be its own parent", self._member(), subject,
                )
            status = checker.would_create_cycle(subject, parent)
            if status is CycleStatus.CYCLE:
                return self._violation(
                    "Adding this parent would create a circular hierarchy",
                    self._member(), subject,
                )
            if status is CycleStatus.DEPTH_EXCEEDED:
                return self._violation(
                    f"Hierarchy depth exceeds maximum of "
                    f"{ctx.config.max_validation_depth} levels",
                    self._member(), subject,
                )
        return None


class MaxChildrenRule(DomainRule):
    """An entity may not reach ``maximum`` children."""

    rule_id = "DR_MAX_CHILDREN"
    property_name = "child_ids"

    def __init__(self, maximum: int) -> None:
        self.maximum = maximum

    def applies_to(self, subject: Any) -> bool:
        return isinstance(subject, Entity)

    def evaluate_value(
        self, value: Any, subject: Any, ctx: RuleContext,
    ) -> Optional[Violation]:
        if len(subject.child_ids) >= self.maximum:
            return self._violation(
                f"Entity cannot have more than {self.maximum} children",
                self._member(), subject,
            )
        return None


class ValidUriPatternRule(DomainRule):
    """URI pattern parses as a path or absolute URI.

    Relative paths are checked as if served from ``http://localhost``.
    Empty URIs pass here; the invariants report them.
    """

    rule_id = "DR_VALID_URI_PATTERN"
    property_name = "uri"
    priority = 50

    def __init__(
        self,
        allow_wildcards: bool = True,
        allow_parameters: bool = True,
        allowed_schemes: Optional[Sequence[str]] = None,
    ) -> None:
        self.allow_wildcards = allow_wildcards
        self.allow_parameters = allow_parameters
        self.allowed_schemes = list(allowed_schemes or [])

    def evaluate_value(
        self, value: Any, subject: Any, ctx: RuleContext,
    ) -> Optional[Violation]:
        if not isinstance(value, str) or not value:
            return None
        members = self._member()

        if not self.allow_wildcards and WILDCARD_RE.search(value):
            return self._violation(
                "URI pattern cannot contain wildcards", members, subject,
            )
        if not self.allow_parameters and URI_PARAMETER_RE.search(value):
            return self._violation(
                "URI pattern cannot contain parameters", members, subject,
            )

        clean = value
        if self.allow_parameters:
            clean = URI_PARAMETER_RE.sub("test", clean)
        if self.allow_wildcards:
            clean = WILDCARD_RE.sub("test", clean)
        if clean.startswith("/"):
            clean = "http://localhost" + clean

        problem = _uri_problem(clean)
        if problem:
            return self._violation(
                f"Invalid URI format: {problem}", members, subject,
            )

        if self.allowed_schemes:
            scheme = urlsplit(clean).scheme.lower()
            if scheme not in (s.lower() for s in self.allowed_schemes):
                return self._violation(
                    f"URI scheme must be one of: {', '.join(self.allowed_schemes)}",
                    members, subject,
                )
        return None


def _uri_problem(uri: str) -> Optional[str]:
    """Reason ``uri`` is not an absolute URI, or None."""
    if any(ch.isspace() for ch in uri):
        return "URI contains whitespace"
    if "{" in uri or "}" in uri:
        return "URI contains an unbalanced or invalid parameter"
    try:
        parts = urlsplit(uri)
        _ = parts.port
    except ValueError as exc:
        return str(exc)
    if not parts.scheme:
        return "URI has no scheme"
    if not parts.netloc:
        return "URI has no host"
    return None


class ValidPermissionCombinationRule(DomainRule):
    """A permission either grants or denies, never both and never neither."""

    rule_id = "DR_VALID_PERMISSION_COMBINATION"

    def applies_to(self, subject: Any) -> bool:
        return isinstance(subject, Permission)

    def evaluate_value(
        self, value: Any, subject: Any, ctx: RuleContext,
    ) -> Optional[Violation]:
        if subject.grant and subject.deny:
            return self._violation(
                "Permission cannot both grant and deny access", subject=subject,
            )
        if not subject.grant and not subject.deny:
            return self._violation(
                "Permission must either grant or deny access", subject=subject,
            )
        return None


class RequiresPermissionRule(DomainRule):
    """The calling user must hold ``verb`` on ``resource``.

    Needs a user context. Without a permission evaluator the holding
    check is skipped.
    """

    rule_id = "DR_REQUIRES_PERMISSION"

    def __init__(self, resource: str, verb: HttpVerb) -> None:
        self.resource = resource
        self.verb = HttpVerb(verb)
        self.rule_id = f"DR_REQUIRES_PERMISSION_{self.verb.value}_{resource}"

    def evaluate_value(
        self, value: Any, subject: Any, ctx: RuleContext,
    ) -> Optional[Violation]:
        user = ctx.user_context
        if user is None:
            return self._violation(
                "User context required for permission validation",
                subject=subject,
            )
        evaluator = ctx.permission_evaluator
        if evaluator is not None:
            if not evaluator.has_permission(user.user_id, self.resource, self.verb):
                return self._violation(
                    f"Insufficient permissions. Required: {self.verb.value} "
                    f"on {self.resource}",
                    subject=subject,
                )
        return None


class EntityRelationshipRule(DomainRule):
    """Constrain the kinds and number of parents or children.

    Args:
        relationship_type: ``parent`` or ``child``.
        allowed_types: Entity kinds the related entities must be.
        max_relationships: Ceiling on the relationship count (reached
            counts as exceeded).
    """

    property_name = None

    def __init__(
        self,
        relationship_type: str,
        allowed_types: Optional[Iterable[EntityType]] = None,
        max_relationships: Optional[int] = None,
    ) -> None:
        self.relationship_type = relationship_type.lower()
        if self.relationship_type not in ("parent", "child"):
            raise ValueError(
                f"relationship_type must be 'parent' or 'child', "
                f"got {relationship_type!r}",
            )
        self.allowed_types: List[EntityType] = [
            EntityType(t) for t in (allowed_types or [])
        ]
        self.max_relationships = max_relationships
        self.rule_id = f"DR_VALID_{self.relationship_type.upper()}_RELATIONSHIP"
        self.property_name = (
            "parent_ids" if self.relationship_type == "parent" else "child_ids"
        )

    def applies_to(self, subject: Any) -> bool:
        return isinstance(subject, Entity)

    def evaluate_value(
        self, value: Any, subject: Any, ctx: RuleContext,
    ) -> Optional[Violation]:
        if self.relationship_type == "parent":
            related = ctx.graph.parents_of(subject)
            count = len(subject.parent_ids)
        else:
            related = ctx.graph.children_of(subject)
            count = len(subject.child_ids)

        if self.allowed_types:
            allowed = {t.value for t in self.allowed_types}
            for other in related:
                if other.type_name not in allowed:
                    names = ", ".join(sorted(allowed))
                    return self._violation(
                        f"Related entity must be one of: {names}",
                        self._member(), subject,
                    )

        if self.max_relationships is not None and count >= self.max_relationships:
            return self._violation(
                f"Maximum {self.relationship_type} relationships "
                f"({self.max_relationships}) exceeded",
                self._member(), subject,
            )
        return None


__all__ = [
    "EntityRelationshipRule",
    "MaxChildrenRule",
    "NoCyclicHierarchyRule",
    "RequiresPermissionRule",
    "UniqueEntityNameRule",
    "ValidPermissionCombinationRule",
    "ValidUriPatternRule",
]
