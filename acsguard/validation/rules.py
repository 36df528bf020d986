# -*- coding: utf-8 -*-
"""
Rule Abstraction - ACS Guard Domain Validation

Two rule families run inside the per-entity pipeline:

    - ``DomainRule``: structural domain checks declared per entity type or
      per property (unique name, cyclic hierarchy, URI pattern, ...).
      Produces ``CONSTRAINT`` violations.
    - ``BusinessRule``: configurable policy with a priority, a severity, an
      optional administrator bypass and an optional error code that
      prefixes every failure message as ``[CODE] message``.

Both share ``rule_id``, ``priority``, ``skip_in_bulk`` and
``evaluate(subject, ctx) -> Optional[Violation]``. Rules are stateless
apart from their settings; everything call-specific lives on the
``RuleContext``.

Example:
    >>> class NoGuests(BusinessRule):
    ...     rule_id = "BR100_NO_GUESTS"
    ...     error_code = "GUEST_FORBIDDEN"
    ...     def check(self, subject, ctx):
    ...         if subject.name == "guest":
    ...             return self._violation("Guest accounts are disabled")
    ...         return None
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Callable, List, Optional

from acsguard.validation.cache import ValidationCache
from acsguard.validation.config import ValidationConfig
from acsguard.validation.gateways import PermissionEvaluator, PersistenceGateway
from acsguard.validation.graph import EntityGraph, HierarchyChecker
from acsguard.validation.models import (
    Entity,
    Permission,
    RuleSeverity,
    UserContext,
    ValidationOperationContext,
    Violation,
    ViolationKind,
)

logger = logging.getLogger(__name__)

PERMISSION_TYPE = "Permission"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def subject_type_name(subject: Any) -> str:
    """Registry key for anything the engine validates."""
    if isinstance(subject, Entity):
        return subject.type_name
    if isinstance(subject, Permission):
        return PERMISSION_TYPE
    return type(subject).__name__


def subject_label(subject: Any) -> Optional[str]:
    if isinstance(subject, Entity):
        return subject.name
    if isinstance(subject, Permission):
        return subject.uri
    return None


@dataclass
class RuleContext:
    """Everything a rule may consult during one evaluation.

    Built per validation call and handed to every rule of that call.
    """

    operation: ValidationOperationContext
    config: ValidationConfig
    graph: EntityGraph = field(default_factory=EntityGraph)
    cache: Optional[ValidationCache] = None
    gateway: Optional[PersistenceGateway] = None
    permission_evaluator: Optional[PermissionEvaluator] = None
    clock: Callable[[], datetime] = _utcnow

    @property
    def user_context(self) -> Optional[UserContext]:
        return self.operation.user_context

    @property
    def is_bulk(self) -> bool:
        return self.operation.is_bulk_operation

    @property
    def checker(self) -> HierarchyChecker:
        return HierarchyChecker(self.graph, self.config.max_validation_depth)

    def now(self) -> datetime:
        return self.clock()

    def for_subject(self, subject: Any) -> RuleContext:
        """Copy of this context whose operation targets ``subject``."""
        return RuleContext(
            operation=self.operation.for_entity(subject),
            config=self.config,
            graph=self.graph,
            cache=self.cache,
            gateway=self.gateway,
            permission_evaluator=self.permission_evaluator,
            clock=self.clock,
        )


class Rule:
    """Common rule contract.

    Attributes:
        rule_id: Identifier used for skipping, metrics and registration.
        priority: Higher runs first.
        skip_in_bulk: Skip while the call is a bulk operation.
        property_name: Property the rule targets, if any.
        error_code: Optional code carried on the violation.
    """

    rule_id: str = ""
    priority: int = 0
    skip_in_bulk: bool = False
    property_name: Optional[str] = None
    error_code: str = ""
    kind: ViolationKind = ViolationKind.CONSTRAINT
    severity: RuleSeverity = RuleSeverity.ERROR

    def applies_to(self, subject: Any) -> bool:
        """Whether the rule inspects this subject at all."""
        return True

    def evaluate(self, subject: Any, ctx: RuleContext) -> Optional[Violation]:
        raise NotImplementedError

    def _format(self, message: str) -> str:
        return message

    def _violation(
        self,
        message: str,
        member_names: Optional[List[str]] = None,
        subject: Any = None,
    ) -> Violation:
        return Violation(
            kind=self.kind,
            message=self._format(message),
            code=self.error_code or None,
            rule_id=self.rule_id,
            severity=self.severity,
            member_names=list(member_names or []),
            entity_name=subject_label(subject),
        )

    def describe(self) -> dict:
        return {
            "rule_id": self.rule_id,
            "family": "Rule",
            "priority": self.priority,
            "severity": self.severity.value,
            "skip_in_bulk": self.skip_in_bulk,
            "property": self.property_name,
        }

    def __repr__(self) -> str:
        return f"{type(self).__name__}(rule_id={self.rule_id!r}, priority={self.priority})"


class DomainRule(Rule):
    """Structural domain check run in the constraint stage."""

    kind = ViolationKind.CONSTRAINT

    def _member(self) -> List[str]:
        return [self.property_name] if self.property_name else []

    def value_of(self, subject: Any) -> Any:
        """Value of the targeted property, or the subject itself."""
        if self.property_name is None:
            return subject
        if isinstance(subject, Entity):
            return subject.get_field(self.property_name)
        return getattr(subject, self.property_name, None)

    def evaluate(self, subject: Any, ctx: RuleContext) -> Optional[Violation]:
        return self.evaluate_value(self.value_of(subject), subject, ctx)

    def evaluate_value(
        self, value: Any, subject: Any, ctx: RuleContext,
    ) -> Optional[Violation]:
        """Check ``value`` as the targeted property of ``subject``."""
        raise NotImplementedError

    def describe(self) -> dict:
        info = super().describe()
        info["family"] = "DomainRule"
        info["allow_admin_bypass"] = False
        return info


class BusinessRule(Rule):
    """Configurable policy check run in the business rule stage.

    Subclasses implement ``check``; ``evaluate`` applies the bypass.
    """

    kind = ViolationKind.BUSINESS_RULE
    allow_admin_bypass: bool = False

    def __init__(
        self,
        priority: Optional[int] = None,
        severity: Optional[RuleSeverity] = None,
        allow_admin_bypass: Optional[bool] = None,
        skip_in_bulk: Optional[bool] = None,
        error_code: Optional[str] = None,
    ) -> None:
        if priority is not None:
            self.priority = priority
        if severity is not None:
            self.severity = RuleSeverity(severity)
        if allow_admin_bypass is not None:
            self.allow_admin_bypass = allow_admin_bypass
        if skip_in_bulk is not None:
            self.skip_in_bulk = skip_in_bulk
        if error_code is not None:
            self.error_code = error_code

    def can_bypass(self, ctx: RuleContext) -> bool:
        """Administrator callers may skip rules that allow it."""
        if not self.allow_admin_bypass:
            return False
        user = ctx.user_context
        return user is not None and user.has_role(ctx.config.admin_role_name)

    def evaluate(self, subject: Any, ctx: RuleContext) -> Optional[Violation]:
        if self.can_bypass(ctx):
            logger.debug("Rule %s bypassed by administrator", self.rule_id)
            return None
        return self.check(subject, ctx)

    def check(self, subject: Any, ctx: RuleContext) -> Optional[Violation]:
        raise NotImplementedError

    def _format(self, message: str) -> str:
        if self.error_code:
            return f"[{self.error_code}] {message}"
        return message

    def describe(self) -> dict:
        info = super().describe()
        info["family"] = "BusinessRule"
        info["allow_admin_bypass"] = self.allow_admin_bypass
        return info


__all__ = [
    "PERMISSION_TYPE",
    "BusinessRule",
    "DomainRule",
    "Rule",
    "RuleContext",
    "subject_label",
    "subject_type_name",
]
