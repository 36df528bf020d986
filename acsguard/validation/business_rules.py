# -*- coding: utf-8 -*-
"""
Business Rules - ACS Guard Domain Validation

Configurable, severity-tagged policy rules layered on top of the
structural invariants. Each rule carries a ``BRxxx`` identifier and an
error code that prefixes its failure message.

Rules:
    BR001 MaxUserRolesRule         MAX_ROLES_EXCEEDED        Error
    BR002 GroupMemberLimitsRule    GROUP_CAPACITY_EXCEEDED   Error
    BR003 LeastPrivilegeRule       PRIVILEGE_VIOLATION       Warning
    BR004 TemporalPermissionRule   INVALID_TIME_WINDOW       Error
    BR005 SegregationOfDutiesRule  DUTY_CONFLICT             Critical
    BR006 ResourceAccessPatternRule INVALID_ACCESS_PATTERN   Error
    BR007 AuditTrailRule           AUDIT_REQUIREMENT_NOT_MET Error
    BR008 DataRetentionRule        DATA_RETENTION_VIOLATION  Error

Role membership is read from the graph: a user's roles are its Role-typed
parents. The role being assigned by the current operation, if any, is
named by the ``AssignedRole`` operation data marker.
"""

from __future__ import annotations

import logging
from datetime import datetime, time, timedelta, timezone
from typing import Any, Iterable, List, Optional, Sequence, Tuple

from acsguard.validation.models import (
    APPROVAL_MARKER,
    ASSIGNED_ROLE_MARKER,
    AUDIT_JUSTIFICATION_MARKER,
    CONSENT_MARKER,
    JUSTIFICATION_MARKER,
    Entity,
    EntityType,
    Group,
    OperationType,
    Permission,
    Role,
    RuleSeverity,
    TemporaryPermission,
    User,
    Violation,
)
from acsguard.validation.rules import BusinessRule, RuleContext

logger = logging.getLogger(__name__)

DEFAULT_RESTRICTED_PATTERNS = ("/system", "/admin/critical", "/config/master")
DEFAULT_APPROVAL_PATTERNS = ("/finance/transfer", "/user/delete", "/system/shutdown")
DEFAULT_BUSINESS_HOURS = (time(9, 0), time(17, 0))
DEFAULT_DUTY_CONFLICTS: Tuple[Tuple[str, str], ...] = (("Approver", "Requester"),)


def _aware(value: datetime) -> datetime:
    """Treat naive datetimes as UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def _role_names(user: Entity, ctx: RuleContext) -> List[str]:
    return [role.name for role in ctx.graph.parents_of(user, EntityType.ROLE)]


# =============================================================================
# BR001 - BR002: membership limits
# =============================================================================


class MaxUserRolesRule(BusinessRule):
    """A user may hold at most ``max_roles`` roles."""

    rule_id = "BR001_MAX_USER_ROLES"
    error_code = "MAX_ROLES_EXCEEDED"
    priority = 80

    def __init__(self, max_roles: int = 10, **kwargs: Any) -> None:
        super().__init__(**kwargs)
        self.max_roles = max_roles

    def applies_to(self, subject: Any) -> bool:
        return isinstance(subject, User)

    def check(self, subject: Any, ctx: RuleContext) -> Optional[Violation]:
        roles = set(_role_names(subject, ctx))
        assigned = ctx.operation.operation_data.get(ASSIGNED_ROLE_MARKER)
        if assigned:
            roles.add(str(assigned))
        count = len(roles)
        if count > self.max_roles:
            return self._violation(
                f"User cannot be assigned more than {self.max_roles} roles. "
                f"Current: {count}",
                ["User"], subject,
            )
        return None


class GroupMemberLimitsRule(BusinessRule):
    """Caps on a group's user, subgroup and total member counts."""

    rule_id = "BR002_GROUP_MEMBER_LIMITS"
    error_code = "GROUP_CAPACITY_EXCEEDED"
    priority = 80

    def __init__(
        self,
        max_users: int = 1000,
        max_groups: int = 100,
        max_total_members: int = 1500,
        **kwargs: Any,
    ) -> None:
        super().__init__(**kwargs)
        self.max_users = max_users
        self.max_groups = max_groups
        self.max_total_members = max_total_members

    def applies_to(self, subject: Any) -> bool:
        return isinstance(subject, Group)

    def check(self, subject: Any, ctx: RuleContext) -> Optional[Violation]:
        users = len(ctx.graph.children_of(subject, EntityType.USER))
        groups = len(ctx.graph.children_of(subject, EntityType.GROUP))
        total = users + groups

        if users > self.max_users:
            return self._violation(
                f"Group cannot contain more than {self.max_users} users. "
                f"Current: {users}", subject=subject,
            )
        if groups > self.max_groups:
            return self._violation(
                f"Group cannot contain more than {self.max_groups} subgroups. "
                f"Current: {groups}", subject=subject,
            )
        if total > self.max_total_members:
            return self._violation(
                f"Group cannot contain more than {self.max_total_members} "
                f"total members. Current: {total}", subject=subject,
            )
        return None


# =============================================================================
# BR003 - BR004: permission shape
# =============================================================================


class LeastPrivilegeRule(BusinessRule):
    """Roles must not bundle prohibited permission combinations.

    Each prohibited combination is a comma-separated list of URIs that may
    not all be present on one role. Sensitive URIs need a
    ``Justification`` marker, enforced only when the rule runs at Error
    severity.
    """

    rule_id = "BR003_LEAST_PRIVILEGE"
    error_code = "PRIVILEGE_VIOLATION"
    severity = RuleSeverity.WARNING
    priority = 60

    def __init__(
        self,
        prohibited_combinations: Optional[Sequence[str]] = None,
        requires_justification: Optional[Sequence[str]] = None,
        **kwargs: Any,
    ) -> None:
        super().__init__(**kwargs)
        self.prohibited_combinations = list(prohibited_combinations or [])
        self.requires_justification = list(requires_justification or [])

    def applies_to(self, subject: Any) -> bool:
        return isinstance(subject, Role)

    def check(self, subject: Any, ctx: RuleContext) -> Optional[Violation]:
        uris = {p.uri for p in subject.permissions}

        for combination in self.prohibited_combinations:
            parts = [p.strip() for p in combination.split(",") if p.strip()]
            if parts and all(p in uris for p in parts):
                return self._violation(
                    f"Role contains prohibited permission combination: {combination}",
                    subject=subject,
                )

        sensitive = [
            p.uri for p in subject.permissions
            if p.uri in self.requires_justification
        ]
        if sensitive and self.severity == RuleSeverity.ERROR:
            if not ctx.operation.has_marker(JUSTIFICATION_MARKER):
                return self._violation(
                    f"Sensitive permissions require justification: "
                    f"{', '.join(sensitive)}",
                    subject=subject,
                )
        return None


class TemporalPermissionRule(BusinessRule):
    """Time-bounded grants must have a sane window."""

    rule_id = "BR004_TEMPORAL_PERMISSIONS"
    error_code = "INVALID_TIME_WINDOW"
    priority = 70

    def __init__(
        self,
        min_duration: timedelta = timedelta(minutes=5),
        max_duration: timedelta = timedelta(days=365),
        requires_future_start: bool = False,
        **kwargs: Any,
    ) -> None:
        super().__init__(**kwargs)
        self.min_duration = min_duration
        self.max_duration = max_duration
        self.requires_future_start = requires_future_start

    def applies_to(self, subject: Any) -> bool:
        return isinstance(subject, TemporaryPermission)

    def check(self, subject: Any, ctx: RuleContext) -> Optional[Violation]:
        now = _aware(ctx.now())
        granted_at = _aware(subject.granted_at)
        expires_at = _aware(subject.expires_at)
        duration = expires_at - granted_at

        if duration < self.min_duration:
            minutes = self.min_duration.total_seconds() / 60
            return self._violation(
                f"Temporary permission duration must be at least {minutes:g} minutes",
                subject=subject,
            )
        if duration > self.max_duration:
            days = self.max_duration.total_seconds() / 86400
            return self._violation(
                f"Temporary permission duration cannot exceed {days:g} days",
                subject=subject,
            )
        if self.requires_future_start and granted_at <= now:
            return self._violation(
                "Temporary permission must have a future start date",
                subject=subject,
            )
        if expires_at <= now:
            return self._violation(
                "Temporary permission cannot expire in the past",
                subject=subject,
            )
        return None


# =============================================================================
# BR005 - BR006: assignment policy
# =============================================================================


class SegregationOfDutiesRule(BusinessRule):
    """A user may not hold both roles of a conflicting pair.

    Conflicts are global. When the operation names the role being
    assigned, only pairs involving that role are checked against the
    roles already held; otherwise every pair is checked against the
    held roles.
    """

    rule_id = "BR005_SEGREGATION_DUTIES"
    error_code = "DUTY_CONFLICT"
    severity = RuleSeverity.CRITICAL
    priority = 100

    def __init__(
        self,
        conflicting_roles: Iterable[Tuple[str, str]] = DEFAULT_DUTY_CONFLICTS,
        **kwargs: Any,
    ) -> None:
        super().__init__(**kwargs)
        self.conflicting_roles = [tuple(pair) for pair in conflicting_roles]

    def applies_to(self, subject: Any) -> bool:
        return isinstance(subject, User)

    def _conflict_for(self, role: str, held: set) -> Optional[str]:
        for first, second in self.conflicting_roles:
            if role == first and second in held:
                return second
            if role == second and first in held:
                return first
        return None

    def check(self, subject: Any, ctx: RuleContext) -> Optional[Violation]:
        held = set(_role_names(subject, ctx))
        assigned = ctx.operation.operation_data.get(ASSIGNED_ROLE_MARKER)

        candidates = [str(assigned)] if assigned else sorted(held)
        for role in candidates:
            other = self._conflict_for(role, held - {role})
            if other is not None:
                return self._violation(
                    f"User cannot have both '{role}' and '{other}' due to "
                    f"segregation of duties policy",
                    subject=subject,
                )
        return None


class ResourceAccessPatternRule(BusinessRule):
    """Permissions on restricted or approval-gated URIs.

    Patterns match as case-insensitive substrings of the permission URI.
    An optional ``time_window`` restricts grants to business hours (UTC).
    """

    rule_id = "BR006_RESOURCE_ACCESS_PATTERN"
    error_code = "INVALID_ACCESS_PATTERN"
    priority = 70

    def __init__(
        self,
        restricted_patterns: Sequence[str] = DEFAULT_RESTRICTED_PATTERNS,
        requires_approval: Sequence[str] = DEFAULT_APPROVAL_PATTERNS,
        time_window: Optional[Tuple[time, time]] = None,
        **kwargs: Any,
    ) -> None:
        super().__init__(**kwargs)
        self.restricted_patterns = list(restricted_patterns)
        self.requires_approval = list(requires_approval)
        self.time_window = time_window

    def applies_to(self, subject: Any) -> bool:
        return isinstance(subject, Permission)

    def check(self, subject: Any, ctx: RuleContext) -> Optional[Violation]:
        uri = (subject.uri or "").lower()

        for pattern in self.restricted_patterns:
            if pattern.lower() in uri:
                return self._violation(
                    f"Access to resource pattern '{pattern}' is restricted",
                    subject=subject,
                )

        for pattern in self.requires_approval:
            if pattern.lower() in uri and not ctx.operation.has_marker(APPROVAL_MARKER):
                return self._violation(
                    f"Access to resource pattern '{pattern}' requires approval",
                    subject=subject,
                )

        if self.time_window is not None:
            start, end = self.time_window
            now = _aware(ctx.now()).astimezone(timezone.utc).time()
            if now < start or now > end:
                return self._violation(
                    f"Resource access only allowed during business hours "
                    f"({start:%H:%M:%S}-{end:%H:%M:%S})",
                    subject=subject,
                )
        return None


# =============================================================================
# BR007 - BR008: compliance
# =============================================================================


class AuditTrailRule(BusinessRule):
    """Auditable operations need a justification and a known caller."""

    rule_id = "BR007_AUDIT_TRAIL"
    error_code = "AUDIT_REQUIREMENT_NOT_MET"
    priority = 40

    def __init__(
        self,
        auditable_actions: Iterable[OperationType] = (OperationType.DELETE,),
        requires_justification: bool = True,
        **kwargs: Any,
    ) -> None:
        super().__init__(**kwargs)
        self.auditable_actions = {OperationType(a) for a in auditable_actions}
        self.requires_justification = requires_justification

    def check(self, subject: Any, ctx: RuleContext) -> Optional[Violation]:
        operation = ctx.operation.operation_type
        if operation not in self.auditable_actions:
            return None

        if self.requires_justification and not ctx.operation.has_marker(
            AUDIT_JUSTIFICATION_MARKER,
        ):
            return self._violation(
                f"Operation '{operation.value}' requires audit justification",
                subject=subject,
            )
        if ctx.user_context is None:
            return self._violation(
                f"Auditable operation '{operation.value}' requires user context",
                subject=subject,
            )
        return None


class DataRetentionRule(BusinessRule):
    """Populated personal-data fields require a consent marker."""

    rule_id = "BR008_DATA_RETENTION"
    error_code = "DATA_RETENTION_VIOLATION"
    priority = 30

    def __init__(
        self,
        personal_data_fields: Optional[Sequence[str]] = None,
        requires_consent: bool = True,
        **kwargs: Any,
    ) -> None:
        super().__init__(**kwargs)
        self.personal_data_fields = list(personal_data_fields or [])
        self.requires_consent = requires_consent

    def applies_to(self, subject: Any) -> bool:
        return isinstance(subject, Entity)

    def check(self, subject: Any, ctx: RuleContext) -> Optional[Violation]:
        if not self.requires_consent or not self.personal_data_fields:
            return None
        populated = [
            name for name in self.personal_data_fields
            if subject.get_field(name) not in (None, "")
        ]
        if populated and not ctx.operation.has_marker(CONSENT_MARKER):
            return self._violation(
                "Processing personal data requires explicit consent",
                populated, subject,
            )
        return None


__all__ = [
    "DEFAULT_APPROVAL_PATTERNS",
    "DEFAULT_BUSINESS_HOURS",
    "DEFAULT_DUTY_CONFLICTS",
    "DEFAULT_RESTRICTED_PATTERNS",
    "AuditTrailRule",
    "DataRetentionRule",
    "GroupMemberLimitsRule",
    "LeastPrivilegeRule",
    "MaxUserRolesRule",
    "ResourceAccessPatternRule",
    "SegregationOfDutiesRule",
    "TemporalPermissionRule",
]
