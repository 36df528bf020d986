# -*- coding: utf-8 -*-
"""
Rule Registry - ACS Guard Domain Validation

Explicit registry mapping entity type names to the domain rules and
business rules that apply to them. The default rule set is populated once
at startup by ``build_default_registry``; nothing is discovered at run
time.

Resolved lists are memoized in the ``ValidationCache`` under
``business_rules_{type}`` / ``domain_rules_{type}`` for
``rule_cache_ttl_seconds``. Registering a rule for a type drops that
type's memoized lists.

Example:
    >>> registry = RuleRegistry()
    >>> registry.register("User", MaxUserRolesRule(max_roles=5))
    >>> [r.rule_id for r in registry.business_rules_for("User")]
    ['BR001_MAX_USER_ROLES']
"""

from __future__ import annotations

import logging
import threading
from typing import Dict, List, Optional

from acsguard.exceptions import RuleRegistrationError
from acsguard.validation.cache import CACHE_MISS, ValidationCache
from acsguard.validation.config import ValidationConfig
from acsguard.validation.models import EntityType
from acsguard.validation.rules import (
    PERMISSION_TYPE,
    BusinessRule,
    DomainRule,
    Rule,
)

logger = logging.getLogger(__name__)

KNOWN_TYPES = tuple(t.value for t in EntityType) + (PERMISSION_TYPE,)


class RuleRegistry:
    """Per-type store of domain and business rules.

    Attributes:
        _rules: Maps entity type name to rules in registration order.
        _cache: Optional cache used to memoize resolved lists.
        _ttl: TTL for memoized lists in seconds.
    """

    def __init__(
        self,
        cache: Optional[ValidationCache] = None,
        ttl_seconds: float = 3600,
    ) -> None:
        self._rules: Dict[str, List[Rule]] = {}
        self._cache = cache
        self._ttl = ttl_seconds
        self._lock = threading.Lock()

    def bind_cache(self, cache: Optional[ValidationCache], ttl_seconds: float) -> None:
        """Attach the cache used for memoized rule lists.

        Lists memoized under a different TTL are dropped so they are stored
        again with the new one.
        """
        changed = ttl_seconds != self._ttl
        self._cache = cache
        self._ttl = ttl_seconds
        if changed and cache is not None:
            cache.remove_prefix("business_rules_")
            cache.remove_prefix("domain_rules_")

    @property
    def ttl_seconds(self) -> float:
        return self._ttl

    # ------------------------------------------------------------------
    # Registration
    # ------------------------------------------------------------------

    def register(self, entity_type: str, rule: Rule) -> Rule:
        """Add a rule for an entity type.

        Args:
            entity_type: Entity type name (User, Group, Role, Resource,
                Permission).
            rule: Domain or business rule instance.

        Returns:
            The registered rule.

        Raises:
            RuleRegistrationError: On an unknown type, a rule of neither
                family, a missing identifier or a duplicate identifier.
        """
        if entity_type not in KNOWN_TYPES:
            raise RuleRegistrationError(
                f"Unknown entity type: {entity_type}",
                rule_id=rule.rule_id, entity_type=entity_type,
            )
        if not isinstance(rule, (DomainRule, BusinessRule)):
            raise RuleRegistrationError(
                f"{type(rule).__name__} is neither a DomainRule nor a BusinessRule",
                rule_id=getattr(rule, "rule_id", None), entity_type=entity_type,
            )
        if not rule.rule_id:
            raise RuleRegistrationError(
                f"{type(rule).__name__} has no rule_id",
                entity_type=entity_type,
            )

        with self._lock:
            rules = self._rules.setdefault(entity_type, [])
            if any(r.rule_id == rule.rule_id for r in rules):
                raise RuleRegistrationError(
                    f"Rule {rule.rule_id} is already registered for {entity_type}",
                    rule_id=rule.rule_id, entity_type=entity_type,
                )
            rules.append(rule)

        if self._cache is not None:
            self._cache.remove(f"business_rules_{entity_type}")
            self._cache.remove(f"domain_rules_{entity_type}")
        logger.info("Registered rule %s for %s", rule.rule_id, entity_type)
        return rule

    # ------------------------------------------------------------------
    # Resolution
    # ------------------------------------------------------------------

    def _resolve(self, key: str, entity_type: str, family: type) -> List[Rule]:
        if self._cache is not None:
            cached = self._cache.get(key)
            if cached is not CACHE_MISS:
                return list(cached)

        with self._lock:
            rules = [
                r for r in self._rules.get(entity_type, [])
                if isinstance(r, family)
            ]
        # sorted() is stable: equal priorities keep registration order
        rules = sorted(rules, key=lambda r: r.priority, reverse=True)

        if self._cache is not None:
            self._cache.set(key, tuple(rules), ttl_seconds=self._ttl)
        return rules

    def business_rules_for(self, entity_type: str) -> List[BusinessRule]:
        """Business rules for a type, highest priority first."""
        return self._resolve(
            f"business_rules_{entity_type}", entity_type, BusinessRule,
        )

    def domain_rules_for(
        self, entity_type: str, property_name: Optional[str] = None,
    ) -> List[DomainRule]:
        """Domain rules for a type, optionally only those on one property."""
        rules = self._resolve(
            f"domain_rules_{entity_type}", entity_type, DomainRule,
        )
        if property_name is None:
            return rules
        return [r for r in rules if r.property_name == property_name]

    def get(self, entity_type: str, rule_id: str) -> Optional[Rule]:
        for rule in self._rules.get(entity_type, []):
            if rule.rule_id == rule_id:
                return rule
        return None

    def entity_types(self) -> List[str]:
        return sorted(self._rules)

    def describe(self, entity_type: Optional[str] = None) -> List[dict]:
        """Flat rule listing, used by the ``acsguard rules`` command."""
        types = [entity_type] if entity_type else self.entity_types()
        rows = []
        for type_name in types:
            for rule in self.domain_rules_for(type_name):
                rows.append({"entity_type": type_name, **rule.describe()})
            for rule in self.business_rules_for(type_name):
                rows.append({"entity_type": type_name, **rule.describe()})
        return rows

    def __len__(self) -> int:
        return sum(len(rules) for rules in self._rules.values())


def build_default_registry(
    config: Optional[ValidationConfig] = None,
    cache: Optional[ValidationCache] = None,
) -> RuleRegistry:
    """Registry holding the stock domain and business rules.

    Args:
        config: Supplies the rule list TTL and SoD role pairs.
        cache: Cache for memoized lists (None disables memoization).

    Returns:
        Populated RuleRegistry.
    """
    from acsguard.validation import business_rules as br
    from acsguard.validation import domain_rules as dr

    config = config or ValidationConfig()
    registry = RuleRegistry(cache=cache, ttl_seconds=config.rule_cache_ttl_seconds)

    for type_name in (EntityType.USER, EntityType.GROUP, EntityType.ROLE):
        registry.register(type_name.value, dr.UniqueEntityNameRule(type_name.value))
        registry.register(type_name.value, dr.NoCyclicHierarchyRule())
    registry.register(EntityType.GROUP.value, dr.MaxChildrenRule(maximum=1500))
    registry.register(
        EntityType.GROUP.value,
        dr.EntityRelationshipRule(
            "parent", allowed_types=(EntityType.GROUP,), max_relationships=None,
        ),
    )
    registry.register(
        EntityType.RESOURCE.value,
        dr.UniqueEntityNameRule(EntityType.RESOURCE.value),
    )
    registry.register(EntityType.RESOURCE.value, dr.ValidUriPatternRule())
    registry.register(PERMISSION_TYPE, dr.ValidUriPatternRule())

    registry.register(EntityType.USER.value, br.MaxUserRolesRule())
    registry.register(EntityType.USER.value, br.SegregationOfDutiesRule())
    registry.register(EntityType.GROUP.value, br.GroupMemberLimitsRule())
    registry.register(
        EntityType.ROLE.value,
        br.LeastPrivilegeRule(prohibited_combinations=["/admin/users,/admin/audit"]),
    )
    registry.register(PERMISSION_TYPE, br.TemporalPermissionRule())
    registry.register(PERMISSION_TYPE, br.ResourceAccessPatternRule())
    for type_name in KNOWN_TYPES:
        registry.register(type_name, br.AuditTrailRule())
    registry.register(
        EntityType.USER.value,
        br.DataRetentionRule(personal_data_fields=["email"]),
    )

    logger.info(
        "Default rule registry built: %d rules across %d entity types",
        len(registry), len(registry.entity_types()),
    )
    return registry


__all__ = [
    "KNOWN_TYPES",
    "RuleRegistry",
    "build_default_registry",
]
