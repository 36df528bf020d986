"""Tests for the rule registry and the default rule set."""

import pytest

from acsguard.exceptions import RuleRegistrationError
from acsguard.validation.business_rules import MaxUserRolesRule, SegregationOfDutiesRule
from acsguard.validation.cache import CACHE_MISS, ValidationCache
from acsguard.validation.domain_rules import MaxChildrenRule
from acsguard.validation.registry import KNOWN_TYPES, RuleRegistry, build_default_registry
from acsguard.validation.rules import BusinessRule, Rule


class FixedRule(BusinessRule):
    """Rule with a configurable id that never fails."""

    def __init__(self, rule_id, priority):
        super().__init__(priority=priority)
        self.rule_id = rule_id

    def check(self, subject, ctx):
        return None


class TestRegistration:
    """register() validation."""

    def test_duplicate_rejected(self):
        """Rule ids are unique per type."""
        registry = RuleRegistry()
        registry.register("User", MaxUserRolesRule())

        with pytest.raises(RuleRegistrationError) as info:
            registry.register("User", MaxUserRolesRule(max_roles=3))

        assert info.value.rule_id == "BR001_MAX_USER_ROLES"
        assert info.value.context["entity_type"] == "User"

    def test_same_rule_on_other_type(self):
        """The same id may appear on different types."""
        registry = RuleRegistry()
        registry.register("User", FixedRule("X", 1))
        registry.register("Group", FixedRule("X", 1))

        assert len(registry) == 2

    def test_unknown_type_rejected(self):
        """Only known entity types accept rules."""
        with pytest.raises(RuleRegistrationError, match="Unknown entity type"):
            RuleRegistry().register("Tenant", MaxUserRolesRule())

    def test_rule_family_required(self):
        """Bare Rule instances are refused."""
        rule = Rule()
        rule.rule_id = "R"

        with pytest.raises(RuleRegistrationError):
            RuleRegistry().register("User", rule)

    def test_rule_id_required(self):
        """Rules must carry an identifier."""
        with pytest.raises(RuleRegistrationError, match="no rule_id"):
            RuleRegistry().register("User", FixedRule("", 1))


class TestResolution:
    """Ordering and memoization."""

    def test_priority_order_is_stable(self):
        """Highest priority first; ties keep registration order."""
        registry = RuleRegistry()
        for rule_id, priority in [("low", 1), ("tie-a", 5), ("high", 9), ("tie-b", 5)]:
            registry.register("User", FixedRule(rule_id, priority))

        ordered = [r.rule_id for r in registry.business_rules_for("User")]

        assert ordered == ["high", "tie-a", "tie-b", "low"]

    def test_families_separated(self):
        """Domain and business lists do not mix."""
        registry = RuleRegistry()
        registry.register("Group", MaxChildrenRule(maximum=3))
        registry.register("Group", FixedRule("B", 1))

        assert [r.rule_id for r in registry.domain_rules_for("Group")] == ["DR_MAX_CHILDREN"]
        assert [r.rule_id for r in registry.business_rules_for("Group")] == ["B"]
        assert registry.domain_rules_for("Group", "child_ids")
        assert registry.domain_rules_for("Group", "name") == []

    def test_lists_memoized_and_invalidated(self):
        """Resolved lists are cached until the type gains a rule."""
        cache = ValidationCache()
        registry = RuleRegistry(cache=cache)
        registry.register("User", FixedRule("A", 1))

        registry.business_rules_for("User")
        assert cache.get("business_rules_User") is not CACHE_MISS

        registry.register("User", FixedRule("B", 2))

        assert [r.rule_id for r in registry.business_rules_for("User")] == ["B", "A"]

    def test_get_and_describe(self):
        """Lookup by id and the flat listing."""
        registry = RuleRegistry()
        registry.register("User", SegregationOfDutiesRule())

        assert registry.get("User", "BR005_SEGREGATION_DUTIES") is not None
        assert registry.get("User", "nope") is None
        row = registry.describe("User")[0]
        assert row["entity_type"] == "User"
        assert row["family"] == "BusinessRule"
        assert row["severity"] == "Critical"


class TestDefaultRegistry:
    """The stock rule set."""

    def test_every_type_covered(self):
        """All known types have rules."""
        registry = build_default_registry()

        assert registry.entity_types() == sorted(KNOWN_TYPES)

    def test_user_rules(self):
        """User business rules in priority order."""
        registry = build_default_registry()

        ids = [r.rule_id for r in registry.business_rules_for("User")]

        assert ids == [
            "BR005_SEGREGATION_DUTIES",
            "BR001_MAX_USER_ROLES",
            "BR007_AUDIT_TRAIL",
            "BR008_DATA_RETENTION",
        ]

    def test_permission_domain_rules(self):
        """Permissions get the URI pattern rule but no combination rule."""
        registry = build_default_registry()

        ids = [r.rule_id for r in registry.domain_rules_for("Permission")]

        assert ids == ["DR_VALID_URI_PATTERN"]
