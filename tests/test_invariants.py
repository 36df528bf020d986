"""Tests for structural, cross-entity and system invariants."""

import pytest

from acsguard.validation.config import ValidationConfig
from acsguard.validation.gateways import AccessEntry, InMemoryPersistenceGateway
from acsguard.validation.graph import EntityGraph
from acsguard.validation.invariants import (
    StructuralInvariants,
    check_field_constraints,
    check_system_invariants,
    is_valid_uri_pattern,
)
from acsguard.validation.models import (
    Group,
    Permission,
    Resource,
    Role,
    User,
    ViolationKind,
)

from conftest import chain


def invariants(*entities, **config):
    return StructuralInvariants(ValidationConfig(**config), EntityGraph(entities))


def codes_of(violations):
    return sorted(v.code for v in violations)


# ============================================================================
# Field constraints
# ============================================================================


class TestFieldConstraints:
    """Length and format limits."""

    def test_resource_limits(self):
        """Long description and type, malformed version."""
        resource = Resource(
            name="r", uri="/r", description="x" * 1001,
            resource_type="t" * 101, version="v1",
        )

        found = check_field_constraints(resource)

        assert sorted(v.member_names[0] for v in found) == [
            "description", "resource_type", "version",
        ]
        assert all(v.kind is ViolationKind.CONSTRAINT for v in found)

    @pytest.mark.parametrize("version", ["1", "1.2", "1.2.3", "1.2.*"])
    def test_valid_versions(self, version):
        """Dotted numeric versions pass."""
        assert check_field_constraints(Resource(name="r", version=version)) == []

    def test_user_email(self):
        """Malformed emails are reported."""
        assert len(check_field_constraints(User(name="u", email="nope"))) == 1
        assert check_field_constraints(User(name="u", email="u@example.com")) == []


# ============================================================================
# Entity invariants
# ============================================================================


class TestEntityInvariants:
    """INV001-INV007."""

    def test_negative_id(self):
        """Identifiers below UNSET_ID are invalid."""
        found = invariants().entity_invariants(Group(id=-5, name="g"))

        assert codes_of(found) == ["INV001"]

    def test_unset_id_allowed(self):
        """UNSET_ID marks a new entity, not an error."""
        assert invariants().entity_invariants(Group(name="g")) == []

    def test_empty_and_long_names(self):
        """Names must be non-blank and bounded."""
        assert codes_of(invariants().entity_invariants(Group(name="  "))) == ["INV002"]
        assert codes_of(invariants().entity_invariants(Group(name="x" * 256))) == ["INV003"]

    def test_self_reference(self):
        """A persisted entity may not list itself."""
        group = Group(id=4, name="g", parent_ids={4})

        assert "INV004" in codes_of(invariants(group).entity_invariants(group))

    def test_embedded_grant_and_deny(self):
        """Embedded permissions must pick exactly one of grant/deny."""
        role = Role(name="r", permissions=[
            Permission(uri="/a", grant=True, deny=True),
            Permission(uri="/b", grant=False, deny=False),
        ])

        found = invariants().entity_invariants(role)

        assert [v.message for v in found] == [
            "Permission for /a cannot both grant and deny access",
            "Permission for /b must either grant or deny access",
        ]

    def test_asymmetric_edge(self, admins_ops):
        """Admins lists Ops, Ops does not list Admins."""
        admins, ops, graph = admins_ops
        checker = StructuralInvariants(ValidationConfig(), graph)

        found = checker.entity_invariants(admins)

        assert [v.message for v in found] == [
            "Child entity Ops does not reference Admins as parent",
        ]
        assert found[0].code == "INV006"

    def test_parent_side_asymmetry(self):
        """A child naming a parent that does not list it."""
        parent = Group(id=1, name="P")
        child = Group(id=2, name="C", parent_ids={1})

        found = invariants(parent, child).entity_invariants(child)

        assert found[0].message == "Parent entity P does not reference C as child"

    def test_kind_mismatch(self):
        """Discriminator must match the concrete kind."""
        group = Group(name="g", entity_type="Role")

        assert codes_of(invariants().entity_invariants(group)) == ["INV007"]


# ============================================================================
# Kind-specific invariants
# ============================================================================


class TestKindInvariants:
    """Groups, roles, permissions and resources."""

    def test_group_cycle(self):
        """Group loops are reported."""
        a = Group(id=1, name="a", parent_ids={2}, child_ids={2})
        b = Group(id=2, name="b", parent_ids={1}, child_ids={1})

        found = invariants(a, b).group_invariants(a)

        assert [v.message for v in found] == ["Group hierarchy contains a cycle"]

    def test_group_depth(self):
        """Exceeding the traversal bound is reported, not ignored."""
        nodes = chain(6)
        checker = invariants(*nodes, max_validation_depth=3, strict_mode=False)

        found = checker.group_invariants(nodes[-1])

        assert [v.message for v in found] == [
            "Group hierarchy depth exceeded maximum of 3 levels",
        ]

    def test_empty_group_only_in_strict_mode(self):
        """Permanently empty groups fail only when strict."""
        group = Group(name="g")

        assert codes_of(invariants().group_invariants(group)) == ["INV204"]
        assert invariants(strict_mode=False).group_invariants(group) == []

    def test_role_permission_uri(self):
        """Role permissions need a URI."""
        role = Role(name="r", permissions=[Permission(uri="")])

        assert codes_of(invariants().role_invariants(role)) == ["INV303"]

    @pytest.mark.parametrize("grant,deny,expected", [
        (True, False, []),
        (False, True, []),
        (True, True, ["INV402"]),
        (False, False, ["INV402"]),
    ])
    def test_grant_deny_combinations(self, grant, deny, expected):
        """Exactly one of grant and deny."""
        permission = Permission(uri="/a", grant=grant, deny=deny)

        assert codes_of(invariants().permission_invariants(permission)) == expected

    def test_permission_shape(self):
        """Empty URI, unknown verb and scheme."""
        permission = Permission(uri="", http_verb="FETCH", scheme="Basic")

        assert codes_of(invariants().permission_invariants(permission)) == [
            "INV401", "INV403", "INV404",
        ]

    def test_permission_uri_form(self):
        """URIs must be paths or absolute."""
        assert codes_of(invariants().permission_invariants(Permission(uri="api"))) == ["INV405"]
        assert is_valid_uri_pattern("https://x.test/a")
        assert not is_valid_uri_pattern(None)

    def test_resource_invariants(self):
        """URI, type, active flag and version."""
        resource = Resource(name="r", uri="relative", is_active=False, version=" ")

        found = invariants().resource_invariants(resource)

        assert codes_of(found) == ["INV502", "INV503", "INV504", "INV505"]

    def test_inactive_resource_lenient(self):
        """Inactive resources pass outside strict mode."""
        resource = Resource(name="r", uri="/r", resource_type="api", is_active=False)

        assert invariants(strict_mode=False).resource_invariants(resource) == []

    def test_cascade_checks_embedded_shape(self):
        """Cascade adds URI form, verb and scheme of held permissions."""
        role = Role(name="r", permissions=[
            Permission(uri="bad", http_verb="FETCH"),
        ])
        checker = invariants(strict_mode=False)

        with_cascade = codes_of(checker.validate(role, cascade=True))
        without = codes_of(checker.validate(role, cascade=False))

        assert with_cascade == ["INV403", "INV405"]
        assert without == []


# ============================================================================
# Cross-entity invariants
# ============================================================================


class TestCrossEntity:
    """Batch-level invariants."""

    def test_duplicate_names(self):
        """Same-kind names must be unique within a batch."""
        batch = [User(name="bob"), User(name="bob"), Group(name="bob")]

        found = invariants().cross_entity(batch)

        assert [v.message for v in found] == ["Duplicate User name found: bob"]
        assert found[0].code == "INV901"

    def test_inconsistent_edges(self, admins_ops):
        """Mirrored edges are checked once per batch."""
        admins, ops, graph = admins_ops

        found = StructuralInvariants(ValidationConfig(), graph).cross_entity([admins, ops])

        assert [v.message for v in found] == [
            "Inconsistent parent-child relationship: Admins -> Ops",
        ]

    def test_inheritance_cycle_across_kinds(self):
        """Inheritance cycles follow every parent kind."""
        role = Role(id=1, name="r", parent_ids={2}, child_ids={2})
        group = Group(id=2, name="g", parent_ids={1}, child_ids={1})

        found = invariants(role, group).cross_entity([role])

        assert codes_of(found) == ["INV903"]

    def test_reconvergent_batch_is_clean(self):
        """A deep lattice of groups passes every batch-level check."""
        rows = []
        for level in range(25):
            row = [Group(id=10 * level + k, name=f"G{level}_{k}") for k in (1, 2, 3)]
            for child in row:
                for parent in rows[-1] if rows else []:
                    parent.child_ids.add(child.id)
                    child.parent_ids.add(parent.id)
            rows.append(row)
        batch = [g for row in rows for g in row]

        assert invariants(*batch).cross_entity(batch) == []


# ============================================================================
# System invariants
# ============================================================================


class TestSystemInvariants:
    """System-wide checks through the persistence gateway."""

    @pytest.mark.asyncio
    async def test_healthy_population(self, gateway):
        """Admin user and required roles present."""
        found = await check_system_invariants(gateway, ValidationConfig())

        assert found == []

    @pytest.mark.asyncio
    async def test_missing_admin_and_roles(self):
        """Empty population reports every missing piece."""
        found = await check_system_invariants(
            InMemoryPersistenceGateway(), ValidationConfig(),
        )

        assert [v.code for v in found] == ["SYSINV001"] + ["SYSINV002"] * 3
        assert found[1].message == "Required system role missing: Administrator"
        assert all(v.kind is ViolationKind.SYSTEM_INVARIANT for v in found)

    @pytest.mark.asyncio
    async def test_unprotected_system_resource(self, role_graph):
        """System resources need an access entry."""
        role_graph.add(Resource(id=50, name="cfg", uri="/system/config"))
        role_graph.add(Resource(id=51, name="logs", uri="/system/logs"))
        gateway = InMemoryPersistenceGateway(
            role_graph, [AccessEntry(resource_uri="/system/config", entity_id=10)],
        )

        found = await check_system_invariants(gateway, ValidationConfig())

        assert [v.message for v in found] == ["System resource not protected: /system/logs"]

    @pytest.mark.asyncio
    async def test_gateway_error_becomes_violation(self, gateway):
        """Query failures are reported, not raised."""
        async def broken(role_name):
            raise ConnectionError("db down")

        gateway.count_users_with_role = broken

        found = await check_system_invariants(gateway, ValidationConfig())

        assert [v.code for v in found] == ["SYSINV000"]
        assert found[0].message == "Error validating system invariants: db down"
