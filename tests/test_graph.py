"""Tests for EntityGraph and HierarchyChecker."""

import time

import pytest

from acsguard.validation.graph import EntityGraph, HierarchyChecker, entity_from_dict
from acsguard.validation.models import (
    CycleStatus,
    Group,
    Resource,
    Role,
    TemporaryPermission,
    User,
)

from conftest import chain


def ladder(levels):
    """Two groups per level, each a child of both groups one level up."""
    rows = [
        [
            Group(id=2 * level + 1, name=f"L{level}a"),
            Group(id=2 * level + 2, name=f"L{level}b"),
        ]
        for level in range(levels)
    ]
    for upper, lower in zip(rows, rows[1:]):
        for child in lower:
            for parent in upper:
                parent.child_ids.add(child.id)
                child.parent_ids.add(parent.id)
    return rows


# ============================================================================
# EntityGraph
# ============================================================================


class TestEntityGraph:
    """Store, edge resolution and documents."""

    def test_unpersisted_entities_not_stored(self):
        """Entities without an identifier are not addressable."""
        graph = EntityGraph([Group(name="draft"), Group(id=3, name="kept")])

        assert len(graph) == 1
        assert 3 in graph

    def test_unresolved_edges_skipped(self):
        """Edges to identifiers outside the view are ignored."""
        child = Group(id=2, name="child", parent_ids={1, 99})
        graph = EntityGraph([Group(id=1, name="root", child_ids={2}), child])

        assert [p.id for p in graph.parents_of(child)] == [1]

    def test_kind_filter(self):
        """Parents can be restricted to one kind."""
        user = User(id=5, name="bob", parent_ids={1, 2})
        graph = EntityGraph([Group(id=1, name="g"), Role(id=2, name="r"), user])

        roles = graph.parents_of(user, kind=Role.KIND)

        assert [r.name for r in roles] == ["r"]

    def test_link_sets_both_ends(self):
        """link() keeps the edge bidirectional."""
        parent, child = Group(id=1, name="p"), Group(id=2, name="c")
        graph = EntityGraph()
        graph.link(parent, child)

        assert child.parent_ids == {1}
        assert parent.child_ids == {2}
        assert len(graph) == 2

    def test_with_entities_overlays(self):
        """Overlay replaces nodes without touching the original graph."""
        original = Group(id=1, name="old")
        graph = EntityGraph([original])

        overlay = graph.with_entities([Group(id=1, name="new")])

        assert overlay.get(1).name == "new"
        assert graph.get(1) is original

    def test_from_dict_builds_kinds(self):
        """Documents load concrete kinds and temporary permissions."""
        graph = EntityGraph.from_dict({
            "entities": [
                {"type": "Resource", "id": 1, "name": "cfg", "uri": "/cfg",
                 "resource_type": "api"},
                {"type": "Role", "id": 2, "name": "ops", "permissions": [
                    {"uri": "/cfg", "http_verb": "get",
                     "granted_at": "2025-01-01T00:00:00Z",
                     "expires_at": "2025-01-02T00:00:00Z"},
                ]},
            ],
        })

        assert isinstance(graph.get(1), Resource)
        assert isinstance(graph.get(2).permissions[0], TemporaryPermission)

    def test_from_dict_unknown_type(self):
        """Unknown entity types are rejected."""
        with pytest.raises(ValueError, match="Unknown entity type"):
            entity_from_dict({"type": "Robot", "id": 1})

    def test_to_dict_sorted(self):
        """Documents list entities by id with sorted edges."""
        nodes = chain(2)
        data = EntityGraph(reversed(nodes)).to_dict()

        assert [e["id"] for e in data["entities"]] == [1, 2]
        assert data["entities"][0]["type"] == "Group"
        assert data["entities"][1]["parent_ids"] == [1]


# ============================================================================
# HierarchyChecker
# ============================================================================


class TestHierarchyChecker:
    """Bounded traversals."""

    def test_chain_has_no_cycle(self):
        """A straight chain within bounds is acyclic."""
        nodes = chain(4)
        checker = HierarchyChecker(EntityGraph(nodes), max_depth=10)

        assert checker.has_cycle(nodes[-1]) is CycleStatus.NO_CYCLE

    def test_diamond_is_not_a_cycle(self):
        """Reconvergent paths are not reported as cycles."""
        top = Group(id=1, name="top", child_ids={2, 3})
        left = Group(id=2, name="left", parent_ids={1}, child_ids={4})
        right = Group(id=3, name="right", parent_ids={1}, child_ids={4})
        bottom = Group(id=4, name="bottom", parent_ids={2, 3})
        checker = HierarchyChecker(EntityGraph([top, left, right, bottom]))

        assert checker.has_cycle(bottom) is CycleStatus.NO_CYCLE

    def test_loop_detected(self):
        """A parent loop is a cycle."""
        a = Group(id=1, name="a", parent_ids={2}, child_ids={2})
        b = Group(id=2, name="b", parent_ids={1}, child_ids={1})
        checker = HierarchyChecker(EntityGraph([a, b]))

        assert checker.has_cycle(a) is CycleStatus.CYCLE

    def test_depth_exceeded_is_reported(self):
        """Running past the bound is never a silent success."""
        nodes = chain(6)
        checker = HierarchyChecker(EntityGraph(nodes), max_depth=3)

        assert checker.has_cycle(nodes[-1]) is CycleStatus.DEPTH_EXCEEDED

    def test_group_only_ignores_other_parents(self):
        """Role parents are not followed for group hierarchy checks."""
        role = Role(id=1, name="r", parent_ids={2}, child_ids={2})
        group = Group(id=2, name="g", parent_ids={1}, child_ids={1})
        checker = HierarchyChecker(EntityGraph([role, group]))

        assert checker.has_cycle(group, group_only=True) is CycleStatus.NO_CYCLE
        assert checker.has_cycle(group, group_only=False) is CycleStatus.CYCLE

    def test_reconvergent_ladder_walked_once(self):
        """Ladders with many equivalent paths are acyclic and fast."""
        rows = ladder(30)
        checker = HierarchyChecker(EntityGraph(g for row in rows for g in row))

        started = time.perf_counter()
        status = checker.has_cycle(rows[-1][0])
        elapsed = time.perf_counter() - started

        assert status is CycleStatus.NO_CYCLE
        assert elapsed < 2.0

    def test_ladder_past_the_bound(self):
        """The depth bound still applies on reconvergent graphs."""
        rows = ladder(30)
        checker = HierarchyChecker(EntityGraph(g for row in rows for g in row), max_depth=20)

        assert checker.has_cycle(rows[-1][0]) is CycleStatus.DEPTH_EXCEEDED

    def test_ladder_with_loop(self):
        """A loop behind many reconvergent paths is still found."""
        rows = ladder(30)
        top, bottom = rows[0][0], rows[-1][1]
        top.parent_ids.add(bottom.id)
        bottom.child_ids.add(top.id)
        checker = HierarchyChecker(EntityGraph(g for row in rows for g in row))

        assert checker.has_cycle(rows[-1][0]) is CycleStatus.CYCLE

    def test_shared_ancestor_reached_deeper(self):
        """A shared ancestor reached again on a longer path counts that path's depth."""
        top = Group(id=1, name="top", child_ids={2})
        shared = Group(id=2, name="shared", parent_ids={1}, child_ids={3, 5})
        short = Group(id=3, name="short", parent_ids={2}, child_ids={6})
        far = Group(id=4, name="far", parent_ids={5}, child_ids={6})
        mid = Group(id=5, name="mid", parent_ids={2}, child_ids={4})
        start = Group(id=6, name="start", parent_ids={3, 4})
        graph = EntityGraph([top, shared, short, far, mid, start])

        assert HierarchyChecker(graph, max_depth=4).has_cycle(start) is CycleStatus.NO_CYCLE
        assert HierarchyChecker(graph, max_depth=3).has_cycle(start) is CycleStatus.DEPTH_EXCEEDED

    def test_would_create_cycle(self):
        """Attaching a descendant as parent closes a loop."""
        root, mid, leaf = chain(3)
        checker = HierarchyChecker(EntityGraph([root, mid, leaf]))

        assert checker.would_create_cycle(root, leaf) is CycleStatus.CYCLE
        assert checker.would_create_cycle(leaf, root) is CycleStatus.NO_CYCLE

    def test_would_create_cycle_self_parent(self):
        """A persisted node cannot parent itself."""
        node = Group(id=7, name="solo")
        checker = HierarchyChecker(EntityGraph([node]))

        assert checker.would_create_cycle(node, node) is CycleStatus.CYCLE

    def test_unset_id_never_cycles(self):
        """An unpersisted node is nobody's ancestor."""
        draft = Group(name="draft")
        parent = Group(id=1, name="p")
        checker = HierarchyChecker(EntityGraph([parent]))

        assert checker.would_create_cycle(draft, parent) is CycleStatus.NO_CYCLE

    def test_missing_back_references(self):
        """Asymmetric edges are listed from both ends."""
        admins = Group(id=1, name="Admins", child_ids={2})
        ops = Group(id=2, name="Ops")
        checker = HierarchyChecker(EntityGraph([admins, ops]))

        assert checker.missing_back_references(admins) == [("child", ops)]
        assert checker.missing_back_references(ops) == []
