# -*- coding: utf-8 -*-
"""
Entity Graph and Hierarchy Checker - ACS Guard Domain Validation

``EntityGraph`` is the identifier-indexed store the engine reads edges
through. ``HierarchyChecker`` runs the bounded traversals used by the
cycle invariants and the no-cyclic-hierarchy domain rule.

Traversal semantics:
    - Only parent edges are followed.
    - ``has_cycle`` walks depth-first and hands every branch its own copy
      of the visited path, so reconvergent but acyclic shapes (diamonds)
      are never reported as cycles.
    - ``would_create_cycle`` walks breadth-first from a candidate parent
      with a fresh visited set per check.
    - Exceeding ``max_depth`` yields ``CycleStatus.DEPTH_EXCEEDED``, never
      a silent "no cycle".
    - Identifiers the graph cannot resolve are skipped; the graph may be a
      partial view.

Example:
    >>> graph = EntityGraph([admins, ops])
    >>> checker = HierarchyChecker(graph, max_depth=50)
    >>> checker.has_cycle(ops)
    <CycleStatus.NO_CYCLE: 'no_cycle'>
"""

from __future__ import annotations

import logging
from typing import Any, Dict, Iterable, Iterator, List, Optional, Tuple

from acsguard.validation.models import (
    ENTITY_CLASSES,
    CycleStatus,
    Entity,
    EntityType,
    Permission,
    TemporaryPermission,
)

logger = logging.getLogger(__name__)


class EntityGraph:
    """Identifier-indexed view over persisted entities.

    Unpersisted entities (``UNSET_ID``) are not addressable and are never
    stored.
    """

    def __init__(self, entities: Iterable[Entity] = ()) -> None:
        self._nodes: Dict[int, Entity] = {}
        for entity in entities:
            self.add(entity)

    # ------------------------------------------------------------------
    # Store
    # ------------------------------------------------------------------

    def add(self, entity: Entity) -> None:
        if entity.is_persisted:
            self._nodes[entity.id] = entity

    def get(self, entity_id: int) -> Optional[Entity]:
        return self._nodes.get(entity_id)

    def __contains__(self, entity_id: object) -> bool:
        return entity_id in self._nodes

    def __len__(self) -> int:
        return len(self._nodes)

    def __iter__(self) -> Iterator[Entity]:
        return iter(list(self._nodes.values()))

    def with_entities(self, entities: Iterable[Entity]) -> EntityGraph:
        """Copy of this graph with ``entities`` laid over existing nodes."""
        overlay = EntityGraph(self._nodes.values())
        for entity in entities:
            overlay.add(entity)
        return overlay

    # ------------------------------------------------------------------
    # Edges
    # ------------------------------------------------------------------

    def parents_of(
        self, entity: Entity, kind: Optional[EntityType] = None,
    ) -> List[Entity]:
        """Resolvable parents of ``entity``, optionally restricted to a kind."""
        return self._resolve(entity.parent_ids, kind)

    def children_of(
        self, entity: Entity, kind: Optional[EntityType] = None,
    ) -> List[Entity]:
        """Resolvable children of ``entity``, optionally restricted to a kind."""
        return self._resolve(entity.child_ids, kind)

    def _resolve(
        self, ids: Iterable[int], kind: Optional[EntityType],
    ) -> List[Entity]:
        resolved = []
        for entity_id in sorted(ids):
            node = self._nodes.get(entity_id)
            if node is None:
                continue
            if kind is not None and node.type_name != kind.value:
                continue
            resolved.append(node)
        return resolved

    def link(self, parent: Entity, child: Entity) -> None:
        """Add a parent/child edge on both ends and register both nodes."""
        parent.child_ids.add(child.id)
        child.parent_ids.add(parent.id)
        self.add(parent)
        self.add(child)

    # ------------------------------------------------------------------
    # Documents
    # ------------------------------------------------------------------

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> EntityGraph:
        """Build a graph from a document with an ``entities`` list.

        Each entry carries ``type`` (User/Group/Role/Resource) plus model
        fields. Permissions with an ``expires_at`` key load as
        ``TemporaryPermission``.

        Raises:
            ValueError: If an entry names an unknown entity type.
        """
        return cls(entity_from_dict(item) for item in data.get("entities", []))

    def to_dict(self) -> Dict[str, Any]:
        entities = []
        for node in sorted(self._nodes.values(), key=lambda e: e.id):
            item = node.model_dump(mode="json", exclude={"ref", "entity_type"})
            item["type"] = node.type_name
            item["parent_ids"] = sorted(node.parent_ids)
            item["child_ids"] = sorted(node.child_ids)
            entities.append(item)
        return {"entities": entities}


def entity_from_dict(item: Dict[str, Any]) -> Entity:
    """Build one entity from a graph document entry."""
    fields = dict(item)
    type_name = fields.pop("type", None) or fields.get("entity_type")
    try:
        entity_type = EntityType(type_name)
    except ValueError:
        raise ValueError(f"Unknown entity type: {type_name!r}") from None
    fields["permissions"] = [
        TemporaryPermission.model_validate(p)
        if "expires_at" in p else Permission.model_validate(p)
        for p in fields.get("permissions", [])
    ]
    return ENTITY_CLASSES[entity_type].model_validate(fields)


class _Frame:
    """One node on the ``has_cycle`` walk stack."""

    __slots__ = ("node", "depth", "parents", "height", "complete")

    def __init__(self, node: Entity, depth: int, parents: Iterator[Entity]) -> None:
        self.node = node
        self.depth = depth
        self.parents = parents
        self.height = 0
        self.complete = True

    def absorb(self, parent_height: Optional[int]) -> None:
        if parent_height is None:
            self.complete = False
        else:
            self.height = max(self.height, parent_height + 1)


class HierarchyChecker:
    """Bounded cycle and consistency checks over an ``EntityGraph``.

    Attributes:
        graph: Graph the checks resolve edges through.
        max_depth: Maximum number of parent edges followed from the start.
    """

    def __init__(self, graph: EntityGraph, max_depth: int = 50) -> None:
        self.graph = graph
        self.max_depth = max_depth

    def _parents(self, node: Entity, group_only: bool) -> List[Entity]:
        kind = EntityType.GROUP if group_only else None
        return self.graph.parents_of(node, kind)

    def has_cycle(self, start: Entity, group_only: bool = True) -> CycleStatus:
        """Check whether any node reappears in its own ancestor chain.

        The walk is depth first with the current path on a stack. A node
        whose whole ancestor subtree was walked without a cycle is
        remembered with the length of its longest ancestor chain, so later
        paths reaching it again (diamonds, ladders) are resolved without
        walking it twice. Subtrees cut off by ``max_depth`` are only walked
        again when reached at a smaller depth.

        Args:
            start: Node to walk upwards from.
            group_only: Follow only Group-typed parents (hierarchy cycles)
                instead of all parents (permission inheritance cycles).

        Returns:
            CycleStatus of the walk.
        """
        exceeded = False
        # node id -> (depth walked at, longest ancestor chain or None if cut off)
        finished: Dict[int, Tuple[int, Optional[int]]] = {}
        on_path = {start.id}
        stack = [_Frame(start, 0, iter(self._parents(start, group_only)))]

        while stack:
            frame = stack[-1]
            parent = next(frame.parents, None)
            if parent is None:
                stack.pop()
                on_path.discard(frame.node.id)
                height = frame.height if frame.complete else None
                finished[frame.node.id] = (frame.depth, height)
                if stack:
                    stack[-1].absorb(height)
                continue

            if parent.id in on_path:
                return CycleStatus.CYCLE
            depth = frame.depth + 1
            if depth > self.max_depth:
                exceeded = True
                frame.complete = False
                continue

            seen = finished.get(parent.id)
            if seen is not None:
                seen_depth, seen_height = seen
                if seen_height is not None:
                    if depth + seen_height > self.max_depth:
                        exceeded = True
                    frame.absorb(seen_height)
                    continue
                if depth >= seen_depth:
                    exceeded = True
                    frame.complete = False
                    continue

            on_path.add(parent.id)
            stack.append(_Frame(parent, depth, iter(self._parents(parent, group_only))))

        if exceeded:
            logger.debug(
                "Traversal from %s exceeded max depth %d", start, self.max_depth,
            )
            return CycleStatus.DEPTH_EXCEEDED
        return CycleStatus.NO_CYCLE

    def would_create_cycle(
        self,
        node: Entity,
        candidate_parent: Entity,
        group_only: bool = False,
    ) -> CycleStatus:
        """Check whether attaching ``candidate_parent`` to ``node`` closes a loop.

        Self-parenting and reappearance are only detected for nodes with an
        assigned identifier: an unpersisted node cannot be anyone's ancestor.
        """
        if node.is_persisted and candidate_parent.id == node.id:
            return CycleStatus.CYCLE

        visited = {candidate_parent.id}
        frontier = [candidate_parent]
        level = 0
        while frontier:
            if level > self.max_depth:
                return CycleStatus.DEPTH_EXCEEDED
            next_frontier: List[Entity] = []
            for current in frontier:
                if node.is_persisted and current.id == node.id:
                    return CycleStatus.CYCLE
                for parent in self._parents(current, group_only):
                    if parent.id not in visited:
                        visited.add(parent.id)
                        next_frontier.append(parent)
            frontier = next_frontier
            level += 1
        return CycleStatus.NO_CYCLE

    def missing_back_references(
        self, entity: Entity,
    ) -> List[Tuple[str, Entity]]:
        """List asymmetric edges touching ``entity``.

        Returns:
            ``("child", child)`` when a child does not list ``entity`` as a
            parent, ``("parent", parent)`` when a parent does not list it
            as a child.
        """
        missing: List[Tuple[str, Entity]] = []
        for child in self.graph.children_of(entity):
            if entity.id not in child.parent_ids:
                missing.append(("child", child))
        for parent in self.graph.parents_of(entity):
            if entity.id not in parent.child_ids:
                missing.append(("parent", parent))
        return missing


__all__ = [
    "EntityGraph",
    "HierarchyChecker",
    "entity_from_dict",
]
