# -*- coding: utf-8 -*-
"""
External Collaborators - ACS Guard Domain Validation

The engine reads from, but never writes to, the surrounding service. This
module defines the narrow interfaces it consumes and an in-memory
persistence gateway backed by an ``EntityGraph``:

    - PersistenceGateway: read-only queries for system-wide invariants
      and the unique-name domain rule.
    - PermissionEvaluator: ``has_permission(user_id, uri, verb)``.
    - UserContextProvider: callable returning the calling principal.

System-wide queries are coroutines because they are the only stages with
external latency; the name existence check is synchronous because it runs
inside the per-entity pipeline.
"""

from __future__ import annotations

import logging
from typing import (
    Any, Callable, Dict, Iterable, List, Optional, Protocol, Tuple,
    runtime_checkable,
)

from pydantic import BaseModel, Field

from acsguard.validation.graph import EntityGraph
from acsguard.validation.models import (
    EntityType,
    HttpVerb,
    Resource,
    UserContext,
)

logger = logging.getLogger(__name__)

UserContextProvider = Callable[[], Optional[UserContext]]


@runtime_checkable
class PersistenceGateway(Protocol):
    """Read-only queries against the persisted entity population."""

    async def count_users_with_role(self, role_name: str) -> int:
        ...

    async def list_roles_by_name(self, names: Iterable[str]) -> List[str]:
        ...

    async def list_resources_by_uri_prefix(self, prefix: str) -> List[Resource]:
        ...

    async def has_access_entry(self, resource_uri: str) -> bool:
        ...

    def entity_exists_by_name(
        self,
        entity_type: str,
        name: str,
        scope: Optional[Tuple[str, Any]] = None,
        exclude_id: Optional[int] = None,
        case_insensitive: bool = True,
    ) -> bool:
        ...


@runtime_checkable
class PermissionEvaluator(Protocol):
    """Answers whether a user may use a verb on a resource URI."""

    def has_permission(self, user_id: int, resource_uri: str, verb: HttpVerb) -> bool:
        ...


class AccessEntry(BaseModel):
    """An access-control entry referencing a resource URI."""
    resource_uri: str = Field(..., description="URI of the protected resource")
    entity_id: Optional[int] = Field(None, description="Entity granted or denied")
    http_verb: HttpVerb = Field(default=HttpVerb.GET)
    grant: bool = Field(default=True)


class InMemoryPersistenceGateway:
    """PersistenceGateway over an ``EntityGraph`` and a list of access entries.

    Role membership is the set of Role-typed parents of a User.
    """

    def __init__(
        self,
        graph: Optional[EntityGraph] = None,
        access_entries: Optional[List[AccessEntry]] = None,
    ) -> None:
        self.graph = graph or EntityGraph()
        self.access_entries: List[AccessEntry] = list(access_entries or [])
        self.name_queries = 0

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> InMemoryPersistenceGateway:
        """Build from a graph document with optional ``access_entries``."""
        return cls(
            graph=EntityGraph.from_dict(data),
            access_entries=[
                AccessEntry.model_validate(item)
                for item in data.get("access_entries", [])
            ],
        )

    async def count_users_with_role(self, role_name: str) -> int:
        count = 0
        for node in self.graph:
            if node.type_name != EntityType.USER.value:
                continue
            roles = self.graph.parents_of(node, EntityType.ROLE)
            if any(role.name == role_name for role in roles):
                count += 1
        return count

    async def list_roles_by_name(self, names: Iterable[str]) -> List[str]:
        wanted = set(names)
        return sorted({
            node.name for node in self.graph
            if node.type_name == EntityType.ROLE.value and node.name in wanted
        })

    async def list_resources_by_uri_prefix(self, prefix: str) -> List[Resource]:
        return [
            node for node in self.graph
            if isinstance(node, Resource) and node.uri.startswith(prefix)
        ]

    async def has_access_entry(self, resource_uri: str) -> bool:
        return any(e.resource_uri == resource_uri for e in self.access_entries)

    def entity_exists_by_name(
        self,
        entity_type: str,
        name: str,
        scope: Optional[Tuple[str, Any]] = None,
        exclude_id: Optional[int] = None,
        case_insensitive: bool = True,
    ) -> bool:
        self.name_queries += 1
        wanted = name.lower() if case_insensitive else name
        for node in self.graph:
            if node.type_name != entity_type:
                continue
            if exclude_id is not None and node.id == exclude_id:
                continue
            candidate = node.name.lower() if case_insensitive else node.name
            if candidate != wanted:
                continue
            if scope is not None:
                scope_field, scope_value = scope
                if node.get_field(scope_field) != scope_value:
                    continue
            return True
        return False


__all__ = [
    "AccessEntry",
    "InMemoryPersistenceGateway",
    "PermissionEvaluator",
    "PersistenceGateway",
    "UserContextProvider",
]
