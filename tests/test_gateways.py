"""Tests for the in-memory persistence gateway."""

import pytest

from acsguard.validation.gateways import (
    InMemoryPersistenceGateway,
    PermissionEvaluator,
    PersistenceGateway,
)
from acsguard.validation.models import HttpVerb


DOCUMENT = {
    "entities": [
        {"type": "Role", "id": 1, "name": "Administrator", "child_ids": [3]},
        {"type": "Role", "id": 2, "name": "Guest"},
        {"type": "User", "id": 3, "name": "Root", "parent_ids": [1],
         "attributes": {"tenant": "acme"}},
        {"type": "Resource", "id": 4, "name": "cfg", "uri": "/system/config"},
        {"type": "Resource", "id": 5, "name": "docs", "uri": "/docs"},
    ],
    "access_entries": [{"resource_uri": "/system/config", "entity_id": 1}],
}


@pytest.fixture
def store():
    return InMemoryPersistenceGateway.from_dict(DOCUMENT)


class TestInMemoryPersistenceGateway:
    """Queries over a graph document."""

    def test_satisfies_protocol(self, store):
        """The in-memory gateway is a PersistenceGateway."""
        assert isinstance(store, PersistenceGateway)
        assert not isinstance(object(), PersistenceGateway)

    @pytest.mark.asyncio
    async def test_role_queries(self, store):
        """Role membership comes from Role parents."""
        assert await store.count_users_with_role("Administrator") == 1
        assert await store.count_users_with_role("Guest") == 0
        assert await store.list_roles_by_name(["Guest", "Auditor"]) == ["Guest"]

    @pytest.mark.asyncio
    async def test_resource_queries(self, store):
        """Prefix listing and access entries."""
        resources = await store.list_resources_by_uri_prefix("/system/")

        assert [r.name for r in resources] == ["cfg"]
        assert await store.has_access_entry("/system/config") is True
        assert await store.has_access_entry("/docs") is False
        assert store.access_entries[0].http_verb is HttpVerb.GET

    def test_entity_exists_by_name(self, store):
        """Name lookups honor kind, case, scope and exclusion."""
        assert store.entity_exists_by_name("User", "root")
        assert not store.entity_exists_by_name("User", "root", case_insensitive=False)
        assert not store.entity_exists_by_name("Role", "Root")
        assert not store.entity_exists_by_name("User", "Root", exclude_id=3)
        assert store.entity_exists_by_name("User", "Root", scope=("tenant", "acme"))
        assert not store.entity_exists_by_name("User", "Root", scope=("tenant", "globex"))
        assert store.name_queries == 6


class TestPermissionEvaluatorProtocol:
    """Structural typing for evaluators."""

    def test_any_has_permission_object(self):
        """Objects with has_permission qualify."""

        class AllowAll:
            def has_permission(self, user_id, resource_uri, verb):
                return True

        assert isinstance(AllowAll(), PermissionEvaluator)
