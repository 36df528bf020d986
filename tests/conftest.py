# -*- coding: utf-8 -*-
"""Pytest configuration and shared fixtures."""

import os
from datetime import datetime, timezone
from typing import Iterable, List, Optional

import pytest

from acsguard.validation import (
    EntityGraph,
    Group,
    InMemoryPersistenceGateway,
    Role,
    User,
    ValidationConfig,
    ValidationResult,
    ValidationService,
    reset_config,
    reset_validation_service,
    set_config,
)

# Keep environment overrides from leaking into tests
for _name in list(os.environ):
    if _name.startswith("ACSGUARD_VALIDATION_"):
        del os.environ[_name]

FIXED_NOW = datetime(2025, 6, 2, 12, 0, tzinfo=timezone.utc)


# ============================================================================
# Configuration fixtures
# ============================================================================


@pytest.fixture
def config():
    """Default configuration installed as the global singleton."""
    cfg = ValidationConfig()
    set_config(cfg)
    yield cfg
    reset_config()


@pytest.fixture
def lenient_config():
    """Configuration with the optional invariants switched off."""
    cfg = ValidationConfig(strict_mode=False)
    set_config(cfg)
    yield cfg
    reset_config()


@pytest.fixture(autouse=True)
def _reset_singletons():
    """Drop singleton state between tests."""
    yield
    reset_validation_service()
    reset_config()


@pytest.fixture
def fixed_clock():
    """Clock pinned to a Monday noon (UTC)."""
    return lambda: FIXED_NOW


# ============================================================================
# Graph fixtures
# ============================================================================


@pytest.fixture
def admins_ops():
    """Admins lists Ops as a child; Ops does not list Admins as parent."""
    admins = Group(id=1, name="Admins", child_ids={2})
    ops = Group(id=2, name="Ops")
    return admins, ops, EntityGraph([admins, ops])


@pytest.fixture
def role_graph():
    """Roles Administrator/User/Guest/Approver/Requester with one admin user."""
    roles = [
        Role(id=10, name="Administrator"),
        Role(id=11, name="User"),
        Role(id=12, name="Guest"),
        Role(id=13, name="Approver"),
        Role(id=14, name="Requester"),
    ]
    graph = EntityGraph(roles)
    alice = User(id=100, name="alice")
    graph.link(roles[0], alice)
    return graph


@pytest.fixture
def gateway(role_graph):
    """In-memory persistence gateway over the role graph."""
    return InMemoryPersistenceGateway(role_graph)


@pytest.fixture
def service(lenient_config):
    """Service with the default rule set and no collaborators."""
    return ValidationService(config=lenient_config)


@pytest.fixture
def document(tmp_path):
    """Factory writing a graph document to a YAML file."""
    import yaml

    def _write(data, name="graph.yaml"):
        path = tmp_path / name
        path.write_text(yaml.safe_dump(data), encoding="utf-8")
        return path

    return _write


# ============================================================================
# Test utility functions
# ============================================================================


class FakeClock:
    """Manually advanced monotonic clock."""

    def __init__(self):
        self.now = 1000.0

    def __call__(self):
        return self.now

    def advance(self, seconds):
        self.now += seconds


def chain(length: int, start_id: int = 1, cls=Group) -> List:
    """Linked parent chain; element 0 is the root, element -1 the leaf."""
    nodes = [cls(id=start_id + i, name=f"N{start_id + i}") for i in range(length)]
    for parent, child in zip(nodes, nodes[1:]):
        parent.child_ids.add(child.id)
        child.parent_ids.add(parent.id)
    return nodes


def codes(result: ValidationResult) -> List[Optional[str]]:
    """Violation codes in report order."""
    return [v.code for v in result.violations]


def assert_codes(
    result: ValidationResult,
    expected: Iterable[str],
    message: Optional[str] = None,
) -> None:
    """
    Assert that a result carries exactly the expected codes (any order).

    Args:
        result: Result under test
        expected: Expected violation codes
        message: Optional error message
    """
    actual = sorted(c or "" for c in codes(result))
    wanted = sorted(expected)
    if actual != wanted:
        msg = message or f"Codes differ: {actual} != {wanted} ({result.errors})"
        raise AssertionError(msg)

