# -*- coding: utf-8 -*-
"""
Validation Configuration - ACS Guard Domain Validation

Centralized configuration for the domain validation engine covering:
- Strict mode (optional invariants: inactive resources, empty groups)
- Graph traversal depth bound
- Validation caching toggle and TTLs
- Bulk fan-out concurrency and call deadline
- System invariant parameters (admin role, required roles, reserved prefix)
- Per-entity-type override settings

All scalar settings can be overridden via environment variables with the
``ACSGUARD_VALIDATION_`` prefix (e.g. ``ACSGUARD_VALIDATION_STRICT_MODE``).

Example:
    >>> from acsguard.validation.config import get_config
    >>> cfg = get_config()
    >>> print(cfg.strict_mode, cfg.max_validation_depth)
"""

from __future__ import annotations

import copy
import logging
import os
import threading
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from acsguard.exceptions import ConfigurationError

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Environment variable prefix
# ---------------------------------------------------------------------------

_ENV_PREFIX = "ACSGUARD_VALIDATION_"

DEFAULT_REQUIRED_ROLES = ("Administrator", "User", "Guest")


# ---------------------------------------------------------------------------
# EntityValidationSettings
# ---------------------------------------------------------------------------


@dataclass
class EntityValidationSettings:
    """Override settings for one entity type.

    Attributes:
        enable_cascade_validation: Also check embedded permissions for
            URI/verb/scheme well-formedness.
        enable_business_rule_validation: Run the business rule stage.
        enable_constraint_validation: Run field constraints and domain rules.
        skipped_validations: Rule identifiers to skip for this type.
            Structural invariants cannot be skipped.
        custom_settings: Free-form values consumed by custom rules.
    """

    enable_cascade_validation: bool = True
    enable_business_rule_validation: bool = True
    enable_constraint_validation: bool = True
    skipped_validations: List[str] = field(default_factory=list)
    custom_settings: Dict[str, Any] = field(default_factory=dict)


# ---------------------------------------------------------------------------
# ValidationConfig
# ---------------------------------------------------------------------------


@dataclass
class ValidationConfig:
    """Complete configuration for the ACS Guard validation engine.

    Attributes:
        strict_mode: Enable optional invariants (inactive resource,
            permanently empty group).
        max_validation_depth: Bound on hierarchy traversal depth.
        validation_timeout_seconds: Default deadline for bulk and
            system-wide validation calls.
        enable_validation_caching: Memoize expensive checks.
        cache_expiration_seconds: TTL for memoized uniqueness checks.
        rule_cache_ttl_seconds: TTL for resolved rule lists per type.
        cache_max_entries: Size bound of the validation cache; the least
            recently used entry is evicted beyond it.
        max_concurrency: Worker bound for bulk validation fan-out.
        admin_role_name: Role name granting business rule bypass and
            counted by the administrator system invariant.
        required_roles: Role names that must exist system-wide.
        system_resource_prefix: URI prefix of protected system resources.
        entity_settings: Per-entity-type overrides keyed by type name.
    """

    # -- Enforcement ---------------------------------------------------------
    strict_mode: bool = True
    max_validation_depth: int = 50
    validation_timeout_seconds: float = 30.0

    # -- Caching -------------------------------------------------------------
    enable_validation_caching: bool = True
    cache_expiration_seconds: int = 300
    rule_cache_ttl_seconds: int = 3600
    cache_max_entries: int = 10000

    # -- Concurrency ---------------------------------------------------------
    max_concurrency: int = 8

    # -- System invariants ---------------------------------------------------
    admin_role_name: str = "Administrator"
    required_roles: List[str] = field(
        default_factory=lambda: list(DEFAULT_REQUIRED_ROLES),
    )
    system_resource_prefix: str = "/system/"

    # -- Per-type overrides --------------------------------------------------
    entity_settings: Dict[str, EntityValidationSettings] = field(
        default_factory=dict,
    )

    def __post_init__(self) -> None:
        if self.max_validation_depth <= 0:
            raise ConfigurationError(
                "max_validation_depth must be positive",
                context={"max_validation_depth": self.max_validation_depth},
            )
        if self.max_concurrency <= 0:
            raise ConfigurationError(
                "max_concurrency must be positive",
                context={"max_concurrency": self.max_concurrency},
            )
        if self.cache_max_entries <= 0:
            raise ConfigurationError(
                "cache_max_entries must be positive",
                context={"cache_max_entries": self.cache_max_entries},
            )

    # ------------------------------------------------------------------
    # Accessors
    # ------------------------------------------------------------------

    def settings_for(self, entity_type: str) -> EntityValidationSettings:
        """Return the override settings for an entity type (defaults if unset)."""
        return self.entity_settings.get(entity_type) or EntityValidationSettings()

    def merge(self, other: ValidationConfig) -> None:
        """Copy scalar settings from ``other`` and merge per-type overrides.

        Existing overrides for types that ``other`` does not mention are
        kept.

        Args:
            other: Configuration carrying the new values.
        """
        self.strict_mode = other.strict_mode
        self.max_validation_depth = other.max_validation_depth
        self.validation_timeout_seconds = other.validation_timeout_seconds
        self.enable_validation_caching = other.enable_validation_caching
        self.cache_expiration_seconds = other.cache_expiration_seconds
        self.rule_cache_ttl_seconds = other.rule_cache_ttl_seconds
        self.cache_max_entries = other.cache_max_entries
        self.max_concurrency = other.max_concurrency
        self.admin_role_name = other.admin_role_name
        self.required_roles = list(other.required_roles)
        self.system_resource_prefix = other.system_resource_prefix
        for type_name, settings in other.entity_settings.items():
            self.entity_settings[type_name] = copy.deepcopy(settings)

    # ------------------------------------------------------------------
    # Factory helpers
    # ------------------------------------------------------------------

    @classmethod
    def from_env(cls) -> ValidationConfig:
        """Build a ValidationConfig from environment variables.

        Every scalar field can be overridden via
        ``ACSGUARD_VALIDATION_<FIELD_UPPER>``. Boolean values accept
        ``true/1/yes`` (case-insensitive). ``REQUIRED_ROLES`` is a
        comma-separated list. Per-type overrides are not read from the
        environment.

        Returns:
            Populated ValidationConfig instance.
        """
        prefix = _ENV_PREFIX

        def _env(name: str) -> Optional[str]:
            return os.environ.get(f"{prefix}{name}")

        def _bool(name: str, default: bool) -> bool:
            val = _env(name)
            if val is None:
                return default
            return val.lower() in ("true", "1", "yes")

        def _int(name: str, default: int) -> int:
            val = _env(name)
            if val is None:
                return default
            try:
                return int(val)
            except ValueError:
                logger.warning(
                    "Invalid integer for %s%s=%s, using default %d",
                    prefix, name, val, default,
                )
                return default

        def _float(name: str, default: float) -> float:
            val = _env(name)
            if val is None:
                return default
            try:
                return float(val)
            except ValueError:
                logger.warning(
                    "Invalid number for %s%s=%s, using default %s",
                    prefix, name, val, default,
                )
                return default

        def _str(name: str, default: str) -> str:
            val = _env(name)
            if val is None or not val.strip():
                return default
            return val

        def _list(name: str, default: List[str]) -> List[str]:
            val = _env(name)
            if val is None:
                return list(default)
            items = [item.strip() for item in val.split(",") if item.strip()]
            return items or list(default)

        config = cls(
            strict_mode=_bool("STRICT_MODE", True),
            max_validation_depth=_int("MAX_VALIDATION_DEPTH", 50),
            validation_timeout_seconds=_float(
                "VALIDATION_TIMEOUT_SECONDS", 30.0,
            ),
            enable_validation_caching=_bool(
                "ENABLE_VALIDATION_CACHING", True,
            ),
            cache_expiration_seconds=_int("CACHE_EXPIRATION_SECONDS", 300),
            rule_cache_ttl_seconds=_int("RULE_CACHE_TTL_SECONDS", 3600),
            cache_max_entries=_int("CACHE_MAX_ENTRIES", 10000),
            max_concurrency=_int("MAX_CONCURRENCY", 8),
            admin_role_name=_str("ADMIN_ROLE_NAME", "Administrator"),
            required_roles=_list(
                "REQUIRED_ROLES", list(DEFAULT_REQUIRED_ROLES),
            ),
            system_resource_prefix=_str("SYSTEM_RESOURCE_PREFIX", "/system/"),
        )

        logger.info(
            "ValidationConfig loaded: strict=%s, max_depth=%d, caching=%s, "
            "cache_ttl=%ds, max_concurrency=%d",
            config.strict_mode,
            config.max_validation_depth,
            config.enable_validation_caching,
            config.cache_expiration_seconds,
            config.max_concurrency,
        )
        return config


# ---------------------------------------------------------------------------
# Thread-safe singleton accessor
# ---------------------------------------------------------------------------

_config_instance: Optional[ValidationConfig] = None
_config_lock = threading.Lock()


def get_config() -> ValidationConfig:
    """Return the singleton ValidationConfig, creating from env if needed."""
    global _config_instance
    if _config_instance is None:
        with _config_lock:
            if _config_instance is None:
                _config_instance = ValidationConfig.from_env()
    return _config_instance


def set_config(config: ValidationConfig) -> None:
    """Replace the singleton ValidationConfig (useful for testing).

    Args:
        config: New configuration to install.
    """
    global _config_instance
    with _config_lock:
        _config_instance = config
    logger.info("ValidationConfig replaced programmatically")


def reset_config() -> None:
    """Reset the singleton (primarily for test teardown)."""
    global _config_instance
    with _config_lock:
        _config_instance = None


__all__ = [
    "EntityValidationSettings",
    "ValidationConfig",
    "get_config",
    "set_config",
    "reset_config",
]
