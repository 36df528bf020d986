"""Tests for validation configuration and the config singleton."""

import pytest

from acsguard.exceptions import ConfigurationError
from acsguard.validation.config import (
    EntityValidationSettings,
    ValidationConfig,
    get_config,
    reset_config,
    set_config,
)


class TestValidationConfigDefaults:
    """Default values."""

    def test_defaults(self):
        """Strict mode on, depth 50, caching on."""
        cfg = ValidationConfig()

        assert cfg.strict_mode is True
        assert cfg.max_validation_depth == 50
        assert cfg.enable_validation_caching is True
        assert cfg.cache_expiration_seconds == 300
        assert cfg.required_roles == ["Administrator", "User", "Guest"]
        assert cfg.admin_role_name == "Administrator"
        assert cfg.system_resource_prefix == "/system/"

    def test_settings_for_unknown_type(self):
        """Types without overrides get default settings."""
        settings = ValidationConfig().settings_for("User")

        assert settings.enable_business_rule_validation is True
        assert settings.skipped_validations == []

    @pytest.mark.parametrize(
        "field", ["max_validation_depth", "max_concurrency", "cache_max_entries"],
    )
    def test_non_positive_bounds_rejected(self, field):
        """Depth, concurrency and cache bounds must be positive."""
        with pytest.raises(ConfigurationError):
            ValidationConfig(**{field: 0})


class TestValidationConfigFromEnv:
    """Environment overrides."""

    def test_reads_prefixed_variables(self, monkeypatch):
        """Scalar fields come from ACSGUARD_VALIDATION_*."""
        monkeypatch.setenv("ACSGUARD_VALIDATION_STRICT_MODE", "false")
        monkeypatch.setenv("ACSGUARD_VALIDATION_MAX_VALIDATION_DEPTH", "7")
        monkeypatch.setenv("ACSGUARD_VALIDATION_REQUIRED_ROLES", "Admin, Ops")
        monkeypatch.setenv("ACSGUARD_VALIDATION_VALIDATION_TIMEOUT_SECONDS", "2.5")

        cfg = ValidationConfig.from_env()

        assert cfg.strict_mode is False
        assert cfg.max_validation_depth == 7
        assert cfg.required_roles == ["Admin", "Ops"]
        assert cfg.validation_timeout_seconds == 2.5

    def test_invalid_integer_falls_back(self, monkeypatch):
        """Unparseable integers keep the default."""
        monkeypatch.setenv("ACSGUARD_VALIDATION_MAX_CONCURRENCY", "many")

        assert ValidationConfig.from_env().max_concurrency == 8


class TestValidationConfigMerge:
    """Merging configurations."""

    def test_scalars_replaced_overrides_merged(self):
        """Per-type overrides for unmentioned types survive a merge."""
        current = ValidationConfig(
            entity_settings={"User": EntityValidationSettings(skipped_validations=["BR001"])},
        )
        incoming = ValidationConfig(
            strict_mode=False,
            max_validation_depth=5,
            entity_settings={"Group": EntityValidationSettings(enable_cascade_validation=False)},
        )

        current.merge(incoming)

        assert current.strict_mode is False
        assert current.max_validation_depth == 5
        assert current.settings_for("User").skipped_validations == ["BR001"]
        assert current.settings_for("Group").enable_cascade_validation is False

    def test_merge_copies_overrides(self):
        """Later changes to the incoming config do not leak."""
        incoming = ValidationConfig(entity_settings={"Role": EntityValidationSettings()})
        current = ValidationConfig()
        current.merge(incoming)

        incoming.entity_settings["Role"].skipped_validations.append("BR003")

        assert current.settings_for("Role").skipped_validations == []


class TestConfigSingleton:
    """get_config / set_config / reset_config."""

    def test_set_and_get(self):
        """An installed config is returned."""
        cfg = ValidationConfig(strict_mode=False)
        set_config(cfg)

        assert get_config() is cfg

    def test_reset_recreates(self):
        """After reset a fresh config is built."""
        cfg = ValidationConfig()
        set_config(cfg)
        reset_config()

        assert get_config() is not cfg
