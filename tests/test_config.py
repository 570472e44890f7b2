"""Tests for configuration loading and validation."""

from __future__ import annotations

from decimal import Decimal
from pathlib import Path

import pydantic
import pytest

from wattly.config.manager import ConfigManager
from wattly.config.schema import AppConfig
from wattly.errors import ConfigurationError


class TestAppConfig:
    def test_default_config_is_valid(self) -> None:
        config = AppConfig()
        assert config.community.timezone == "Europe/Zurich"
        assert config.community.default_distribution_policy == "prorata"
        assert config.allocation.granularity == "month"
        assert config.billing.currency == "CHF"
        assert config.billing.locale == "fr"

    def test_platform_pricing_defaults(self) -> None:
        pricing = AppConfig().platform_billing
        assert pricing.rate_per_kwh == Decimal("0.005")
        assert pricing.minimum_amount == Decimal("49.00")
        assert pricing.vat_rate == Decimal("8.1")
        assert pricing.number_prefix == "WATTLY"

    def test_custom_values(self) -> None:
        config = AppConfig(
            community={"default_distribution_policy": "priority"},
            allocation={"granularity": "interval"},
        )
        assert config.community.default_distribution_policy == "priority"
        assert config.allocation.granularity == "interval"

    def test_unknown_policy_rejected(self) -> None:
        with pytest.raises(pydantic.ValidationError):
            AppConfig(community={"default_distribution_policy": "lottery"})

    def test_unsupported_currency_rejected(self) -> None:
        with pytest.raises(pydantic.ValidationError):
            AppConfig(billing={"currency": "USD"})


class TestConfigManager:
    def test_load_defaults_only(self, tmp_path: Path) -> None:
        defaults_file = tmp_path / "defaults.yaml"
        defaults_file.write_text("billing:\n  payment_term_days: 20\ndb:\n  path: test.db\n")
        mgr = ConfigManager(defaults_path=defaults_file, user_path=tmp_path / "user.yaml")
        config = mgr.load()
        assert config.billing.payment_term_days == 20
        assert config.db.path == "test.db"

    def test_user_overrides(self, tmp_path: Path) -> None:
        defaults_file = tmp_path / "defaults.yaml"
        defaults_file.write_text("billing:\n  payment_term_days: 30\n  locale: fr\n")
        user_file = tmp_path / "user.yaml"
        user_file.write_text("billing:\n  payment_term_days: 10\n")
        mgr = ConfigManager(defaults_path=defaults_file, user_path=user_file)
        config = mgr.load()
        assert config.billing.payment_term_days == 10
        # Sibling keys survive the deep merge
        assert config.billing.locale == "fr"

    def test_environment_overrides_files(self, tmp_path: Path) -> None:
        defaults_file = tmp_path / "defaults.yaml"
        defaults_file.write_text("platform_billing:\n  minimum_amount: '49.00'\n  iban: ''\n")
        environ = {
            "WATTLY__PLATFORM_BILLING__IBAN": "CH4431999123000889012",
            "WATTLY__DELIVERY__API_TOKEN": "s3cret",
            "WATTLY_UNRELATED": "x",
            "WATTLY__BROKEN": "ignored",
        }
        mgr = ConfigManager(defaults_path=defaults_file, user_path=tmp_path / "user.yaml", environ=environ)
        config = mgr.load()
        assert config.platform_billing.iban == "CH4431999123000889012"
        assert config.platform_billing.minimum_amount == Decimal("49.00")
        assert config.delivery.api_token == "s3cret"

    def test_snapshot_redacts_token(self, tmp_path: Path) -> None:
        mgr = ConfigManager(
            defaults_path=tmp_path / "none.yaml",
            user_path=tmp_path / "user.yaml",
            environ={"WATTLY__DELIVERY__API_TOKEN": "s3cret"},
        )
        mgr.load()
        assert "s3cret" not in mgr.to_json()
        assert "s3cret" in mgr.to_json(redact=False)

    def test_invalid_values_are_configuration_errors(self, tmp_path: Path) -> None:
        defaults_file = tmp_path / "defaults.yaml"
        defaults_file.write_text("billing:\n  currency: USD\n")
        mgr = ConfigManager(defaults_path=defaults_file, user_path=tmp_path / "user.yaml", environ={})
        with pytest.raises(ConfigurationError) as exc_info:
            mgr.load()
        assert exc_info.value.details["fields"] == ["billing.currency"]

    def test_unparsable_yaml(self, tmp_path: Path) -> None:
        defaults_file = tmp_path / "defaults.yaml"
        defaults_file.write_text("billing: [unclosed\n")
        with pytest.raises(ConfigurationError):
            ConfigManager(defaults_path=defaults_file, user_path=tmp_path / "user.yaml").load()

    def test_config_before_load_raises(self, tmp_path: Path) -> None:
        mgr = ConfigManager(defaults_path=tmp_path / "a.yaml", user_path=tmp_path / "b.yaml")
        with pytest.raises(RuntimeError):
            _ = mgr.config

    def test_shipped_defaults_file_is_valid(self) -> None:
        defaults = Path(__file__).resolve().parent.parent / "config.defaults.yaml"
        mgr = ConfigManager(defaults_path=defaults, user_path=defaults.parent / "missing.yaml")
        config = mgr.load()
        assert config.api.port == 8080
        assert config.platform_billing.rate_per_kwh == Decimal("0.005")

    @pytest.mark.asyncio
    async def test_save_version(self, config_manager: ConfigManager, db) -> None:
        version_id = await config_manager.save_version(db, ["billing.locale"])
        assert version_id > 0
        async with db.execute("SELECT changed_keys FROM config_versions WHERE id = ?", (version_id,)) as cur:
            row = await cur.fetchone()
        assert "billing.locale" in row[0]
