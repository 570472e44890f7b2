"""Configuration loading: YAML defaults, user overrides, environment secrets."""

from __future__ import annotations

import json
import logging
import os
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Mapping

import pydantic
import yaml

from wattly.config.schema import AppConfig
from wattly.errors import ConfigurationError

logger = logging.getLogger(__name__)

ENV_PREFIX = "WATTLY__"

# Never written to the config_versions snapshots
_SECRET_KEYS = {("delivery", "api_token")}


class ConfigManager:
    """Builds the engine configuration from three layers.

    ``config.defaults.yaml`` is deep-merged with the optional user
    ``config.yaml``; environment variables named ``WATTLY__SECTION__KEY`` are
    applied last so that tokens and IBANs can stay out of the files.
    """

    def __init__(
        self,
        defaults_path: Path | None = None,
        user_path: Path | None = None,
        environ: Mapping[str, str] | None = None,
    ) -> None:
        self._defaults_path = defaults_path or Path("config.defaults.yaml")
        self._user_path = user_path or Path("config.yaml")
        self._environ = os.environ if environ is None else environ
        self._config: AppConfig | None = None

    @property
    def config(self) -> AppConfig:
        if self._config is None:
            raise RuntimeError("Config not loaded. Call load() first.")
        return self._config

    def load(self) -> AppConfig:
        """Merge the layers and validate; raises ConfigurationError."""
        merged = self._load_yaml(self._defaults_path)
        if self._user_path.exists():
            merged = self._deep_merge(merged, self._load_yaml(self._user_path))
        env = self._env_overrides()
        if env:
            merged = self._deep_merge(merged, env)

        try:
            self._config = AppConfig.model_validate(merged)
        except pydantic.ValidationError as exc:
            fields = [".".join(str(p) for p in err["loc"]) for err in exc.errors()]
            raise ConfigurationError(f"Invalid configuration: {', '.join(fields)}", fields=fields) from exc

        logger.info(
            "Configuration loaded from %s (%d environment overrides)",
            self._defaults_path, sum(len(v) for v in env.values()),
        )
        return self._config

    def to_json(self, redact: bool = True) -> str:
        data = self.config.model_dump(mode="json")
        if redact:
            for section, key in _SECRET_KEYS:
                if data.get(section, {}).get(key):
                    data[section][key] = "***"
        return json.dumps(data, indent=2)

    async def save_version(self, db: Any, changed_keys: list[str] | None = None, source: str = "startup") -> int:
        """Snapshot the effective configuration (secrets redacted) in the database."""
        now = datetime.now(timezone.utc).isoformat()
        changed = json.dumps(changed_keys) if changed_keys else None

        async with db.execute(
            """INSERT INTO config_versions (config_json, changed_keys, created_at, source)
               VALUES (?, ?, ?, ?)""",
            (self.to_json(), changed, now, source),
        ) as cursor:
            version_id = cursor.lastrowid
        await db.commit()
        logger.info("Config version %d saved", version_id)
        return version_id  # type: ignore[return-value]

    def _env_overrides(self) -> dict[str, dict[str, str]]:
        overrides: dict[str, dict[str, str]] = {}
        for name, value in self._environ.items():
            if not name.startswith(ENV_PREFIX):
                continue
            parts = name[len(ENV_PREFIX):].lower().split("__")
            if len(parts) != 2 or not all(parts):
                logger.warning("Ignoring malformed config variable %s", name)
                continue
            section, key = parts
            overrides.setdefault(section, {})[key] = value
        return overrides

    @staticmethod
    def _load_yaml(path: Path) -> dict[str, Any]:
        if not path.exists():
            return {}
        try:
            with open(path) as f:
                data = yaml.safe_load(f)
        except yaml.YAMLError as exc:
            raise ConfigurationError(f"Cannot parse {path}: {exc}") from exc
        return data if isinstance(data, dict) else {}

    @staticmethod
    def _deep_merge(base: dict[str, Any], override: dict[str, Any]) -> dict[str, Any]:
        """Recursively merge override into base, returning a new dict."""
        result = dict(base)
        for key, value in override.items():
            if key in result and isinstance(result[key], dict) and isinstance(value, dict):
                result[key] = ConfigManager._deep_merge(result[key], value)
            else:
                result[key] = value
        return result
