"""Configuration management for abcatalog."""

from __future__ import annotations

import os
import textwrap
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Mapping

import yaml

from .exceptions import ConfigError
from .models import CatalogConfig
from .resolver import ENV_PREFIX, parse_env_overrides, resolve_with_precedence

DEFAULT_CONFIG_PATH = Path("~/.abcatalog/config.yaml")
_CONFIG_HEADER = textwrap.dedent(
    """\
    # abcatalog configuration file
    # Generated automatically; manage via `abcatalog config set`.
    """
)


class ConfigManager:
    """Read and write the YAML config file and resolve the effective settings.

    Args:
        config_path: Location of the config file; defaults to
            ``~/.abcatalog/config.yaml``.
        env: Environment consulted for ``ABCATALOG__`` overrides; defaults to
            ``os.environ``.
    """

    def __init__(
        self,
        config_path: Path | None = None,
        *,
        env: Mapping[str, str] | None = None,
    ) -> None:
        self._config_path = (config_path or DEFAULT_CONFIG_PATH).expanduser()
        self._env = env if env is not None else os.environ

    @property
    def config_path(self) -> Path:
        return self._config_path

    def load(self, *, include_env: bool = True) -> CatalogConfig:
        """Return the effective configuration, creating the file on first use.

        Raises:
            ConfigError: If the file is unreadable or a value is invalid.
        """
        self.ensure_exists()
        return resolve_with_precedence(
            defaults=CatalogConfig(),
            file_overrides=self.load_file_overrides(),
            env_overrides=parse_env_overrides(self._env) if include_env else None,
        )

    def load_file_overrides(self) -> dict[str, Any]:
        """Return the raw mapping stored in the config file."""
        if not self._config_path.exists():
            return {}
        try:
            raw = yaml.safe_load(self._config_path.read_text(encoding="utf-8")) or {}
        except yaml.YAMLError as exc:
            raise ConfigError(f"Failed to parse configuration file: {exc}") from exc
        if not isinstance(raw, dict):
            raise ConfigError("Configuration file must contain a mapping at the top level.")
        return raw

    def save(self, config: CatalogConfig | Mapping[str, Any]) -> None:
        """Write ``config`` to disk under the generated header."""
        if isinstance(config, CatalogConfig):
            data = config.model_dump(mode="python")
        else:
            data = dict(config)
        stamp = datetime.now(timezone.utc).isoformat().replace("+00:00", "Z")
        body = yaml.safe_dump(data, sort_keys=False)
        self._config_path.parent.mkdir(parents=True, exist_ok=True)
        self._config_path.write_text(
            f"{_CONFIG_HEADER}# Last updated: {stamp}\n{body}", encoding="utf-8"
        )

    def ensure_exists(self) -> Path:
        """Write the default configuration if no file exists yet."""
        if not self._config_path.exists():
            self.save(CatalogConfig())
        return self._config_path

    def read_text(self) -> str:
        if not self._config_path.exists():
            return ""
        return self._config_path.read_text(encoding="utf-8")


__all__ = [
    "ConfigManager",
    "DEFAULT_CONFIG_PATH",
    "ENV_PREFIX",
    "CatalogConfig",
    "ConfigError",
    "parse_env_overrides",
    "resolve_with_precedence",
]
