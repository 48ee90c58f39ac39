"""Merge configuration sources into a validated ``CatalogConfig``."""

from __future__ import annotations

from collections.abc import Mapping as MappingABC
from copy import deepcopy
from typing import Any, Mapping

import yaml
from pydantic import ValidationError

from .exceptions import ConfigError
from .models import CatalogConfig

ENV_PREFIX = "ABCATALOG__"


def resolve_with_precedence(
    *,
    defaults: CatalogConfig,
    file_overrides: Mapping[str, Any] | None = None,
    env_overrides: Mapping[str, Any] | None = None,
) -> CatalogConfig:
    """Layer nested overrides onto the defaults: defaults < file < environment.

    Raises:
        ConfigError: If a source is not a mapping or the merged values fail
            validation.
    """
    merged = defaults.model_dump(mode="python")
    for name, source in (("file", file_overrides), ("environment", env_overrides)):
        if source is None:
            continue
        if not isinstance(source, MappingABC):
            raise ConfigError(f"{name.capitalize()} overrides must be a mapping.")
        merged = _deep_merge(merged, source)

    try:
        return CatalogConfig.model_validate(merged)
    except ValidationError as exc:
        raise ConfigError(f"Invalid configuration values: {exc}") from exc


def parse_env_overrides(env: Mapping[str, str]) -> dict[str, Any]:
    """Collect ``ABCATALOG__SECTION__KEY`` variables into a nested mapping.

    Values are read as YAML scalars so numbers and booleans keep their types;
    anything YAML cannot parse is kept as the raw string.
    """
    overrides: dict[str, Any] = {}
    for key, raw_value in env.items():
        if not key.startswith(ENV_PREFIX):
            continue
        path = [segment.lower() for segment in key[len(ENV_PREFIX) :].split("__") if segment]
        if not path:
            continue
        try:
            value: Any = yaml.safe_load(raw_value)
        except yaml.YAMLError:
            value = raw_value

        node = overrides
        for segment in path[:-1]:
            child = node.get(segment)
            if not isinstance(child, dict):
                child = node[segment] = {}
            node = child
        node[path[-1]] = value
    return overrides


def _deep_merge(base: Mapping[str, Any], overrides: Mapping[str, Any]) -> dict[str, Any]:
    merged: dict[str, Any] = {key: deepcopy(value) for key, value in base.items()}
    for key, value in overrides.items():
        if isinstance(value, MappingABC) and isinstance(merged.get(key), MappingABC):
            merged[key] = _deep_merge(merged[key], value)
        else:
            merged[key] = deepcopy(value)
    return merged


__all__ = ["ENV_PREFIX", "parse_env_overrides", "resolve_with_precedence"]
