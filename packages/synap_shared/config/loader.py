"""Layered settings resolution for the Synap pipeline.

Later layers win:

1. built-in defaults (``defaults.BUILTIN_DEFAULTS``)
2. the YAML file (``--config``, else ``$SYNAP_CONFIG``, else
   ``~/.config/synap/synap.yaml``)
3. ``SYNAP_*`` environment variables, ``__`` separating nested keys, so
   ``SYNAP_COMPONENTS__SERVICE__DISPATCHER__LANES_PER_SUBSCRIPTION=8`` sets
   ``components.service.dispatcher.lanes_per_subscription``
4. CLI params
"""

from __future__ import annotations

import copy
import json
import os
from pathlib import Path
from typing import Any, Mapping

import yaml

from .defaults import BUILTIN_DEFAULTS
from .models import DEFAULT_CONFIG_PATH, SynapSettings

ENV_PREFIX = "SYNAP_"
CONFIG_PATH_ENV = "SYNAP_CONFIG"


def load_settings(
    *,
    cli_params: Mapping[str, Any] | None = None,
    environ: Mapping[str, str] | None = None,
    config_path: str | Path | None = None,
) -> SynapSettings:
    """Resolve and validate root settings."""
    return SynapSettings.model_validate(
        load_config(cli_params=cli_params, environ=environ, config_path=config_path)
    )


def load_config(
    *,
    cli_params: Mapping[str, Any] | None = None,
    environ: Mapping[str, str] | None = None,
    config_path: str | Path | None = None,
    defaults: Mapping[str, Any] | None = None,
) -> dict[str, Any]:
    """Return the merged, unvalidated configuration mapping."""
    env = os.environ if environ is None else environ
    layers = (
        BUILTIN_DEFAULTS if defaults is None else defaults,
        read_config_file(resolve_config_path(config_path, env)),
        env_overrides(env),
        cli_params or {},
    )
    merged: dict[str, Any] = {}
    for layer in layers:
        merged = deep_merge(merged, layer)
    return merged


def resolve_config_path(
    config_path: str | Path | None, environ: Mapping[str, str]
) -> Path:
    if config_path is not None:
        return Path(config_path)
    from_env = environ.get(CONFIG_PATH_ENV, "").strip()
    return Path(from_env).expanduser() if from_env else DEFAULT_CONFIG_PATH


def read_config_file(path: Path) -> dict[str, Any]:
    """Parse ``path`` as YAML; a missing or empty file contributes nothing."""
    if not path.is_file():
        return {}
    parsed = yaml.safe_load(path.read_text(encoding="utf-8"))
    if parsed is None:
        return {}
    if not isinstance(parsed, Mapping):
        raise ValueError(f"Config file must contain a top-level mapping: {path}")
    return deep_merge({}, parsed)


def env_overrides(environ: Mapping[str, str]) -> dict[str, Any]:
    """Translate ``SYNAP_A__B=value`` variables into ``{"a": {"b": value}}``."""
    tree: dict[str, Any] = {}
    for name, raw in environ.items():
        if not name.startswith(ENV_PREFIX) or name == CONFIG_PATH_ENV:
            continue
        keys = [part.strip().lower() for part in name[len(ENV_PREFIX) :].split("__")]
        keys = [key for key in keys if key]
        if not keys:
            continue
        node = tree
        for key in keys[:-1]:
            if not isinstance(node.get(key), dict):
                node[key] = {}
            node = node[key]
        node[keys[-1]] = parse_env_value(raw)
    return tree


def parse_env_value(raw: str) -> Any:
    """Best-effort typing of an env string: bool, null, JSON list/object, number."""
    text = raw.strip()
    lowered = text.lower()
    if lowered in ("true", "false"):
        return lowered == "true"
    if lowered in ("null", "none"):
        return None
    if text[:1] in ("[", "{"):
        try:
            return json.loads(text)
        except json.JSONDecodeError:
            return raw
    for number in (int, float):
        try:
            return number(text)
        except ValueError:
            continue
    return raw


def deep_merge(base: Mapping[str, Any], override: Mapping[str, Any]) -> dict[str, Any]:
    """Return a new mapping with ``override`` merged recursively over ``base``."""
    result = {str(key): copy.deepcopy(value) for key, value in base.items()}
    for key, value in override.items():
        key = str(key)
        current = result.get(key)
        if isinstance(value, Mapping):
            result[key] = deep_merge(current if isinstance(current, Mapping) else {}, value)
        else:
            result[key] = copy.deepcopy(value)
    return result
