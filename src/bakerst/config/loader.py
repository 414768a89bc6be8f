# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/bakerst/config/loader.py

import logging
import os
from pathlib import Path
from typing import Iterable, Mapping, Optional

import yaml

from .models import InstallerSettings

log = logging.getLogger("bakerst")

# env vars the non-interactive installer reads secrets from
BASE_SECRET_KEYS = (
    "ANTHROPIC_OAUTH_TOKEN",
    "ANTHROPIC_API_KEY",
    "VOYAGE_API_KEY",
    "AGENT_NAME",
    "AUTH_TOKEN",
)


def _deep_merge(base: dict, override: dict) -> dict:
    """
    Recursively merge *override* into *base* (mutates base).
    Only overwrites when the override value is non-empty.
    """
    for key, value in override.items():
        if (
            key in base
            and isinstance(base[key], dict)
            and isinstance(value, dict)
        ):
            _deep_merge(base[key], value)
        else:
            if value not in (None, ""):
                base[key] = value
    return base


def _find_secrets_file(config_path: Optional[Path]) -> Path | None:
    """
    Locate a secrets file using this priority:

    1. BAKERST_SECRETS_FILE environment variable (explicit override)
    2. secrets.yaml in the same directory as the installer config
    """
    env = os.environ.get("BAKERST_SECRETS_FILE")
    if env:
        p = Path(env)
        if p.is_file():
            return p
        log.warning("BAKERST_SECRETS_FILE=%s does not exist, skipping", env)
        return None

    if config_path is not None:
        p = config_path.parent / "secrets.yaml"
        if p.is_file():
            return p

    return None


def _load_yaml(path: Path) -> dict:
    """Load a YAML file, expanding ${ENV_VAR} references."""
    raw = path.read_text()
    expanded = os.path.expandvars(raw)
    return yaml.safe_load(expanded) or {}


def load_settings(path: str | Path | None = None, **overrides) -> InstallerSettings:
    """
    Load installer settings.

    The optional YAML file may carry any InstallerSettings field. A secrets
    file (``BAKERST_SECRETS_FILE`` or ``secrets.yaml`` next to the config)
    is deep-merged on top; its top-level keys are treated as secret values
    unless it already has a ``secrets:`` mapping. Keyword overrides (CLI
    flags) win over both; ``None`` overrides are ignored.
    """
    config_path = Path(path) if path else None
    data: dict = {}
    if config_path is not None:
        if not config_path.is_file():
            raise FileNotFoundError(f"config file not found: {config_path}")
        data = _load_yaml(config_path)

    secrets_path = _find_secrets_file(config_path)
    if secrets_path:
        log.debug("Merging secrets from %s", secrets_path)
        secrets = _load_yaml(secrets_path)
        if "secrets" not in secrets:
            secrets = {"secrets": {k: str(v) for k, v in secrets.items()}}
        _deep_merge(data, secrets)

    _deep_merge(data, {k: v for k, v in overrides.items() if v is not None})
    return InstallerSettings.model_validate(data)


def resolve_secret_values(
    settings: InstallerSettings,
    env: Mapping[str, str],
    keys: Iterable[str] = (),
) -> dict[str, str]:
    """
    Secret values for a non-interactive install, limited to the base keys
    plus *keys*: settings file first, environment variables override.
    Empty values are dropped.
    """
    wanted = set(BASE_SECRET_KEYS) | set(keys)
    values = {k: v for k, v in settings.secrets.items() if v and k in wanted}
    for key in wanted:
        if env.get(key):
            values[key] = env[key]
    return values
