# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/bakerst/deploy/templates.py

import secrets
from pathlib import Path
from typing import Dict

from jinja2 import Environment, FileSystemLoader, StrictUndefined

TEMPLATES_DIR = Path(__file__).resolve().parent / "resources"
OS_FILES_DIR = TEMPLATES_DIR / "os"

NAMESPACE_YAML = "namespace.yaml.j2"
PVCS_YAML = "pvcs.yaml.j2"
RBAC_YAML = "rbac.yaml.j2"
NATS_YAML = "nats.yaml.j2"
QDRANT_YAML = "qdrant.yaml.j2"
BRAIN_YAML = "brain.yaml.j2"
WORKER_YAML = "worker.yaml.j2"
GATEWAY_YAML = "gateway.yaml.j2"
UI_YAML = "ui.yaml.j2"
VOICE_YAML = "voice.yaml.j2"
SYSADMIN_YAML = "sysadmin.yaml.j2"
TOOLBOX_YAML = "toolbox.yaml.j2"
BROWSER_YAML = "browser.yaml.j2"
NETWORK_POLICIES_YAML = "network-policies.yaml.j2"


class TemplateRenderer:
    def __init__(self, templates_dir: Path = TEMPLATES_DIR):
        self.env = Environment(
            loader=FileSystemLoader(str(templates_dir)),
            autoescape=False,
            undefined=StrictUndefined,
            keep_trailing_newline=True,
        )

    def render(self, template_name: str, context: dict) -> str:
        tmpl = self.env.get_template(template_name)
        return tmpl.render(**context)

    def render_string(self, source: str, context: dict) -> str:
        return self.env.from_string(source).render(**context)


_renderer = TemplateRenderer()


def render(template_name: str, context: dict) -> str:
    return _renderer.render(template_name, context)


def os_files() -> Dict[str, str]:
    """Operating-system files shipped to the brain via the bakerst-os ConfigMap."""
    return {
        p.name: p.read_text()
        for p in sorted(OS_FILES_DIR.iterdir())
        if p.is_file()
    }


def mask_secret(value: str) -> str:
    """Mask a secret showing only the last 4 characters."""
    if len(value) <= 4:
        return "****"
    return f"****{value[-4:]}"


def generate_auth_token() -> str:
    """Random 32-byte token, hex encoded (64 chars)."""
    return secrets.token_hex(32)
