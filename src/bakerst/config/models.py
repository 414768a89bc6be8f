# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/bakerst/config/models.py

from typing import Dict, List, Optional
from pydantic import BaseModel, Field


class InstallerSettings(BaseModel):
    """Installer options, from an optional YAML file overridden by CLI flags."""

    namespace: str = "bakerst"
    kube_context: Optional[str] = None          # Kubernetes context to use
    manifest: Optional[str] = None              # local release-manifest.json
    release: Optional[str] = None               # release tag to fetch
    agent_name: Optional[str] = None
    skip_extensions: bool = False
    features: List[str] = Field(default_factory=list)   # feature ids forced on (non-interactive)
    secrets: Dict[str, str] = Field(default_factory=dict)
    verbose: bool = False
