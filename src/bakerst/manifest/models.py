# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/bakerst/manifest/models.py

from datetime import datetime, timezone
from typing import Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class _ManifestModel(BaseModel):
    # release-manifest.json uses camelCase keys
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)


class ManifestImage(_ManifestModel):
    component: str
    image: str
    version: str = "latest"
    digest: str = ""
    required: bool = True


class ManifestSecret(_ManifestModel):
    key: str
    description: str
    required: bool = False
    input_type: str = "secret"          # "secret" | "text"
    target_secrets: List[str] = Field(default_factory=list)

    @property
    def is_secret(self) -> bool:
        return self.input_type == "secret"


class ManifestFeature(_ManifestModel):
    id: str
    name: str
    description: str = ""
    default_enabled: bool = False
    secrets: List[str] = Field(default_factory=list)


class ManifestDefaults(_ManifestModel):
    agent_name: str = "Baker"
    namespace: str = "bakerst"
    resource_profile: str = "standard"


class ReleaseManifest(_ManifestModel):
    schema_version: int = 1
    version: str
    date: str = ""
    min_sysadmin_version: str = "0.0.0"
    release_notes: str = ""
    images: List[ManifestImage] = Field(default_factory=list)
    required_secrets: List[ManifestSecret] = Field(default_factory=list)
    optional_features: List[ManifestFeature] = Field(default_factory=list)
    defaults: ManifestDefaults = ManifestDefaults()
    checksums: Dict[str, str] = Field(default_factory=dict)

    def image_for(self, component: str) -> Optional[ManifestImage]:
        """Return the image declared for *component*, if any."""
        for img in self.images:
            if img.component == component:
                return img
        return None

    def has_component(self, component: str) -> bool:
        return self.image_for(component) is not None


def _image(name: str, required: bool) -> ManifestImage:
    return ManifestImage(
        component=name,
        image=f"bakerst-{name}:latest",
        version="latest",
        required=required,
    )


def default_manifest() -> ReleaseManifest:
    """
    Manifest used when no release can be fetched: local ``:latest`` images.
    """
    brain_and_worker = ["bakerst-brain-secrets", "bakerst-worker-secrets"]
    return ReleaseManifest(
        schema_version=1,
        version="local",
        date=datetime.now(timezone.utc).isoformat(),
        release_notes="Local development deployment",
        images=[
            _image("brain", True),
            _image("worker", True),
            _image("ui", True),
            _image("gateway", True),
            _image("sysadmin", False),
            _image("voice", False),
            _image("ext-toolbox", False),
            _image("ext-browser", False),
        ],
        required_secrets=[
            ManifestSecret(
                key="ANTHROPIC_OAUTH_TOKEN",
                description="Anthropic OAuth token for Claude",
                required=True,
                target_secrets=brain_and_worker,
            ),
            ManifestSecret(
                key="ANTHROPIC_API_KEY",
                description="Anthropic API key (fallback if no OAuth token)",
                required=False,
                target_secrets=brain_and_worker,
            ),
            ManifestSecret(
                key="VOYAGE_API_KEY",
                description="Voyage AI API key for embeddings",
                required=False,
                target_secrets=["bakerst-brain-secrets"],
            ),
        ],
        optional_features=[
            ManifestFeature(id="telegram", name="Telegram",
                            description="Telegram bot gateway adapter",
                            secrets=["TELEGRAM_BOT_TOKEN"]),
            ManifestFeature(id="github", name="GitHub",
                            description="GitHub extension for repo access",
                            secrets=["GITHUB_TOKEN"]),
            ManifestFeature(id="perplexity", name="Perplexity",
                            description="Perplexity AI search and research tools",
                            secrets=["PERPLEXITY_API_KEY"]),
            ManifestFeature(id="browser", name="Browser",
                            description="AI-driven browser automation extension"),
            ManifestFeature(id="obsidian", name="Obsidian",
                            description="Obsidian vault extension",
                            secrets=["OBSIDIAN_VAULT_PATH"]),
        ],
        defaults=ManifestDefaults(),
    )
