# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/bakerst/manifest/loader.py

import json
import logging
from pathlib import Path
from typing import Optional

import requests
from pydantic import ValidationError

from bakerst.manifest.models import ReleaseManifest
from bakerst.utils.retry import retry

log = logging.getLogger("bakerst")

RELEASES_API = "https://api.github.com/repos/The-Baker-Street-Project/baker-street/releases"
MANIFEST_ASSET = "release-manifest.json"
HTTP_TIMEOUT = 15


class ManifestError(RuntimeError):
    pass


def parse_manifest(text: str) -> ReleaseManifest:
    try:
        return ReleaseManifest.model_validate(json.loads(text))
    except (json.JSONDecodeError, ValidationError) as e:
        raise ManifestError(f"invalid release manifest: {e}") from e


def load_manifest_from_file(path: str | Path) -> ReleaseManifest:
    """Load a manifest from a local JSON file."""
    path = Path(path)
    if not path.is_file():
        raise ManifestError(f"manifest file not found: {path}")
    return parse_manifest(path.read_text())


def _release_url(version: Optional[str]) -> str:
    if version:
        return f"{RELEASES_API}/tags/{version}"
    return f"{RELEASES_API}/latest"


@retry(
    retries=3,
    retry_on=(requests.RequestException,),
    on_retry=lambda attempt, exc: log.warning("manifest fetch attempt %d failed: %s", attempt, exc),
)
def _get_json(session: requests.Session, url: str) -> dict:
    resp = session.get(url, timeout=HTTP_TIMEOUT)
    resp.raise_for_status()
    return resp.json()


def fetch_manifest(version: Optional[str] = None, session: Optional[requests.Session] = None) -> ReleaseManifest:
    """
    Fetch ``release-manifest.json`` from a GitHub release.

    version: release tag, or None for the latest release
    """
    session = session or requests.Session()
    session.headers["User-Agent"] = "bakerst-install"

    release = _get_json(session, _release_url(version))
    assets = release.get("assets") or []
    asset = next((a for a in assets if a.get("name") == MANIFEST_ASSET), None)
    if asset is None:
        raise ManifestError(f"{MANIFEST_ASSET} not found in release assets")

    download_url = asset.get("browser_download_url")
    if not download_url:
        raise ManifestError("no download URL for manifest")

    log.debug("Downloading manifest from %s", download_url)
    data = _get_json(session, download_url)
    try:
        return ReleaseManifest.model_validate(data)
    except ValidationError as e:
        raise ManifestError(f"invalid release manifest: {e}") from e
