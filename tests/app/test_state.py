import pytest

from bakerst.app.phase import Phase
from bakerst.app.state import InstallerState
from bakerst.manifest.models import (
    ManifestFeature,
    ManifestImage,
    ManifestSecret,
    ReleaseManifest,
)


def _manifest(features=()):
    return ReleaseManifest(
        version="1.2.0",
        images=[
            ManifestImage(component="brain", image="bakerst-brain:1.2.0"),
            ManifestImage(component="worker", image="bakerst-worker:1.2.0"),
        ],
        required_secrets=[
            ManifestSecret(key="ANTHROPIC_OAUTH_TOKEN", description="OAuth token", required=True),
            ManifestSecret(key="VOYAGE_API_KEY", description="Voyage key"),
        ],
        optional_features=list(features),
    )


def _at_secrets(manifest):
    s = InstallerState.from_manifest(manifest)
    s.advance()
    assert s.phase is Phase.SECRETS
    return s


def _type(s, text):
    for c in text:
        s.append_char(c)
    s.submit_secret()


# ---------------------------------------------------------------------
# Phase order
# ---------------------------------------------------------------------
def test_advance_walks_every_phase_in_order():
    s = InstallerState()
    seen = [s.phase]
    while s.advance():
        seen.append(s.phase)
    assert seen == list(Phase)
    assert len(seen) == Phase.total() == 8


def test_advance_at_complete_is_a_noop():
    s = InstallerState(phase=Phase.COMPLETE)
    assert s.advance() is False
    assert s.phase is Phase.COMPLETE


@pytest.mark.parametrize("phase", [p for p in Phase if p is not Phase.CONFIRM])
def test_back_to_secrets_only_from_confirm(phase):
    s = InstallerState(phase=phase, secret_cursor=2, secret_input="abc")
    assert s.back_to_secrets() is False
    assert s.phase is phase
    assert s.secret_cursor == 2
    assert s.secret_input == "abc"


def test_back_to_secrets_resets_cursor_and_input():
    s = InstallerState(phase=Phase.CONFIRM, secret_cursor=3, secret_input="xyz")
    assert s.back_to_secrets() is True
    assert s.phase is Phase.SECRETS
    assert s.secret_cursor == 0
    assert s.secret_input == ""
    assert s.pending_return is None


# ---------------------------------------------------------------------
# Secrets
# ---------------------------------------------------------------------
def test_required_secret_cannot_be_empty_or_skipped():
    s = _at_secrets(_manifest())
    s.submit_secret()
    assert s.secret_cursor == 0
    assert "required" in s.message

    s.skip_secret()
    assert s.secret_cursor == 0


def test_values_are_copied_into_config_and_optional_can_be_skipped():
    s = _at_secrets(_manifest())
    _type(s, "oauth-123")
    assert s.config.oauth_token == "oauth-123"
    assert s.message is None

    s.skip_secret()
    assert s.config.voyage_api_key is None
    assert s.secret_prompts[1].value is None
    assert s.phase is Phase.FEATURES


def test_backspace_edits_input_buffer():
    s = _at_secrets(_manifest())
    for c in "abcd":
        s.append_char(c)
    s.remove_char()
    assert s.secret_input == "abc"


# ---------------------------------------------------------------------
# Scenario A: no optional features
# ---------------------------------------------------------------------
def test_no_features_passes_straight_to_confirm():
    s = _at_secrets(_manifest())
    assert [p.key for p in s.secret_prompts] == ["ANTHROPIC_OAUTH_TOKEN", "VOYAGE_API_KEY"]

    _type(s, "tok")
    _type(s, "voy")
    assert s.phase is Phase.FEATURES
    assert s.config.features == []

    s.finish_features()
    assert s.phase is Phase.CONFIRM
    assert len(s.config.auth_token) == 64


# ---------------------------------------------------------------------
# Scenario B: feature with two secrets triggers the detour
# ---------------------------------------------------------------------
def _discord():
    return ManifestFeature(id="discord", name="Discord", secrets=["DISCORD_BOT_TOKEN", "DISCORD_GUILD_IDS"])


def test_enabled_feature_detours_through_secrets_to_confirm():
    s = _at_secrets(_manifest([_discord()]))
    _type(s, "tok")
    s.skip_secret()
    assert s.phase is Phase.FEATURES

    s.toggle_feature()
    s.finish_features()

    assert s.phase is Phase.SECRETS
    assert s.pending_return is Phase.CONFIRM
    assert s.secret_cursor == 2
    added = s.secret_prompts[2:]
    assert [p.key for p in added] == ["DISCORD_BOT_TOKEN", "DISCORD_GUILD_IDS"]
    assert all(p.from_feature == "discord" for p in added)
    assert added[1].is_secret is False

    _type(s, "bot-token")
    _type(s, "123,456")

    assert s.phase is Phase.CONFIRM
    assert s.pending_return is None
    feature = s.config.feature("discord")
    assert feature.secrets == [("DISCORD_BOT_TOKEN", "bot-token"), ("DISCORD_GUILD_IDS", "123,456")]
    assert s.config.auth_token


def test_auth_token_generated_once():
    s = _at_secrets(_manifest([_discord()]))
    _type(s, "tok")
    s.skip_secret()
    s.finish_features()
    token = s.config.auth_token

    s.back_to_secrets()
    _type(s, "tok2")
    s.skip_secret()
    s.finish_features()
    assert s.config.auth_token == token


def test_feature_prompts_are_rebuilt_not_appended():
    s = _at_secrets(_manifest([_discord()]))
    _type(s, "tok")
    s.skip_secret()
    s.toggle_feature()
    s.finish_features()
    _type(s, "bot-token")
    _type(s, "1")
    assert s.phase is Phase.CONFIRM

    s.back_to_secrets()
    assert len(s.secret_prompts) == 2

    _type(s, "tok")
    s.skip_secret()
    s.finish_features()

    keys = [p.key for p in s.secret_prompts]
    assert keys.count("DISCORD_BOT_TOKEN") == 1
    # values from the earlier pass are not carried over
    assert s.config.feature("discord").secrets == [("DISCORD_BOT_TOKEN", None), ("DISCORD_GUILD_IDS", None)]


def test_disabling_feature_drops_its_prompts():
    s = _at_secrets(_manifest([_discord()]))
    _type(s, "tok")
    s.skip_secret()
    s.toggle_feature()
    s.finish_features()
    _type(s, "a")
    _type(s, "b")

    s.back_to_secrets()
    _type(s, "tok")
    s.skip_secret()
    s.toggle_feature()
    s.finish_features()
    assert s.phase is Phase.CONFIRM
    assert all(p.from_feature is None for p in s.secret_prompts)


def test_feature_cursor_is_clamped():
    gh = ManifestFeature(id="github", name="GitHub", secrets=["GITHUB_TOKEN"])
    s = InstallerState.from_manifest(_manifest([_discord(), gh]))
    s.phase = Phase.FEATURES
    s.move_feature_cursor(-1)
    assert s.feature_cursor == 0
    s.move_feature_cursor(5)
    assert s.feature_cursor == 1
    s.toggle_feature()
    assert [f.enabled for f in s.config.features] == [False, True]


def test_default_enabled_features_start_enabled():
    f = ManifestFeature(id="browser", name="Browser", default_enabled=True)
    s = InstallerState.from_manifest(_manifest([f]))
    assert s.config.features[0].enabled is True
