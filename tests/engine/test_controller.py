import asyncio

import pytest

from bakerst.app.phase import ItemState, Phase
from bakerst.config.models import InstallerSettings
from bakerst.engine import controller as controller_mod
from bakerst.engine.controller import Installer, Intent
from bakerst.manifest.models import ManifestFeature, ManifestImage, ManifestSecret, ReleaseManifest
from bakerst.observers.dispatcher import EventBus
from bakerst.observers.events import HealthFailed, PodHealth, PullCompleted


class Capture:
    def __init__(self):
        self.events = []

    def notify(self, ev):
        self.events.append(ev)


class FakeCluster:
    def __init__(self):
        self.secrets = {}

    def version(self):
        return "1.29"

    def apply_yaml(self, namespace, text):
        return []

    def create_secret(self, namespace, name, data):
        self.secrets[name] = data

    def create_configmap(self, namespace, name, data):
        pass

    def list_pods(self, namespace, label_selector):
        app = label_selector.split("=", 1)[1]
        return [{
            "metadata": {"name": f"{app}-0"},
            "status": {"phase": "Running", "containerStatuses": [{"ready": True, "image": app}]},
        }]


class FakePuller:
    def __init__(self, fail=()):
        self.fail = set(fail)
        self.pulled = []

    async def pull(self, image):
        self.pulled.append(image)
        if image in self.fail:
            return 1, "permission denied"
        return 0, ""


class InstantClock:
    def __init__(self):
        self.now = 0.0

    def __call__(self):
        return self.now

    async def sleep(self, s):
        self.now += s


@pytest.fixture(autouse=True)
def docker_on_path(monkeypatch):
    monkeypatch.setattr(controller_mod.shutil, "which", lambda name: f"/usr/bin/{name}")


def _manifest(features=()):
    return ReleaseManifest(
        version="1.0",
        images=[
            ManifestImage(component=c, image=f"bakerst-{c}:1.0")
            for c in ("brain", "worker", "gateway", "ui")
        ],
        required_secrets=[ManifestSecret(key="ANTHROPIC_OAUTH_TOKEN", description="OAuth", required=True)],
        optional_features=list(features),
    )


def _installer(manifest=None, cluster_factory=None, puller=None, bus=None):
    clock = InstantClock()
    cluster = FakeCluster()
    return Installer(
        manifest or _manifest(),
        InstallerSettings(namespace="bakerst"),
        cluster_factory=cluster_factory or (lambda: cluster),
        puller=puller or FakePuller(),
        bus=bus,
        health_options={"clock": clock, "sleep": clock.sleep},
    ), cluster


def _enter_secret(inst, value):
    for c in value:
        inst.handle_intent(Intent.CHAR, c)
    inst.handle_intent(Intent.ADVANCE)


async def _settle_and_tick(inst):
    inst.tick()
    await inst.settle()
    inst.tick()


def test_full_install_drives_every_phase():
    cap = Capture()
    puller = FakePuller()
    inst, cluster = _installer(puller=puller, bus=EventBus([cap]))

    async def scenario():
        await _settle_and_tick(inst)
        assert inst.state.phase is Phase.SECRETS
        assert inst.state.cluster_name == "Kubernetes v1.29"

        _enter_secret(inst, "oauth-token")
        assert inst.state.phase is Phase.FEATURES
        inst.handle_intent(Intent.ADVANCE)
        assert inst.state.phase is Phase.CONFIRM
        inst.handle_intent(Intent.ADVANCE)
        assert inst.state.phase is Phase.PULL

        await _settle_and_tick(inst)
        assert inst.state.phase is Phase.DEPLOY
        assert inst.state.pull_progress == (4, 4)

        await _settle_and_tick(inst)
        assert inst.state.phase is Phase.HEALTH
        assert inst.state.deploy_progress == (12, 12)

        await _settle_and_tick(inst)
        assert inst.state.phase is Phase.COMPLETE

    asyncio.run(scenario())

    assert len(puller.pulled) == 4
    assert cluster.secrets["bakerst-brain-secrets"]["ANTHROPIC_OAUTH_TOKEN"] == "oauth-token"
    assert all(r.state is ItemState.DONE for r in inst.state.deploy_statuses)
    assert len(inst.state.pod_statuses) == 6
    assert any(isinstance(e, PullCompleted) for e in cap.events)


def test_preflight_failure_keeps_installer_in_preflight():
    def unreachable():
        raise RuntimeError("connection refused")

    inst, _ = _installer(cluster_factory=unreachable)

    async def scenario():
        await _settle_and_tick(inst)

    asyncio.run(scenario())
    assert inst.state.phase is Phase.PREFLIGHT
    cluster_row = inst.state.preflight_checks[0]
    assert cluster_row.state is ItemState.FAILED
    assert "connection refused" in cluster_row.detail


def test_pull_failures_still_advance():
    inst, _ = _installer(puller=FakePuller(fail={"bakerst-ui:1.0"}))
    inst.state.phase = Phase.PULL

    async def scenario():
        await _settle_and_tick(inst)

    asyncio.run(scenario())
    assert inst.state.phase is Phase.DEPLOY
    row = next(r for r in inst.state.pull_statuses if r.name == "bakerst-ui:1.0")
    assert row.state is ItemState.FAILED
    assert row.detail.startswith("docker config error")


def test_deploy_without_cluster_fails_first_step_and_skips_rest():
    cluster = FakeCluster()
    calls = []

    def flaky():
        calls.append(1)
        if len(calls) > 1:
            raise RuntimeError("kubeconfig vanished")
        return cluster

    inst, _ = _installer(cluster_factory=flaky)

    async def scenario():
        await _settle_and_tick(inst)
        assert inst.state.phase is Phase.SECRETS
        inst.state.phase = Phase.DEPLOY
        await _settle_and_tick(inst)

    asyncio.run(scenario())
    total = len(inst.steps)
    rows = inst.state.deploy_statuses
    assert inst.state.deploy_progress == (1, total)
    assert rows[0].state is ItemState.FAILED
    assert "kubeconfig vanished" in rows[0].detail
    assert all(r.state is ItemState.SKIPPED for r in rows[1:])
    assert inst.state.phase is Phase.HEALTH


def test_coordinator_started_once():
    inst, _ = _installer()
    inst.state.phase = Phase.PULL

    async def scenario():
        inst.tick()
        first = inst._tasks[Phase.PULL]
        inst.tick()
        assert inst._tasks[Phase.PULL] is first
        await inst.settle()

    asyncio.run(scenario())


def test_confirm_back_returns_to_secrets():
    inst, _ = _installer()
    inst.state.phase = Phase.CONFIRM
    inst.handle_intent(Intent.BACK)
    assert inst.state.phase is Phase.SECRETS
    assert inst.state.secret_cursor == 0


def test_feature_intents():
    features = [
        ManifestFeature(id="github", name="GitHub", secrets=["GITHUB_TOKEN"]),
        ManifestFeature(id="browser", name="Browser"),
    ]
    inst, _ = _installer(manifest=_manifest(features))
    inst.state.phase = Phase.SECRETS
    _enter_secret(inst, "tok")
    assert inst.state.phase is Phase.FEATURES

    inst.handle_intent(Intent.DOWN)
    inst.handle_intent(Intent.TOGGLE)
    inst.handle_intent(Intent.UP)
    inst.handle_intent(Intent.CHAR, " ")
    assert [f.enabled for f in inst.state.config.features] == [True, True]

    inst.handle_intent(Intent.ADVANCE)
    assert inst.state.phase is Phase.SECRETS
    _enter_secret(inst, "ghp_x")
    assert inst.state.phase is Phase.CONFIRM


def test_health_failure_recorded():
    inst, _ = _installer()
    pod = PodHealth(name="ui-0", deployment="ui", ready=False, phase="Pending", image="ui", restarts=0, logs_tail="boom")
    inst.apply_event(HealthFailed(unhealthy=(pod,)))
    assert inst.state.health_failed
    assert inst.state.pod_statuses["ui-0"].logs_tail == "boom"
    assert "1 pods" in inst.state.message


def test_snapshot_is_a_copy():
    inst, _ = _installer()
    snap = inst.snapshot()
    snap.config.agent_name = "changed"
    assert inst.state.config.agent_name == "Baker"


class ScriptedFrontend:
    """Feeds intents per phase; idles otherwise."""

    def __init__(self, script):
        self.script = {phase: list(intents) for phase, intents in script.items()}
        self.phases = []
        self._phase = None

    def draw(self, state):
        self._phase = state.phase
        if not self.phases or self.phases[-1] is not state.phase:
            self.phases.append(state.phase)

    async def next_intent(self, timeout):
        queued = self.script.get(self._phase)
        if queued:
            return queued.pop(0)
        await asyncio.sleep(0.001)
        return None


def test_run_loop_until_acknowledged():
    inst, _ = _installer()
    frontend = ScriptedFrontend({
        Phase.SECRETS: [(Intent.CHAR, "t"), (Intent.ADVANCE, "")],
        Phase.FEATURES: [(Intent.ADVANCE, "")],
        Phase.CONFIRM: [(Intent.ADVANCE, "")],
        Phase.COMPLETE: [(Intent.ADVANCE, "")],
    })
    final = asyncio.run(inst.run(frontend))

    assert final.phase is Phase.COMPLETE
    assert final.should_quit
    assert frontend.phases == list(Phase)


def test_quit_stops_loop_immediately():
    inst, _ = _installer()
    frontend = ScriptedFrontend({Phase.PREFLIGHT: [(Intent.QUIT, "")]})
    final = asyncio.run(inst.run(frontend))
    assert final.should_quit
    assert final.phase is Phase.PREFLIGHT
