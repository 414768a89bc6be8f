import asyncio

from bakerst.app.state import InstallConfig
from bakerst.deploy.sequencer import run_deploy, run_steps
from bakerst.deploy.steps import DeployStep, StepContext
from bakerst.manifest.models import ReleaseManifest
from bakerst.observers.events import DeploySequenceComplete, DeployStepResult


def _ctx():
    return StepContext(manifest=ReleaseManifest(version="t"), config=InstallConfig(namespace="ns"))


def _ok(calls, name):
    def action(cluster, ctx):
        calls.append(name)
    return action


def _boom(calls, name):
    def action(cluster, ctx):
        calls.append(name)
        raise RuntimeError(f"{name} exploded")
    return action


def test_steps_run_in_order_and_failures_do_not_stop_the_sequence():
    calls, events = [], []
    steps = [
        DeployStep("one", _ok(calls, "one")),
        DeployStep("two", _boom(calls, "two")),
        DeployStep("three", _ok(calls, "three")),
    ]
    results = asyncio.run(run_steps(steps, _ctx(), events.append, cluster_factory=object))

    assert calls == ["one", "two", "three"]
    assert [(r.index, r.name, r.ok) for r in results] == [(0, "one", True), (1, "two", False), (2, "three", True)]
    assert results[1].error == "two exploded"

    assert [type(e) for e in events] == [DeployStepResult] * 3 + [DeploySequenceComplete]
    assert [e.index for e in events[:3]] == [0, 1, 2]


def test_cluster_failure_short_circuits_with_one_failure():
    calls, events = [], []
    steps = [DeployStep("Namespace", _ok(calls, "ns")), DeployStep("Secrets", _ok(calls, "s"))]

    def no_cluster():
        raise RuntimeError("connection refused")

    asyncio.run(run_steps(steps, _ctx(), events.append, cluster_factory=no_cluster))

    assert calls == []
    assert len(events) == 2
    first, done = events
    assert isinstance(first, DeployStepResult)
    assert first.index == 0 and first.name == "Namespace" and not first.ok
    assert "connection refused" in first.error
    assert isinstance(done, DeploySequenceComplete)


def test_run_deploy_reports_every_planned_step():
    applied = []

    class Cluster:
        def apply_yaml(self, namespace, text):
            applied.append(namespace)
            return []

        def create_secret(self, namespace, name, data):
            pass

        def create_configmap(self, namespace, name, data):
            pass

    events = []
    manifest = ReleaseManifest.model_validate({
        "version": "3.0",
        "images": [{"component": c, "image": f"{c}:3"} for c in ("brain", "worker", "gateway", "ui")],
    })
    config = InstallConfig(namespace="bakerst", oauth_token="t", auth_token="x" * 64)
    results = asyncio.run(run_deploy(manifest, config, events.append, cluster_factory=Cluster))

    assert all(r.ok for r in results), [r.error for r in results if not r.ok]
    assert len(results) == 12
    assert isinstance(events[-1], DeploySequenceComplete)
    assert set(applied) == {"bakerst"}
