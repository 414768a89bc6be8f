import base64

import pytest
from kubernetes.client.rest import ApiException
from kubernetes.config.config_exception import ConfigException

from bakerst.k8s import client as k8s
from bakerst.k8s.client import ClusterClient, ClusterError, UnsupportedKindError


class FakeResource:
    def __init__(self, kind, calls, fail=False):
        self.kind = kind
        self.calls = calls
        self.fail = fail

    def server_side_apply(self, **kwargs):
        if self.fail:
            raise ApiException(status=422, reason="Unprocessable")
        self.calls.append((self.kind, kwargs))


class FakeResources:
    def __init__(self, calls, fail=False):
        self.calls = calls
        self.fail = fail

    def get(self, api_version, kind):
        return FakeResource(kind, self.calls, self.fail)


class FakeDynamic:
    def __init__(self, fail=False):
        self.calls = []
        self.resources = FakeResources(self.calls, fail)


def _client(fail=False):
    c = ClusterClient.__new__(ClusterClient)
    c._dynamic = FakeDynamic(fail)
    return c


def test_apply_yaml_uses_server_side_apply():
    c = _client()
    text = """
apiVersion: v1
kind: ServiceAccount
metadata:
  name: bakerst-brain
---
apiVersion: rbac.authorization.k8s.io/v1
kind: Role
metadata:
  name: bakerst-brain
"""
    assert c.apply_yaml("bakerst", text) == ["ServiceAccount/bakerst-brain", "Role/bakerst-brain"]
    kind, kwargs = c._dynamic.calls[0]
    assert kind == "ServiceAccount"
    assert kwargs["field_manager"] == "bakerst-install"
    assert kwargs["force_conflicts"] is True
    assert kwargs["namespace"] == "bakerst"


def test_namespace_is_cluster_scoped():
    c = _client()
    c.create_namespace("bakerst")
    kind, kwargs = c._dynamic.calls[0]
    assert kind == "Namespace"
    assert "namespace" not in kwargs


def test_unsupported_kind_rejected():
    c = _client()
    with pytest.raises(UnsupportedKindError):
        c.apply_document("ns", {"apiVersion": "batch/v1", "kind": "CronJob", "metadata": {"name": "x"}})


def test_api_error_becomes_cluster_error():
    c = _client(fail=True)
    with pytest.raises(ClusterError, match="ConfigMap/os"):
        c.create_configmap("ns", "os", {"a": "b"})


def test_secret_data_is_base64():
    c = _client()
    c.create_secret("ns", "bakerst-brain-secrets", {"AUTH_TOKEN": "abc"})
    _, kwargs = c._dynamic.calls[0]
    assert kwargs["body"]["data"]["AUTH_TOKEN"] == base64.b64encode(b"abc").decode()


def test_bad_yaml():
    with pytest.raises(ClusterError):
        _client().apply_yaml("ns", "kind: [unterminated")


def test_no_kubeconfig(monkeypatch):
    def fail(*a, **kw):
        raise ConfigException("no config")

    monkeypatch.setattr(k8s.config, "load_kube_config", fail)
    monkeypatch.setattr(k8s.config, "load_incluster_config", fail)
    with pytest.raises(ClusterError, match="cannot load kubeconfig"):
        ClusterClient()
