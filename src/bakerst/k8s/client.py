# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/bakerst/k8s/client.py
from __future__ import annotations

import base64
import logging
from dataclasses import dataclass
from typing import Dict, List, Optional

import yaml
from kubernetes import client, config
from kubernetes.client.rest import ApiException
from kubernetes.config.config_exception import ConfigException
from kubernetes.dynamic import DynamicClient

log = logging.getLogger("bakerst")

FIELD_MANAGER = "bakerst-install"

# kind -> (apiVersion, namespaced)
SUPPORTED_KINDS: Dict[str, tuple[str, bool]] = {
    "Namespace": ("v1", False),
    "Deployment": ("apps/v1", True),
    "Service": ("v1", True),
    "ConfigMap": ("v1", True),
    "Secret": ("v1", True),
    "PersistentVolumeClaim": ("v1", True),
    "ServiceAccount": ("v1", True),
    "Role": ("rbac.authorization.k8s.io/v1", True),
    "RoleBinding": ("rbac.authorization.k8s.io/v1", True),
    "NetworkPolicy": ("networking.k8s.io/v1", True),
}


class ClusterError(RuntimeError):
    pass


class UnsupportedKindError(ClusterError):
    pass


@dataclass
class DeploymentStatus:
    name: str
    desired: int
    ready: int
    image: str


def _label(doc: dict) -> str:
    kind = doc.get("kind") or "Unknown"
    name = (doc.get("metadata") or {}).get("name") or "unnamed"
    return f"{kind}/{name}"


class ClusterClient:
    """
    Thin wrapper around the kubernetes client.

    All calls are blocking; coordinators run them in a worker thread.
    Writes use server-side apply so repeated installs are idempotent.
    """

    def __init__(self, kube_context: Optional[str] = None):
        try:
            config.load_kube_config(context=kube_context)
        except (ConfigException, FileNotFoundError, TypeError) as kube_err:
            try:
                config.load_incluster_config()
            except ConfigException:
                raise ClusterError(f"cannot load kubeconfig: {kube_err}") from kube_err

        self.api_client = client.ApiClient()
        self.core = client.CoreV1Api(self.api_client)
        self.apps = client.AppsV1Api(self.api_client)
        self._dynamic: Optional[DynamicClient] = None

    @property
    def dynamic(self) -> DynamicClient:
        # DynamicClient performs API discovery on construction
        if self._dynamic is None:
            self._dynamic = DynamicClient(self.api_client)
        return self._dynamic

    # ------------------------------------------------------------------
    # Cluster identity
    # ------------------------------------------------------------------
    def version(self) -> str:
        info = client.VersionApi(self.api_client).get_code()
        return f"{info.major}.{info.minor}"

    # ------------------------------------------------------------------
    # Apply
    # ------------------------------------------------------------------
    def apply_document(self, namespace: str, doc: dict) -> str:
        """Server-side apply a single resource document. Returns 'Kind/name'."""
        kind = doc.get("kind", "")
        if kind not in SUPPORTED_KINDS:
            raise UnsupportedKindError(f"unsupported resource kind: {kind or '<none>'}")

        api_version, namespaced = SUPPORTED_KINDS[kind]
        label = _label(doc)
        name = (doc.get("metadata") or {}).get("name")
        if not name:
            raise ClusterError(f"{kind} document has no metadata.name")

        body = dict(doc)
        body.setdefault("apiVersion", api_version)

        resource = self.dynamic.resources.get(api_version=body["apiVersion"], kind=kind)
        kwargs = {"namespace": namespace} if namespaced else {}
        try:
            resource.server_side_apply(
                body=body,
                name=name,
                field_manager=FIELD_MANAGER,
                force_conflicts=True,
                **kwargs,
            )
        except ApiException as e:
            raise ClusterError(f"apply {label} failed: {e.reason} ({e.status})") from e

        log.debug("[k8s] applied %s in %s", label, namespace if namespaced else "<cluster>")
        return label

    def apply_yaml(self, namespace: str, text: str) -> List[str]:
        """Apply every document of a multi-document YAML string."""
        applied: List[str] = []
        try:
            docs = [d for d in yaml.safe_load_all(text) if d]
        except yaml.YAMLError as e:
            raise ClusterError(f"parse YAML document: {e}") from e

        for doc in docs:
            applied.append(self.apply_document(namespace, doc))
        return applied

    def create_namespace(self, name: str) -> None:
        self.apply_document(name, {"apiVersion": "v1", "kind": "Namespace", "metadata": {"name": name}})

    def create_secret(self, namespace: str, name: str, data: Dict[str, str]) -> None:
        encoded = {k: base64.b64encode(v.encode()).decode() for k, v in data.items()}
        self.apply_document(namespace, {
            "apiVersion": "v1",
            "kind": "Secret",
            "type": "Opaque",
            "metadata": {"name": name, "namespace": namespace},
            "data": encoded,
        })

    def create_configmap(self, namespace: str, name: str, data: Dict[str, str]) -> None:
        self.apply_document(namespace, {
            "apiVersion": "v1",
            "kind": "ConfigMap",
            "metadata": {"name": name, "namespace": namespace},
            "data": data,
        })

    def delete_namespace(self, name: str) -> bool:
        """Delete a namespace (cascades). Returns False if it did not exist."""
        try:
            self.core.delete_namespace(name)
        except ApiException as e:
            if e.status == 404:
                return False
            raise ClusterError(f"delete namespace {name} failed: {e.reason}") from e
        return True

    # ------------------------------------------------------------------
    # Pods
    # ------------------------------------------------------------------
    def list_pods(self, namespace: str, label_selector: str) -> List[dict]:
        """Pods as plain JSON dicts (camelCase keys, as kubectl -o json)."""
        resp = self.core.list_namespaced_pod(namespace, label_selector=label_selector)
        return [self.api_client.sanitize_for_serialization(p) for p in resp.items]

    def read_pod_log(self, namespace: str, name: str, tail_lines: int) -> str:
        return self.core.read_namespaced_pod_log(name, namespace, tail_lines=tail_lines)

    def delete_pod(self, namespace: str, name: str, force: bool = True) -> None:
        body = client.V1DeleteOptions(grace_period_seconds=0) if force else None
        self.core.delete_namespaced_pod(name, namespace, body=body)

    # ------------------------------------------------------------------
    # Deployments
    # ------------------------------------------------------------------
    def deployment_replicas(self, namespace: str, name: str) -> tuple[int, int]:
        """(desired, ready) for one deployment; desired defaults to 1 when unset."""
        d = self.apps.read_namespaced_deployment_status(name, namespace)
        status = d.status
        desired = status.replicas if status and status.replicas is not None else 1
        ready = (status.ready_replicas or 0) if status else 0
        return desired, ready

    def deployments_status(self, namespace: str) -> List[DeploymentStatus]:
        resp = self.apps.list_namespaced_deployment(namespace)
        out: List[DeploymentStatus] = []
        for d in resp.items:
            status = d.status
            containers = d.spec.template.spec.containers if d.spec and d.spec.template.spec else []
            out.append(DeploymentStatus(
                name=d.metadata.name,
                desired=(status.replicas or 0) if status else 0,
                ready=(status.ready_replicas or 0) if status else 0,
                image=(containers[0].image or "") if containers else "",
            ))
        return out
