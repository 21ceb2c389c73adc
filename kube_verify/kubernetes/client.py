"""Credentials and API handles for the cluster under verification."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Optional

from kubernetes import client as k8s_client
from kubernetes import config as k8s_config

from ..config import Settings

logger = logging.getLogger(__name__)

SERVICE_ACCOUNT_NAMESPACE_FILE = Path("/var/run/secrets/kubernetes.io/serviceaccount/namespace")


def _load_kube_config(settings: Settings) -> bool:
    """Load cluster credentials and return True when running inside a pod."""
    try:
        k8s_config.load_incluster_config()
    except k8s_config.ConfigException:
        pass
    else:
        logger.debug("verifying the cluster this pod runs in")
        return True

    context = settings.kube_context
    if context:
        k8s_config.load_kube_config(context=context)
    else:
        k8s_config.load_kube_config()
    logger.debug("not running in a pod, verifying kubeconfig context %s", context or "(current)")
    return False


class KubernetesClient:
    """Core and batch API handles shared by the verifiers.

    ``in_cluster`` records whether the service account credentials were used,
    which decides where the default namespace comes from.
    """

    def __init__(self, settings: Settings) -> None:
        self.in_cluster = _load_kube_config(settings)
        self.core: k8s_client.CoreV1Api = k8s_client.CoreV1Api()
        self.batch: k8s_client.BatchV1Api = k8s_client.BatchV1Api()


# one client per kubeconfig context for the life of the process
_CLIENT_CACHE: dict[Optional[str], KubernetesClient] = {}


def get_kubernetes_client(settings: Optional[Settings] = None) -> KubernetesClient:
    if settings is None:
        settings = Settings()

    context = settings.kube_context
    if context not in _CLIENT_CACHE:
        _CLIENT_CACHE[context] = KubernetesClient(settings)

    return _CLIENT_CACHE[context]


def current_namespace(settings: Settings, kube: KubernetesClient) -> str:
    """Resolve the namespace to verify when none was given explicitly."""
    if settings.namespace:
        return settings.namespace
    if kube.in_cluster and SERVICE_ACCOUNT_NAMESPACE_FILE.exists():
        namespace = SERVICE_ACCOUNT_NAMESPACE_FILE.read_text(encoding="utf-8").strip()
        if namespace:
            return namespace
    try:
        _, active_context = k8s_config.list_kube_config_contexts()
    except k8s_config.ConfigException:
        return "default"
    if settings.kube_context:
        contexts, _ = k8s_config.list_kube_config_contexts()
        active_context = next((c for c in contexts if c.get("name") == settings.kube_context), active_context)
    context = (active_context or {}).get("context") or {}
    return context.get("namespace") or "default"
