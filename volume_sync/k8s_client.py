"""
Kubernetes client setup.

Uses the in-cluster service account when running as a pod, otherwise the
default kubeconfig (~/.kube/config).
"""

import logging

from kubernetes import client, config

logger = logging.getLogger(__name__)


def setup_kubernetes_client() -> client.CoreV1Api:
    """
    Load cluster credentials and return a CoreV1Api.

    Raises:
        RuntimeError: If neither in-cluster config nor a kubeconfig is usable
    """
    try:
        config.load_incluster_config()
        logger.info("Loaded in-cluster Kubernetes config")
        return client.CoreV1Api()
    except config.ConfigException as e:
        logger.debug(f"In-cluster config unavailable: {e}")

    try:
        config.load_kube_config()
        logger.info("Loaded Kubernetes config from kubeconfig")
        return client.CoreV1Api()
    except (config.ConfigException, FileNotFoundError) as e:
        raise RuntimeError(f"Could not locate a kubeconfig: {e}") from e
