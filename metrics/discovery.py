"""
Cluster discovery - the one place the analysis reads cluster state from.

A source provides:
  - list_namespaces() -> [namespace, ...]
  - list_nodes() -> [{name, labels, conditions, capacity, allocatable}, ...]
  - list_pods(namespace, node_name) -> [{name, namespace, phase, containers}, ...]

Quantities are already normalized: CPU in millicores, memory in bytes.
"""
import logging
from typing import Any, Dict, Optional

from config import CLUSTER_SOURCE, SUPPORTED_SOURCES

logger = logging.getLogger(__name__)


class ClusterSourceError(Exception):
    """Raised when cluster state cannot be enumerated"""
    pass


def get_source(kind: Optional[str] = None, kubeconfig: Optional[str] = None):
    """Build the configured cluster source ("kube" or "prometheus")"""
    kind = (kind or CLUSTER_SOURCE).lower()
    if kind == "kube":
        from metrics.kube_client import KubeSource
        return KubeSource(kubeconfig=kubeconfig)
    if kind == "prometheus":
        from metrics.prometheus_client import PrometheusSource
        return PrometheusSource()
    raise ClusterSourceError(
        f"unknown cluster source '{kind}', expected one of {', '.join(SUPPORTED_SOURCES)}"
    )


def discover_cluster(source) -> Dict[str, Any]:
    """Enumerate namespaces and nodes. Any failure aborts the discovery."""
    namespaces = source.list_namespaces()
    nodes = source.list_nodes()
    logger.info(f"Discovered {len(nodes)} node(s) across {len(namespaces)} namespace(s)")
    return {'namespaces': namespaces, 'nodes': nodes}
