import logging
from typing import Any, Dict, List, Optional

import urllib3
from kubernetes import client
from kubernetes import config as kube_config
from kubernetes.client.rest import ApiException
from kubernetes.utils import parse_quantity

from config import INACTIVE_POD_PHASES, KUBE_REQUEST_TIMEOUT_SECONDS
from metrics.discovery import ClusterSourceError
from normalize.quantity import parse_kube_cpu, parse_kube_memory


class KubeApiError(ClusterSourceError):
    """Raised when the Kubernetes API cannot be reached or refuses a list call"""
    pass


def _resources(values: Optional[Dict[str, str]]) -> Dict[str, int]:
    values = values or {}
    return {
        'cpu': parse_kube_cpu(values.get('cpu')),
        'memory': parse_kube_memory(values.get('memory')),
    }


def _node_resources(values: Optional[Dict[str, str]]) -> Dict[str, int]:
    values = values or {}
    res = _resources(values)
    pods = values.get('pods')
    res['pods'] = int(parse_quantity(pods)) if pods else 0
    return res


def live_pod_selector(node_name: str) -> str:
    """Field selector for pods on a node that are neither pending nor terminated"""
    phases = ",".join(f"status.phase!={phase}" for phase in INACTIVE_POD_PHASES)
    return f"spec.nodeName={node_name},{phases}"


class KubeSource:
    """Cluster state read through the Kubernetes API"""

    def __init__(self, kubeconfig: Optional[str] = None, core_v1: Optional[client.CoreV1Api] = None):
        self.logger = logging.getLogger(f"{__name__}.{self.__class__.__name__}")
        self.core_v1 = core_v1 or self._connect(kubeconfig)

    def _connect(self, kubeconfig: Optional[str]) -> client.CoreV1Api:
        try:
            if kubeconfig:
                kube_config.load_kube_config(config_file=kubeconfig)
                self.logger.info(f"Loaded kubeconfig from {kubeconfig}")
            else:
                kube_config.load_incluster_config()
                self.logger.info("Using in-cluster service account")
        except (kube_config.ConfigException, OSError) as e:
            raise KubeApiError(f"cannot load cluster credentials: {e}") from e
        return client.CoreV1Api()

    def _call(self, what: str, fn, *args, **kwargs):
        try:
            return fn(*args, _request_timeout=KUBE_REQUEST_TIMEOUT_SECONDS, **kwargs)
        except ApiException as e:
            raise KubeApiError(f"listing {what} failed: {e.status} {e.reason}") from e
        except urllib3.exceptions.HTTPError as e:
            raise KubeApiError(f"listing {what} failed: {e}") from e

    def list_namespaces(self) -> List[str]:
        resp = self._call("namespaces", self.core_v1.list_namespace)
        return [ns.metadata.name for ns in resp.items]

    def list_nodes(self) -> List[Dict[str, Any]]:
        resp = self._call("nodes", self.core_v1.list_node)
        nodes = []
        for n in resp.items:
            status = n.status
            nodes.append({
                'name': n.metadata.name,
                'labels': n.metadata.labels or {},
                'conditions': [
                    {'type': c.type, 'status': c.status}
                    for c in (status.conditions or [])
                ],
                'capacity': _node_resources(status.capacity),
                'allocatable': _node_resources(status.allocatable),
            })
        return nodes

    def list_pods(self, namespace: str, node_name: str) -> List[Dict[str, Any]]:
        resp = self._call(
            f"pods in {namespace}",
            self.core_v1.list_namespaced_pod,
            namespace,
            field_selector=live_pod_selector(node_name),
        )
        pods = []
        for p in resp.items:
            containers = []
            for c in p.spec.containers or []:
                resources = c.resources
                containers.append({
                    'name': c.name,
                    'requests': _resources(resources.requests if resources else None),
                    'limits': _resources(resources.limits if resources else None),
                })
            pods.append({
                'name': p.metadata.name,
                'namespace': namespace,
                'phase': p.status.phase if p.status else None,
                'containers': containers,
            })
        return pods
