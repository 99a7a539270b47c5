"""
Test fixtures and configuration for pytest
"""
import pytest
from typing import Any, Dict, List, Optional

from normalize.quantity import GIBIBYTE, ResourceAsk


class FakeSource:
    """In-memory cluster source.

    ``pods`` maps (namespace, node_name) -> list of pod dicts.
    """

    def __init__(self, namespaces: List[str], nodes: List[Dict[str, Any]],
                 pods: Optional[Dict[tuple, List[Dict[str, Any]]]] = None,
                 fail_on: Optional[str] = None):
        self.namespaces = namespaces
        self.nodes = nodes
        self.pods = pods or {}
        self.fail_on = fail_on
        self.pod_calls: List[tuple] = []

    def list_namespaces(self):
        return list(self.namespaces)

    def list_nodes(self):
        return list(self.nodes)

    def list_pods(self, namespace, node_name):
        self.pod_calls.append((namespace, node_name))
        if self.fail_on == namespace:
            from metrics.discovery import ClusterSourceError
            raise ClusterSourceError(f"cannot list pods in {namespace}")
        return list(self.pods.get((namespace, node_name), []))


def build_node(name: str,
               cpu: int = 4000,
               memory: int = 8 * GIBIBYTE,
               pods: int = 110,
               role: Optional[str] = "node",
               conditions: Optional[List[Dict[str, str]]] = None,
               capacity: Optional[Dict[str, int]] = None) -> Dict[str, Any]:
    labels = {"kubernetes.io/hostname": name}
    if role:
        labels[f"node-role.kubernetes.io/{role}"] = "true"
    if conditions is None:
        conditions = [
            {"type": "MemoryPressure", "status": "False"},
            {"type": "DiskPressure", "status": "False"},
            {"type": "PIDPressure", "status": "False"},
            {"type": "Ready", "status": "True"},
        ]
    allocatable = {"cpu": cpu, "memory": memory, "pods": pods}
    return {
        "name": name,
        "labels": labels,
        "conditions": conditions,
        "capacity": capacity or dict(allocatable),
        "allocatable": allocatable,
    }


def build_pod(name: str,
              phase: str = "Running",
              containers: Optional[List[Dict[str, Any]]] = None) -> Dict[str, Any]:
    return {
        "name": name,
        "namespace": "default",
        "phase": phase,
        "containers": containers if containers is not None else [],
    }


def container(cpu_req: int = 0, mem_req: int = 0, cpu_lim: int = 0, mem_lim: int = 0) -> Dict[str, Any]:
    return {
        "name": "app",
        "requests": {"cpu": cpu_req, "memory": mem_req},
        "limits": {"cpu": cpu_lim, "memory": mem_lim},
    }


@pytest.fixture
def make_node():
    return build_node


@pytest.fixture
def make_pod():
    return build_pod


@pytest.fixture
def make_container():
    return container


@pytest.fixture
def fake_source_cls():
    return FakeSource


@pytest.fixture
def one_core_ask():
    """1 CPU core and 1 GiB per replica"""
    return ResourceAsk(cpu=1000, memory=GIBIBYTE)


@pytest.fixture
def two_worker_source():
    """Two healthy workers with room for 3 and 2 one-core replicas, plus a master"""
    nodes = [
        build_node("worker-a.example.internal", cpu=3000),
        build_node("worker-b.example.internal", cpu=2000),
        build_node("master-1.example.internal", role="master"),
    ]
    return FakeSource(["default", "kube-system"], nodes)


@pytest.fixture
def mock_prometheus_response():
    """Mock Prometheus instant query response"""
    return {
        "status": "success",
        "data": {
            "resultType": "vector",
            "result": [
                {
                    "metric": {"namespace": "default"},
                    "value": [1704355200, "1"]
                }
            ]
        }
    }
