import logging
import time
from typing import List, Dict, Any, Optional, Tuple

import requests

from config import (
    PROMETHEUS_URL, PROMETHEUS_TIMEOUT_SECONDS,
    PROMETHEUS_RETRY_COUNT, PROMETHEUS_RETRY_BACKOFF_BASE,
)
from metrics.discovery import ClusterSourceError
from normalize.quantity import parse_kube_cpu, parse_kube_memory

logger = logging.getLogger(__name__)


class PrometheusError(ClusterSourceError):
    pass


class PrometheusConnectionError(PrometheusError):
    pass


class PrometheusQueryError(PrometheusError):
    pass


_query_cache: Dict[Tuple[str, str], List[Dict[str, Any]]] = {}


def clear_cache() -> None:
    _query_cache.clear()


def query_instant(promql: str, base_url: Optional[str] = None) -> List[Dict[str, Any]]:
    """
    Query Prometheus `/api/v1/query` and return the `data.result` list.
    Connection failures are retried with exponential backoff; a non-200
    answer or an error payload fails immediately.
    """
    url = f"{(base_url or PROMETHEUS_URL).rstrip('/')}/api/v1/query"
    last_error: Optional[Exception] = None

    for attempt in range(PROMETHEUS_RETRY_COUNT):
        try:
            r = requests.get(url, params={"query": promql}, timeout=PROMETHEUS_TIMEOUT_SECONDS)
        except requests.RequestException as e:
            last_error = e
            delay = PROMETHEUS_RETRY_BACKOFF_BASE * (2 ** attempt)
            logger.warning(f"Prometheus request failed (attempt {attempt + 1}/{PROMETHEUS_RETRY_COUNT}): {e}")
            time.sleep(delay)
            continue

        if r.status_code != 200:
            raise PrometheusQueryError(f"prometheus returned status {r.status_code}: {r.text}")
        data = r.json()
        if data.get("status") != "success":
            raise PrometheusQueryError(f"prometheus error: {data}")
        return data.get("data", {}).get("result", [])

    raise PrometheusConnectionError(f"request failed after {PROMETHEUS_RETRY_COUNT} attempts: {last_error}")


def query_instant_cached(promql: str, base_url: Optional[str] = None) -> List[Dict[str, Any]]:
    key = (base_url or PROMETHEUS_URL, promql)
    if key not in _query_cache:
        _query_cache[key] = query_instant(promql, base_url=base_url)
    return _query_cache[key]


def _sample_value(res: Dict[str, Any]) -> Optional[str]:
    try:
        return res.get("value", [None, None])[1]
    except (IndexError, TypeError):
        return None


def _condition_order(condition: Dict[str, str]) -> Tuple[bool, str]:
    # kubelets report Ready after the pressure conditions
    return condition['type'] == 'Ready', condition['type']


class PrometheusSource:
    """Cluster state rebuilt from kube-state-metrics series.

    Roles come from ``kube_node_role`` and are exposed as
    ``node-role.kubernetes.io/<role>: "true"`` labels.
    """

    def __init__(self, base_url: Optional[str] = None):
        self.base_url = base_url or PROMETHEUS_URL
        clear_cache()

    def _query(self, promql: str) -> List[Dict[str, Any]]:
        return query_instant_cached(promql, base_url=self.base_url)

    def list_namespaces(self) -> List[str]:
        result = self._query('kube_namespace_created')
        return sorted({r.get('metric', {}).get('namespace') for r in result} - {None})

    def _node_resources(self, metric: str) -> Dict[str, Dict[str, int]]:
        out: Dict[str, Dict[str, int]] = {}
        for r in self._query(metric):
            labels = r.get('metric', {})
            node = labels.get('node')
            value = _sample_value(r)
            if not node or value is None:
                continue
            res = out.setdefault(node, {'cpu': 0, 'memory': 0, 'pods': 0})
            resource = labels.get('resource')
            if resource == 'cpu':
                res['cpu'] = parse_kube_cpu(value)
            elif resource == 'memory':
                res['memory'] = parse_kube_memory(value)
            elif resource == 'pods':
                res['pods'] = int(float(value))
        return out

    def list_nodes(self) -> List[Dict[str, Any]]:
        names = sorted({r.get('metric', {}).get('node') for r in self._query('kube_node_info')} - {None})

        labels: Dict[str, Dict[str, str]] = {}
        for r in self._query('kube_node_role'):
            m = r.get('metric', {})
            if m.get('node') and m.get('role'):
                labels.setdefault(m['node'], {})[f"node-role.kubernetes.io/{m['role']}"] = 'true'

        conditions: Dict[str, List[Dict[str, str]]] = {}
        for r in self._query('kube_node_status_condition == 1'):
            m = r.get('metric', {})
            if m.get('node') and m.get('condition'):
                conditions.setdefault(m['node'], []).append({
                    'type': m['condition'],
                    'status': (m.get('status') or 'unknown').capitalize(),
                })

        capacity = self._node_resources('kube_node_status_capacity')
        allocatable = self._node_resources('kube_node_status_allocatable')

        empty = {'cpu': 0, 'memory': 0, 'pods': 0}
        return [{
            'name': name,
            'labels': labels.get(name, {}),
            'conditions': sorted(conditions.get(name, []), key=_condition_order),
            'capacity': capacity.get(name, dict(empty)),
            'allocatable': allocatable.get(name, dict(empty)),
        } for name in names]

    def list_pods(self, namespace: str, node_name: str) -> List[Dict[str, Any]]:
        info = self._query(f'kube_pod_info{{namespace="{namespace}"}}')
        pod_names = [
            r['metric']['pod'] for r in info
            if r.get('metric', {}).get('node') == node_name and r['metric'].get('pod')
        ]
        if not pod_names:
            return []

        phases: Dict[str, str] = {}
        for r in self._query(f'kube_pod_status_phase{{namespace="{namespace}"}} == 1'):
            m = r.get('metric', {})
            if m.get('pod'):
                phases[m['pod']] = m.get('phase')

        containers: Dict[str, Dict[str, Dict[str, Any]]] = {}
        for kind, metric in (('requests', 'kube_pod_container_resource_requests'),
                             ('limits', 'kube_pod_container_resource_limits')):
            for r in self._query(f'{metric}{{namespace="{namespace}"}}'):
                m = r.get('metric', {})
                pod, container, resource = m.get('pod'), m.get('container'), m.get('resource')
                value = _sample_value(r)
                if not pod or not container or value is None:
                    continue
                entry = containers.setdefault(pod, {}).setdefault(container, {
                    'name': container,
                    'requests': {'cpu': 0, 'memory': 0},
                    'limits': {'cpu': 0, 'memory': 0},
                })
                if resource == 'cpu':
                    entry[kind]['cpu'] = parse_kube_cpu(value)
                elif resource == 'memory':
                    entry[kind]['memory'] = parse_kube_memory(value)

        return [{
            'name': pod,
            'namespace': namespace,
            'phase': phases.get(pod, 'Unknown'),
            'containers': list(containers.get(pod, {}).values()),
        } for pod in pod_names]
