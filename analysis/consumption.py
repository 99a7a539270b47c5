"""
Node consumption - sums what live pods already reserve on a node
"""
import logging
from functools import reduce
from typing import Callable, Dict, Iterable, List, Any

from config import INACTIVE_POD_PHASES

logger = logging.getLogger(__name__)

ListPods = Callable[[str, str], List[Dict[str, Any]]]

_EMPTY = {
    'cpu_requested': 0,
    'cpu_limit': 0,
    'memory_requested': 0,
    'memory_limit': 0,
    'pod_count': 0,
}


def is_live(pod: Dict[str, Any]) -> bool:
    """A pod counts against the node unless it is pending or terminated"""
    return pod.get('phase') not in INACTIVE_POD_PHASES


def _add_pod(totals: Dict[str, int], pod: Dict[str, Any]) -> Dict[str, int]:
    cpu_req = cpu_lim = mem_req = mem_lim = 0
    for container in pod.get('containers') or []:
        requests = container.get('requests') or {}
        limits = container.get('limits') or {}
        cpu_req += requests.get('cpu') or 0
        mem_req += requests.get('memory') or 0
        cpu_lim += limits.get('cpu') or 0
        mem_lim += limits.get('memory') or 0

    return {
        'cpu_requested': totals['cpu_requested'] + cpu_req,
        'cpu_limit': totals['cpu_limit'] + cpu_lim,
        'memory_requested': totals['memory_requested'] + mem_req,
        'memory_limit': totals['memory_limit'] + mem_lim,
        'pod_count': totals['pod_count'] + 1,
    }


def sum_pod_resources(pods: Iterable[Dict[str, Any]]) -> Dict[str, int]:
    """Fold live pods into request/limit totals and a pod count"""
    return reduce(_add_pod, (p for p in pods if is_live(p)), dict(_EMPTY))


def aggregate_node_consumption(node_name: str,
                               namespaces: List[str],
                               list_pods: ListPods) -> Dict[str, int]:
    """Aggregate requests, limits and live pod count for one node.

    ``list_pods(namespace, node_name)`` is called once per namespace in
    order. Errors from it propagate unchanged so that no partial totals
    are ever reported.
    """
    totals = dict(_EMPTY)
    for namespace in namespaces:
        ns_totals = sum_pod_resources(list_pods(namespace, node_name))
        if ns_totals['pod_count']:
            logger.debug(f"Node {node_name}: {ns_totals['pod_count']} live pods in {namespace}")
        totals = {key: totals[key] + ns_totals[key] for key in totals}
    return totals
