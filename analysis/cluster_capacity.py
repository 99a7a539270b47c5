"""
Cluster capacity - node health and roles, and the cluster-wide verdict for a
requested replica count.
"""
import logging
from functools import partial, reduce
from typing import Any, Dict, List, Optional

from analysis.consumption import ListPods, aggregate_node_consumption
from analysis.node_capacity import classify_node, short_name
from config import CONTROL_PLANE_ROLE_LABELS, NODE_HEALTH_POLICY, WORKER_ROLE_LABEL
from normalize.quantity import ResourceAsk

logger = logging.getLogger(__name__)

ROLE_WORKER = 'worker'
ROLE_CONTROL_PLANE = 'control-plane'
ROLE_UNKNOWN = 'unknown'


def condition_verdict(condition_type: str, status: str) -> bool:
    """Ready must be True, every pressure-style condition must be False"""
    if condition_type == 'Ready':
        return status == 'True'
    return status == 'False'


def is_node_healthy(conditions: List[Dict[str, str]], policy: Optional[str] = None) -> bool:
    """Evaluate node conditions in the order the node reports them.

    With the ``last`` policy the verdict of the last reported condition
    wins; kubelets list Ready last, so this is effectively a Ready check.
    With ``all`` every condition must pass. A node reporting no conditions
    is healthy under both.
    """
    policy = policy or NODE_HEALTH_POLICY
    verdicts = [condition_verdict(c.get('type'), c.get('status')) for c in conditions or []]
    if not verdicts:
        return True
    if policy == 'all':
        return all(verdicts)
    return verdicts[-1]


def node_role(labels: Dict[str, str], worker_label: Optional[str] = None) -> str:
    labels = labels or {}
    if labels.get(worker_label or WORKER_ROLE_LABEL) == 'true':
        return ROLE_WORKER
    if any(label in labels for label in CONTROL_PLANE_ROLE_LABELS):
        return ROLE_CONTROL_PLANE
    return ROLE_UNKNOWN


def is_schedulable(net_replicas: int, requested_replicas: int) -> bool:
    return net_replicas >= requested_replicas


def _empty_report() -> Dict[str, Any]:
    return {
        'nodes': [],
        'net_replicas': 0,
        'master_count': 0,
        'worker_count': 0,
        'unknown_role_count': 0,
        'overcommitted_nodes': [],
        'unhealthy_nodes': [],
    }


def _fold_node(report: Dict[str, Any],
               node: Dict[str, Any],
               namespaces: List[str],
               list_pods: ListPods,
               ask: ResourceAsk,
               limit_ask: ResourceAsk,
               thresholds: Optional[Dict[str, int]],
               health_policy: Optional[str],
               worker_label: Optional[str]) -> Dict[str, Any]:
    name = node['name']

    if not is_node_healthy(node.get('conditions'), health_policy):
        logger.info(f"Node {name} is unhealthy, skipping")
        report['unhealthy_nodes'].append(short_name(name))
        return report

    role = node_role(node.get('labels'), worker_label)
    if role == ROLE_CONTROL_PLANE:
        report['master_count'] += 1
        return report
    if role == ROLE_UNKNOWN:
        logger.warning(f"Node {name} has no recognised role label, excluded from capacity")
        report['unknown_role_count'] += 1
        return report

    report['worker_count'] += 1
    consumption = aggregate_node_consumption(name, namespaces, list_pods)
    result = classify_node({**node, **consumption}, ask, limit_ask, thresholds)

    report['nodes'].append(result)
    report['net_replicas'] += result['spinnable']
    if result['overcommitted']:
        report['overcommitted_nodes'].append(result['short_name'])
    return report


def build_cluster_report(nodes: List[Dict[str, Any]],
                         namespaces: List[str],
                         list_pods: ListPods,
                         ask: ResourceAsk,
                         limit_ask: ResourceAsk,
                         requested_replicas: int,
                         thresholds: Optional[Dict[str, int]] = None,
                         health_policy: Optional[str] = None,
                         worker_label: Optional[str] = None) -> Dict[str, Any]:
    """Classify every node in order and total the spinnable replicas.

    Only healthy worker nodes are aggregated and contribute capacity.
    Control-plane and unlabelled nodes are counted but not sized.
    """
    step = partial(
        _fold_node,
        namespaces=namespaces,
        list_pods=list_pods,
        ask=ask,
        limit_ask=limit_ask,
        thresholds=thresholds,
        health_policy=health_policy,
        worker_label=worker_label,
    )
    report = reduce(step, nodes, _empty_report())

    if report['worker_count'] == 0:
        logger.warning("Number of worker nodes is 0; label a node with "
                       f"'{worker_label or WORKER_ROLE_LABEL}=true' to size it")

    report['requested_replicas'] = requested_replicas
    report['schedulable'] = is_schedulable(report['net_replicas'], requested_replicas)
    return report
