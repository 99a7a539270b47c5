"""
Node capacity classification - utilization, spinnable pods and overcommit risk
for a single worker node.
"""
import logging
from typing import Any, Dict, Optional

from analysis.feasibility import estimate
from config import DEFAULT_THRESHOLDS
from normalize.quantity import ResourceAsk

logger = logging.getLogger(__name__)


def short_name(node_name: str) -> str:
    """Node name without its domain part"""
    return node_name.split('.', 1)[0]


def _percent(part: int, whole: int) -> float:
    if not whole:
        return 0.0
    return float(part) / float(whole) * 100


def _combined_percent(ask: int, current: int, capacity: int) -> int:
    if not capacity:
        return 0
    return (ask + current) * 100 // capacity


def is_overcommitted(combined_memory_pct: int,
                     combined_cpu_pct: int,
                     cpu_limit_pct: float,
                     memory_limit_pct: float,
                     thresholds: Optional[Dict[str, int]] = None) -> bool:
    """Limits exceed the node, either with the ask added or as things stand.

    Node limit percentages are truncated to whole percent before the
    comparison, so 110.9% CPU is not over a 110 threshold.
    """
    t = thresholds or DEFAULT_THRESHOLDS
    return (
        combined_memory_pct > t['combined_memory_limit_pct']
        or combined_cpu_pct > t['combined_cpu_limit_pct']
        or int(cpu_limit_pct) > t['node_cpu_limit_pct']
        or int(memory_limit_pct) > t['node_memory_limit_pct']
    )


def classify_node(node: Dict[str, Any],
                  ask: ResourceAsk,
                  limit_ask: ResourceAsk,
                  thresholds: Optional[Dict[str, int]] = None) -> Dict[str, Any]:
    """Build the capacity result for one node.

    ``node`` is a node snapshot carrying ``capacity`` and ``allocatable``
    (cpu millicores, memory bytes, pods) and the aggregated consumption
    fields ``cpu_requested``, ``cpu_limit``, ``memory_requested``,
    ``memory_limit`` and ``pod_count``.
    """
    name = node['name']
    capacity = node.get('capacity') or {}
    allocatable = node.get('allocatable') or {}

    cpu_capacity = capacity.get('cpu', 0)
    memory_capacity = capacity.get('memory', 0)
    cpu_allocatable = allocatable.get('cpu', 0)
    memory_allocatable = allocatable.get('memory', 0)
    pods_allocatable = allocatable.get('pods', 0)

    cpu_requested = node.get('cpu_requested', 0)
    cpu_limit = node.get('cpu_limit', 0)
    memory_requested = node.get('memory_requested', 0)
    memory_limit = node.get('memory_limit', 0)
    pod_count = node.get('pod_count', 0)

    cpu_req_pct = _percent(cpu_requested, cpu_allocatable)
    memory_req_pct = _percent(memory_requested, memory_allocatable)
    cpu_limit_pct = _percent(cpu_limit, cpu_allocatable)
    memory_limit_pct = _percent(memory_limit, memory_allocatable)

    remaining_cpu = cpu_allocatable - cpu_requested
    remaining_memory = memory_allocatable - memory_requested

    spinnable, cpu_crunch, memory_crunch = estimate(
        remaining_cpu, remaining_memory, ask.cpu, ask.memory, pods_allocatable
    )

    # A capped estimate ignores the pods already running on the node
    if spinnable == pods_allocatable:
        spinnable -= pod_count
    free_slots = max(0, pods_allocatable - pod_count)
    spinnable = max(0, min(spinnable, free_slots))

    combined_cpu_pct = _combined_percent(limit_ask.cpu, cpu_limit, cpu_capacity)
    combined_memory_pct = _combined_percent(limit_ask.memory, memory_limit, memory_capacity)

    overcommitted = is_overcommitted(
        combined_memory_pct, combined_cpu_pct, cpu_limit_pct, memory_limit_pct, thresholds
    )
    if overcommitted:
        logger.info(f"Node {name} risks limit overcommitment "
                    f"(cpu limits {cpu_limit_pct:.2f}%, memory limits {memory_limit_pct:.2f}%)")

    logger.debug(f"Node {name}: remaining cpu={remaining_cpu}m memory={remaining_memory}B "
                 f"spinnable={spinnable}")

    return {
        'name': name,
        'short_name': short_name(name),
        'cpu_requested_pct': cpu_req_pct,
        'memory_requested_pct': memory_req_pct,
        'cpu_limit_pct': cpu_limit_pct,
        'memory_limit_pct': memory_limit_pct,
        'combined_cpu_limit_pct': combined_cpu_pct,
        'combined_memory_limit_pct': combined_memory_pct,
        'remaining_cpu': remaining_cpu,
        'remaining_memory': remaining_memory,
        'pod_count': pod_count,
        'pods_allocatable': pods_allocatable,
        'spinnable': spinnable,
        'cpu_crunch': cpu_crunch,
        'memory_crunch': memory_crunch,
        'overcommitted': overcommitted,
    }
