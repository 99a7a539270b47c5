"""
Feasibility estimation: how many more copies of one pod fit on a node.
"""
from typing import Tuple


def estimate(remaining_cpu: int,
             remaining_memory: int,
             ask_cpu: int,
             ask_memory: int,
             allocatable_pods: int) -> Tuple[int, bool, bool]:
    """Maximum number of additional replicas a node can accept.

    Returns (spinnable, cpu_crunch, memory_crunch).

    Rules, evaluated in order:
    1. Not enough CPU for one replica -> (0, True, False)
    2. Not enough memory for one replica -> (0, False, True)
    3. Otherwise the dimension allowing fewer replicas (floor division)
       binds, and the result is capped at ``allocatable_pods``.
    4. Equal CPU and memory bounds select no binding dimension and end in
       (0, True, True), as does a bound of zero.

    Raises:
        ValueError: if either ask is not positive
    """
    if ask_cpu <= 0 or ask_memory <= 0:
        raise ValueError(
            f"asks must be positive, got cpu={ask_cpu}m memory={ask_memory}B"
        )

    if remaining_cpu < ask_cpu:
        return 0, True, False
    if remaining_memory < ask_memory:
        return 0, False, True

    cpu_bound = remaining_cpu // ask_cpu
    mem_bound = remaining_memory // ask_memory

    if mem_bound > cpu_bound:
        bound = cpu_bound
    elif mem_bound < cpu_bound:
        bound = mem_bound
    else:
        # TODO: a CPU/memory tie is a perfectly balanced fit; decide whether to
        # report the shared bound instead of a double crunch
        return 0, True, True

    if bound >= allocatable_pods:
        return allocatable_pods, False, False
    if bound >= 1:
        return bound, False, False
    return 0, True, True
