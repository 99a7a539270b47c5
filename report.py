"""
Console and JSON rendering of a cluster capacity report.
"""
import json
from typing import Any, Dict, List

from normalize.quantity import parse_memory_mebibytes

RULE = "  +" + "-" * 97 + "+"

NODE_COLUMNS = ("Node", "CpuReq", "MemReq", "CpuLimit", "MemLimit", "Pods",
                "CpuCrunch", "MemCrunch", "Spinnable")

LEGENDS = [
    ("Is Schedulable?", "if 'true', Pods can be spun on worker node with the amount of CPU and Memory requested. False, otherwise."),
    ("Overcommitted Nodes List", "List of nodes which will OverCommit CPU/Memory Limits with the amount of CPU and Memory requested."),
    ("Unhealthy Nodes List", "List of nodes which are not healthy or which reached either disk/memory/cpu load."),
]

SPINNABLE_LEGENDS = [
    ("CpuCrunch", "if 'true', amount of CPU requested is not available on the worker node."),
    ("MemCrunch", "if 'true', amount of Memory requested is not available on the worker node."),
    ("Spinnable", "maximum number of pods that can be spun on worker node with the amount of CPU and Memory requested."),
]

USAGE_LEGENDS = [
    ("Pods", "total number of pods currently running on worker node."),
    ("Nodes", "kubernetes cluster worker node names."),
    ("CpuReq", "amount of CPU allocated on worker node, at present."),
    ("MemReq", "amount of Memory allocated on worker node, at present."),
    ("CpuLimit", "amount of CPU Limit set on worker node, at present."),
    ("MemLimit", "amount of Memory Limit set on worker node, at present."),
]


def _flag(value: bool) -> str:
    return "true" if value else "false"


def format_header() -> List[str]:
    return [
        RULE,
        f"{'Current Capacity Usage Per Node':>40}{'Spinnable Pods':>50}",
        RULE,
        "{:<20} {:>9} {:>9} {:>9} {:>9} {:>6} | {:>10} {:>10} {:>10}".format(*NODE_COLUMNS),
        RULE,
    ]


def format_node_row(result: Dict[str, Any]) -> str:
    return "{:<20} {:>8.2f}% {:>8.2f}% {:>8.2f}% {:>8.2f}% {:>6d} | {:>10} {:>10} {:>10d}".format(
        result['short_name'],
        result['cpu_requested_pct'],
        result['memory_requested_pct'],
        result['cpu_limit_pct'],
        result['memory_limit_pct'],
        result['pod_count'],
        _flag(result['cpu_crunch']),
        _flag(result['memory_crunch']),
        result['spinnable'],
    )


def _pair(left: str, left_value: Any, right: str, right_value: Any) -> str:
    return f"{left + ':':<38}{str(left_value):<14}{right + ':':<30}{right_value}"


def _name_list(title: str, names: List[str]) -> List[str]:
    lines = [f"{title + ':':<38}{len(names)}"]
    lines.extend(f"{'':<16}{name}" for name in names)
    return lines


def _memory_ask(value: str) -> str:
    """Echo a memory ask with the MiB it was read as"""
    if not value:
        return ""
    return f"{value} ({parse_memory_mebibytes(value)}Mi)"


def render_report(report: Dict[str, Any]) -> str:
    asks = report.get('asks', {})
    lines = [""]
    lines.extend(format_header())
    lines.extend(format_node_row(node) for node in report['nodes'])
    lines.append("")

    if report['worker_count'] == 0:
        lines.append(" W: Number of worker nodes are 0!!!")
        lines.append(" W: To use this program either add a worker node or label one of the "
                     "masters with 'node-role.kubernetes.io/node=true'!!!")
        lines.append("")

    lines.append(_pair("Number of Master Nodes", report['master_count'],
                       "Number of worker nodes", report['worker_count']))
    if report.get('unknown_role_count'):
        lines.append(f"{'Nodes without a role label:':<38}{report['unknown_role_count']}")
    lines.append(_pair("Memory Request", _memory_ask(asks.get('memory_request', '')),
                       "Memory Limit", _memory_ask(asks.get('memory_limit', ''))))
    lines.append(_pair("CPU Request", asks.get('cpu_request', ''),
                       "CPU Limit", asks.get('cpu_limit', '')))
    lines.append(_pair("Replica Requested", report['requested_replicas'],
                       "Is Schedulable?", "True" if report['schedulable'] else "False"))
    lines.append("")
    lines.extend(_name_list("Nodes With OverCommitted CPU/Memory", report['overcommitted_nodes']))
    lines.append("")
    lines.extend(_name_list("Unhealthy Nodes", report['unhealthy_nodes']))
    lines.append("")
    return "\n".join(lines)


def _legend_block(title: str, entries) -> List[str]:
    lines = [title, "  +" + "-" * 46 + "+"]
    lines.extend(f"{name + ':':<28}{text}" for name, text in entries)
    return lines


def render_legends() -> str:
    lines = ["", "+++++++ Legends +++++++", ""]
    lines.extend(f"{name + ':':<28}{text}" for name, text in LEGENDS)
    lines.append("")
    lines.extend(_legend_block("Understanding Spinnable Pods", SPINNABLE_LEGENDS))
    lines.append("")
    lines.extend(_legend_block("Understanding Current Capacity Usage Per Node", USAGE_LEGENDS))
    return "\n".join(lines)


def render_version(version: str, build_date: str) -> str:
    return f"version:\t{version}\nbuildDate:\t{build_date}"


def report_to_json(report: Dict[str, Any]) -> str:
    return json.dumps(report, indent=2)
