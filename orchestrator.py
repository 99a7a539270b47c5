"""Orchestrator: parse asks -> discover cluster -> size nodes -> report.
Estimates how many more replicas of a pod shape the cluster can take. No pods are scheduled.
"""
import argparse
import logging
import os
import tempfile
from datetime import datetime, timezone
from importlib import metadata
from typing import Any, Dict, List, Optional

import yaml

from config import (
    setup_logging, validate_config, load_thresholds, ConfigValidationError,
    get_default_kubeconfig, CLUSTER_SOURCE, SUPPORTED_SOURCES, NODE_HEALTH_POLICY,
    HEALTH_POLICIES, THRESHOLDS_FILE, OUTPUT_PATH, BUILD_DATE,
)
from metrics import discovery as discovery_mod
from metrics.discovery import ClusterSourceError
from analysis.cluster_capacity import build_cluster_report
from normalize.quantity import (
    InvalidAskError, QuantityParseError, parse_ask, validate_request_ask,
)
from report import render_legends, render_report, render_version, report_to_json

logger = logging.getLogger(__name__)

DISTRIBUTION_NAME = "k8s-replica-capacity"


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def _atomic_write(path: str, data: str) -> None:
    dirp = os.path.dirname(path) or '.'
    os.makedirs(dirp, exist_ok=True)
    fd, tmp = tempfile.mkstemp(prefix='.tmp_capacity_', dir=dirp, suffix='.json')
    try:
        with os.fdopen(fd, 'w', encoding='utf-8') as f:
            f.write(data)
        os.replace(tmp, path)
    finally:
        if os.path.exists(tmp):
            os.remove(tmp)


def get_version() -> str:
    try:
        return metadata.version(DISTRIBUTION_NAME)
    except metadata.PackageNotFoundError:
        return "unknown"


def run_once(cpu_request: str,
             memory_request: str,
             cpu_limit: str,
             memory_limit: str,
             replicas: int,
             source=None,
             source_kind: Optional[str] = None,
             kubeconfig: Optional[str] = None,
             thresholds: Optional[Dict[str, int]] = None,
             health_policy: Optional[str] = None) -> Dict[str, Any]:
    """Size the cluster for ``replicas`` more pods of the given shape.

    The asks are parsed before the cluster is contacted, so a bad ask never
    costs an API round trip. ``source`` may be passed directly; otherwise
    one is built from ``source_kind`` and ``kubeconfig``.

    Raises:
        QuantityParseError: CPU ask cannot be parsed
        InvalidAskError: request ask is zero in some dimension
        ClusterSourceError: cluster state cannot be enumerated
    """
    ask = parse_ask(cpu_request, memory_request)
    validate_request_ask(ask)
    limit_ask = parse_ask(cpu_limit, memory_limit)
    logger.info(f"Request ask: cpu={ask.cpu}m memory={ask.memory}B; "
                f"limit ask: cpu={limit_ask.cpu}m memory={limit_ask.memory}B; replicas={replicas}")

    if source is None:
        source = discovery_mod.get_source(source_kind, kubeconfig)

    cluster = discovery_mod.discover_cluster(source)
    report = build_cluster_report(
        cluster['nodes'],
        cluster['namespaces'],
        source.list_pods,
        ask,
        limit_ask,
        replicas,
        thresholds=thresholds,
        health_policy=health_policy,
    )
    report['generated_at'] = _now_iso()
    report['asks'] = {
        'cpu_request': cpu_request,
        'memory_request': memory_request,
        'cpu_limit': cpu_limit,
        'memory_limit': memory_limit,
    }
    logger.info(f"Cluster can take {report['net_replicas']} more replica(s); "
                f"schedulable={report['schedulable']}")
    return report


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Estimate how many replicas of a pod shape the cluster can still schedule."
    )
    parser.add_argument("--kubeconfig", default=get_default_kubeconfig(),
                        help="absolute path to the kubeconfig file (default: $KUBECONFIG or ~/.kube/config)")
    parser.add_argument("--cpureq", default="100m",
                        help="CPU request in m (millicores), or an integer for whole cores")
    parser.add_argument("--memreq", default="1G",
                        help="memory request in K(KB), M(MB), G(GB), T(TB)")
    parser.add_argument("--cpulimit", default="100m",
                        help="CPU limit in m (millicores), or an integer for whole cores")
    parser.add_argument("--memlimit", default="1G",
                        help="memory limit in K(KB), M(MB), G(GB), T(TB)")
    parser.add_argument("--replicas", type=int, default=1,
                        help="number of replicas you may want to deploy")
    parser.add_argument("--source", default=CLUSTER_SOURCE, choices=SUPPORTED_SOURCES,
                        help="where cluster state is read from")
    parser.add_argument("--health-policy", default=NODE_HEALTH_POLICY, choices=HEALTH_POLICIES,
                        help="'last': last node condition decides; 'all': every condition must pass")
    parser.add_argument("--thresholds", default=THRESHOLDS_FILE,
                        help="YAML file overriding the overcommit thresholds")
    parser.add_argument("--output", default=OUTPUT_PATH,
                        help="also write the report as JSON to this path")
    parser.add_argument("--version", action="store_true", help="display version and exit")
    parser.add_argument("--legends", action="store_true", help="print legends and exit")
    return parser


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)

    if args.version:
        print(render_version(get_version(), BUILD_DATE))
        return 0
    if args.legends:
        print(render_legends())
        return 0

    setup_logging()

    try:
        thresholds = load_thresholds(args.thresholds)
        validate_config(source=args.source, health_policy=args.health_policy, thresholds=thresholds)
        logger.info("Configuration validated successfully")
    except (ConfigValidationError, OSError, yaml.YAMLError, ValueError, TypeError) as e:
        logger.error(f"Configuration error: {e}")
        return 1

    try:
        report = run_once(
            args.cpureq, args.memreq, args.cpulimit, args.memlimit, args.replicas,
            source_kind=args.source,
            kubeconfig=args.kubeconfig,
            thresholds=thresholds,
            health_policy=args.health_policy,
        )
    except (QuantityParseError, InvalidAskError) as e:
        logger.error(f"Invalid resource ask: {e}")
        return 1
    except ClusterSourceError as e:
        logger.error(f"Cannot read cluster state: {e}")
        return 1

    print(render_report(report))

    if args.output:
        _atomic_write(args.output, report_to_json(report))
        logger.info(f"Wrote capacity report to {args.output}")

    return 0


if __name__ == '__main__':
    raise SystemExit(main())
