import os
import logging
import sys
from typing import Optional, Dict, Any
from urllib.parse import urlparse

import yaml


# =============================================================================
# Logging Configuration
# =============================================================================
LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO").upper()
LOG_FORMAT: str = os.getenv(
    "LOG_FORMAT",
    "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)


def setup_logging():
    """Configure application-wide logging"""
    level = getattr(logging, LOG_LEVEL, logging.INFO)
    logging.basicConfig(
        level=level,
        format=LOG_FORMAT,
        handlers=[logging.StreamHandler(sys.stdout)]
    )
    # Reduce noise from third-party libraries
    logging.getLogger("urllib3").setLevel(logging.WARNING)
    logging.getLogger("requests").setLevel(logging.WARNING)
    logging.getLogger("kubernetes").setLevel(logging.WARNING)


def _env_bool(name: str, default: bool) -> bool:
    v = os.getenv(name)
    if v is None:
        return default
    return v.lower() in ("1", "true", "yes", "on")


# =============================================================================
# Cluster Data Source Configuration
# =============================================================================
SUPPORTED_SOURCES = ("kube", "prometheus")

# "kube" reads the Kubernetes API, "prometheus" reads kube-state-metrics series
CLUSTER_SOURCE: str = os.getenv("CLUSTER_SOURCE", "kube").lower()
KUBE_REQUEST_TIMEOUT_SECONDS: int = int(os.getenv("KUBE_REQUEST_TIMEOUT_SECONDS", "30"))
# Ignore kubeconfig files and use the pod service account
KUBE_IN_CLUSTER: bool = _env_bool("KUBE_IN_CLUSTER", False)

PROMETHEUS_URL: str = os.getenv("PROMETHEUS_URL", "http://localhost:9090")
PROMETHEUS_TIMEOUT_SECONDS: int = int(os.getenv("PROMETHEUS_TIMEOUT_SECONDS", "30"))
PROMETHEUS_RETRY_COUNT: int = int(os.getenv("PROMETHEUS_RETRY_COUNT", "3"))
PROMETHEUS_RETRY_BACKOFF_BASE: int = int(os.getenv("PROMETHEUS_RETRY_BACKOFF_BASE", "1"))


def get_default_kubeconfig() -> Optional[str]:
    """Kubeconfig location: $KUBECONFIG, then ~/.kube/config, else None

    Returns None when KUBE_IN_CLUSTER is set so the in-cluster service
    account is used.
    """
    if KUBE_IN_CLUSTER:
        return None
    kubeconfig = os.getenv("KUBECONFIG")
    if kubeconfig:
        return kubeconfig
    home = os.getenv("HOME")
    if home:
        return os.path.join(home, ".kube", "config")
    return None


# =============================================================================
# Node Classification Configuration
# =============================================================================
# Nodes carrying this label with value "true" are treated as workers
WORKER_ROLE_LABEL: str = os.getenv("WORKER_ROLE_LABEL", "node-role.kubernetes.io/node")
CONTROL_PLANE_ROLE_LABELS = (
    "node-role.kubernetes.io/master",
    "node-role.kubernetes.io/control-plane",
)

# "last": the last reported condition decides; "all": every condition must pass
HEALTH_POLICIES = ("last", "all")
NODE_HEALTH_POLICY: str = os.getenv("NODE_HEALTH_POLICY", "last").lower()

# Pod phases that do not occupy a node
INACTIVE_POD_PHASES = ("Pending", "Succeeded", "Failed", "Unknown")


# =============================================================================
# Overcommit Thresholds (percent)
# =============================================================================
DEFAULT_THRESHOLDS: Dict[str, int] = {
    # (ask limit + node limits) relative to node capacity
    "combined_memory_limit_pct": 110,
    "combined_cpu_limit_pct": 100,
    # node limits relative to node allocatable
    "node_cpu_limit_pct": 110,
    "node_memory_limit_pct": 100,
}

THRESHOLDS_FILE: Optional[str] = os.getenv("THRESHOLDS_FILE")


def load_thresholds(path: Optional[str] = None) -> Dict[str, int]:
    """Load overcommit thresholds from a YAML file and merge with defaults

    The file holds a mapping, optionally nested under an ``overcommit`` key:

        overcommit:
          combined_cpu_limit_pct: 100
          node_memory_limit_pct: 100
    """
    thresholds = dict(DEFAULT_THRESHOLDS)
    if not path:
        return thresholds

    with open(path, 'r') as f:
        data = yaml.safe_load(f) or {}

    if not isinstance(data, dict):
        raise ConfigValidationError(f"{path} must contain a mapping, got {type(data).__name__}")

    overrides = data.get("overcommit", data)
    for key, value in overrides.items():
        if key not in DEFAULT_THRESHOLDS:
            logging.warning(f"Ignoring unknown threshold '{key}' in {path}")
            continue
        thresholds[key] = int(value)
    return thresholds


# =============================================================================
# Output Configuration
# =============================================================================
# Optional JSON copy of the cluster report
OUTPUT_PATH: Optional[str] = os.getenv("OUTPUT_PATH")

# Injected by the release build
BUILD_DATE: str = os.getenv("BUILD_DATE", "unknown")


__all__ = [
    "LOG_LEVEL",
    "LOG_FORMAT",
    "setup_logging",
    "SUPPORTED_SOURCES",
    "CLUSTER_SOURCE",
    "KUBE_REQUEST_TIMEOUT_SECONDS",
    "KUBE_IN_CLUSTER",
    "PROMETHEUS_URL",
    "PROMETHEUS_TIMEOUT_SECONDS",
    "PROMETHEUS_RETRY_COUNT",
    "PROMETHEUS_RETRY_BACKOFF_BASE",
    "get_default_kubeconfig",
    "WORKER_ROLE_LABEL",
    "CONTROL_PLANE_ROLE_LABELS",
    "HEALTH_POLICIES",
    "NODE_HEALTH_POLICY",
    "INACTIVE_POD_PHASES",
    "DEFAULT_THRESHOLDS",
    "THRESHOLDS_FILE",
    "load_thresholds",
    "OUTPUT_PATH",
    "BUILD_DATE",
    "validate_config",
    "ConfigValidationError",
]


# =============================================================================
# Configuration Validation
# =============================================================================
class ConfigValidationError(Exception):
    """Raised when configuration validation fails"""
    pass


def _validate_positive_int(name: str, value: int) -> None:
    if value <= 0:
        raise ConfigValidationError(f"{name} must be positive, got {value}")


def _validate_url(name: str, value: str) -> None:
    try:
        result = urlparse(value)
        if not all([result.scheme, result.netloc]):
            raise ValueError("Missing scheme or netloc")
        if result.scheme not in ('http', 'https'):
            raise ValueError(f"Invalid scheme: {result.scheme}")
    except Exception as e:
        raise ConfigValidationError(f"{name} is not a valid URL: {value} ({e})")


def _validate_choice(name: str, value: str, choices) -> None:
    if value not in choices:
        raise ConfigValidationError(
            f"{name} must be one of {', '.join(choices)}, got '{value}'"
        )


def _validate_thresholds(thresholds: Dict[str, Any]) -> None:
    for key, value in thresholds.items():
        if value < 0:
            raise ConfigValidationError(f"threshold {key} must not be negative, got {value}")


def validate_config(source: Optional[str] = None,
                    health_policy: Optional[str] = None,
                    thresholds: Optional[Dict[str, Any]] = None) -> None:
    """Validate configuration values on startup

    Command-line overrides for source and health policy are validated in
    place of the environment defaults when given.

    Raises:
        ConfigValidationError: If any configuration value is invalid
    """
    errors = []
    source = source or CLUSTER_SOURCE
    health_policy = health_policy or NODE_HEALTH_POLICY

    try:
        _validate_choice("CLUSTER_SOURCE", source, SUPPORTED_SOURCES)
    except ConfigValidationError as e:
        errors.append(str(e))

    try:
        _validate_choice("NODE_HEALTH_POLICY", health_policy, HEALTH_POLICIES)
    except ConfigValidationError as e:
        errors.append(str(e))

    try:
        _validate_positive_int("KUBE_REQUEST_TIMEOUT_SECONDS", KUBE_REQUEST_TIMEOUT_SECONDS)
    except ConfigValidationError as e:
        errors.append(str(e))

    if source == "prometheus":
        try:
            _validate_positive_int("PROMETHEUS_TIMEOUT_SECONDS", PROMETHEUS_TIMEOUT_SECONDS)
        except ConfigValidationError as e:
            errors.append(str(e))

        try:
            _validate_positive_int("PROMETHEUS_RETRY_COUNT", PROMETHEUS_RETRY_COUNT)
        except ConfigValidationError as e:
            errors.append(str(e))

        try:
            _validate_url("PROMETHEUS_URL", PROMETHEUS_URL)
        except ConfigValidationError as e:
            errors.append(str(e))

    if thresholds is not None:
        try:
            _validate_thresholds(thresholds)
        except ConfigValidationError as e:
            errors.append(str(e))

    if errors:
        raise ConfigValidationError(
            "Configuration validation failed:\n  - " + "\n  - ".join(errors)
        )
