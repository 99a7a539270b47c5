"""
Quantity parsing for CPU and memory strings.

Two families live here:
- parse_cpu / parse_memory read the asks typed on the command line
  ("500m", "2", "1G", "512Mi"). CPU errors are fatal, memory errors
  degrade to zero.
- parse_kube_cpu / parse_kube_memory read quantities reported by the
  cluster itself, which may use any Kubernetes quantity notation.
"""
import logging
import math
import re
from typing import NamedTuple, Optional

from kubernetes.utils import parse_quantity

logger = logging.getLogger(__name__)

# 1024-based scale chain. SI and binary suffixes share it.
BYTE = 1
KIBIBYTE = 1 << 10
MEBIBYTE = 1 << 20
GIBIBYTE = 1 << 30
TEBIBYTE = 1 << 40

KILOBYTE = KIBIBYTE
MEGABYTE = MEBIBYTE
GIGABYTE = GIBIBYTE
TERABYTE = TEBIBYTE

MILLICORES_PER_CORE = 1000

_MEMORY_MULTIPLIERS = {
    "B": BYTE,
    "K": KIBIBYTE, "KB": KIBIBYTE, "KI": KIBIBYTE, "KIB": KIBIBYTE,
    "M": MEBIBYTE, "MB": MEBIBYTE, "MI": MEBIBYTE, "MIB": MEBIBYTE,
    "G": GIBIBYTE, "GB": GIBIBYTE, "GI": GIBIBYTE, "GIB": GIBIBYTE,
    "T": TEBIBYTE, "TB": TEBIBYTE, "TI": TEBIBYTE, "TIB": TEBIBYTE,
}

_FLOAT_PREFIX = re.compile(r"^[+-]?([0-9]+\.?[0-9]*|\.[0-9]+)$")
_DIGITS = re.compile(r"[0-9]+")


class QuantityParseError(ValueError):
    """Raised when a CPU quantity cannot be interpreted"""
    pass


def _first_letter(value: str) -> int:
    for i, ch in enumerate(value):
        if ch.isalpha():
            return i
    return -1


def parse_cpu(value: str) -> int:
    """Convert a CPU ask to millicores.

    A bare integer is whole cores ("2" -> 2000). Anything with a unit
    letter keeps only the digits before the first letter as millicores
    ("500m" -> 500). Fractional cores are not accepted.

    Raises:
        QuantityParseError: if the numeric part is missing or not an integer
    """
    data = (value or "").strip()
    n = _first_letter(data)

    if n == -1:
        if not _DIGITS.fullmatch(data):
            raise QuantityParseError(f"cannot parse CPU cores from '{value}'")
        return int(data) * MILLICORES_PER_CORE

    digits = data[:n]
    if not _DIGITS.fullmatch(digits):
        raise QuantityParseError(f"cannot parse CPU millicores from '{value}'")
    return int(digits)


def parse_memory(value: str) -> int:
    """Convert a memory ask to bytes.

    Unparseable, non-positive, out-of-range or unknown-suffix input
    yields 0.
    """
    s = (value or "").strip().upper()
    i = _first_letter(s)
    if i == -1:
        logger.debug(f"Memory quantity '{value}' has no unit, treating as 0")
        return 0

    number, multiple = s[:i], s[i:]
    if not _FLOAT_PREFIX.match(number):
        logger.debug(f"Memory quantity '{value}' has no numeric prefix, treating as 0")
        return 0

    amount = float(number)
    if not math.isfinite(amount) or amount <= 0:
        return 0

    multiplier = _MEMORY_MULTIPLIERS.get(multiple)
    if multiplier is None:
        logger.debug(f"Memory quantity '{value}' has unknown unit '{multiple}', treating as 0")
        return 0
    total = amount * multiplier
    if not math.isfinite(total):
        logger.debug(f"Memory quantity '{value}' is out of range, treating as 0")
        return 0
    return int(total)


def parse_memory_mebibytes(value: str) -> int:
    return parse_memory(value) // MEBIBYTE


def parse_kube_cpu(value: Optional[str]) -> int:
    """Cluster-reported CPU quantity to millicores, rounded up like the API server"""
    if value is None or value == "":
        return 0
    return int(math.ceil(parse_quantity(value) * MILLICORES_PER_CORE))


def parse_kube_memory(value: Optional[str]) -> int:
    """Cluster-reported memory quantity to bytes, rounded up"""
    if value is None or value == "":
        return 0
    return int(math.ceil(parse_quantity(value)))


class InvalidAskError(ValueError):
    """Raised when a resource ask cannot be estimated against"""
    pass


class ResourceAsk(NamedTuple):
    """Per-replica CPU (millicores) and memory (bytes) footprint"""
    cpu: int
    memory: int


def parse_ask(cpu: str, memory: str) -> ResourceAsk:
    return ResourceAsk(parse_cpu(cpu), parse_memory(memory))


def validate_request_ask(ask: ResourceAsk) -> None:
    """Request asks divide the remaining headroom, so both must be positive"""
    if ask.cpu <= 0:
        raise InvalidAskError(f"CPU request must be positive, got {ask.cpu}m")
    if ask.memory <= 0:
        raise InvalidAskError(f"memory request must be positive, got {ask.memory} bytes")
