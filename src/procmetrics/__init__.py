"""procmetrics - per-process memory, processor time and process tree snapshots."""

from procmetrics.capture import Capturer, capture, supported
from procmetrics.duration import parse_duration
from procmetrics.host import capture_host_memory
from procmetrics.models import GeneralInfo, HostMemory, Memory

__all__ = [
    "Capturer",
    "GeneralInfo",
    "HostMemory",
    "Memory",
    "capture",
    "capture_host_memory",
    "parse_duration",
    "supported",
]
