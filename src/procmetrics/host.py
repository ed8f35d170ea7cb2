"""Host-wide memory metrics."""

import logging
import os
import re
from abc import ABC, abstractmethod
from collections.abc import Iterable

import psutil

from procmetrics.config import DEFAULT_CGROUP_ROOT, DEFAULT_PROC_ROOT, Settings
from procmetrics.models import HostMemory
from procmetrics.procfs import read_text
from procmetrics.spawn import read_output

logger = logging.getLogger(__name__)

# cgroup v1 stores "unlimited" as a sentinel near 2**63; anything from 1 EiB up is treated as no limit.
CGROUP_V1_UNLIMITED_THRESHOLD = 2**60


def _meminfo_kibibytes(content: str, name: str) -> int | None:
    match = re.search(rf"^{name}:\s*(\d+)\s*kB", content, re.MULTILINE)
    return int(match[1]) if match else None


def _meminfo_swap(proc_root: str) -> tuple[int | None, int | None]:
    try:
        content = read_text(os.path.join(proc_root, "meminfo"))
    except OSError:
        return None, None
    return _swap_from(content)


def _swap_from(content: str) -> tuple[int | None, int | None]:
    swap_total = _meminfo_kibibytes(content, "SwapTotal")
    if swap_total is None:
        return None, None

    swap_free = _meminfo_kibibytes(content, "SwapFree") or 0
    return swap_total * 1024, (swap_total - swap_free) * 1024


def _stat_value(path: str, name: str) -> int | None:
    try:
        content = read_text(path)
    except OSError:
        return None
    match = re.search(rf"^{name}\s+(\d+)", content, re.MULTILINE)
    return int(match[1]) if match else None


def _clamp(total: int, used: int | None) -> int:
    if used is None or used < 0:
        return 0
    return min(used, total)


class HostMemoryReader(ABC):
    """One source of host memory figures."""

    @abstractmethod
    def supported(self) -> bool:
        """Whether the files or APIs this reader needs are present."""

    @abstractmethod
    def capture(self) -> HostMemory | None:
        """Snapshot, or None when this source has no limit to report."""


class CgroupV2Reader(HostMemoryReader):
    """Container limit and usage from the unified cgroup hierarchy."""

    def __init__(self, cgroup_root: str = DEFAULT_CGROUP_ROOT, proc_root: str = DEFAULT_PROC_ROOT) -> None:
        self._root = cgroup_root.rstrip("/")
        self._proc_root = proc_root

    def _path(self, name: str) -> str:
        return f"{self._root}/{name}"

    def supported(self) -> bool:
        return os.path.exists(self._path("memory.current")) and os.path.exists(self._path("memory.max"))

    def capture(self) -> HostMemory | None:
        limit = read_text(self._path("memory.max")).strip()
        if limit == "max":
            return None

        total = int(limit)
        if total <= 0:
            return None

        used = int(read_text(self._path("memory.current")).strip())
        swap_total, swap_used = _meminfo_swap(self._proc_root)

        return HostMemory(
            total_size=total,
            used_size=_clamp(total, used),
            swap_total_size=swap_total,
            swap_used_size=swap_used,
            reclaimable_size=_stat_value(self._path("memory.stat"), "file"),
        )


class CgroupV1Reader(HostMemoryReader):
    """Container limit and usage from the legacy memory controller."""

    def __init__(self, cgroup_root: str = DEFAULT_CGROUP_ROOT, proc_root: str = DEFAULT_PROC_ROOT) -> None:
        self._root = cgroup_root.rstrip("/")
        self._proc_root = proc_root

    def _path(self, name: str) -> str:
        return f"{self._root}/memory/{name}"

    def supported(self) -> bool:
        return os.path.exists(self._path("memory.limit_in_bytes")) and os.path.exists(
            self._path("memory.usage_in_bytes")
        )

    def capture(self) -> HostMemory | None:
        total = int(read_text(self._path("memory.limit_in_bytes")).strip())
        if total <= 0 or total >= CGROUP_V1_UNLIMITED_THRESHOLD:
            return None

        used = int(read_text(self._path("memory.usage_in_bytes")).strip())
        swap_total, swap_used = _meminfo_swap(self._proc_root)

        return HostMemory(
            total_size=total,
            used_size=_clamp(total, used),
            swap_total_size=swap_total,
            swap_used_size=swap_used,
            reclaimable_size=_stat_value(self._path("memory.stat"), "cache"),
        )


class MeminfoReader(HostMemoryReader):
    """Physical memory from ``/proc/meminfo``."""

    def __init__(self, proc_root: str = DEFAULT_PROC_ROOT) -> None:
        self._path = os.path.join(proc_root, "meminfo")

    def supported(self) -> bool:
        return os.path.exists(self._path)

    def capture(self) -> HostMemory | None:
        content = read_text(self._path)

        total = _meminfo_kibibytes(content, "MemTotal")
        if not total:
            return None
        total *= 1024

        available = _meminfo_kibibytes(content, "MemAvailable")
        if available is None:
            available = _meminfo_kibibytes(content, "MemFree")
        used = None if available is None else max(total - available * 1024, 0)

        reclaimable = sum(
            _meminfo_kibibytes(content, name) or 0 for name in ("Cached", "Buffers", "SReclaimable")
        )
        swap_total, swap_used = _swap_from(content)

        return HostMemory(
            total_size=total,
            used_size=_clamp(total, used),
            swap_total_size=swap_total,
            swap_used_size=swap_used,
            reclaimable_size=reclaimable * 1024,
        )


class PsutilReader(HostMemoryReader):
    """Portable figures from psutil, used where the Linux pseudo-files are absent."""

    def supported(self) -> bool:
        return True

    def capture(self) -> HostMemory | None:
        mem = psutil.virtual_memory()
        if mem.total <= 0:
            return None

        swap = psutil.swap_memory()
        used = mem.total - mem.available

        return HostMemory(
            total_size=mem.total,
            used_size=_clamp(mem.total, used),
            swap_total_size=swap.total,
            swap_used_size=swap.used,
            reclaimable_size=getattr(mem, "inactive", None),
        )


def default_readers(settings: Settings | None = None) -> list[HostMemoryReader]:
    """Readers in priority order: container limits first, then the whole machine."""
    if settings is None:
        settings = Settings.from_env()

    return [
        CgroupV2Reader(settings.cgroup_root, settings.proc_root),
        CgroupV1Reader(settings.cgroup_root, settings.proc_root),
        MeminfoReader(settings.proc_root),
        PsutilReader(),
    ]


def capture_host_memory(readers: Iterable[HostMemoryReader] | None = None) -> HostMemory | None:
    """First usable host memory snapshot, or None when no reader produced one."""
    if readers is None:
        readers = default_readers()

    for reader in readers:
        if not reader.supported():
            continue

        try:
            host = reader.capture()
        except (OSError, ValueError) as e:
            logger.debug("%s failed: %s", type(reader).__name__, e)
            continue

        if host is not None:
            return host

    return None


def host_name() -> str | None:
    """System description from ``uname -a``, or None if it cannot be run."""
    try:
        return read_output(["uname", "-a"]).strip() or None
    except OSError:
        return None
