"""Per-process memory composition backends."""

import logging
import os
import re
import shutil
from abc import ABC, abstractmethod
from collections.abc import Iterable, Sequence

from procmetrics import procfs
from procmetrics.config import DEFAULT_PROC_ROOT, DEFAULT_VMMAP
from procmetrics.models import Memory
from procmetrics.spawn import spawn

logger = logging.getLogger(__name__)


class MemoryBackend(ABC):
    """Reads the detailed memory composition of processes."""

    name: str = "memory"

    @abstractmethod
    def supported(self) -> bool:
        """Whether this backend can run on the current host."""

    @abstractmethod
    def capture(self, pids: Sequence[int], count: int = 1) -> Memory | None:
        """
        Sum the memory composition of ``pids``.

        ``count`` is the number of processes sharing the group and is only
        used where proportional accounting has to be approximated. Returns
        None when none of the processes could be read.
        """


class LinuxMemory(MemoryBackend):
    """
    Memory composition from ``/proc/[pid]/smaps_rollup`` or ``/proc/[pid]/smaps``.

    The rollup file holds one pre-summed record; ``smaps`` has one record per
    mapped region which is summed here. Page fault counters come from
    ``/proc/[pid]/stat``.
    """

    name = "linux"

    # The fields that will be extracted from the smaps data.
    SMAPS = {
        "Rss": "resident_size",
        "Pss": "proportional_size",
        "Shared_Clean": "shared_clean_size",
        "Shared_Dirty": "shared_dirty_size",
        "Private_Clean": "private_clean_size",
        "Private_Dirty": "private_dirty_size",
        "Referenced": "referenced_size",
        "Anonymous": "anonymous_size",
        "Swap": "swap_size",
        "SwapPss": "proportional_swap_size",
    }

    def __init__(self, proc_root: str = DEFAULT_PROC_ROOT) -> None:
        self._proc_root = proc_root
        self._rollup = os.access(os.path.join(proc_root, "self", "smaps_rollup"), os.R_OK)
        self._smaps = os.access(os.path.join(proc_root, "self", "smaps"), os.R_OK)

    @property
    def rollup(self) -> bool:
        """Whether the pre-summed rollup file is used."""
        return self._rollup

    def supported(self) -> bool:
        return self._rollup or self._smaps

    def capture(self, pids: Sequence[int], count: int = 1) -> Memory | None:
        totals: dict[str, int] = {}
        found = False

        for pid in pids:
            try:
                usage = self._capture_one(pid)
            except OSError as e:
                # Exited or inaccessible between enumeration and this read.
                logger.debug("No memory detail for process %d: %s", pid, e)
                continue

            found = True
            for key, value in usage.items():
                totals[key] = totals.get(key, 0) + value

        if not found:
            return None

        return Memory(**totals)

    def _path(self, pid: int, name: str) -> str:
        return os.path.join(self._proc_root, str(pid), name)

    def _capture_one(self, pid: int) -> dict[str, int]:
        usage: dict[str, int] = {}

        if self._rollup:
            with open(self._path(pid, "smaps_rollup"), encoding="utf-8", errors="replace") as file:
                procfs.parse_sizes(file, self.SMAPS, usage)
            with open(self._path(pid, "maps"), encoding="utf-8", errors="replace") as file:
                usage["map_count"] = sum(1 for _ in file)
        else:
            with open(self._path(pid, "smaps"), encoding="utf-8", errors="replace") as file:
                usage["map_count"] = procfs.parse_sizes(file, self.SMAPS, usage)

        usage.update(self._capture_faults(pid))

        return usage

    def _capture_faults(self, pid: int) -> dict[str, int]:
        parsed = procfs.parse_stat(procfs.read_text(self._path(pid, "stat")))
        if parsed is None:
            return {}

        _, fields = parsed
        try:
            return {
                "minor_faults": int(fields[procfs.MINFLT]),
                "major_faults": int(fields[procfs.MAJFLT]),
            }
        except (IndexError, ValueError):
            return {}


def parse_size(text: str | None) -> int:
    """Parse a vmmap size such as ``16K``, ``1.5M`` or ``2G`` into bytes."""
    if not text:
        return 0

    text = text.strip()
    match = re.fullmatch(r"([\d.]+)([KMG]?)", text, re.IGNORECASE)
    if match is None:
        return 0

    try:
        value = float(match[1])
    except ValueError:
        return 0

    unit = match[2].upper()
    scale = {"": 1, "K": 1024, "M": 1024**2, "G": 1024**3}[unit]

    return round(value * scale)


class DarwinMemory(MemoryBackend):
    """
    Memory composition from the output of ``vmmap``.

    Darwin has no proportional accounting. ``proportional_size`` is
    approximated as resident size divided by the number of processes in the
    group, so it is not exact PSS and may exceed the true share.
    """

    name = "darwin"

    LINE = re.compile(
        r"""
        \A\s*
        (?P<region_name>.+?)\s+
        (?P<start_address>[0-9a-fA-F]+)-(?P<end_address>[0-9a-fA-F]+)\s+
        \[\s*(?P<virtual_size>[\d.]+[KMG]?)\s+(?P<resident_size>[\d.]+[KMG]?)\s+
        (?P<dirty_size>[\d.]+[KMG]?)\s+(?P<swap_size>[\d.]+[KMG]?)\s*\]\s+
        (?P<permissions>[rwx\-/]+)\s+
        SM=(?P<sharing_mode>\w+)
        """,
        re.VERBOSE,
    )

    ANONYMOUS = re.compile(r"MALLOC|VM_ALLOCATE|Stack|STACK|anonymous")

    def __init__(self, vmmap_command: str = DEFAULT_VMMAP) -> None:
        self._command = vmmap_command

    def supported(self) -> bool:
        return shutil.which(self._command) is not None

    def capture(self, pids: Sequence[int], count: int = 1) -> Memory | None:
        totals: dict[str, int] = {}
        found = False

        for pid in pids:
            try:
                with spawn([self._command, str(pid)]) as process:
                    matched = self.accumulate(process.stdout, totals)
            except OSError as e:
                logger.debug("vmmap failed for process %d: %s", pid, e)
                continue

            # vmmap prints no regions for a process that has exited.
            if matched:
                found = True
            else:
                logger.debug("No regions reported for process %d", pid)

        if not found:
            return None

        count = max(count, 1)
        totals["proportional_size"] = totals.get("resident_size", 0) // count
        totals["proportional_swap_size"] = totals.get("swap_size", 0) // count

        return Memory(**totals)

    @classmethod
    def accumulate(cls, lines: Iterable[str], totals: dict[str, int]) -> int:
        """Add every region line to ``totals``; returns the number of regions matched."""
        matched = 0

        for line in lines:
            match = cls.LINE.match(line)
            if match is None:
                continue

            matched += 1
            resident_size = parse_size(match["resident_size"])
            dirty_size = parse_size(match["dirty_size"])
            swap_size = parse_size(match["swap_size"])

            totals["map_count"] = totals.get("map_count", 0) + 1
            totals["resident_size"] = totals.get("resident_size", 0) + resident_size
            totals["swap_size"] = totals.get("swap_size", 0) + swap_size

            # COW=copy_on_write PRV=private NUL=empty ALI=aliased SHM=shared ZER=zero_filled S/A=shared_alias
            sharing_mode = match["sharing_mode"]
            if sharing_mode == "PRV":
                prefix = "private"
            elif sharing_mode in ("COW", "SHM"):
                prefix = "shared"
            else:
                prefix = None

            if prefix is not None:
                clean_key = f"{prefix}_clean_size"
                dirty_key = f"{prefix}_dirty_size"
                totals[clean_key] = totals.get(clean_key, 0) + max(resident_size - dirty_size, 0)
                totals[dirty_key] = totals.get(dirty_key, 0) + dirty_size

            if cls.ANONYMOUS.search(match["region_name"]):
                totals["anonymous_size"] = totals.get("anonymous_size", 0) + resident_size

        return matched


def resolve_memory_backend(candidates: Iterable[MemoryBackend]) -> MemoryBackend | None:
    """First candidate whose capability probe succeeds, in priority order."""
    for backend in candidates:
        if backend.supported():
            return backend
    return None


def default_memory_backend(
    proc_root: str = DEFAULT_PROC_ROOT,
    vmmap_command: str = DEFAULT_VMMAP,
) -> MemoryBackend | None:
    return resolve_memory_backend([LinuxMemory(proc_root), DarwinMemory(vmmap_command)])
