"""Data models for procmetrics."""

from __future__ import annotations

from dataclasses import dataclass, fields
from typing import Any


@dataclass(slots=True, frozen=True)
class Memory:
    """
    Detailed memory composition of one process.

    All sizes are bytes. On Darwin ``proportional_size`` is an estimate
    (resident size divided by the number of processes in the group), so
    ``proportional_size <= resident_size`` only holds for exact accounting.
    """

    map_count: int = 0
    resident_size: int = 0
    proportional_size: int = 0
    shared_clean_size: int = 0
    shared_dirty_size: int = 0
    private_clean_size: int = 0
    private_dirty_size: int = 0
    referenced_size: int = 0
    anonymous_size: int = 0
    swap_size: int = 0
    proportional_swap_size: int = 0
    minor_faults: int = 0
    major_faults: int = 0

    @classmethod
    def zero(cls) -> Memory:
        """Create an all-zero record."""
        return cls()

    @property
    def unique_size(self) -> int:
        """Private memory not shared with any other process (USS)."""
        return self.private_clean_size + self.private_dirty_size

    @property
    def shared_size(self) -> int:
        return self.shared_clean_size + self.shared_dirty_size

    @property
    def total_size(self) -> int:
        return self.resident_size + self.swap_size

    def as_dict(self) -> dict[str, Any]:
        """Ordered field mapping for structured export, derived sizes last."""
        result: dict[str, Any] = {field.name: getattr(self, field.name) for field in fields(self)}
        result["unique_size"] = self.unique_size
        result["shared_size"] = self.shared_size
        result["total_size"] = self.total_size
        return result


@dataclass(slots=True, frozen=True)
class GeneralInfo:
    """Immutable snapshot of a process's identity, timing and size."""

    process_id: int
    parent_process_id: int
    process_group_id: int
    processor_utilization: float  # 0.0 - 100.0 * core_count
    virtual_size: int  # Bytes
    resident_size: int  # Bytes
    processor_time: float  # Seconds
    elapsed_time: float  # Seconds
    command: str
    memory: Memory | None = None

    @property
    def total_size(self) -> int:
        """Proportional size when detail is available, otherwise resident size."""
        if self.memory is not None:
            return self.memory.proportional_size
        return self.resident_size

    @property
    def memory_usage(self) -> int:
        return self.total_size

    def as_dict(self) -> dict[str, Any]:
        """Ordered field mapping for structured export."""
        return {
            "process_id": self.process_id,
            "parent_process_id": self.parent_process_id,
            "process_group_id": self.process_group_id,
            "processor_utilization": self.processor_utilization,
            "total_size": self.total_size,
            "virtual_size": self.virtual_size,
            "resident_size": self.resident_size,
            "processor_time": self.processor_time,
            "elapsed_time": self.elapsed_time,
            "command": self.command,
            "memory": self.memory.as_dict() if self.memory is not None else None,
        }


@dataclass(slots=True, frozen=True)
class HostMemory:
    """System-wide memory snapshot. All sizes in bytes."""

    total_size: int  # cgroup limit inside a container, physical RAM otherwise
    used_size: int
    swap_total_size: int | None = None
    swap_used_size: int | None = None
    reclaimable_size: int | None = None  # page cache, buffers and reclaimable slab

    @property
    def free_size(self) -> int:
        return self.total_size - self.used_size

    @property
    def used_percent(self) -> float:
        if self.total_size <= 0:
            return 0.0
        return self.used_size * 100.0 / self.total_size

    def as_dict(self) -> dict[str, Any]:
        return {
            "total_size": self.total_size,
            "used_size": self.used_size,
            "free_size": self.free_size,
            "swap_total_size": self.swap_total_size,
            "swap_used_size": self.swap_used_size,
            "reclaimable_size": self.reclaimable_size,
        }
