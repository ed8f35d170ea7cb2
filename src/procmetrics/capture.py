"""Capture orchestration: backend selection, subtree filtering and memory detail."""

import dataclasses
import functools
import logging
from collections.abc import Iterable, Mapping

from procmetrics.config import Settings
from procmetrics.exceptions import UnsupportedPlatformError
from procmetrics.general import ProcessBackend, default_process_backend
from procmetrics.memory import MemoryBackend, default_memory_backend
from procmetrics.models import GeneralInfo, Memory
from procmetrics.tree import subtree

logger = logging.getLogger(__name__)

ProcessIds = int | Iterable[int] | None


def _ids(value: ProcessIds) -> list[int] | None:
    if value is None:
        return None
    if isinstance(value, int):
        return [value]
    return [int(pid) for pid in value]


class Capturer:
    """
    Produces point-in-time snapshots of processes.

    The process backend is required; the memory backend is optional and, when
    present, attaches a Memory record to every captured process.
    """

    def __init__(
        self,
        process_backend: ProcessBackend,
        memory_backend: MemoryBackend | None = None,
    ) -> None:
        self._process_backend = process_backend
        self._memory_backend = memory_backend

    @classmethod
    def default(cls, settings: Settings | None = None) -> "Capturer":
        """
        Select the backends for this host.

        Raises:
            UnsupportedPlatformError: If neither /proc nor ps is available.
        """
        if settings is None:
            settings = Settings.from_env()

        process_backend = default_process_backend(settings.proc_root, settings.ps_command)
        if process_backend is None:
            raise UnsupportedPlatformError("No process backend available: /proc is unreadable and ps was not found")

        memory_backend = default_memory_backend(settings.proc_root, settings.vmmap_command)
        logger.debug(
            "Using process backend %s, memory backend %s",
            process_backend.name,
            memory_backend.name if memory_backend else None,
        )
        return cls(process_backend, memory_backend)

    @property
    def process_backend(self) -> ProcessBackend:
        return self._process_backend

    @property
    def memory_backend(self) -> MemoryBackend | None:
        return self._memory_backend

    @property
    def memory_supported(self) -> bool:
        return self._memory_backend is not None

    def capture(
        self,
        pid: ProcessIds = None,
        ppid: ProcessIds = None,
        memory: bool | None = None,
    ) -> dict[int, GeneralInfo]:
        """
        Capture the requested processes, keyed by process id.

        Args:
            pid: Process id(s) to capture. Alone, only these are read.
            ppid: Parent id(s) whose whole subtree is captured, together with
                the subtree of ``pid`` when both are given.
            memory: Attach detailed memory; defaults to whether a memory
                backend is available.

        With neither filter every process on the host is captured.
        """
        pids = _ids(pid)
        ppids = _ids(ppid)

        if pids is not None and ppids is None:
            table = self._process_backend.list_processes(pids)
        else:
            # The children are not known in advance, so read everything.
            table = self._process_backend.list_processes(None)

        processes = table.processes
        if table.helper_pid is not None:
            processes.pop(table.helper_pid, None)

        if ppids is not None:
            selected = subtree(processes, pids, ppids)
            processes = {key: value for key, value in processes.items() if key in selected}

        if memory is None:
            memory = self.memory_supported

        if memory:
            processes = self.capture_memory(processes)

        return processes

    def capture_memory(self, processes: Mapping[int, GeneralInfo]) -> dict[int, GeneralInfo]:
        """Attach memory detail to each process; unreadable ones get None."""
        return {
            process_id: dataclasses.replace(process, memory=self.memory_detail(process_id))
            for process_id, process in processes.items()
        }

    def memory_detail(self, pid: int, count: int = 1) -> Memory | None:
        """Memory detail for one process, or None if it vanished or cannot be read."""
        if self._memory_backend is None:
            return None

        try:
            return self._memory_backend.capture([pid], count)
        except OSError as e:
            logger.debug("Memory capture failed for process %d: %s", pid, e)
            return None


@functools.cache
def default_capturer() -> Capturer:
    return Capturer.default()


def supported() -> bool:
    """Whether any process backend is available on this host."""
    settings = Settings.from_env()
    return default_process_backend(settings.proc_root, settings.ps_command) is not None


def capture(pid: ProcessIds = None, ppid: ProcessIds = None, memory: bool | None = None) -> dict[int, GeneralInfo]:
    """
    Capture processes with the backends selected for this host.

    Call supported() first; on a host with no backend this raises
    UnsupportedPlatformError.
    """
    return default_capturer().capture(pid=pid, ppid=ppid, memory=memory)
