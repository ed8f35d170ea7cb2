"""Process enumeration backends."""

import logging
import os
import shutil
from abc import ABC, abstractmethod
from collections.abc import Callable, Iterable, Sequence
from dataclasses import dataclass, field

from procmetrics import procfs
from procmetrics.config import DEFAULT_PROC_ROOT, DEFAULT_PS
from procmetrics.duration import parse_duration
from procmetrics.exceptions import CaptureError
from procmetrics.models import GeneralInfo
from procmetrics.spawn import spawn

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class ProcessTable:
    """Raw enumeration result of one backend call."""

    processes: dict[int, GeneralInfo] = field(default_factory=dict)
    helper_pid: int | None = None  # Our own ps process, when one was spawned


class ProcessBackend(ABC):
    """Enumerates processes with their identity, timing and size."""

    name: str = "process"

    @abstractmethod
    def supported(self) -> bool:
        """Whether this backend can run on the current host."""

    @abstractmethod
    def list_processes(self, pids: Sequence[int] | None = None) -> ProcessTable:
        """
        Read the given processes, or every process on the host when ``pids`` is None.

        Raises:
            CaptureError: If the process list itself cannot be obtained.
        """


class LinuxProcessBackend(ProcessBackend):
    """
    Reads ``/proc/[pid]/stat`` and ``/proc/[pid]/cmdline`` directly.

    No subprocess is spawned. Processor utilization needs two samples and is
    always reported as 0.0.
    """

    name = "linux"

    def __init__(self, proc_root: str = DEFAULT_PROC_ROOT) -> None:
        self._proc_root = proc_root

    def supported(self) -> bool:
        return os.path.isdir(self._proc_root) and os.access(
            os.path.join(self._proc_root, "self", "stat"), os.R_OK
        )

    def list_processes(self, pids: Sequence[int] | None = None) -> ProcessTable:
        try:
            if pids is None:
                pids = procfs.list_pids(self._proc_root)
            # starttime is in ticks since boot; read the uptime once for the whole batch.
            uptime = procfs.uptime_ticks(self._proc_root)
        except (OSError, IndexError, ValueError) as e:
            raise CaptureError(f"Unable to read {self._proc_root}: {e}") from e

        table = ProcessTable()

        for pid in pids:
            try:
                process = self._read_process(pid, uptime)
            except OSError as e:
                # Process disappeared or we can't read it.
                logger.debug("Skipping process %d: %s", pid, e)
                continue

            if process is not None:
                table.processes[process.process_id] = process

        return table

    def _path(self, pid: int, name: str) -> str:
        return os.path.join(self._proc_root, str(pid), name)

    def _read_process(self, pid: int, uptime: int) -> GeneralInfo | None:
        parsed = procfs.parse_stat(procfs.read_text(self._path(pid, "stat")))
        if parsed is None:
            return None

        executable_name, fields = parsed
        try:
            parent_process_id = int(fields[procfs.PPID])
            process_group_id = int(fields[procfs.PGRP])
            utime = int(fields[procfs.UTIME])
            stime = int(fields[procfs.STIME])
            starttime = int(fields[procfs.STARTTIME])
            virtual_size = int(fields[procfs.VSIZE])
            resident_pages = int(fields[procfs.RSS])
        except (IndexError, ValueError):
            logger.debug("Malformed stat for process %d", pid)
            return None

        return GeneralInfo(
            process_id=pid,
            parent_process_id=parent_process_id,
            process_group_id=process_group_id,
            processor_utilization=0.0,
            virtual_size=virtual_size,
            resident_size=resident_pages * procfs.PAGE_SIZE,
            processor_time=(utime + stime) / procfs.CLOCK_TICKS,
            elapsed_time=max((uptime - starttime) / procfs.CLOCK_TICKS, 0.0),
            command=self._read_command(pid, executable_name),
        )

    def _read_command(self, pid: int, fallback: str) -> str:
        """Full command line with NUL separators shown as spaces, else the executable name."""
        try:
            with open(self._path(pid, "cmdline"), "rb") as file:
                content = file.read()
        except OSError:
            return fallback

        command = b" ".join(content.split(b"\0")).decode("utf-8", errors="replace").strip()
        return command or fallback


def _kibibytes(value: str) -> int:
    return int(value) * 1024


class ProcessStatusBackend(ProcessBackend):
    """
    Runs ``ps`` and parses its columns.

    Portable fallback for hosts without a readable ``/proc``.
    """

    name = "ps"

    # Requested columns, in output order. The last one may contain spaces.
    FIELDS: dict[str, tuple[str, Callable[[str], object]]] = {
        "pid": ("process_id", int),
        "ppid": ("parent_process_id", int),
        "pgid": ("process_group_id", int),
        "pcpu": ("processor_utilization", float),
        "vsz": ("virtual_size", _kibibytes),
        "rss": ("resident_size", _kibibytes),
        "time": ("processor_time", parse_duration),
        "etime": ("elapsed_time", parse_duration),
        "command": ("command", str),
    }

    def __init__(self, ps_command: str = DEFAULT_PS) -> None:
        self._command = ps_command

    def supported(self) -> bool:
        return shutil.which(self._command) is not None

    def arguments(self, pids: Sequence[int] | None = None) -> list[str]:
        # Unlimited width, otherwise the command column is cut to the terminal.
        arguments = [self._command, "-ww"]

        if pids is None:
            arguments.append("ax")
        else:
            arguments.extend(["-p", ",".join(str(pid) for pid in pids)])

        arguments.extend(["-o", ",".join(self.FIELDS)])
        return arguments

    def list_processes(self, pids: Sequence[int] | None = None) -> ProcessTable:
        table = ProcessTable()

        try:
            with spawn(self.arguments(pids)) as process:
                table.helper_pid = process.pid
                lines = process.stdout.readlines()
        except OSError as e:
            raise CaptureError(f"Unable to run {self._command}: {e}") from e

        # The first line is the column header.
        for process in self.parse(lines[1:]):
            table.processes[process.process_id] = process

        return table

    @classmethod
    def parse(cls, lines: Iterable[str]) -> list[GeneralInfo]:
        """Parse ``ps`` output rows, skipping any that are short or malformed."""
        processes = []
        columns = list(cls.FIELDS.values())

        for line in lines:
            values = line.strip().split(None, len(columns) - 1)
            if len(values) < len(columns):
                continue

            try:
                record = {key: convert(value) for (key, convert), value in zip(columns, values)}
            except ValueError:
                logger.debug("Skipping malformed ps row: %r", line)
                continue

            processes.append(GeneralInfo(**record))

        return processes


def resolve_process_backend(candidates: Iterable[ProcessBackend]) -> ProcessBackend | None:
    """First candidate whose capability probe succeeds, in priority order."""
    for backend in candidates:
        if backend.supported():
            return backend
    return None


def default_process_backend(
    proc_root: str = DEFAULT_PROC_ROOT,
    ps_command: str = DEFAULT_PS,
) -> ProcessBackend | None:
    return resolve_process_backend([LinuxProcessBackend(proc_root), ProcessStatusBackend(ps_command)])
