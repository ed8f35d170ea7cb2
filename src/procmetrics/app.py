"""procmetrics top - Textual process viewer."""

from dataclasses import dataclass, field
from enum import Enum

from textual import work
from textual.app import App, ComposeResult
from textual.containers import Container, Horizontal
from textual.css.query import NoMatches
from textual.widgets import DataTable, Footer, Static
from textual.widgets.data_table import CellDoesNotExist, DuplicateKey, RowDoesNotExist

from procmetrics.capture import Capturer, ProcessIds
from procmetrics.display import bar, format_duration, format_size, intensity
from procmetrics.exceptions import CaptureError
from procmetrics.host import capture_host_memory, host_name
from procmetrics.models import GeneralInfo, HostMemory


@dataclass(slots=True)
class Snapshot:
    """One capture of the watched processes and the host."""

    processes: dict[int, GeneralInfo] = field(default_factory=dict)
    host: HostMemory | None = None


class SortKey(Enum):
    """Sort keys for the process table."""

    MEM = "mem"
    TIME = "time"
    PID = "pid"


def total_size(processes: dict[int, GeneralInfo]) -> int:
    return sum(process.total_size for process in processes.values())


class HeaderStats(Static):
    """Header widget showing host memory and totals for the watched processes."""

    DEFAULT_CSS = """
    HeaderStats {
        height: auto;
        min-height: 4;
        padding: 1;
        background: $surface;
    }
    """

    def __init__(self, *args, **kwargs) -> None:
        super().__init__(*args, **kwargs)
        self._host: HostMemory | None = None
        self._process_count = 0
        self._total_size = 0
        self._proportional = True

    def compose(self) -> ComposeResult:
        yield Horizontal(
            Static(self._get_host_info(), id="host-info"),
            Static(self._get_process_info(), id="process-info"),
        )

    def update_stats(self, snapshot: Snapshot) -> None:
        """Update the statistics from a snapshot."""
        self._host = snapshot.host
        self._process_count = len(snapshot.processes)
        self._total_size = total_size(snapshot.processes)
        self._proportional = all(process.memory is not None for process in snapshot.processes.values())
        self._refresh_display()

    def _refresh_display(self) -> None:
        try:
            self.query_one("#host-info", Static).update(self._get_host_info())
            self.query_one("#process-info", Static).update(self._get_process_info())
        except NoMatches:
            pass  # Not mounted yet

    def _get_host_info(self) -> str:
        host = self._host
        if host is None:
            return "Host memory unavailable"

        lines = [self._line("Mem", host.used_size, host.total_size)]
        if host.swap_total_size:
            lines.append(self._line("Swp", host.swap_used_size or 0, host.swap_total_size))
        return "\n".join(lines)

    def _line(self, label: str, used: int, total: int) -> str:
        fraction = used / total if total else 0.0
        colour = intensity(fraction).value
        return f"{label}\\[[{colour}]{bar(fraction, 20)}[/{colour}]] {format_size(used)}/{format_size(total)}"

    def _get_process_info(self) -> str:
        label = "PSS" if self._proportional else "RSS"
        return f"Processes: {self._process_count}\nMemory ({label}): {format_size(self._total_size)}"


class ProcessView(Container):
    """Container for the process data table."""

    DEFAULT_CSS = """
    ProcessView {
        height: 1fr;
        border: solid $primary;
    }
    """

    COLUMNS = [
        ("PID", "pid", 8),
        ("PPID", "ppid", 8),
        ("CPU%", "cpu", 6),
        ("TIME", "time", 11),
        ("ELAPSED", "elapsed", 11),
        ("RSS", "rss", 10),
        ("PSS", "pss", 10),
        ("USS", "uss", 10),
        ("SWAP", "swap", 10),
        ("MINFLT", "minflt", 9),
        ("MAJFLT", "majflt", 7),
    ]

    def __init__(self, *args, **kwargs) -> None:
        super().__init__(*args, **kwargs)
        self._current_pids: set[int] = set()
        self._sort_key: SortKey = SortKey.MEM
        self._sort_reverse: bool = True

    @property
    def sort_key(self) -> SortKey:
        return self._sort_key

    def cycle_sort(self) -> SortKey:
        """Cycle to the next sort key and return it."""
        keys = list(SortKey)
        self._sort_key = keys[(keys.index(self._sort_key) + 1) % len(keys)]
        self._sort_reverse = self._sort_key in (SortKey.MEM, SortKey.TIME)
        return self._sort_key

    def compose(self) -> ComposeResult:
        yield DataTable(id="process-table")

    def on_mount(self) -> None:
        table = self.query_one("#process-table", DataTable)
        table.cursor_type = "row"

        for label, key, width in self.COLUMNS:
            table.add_column(label, key=key, width=width)
        table.add_column("Command", key="command")

    def update_processes(self, processes: dict[int, GeneralInfo]) -> None:
        """
        Update the process table with new data.

        Existing rows are updated in place; the table is re-sorted afterwards.
        """
        table = self.query_one("#process-table", DataTable)
        new_pids = set(processes)

        for pid in self._current_pids - new_pids:
            try:
                table.remove_row(str(pid))
            except RowDoesNotExist:
                pass

        for pid, process in processes.items():
            row_key = str(pid)
            cells = self.cells(process)

            try:
                if pid in self._current_pids:
                    for (_, key, _), value in zip(self.COLUMNS, cells):
                        table.update_cell(row_key, key, value)
                    table.update_cell(row_key, "command", cells[-1])
                else:
                    table.add_row(*cells, key=row_key)
            except (CellDoesNotExist, DuplicateKey, RowDoesNotExist):
                pass

        self._current_pids = new_pids
        self._sort(table, processes)

    def _sort(self, table: DataTable, processes: dict[int, GeneralInfo]) -> None:
        key_func = {
            SortKey.MEM: lambda p: p.total_size,
            SortKey.TIME: lambda p: p.processor_time,
            SortKey.PID: lambda p: p.process_id,
        }[self._sort_key]

        order = {
            str(process.process_id): position
            for position, process in enumerate(
                sorted(processes.values(), key=key_func, reverse=self._sort_reverse)
            )
        }
        table.sort("pid", key=lambda pid: order.get(str(pid), len(order)))

    @staticmethod
    def cells(process: GeneralInfo) -> list[str]:
        memory = process.memory

        def detail(value: int | None, size: bool = True) -> str:
            if value is None:
                return "-"
            return format_size(value) if size else str(value)

        return [
            str(process.process_id),
            str(process.parent_process_id),
            f"{process.processor_utilization:5.1f}",
            format_duration(process.processor_time),
            format_duration(process.elapsed_time),
            format_size(process.resident_size),
            detail(memory.proportional_size if memory else None),
            detail(memory.unique_size if memory else None),
            detail(memory.swap_size if memory else None),
            detail(memory.minor_faults if memory else None, size=False),
            detail(memory.major_faults if memory else None, size=False),
            process.command[:80],
        ]


class TopApp(App):
    """Live view of a process subtree, re-captured on an interval."""

    TITLE = "procmetrics"
    SUB_TITLE = "Process memory and time"

    CSS = """
    Screen {
        layout: vertical;
    }

    #header-stats {
        dock: top;
        height: auto;
        min-height: 4;
    }

    Horizontal {
        height: auto;
    }

    #host-info {
        width: 1fr;
        padding-right: 2;
    }

    #process-info {
        width: 1fr;
        padding-left: 2;
    }
    """

    BINDINGS = [
        ("q", "quit", "Quit"),
        ("s", "sort", "Sort"),
        ("r", "refresh", "Refresh"),
    ]

    def __init__(
        self,
        capturer: Capturer,
        pid: ProcessIds = None,
        ppid: ProcessIds = None,
        interval: float = 2.0,
    ) -> None:
        super().__init__()
        self._capturer = capturer
        self._pid = pid
        self._ppid = ppid
        self._interval = max(0.1, interval)
        self.sub_title = host_name() or self.SUB_TITLE

    @property
    def interval(self) -> float:
        return self._interval

    def compose(self) -> ComposeResult:
        yield HeaderStats(id="header-stats")
        yield ProcessView()
        yield Footer()

    def on_mount(self) -> None:
        self.action_refresh()
        self.set_interval(self._interval, self.action_refresh)

    def take_snapshot(self) -> Snapshot:
        return Snapshot(
            processes=self._capturer.capture(pid=self._pid, ppid=self._ppid),
            host=capture_host_memory(),
        )

    @work(thread=True, exclusive=True)
    def _collect(self) -> None:
        try:
            snapshot = self.take_snapshot()
        except CaptureError as e:
            self.call_from_thread(self.notify, str(e), severity="error")
            return

        self.call_from_thread(self.update_ui, snapshot)

    def update_ui(self, snapshot: Snapshot) -> None:
        """Update the widgets with a new snapshot."""
        try:
            self.query_one("#header-stats", HeaderStats).update_stats(snapshot)
            self.query_one(ProcessView).update_processes(snapshot.processes)
        except NoMatches:
            pass  # Shutting down

    def action_refresh(self) -> None:
        self._collect()

    def action_sort(self) -> None:
        """Cycle through sort keys."""
        new_sort_key = self.query_one(ProcessView).cycle_sort()
        self.notify(f"Sort: {new_sort_key.value.upper()}")
