"""Shared fixtures: a fake process pseudo-filesystem under tmp_path."""

from pathlib import Path

import pytest

ROLLUP = """\
00400000-ffffffffff601000 ---p 00000000 00:00 0                          [rollup]
Rss:                 400 kB
Pss:                 250 kB
Pss_Anon:            100 kB
Shared_Clean:        200 kB
Shared_Dirty:          0 kB
Private_Clean:        50 kB
Private_Dirty:       150 kB
Referenced:          380 kB
Anonymous:           120 kB
LazyFree:              0 kB
Swap:                 16 kB
SwapPss:               8 kB
Locked:                0 kB
"""

SMAPS = """\
55d0c0000000-55d0c0021000 r--p 00000000 08:01 1234                       /usr/bin/cat
Size:                132 kB
Rss:                 100 kB
Pss:                  60 kB
Shared_Clean:         80 kB
Shared_Dirty:          0 kB
Private_Clean:        20 kB
Private_Dirty:         0 kB
Referenced:          100 kB
Anonymous:             0 kB
Swap:                  0 kB
SwapPss:               0 kB
VmFlags: rd mr mw me dw sd
7ffd1c000000-7ffd1c021000 rw-p 00000000 00:00 0                          [stack]
Size:                132 kB
Rss:                  40 kB
Pss:                  40 kB
Shared_Clean:          0 kB
Shared_Dirty:          0 kB
Private_Clean:         0 kB
Private_Dirty:        40 kB
Referenced:           40 kB
Anonymous:            40 kB
Swap:                  4 kB
SwapPss:               4 kB
VmFlags: rd wr mr mw me gd ac
"""


def stat_line(
    pid: int,
    comm: str,
    ppid: int = 1,
    pgrp: int | None = None,
    minflt: int = 0,
    majflt: int = 0,
    utime: int = 0,
    stime: int = 0,
    starttime: int = 0,
    vsize: int = 0,
    rss: int = 0,
) -> str:
    """A /proc/[pid]/stat line with the fields used by procmetrics filled in."""
    fields = [
        "S", ppid, pgrp if pgrp is not None else pid, 0, 0, -1, 4194304,
        minflt, 0, majflt, 0, utime, stime, 0, 0, 20, 0, 1, 0, starttime, vsize, rss,
        "18446744073709551615", 1, 1, 0, 0, 0, 0, 0,
    ]
    return f"{pid} ({comm}) " + " ".join(str(field) for field in fields) + "\n"


class FakeProc:
    """Builder for a directory laid out like /proc."""

    def __init__(self, root: Path, uptime: float = 1000.0) -> None:
        self.root = root
        self.root.mkdir(parents=True, exist_ok=True)
        (self.root / "uptime").write_text(f"{uptime:.2f} 4000.00\n")
        self.add_process("self", "pytest", rollup=ROLLUP, smaps=SMAPS)

    def add_process(
        self,
        pid: int | str,
        comm: str,
        cmdline: bytes | None = None,
        rollup: str | None = None,
        smaps: str | None = None,
        maps_lines: int = 3,
        **stat_fields,
    ) -> Path:
        directory = self.root / str(pid)
        directory.mkdir(parents=True, exist_ok=True)

        numeric = pid if isinstance(pid, int) else 4242
        (directory / "stat").write_text(stat_line(numeric, comm, **stat_fields))

        if cmdline is not None:
            (directory / "cmdline").write_bytes(cmdline)
        if rollup is not None:
            (directory / "smaps_rollup").write_text(rollup)
        if smaps is not None:
            (directory / "smaps").write_text(smaps)
        (directory / "maps").write_text("00400000-00401000 r-xp 00000000 00:00 0\n" * maps_lines)

        return directory


@pytest.fixture
def fake_proc(tmp_path: Path) -> FakeProc:
    return FakeProc(tmp_path / "proc")
