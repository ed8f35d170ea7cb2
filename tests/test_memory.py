"""Tests for the memory composition backends."""

import os
import stat
from pathlib import Path

import pytest

from procmetrics.memory import (
    DarwinMemory,
    LinuxMemory,
    default_memory_backend,
    parse_size,
    resolve_memory_backend,
)

VMMAP_OUTPUT = """\
Process:         sleep [4321]
Path:            /bin/sleep

==== Non-writable regions for process 4321
REGION TYPE                    START - END         [ VSIZE  RSDNT  DIRTY   SWAP] PRT/MAX SHRMOD PURGE    REGION DETAIL
__TEXT                      102a8c000-102a90000    [   16K    16K     0K     0K] r-x/r-x SM=COW          /bin/sleep
__LINKEDIT                  102a94000-102a98000    [  1.5M   1.2M     0K     0K] r--/r-- SM=COW          /bin/sleep

==== Writable regions for process 4321
MALLOC_SMALL                7f8e4c800000-7f8e4d000000 [ 8192K    48K    48K     0K] rw-/rwx SM=PRV          DefaultMallocZone
Stack                       16b4d8000-16bcd4000    [ 8176K    32K    32K     0K] rw-/rwx SM=PRV          thread 0
VM_ALLOCATE                 102b00000-102b10000    [   64K     8K     8K     4K] rw-/rwx SM=ZER

==== Legend
SM=sharing mode:
"""


def write_script(path: Path, body: str) -> str:
    path.write_text("#!/bin/sh\n" + body)
    path.chmod(path.stat().st_mode | stat.S_IEXEC)
    return str(path)


class TestLinuxMemory:
    """Tests for LinuxMemory against a fake /proc."""

    def test_rollup(self, fake_proc):
        """Test the rollup file is summed, converted to bytes, with faults from stat."""
        from conftest import ROLLUP

        fake_proc.add_process(100, "app", rollup=ROLLUP, maps_lines=7, minflt=150, majflt=3)
        backend = LinuxMemory(str(fake_proc.root))

        assert backend.supported()
        assert backend.rollup

        memory = backend.capture([100])

        assert memory.map_count == 7
        assert memory.resident_size == 400 * 1024
        assert memory.proportional_size == 250 * 1024
        assert memory.shared_clean_size == 200 * 1024
        assert memory.private_clean_size == 50 * 1024
        assert memory.private_dirty_size == 150 * 1024
        assert memory.referenced_size == 380 * 1024
        assert memory.anonymous_size == 120 * 1024
        assert memory.swap_size == 16 * 1024
        assert memory.proportional_swap_size == 8 * 1024
        assert memory.minor_faults == 150
        assert memory.major_faults == 3
        assert memory.unique_size == 200 * 1024

    def test_smaps_fallback(self, fake_proc):
        """Test per-region smaps is summed and regions counted when there is no rollup."""
        from conftest import SMAPS

        (fake_proc.root / "self" / "smaps_rollup").unlink()
        fake_proc.add_process(101, "cat", smaps=SMAPS, minflt=9)
        backend = LinuxMemory(str(fake_proc.root))

        assert backend.supported()
        assert not backend.rollup

        memory = backend.capture([101])

        assert memory.map_count == 2
        assert memory.resident_size == 140 * 1024
        assert memory.proportional_size == 100 * 1024
        assert memory.shared_clean_size == 80 * 1024
        assert memory.private_clean_size == 20 * 1024
        assert memory.private_dirty_size == 40 * 1024
        assert memory.anonymous_size == 40 * 1024
        assert memory.swap_size == 4 * 1024
        assert memory.minor_faults == 9

    def test_unsupported(self, tmp_path):
        """Test the probe fails without smaps files."""
        assert not LinuxMemory(str(tmp_path)).supported()

    def test_missing_process_is_none(self, fake_proc):
        """Test a process that has exited yields no detail instead of an error."""
        assert LinuxMemory(str(fake_proc.root)).capture([99999]) is None

    def test_batch_skips_missing(self, fake_proc):
        """Test missing processes in a batch do not hide the others."""
        from conftest import ROLLUP

        fake_proc.add_process(100, "app", rollup=ROLLUP)
        fake_proc.add_process(102, "app", rollup=ROLLUP)

        memory = LinuxMemory(str(fake_proc.root)).capture([100, 99999, 102])

        assert memory.resident_size == 2 * 400 * 1024

    @pytest.mark.skipif(not LinuxMemory().supported(), reason="smaps is not available")
    def test_live_invariants(self):
        """Test exact accounting keeps USS and PSS within RSS for the current process."""
        memory = LinuxMemory().capture([os.getpid()])

        assert memory is not None
        assert memory.map_count > 0
        assert memory.resident_size > 0
        assert memory.proportional_size > 0
        assert memory.unique_size <= memory.resident_size
        assert memory.proportional_size <= memory.resident_size
        assert memory.minor_faults > 0


@pytest.mark.parametrize(
    ("text", "expected"),
    [
        ("16K", 16 * 1024),
        ("16k", 16 * 1024),
        ("1.5M", 1572864),
        ("2G", 2 * 1024**3),
        ("512", 512),
        ("0K", 0),
        ("", 0),
        (None, 0),
        ("bogus", 0),
    ],
)
def test_parse_size(text, expected):
    """Test vmmap sizes are converted to bytes."""
    assert parse_size(text) == expected


class TestDarwinMemory:
    """Tests for DarwinMemory parsing."""

    def test_accumulate(self):
        """Test regions are classified by sharing mode and name."""
        totals: dict[str, int] = {}

        matched = DarwinMemory.accumulate(VMMAP_OUTPUT.splitlines(), totals)

        linkedit = round(1.2 * 1024 * 1024)
        assert matched == 5
        assert totals["map_count"] == 5
        assert totals["resident_size"] == (16 + 48 + 32 + 8) * 1024 + linkedit
        assert totals["swap_size"] == 4 * 1024
        assert totals["shared_clean_size"] == 16 * 1024 + linkedit
        assert totals["private_dirty_size"] == 80 * 1024
        assert totals["private_clean_size"] == 0
        assert totals["anonymous_size"] == (48 + 32 + 8) * 1024

    def test_capture_with_approximate_proportional_size(self, tmp_path):
        """Test proportional size is resident size divided by the group count."""
        vmmap = write_script(tmp_path / "vmmap", f"cat <<'END'\n{VMMAP_OUTPUT}END\n")
        backend = DarwinMemory(vmmap)

        assert backend.supported()

        alone = backend.capture([4321])
        shared = backend.capture([4321], count=4)

        assert alone.proportional_size == alone.resident_size
        assert shared.proportional_size == shared.resident_size // 4
        assert shared.proportional_swap_size == 1024
        assert shared.minor_faults == 0

    def test_no_regions_is_none(self, tmp_path):
        """Test a process vmmap cannot inspect yields no detail."""
        vmmap = write_script(tmp_path / "vmmap", "echo 'vmmap: no process' >&2\nexit 1\n")

        assert DarwinMemory(vmmap).capture([4321]) is None

    def test_missing_tool(self, tmp_path):
        """Test the probe fails when vmmap is absent."""
        assert not DarwinMemory(str(tmp_path / "vmmap")).supported()


def test_resolve_memory_backend(fake_proc, tmp_path):
    """Test Linux is preferred and None is returned when nothing is available."""
    linux = LinuxMemory(str(fake_proc.root))
    darwin = DarwinMemory(str(tmp_path / "vmmap"))

    assert resolve_memory_backend([linux, darwin]) is linux
    assert resolve_memory_backend([darwin]) is None
    assert default_memory_backend(str(tmp_path / "missing"), str(tmp_path / "vmmap")) is None
