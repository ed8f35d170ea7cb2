"""Helpers for reading the Linux process pseudo-filesystem (proc(5))."""

import os
import re

# "Name:    1234 kB" as written by fs/proc/task_mmu.c
SIZE_LINE = re.compile(r"^(?P<name>\w+):\s+(?P<value>\d+) kB")

# Positions within /proc/[pid]/stat once the "pid (comm) " prefix is removed.
# proc(5) numbers the fields from 1, so field N is at index N - 3.
STATE = 0
PPID = 1
PGRP = 2
MINFLT = 7
MAJFLT = 9
UTIME = 11
STIME = 12
STARTTIME = 19
VSIZE = 20
RSS = 21

try:
    CLOCK_TICKS = os.sysconf("SC_CLK_TCK")
except (ValueError, OSError, AttributeError):
    CLOCK_TICKS = 100

try:
    PAGE_SIZE = os.sysconf("SC_PAGESIZE")
except (ValueError, OSError, AttributeError):
    PAGE_SIZE = 4096


def parse_stat(content: str) -> tuple[str, list[str]] | None:
    """
    Split a stat line into the executable name and the fields that follow it.

    The name is wrapped in parentheses and may itself contain spaces and
    parentheses, so the split happens at the last ``)``.
    """
    opening = content.find("(")
    closing = content.rfind(")")
    if opening < 0 or closing < opening:
        return None

    return content[opening + 1 : closing], content[closing + 2 :].split()


def parse_sizes(lines, mapping: dict[str, str], totals: dict[str, int]) -> int:
    """Add every ``kB`` line named in ``mapping`` to ``totals`` (as bytes); returns ``VmFlags`` count."""
    regions = 0

    for line in lines:
        if match := SIZE_LINE.match(line):
            if key := mapping.get(match["name"]):
                totals[key] = totals.get(key, 0) + int(match["value"]) * 1024
        elif line.startswith("VmFlags:"):
            regions += 1

    return regions


def read_text(path: str) -> str:
    with open(path, encoding="utf-8", errors="replace") as file:
        return file.read()


def list_pids(proc_root: str) -> list[int]:
    """Every numeric entry of the proc root."""
    return [int(entry) for entry in os.listdir(proc_root) if entry.isdigit()]


def uptime_ticks(proc_root: str) -> int:
    """Host uptime in clock ticks, the unit of the stat ``starttime`` field."""
    seconds = float(read_text(os.path.join(proc_root, "uptime")).split()[0])
    return int(seconds * CLOCK_TICKS)
