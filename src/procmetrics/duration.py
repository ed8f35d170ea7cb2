"""Parsing of ``ps``-style elapsed and CPU time strings."""

import re

# [[dd-]hh:]mm:ss[.ff]
DURATION = re.compile(
    r"""
    \A\s*
    (?:(?P<days>\d+)-)?
    (?:(?P<hours>\d+):)?
    (?P<minutes>\d+):
    (?P<seconds>\d+)
    (?:\.(?P<fraction>\d{1,2}))?
    \s*\Z
    """,
    re.VERBOSE,
)


def parse_duration(text: str) -> float:
    """
    Parse a duration such as ``01-02:03:04.50`` into seconds.

    Missing components count as zero. Input that does not match the format
    yields 0.0 rather than raising, so a single bad field never aborts a
    whole snapshot.
    """
    match = DURATION.match(text or "")
    if match is None:
        return 0.0

    days = int(match["days"] or 0)
    hours = int(match["hours"] or 0)
    minutes = int(match["minutes"])
    seconds = int(match["seconds"])

    total = float(((days * 24 + hours) * 60 + minutes) * 60 + seconds)

    if fraction := match["fraction"]:
        total += int(fraction) / 10 ** len(fraction)

    return total
