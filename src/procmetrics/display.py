"""Formatting helpers shared by the summary command and the top viewer."""

from enum import Enum

BLOCKS = [" ", "▏", "▎", "▍", "▌", "▋", "▊", "▉", "█"]

UNITS = ["B", "KiB", "MiB", "GiB", "TiB"]


class Intensity(Enum):
    """Colour band of a usage value."""

    LOW = "green"
    MEDIUM = "yellow"
    HIGH = "red"


def intensity(fraction: float) -> Intensity:
    """Band for a fraction of the scale: above 0.8 is high, above 0.5 medium."""
    if fraction > 0.8:
        return Intensity.HIGH
    if fraction > 0.5:
        return Intensity.MEDIUM
    return Intensity.LOW


def format_size(size: float) -> str:
    """Format bytes using binary units, switching unit above 1024."""
    unit = 0
    while size > 1024.0 and unit < len(UNITS) - 1:
        size /= 1024.0
        unit += 1

    if unit == 0:
        return f"{int(size)}{UNITS[0]}"
    return f"{size:.{min(unit, 2)}f}{UNITS[unit]}"


def format_duration(seconds: float) -> str:
    """Format seconds as ``[d-]hh:mm:ss``, the inverse layout of parse_duration."""
    seconds = int(seconds)
    days, seconds = divmod(seconds, 86400)
    hours, seconds = divmod(seconds, 3600)
    minutes, seconds = divmod(seconds, 60)

    if days > 0:
        return f"{days}-{hours:02d}:{minutes:02d}:{seconds:02d}"
    return f"{hours:02d}:{minutes:02d}:{seconds:02d}"


def bar(fraction: float, width: int = 60) -> str:
    """Draw ``fraction`` of ``width`` cells using eighth blocks, padded to ``width``."""
    fraction = min(max(fraction, 0.0), 1.0)
    blocks = width * fraction
    full_blocks = int(blocks)
    partial_block = int((blocks - full_blocks) * (len(BLOCKS) - 1))

    drawn = BLOCKS[-1] * full_blocks
    if partial_block:
        drawn += BLOCKS[partial_block]

    return drawn.ljust(width)


def usage_bar(fraction: float, width: int = 60) -> str:
    """Bar wrapped in rich markup coloured by its intensity band."""
    colour = intensity(fraction).value
    return f"\\[[{colour}]{bar(fraction, width)}[/{colour}]]"
