"""Rate limited progress display for media transfers."""

import time
from typing import Callable, Optional

from rich.console import Console

from tgfetch.const import MB

BAR_LENGTH = 30
LARGE_FILE_THRESHOLD = 100 * MB
SMALL_FILE_INTERVAL = 0.5
LARGE_FILE_INTERVAL = 1.0
BYTES_INTERVAL = 5 * MB

_console = Console(stderr=True)


def format_bytes(size: float) -> str:
    """Format a byte count as B, KB, MB, GB or TB with two decimals."""
    if size <= 0:
        return "0 B"
    units = ["B", "KB", "MB", "GB", "TB"]
    i = 0
    while size >= 1024 and i < len(units) - 1:
        size /= 1024
        i += 1
    return f"{round(size, 2):g} {units[i]}"


def console_sink(line: str) -> None:
    _console.print(line, end="\r", markup=False, highlight=False)


class ProgressTracker:
    """Render transfer progress, at most once per interval.

    A render happens when the time interval elapsed (longer for files above
    LARGE_FILE_THRESHOLD), when BYTES_INTERVAL bytes arrived since the last
    render, or when the transfer completed.
    """

    def __init__(
        self,
        expected_size: int = 0,
        sink: Optional[Callable[[str], None]] = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.expected_size = expected_size
        self.sink = sink or console_sink
        self.clock = clock
        self.interval = (
            LARGE_FILE_INTERVAL
            if expected_size > LARGE_FILE_THRESHOLD
            else SMALL_FILE_INTERVAL
        )
        self.started_at = clock()
        self.last_bytes = 0
        self.last_time = self.started_at
        self.renders = 0

    def reset(self) -> None:
        """Start over for a new attempt."""
        self.started_at = self.clock()
        self.last_bytes = 0
        self.last_time = self.started_at

    def update(self, received: int, total: Optional[int]) -> bool:
        """Progress callback for telethon. Returns True when a line was shown."""
        now = self.clock()
        total = total or self.expected_size
        done = bool(total) and received >= total
        if not (
            now - self.last_time >= self.interval
            or received - self.last_bytes >= BYTES_INTERVAL
            or done
        ):
            return False
        self.sink(self.render(received, total, now))
        self.last_bytes = received
        self.last_time = now
        self.renders += 1
        return True

    def render(self, received: int, total: Optional[int], now: float) -> str:
        elapsed = now - self.started_at
        speed = f"{format_bytes(received / elapsed)}/s" if elapsed > 0 else "-"
        if not total:
            return f"Downloading... {format_bytes(received)} {speed}"
        percentage = min(100, round(received * 100 / total))
        filled = round(BAR_LENGTH * percentage / 100)
        bar = "█" * filled + "░" * (BAR_LENGTH - filled)
        return (
            f"[{bar}] {percentage}% "
            f"({format_bytes(received)}/{format_bytes(total)}) {speed}"
        )

    def finish(self) -> None:
        if self.renders and self.sink is console_sink:
            _console.print()
