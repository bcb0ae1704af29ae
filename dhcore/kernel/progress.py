"""
Single-line progress reporting shared by the transfers of one operation.

Not thread-safe: hook calls into one GlobalProgress must be serialized by
the caller. S3ObjectStore.put does so for multipart worker threads.
"""
import time
from typing import Callable, Optional

from rich.console import Console
from rich.control import Control
from rich.segment import ControlType

from dhcore.internal.constants import PROGRESS_RENDER_INTERVAL, SPINNER_FRAMES


def human_bytes(n: int) -> str:
    kb = 1024
    mb = 1024 * kb
    gb = 1024 * mb
    if n >= gb:
        return f"{n / gb:.2f} GB"
    if n >= mb:
        return f"{n / mb:.2f} MB"
    if n >= kb:
        return f"{n / kb:.2f} KB"
    return f"{n} B"


class GlobalProgress:
    """
    Accumulates bytes across any number of sub-transfers and renders one
    overwritten status line: a percentage when the total is known, a spinner
    otherwise.
    """

    def __init__(
        self,
        total_bytes: Optional[int] = None,
        console: Optional[Console] = None,
        label: str = "Progress",
        clock: Callable[[], float] = time.monotonic,
    ):
        self.total_bytes = total_bytes
        self.done_bytes = 0
        self.label = label
        self._console = console if console is not None else Console(stderr=True)
        self._clock = clock
        self._last_tick: Optional[float] = None
        self._spin_idx = 0
        self._line_open = False

    @property
    def total_known(self) -> bool:
        return self.total_bytes is not None

    def set_total(self, total_bytes: Optional[int]) -> None:
        self.total_bytes = total_bytes
        self._clamp()

    def add(self, delta: int) -> None:
        if delta <= 0:
            return
        self.done_bytes += delta
        self._clamp()

    def _clamp(self) -> None:
        if self.total_bytes is not None and self.done_bytes > self.total_bytes:
            self.done_bytes = self.total_bytes

    def percent(self) -> Optional[float]:
        if self.total_bytes is None:
            return None
        if self.total_bytes <= 0:
            return 100.0
        return self.done_bytes / self.total_bytes * 100

    def render(self, force: bool = False) -> Optional[str]:
        """
        Emit the status line and return it; None when throttled.
        """
        now = self._clock()
        if not force and self._last_tick is not None and now - self._last_tick < PROGRESS_RENDER_INTERVAL:
            return None
        self._last_tick = now

        pct = self.percent()
        if pct is not None:
            line = (
                f"{self.label}: {pct:6.2f}% "
                f"({human_bytes(self.done_bytes)} / {human_bytes(self.total_bytes)})   "
            )
        else:
            frame = SPINNER_FRAMES[self._spin_idx % len(SPINNER_FRAMES)]
            self._spin_idx += 1
            line = f"{self.label}: [{frame}] {human_bytes(self.done_bytes)} transferred   "

        self._console.control(Control(ControlType.CARRIAGE_RETURN))
        self._console.print(line, end="", markup=False, highlight=False, soft_wrap=True)
        self._line_open = True
        return line

    def done(self) -> str:
        line = self.render(force=True)
        if self._line_open:
            self._console.print()
            self._line_open = False
        return line


class AggregatingHook:
    """
    ProgressHook feeding one object's cumulative byte counts into a shared
    GlobalProgress as deltas.
    """

    def __init__(self, progress: GlobalProgress, adopt_total: bool = False):
        self.progress = progress
        self.adopt_total = adopt_total
        self._written = 0

    def on_start(self, key: str, total_bytes: int) -> None:
        self._written = 0
        if self.adopt_total and not self.progress.total_known:
            self.progress.set_total(total_bytes)

    def on_progress(self, key: str, written: int, total_bytes: Optional[int]) -> None:
        delta = written - self._written
        if delta > 0:
            self.progress.add(delta)
            self.progress.render()
        self._written = max(written, self._written)

    def on_done(self, key: str, total_bytes: Optional[int], elapsed: float) -> None:
        # count whatever the writes did not report
        if total_bytes is not None and total_bytes > self._written:
            self.progress.add(total_bytes - self._written)
        self.progress.render(force=True)
        self._written = 0


class FileProgressHook:
    """
    Verbose per-object progress: size, running percentage, elapsed time.
    """

    def __init__(self, console: Optional[Console] = None, action: str = "uploading", indent: str = "   "):
        self._console = console if console is not None else Console(stderr=True)
        self.action = action
        self.indent = indent

    def on_start(self, key: str, total_bytes: int) -> None:
        self._console.print(f"{self.indent}size: {total_bytes / (1024 * 1024):.2f} MB", markup=False, highlight=False)

    def on_progress(self, key: str, written: int, total_bytes: Optional[int]) -> None:
        if not total_bytes:
            return
        pct = written / total_bytes * 100
        self._console.control(Control(ControlType.CARRIAGE_RETURN))
        self._console.print(f"{self.indent}{self.action}: {pct:6.2f}%", end="", markup=False, highlight=False)

    def on_done(self, key: str, total_bytes: Optional[int], elapsed: float) -> None:
        if total_bytes:
            self._console.control(Control(ControlType.CARRIAGE_RETURN))
            self._console.print(f"{self.indent}done: 100.00% in {elapsed:.1f}s", markup=False, highlight=False)
        else:
            self._console.print(f"{self.indent}done in {elapsed:.1f}s", markup=False, highlight=False)
