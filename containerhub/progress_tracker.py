"""
Progress tracking and reporting utilities.
"""

import logging
import time
from dataclasses import dataclass, replace
from typing import Callable, List, Optional, Tuple

logger = logging.getLogger(__name__)


@dataclass
class ImportProgressState:
    """Snapshot of an import run's counters and derived metrics."""

    total_items: int = 0
    items_processed: int = 0
    current_batch: int = 0
    completed_batches: int = 0
    total_batches: int = 0
    elapsed_ms: float = 0.0
    average_batch_ms: float = 0.0
    eta_ms: float = 0.0
    items_per_second: float = 0.0
    cancelled: bool = False

    @property
    def completion_rate(self) -> float:
        """Completion percentage (0-1)."""
        if self.total_items > 0:
            return self.items_processed / self.total_items
        return 0


class ProgressTracker:
    """Tracks batch metrics and displays progress for an import run."""

    def __init__(
        self,
        description: str = "Importing",
        show_progress_bar: bool = False,
        update_interval: float = 1.0,
        clock: Callable[[], float] = time.monotonic,
        on_update: Optional[Callable[[ImportProgressState], None]] = None,
    ):
        """
        Initialize progress tracker.

        Args:
            description: Description of the operation
            show_progress_bar: Whether to print a status line
            update_interval: How often to update display (seconds)
            clock: Monotonic time source in seconds
            on_update: Listener called with a snapshot after every update
        """
        self.description = description
        self.show_progress_bar = show_progress_bar
        self.update_interval = update_interval
        self.clock = clock
        self.on_update = on_update

        self.state = ImportProgressState()
        self._history: List[Tuple[int, int, float]] = []
        self._start_time = 0.0
        self._last_update = 0.0
        self._frozen = False
        self._last_message_length = 0

    @property
    def frozen(self) -> bool:
        return self._frozen

    def start(self, total_items: int, total_batches: int) -> None:
        """Begin a new run; all previous history is discarded."""
        self.reset()
        self._start_time = self.clock()
        self.state.total_items = total_items
        self.state.total_batches = total_batches

        if self.show_progress_bar:
            print(f"\n{self.description}: 0/{total_items} (0.0%)")

    def record(
        self, batch_index: int, items_this_batch: int, elapsed_ms_this_batch: float
    ) -> ImportProgressState:
        """
        Record one completed unit of work.

        Args:
            batch_index: Zero-based index of the batch or URL
            items_this_batch: Items accounted for by this unit
            elapsed_ms_this_batch: Wall time the unit took

        Returns:
            Snapshot of the updated state
        """
        if self._frozen:
            logger.debug(f"Ignoring update for batch {batch_index}: tracker frozen")
            return self.snapshot()

        self._history.append((batch_index, items_this_batch, elapsed_ms_this_batch))
        self._recompute(batch_index)

        current_time = self.clock()
        if self.show_progress_bar and (
            current_time - self._last_update >= self.update_interval
            or self.state.completed_batches >= self.state.total_batches
        ):
            self._update_display()
            self._last_update = current_time

        snapshot = self.snapshot()
        if self.on_update:
            self.on_update(snapshot)
        return snapshot

    def _recompute(self, batch_index: int) -> None:
        durations = [elapsed for _, _, elapsed in self._history]
        completed = len(durations)

        state = self.state
        state.current_batch = batch_index
        state.completed_batches = completed
        state.items_processed = sum(items for _, items, _ in self._history)
        state.average_batch_ms = sum(durations) / completed if completed else 0.0
        state.eta_ms = max(state.total_batches - completed, 0) * state.average_batch_ms
        state.elapsed_ms = (self.clock() - self._start_time) * 1000
        if state.elapsed_ms > 0:
            state.items_per_second = state.items_processed / (state.elapsed_ms / 1000)
        else:
            state.items_per_second = 0.0

    def freeze(self, cancelled: bool = False) -> ImportProgressState:
        """Stop accepting updates; the last state stays readable."""
        self._frozen = True
        if cancelled:
            self.state.cancelled = True
        return self.snapshot()

    def reset(self) -> None:
        """Return to the zero state."""
        self.state = ImportProgressState()
        self._history = []
        self._start_time = 0.0
        self._last_update = 0.0
        self._frozen = False

    def snapshot(self) -> ImportProgressState:
        return replace(self.state)

    def _update_display(self):
        """Update the progress display."""
        state = self.state
        percentage = state.completion_rate * 100

        message_parts = [
            f"\r{self.description}: {state.items_processed}/{state.total_items}",
            f"({percentage:.1f}%)",
            f"batch {state.completed_batches}/{state.total_batches}",
            f"[{self._format_time(state.elapsed_ms / 1000)}",
            f"{state.items_per_second:.1f}/s",
        ]

        if state.eta_ms > 0:
            message_parts.append(f"ETA:{self._format_time(state.eta_ms / 1000)}")

        message_parts.append("]")
        message = " ".join(message_parts)

        # Clear previous message and print new one
        if self._last_message_length > len(message):
            print(" " * self._last_message_length, end="\r")

        print(message, end="", flush=True)
        self._last_message_length = len(message)

    def _format_time(self, seconds: float) -> str:
        """Format time duration in human-readable format."""
        if seconds < 60:
            return f"{seconds:.0f}s"
        elif seconds < 3600:
            minutes = int(seconds / 60)
            secs = int(seconds % 60)
            return f"{minutes}m{secs:02d}s"
        else:
            hours = int(seconds / 3600)
            minutes = int((seconds % 3600) / 60)
            return f"{hours}h{minutes:02d}m"

    def finish(self, final_message: Optional[str] = None):
        """Clear the status line and show final stats."""
        if not self.show_progress_bar:
            return

        print(" " * self._last_message_length, end="\r")
        state = self.state
        if final_message:
            print(final_message)
        else:
            print(
                f"{self.description} complete: {state.items_processed}/"
                f"{state.total_items} in {self._format_time(state.elapsed_ms / 1000)} "
                f"({state.items_per_second:.1f} items/sec)"
            )
