"""
Batch session state for photodedup.

Holds the records of one batch together with its progress counters and the
cooperative cancellation flag shared between the caller and the scheduler.
"""

import threading
import time
from typing import Optional

from .models import BatchOptions, PhotoRecord, ProcessingState, ProgressEvent, RawPhotoInput


class BatchSession:
    """
    State of one batch.

    Records are mutated only by the scheduler. Cancellation and progress are
    guarded by a lock so any thread may request a stop or poll progress.
    """

    def __init__(self, photos: list, options: Optional[BatchOptions] = None):
        """
        Args:
            photos: RawPhotoInput objects, in insertion order
            options: Batch options (defaults if None)
        """
        self.options = options or BatchOptions()
        self.photos: list[RawPhotoInput] = list(photos)
        self.records: list[PhotoRecord] = [
            PhotoRecord.from_input(photo, index) for index, photo in enumerate(self.photos)
        ]

        self._lock = threading.Lock()
        self._cancel_requested = False
        self._processed = 0

        self.status = 'pending'  # pending, running, complete, cancelled
        self.started_at: Optional[float] = None
        self.finished_at: Optional[float] = None

    @property
    def total_count(self) -> int:
        return len(self.records)

    @property
    def processed_count(self) -> int:
        with self._lock:
            return self._processed

    @property
    def cancel_requested(self) -> bool:
        """Check if cancel has been requested."""
        with self._lock:
            return self._cancel_requested

    def request_cancel(self):
        """Request cancellation; in-flight work finishes, nothing new starts."""
        with self._lock:
            self._cancel_requested = True

    cancel = request_cancel

    def record_progress(self, count: int) -> ProgressEvent:
        """Add count finished records and return the resulting event."""
        with self._lock:
            self._processed = min(self.total_count, self._processed + count)
            return ProgressEvent(self._processed, self.total_count)

    def progress_event(self) -> ProgressEvent:
        with self._lock:
            return ProgressEvent(self._processed, self.total_count)

    @property
    def percent(self) -> float:
        return self.progress_event().percent

    def mark_started(self):
        self.status = 'running'
        self.started_at = time.perf_counter()

    @property
    def pending_records(self) -> list:
        return [r for r in self.records if not r.state.is_terminal]

    def mark_finished(self):
        # A cancel that arrives after the last chunk changes nothing
        cancelled = self.cancel_requested and bool(self.pending_records)
        self.status = 'cancelled' if cancelled else 'complete'
        self.finished_at = time.perf_counter()

    @property
    def elapsed_seconds(self) -> float:
        if self.started_at is None:
            return 0.0
        end = self.finished_at if self.finished_at is not None else time.perf_counter()
        return end - self.started_at

    def state_counts(self) -> dict:
        """Number of records in each processing state."""
        counts = {state.value: 0 for state in ProcessingState}
        for record in self.records:
            counts[record.state.value] += 1
        return counts

    def to_status_dict(self) -> dict:
        """Return current status as a plain dict."""
        event = self.progress_event()
        return {
            'status': self.status,
            'progress': event.to_dict(),
            'states': self.state_counts(),
            'cancel_requested': self.cancel_requested,
            'elapsed_seconds': round(self.elapsed_seconds, 3),
        }


__all__ = ['BatchSession']
