"""
Engine facade for photodedup.

Coordinates one batch end to end: validates options, prepares the embedder
(degrading to hash-only similarity when the model cannot load), runs the
batch scheduler, and groups the finished records.

Usage:
    from photodedup import DuplicateEngine, BatchOptions, RawPhotoInput

    engine = DuplicateEngine()
    photos = [RawPhotoInput.from_path(p) for p in paths]
    result = engine.process_batch(photos, BatchOptions(similarity_threshold=92))
    for group in result.groups:
        print(group.keeper, group.duplicates)
"""

from __future__ import annotations

import logging
import os
import threading
from typing import Callable, Iterable, Optional, Union

from .cache import FingerprintCache, get_cache
from .embedding import Embedder, load_embedder
from .exceptions import InvalidOptionsError, ModelUnavailableError
from .models import (
    BatchOptions,
    BatchResult,
    Failure,
    PhotoRecord,
    ProgressEvent,
    RawPhotoInput,
    SimilarityGroup,
)
from .scanner import BatchScheduler, find_similar_groups
from .state import BatchSession
from .user_config import get_user_config
from .utils.validators import validate_batch_options, validate_threshold

_logger = logging.getLogger(__name__)

PhotoLike = Union[RawPhotoInput, str, os.PathLike]
ProgressCallback = Callable[[ProgressEvent], None]


def _coerce_input(photo: PhotoLike) -> RawPhotoInput:
    """Accept RawPhotoInput objects or file paths."""
    if isinstance(photo, RawPhotoInput):
        return photo
    path = os.fspath(photo)
    try:
        return RawPhotoInput.from_path(path)
    except OSError as e:
        # No loader: the record fails with DecodeError instead of aborting the batch
        _logger.debug(f"Cannot stat {path}: {e}")
        return RawPhotoInput(name=path)


class BatchHandle:
    """
    Handle to a batch running on a background thread.

    Returned by DuplicateEngine.submit_batch().
    """

    def __init__(self, session: BatchSession):
        self.session = session
        self._done = threading.Event()
        self._result: Optional[BatchResult] = None
        self._error: Optional[BaseException] = None
        self._thread: Optional[threading.Thread] = None

    def cancel(self) -> None:
        """Request cooperative cancellation."""
        self.session.request_cancel()

    def done(self) -> bool:
        return self._done.is_set()

    @property
    def progress(self) -> ProgressEvent:
        return self.session.progress_event()

    def result(self, timeout: Optional[float] = None) -> BatchResult:
        """
        Wait for the batch to finish.

        Args:
            timeout: Seconds to wait, or None to wait indefinitely

        Raises:
            TimeoutError: If the batch is still running after timeout
        """
        if not self._done.wait(timeout):
            raise TimeoutError(f"Batch still running after {timeout}s")
        if self._error is not None:
            raise self._error
        return self._result

    def _run(self, fn: Callable[[], BatchResult]) -> None:
        try:
            self._result = fn()
        except BaseException as e:
            _logger.error(f"Batch failed: {e}")
            self._error = e
        finally:
            self._done.set()


class DuplicateEngine:
    """
    Near-duplicate detection over batches of photos.

    The cache and embedder are injectable; by default the process-wide
    fingerprint cache is used and the CLIP embedder is created on the first
    batch that asks for refinement.
    """

    def __init__(
        self,
        cache: Optional[FingerprintCache] = None,
        embedder: Optional[Embedder] = None,
        core_count: Optional[int] = None,
    ):
        """
        Args:
            cache: Fingerprint cache (process-wide cache if None)
            embedder: Feature embedder (CLIP on demand if None)
            core_count: Reported CPU count for pool sizing (os.cpu_count() if None)
        """
        self._cache = cache
        self._embedder = embedder
        self._embedder_lock = threading.Lock()
        self.core_count = core_count

    @property
    def cache(self) -> FingerprintCache:
        if self._cache is None:
            return get_cache()
        return self._cache

    def _get_embedder(self) -> Embedder:
        with self._embedder_lock:
            if self._embedder is None:
                self._embedder = load_embedder(True, get_user_config().embedding_model)
            return self._embedder

    def _resolve_embedder(self, options: BatchOptions) -> tuple[Optional[Embedder], bool, Optional[str]]:
        """
        Prepare the embedder for a batch.

        Returns:
            (embedder or None, refinement_available, degraded_reason)
        """
        if not options.enable_embedding_refinement:
            return None, False, None

        embedder = self._get_embedder()
        try:
            embedder.ensure_ready()
        except ModelUnavailableError as e:
            _logger.warning(f"Embedding refinement unavailable, using hash similarity only: {e}")
            return None, False, str(e)

        return embedder, True, None

    @staticmethod
    def validate_options(options: BatchOptions) -> None:
        """
        Raises:
            InvalidOptionsError: If any option is out of range
        """
        is_valid, error = validate_batch_options(options)
        if not is_valid:
            raise InvalidOptionsError(error)

    def create_session(
        self,
        photos: Iterable[PhotoLike],
        options: Optional[BatchOptions] = None,
    ) -> BatchSession:
        """
        Validate options and build a session for the photos.

        Raises:
            InvalidOptionsError: If any option is out of range
        """
        options = options or BatchOptions.from_user_config()
        self.validate_options(options)
        return BatchSession([_coerce_input(p) for p in photos], options)

    def run_session(
        self,
        session: BatchSession,
        progress_callback: Optional[ProgressCallback] = None,
        on_state_change: Optional[Callable[[PhotoRecord], None]] = None,
    ) -> BatchResult:
        """Run a prepared session to completion (or cancellation)."""
        options = session.options
        embedder, refinement_available, degraded_reason = self._resolve_embedder(options)

        scheduler = BatchScheduler(
            cache=self.cache if options.use_cache else None,
            embedder=embedder,
            core_count=self.core_count,
        )
        stats = scheduler.run(session, progress_callback, on_state_change)

        groups = find_similar_groups(
            session.records,
            options.similarity_threshold,
            use_features=refinement_available,
            show_progress=options.show_progress,
            logger=_logger,
        )

        failures = [Failure.from_record(r) for r in session.records if r.is_failed]
        if failures:
            _logger.info(f"{len(failures):,} photos could not be processed")

        return BatchResult(
            records=session.records,
            groups=groups,
            failures=failures,
            cancelled=session.status == 'cancelled',
            refinement_available=refinement_available,
            degraded_reason=degraded_reason,
            stats=stats,
        )

    def process_batch(
        self,
        photos: Iterable[PhotoLike],
        options: Optional[BatchOptions] = None,
        progress_callback: Optional[ProgressCallback] = None,
        on_state_change: Optional[Callable[[PhotoRecord], None]] = None,
    ) -> BatchResult:
        """
        Process a batch synchronously.

        Args:
            photos: RawPhotoInput objects or file paths, in insertion order
            options: Batch options (user config defaults if None)
            progress_callback: Called with a ProgressEvent after each chunk
            on_state_change: Called with a record after each state change

        Returns:
            BatchResult with records, groups and failures

        Raises:
            InvalidOptionsError: If options are invalid (before any work)
        """
        session = self.create_session(photos, options)
        return self.run_session(session, progress_callback, on_state_change)

    def submit_batch(
        self,
        photos: Iterable[PhotoLike],
        options: Optional[BatchOptions] = None,
        progress_callback: Optional[ProgressCallback] = None,
    ) -> BatchHandle:
        """
        Start a batch on a background thread.

        Raises:
            InvalidOptionsError: If options are invalid (before any work)
        """
        session = self.create_session(photos, options)
        handle = BatchHandle(session)
        thread = threading.Thread(
            target=handle._run,
            args=(lambda: self.run_session(session, progress_callback),),
            name='photodedup-batch',
            daemon=True,
        )
        handle._thread = thread
        thread.start()
        return handle

    def regroup(
        self,
        records: Iterable[PhotoRecord],
        threshold: int,
        use_features: bool = True,
    ) -> list[SimilarityGroup]:
        """
        Re-run grouping on finished records at a new threshold.

        No photo is decoded again.

        Raises:
            InvalidOptionsError: If the threshold is out of range
        """
        is_valid, error = validate_threshold(threshold)
        if not is_valid:
            raise InvalidOptionsError(error)
        return find_similar_groups(records, threshold, use_features=use_features, logger=_logger)


def process_batch(
    photos: Iterable[PhotoLike],
    options: Optional[BatchOptions] = None,
    progress_callback: Optional[ProgressCallback] = None,
) -> BatchResult:
    """Process a batch with a default engine (process-wide cache)."""
    return DuplicateEngine().process_batch(photos, options, progress_callback)


__all__ = ['DuplicateEngine', 'BatchHandle', 'process_batch']
