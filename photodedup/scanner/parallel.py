"""
Parallel processing module for the scanner package.

Provides the batch scheduler: consults the fingerprint cache, dispatches
cache misses to a bounded worker pool in fixed-size chunks, applies results
to records, embeds when refinement is on, and writes fresh results back to
the cache after every chunk.
"""

from __future__ import annotations

import logging
import math
import os
from concurrent.futures import (
    Executor,
    Future,
    ProcessPoolExecutor,
    ThreadPoolExecutor,
    TimeoutError as FuturesTimeoutError,
    as_completed,
)
from typing import Any, Callable, Optional

from ..cache import FingerprintCache, now_ms
from ..config import WORKER_CEILING, WORKER_FLOOR
from ..embedding import Embedder
from ..exceptions import DecodeError, StageTimeoutError
from ..models import BatchOptions, BatchStats, PhotoRecord, ProcessingState, ProgressEvent
from ..state import BatchSession
from ..utils.formatters import format_duration
from .analysis import AnalysisResult, analyze_photo_bytes
from .dependencies import HAS_TQDM, _tqdm_class

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[ProgressEvent], None]
StateCallback = Callable[[PhotoRecord], None]


def recommended_concurrency(
    reported_core_count: Optional[int] = None,
    floor: int = WORKER_FLOOR,
    ceiling: int = WORKER_CEILING,
) -> int:
    """
    Worker pool size for a machine reporting the given core count.

    Args:
        reported_core_count: CPU count (None or < 1 when unknown)
        floor: Minimum pool size
        ceiling: Maximum pool size

    Returns:
        max(floor, min(ceiling, cores)), or floor when the count is unknown
    """
    if reported_core_count is None or reported_core_count < 1:
        return floor
    return max(floor, min(ceiling, int(reported_core_count)))


def _make_executor(kind: str, workers: int) -> Executor:
    if kind == 'process':
        return ProcessPoolExecutor(max_workers=workers)
    return ThreadPoolExecutor(max_workers=workers, thread_name_prefix='photodedup')


class BatchScheduler:
    """
    Drives every record of a BatchSession to DONE or FAILED.

    Only the coordinator thread (the caller of run()) mutates records.
    Workers receive bytes and return AnalysisResult values.

    Usage:
        scheduler = BatchScheduler(cache=get_cache())
        stats = scheduler.run(session, progress_callback=print)
    """

    def __init__(
        self,
        cache: Optional[FingerprintCache] = None,
        embedder: Optional[Embedder] = None,
        core_count: Optional[int] = None,
        task_fn: Callable[..., AnalysisResult] = analyze_photo_bytes,
    ):
        """
        Args:
            cache: Fingerprint cache, or None to always decode
            embedder: Feature embedder used when refinement is enabled
            core_count: Reported CPU count (defaults to os.cpu_count())
            task_fn: Unit of work; must be a module-level function for
                     the process executor
        """
        self.cache = cache
        self.embedder = embedder
        self.core_count = core_count if core_count is not None else os.cpu_count()
        self.task_fn = task_fn

    def worker_count(self, session: BatchSession) -> int:
        if session.options.worker_count is not None:
            return session.options.worker_count
        return recommended_concurrency(self.core_count)

    def wants_features(self, session: BatchSession) -> bool:
        """Whether this batch computes embeddings."""
        return (
            session.options.enable_embedding_refinement
            and self.embedder is not None
            and self.embedder.available
        )

    def run(
        self,
        session: BatchSession,
        progress_callback: Optional[ProgressCallback] = None,
        on_state_change: Optional[StateCallback] = None,
    ) -> BatchStats:
        """
        Process a batch.

        Records are mutated in place. Per-photo failures are recorded on the
        records, never raised. If cancellation is requested, the current
        in-flight tasks finish and unsubmitted records stay PENDING.

        Args:
            session: Batch to process
            progress_callback: Called with a ProgressEvent after each chunk
            on_state_change: Called with a record after each state change

        Returns:
            BatchStats for the run
        """
        options = session.options
        stats = BatchStats(total_files=session.total_count)
        session.mark_started()

        if not session.records:
            session.mark_finished()
            return stats

        workers = self.worker_count(session)
        want_features = self.wants_features(session)
        cache = self.cache if options.use_cache else None
        notify = on_state_change or (lambda record: None)

        logger.info(
            f"Processing {session.total_count:,} photos with {workers} {options.executor} "
            f"workers (chunk {options.chunk_size}, embeddings {'on' if want_features else 'off'})"
        )

        pbar: Optional[Any] = None
        if HAS_TQDM and options.show_progress and _tqdm_class is not None:
            pbar = _tqdm_class(
                total=session.total_count,
                desc="Fingerprinting photos",
                unit="img",
                ncols=80,
            )

        executor = _make_executor(options.executor, workers)
        try:
            for start in range(0, session.total_count, options.chunk_size):
                if session.cancel_requested:
                    logger.info("Cancellation requested; stopping before next chunk")
                    break

                indices = range(start, min(start + options.chunk_size, session.total_count))
                finished = self._run_chunk(
                    session, indices, executor, workers, cache, want_features, stats, notify
                )

                event = session.record_progress(finished)
                if pbar is not None:
                    pbar.update(finished)
                if progress_callback:
                    progress_callback(event)
        finally:
            # Timed-out tasks may still be running; do not block on them
            executor.shutdown(wait=False, cancel_futures=True)
            if pbar is not None:
                pbar.close()

        session.mark_finished()
        stats.failed = sum(1 for r in session.records if r.is_failed)
        stats.elapsed_seconds = session.elapsed_seconds

        if cache is not None and stats.total_files:
            logger.info(
                f"Cache: {stats.cache_hits:,} hits, {stats.cache_misses:,} misses "
                f"({stats.hit_rate:.1f}% hit rate)"
            )
        logger.info(
            f"Batch {session.status}: {session.processed_count:,}/{session.total_count:,} processed, "
            f"{stats.failed:,} failed, {stats.timed_out:,} timed out "
            f"in {format_duration(stats.elapsed_seconds)}"
        )
        return stats

    def _run_chunk(
        self,
        session: BatchSession,
        indices: range,
        executor: Executor,
        workers: int,
        cache: Optional[FingerprintCache],
        want_features: bool,
        stats: BatchStats,
        notify: StateCallback,
    ) -> int:
        """Process one chunk; returns how many records reached a terminal state."""
        options = session.options
        finished = 0
        fresh: list[PhotoRecord] = []
        futures: dict[Future, PhotoRecord] = {}

        for index in indices:
            if session.cancel_requested:
                break

            record = session.records[index]
            photo = session.photos[index]

            if cache is not None:
                entry = cache.get(record.identity)
                # A hit without a feature cannot serve a refining batch, and a
                # hash from other hash settings is not comparable
                if (
                    entry is not None
                    and entry.matches(options.hash_method, options.hash_size)
                    and (entry.feature is not None or not want_features)
                ):
                    record.apply_cache_entry(entry)
                    stats.cache_hits += 1
                    finished += 1
                    notify(record)
                    continue
            stats.cache_misses += 1

            record.state = ProcessingState.DECODING
            notify(record)
            try:
                data = photo.read()
            except DecodeError as e:
                logger.warning(f"Cannot read {record.name}: {e}")
                record.mark_failed(e)
                finished += 1
                notify(record)
                continue

            future = executor.submit(
                self.task_fn, record.identity, data, want_features,
                options.hash_size, options.hash_method,
            )
            futures[future] = record
            stats.decode_dispatched += 1

        if futures:
            # Each worker handles its share of the chunk sequentially
            budget = options.task_timeout * math.ceil(len(futures) / workers)
            pending = dict(futures)
            try:
                for future in as_completed(futures, timeout=budget):
                    record = pending.pop(future)
                    if self._apply_future(future, record, options, want_features, stats, notify):
                        fresh.append(record)
                    finished += 1
            except FuturesTimeoutError:
                for future, record in pending.items():
                    if future.done():
                        if self._apply_future(future, record, options, want_features, stats, notify):
                            fresh.append(record)
                    else:
                        future.cancel()
                        logger.warning(f"Timed out after {options.task_timeout}s: {record.name}")
                        record.mark_failed(StageTimeoutError(
                            f"Analysis exceeded {options.task_timeout}s time budget"
                        ))
                        stats.timed_out += 1
                        notify(record)
                    finished += 1

        if cache is not None and fresh:
            ts = now_ms()
            cache.put_many(
                (record.identity, record.to_cache_entry(ts, options.hash_size))
                for record in fresh
            )

        return finished

    def _apply_future(
        self,
        future: Future,
        record: PhotoRecord,
        options: BatchOptions,
        want_features: bool,
        stats: BatchStats,
        notify: StateCallback,
    ) -> bool:
        """Apply a finished task to its record; True if the record is DONE."""
        try:
            result = future.result()
        except Exception as e:
            # Broken pool, pickling failure or an exception escaping task_fn
            logger.warning(f"Worker failed for {record.name}: {e}")
            record.mark_failed(e)
            notify(record)
            return False

        for stage in result.stages:
            record.state = stage
            notify(record)

        if not result.ok:
            if result.failed_stage is not None:
                record.state = result.failed_stage
                notify(record)
            record.fail_with(result.error or "Analysis failed", result.error_type or "PhotoDedupError")
            notify(record)
            return False

        record.width = result.width
        record.height = result.height
        record.perceptual_hash = result.perceptual_hash
        record.hash_method = options.hash_method
        record.quality = result.quality

        if want_features and result.thumbnail is not None:
            record.pixels = result.thumbnail
            record.state = ProcessingState.EMBEDDING
            notify(record)
            try:
                record.feature = self.embedder.embed(record.pixels)
                stats.embedded += 1
            except Exception as e:
                # Hash-only similarity still works for this photo
                logger.warning(f"Embedding failed for {record.name}: {e}")
                record.feature = None

        record.release_pixels()
        record.state = ProcessingState.DONE
        notify(record)
        return True


__all__ = ['BatchScheduler', 'recommended_concurrency']
