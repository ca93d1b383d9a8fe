"""
Data models for photodedup.

Contains dataclasses for photo inputs, per-photo processing records,
cache entries, similarity groups, and batch results.
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from enum import Enum
from functools import partial
from typing import Any, Callable, Optional

import numpy as np

from .config import (
    DEFAULT_CHUNK_SIZE,
    DEFAULT_HASH_METHOD,
    DEFAULT_HASH_SIZE,
    DEFAULT_SIMILARITY_THRESHOLD,
    DEFAULT_TASK_TIMEOUT,
)
from .exceptions import DecodeError, error_kind


def format_size(size_bytes: int) -> str:
    """Format file size in human-readable form."""
    for unit in ['B', 'KB', 'MB', 'GB']:
        if size_bytes < 1024:
            return f"{size_bytes:.1f} {unit}"
        size_bytes /= 1024
    return f"{size_bytes:.1f} TB"


def make_identity(name: str, mtime: float, size: int) -> str:
    """
    Create a stable identity key from file attributes.

    The key changes if the file is modified or its size changes, so a cached
    fingerprint can never be served for different content under the same name.

    Args:
        name: Path or display name of the photo
        mtime: Last-modified time
        size: Size in bytes

    Returns:
        Identity key string
    """
    return f"{name}:{mtime}:{size}"


class ProcessingState(str, Enum):
    """Lifecycle of a PhotoRecord inside a batch."""
    PENDING = 'pending'
    DECODING = 'decoding'
    HASHING = 'hashing'
    SCORING_QUALITY = 'scoring_quality'
    EMBEDDING = 'embedding'
    DONE = 'done'
    FAILED = 'failed'

    @property
    def is_terminal(self) -> bool:
        return self in (ProcessingState.DONE, ProcessingState.FAILED)


@dataclass(frozen=True)
class QualityMetrics:
    """
    Per-photo quality measurements.

    Attributes:
        sharpness: Edge-energy estimate, 0-100
        brightness: Mean luminance, 0-255
        contrast: Luminance standard deviation, >= 0
        score: Composite quality score, 0-100
    """
    sharpness: float = 0.0
    brightness: float = 0.0
    contrast: float = 0.0
    score: float = 0.0

    def to_dict(self) -> dict:
        return {
            'sharpness': self.sharpness,
            'brightness': self.brightness,
            'contrast': self.contrast,
            'score': self.score,
        }

    @classmethod
    def from_dict(cls, data: dict) -> 'QualityMetrics':
        return cls(
            sharpness=float(data.get('sharpness', 0.0)),
            brightness=float(data.get('brightness', 0.0)),
            contrast=float(data.get('contrast', 0.0)),
            score=float(data.get('score', 0.0)),
        )


def _read_file(path: str) -> bytes:
    with open(path, 'rb') as f:
        return f.read()


@dataclass
class RawPhotoInput:
    """
    A photo handed to the engine by the host application.

    The engine never opens files itself; it calls ``loader`` (or uses
    ``data``) to obtain the encoded bytes when the photo is dispatched.

    Attributes:
        name: Path or display name
        file_size: Size in bytes
        mtime: Last-modified time
        loader: Zero-argument callable returning the encoded image bytes
        data: Encoded image bytes supplied up front
        content_hash: Optional content hash used as identity instead of
            name + size + mtime
    """
    name: str
    file_size: int = 0
    mtime: float = 0.0
    loader: Optional[Callable[[], bytes]] = field(default=None, repr=False, compare=False)
    data: Optional[bytes] = field(default=None, repr=False, compare=False)
    content_hash: Optional[str] = None

    @property
    def identity(self) -> str:
        """Stable identity key for caching and reporting."""
        if self.content_hash:
            return self.content_hash
        return make_identity(self.name, self.mtime, self.file_size)

    def read(self) -> bytes:
        """
        Obtain the encoded image bytes.

        Raises:
            DecodeError: If no pixel source is available or the loader fails
        """
        if self.data is not None:
            return self.data
        if self.loader is None:
            raise DecodeError(f"No pixel source for {self.name}")
        try:
            return self.loader()
        except Exception as e:
            raise DecodeError(f"Cannot read {self.name}: {e}") from e

    @classmethod
    def from_path(cls, path: str) -> 'RawPhotoInput':
        """Create an input for a file on disk; bytes are read lazily."""
        path = str(path)
        stat = os.stat(path)
        return cls(
            name=path,
            file_size=stat.st_size,
            mtime=stat.st_mtime,
            loader=partial(_read_file, path),
        )

    @classmethod
    def from_bytes(cls, name: str, data: bytes, mtime: float = 0.0) -> 'RawPhotoInput':
        """Create an input from bytes already in memory."""
        return cls(name=name, file_size=len(data), mtime=mtime, data=data)


@dataclass(frozen=True)
class CacheEntry:
    """
    Cached fingerprint for one photo identity.

    Attributes:
        perceptual_hash: Hex-encoded perceptual hash
        quality: Quality metrics
        feature: Optional float32 embedding vector
        width: Decoded width in pixels
        height: Decoded height in pixels
        timestamp: Insertion time in milliseconds since the epoch
        hash_method: Hash method that produced perceptual_hash
        hash_size: Hash grid size that produced perceptual_hash
    """
    perceptual_hash: str
    quality: QualityMetrics
    feature: Optional[np.ndarray] = field(default=None, compare=False, repr=False)
    width: int = 0
    height: int = 0
    timestamp: int = 0
    hash_method: str = DEFAULT_HASH_METHOD
    hash_size: int = DEFAULT_HASH_SIZE

    def matches(self, hash_method: str, hash_size: int) -> bool:
        """Whether this entry was fingerprinted with the given hash settings."""
        return self.hash_method == hash_method and self.hash_size == hash_size

    def to_dict(self) -> dict:
        """Convert to the JSON-friendly persistence format."""
        data = {
            'hash': self.perceptual_hash,
            'method': self.hash_method,
            'hash_size': self.hash_size,
            'quality': self.quality.to_dict(),
            'width': self.width,
            'height': self.height,
            'ts': self.timestamp,
        }
        if self.feature is not None:
            data['feature'] = [float(x) for x in self.feature]
        return data

    @classmethod
    def from_dict(cls, data: dict) -> 'CacheEntry':
        feature = data.get('feature')
        return cls(
            perceptual_hash=data['hash'],
            quality=QualityMetrics.from_dict(data.get('quality', {})),
            feature=np.asarray(feature, dtype=np.float32) if feature is not None else None,
            width=int(data.get('width', 0)),
            height=int(data.get('height', 0)),
            timestamp=int(data.get('ts', 0)),
            hash_method=data.get('method', DEFAULT_HASH_METHOD),
            hash_size=int(data.get('hash_size', DEFAULT_HASH_SIZE)),
        )


@dataclass
class PhotoRecord:
    """
    Processing record for one photo in a batch.

    Mutated only by the batch scheduler as each stage completes.

    Attributes:
        identity: Stable identity key
        name: Path or display name
        index: Insertion order within the batch
        file_size: Size in bytes
        width: Decoded width in pixels
        height: Decoded height in pixels
        perceptual_hash: Hex-encoded perceptual hash
        hash_method: Hash method that produced perceptual_hash
        quality: Quality metrics once scored
        feature: Embedding vector once embedded
        state: Current processing state
        error: Failure reason if the record failed
        error_type: Taxonomy name of the failure
        from_cache: Whether results came from the fingerprint cache
        pixels: Transient decoded pixel handle, never persisted
    """
    identity: str
    name: str
    index: int
    file_size: int = 0
    width: int = 0
    height: int = 0
    perceptual_hash: str = ""
    hash_method: str = DEFAULT_HASH_METHOD
    quality: Optional[QualityMetrics] = None
    feature: Optional[np.ndarray] = field(default=None, repr=False)
    state: ProcessingState = ProcessingState.PENDING
    error: Optional[str] = None
    error_type: Optional[str] = None
    from_cache: bool = False
    pixels: Any = field(default=None, repr=False)

    def __hash__(self):
        return hash(self.identity)

    def __eq__(self, other):
        if not isinstance(other, PhotoRecord):
            return False
        return self.identity == other.identity

    @classmethod
    def from_input(cls, photo: RawPhotoInput, index: int) -> 'PhotoRecord':
        return cls(
            identity=photo.identity,
            name=photo.name,
            index=index,
            file_size=photo.file_size,
        )

    @property
    def filename(self) -> str:
        """Return just the filename portion of the name."""
        return os.path.basename(self.name)

    @property
    def pixel_count(self) -> int:
        return self.width * self.height

    @property
    def quality_score(self) -> float:
        return self.quality.score if self.quality else 0.0

    @property
    def is_done(self) -> bool:
        return self.state is ProcessingState.DONE

    @property
    def is_failed(self) -> bool:
        return self.state is ProcessingState.FAILED

    def mark_failed(self, error: BaseException) -> None:
        """Move to the terminal Failed state, keeping the reason."""
        self.fail_with(str(error) or type(error).__name__, error_kind(error))

    def fail_with(self, reason: str, error_type: str) -> None:
        self.state = ProcessingState.FAILED
        self.error = reason
        self.error_type = error_type
        self.release_pixels()

    def release_pixels(self) -> None:
        self.pixels = None

    def apply_cache_entry(self, entry: CacheEntry) -> None:
        """Fill results from a cache hit and finish the record."""
        self.perceptual_hash = entry.perceptual_hash
        self.hash_method = entry.hash_method
        self.quality = entry.quality
        self.feature = entry.feature
        self.width = entry.width
        self.height = entry.height
        self.from_cache = True
        self.state = ProcessingState.DONE

    def to_cache_entry(self, timestamp: int, hash_size: int = DEFAULT_HASH_SIZE) -> CacheEntry:
        return CacheEntry(
            perceptual_hash=self.perceptual_hash,
            quality=self.quality or QualityMetrics(),
            feature=self.feature,
            width=self.width,
            height=self.height,
            timestamp=timestamp,
            hash_method=self.hash_method,
            hash_size=hash_size,
        )

    def to_dict(self) -> dict:
        """Convert to dictionary for JSON serialization."""
        return {
            'identity': self.identity,
            'name': self.name,
            'filename': self.filename,
            'index': self.index,
            'file_size': self.file_size,
            'file_size_formatted': format_size(self.file_size),
            'width': self.width,
            'height': self.height,
            'perceptual_hash': self.perceptual_hash,
            'hash_method': self.hash_method,
            'quality': self.quality.to_dict() if self.quality else None,
            'has_feature': self.feature is not None,
            'state': self.state.value,
            'error': self.error,
            'error_type': self.error_type,
            'from_cache': self.from_cache,
        }


@dataclass(frozen=True)
class SimilarityGroup:
    """
    A group of near-duplicate photos.

    Attributes:
        id: Group identifier, unique within one grouping run
        members: Identity keys in discovery (insertion) order
        keeper: Identity key of the suggested photo to keep
        mean_similarity: Mean pairwise similarity over all member pairs (0-100)
    """
    id: int
    members: tuple
    keeper: str
    mean_similarity: float = 0.0

    @property
    def size(self) -> int:
        return len(self.members)

    @property
    def duplicates(self) -> tuple:
        """Members other than the keeper."""
        return tuple(m for m in self.members if m != self.keeper)

    def to_dict(self) -> dict:
        return {
            'id': self.id,
            'members': list(self.members),
            'keeper': self.keeper,
            'mean_similarity': round(self.mean_similarity, 2),
            'size': self.size,
        }


@dataclass(frozen=True)
class Failure:
    """A photo that could not be processed."""
    identity: str
    name: str
    reason: str
    error_type: str

    @classmethod
    def from_record(cls, record: PhotoRecord) -> 'Failure':
        return cls(
            identity=record.identity,
            name=record.name,
            reason=record.error or "Unknown error",
            error_type=record.error_type or "PhotoDedupError",
        )

    def to_dict(self) -> dict:
        return {
            'identity': self.identity,
            'name': self.name,
            'reason': self.reason,
            'error_type': self.error_type,
        }


@dataclass(frozen=True)
class ProgressEvent:
    """Progress after a chunk of the batch completes."""
    processed_count: int
    total_count: int

    @property
    def percent(self) -> float:
        if self.total_count == 0:
            return 100.0
        return (self.processed_count / self.total_count) * 100

    def to_dict(self) -> dict:
        return {
            'processedCount': self.processed_count,
            'totalCount': self.total_count,
            'percent': round(self.percent, 1),
        }


@dataclass
class BatchOptions:
    """
    Per-batch processing options.

    Attributes:
        similarity_threshold: Minimum similarity percentage to join a group (50-100)
        enable_embedding_refinement: Refine ambiguous pairs with embeddings
        worker_count: Pool size, or None to size from the CPU count
        chunk_size: Photos dispatched per scheduling chunk
        task_timeout: Seconds a single unit of work may take
        executor: 'thread' or 'process'
        hash_method: 'phash', 'ahash', 'dhash' or 'multi'
        hash_size: Hash grid size; each hash has hash_size ** 2 bits
        use_cache: Consult and update the fingerprint cache
        show_progress: Show a tqdm progress bar when tqdm is installed
    """
    similarity_threshold: int = DEFAULT_SIMILARITY_THRESHOLD
    enable_embedding_refinement: bool = False
    worker_count: Optional[int] = None
    chunk_size: int = DEFAULT_CHUNK_SIZE
    task_timeout: float = DEFAULT_TASK_TIMEOUT
    executor: str = 'thread'
    hash_method: str = DEFAULT_HASH_METHOD
    hash_size: int = DEFAULT_HASH_SIZE
    use_cache: bool = True
    show_progress: bool = False

    @classmethod
    def from_user_config(cls, **overrides) -> 'BatchOptions':
        """Build options from the user config, with runtime overrides on top."""
        from .user_config import get_user_config

        user_config = get_user_config()
        values = {
            'similarity_threshold': user_config.default_threshold,
            'worker_count': user_config.default_workers,
            'chunk_size': user_config.chunk_size,
            'task_timeout': user_config.task_timeout,
        }
        values.update(overrides)
        return cls(**values)


@dataclass
class BatchStats:
    """Counters collected while a batch runs."""
    total_files: int = 0
    cache_hits: int = 0
    cache_misses: int = 0
    decode_dispatched: int = 0
    embedded: int = 0
    failed: int = 0
    timed_out: int = 0
    elapsed_seconds: float = 0.0

    @property
    def hit_rate(self) -> float:
        """Return cache hit rate as percentage."""
        if self.total_files == 0:
            return 0.0
        return (self.cache_hits / self.total_files) * 100

    def to_dict(self) -> dict:
        return {
            'total_files': self.total_files,
            'cache_hits': self.cache_hits,
            'cache_misses': self.cache_misses,
            'hit_rate': round(self.hit_rate, 1),
            'decode_dispatched': self.decode_dispatched,
            'embedded': self.embedded,
            'failed': self.failed,
            'timed_out': self.timed_out,
            'elapsed_seconds': round(self.elapsed_seconds, 3),
        }


@dataclass
class BatchResult:
    """
    Outcome of processing a batch.

    Attributes:
        records: All records, in insertion order
        groups: Similarity groups with at least two members
        failures: Photos that failed, with reasons
        cancelled: Whether the batch stopped early on request
        refinement_available: Whether embedding refinement was applied
        degraded_reason: Why refinement was unavailable, if requested
        stats: Batch counters
    """
    records: list = field(default_factory=list)
    groups: list = field(default_factory=list)
    failures: list = field(default_factory=list)
    cancelled: bool = False
    refinement_available: bool = False
    degraded_reason: Optional[str] = None
    stats: BatchStats = field(default_factory=BatchStats)

    @property
    def done_records(self) -> list:
        return [r for r in self.records if r.is_done]

    @property
    def pending_records(self) -> list:
        return [r for r in self.records if not r.state.is_terminal]

    def record_for(self, identity: str) -> Optional[PhotoRecord]:
        for record in self.records:
            if record.identity == identity:
                return record
        return None

    def to_dict(self) -> dict:
        return {
            'records': [r.to_dict() for r in self.records],
            'groups': [g.to_dict() for g in self.groups],
            'failures': [f.to_dict() for f in self.failures],
            'cancelled': self.cancelled,
            'refinement_available': self.refinement_available,
            'degraded_reason': self.degraded_reason,
            'stats': self.stats.to_dict(),
        }
