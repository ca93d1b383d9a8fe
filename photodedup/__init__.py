"""
photodedup
==========
Near-duplicate photo detection for batches of photos.

Features:
- Perceptual fingerprints (pHash by default, aHash/dHash available)
- Quality scoring (sharpness, brightness, contrast) to pick a keeper
- Threshold-based grouping with Union-Find, LSH for large batches
- Optional CLIP embedding refinement for ambiguous pairs
- SQLite-backed fingerprint cache for fast re-runs
- Parallel, chunked, cancellable batch processing
"""

__version__ = "1.0.0"

from .models import (
    BatchOptions,
    BatchResult,
    BatchStats,
    CacheEntry,
    Failure,
    PhotoRecord,
    ProcessingState,
    ProgressEvent,
    QualityMetrics,
    RawPhotoInput,
    SimilarityGroup,
)
from .exceptions import (
    PhotoDedupError,
    DecodeError,
    StageTimeoutError,
    ModelUnavailableError,
    CacheIOError,
    InvalidOptionsError,
)
from .cache import FingerprintCache, init_cache, get_cache, set_cache, reset_cache
from .database import FingerprintStore
from .embedding import Embedder, ClipEmbedder, NullEmbedder, load_embedder
from .lsh import HammingLSH, LSHStats, estimate_comparison_reduction
from .scanner import (
    BatchScheduler,
    calculate_perceptual_hash,
    calculate_quality,
    decode_image,
    find_similar_groups,
    fingerprint_similarity,
    hamming_distance,
    recommended_concurrency,
    similarity_percent,
)
from .state import BatchSession
from .engine import DuplicateEngine, BatchHandle, process_batch

__all__ = [
    # Models
    "BatchOptions",
    "BatchResult",
    "BatchStats",
    "CacheEntry",
    "Failure",
    "PhotoRecord",
    "ProcessingState",
    "ProgressEvent",
    "QualityMetrics",
    "RawPhotoInput",
    "SimilarityGroup",
    # Errors
    "PhotoDedupError",
    "DecodeError",
    "StageTimeoutError",
    "ModelUnavailableError",
    "CacheIOError",
    "InvalidOptionsError",
    # Cache
    "FingerprintCache",
    "FingerprintStore",
    "init_cache",
    "get_cache",
    "set_cache",
    "reset_cache",
    # Embedding
    "Embedder",
    "ClipEmbedder",
    "NullEmbedder",
    "load_embedder",
    # LSH
    "HammingLSH",
    "LSHStats",
    "estimate_comparison_reduction",
    # Scanner
    "BatchScheduler",
    "calculate_perceptual_hash",
    "calculate_quality",
    "decode_image",
    "find_similar_groups",
    "fingerprint_similarity",
    "hamming_distance",
    "recommended_concurrency",
    "similarity_percent",
    # Engine
    "BatchSession",
    "DuplicateEngine",
    "BatchHandle",
    "process_batch",
]
