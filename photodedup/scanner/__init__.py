"""
Scanner package for photodedup.

Provides photo fingerprinting, quality scoring, parallel batch processing,
and near-duplicate grouping.

Public API:
- decode_image: Decode encoded bytes into a loaded Pillow image
- calculate_perceptual_hash: Perceptual hash (pHash/aHash/dHash/multi) of an image
- hamming_distance / similarity_percent: Compare two hashes
- fingerprint_similarity: Compare two fingerprints, including weighted multi-hash
- calculate_quality: Sharpness, brightness, contrast and composite score
- analyze_photo_bytes: Worker unit of work (decode, hash, score)
- BatchScheduler: Run a batch through the worker pool with caching
- recommended_concurrency: Pool size from a reported core count
- find_similar_groups: Group near-duplicates and pick keepers
"""

from __future__ import annotations

from .hashing import (
    decode_image,
    calculate_perceptual_hash,
    parse_hash,
    hash_bit_length,
    hamming_distance,
    similarity_percent,
    parse_fingerprint,
    fingerprint_similarity,
    fingerprint_max_distance,
)
from .quality import calculate_quality
from .analysis import AnalysisResult, analyze_photo_bytes
from .parallel import BatchScheduler, recommended_concurrency
from .deduplication import find_similar_groups


__all__ = [
    # Fingerprint codec
    'decode_image',
    'calculate_perceptual_hash',
    'parse_hash',
    'hash_bit_length',
    'hamming_distance',
    'similarity_percent',
    'parse_fingerprint',
    'fingerprint_similarity',
    'fingerprint_max_distance',
    # Quality
    'calculate_quality',
    # Analysis
    'AnalysisResult',
    'analyze_photo_bytes',
    # Scheduling
    'BatchScheduler',
    'recommended_concurrency',
    # Grouping
    'find_similar_groups',
]
