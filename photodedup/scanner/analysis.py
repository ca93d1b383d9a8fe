"""
Image analysis module for the scanner package.

Provides the unit of work executed by the worker pool: decode one photo's
bytes, hash it, score it, and optionally produce a small thumbnail for the
embedder. Results are plain picklable data so the same function runs in a
thread pool or a process pool.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Optional

import numpy as np

from ..config import DEFAULT_HASH_METHOD, DEFAULT_HASH_SIZE, EMBEDDING_INPUT_SIZE
from ..exceptions import error_kind
from ..models import ProcessingState, QualityMetrics
from .dependencies import Image, _logger
from .hashing import calculate_perceptual_hash, decode_image
from .quality import calculate_quality


@dataclass
class AnalysisResult:
    """
    Outcome of analyzing one photo.

    Attributes:
        identity: Identity key of the analyzed photo
        ok: Whether every stage succeeded
        width: Decoded width in pixels
        height: Decoded height in pixels
        perceptual_hash: Hex-encoded perceptual hash
        quality: Quality metrics
        thumbnail: RGB uint8 array for the embedder, when requested
        stages: Stages that completed, in order
        failed_stage: Stage that raised, if any
        error: Failure reason
        error_type: Taxonomy name of the failure
    """
    identity: str
    ok: bool = False
    width: int = 0
    height: int = 0
    perceptual_hash: str = ""
    quality: Optional[QualityMetrics] = None
    thumbnail: Optional[np.ndarray] = field(default=None, repr=False)
    stages: tuple = ()
    failed_stage: Optional[ProcessingState] = None
    error: Optional[str] = None
    error_type: Optional[str] = None


def make_thumbnail(image: Image.Image, size: int = EMBEDDING_INPUT_SIZE) -> np.ndarray:
    """Square RGB thumbnail as a uint8 array of shape (size, size, 3)."""
    rgb = image.convert('RGB').resize((size, size), Image.Resampling.BILINEAR)
    return np.asarray(rgb, dtype=np.uint8)


def analyze_photo_bytes(
    identity: str,
    data: bytes,
    want_thumbnail: bool = False,
    hash_size: int = DEFAULT_HASH_SIZE,
    hash_method: str = DEFAULT_HASH_METHOD,
) -> AnalysisResult:
    """
    Decode, hash and score one photo.

    Never raises for per-photo problems: the failing stage and reason are
    recorded on the result instead.

    Args:
        identity: Identity key, echoed back on the result
        data: Encoded image bytes
        want_thumbnail: Whether to return a thumbnail for embedding
        hash_size: Perceptual hash grid size
        hash_method: Perceptual hash algorithm

    Returns:
        AnalysisResult
    """
    result = AnalysisResult(identity=identity)
    stages = []
    stage = ProcessingState.DECODING

    try:
        image = decode_image(data)
        result.width, result.height = image.size
        stages.append(stage)

        stage = ProcessingState.HASHING
        result.perceptual_hash = calculate_perceptual_hash(
            image, hash_size=hash_size, method=hash_method
        )
        stages.append(stage)

        stage = ProcessingState.SCORING_QUALITY
        result.quality = calculate_quality(image)
        if want_thumbnail:
            result.thumbnail = make_thumbnail(image)
        stages.append(stage)

        result.ok = True
    except Exception as e:
        # Per-photo errors become data; the batch keeps going
        _logger.debug(f"Analysis failed for {identity} during {stage.value}: {e}")
        result.failed_stage = stage
        result.error = str(e) or type(e).__name__
        result.error_type = error_kind(e)

    result.stages = tuple(stages)
    return result


__all__ = ['AnalysisResult', 'analyze_photo_bytes', 'make_thumbnail']
