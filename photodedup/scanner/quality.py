"""
Quality scoring module for the scanner package.

Scores a decoded photo from its luminance: sharpness (Laplacian variance),
brightness (mean) and contrast (standard deviation), combined into a single
0-100 score used to pick the keeper of each similarity group.
"""

from __future__ import annotations

import numpy as np

from ..config import (
    BRIGHTNESS_TARGET,
    CONTRAST_NORMALIZER,
    QUALITY_MAX_DIMENSION,
    QUALITY_WEIGHTS,
    SHARPNESS_NORMALIZER,
)
from ..models import QualityMetrics
from .dependencies import Image


def _luminance(image: Image.Image, max_dimension: int = QUALITY_MAX_DIMENSION) -> np.ndarray:
    """Grayscale working copy, long edge bounded by max_dimension."""
    gray = image.convert('L')
    if max(gray.size) > max_dimension:
        # thumbnail() modifies in place; convert() already returned a copy
        gray.thumbnail((max_dimension, max_dimension), Image.Resampling.BILINEAR)
    return np.asarray(gray, dtype=np.float64)


def laplacian_variance(luma: np.ndarray) -> float:
    """
    Variance of the 4-neighbour Laplacian over the interior pixels.

    Returns 0.0 for images smaller than 3x3.
    """
    if luma.shape[0] < 3 or luma.shape[1] < 3:
        return 0.0

    center = luma[1:-1, 1:-1]
    laplacian = (
        luma[:-2, 1:-1] + luma[2:, 1:-1] +
        luma[1:-1, :-2] + luma[1:-1, 2:] -
        4.0 * center
    )
    return float(laplacian.var())


def _clamp(value: float, low: float = 0.0, high: float = 100.0) -> float:
    return max(low, min(high, value))


def composite_score(sharpness: float, brightness: float, contrast: float) -> float:
    """
    Combine the individual metrics into a 0-100 quality score.

    Args:
        sharpness: Normalized sharpness, 0-100
        brightness: Mean luminance, 0-255
        contrast: Luminance standard deviation

    Returns:
        Weighted score clamped to [0, 100]
    """
    # Mid-grey exposure scores best; pure black or white scores 0
    brightness_component = 100.0 * (1.0 - abs(brightness - BRIGHTNESS_TARGET) / BRIGHTNESS_TARGET)
    contrast_component = 100.0 * contrast / CONTRAST_NORMALIZER

    score = (
        QUALITY_WEIGHTS['sharpness'] * _clamp(sharpness) +
        QUALITY_WEIGHTS['contrast'] * _clamp(contrast_component) +
        QUALITY_WEIGHTS['brightness'] * _clamp(brightness_component)
    )
    return _clamp(score)


def calculate_quality(image: Image.Image) -> QualityMetrics:
    """
    Calculate quality metrics for a decoded image.

    Args:
        image: Decoded PIL image (any mode)

    Returns:
        QualityMetrics with sharpness, brightness, contrast and score
    """
    luma = _luminance(image)

    variance = laplacian_variance(luma)
    # Saturating map of unbounded variance into 0-100
    sharpness = 100.0 * variance / (variance + SHARPNESS_NORMALIZER) if variance > 0 else 0.0
    brightness = float(luma.mean()) if luma.size else 0.0
    contrast = float(luma.std()) if luma.size else 0.0

    return QualityMetrics(
        sharpness=round(sharpness, 4),
        brightness=round(brightness, 4),
        contrast=round(contrast, 4),
        score=round(composite_score(sharpness, brightness, contrast), 4),
    )


__all__ = ['calculate_quality', 'laplacian_variance', 'composite_score']
