"""
Feature embedding for ambiguous similarity pairs.

Perceptual hashes are cheap but blunt: two different shots of the same scene
and a cropped re-encode can land in the same Hamming range. For pairs whose
hash similarity falls in the ambiguous band, a learned image embedding gives
a second opinion.

Two implementations are provided:
- ClipEmbedder: CLIP image features via Hugging Face transformers on torch.
  The model is loaded lazily, once, on first use.
- NullEmbedder: used when embeddings are disabled or the model cannot load.

torch and transformers are optional (pip install photodedup[embedding]).
"""

from __future__ import annotations

import logging
import threading
from abc import ABC, abstractmethod
from typing import Any, Optional

import numpy as np

from .config import EMBEDDING_MODEL
from .exceptions import ModelUnavailableError

logger = logging.getLogger(__name__)


class Embedder(ABC):
    """Maps decoded pixels to a fixed-length, L2-normalized float32 vector."""

    @property
    @abstractmethod
    def available(self) -> bool:
        """Whether embed() can be called."""

    @property
    def dimension(self) -> Optional[int]:
        """Vector length, once known."""
        return None

    def ensure_ready(self) -> None:
        """
        Load the model if needed.

        Raises:
            ModelUnavailableError: If the model cannot be initialized
        """

    @abstractmethod
    def embed(self, pixels: Any) -> np.ndarray:
        """
        Embed one image.

        Args:
            pixels: RGB uint8 array (H, W, 3) or PIL image

        Returns:
            float32 vector with unit L2 norm
        """


class NullEmbedder(Embedder):
    """Embedder used when refinement is disabled or unavailable."""

    def __init__(self, reason: str = "Embeddings disabled"):
        self.reason = reason

    @property
    def available(self) -> bool:
        return False

    def ensure_ready(self) -> None:
        raise ModelUnavailableError(self.reason)

    def embed(self, pixels: Any) -> np.ndarray:
        raise ModelUnavailableError(self.reason)


class ClipEmbedder(Embedder):
    """
    CLIP image embedder.

    Initialization is lazy and thread-safe: the first caller of
    ensure_ready() (or embed()) loads the model while others wait; a load
    failure is remembered and re-raised without retrying.
    """

    def __init__(self, model_name: str = EMBEDDING_MODEL, device: Optional[str] = None):
        self.model_name = model_name
        self.device = device
        self._model = None
        self._processor = None
        self._torch = None
        self._dimension: Optional[int] = None
        self._load_error: Optional[str] = None
        self._lock = threading.Lock()

    @property
    def available(self) -> bool:
        return self._load_error is None

    @property
    def dimension(self) -> Optional[int]:
        return self._dimension

    def ensure_ready(self) -> None:
        if self._model is not None:
            return

        with self._lock:
            if self._model is not None:
                return
            if self._load_error is not None:
                raise ModelUnavailableError(self._load_error)

            try:
                import torch
                from transformers import CLIPModel, CLIPProcessor

                device = self.device or ('cuda' if torch.cuda.is_available() else 'cpu')
                logger.info(f"Loading embedding model {self.model_name} on {device}")

                model = CLIPModel.from_pretrained(self.model_name)
                processor = CLIPProcessor.from_pretrained(self.model_name)
                model.to(device)
                model.eval()
            except Exception as e:
                self._load_error = f"Cannot load embedding model {self.model_name}: {e}"
                logger.warning(self._load_error)
                raise ModelUnavailableError(self._load_error) from e

            self.device = device
            self._torch = torch
            self._processor = processor
            self._dimension = int(model.config.projection_dim)
            self._model = model

    def embed(self, pixels: Any) -> np.ndarray:
        self.ensure_ready()

        with self._torch.no_grad():
            inputs = self._processor(images=pixels, return_tensors="pt")
            inputs = {k: v.to(self.device) for k, v in inputs.items()}
            features = self._model.get_image_features(**inputs)
            features = features / features.norm(dim=-1, keepdim=True)

        return features.cpu().numpy().flatten().astype(np.float32)


def load_embedder(enabled: bool = True, model_name: str = EMBEDDING_MODEL) -> Embedder:
    """
    Select the embedder implementation for this process.

    Args:
        enabled: Whether embedding refinement is wanted at all
        model_name: Hugging Face model id for the CLIP embedder

    Returns:
        ClipEmbedder when enabled, otherwise NullEmbedder
    """
    if not enabled:
        return NullEmbedder()
    return ClipEmbedder(model_name=model_name)


def normalize(vector: np.ndarray) -> np.ndarray:
    """L2-normalize a vector as float32 (zero vectors are returned unchanged)."""
    vector = np.asarray(vector, dtype=np.float32).ravel()
    norm = float(np.linalg.norm(vector))
    if norm == 0.0:
        return vector
    return vector / norm


def cosine_similarity(a: np.ndarray, b: np.ndarray) -> float:
    """
    Cosine similarity between two vectors.

    Raises:
        ValueError: If the vectors differ in length
    """
    a = np.asarray(a, dtype=np.float32).ravel()
    b = np.asarray(b, dtype=np.float32).ravel()
    if a.shape != b.shape:
        raise ValueError(f"Cannot compare vectors of length {a.size} and {b.size}")

    denom = float(np.linalg.norm(a)) * float(np.linalg.norm(b))
    if denom == 0.0:
        return 0.0
    return float(np.dot(a, b)) / denom


def embedding_similarity_percent(a: np.ndarray, b: np.ndarray) -> float:
    """Refined pair score: 100 * cosine similarity, clamped to [0, 100]."""
    return max(0.0, min(100.0, 100.0 * cosine_similarity(a, b)))


__all__ = [
    'Embedder',
    'NullEmbedder',
    'ClipEmbedder',
    'load_embedder',
    'normalize',
    'cosine_similarity',
    'embedding_similarity_percent',
]
