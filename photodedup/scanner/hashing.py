"""
Fingerprint codec for the scanner package.

Decodes encoded image bytes and derives fixed-length perceptual hashes,
with Hamming-distance and similarity-percentage helpers. Multi-hash
fingerprints fuse aHash, dHash and pHash with fixed weights.
"""

from __future__ import annotations

import io
import math
from typing import Union

import numpy as np

from ..config import (
    DEFAULT_HASH_METHOD,
    DEFAULT_HASH_SIZE,
    MULTI_HASH_COMPONENTS,
    MULTI_HASH_WEIGHTS,
)
from ..exceptions import DecodeError
from ..lsh import max_distance_for_similarity
from .dependencies import Image, imagehash


_HASH_FUNCTIONS = {
    'phash': imagehash.phash,
    'ahash': imagehash.average_hash,
    'dhash': imagehash.dhash,
}

HashLike = Union[str, "imagehash.ImageHash"]


def decode_image(data: bytes) -> Image.Image:
    """
    Decode encoded image bytes into a fully loaded Pillow image.

    Palette, alpha and exotic modes are converted to RGB so every downstream
    stage sees either 'RGB' or 'L'.

    Args:
        data: Encoded image bytes (JPEG, PNG, WebP, ...)

    Returns:
        Loaded PIL image

    Raises:
        DecodeError: If the data is empty, corrupt, truncated or not an image
    """
    if not data:
        raise DecodeError("Empty image data")

    try:
        img = Image.open(io.BytesIO(data))
        # Force load to detect truncated/corrupt images early
        img.load()
    except Image.UnidentifiedImageError as e:
        raise DecodeError(f"Not a valid image: {e}") from e
    except Image.DecompressionBombError as e:
        raise DecodeError(f"Image too large: {e}") from e
    except (OSError, ValueError, SyntaxError) as e:
        raise DecodeError(f"Corrupt or truncated image: {e}") from e

    if img.mode not in ('RGB', 'L'):
        try:
            img = img.convert('RGB')
        except (OSError, ValueError) as e:
            raise DecodeError(f"Image mode conversion failed (mode={img.mode}): {e}") from e

    return img


def calculate_perceptual_hash(
    image: Image.Image,
    hash_size: int = DEFAULT_HASH_SIZE,
    method: str = DEFAULT_HASH_METHOD,
) -> str:
    """
    Calculate the perceptual hash of a decoded image.

    'phash' (default) downsizes to a luminance grid of 4 * hash_size, applies
    a DCT and compares the low-frequency hash_size x hash_size block against
    its median. 'ahash' compares each cell against the grid mean; 'dhash'
    compares horizontally adjacent cells. All three use a strict comparison,
    so cells tied with the reference value become 0 bits and a solid-colour
    image hashes without error.

    'multi' concatenates the aHash, dHash and pHash hex strings (in that
    order); compare such fingerprints with fingerprint_similarity().

    Args:
        image: Decoded PIL image
        hash_size: Grid size; each hash has hash_size ** 2 bits
        method: One of 'phash', 'ahash', 'dhash', 'multi'

    Returns:
        Hex string of the hash
    """
    if method == 'multi':
        return ''.join(
            str(_HASH_FUNCTIONS[name](image, hash_size=hash_size))
            for name in MULTI_HASH_COMPONENTS
        )

    try:
        hash_func = _HASH_FUNCTIONS[method]
    except KeyError:
        raise ValueError(f"Unknown hash method: {method}") from None

    return str(hash_func(image, hash_size=hash_size))


def parse_hash(value: HashLike) -> "imagehash.ImageHash":
    """Parse a hex string into an ImageHash (ImageHash objects pass through)."""
    if isinstance(value, imagehash.ImageHash):
        return value
    return imagehash.hex_to_hash(value)


def hash_bit_length(value: HashLike) -> int:
    """Number of bits in a hash."""
    return parse_hash(value).hash.size


def hamming_distance(a: HashLike, b: HashLike) -> int:
    """
    Hamming distance between two hashes.

    Raises:
        ValueError: If the hashes differ in length
    """
    hash_a, hash_b = parse_hash(a), parse_hash(b)
    if hash_a.hash.size != hash_b.hash.size:
        raise ValueError(
            f"Cannot compare {hash_a.hash.size}-bit and {hash_b.hash.size}-bit hashes"
        )
    return int(hash_a - hash_b)


def similarity_percent(a: HashLike, b: HashLike) -> float:
    """Similarity percentage: 100 * (1 - hamming_distance / bit_length)."""
    bits = hash_bit_length(a)
    return 100.0 * (1.0 - hamming_distance(a, b) / bits)


def split_multi_hash(value: str) -> tuple[str, ...]:
    """
    Split a 'multi' fingerprint into its component hex strings.

    Raises:
        ValueError: If the fingerprint cannot be split evenly
    """
    parts = len(MULTI_HASH_COMPONENTS)
    if not value or len(value) % parts:
        raise ValueError(f"Malformed multi-hash fingerprint: {value!r}")
    width = len(value) // parts
    return tuple(value[i * width:(i + 1) * width] for i in range(parts))


def parse_fingerprint(
    value: HashLike,
    method: str = DEFAULT_HASH_METHOD,
) -> "imagehash.ImageHash":
    """
    Parse a stored fingerprint for the given hash method.

    A 'multi' fingerprint becomes one flat ImageHash holding the component
    bits back to back, so it can be indexed and subtracted like any other.
    """
    if method != 'multi' or isinstance(value, imagehash.ImageHash):
        return parse_hash(value)
    bits = [imagehash.hex_to_hash(part).hash.flatten() for part in split_multi_hash(value)]
    return imagehash.ImageHash(np.concatenate(bits))


def fingerprint_similarity(
    a: HashLike,
    b: HashLike,
    method: str = DEFAULT_HASH_METHOD,
) -> float:
    """
    Similarity percentage between two fingerprints of the same method.

    Single hashes score 100 * (1 - hamming / bits). 'multi' fingerprints
    score 100 * (1 - sum(weight * hamming / segment_bits)) over the
    aHash, dHash and pHash segments.

    Raises:
        ValueError: If the fingerprints differ in length
    """
    hash_a, hash_b = parse_fingerprint(a, method), parse_fingerprint(b, method)
    bits = hash_a.hash.size
    if bits != hash_b.hash.size:
        raise ValueError(f"Cannot compare {bits}-bit and {hash_b.hash.size}-bit fingerprints")

    if method != 'multi':
        return 100.0 * (1.0 - int(hash_a - hash_b) / bits)

    diff = hash_a.hash.flatten() != hash_b.hash.flatten()
    segment = bits // len(MULTI_HASH_COMPONENTS)
    weighted = 0.0
    for k, name in enumerate(MULTI_HASH_COMPONENTS):
        distance = np.count_nonzero(diff[k * segment:(k + 1) * segment])
        weighted += MULTI_HASH_WEIGHTS[name] * distance / segment
    return 100.0 * (1.0 - weighted)


def fingerprint_max_distance(
    similarity: float,
    hash_bits: int,
    method: str = DEFAULT_HASH_METHOD,
) -> int:
    """
    Largest raw Hamming distance a pair scoring >= similarity can have.

    For 'multi' every differing bit costs at least min_weight / segment_bits,
    which bounds the total number of differing bits.
    """
    if method != 'multi':
        return max_distance_for_similarity(similarity, hash_bits)
    if similarity <= 0:
        return hash_bits
    if similarity >= 100:
        return 0
    segment = hash_bits // len(MULTI_HASH_COMPONENTS)
    min_weight = min(MULTI_HASH_WEIGHTS.values())
    return min(hash_bits, math.floor(segment * (100 - similarity) / 100 / min_weight + 1e-9))


__all__ = [
    'decode_image',
    'calculate_perceptual_hash',
    'parse_hash',
    'hash_bit_length',
    'hamming_distance',
    'similarity_percent',
    'split_multi_hash',
    'parse_fingerprint',
    'fingerprint_similarity',
    'fingerprint_max_distance',
]
