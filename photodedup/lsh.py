"""
Locality-Sensitive Hashing (LSH) for fast perceptual hash matching.

This module implements LSH by banding: the perceptual hash is sliced into
contiguous segments and each segment value is a bucket key in its own table.

The key insight (pigeonhole): if two hashes differ in at most d bits and the
hash is split into d + 1 bands, at least one band is identical in both, so
the pair collides in that band's table. Choosing the band count from the
largest distance the caller cares about therefore loses no true matches,
while unrelated hashes rarely share a full band.

Performance:
- Brute force: O(n²) comparisons
- LSH: O(n * k) where k is average candidates per photo (typically small)
"""

import math
from collections import defaultdict
from dataclasses import dataclass
from typing import Any, Iterator


@dataclass
class LSHStats:
    """Statistics about LSH index usage."""
    total_images: int = 0
    total_candidates: int = 0
    total_comparisons: int = 0
    duplicate_pairs_found: int = 0

    @property
    def avg_candidates_per_image(self) -> float:
        """Average number of candidates checked per image."""
        if self.total_images == 0:
            return 0.0
        return self.total_candidates / self.total_images

    @property
    def reduction_ratio(self) -> float:
        """How much we reduced comparisons vs brute force."""
        brute_force = (self.total_images * (self.total_images - 1)) // 2
        if brute_force == 0:
            return 0.0
        return 1.0 - (self.total_comparisons / brute_force)


def _band_bounds(hash_bits: int, num_bands: int) -> list[tuple[int, int]]:
    """Split hash_bits into num_bands contiguous, near-equal segments."""
    base, extra = divmod(hash_bits, num_bands)
    bounds = []
    start = 0
    for band in range(num_bands):
        width = base + (1 if band < extra else 0)
        bounds.append((start, start + width))
        start += width
    return bounds


class HammingLSH:
    """
    Banded Locality-Sensitive Hashing index for Hamming distance.

    Each table keys on one contiguous band of the hash bits. Two hashes are
    candidates if they agree on every bit of at least one band.

    Usage:
        lsh = HammingLSH(num_bands=bands_for_distance(6, 64), hash_bits=64)

        for idx, phash in enumerate(parsed_hashes):
            lsh.add(idx, phash)

        for i, j in lsh.iter_candidate_pairs():
            distance = parsed_hashes[i] - parsed_hashes[j]
    """

    def __init__(self, num_bands: int = 4, hash_bits: int = 64):
        """
        Initialize LSH index.

        Args:
            num_bands: Number of bands (and tables). More bands = shorter
                       keys = more candidates and better recall.
            hash_bits: Total bits in the perceptual hash (64 for hash_size=8).
        """
        if hash_bits < 1:
            raise ValueError("hash_bits must be positive")
        if not 1 <= num_bands <= hash_bits:
            raise ValueError(f"num_bands must be between 1 and {hash_bits}")

        self.num_bands = num_bands
        self.hash_bits = hash_bits
        self.band_bounds = _band_bounds(hash_bits, num_bands)

        # Hash tables: band_idx -> bucket_key -> list of indices
        self.tables: list[dict[tuple, list[int]]] = [
            defaultdict(list) for _ in range(num_bands)
        ]

        self._count = 0

    def _hash_to_bits(self, phash: Any) -> list[bool]:
        """
        Convert an imagehash.ImageHash to a flat list of bits.

        Raises:
            ValueError: If the hash length differs from hash_bits
        """
        bits = phash.hash.flatten().tolist()
        if len(bits) != self.hash_bits:
            raise ValueError(f"Expected {self.hash_bits}-bit hash, got {len(bits)} bits")
        return bits

    def _get_bucket_key(self, bits: list[bool], band_idx: int) -> tuple:
        """Tuple of the bits in one band (hashable bucket key)."""
        start, end = self.band_bounds[band_idx]
        return tuple(bits[start:end])

    def add(self, idx: int, phash: Any) -> None:
        """
        Add a perceptual hash to the index.

        Args:
            idx: Unique identifier for this hash (typically array index)
            phash: imagehash.ImageHash object
        """
        if phash is None:
            return

        bits = self._hash_to_bits(phash)
        for band_idx, table in enumerate(self.tables):
            key = self._get_bucket_key(bits, band_idx)
            table[key].append(idx)

        self._count += 1

    def get_candidates(self, idx: int, phash: Any) -> set[int]:
        """
        Get candidate indices that share at least one band with the hash.

        Args:
            idx: Index of the query hash (excluded from results)
            phash: imagehash.ImageHash object to query

        Returns:
            Set of candidate indices
        """
        if phash is None:
            return set()

        bits = self._hash_to_bits(phash)
        candidates = set()

        for band_idx, table in enumerate(self.tables):
            key = self._get_bucket_key(bits, band_idx)
            for candidate_idx in table.get(key, ()):
                if candidate_idx != idx:
                    candidates.add(candidate_idx)

        return candidates

    def iter_candidate_pairs(self) -> Iterator[tuple[int, int]]:
        """
        Yield (i, j) pairs with i < j that share a bucket in some band.

        A pair colliding in several bands is yielded once per band; callers
        that need unique pairs should use get_all_candidate_pairs().
        """
        for table in self.tables:
            for bucket in table.values():
                if len(bucket) < 2:
                    continue
                for a in range(len(bucket)):
                    for b in range(a + 1, len(bucket)):
                        idx1, idx2 = bucket[a], bucket[b]
                        if idx1 > idx2:
                            idx1, idx2 = idx2, idx1
                        yield idx1, idx2

    def get_all_candidate_pairs(self) -> set[tuple[int, int]]:
        """Unique candidate pairs as (i, j) tuples with i < j."""
        return set(self.iter_candidate_pairs())

    def estimate_candidate_pairs(self) -> int:
        """Number of pairs iter_candidate_pairs() will yield, without iterating."""
        total = 0
        for table in self.tables:
            for bucket in table.values():
                size = len(bucket)
                total += size * (size - 1) // 2
        return total

    def clear(self) -> None:
        """Clear all data from the index."""
        for table in self.tables:
            table.clear()
        self._count = 0

    @property
    def size(self) -> int:
        """Number of hashes in the index."""
        return self._count

    def get_stats(self) -> dict:
        """Get statistics about the index."""
        non_empty_buckets = sum(
            1 for table in self.tables
            for bucket in table.values()
            if len(bucket) > 0
        )
        items_in_buckets = sum(
            len(bucket) for table in self.tables
            for bucket in table.values()
        )

        return {
            'num_bands': self.num_bands,
            'hash_bits': self.hash_bits,
            'total_items': self._count,
            'non_empty_buckets': non_empty_buckets,
            'avg_bucket_size': items_in_buckets / max(1, non_empty_buckets),
        }


def max_distance_for_similarity(similarity: float, hash_bits: int) -> int:
    """
    Largest Hamming distance whose similarity percentage is still >= similarity.

    similarity = 100 * (1 - distance / hash_bits), so
    distance <= hash_bits * (1 - similarity / 100).
    """
    if similarity <= 0:
        return hash_bits
    if similarity >= 100:
        return 0
    # Small epsilon keeps exact boundaries (e.g. 75% of 64 bits) inclusive
    return max(0, math.floor(hash_bits * (100 - similarity) / 100 + 1e-9))


def bands_for_distance(max_distance: int, hash_bits: int) -> int:
    """
    Band count that guarantees every pair within max_distance collides.

    By pigeonhole, max_distance differing bits can touch at most
    max_distance bands, so max_distance + 1 bands leave one band intact.
    """
    return max(1, min(hash_bits, max_distance + 1))


def estimate_comparison_reduction(
    num_images: int,
    num_bands: int = 4,
    hash_bits: int = 64,
) -> dict:
    """
    Estimate how much banded LSH will reduce comparisons on random hashes.

    Args:
        num_images: Number of photos
        num_bands: LSH parameter
        hash_bits: Bits in perceptual hash

    Returns:
        Dict with comparison estimates
    """
    brute_force = (num_images * (num_images - 1)) // 2

    # Probability two random hashes agree on a whole band of b bits is 2^-b
    band_width = hash_bits / max(1, num_bands)
    p_band = 2 ** (-band_width)
    p_candidate = 1 - (1 - p_band) ** num_bands

    expected_comparisons = int(brute_force * p_candidate)

    return {
        'brute_force_comparisons': brute_force,
        'estimated_lsh_comparisons': expected_comparisons,
        'estimated_reduction': 1 - (expected_comparisons / max(1, brute_force)),
        'speedup_factor': brute_force / max(1, expected_comparisons),
    }
