"""
Unit tests for LSH (Locality-Sensitive Hashing) module.
"""

import random

import imagehash
import pytest

from photodedup.lsh import (
    HammingLSH,
    LSHStats,
    bands_for_distance,
    estimate_comparison_reduction,
    max_distance_for_similarity,
)


def _hash(value: int) -> imagehash.ImageHash:
    return imagehash.hex_to_hash(f"{value:016x}")


def _flip(value: int, bits: list) -> int:
    for bit in bits:
        value ^= 1 << bit
    return value


class TestHammingLSH:
    """Test HammingLSH class."""

    def test_initialization(self):
        lsh = HammingLSH(num_bands=7, hash_bits=64)
        assert lsh.num_bands == 7
        assert lsh.hash_bits == 64
        assert lsh.size == 0
        assert len(lsh.tables) == 7

    def test_bands_cover_all_bits(self):
        lsh = HammingLSH(num_bands=7, hash_bits=64)
        widths = [end - start for start, end in lsh.band_bounds]
        assert sum(widths) == 64
        assert max(widths) - min(widths) <= 1
        assert lsh.band_bounds[0][0] == 0
        assert lsh.band_bounds[-1][1] == 64

    def test_invalid_parameters(self):
        with pytest.raises(ValueError):
            HammingLSH(num_bands=0, hash_bits=64)
        with pytest.raises(ValueError):
            HammingLSH(num_bands=65, hash_bits=64)

    def test_add_hash(self):
        lsh = HammingLSH(num_bands=4, hash_bits=64)
        lsh.add(0, _hash(0x0123456789ABCDEF))
        assert lsh.size == 1

    def test_add_none_is_ignored(self):
        lsh = HammingLSH(num_bands=4, hash_bits=64)
        lsh.add(0, None)
        assert lsh.size == 0

    def test_wrong_hash_length(self):
        lsh = HammingLSH(num_bands=4, hash_bits=64)
        with pytest.raises(ValueError):
            lsh.add(0, imagehash.hex_to_hash("0" * 64))

    def test_identical_hashes_are_candidates(self):
        lsh = HammingLSH(num_bands=4, hash_bits=64)
        h = _hash(0xDEADBEEF12345678)
        lsh.add(0, h)
        lsh.add(1, h)

        candidates = lsh.get_candidates(0, h)
        assert 1 in candidates
        assert 0 not in candidates

    def test_complement_never_collides(self):
        """Every band differs, so no bucket is shared."""
        lsh = HammingLSH(num_bands=4, hash_bits=64)
        lsh.add(0, _hash(0xFFFFFFFF00000000))
        lsh.add(1, _hash(0x00000000FFFFFFFF))
        assert lsh.get_all_candidate_pairs() == set()

    def test_candidate_pairs_ordered(self):
        lsh = HammingLSH(num_bands=2, hash_bits=64)
        h = _hash(0x1111111111111111)
        for idx in (2, 0, 1):
            lsh.add(idx, h)
        pairs = lsh.get_all_candidate_pairs()
        assert pairs == {(0, 1), (0, 2), (1, 2)}

    def test_estimate_candidate_pairs(self):
        lsh = HammingLSH(num_bands=2, hash_bits=64)
        h = _hash(0x1111111111111111)
        for idx in range(3):
            lsh.add(idx, h)
        # Three pairs, yielded once per band
        assert lsh.estimate_candidate_pairs() == 6
        assert len(list(lsh.iter_candidate_pairs())) == 6

    def test_pigeonhole_recall(self):
        """Any pair within d bits collides when the hash has d + 1 bands."""
        rng = random.Random(42)
        max_distance = 6
        lsh = HammingLSH(num_bands=bands_for_distance(max_distance, 64), hash_bits=64)

        pairs = []
        idx = 0
        for _ in range(200):
            base = rng.getrandbits(64)
            distance = rng.randint(0, max_distance)
            other = _flip(base, rng.sample(range(64), distance))
            lsh.add(idx, _hash(base))
            lsh.add(idx + 1, _hash(other))
            pairs.append((idx, idx + 1))
            idx += 2

        found = lsh.get_all_candidate_pairs()
        assert all(pair in found for pair in pairs)

    def test_clear(self):
        lsh = HammingLSH(num_bands=4, hash_bits=64)
        lsh.add(0, _hash(1))
        lsh.clear()
        assert lsh.size == 0
        assert lsh.get_all_candidate_pairs() == set()

    def test_get_stats(self):
        lsh = HammingLSH(num_bands=4, hash_bits=64)
        lsh.add(0, _hash(1))
        lsh.add(1, _hash(1))
        stats = lsh.get_stats()
        assert stats['num_bands'] == 4
        assert stats['hash_bits'] == 64
        assert stats['total_items'] == 2
        assert stats['non_empty_buckets'] == 4
        assert stats['avg_bucket_size'] == 2.0


class TestLSHParameters:
    """Test band sizing helpers."""

    @pytest.mark.parametrize("similarity,expected", [
        (100, 0),
        (95, 3),
        (90, 6),
        (80, 12),
        (75, 16),
        (50, 32),
        (0, 64),
    ])
    def test_max_distance_for_similarity(self, similarity, expected):
        assert max_distance_for_similarity(similarity, 64) == expected

    def test_bands_for_distance(self):
        assert bands_for_distance(0, 64) == 1
        assert bands_for_distance(6, 64) == 7
        assert bands_for_distance(100, 64) == 64


class TestLSHStats:
    """Test LSHStats dataclass."""

    def test_empty(self):
        stats = LSHStats()
        assert stats.avg_candidates_per_image == 0.0
        assert stats.reduction_ratio == 0.0

    def test_reduction_ratio(self):
        stats = LSHStats(total_images=10, total_candidates=20, total_comparisons=9)
        assert stats.avg_candidates_per_image == 2.0
        assert stats.reduction_ratio == pytest.approx(1 - 9 / 45)


class TestEstimateComparisonReduction:
    """Test comparison reduction estimation."""

    def test_fewer_comparisons_than_brute_force(self):
        estimate = estimate_comparison_reduction(10000, num_bands=4, hash_bits=64)
        assert estimate['brute_force_comparisons'] == 10000 * 9999 // 2
        assert estimate['estimated_lsh_comparisons'] < estimate['brute_force_comparisons']
        assert 0 <= estimate['estimated_reduction'] <= 1

    def test_no_images(self):
        estimate = estimate_comparison_reduction(0)
        assert estimate['brute_force_comparisons'] == 0
