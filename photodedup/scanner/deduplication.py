"""
Deduplication module for the scanner package.

Groups near-duplicate photos by perceptual-hash similarity using a
Union-Find data structure, with optional LSH candidate generation for large
batches and embedding refinement for ambiguous pairs. Grouping is pure: it
reads finished records and returns new SimilarityGroup objects.
"""

from __future__ import annotations

import itertools
import logging
from collections import defaultdict
from typing import Any, Iterable, Iterator, Optional

from ..config import DEFAULT_HASH_METHOD
from ..embedding import embedding_similarity_percent
from ..lsh import (
    HammingLSH,
    LSHStats,
    bands_for_distance,
    estimate_comparison_reduction,
)
from ..models import PhotoRecord, SimilarityGroup
from ..user_config import get_user_config
from .dependencies import HAS_TQDM, _tqdm_class
from .hashing import fingerprint_max_distance, fingerprint_similarity, parse_fingerprint

_logger = logging.getLogger(__name__)

# Tolerance for float similarity at exact threshold boundaries
_EPSILON = 1e-9


class _UnionFind:
    """Disjoint sets with path compression and union by rank."""

    def __init__(self, size: int):
        self.parent = list(range(size))
        self.rank = [0] * size

    def find(self, x: int) -> int:
        root = x
        while self.parent[root] != root:
            root = self.parent[root]
        # Path compression
        while self.parent[x] != root:
            self.parent[x], x = root, self.parent[x]
        return root

    def union(self, x: int, y: int) -> None:
        px, py = self.find(x), self.find(y)
        if px == py:
            return
        if self.rank[px] < self.rank[py]:
            self.parent[px] = py
        elif self.rank[px] > self.rank[py]:
            self.parent[py] = px
        else:
            self.parent[py] = px
            self.rank[px] += 1


class _PairScorer:
    """Similarity between candidates i and j, with embedding refinement."""

    def __init__(
        self,
        candidates: list[PhotoRecord],
        hashes: list[Any],
        hash_method: str,
        use_features: bool,
        band: tuple[float, float],
    ):
        self.candidates = candidates
        self.hashes = hashes
        self.hash_method = hash_method
        self.use_features = use_features
        self.band_low, self.band_high = band
        self.refined = 0

    def hash_similarity(self, i: int, j: int) -> float:
        return fingerprint_similarity(self.hashes[i], self.hashes[j], self.hash_method)

    def __call__(self, i: int, j: int) -> float:
        similarity = self.hash_similarity(i, j)
        if self.use_features and self.band_low <= similarity < self.band_high:
            a, b = self.candidates[i].feature, self.candidates[j].feature
            if a is not None and b is not None and len(a) == len(b):
                self.refined += 1
                return embedding_similarity_percent(a, b)
        return similarity


def _select_keeper(members: list[PhotoRecord]) -> PhotoRecord:
    """Highest quality; ties by more pixels, larger file, earliest insertion."""
    return max(
        members,
        key=lambda r: (r.quality_score, r.pixel_count, r.file_size, -r.index),
    )


def _prepare_candidates(
    records: Iterable[PhotoRecord],
    logger: logging.Logger,
) -> tuple[list[PhotoRecord], list[Any], int, str]:
    """
    DONE records with parseable hashes of one common method and length,
    in insertion order.

    The first eligible record fixes the hash method and length; records
    that disagree are skipped with a warning.
    """
    eligible = sorted(
        (r for r in records if r.is_done and r.perceptual_hash),
        key=lambda r: r.index,
    )

    candidates: list[PhotoRecord] = []
    hashes: list[Any] = []
    hash_bits = 0
    hash_method = eligible[0].hash_method if eligible else ''

    for record in eligible:
        if record.hash_method != hash_method:
            logger.warning(
                f"Skipping {record.name}: {record.hash_method} hash does not match {hash_method} batch"
            )
            continue
        try:
            parsed = parse_fingerprint(record.perceptual_hash, hash_method)
        except ValueError as e:
            logger.warning(f"Skipping {record.name}: unparseable hash {record.perceptual_hash!r} ({e})")
            continue

        bits = parsed.hash.size
        if not hash_bits:
            hash_bits = bits
        elif bits != hash_bits:
            logger.warning(
                f"Skipping {record.name}: {bits}-bit hash does not match {hash_bits}-bit batch"
            )
            continue

        candidates.append(record)
        hashes.append(parsed)

    return candidates, hashes, hash_bits, hash_method


def _bruteforce_pairs(n: int) -> Iterator[tuple[int, int]]:
    return itertools.combinations(range(n), 2)


def _lsh_pairs(
    hashes: list[Any],
    hash_bits: int,
    min_similarity: float,
    logger: logging.Logger,
    hash_method: str = DEFAULT_HASH_METHOD,
) -> tuple[Iterator[tuple[int, int]], int]:
    """
    Build a banded LSH index sized so no pair above min_similarity is missed.

    Falls back to brute-force pairs when the index would yield at least as
    many pairs as brute force (low thresholds, or batches of near-identical
    hashes).
    """
    max_distance = fingerprint_max_distance(min_similarity, hash_bits, hash_method)
    num_bands = bands_for_distance(max_distance, hash_bits)

    lsh = HammingLSH(num_bands=num_bands, hash_bits=hash_bits)
    for idx, phash in enumerate(hashes):
        lsh.add(idx, phash)

    estimated = lsh.estimate_candidate_pairs()
    brute_force = len(hashes) * (len(hashes) - 1) // 2
    estimate = estimate_comparison_reduction(len(hashes), num_bands, hash_bits)
    logger.info(
        f"LSH params: {num_bands} bands over {hash_bits} bits (max distance {max_distance}); "
        f"comparisons {brute_force:,} -> ~{estimated:,} "
        f"(~{estimate['speedup_factor']:.0f}x expected on random hashes)"
    )

    if estimated >= brute_force:
        logger.info(
            f"LSH would yield {estimated:,} pairs for {brute_force:,} brute-force comparisons; "
            "using brute force"
        )
        return _bruteforce_pairs(len(hashes)), brute_force
    return lsh.iter_candidate_pairs(), estimated


def find_similar_groups(
    records: Iterable[PhotoRecord],
    threshold: float,
    use_features: bool = True,
    refinement_band: Optional[tuple[float, float]] = None,
    lsh_cutoff: Optional[int] = None,
    use_lsh: Optional[bool] = None,
    start_id: int = 1,
    show_progress: bool = False,
    logger: Optional[logging.Logger] = None,
    stats: Optional[LSHStats] = None,
) -> list[SimilarityGroup]:
    """
    Group near-duplicate photos.

    Two photos are joined when their similarity is >= threshold; groups are
    the connected components of that relation, so members are connected but
    not necessarily all pairwise similar. Similarity is the Hamming
    percentage of the perceptual hashes (weighted per component for 'multi'
    fingerprints), except that a pair whose hash similarity lies in
    [band_low, band_high) and whose records both carry a feature vector
    uses 100 * cosine similarity of the features instead.

    Only DONE records with a perceptual hash take part. Records are not
    modified, and repeated calls on the same input return equal groups.

    Args:
        records: Photo records (any order; insertion index is used)
        threshold: Minimum similarity percentage, inclusive
        use_features: Apply embedding refinement where features exist
        refinement_band: (low, high) hash-similarity band; user config default
        lsh_cutoff: Candidate count at which LSH is used; user config default
        use_lsh: Force LSH on/off, or None to decide from lsh_cutoff
        start_id: ID of the first group
        show_progress: Show a tqdm progress bar for large comparison runs
        logger: Logger for status messages (module logger if None)
        stats: Filled with candidate and comparison counts when given

    Returns:
        Groups with two or more members, ordered by the insertion index of
        their first member, with sequential ids from start_id
    """
    logger = logger or _logger
    user_config = get_user_config()
    band = refinement_band or user_config.refinement_band
    lsh_cutoff = user_config.lsh_auto_threshold if lsh_cutoff is None else lsh_cutoff

    candidates, hashes, hash_bits, hash_method = _prepare_candidates(records, logger)
    n = len(candidates)
    if stats is None:
        stats = LSHStats()
    stats.total_images = n
    if n < 2:
        return []

    refining = use_features and any(r.feature is not None for r in candidates)
    scorer = _PairScorer(candidates, hashes, hash_method, refining, band)

    if use_lsh is None:
        use_lsh = n >= lsh_cutoff

    # Pairs scored by embeddings can join from as low as band_low
    min_similarity = min(threshold, band[0]) if refining else threshold

    if use_lsh:
        pairs, total = _lsh_pairs(hashes, hash_bits, min_similarity, logger, hash_method)
    else:
        pairs, total = _bruteforce_pairs(n), n * (n - 1) // 2

    pbar: Optional[Any] = None
    if HAS_TQDM and show_progress and total > 1000 and _tqdm_class is not None:
        pbar = _tqdm_class(total=total, desc="Comparing photos", unit="cmp", ncols=80)

    uf = _UnionFind(n)
    comparisons = 0
    matches = 0
    count = 0

    for count, (i, j) in enumerate(pairs, 1):
        # Already connected (LSH may yield a pair once per band)
        if uf.find(i) != uf.find(j):
            comparisons += 1
            if scorer(i, j) + _EPSILON >= threshold:
                uf.union(i, j)
                matches += 1
        if pbar is not None and count % 1000 == 0:
            pbar.update(1000)

    if pbar is not None:
        pbar.update(count % 1000)
        pbar.close()

    stats.total_candidates = count
    stats.total_comparisons = comparisons
    stats.duplicate_pairs_found = matches

    components: dict[int, list[int]] = defaultdict(list)
    for idx in range(n):
        components[uf.find(idx)].append(idx)

    # Members are already in insertion order, so sorting by first member
    # orders groups by discovery
    member_lists = sorted(
        (members for members in components.values() if len(members) > 1),
        key=lambda members: members[0],
    )

    groups: list[SimilarityGroup] = []
    for group_id, members in enumerate(member_lists, start_id):
        pair_scores = [scorer(i, j) for i, j in itertools.combinations(members, 2)]
        keeper = _select_keeper([candidates[i] for i in members])
        groups.append(SimilarityGroup(
            id=group_id,
            members=tuple(candidates[i].identity for i in members),
            keeper=keeper.identity,
            mean_similarity=sum(pair_scores) / len(pair_scores),
        ))

    logger.info(
        f"Grouping at {threshold}%: {len(groups):,} groups from {n:,} photos "
        f"({comparisons:,} comparisons, {matches:,} joins, {scorer.refined:,} refined)"
    )
    if use_lsh:
        logger.info(
            f"Candidate pairs: {stats.total_candidates:,} "
            f"({stats.avg_candidates_per_image:.1f} per photo, "
            f"{stats.reduction_ratio:.1%} fewer comparisons than brute force)"
        )
    return groups


__all__ = ['find_similar_groups']
