"""
Configuration constants for photodedup.

This module contains all tunable settings including:
- Perceptual hash size and algorithm
- Similarity threshold bounds and the embedding refinement band
- Quality score weights and normalization constants
- Worker pool sizing and batch chunking
- Fingerprint cache limits and location
"""

import os

# Perceptual hash settings
# hash_size=8 gives an 8x8 grid, i.e. a 64-bit fingerprint
DEFAULT_HASH_SIZE = 8
DEFAULT_HASH_METHOD = 'phash'
HASH_METHODS = ('phash', 'ahash', 'dhash', 'multi')

# 'multi' fingerprints concatenate these hashes (in this order) and score
# pairs by weighted Hamming distance
MULTI_HASH_COMPONENTS = ('ahash', 'dhash', 'phash')
MULTI_HASH_WEIGHTS = {
    'ahash': 0.25,
    'dhash': 0.35,
    'phash': 0.40,
}

# Hash grid size bounds (hash_size ** 2 bits per hash)
MIN_HASH_SIZE = 4
MAX_HASH_SIZE = 32

# Similarity thresholds are percentages (100 = identical hashes)
DEFAULT_SIMILARITY_THRESHOLD = 90
MIN_SIMILARITY_THRESHOLD = 50
MAX_SIMILARITY_THRESHOLD = 100

# Below this many photos grouping compares all pairs directly;
# at or above it, banded LSH generates candidate pairs
LSH_AUTO_THRESHOLD = 500

# Hash similarity band in which embedding vectors refine the score.
# Lower bound inclusive, upper bound exclusive.
REFINEMENT_BAND_LOW = 80.0
REFINEMENT_BAND_HIGH = 95.0

# Quality scoring
# Images are scored on a bounded working copy so scores are comparable
# regardless of source resolution
QUALITY_MAX_DIMENSION = 512
# Laplacian variance at which the sharpness metric reaches 50
SHARPNESS_NORMALIZER = 500.0
# Luminance standard deviation that earns a full contrast score
CONTRAST_NORMALIZER = 64.0
# Mean luminance that earns a full brightness score
BRIGHTNESS_TARGET = 128.0
QUALITY_WEIGHTS = {
    'sharpness': 0.5,
    'contrast': 0.3,
    'brightness': 0.2,
}

# Worker pool sizing
DEFAULT_WORKERS = 4
WORKER_FLOOR = 2
WORKER_CEILING = 8
MAX_WORKERS = 64

# Photos per scheduling chunk; bounds how many payloads are held at once
DEFAULT_CHUNK_SIZE = 32

# Seconds a single unit of work may run before it is marked failed
DEFAULT_TASK_TIMEOUT = 60.0

EXECUTOR_KINDS = ('thread', 'process')

# Embedding model
EMBEDDING_MODEL = "openai/clip-vit-base-patch32"
EMBEDDING_INPUT_SIZE = 224

# Decompression bomb limit for Pillow
MAX_IMAGE_PIXELS = 500_000_000

# Fingerprint cache limits
CACHE_MAX_ENTRIES = 100_000
CACHE_MAX_AGE_MS = 7 * 24 * 60 * 60 * 1000

# SQLite fingerprint store location
CACHE_DB_FILE = os.path.join(os.path.expanduser('~'), '.photodedup_cache.db')
