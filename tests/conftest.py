"""
Pytest configuration and shared fixtures for test suite.
"""

import io
import random

import numpy as np
import pytest
from PIL import Image, ImageDraw, ImageFilter, ImageOps

from photodedup.cache import FingerprintCache, reset_cache, set_cache
from photodedup.models import PhotoRecord, ProcessingState, QualityMetrics, RawPhotoInput
from photodedup.user_config import get_user_config


def make_scene(seed: int = 0, size: int = 256) -> Image.Image:
    """
    Draw a synthetic photo: a seeded gradient background with large shapes.

    Large, smooth shapes keep the perceptual hash stable under small shifts
    and re-encoding.
    """
    rng = random.Random(seed)
    img = Image.new('RGB', (size, size))
    draw = ImageDraw.Draw(img)

    horizontal = rng.random() < 0.5
    tint = rng.randint(0, 255)
    for pos in range(size):
        v = int(255 * pos / (size - 1))
        if horizontal:
            draw.line([(pos, 0), (pos, size)], fill=(v, tint, 255 - v))
        else:
            draw.line([(0, pos), (size, pos)], fill=(255 - v, v, tint))

    for _ in range(5):
        x0 = rng.randint(0, size * 2 // 3)
        y0 = rng.randint(0, size * 2 // 3)
        x1 = x0 + rng.randint(size // 6, size // 3)
        y1 = y0 + rng.randint(size // 6, size // 3)
        color = tuple(rng.randint(0, 255) for _ in range(3))
        if rng.random() < 0.5:
            draw.rectangle([x0, y0, x1, y1], fill=color)
        else:
            draw.ellipse([x0, y0, x1, y1], fill=color)

    return img


def encode(img: Image.Image, fmt: str = 'PNG', **kwargs) -> bytes:
    """Encode an image to bytes."""
    buf = io.BytesIO()
    img.save(buf, fmt, **kwargs)
    return buf.getvalue()


@pytest.fixture(autouse=True)
def isolated_environment(tmp_path, monkeypatch):
    """Isolate user config and the global cache for every test."""
    monkeypatch.setenv('PHOTODEDUP_CONFIG_DIR', str(tmp_path / 'config'))
    for var in ('PHOTODEDUP_THRESHOLD', 'PHOTODEDUP_WORKERS', 'PHOTODEDUP_CHUNK_SIZE',
                'PHOTODEDUP_TASK_TIMEOUT', 'PHOTODEDUP_LSH_THRESHOLD',
                'PHOTODEDUP_REFINEMENT_BAND', 'PHOTODEDUP_EMBEDDING_MODEL'):
        monkeypatch.delenv(var, raising=False)
    monkeypatch.setenv('PHOTODEDUP_CACHE_DB', str(tmp_path / 'default_cache.db'))
    get_user_config().reload()

    set_cache(FingerprintCache())
    yield
    reset_cache()
    get_user_config().reload()


@pytest.fixture
def scene():
    """A synthetic photo."""
    return make_scene(seed=1)


@pytest.fixture
def scene_bytes(scene):
    """The synthetic photo encoded as PNG."""
    return encode(scene)


@pytest.fixture
def inverted_bytes(scene):
    """The inverted photo: perceptually unrelated to scene."""
    return encode(ImageOps.invert(scene))


@pytest.fixture
def jpeg_bytes(scene):
    """The synthetic photo re-encoded as JPEG (a near duplicate)."""
    return encode(scene, 'JPEG', quality=85)


@pytest.fixture
def blurred_bytes(scene):
    """A blurred copy of the synthetic photo."""
    return encode(scene.filter(ImageFilter.GaussianBlur(3)))


@pytest.fixture
def corrupt_bytes():
    """Bytes that are not an image."""
    return b"this is not an image"


@pytest.fixture
def memory_cache():
    """A memory-only fingerprint cache."""
    return FingerprintCache()


@pytest.fixture
def temp_cache_db(tmp_path):
    """Path for a temporary fingerprint store."""
    return str(tmp_path / "fingerprints.db")


@pytest.fixture
def photo_factory():
    """Build RawPhotoInput objects from bytes with a loader call counter."""
    calls = {'count': 0}

    def factory(name, data, mtime=1.0):
        def loader():
            calls['count'] += 1
            return data
        return RawPhotoInput(name=name, file_size=len(data), mtime=mtime, loader=loader)

    factory.calls = calls
    return factory


@pytest.fixture
def record_factory():
    """Build finished PhotoRecords with a given hash and quality."""
    def factory(identity, phash, index=0, score=50.0, width=100, height=100,
                file_size=1000, feature=None, state=ProcessingState.DONE, hash_method='phash'):
        return PhotoRecord(
            identity=identity,
            name=f"{identity}.jpg",
            index=index,
            file_size=file_size,
            width=width,
            height=height,
            perceptual_hash=phash,
            hash_method=hash_method,
            quality=QualityMetrics(score=score),
            feature=np.asarray(feature, dtype=np.float32) if feature is not None else None,
            state=state,
        )
    return factory


class FakeEmbedder:
    """Deterministic embedder: normalized mean colour plus a constant."""

    def __init__(self, fail=False):
        self.fail = fail
        self.calls = 0

    @property
    def available(self):
        return True

    @property
    def dimension(self):
        return 4

    def ensure_ready(self):
        pass

    def embed(self, pixels):
        self.calls += 1
        if self.fail:
            raise RuntimeError("embedding exploded")
        arr = np.asarray(pixels, dtype=np.float32).reshape(-1, 3)
        vec = np.append(arr.mean(axis=0) / 255.0, 1.0).astype(np.float32)
        return vec / np.linalg.norm(vec)


@pytest.fixture
def fake_embedder():
    return FakeEmbedder()


@pytest.fixture
def failing_embedder():
    """Embedder that loads but fails on every image."""
    return FakeEmbedder(fail=True)


@pytest.fixture
def image_bytes():
    """Encode a seeded synthetic photo: image_bytes(seed, fmt='PNG', invert=False)."""
    def factory(seed=0, fmt='PNG', invert=False, **kwargs):
        img = make_scene(seed=seed)
        if invert:
            img = ImageOps.invert(img)
        return encode(img, fmt, **kwargs)
    return factory


@pytest.fixture
def scene_maker():
    """The synthetic photo generator: scene_maker(seed, size)."""
    return make_scene
