"""
Unit tests for data models (photo inputs, records, cache entries, results).
"""

import json

import numpy as np
import pytest

from photodedup.exceptions import DecodeError, StageTimeoutError
from photodedup.models import (
    BatchOptions,
    BatchResult,
    BatchStats,
    CacheEntry,
    Failure,
    PhotoRecord,
    ProcessingState,
    ProgressEvent,
    QualityMetrics,
    RawPhotoInput,
    SimilarityGroup,
    format_size,
    make_identity,
)


class TestFormatSize:
    """Test the format_size utility function."""

    def test_bytes(self):
        assert format_size(500) == "500.0 B"

    def test_kilobytes(self):
        assert format_size(2048) == "2.0 KB"

    def test_megabytes(self):
        assert format_size(5242880) == "5.0 MB"

    def test_gigabytes(self):
        assert format_size(3221225472) == "3.0 GB"

    def test_zero(self):
        assert format_size(0) == "0.0 B"


class TestRawPhotoInput:
    """Test RawPhotoInput data class."""

    def test_identity(self):
        photo = RawPhotoInput(name="/photos/a.jpg", file_size=1024, mtime=12.5)
        assert photo.identity == make_identity("/photos/a.jpg", 12.5, 1024)
        assert photo.identity == "/photos/a.jpg:12.5:1024"

    def test_identity_changes_with_attributes(self):
        a = RawPhotoInput(name="a.jpg", file_size=1, mtime=1.0)
        assert a.identity != RawPhotoInput(name="a.jpg", file_size=2, mtime=1.0).identity
        assert a.identity != RawPhotoInput(name="a.jpg", file_size=1, mtime=2.0).identity

    def test_content_hash_identity(self):
        photo = RawPhotoInput(name="a.jpg", file_size=1, content_hash="abc123")
        assert photo.identity == "abc123"

    def test_read_data(self):
        assert RawPhotoInput.from_bytes("a.png", b"xyz").read() == b"xyz"

    def test_read_loader(self):
        photo = RawPhotoInput(name="a.png", loader=lambda: b"abc")
        assert photo.read() == b"abc"

    def test_read_without_source(self):
        with pytest.raises(DecodeError):
            RawPhotoInput(name="a.png").read()

    def test_loader_os_error(self):
        def loader():
            raise FileNotFoundError("gone")

        with pytest.raises(DecodeError, match="gone"):
            RawPhotoInput(name="a.png", loader=loader).read()

    def test_loader_any_error(self):
        """Whatever the loader raises surfaces as a DecodeError for that photo."""
        def loader():
            raise RuntimeError("converter crashed")

        with pytest.raises(DecodeError, match="converter crashed") as info:
            RawPhotoInput(name="a.heic", loader=loader).read()
        assert isinstance(info.value.__cause__, RuntimeError)

    def test_from_path(self, tmp_path):
        path = tmp_path / "photo.jpg"
        path.write_bytes(b"12345")
        photo = RawPhotoInput.from_path(path)
        assert photo.name == str(path)
        assert photo.file_size == 5
        assert photo.mtime == path.stat().st_mtime
        assert photo.read() == b"12345"

    def test_from_path_missing(self, tmp_path):
        with pytest.raises(OSError):
            RawPhotoInput.from_path(tmp_path / "missing.jpg")


class TestPhotoRecord:
    """Test PhotoRecord data class."""

    def _record(self, **kwargs):
        defaults = dict(identity="id", name="/path/to/image.jpg", index=0)
        defaults.update(kwargs)
        return PhotoRecord(**defaults)

    def test_from_input(self):
        photo = RawPhotoInput(name="/x/a.jpg", file_size=99, mtime=3.0)
        record = PhotoRecord.from_input(photo, 4)
        assert record.identity == photo.identity
        assert record.index == 4
        assert record.file_size == 99
        assert record.state is ProcessingState.PENDING

    def test_properties(self):
        record = self._record(width=800, height=600)
        assert record.filename == "image.jpg"
        assert record.pixel_count == 480000
        assert record.quality_score == 0.0

    def test_mark_failed(self):
        record = self._record(pixels=np.zeros((2, 2, 3)))
        record.mark_failed(StageTimeoutError("too slow"))
        assert record.is_failed
        assert record.error == "too slow"
        assert record.error_type == "TimeoutError"
        assert record.pixels is None

    def test_mark_failed_foreign_error(self):
        record = self._record()
        record.mark_failed(RuntimeError())
        assert record.error == "RuntimeError"
        assert record.error_type == "RuntimeError"

    def test_apply_cache_entry(self):
        entry = CacheEntry(
            perceptual_hash="ff00ff00ff00ff00",
            quality=QualityMetrics(score=77.0),
            width=30,
            height=40,
            timestamp=5,
            hash_method='multi',
        )
        record = self._record()
        record.apply_cache_entry(entry)
        assert record.hash_method == 'multi'
        assert record.is_done
        assert record.from_cache
        assert record.perceptual_hash == entry.perceptual_hash
        assert record.quality_score == 77.0
        assert (record.width, record.height) == (30, 40)

    def test_to_cache_entry(self):
        record = self._record(perceptual_hash="ab", quality=QualityMetrics(score=1.0), width=2, height=3)
        entry = record.to_cache_entry(123)
        assert entry.timestamp == 123
        assert (entry.hash_method, entry.hash_size) == ('phash', 8)
        record.hash_method = 'dhash'
        assert record.to_cache_entry(123, hash_size=16).matches('dhash', 16)
        assert entry.perceptual_hash == "ab"
        assert (entry.width, entry.height) == (2, 3)

    def test_hash_and_equality(self):
        a = self._record(identity="same", index=0)
        b = self._record(identity="same", index=7)
        c = self._record(identity="other")
        assert a == b
        assert a != c
        assert len({a, b, c}) == 2

    def test_to_dict(self):
        record = self._record(file_size=2048, feature=np.ones(2))
        data = record.to_dict()
        assert data['filename'] == "image.jpg"
        assert data['file_size_formatted'] == "2.0 KB"
        assert data['state'] == 'pending'
        assert data['has_feature'] is True
        assert data['quality'] is None
        json.dumps(data)


class TestProcessingState:
    """Test ProcessingState enum."""

    def test_terminal_states(self):
        assert ProcessingState.DONE.is_terminal
        assert ProcessingState.FAILED.is_terminal
        assert not ProcessingState.PENDING.is_terminal
        assert not ProcessingState.EMBEDDING.is_terminal


class TestCacheEntry:
    """Test CacheEntry persistence form."""

    def test_dict_round_trip(self):
        entry = CacheEntry(
            perceptual_hash="0f0f0f0f0f0f0f0f",
            quality=QualityMetrics(sharpness=1.5, brightness=100.0, contrast=20.0, score=44.0),
            feature=np.array([0.25, 0.75], dtype=np.float32),
            width=640,
            height=480,
            timestamp=1700000000000,
            hash_method='ahash',
            hash_size=16,
        )
        restored = CacheEntry.from_dict(json.loads(json.dumps(entry.to_dict())))
        assert restored == entry
        np.testing.assert_allclose(restored.feature, entry.feature)
        assert (restored.hash_method, restored.hash_size) == ('ahash', 16)

    def test_without_feature(self):
        entry = CacheEntry(perceptual_hash="00", quality=QualityMetrics())
        assert 'feature' not in entry.to_dict()
        assert CacheEntry.from_dict(entry.to_dict()).feature is None

    def test_hash_settings_default(self):
        """Entries written without hash settings are pHash-8 entries."""
        entry = CacheEntry.from_dict({'hash': "00", 'quality': {}})
        assert entry.matches('phash', 8)
        assert not entry.matches('multi', 8)
        assert not entry.matches('phash', 16)

    def test_missing_hash(self):
        with pytest.raises(KeyError):
            CacheEntry.from_dict({'quality': {}})


class TestSimilarityGroup:
    """Test SimilarityGroup data class."""

    def test_duplicates(self):
        group = SimilarityGroup(id=1, members=("a", "b", "c"), keeper="b", mean_similarity=93.456)
        assert group.size == 3
        assert group.duplicates == ("a", "c")

    def test_to_dict(self):
        group = SimilarityGroup(id=1, members=("a", "b"), keeper="a", mean_similarity=93.456)
        assert group.to_dict() == {
            'id': 1,
            'members': ["a", "b"],
            'keeper': "a",
            'mean_similarity': 93.46,
            'size': 2,
        }


class TestFailure:
    """Test Failure data class."""

    def test_from_record(self):
        record = PhotoRecord(identity="id", name="bad.jpg", index=0)
        record.mark_failed(DecodeError("not an image"))
        failure = Failure.from_record(record)
        assert failure == Failure("id", "bad.jpg", "not an image", "DecodeError")


class TestProgressEvent:
    """Test ProgressEvent data class."""

    def test_percent(self):
        assert ProgressEvent(1, 4).percent == 25.0
        assert ProgressEvent(0, 0).percent == 100.0

    def test_to_dict(self):
        assert ProgressEvent(1, 3).to_dict() == {'processedCount': 1, 'totalCount': 3, 'percent': 33.3}


class TestBatchOptions:
    """Test BatchOptions construction."""

    def test_defaults(self):
        options = BatchOptions()
        assert options.similarity_threshold == 90
        assert options.enable_embedding_refinement is False
        assert options.executor == 'thread'
        assert options.hash_method == 'phash'
        assert options.hash_size == 8

    def test_from_user_config(self, monkeypatch):
        monkeypatch.setenv('PHOTODEDUP_THRESHOLD', '85')
        monkeypatch.setenv('PHOTODEDUP_CHUNK_SIZE', '7')
        options = BatchOptions.from_user_config(task_timeout=3.0)
        assert options.similarity_threshold == 85
        assert options.chunk_size == 7
        assert options.task_timeout == 3.0


class TestBatchResult:
    """Test BatchResult helpers."""

    def test_record_lookup_and_dict(self):
        done = PhotoRecord(identity="a", name="a.jpg", index=0, state=ProcessingState.DONE)
        pending = PhotoRecord(identity="b", name="b.jpg", index=1)
        result = BatchResult(records=[done, pending], stats=BatchStats(total_files=2, cache_hits=1))

        assert result.done_records == [done]
        assert result.pending_records == [pending]
        assert result.record_for("b") is pending
        assert result.record_for("zzz") is None

        data = result.to_dict()
        assert data['stats']['hit_rate'] == 50.0
        json.dumps(data)
