"""
Unit tests for the worker analysis unit.
"""

import pickle

from photodedup.models import ProcessingState
from photodedup.scanner.analysis import analyze_photo_bytes


class TestAnalyzePhotoBytes:
    """Test analyze_photo_bytes."""

    def test_valid_photo(self, scene_bytes):
        result = analyze_photo_bytes("a", scene_bytes)
        assert result.ok
        assert result.identity == "a"
        assert (result.width, result.height) == (256, 256)
        assert len(result.perceptual_hash) == 16
        assert result.quality is not None
        assert result.thumbnail is None
        assert result.stages == (
            ProcessingState.DECODING,
            ProcessingState.HASHING,
            ProcessingState.SCORING_QUALITY,
        )

    def test_thumbnail(self, scene_bytes):
        result = analyze_photo_bytes("a", scene_bytes, want_thumbnail=True)
        assert result.thumbnail.shape == (224, 224, 3)
        assert result.thumbnail.dtype.name == 'uint8'

    def test_corrupt_photo(self, corrupt_bytes):
        """Failures are returned as data, not raised."""
        result = analyze_photo_bytes("bad", corrupt_bytes)
        assert not result.ok
        assert result.failed_stage is ProcessingState.DECODING
        assert result.error_type == "DecodeError"
        assert result.error
        assert result.stages == ()

    def test_hash_failure_reports_stage(self, scene_bytes):
        result = analyze_photo_bytes("a", scene_bytes, hash_method='nope')
        assert not result.ok
        assert result.failed_stage is ProcessingState.HASHING
        assert result.error_type == "ValueError"
        assert result.stages == (ProcessingState.DECODING,)

    def test_result_is_picklable(self, scene_bytes):
        result = analyze_photo_bytes("a", scene_bytes, want_thumbnail=True)
        restored = pickle.loads(pickle.dumps(result))
        assert restored.perceptual_hash == result.perceptual_hash
        assert restored.quality == result.quality
