"""
Integration tests for the engine facade.
"""

import json

import pytest

from photodedup import (
    BatchOptions,
    DuplicateEngine,
    NullEmbedder,
    RawPhotoInput,
    process_batch,
)
from photodedup.exceptions import InvalidOptionsError
from photodedup.models import ProcessingState


class TestProcessBatch:
    """Test DuplicateEngine.process_batch."""

    def test_single_photo(self, memory_cache, photo_factory, scene_bytes):
        result = DuplicateEngine(cache=memory_cache).process_batch(
            [photo_factory("a.png", scene_bytes)], BatchOptions()
        )
        assert len(result.records) == 1
        assert result.records[0].is_done
        assert result.groups == []
        assert result.failures == []
        assert result.cancelled is False

    def test_empty_batch(self, memory_cache):
        result = DuplicateEngine(cache=memory_cache).process_batch([], BatchOptions())
        assert result.records == []
        assert result.groups == []

    def test_identical_photos_grouped(self, memory_cache, photo_factory, scene_bytes):
        photos = [photo_factory(f"copy{i}.png", scene_bytes) for i in range(3)]
        result = DuplicateEngine(cache=memory_cache).process_batch(photos, BatchOptions())

        assert len(result.groups) == 1
        group = result.groups[0]
        assert group.id == 1
        assert group.members == tuple(r.identity for r in result.records)
        assert group.keeper == result.records[0].identity
        assert group.mean_similarity == 100.0

    def test_near_duplicate_and_unrelated(
        self, memory_cache, photo_factory, scene_bytes, jpeg_bytes, inverted_bytes
    ):
        photos = [
            photo_factory("original.png", scene_bytes),
            photo_factory("recompressed.jpg", jpeg_bytes),
            photo_factory("inverted.png", inverted_bytes),
        ]
        result = DuplicateEngine(cache=memory_cache).process_batch(
            photos, BatchOptions(similarity_threshold=90)
        )

        original, recompressed, inverted = result.records
        assert len(result.groups) == 1
        assert set(result.groups[0].members) == {original.identity, recompressed.identity}
        assert inverted.identity not in result.groups[0].members

    def test_failures_reported_with_successes(
        self, memory_cache, photo_factory, scene_bytes, corrupt_bytes
    ):
        photos = [
            photo_factory("a.png", scene_bytes),
            photo_factory("broken.jpg", corrupt_bytes),
            photo_factory("b.png", scene_bytes),
        ]
        result = DuplicateEngine(cache=memory_cache).process_batch(photos, BatchOptions())

        assert len(result.failures) == 1
        failure = result.failures[0]
        assert failure.name == "broken.jpg"
        assert failure.error_type == "DecodeError"
        assert failure.reason
        assert len(result.groups) == 1
        assert result.records[1].identity not in result.groups[0].members

    def test_loader_crash_reported_as_failure(self, memory_cache, photo_factory, scene_bytes):
        def loader():
            raise RuntimeError("HEIC converter crashed")

        photos = [
            photo_factory("a.png", scene_bytes),
            RawPhotoInput(name="b.heic", file_size=5, loader=loader),
            photo_factory("c.png", scene_bytes),
        ]
        result = DuplicateEngine(cache=memory_cache).process_batch(photos, BatchOptions())

        assert [f.name for f in result.failures] == ["b.heic"]
        assert result.failures[0].error_type == "DecodeError"
        assert "HEIC converter crashed" in result.failures[0].reason
        assert len(result.groups) == 1

    def test_multi_hash_method(
        self, memory_cache, photo_factory, scene_bytes, jpeg_bytes, inverted_bytes
    ):
        photos = [
            photo_factory("original.png", scene_bytes),
            photo_factory("recompressed.jpg", jpeg_bytes),
            photo_factory("inverted.png", inverted_bytes),
        ]
        engine = DuplicateEngine(cache=memory_cache)
        result = engine.process_batch(photos, BatchOptions(similarity_threshold=90, hash_method='multi'))

        original, recompressed, inverted = result.records
        assert all(len(r.perceptual_hash) == 48 for r in result.records)
        assert [g.members for g in result.groups] == [(original.identity, recompressed.identity)]

        again = engine.process_batch(photos, BatchOptions(similarity_threshold=90, hash_method='multi'))
        assert again.stats.cache_hits == 3
        assert again.groups == result.groups
        assert engine.regroup(again.records, 90) == result.groups

    def test_invalid_options_rejected_before_work(self, memory_cache, photo_factory, scene_bytes):
        engine = DuplicateEngine(cache=memory_cache)
        photos = [photo_factory("a.png", scene_bytes)]

        for options in (
            BatchOptions(similarity_threshold=40),
            BatchOptions(similarity_threshold=101),
            BatchOptions(worker_count=0),
            BatchOptions(chunk_size=0),
            BatchOptions(task_timeout=0),
            BatchOptions(executor='fibers'),
            BatchOptions(hash_method='whash'),
            BatchOptions(hash_size=7),
        ):
            with pytest.raises(InvalidOptionsError):
                engine.process_batch(photos, options)

        assert photo_factory.calls['count'] == 0
        assert len(memory_cache) == 0

    def test_invalid_options_is_value_error(self, memory_cache):
        with pytest.raises(ValueError):
            DuplicateEngine(cache=memory_cache).process_batch([], BatchOptions(similarity_threshold=10))

    def test_file_paths(self, memory_cache, tmp_path, scene_bytes):
        first = tmp_path / "first.png"
        second = tmp_path / "second.png"
        first.write_bytes(scene_bytes)
        second.write_bytes(scene_bytes)
        missing = tmp_path / "missing.png"

        result = DuplicateEngine(cache=memory_cache).process_batch(
            [str(first), second, str(missing)], BatchOptions()
        )

        assert [r.name for r in result.records] == [str(first), str(second), str(missing)]
        assert result.records[0].file_size == len(scene_bytes)
        assert len(result.groups) == 1
        assert result.records[2].is_failed
        assert result.failures[0].error_type == "DecodeError"

    def test_second_run_uses_cache(self, memory_cache, photo_factory, image_bytes):
        engine = DuplicateEngine(cache=memory_cache)
        photos = [photo_factory(f"p{i}.png", image_bytes(seed=i)) for i in range(3)]

        first = engine.process_batch(photos, BatchOptions())
        second = engine.process_batch(photos, BatchOptions())

        assert second.stats.cache_hits == 3
        assert second.stats.decode_dispatched == 0
        assert second.groups == first.groups

    def test_default_options_from_user_config(self, monkeypatch, memory_cache, photo_factory, scene_bytes):
        monkeypatch.setenv('PHOTODEDUP_THRESHOLD', '40')
        with pytest.raises(InvalidOptionsError):
            DuplicateEngine(cache=memory_cache).process_batch([photo_factory("a.png", scene_bytes)])

    def test_state_callback(self, memory_cache, photo_factory, scene_bytes):
        seen = []
        DuplicateEngine(cache=memory_cache).process_batch(
            [photo_factory("a.png", scene_bytes)],
            BatchOptions(),
            on_state_change=lambda r: seen.append(r.state),
        )
        assert seen[0] is ProcessingState.DECODING
        assert seen[-1] is ProcessingState.DONE

    def test_result_is_json_serializable(self, memory_cache, photo_factory, scene_bytes, corrupt_bytes):
        result = DuplicateEngine(cache=memory_cache).process_batch(
            [
                photo_factory("a.png", scene_bytes),
                photo_factory("b.png", scene_bytes),
                photo_factory("c.png", corrupt_bytes),
            ],
            BatchOptions(),
        )
        data = json.loads(json.dumps(result.to_dict()))
        assert len(data['records']) == 3
        assert data['groups'][0]['size'] == 2
        assert data['failures'][0]['error_type'] == "DecodeError"
        assert data['stats']['total_files'] == 3

    def test_module_level_process_batch(self, photo_factory, scene_bytes):
        """Uses the process-wide cache."""
        photos = [photo_factory("a.png", scene_bytes), photo_factory("b.png", scene_bytes)]
        result = process_batch(photos, BatchOptions())
        assert len(result.groups) == 1


class TestEmbeddingRefinement:
    """Test refinement availability in the engine."""

    def test_degraded_mode(self, memory_cache, photo_factory, scene_bytes):
        engine = DuplicateEngine(cache=memory_cache, embedder=NullEmbedder("no model here"))
        photos = [photo_factory(f"p{i}.png", scene_bytes) for i in range(2)]

        result = engine.process_batch(photos, BatchOptions(enable_embedding_refinement=True))

        assert result.refinement_available is False
        assert "no model here" in result.degraded_reason
        assert all(r.is_done for r in result.records)
        assert all(r.feature is None for r in result.records)
        assert len(result.groups) == 1

    def test_refinement_available(self, memory_cache, photo_factory, image_bytes, fake_embedder):
        engine = DuplicateEngine(cache=memory_cache, embedder=fake_embedder)
        photos = [photo_factory(f"p{i}.png", image_bytes(seed=i)) for i in range(2)]

        result = engine.process_batch(photos, BatchOptions(enable_embedding_refinement=True))

        assert result.refinement_available is True
        assert result.degraded_reason is None
        assert all(r.feature is not None for r in result.records)

    def test_refinement_off_never_touches_embedder(self, memory_cache, photo_factory, scene_bytes, fake_embedder):
        engine = DuplicateEngine(cache=memory_cache, embedder=fake_embedder)
        result = engine.process_batch([photo_factory("a.png", scene_bytes)], BatchOptions())
        assert result.refinement_available is False
        assert result.degraded_reason is None
        assert fake_embedder.calls == 0


class TestSubmitBatch:
    """Test background batches."""

    def test_submit_and_wait(self, memory_cache, photo_factory, image_bytes):
        photos = [photo_factory(f"p{i}.png", image_bytes(seed=i)) for i in range(4)]
        handle = DuplicateEngine(cache=memory_cache).submit_batch(photos, BatchOptions(chunk_size=2))

        result = handle.result(timeout=60)
        assert handle.done()
        assert len(result.records) == 4
        assert handle.progress.processed_count == 4

    def test_cancel(self, memory_cache, photo_factory, image_bytes):
        photos = [photo_factory(f"p{i}.png", image_bytes(seed=i)) for i in range(6)]
        engine = DuplicateEngine(cache=memory_cache)
        session = engine.create_session(photos, BatchOptions(chunk_size=1, worker_count=1))
        session.request_cancel()

        result = engine.run_session(session)

        assert result.cancelled is True
        assert all(r.state is ProcessingState.PENDING for r in result.records)
        assert result.groups == []

    def test_invalid_options_raise_immediately(self, memory_cache):
        with pytest.raises(InvalidOptionsError):
            DuplicateEngine(cache=memory_cache).submit_batch([], BatchOptions(executor='nope'))


class TestRegroup:
    """Test regrouping finished records."""

    def test_regroup_without_decoding(self, memory_cache, photo_factory, scene_bytes, jpeg_bytes):
        engine = DuplicateEngine(cache=memory_cache)
        photos = [photo_factory("a.png", scene_bytes), photo_factory("b.jpg", jpeg_bytes)]
        result = engine.process_batch(photos, BatchOptions(similarity_threshold=90))
        loads = photo_factory.calls['count']

        strict = engine.regroup(result.records, 100)
        loose = engine.regroup(result.records, 50)

        assert photo_factory.calls['count'] == loads
        assert len(loose) == 1
        assert len(strict) <= 1

    def test_regroup_rejects_bad_threshold(self, memory_cache):
        with pytest.raises(InvalidOptionsError):
            DuplicateEngine(cache=memory_cache).regroup([], 120)


class TestCoerceInput:
    """Test input coercion."""

    def test_raw_input_passes_through(self, memory_cache):
        photo = RawPhotoInput.from_bytes("a.png", b"1234")
        session = DuplicateEngine(cache=memory_cache).create_session([photo], BatchOptions())
        assert session.photos[0] is photo
