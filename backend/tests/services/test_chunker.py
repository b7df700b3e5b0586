"""
Tests for TranscriptChunker.

This test module verifies:
1. Boundary rules (target size, sentence ends, pauses, hard maximum)
2. Determinism, coverage and time monotonicity of the output
3. Context, keywords, entities and hashes attached to each chunk
4. Edge cases (empty input, a single oversized segment)
"""

import hashlib

import pytest

from mindsift.schemas.transcript import TranscriptSegment
from mindsift.services.processors.chunker import TranscriptChunker


def sentence(n: int) -> str:
    return f"Sentence number {n} talks about the Vanguard rule in detail."


class TestChunkerBasics:

    def test_initialization_defaults(self):
        chunker = TranscriptChunker()
        assert chunker.target_chars == 1000
        assert chunker.max_chars == 2000
        assert chunker.pause_gap_seconds == 0.5
        assert chunker.context_chars == 100

    def test_target_above_max_is_rejected(self):
        with pytest.raises(ValueError):
            TranscriptChunker(target_chars=500, max_chars=100)

    def test_empty_input(self, chunker):
        assert chunker.chunk([]) == []

    def test_short_transcript_is_one_chunk(self, chunker, segment_factory):
        segments = segment_factory(["Hello and welcome.", "Today we talk about bikes."])

        chunks = chunker.chunk(segments)

        assert len(chunks) == 1
        assert chunks[0].chunk_index == 0
        assert chunks[0].text == "Hello and welcome. Today we talk about bikes."
        assert chunks[0].start_time == 0.0
        assert chunks[0].end_time == 4.0


class TestBoundaries:

    def test_closes_at_sentence_end_after_target(self, segment_factory):
        chunker = TranscriptChunker(target_chars=50, max_chars=500, context_chars=0)
        segments = segment_factory([sentence(i) for i in range(6)])

        chunks = chunker.chunk(segments)

        # Each sentence is ~60 chars and ends with a period
        assert len(chunks) == 6
        assert all(c.text.endswith(".") for c in chunks)

    def test_waits_for_boundary_past_target(self, segment_factory):
        chunker = TranscriptChunker(target_chars=10, max_chars=500, context_chars=0)
        segments = segment_factory(["so the idea here", "is that you keep", "going until done."])

        chunks = chunker.chunk(segments)

        assert len(chunks) == 1
        assert chunks[0].text == "so the idea here is that you keep going until done."

    def test_pause_is_a_boundary(self, segment_factory):
        chunker = TranscriptChunker(target_chars=10, max_chars=500, pause_gap_seconds=0.5, context_chars=0)
        segments = [
            TranscriptSegment(start=0.0, end=2.0, text="first thought without period"),
            TranscriptSegment(start=3.0, end=5.0, text="second thought after a pause"),
        ]

        chunks = chunker.chunk(segments)

        assert [c.text for c in chunks] == ["first thought without period", "second thought after a pause"]

    def test_hard_maximum_forces_a_close(self, segment_factory):
        chunker = TranscriptChunker(target_chars=100, max_chars=100, context_chars=0)
        segments = segment_factory(["word " * 10 for _ in range(5)])  # 50 chars, no boundary

        chunks = chunker.chunk(segments)

        assert len(chunks) == 3
        for chunk in chunks:
            assert len(chunk.text) <= 100

    def test_single_oversized_segment_is_kept_whole(self, segment_factory):
        chunker = TranscriptChunker(target_chars=10, max_chars=20, context_chars=0)
        long_text = "x" * 50

        chunks = chunker.chunk(segment_factory([long_text]))

        assert len(chunks) == 1
        assert chunks[0].text == long_text


class TestChunkProperties:

    @pytest.fixture
    def segments(self, segment_factory):
        texts = []
        for i in range(40):
            texts.append(sentence(i) if i % 3 == 0 else f"and some filler words number {i}")
        return segment_factory(texts, duration=1.5, gap=0.2)

    def test_deterministic(self, chunker, segments):
        first = chunker.chunk(segments)
        second = chunker.chunk(segments)

        assert [c.model_dump() for c in first] == [c.model_dump() for c in second]

    def test_coverage(self, chunker, segments):
        chunks = chunker.chunk(segments)

        joined = " ".join(c.text for c in chunks)
        assert joined == " ".join(s.text for s in segments)

    def test_time_monotonicity_and_dense_indices(self, chunker, segments):
        chunks = chunker.chunk(segments)

        assert [c.chunk_index for c in chunks] == list(range(len(chunks)))
        for chunk in chunks:
            assert chunk.start_time <= chunk.end_time
        for current, following in zip(chunks, chunks[1:]):
            assert current.end_time <= following.start_time

    def test_context_from_neighbours(self, chunker, segments):
        chunks = chunker.chunk(segments)
        assert len(chunks) > 2

        assert chunks[0].context_before == ""
        assert chunks[-1].context_after == ""
        assert chunks[1].context_before == chunks[0].text[-20:]
        assert chunks[1].context_after == chunks[2].text[:20]

    def test_metadata(self, chunker, segments):
        chunk = chunker.chunk(segments)[0]

        assert chunk.text_hash == hashlib.sha256(chunk.text.encode("utf-8")).hexdigest()
        assert "vanguard" in chunk.keywords
        assert any("Vanguard" in entity for entity in chunk.entities)
