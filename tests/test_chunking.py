"""Tests for sentence splitting and segmenting extracted text into chunks."""

from __future__ import annotations

from recall.ingestion.chunking import estimate_tokens, segment, split_sentences
from recall.ingestion.models import TranscriptSegment


def _sentence(i: int) -> str:
    # 23 + len(str(i)) chars: ~7 tokens each
    return f"Sentence number {i} is here."


def _long_text(n: int) -> str:
    return " ".join(_sentence(i) for i in range(n))


class TestEstimateTokens:
    def test_rounds_up(self) -> None:
        assert estimate_tokens("") == 0
        assert estimate_tokens("abcd") == 1
        assert estimate_tokens("abcde") == 2


class TestSplitSentences:
    def test_splits_on_terminal_punctuation(self) -> None:
        sentences = split_sentences("Hello there. How are you? Great!  Done")
        assert [s.text for s in sentences] == ["Hello there.", "How are you?", "Great!", "Done"]

    def test_keeps_trailing_fragment(self) -> None:
        sentences = split_sentences("One sentence. trailing fragment")
        assert sentences[-1].text == "trailing fragment"

    def test_offsets_point_into_text(self) -> None:
        text = "First one. Second one."
        sentences = split_sentences(text)
        assert text[sentences[1].start : sentences[1].end].strip() == "Second one."

    def test_no_boundary_inside_decimal(self) -> None:
        sentences = split_sentences("It costs 3.5 dollars. Cheap.")
        assert len(sentences) == 2


class TestSegment:
    def test_empty_text(self) -> None:
        assert segment("") == []
        assert segment("   ") == []

    def test_short_text_single_chunk(self) -> None:
        chunks = segment("Just one short sentence.")
        assert len(chunks) == 1
        assert chunks[0].text == "Just one short sentence."
        assert chunks[0].start_offset == 0
        assert chunks[0].end_offset == len("Just one short sentence.")

    def test_every_chunk_but_last_reaches_min_tokens(self) -> None:
        chunks = segment(_long_text(300), min_tokens=50, max_tokens=80)
        assert len(chunks) > 2
        for chunk in chunks[:-1]:
            assert chunk.token_estimate >= 50

    def test_chunks_concatenate_to_all_sentences(self) -> None:
        text = _long_text(200)
        chunks = segment(text, min_tokens=40, max_tokens=60)
        rebuilt = " ".join(c.text for c in chunks)
        assert rebuilt.split() == text.split()

    def test_offsets_are_contiguous(self) -> None:
        text = _long_text(120)
        chunks = segment(text, min_tokens=40, max_tokens=60)
        assert chunks[0].start_offset == 0
        for prev, nxt in zip(chunks, chunks[1:], strict=False):
            assert prev.end_offset == nxt.start_offset
        assert chunks[-1].end_offset == len(text)

    def test_joining_space_counts_toward_max(self) -> None:
        # 1200 chars (300 tokens) + 400 chars (100 tokens) joins to 1601 chars
        text = "a" * 1199 + ". " + "b" * 399 + "."
        chunks = segment(text, min_tokens=10, max_tokens=400)
        assert [c.token_estimate for c in chunks] == [300, 100]

    def test_oversized_sentence_is_not_split(self) -> None:
        giant = "word " * 600 + "end."
        chunks = segment(giant, min_tokens=10, max_tokens=20)
        assert len(chunks) == 1
        assert chunks[0].token_estimate > 20

    def test_below_min_forces_append_past_max(self) -> None:
        text = "Short. " + "x" * 200 + "."
        chunks = segment(text, min_tokens=20, max_tokens=30)
        assert len(chunks) == 1

    def test_single_speaker_attribution(self) -> None:
        text = "Let us review the budget today. The numbers look fine."
        segments = [
            TranscriptSegment(text="Let us review the budget today.", speaker="Alice"),
            TranscriptSegment(text="The numbers look fine.", speaker="Alice"),
        ]
        chunks = segment(text, segments)
        assert chunks[0].speaker == "Alice"
        assert chunks[0].speakers == ["Alice"]

    def test_multiple_speakers_leaves_speaker_empty(self) -> None:
        text = "Let us review the budget today. The numbers look fine."
        segments = [
            TranscriptSegment(text="Let us review the budget today.", speaker="Alice"),
            TranscriptSegment(text="The numbers look fine.", speaker="Bob"),
        ]
        chunks = segment(text, segments)
        assert chunks[0].speaker is None
        assert chunks[0].speakers == ["Alice", "Bob"]

    def test_unlabeled_segments_give_no_speakers(self) -> None:
        text = "Nobody is labeled here."
        chunks = segment(text, [TranscriptSegment(text=text)])
        assert chunks[0].speaker is None
        assert chunks[0].speakers is None
