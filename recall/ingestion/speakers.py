"""LLM-based speaker attribution for transcripts without diarization."""

from __future__ import annotations

import logging
import re
from typing import Any

from recall.ingestion.models import TranscriptSegment
from recall.llm import AnthropicCompleter

logger = logging.getLogger(__name__)

BATCH_SIZE = 20
CONTEXT_SIZE = 5

# Labels the model falls back to when it cannot name a speaker
_GENERIC_LABEL_RE = re.compile(
    r"^(speaker|person|participant|voice|interviewer|interviewee)(\s*[\w\d]+)?$|^unknown(\s+speaker)?$",
    re.IGNORECASE,
)

SYSTEM_PROMPT = (
    "You are a speaker diarization assistant. Analyze transcriptions and identify "
    "which speaker said each segment. Always use actual names when identifiable, "
    "never generic labels unless absolutely necessary."
)

SPEAKER_SCHEMA: dict[str, Any] = {
    "type": "object",
    "properties": {
        "speakers": {
            "type": "object",
            "description": (
                'Map of segment label (e.g. "Segment 1") to the speaker name. '
                "Only segments from the current batch, never context segments."
            ),
            "additionalProperties": {"type": "string"},
        }
    },
    "required": ["speakers"],
}


def is_generic_label(label: str) -> bool:
    """True for placeholder labels such as ``Speaker 2`` or ``Unknown``."""
    return bool(_GENERIC_LABEL_RE.match(label.strip()))


def title_case(label: str) -> str:
    return " ".join(word[:1].upper() + word[1:].lower() for word in label.split())


def _build_prompt(
    context: list[TranscriptSegment],
    batch: list[TranscriptSegment],
    known_speakers: list[str],
) -> str:
    lines = [f"[Context {i + 1}] {seg.text.strip()}" for i, seg in enumerate(context)]
    lines += [f"[Segment {i + 1}] {seg.text.strip()}" for i, seg in enumerate(batch)]
    transcript = "\n".join(lines)

    if known_speakers:
        guidance = (
            "IMPORTANT: The following people are known to be in this conversation: "
            f"{', '.join(known_speakers)}.\n"
            "Use their ACTUAL NAMES from this list whenever possible. Only use generic "
            'labels like "Speaker 1" if you cannot identify the actual person. Look for '
            'direct mentions ("Hi John"), self-references ("I\'m Sarah"), context clues '
            "and speaking patterns that match known participants."
        )
    else:
        guidance = (
            "Identify different speakers based on speaking style, content, and context. "
            "Try to extract actual names from the conversation (e.g. \"Hi, I'm John\"). "
            'Only use generic labels like "Speaker 1" if names cannot be determined.'
        )

    return (
        "Identify which speaker said each segment of this audio transcription.\n\n"
        f"Transcription:\n{transcript}\n\n"
        f"{guidance}\n\n"
        "[Context N] lines are the end of the previous batch and are shown for "
        "continuity only. Label every [Segment N] line, keyed as \"Segment N\"."
    )


class SpeakerAttributor:
    """Assigns speaker names to transcript segments in ordered batches.

    Each batch is sent with the tail of the previous batch as context. Labels
    are normalized through a map that persists across batches, so a name
    learned early is reused for variants seen later.
    """

    def __init__(
        self,
        completer: AnthropicCompleter,
        batch_size: int = BATCH_SIZE,
        context_size: int = CONTEXT_SIZE,
    ) -> None:
        self._completer = completer
        self._batch_size = batch_size
        self._context_size = context_size

    async def attribute(
        self,
        segments: list[TranscriptSegment],
        known_speakers: list[str] | None = None,
    ) -> list[TranscriptSegment]:
        """Set ``speaker`` on *segments* in place and return the same list.

        A batch whose labeling call fails or returns malformed output is left
        unlabeled; the remaining batches are still processed.
        """
        if not segments:
            return segments

        known = [s.strip() for s in known_speakers or [] if s and s.strip()]
        normalizer = SpeakerNormalizer(known)
        logger.info(
            "Attributing speakers for %d segments (known: %s)",
            len(segments),
            ", ".join(known) or "none",
        )

        previous: list[TranscriptSegment] = []
        for start in range(0, len(segments), self._batch_size):
            batch = segments[start : start + self._batch_size]
            context = previous[-self._context_size :] if self._context_size else []
            batch_num = start // self._batch_size + 1

            try:
                data = await self._completer.complete_json(
                    SYSTEM_PROMPT,
                    _build_prompt(context, batch, normalizer.canonical_names),
                    SPEAKER_SCHEMA,
                    temperature=0.3,
                )
                labels = data.get("speakers")
                if not isinstance(labels, dict):
                    raise ValueError("response has no 'speakers' object")
            except Exception:
                logger.exception("Speaker attribution failed for batch %d; leaving it unlabeled", batch_num)
                previous = batch
                continue

            for i, seg in enumerate(batch):
                label = labels.get(f"Segment {i + 1}")
                if isinstance(label, str) and label.strip():
                    seg.speaker = normalizer.normalize(label)
            previous = batch

        labeled = [s for s in segments if s.speaker]
        logger.info(
            "Speaker attribution complete: %d/%d segments labeled, speakers: %s",
            len(labeled),
            len(segments),
            ", ".join(sorted({s.speaker for s in labeled if s.speaker})),
        )
        return segments


class SpeakerNormalizer:
    """Maps detected labels to canonical display names."""

    def __init__(self, known_speakers: list[str] | None = None) -> None:
        self._map: dict[str, str] = {}
        self._canonical: list[str] = []
        for name in known_speakers or []:
            self._register(name, name)

    @property
    def canonical_names(self) -> list[str]:
        return list(self._canonical)

    def _register(self, label: str, canonical: str) -> None:
        self._map[label.strip().lower()] = canonical
        if canonical not in self._canonical and not is_generic_label(canonical):
            self._canonical.append(canonical)

    def _fuzzy_match(self, label_lower: str) -> str | None:
        for name in self._canonical:
            name_lower = name.lower()
            if label_lower in name_lower or name_lower in label_lower:
                return name
        return None

    def normalize(self, label: str) -> str:
        """Return the canonical form of *label*, registering new names."""
        label = label.strip()
        label_lower = label.lower()
        if label_lower in self._map:
            return self._map[label_lower]

        if is_generic_label(label):
            self._map[label_lower] = label
            return label

        match = self._fuzzy_match(label_lower)
        if match is not None:
            self._map[label_lower] = match
            return match

        canonical = title_case(label)
        self._register(label, canonical)
        logger.info("Detected new speaker name: %s", canonical)
        return canonical
