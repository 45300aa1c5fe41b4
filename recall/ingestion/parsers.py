"""Source parsers: transcripts (VTT, JSON) and documents (PDF, DOCX, text)."""

from __future__ import annotations

import io
import json
import logging
import re
from dataclasses import dataclass, field
from datetime import datetime

from docx import Document
from pypdf import PdfReader

from recall.ingestion.models import TranscriptSegment, coerce_datetime

logger = logging.getLogger(__name__)

TEXT_EXTENSIONS = {"txt", "md", "markdown", "csv", "tsv", "html", "htm", "rst", "log"}
SUPPORTED_EXTENSIONS = TEXT_EXTENSIONS | {"pdf", "docx", "vtt", "json"}


@dataclass
class DocumentContent:
    """Text extracted from an uploaded document plus what we learned about it."""

    text: str
    document_type: str
    title: str | None = None
    created: datetime | None = None
    segments: list[TranscriptSegment] = field(default_factory=list)


def _parse_vtt_timestamp(ts: str) -> float:
    """Convert a VTT timestamp (HH:MM:SS.mmm) to seconds."""
    parts = ts.strip().split(":")
    if len(parts) == 3:
        hours, minutes, seconds = parts
    elif len(parts) == 2:
        hours = "0"
        minutes, seconds = parts
    else:
        return 0.0
    return int(hours) * 3600 + int(minutes) * 60 + float(seconds)


def parse_vtt(content: str) -> list[TranscriptSegment]:
    """Parse a WebVTT file into transcript segments.

    Speaker labels are read from ``Speaker 1: Hello`` prefixes or Microsoft
    Teams ``<v SpeakerName>Hello</v>`` voice tags (the tag wins when both
    are present).
    """
    segments: list[TranscriptSegment] = []

    timestamp_re = re.compile(
        r"(\d{1,2}:\d{2}:\d{2}[.,]\d{3})\s*-->\s*(\d{1,2}:\d{2}:\d{2}[.,]\d{3})"
    )
    speaker_re = re.compile(r"^(.+?):\s+(.+)$")
    # The closing </v> tag is optional in WebVTT.
    teams_voice_re = re.compile(r"^<v ([^>]+)>(.*?)(?:</v>)?$", re.DOTALL)

    lines = content.strip().splitlines()
    i = 0
    while i < len(lines):
        match = timestamp_re.search(lines[i].strip())
        if not match:
            i += 1
            continue

        start = _parse_vtt_timestamp(match.group(1).replace(",", "."))
        end = _parse_vtt_timestamp(match.group(2).replace(",", "."))

        text_lines: list[str] = []
        i += 1
        while i < len(lines) and lines[i].strip() and not timestamp_re.search(lines[i]):
            text_lines.append(lines[i].strip())
            i += 1

        text = " ".join(text_lines)
        speaker: str | None = None
        teams_match = teams_voice_re.match(text)
        if teams_match:
            speaker = teams_match.group(1).strip()
            text = teams_match.group(2).strip()
        else:
            speaker_match = speaker_re.match(text)
            if speaker_match:
                speaker = speaker_match.group(1)
                text = speaker_match.group(2)

        if text:
            segments.append(TranscriptSegment(text=text, start=start, end=end, speaker=speaker))

    return segments


def parse_plain_text(content: str) -> list[TranscriptSegment]:
    """Parse a plain-text transcript.

    If lines start with ``Name:`` the speaker is extracted, otherwise
    speaker is ``None``.
    """
    segments: list[TranscriptSegment] = []
    # Labels are short and never contain sentence punctuation ("Note: see below." is not a speaker)
    speaker_re = re.compile(r"^([^:.!?]{1,40}?):\s+(.+)$")

    for line in content.strip().splitlines():
        line = line.strip()
        if not line:
            continue

        match = speaker_re.match(line)
        if match:
            segments.append(TranscriptSegment(speaker=match.group(1).strip(), text=match.group(2)))
        else:
            segments.append(TranscriptSegment(speaker=None, text=line))

    return segments


def labeled_share(segments: list[TranscriptSegment]) -> float:
    """Fraction of segments that carry a speaker label."""
    if not segments:
        return 0.0
    return sum(1 for s in segments if s.speaker) / len(segments)


def parse_json(content: str) -> list[TranscriptSegment]:
    """Parse a JSON transcript.

    Supported formats:

    AssemblyAI (times in milliseconds)::

        {"utterances": [{"speaker": "A", "text": "...", "start": ms, "end": ms}]}

    Whisper-style segments (times in seconds)::

        {"segments": [{"speaker": "...", "text": "...", "start": s, "end": s}]}
    """
    data = json.loads(content)
    if not isinstance(data, dict):
        raise ValueError("Unrecognized JSON transcript format: top level is not an object")

    segments: list[TranscriptSegment] = []
    if "utterances" in data:
        for utt in data["utterances"]:
            segments.append(
                TranscriptSegment(
                    text=utt["text"],
                    start=utt.get("start", 0) / 1000.0,
                    end=utt.get("end", 0) / 1000.0,
                    speaker=utt.get("speaker"),
                )
            )
    elif "segments" in data:
        for seg in data["segments"]:
            segments.append(
                TranscriptSegment(
                    text=seg["text"],
                    start=seg.get("start", seg.get("start_time")),
                    end=seg.get("end", seg.get("end_time")),
                    speaker=seg.get("speaker"),
                )
            )
    else:
        msg = f"Unrecognized JSON transcript format. Keys: {list(data.keys())}"
        raise ValueError(msg)

    return segments


def decode_text(raw: bytes) -> str:
    """Decode text trying common encodings before replacing undecodable bytes."""
    for encoding in ("utf-8-sig", "cp1252"):
        try:
            return raw.decode(encoding)
        except UnicodeDecodeError:
            continue
    return raw.decode("utf-8", errors="replace")


def _parse_pdf(raw: bytes) -> DocumentContent:
    reader = PdfReader(io.BytesIO(raw))
    text = "\n".join(page.extract_text() or "" for page in reader.pages).strip()
    title: str | None = None
    created: datetime | None = None
    info = reader.metadata
    if info is not None:
        title = info.title or None
        try:
            created = info.creation_date
        except ValueError:
            # Malformed date strings in the PDF info dict
            created = None
    return DocumentContent(text=text, document_type="pdf", title=title, created=created)


def _parse_docx(raw: bytes) -> DocumentContent:
    doc = Document(io.BytesIO(raw))
    parts = [p.text for p in doc.paragraphs if p.text]
    for table in doc.tables:
        for row in table.rows:
            parts.append("\t".join(cell.text or "" for cell in row.cells))
    props = doc.core_properties
    return DocumentContent(
        text="\n".join(parts).strip(),
        document_type="docx",
        title=props.title or None,
        created=coerce_datetime(props.created),
    )


def _transcript_document(segments: list[TranscriptSegment], document_type: str) -> DocumentContent:
    return DocumentContent(
        text=" ".join(seg.text.strip() for seg in segments),
        document_type=document_type,
        segments=segments,
    )


def extract_document_text(raw: bytes, filename: str) -> DocumentContent:
    """Extract text (and title / creation date where available) from a document.

    Raises:
        ValueError: The file type is not supported.
    """
    ext = filename.rsplit(".", 1)[-1].lower() if "." in filename else ""
    if ext not in SUPPORTED_EXTENSIONS and raw[:4] == b"%PDF":
        ext = "pdf"

    if ext == "pdf":
        content = _parse_pdf(raw)
    elif ext == "docx":
        content = _parse_docx(raw)
    elif ext == "vtt":
        content = _transcript_document(parse_vtt(decode_text(raw)), "vtt")
    elif ext == "json":
        content = _transcript_document(parse_json(decode_text(raw)), "json")
    elif ext in TEXT_EXTENSIONS or not ext:
        content = DocumentContent(text=decode_text(raw), document_type=ext or "text")
    else:
        msg = f"Unsupported document type: {ext!r}. Supported: {sorted(SUPPORTED_EXTENSIONS)}"
        raise ValueError(msg)

    logger.info("Extracted %d chars from %s (%s)", len(content.text), filename, content.document_type)
    return content
