"""Claude-powered answer generation with source attribution."""

from __future__ import annotations

from typing import Any

from recall.llm import AnthropicCompleter
from recall.retrieval.search import SearchResult

NO_CONTEXT_ANSWER = "I couldn't find anything in your memory related to that question."

SYSTEM_PROMPT = (
    "You are a personal memory assistant. Answer questions based on excerpts "
    "from the user's own recordings, documents and notes.\n\n"
    "Rules:\n"
    "- Only answer based on the provided context. If the answer isn't "
    "in the context, say so.\n"
    "- Cite your sources using [Source N] notation.\n"
    "- Mention who said something and when, when it matters.\n"
    "- Be concise and direct."
)


def source_label(index: int, payload: dict[str, Any]) -> str:
    """``[Source N] name (date, modality) speaker:`` header for one passage."""
    name = payload.get("source_name") or "Untitled"
    date = payload.get("source_date") or payload.get("created_at")
    details = [str(date)[:10]] if date else []
    if payload.get("modality"):
        details.append(str(payload["modality"]))
    label = f"[Source {index}] {name}"
    if details:
        label += f" ({', '.join(details)})"
    speaker = payload.get("speaker")
    if speaker:
        label += f" {speaker}"
    return label


def format_context(results: list[SearchResult]) -> str:
    parts = [f"{source_label(i + 1, r.payload)}: {r.payload.get('text', '')}" for i, r in enumerate(results)]
    return "\n\n".join(parts)


async def generate_answer(
    completer: AnthropicCompleter,
    question: str,
    results: list[SearchResult],
) -> dict[str, Any]:
    """Generate an answer using Claude with source attribution.

    Args:
        completer: Completion client for the answering model.
        question: The user's question.
        results: Reranked passages to answer from.

    Returns:
        Dictionary with answer, model, and usage info.
    """
    if not results:
        return {"answer": NO_CONTEXT_ANSWER, "model": None, "usage": None}

    prompt = f"Context from your memory:\n\n{format_context(results)}\n\nQuestion: {question}"
    text, response = await completer.complete_text(SYSTEM_PROMPT, prompt, max_tokens=1024)
    return {
        "answer": text,
        "model": response.model,
        "usage": {
            "input_tokens": response.usage.input_tokens,
            "output_tokens": response.usage.output_tokens,
        },
    }
