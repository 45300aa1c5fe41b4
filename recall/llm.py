"""Claude-backed completion client used for scoring, labeling and extraction."""

from __future__ import annotations

import asyncio
import json
from typing import Any

from anthropic import AsyncAnthropic
from anthropic.types import TextBlock

RESPONSE_TOOL_NAME = "submit_response"


class AnthropicCompleter:
    """Thin wrapper around the Anthropic Messages API.

    Structured output is obtained by forcing a single tool call whose input
    schema is the requested JSON shape.
    """

    def __init__(
        self,
        client: AsyncAnthropic,
        model: str,
        timeout: float = 60.0,
        max_tokens: int = 2048,
    ) -> None:
        self._client = client
        self._model = model
        self._timeout = timeout
        self._max_tokens = max_tokens

    async def complete_json(
        self,
        system: str,
        prompt: str,
        schema: dict[str, Any],
        temperature: float = 0.1,
    ) -> dict[str, Any]:
        """Return the tool input Claude produced for *schema*.

        Raises:
            ValueError: The response contained no usable tool call.
            asyncio.TimeoutError: The call exceeded the configured timeout.
        """
        tool = {
            "name": RESPONSE_TOOL_NAME,
            "description": "Submit the structured response.",
            "input_schema": schema,
        }
        response = await asyncio.wait_for(
            self._client.messages.create(
                model=self._model,
                max_tokens=self._max_tokens,
                system=system,
                temperature=temperature,
                tools=[tool],
                tool_choice={"type": "tool", "name": RESPONSE_TOOL_NAME},
                messages=[{"role": "user", "content": prompt}],
            ),
            timeout=self._timeout,
        )
        return parse_tool_input(response)

    async def complete_text(
        self,
        system: str,
        prompt: str,
        max_tokens: int = 1500,
        temperature: float = 0.7,
    ) -> tuple[str, Any]:
        """Return ``(text, raw_response)`` for a plain-text completion."""
        response = await asyncio.wait_for(
            self._client.messages.create(
                model=self._model,
                max_tokens=max_tokens,
                system=system,
                temperature=temperature,
                messages=[{"role": "user", "content": prompt}],
            ),
            timeout=self._timeout,
        )
        # We always request plain text so the first block should be TextBlock.
        block = response.content[0]
        if not isinstance(block, TextBlock):
            raise ValueError(f"Expected TextBlock from Claude, got {type(block).__name__}")
        return block.text, response


def parse_tool_input(response: Any) -> dict[str, Any]:
    """Extract the forced tool call's input from a Claude response."""
    for block in response.content:
        if block.type != "tool_use" or block.name != RESPONSE_TOOL_NAME:
            continue
        data = block.input
        if isinstance(data, str):
            data = json.loads(data)
        if not isinstance(data, dict):
            raise ValueError(f"Tool input is not an object: {type(data).__name__}")
        return data
    raise ValueError("No tool_use block in Claude response")
