"""Claude API client for the autopilot stages."""

import json
import logging
import re

import anthropic

from core.errors import ClientError, SchemaParseError
from core.prompts import build_structured_system_prompt

logger = logging.getLogger(__name__)

_FENCE = "```"


def get_client(settings):
    """Return an Anthropic client for single-shot calls (no SDK retries)."""
    return anthropic.Anthropic(
        api_key=settings.api_key,
        timeout=settings.timeout,
        max_retries=0,
    )


class ModelClient:
    """One request, one response. No retries, no streaming."""

    def __init__(self, settings, client=None):
        self.settings = settings
        self._client = client or get_client(settings)

    def complete(self, prompt):
        """Unconstrained generation; returns the response text."""
        return self._call(prompt)

    def complete_structured(self, prompt, schema):
        """Generation constrained to JSON matching `schema`.

        Returns the raw text. Parsing and validation are left to the caller.
        """
        return self._call(prompt, system=build_structured_system_prompt(schema))

    def _call(self, prompt, system=None):
        kwargs = {
            "model": self.settings.model,
            "max_tokens": self.settings.max_tokens,
            "messages": [{"role": "user", "content": prompt}],
        }
        if system:
            kwargs["system"] = system

        logger.info("[LLM] start model=%s chars=%d structured=%s",
                    self.settings.model, len(prompt), bool(system))
        try:
            response = self._client.messages.create(**kwargs)
        except anthropic.APIError as e:
            logger.error("[LLM] call failed: %s", e)
            raise ClientError(str(e) or type(e).__name__) from e

        text = "".join(
            block.text for block in response.content
            if getattr(block, "type", None) == "text"
        )
        if response.stop_reason == "max_tokens":
            logger.warning("[LLM] response hit the token limit and may be truncated")
        if not text.strip():
            raise ClientError("Model returned empty content.")

        logger.info("[LLM] done chars=%d", len(text))
        return text


def strip_code_fence(text):
    """Remove a fence wrapping the whole response.

    If the text starts and ends with ``` the first line (fence plus any
    language tag) and the last line are dropped. Anything else is returned
    unchanged.
    """
    stripped = text.strip()
    if not (stripped.startswith(_FENCE) and stripped.endswith(_FENCE)):
        return text
    lines = stripped.split("\n")
    return "\n".join(lines[1:-1])


def parse_json_response(raw_text):
    """Parse a structured response, tolerating a surrounding ```json fence."""
    cleaned = raw_text.strip()
    if cleaned.startswith(_FENCE):
        cleaned = re.sub(r"^```\w*\n?", "", cleaned)
        cleaned = re.sub(r"\n?```$", "", cleaned)
    try:
        return json.loads(cleaned)
    except json.JSONDecodeError as e:
        raise SchemaParseError(
            f"Received invalid JSON from the API: {e.msg} (line {e.lineno}, column {e.colno})",
            raw_text=raw_text,
        ) from e
