"""
Language generation client (Gemini via the Google Gen AI SDK).

Transport and parse failures are reported separately:
- `GeminiTextGenerator.generate_structured` raises GenerationUnavailableError
  when the service cannot be reached or times out.
- `extract_json_payload` raises StructuredOutputError when a reply was
  received but no JSON object could be recovered from it, including an
  empty reply.

Replies are requested as JSON (response_mime_type) but are still cleaned
before parsing: models occasionally wrap output in ``` fences, prepend a
sentence, or leave trailing commas.
"""

import json
import logging
import re
from typing import Any, Dict, Optional

from google import genai
from google.genai import types

from encounter.config import settings
from encounter.services.errors import GenerationUnavailableError, StructuredOutputError
from encounter.utils.logging import preview

logger = logging.getLogger(__name__)

# Initialize Gemini client (lazy initialization)
_gemini_client = None


def _get_gemini_client():
    """
    Lazy initialization of Gemini client.
    Uses the Google Gen AI SDK.
    """
    global _gemini_client

    if _gemini_client is not None:
        return _gemini_client

    api_key = settings.GOOGLE_API_KEY

    if not api_key:
        logger.warning(
            "GOOGLE_API_KEY not configured. Encounter generation will not work. "
            "Please set GOOGLE_API_KEY in your .env file."
        )
        return None

    try:
        _gemini_client = genai.Client(api_key=api_key)
        logger.info("Gemini client initialized successfully for encounter generation")
        return _gemini_client
    except Exception as e:
        logger.error(f"Failed to initialize Gemini client: {e}")
        return None


def _response_text(response: Any) -> Optional[str]:
    """Text of the first candidate part, falling back to response.text."""
    candidates = getattr(response, "candidates", None)
    if candidates:
        content = getattr(candidates[0], "content", None)
        parts = getattr(content, "parts", None) if content is not None else None
        if parts:
            for part in parts:
                text = getattr(part, "text", None)
                if isinstance(text, str) and text:
                    return text
    text = getattr(response, "text", None)
    return text if isinstance(text, str) else None


def extract_json_payload(text: Optional[str]) -> Dict[str, Any]:
    """
    Recover a JSON object from a model reply.

    Raises:
        StructuredOutputError: no JSON object could be parsed.
    """
    if not text or not text.strip():
        raise StructuredOutputError("empty reply")

    json_content = text.strip()

    # Prefer a fenced block anywhere in the reply
    fenced = re.search(r'```(?:json)?\s*([\s\S]*?)```', json_content, re.IGNORECASE)
    if fenced:
        json_content = fenced.group(1).strip()

    # Drop prose around the outermost object
    start = json_content.find('{')
    end = json_content.rfind('}')
    if start == -1 or end < start:
        raise StructuredOutputError(f"no JSON object in reply: {preview(text, 120)}")
    json_content = json_content[start:end + 1]

    # Remove trailing commas before } or ] (common LLM mistake)
    json_content = re.sub(r',(\s*[}\]])', r'\1', json_content)

    # Strip control characters that break json.loads (keeps \t \n \r)
    json_content = re.sub(r'[\x00-\x08\x0b\x0c\x0e-\x1f\x7f]', '', json_content)

    try:
        payload = json.loads(json_content)
    except json.JSONDecodeError as e:
        raise StructuredOutputError(f"invalid JSON: {e}") from e

    if not isinstance(payload, dict):
        raise StructuredOutputError("reply is not a JSON object")

    return payload


class GeminiTextGenerator:
    """Thin wrapper around `client.models.generate_content` returning raw text."""

    def __init__(
        self,
        model: Optional[str] = None,
        temperature: float = 0.4,
        timeout_seconds: Optional[float] = None,
        max_output_tokens: int = 4096,
    ):
        self.model = model or settings.GEMINI_MODEL
        self.temperature = temperature
        self.timeout_seconds = timeout_seconds if timeout_seconds is not None else settings.LLM_TIMEOUT_SECONDS
        self.max_output_tokens = max_output_tokens

    async def generate_structured(self, prompt: str) -> str:
        """
        Send a prompt and return the raw reply text.

        Raises:
            GenerationUnavailableError: client not configured, call failed or
                timed out. An empty reply is returned as "".
        """
        client = _get_gemini_client()
        if client is None:
            raise GenerationUnavailableError("Gemini client not configured")

        config = types.GenerateContentConfig(
            temperature=self.temperature,
            max_output_tokens=self.max_output_tokens,
            response_mime_type="application/json",
            http_options=types.HttpOptions(timeout=int(self.timeout_seconds * 1000)),
        )

        try:
            response = client.models.generate_content(
                model=self.model,
                contents=prompt,
                config=config,
            )
        except Exception as e:
            logger.error(f"Gemini call failed: {e}")
            raise GenerationUnavailableError("language generation call failed") from e

        text = _response_text(response)
        if not text:
            # Parsed (and retried) by the caller like any malformed reply
            logger.warning("Empty text in Gemini response")
            return ""

        return text
