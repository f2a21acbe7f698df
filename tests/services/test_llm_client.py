"""
Tests for the language generation client and JSON reply extraction.

The Gemini client is patched; no API calls are made.
"""

from unittest.mock import MagicMock, patch

import pytest

from encounter.services.errors import GenerationUnavailableError, StructuredOutputError
from encounter.services.llm_client import GeminiTextGenerator, extract_json_payload


class TestExtractJsonPayload:

    def test_plain_object(self):
        assert extract_json_payload('{"a": 1}') == {"a": 1}

    def test_fenced_block(self):
        assert extract_json_payload('```json\n{"a": 1}\n```') == {"a": 1}

    def test_leading_and_trailing_prose(self):
        text = 'Here are the results:\n{"a": [1, 2]}\nHope this helps!'
        assert extract_json_payload(text) == {"a": [1, 2]}

    def test_trailing_commas(self):
        assert extract_json_payload('{"a": [1, 2,], "b": 3,}') == {"a": [1, 2], "b": 3}

    def test_empty_reply(self):
        with pytest.raises(StructuredOutputError):
            extract_json_payload("")
        with pytest.raises(StructuredOutputError):
            extract_json_payload(None)

    def test_no_object(self):
        with pytest.raises(StructuredOutputError):
            extract_json_payload("I cannot help with that.")

    def test_invalid_json(self):
        with pytest.raises(StructuredOutputError):
            extract_json_payload('{"a": }')

    def test_control_characters_are_stripped(self):
        assert extract_json_payload('{"a": "x\x00y"}') == {"a": "xy"}


def _response_with_text(text):
    part = MagicMock()
    part.text = text
    candidate = MagicMock()
    candidate.content.parts = [part]
    response = MagicMock()
    response.candidates = [candidate]
    return response


class TestGeminiTextGenerator:

    @pytest.mark.asyncio
    async def test_returns_reply_text(self):
        client = MagicMock()
        client.models.generate_content.return_value = _response_with_text('{"ok": true}')

        with patch("encounter.services.llm_client._get_gemini_client", return_value=client):
            text = await GeminiTextGenerator(model="gemini-test").generate_structured("prompt")

        assert text == '{"ok": true}'
        kwargs = client.models.generate_content.call_args.kwargs
        assert kwargs["model"] == "gemini-test"
        assert kwargs["contents"] == "prompt"
        assert kwargs["config"].response_mime_type == "application/json"

    @pytest.mark.asyncio
    async def test_unconfigured_client(self):
        with patch("encounter.services.llm_client._get_gemini_client", return_value=None):
            with pytest.raises(GenerationUnavailableError):
                await GeminiTextGenerator().generate_structured("prompt")

    @pytest.mark.asyncio
    async def test_transport_failure(self):
        client = MagicMock()
        client.models.generate_content.side_effect = TimeoutError("deadline exceeded")

        with patch("encounter.services.llm_client._get_gemini_client", return_value=client):
            with pytest.raises(GenerationUnavailableError):
                await GeminiTextGenerator().generate_structured("prompt")

    @pytest.mark.asyncio
    async def test_empty_reply_is_a_parse_failure_not_a_transport_failure(self):
        client = MagicMock()
        response = MagicMock()
        response.candidates = []
        response.text = None
        client.models.generate_content.return_value = response

        with patch("encounter.services.llm_client._get_gemini_client", return_value=client):
            text = await GeminiTextGenerator().generate_structured("prompt")

        assert text == ""
        with pytest.raises(StructuredOutputError):
            extract_json_payload(text)
