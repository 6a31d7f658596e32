"""Tests for the Gemini image client with the SDK model mocked."""

from types import SimpleNamespace
from unittest.mock import AsyncMock, patch

import pytest
from google.api_core import exceptions as google_exceptions

from spriteflow.gemini import GeminiImageClient
from spriteflow.pipeline.errors import RateLimited, TransportError
from spriteflow.pipeline.models import ImageRef


def sdk_response(*parts):
    return SimpleNamespace(candidates=[SimpleNamespace(content=SimpleNamespace(parts=list(parts)))])


def image_part(data, mime_type="image/png"):
    return SimpleNamespace(inline_data=SimpleNamespace(mime_type=mime_type, data=data), text="")


def text_part(text):
    return SimpleNamespace(inline_data=None, text=text)


@pytest.fixture
def model():
    with patch("spriteflow.gemini.genai") as genai:
        instance = genai.GenerativeModel.return_value
        instance.generate_content_async = AsyncMock()
        yield instance


class TestGeminiImageClient:
    @pytest.mark.asyncio
    async def test_prompt_and_references_sent_as_parts(self, model):
        model.generate_content_async.return_value = sdk_response(text_part("ok"), image_part(b"img"))
        client = GeminiImageClient(api_key="key")

        refs = [ImageRef(mime_type="image/jpeg", data=b"ref")]
        response = await client.generate_image("draw", refs)

        model.generate_content_async.assert_awaited_once_with(
            ["draw", {"mime_type": "image/jpeg", "data": b"ref"}]
        )
        assert [p.text for p in response.parts] == ["ok", None]
        assert response.parts[1].data == b"img"
        assert response.parts[1].mime_type == "image/png"

    @pytest.mark.asyncio
    async def test_no_candidates(self, model):
        model.generate_content_async.return_value = SimpleNamespace(candidates=[])
        response = await GeminiImageClient(api_key="key").generate_image("draw", [])
        assert response.parts == []

    @pytest.mark.asyncio
    async def test_quota_is_rate_limited(self, model):
        model.generate_content_async.side_effect = google_exceptions.ResourceExhausted("quota")
        with pytest.raises(RateLimited) as exc:
            await GeminiImageClient(api_key="key").generate_image("draw", [])
        assert exc.value.status_code == 429

    @pytest.mark.asyncio
    async def test_other_api_error(self, model):
        model.generate_content_async.side_effect = google_exceptions.InternalServerError("boom")
        with pytest.raises(TransportError):
            await GeminiImageClient(api_key="key").generate_image("draw", [])
