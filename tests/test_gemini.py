from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from holoframe import gemini
from holoframe.errors import ConfigurationError, ProviderError, RequestValidationError


class TestGenerateText:
    @pytest.mark.asyncio
    async def test_requires_prompt(self):
        with pytest.raises(RequestValidationError):
            await gemini.generate_text("")

    @pytest.mark.asyncio
    async def test_requires_api_key(self, monkeypatch):
        monkeypatch.setattr(gemini, "GEMINI_API_KEY", "")
        with pytest.raises(ConfigurationError):
            await gemini.generate_text("idea")

    @pytest.mark.asyncio
    async def test_returns_text(self, monkeypatch):
        monkeypatch.setattr(gemini, "GEMINI_API_KEY", "test-key")
        monkeypatch.setattr(gemini, "GEMINI_MODEL", "gemini-1.5-flash")
        monkeypatch.setattr(gemini, "_configured_key", None)
        model = MagicMock()
        model.generate_content_async = AsyncMock(return_value=MagicMock(text="A glowing fox"))

        with patch.object(gemini.genai, "configure") as configure, \
             patch.object(gemini.genai, "GenerativeModel", return_value=model) as factory:
            assert await gemini.generate_text("idea") == "A glowing fox"

        configure.assert_called_with(api_key="test-key")
        factory.assert_called_once_with(model_name="gemini-1.5-flash")
        model.generate_content_async.assert_awaited_once_with("idea")

    @pytest.mark.asyncio
    async def test_upstream_failure(self, monkeypatch):
        monkeypatch.setattr(gemini, "GEMINI_API_KEY", "test-key")
        model = MagicMock()
        model.generate_content_async = AsyncMock(side_effect=RuntimeError("quota exceeded"))

        with patch.object(gemini.genai, "configure"), \
             patch.object(gemini.genai, "GenerativeModel", return_value=model):
            with pytest.raises(ProviderError) as exc_info:
                await gemini.generate_text("idea")
        assert exc_info.value.detail == "quota exceeded"
