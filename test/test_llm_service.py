"""LLMService 响应校验测试（模型客户端使用替身）"""

import pytest

from article_forge.core.config import Settings
from article_forge.exceptions import LLMConfigurationError, LLMServiceError
from article_forge.services.llm_service import LLMService
from article_forge.utils.llm_tool import StreamCollectResult


class FakeClient:
    def __init__(self, result: StreamCollectResult):
        self.result = result
        self.calls = []

    async def stream_and_collect(self, messages, model, **kwargs):
        self.calls.append((messages, model, kwargs))
        return self.result


@pytest.fixture
def llm_settings() -> Settings:
    return Settings(openai_api_key="test-key", openai_model_name="stub-model", llm_max_retries=0)


def _service_with(monkeypatch, settings, result):
    client = FakeClient(result)
    monkeypatch.setattr(LLMService, "_create_client", staticmethod(lambda config: client))
    return LLMService(settings), client


class TestGetLLMResponse:
    @pytest.mark.asyncio
    async def test_returns_collected_content(self, monkeypatch, llm_settings):
        service, client = _service_with(monkeypatch, llm_settings, StreamCollectResult("NO", "stop", 1))

        answer = await service.get_llm_response("system", [{"role": "user", "content": "draft"}], max_tokens=8)

        assert answer == "NO"
        messages, model, kwargs = client.calls[0]
        assert model == "stub-model"
        assert [msg.role for msg in messages] == ["system", "user"]
        assert kwargs["max_tokens"] == 8

    @pytest.mark.asyncio
    async def test_truncated_answer_raises_by_default(self, monkeypatch, llm_settings):
        service, _ = _service_with(
            monkeypatch, llm_settings, StreamCollectResult("YES, the draft covers every", "length", 6)
        )
        with pytest.raises(LLMServiceError):
            await service.get_llm_response("system", [{"role": "user", "content": "draft"}])

    @pytest.mark.asyncio
    async def test_truncated_answer_allowed_when_requested(self, monkeypatch, llm_settings):
        service, _ = _service_with(
            monkeypatch, llm_settings, StreamCollectResult("YES, the draft covers every", "length", 6)
        )
        answer = await service.get_llm_response(
            "system", [{"role": "user", "content": "draft"}], allow_truncated=True
        )
        assert answer.startswith("YES")

    @pytest.mark.asyncio
    async def test_truncated_empty_answer_still_fails(self, monkeypatch, llm_settings):
        service, _ = _service_with(monkeypatch, llm_settings, StreamCollectResult("", "length", 3))
        with pytest.raises(LLMServiceError):
            await service.get_llm_response(
                "system", [{"role": "user", "content": "draft"}], allow_truncated=True
            )

    @pytest.mark.asyncio
    async def test_missing_api_key(self):
        service = LLMService(Settings(openai_api_key=None))
        with pytest.raises(LLMConfigurationError):
            await service.get_llm_response("system", [{"role": "user", "content": "draft"}])
