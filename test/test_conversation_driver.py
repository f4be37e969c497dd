"""对话驱动器与 OpenAI 提供方测试"""

import asyncio

import pytest

from article_forge.exceptions import ConversationBusyError, LLMServiceError
from article_forge.services.article_generation.conversation import ConversationDriver
from article_forge.services.article_generation.provider import (
    ConversationProvider,
    ConversationTurn,
    OpenAIConversationProvider,
    ProviderChunk,
)

from stubs import ScriptedProvider


class OpaqueTurnProvider(ConversationProvider):
    """模拟提供方在最终历史中追加隐藏轮次"""

    async def stream(self, history):
        yield ProviderChunk.text_delta("visible")
        yield ProviderChunk.final(
            [
                *history,
                ConversationTurn(role="assistant", content="thinking...", opaque=True, payload={"sig": "abc"}),
                ConversationTurn(role="assistant", content="visible"),
            ],
            "visible",
        )


class TruncatedProvider(ConversationProvider):
    """流在完成信号之前结束"""

    async def stream(self, history):
        yield ProviderChunk.text_delta("partial")


class GatedProvider(ConversationProvider):
    """第一个片段之后等待外部放行，用于构造并发场景"""

    def __init__(self):
        self.release = asyncio.Event()
        self.started = asyncio.Event()

    async def stream(self, history):
        yield ProviderChunk.text_delta("a")
        self.started.set()
        await self.release.wait()
        yield ProviderChunk.final([*history, ConversationTurn(role="assistant", content="a")], "a")


class TestConversationDriver:
    @pytest.mark.asyncio
    async def test_history_grows_by_user_and_assistant_turns(self):
        driver = ConversationDriver("s-1", ScriptedProvider(["first reply", "second reply"]))

        assert await driver.send("hello") == "first reply"
        assert await driver.send("again") == "second reply"

        assert [(turn.role, turn.content) for turn in driver.history] == [
            ("user", "hello"),
            ("assistant", "first reply"),
            ("user", "again"),
            ("assistant", "second reply"),
        ]

    @pytest.mark.asyncio
    async def test_history_only_replaced_after_final_chunk(self):
        driver = ConversationDriver("s-1", ScriptedProvider(["abcdefgh"], chunk_size=2))
        observed = []

        async for delta in driver.stream("go"):
            observed.append((delta, len(driver.history)))

        assert [delta for delta, _ in observed] == ["ab", "cd", "ef", "gh"]
        assert all(length == 0 for _, length in observed)
        assert len(driver.history) == 2

    @pytest.mark.asyncio
    async def test_opaque_turns_are_preserved(self):
        driver = ConversationDriver("s-1", OpaqueTurnProvider())
        await driver.send("hi")

        opaque = [turn for turn in driver.history if turn.opaque]
        assert len(opaque) == 1
        assert opaque[0].payload == {"sig": "abc"}
        assert driver.history[-1].content == "visible"

    @pytest.mark.asyncio
    async def test_on_delta_receives_every_fragment(self):
        driver = ConversationDriver("s-1", ScriptedProvider(["0123456789"], chunk_size=3))
        seen = []

        async def collect(delta):
            seen.append(delta)

        text = await driver.send("go", on_delta=collect)
        assert "".join(seen) == text == "0123456789"

    @pytest.mark.asyncio
    async def test_missing_final_chunk_leaves_history_unchanged(self):
        driver = ConversationDriver(
            "s-1",
            TruncatedProvider(),
            history=[ConversationTurn(role="user", content="seed")],
        )
        with pytest.raises(LLMServiceError):
            await driver.send("go")
        assert [turn.content for turn in driver.history] == ["seed"]
        assert not driver.busy

    @pytest.mark.asyncio
    async def test_provider_error_propagates(self):
        driver = ConversationDriver("s-1", ScriptedProvider([RuntimeError("upstream down")]))
        with pytest.raises(RuntimeError, match="upstream down"):
            await driver.send("go")
        assert driver.history == ()

    @pytest.mark.asyncio
    async def test_second_request_while_busy_is_rejected(self):
        provider = GatedProvider()
        driver = ConversationDriver("s-1", provider)

        first = asyncio.create_task(driver.send("one"))
        await provider.started.wait()
        assert driver.busy

        with pytest.raises(ConversationBusyError):
            await driver.send("two")

        provider.release.set()
        assert await first == "a"
        assert not driver.busy
        assert [turn.content for turn in driver.history] == ["one", "a"]


class FakeLLMService:
    def __init__(self, chunks):
        self.chunks = chunks
        self.calls = []

    async def stream_chat(self, messages, **kwargs):
        self.calls.append((messages, kwargs))
        for chunk in self.chunks:
            yield chunk


class TestOpenAIConversationProvider:
    @pytest.mark.asyncio
    async def test_reasoning_is_kept_as_opaque_turn_and_not_resent(self):
        service = FakeLLMService([
            {"reasoning_content": "let me think", "content": None, "finish_reason": None},
            {"content": "Hel", "finish_reason": None},
            {"content": "lo", "finish_reason": "stop"},
        ])
        provider = OpenAIConversationProvider(service, temperature=0.7)
        driver = ConversationDriver("s-1", provider)

        assert await driver.send("hi") == "Hello"

        roles = [(turn.role, turn.opaque) for turn in driver.history]
        assert roles == [("user", False), ("assistant", True), ("assistant", False)]
        assert driver.history[1].payload == {"kind": "reasoning"}
        assert driver.history[2].payload == {"finish_reason": "stop"}

        service.chunks = [{"content": "Again", "finish_reason": "stop"}]
        await driver.send("more")
        resent, kwargs = service.calls[-1]
        assert resent == [
            {"role": "user", "content": "hi"},
            {"role": "assistant", "content": "Hello"},
            {"role": "user", "content": "more"},
        ]
        assert kwargs["temperature"] == 0.7

    @pytest.mark.asyncio
    async def test_truncated_output_still_finalizes(self):
        service = FakeLLMService([{"content": "cut", "finish_reason": "length"}])
        chunks = [chunk async for chunk in OpenAIConversationProvider(service).stream([])]
        assert chunks[-1].done
        assert chunks[-1].text == "cut"
