"""进度广播测试"""

import pytest

from article_forge.schemas.events import PhaseEvent, WarningEvent, article_event_adapter
from article_forge.services.progress_broadcaster import (
    CallbackEventSink,
    EventSink,
    ProgressBroadcaster,
    QueueEventSink,
)

from stubs import EventRecorder


class FailingSink(EventSink):
    def __init__(self):
        self.closed = False

    async def send(self, event):
        raise ConnectionResetError("client went away")

    async def close(self):
        self.closed = True


class TestProgressBroadcaster:
    @pytest.mark.asyncio
    async def test_push_without_subscriber_is_noop(self, broadcaster):
        await broadcaster.push("nobody", PhaseEvent(phase="planning"))
        assert not broadcaster.has_subscriber("nobody")

    @pytest.mark.asyncio
    async def test_events_are_routed_per_session(self, broadcaster):
        first, second = EventRecorder(), EventRecorder()
        await broadcaster.register("s-1", CallbackEventSink(first.record))
        await broadcaster.register("s-2", CallbackEventSink(second.record))

        await broadcaster.push("s-1", PhaseEvent(phase="planning"))
        await broadcaster.push("s-2", WarningEvent(message="careful"))

        assert first.types == ["phase"]
        assert second.types == ["warning"]

    @pytest.mark.asyncio
    async def test_register_replaces_and_closes_previous_sink(self, broadcaster):
        old, new = QueueEventSink(), QueueEventSink()
        await broadcaster.register("s-1", old)
        await broadcaster.register("s-1", new)

        assert old.closed
        assert old.queue.get_nowait() is None

        await broadcaster.push("s-1", PhaseEvent(phase="planning"))
        assert new.queue.get_nowait().phase == "planning"

    @pytest.mark.asyncio
    async def test_failing_sink_is_removed(self, broadcaster):
        sink = FailingSink()
        await broadcaster.register("s-1", sink)

        await broadcaster.push("s-1", PhaseEvent(phase="planning"))

        assert not broadcaster.has_subscriber("s-1")
        assert sink.closed

    @pytest.mark.asyncio
    async def test_unregister_ignores_stale_sink(self, broadcaster):
        stale, current = QueueEventSink(), QueueEventSink()
        await broadcaster.register("s-1", stale)
        await broadcaster.register("s-1", current)

        await broadcaster.unregister("s-1", stale)
        assert broadcaster.has_subscriber("s-1")

        await broadcaster.unregister("s-1", current)
        assert not broadcaster.has_subscriber("s-1")
        assert current.closed

    @pytest.mark.asyncio
    async def test_close_all(self, broadcaster):
        sinks = [QueueEventSink(), QueueEventSink()]
        await broadcaster.register("s-1", sinks[0])
        await broadcaster.register("s-2", sinks[1])

        await broadcaster.close_all()

        assert all(sink.closed for sink in sinks)
        assert not broadcaster.has_subscriber("s-1")

    @pytest.mark.asyncio
    async def test_full_queue_drops_subscriber(self, broadcaster):
        sink = QueueEventSink(maxsize=1)
        await broadcaster.register("s-1", sink)

        await broadcaster.push("s-1", PhaseEvent(phase="planning"))
        await broadcaster.push("s-1", PhaseEvent(phase="title-intro"))

        assert not broadcaster.has_subscriber("s-1")


class TestEventSchema:
    def test_events_carry_discriminator(self):
        event = article_event_adapter.validate_python({"type": "warning", "message": "slow"})
        assert isinstance(event, WarningEvent)
        assert event.model_dump()["type"] == "warning"
