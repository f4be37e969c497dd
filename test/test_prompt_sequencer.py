"""提示词编排状态机测试"""

import pytest

from article_forge.exceptions import InvalidStateTransitionError
from article_forge.services.article_generation.conversation import ConversationDriver
from article_forge.services.article_generation.evaluator import Verdict
from article_forge.services.article_generation.prompts import CONTINUE_PROMPT, TITLE_INTRO_PROMPT
from article_forge.services.article_generation.sequencer import (
    Outcome,
    Phase,
    PromptSequencer,
    next_phase,
)
from article_forge.services.progress_broadcaster import CallbackEventSink

from stubs import EvaluatorFactoryStub, EventRecorder, ScriptedProvider, SENTINEL, StubEvaluator, section

OUTLINE = "Write about how tides work."
PLAN = "1. Title\n2. Gravity\n3. Orbits\nAbout 1500 words."


async def run_sequencer(store, broadcaster, provider, evaluator=None, **limits):
    record = await store.create("doc-1", OUTLINE)
    await store.claim_for_generation(record.id)
    recorder = EventRecorder()
    await broadcaster.register(record.id, CallbackEventSink(recorder.record))
    factory = EvaluatorFactoryStub(evaluator or StubEvaluator())
    sequencer = PromptSequencer(
        record.id,
        record.outline,
        driver=ConversationDriver(record.id, provider),
        evaluator_factory=factory,
        store=store,
        broadcaster=broadcaster,
        **limits,
    )
    result = await sequencer.run()
    return record, result, factory, recorder


class TestTransitions:
    @pytest.mark.parametrize(
        "phase, outcome, expected",
        [
            (Phase.PLANNING, Outcome.PLANNED, Phase.TITLE_INTRO),
            (Phase.TITLE_INTRO, Outcome.SECTION_ADDED, Phase.WRITING_LOOP),
            (Phase.TITLE_INTRO, Outcome.SENTINEL, Phase.COMPLETED),
            (Phase.WRITING_LOOP, Outcome.SECTION_ADDED, Phase.WRITING_LOOP),
            (Phase.WRITING_LOOP, Outcome.EVALUATE, Phase.CHECKING_COMPLETION),
            (Phase.WRITING_LOOP, Outcome.CAP_REACHED, Phase.COMPLETED),
            (Phase.CHECKING_COMPLETION, Outcome.VERDICT_NO, Phase.WRITING_LOOP),
            (Phase.CHECKING_COMPLETION, Outcome.VERDICT_YES, Phase.COMPLETED),
        ],
    )
    def test_defined_transitions(self, phase, outcome, expected):
        assert next_phase(phase, outcome) is expected

    @pytest.mark.parametrize(
        "phase, outcome",
        [
            (Phase.PLANNING, Outcome.SECTION_ADDED),
            (Phase.TITLE_INTRO, Outcome.EVALUATE),
            (Phase.COMPLETED, Outcome.PLANNED),
            (Phase.CHECKING_COMPLETION, Outcome.SENTINEL),
        ],
    )
    def test_undefined_transition_raises(self, phase, outcome):
        with pytest.raises(InvalidStateTransitionError):
            next_phase(phase, outcome)


class TestPromptSequencer:
    @pytest.mark.asyncio
    async def test_sentinel_completes_generation(self, store, broadcaster):
        provider = ScriptedProvider([PLAN, section("# Tides\n\nIntro."), section("Gravity pulls."), SENTINEL])
        record, result, _, recorder = await run_sequencer(store, broadcaster, provider)

        assert result.completion_reason == "sentinel"
        assert result.article == "# Tides\n\nIntro.\n\nGravity pulls."
        assert result.loop_iterations == 2
        assert provider.user_prompts[0].endswith(OUTLINE)
        assert provider.user_prompts[1] == TITLE_INTRO_PROMPT
        assert provider.user_prompts[2:] == [CONTINUE_PROMPT, CONTINUE_PROMPT]

        phases = [event.phase for event in recorder.of_type("phase")]
        assert phases == ["planning", "title-intro", "writing-loop", "completed"]
        assert len(recorder.of_type("section-completed")) == 2
        assert recorder.of_type("text-delta")

        stored = await store.get(record.id)
        assert stored.completed_sections == 2
        assert stored.session_metadata["phase"] == "completed"
        assert stored.status == "orchestrating"

    @pytest.mark.asyncio
    async def test_sentinel_during_title_intro(self, store, broadcaster):
        provider = ScriptedProvider([PLAN, SENTINEL])
        _, result, factory, _ = await run_sequencer(store, broadcaster, provider)

        assert result.completion_reason == "sentinel"
        assert result.sections == []
        assert result.loop_iterations == 0
        assert factory.plans == []

    @pytest.mark.asyncio
    async def test_cap_forces_completion_when_evaluator_never_agrees(self, store, broadcaster):
        evaluator = StubEvaluator()
        provider = ScriptedProvider([PLAN, section("Title")], default=section("More text."))
        _, result, factory, _ = await run_sequencer(
            store, broadcaster, provider, evaluator,
            max_sections=40, min_sections=5, evaluation_ratio=0.6,
        )

        assert result.completion_reason == "max-sections"
        assert result.loop_iterations == 40
        assert len(provider.calls) == 42
        assert len(result.sections) == 41
        # 达到 5 节后，每次继续写作之前评估一次
        assert len(evaluator.drafts) == 36
        assert factory.plans == [PLAN]

    @pytest.mark.asyncio
    async def test_evaluator_yes_completes(self, store, broadcaster):
        evaluator = StubEvaluator([Verdict.NO, Verdict.YES])
        provider = ScriptedProvider([PLAN, section("Title")], default=section("Body."))
        _, result, _, recorder = await run_sequencer(
            store, broadcaster, provider, evaluator,
            max_sections=40, min_sections=5, evaluation_ratio=0.6,
        )

        assert result.completion_reason == "evaluator"
        assert result.loop_iterations == 5
        assert len(result.sections) == 6
        assert evaluator.drafts[-1] == result.article
        assert recorder.of_type("phase")[-1].phase == "completed"

    @pytest.mark.asyncio
    async def test_evaluator_failure_is_treated_as_not_complete(self, store, broadcaster):
        evaluator = StubEvaluator(error=TimeoutError("evaluation timed out"))
        provider = ScriptedProvider([PLAN, section("Title")], default=section("Body."))
        _, result, _, recorder = await run_sequencer(
            store, broadcaster, provider, evaluator,
            max_sections=4, min_sections=2, evaluation_ratio=0.6,
        )

        assert result.completion_reason == "max-sections"
        assert result.loop_iterations == 4
        warnings = [event.message for event in recorder.of_type("warning")]
        assert warnings
        assert all("TimeoutError" in message for message in warnings)

    @pytest.mark.asyncio
    async def test_prose_without_markers_is_kept(self, store, broadcaster):
        provider = ScriptedProvider([PLAN, section("Title"), "Plain prose paragraph.", SENTINEL])
        _, result, _, recorder = await run_sequencer(store, broadcaster, provider)

        assert [s.method.value for s in result.sections] == ["delimited", "fallback-raw"]
        assert result.sections[1].content == "Plain prose paragraph."
        assert recorder.of_type("warning") == []

    @pytest.mark.asyncio
    async def test_malformed_markers_fall_back_to_raw_with_warning(self, store, broadcaster):
        provider = ScriptedProvider([PLAN, section("Title"), "  <<<START>>> half a section  ", SENTINEL])
        _, result, _, recorder = await run_sequencer(store, broadcaster, provider)

        assert result.sections[1].content == "<<<START>>> half a section"
        assert result.sections[1].method.value == "fallback-raw"
        assert len(recorder.of_type("warning")) == 1

    @pytest.mark.asyncio
    async def test_empty_reply_adds_nothing_but_counts(self, store, broadcaster):
        provider = ScriptedProvider([PLAN, section("Title"), "", section("Body."), SENTINEL])
        record, result, _, recorder = await run_sequencer(store, broadcaster, provider)

        assert [s.content for s in result.sections] == ["Title", "Body."]
        assert result.loop_iterations == 3
        assert len(recorder.of_type("warning")) == 1
        stored = await store.get(record.id)
        assert stored.session_metadata["loop_iterations"] == 2

    @pytest.mark.asyncio
    async def test_empty_delimited_section_never_leaks_markers(self, store, broadcaster):
        provider = ScriptedProvider([PLAN, section("A"), "<<<START>>>\n<<<END>>>", SENTINEL])
        _, result, _, recorder = await run_sequencer(store, broadcaster, provider)

        assert [s.content for s in result.sections] == ["A"]
        assert result.article == "A"
        assert "<<<" not in result.article
        assert result.loop_iterations == 2
        assert len(recorder.of_type("warning")) == 1

    @pytest.mark.asyncio
    async def test_unparseable_title_is_skipped(self, store, broadcaster):
        provider = ScriptedProvider([PLAN, "<<<END>>> oops", section("Body."), SENTINEL])
        _, result, _, recorder = await run_sequencer(store, broadcaster, provider)

        assert [s.content for s in result.sections] == ["Body."]
        assert result.sections[0].index == 1
        assert len(recorder.of_type("warning")) == 1

    @pytest.mark.asyncio
    async def test_plan_estimate_is_persisted(self, store, broadcaster):
        plan = "\n".join(f"{index}. Part {index}" for index in range(1, 9))
        provider = ScriptedProvider([plan, section("Title"), SENTINEL])
        record, result, _, _ = await run_sequencer(store, broadcaster, provider, min_sections=5)

        assert result.estimated_sections == 8
        stored = await store.get(record.id)
        assert stored.total_sections == 8
        assert stored.session_metadata["estimated_sections"] == 8

    @pytest.mark.asyncio
    async def test_plan_estimate_never_below_minimum(self, store, broadcaster):
        provider = ScriptedProvider(["I will just write it.", SENTINEL])
        _, result, _, _ = await run_sequencer(store, broadcaster, provider, min_sections=5)
        assert result.estimated_sections == 5
