"""Unit tests for editor.py."""

import asyncio
import json
from unittest.mock import AsyncMock, Mock

import pytest

from promptmaster import prompts
from promptmaster.config import Language
from promptmaster.editor import EditorEngine, ProcessingKind, Selection
from promptmaster.errors import ConfigurationError, ProviderError
from promptmaster.models import Pillar, Suggestion

PROMPT = "You are a helpful assistant. Answer briefly."
CONTEXT = "[AI Consultant]: What do you want?\n\n[User]: A customer support bot"
LOCK_INSTRUCTION = 'MUST remain exactly as they are: "Answer briefly."'


def make_engine(service, prompt=PROMPT, **kwargs) -> EditorEngine:
    kwargs.setdefault("mentor_delay", 0)
    return EditorEngine(service, CONTEXT, Language.ENGLISH, prompt, **kwargs)


def critique(*pairs) -> str:
    return json.dumps([
        {"originalText": original, "suggestedText": suggested, "reason": "clearer", "type": "clarity"}
        for original, suggested in pairs
    ])


def stub_service(**methods) -> Mock:
    """Service double whose coroutine methods are AsyncMocks."""
    service = Mock()
    service.get_mentor_feedback = AsyncMock(return_value=None)
    service.classify_prompt_segment = AsyncMock(return_value=Pillar.OTHER)
    for name, value in methods.items():
        setattr(service, name, value)
    return service


class TestInitialState:
    """Tests for a fresh editor."""

    def test_defaults(self, service):
        """Test the editor starts idle with the analyzing placeholder."""
        engine = make_engine(service)

        assert engine.prompt == PROMPT
        assert engine.feedback == prompts.message("analyzing", Language.ENGLISH)
        assert engine.suggestions == ()
        assert engine.locked_segments == ()
        assert not engine.is_processing
        assert engine.processing_kind is None
        assert not engine.show_undo

    def test_no_loop_schedules_nothing(self, service):
        """Test edits outside an event loop schedule no background work."""
        engine = make_engine(service)

        engine.update_prompt("A new prompt that is long enough")
        engine.add_lock("new prompt")

        assert engine.prompt == "A new prompt that is long enough"
        assert engine.locked_segments[0].pillar == Pillar.PENDING

    def test_listeners_notified(self, service):
        """Test listeners run after state changes."""
        engine = make_engine(service)
        listener = Mock()
        engine.add_listener(listener)

        engine.update_prompt("changed")

        listener.assert_called_with(engine)


class TestDeepScan:
    """Tests for critique scans."""

    @pytest.mark.asyncio
    async def test_valid_suggestions_kept(self, service, fake_provider):
        """Test suggestions matching the prompt are stored."""
        fake_provider.script("fake-critique", critique(("helpful", "friendly"), ("not in prompt", "x")))
        engine = make_engine(service)

        assert await engine.deep_scan() is True

        assert [s.original_text for s in engine.suggestions] == ["helpful"]
        assert all(s.original_text in engine.prompt for s in engine.suggestions)
        assert not engine.is_processing
        await engine.join()

    @pytest.mark.asyncio
    async def test_stale_suggestion_dropped(self, service, fake_provider):
        """Test suggestions are checked against the prompt when they arrive."""
        engine = make_engine(service)

        def edit_while_scanning(request):
            engine.update_prompt("You are an assistant. Answer briefly.")
            return critique(("helpful", "friendly"))

        fake_provider.script("fake-critique", edit_while_scanning)

        await engine.deep_scan()

        assert engine.suggestions == ()
        await engine.join()

    @pytest.mark.asyncio
    async def test_scan_replaces_previous_set(self, service, fake_provider):
        """Test a new scan overwrites the old suggestions."""
        fake_provider.script(
            "fake-critique",
            critique(("helpful", "friendly")),
            critique(("Answer briefly.", "Keep answers under 50 words.")),
        )
        engine = make_engine(service)

        await engine.deep_scan()
        await engine.deep_scan()

        assert [s.original_text for s in engine.suggestions] == ["Answer briefly."]
        await engine.join()

    @pytest.mark.asyncio
    async def test_failed_scan_leaves_no_suggestions(self, service, fake_provider):
        """Test an unusable critique ends with an empty set."""
        fake_provider.script("fake-critique", critique(("helpful", "friendly")), "not json")
        engine = make_engine(service)
        await engine.deep_scan()

        await engine.deep_scan()

        assert engine.suggestions == ()
        await engine.join()


class TestSuggestions:
    """Tests for accepting and dismissing suggestions."""

    def engine_with(self, service, *suggestions) -> EditorEngine:
        engine = make_engine(service)
        engine._suggestions = list(suggestions)
        return engine

    def test_apply_replaces_span(self, service):
        """Test applying replaces exactly the original span."""
        suggestion = Suggestion(original_text="helpful", suggested_text="patient")
        other = Suggestion(original_text="briefly", suggested_text="concisely")
        engine = self.engine_with(service, suggestion, other)
        engine.set_active_suggestion(suggestion.id)

        assert engine.apply_suggestion(suggestion.id) is True

        assert engine.prompt == "You are a patient assistant. Answer briefly."
        assert engine.suggestions == (other,)
        assert engine.active_suggestion_id is None

    def test_apply_first_occurrence_only(self, service):
        """Test only the first occurrence is replaced."""
        suggestion = Suggestion(original_text="a", suggested_text="the")
        engine = make_engine(service, prompt="a cat and a dog")
        engine._suggestions = [suggestion]

        engine.apply_suggestion(suggestion.id)

        assert engine.prompt == "the cat and a dog"

    def test_apply_unknown_id(self, service):
        """Test unknown ids change nothing."""
        engine = make_engine(service)

        assert engine.apply_suggestion("missing") is False
        assert engine.prompt == PROMPT

    def test_dismiss_keeps_prompt(self, service):
        """Test dismissing removes the suggestion only."""
        suggestion = Suggestion(original_text="helpful", suggested_text="patient")
        engine = self.engine_with(service, suggestion)

        engine.dismiss_suggestion(suggestion.id)

        assert engine.suggestions == ()
        assert engine.prompt == PROMPT


class TestFeedback:
    """Tests for mentor tips, applying them and undo."""

    async def engine_with_tip(self, service, fake_provider, tip="Name the persona explicitly.") -> EditorEngine:
        fake_provider.script("fake-mentor", tip)
        engine = make_engine(service)
        engine.start()
        await engine.join()
        assert engine.feedback == tip
        return engine

    @pytest.mark.asyncio
    async def test_apply_feedback_and_undo_once(self, service, fake_provider):
        """Test undo restores the pre-apply prompt exactly once."""
        engine = await self.engine_with_tip(service, fake_provider)
        fake_provider.script("fake-feedback", "You are a support agent. Answer briefly.")

        assert await engine.apply_feedback() is True
        assert engine.prompt == "You are a support agent. Answer briefly."
        assert engine.show_undo

        assert engine.undo() is True
        assert engine.prompt == PROMPT
        assert not engine.show_undo

        assert engine.undo() is False
        assert engine.prompt == PROMPT
        await engine.join()

    @pytest.mark.asyncio
    async def test_apply_feedback_sends_tip_and_locks(self, service, fake_provider):
        """Test the tip and locked text reach the feedback model."""
        engine = await self.engine_with_tip(service, fake_provider)
        engine.add_lock("Answer briefly.")
        fake_provider.script("fake-feedback", "You are a support agent. Answer briefly.")

        await engine.apply_feedback()

        content = fake_provider.requests_for("fake-feedback")[0].messages[0].content
        assert "Name the persona explicitly." in content
        assert LOCK_INSTRUCTION in content
        assert engine.suggestions == ()
        await engine.join()

    @pytest.mark.asyncio
    async def test_placeholder_is_not_applied(self, service, fake_provider):
        """Test the analyzing placeholder is never sent as a tip."""
        engine = make_engine(service)

        assert await engine.apply_feedback() is False
        assert fake_provider.requests_for("fake-feedback") == []

    @pytest.mark.asyncio
    async def test_manual_edit_clears_undo(self, service, fake_provider):
        """Test typing drops the undo slot."""
        engine = await self.engine_with_tip(service, fake_provider)
        fake_provider.script("fake-feedback", "You are a support agent. Answer briefly.")
        await engine.apply_feedback()

        engine.update_prompt("Typed by hand, long enough.")

        assert not engine.show_undo
        assert engine.undo() is False
        await engine.join()

    @pytest.mark.asyncio
    async def test_failed_apply_keeps_prompt(self, service, fake_provider):
        """Test a failing feedback model leaves the prompt as it was."""
        engine = await self.engine_with_tip(service, fake_provider)
        fake_provider.script("fake-feedback", ProviderError("down", status=500))

        await engine.apply_feedback()

        assert engine.prompt == PROMPT
        assert not engine.is_processing
        await engine.join()

    @pytest.mark.asyncio
    async def test_dismiss_feedback(self, service, fake_provider):
        """Test dismissed tips are sent back as things not to repeat."""
        engine = await self.engine_with_tip(service, fake_provider, tip="Add a persona.")
        fake_provider.script("fake-mentor", "Specify the output format.", "")

        await engine.dismiss_feedback()

        assert engine.feedback == "Specify the output format."
        assert engine.ignored_feedback == ("Add a persona.",)
        content = fake_provider.requests_for("fake-mentor")[-1].messages[0].content
        assert 'Do NOT repeat any of these previous suggestions: ["Add a persona."]' in content

        await engine.dismiss_feedback()

        assert engine.feedback == prompts.message("no_more_feedback", Language.ENGLISH)
        assert engine.ignored_feedback == ("Add a persona.", "Specify the output format.")
        assert not engine.is_typing

    @pytest.mark.asyncio
    async def test_new_edit_cycle_resets_ignored(self, service, fake_provider):
        """Test a fresh mentor cycle forgets dismissed tips."""
        engine = await self.engine_with_tip(service, fake_provider, tip="Add a persona.")
        fake_provider.script("fake-mentor", "Specify the output format.", "Mention the audience.")
        await engine.dismiss_feedback()

        engine.update_prompt("You are a support agent. Answer briefly.")
        await engine.join()

        assert engine.ignored_feedback == ()
        assert engine.feedback == "Mention the audience."


class TestMentorLoop:
    """Tests for the background mentor tips."""

    @pytest.mark.asyncio
    async def test_tip_after_quiet_period(self, service, fake_provider):
        """Test a tip is fetched once per distinct prompt."""
        fake_provider.script("fake-mentor", "Define the output format.")
        engine = make_engine(service)

        engine.start()
        await engine.join()
        engine.start()
        await engine.join()

        assert engine.feedback == "Define the output format."
        assert engine.last_feedback_prompt == PROMPT
        assert len(fake_provider.requests_for("fake-mentor")) == 1
        assert fake_provider.requests_for("fake-mentor")[0].temperature == 0.5
        assert not engine.is_typing

    @pytest.mark.asyncio
    async def test_short_prompt_skipped(self, service, fake_provider):
        """Test prompts at or under the minimum length get no tip."""
        engine = make_engine(service, prompt="Too short")

        engine.start()
        await engine.join()

        assert fake_provider.requests_for("fake-mentor") == []

    @pytest.mark.asyncio
    async def test_rapid_edits_debounced(self, service, fake_provider):
        """Test only the last of several quick edits is sent."""
        engine = make_engine(service, mentor_delay=0.05)

        engine.update_prompt("First version of the prompt")
        engine.update_prompt("Second version of the prompt")
        engine.update_prompt("Third version of the prompt")
        await engine.join()

        requests = fake_provider.requests_for("fake-mentor")
        assert len(requests) == 1
        assert "Third version of the prompt" in requests[0].messages[0].content

    @pytest.mark.asyncio
    async def test_waits_for_busy_operation(self):
        """Test no tip is requested while an AI edit is in flight."""
        release = asyncio.Event()

        async def slow_rewrite(*args):
            await release.wait()
            return "Rewritten prompt that is long enough."

        service = stub_service(reconstruct_prompt=AsyncMock(side_effect=slow_rewrite))
        engine = make_engine(service)

        task = asyncio.create_task(engine.reconstruct())
        await asyncio.sleep(0)
        engine.start()
        await asyncio.sleep(0.01)

        service.get_mentor_feedback.assert_not_awaited()

        release.set()
        await task
        await engine.join()

        service.get_mentor_feedback.assert_awaited_once()
        assert service.get_mentor_feedback.await_args.args[0] == "Rewritten prompt that is long enough."

    @pytest.mark.asyncio
    async def test_configuration_error_recorded(self):
        """Test background failures are recorded instead of raised."""
        service = stub_service(get_mentor_feedback=AsyncMock(side_effect=ConfigurationError("No API key")))
        engine = make_engine(service)

        engine.start()
        await engine.join()

        assert engine.last_error == "No API key"
        assert not engine.is_typing

    @pytest.mark.asyncio
    async def test_close_cancels_timer(self, service, fake_provider):
        """Test close cancels pending background work."""
        engine = make_engine(service, mentor_delay=60)
        engine.start()

        await engine.close()
        await engine.join()

        assert fake_provider.requests_for("fake-mentor") == []


class TestReconstruction:
    """Tests for full and partial rewrites."""

    @pytest.mark.asyncio
    async def test_full_rewrite_keeps_lock(self, service, fake_provider):
        """Test a lock survives a full rewrite and is in the instruction."""
        fake_provider.script("fake-rewrite", "You are a patient, expert support agent. Answer briefly.")
        engine = make_engine(service)
        engine.add_lock("Answer briefly.")

        assert await engine.reconstruct() is True

        assert "Answer briefly." in engine.prompt
        assert LOCK_INSTRUCTION in fake_provider.requests_for("fake-rewrite")[0].messages[0].content
        assert engine.suggestions == ()
        await engine.join()

    @pytest.mark.asyncio
    async def test_full_rewrite_failure_keeps_prompt(self, service, fake_provider):
        """Test a failing rewrite model leaves the prompt unchanged."""
        fake_provider.script("fake-rewrite", ProviderError("Bad request", status=400))
        engine = make_engine(service)

        await engine.reconstruct()

        assert engine.prompt == PROMPT
        await engine.join()

    @pytest.mark.asyncio
    async def test_partial_rewrite_splices(self, service, fake_provider):
        """Test only the selected range is replaced."""
        engine = make_engine(service)
        start = PROMPT.index("Answer briefly.")
        seen = []

        def rewrite(request):
            seen.append((engine.processing_kind, engine.processing_selection))
            return "Reply in one short sentence."

        fake_provider.script("fake-rewrite", rewrite)

        assert await engine.reconstruct_selection(start, len(PROMPT)) is True

        assert engine.prompt == "You are a helpful assistant. Reply in one short sentence."
        assert seen == [(ProcessingKind.RECONSTRUCT, Selection(start, len(PROMPT)))]
        assert engine.processing_selection is None
        content = fake_provider.requests_for("fake-rewrite")[0].messages[0].content
        assert 'Segment to Rewrite: "Answer briefly."' in content
        assert fake_provider.requests_for("fake-rewrite")[0].temperature == 0.3
        await engine.join()

    @pytest.mark.asyncio
    async def test_partial_rewrite_sends_locks(self, service, fake_provider):
        """Test partial rewrites also carry the lock instruction."""
        fake_provider.script("fake-rewrite", "You are a patient assistant.")
        engine = make_engine(service)
        engine.add_lock("Answer briefly.")

        await engine.reconstruct_selection(0, PROMPT.index(" Answer"))

        assert engine.prompt == "You are a patient assistant. Answer briefly."
        assert LOCK_INSTRUCTION in fake_provider.requests_for("fake-rewrite")[0].messages[0].content
        await engine.join()

    @pytest.mark.asyncio
    async def test_partial_rewrite_uses_call_time_prompt(self, service, fake_provider):
        """Test the splice targets the prompt captured when the call started."""
        engine = make_engine(service)

        def edit_meanwhile(request):
            engine.update_prompt("Something else entirely, typed meanwhile.")
            return "You are a patient assistant."

        fake_provider.script("fake-rewrite", edit_meanwhile)

        await engine.reconstruct_selection(0, PROMPT.index(" Answer"))

        assert engine.prompt == "You are a patient assistant. Answer briefly."
        await engine.join()

    @pytest.mark.asyncio
    async def test_partial_rewrite_output_not_sanitized(self, service, fake_provider):
        """Test conversational filler in the answer is inserted as-is."""
        fake_provider.script("fake-rewrite", "Here is the rewritten text: Be concise.")
        engine = make_engine(service)
        start = PROMPT.index("Answer briefly.")

        await engine.reconstruct_selection(start, len(PROMPT))

        assert engine.prompt.endswith("Here is the rewritten text: Be concise.")
        await engine.join()

    @pytest.mark.parametrize("start,end", [(-1, 5), (5, 5), (10, 3), (0, len(PROMPT) + 1)])
    @pytest.mark.asyncio
    async def test_invalid_selection(self, service, start, end):
        """Test empty or out-of-bounds ranges are rejected."""
        engine = make_engine(service)

        with pytest.raises(ValueError):
            await engine.reconstruct_selection(start, end)

    @pytest.mark.asyncio
    async def test_gate_blocks_concurrent_operations(self):
        """Test only one AI edit runs at a time."""
        release = asyncio.Event()

        async def slow_rewrite(*args):
            await release.wait()
            return "Rewritten prompt."

        service = stub_service(
            reconstruct_prompt=AsyncMock(side_effect=slow_rewrite),
            get_detailed_critique=AsyncMock(return_value=[]),
            rewrite_segment=AsyncMock(return_value="x"),
        )
        engine = make_engine(service, mentor_delay=60)

        task = asyncio.create_task(engine.reconstruct())
        await asyncio.sleep(0)

        assert engine.is_processing
        assert engine.processing_kind == ProcessingKind.RECONSTRUCT
        assert await engine.deep_scan() is False
        assert await engine.reconstruct() is False
        assert await engine.reconstruct_selection(0, 3) is False
        service.get_detailed_critique.assert_not_awaited()
        service.rewrite_segment.assert_not_awaited()

        release.set()
        assert await task is True
        assert engine.prompt == "Rewritten prompt."
        assert not engine.is_processing
        await engine.close()

    @pytest.mark.asyncio
    async def test_configuration_error_releases_gate(self):
        """Test a surfaced error still releases the gate."""
        service = stub_service(reconstruct_prompt=AsyncMock(side_effect=ConfigurationError("No API key")))
        engine = make_engine(service, mentor_delay=60)

        with pytest.raises(ConfigurationError):
            await engine.reconstruct()

        assert not engine.is_processing
        assert engine.prompt == PROMPT
        await engine.close()


class TestLocks:
    """Tests for locked segments and their classification."""

    @pytest.mark.asyncio
    async def test_lock_classified(self, service, fake_provider):
        """Test a new lock is pending until classified."""
        fake_provider.script("fake-classify", "Format")
        engine = make_engine(service, mentor_delay=60)

        lock = engine.add_lock("Answer briefly.")
        assert lock.pillar == Pillar.PENDING

        await engine.join()

        assert engine.locked_segments[0].id == lock.id
        assert engine.locked_segments[0].pillar == Pillar.FORMAT
        assert len(fake_provider.requests_for("fake-classify")) == 1
        await engine.close()

    def test_duplicate_lock_ignored(self, service):
        """Test lock texts are unique."""
        engine = make_engine(service)

        assert engine.add_lock("Answer briefly.") is not None
        assert engine.add_lock("Answer briefly.") is None
        assert len(engine.locked_segments) == 1

    def test_remove_lock(self, service):
        """Test locks are removed by id."""
        engine = make_engine(service)
        first = engine.add_lock("You are")
        second = engine.add_lock("Answer briefly.")

        engine.remove_lock(first.id)

        assert [lock.id for lock in engine.locked_segments] == [second.id]

    @pytest.mark.asyncio
    async def test_result_written_by_id(self):
        """Test a classification lands on its own lock after others are removed."""
        release = asyncio.Event()

        async def classify(segment, full_prompt):
            await release.wait()
            return Pillar.PERSONA if segment == "You are" else Pillar.FORMAT

        service = stub_service(classify_prompt_segment=AsyncMock(side_effect=classify))
        engine = make_engine(service, mentor_delay=60)
        first = engine.add_lock("You are")
        second = engine.add_lock("Answer briefly.")
        await asyncio.sleep(0)

        engine.remove_lock(first.id)
        release.set()
        await asyncio.sleep(0.01)

        assert [(lock.id, lock.pillar) for lock in engine.locked_segments] == [(second.id, Pillar.FORMAT)]
        assert service.classify_prompt_segment.await_count == 2
        await engine.close()

    @pytest.mark.asyncio
    async def test_one_classification_per_lock(self):
        """Test a pending lock is never classified twice concurrently."""
        release = asyncio.Event()

        async def classify(segment, full_prompt):
            await release.wait()
            return Pillar.TASK

        service = stub_service(classify_prompt_segment=AsyncMock(side_effect=classify))
        engine = make_engine(service, mentor_delay=60)
        engine.add_lock("Answer briefly.")
        engine.add_lock("You are")
        engine.start()
        engine.start()

        release.set()
        await asyncio.sleep(0.01)

        assert service.classify_prompt_segment.await_count == 2
        assert all(lock.pillar == Pillar.TASK for lock in engine.locked_segments)
        await engine.close()

    @pytest.mark.asyncio
    async def test_classification_error_becomes_other(self):
        """Test any classification failure resolves to Other."""
        service = stub_service(classify_prompt_segment=AsyncMock(side_effect=ConfigurationError("No API key")))
        engine = make_engine(service, mentor_delay=60)

        engine.add_lock("Answer briefly.")
        await asyncio.sleep(0.01)

        assert engine.locked_segments[0].pillar == Pillar.OTHER
        await engine.close()
