"""Tests for the refinement pipeline orchestrator."""

import asyncio

import pytest
from unittest.mock import AsyncMock, MagicMock

from response_refiner.host.store import InMemoryConversationStore
from response_refiner.llm.reasoning import ReasoningStripper
from response_refiner.models.config import RefinerSettings, Step
from response_refiner.models.conversation import Message, MessageRole
from response_refiner.refinement.backends import BackendResolver
from response_refiner.refinement.engine import RefinementPipeline
from response_refiner.refinement.models import (
    GenerationError,
    InvalidTargetError,
    RefinementInProgressError,
    RunState,
    StepAction,
)


def make_store() -> InMemoryConversationStore:
    store = InMemoryConversationStore()
    store.append("Tell me about foxes.", MessageRole.USER)
    store.append("The quick brown fox jumps.", MessageRole.ASSISTANT)
    return store


def make_session(*replies) -> MagicMock:
    session = MagicMock()
    session.max_tokens = 4096
    session.generate_quiet = AsyncMock(side_effect=list(replies))
    return session


def make_pipeline(store, session, steps, profiles=None, **kwargs) -> RefinementPipeline:
    settings = RefinerSettings(steps=steps, **kwargs.pop("settings", {}))
    return RefinementPipeline(
        settings=settings,
        store=store,
        backends=BackendResolver(session, profiles),
        **kwargs,
    )


def spy_store(store: InMemoryConversationStore) -> InMemoryConversationStore:
    store.commit = AsyncMock(wraps=store.commit)
    store.refresh_view = AsyncMock(wraps=store.refresh_view)
    return store


class TestRefine:
    """Tests for RefinementPipeline.refine."""

    @pytest.mark.asyncio
    async def test_edits_applied_and_committed(self):
        """Test edit blocks are folded over the message and written back once."""
        store = spy_store(make_store())
        session = make_session("<search>quick</search><replace>slow</replace>")
        pipeline = make_pipeline(store, session, [Step(name="Polish")])

        result = await pipeline.refine(1)

        assert result.refined_text == "The slow brown fox jumps."
        assert result.committed
        assert result.steps[0].action == StepAction.EDITED
        assert result.steps[0].edits_applied == 1
        assert store.get_message(1).text == "The slow brown fox jumps."
        store.commit.assert_awaited_once_with(1, "The slow brown fox jumps.")
        store.refresh_view.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_steps_run_in_order_on_current_draft(self):
        """Test each step sees the draft produced by the previous one."""
        store = make_store()
        session = make_session(
            "<search>quick</search><replace>slow</replace>",
            "<search>slow</search><replace>sleepy</replace>",
        )
        pipeline = make_pipeline(
            store,
            session,
            [Step(user_message="{{draft}}"), Step(user_message="{{draft}}")],
        )

        result = await pipeline.refine(1)

        assert result.refined_text == "The sleepy brown fox jumps."
        second_prompt = session.generate_quiet.await_args_list[1].args[0]
        assert "The slow brown fox jumps." in second_prompt

    @pytest.mark.asyncio
    async def test_reply_without_edits_replaces_draft(self):
        """Test a reply with no edit blocks becomes the new draft."""
        store = make_store()
        session = make_session("  A brand new answer.  ")
        pipeline = make_pipeline(store, session, [Step()])

        result = await pipeline.refine(1)

        assert result.refined_text == "A brand new answer."
        assert result.steps[0].action == StepAction.REPLACED

    @pytest.mark.asyncio
    async def test_skip_if_no_changes(self):
        """Test an edit-less reply is ignored when the step skips them."""
        store = spy_store(make_store())
        session = make_session("Looks good to me, no changes needed.")
        pipeline = make_pipeline(store, session, [Step(skip_if_no_changes=True)])

        result = await pipeline.refine(1)

        assert result.refined_text == "The quick brown fox jumps."
        assert result.steps[0].action == StepAction.SKIPPED_NO_EDITS
        assert not result.committed
        store.commit.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_empty_reply_skipped(self):
        """Test an empty reply leaves the draft alone and the run continues."""
        store = make_store()
        session = make_session("", "<search>quick</search><replace>fast</replace>")
        pipeline = make_pipeline(store, session, [Step(), Step()])

        result = await pipeline.refine(1)

        assert result.steps[0].action == StepAction.SKIPPED_EMPTY
        assert result.refined_text == "The fast brown fox jumps."

    @pytest.mark.asyncio
    async def test_no_commit_without_changes(self):
        """Test nothing is written when the final draft equals the original."""
        store = spy_store(make_store())
        session = make_session("<search>missing</search><replace>x</replace>")
        pipeline = make_pipeline(store, session, [Step()])

        result = await pipeline.refine(1)

        assert not result.committed
        assert result.steps[0].edits_missed == 1
        store.commit.assert_not_awaited()
        store.refresh_view.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_no_steps(self):
        """Test a pipeline without steps returns the message unchanged."""
        store = spy_store(make_store())
        pipeline = make_pipeline(store, make_session(), [])

        result = await pipeline.refine(1)

        assert result.steps == []
        assert not result.committed

    @pytest.mark.asyncio
    async def test_saved_messages_in_prompt(self):
        """Test prior turns are inserted when saved messages are enabled."""
        store = make_store()
        session = make_session("<search>quick</search><replace>slow</replace>")
        pipeline = make_pipeline(
            store,
            session,
            [Step(system_prompt="", user_message="{{savedMessages}}|{{draft}}")],
            settings={"enable_saved_messages": True, "saved_messages_count": -1},
        )

        await pipeline.refine(1)

        prompt = session.generate_quiet.await_args.args[0]
        assert prompt == "User: Tell me about foxes.|The quick brown fox jumps."

    @pytest.mark.asyncio
    async def test_macros_expanded(self):
        """Test the macro pass runs over rendered prompts."""
        store = make_store()
        session = make_session("")
        pipeline = make_pipeline(
            store,
            session,
            [Step(system_prompt="", user_message="Hi {{user}}")],
            expand=lambda text: text.replace("{{user}}", "Alice"),
        )

        await pipeline.refine(1)

        assert session.generate_quiet.await_args.args[0] == "Hi Alice"


class TestNamedProfiles:
    """Tests for steps that target a named profile."""

    @pytest.mark.asyncio
    async def test_profile_step(self):
        """Test a named-profile step uses the registry, not the session."""
        store = make_store()
        session = make_session()
        profiles = MagicMock()
        profiles.resolve_max_tokens = MagicMock(return_value=None)
        profiles.request = AsyncMock(
            return_value={"content": "<search>brown</search><replace>red</replace>"}
        )
        pipeline = make_pipeline(store, session, [Step(backend_ref="fast")], profiles=profiles)

        result = await pipeline.refine(1)

        assert result.refined_text == "The quick red fox jumps."
        assert result.steps[0].backend_ref == "fast"
        session.generate_quiet.assert_not_awaited()
        assert profiles.request.await_args.args[2] == 4096


class TestReasoning:
    """Tests for reasoning-block stripping within a run."""

    @pytest.mark.asyncio
    async def test_reasoning_removed_before_parsing(self):
        """Test a thinking block is not treated as part of the reply."""
        store = make_store()
        session = make_session("<think>replace quick</think>A calm fox rests.")
        stripper = ReasoningStripper(backend_templates={"default": "DeepSeek"})
        pipeline = make_pipeline(store, session, [Step()], stripper=stripper)

        result = await pipeline.refine(1)

        assert result.refined_text == "A calm fox rests."
        assert result.steps[0].reasoning_stripped

    @pytest.mark.asyncio
    async def test_reasoning_only_reply_is_empty(self):
        """Test a reply holding only reasoning counts as empty."""
        store = make_store()
        session = make_session("<think>nothing to change</think>")
        stripper = ReasoningStripper(backend_templates={"default": "DeepSeek"})
        pipeline = make_pipeline(store, session, [Step()], stripper=stripper)

        result = await pipeline.refine(1)

        assert result.steps[0].action == StepAction.SKIPPED_EMPTY
        assert not result.committed


class TestFailures:
    """Tests for aborted runs and rejected targets."""

    @pytest.mark.asyncio
    async def test_failure_in_later_step_commits_nothing(self):
        """Test a failing step aborts the run and discards earlier edits."""
        store = spy_store(make_store())
        session = make_session(
            "<search>quick</search><replace>slow</replace>",
            RuntimeError("rate limited"),
        )
        pipeline = make_pipeline(store, session, [Step(name="One"), Step(name="Two")])

        with pytest.raises(GenerationError) as exc_info:
            await pipeline.refine(1)

        assert exc_info.value.step_name == "Two"
        assert exc_info.value.backend_ref == "default"
        assert "rate limited" in str(exc_info.value)
        assert isinstance(exc_info.value.__cause__, RuntimeError)
        assert store.get_message(1).text == "The quick brown fox jumps."
        store.commit.assert_not_awaited()
        assert pipeline.state == RunState.IDLE

    @pytest.mark.asyncio
    async def test_user_message_rejected(self):
        """Test only assistant messages can be refined."""
        pipeline = make_pipeline(make_store(), make_session(), [Step()])
        with pytest.raises(InvalidTargetError, match="assistant"):
            await pipeline.refine(0)

    @pytest.mark.asyncio
    async def test_system_message_rejected(self):
        """Test system messages cannot be refined and no backend is called."""
        store = make_store()
        store.append("[Scene changes]", MessageRole.SYSTEM)
        session = make_session()
        pipeline = make_pipeline(store, session, [Step()])

        with pytest.raises(InvalidTargetError, match="assistant"):
            await pipeline.refine(2)

        session.generate_quiet.assert_not_awaited()
        assert store.get_message(2).text == "[Scene changes]"
        assert pipeline.state == RunState.IDLE

    @pytest.mark.asyncio
    @pytest.mark.parametrize("message_id", [-1, 2, 100])
    async def test_out_of_range_rejected(self, message_id):
        """Test invalid indices are rejected before anything runs."""
        session = make_session()
        pipeline = make_pipeline(make_store(), session, [Step()])

        with pytest.raises(InvalidTargetError):
            await pipeline.refine(message_id)

        session.generate_quiet.assert_not_awaited()
        assert pipeline.state == RunState.IDLE

    @pytest.mark.asyncio
    async def test_hook_failure_does_not_abort(self):
        """Test a failing pre-run hook is logged and the run continues."""
        store = make_store()
        session = make_session("<search>quick</search><replace>slow</replace>")
        hook = AsyncMock(side_effect=RuntimeError("analysis failed"))
        pipeline = make_pipeline(store, session, [Step()], pre_run_hook=hook)

        result = await pipeline.refine(1)

        hook.assert_awaited_once()
        assert result.committed


class TestSingleFlight:
    """Tests for the one-run-at-a-time guard."""

    @pytest.mark.asyncio
    async def test_concurrent_run_rejected(self):
        """Test a second refine call fails while the first is in progress."""
        store = make_store()
        release = asyncio.Event()
        started = asyncio.Event()

        async def slow_reply(prompt):
            started.set()
            await release.wait()
            return "<search>quick</search><replace>slow</replace>"

        session = MagicMock()
        session.max_tokens = 4096
        session.generate_quiet = slow_reply
        pipeline = make_pipeline(store, session, [Step()])

        first = asyncio.create_task(pipeline.refine(1))
        await started.wait()

        assert pipeline.is_running
        with pytest.raises(RefinementInProgressError):
            await pipeline.refine(1)

        release.set()
        result = await first

        assert result.committed
        assert pipeline.state == RunState.IDLE

    @pytest.mark.asyncio
    async def test_state_reset_after_failure(self):
        """Test the pipeline accepts a new run after a failed one."""
        store = make_store()
        session = make_session(
            RuntimeError("boom"),
            "<search>quick</search><replace>slow</replace>",
        )
        pipeline = make_pipeline(store, session, [Step()])

        with pytest.raises(GenerationError):
            await pipeline.refine(1)

        result = await pipeline.refine(1)
        assert result.committed
