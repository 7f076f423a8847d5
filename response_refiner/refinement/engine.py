"""Refinement pipeline orchestrator."""

import logging
import time
from datetime import datetime, timezone
from typing import Awaitable, Callable, Optional, Protocol, Sequence

from response_refiner.llm.reasoning import ReasoningStripper
from response_refiner.models.config import RefinerSettings, Step
from response_refiner.models.conversation import Message

from .backends import BackendResolver
from .context import build_saved_messages
from .edits import apply_edits, parse_edits
from .models import (
    GenerationError,
    InvalidTargetError,
    RefinementInProgressError,
    RefinementResult,
    RunState,
    StepAction,
    StepOutcome,
)
from .templates import MacroExpander, render_step_prompts

logger = logging.getLogger(__name__)

PreRunHook = Callable[[], Awaitable[None]]


class ConversationStore(Protocol):
    """Host conversation the pipeline refines messages in."""

    def get_history(self) -> Sequence[Message]: ...

    def get_message(self, index: int) -> Optional[Message]: ...

    async def commit(self, index: int, text: str) -> None: ...

    async def refresh_view(self) -> None: ...


class RefinementPipeline:
    """
    Runs an assistant message through the configured refinement steps.

    Each step renders its prompts against the current draft, asks its backend
    for a reply, strips any reasoning block, and then either folds the
    reply's search/replace edits over the draft or, when the reply has none,
    replaces the draft with it (unless the step skips edit-less replies).

    A run is all-or-nothing: the message is written back once, after every
    step succeeded, and only if the text changed. Only one run may be in
    progress per pipeline.

    Usage:
        pipeline = RefinementPipeline(settings, store, BackendResolver(session, profiles))
        result = await pipeline.refine(5)
        print(result.committed)
    """

    def __init__(
        self,
        settings: RefinerSettings,
        store: ConversationStore,
        backends: BackendResolver,
        stripper: Optional[ReasoningStripper] = None,
        expand: Optional[MacroExpander] = None,
        pre_run_hook: Optional[PreRunHook] = None,
    ):
        self.settings = settings
        self.store = store
        self.backends = backends
        self.stripper = stripper
        self.expand = expand
        self.pre_run_hook = pre_run_hook
        self._state = RunState.IDLE

    @property
    def state(self) -> RunState:
        return self._state

    @property
    def is_running(self) -> bool:
        return self._state == RunState.RUNNING

    async def refine(self, message_id: int) -> RefinementResult:
        """
        Refine the message at ``message_id``.

        Returns:
            RefinementResult describing what each step did

        Raises:
            RefinementInProgressError: If a run is already in progress
            InvalidTargetError: If the message does not exist or is not an
                assistant message
            GenerationError: If any step's backend fails; the message is
                left untouched
        """
        if self._state == RunState.RUNNING:
            logger.warning("A refinement is already in progress")
            raise RefinementInProgressError()

        message = self._get_target(message_id)

        # No await between the guard check and this transition
        self._state = RunState.RUNNING
        started_at = datetime.now(timezone.utc)
        start_time = time.time()
        logger.info(f"Refining message {message_id}")

        try:
            await self._run_pre_run_hook()
            result = await self._run(message_id, message)
        except GenerationError as e:
            logger.error(f"Refinement of message {message_id} aborted: {e}")
            raise
        finally:
            self._state = RunState.IDLE

        result.started_at = started_at
        result.latency_ms = (time.time() - start_time) * 1000
        return result

    def _get_target(self, message_id: int) -> Message:
        total = len(self.store.get_history())
        if message_id < 0 or message_id >= total:
            raise InvalidTargetError(message_id, "invalid message id")

        message = self.store.get_message(message_id)
        if message is None:
            raise InvalidTargetError(message_id, "message not found")
        if not message.is_refinable:
            raise InvalidTargetError(message_id, "can only refine assistant messages")
        return message

    async def _run_pre_run_hook(self) -> None:
        if self.pre_run_hook is None:
            return
        try:
            await self.pre_run_hook()
        except Exception as e:
            logger.warning(f"Pre-run analysis hook failed, continuing: {e}")

    async def _run(self, message_id: int, message: Message) -> RefinementResult:
        original_text = message.text
        draft = original_text
        saved_messages = build_saved_messages(
            self.store.get_history(),
            message_id,
            self.settings.saved_messages_count,
            enabled=self.settings.enable_saved_messages,
        )

        outcomes = []
        for step in list(self.settings.steps):
            draft, outcome = await self._run_step(step, draft, saved_messages)
            outcomes.append(outcome)

        committed = False
        if draft != original_text:
            await self.store.commit(message_id, draft)
            await self.store.refresh_view()
            committed = True
            logger.info(f"Message {message_id} updated")
        else:
            logger.info(f"No changes made to message {message_id}")

        return RefinementResult(
            message_index=message_id,
            original_text=original_text,
            refined_text=draft,
            committed=committed,
            steps=outcomes,
        )

    async def _run_step(
        self,
        step: Step,
        draft: str,
        saved_messages: str,
    ) -> tuple[str, StepOutcome]:
        logger.debug(f"Running step '{step.name}'")
        prompt = render_step_prompts(step, draft, saved_messages, self.expand)
        backend = self.backends.for_step(step)

        try:
            raw = await backend.generate(prompt)
        except Exception as e:
            raise GenerationError(step.name, backend.backend_id, e) from e

        reply = raw or ""
        reasoning_stripped = False
        if self.stripper is not None and reply:
            parsed = self.stripper.strip(reply, backend.backend_id, strict=False)
            if parsed is not None:
                reply = parsed.content
                reasoning_stripped = bool(parsed.reasoning)

        outcome = StepOutcome(
            step_id=step.id,
            step_name=step.name,
            backend_ref=backend.backend_id,
            action=StepAction.SKIPPED_EMPTY,
            reasoning_stripped=reasoning_stripped,
        )

        if not reply:
            logger.debug(f"Step '{step.name}' returned no response")
            return draft, outcome

        edits = parse_edits(reply)

        if not edits:
            if step.skip_if_no_changes:
                logger.debug(f"Step '{step.name}' found no edits, skipping")
                outcome.action = StepAction.SKIPPED_NO_EDITS
                return draft, outcome

            replacement = reply.strip()
            if not replacement:
                return draft, outcome

            logger.debug(f"Step '{step.name}' found no edits, using response as new draft")
            outcome.action = StepAction.REPLACED
            return replacement, outcome

        report = apply_edits(draft, edits)
        outcome.action = StepAction.EDITED
        outcome.edits_applied = len(report.applied)
        outcome.edits_missed = len(report.missed)
        logger.debug(
            f"Step '{step.name}' applied {len(report.applied)} of {len(edits)} edits"
        )
        return report.content, outcome
