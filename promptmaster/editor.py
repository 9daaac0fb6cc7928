"""
Editor orchestration: one mutable prompt and the AI operations around it.

The engine owns the prompt text together with its derived state
(suggestions, locked segments, mentor tip, undo slot) and runs on the
current asyncio loop. Operations that rewrite the prompt are serialized by
a single processing gate; background work (mentor timer, mentor request,
lock classification) runs as tasks the engine keeps track of.

A response that arrives after the prompt changed is still applied. Deep
scan results are the exception: they are filtered against the prompt as it
is when they arrive.
"""

import asyncio
import logging
from contextlib import contextmanager
from dataclasses import dataclass, replace
from enum import Enum
from typing import Callable, Iterator, List, Optional, Set, Tuple

from . import prompts
from .config import Language
from .errors import PromptMasterError, get_error_message
from .llm import PromptService
from .models import LockedSegment, Pillar, Suggestion

logger = logging.getLogger(__name__)

MENTOR_DELAY = 2.5
MIN_FEEDBACK_LENGTH = 10

Listener = Callable[["EditorEngine"], None]


class ProcessingKind(str, Enum):
    """Operation currently holding the processing gate."""
    SCAN = "scan"
    RECONSTRUCT = "reconstruct"
    APPLY_FEEDBACK = "applyFeedback"


@dataclass(frozen=True)
class Selection:
    """Half-open character range of the prompt."""
    start: int
    end: int


class EditorEngine:
    """
    AI-assisted editing of a single prompt.

    Args:
        service: Feature operations used for every AI call
        context: Requirements gathered by the interview (or inferred on import)
        language: Language tips and rewrites are written in
        initial_prompt: Text the editor starts with
        mentor_delay: Seconds of quiet after an edit before a mentor tip is requested
        min_feedback_length: Prompts this short or shorter get no mentor tip
    """

    def __init__(
        self,
        service: PromptService,
        context: str,
        language: Language,
        initial_prompt: str = "",
        mentor_delay: float = MENTOR_DELAY,
        min_feedback_length: int = MIN_FEEDBACK_LENGTH,
    ):
        self.service = service
        self.context = context
        self.language = Language(language)
        self.mentor_delay = mentor_delay
        self.min_feedback_length = min_feedback_length

        self._prompt = initial_prompt
        self._suggestions: List[Suggestion] = []
        self._active_suggestion_id: Optional[str] = None
        self._feedback = prompts.message("analyzing", self.language)
        self._is_typing = False
        self._processing: Optional[ProcessingKind] = None
        self._selection: Optional[Selection] = None
        self._undo_prompt: Optional[str] = None
        self._locks: List[LockedSegment] = []
        self._ignored_feedback: List[str] = []
        self._last_feedback_prompt = ""
        self._last_error: Optional[str] = None

        self._listeners: List[Listener] = []
        self._tasks: Set[asyncio.Task] = set()
        self._mentor_timer: Optional[asyncio.Task] = None
        self._classifying: Set[str] = set()

    # State

    @property
    def prompt(self) -> str:
        return self._prompt

    @property
    def suggestions(self) -> Tuple[Suggestion, ...]:
        return tuple(self._suggestions)

    @property
    def active_suggestion_id(self) -> Optional[str]:
        return self._active_suggestion_id

    @property
    def feedback(self) -> str:
        return self._feedback

    @property
    def is_typing(self) -> bool:
        """Whether a mentor tip is being fetched."""
        return self._is_typing

    @property
    def is_processing(self) -> bool:
        return self._processing is not None

    @property
    def processing_kind(self) -> Optional[ProcessingKind]:
        return self._processing

    @property
    def processing_selection(self) -> Optional[Selection]:
        """Range being rewritten by a partial reconstruction, if any."""
        return self._selection

    @property
    def show_undo(self) -> bool:
        return self._undo_prompt is not None

    @property
    def locked_segments(self) -> Tuple[LockedSegment, ...]:
        return tuple(self._locks)

    @property
    def ignored_feedback(self) -> Tuple[str, ...]:
        return tuple(self._ignored_feedback)

    @property
    def last_feedback_prompt(self) -> str:
        return self._last_feedback_prompt

    @property
    def last_error(self) -> Optional[str]:
        return self._last_error

    def add_listener(self, listener: Listener) -> None:
        """Call ``listener(engine)`` after every state change."""
        self._listeners.append(listener)

    def _notify(self) -> None:
        for listener in list(self._listeners):
            listener(self)

    # Background tasks

    def _spawn(self, coro) -> Optional[asyncio.Task]:
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            coro.close()
            logger.debug("No running event loop; background work not scheduled")
            return None
        task = loop.create_task(coro)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    def start(self) -> None:
        """Arm the mentor timer and classify any pending locks."""
        self._arm_mentor()
        self._classify_pending()

    async def join(self) -> None:
        """Wait until no background work is outstanding."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    async def close(self) -> None:
        """Cancel all background work."""
        tasks = list(self._tasks)
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
        self._mentor_timer = None
        self._classifying.clear()

    @contextmanager
    def _busy(self, kind: ProcessingKind, selection: Optional[Selection] = None) -> Iterator[None]:
        self._processing = kind
        self._selection = selection
        self._notify()
        try:
            yield
        finally:
            self._processing = None
            self._selection = None
            self._notify()
            self._arm_mentor()

    # Editing

    def update_prompt(self, text: str) -> None:
        """Manual edit; drops the undo slot and restarts the mentor timer."""
        self._prompt = text
        self._undo_prompt = None
        self._notify()
        self._arm_mentor()

    def set_active_suggestion(self, suggestion_id: Optional[str]) -> None:
        self._active_suggestion_id = suggestion_id
        self._notify()

    def _find_suggestion(self, suggestion_id: str) -> Optional[Suggestion]:
        for suggestion in self._suggestions:
            if suggestion.id == suggestion_id:
                return suggestion
        return None

    def apply_suggestion(self, suggestion_id: str) -> bool:
        """Replace the first occurrence of the suggestion's span and consume it."""
        suggestion = self._find_suggestion(suggestion_id)
        if suggestion is None:
            return False
        self._prompt = self._prompt.replace(suggestion.original_text, suggestion.suggested_text, 1)
        self._suggestions = [s for s in self._suggestions if s.id != suggestion_id]
        self._active_suggestion_id = None
        self._notify()
        self._arm_mentor()
        return True

    def dismiss_suggestion(self, suggestion_id: str) -> None:
        self._suggestions = [s for s in self._suggestions if s.id != suggestion_id]
        self._active_suggestion_id = None
        self._notify()

    async def deep_scan(self) -> bool:
        """
        Replace the suggestion set with a fresh critique of the prompt.

        Suggestions whose text no longer occurs in the prompt when the
        critique arrives are dropped. Returns False if another operation
        holds the processing gate.
        """
        if self.is_processing:
            return False

        with self._busy(ProcessingKind.SCAN):
            self._suggestions = []
            self._active_suggestion_id = None
            self._undo_prompt = None
            found = await self.service.get_detailed_critique(self._prompt, self.context, self.language)
            self._suggestions = [s for s in found if s.original_text in self._prompt]
            logger.info("Deep scan kept %d of %d suggestions", len(self._suggestions), len(found))
        return True

    def _has_actionable_feedback(self) -> bool:
        placeholders = (
            prompts.message("analyzing", self.language),
            prompts.message("no_more_feedback", self.language),
        )
        return bool(self._feedback) and self._feedback not in placeholders

    async def apply_feedback(self) -> bool:
        """
        Let the model make the minimum edit that satisfies the mentor tip.

        The previous prompt goes into the single undo slot once the edit
        lands. Returns False when there is no tip to apply or the gate is
        held.
        """
        if not self._has_actionable_feedback() or self.is_processing:
            return False

        previous = self._prompt
        with self._busy(ProcessingKind.APPLY_FEEDBACK):
            result = await self.service.apply_specific_feedback(
                previous,
                self.context,
                self._feedback,
                [lock.text for lock in self._locks],
                self.language,
            )
            self._prompt = result
            self._suggestions = []
            self._active_suggestion_id = None
            self._undo_prompt = previous
        return True

    def undo(self) -> bool:
        """Restore the prompt from before the last applied tip, once."""
        if self._undo_prompt is None:
            return False
        self._prompt = self._undo_prompt
        self._undo_prompt = None
        self._notify()
        self._arm_mentor()
        return True

    async def dismiss_feedback(self) -> None:
        """Reject the current tip and ask for a different one."""
        if not self._feedback:
            return

        self._ignored_feedback.append(self._feedback)
        ignored = list(self._ignored_feedback)
        self._undo_prompt = None
        self._is_typing = True
        self._notify()
        try:
            tip = await self.service.get_mentor_feedback(self._prompt, self.context, self.language, ignored)
        finally:
            self._is_typing = False
        self._feedback = tip or prompts.message("no_more_feedback", self.language)
        self._notify()

    async def reconstruct(self) -> bool:
        """Rewrite the whole prompt from the context, keeping locked text."""
        if self.is_processing:
            return False

        with self._busy(ProcessingKind.RECONSTRUCT):
            self._undo_prompt = None
            result = await self.service.reconstruct_prompt(
                self._prompt,
                self.context,
                [lock.text for lock in self._locks],
                self.language,
            )
            self._prompt = result
            self._suggestions = []
            self._active_suggestion_id = None
        return True

    async def reconstruct_selection(self, start: int, end: int) -> bool:
        """
        Rewrite ``prompt[start:end]`` and splice the answer back in.

        The splice uses the prompt as it was when the call was made. The
        model's answer is inserted as-is.

        Raises:
            ValueError: If the range is empty or out of bounds
        """
        if not 0 <= start < end <= len(self._prompt):
            raise ValueError(f"Invalid selection [{start}, {end}) for prompt of length {len(self._prompt)}")
        if self.is_processing:
            return False

        snapshot = self._prompt
        segment = snapshot[start:end]
        with self._busy(ProcessingKind.RECONSTRUCT, Selection(start, end)):
            self._undo_prompt = None
            replacement = await self.service.rewrite_segment(
                snapshot,
                self.context,
                segment,
                self.language,
                [lock.text for lock in self._locks],
            )
            self._prompt = snapshot[:start] + replacement + snapshot[end:]
        return True

    # Locks

    def add_lock(self, text: str) -> Optional[LockedSegment]:
        """Protect ``text``; returns the new lock, or None if it is already locked."""
        if not text or any(lock.text == text for lock in self._locks):
            return None
        lock = LockedSegment(text=text)
        self._locks.append(lock)
        self._notify()
        self._classify_pending()
        return lock

    def remove_lock(self, lock_id: str) -> None:
        self._locks = [lock for lock in self._locks if lock.id != lock_id]
        self._notify()

    def _classify_pending(self) -> None:
        for lock in self._locks:
            if lock.is_pending and lock.id not in self._classifying:
                if self._spawn(self._classify(lock)) is not None:
                    self._classifying.add(lock.id)

    async def _classify(self, lock: LockedSegment) -> None:
        try:
            pillar = await self.service.classify_prompt_segment(lock.text, self._prompt)
        except PromptMasterError as e:
            logger.warning("Classification of lock %s failed: %s", lock.id, e)
            pillar = Pillar.OTHER
        finally:
            self._classifying.discard(lock.id)

        self._locks = [replace(s, pillar=pillar) if s.id == lock.id else s for s in self._locks]
        self._notify()

    # Mentor loop

    def _arm_mentor(self) -> None:
        if self._mentor_timer is not None and not self._mentor_timer.done():
            self._mentor_timer.cancel()
        self._mentor_timer = self._spawn(self._mentor_countdown())

    async def _mentor_countdown(self) -> None:
        await asyncio.sleep(self.mentor_delay)
        self._request_mentor()

    def _request_mentor(self) -> None:
        prompt = self._prompt
        if prompt == self._last_feedback_prompt:
            return
        if len(prompt) <= self.min_feedback_length or self.is_processing:
            return

        self._is_typing = True
        self._ignored_feedback = []
        self._last_feedback_prompt = prompt
        self._notify()
        self._spawn(self._fetch_mentor(prompt))

    async def _fetch_mentor(self, prompt: str) -> None:
        tip = None
        try:
            tip = await self.service.get_mentor_feedback(prompt, self.context, self.language, [])
        except PromptMasterError as e:
            logger.error("Mentor feedback failed: %s", e)
            self._last_error = get_error_message(e)
        finally:
            self._is_typing = False

        if tip:
            self._feedback = tip
        self._notify()
