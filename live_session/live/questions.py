"""
Question board views.

``QuestionsView`` is the participant side: it polls the thread, submits
questions and replies under the module's cooldown rules and toggles likes.
``QuestionBoard`` is the presenter side: the same thread, plus moderation
(pinning one "expanded" message at a time, marking answered, deleting).

Both present messages in the same order: pinned first (most recently
pinned on top), then by likes, then newest first. The sort is stable, so
messages that tie on every key keep their server order.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Awaitable, Callable, Iterable, Sequence

from ..api.client import LiveSessionApi
from ..api.types import (
    LikeResult,
    QuestionMessage,
    QuestionsSettings,
    QuestionThread,
    epoch_ms,
)
from ..config import LiveSessionConfig
from ..cooldown import CooldownWindow, extract_cooldown_seconds
from ..exceptions import LiveSessionError, ValidationError, error_message
from ..logging_utils import SessionLoggerAdapter, get_session_logger
from ..polling import Poller

logger = logging.getLogger(__name__)

LOAD_FAILED = "Failed to load questions"
SUBMIT_FAILED = "Failed to submit question"
REPLY_FAILED = "Failed to submit reply"
EMPTY_MESSAGE = "Message cannot be empty"
QUESTION_LIMIT_REACHED = "Question limit reached"
REPLIES_DISABLED = "Replies are disabled"
LIKES_DISABLED = "Likes are disabled"
MODERATION_FAILED = "Failed to update question"


def _sort_key(message: QuestionMessage) -> tuple[int, int, int]:
    return (-epoch_ms(message.pinned_at), -message.likes_count, -epoch_ms(message.created_at))


def sort_questions(messages: Iterable[QuestionMessage]) -> list[QuestionMessage]:
    """Pinned (latest first), then most liked, then newest; stable on ties."""
    return sorted(messages, key=_sort_key)


def flatten_questions(messages: Iterable[QuestionMessage]) -> list[QuestionMessage]:
    """Depth-first list of messages and all their replies."""
    flat: list[QuestionMessage] = []
    for message in messages:
        flat.append(message)
        flat.extend(flatten_questions(message.children))
    return flat


def reorder_moves(previous: Sequence[int], current: Sequence[int]) -> dict[int, int]:
    """Positions each message moved between two orderings.

    Positive values mean the message moved up. Messages present in only one
    ordering, or that did not move, are omitted.
    """
    before = {message_id: i for i, message_id in enumerate(previous)}
    moves: dict[int, int] = {}
    for index, message_id in enumerate(current):
        old = before.get(message_id)
        if old is not None and old != index:
            moves[message_id] = old - index
    return moves


def _replace_message(
    messages: list[QuestionMessage], message_id: int, likes: LikeResult
) -> bool:
    for message in messages:
        if message.id == message_id:
            message.likes_count = likes.likes_count
            message.liked_by_me = likes.liked_by_me
            return True
        if _replace_message(message.children, message_id, likes):
            return True
    return False


class QuestionsView:
    """Participant question board for one module."""

    def __init__(
        self,
        api: LiveSessionApi,
        code: str,
        module_id: str | int,
        auth_token: str,
        config: LiveSessionConfig | None = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.api = api
        self.code = code
        self.module_id = module_id
        self.auth_token = auth_token
        self.config = config or LiveSessionConfig()
        self.clock = clock

        self.cooldown = CooldownWindow(clock=clock)
        self.last_known_cooldown_seconds: int | None = None
        self.submit_error: str | None = None
        self.is_submitting = False
        self.last_moves: dict[int, int] = {}

        self._thread = QuestionThread()
        self._order: list[int] = []
        self._log = SessionLoggerAdapter(
            get_session_logger("questions"),
            {"session_code": code, "module_id": str(module_id)},
        )
        self._poller: Poller[QuestionThread] = Poller(
            self._fetch,
            interval=self.config.questions_poll_interval,
            on_data=self._on_thread,
            name=f"questions:{module_id}",
        )

    async def _fetch(self) -> QuestionThread:
        return await self.api.get_question_messages(
            self.code,
            self.module_id,
            self.auth_token,
            limit=self.config.questions_page_limit,
        )

    def _on_thread(self, thread: QuestionThread) -> None:
        self._thread = thread
        order = [m.id for m in sort_questions(thread.messages)]
        self.last_moves = reorder_moves(self._order, order)
        self._order = order

    @property
    def messages(self) -> list[QuestionMessage]:
        return sort_questions(self._thread.messages)

    @property
    def settings(self) -> QuestionsSettings | None:
        return self._thread.settings

    @property
    def is_loading(self) -> bool:
        return self._poller.is_loading

    @property
    def load_error(self) -> str | None:
        if self._poller.error is None:
            return None
        return error_message(self._poller.error, LOAD_FAILED)

    @property
    def error(self) -> str | None:
        return self.submit_error or self.load_error

    @property
    def can_create_question(self) -> bool:
        """False once the module's top-level question quota is used up."""
        settings = self.settings
        if settings is None or settings.max_questions_total is None:
            return True
        top_level = sum(1 for m in self._thread.messages if m.parent_id is None)
        return top_level < settings.max_questions_total

    def _validate(self, content: str, parent_id: int | None) -> None:
        if not content:
            raise ValidationError("content", EMPTY_MESSAGE)
        settings = self.settings
        if settings is None:
            return
        if settings.max_length is not None and len(content) > settings.max_length:
            raise ValidationError(
                "content",
                f"Message exceeds maximum length ({settings.max_length} characters)",
            )
        if parent_id is None and not self.can_create_question:
            raise ValidationError("content", QUESTION_LIMIT_REACHED)
        if parent_id is not None and not settings.allow_participant_answers:
            raise ValidationError("parent_id", REPLIES_DISABLED)

    def _configured_cooldown(self) -> int | None:
        settings = self.settings
        if settings and settings.cooldown_enabled and settings.cooldown_seconds:
            return settings.cooldown_seconds
        return self.last_known_cooldown_seconds

    async def submit(
        self, content: str, parent_id: int | None = None, anonymous: bool = False
    ) -> QuestionMessage | None:
        """Post a question, or a reply when ``parent_id`` is given.

        Returns None without calling the backend while a cooldown is active
        or another submission is in flight. A backend failure is recorded in
        ``submit_error``. A throttled response starts the cooldown instead and
        leaves ``submit_error`` empty.

        Raises:
            ValidationError: Empty or too long content, question quota used
                up, or replies disabled
        """
        trimmed = content.strip()
        if self.is_submitting or self.cooldown.is_active:
            return None
        self._validate(trimmed, parent_id)

        settings = self.settings
        is_anonymous = anonymous and bool(settings and settings.allow_anonymous)

        self.is_submitting = True
        self.submit_error = None
        try:
            created = await self.api.create_question_message(
                self.code,
                self.module_id,
                self.auth_token,
                trimmed,
                parent_id=parent_id,
                is_anonymous=is_anonymous,
            )
        except LiveSessionError as e:
            if self._throttled(e):
                return None
            fallback = REPLY_FAILED if parent_id is not None else SUBMIT_FAILED
            self.submit_error = error_message(e, fallback)
            self._log.info(f"Submission rejected: {self.submit_error}")
            return None
        finally:
            self.is_submitting = False

        self.cooldown.start(self._configured_cooldown())
        await self.refresh()
        return created

    def _throttled(self, exc: LiveSessionError) -> bool:
        """Start the cooldown for a throttled response; True when one started."""
        settings = self.settings
        fallback = self.last_known_cooldown_seconds
        if settings is not None and settings.cooldown_seconds is not None:
            fallback = settings.cooldown_seconds
        seconds = extract_cooldown_seconds(exc, fallback, now=self.clock())
        if seconds:
            self.last_known_cooldown_seconds = seconds
            self.cooldown.start(seconds)
            self._log.info(f"Submissions paused for {seconds}s")
            return True
        return False

    async def like(self, message_id: int) -> LikeResult:
        """Toggle the participant's like and apply the returned counts."""
        settings = self.settings
        if settings is not None and not settings.likes_enabled:
            raise ValidationError("message_id", LIKES_DISABLED)
        result = await self.api.like_question_message(
            self.code, self.module_id, message_id, self.auth_token
        )
        _replace_message(self._thread.messages, message_id, result)
        return result

    async def refresh(self) -> None:
        await self._poller.refresh()

    async def start(self) -> None:
        await self._poller.start()

    async def stop(self) -> None:
        await self._poller.stop()


class QuestionBoard:
    """Presenter question board with moderation.

    At most one message is "expanded" (shown large on the presentation
    screen); it is the one the presenter pinned last through this board.
    """

    def __init__(
        self,
        api: LiveSessionApi,
        session_id: int,
        module_id: str | int,
        config: LiveSessionConfig | None = None,
    ) -> None:
        self.api = api
        self.session_id = session_id
        self.module_id = module_id
        self.config = config or LiveSessionConfig()
        self.expanded_message_id: int | None = None
        self.last_error: str | None = None
        self._thread = QuestionThread()
        self._poller: Poller[QuestionThread] = Poller(
            self._fetch,
            interval=self.config.presenter_questions_poll_interval,
            on_data=self._on_thread,
            name=f"presenter-questions:{module_id}",
        )

    async def _fetch(self) -> QuestionThread:
        return await self.api.get_question_messages_lecturer(
            self.session_id, self.module_id, limit=self.config.questions_page_limit
        )

    def _on_thread(self, thread: QuestionThread) -> None:
        self._thread = thread

    @property
    def messages(self) -> list[QuestionMessage]:
        return sort_questions(self._thread.messages)

    @property
    def all_messages(self) -> list[QuestionMessage]:
        return flatten_questions(self.messages)

    @property
    def expanded_message(self) -> QuestionMessage | None:
        if self.expanded_message_id is None:
            return None
        return next((m for m in self.all_messages if m.id == self.expanded_message_id), None)

    @property
    def error(self) -> str | None:
        if self._poller.error is None:
            return None
        return error_message(self._poller.error, LOAD_FAILED)

    async def _patch(self, message_id: int, **changes: bool) -> None:
        await self.api.patch_question_message(
            self.session_id, self.module_id, message_id, **changes
        )

    async def _moderate(self, action: str, operation: Callable[[], Awaitable[None]]) -> bool:
        try:
            await operation()
        except LiveSessionError as e:
            logger.warning(f"{action} failed: {e}")
            self.last_error = error_message(e, MODERATION_FAILED)
            await self.refresh()
            return False
        self.last_error = None
        await self.refresh()
        return True

    async def toggle_pin(self, message_id: int) -> bool:
        """Pin and expand a message, or unpin it if it is the expanded one.

        Pinning a new message unpins the previously expanded one first.
        """

        async def operation() -> None:
            if self.expanded_message_id == message_id:
                await self._patch(message_id, unpin=True)
                self.expanded_message_id = None
                return
            previous = self.expanded_message_id
            if previous is not None:
                await self._patch(previous, unpin=True)
                self.expanded_message_id = None
            await self._patch(message_id, pin=True)
            self.expanded_message_id = message_id

        return await self._moderate(f"Toggling pin on {message_id}", operation)

    async def mark_answered(self, message_id: int, answered: bool = True) -> bool:
        async def operation() -> None:
            await self._patch(message_id, is_answered=answered)

        return await self._moderate(f"Marking {message_id} answered", operation)

    async def delete(self, message_id: int) -> bool:
        async def operation() -> None:
            await self._patch(message_id, delete=True)
            if self.expanded_message_id == message_id:
                self.expanded_message_id = None

        return await self._moderate(f"Deleting {message_id}", operation)

    async def refresh(self) -> None:
        await self._poller.refresh()

    async def start(self) -> None:
        await self._poller.start()

    async def stop(self) -> None:
        await self._poller.stop()
