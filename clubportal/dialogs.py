"""
Search-then-add dialogs as explicit state machines.

A dialog moves through ``idle -> searching -> (results | empty) -> idle``
driven by discrete events: ``open``, ``input_changed``, ``debounce_fired``,
``response_received`` and ``add``. Rendering is left to the caller; errors
are reported through the ``notify`` callback and never kept in state.

Each search carries a sequence number. A response is applied only if it
belongs to the most recent search, so a slow earlier request can never
overwrite fresher results.
"""

from __future__ import annotations

import asyncio
import logging
import math
from enum import Enum
from typing import Any, Awaitable, Callable, Generic, Optional, TypeVar

from clubportal.schemas import ActionResult, EventData, UserSearchResult

logger = logging.getLogger(__name__)

T = TypeVar("T")

Notify = Callable[[str, str], None]

DEBOUNCE_SECONDS = 0.5
MIN_QUERY_LENGTH = 2
DEFAULT_WEIGHT = "1.0"
UNEXPECTED_SEARCH_ERROR = "An unexpected error occurred while searching"
UNEXPECTED_ERROR = "An unexpected error occurred"
INVALID_WEIGHT = "Weight must be between 0.0 and 1.0"


class DialogState(str, Enum):
    IDLE = "idle"
    SEARCHING = "searching"
    RESULTS = "results"
    EMPTY = "empty"
    ERROR = "error"


def _log_notify(level: str, message: str) -> None:
    logger.log(logging.ERROR if level == "error" else logging.INFO, message)


class Debouncer:
    """Fire ``callback`` once input has been quiet for ``delay`` seconds.

    Rescheduling cancels a pending timer but never a callback that is
    already running.
    """

    def __init__(self, delay: float, callback: Callable[[], Awaitable[Any]]):
        self.delay = delay
        self._callback = callback
        self._pending: Optional[asyncio.Task] = None
        self._tasks: set[asyncio.Task] = set()

    def schedule(self) -> None:
        self.cancel()
        task = asyncio.get_running_loop().create_task(self._run())
        self._pending = task
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    def cancel(self) -> None:
        if self._pending is not None:
            self._pending.cancel()
            self._pending = None

    async def drain(self) -> None:
        """Wait for every scheduled or running callback to finish."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    async def _run(self) -> None:
        await asyncio.sleep(self.delay)
        if self._pending is asyncio.current_task():
            self._pending = None
        await self._callback()


class SearchDialog(Generic[T]):
    """Generic add-flow dialog; subclasses decide how to fetch and add."""

    search_failed_message = "Failed to search"
    add_failed_message = "Failed to add"

    def __init__(
        self,
        *,
        on_added: Optional[Callable[[Any], None]] = None,
        notify: Optional[Notify] = None,
        success_message: str = "Added successfully",
        debounce_seconds: float = DEBOUNCE_SECONDS,
    ):
        self.on_added = on_added
        self.notify = notify or _log_notify
        self.success_message = success_message
        self.is_open = False
        self.query = ""
        self.results: list[T] = []
        self.state = DialogState.IDLE
        self.adding: Optional[int] = None
        self._seq = 0
        self._debouncer = Debouncer(debounce_seconds, self.debounce_fired)

    # Hooks

    async def fetch(self, query: str) -> ActionResult:
        raise NotImplementedError

    def extract(self, data: Any, query: str) -> list[T]:
        raise NotImplementedError

    async def perform_add(self, item_id: int) -> Optional[ActionResult]:
        """Run the add action; ``None`` means it was rejected before sending."""
        raise NotImplementedError

    def item_id(self, item: T) -> int:
        return getattr(item, "id")

    def clear_item_state(self, item_id: int) -> None:
        pass

    def reset_item_state(self) -> None:
        pass

    # Events

    def open(self) -> None:
        self.is_open = True
        self._debouncer.cancel()
        self._seq += 1
        self.query = ""
        self.results = []
        self.reset_item_state()
        self.state = DialogState.IDLE

    def close(self) -> None:
        self.is_open = False
        self._debouncer.cancel()

    def input_changed(self, text: str) -> None:
        self.query = text
        if len(text.strip()) < MIN_QUERY_LENGTH:
            self._debouncer.cancel()
            # Invalidate anything still in flight.
            self._seq += 1
            self.results = []
            self.state = DialogState.IDLE
            return
        self._debouncer.schedule()

    async def debounce_fired(self) -> None:
        if len(self.query.strip()) >= MIN_QUERY_LENGTH:
            await self.search(self.query)

    async def search(self, query: Optional[str] = None) -> None:
        query = self.query if query is None else query
        if len(query.strip()) < MIN_QUERY_LENGTH:
            self.results = []
            self.state = DialogState.IDLE
            return

        self._seq += 1
        seq = self._seq
        self.state = DialogState.SEARCHING
        try:
            result = await self.fetch(query)
        except Exception:
            logger.exception("Search failed for query=%r", query)
            result = ActionResult(success=False, error=UNEXPECTED_SEARCH_ERROR)
        self.response_received(seq, query, result)

    def response_received(self, seq: int, query: str, result: ActionResult) -> bool:
        """Apply a search response; returns False if it was stale."""
        if seq != self._seq:
            logger.debug("Discarding stale response seq=%s (latest=%s)", seq, self._seq)
            return False
        if result.success and result.data is not None:
            try:
                self.results = self.extract(result.data, query)
            except Exception:
                logger.exception("Could not read search results for query=%r", query)
                self._fail(UNEXPECTED_SEARCH_ERROR)
                return True
            self.state = DialogState.RESULTS if self.results else DialogState.EMPTY
            return True

        self._fail(result.error or self.search_failed_message)
        return True

    def _fail(self, message: str) -> None:
        self.state = DialogState.ERROR
        self.notify("error", message)
        self.results = []
        self.state = DialogState.EMPTY

    async def add(self, item_id: int) -> bool:
        self.adding = item_id
        try:
            result = await self.perform_add(item_id)
        except Exception:
            logger.exception("Add failed for item=%s", item_id)
            self.notify("error", UNEXPECTED_ERROR)
            return False
        finally:
            self.adding = None

        if result is None:
            return False
        if not result.success:
            self.notify("error", result.error or self.add_failed_message)
            return False

        self.notify("success", self.success_message)
        was_last = len(self.results) == 1
        self.results = [item for item in self.results if self.item_id(item) != item_id]
        self.clear_item_state(item_id)
        if was_last and len(self.query.strip()) >= MIN_QUERY_LENGTH:
            await self.search(self.query)
        elif not self.results and self.state == DialogState.RESULTS:
            self.state = DialogState.EMPTY
        if self.on_added:
            self.on_added(result.data)
        return True

    async def settle(self) -> None:
        """Wait for pending debounced searches to run."""
        await self._debouncer.drain()


class UserSearchDialog(SearchDialog[UserSearchResult]):
    """Server-side user search with a per-user add action."""

    search_failed_message = "Failed to search users"
    add_failed_message = "Failed to add user"

    def __init__(
        self,
        search_users: Callable[[str], Awaitable[ActionResult]],
        add_user: Callable[[int], Awaitable[ActionResult]],
        **kwargs: Any,
    ):
        kwargs.setdefault("success_message", "User added successfully")
        super().__init__(**kwargs)
        self._search_users = search_users
        self._add_user = add_user

    async def fetch(self, query: str) -> ActionResult:
        return await self._search_users(query)

    def extract(self, data: Any, query: str) -> list[UserSearchResult]:
        return [UserSearchResult.model_validate(item) for item in data]

    async def perform_add(self, item_id: int) -> Optional[ActionResult]:
        return await self._add_user(item_id)


class AttachEventDialog(SearchDialog[EventData]):
    """Attach events to a ranklist.

    The server returns every event not yet attached; the dialog filters them
    locally by title, description or type. Each result has a weight input
    that defaults to ``"1.0"``.
    """

    search_failed_message = "Failed to search events"
    add_failed_message = "Failed to attach event"

    def __init__(
        self,
        get_available_events: Callable[[], Awaitable[ActionResult]],
        attach_event: Callable[[int, float], Awaitable[ActionResult]],
        **kwargs: Any,
    ):
        kwargs.setdefault("success_message", "Event attached successfully")
        super().__init__(**kwargs)
        self._get_available_events = get_available_events
        self._attach_event = attach_event
        self.weights: dict[int, str] = {}

    def weight_for(self, event_id: int) -> str:
        return self.weights.get(event_id) or DEFAULT_WEIGHT

    def set_weight(self, event_id: int, weight: str) -> None:
        self.weights[event_id] = weight

    def clear_item_state(self, item_id: int) -> None:
        self.weights.pop(item_id, None)

    def reset_item_state(self) -> None:
        self.weights = {}

    async def fetch(self, query: str) -> ActionResult:
        return await self._get_available_events()

    def extract(self, data: Any, query: str) -> list[EventData]:
        needle = query.strip().lower()
        events = [EventData.model_validate(item) for item in data]
        return [
            event
            for event in events
            if needle in event.title.lower()
            or needle in (event.description or "").lower()
            or needle in event.type.value
        ]

    async def perform_add(self, item_id: int) -> Optional[ActionResult]:
        try:
            weight = float(self.weight_for(item_id))
        except ValueError:
            weight = math.nan
        if not math.isfinite(weight) or not 0.0 <= weight <= 1.0:
            self.notify("error", INVALID_WEIGHT)
            return None
        return await self._attach_event(item_id, weight)
