# app/filters.py
"""Debounced search and status filters for the services listing.

The search box value is staged locally on every keystroke; only after
input has been quiet for ``delay`` seconds is it committed into the
listing URL. Status selection is a discrete choice and commits at once.
"""
import asyncio
import inspect
import logging
import os
from collections.abc import Awaitable, Callable
from typing import Any, Protocol
from urllib.parse import parse_qsl, urlencode

logger = logging.getLogger(__name__)

SERVICES_PATH = "/dashboard/services"
SEARCH_DEBOUNCE_SECONDS = float(os.getenv("SEARCH_DEBOUNCE_SECONDS", "1.5"))

# "all" means no status constraint; for any other parameter it is a literal value.
_STATUS_PARAM = "status"


class TimerHandle(Protocol):
    def cancel(self) -> None: ...


class Scheduler(Protocol):
    """Anything with asyncio's ``call_later`` signature."""

    def call_later(self, delay: float, callback: Callable[..., Any], *args: Any) -> TimerHandle: ...


def update_query(query: str, name: str, value: str) -> str:
    """Return ``query`` with ``name`` set to ``value``, or removed if the value clears it.

    An empty value clears any parameter; "all" clears only the status filter.
    """
    params = [(key, val) for key, val in parse_qsl(query, keep_blank_values=True) if key != name]
    clears = value == "" or (name == _STATUS_PARAM and value == "all")
    if not clears:
        params.append((name, value))
    return urlencode(params)


class DebouncedFilterController:
    """Stages search input and commits it to the URL once typing settles."""

    def __init__(
        self,
        navigate: Callable[[str], Awaitable[Any] | None],
        query: str = "",
        *,
        path: str = SERVICES_PATH,
        delay: float = SEARCH_DEBOUNCE_SECONDS,
        scheduler: Scheduler | None = None,
    ):
        self.navigate = navigate
        self.path = path
        self.delay = delay
        self._scheduler = scheduler
        self._query = query
        self._staged = self.search
        self._timer: TimerHandle | None = None
        self._in_flight = 0
        # The loop holds tasks weakly; keep them alive until they finish.
        self._tasks: set[asyncio.Future[Any]] = set()

    # --- State ---

    @property
    def query(self) -> str:
        """The committed query string, as reflected in the URL."""
        return self._query

    @property
    def search(self) -> str:
        """The active (committed) search term."""
        return dict(parse_qsl(self._query)).get("search", "")

    @property
    def status(self) -> str:
        return dict(parse_qsl(self._query)).get("status", "all")

    @property
    def staged(self) -> str:
        """The text box value; may be ahead of ``search``."""
        return self._staged

    @property
    def pending(self) -> bool:
        """True while a commit is in flight; inputs should be disabled."""
        return self._in_flight > 0

    # --- Input events ---

    def type(self, value: str) -> None:
        """A keystroke: stage the value now, commit it after the quiet period."""
        self._staged = value
        self._cancel_timer()
        self._timer = self._get_scheduler().call_later(self.delay, self._fire)

    def select_status(self, value: str) -> None:
        """Status is a discrete choice, committed without staging."""
        self._commit("status", value)

    def sync(self, query: str) -> None:
        """The URL changed outside this controller (navigation, back/forward).

        Re-aligns the staged value without starting a new debounce cycle.
        """
        previous_search = self.search
        self._query = query
        if self.search != previous_search:
            self._cancel_timer()
            self._staged = self.search

    def close(self) -> None:
        self._cancel_timer()

    # --- Internals ---

    def _get_scheduler(self) -> Scheduler:
        if self._scheduler is None:
            self._scheduler = asyncio.get_running_loop()
        return self._scheduler

    def _cancel_timer(self) -> None:
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None

    def _fire(self) -> None:
        self._timer = None
        if self._staged == self.search:
            return
        self._commit("search", self._staged)

    def _commit(self, name: str, value: str) -> None:
        self._query = update_query(self._query, name, value)
        url = f"{self.path}?{self._query}" if self._query else self.path
        logger.debug(f"Committing filter {name}={value!r}: {url}")

        self._in_flight += 1
        try:
            result = self.navigate(url)
        except Exception:
            self._in_flight -= 1
            raise

        if inspect.isawaitable(result):
            try:
                loop = asyncio.get_running_loop()
            except RuntimeError:
                # async navigation needs a running loop to be awaited on
                self._in_flight -= 1
                if asyncio.iscoroutine(result):
                    result.close()
                raise
            if asyncio.iscoroutine(result):
                task = loop.create_task(result)
            else:
                task = asyncio.ensure_future(result, loop=loop)
            self._tasks.add(task)
            task.add_done_callback(self._navigation_done)
        else:
            self._in_flight -= 1

    def _navigation_done(self, future: "asyncio.Future[Any]") -> None:
        self._tasks.discard(future)
        self._in_flight -= 1
        if not future.cancelled() and future.exception() is not None:
            logger.error(f"Filter navigation failed: {future.exception()!r}")
