"""RefreshController: fetch, render and swap the feed layer on a MapSession.

State machine::

    IDLE -> FETCHING -> RENDERING -> ATTACHED -> IDLE
                |            |
                +------------+----> FAILED ---> IDLE

One pipeline runs at a time per controller. Requests made while one is in
flight are coalesced: the drain loop runs once more afterwards, and the
in-flight result is dropped if a newer request arrived before it could be
attached (last request wins). The attached group is only ever replaced by a
successful render; failures leave it on the map.
"""

from __future__ import annotations

import asyncio
import contextlib
from dataclasses import dataclass, replace
from enum import Enum
from typing import Any, Awaitable, Callable

from loguru import logger

from .errors import ConfigurationError, FeedMapError
from .features import parse_feature_collection
from .render import RenderResult, render_collection
from .session import MapSession


class RefreshState(str, Enum):
    IDLE = "idle"
    FETCHING = "fetching"
    RENDERING = "rendering"
    ATTACHED = "attached"
    FAILED = "failed"


@dataclass(frozen=True)
class RefreshOutcome:
    """Result of the cycle that served a refresh request.

    Attributes:
        generation: Request counter value the cycle ran for.
        attached: True if a new group replaced the previous one.
        result: RenderResult of the attached group, if any.
        error: The fetch/parse error of a failed cycle, if any.
        discarded: Superseded cycles dropped before this one.
    """

    generation: int
    attached: bool
    result: RenderResult | None = None
    error: Exception | None = None
    discarded: int = 0


class RefreshController:
    """Owns refresh cycles for one MapSession."""

    def __init__(
        self,
        session: MapSession,
        fetcher: Callable[[], Awaitable[Any]],
        config=None,
    ) -> None:
        self.session = session
        self.fetcher = fetcher
        self.config = (config or session.config).validate()

        self._state = RefreshState.IDLE
        self._listeners: list[Callable[[RefreshState], None]] = []
        self._requested = 0
        self._completed = 0
        self._waiters: list[tuple[int, asyncio.Future]] = []
        self._drain_task: asyncio.Task | None = None
        self._poll_task: asyncio.Task | None = None

        self.last_result: RenderResult | None = None
        self.last_error: Exception | None = None
        self.last_outcome: RefreshOutcome | None = None

    # -- state ---------------------------------------------------------------

    @property
    def state(self) -> RefreshState:
        return self._state

    @property
    def in_flight(self) -> bool:
        return self._drain_task is not None and not self._drain_task.done()

    def subscribe(self, listener: Callable[[RefreshState], None]) -> Callable[[], None]:
        """Call ``listener(state)`` on every transition. Returns an unsubscribe function."""
        self._listeners.append(listener)
        return lambda: self._listeners.remove(listener)

    def _set_state(self, state: RefreshState) -> None:
        self._state = state
        for listener in list(self._listeners):
            try:
                listener(state)
            except Exception:
                logger.exception(f"Refresh listener failed on {state.value}")

    # -- requests ------------------------------------------------------------

    def request_refresh(self) -> asyncio.Future:
        """Queue a refresh; returns a future resolved with its RefreshOutcome.

        Must be called from within a running event loop.
        """
        loop = asyncio.get_running_loop()
        self._requested += 1
        future = loop.create_future()
        self._waiters.append((self._requested, future))

        if self.in_flight:
            logger.debug(f"Refresh {self._requested} coalesced into in-flight cycle")
        else:
            self._drain_task = loop.create_task(self._drain())
        return future

    async def refresh(self) -> RefreshOutcome:
        return await self.request_refresh()

    # -- pipeline ------------------------------------------------------------

    async def _drain(self) -> None:
        discarded = 0
        try:
            while self._completed < self._requested:
                generation = self._requested
                outcome = await self._run_cycle(generation)
                if outcome is None:
                    discarded += 1
                    continue

                outcome = replace(outcome, discarded=discarded)
                discarded = 0
                self._completed = generation
                self.last_outcome = outcome
                self._resolve(generation, outcome)
        except asyncio.CancelledError:
            self._set_state(RefreshState.IDLE)
            self._cancel_waiters()
            raise
        except Exception as e:
            logger.exception(f"Refresh pipeline crashed: {e}")
            self._completed = self._requested
            self._set_state(RefreshState.IDLE)
            self._fail_waiters(e)

    def _superseded(self, generation: int) -> bool:
        return self._requested != generation

    async def _run_cycle(self, generation: int) -> RefreshOutcome | None:
        """One fetch -> render -> attach pass. Returns None if superseded."""
        self._set_state(RefreshState.FETCHING)
        try:
            payload = await self.fetcher()
            if self._superseded(generation):
                logger.debug(f"Refresh {generation} superseded by {self._requested}; discarding result")
                self._set_state(RefreshState.IDLE)
                return None

            self._set_state(RefreshState.RENDERING)
            collection = parse_feature_collection(payload)
            result = render_collection(collection, self.config)
        except FeedMapError as e:
            if self._superseded(generation):
                logger.debug(f"Refresh {generation} failed but was superseded: {e}")
                self._set_state(RefreshState.IDLE)
                return None
            self.last_error = e
            logger.warning(
                f"Refresh {generation} failed: {e}; "
                f"keeping {self.session.layer_count()} layers on the map"
            )
            self._set_state(RefreshState.FAILED)
            self._set_state(RefreshState.IDLE)
            return RefreshOutcome(generation=generation, attached=False, error=e)

        self.session.attach(result.group)
        self.last_result = result
        self.last_error = None
        self._set_state(RefreshState.ATTACHED)
        self._set_state(RefreshState.IDLE)
        return RefreshOutcome(generation=generation, attached=True, result=result)

    def _resolve(self, generation: int, outcome: RefreshOutcome) -> None:
        pending = []
        for ticket, future in self._waiters:
            if ticket <= generation:
                if not future.done():
                    future.set_result(outcome)
            else:
                pending.append((ticket, future))
        self._waiters = pending

    def _fail_waiters(self, error: Exception) -> None:
        for _, future in self._waiters:
            if not future.done():
                future.set_exception(error)
        self._waiters = []

    def _cancel_waiters(self) -> None:
        for _, future in self._waiters:
            future.cancel()
        self._waiters = []

    # -- polling -------------------------------------------------------------

    def start(self) -> asyncio.Task:
        """Start polling every ``config.refresh_interval_ms``."""
        interval_ms = self.config.refresh_interval_ms
        if not interval_ms:
            raise ConfigurationError("refresh_interval_ms is not set; polling is disabled")
        if self._poll_task is not None and not self._poll_task.done():
            return self._poll_task
        self._poll_task = asyncio.get_running_loop().create_task(self._poll(interval_ms / 1000))
        logger.info(f"Polling feed every {interval_ms} ms")
        return self._poll_task

    async def _poll(self, interval_s: float) -> None:
        while True:
            try:
                await self.refresh()
            except asyncio.CancelledError:
                raise
            except Exception as e:
                logger.exception(f"Polled refresh failed; retrying in {interval_s:g} s: {e}")
            await asyncio.sleep(interval_s)

    async def stop(self) -> None:
        """Stop polling and cancel any in-flight cycle. The attached group stays."""
        for task in (self._poll_task, self._drain_task):
            if task is not None and not task.done():
                task.cancel()
                with contextlib.suppress(asyncio.CancelledError):
                    await task
        self._poll_task = None
        self._drain_task = None
        self._completed = self._requested
        self._cancel_waiters()
        self._set_state(RefreshState.IDLE)
