"""
Training Matrix — live refresh scheduler.

State machine:

    idle ──(timer tick | manual refresh)──▶ fetching
    fetching ──success──▶ idle           (new matrix published)
    fetching ──failure──▶ idle + error   (previous matrix kept)

All scheduler state lives in one frozen ``RefreshState`` value that is
swapped as a whole, so readers on other threads only ever see complete
snapshots. Every fetch captures a generation token when it starts; its
result is applied only if no newer fetch has started and the refresher has
not been disposed.

Rules:
    - A timer tick while a fetch is in flight does nothing.
    - A manual refresh always starts a new fetch and supersedes the
      in-flight one.
    - Filter changes rebuild from the last fetched snapshot without I/O.
"""

from __future__ import annotations

import asyncio
import dataclasses
import logging
import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Awaitable, Callable

from app.core.exceptions import MatrixSourceError, ValidationError
from app.services.training_matrix.builder import TrainingMatrix, materialize
from app.services.training_matrix.filters import MatrixFilters
from app.services.training_matrix.sources import SourceSnapshot

logger = logging.getLogger(__name__)

REFRESH_INTERVALS = (10, 30, 60, 300)
DEFAULT_REFRESH_INTERVAL = 30

FetchFn = Callable[[], Awaitable[SourceSnapshot]]


class RefreshPhase(str, Enum):
    IDLE = "idle"
    FETCHING = "fetching"


@dataclass(frozen=True)
class RefreshState:
    auto_refresh: bool = True
    interval_seconds: int = DEFAULT_REFRESH_INTERVAL
    phase: RefreshPhase = RefreshPhase.IDLE
    generation: int = 0
    filters: MatrixFilters = field(default_factory=MatrixFilters)
    snapshot: SourceSnapshot | None = None
    matrix: TrainingMatrix | None = None
    last_updated: datetime | None = None
    error: str | None = None
    disposed: bool = False

    @property
    def is_fetching(self) -> bool:
        return self.phase is RefreshPhase.FETCHING

    def to_dict(self) -> dict:
        return {
            "auto_refresh": self.auto_refresh,
            "interval_seconds": self.interval_seconds,
            "is_fetching": self.is_fetching,
            "filters": self.filters.to_dict(),
            "last_updated": self.last_updated.isoformat() if self.last_updated else None,
            "error": self.error,
            "matrix": self.matrix.to_dict() if self.matrix is not None else None,
        }


def validate_interval(value: Any) -> int:
    """Return ``value`` as an int if it is one of the supported intervals."""
    try:
        seconds = int(value)
    except (TypeError, ValueError):
        seconds = None
    if seconds not in REFRESH_INTERVALS:
        raise ValidationError(
            "interval_seconds must be one of " + ", ".join(str(i) for i in REFRESH_INTERVALS),
            details={"interval_seconds": value},
        )
    return seconds


class MatrixRefresher:
    """Periodically re-fetches the sources and publishes a rebuilt matrix.

    Must be driven from a running asyncio event loop. ``fetch`` is a
    zero-argument coroutine function returning a ``SourceSnapshot``
    (normally ``functools.partial(fetch_snapshot, gateway, timeout=...)``).

    Args:
        fetch: Source loader for one cycle.
        auto_refresh: Whether timer ticks trigger fetches.
        interval_seconds: Timer period; one of ``REFRESH_INTERVALS``.
        filters: Initial person filters.
        on_publish: Called with the new state after each successful cycle.
        sleep: Timer sleep coroutine (injectable for tests).
        clock: Source of ``last_updated`` timestamps.
    """

    def __init__(
        self,
        fetch: FetchFn,
        *,
        auto_refresh: bool = True,
        interval_seconds: int = DEFAULT_REFRESH_INTERVAL,
        filters: MatrixFilters | None = None,
        on_publish: Callable[[RefreshState], None] | None = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self._fetch = fetch
        self._state = RefreshState(
            auto_refresh=auto_refresh,
            interval_seconds=validate_interval(interval_seconds),
            filters=filters or MatrixFilters(),
        )
        self._on_publish = on_publish
        self._sleep = sleep
        self._clock = clock or (lambda: datetime.now(timezone.utc))
        self._started = False
        self._timer: asyncio.Task | None = None
        self._in_flight: set[asyncio.Task] = set()

    @property
    def state(self) -> RefreshState:
        return self._state

    # ── Triggers ─────────────────────────────────────────────────────────

    def start(self) -> asyncio.Task | None:
        """Issue the initial fetch and arm the timer."""
        if self._state.disposed:
            return None
        self._started = True
        task = self._begin_fetch("initial")
        self._arm_timer()
        return task

    def tick(self) -> asyncio.Task | None:
        """Timer trigger. No-op while a fetch is in flight."""
        state = self._state
        if state.disposed or not state.auto_refresh:
            return None
        if state.is_fetching:
            logger.debug("Refresh tick ignored; generation %d still fetching", state.generation)
            return None
        return self._begin_fetch("timer")

    def request_refresh(self) -> asyncio.Task | None:
        """Manual trigger. Supersedes any in-flight fetch."""
        if self._state.disposed:
            return None
        return self._begin_fetch("manual")

    # ── Reconfiguration ──────────────────────────────────────────────────

    def apply_filters(self, filters: MatrixFilters) -> RefreshState:
        """Change filters and rebuild from the cached snapshot (no fetch)."""
        state = self._state
        if state.disposed:
            return state
        matrix = state.matrix
        if state.snapshot is not None:
            matrix = materialize(state.snapshot, filters)
        self._replace(filters=filters, matrix=matrix)
        return self._state

    def configure(
        self,
        *,
        auto_refresh: bool | None = None,
        interval_seconds: int | None = None,
    ) -> RefreshState:
        """Change auto-refresh and/or the interval; restarts the timer."""
        changes: dict[str, Any] = {}
        if auto_refresh is not None:
            changes["auto_refresh"] = bool(auto_refresh)
        if interval_seconds is not None:
            changes["interval_seconds"] = validate_interval(interval_seconds)
        if self._state.disposed or not changes:
            return self._state
        self._replace(**changes)
        if self._started:
            self._arm_timer()
        logger.info(
            "Training matrix refresh configured: auto_refresh=%s interval=%ss",
            self._state.auto_refresh, self._state.interval_seconds,
        )
        return self._state

    def dispose(self) -> None:
        """Stop ticking; results of in-flight fetches will be discarded."""
        if self._state.disposed:
            return
        self._replace(disposed=True, phase=RefreshPhase.IDLE)
        self._cancel_timer()
        logger.debug("Training matrix refresher disposed")

    async def wait_idle(self) -> None:
        """Wait for every fetch started so far to settle."""
        while self._in_flight:
            await asyncio.gather(*list(self._in_flight), return_exceptions=True)

    # ── Internals ────────────────────────────────────────────────────────

    def _replace(self, **changes: Any) -> None:
        self._state = dataclasses.replace(self._state, **changes)

    def _is_current(self, generation: int) -> bool:
        state = self._state
        return not state.disposed and state.generation == generation

    def _begin_fetch(self, trigger: str) -> asyncio.Task:
        generation = self._state.generation + 1
        self._replace(phase=RefreshPhase.FETCHING, generation=generation)
        task = asyncio.get_running_loop().create_task(self._run_cycle(generation, trigger))
        self._in_flight.add(task)
        task.add_done_callback(self._in_flight.discard)
        return task

    async def _run_cycle(self, generation: int, trigger: str) -> None:
        started = time.monotonic()
        try:
            snapshot = await self._fetch()
        except MatrixSourceError as exc:
            self._fail(generation, str(exc))
            return
        except Exception:
            logger.exception("Unexpected error loading training matrix (generation %d)", generation)
            self._fail(generation, "Unexpected error loading training data.")
            return

        if not self._is_current(generation):
            logger.debug("Discarding superseded training matrix fetch (generation %d)", generation)
            return

        matrix = materialize(snapshot, self._state.filters)
        self._replace(
            phase=RefreshPhase.IDLE,
            snapshot=snapshot,
            matrix=matrix,
            last_updated=self._clock(),
            error=None,
        )
        logger.info(
            "Training matrix refreshed (%s): %d rows x %d columns in %dms",
            trigger, len(matrix.rows), len(matrix.columns),
            int((time.monotonic() - started) * 1000),
        )
        if self._on_publish is not None:
            self._on_publish(self._state)

    def _fail(self, generation: int, message: str) -> None:
        if not self._is_current(generation):
            logger.debug("Discarding failure of superseded fetch (generation %d)", generation)
            return
        self._replace(phase=RefreshPhase.IDLE, error=message)
        logger.warning("Training matrix refresh failed; keeping previous matrix: %s", message)

    def _cancel_timer(self) -> None:
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None

    def _arm_timer(self) -> None:
        self._cancel_timer()
        state = self._state
        if state.disposed or not state.auto_refresh:
            return
        self._timer = asyncio.get_running_loop().create_task(
            self._timer_loop(state.interval_seconds)
        )

    async def _timer_loop(self, interval: int) -> None:
        while True:
            await self._sleep(interval)
            self.tick()
