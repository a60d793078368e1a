"""Live-reaction sampling.

A viewer drags a score slider while a logical movie-progress clock runs
from 0 to 100 percent. Every score change while the clock runs records
a point at the current progress; pausing, resuming and idling record
nothing. When the clock reaches 100 the session is finished and the
captured points are persisted as a ``live_reaction`` timeline.

The clock is a cooperative asyncio timer: a single task sleeps one tick
interval, advances the clock, and sleeps again, so ticks never overlap.
Pausing cancels that task before any resume schedules a new one.

Example:
    >>> sampler = LiveReactionSampler(movie_id, user_id, store=store)
    >>> sampler.open_session()
    >>> sampler.start()
    >>> sampler.tick()
    True
    >>> sampler.set_score(7.5)
    TimelinePoint(offset=0.5, score=7.5)
"""

import asyncio
import logging
from enum import Enum
from typing import TYPE_CHECKING

from .errors import SessionStateError, TimelineValidationError
from .schema import (
    NEUTRAL_SCORE,
    OFFSET_MAX,
    LiveSession,
    ModerationStatus,
    SourceKind,
    Timeline,
    TimelinePoint,
)
from .utils import normalize_points

if TYPE_CHECKING:
    from storage.base import TimelineStore


logger = logging.getLogger(__name__)


DEFAULT_TICK_INTERVAL_SEC = 0.1
DEFAULT_TICK_STEP = 0.5


class SamplerState(str, Enum):
    """Clock state of a live-reaction sampler."""

    IDLE = "idle"
    RUNNING = "running"
    PAUSED = "paused"
    ENDED = "ended"
    FINISHED = "finished"


def complete_session(
    store: "TimelineStore",
    session: LiveSession,
    points: list[TimelinePoint],
    precision: int = 1,
) -> tuple[Timeline, LiveSession]:
    """Persist a finished capture and close its session.

    The timeline is written as a single row first; the session is only
    marked completed once that write succeeded, so a failed insert
    leaves the session open for a retry.

    Args:
        store: Storage backend.
        session: The open session the points were captured in.
        points: Captured points in capture order.
        precision: Decimal places of the duplicate-offset merge key.

    Returns:
        Tuple of (persisted timeline, completed session).

    Raises:
        SessionStateError: If the session is already completed.
        TimelineValidationError: If no point was captured.
        StorageError: If persistence fails.
    """
    if session.is_completed:
        raise SessionStateError(
            "Live-reaction session is already completed",
            code="ALREADY_COMPLETED",
            details={"session_id": session.id, "graph_id": session.graph_id},
        )
    if not points:
        raise TimelineValidationError(
            "Live-reaction session captured no points",
            code="EMPTY_TIMELINE",
            details={"session_id": session.id},
        )

    timeline = store.insert_timeline(
        Timeline(
            movie_id=session.movie_id,
            source_kind=SourceKind.LIVE_REACTION,
            points=normalize_points(points, precision),
            user_id=session.user_id,
            is_public=True,
            moderation_status=ModerationStatus.APPROVED,
        )
    )
    completed = store.complete_session(session.id, list(points), timeline.id)

    logger.info(
        "Live session completed: session_id=%s graph_id=%s points=%d",
        session.id,
        timeline.id,
        len(timeline.points),
    )
    return timeline, completed


class LiveReactionSampler:
    """Turns slider adjustments during a timed session into a timeline.

    Attributes:
        movie_id: Movie being watched.
        user_id: Viewer.
        tick_interval_sec: Seconds between clock ticks.
        tick_step: Percentage points the clock advances per tick.
    """

    def __init__(
        self,
        movie_id: str,
        user_id: str,
        store: "TimelineStore | None" = None,
        tick_interval_sec: float = DEFAULT_TICK_INTERVAL_SEC,
        tick_step: float = DEFAULT_TICK_STEP,
        session: LiveSession | None = None,
    ) -> None:
        if tick_interval_sec <= 0:
            raise ValueError(f"tick_interval_sec must be > 0, got {tick_interval_sec}")
        if not 0 < tick_step <= OFFSET_MAX:
            raise ValueError(f"tick_step must be in (0, 100], got {tick_step}")

        self.movie_id = movie_id
        self.user_id = user_id
        self.tick_interval_sec = tick_interval_sec
        self.tick_step = tick_step
        self._store = store
        self._session = session
        self._task: asyncio.Task | None = None
        self._clear()

    def _clear(self) -> None:
        self._state = SamplerState.IDLE
        self._progress = 0.0
        self._score = NEUTRAL_SCORE
        self._points: list[TimelinePoint] = []

    # -------------------------------------------------------------------------
    # State
    # -------------------------------------------------------------------------

    @property
    def state(self) -> SamplerState:
        return self._state

    @property
    def is_running(self) -> bool:
        return self._state is SamplerState.RUNNING

    @property
    def progress(self) -> float:
        """Current clock value in percent of runtime."""
        return self._progress

    @property
    def score(self) -> float:
        """Current slider value."""
        return self._score

    @property
    def points(self) -> list[TimelinePoint]:
        """Captured points in capture order."""
        return list(self._points)

    @property
    def session(self) -> LiveSession | None:
        return self._session

    # -------------------------------------------------------------------------
    # Transitions
    # -------------------------------------------------------------------------

    def open_session(self) -> LiveSession:
        """Create the backing session row."""
        if self._store is None:
            raise SessionStateError("No store attached to sampler", code="NO_SESSION")
        self._session = self._store.create_session(self.movie_id, self.user_id)
        logger.info(
            "Live session opened: session_id=%s movie_id=%s",
            self._session.id,
            self.movie_id,
        )
        return self._session

    def start(self) -> None:
        """Start or resume the clock without scheduling a timer."""
        if self._state in (SamplerState.ENDED, SamplerState.FINISHED):
            raise SessionStateError(
                "Clock has reached the end; finish or reset the session",
                code="CLOCK_ENDED",
            )
        self._state = SamplerState.RUNNING

    resume = start

    def play(self) -> asyncio.Task:
        """Start the clock and schedule the tick loop on the running event loop.

        Reaching 100 finishes the session from inside the task. A failed
        auto-finish is logged and re-raised there, so callers that need
        the outcome should await the returned task.
        """
        self.start()
        self._cancel_timer()
        self._task = asyncio.get_running_loop().create_task(self._tick_loop())
        return self._task

    def pause(self) -> None:
        """Stop the clock; no point is recorded."""
        self._cancel_timer()
        if self._state is SamplerState.RUNNING:
            self._state = SamplerState.PAUSED

    def tick(self) -> bool:
        """Advance the clock by one step.

        Reaching 100 stops the clock and, when a store is attached,
        finishes the session.

        Returns:
            True while the clock keeps running after this tick.
        """
        if self._state is not SamplerState.RUNNING:
            return False

        self._progress = min(OFFSET_MAX, round(self._progress + self.tick_step, 6))
        if self._progress < OFFSET_MAX:
            return True

        self._state = SamplerState.ENDED
        if self._store is not None:
            self._persist()
        return False

    def set_score(self, value: float) -> TimelinePoint | None:
        """Move the slider.

        Args:
            value: New score in [0, 10].

        Returns:
            The recorded point, or None when the clock is not running.

        Raises:
            TimelineValidationError: If the value is out of range.
        """
        point = TimelinePoint(offset=self._progress, score=value)
        self._score = point.score
        if self._state is not SamplerState.RUNNING:
            return None
        self._points.append(point)
        return point

    def finish(self) -> Timeline:
        """Stop the clock and persist the captured points.

        On failure the captured points stay in memory and the session
        stays open, so ``finish`` can be retried.

        Raises:
            SessionStateError: If there is no session or it is completed.
            StorageError: If persistence fails.
        """
        self._cancel_timer()
        if self._state is SamplerState.RUNNING:
            self._state = SamplerState.PAUSED
        return self._persist()

    def reset(self) -> LiveSession | None:
        """Discard captured points and clock state and open a fresh session."""
        self._cancel_timer()
        self._clear()
        self._session = None
        if self._store is not None:
            return self.open_session()
        return None

    # -------------------------------------------------------------------------
    # Internals
    # -------------------------------------------------------------------------

    def _persist(self) -> Timeline:
        if self._store is None or self._session is None:
            raise SessionStateError("Sampler has no open session", code="NO_SESSION")

        timeline, session = complete_session(self._store, self._session, self._points)
        self._session = session
        self._state = SamplerState.FINISHED
        return timeline

    def _cancel_timer(self) -> None:
        if self._task is not None and not self._task.done():
            self._task.cancel()
        self._task = None

    async def _tick_loop(self) -> None:
        while True:
            await asyncio.sleep(self.tick_interval_sec)
            try:
                running = self.tick()
            except Exception:
                logger.exception(
                    "Live session auto-finish failed: session_id=%s points=%d",
                    self._session.id if self._session is not None else None,
                    len(self._points),
                )
                raise
            if not running:
                return
