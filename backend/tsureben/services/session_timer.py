"""Pomodoro session state machine.

``idle -> running <-> paused -> idle``. Finishing records the session and drops
the timer straight back to idle, ready for the next ``start``.

Elapsed time is never counted up tick by tick; it is recomputed from the wall
clock as ``now - start_time + pause_elapsed_seconds`` so a throttled or
suspended client catches up on its next sample. Storage side effects go
through a ``SessionSink`` so the machine itself stays pure.
"""
from __future__ import annotations

import asyncio
import logging
import math
from datetime import datetime
from typing import Callable, Protocol

from tsureben.core.errors import (
    InvalidDuration,
    InvalidTransition,
    NoActivePlan,
    ReauthRequired,
)
from tsureben.schemas.plan import StudyPlanEntry
from tsureben.schemas.pomodoro import (
    FinishResult,
    PomodoroLogEntry,
    TimerAnchor,
    TimerState,
)

logger = logging.getLogger(__name__)

REAUTH_REQUIRED = "reauth_required"
INVALID_DURATION = "invalid_duration"

# Returns the operator's raw answer, or None to cancel.
ManualPrompt = Callable[[str], "int | str | None"]


class SessionSink(Protocol):
    def open_session(self, log_entry: PomodoroLogEntry) -> None:
        """Write the null-duration log entry and the presence announcement."""

    def close_session(self, session_date: str, start_time: str, minutes: int) -> None:
        """Set the duration of the session's placeholder log entry."""

    def withdraw(self) -> None:
        """Delete the presence announcement."""

    def claim_anchor(self, anchor: TimerAnchor) -> bool:
        """Store the anchor only if none exists. False means another start won."""

    def save_anchor(self, anchor: TimerAnchor) -> None: ...

    def clear_anchor(self) -> None: ...


class Identity(Protocol):
    def is_valid(self) -> bool: ...

    def reauthenticate(self) -> bool: ...


class Ticker:
    """Periodic callback on the running event loop. Cancel with ``stop``."""

    def __init__(self, interval: float, callback: Callable[[], None]) -> None:
        self.interval = interval
        self.callback = callback
        self._task: asyncio.Task | None = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        if self.running:
            return
        self._task = asyncio.get_running_loop().create_task(self._run())

    def stop(self) -> None:
        if self._task is not None:
            self._task.cancel()
            self._task = None

    async def _run(self) -> None:
        while True:
            await asyncio.sleep(self.interval)
            try:
                self.callback()
            except Exception:
                logger.exception("Timer tick callback failed; stopping ticker")
                self._task = None
                return


def validate_minutes(value: float, minimum: int = 1, maximum: int = 1000) -> int:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise InvalidDuration(value)
    if not math.isfinite(value) or value != int(value):
        raise InvalidDuration(value)
    if not minimum <= value <= maximum:
        raise InvalidDuration(value)
    return int(value)


class SessionTimer:
    def __init__(
        self,
        sink: SessionSink,
        *,
        clock: Callable[[], datetime] | None = None,
        on_tick: Callable[[int], None] | None = None,
        tick_interval: float = 0.2,
        min_minutes: int = 1,
        max_minutes: int = 1000,
    ) -> None:
        self.sink = sink
        self.clock = clock
        self.on_tick = on_tick
        self.min_minutes = min_minutes
        self.max_minutes = max_minutes
        self._ticker = Ticker(tick_interval, self._tick) if on_tick else None

        self.state = TimerState.IDLE
        self.session_date: str | None = None
        self.initial_start_time: datetime | None = None
        self.start_time: datetime | None = None
        self.pause_elapsed_seconds = 0.0
        self.plan: StudyPlanEntry | None = None

    @classmethod
    def restore(cls, anchor: TimerAnchor | None, sink: SessionSink, **kwargs) -> "SessionTimer":
        timer = cls(sink, **kwargs)
        if anchor is None or anchor.state not in (TimerState.RUNNING, TimerState.PAUSED):
            return timer
        timer.state = anchor.state
        timer.session_date = anchor.session_date
        timer.initial_start_time = anchor.initial_start_time
        timer.start_time = anchor.start_time
        timer.pause_elapsed_seconds = anchor.pause_elapsed_seconds
        timer.plan = anchor.plan
        if timer.state == TimerState.RUNNING:
            timer._start_ticking()
        return timer

    def to_anchor(self) -> TimerAnchor:
        return TimerAnchor(
            state=self.state,
            session_date=self.session_date,
            initial_start_time=self.initial_start_time,
            start_time=self.start_time,
            pause_elapsed_seconds=self.pause_elapsed_seconds,
            plan=self.plan,
        )

    @property
    def active(self) -> bool:
        return self.state in (TimerState.RUNNING, TimerState.PAUSED)

    @property
    def ticking(self) -> bool:
        return self._ticker is not None and self._ticker.running

    def exact_elapsed(self, now: datetime) -> float:
        """Elapsed seconds with sub-second precision; paused time excluded."""
        if self.state == TimerState.RUNNING and self.start_time is not None:
            running = max(0.0, (now - self.start_time).total_seconds())
            return running + self.pause_elapsed_seconds
        if self.state == TimerState.PAUSED:
            return self.pause_elapsed_seconds
        return 0.0

    def elapsed_seconds(self, now: datetime) -> int:
        return math.floor(self.exact_elapsed(now))

    def start(self, plan: StudyPlanEntry | None, now: datetime) -> bool:
        """Begin a session on ``plan``. Returns False when nothing changed."""
        if self.state == TimerState.RUNNING:
            return False
        if self.state == TimerState.PAUSED:
            self.resume(now)
            return True
        if plan is None:
            raise NoActivePlan("No study plan covers the current time")

        session_date = now.date().isoformat()
        anchor = TimerAnchor(
            state=TimerState.RUNNING,
            session_date=session_date,
            initial_start_time=now,
            start_time=now,
            plan=plan,
        )
        if not self.sink.claim_anchor(anchor):
            logger.info(f"Session start on {session_date} already claimed by another request")
            return False
        try:
            self.sink.open_session(
                PomodoroLogEntry(
                    date=session_date,
                    start_time=now.strftime("%H:%M"),
                    duration=None,
                    subject=plan.subject or "その他",
                    topic=plan.topic or "ポモドーロ",
                    book=plan.book,
                    content=plan.content,
                )
            )
        except Exception:
            self.sink.clear_anchor()
            raise
        self.state = TimerState.RUNNING
        self.session_date = session_date
        self.initial_start_time = now
        self.start_time = now
        self.pause_elapsed_seconds = 0.0
        self.plan = plan
        self._start_ticking()
        logger.info(f"Session started: {session_date} {now:%H:%M} {plan.subject}/{plan.topic}")
        return True

    def pause(self, now: datetime) -> None:
        if self.state != TimerState.RUNNING:
            raise InvalidTransition("pause", self.state.value)
        self.pause_elapsed_seconds = self.exact_elapsed(now)
        self.state = TimerState.PAUSED
        self._stop_ticking()
        self.sink.save_anchor(self.to_anchor())

    def resume(self, now: datetime) -> None:
        if self.state != TimerState.PAUSED:
            raise InvalidTransition("resume", self.state.value)
        self.start_time = now
        self.state = TimerState.RUNNING
        self.sink.save_anchor(self.to_anchor())
        self._start_ticking()

    def finish(
        self,
        now: datetime,
        identity: Identity | None = None,
        prompt: ManualPrompt | None = None,
    ) -> FinishResult:
        """Record the session's minutes and return to idle.

        Falls back to ``prompt`` for a hand-entered minute count when the
        identity cannot be re-established or the measured duration is out of
        range. A cancelled prompt discards the session without touching the
        log.
        """
        if not self.active:
            raise InvalidTransition("finish", self.state.value)

        reason = None
        minutes: int | None = None
        measured = math.floor(self.exact_elapsed(now) / 60)
        if identity is not None and not identity.is_valid() and not identity.reauthenticate():
            reason = REAUTH_REQUIRED
        else:
            try:
                minutes = validate_minutes(measured, self.min_minutes, self.max_minutes)
            except InvalidDuration:
                reason = INVALID_DURATION

        if reason is not None:
            minutes = self._ask_manual(prompt, reason, measured)
            if minutes is None:
                logger.info(f"Session on {self.session_date} discarded at manual entry ({reason})")
                self.discard()
                return FinishResult(saved=False, reason=reason)

        self._stop_ticking()
        self.sink.close_session(
            self.session_date, self.initial_start_time.strftime("%H:%M"), minutes
        )
        self.sink.withdraw()
        self.sink.clear_anchor()
        logger.info(f"Session finished: {self.session_date} {minutes} min")
        self._reset()
        return FinishResult(saved=True, minutes=minutes, manual=reason is not None, reason=reason)

    def discard(self) -> None:
        """Drop the running session. The placeholder log entry is left as is."""
        if not self.active:
            raise InvalidTransition("discard", self.state.value)
        self._stop_ticking()
        self.sink.withdraw()
        self.sink.clear_anchor()
        self._reset()

    def teardown(self) -> None:
        self._stop_ticking()

    def _ask_manual(
        self, prompt: ManualPrompt | None, reason: str, measured: int
    ) -> int | None:
        if prompt is None:
            if reason == REAUTH_REQUIRED:
                raise ReauthRequired("Sign-in expired and could not be renewed")
            raise InvalidDuration(measured)
        while True:
            answer = prompt(reason)
            if answer is None:
                return None
            try:
                return validate_minutes(
                    int(str(answer).strip()), self.min_minutes, self.max_minutes
                )
            except (ValueError, InvalidDuration):
                logger.debug(f"Rejected manual minutes {answer!r}")

    def _reset(self) -> None:
        self.state = TimerState.IDLE
        self.session_date = None
        self.initial_start_time = None
        self.start_time = None
        self.pause_elapsed_seconds = 0.0
        self.plan = None

    def _tick(self) -> None:
        if self.on_tick is None or self.clock is None:
            return
        self.on_tick(self.elapsed_seconds(self.clock()))

    def _start_ticking(self) -> None:
        if self._ticker is not None:
            self._ticker.start()

    def _stop_ticking(self) -> None:
        if self._ticker is not None:
            self._ticker.stop()
