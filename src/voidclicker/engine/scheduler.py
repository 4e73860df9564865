"""Periodic drivers for a :class:`GameSession`.

Timers never touch the state directly; each firing dispatches ordinary actions
into the session. ``run_until`` advances every timer to a given clock value in
due-time order, which makes the schedule reproducible in tests. ``start`` runs
the same loop on a daemon thread against the session clock.
"""
from __future__ import annotations

import logging
import threading
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional

from .actions import CheckAchievements, RestoreEnergy, Tick
from .session import GameSession
from .state import GameState

logger = logging.getLogger(__name__)

TimerCallback = Callable[[int], None]


@dataclass(slots=True)
class PeriodicTimer:
    name: str
    interval_ms: float
    callback: TimerCallback
    next_due_ms: float
    cancelled: bool = False
    fired: int = 0

    def rearm(self, now_ms: float, interval_ms: Optional[float] = None) -> None:
        if interval_ms is not None:
            self.interval_ms = interval_ms
        self.next_due_ms = now_ms + self.interval_ms

    def cancel(self) -> None:
        self.cancelled = True


class Scheduler:
    def __init__(
        self,
        session: GameSession,
        tick_interval_ms: float = 100.0,
        autosave_interval_ms: float = 5000.0,
        on_autosave: Optional[Callable[[Dict[str, Any]], Any]] = None,
        max_catch_up_ms: float = 1000.0,
        start_ms: Optional[int] = None,
    ):
        if tick_interval_ms <= 0 or autosave_interval_ms <= 0:
            raise ValueError("Timer intervals must be > 0.")
        self.session = session
        self.on_autosave = on_autosave
        self.max_catch_up_ms = max_catch_up_ms
        self._lock = threading.RLock()
        self._timers: List[PeriodicTimer] = []
        self._stopped = False
        self._stop_event = threading.Event()
        self._thread: Optional[threading.Thread] = None
        self._now_ms = float(session.clock() if start_ms is None else start_ms)

        self.tick_timer = self.add_timer("tick", tick_interval_ms, self._fire_tick)
        self.energy_timer = self.add_timer("energy", session.get_state().energy_regen_rate, self._fire_energy)
        self.autosave_timer = self.add_timer("autosave", autosave_interval_ms, self._fire_autosave)
        self._unsubscribe = session.subscribe(self._on_state_change)

    @classmethod
    def from_config(cls, session: GameSession, config: Any, on_autosave=None) -> "Scheduler":
        return cls(
            session,
            tick_interval_ms=config.tick_interval_ms,
            autosave_interval_ms=config.autosave_interval_ms,
            on_autosave=on_autosave,
            max_catch_up_ms=config.max_catch_up_ms,
        )

    @property
    def now_ms(self) -> float:
        return self._now_ms

    @property
    def stopped(self) -> bool:
        return self._stopped

    def add_timer(self, name: str, interval_ms: float, callback: TimerCallback) -> PeriodicTimer:
        if interval_ms <= 0:
            raise ValueError(f"Timer '{name}' interval must be > 0.")
        with self._lock:
            timer = PeriodicTimer(name=name, interval_ms=interval_ms, callback=callback, next_due_ms=self._now_ms + interval_ms)
            self._timers.append(timer)
            return timer

    def _fire_tick(self, due_ms: int) -> None:
        self.session.dispatch(Tick(delta_ms=self.tick_timer.interval_ms, now_ms=due_ms))
        self.session.dispatch(CheckAchievements())

    def _fire_energy(self, due_ms: int) -> None:
        self.session.dispatch(RestoreEnergy())

    def _fire_autosave(self, due_ms: int) -> None:
        if self.on_autosave is None:
            return
        self.on_autosave(self.session.snapshot_for_save())

    def _on_state_change(self, previous: GameState, current: GameState) -> None:
        if previous.energy_regen_rate == current.energy_regen_rate:
            return
        with self._lock:
            if self._stopped:
                return
            logger.debug("Energy regen changed %.0f -> %.0f ms; re-arming.", previous.energy_regen_rate, current.energy_regen_rate)
            self.energy_timer.rearm(self._now_ms, current.energy_regen_rate)

    def _next_due(self, now_ms: float) -> Optional[PeriodicTimer]:
        due = [timer for timer in self._timers if not timer.cancelled and timer.next_due_ms <= now_ms]
        if not due:
            return None
        return min(due, key=lambda timer: timer.next_due_ms)

    def run_until(self, now_ms: float) -> int:
        """Fire every timer due at or before ``now_ms``; return the number of firings.

        Timers further behind than ``max_catch_up_ms`` (e.g. after the process
        was suspended) skip the missed intervals instead of replaying them.
        """
        fired = 0
        with self._lock:
            if self._stopped:
                return 0
            for timer in self._timers:
                behind = now_ms - timer.next_due_ms
                if not timer.cancelled and behind > self.max_catch_up_ms:
                    logger.debug("Timer %s is %.0f ms behind; skipping missed intervals.", timer.name, behind)
                    timer.next_due_ms = now_ms
            while not self._stopped:
                timer = self._next_due(now_ms)
                if timer is None:
                    break
                self._now_ms = timer.next_due_ms
                timer.next_due_ms += timer.interval_ms
                timer.fired += 1
                try:
                    timer.callback(int(self._now_ms))
                except Exception:
                    logger.exception("Timer %s callback failed.", timer.name)
                fired += 1
            if not self._stopped:
                self._now_ms = max(self._now_ms, now_ms)
        return fired

    def start(self, poll_interval_s: float = 0.02) -> None:
        with self._lock:
            if self._stopped:
                raise RuntimeError("Scheduler has been stopped.")
            if self._thread is not None:
                return
            self._thread = threading.Thread(target=self._run_loop, args=(poll_interval_s,), name="voidclicker-scheduler", daemon=True)
            self._thread.start()

    def _run_loop(self, poll_interval_s: float) -> None:
        while not self._stop_event.wait(poll_interval_s):
            self.run_until(self.session.clock())

    def stop(self) -> None:
        """Cancel all timers. No action is dispatched once this returns."""
        self._stop_event.set()
        with self._lock:
            self._stopped = True
            for timer in self._timers:
                timer.cancel()
        self._unsubscribe()
        thread = self._thread
        if thread is not None and thread is not threading.current_thread():
            thread.join(timeout=5.0)
