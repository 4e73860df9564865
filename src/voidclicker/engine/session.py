from __future__ import annotations

import logging
import random
import threading
import time
from dataclasses import replace
from typing import Any, Callable, Dict, List, Optional

from .actions import Action, LoadGame
from .migration import migrate_state, offline_duration_ms
from .models import Catalog
from .reducer import reduce
from .state import GameState, initial_game_state

logger = logging.getLogger(__name__)

Listener = Callable[[GameState, GameState], None]


def wall_clock_ms() -> int:
    return int(time.time() * 1000)


class GameSession:
    """Owns one player's ``GameState`` for the lifetime of a session.

    Every mutation goes through :meth:`dispatch`, which runs the reducer under a
    single lock so that read, reduce and publish are atomic per action. Timer
    threads and request handlers can therefore share one session safely.
    """

    def __init__(
        self,
        catalog: Catalog,
        initial_state: Optional[GameState] = None,
        seed: Optional[int] = None,
        clock: Optional[Callable[[], int]] = None,
    ):
        self.catalog = catalog
        self.clock = clock or wall_clock_ms
        self._rng = random.Random(seed)
        self._lock = threading.Lock()
        self._listeners: List[Listener] = []
        self._state = initial_state if initial_state is not None else initial_game_state(catalog, self.clock())

    def get_state(self) -> GameState:
        with self._lock:
            return self._state

    def dispatch(self, action: Action) -> bool:
        """Apply ``action``; return True when the state changed."""
        with self._lock:
            previous = self._state
            current = reduce(previous, action, self.catalog, self._rng)
            if current is previous:
                return False
            self._state = current
            listeners = list(self._listeners)

        for listener in listeners:
            try:
                listener(previous, current)
            except Exception:
                logger.exception("State listener %r failed.", listener)
        return True

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """Register ``listener(previous, current)``; returns an unsubscribe callable."""
        with self._lock:
            self._listeners.append(listener)

        def unsubscribe() -> None:
            with self._lock:
                if listener in self._listeners:
                    self._listeners.remove(listener)

        return unsubscribe

    def snapshot_for_save(self) -> Dict[str, Any]:
        """Serializable copy of the current state with a fresh save timestamp.

        The session itself is not modified.
        """
        state = self.get_state()
        return replace(state, last_save_time=self.clock()).to_dict()

    def apply_loaded_snapshot(self, blob: Any) -> None:
        now_ms = self.clock()
        offline_ms = offline_duration_ms(blob, now_ms)
        if offline_ms:
            logger.info("Loaded save last written %.1f s ago; no offline progress granted.", offline_ms / 1000.0)
        self.dispatch(LoadGame(payload=blob, now_ms=now_ms))


def session_from_blob(
    catalog: Catalog,
    blob: Any,
    seed: Optional[int] = None,
    clock: Optional[Callable[[], int]] = None,
) -> GameSession:
    clock = clock or wall_clock_ms
    return GameSession(catalog, migrate_state(blob, catalog, clock()), seed=seed, clock=clock)
