from __future__ import annotations

import time
import unittest
from dataclasses import replace
from types import SimpleNamespace

from voidclicker.engine.actions import AddEssence, BuyUpgrade
from voidclicker.engine.catalog import load_default_catalog
from voidclicker.engine.scheduler import Scheduler
from voidclicker.engine.session import GameSession
from voidclicker.engine.state import GameState, initial_game_state

CATALOG = load_default_catalog()


class FakeClock:
    def __init__(self, now_ms: int = 0):
        self.now_ms = now_ms

    def __call__(self) -> int:
        return self.now_ms


def with_dps(state: GameState, dps1: int) -> GameState:
    upgrades = tuple(replace(item, count=dps1) if item.id == "dps1" else item for item in state.upgrades)
    return replace(state, upgrades=upgrades)


def make_session(state: GameState | None = None, clock: FakeClock | None = None) -> GameSession:
    return GameSession(CATALOG, initial_state=state or initial_game_state(CATALOG), seed=0, clock=clock or FakeClock())


class TimerTests(unittest.TestCase):
    def test_ticks_fire_every_interval_and_accrue(self) -> None:
        session = make_session(with_dps(initial_game_state(CATALOG), 10))
        scheduler = Scheduler(session, start_ms=0)

        fired = scheduler.run_until(1000)

        self.assertEqual(scheduler.tick_timer.fired, 10)
        self.assertEqual(scheduler.energy_timer.fired, 2)
        self.assertEqual(scheduler.autosave_timer.fired, 0)
        self.assertEqual(fired, 12)
        self.assertAlmostEqual(session.get_state().essence, 10.0)
        self.assertEqual(session.get_state().last_tick_time, 1000)

    def test_achievements_unlock_in_the_same_cycle(self) -> None:
        state = replace(with_dps(initial_game_state(CATALOG), 9), essence=999.5, total_essence=999.5)
        session = make_session(state)
        scheduler = Scheduler(session, start_ms=0)

        scheduler.run_until(100)

        achievements = {item.id: item.unlocked for item in session.get_state().achievements}
        self.assertTrue(achievements["ess1"])
        self.assertFalse(achievements["ess2"])
        self.assertEqual(session.get_state().achievement_points, 1)

    def test_energy_timer_restores_one_per_interval(self) -> None:
        session = make_session(replace(initial_game_state(CATALOG), energy=10.0))
        scheduler = Scheduler(session, start_ms=0)

        scheduler.run_until(1500)

        self.assertEqual(session.get_state().energy, 13.0)

    def test_energy_timer_rearms_when_regen_changes(self) -> None:
        session = make_session(replace(initial_game_state(CATALOG), essence=300.0, total_essence=300.0, energy=5.0))
        scheduler = Scheduler(session, start_ms=0)
        scheduler.run_until(200)

        self.assertTrue(session.dispatch(BuyUpgrade("regen1")))
        self.assertEqual(scheduler.energy_timer.interval_ms, 450.0)
        self.assertEqual(scheduler.energy_timer.next_due_ms, 650.0)

        scheduler.run_until(640)
        self.assertEqual(scheduler.energy_timer.fired, 0)
        scheduler.run_until(650)
        self.assertEqual(scheduler.energy_timer.fired, 1)
        self.assertEqual(session.get_state().energy, 6.0)

    def test_autosave_receives_snapshots(self) -> None:
        clock = FakeClock(0)
        snapshots = []
        session = make_session(clock=clock)
        scheduler = Scheduler(session, autosave_interval_ms=5000, on_autosave=snapshots.append, start_ms=0)

        clock.now_ms = 10_000
        scheduler.run_until(10_000)

        self.assertEqual(len(snapshots), 2)
        self.assertEqual(snapshots[-1]["lastSaveTime"], 10_000)

    def test_missed_intervals_are_skipped_not_replayed(self) -> None:
        session = make_session(with_dps(initial_game_state(CATALOG), 10))
        scheduler = Scheduler(session, start_ms=0, max_catch_up_ms=1000)

        fired = scheduler.run_until(3_600_000)

        self.assertEqual(scheduler.tick_timer.fired, 1)
        self.assertEqual(fired, 3)
        self.assertAlmostEqual(session.get_state().essence, 1.0)
        self.assertEqual(scheduler.tick_timer.next_due_ms, 3_600_100)

    def test_custom_timer_and_validation(self) -> None:
        scheduler = Scheduler(make_session(), start_ms=0)
        hits = []
        timer = scheduler.add_timer("bonus", 250, hits.append)

        scheduler.run_until(1000)

        self.assertEqual(hits, [250, 500, 750, 1000])
        self.assertEqual(timer.fired, 4)
        with self.assertRaises(ValueError):
            scheduler.add_timer("bad", 0, hits.append)
        with self.assertRaises(ValueError):
            Scheduler(make_session(), tick_interval_ms=0)

    def test_failing_callback_is_logged_and_timers_keep_running(self) -> None:
        session = make_session(with_dps(initial_game_state(CATALOG), 10))
        scheduler = Scheduler(session, start_ms=0)
        hits = []

        def explode(now_ms: int) -> None:
            hits.append(now_ms)
            raise RuntimeError("boom")

        broken = scheduler.add_timer("broken", 250, explode)
        with self.assertLogs("voidclicker.engine.scheduler", level="ERROR") as logs:
            fired = scheduler.run_until(1000)

        self.assertEqual(hits, [250, 500, 750, 1000])
        self.assertEqual(broken.fired, 4)
        self.assertEqual(scheduler.tick_timer.fired, 10)
        self.assertEqual(fired, 16)
        self.assertAlmostEqual(session.get_state().essence, 10.0)
        self.assertIn("broken", logs.output[0])

        with self.assertLogs("voidclicker.engine.scheduler", level="ERROR"):
            scheduler.run_until(1250)
        self.assertEqual(hits[-1], 1250)

    def test_from_config_uses_intervals(self) -> None:
        config = SimpleNamespace(tick_interval_ms=250, autosave_interval_ms=2000, max_catch_up_ms=500)
        scheduler = Scheduler.from_config(make_session(), config)
        self.assertEqual(scheduler.tick_timer.interval_ms, 250)
        self.assertEqual(scheduler.autosave_timer.interval_ms, 2000)
        self.assertEqual(scheduler.max_catch_up_ms, 500)


class StopTests(unittest.TestCase):
    def test_stop_cancels_every_timer(self) -> None:
        session = make_session(with_dps(initial_game_state(CATALOG), 10))
        scheduler = Scheduler(session, start_ms=0)
        scheduler.run_until(100)
        scheduler.stop()

        self.assertTrue(scheduler.stopped)
        self.assertEqual(scheduler.run_until(10_000), 0)
        before = session.get_state()
        session.dispatch(AddEssence(300.0))
        session.dispatch(BuyUpgrade("regen1"))
        self.assertEqual(scheduler.energy_timer.interval_ms, before.energy_regen_rate)
        with self.assertRaises(RuntimeError):
            scheduler.start()

    def test_background_thread_follows_session_clock(self) -> None:
        clock = FakeClock(0)
        session = make_session(clock=clock)
        scheduler = Scheduler(session)
        scheduler.start(poll_interval_s=0.005)
        try:
            clock.now_ms = 300
            deadline = time.monotonic() + 5.0
            while scheduler.tick_timer.fired < 3 and time.monotonic() < deadline:
                time.sleep(0.01)
        finally:
            scheduler.stop()

        self.assertEqual(scheduler.tick_timer.fired, 3)
        self.assertEqual(session.get_state().last_tick_time, 300)
        self.assertIsNotNone(scheduler._thread)
        self.assertFalse(scheduler._thread.is_alive())


if __name__ == "__main__":
    unittest.main()
