from __future__ import annotations

import json
import tempfile
import unittest
from pathlib import Path
from typing import Any, Dict, List, Optional
from unittest import mock

import requests

from voidclicker.engine.actions import AddEssence
from voidclicker.engine.catalog import load_default_catalog
from voidclicker.engine.session import GameSession
from voidclicker.engine.scheduler import Scheduler
from voidclicker.persistence import (
    CloudSync,
    LocalSaveStore,
    RemoteSaveClient,
    SaveError,
    SaveRepository,
    restore_session,
)

CATALOG = load_default_catalog()


class FakeClock:
    def __init__(self, now_ms: int = 0):
        self.now_ms = now_ms

    def __call__(self) -> int:
        return self.now_ms


class FakeRemote:
    def __init__(self, blobs: Optional[Dict[str, Dict[str, Any]]] = None, save_ok: bool = True):
        self.blobs = dict(blobs or {})
        self.save_ok = save_ok
        self.saved: List[tuple[str, Dict[str, Any]]] = []
        self.loads: List[str] = []

    def load(self, user_id: str) -> Optional[Dict[str, Any]]:
        self.loads.append(user_id)
        return self.blobs.get(user_id)

    def save(self, user_id: str, blob: Dict[str, Any]) -> bool:
        if self.save_ok:
            self.saved.append((user_id, blob))
        return self.save_ok


def fake_response(status_code: int = 200, payload: Any = None) -> mock.Mock:
    response = mock.Mock(status_code=status_code)
    if status_code >= 400:
        response.raise_for_status.side_effect = requests.HTTPError(f"{status_code} error")
    if isinstance(payload, Exception):
        response.json.side_effect = payload
    else:
        response.json.return_value = payload
    return response


class LocalSaveStoreTests(unittest.TestCase):
    def test_missing_file_reads_as_none(self) -> None:
        with tempfile.TemporaryDirectory() as tmp:
            store = LocalSaveStore(Path(tmp) / "nested" / "save.json")
            self.assertIsNone(store.get())
            self.assertIsNone(store.load_state())
            store.clear()

    def test_state_round_trip_and_clear(self) -> None:
        with tempfile.TemporaryDirectory() as tmp:
            store = LocalSaveStore(Path(tmp) / "nested" / "save.json")
            self.assertTrue(store.save_state({"essence": 3, "name": "Пустота"}))
            self.assertEqual(store.load_state(), {"essence": 3, "name": "Пустота"})
            self.assertFalse((Path(tmp) / "nested" / "save.json.tmp").exists())
            store.clear()
            self.assertIsNone(store.get())

    def test_garbage_blob_loads_as_none(self) -> None:
        with tempfile.TemporaryDirectory() as tmp:
            store = LocalSaveStore(Path(tmp) / "save.json")
            store.set("definitely not json")
            self.assertEqual(store.get(), "definitely not json")
            self.assertIsNone(store.load_state())

    def test_write_failure_returns_false(self) -> None:
        with tempfile.TemporaryDirectory() as tmp:
            blocker = Path(tmp) / "file"
            blocker.write_text("x", encoding="utf-8")
            store = LocalSaveStore(blocker / "save.json")
            with self.assertLogs("voidclicker.persistence", level="WARNING"):
                self.assertFalse(store.set("{}"))


class SaveRepositoryTests(unittest.TestCase):
    def test_put_get_delete(self) -> None:
        with tempfile.TemporaryDirectory() as tmp:
            repo = SaveRepository(saves_dir=Path(tmp))
            first = repo.put("player-1", {"essence": 1})
            second = repo.put("player-1", {"essence": 2})

            loaded = repo.get("player-1")
            self.assertIsNotNone(loaded)
            self.assertEqual(loaded.state, {"essence": 2})
            self.assertEqual(second.created_at, first.created_at)
            self.assertTrue(repo.delete("player-1"))
            self.assertFalse(repo.delete("player-1"))
            self.assertIsNone(repo.get("player-1"))

    def test_rejects_unsafe_user_ids_and_non_object_state(self) -> None:
        with tempfile.TemporaryDirectory() as tmp:
            repo = SaveRepository(saves_dir=Path(tmp))
            for user_id in ("../etc/passwd", "", "a b", "-leading"):
                with self.assertRaises(SaveError):
                    repo.put(user_id, {})
            with self.assertRaises(SaveError):
                repo.put("player", ["not", "an", "object"])  # type: ignore[arg-type]

    def test_iter_saves_skips_malformed_documents(self) -> None:
        with tempfile.TemporaryDirectory() as tmp:
            repo = SaveRepository(saves_dir=Path(tmp))
            repo.put("alice", {"essence": 1})
            repo.put("bob", {"essence": 2})
            (Path(tmp) / "broken.json").write_text("{", encoding="utf-8")
            (Path(tmp) / "nostate.json").write_text(json.dumps({"user_id": "x"}), encoding="utf-8")

            with self.assertLogs("voidclicker.persistence", level="WARNING"):
                users = [record.user_id for record in repo.iter_saves()]
            self.assertEqual(users, ["alice", "bob"])


class RemoteSaveClientTests(unittest.TestCase):
    def test_save_puts_state_envelope(self) -> None:
        http = mock.Mock()
        http.put.return_value = fake_response(200)
        client = RemoteSaveClient("http://example.test/", timeout_s=3, session=http)

        self.assertTrue(client.save("alice", {"essence": 5}))
        http.put.assert_called_once_with(
            "http://example.test/api/v1/saves/alice", json={"state": {"essence": 5}}, timeout=3
        )

    def test_save_failure_is_reported_not_raised(self) -> None:
        http = mock.Mock()
        http.put.return_value = fake_response(503)
        client = RemoteSaveClient("http://example.test", session=http)
        with self.assertLogs("voidclicker.persistence", level="WARNING"):
            self.assertFalse(client.save("alice", {}))

        http.put.side_effect = requests.ConnectionError("offline")
        with self.assertLogs("voidclicker.persistence", level="WARNING"):
            self.assertFalse(client.save("alice", {}))

    def test_load_handles_missing_and_invalid(self) -> None:
        http = mock.Mock()
        client = RemoteSaveClient("http://example.test", session=http)

        http.get.return_value = fake_response(200, {"user_id": "alice", "state": {"essence": 9}})
        self.assertEqual(client.load("alice"), {"essence": 9})

        http.get.return_value = fake_response(404)
        self.assertIsNone(client.load("alice"))

        http.get.return_value = fake_response(200, ValueError("bad json"))
        with self.assertLogs("voidclicker.persistence", level="WARNING"):
            self.assertIsNone(client.load("alice"))

        http.get.return_value = fake_response(200, {"state": "nope"})
        self.assertIsNone(client.load("alice"))

        http.get.side_effect = requests.Timeout("slow")
        with self.assertLogs("voidclicker.persistence", level="WARNING"):
            self.assertIsNone(client.load("alice"))


class CloudSyncTests(unittest.TestCase):
    def make(self, remote: FakeRemote, clock: Optional[FakeClock] = None) -> tuple[GameSession, CloudSync]:
        session = GameSession(CATALOG, seed=0, clock=clock or FakeClock())
        return session, CloudSync(session, remote, debounce_ms=2000, essence_threshold=10)  # type: ignore[arg-type]

    def test_first_successful_load_wins(self) -> None:
        remote = FakeRemote({"alice": {"essence": 50}})
        session, sync = self.make(remote)

        self.assertTrue(sync.load("alice"))
        session.dispatch(AddEssence(5.0))
        remote.blobs["alice"] = {"essence": 999}
        self.assertFalse(sync.load("alice"))

        self.assertEqual(session.get_state().essence, 55.0)
        self.assertEqual(remote.loads, ["alice"])

    def test_failed_load_can_be_retried(self) -> None:
        remote = FakeRemote()
        session, sync = self.make(remote)
        self.assertFalse(sync.load("bob"))
        remote.blobs["bob"] = {"essence": 7}
        self.assertTrue(sync.load("bob"))
        self.assertEqual(session.get_state().essence, 7.0)

    def test_debounced_save_after_essence_moves(self) -> None:
        clock = FakeClock(1000)
        remote = FakeRemote()
        session, sync = self.make(remote, clock)
        sync.user_id = "alice"

        session.dispatch(AddEssence(5.0))
        self.assertIsNone(sync.pending_due_ms)

        session.dispatch(AddEssence(6.0))
        self.assertEqual(sync.pending_due_ms, 3000)
        self.assertFalse(sync.poll(2999))
        self.assertTrue(sync.poll(3000))

        self.assertEqual(len(remote.saved), 1)
        self.assertEqual(remote.saved[0][1]["essence"], 11.0)
        self.assertIsNone(sync.pending_due_ms)

    def test_flush_requires_user_and_keeps_pending_on_failure(self) -> None:
        remote = FakeRemote(save_ok=False)
        session, sync = self.make(remote)
        self.assertFalse(sync.flush())

        sync.user_id = "alice"
        session.dispatch(AddEssence(50.0))
        self.assertFalse(sync.poll(10_000))
        self.assertIsNotNone(sync.pending_due_ms)

    def test_attach_and_close(self) -> None:
        clock = FakeClock(0)
        remote = FakeRemote()
        session, sync = self.make(remote, clock)
        sync.user_id = "alice"
        scheduler = Scheduler(session, start_ms=0)
        sync.attach(scheduler, interval_ms=1000, poll_interval_ms=500)

        scheduler.run_until(2000)
        self.assertEqual(len(remote.saved), 2)

        self.assertTrue(sync.close())
        session.dispatch(AddEssence(500.0))
        self.assertIsNone(sync.pending_due_ms)
        self.assertEqual(len(remote.saved), 3)
        scheduler.stop()


class RestoreSessionTests(unittest.TestCase):
    def test_restore_applies_local_blob(self) -> None:
        with tempfile.TemporaryDirectory() as tmp:
            store = LocalSaveStore(Path(tmp) / "save.json")
            store.save_state({"essence": 12, "lastSaveTime": 1000})
            session = GameSession(CATALOG, clock=FakeClock(4000))

            applied, offline_ms = restore_session(session, store)

            self.assertTrue(applied)
            self.assertEqual(offline_ms, 3000)
            self.assertEqual(session.get_state().essence, 12.0)

    def test_restore_without_blob_is_noop(self) -> None:
        with tempfile.TemporaryDirectory() as tmp:
            session = GameSession(CATALOG, clock=FakeClock())
            self.assertEqual(restore_session(session, LocalSaveStore(Path(tmp) / "none.json")), (False, 0))


if __name__ == "__main__":
    unittest.main()
