"""Save persistence: local blob cache, server-side save store, HTTP client.

Local and remote persistence are independent backends. Failures on the client
side are logged and surfaced as ``False``/``None`` so that a broken disk or
network never disturbs the running session.
"""
from __future__ import annotations

import json
import logging
import re
import threading
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Callable, Dict, Iterator, Optional, Set, Tuple

import requests

from .engine.migration import coerce_payload, offline_duration_ms
from .engine.session import GameSession
from .engine.state import GameState

logger = logging.getLogger(__name__)

_USER_ID_RE = re.compile(r"^[A-Za-z0-9][A-Za-z0-9_.@-]{0,127}$")


class SaveError(RuntimeError):
    """Raised when a save document cannot be stored or addressed."""


def _utc_now_iso() -> str:
    return time.strftime("%Y-%m-%dT%H:%M:%SZ", time.gmtime())


class LocalSaveStore:
    """File-backed string blob, the desktop counterpart of browser local storage."""

    def __init__(self, path: Path | str):
        self.path = Path(path)

    def get(self) -> Optional[str]:
        try:
            return self.path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return None
        except (OSError, UnicodeDecodeError) as exc:
            logger.warning("Could not read local save %s: %s", self.path, exc)
            return None

    def set(self, blob: str) -> bool:
        tmp_path = self.path.with_name(self.path.name + ".tmp")
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            tmp_path.write_text(blob, encoding="utf-8")
            tmp_path.replace(self.path)
        except OSError as exc:
            logger.warning("Could not write local save %s: %s", self.path, exc)
            return False
        return True

    def clear(self) -> None:
        try:
            self.path.unlink()
        except FileNotFoundError:
            pass

    def save_state(self, snapshot: Dict[str, Any]) -> bool:
        return self.set(json.dumps(snapshot, ensure_ascii=False))

    def load_state(self) -> Optional[Dict[str, Any]]:
        blob = self.get()
        if blob is None:
            return None
        payload = coerce_payload(blob)
        return payload or None


@dataclass(slots=True, frozen=True)
class SaveRecord:
    user_id: str
    state: Dict[str, Any]
    created_at: str
    updated_at: str

    def to_dict(self) -> Dict[str, Any]:
        return {
            "user_id": self.user_id,
            "state": self.state,
            "created_at": self.created_at,
            "updated_at": self.updated_at,
        }


class SaveRepository:
    """Create-or-update JSON save documents keyed by user id."""

    def __init__(self, project_root: Optional[Path] = None, saves_dir: Optional[Path] = None):
        if project_root is None:
            project_root = Path(__file__).resolve().parents[2]
        self.project_root = Path(project_root)
        self.saves_dir = Path(saves_dir) if saves_dir is not None else self.project_root / "runtime" / "saves"
        self.saves_dir.mkdir(parents=True, exist_ok=True)
        self._lock = threading.Lock()

    @staticmethod
    def validate_user_id(user_id: str) -> str:
        normalized = str(user_id).strip()
        if not _USER_ID_RE.match(normalized):
            raise SaveError(f"Invalid user id: {user_id!r}")
        return normalized

    def _save_path(self, user_id: str) -> Path:
        return self.saves_dir / f"{self.validate_user_id(user_id)}.json"

    def _read_record(self, path: Path) -> SaveRecord:
        try:
            payload = json.loads(path.read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError) as exc:
            raise SaveError(f"Save document is unreadable: {path.name}: {exc}") from exc
        if not isinstance(payload, dict) or not isinstance(payload.get("state"), dict):
            raise SaveError(f"Save document is malformed: {path.name}")
        return SaveRecord(
            user_id=str(payload.get("user_id", path.stem)),
            state=payload["state"],
            created_at=str(payload.get("created_at", "")),
            updated_at=str(payload.get("updated_at", "")),
        )

    def put(self, user_id: str, state: Dict[str, Any]) -> SaveRecord:
        if not isinstance(state, dict):
            raise SaveError("Save state must be a JSON object.")
        path = self._save_path(user_id)
        with self._lock:
            now = _utc_now_iso()
            created_at = now
            if path.exists():
                try:
                    created_at = self._read_record(path).created_at or now
                except SaveError:
                    logger.warning("Overwriting unreadable save document for %s.", user_id)
            record = SaveRecord(user_id=path.stem, state=state, created_at=created_at, updated_at=now)
            tmp_path = path.with_name(path.name + ".tmp")
            tmp_path.write_text(json.dumps(record.to_dict(), ensure_ascii=False, indent=2), encoding="utf-8")
            tmp_path.replace(path)
        return record

    def get(self, user_id: str) -> Optional[SaveRecord]:
        path = self._save_path(user_id)
        if not path.exists():
            return None
        return self._read_record(path)

    def delete(self, user_id: str) -> bool:
        path = self._save_path(user_id)
        with self._lock:
            if not path.exists():
                return False
            path.unlink()
        return True

    def iter_saves(self) -> Iterator[SaveRecord]:
        for path in sorted(self.saves_dir.glob("*.json")):
            try:
                yield self._read_record(path)
            except SaveError as exc:
                logger.warning("Skipping save document: %s", exc)


class RemoteSaveClient:
    """HTTP client for the save endpoints served by :mod:`voidclicker.api`."""

    def __init__(self, base_url: str, timeout_s: float = 10.0, session: Optional[requests.Session] = None):
        self.base_url = base_url.rstrip("/")
        self.timeout_s = timeout_s
        self.http = session or requests.Session()

    def _save_url(self, user_id: str) -> str:
        return f"{self.base_url}/api/v1/saves/{user_id}"

    def save(self, user_id: str, blob: Dict[str, Any]) -> bool:
        try:
            response = self.http.put(self._save_url(user_id), json={"state": blob}, timeout=self.timeout_s)
            response.raise_for_status()
        except requests.RequestException as exc:
            logger.warning("Remote save for %s failed: %s", user_id, exc)
            return False
        return True

    def load(self, user_id: str) -> Optional[Dict[str, Any]]:
        try:
            response = self.http.get(self._save_url(user_id), timeout=self.timeout_s)
            if response.status_code == 404:
                return None
            response.raise_for_status()
            payload = response.json()
        except requests.RequestException as exc:
            logger.warning("Remote load for %s failed: %s", user_id, exc)
            return None
        except ValueError as exc:
            logger.warning("Remote load for %s returned invalid JSON: %s", user_id, exc)
            return None
        state = payload.get("state") if isinstance(payload, dict) else None
        return state if isinstance(state, dict) else None


class CloudSync:
    """Remote save policy for one session.

    * the first successful load for a user id wins; later loads for the same id
      are ignored for the rest of the session;
    * a save is debounced ``debounce_ms`` after essence moved by more than
      ``essence_threshold`` since the last successful save;
    * ``flush`` covers periodic, visibility-change and unload saves.

    Failed saves are not retried; the next trigger simply tries again.
    """

    def __init__(
        self,
        session: GameSession,
        client: RemoteSaveClient,
        debounce_ms: float = 2000.0,
        essence_threshold: float = 10.0,
    ):
        self.session = session
        self.client = client
        self.debounce_ms = debounce_ms
        self.essence_threshold = essence_threshold
        self.user_id: Optional[str] = None
        self._loaded_users: Set[str] = set()
        self._last_saved_essence = session.get_state().essence
        self._pending_due_ms: Optional[float] = None
        self._lock = threading.Lock()
        self._unsubscribe: Optional[Callable[[], None]] = session.subscribe(self._on_state_change)

    @property
    def pending_due_ms(self) -> Optional[float]:
        return self._pending_due_ms

    def load(self, user_id: str) -> bool:
        """Pull the remote save for ``user_id`` into the session; True when applied."""
        self.user_id = user_id
        if user_id in self._loaded_users:
            return False
        blob = self.client.load(user_id)
        if blob is None:
            return False
        self._loaded_users.add(user_id)
        self.session.apply_loaded_snapshot(blob)
        with self._lock:
            self._last_saved_essence = self.session.get_state().essence
            self._pending_due_ms = None
        return True

    def _on_state_change(self, previous: GameState, current: GameState) -> None:
        with self._lock:
            if abs(current.essence - self._last_saved_essence) > self.essence_threshold:
                self._pending_due_ms = self.session.clock() + self.debounce_ms

    def poll(self, now_ms: Optional[float] = None) -> bool:
        """Run a debounced save if one is due."""
        now_ms = self.session.clock() if now_ms is None else now_ms
        with self._lock:
            due = self._pending_due_ms is not None and now_ms >= self._pending_due_ms
        if not due:
            return False
        return self.flush("debounce")

    def flush(self, reason: str = "manual") -> bool:
        if self.user_id is None:
            return False
        snapshot = self.session.snapshot_for_save()
        ok = self.client.save(self.user_id, snapshot)
        if ok:
            logger.debug("Remote save for %s (%s).", self.user_id, reason)
            with self._lock:
                self._last_saved_essence = snapshot["essence"]
                self._pending_due_ms = None
        return ok

    def attach(self, scheduler, interval_ms: float = 60000.0, poll_interval_ms: float = 500.0) -> None:
        scheduler.add_timer("cloud-autosave", interval_ms, lambda now_ms: self.flush("periodic"))
        scheduler.add_timer("cloud-debounce", poll_interval_ms, lambda now_ms: self.poll(now_ms))

    def close(self) -> bool:
        """Detach from the session and make a final best-effort save."""
        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None
        return self.flush("unload")


def restore_session(session: GameSession, store: LocalSaveStore) -> Tuple[bool, int]:
    """Apply the local cache to ``session``; returns ``(applied, offline_ms)``."""
    blob = store.load_state()
    if blob is None:
        return False, 0
    offline_ms = offline_duration_ms(blob, session.clock())
    session.apply_loaded_snapshot(blob)
    return True, offline_ms
