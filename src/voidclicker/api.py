from __future__ import annotations

import logging
import os
from pathlib import Path
import sys
from typing import Any, Dict, List, Literal, Optional

from fastapi import FastAPI, HTTPException
from pydantic import BaseModel, Field

from .engine import (
    CatalogError,
    CatalogRepository,
    GameSession,
    ModelError,
    action_from_dict,
    migrate_state,
    offline_duration_ms,
)
from .engine.models import Catalog
from .engine.session import wall_clock_ms
from .formatting import state_summary_dict
from .leaderboard import leaderboard_entry, rank_entries
from .persistence import SaveError, SaveRepository

logger = logging.getLogger(__name__)

app = FastAPI(
    title="Void Clicker API",
    description="Remote save store, leaderboard and offline simulation for Void Clicker.",
    version="1.0.0",
)


def _resolve_project_root() -> Path:
    env_root = os.environ.get("VOIDCLICKER_PROJECT_ROOT", "").strip()
    if env_root:
        return Path(env_root).expanduser().resolve()

    if getattr(sys, "frozen", False):
        return Path(sys.executable).resolve().parent

    return Path(__file__).resolve().parents[2]


def _resolve_saves_dir(project_root: Path) -> Path:
    env_saves = os.environ.get("VOIDCLICKER_SAVES_DIR", "").strip()
    if env_saves:
        return Path(env_saves).expanduser().resolve()
    return project_root / "runtime" / "saves"


_PROJECT_ROOT = _resolve_project_root()

catalog_repo = CatalogRepository()
save_repo = SaveRepository(project_root=_PROJECT_ROOT, saves_dir=_resolve_saves_dir(_PROJECT_ROOT))


class SaveRequest(BaseModel):
    state: Dict[str, Any] = Field(..., description="Serialized game state blob.")


class SimulateRequest(BaseModel):
    dataset_version: Optional[str] = None
    state: Optional[Dict[str, Any]] = Field(default=None, description="Starting save blob; defaults to a new game.")
    actions: List[Dict[str, Any]] = Field(default_factory=list, max_length=100000)
    seed: int = 42
    now_ms: int = Field(default=0, ge=0)


def _load_catalog(dataset_version: Optional[str] = None) -> Catalog:
    try:
        _, catalog = catalog_repo.load_catalog(dataset_version)
    except CatalogError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    return catalog


def _dataset_meta_payload(dataset_version: Optional[str] = None) -> Dict[str, str]:
    try:
        meta = catalog_repo.get_dataset_meta(dataset_version) if dataset_version else catalog_repo.get_active_dataset_meta()
    except CatalogError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    return {
        "dataset_version": meta.dataset_version,
        "game_version": meta.game_version,
        "build_id": meta.build_id,
    }


@app.get("/health")
def health() -> Dict[str, str]:
    return {"status": "ok"}


@app.get("/api/v1/dataset/version")
def dataset_version(dataset_version: Optional[str] = None) -> Dict[str, str]:
    return _dataset_meta_payload(dataset_version)


@app.get("/api/v1/catalog")
def dataset_catalog(dataset_version: Optional[str] = None) -> Dict[str, Any]:
    try:
        meta, payload = catalog_repo.load_catalog_payload(dataset_version)
    except CatalogError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    return {"dataset_version": meta.dataset_version, "catalog": payload}


@app.get("/api/v1/saves/{user_id}")
def get_save(user_id: str) -> Dict[str, Any]:
    try:
        record = save_repo.get(user_id)
    except SaveError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    if record is None:
        raise HTTPException(status_code=404, detail=f"Save not found: {user_id}")
    return record.to_dict()


@app.put("/api/v1/saves/{user_id}")
def put_save(user_id: str, payload: SaveRequest) -> Dict[str, Any]:
    try:
        record = save_repo.put(user_id, payload.state)
    except SaveError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    logger.info("Stored save for %s.", record.user_id)
    return record.to_dict()


@app.delete("/api/v1/saves/{user_id}")
def delete_save(user_id: str) -> Dict[str, Any]:
    try:
        deleted = save_repo.delete(user_id)
    except SaveError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    if not deleted:
        raise HTTPException(status_code=404, detail=f"Save not found: {user_id}")
    return {"user_id": user_id, "deleted": True}


@app.get("/api/v1/saves/{user_id}/summary")
def save_summary(user_id: str, dataset_version: Optional[str] = None) -> Dict[str, Any]:
    record = get_save(user_id)
    catalog = _load_catalog(dataset_version)
    now_ms = wall_clock_ms()
    state = migrate_state(record["state"], catalog, now_ms)
    return {
        "user_id": record["user_id"],
        "updated_at": record["updated_at"],
        "offline_ms": offline_duration_ms(record["state"], now_ms),
        "summary": state_summary_dict(state, catalog),
    }


@app.get("/api/v1/leaderboard")
def leaderboard(
    sort_by: Literal["essence", "rebirth", "clicks", "craft"] = "essence",
    limit: int = 100,
    dataset_version: Optional[str] = None,
) -> Dict[str, Any]:
    if limit <= 0:
        raise HTTPException(status_code=400, detail="Parameter 'limit' must be > 0.")
    catalog = _load_catalog(dataset_version)
    entries = [leaderboard_entry(record.user_id, record.state, catalog) for record in save_repo.iter_saves()]
    try:
        ranked = rank_entries(entries, sort_by)
    except ModelError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    return {"sort_by": sort_by, "entries": [item.to_dict() for item in ranked[:limit]]}


@app.post("/api/v1/simulate")
def simulate(payload: SimulateRequest) -> Dict[str, Any]:
    catalog = _load_catalog(payload.dataset_version)
    try:
        actions = [action_from_dict(item) for item in payload.actions]
    except ModelError as exc:
        raise HTTPException(status_code=400, detail=f"Invalid action: {exc}") from exc

    now_ms = payload.now_ms
    initial_state = migrate_state(payload.state, catalog, now_ms) if payload.state is not None else None
    session = GameSession(catalog, initial_state=initial_state, seed=payload.seed, clock=lambda: now_ms)
    results = [session.dispatch(action) for action in actions]
    state = session.get_state()
    return {
        "applied": sum(1 for item in results if item),
        "rejected": sum(1 for item in results if not item),
        "results": results,
        "summary": state_summary_dict(state, catalog),
        "state": state.to_dict(),
    }
