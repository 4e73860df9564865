"""Void Clicker idle game engine package."""

from .config import ConfigError, GameConfig, load_config
from .engine import (
    Catalog,
    CatalogError,
    CatalogRepository,
    GameSession,
    GameState,
    ModelError,
    Scheduler,
    action_from_dict,
    load_default_catalog,
    migrate_state,
    reduce,
)
from .formatting import format_number, summarize_state
from .leaderboard import leaderboard_entry, rank_entries
from .persistence import CloudSync, LocalSaveStore, RemoteSaveClient, SaveError, SaveRepository

__all__ = [
    "load_config",
    "ConfigError",
    "GameConfig",
    "Catalog",
    "CatalogError",
    "CatalogRepository",
    "GameSession",
    "GameState",
    "ModelError",
    "Scheduler",
    "action_from_dict",
    "load_default_catalog",
    "migrate_state",
    "reduce",
    "format_number",
    "summarize_state",
    "leaderboard_entry",
    "rank_entries",
    "CloudSync",
    "LocalSaveStore",
    "RemoteSaveClient",
    "SaveError",
    "SaveRepository",
]
