"""Game-state simulation engine for Void Clicker."""

from .actions import (
    Action,
    AddEssence,
    AddMaterial,
    BuyUpgrade,
    CheckAchievements,
    Click,
    Craft,
    LoadGame,
    Rebirth,
    ResetGame,
    RestoreEnergy,
    SelectAbility,
    Tick,
    ToggleAutoBuy,
    UpgradeAbilityTrack,
    UseAbility,
    action_from_dict,
)
from .catalog import CatalogError, CatalogRepository, DatasetMeta, load_default_catalog
from .formulas import (
    ability_cooldown,
    ability_damage_multiplier,
    can_craft,
    craft_score,
    dpc,
    dps,
    next_track_cost,
    prestige_cost,
    prestige_points_yield,
    rebirth_cost,
    rebirth_points_preview,
    upgrade_cost,
    upgrade_cost_by_id,
)
from .migration import coerce_payload, migrate_state, offline_duration_ms
from .models import AbilityTrack, AchievementType, Catalog, ModelError, Rarity, UpgradeType
from .reducer import reduce
from .scheduler import PeriodicTimer, Scheduler
from .session import GameSession, session_from_blob
from .state import GameState, initial_game_state

__all__ = [
    "Action",
    "AddEssence",
    "AddMaterial",
    "BuyUpgrade",
    "CheckAchievements",
    "Click",
    "Craft",
    "LoadGame",
    "Rebirth",
    "ResetGame",
    "RestoreEnergy",
    "SelectAbility",
    "Tick",
    "ToggleAutoBuy",
    "UpgradeAbilityTrack",
    "UseAbility",
    "action_from_dict",
    "CatalogError",
    "CatalogRepository",
    "DatasetMeta",
    "load_default_catalog",
    "ability_cooldown",
    "ability_damage_multiplier",
    "can_craft",
    "craft_score",
    "dpc",
    "dps",
    "next_track_cost",
    "prestige_cost",
    "prestige_points_yield",
    "rebirth_cost",
    "rebirth_points_preview",
    "upgrade_cost",
    "upgrade_cost_by_id",
    "coerce_payload",
    "migrate_state",
    "offline_duration_ms",
    "AbilityTrack",
    "AchievementType",
    "Catalog",
    "ModelError",
    "Rarity",
    "UpgradeType",
    "reduce",
    "PeriodicTimer",
    "Scheduler",
    "GameSession",
    "session_from_blob",
    "GameState",
    "initial_game_state",
]
