from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Callable, Dict, Optional, Union

from .models import AbilityTrack, ModelError, _require, parse_track


@dataclass(slots=True, frozen=True)
class Click:
    pass


@dataclass(slots=True, frozen=True)
class Tick:
    delta_ms: float
    now_ms: Optional[int] = None


@dataclass(slots=True, frozen=True)
class RestoreEnergy:
    pass


@dataclass(slots=True, frozen=True)
class BuyUpgrade:
    upgrade_id: str


@dataclass(slots=True, frozen=True)
class ToggleAutoBuy:
    upgrade_id: str


@dataclass(slots=True, frozen=True)
class UseAbility:
    ability_id: str


@dataclass(slots=True, frozen=True)
class UpgradeAbilityTrack:
    ability_id: str
    track: AbilityTrack


@dataclass(slots=True, frozen=True)
class SelectAbility:
    ability_id: str


@dataclass(slots=True, frozen=True)
class Rebirth:
    pass


@dataclass(slots=True, frozen=True)
class AddMaterial:
    material_id: str
    amount: int


@dataclass(slots=True, frozen=True)
class AddEssence:
    amount: float


@dataclass(slots=True, frozen=True)
class Craft:
    recipe_id: str


@dataclass(slots=True, frozen=True)
class CheckAchievements:
    pass


@dataclass(slots=True, frozen=True)
class LoadGame:
    payload: Any
    now_ms: int = 0


@dataclass(slots=True, frozen=True)
class ResetGame:
    now_ms: int = 0


Action = Union[
    Click,
    Tick,
    RestoreEnergy,
    BuyUpgrade,
    ToggleAutoBuy,
    UseAbility,
    UpgradeAbilityTrack,
    SelectAbility,
    Rebirth,
    AddMaterial,
    AddEssence,
    Craft,
    CheckAchievements,
    LoadGame,
    ResetGame,
]


def _upgrade_ability_track(payload: Dict[str, Any]) -> UpgradeAbilityTrack:
    return UpgradeAbilityTrack(
        ability_id=str(_require(payload, "ability_id")),
        track=parse_track(_require(payload, "track")),
    )


_PARSERS: Dict[str, Callable[[Dict[str, Any]], Action]] = {
    "click": lambda payload: Click(),
    "tick": lambda payload: Tick(
        delta_ms=float(_require(payload, "delta_ms")),
        now_ms=int(payload["now_ms"]) if payload.get("now_ms") is not None else None,
    ),
    "restore_energy": lambda payload: RestoreEnergy(),
    "buy_upgrade": lambda payload: BuyUpgrade(upgrade_id=str(_require(payload, "upgrade_id"))),
    "toggle_auto_buy": lambda payload: ToggleAutoBuy(upgrade_id=str(_require(payload, "upgrade_id"))),
    "use_ability": lambda payload: UseAbility(ability_id=str(_require(payload, "ability_id"))),
    "upgrade_ability_track": _upgrade_ability_track,
    "select_ability": lambda payload: SelectAbility(ability_id=str(_require(payload, "ability_id"))),
    "rebirth": lambda payload: Rebirth(),
    "add_material": lambda payload: AddMaterial(
        material_id=str(_require(payload, "material_id")),
        amount=int(_require(payload, "amount")),
    ),
    "add_essence": lambda payload: AddEssence(amount=float(_require(payload, "amount"))),
    "craft": lambda payload: Craft(recipe_id=str(_require(payload, "recipe_id"))),
    "check_achievements": lambda payload: CheckAchievements(),
    "load_game": lambda payload: LoadGame(payload=payload.get("state", {}), now_ms=int(payload.get("now_ms", 0))),
    "reset_game": lambda payload: ResetGame(now_ms=int(payload.get("now_ms", 0))),
}


def action_from_dict(payload: Dict[str, Any]) -> Action:
    """Parse the JSON form of an action, e.g. ``{"type": "buy_upgrade", "upgrade_id": "dpc1"}``."""
    if not isinstance(payload, dict):
        raise ModelError("Action payload must be an object.")
    action_type = str(_require(payload, "type")).strip().lower()
    parser = _PARSERS.get(action_type)
    if parser is None:
        raise ModelError(f"Unsupported action type: {action_type}")
    try:
        return parser(payload)
    except (TypeError, ValueError, OverflowError) as exc:
        if isinstance(exc, ModelError):
            raise
        raise ModelError(f"Invalid '{action_type}' action: {exc}") from exc
