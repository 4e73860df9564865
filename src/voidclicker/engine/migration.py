"""Reconcile persisted save blobs with the running catalog.

Player-owned quantities (counts, levels, unlock flags, ledgers) are carried
over; balance numbers and derived stats are always rebuilt from the catalog.
Nothing in this module raises for malformed input: anything that cannot be
interpreted falls back to the catalog default.
"""
from __future__ import annotations

import json
import logging
import math
from dataclasses import replace
from typing import Any, Dict, Mapping, Optional

from . import formulas
from .models import AbilityDefinition, Catalog
from .state import (
    AbilityState,
    AchievementState,
    GameState,
    MaterialState,
    UpgradeState,
    initial_game_state,
)

logger = logging.getLogger(__name__)


def coerce_payload(blob: Any) -> Dict[str, Any]:
    """Accept a dict or its JSON text; anything else becomes an empty payload."""
    if isinstance(blob, (bytes, bytearray)):
        try:
            blob = blob.decode("utf-8")
        except UnicodeDecodeError:
            logger.debug("Save blob is not valid UTF-8; using defaults.")
            return {}
    if isinstance(blob, str):
        try:
            blob = json.loads(blob)
        except (ValueError, RecursionError):
            logger.debug("Save blob is not valid JSON; using defaults.")
            return {}
    if not isinstance(blob, dict):
        return {}
    return blob


def as_float(value: Any, default: float, minimum: Optional[float] = 0.0) -> float:
    if isinstance(value, bool):
        return default
    try:
        number = float(value)
    except (TypeError, ValueError, OverflowError):
        return default
    if not math.isfinite(number):
        return default
    if minimum is not None and number < minimum:
        return default
    return number


def as_int(value: Any, default: int, minimum: Optional[int] = 0) -> int:
    number = as_float(value, float("nan"), None)
    if math.isnan(number):
        return default
    result = int(number)
    if minimum is not None and result < minimum:
        return default
    return result


def as_bool(value: Any, default: bool) -> bool:
    return value if isinstance(value, bool) else default


def _by_id(items: Any) -> Dict[str, Mapping[str, Any]]:
    if not isinstance(items, list):
        return {}
    return {str(item["id"]): item for item in items if isinstance(item, dict) and "id" in item}


def _cost_schedule(value: Any, default: tuple[float, ...]) -> tuple[float, ...]:
    if not isinstance(value, list) or not value:
        return default
    costs = tuple(as_float(item, float("nan")) for item in value)
    if any(math.isnan(item) for item in costs):
        return default
    return costs


def _migrate_ability(definition: AbilityDefinition, persisted: Optional[Mapping[str, Any]], rebirth_level: int) -> AbilityState:
    base = AbilityState.from_definition(definition, rebirth_level)
    if persisted is None:
        return base

    was_unlocked = as_bool(persisted.get("isUnlocked"), False)
    is_unlocked = was_unlocked or base.is_unlocked

    if "damageLevel" not in persisted and "cooldownLevel" not in persisted:
        logger.debug("Ability %s saved in single-level format; track levels reset to 0.", definition.id)
        return replace(base, is_unlocked=is_unlocked)

    damage_costs = _cost_schedule(persisted.get("damageCosts"), base.damage_costs)
    cooldown_costs = _cost_schedule(persisted.get("cooldownCosts"), base.cooldown_costs)
    return AbilityState(
        id=base.id,
        name=base.name,
        icon=base.icon,
        base_damage_multiplier=as_float(persisted.get("baseDamageMultiplier"), base.base_damage_multiplier),
        damage_per_level=as_float(persisted.get("damagePerLevel"), base.damage_per_level),
        damage_costs=damage_costs,
        base_cooldown=as_float(persisted.get("baseCooldown"), base.base_cooldown),
        cooldown_reduction_per_level=as_float(
            persisted.get("cooldownReductionPerLevel"), base.cooldown_reduction_per_level
        ),
        cooldown_costs=cooldown_costs,
        required_rebirth_level=base.required_rebirth_level,
        damage_level=min(as_int(persisted.get("damageLevel"), 0), len(damage_costs)),
        cooldown_level=min(as_int(persisted.get("cooldownLevel"), 0), len(cooldown_costs)),
        current_cooldown=as_float(persisted.get("currentCooldown"), 0.0),
        is_unlocked=is_unlocked,
    )


def _crafted_items(value: Any) -> Dict[str, int]:
    if not isinstance(value, dict):
        return {}
    result: Dict[str, int] = {}
    for key, count in value.items():
        parsed = as_int(count, -1)
        if parsed < 0:
            logger.debug("Dropping invalid craftedItems entry %r=%r.", key, count)
            continue
        result[str(key)] = parsed
    return result


def migrate_state(blob: Any, catalog: Catalog, now_ms: int = 0) -> GameState:
    """Build a valid ``GameState`` from a persisted blob of any vintage.

    Offline time is never converted into resources: ``essence`` and
    ``total_essence`` are taken as saved.
    """
    payload = coerce_payload(blob)
    defaults = initial_game_state(catalog, now_ms)
    if not payload:
        return defaults

    constants = catalog.constants
    rebirth_level = as_int(payload.get("rebirthLevel"), 0)

    saved_upgrades = _by_id(payload.get("upgrades"))
    upgrades = tuple(
        UpgradeState.from_definition(item, as_int(saved_upgrades.get(item.id, {}).get("count"), 0))
        for item in catalog.upgrades
    )

    saved_abilities = _by_id(payload.get("abilities"))
    abilities = tuple(
        _migrate_ability(item, saved_abilities.get(item.id), rebirth_level) for item in catalog.abilities
    )

    saved_materials = _by_id(payload.get("materials"))
    materials = tuple(
        MaterialState.from_definition(item, as_int(saved_materials.get(item.id, {}).get("count"), 0))
        for item in catalog.materials
    )

    saved_achievements = _by_id(payload.get("achievements"))
    achievements = tuple(
        AchievementState.from_definition(
            item, as_bool(saved_achievements.get(item.id, {}).get("unlocked"), False)
        )
        for item in catalog.achievements
    )
    unlocked_points = sum(item.points for item in achievements if item.unlocked)

    auto_buy_raw = payload.get("autoBuyUpgrades")
    upgrade_ids = {item.id for item in catalog.upgrades}
    auto_buy = {
        str(key): value
        for key, value in (auto_buy_raw.items() if isinstance(auto_buy_raw, dict) else ())
        if str(key) in upgrade_ids and isinstance(value, bool)
    }

    max_energy, regen_rate = formulas.energy_caps(upgrades, constants)
    energy = min(max_energy, as_float(payload.get("energy"), constants.base_energy))

    selected = payload.get("selectedAbilityId")
    if not isinstance(selected, str) or catalog.ability(selected) is None:
        selected = defaults.selected_ability_id

    return GameState(
        essence=as_float(payload.get("essence"), 0.0),
        total_essence=as_float(payload.get("totalEssence"), 0.0),
        total_clicks=as_int(payload.get("totalClicks"), 0),
        energy=energy,
        max_energy=max_energy,
        energy_regen_rate=regen_rate,
        base_dpc=constants.base_dpc,
        base_dps=constants.base_dps,
        rebirth_level=rebirth_level,
        rebirth_points=as_float(payload.get("rebirthPoints"), 0.0),
        rebirth_multiplier=formulas.rebirth_multiplier(rebirth_level, constants),
        upgrades=upgrades,
        abilities=abilities,
        materials=materials,
        achievements=achievements,
        auto_buy_upgrades=auto_buy,
        crafted_items=_crafted_items(payload.get("craftedItems")),
        total_materials=as_int(payload.get("totalMaterials"), 0),
        achievement_points=as_int(payload.get("achievementPoints"), unlocked_points),
        selected_ability_id=selected,
        last_save_time=as_int(payload.get("lastSaveTime"), 0),
        last_tick_time=now_ms,
    )


def offline_duration_ms(blob: Any, now_ms: int) -> int:
    """Milliseconds since the blob was saved. Display only; never grants resources."""
    payload = coerce_payload(blob)
    saved_at = as_int(payload.get("lastSaveTime"), 0)
    if saved_at <= 0:
        return 0
    return max(0, now_ms - saved_at)
