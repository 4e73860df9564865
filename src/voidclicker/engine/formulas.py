"""Derived-stat formulas.

Everything here is a pure function of its arguments. The reducer uses these to
decide whether an action is valid; presentation, the API and the leaderboard
call the same functions so that displayed, charged and ranked numbers agree.
"""
from __future__ import annotations

import math
from typing import Any, Dict, Iterable, Mapping, Optional

from .models import AbilityTrack, AchievementType, Catalog, CatalogConstants, Rarity, UpgradeType
from .state import AbilityState, GameState, UpgradeState


def upgrade_cost(upgrade: UpgradeState) -> int:
    return math.floor(upgrade.base_cost * upgrade.cost_multiplier ** upgrade.count)


def upgrade_cost_by_id(state: GameState, upgrade_id: str) -> int:
    upgrade = state.upgrade(upgrade_id)
    return upgrade_cost(upgrade) if upgrade is not None else 0


def _upgrade_sum(upgrades: Iterable[UpgradeState], upgrade_type: UpgradeType) -> float:
    return sum(item.value * item.count for item in upgrades if item.type is upgrade_type)


def dpc(state: GameState) -> float:
    return (state.base_dpc + _upgrade_sum(state.upgrades, UpgradeType.DPC)) * state.rebirth_multiplier


def dps(state: GameState) -> float:
    return (state.base_dps + _upgrade_sum(state.upgrades, UpgradeType.DPS)) * state.rebirth_multiplier


def energy_caps(upgrades: Iterable[UpgradeState], constants: CatalogConstants) -> tuple[float, float]:
    """Return ``(max_energy, energy_regen_rate)`` rebuilt from the catalog base values."""
    upgrades = tuple(upgrades)
    max_energy = constants.base_max_energy + _upgrade_sum(upgrades, UpgradeType.ENERGY_MAX)
    regen_rate = constants.base_energy_regen_ms - _upgrade_sum(upgrades, UpgradeType.ENERGY_REGEN)
    return max_energy, max(constants.energy_regen_floor_ms, regen_rate)


def prestige_cost(rebirth_level: int, constants: CatalogConstants) -> float:
    return constants.prestige_cost_base * constants.prestige_cost_growth ** rebirth_level


def rebirth_multiplier(rebirth_level: int, constants: CatalogConstants) -> float:
    return 1.0 + rebirth_level * constants.rebirth_multiplier_step


def prestige_points_yield(state: GameState, constants: CatalogConstants) -> int:
    """Rebirth points awarded for resetting ``state``; always at least 1.

    Must be evaluated on the pre-reset state.
    """
    weights = constants.prestige_yield
    essence_bonus = math.floor(math.log10(max(0.0, state.total_essence) + 1.0)) * weights.essence_weight
    click_bonus = math.floor(state.total_clicks / weights.clicks_per_point)
    upgrade_bonus = sum(item.count for item in state.upgrades) * weights.upgrade_unit_weight
    return max(1, math.floor(essence_bonus + click_bonus + upgrade_bonus))


def ability_damage_multiplier(ability: AbilityState) -> float:
    return ability.base_damage_multiplier + ability.damage_per_level * ability.damage_level


def ability_cooldown(ability: AbilityState, constants: CatalogConstants) -> float:
    cooldown = ability.base_cooldown - ability.cooldown_reduction_per_level * ability.cooldown_level
    return max(constants.min_ability_cooldown_s, cooldown)


def track_level(ability: AbilityState, track: AbilityTrack) -> int:
    return ability.damage_level if track is AbilityTrack.DAMAGE else ability.cooldown_level


def next_track_cost(ability: AbilityState, track: AbilityTrack) -> Optional[float]:
    """Cost of the next level on ``track``, or None when the track is maxed."""
    if track is AbilityTrack.DAMAGE:
        costs, max_level = ability.damage_costs, ability.max_damage_level
    else:
        costs, max_level = ability.cooldown_costs, ability.max_cooldown_level
    level = track_level(ability, track)
    if level >= max_level:
        return None
    return costs[level]


def rarity_weight(rarity: Any, weights: Mapping[Rarity, float]) -> float:
    try:
        key = rarity if isinstance(rarity, Rarity) else Rarity(str(rarity))
    except ValueError:
        return 1.0
    return weights.get(key, 1.0)


def craft_score(
    crafted_items: Mapping[str, Any],
    material_rarities: Mapping[str, Any],
    weights: Mapping[Rarity, float],
) -> float:
    """Rarity-weighted sum of all-time crafted outputs.

    Entries whose material rarity is unknown are skipped.
    """
    score = 0.0
    for material_id, count in crafted_items.items():
        rarity = material_rarities.get(material_id)
        if rarity is None:
            continue
        score += count * rarity_weight(rarity, weights)
    return score


def state_craft_score(state: GameState, catalog: Catalog) -> float:
    rarities = {item.id: item.rarity for item in state.materials}
    return craft_score(state.crafted_items, rarities, catalog.rarity_weights)


def achievement_metric(state: GameState, achievement_type: AchievementType) -> float:
    if achievement_type is AchievementType.ESSENCE:
        return state.total_essence
    if achievement_type is AchievementType.DPC:
        return dpc(state)
    if achievement_type is AchievementType.DPS:
        return dps(state)
    if achievement_type is AchievementType.REBIRTH:
        return float(state.rebirth_level)
    if achievement_type is AchievementType.CLICKS:
        return float(state.total_clicks)
    if achievement_type is AchievementType.MATERIALS:
        return float(state.total_materials)
    return 0.0


def can_craft(state: GameState, catalog: Catalog, recipe_id: str) -> bool:
    recipe = catalog.recipe(recipe_id)
    if recipe is None:
        return False
    if state.energy < recipe.energy_cost:
        return False
    required: Dict[str, int] = {}
    for item in recipe.inputs:
        required[item.material_id] = required.get(item.material_id, 0) + item.count
    return all(state.material_count(material_id) >= count for material_id, count in required.items())


def rebirth_cost(state: GameState, catalog: Catalog) -> float:
    return prestige_cost(state.rebirth_level, catalog.constants)


def rebirth_points_preview(state: GameState, catalog: Catalog) -> int:
    return prestige_points_yield(state, catalog.constants)
