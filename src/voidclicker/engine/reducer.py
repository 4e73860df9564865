"""State transition function.

``reduce(state, action, catalog, rng)`` returns the next state. A rejected
action (unaffordable, locked, on cooldown, unknown id, unknown action) returns
the very same ``state`` object and draws nothing from ``rng``, so callers can
detect rejection with ``next_state is state``.
"""
from __future__ import annotations

import math
import random
from dataclasses import replace
from typing import Callable, Dict, Optional

from . import formulas
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
)
from .migration import migrate_state
from .models import AbilityTrack, Catalog
from .state import GameState, initial_game_state

Handler = Callable[[GameState, Action, Catalog, random.Random], GameState]


def _with_material(state: GameState, material_id: str, amount: int) -> GameState:
    if state.material(material_id) is None:
        return state
    materials = tuple(
        replace(item, count=item.count + amount) if item.id == material_id else item for item in state.materials
    )
    return replace(state, materials=materials, total_materials=state.total_materials + amount)


def _roll_drop(state: GameState, catalog: Catalog, rng: random.Random, chance: float) -> GameState:
    if chance <= 0.0 or rng.random() >= chance:
        return state
    candidates = catalog.gatherable_materials()
    if not candidates:
        return state
    weights = [catalog.drops.rarity_weights.get(item.rarity, 0.0) for item in candidates]
    if sum(weights) <= 0.0:
        return state
    picked = rng.choices(candidates, weights=weights, k=1)[0]
    return _with_material(state, picked.id, 1)


def _with_energy_caps(state: GameState, catalog: Catalog) -> GameState:
    max_energy, regen_rate = formulas.energy_caps(state.upgrades, catalog.constants)
    return replace(
        state,
        max_energy=max_energy,
        energy_regen_rate=regen_rate,
        energy=min(state.energy, max_energy),
    )


def _buy_one(state: GameState, upgrade_id: str) -> GameState:
    upgrade = state.upgrade(upgrade_id)
    if upgrade is None:
        return state
    cost = formulas.upgrade_cost(upgrade)
    if state.essence < cost:
        return state
    upgrades = tuple(
        replace(item, count=item.count + 1) if item.id == upgrade_id else item for item in state.upgrades
    )
    return replace(state, essence=state.essence - cost, upgrades=upgrades)


def _click(state: GameState, action: Click, catalog: Catalog, rng: random.Random) -> GameState:
    if state.energy < 1:
        return state
    damage = formulas.dpc(state)
    clicked = replace(
        state,
        essence=state.essence + damage,
        total_essence=state.total_essence + damage,
        total_clicks=state.total_clicks + 1,
        energy=state.energy - 1,
    )
    return _roll_drop(clicked, catalog, rng, catalog.drops.click_chance)


def _tick(state: GameState, action: Tick, catalog: Catalog, rng: random.Random) -> GameState:
    delta_ms = action.delta_ms
    if not math.isfinite(delta_ms) or delta_ms <= 0:
        return state

    seconds = delta_ms / 1000.0
    gained = formulas.dps(state) * seconds
    abilities = tuple(
        replace(item, current_cooldown=max(0.0, item.current_cooldown - seconds)) if item.current_cooldown > 0 else item
        for item in state.abilities
    )
    next_state = replace(
        state,
        essence=state.essence + gained,
        total_essence=state.total_essence + gained,
        abilities=abilities,
        last_tick_time=action.now_ms if action.now_ms is not None else state.last_tick_time,
    )

    chance = min(1.0, catalog.drops.tick_chance_per_100ms * delta_ms / 100.0)
    next_state = _roll_drop(next_state, catalog, rng, chance)

    purchased = False
    for upgrade in state.upgrades:
        if not state.auto_buy_upgrades.get(upgrade.id):
            continue
        bought = _buy_one(next_state, upgrade.id)
        if bought is not next_state:
            purchased = True
            next_state = bought
    if purchased:
        next_state = _with_energy_caps(next_state, catalog)
    return next_state


def _restore_energy(state: GameState, action: RestoreEnergy, catalog: Catalog, rng: random.Random) -> GameState:
    if state.energy >= state.max_energy:
        return state
    return replace(state, energy=min(state.max_energy, state.energy + 1))


def _buy_upgrade(state: GameState, action: BuyUpgrade, catalog: Catalog, rng: random.Random) -> GameState:
    bought = _buy_one(state, action.upgrade_id)
    if bought is state:
        return state
    return _with_energy_caps(bought, catalog)


def _toggle_auto_buy(state: GameState, action: ToggleAutoBuy, catalog: Catalog, rng: random.Random) -> GameState:
    flags = dict(state.auto_buy_upgrades)
    flags[action.upgrade_id] = not flags.get(action.upgrade_id, False)
    return replace(state, auto_buy_upgrades=flags)


def _use_ability(state: GameState, action: UseAbility, catalog: Catalog, rng: random.Random) -> GameState:
    ability = state.ability(action.ability_id)
    if ability is None or not ability.is_unlocked or ability.current_cooldown > 0:
        return state
    damage = formulas.dpc(state) * formulas.ability_damage_multiplier(ability)
    cooldown = formulas.ability_cooldown(ability, catalog.constants)
    abilities = tuple(
        replace(item, current_cooldown=cooldown) if item.id == ability.id else item for item in state.abilities
    )
    return replace(
        state,
        essence=state.essence + damage,
        total_essence=state.total_essence + damage,
        abilities=abilities,
    )


def _upgrade_ability_track(
    state: GameState, action: UpgradeAbilityTrack, catalog: Catalog, rng: random.Random
) -> GameState:
    ability = state.ability(action.ability_id)
    if ability is None or not ability.is_unlocked:
        return state
    cost = formulas.next_track_cost(ability, action.track)
    if cost is None or state.rebirth_points < cost:
        return state
    if action.track is AbilityTrack.DAMAGE:
        upgraded = replace(ability, damage_level=ability.damage_level + 1)
    else:
        upgraded = replace(ability, cooldown_level=ability.cooldown_level + 1)
    abilities = tuple(upgraded if item.id == ability.id else item for item in state.abilities)
    return replace(state, rebirth_points=state.rebirth_points - cost, abilities=abilities)


def _select_ability(state: GameState, action: SelectAbility, catalog: Catalog, rng: random.Random) -> GameState:
    if state.ability(action.ability_id) is None or state.selected_ability_id == action.ability_id:
        return state
    return replace(state, selected_ability_id=action.ability_id)


def _rebirth(state: GameState, action: Rebirth, catalog: Catalog, rng: random.Random) -> GameState:
    constants = catalog.constants
    if state.essence < formulas.prestige_cost(state.rebirth_level, constants):
        return state

    points = formulas.prestige_points_yield(state, constants)
    level = state.rebirth_level + 1
    abilities = tuple(
        replace(
            item,
            is_unlocked=item.is_unlocked or item.required_rebirth_level <= level,
            current_cooldown=0.0,
        )
        for item in state.abilities
    )
    return replace(
        state,
        essence=0.0,
        total_essence=0.0,
        total_clicks=0,
        energy=constants.base_energy,
        max_energy=constants.base_max_energy,
        energy_regen_rate=max(constants.energy_regen_floor_ms, constants.base_energy_regen_ms),
        rebirth_level=level,
        rebirth_points=state.rebirth_points + points,
        rebirth_multiplier=formulas.rebirth_multiplier(level, constants),
        upgrades=tuple(replace(item, count=0) for item in state.upgrades),
        abilities=abilities,
    )


def _add_material(state: GameState, action: AddMaterial, catalog: Catalog, rng: random.Random) -> GameState:
    if action.amount <= 0:
        return state
    return _with_material(state, action.material_id, action.amount)


def _add_essence(state: GameState, action: AddEssence, catalog: Catalog, rng: random.Random) -> GameState:
    amount = action.amount
    if not math.isfinite(amount) or amount <= 0:
        return state
    return replace(state, essence=state.essence + amount, total_essence=state.total_essence + amount)


def _craft(state: GameState, action: Craft, catalog: Catalog, rng: random.Random) -> GameState:
    if not formulas.can_craft(state, catalog, action.recipe_id):
        return state
    recipe = catalog.recipe(action.recipe_id)
    deltas: Dict[str, int] = {}
    for item in recipe.inputs:
        deltas[item.material_id] = deltas.get(item.material_id, 0) - item.count
    output = recipe.output
    deltas[output.material_id] = deltas.get(output.material_id, 0) + output.count

    materials = tuple(
        replace(item, count=item.count + deltas[item.id]) if item.id in deltas else item for item in state.materials
    )
    crafted = dict(state.crafted_items)
    crafted[output.material_id] = crafted.get(output.material_id, 0) + output.count
    return replace(
        state,
        materials=materials,
        energy=state.energy - recipe.energy_cost,
        total_materials=state.total_materials + output.count,
        crafted_items=crafted,
    )


def _check_achievements(
    state: GameState, action: CheckAchievements, catalog: Catalog, rng: random.Random
) -> GameState:
    gained = 0
    achievements = []
    for item in state.achievements:
        if not item.unlocked and formulas.achievement_metric(state, item.type) >= item.requirement:
            item = replace(item, unlocked=True)
            gained += item.points
        achievements.append(item)
    if achievements == list(state.achievements):
        return state
    return replace(state, achievements=tuple(achievements), achievement_points=state.achievement_points + gained)


def _load_game(state: GameState, action: LoadGame, catalog: Catalog, rng: random.Random) -> GameState:
    return migrate_state(action.payload, catalog, action.now_ms)


def _reset_game(state: GameState, action: ResetGame, catalog: Catalog, rng: random.Random) -> GameState:
    return initial_game_state(catalog, action.now_ms)


_HANDLERS: Dict[type, Handler] = {
    Click: _click,
    Tick: _tick,
    RestoreEnergy: _restore_energy,
    BuyUpgrade: _buy_upgrade,
    ToggleAutoBuy: _toggle_auto_buy,
    UseAbility: _use_ability,
    UpgradeAbilityTrack: _upgrade_ability_track,
    SelectAbility: _select_ability,
    Rebirth: _rebirth,
    AddMaterial: _add_material,
    AddEssence: _add_essence,
    Craft: _craft,
    CheckAchievements: _check_achievements,
    LoadGame: _load_game,
    ResetGame: _reset_game,
}


def reduce(
    state: GameState,
    action: Action,
    catalog: Catalog,
    rng: Optional[random.Random] = None,
) -> GameState:
    handler = _HANDLERS.get(type(action))
    if handler is None:
        return state
    return handler(state, action, catalog, rng if rng is not None else random.Random())
