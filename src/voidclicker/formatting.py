from __future__ import annotations

import math
from typing import Any, Dict, List

from .engine import formulas
from .engine.models import AbilityTrack, Catalog
from .engine.state import GameState

_SUFFIXES = (
    (1e12, "T"),
    (1e9, "B"),
    (1e6, "M"),
    (1e3, "K"),
)


def format_number(value: float) -> str:
    """Short display form: ``1234567 -> '1.23M'``. Display only, never stored."""
    if not math.isfinite(value):
        return str(value)
    for threshold, suffix in _SUFFIXES:
        if value >= threshold:
            return f"{value / threshold:.2f}{suffix}"
    return str(math.floor(value))


def state_summary_dict(state: GameState, catalog: Catalog) -> Dict[str, Any]:
    return {
        "essence": state.essence,
        "total_essence": state.total_essence,
        "total_clicks": state.total_clicks,
        "dpc": formulas.dpc(state),
        "dps": formulas.dps(state),
        "energy": state.energy,
        "max_energy": state.max_energy,
        "energy_regen_rate_ms": state.energy_regen_rate,
        "rebirth_level": state.rebirth_level,
        "rebirth_points": state.rebirth_points,
        "rebirth_multiplier": state.rebirth_multiplier,
        "rebirth_cost": formulas.rebirth_cost(state, catalog),
        "rebirth_points_preview": formulas.rebirth_points_preview(state, catalog),
        "total_materials": state.total_materials,
        "craft_score": formulas.state_craft_score(state, catalog),
        "achievement_points": state.achievement_points,
        "achievements_unlocked": sum(1 for item in state.achievements if item.unlocked),
        "upgrades": {item.id: item.count for item in state.upgrades if item.count},
        "abilities": {
            item.id: {
                "unlocked": item.is_unlocked,
                "damage_level": item.damage_level,
                "cooldown_level": item.cooldown_level,
                "damage_multiplier": formulas.ability_damage_multiplier(item),
                "cooldown_s": formulas.ability_cooldown(item, catalog.constants),
            }
            for item in state.abilities
        },
    }


def summarize_state(state: GameState, catalog: Catalog) -> str:
    lines: List[str] = []
    lines.append(f"Essence: {format_number(state.essence)} (lifetime {format_number(state.total_essence)})")
    lines.append(f"DPC: {format_number(formulas.dpc(state))}  DPS: {format_number(formulas.dps(state))}")
    lines.append(
        f"Energy: {math.floor(state.energy)}/{math.floor(state.max_energy)} "
        f"(+1 every {state.energy_regen_rate:.0f} ms)"
    )
    lines.append(
        f"Rebirth: level {state.rebirth_level}, x{state.rebirth_multiplier:.2f}, "
        f"{format_number(state.rebirth_points)} RP, next at {format_number(formulas.rebirth_cost(state, catalog))} "
        f"(+{formulas.rebirth_points_preview(state, catalog)} RP)"
    )
    lines.append(f"Clicks: {state.total_clicks}")

    owned = [f"{item.name} x{item.count}" for item in state.upgrades if item.count]
    lines.append(f"Upgrades: {', '.join(owned) if owned else 'none'}")

    abilities: List[str] = []
    for item in state.abilities:
        if not item.is_unlocked:
            continue
        damage_next = formulas.next_track_cost(item, AbilityTrack.DAMAGE)
        cooldown_next = formulas.next_track_cost(item, AbilityTrack.COOLDOWN)
        abilities.append(
            f"{item.name} dmg L{item.damage_level} (next {damage_next if damage_next is not None else 'max'}) "
            f"cd L{item.cooldown_level} (next {cooldown_next if cooldown_next is not None else 'max'})"
        )
    lines.append(f"Abilities: {'; '.join(abilities) if abilities else 'none'}")

    materials = [f"{item.name} x{item.count}" for item in state.materials if item.count]
    lines.append(f"Materials: {', '.join(materials) if materials else 'none'} (lifetime {state.total_materials})")
    lines.append(f"Craft score: {format_number(formulas.state_craft_score(state, catalog))}")

    unlocked = sum(1 for item in state.achievements if item.unlocked)
    lines.append(f"Achievements: {unlocked}/{len(state.achievements)} ({state.achievement_points} pts)")
    return "\n".join(lines)
