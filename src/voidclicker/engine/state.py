from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, Optional

from .models import (
    AbilityDefinition,
    AchievementDefinition,
    AchievementType,
    Catalog,
    MaterialDefinition,
    Rarity,
    UpgradeDefinition,
    UpgradeType,
)


@dataclass(slots=True, frozen=True)
class UpgradeState:
    id: str
    name: str
    description: str
    base_cost: float
    cost_multiplier: float
    value: float
    type: UpgradeType
    count: int = 0

    @classmethod
    def from_definition(cls, definition: UpgradeDefinition, count: int = 0) -> "UpgradeState":
        return cls(
            id=definition.id,
            name=definition.name,
            description=definition.description,
            base_cost=definition.base_cost,
            cost_multiplier=definition.cost_multiplier,
            value=definition.value,
            type=definition.type,
            count=count,
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "baseCost": self.base_cost,
            "costMultiplier": self.cost_multiplier,
            "value": self.value,
            "count": self.count,
            "type": self.type.value,
        }


@dataclass(slots=True, frozen=True)
class AbilityState:
    id: str
    name: str
    icon: str
    base_damage_multiplier: float
    damage_per_level: float
    damage_costs: tuple[float, ...]
    base_cooldown: float
    cooldown_reduction_per_level: float
    cooldown_costs: tuple[float, ...]
    required_rebirth_level: int
    damage_level: int = 0
    cooldown_level: int = 0
    current_cooldown: float = 0.0
    is_unlocked: bool = False

    @property
    def max_damage_level(self) -> int:
        return len(self.damage_costs)

    @property
    def max_cooldown_level(self) -> int:
        return len(self.cooldown_costs)

    @classmethod
    def from_definition(cls, definition: AbilityDefinition, rebirth_level: int = 0) -> "AbilityState":
        return cls(
            id=definition.id,
            name=definition.name,
            icon=definition.icon,
            base_damage_multiplier=definition.base_damage_multiplier,
            damage_per_level=definition.damage_track.per_level,
            damage_costs=definition.damage_track.costs,
            base_cooldown=definition.base_cooldown,
            cooldown_reduction_per_level=definition.cooldown_track.per_level,
            cooldown_costs=definition.cooldown_track.costs,
            required_rebirth_level=definition.required_rebirth_level,
            is_unlocked=definition.required_rebirth_level <= rebirth_level,
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "icon": self.icon,
            "baseDamageMultiplier": self.base_damage_multiplier,
            "damagePerLevel": self.damage_per_level,
            "damageCosts": list(self.damage_costs),
            "damageLevel": self.damage_level,
            "baseCooldown": self.base_cooldown,
            "cooldownReductionPerLevel": self.cooldown_reduction_per_level,
            "cooldownCosts": list(self.cooldown_costs),
            "cooldownLevel": self.cooldown_level,
            "requiredRebirthLevel": self.required_rebirth_level,
            "currentCooldown": self.current_cooldown,
            "isUnlocked": self.is_unlocked,
        }


@dataclass(slots=True, frozen=True)
class MaterialState:
    id: str
    name: str
    rarity: Rarity
    count: int = 0

    @classmethod
    def from_definition(cls, definition: MaterialDefinition, count: int = 0) -> "MaterialState":
        return cls(id=definition.id, name=definition.name, rarity=definition.rarity, count=count)

    def to_dict(self) -> Dict[str, Any]:
        return {"id": self.id, "name": self.name, "count": self.count, "rarity": self.rarity.value}


@dataclass(slots=True, frozen=True)
class AchievementState:
    id: str
    name: str
    description: str
    requirement: float
    type: AchievementType
    points: int
    unlocked: bool = False

    @classmethod
    def from_definition(cls, definition: AchievementDefinition, unlocked: bool = False) -> "AchievementState":
        return cls(
            id=definition.id,
            name=definition.name,
            description=definition.description,
            requirement=definition.requirement,
            type=definition.type,
            points=definition.points,
            unlocked=unlocked,
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "requirement": self.requirement,
            "type": self.type.value,
            "points": self.points,
            "unlocked": self.unlocked,
        }


@dataclass(slots=True, frozen=True)
class GameState:
    """Complete player progress. Only the reducer produces new instances.

    Serialized with the camelCase keys of the browser save blob so that saves
    written by either side stay interchangeable.
    """

    essence: float
    total_essence: float
    total_clicks: int
    energy: float
    max_energy: float
    energy_regen_rate: float
    base_dpc: float
    base_dps: float
    rebirth_level: int
    rebirth_points: float
    rebirth_multiplier: float
    upgrades: tuple[UpgradeState, ...]
    abilities: tuple[AbilityState, ...]
    materials: tuple[MaterialState, ...]
    achievements: tuple[AchievementState, ...]
    auto_buy_upgrades: Dict[str, bool] = field(default_factory=dict)
    crafted_items: Dict[str, int] = field(default_factory=dict)
    total_materials: int = 0
    achievement_points: int = 0
    selected_ability_id: Optional[str] = None
    last_save_time: int = 0
    last_tick_time: int = 0

    def upgrade(self, upgrade_id: str) -> Optional[UpgradeState]:
        return next((item for item in self.upgrades if item.id == upgrade_id), None)

    def ability(self, ability_id: str) -> Optional[AbilityState]:
        return next((item for item in self.abilities if item.id == ability_id), None)

    def material(self, material_id: str) -> Optional[MaterialState]:
        return next((item for item in self.materials if item.id == material_id), None)

    def material_count(self, material_id: str) -> int:
        material = self.material(material_id)
        return material.count if material is not None else 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "essence": self.essence,
            "totalEssence": self.total_essence,
            "totalClicks": self.total_clicks,
            "energy": self.energy,
            "maxEnergy": self.max_energy,
            "energyRegenRate": self.energy_regen_rate,
            "baseDpc": self.base_dpc,
            "baseDps": self.base_dps,
            "rebirthLevel": self.rebirth_level,
            "rebirthPoints": self.rebirth_points,
            "rebirthMultiplier": self.rebirth_multiplier,
            "upgrades": [item.to_dict() for item in self.upgrades],
            "autoBuyUpgrades": dict(self.auto_buy_upgrades),
            "abilities": [item.to_dict() for item in self.abilities],
            "selectedAbilityId": self.selected_ability_id,
            "materials": [item.to_dict() for item in self.materials],
            "totalMaterials": self.total_materials,
            "craftedItems": dict(self.crafted_items),
            "achievements": [item.to_dict() for item in self.achievements],
            "achievementPoints": self.achievement_points,
            "lastSaveTime": self.last_save_time,
            "lastTickTime": self.last_tick_time,
        }


def initial_game_state(catalog: Catalog, now_ms: int = 0) -> GameState:
    constants = catalog.constants
    abilities = tuple(AbilityState.from_definition(item) for item in catalog.abilities)
    return GameState(
        essence=0.0,
        total_essence=0.0,
        total_clicks=0,
        energy=constants.base_energy,
        max_energy=constants.base_max_energy,
        energy_regen_rate=constants.base_energy_regen_ms,
        base_dpc=constants.base_dpc,
        base_dps=constants.base_dps,
        rebirth_level=0,
        rebirth_points=0.0,
        rebirth_multiplier=1.0,
        upgrades=tuple(UpgradeState.from_definition(item) for item in catalog.upgrades),
        abilities=abilities,
        materials=tuple(MaterialState.from_definition(item) for item in catalog.materials),
        achievements=tuple(AchievementState.from_definition(item) for item in catalog.achievements),
        selected_ability_id=abilities[0].id if abilities else None,
        last_save_time=now_ms,
        last_tick_time=now_ms,
    )
