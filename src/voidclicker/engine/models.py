from __future__ import annotations

import math
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Iterable, Optional


class ModelError(ValueError):
    """Raised for malformed catalog or action payloads."""


class UpgradeType(str, Enum):
    DPC = "dpc"
    DPS = "dps"
    ENERGY_MAX = "energy_max"
    ENERGY_REGEN = "energy_regen"


class Rarity(str, Enum):
    COMMON = "common"
    UNCOMMON = "uncommon"
    RARE = "rare"
    EPIC = "epic"
    LEGENDARY = "legendary"


class AchievementType(str, Enum):
    ESSENCE = "essence"
    DPC = "dpc"
    DPS = "dps"
    REBIRTH = "rebirth"
    CLICKS = "clicks"
    MATERIALS = "materials"


class AbilityTrack(str, Enum):
    DAMAGE = "damage"
    COOLDOWN = "cooldown"


class MaterialSource(str, Enum):
    GATHERED = "gathered"
    CRAFTED = "crafted"


def _require(payload: Dict[str, Any], key: str) -> Any:
    if key not in payload:
        raise ModelError(f"Missing required field: {key}")
    return payload[key]


def _finite(value: Any, label: str) -> float:
    try:
        number = float(value)
    except (TypeError, ValueError) as exc:
        raise ModelError(f"Field '{label}' must be numeric, got {value!r}.") from exc
    if not math.isfinite(number):
        raise ModelError(f"Field '{label}' must be finite, got {value!r}.")
    return number


def _enum(enum_cls, value: Any, label: str):
    try:
        return enum_cls(str(value).strip().lower())
    except ValueError as exc:
        allowed = ", ".join(item.value for item in enum_cls)
        raise ModelError(f"Unsupported {label} '{value}'. Use one of: {allowed}.") from exc


def parse_rarity(value: Any) -> Rarity:
    return _enum(Rarity, value, "rarity")


def parse_track(value: Any) -> AbilityTrack:
    return _enum(AbilityTrack, value, "ability track")


def ensure_unique_ids(items: Iterable[str], label: str) -> None:
    seen: set[str] = set()
    for item in items:
        if item in seen:
            raise ModelError(f"Duplicate {label} id: {item}")
        seen.add(item)


@dataclass(slots=True, frozen=True)
class PrestigeYieldWeights:
    essence_weight: float = 1.0
    clicks_per_point: float = 10000.0
    upgrade_unit_weight: float = 1.0

    @classmethod
    def from_dict(cls, payload: Dict[str, Any]) -> "PrestigeYieldWeights":
        clicks_per_point = _finite(payload.get("clicks_per_point", 10000), "clicks_per_point")
        if clicks_per_point <= 0:
            raise ModelError("Field 'clicks_per_point' must be > 0.")
        return cls(
            essence_weight=_finite(payload.get("essence_weight", 1.0), "essence_weight"),
            clicks_per_point=clicks_per_point,
            upgrade_unit_weight=_finite(payload.get("upgrade_unit_weight", 1.0), "upgrade_unit_weight"),
        )


@dataclass(slots=True, frozen=True)
class CatalogConstants:
    base_energy: float = 20.0
    base_max_energy: float = 20.0
    base_energy_regen_ms: float = 500.0
    energy_regen_floor_ms: float = 100.0
    base_dpc: float = 1.0
    base_dps: float = 0.0
    prestige_cost_base: float = 100000.0
    prestige_cost_growth: float = 10.0
    rebirth_multiplier_step: float = 0.5
    min_ability_cooldown_s: float = 0.5
    prestige_yield: PrestigeYieldWeights = field(default_factory=PrestigeYieldWeights)

    @classmethod
    def from_dict(cls, payload: Dict[str, Any]) -> "CatalogConstants":
        defaults = cls()
        values: Dict[str, Any] = {}
        for name in (
            "base_energy",
            "base_max_energy",
            "base_energy_regen_ms",
            "energy_regen_floor_ms",
            "base_dpc",
            "base_dps",
            "prestige_cost_base",
            "prestige_cost_growth",
            "rebirth_multiplier_step",
            "min_ability_cooldown_s",
        ):
            values[name] = _finite(payload.get(name, getattr(defaults, name)), name)

        if values["prestige_cost_growth"] < 2.0:
            raise ModelError("prestige_cost_growth must be >= 2.")
        if values["rebirth_multiplier_step"] <= 0.0:
            raise ModelError("rebirth_multiplier_step must be > 0.")
        if values["energy_regen_floor_ms"] <= 0.0:
            raise ModelError("energy_regen_floor_ms must be > 0.")
        if values["base_energy"] > values["base_max_energy"]:
            raise ModelError("base_energy cannot exceed base_max_energy.")
        if values["min_ability_cooldown_s"] <= 0.0:
            raise ModelError("min_ability_cooldown_s must be > 0.")

        values["prestige_yield"] = PrestigeYieldWeights.from_dict(payload.get("prestige_yield", {}))
        return cls(**values)


@dataclass(slots=True, frozen=True)
class UpgradeDefinition:
    id: str
    name: str
    description: str
    base_cost: float
    cost_multiplier: float
    value: float
    type: UpgradeType

    @classmethod
    def from_dict(cls, payload: Dict[str, Any]) -> "UpgradeDefinition":
        upgrade_id = str(_require(payload, "id"))
        cost_multiplier = _finite(_require(payload, "cost_multiplier"), "cost_multiplier")
        if cost_multiplier <= 1.0:
            raise ModelError(f"Upgrade '{upgrade_id}' cost_multiplier must be > 1.")
        base_cost = _finite(_require(payload, "base_cost"), "base_cost")
        if base_cost <= 0.0:
            raise ModelError(f"Upgrade '{upgrade_id}' base_cost must be > 0.")
        return cls(
            id=upgrade_id,
            name=str(payload.get("name", upgrade_id)),
            description=str(payload.get("description", "")),
            base_cost=base_cost,
            cost_multiplier=cost_multiplier,
            value=_finite(_require(payload, "value"), "value"),
            type=_enum(UpgradeType, _require(payload, "type"), "upgrade type"),
        )


@dataclass(slots=True, frozen=True)
class TrackDefinition:
    per_level: float
    costs: tuple[float, ...]

    @classmethod
    def from_dict(cls, payload: Dict[str, Any]) -> "TrackDefinition":
        costs = tuple(_finite(item, "costs") for item in payload.get("costs", []))
        if any(cost < 0 for cost in costs):
            raise ModelError("Track costs cannot be negative.")
        return cls(per_level=_finite(_require(payload, "per_level"), "per_level"), costs=costs)


@dataclass(slots=True, frozen=True)
class AbilityDefinition:
    id: str
    name: str
    icon: str
    base_damage_multiplier: float
    base_cooldown: float
    required_rebirth_level: int
    damage_track: TrackDefinition
    cooldown_track: TrackDefinition

    @classmethod
    def from_dict(cls, payload: Dict[str, Any]) -> "AbilityDefinition":
        return cls(
            id=str(_require(payload, "id")),
            name=str(payload.get("name", payload["id"])),
            icon=str(payload.get("icon", "")),
            base_damage_multiplier=_finite(_require(payload, "base_damage_multiplier"), "base_damage_multiplier"),
            base_cooldown=_finite(_require(payload, "base_cooldown"), "base_cooldown"),
            required_rebirth_level=max(0, int(payload.get("required_rebirth_level", 0))),
            damage_track=TrackDefinition.from_dict(_require(payload, "damage_track")),
            cooldown_track=TrackDefinition.from_dict(_require(payload, "cooldown_track")),
        )


@dataclass(slots=True, frozen=True)
class MaterialDefinition:
    id: str
    name: str
    rarity: Rarity
    source: MaterialSource = MaterialSource.GATHERED

    @classmethod
    def from_dict(cls, payload: Dict[str, Any]) -> "MaterialDefinition":
        return cls(
            id=str(_require(payload, "id")),
            name=str(payload.get("name", payload["id"])),
            rarity=parse_rarity(_require(payload, "rarity")),
            source=_enum(MaterialSource, payload.get("source", "gathered"), "material source"),
        )


@dataclass(slots=True, frozen=True)
class MaterialAmount:
    material_id: str
    count: int

    @classmethod
    def from_dict(cls, payload: Dict[str, Any]) -> "MaterialAmount":
        count = int(_require(payload, "count"))
        if count <= 0:
            raise ModelError("Recipe material count must be > 0.")
        return cls(material_id=str(_require(payload, "material_id")), count=count)


@dataclass(slots=True, frozen=True)
class Recipe:
    id: str
    name: str
    description: str
    inputs: tuple[MaterialAmount, ...]
    output: MaterialAmount
    energy_cost: float

    @classmethod
    def from_dict(cls, payload: Dict[str, Any]) -> "Recipe":
        recipe_id = str(_require(payload, "id"))
        inputs = tuple(MaterialAmount.from_dict(item) for item in _require(payload, "inputs"))
        if not inputs:
            raise ModelError(f"Recipe '{recipe_id}' has no inputs.")
        energy_cost = _finite(payload.get("energy_cost", 0), "energy_cost")
        if energy_cost < 0:
            raise ModelError(f"Recipe '{recipe_id}' energy_cost cannot be negative.")
        return cls(
            id=recipe_id,
            name=str(payload.get("name", recipe_id)),
            description=str(payload.get("description", "")),
            inputs=inputs,
            output=MaterialAmount.from_dict(_require(payload, "output")),
            energy_cost=energy_cost,
        )


@dataclass(slots=True, frozen=True)
class AchievementDefinition:
    id: str
    name: str
    description: str
    requirement: float
    type: AchievementType
    points: int

    @classmethod
    def from_dict(cls, payload: Dict[str, Any]) -> "AchievementDefinition":
        return cls(
            id=str(_require(payload, "id")),
            name=str(payload.get("name", payload["id"])),
            description=str(payload.get("description", "")),
            requirement=_finite(_require(payload, "requirement"), "requirement"),
            type=_enum(AchievementType, _require(payload, "type"), "achievement type"),
            points=max(0, int(payload.get("points", 0))),
        )


@dataclass(slots=True, frozen=True)
class DropTable:
    click_chance: float = 0.03
    tick_chance_per_100ms: float = 0.005
    rarity_weights: Dict[Rarity, float] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, payload: Dict[str, Any]) -> "DropTable":
        weights = {
            parse_rarity(key): _finite(value, f"drop weight {key}")
            for key, value in payload.get("rarity_weights", {}).items()
        }
        if any(weight < 0 for weight in weights.values()):
            raise ModelError("Drop weights cannot be negative.")
        click_chance = _finite(payload.get("click_chance", 0.03), "click_chance")
        tick_chance = _finite(payload.get("tick_chance_per_100ms", 0.005), "tick_chance_per_100ms")
        if not 0.0 <= click_chance <= 1.0 or not 0.0 <= tick_chance <= 1.0:
            raise ModelError("Drop chances must be within [0, 1].")
        return cls(click_chance=click_chance, tick_chance_per_100ms=tick_chance, rarity_weights=weights)


@dataclass(slots=True, frozen=True)
class Catalog:
    constants: CatalogConstants
    rarity_weights: Dict[Rarity, float]
    drops: DropTable
    upgrades: tuple[UpgradeDefinition, ...]
    abilities: tuple[AbilityDefinition, ...]
    materials: tuple[MaterialDefinition, ...]
    recipes: tuple[Recipe, ...]
    achievements: tuple[AchievementDefinition, ...]

    @classmethod
    def from_dict(cls, payload: Dict[str, Any]) -> "Catalog":
        if not isinstance(payload, dict):
            raise ModelError("Catalog root must be an object.")

        rarity_weights = {
            parse_rarity(key): _finite(value, f"rarity weight {key}")
            for key, value in payload.get("rarity_weights", {}).items()
        }
        missing = [rarity.value for rarity in Rarity if rarity not in rarity_weights]
        if missing:
            raise ModelError(f"Missing rarity weights: {', '.join(missing)}")

        catalog = cls(
            constants=CatalogConstants.from_dict(payload.get("constants", {})),
            rarity_weights=rarity_weights,
            drops=DropTable.from_dict(payload.get("drops", {})),
            upgrades=tuple(UpgradeDefinition.from_dict(item) for item in payload.get("upgrades", [])),
            abilities=tuple(AbilityDefinition.from_dict(item) for item in payload.get("abilities", [])),
            materials=tuple(MaterialDefinition.from_dict(item) for item in payload.get("materials", [])),
            recipes=tuple(Recipe.from_dict(item) for item in payload.get("recipes", [])),
            achievements=tuple(AchievementDefinition.from_dict(item) for item in payload.get("achievements", [])),
        )
        catalog.validate()
        return catalog

    def validate(self) -> None:
        ensure_unique_ids((item.id for item in self.upgrades), "upgrade")
        ensure_unique_ids((item.id for item in self.abilities), "ability")
        ensure_unique_ids((item.id for item in self.materials), "material")
        ensure_unique_ids((item.id for item in self.recipes), "recipe")
        ensure_unique_ids((item.id for item in self.achievements), "achievement")

        material_ids = {item.id for item in self.materials}
        for recipe in self.recipes:
            for amount in recipe.inputs + (recipe.output,):
                if amount.material_id not in material_ids:
                    raise ModelError(f"Recipe '{recipe.id}' references unknown material '{amount.material_id}'.")

    def upgrade(self, upgrade_id: str) -> Optional[UpgradeDefinition]:
        return next((item for item in self.upgrades if item.id == upgrade_id), None)

    def ability(self, ability_id: str) -> Optional[AbilityDefinition]:
        return next((item for item in self.abilities if item.id == ability_id), None)

    def material(self, material_id: str) -> Optional[MaterialDefinition]:
        return next((item for item in self.materials if item.id == material_id), None)

    def recipe(self, recipe_id: str) -> Optional[Recipe]:
        return next((item for item in self.recipes if item.id == recipe_id), None)

    def rarity_weight(self, rarity: Rarity) -> float:
        return self.rarity_weights.get(rarity, 1.0)

    def gatherable_materials(self) -> tuple[MaterialDefinition, ...]:
        return tuple(item for item in self.materials if item.source is MaterialSource.GATHERED)
