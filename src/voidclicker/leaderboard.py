"""Leaderboard scoring over raw saved blobs.

Scores are computed from stored saves outside any live session, so they reuse
the engine formulas rather than re-deriving them.
"""
from __future__ import annotations

from dataclasses import dataclass, replace
from typing import Any, Dict, Iterable, List, Mapping, Optional

from .engine.formulas import craft_score
from .engine.migration import as_float, as_int, coerce_payload
from .engine.models import Catalog, ModelError

SORT_FIELDS: Dict[str, str] = {
    "essence": "total_essence",
    "rebirth": "rebirth_level",
    "clicks": "total_clicks",
    "craft": "craft_score",
}


@dataclass(slots=True, frozen=True)
class LeaderboardEntry:
    user_id: str
    total_essence: float
    rebirth_level: int
    total_clicks: int
    craft_score: float
    rank: int = 0
    nickname: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "rank": self.rank,
            "user_id": self.user_id,
            "nickname": self.nickname,
            "total_essence": self.total_essence,
            "rebirth_level": self.rebirth_level,
            "total_clicks": self.total_clicks,
            "craft_score": self.craft_score,
        }


def _material_rarities(blob: Mapping[str, Any], catalog: Optional[Catalog]) -> Dict[str, Any]:
    rarities: Dict[str, Any] = {}
    if catalog is not None:
        rarities.update({item.id: item.rarity for item in catalog.materials})
    materials = blob.get("materials")
    if isinstance(materials, list):
        for item in materials:
            if isinstance(item, dict) and "id" in item and "rarity" in item:
                rarities[str(item["id"])] = item["rarity"]
    return rarities


def blob_craft_score(blob: Any, catalog: Catalog) -> float:
    payload = coerce_payload(blob)
    crafted_raw = payload.get("craftedItems")
    if not isinstance(crafted_raw, dict):
        return 0.0
    crafted = {str(key): as_int(value, 0) for key, value in crafted_raw.items()}
    return craft_score(crafted, _material_rarities(payload, catalog), catalog.rarity_weights)


def leaderboard_entry(user_id: str, blob: Any, catalog: Catalog, nickname: Optional[str] = None) -> LeaderboardEntry:
    payload = coerce_payload(blob)
    return LeaderboardEntry(
        user_id=str(user_id),
        total_essence=as_float(payload.get("totalEssence"), 0.0),
        rebirth_level=as_int(payload.get("rebirthLevel"), 0),
        total_clicks=as_int(payload.get("totalClicks"), 0),
        craft_score=blob_craft_score(payload, catalog),
        nickname=nickname,
    )


def rank_entries(entries: Iterable[LeaderboardEntry], sort_by: str = "essence") -> List[LeaderboardEntry]:
    """Sort descending by ``sort_by`` and assign 1-based ranks.

    Ties keep their input order.
    """
    key = sort_by.strip().lower()
    field_name = SORT_FIELDS.get(key)
    if field_name is None:
        raise ModelError(f"Unsupported leaderboard sort '{sort_by}'. Use one of: {', '.join(SORT_FIELDS)}.")
    ordered = sorted(entries, key=lambda item: getattr(item, field_name), reverse=True)
    return [replace(item, rank=index) for index, item in enumerate(ordered, start=1)]
