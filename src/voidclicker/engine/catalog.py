from __future__ import annotations

import json
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Optional

from .models import Catalog, ModelError


class CatalogError(RuntimeError):
    """Raised when versioned catalog cannot be loaded."""


@dataclass(slots=True, frozen=True)
class DatasetMeta:
    dataset_version: str
    game_version: str
    build_id: str
    catalog_path: Path


class CatalogRepository:
    """Loads versioned game catalogs (upgrades, abilities, recipes...) from package data."""

    def __init__(self, data_root: Optional[Path] = None):
        if data_root is None:
            data_root = Path(__file__).resolve().parents[1] / "data"
        self.data_root = Path(data_root)
        self.versions_index_path = self.data_root / "versions" / "index.json"

    def _read_json(self, path: Path) -> Dict[str, Any]:
        if not path.exists():
            raise CatalogError(f"Required file not found: {path}")
        try:
            return json.loads(path.read_text(encoding="utf-8"))
        except json.JSONDecodeError as exc:
            raise CatalogError(f"Invalid JSON in {path}: {exc}") from exc

    def get_active_dataset_meta(self) -> DatasetMeta:
        payload = self._read_json(self.versions_index_path)
        active = payload.get("active_version")
        if not active:
            raise CatalogError("versions/index.json does not define 'active_version'.")
        return self.get_dataset_meta(str(active))

    def get_dataset_meta(self, dataset_version: str) -> DatasetMeta:
        payload = self._read_json(self.versions_index_path)
        for item in payload.get("versions", []):
            if str(item.get("id")) != dataset_version:
                continue
            catalog_rel = str(item.get("catalog_path", "")).strip()
            if not catalog_rel:
                raise CatalogError(f"Version {dataset_version} is missing catalog_path.")
            return DatasetMeta(
                dataset_version=dataset_version,
                game_version=str(item.get("game_version", dataset_version)),
                build_id=str(item.get("build_id", "unknown")),
                catalog_path=self.versions_index_path.parent / catalog_rel,
            )
        raise CatalogError(f"Dataset version not found: {dataset_version}")

    def load_catalog_payload(self, dataset_version: Optional[str] = None) -> tuple[DatasetMeta, Dict[str, Any]]:
        meta = self.get_dataset_meta(dataset_version) if dataset_version else self.get_active_dataset_meta()
        payload = self._read_json(meta.catalog_path)
        if not isinstance(payload, dict):
            raise CatalogError(f"Catalog file must contain a JSON object: {meta.catalog_path}")
        return meta, payload

    def load_catalog(self, dataset_version: Optional[str] = None) -> tuple[DatasetMeta, Catalog]:
        meta, payload = self.load_catalog_payload(dataset_version)
        try:
            catalog = Catalog.from_dict(payload)
        except (ModelError, TypeError, ValueError) as exc:
            raise CatalogError(f"Catalog {meta.dataset_version} is invalid: {exc}") from exc
        return meta, catalog


def load_default_catalog() -> Catalog:
    _, catalog = CatalogRepository().load_catalog()
    return catalog
