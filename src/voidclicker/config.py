from __future__ import annotations

import json
from dataclasses import dataclass, fields
from pathlib import Path
from typing import Any, Dict, Optional


class ConfigError(RuntimeError):
    """Raised when configuration file is invalid."""


_LOG_LEVELS = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}


@dataclass(slots=True, frozen=True)
class GameConfig:
    tick_interval_ms: float = 100.0
    autosave_interval_ms: float = 5000.0
    remote_autosave_interval_ms: float = 60000.0
    remote_debounce_ms: float = 2000.0
    debounce_essence_threshold: float = 10.0
    max_catch_up_ms: float = 1000.0
    catalog_version: Optional[str] = None
    save_dir: Path = Path("runtime") / "saves"
    local_save_path: Path = Path("runtime") / "voidClickerSave.json"
    remote_base_url: Optional[str] = None
    remote_timeout_s: float = 10.0
    seed: Optional[int] = None
    log_level: str = "INFO"


def _read_raw(path: Path) -> Any:
    if not path.exists():
        raise ConfigError(f"Config file not found: {path}")

    suffix = path.suffix.lower()
    text = path.read_text(encoding="utf-8")

    if suffix == ".json":
        try:
            return json.loads(text)
        except json.JSONDecodeError as exc:
            raise ConfigError(f"Invalid JSON in {path}: {exc}") from exc

    if suffix in {".yaml", ".yml"}:
        try:
            import yaml  # type: ignore
        except ImportError as exc:  # pragma: no cover - optional dependency
            raise ConfigError("YAML config requested, but PyYAML is not installed. Install `pyyaml` or use JSON.") from exc
        try:
            return yaml.safe_load(text)
        except yaml.YAMLError as exc:
            raise ConfigError(f"Invalid YAML in {path}: {exc}") from exc

    raise ConfigError(f"Unsupported config format '{suffix}'. Use .json or .yaml/.yml.")


def _positive(payload: Dict[str, Any], key: str, default: float) -> float:
    raw = payload.get(key, default)
    try:
        value = float(raw)
    except (TypeError, ValueError) as exc:
        raise ConfigError(f"Field '{key}' must be numeric.") from exc
    if value <= 0:
        raise ConfigError(f"Field '{key}' must be > 0.")
    return value


def _optional_str(payload: Dict[str, Any], key: str) -> Optional[str]:
    value = payload.get(key)
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def config_from_dict(payload: Dict[str, Any], base_dir: Optional[Path] = None) -> GameConfig:
    if not isinstance(payload, dict):
        raise ConfigError("Config root must be an object (JSON/YAML mapping).")

    known = {item.name for item in fields(GameConfig)}
    unknown = sorted(set(payload) - known)
    if unknown:
        raise ConfigError(f"Unknown config fields: {', '.join(unknown)}")

    defaults = GameConfig()
    base_dir = base_dir or Path.cwd()

    seed = payload.get("seed")
    if seed is not None:
        try:
            seed = int(seed)
        except (TypeError, ValueError) as exc:
            raise ConfigError("Field 'seed' must be integer.") from exc

    log_level = str(payload.get("log_level", defaults.log_level)).strip().upper()
    if log_level not in _LOG_LEVELS:
        raise ConfigError(f"Unsupported log_level '{log_level}'. Use one of: {', '.join(sorted(_LOG_LEVELS))}.")

    def _path(key: str, default: Path) -> Path:
        value = Path(str(payload.get(key, default)))
        return value if value.is_absolute() else base_dir / value

    return GameConfig(
        tick_interval_ms=_positive(payload, "tick_interval_ms", defaults.tick_interval_ms),
        autosave_interval_ms=_positive(payload, "autosave_interval_ms", defaults.autosave_interval_ms),
        remote_autosave_interval_ms=_positive(
            payload, "remote_autosave_interval_ms", defaults.remote_autosave_interval_ms
        ),
        remote_debounce_ms=_positive(payload, "remote_debounce_ms", defaults.remote_debounce_ms),
        debounce_essence_threshold=_positive(
            payload, "debounce_essence_threshold", defaults.debounce_essence_threshold
        ),
        max_catch_up_ms=_positive(payload, "max_catch_up_ms", defaults.max_catch_up_ms),
        catalog_version=_optional_str(payload, "catalog_version"),
        save_dir=_path("save_dir", defaults.save_dir),
        local_save_path=_path("local_save_path", defaults.local_save_path),
        remote_base_url=_optional_str(payload, "remote_base_url"),
        remote_timeout_s=_positive(payload, "remote_timeout_s", defaults.remote_timeout_s),
        seed=seed,
        log_level=log_level,
    )


def load_config(path: Path | str) -> GameConfig:
    path = Path(path)
    payload = _read_raw(path)
    if payload is None:
        payload = {}
    return config_from_dict(payload, base_dir=path.parent)
