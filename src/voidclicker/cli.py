from __future__ import annotations

import argparse
import json
import logging
import sys
import time
from pathlib import Path
from typing import Any, Optional, Sequence

from .config import ConfigError, GameConfig, load_config
from .engine import (
    Catalog,
    CatalogError,
    CatalogRepository,
    GameSession,
    ModelError,
    Scheduler,
    action_from_dict,
    migrate_state,
    offline_duration_ms,
)
from .engine.migration import coerce_payload
from .engine.session import wall_clock_ms
from .formatting import format_number, state_summary_dict, summarize_state
from .leaderboard import SORT_FIELDS, leaderboard_entry, rank_entries
from .persistence import CloudSync, LocalSaveStore, RemoteSaveClient, SaveRepository, restore_session


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="voidclicker",
        description="Simulate, inspect and rank Void Clicker saves.",
    )
    parser.add_argument("--config", default=None, help="Path to JSON/YAML runtime config.")
    parser.add_argument("--catalog-version", default=None, help="Catalog dataset version (defaults to active).")
    parser.add_argument(
        "--log-level",
        default=None,
        choices=("DEBUG", "INFO", "WARNING", "ERROR"),
        help="Logging verbosity (overrides config).",
    )
    sub = parser.add_subparsers(dest="command", required=True)

    simulate = sub.add_parser("simulate", help="Apply a JSON action script to a save.")
    simulate.add_argument("--save", default=None, help="Starting save blob (JSON). Omit for a new game.")
    simulate.add_argument("--actions", required=True, help="JSON file with a list of actions.")
    simulate.add_argument("--seed", type=int, default=None, help="Random seed for material drops.")
    simulate.add_argument("--now-ms", type=int, default=0, help="Session clock value in epoch ms.")
    simulate.add_argument("--out", default=None, help="Write the resulting save blob here.")
    simulate.add_argument("--format", choices=("table", "json"), default="table")

    inspect = sub.add_parser("inspect", help="Show derived stats for a save.")
    inspect.add_argument("save", help="Save blob (JSON).")
    inspect.add_argument("--format", choices=("table", "json"), default="table")

    board = sub.add_parser("leaderboard", help="Rank a directory of stored saves.")
    board.add_argument(
        "saves_dir",
        nargs="?",
        default=None,
        help="Directory with <user_id>.json save documents (defaults to config save_dir).",
    )
    board.add_argument("--sort-by", choices=tuple(SORT_FIELDS), default="essence")
    board.add_argument("--limit", type=int, default=10)
    board.add_argument("--format", choices=("table", "json"), default="table")

    run = sub.add_parser("run", help="Run an idle session in real time with autosave.")
    run.add_argument("--seconds", type=float, default=10.0, help="How long to run.")
    run.add_argument("--user-id", default=None, help="Sync with the remote save of this user.")
    return parser


def _read_json(path: Path) -> Any:
    try:
        return json.loads(path.read_text(encoding="utf-8"))
    except FileNotFoundError as exc:
        raise ModelError(f"File not found: {path}") from exc
    except json.JSONDecodeError as exc:
        raise ModelError(f"Invalid JSON in {path}: {exc}") from exc


def _print_json(payload: Any) -> None:
    json.dump(payload, sys.stdout, indent=2, ensure_ascii=False)
    sys.stdout.write("\n")


def _cmd_simulate(args: argparse.Namespace, catalog: Catalog, config: GameConfig) -> int:
    script = _read_json(Path(args.actions))
    if not isinstance(script, list):
        raise ModelError("Action script must be a JSON list.")
    actions = [action_from_dict(item) for item in script]

    blob = _read_json(Path(args.save)) if args.save else None
    now_ms = args.now_ms
    initial = migrate_state(blob, catalog, now_ms) if blob is not None else None
    seed = args.seed if args.seed is not None else config.seed
    session = GameSession(catalog, initial_state=initial, seed=seed, clock=lambda: now_ms)

    results = [session.dispatch(action) for action in actions]
    state = session.get_state()
    applied = sum(1 for item in results if item)

    if args.out:
        if not LocalSaveStore(args.out).save_state(session.snapshot_for_save()):
            raise ModelError(f"Could not write {args.out}")

    if args.format == "json":
        _print_json(
            {
                "applied": applied,
                "rejected": len(results) - applied,
                "summary": state_summary_dict(state, catalog),
            }
        )
    else:
        print(f"Applied {applied}/{len(results)} actions ({len(results) - applied} rejected).")
        print(summarize_state(state, catalog))
    return 0


def _cmd_inspect(args: argparse.Namespace, catalog: Catalog, config: GameConfig) -> int:
    blob = coerce_payload(_read_json(Path(args.save)))
    if isinstance(blob.get("state"), dict):
        blob = blob["state"]
    now_ms = wall_clock_ms()
    state = migrate_state(blob, catalog, now_ms)
    offline_ms = offline_duration_ms(blob, now_ms)
    if args.format == "json":
        _print_json({"offline_ms": offline_ms, "summary": state_summary_dict(state, catalog)})
    else:
        print(summarize_state(state, catalog))
        if offline_ms:
            print(f"Last saved {offline_ms / 1000.0:.0f} s ago.")
    return 0


def _cmd_leaderboard(args: argparse.Namespace, catalog: Catalog, config: GameConfig) -> int:
    if args.limit <= 0:
        raise ModelError("--limit must be > 0.")
    saves_dir = Path(args.saves_dir) if args.saves_dir else config.save_dir
    if not saves_dir.is_dir():
        raise ModelError(f"Saves directory not found: {saves_dir}")
    repo = SaveRepository(saves_dir=saves_dir)
    entries = [leaderboard_entry(record.user_id, record.state, catalog) for record in repo.iter_saves()]
    ranked = rank_entries(entries, args.sort_by)[: args.limit]

    if args.format == "json":
        _print_json([item.to_dict() for item in ranked])
        return 0
    if not ranked:
        print("No saves found.")
        return 0
    header = f"{'Rank':<6}{'User':<24}{'Essence':<12}{'Rebirth':<9}{'Clicks':<10}Craft"
    print(header)
    print("-" * len(header))
    for item in ranked:
        print(
            f"{item.rank:<6}{item.user_id:<24}{format_number(item.total_essence):<12}"
            f"{item.rebirth_level:<9}{item.total_clicks:<10}{format_number(item.craft_score)}"
        )
    return 0


def _cmd_run(args: argparse.Namespace, catalog: Catalog, config: GameConfig) -> int:
    store = LocalSaveStore(config.local_save_path)
    session = GameSession(catalog, seed=config.seed)
    restored, offline_ms = restore_session(session, store)
    if restored:
        print(f"Restored local save ({offline_ms / 1000.0:.0f} s offline, no offline progress).")

    scheduler = Scheduler.from_config(session, config, on_autosave=store.save_state)
    cloud: Optional[CloudSync] = None
    if args.user_id and config.remote_base_url:
        client = RemoteSaveClient(config.remote_base_url, timeout_s=config.remote_timeout_s)
        cloud = CloudSync(
            session,
            client,
            debounce_ms=config.remote_debounce_ms,
            essence_threshold=config.debounce_essence_threshold,
        )
        cloud.load(args.user_id)
        cloud.attach(scheduler, interval_ms=config.remote_autosave_interval_ms)

    scheduler.start()
    try:
        time.sleep(max(0.0, args.seconds))
    except KeyboardInterrupt:
        pass
    finally:
        scheduler.stop()
        store.save_state(session.snapshot_for_save())
        if cloud is not None:
            cloud.close()

    print(summarize_state(session.get_state(), catalog))
    return 0


_COMMANDS = {
    "simulate": _cmd_simulate,
    "inspect": _cmd_inspect,
    "leaderboard": _cmd_leaderboard,
    "run": _cmd_run,
}


def main(argv: Sequence[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    try:
        config = load_config(Path(args.config)) if args.config else GameConfig()
    except ConfigError as exc:
        parser.error(str(exc))

    logging.basicConfig(
        level=args.log_level or config.log_level,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    try:
        _, catalog = CatalogRepository().load_catalog(args.catalog_version or config.catalog_version)
    except CatalogError as exc:
        parser.error(str(exc))

    try:
        return _COMMANDS[args.command](args, catalog, config)
    except ModelError as exc:
        parser.error(str(exc))
    return 2


if __name__ == "__main__":
    raise SystemExit(main())
