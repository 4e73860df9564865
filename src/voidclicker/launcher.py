from __future__ import annotations

import argparse
import logging
import os
from pathlib import Path

import uvicorn

from voidclicker.config import ConfigError, load_config


def resolve_saves_dir(saves_dir: str | None, config_path: str | None) -> Path | None:
    if saves_dir:
        return Path(saves_dir).expanduser().resolve()
    if config_path:
        return load_config(Path(config_path).expanduser()).save_dir.resolve()
    return None


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(
        prog="voidclicker-server",
        description="Run the Void Clicker save/leaderboard API server.",
    )
    parser.add_argument("--host", default="127.0.0.1")
    parser.add_argument("--port", type=int, default=8000)
    parser.add_argument("--config", default=None, help="Runtime config; its save_dir is used when --saves-dir is omitted.")
    parser.add_argument("--saves-dir", default=None, help="Directory for stored save documents.")
    parser.add_argument("--log-level", default="info")
    args = parser.parse_args(argv)

    try:
        saves_dir = resolve_saves_dir(args.saves_dir, args.config)
    except ConfigError as exc:
        parser.error(str(exc))
    if saves_dir is not None:
        os.environ["VOIDCLICKER_SAVES_DIR"] = str(saves_dir)

    logging.basicConfig(
        level=args.log_level.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    # Import after env setup so api.py resolves the saves directory.
    from voidclicker.api import app as api_app, save_repo

    print(f"Void Clicker saves: {save_repo.saves_dir}")
    print(f"Serving on http://{args.host}:{args.port}")
    uvicorn.run(api_app, host=args.host, port=args.port, log_level=args.log_level)
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
