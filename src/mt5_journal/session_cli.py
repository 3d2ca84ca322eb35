from __future__ import annotations

import argparse
from pathlib import Path

from mt5_journal.config.app_config import load_app_config, resolve_config_path
from mt5_journal.reconstruct.sessions import classify_session


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(description="Classify timestamps into trading sessions.")
    parser.add_argument("timestamps", nargs="+", help="Timestamps such as '2024.01.15 14:20:00' or '09:45'.")
    parser.add_argument("--config", type=Path, default=None, help="Path to app.toml.")
    args = parser.parse_args(argv)

    app_config = load_app_config(resolve_config_path(args.config))
    clock = app_config.session_clock()
    for value in args.timestamps:
        session = classify_session(value, clock=clock, default_time=clock.default_time)
        print(f"{value}\t{session}")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
