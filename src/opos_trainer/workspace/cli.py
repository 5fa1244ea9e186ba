"""``opos init``: create the workspace and, optionally, the quiz config."""

from __future__ import annotations

import argparse
import sys
from pathlib import Path
from typing import Mapping, Sequence

from opos_trainer.core import workspace as workspace_mod
from opos_trainer.quizzer import config as config_mod


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="opos init",
        description=(
            "Create the opos-trainer workspace (config, logs, data and "
            "exports directories)."
        ),
    )
    parser.add_argument(
        "--path",
        type=Path,
        help=(
            "Override the workspace root (defaults to OPOS_TRAINER_DATA_HOME "
            "or ~/.opos-trainer-data)."
        ),
    )
    parser.add_argument(
        "--with-config",
        action="store_true",
        help="Also write config/quiz.toml when it does not exist yet.",
    )
    parser.add_argument(
        "--quiet",
        action="store_true",
        help="Suppress informational output on success.",
    )
    return parser


def _status(created: Mapping[str, bool], key: str) -> str:
    return "created" if created.get(key, False) else "exists"


def main(argv: Sequence[str] | None = None) -> int:
    parser = _build_parser()
    args = parser.parse_args(list(argv) if argv is not None else None)

    try:
        layout = workspace_mod.ensure_workspace(path=args.path)
    except workspace_mod.WorkspaceError as exc:
        sys.stderr.write(f"Error: {exc}\n")
        return 1

    config_line = ""
    if args.with_config:
        target = layout.path_for("config") / config_mod.CONFIG_FILENAME
        if target.exists():
            config_line = f"Config: {target} (exists)"
        else:
            config_mod.write_template(target)
            config_line = f"Config: {target} (created)"

    if args.quiet:
        return 0

    lines = [f"Workspace ready at {layout.home} ({_status(layout.created, 'home')})"]
    width = max(len(name) for name in layout.directories)
    lines.append("Subdirectories:")
    for name, directory in layout.items():
        status = _status(layout.created, name)
        lines.append(f"  {name.ljust(width)}  {directory} ({status})")
    if config_line:
        lines.append(config_line)

    sys.stdout.write("\n".join(lines) + "\n")
    return 0


if __name__ == "__main__":  # pragma: no cover - module CLI guard
    raise SystemExit(main())
