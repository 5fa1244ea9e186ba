"""Workspace bootstrap for opos-trainer data, config, logs and exports."""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from types import MappingProxyType
from typing import Mapping, MutableMapping


WORKSPACE_ENV = "OPOS_TRAINER_DATA_HOME"
DEFAULT_WORKSPACE = Path.home() / ".opos-trainer-data"

SUBDIRS: Mapping[str, str] = MappingProxyType(
    {
        "config": "config",
        "logs": "logs",
        "data": "data",
        "exports": "exports",
    }
)


class WorkspaceError(RuntimeError):
    """Raised when the workspace layout cannot be prepared."""


@dataclass(frozen=True)
class WorkspaceLayout:
    """Resolved workspace paths and creation metadata."""

    home: Path
    directories: Mapping[str, Path]
    created: Mapping[str, bool]

    def path_for(self, key: str) -> Path:
        try:
            return self.directories[key]
        except KeyError as exc:
            raise KeyError(f"Unknown workspace directory '{key}'.") from exc

    def items(self) -> tuple[tuple[str, Path], ...]:
        return tuple(self.directories.items())


def resolve_home(
    *, env: Mapping[str, str] | None = None, path: Path | None = None
) -> Path:
    """Return the workspace root from ``path``, the environment or default."""

    if path is not None:
        target = Path(path)
    else:
        env_map = os.environ if env is None else env
        custom = (env_map.get(WORKSPACE_ENV) or "").strip()
        target = Path(custom) if custom else DEFAULT_WORKSPACE
    return target.expanduser().absolute()


def ensure_workspace(
    *,
    env: Mapping[str, str] | None = None,
    path: Path | None = None,
    create: bool = True,
) -> WorkspaceLayout:
    """Ensure the workspace exists (unless ``create`` is false) and describe it."""

    home = resolve_home(env=env, path=path)
    if home.exists() and not home.is_dir():
        raise WorkspaceError(
            f"Configured workspace exists and is not a directory: {home}"
        )

    created: MutableMapping[str, bool] = {}
    directories: MutableMapping[str, Path] = {}
    try:
        created["home"] = _ensure_dir(home) if create else False
        for key, relative in SUBDIRS.items():
            candidate = home / relative
            if candidate.exists() and not candidate.is_dir():
                raise WorkspaceError(
                    "Expected workspace directory for '{0}' but found a "
                    "file: {1}".format(key, candidate)
                )
            created[key] = _ensure_dir(candidate) if create else False
            directories[key] = candidate
    except PermissionError as exc:
        raise WorkspaceError(f"Unable to prepare workspace at {home}") from exc

    return WorkspaceLayout(
        home=home,
        directories=MappingProxyType(dict(directories)),
        created=MappingProxyType(dict(created)),
    )


def _ensure_dir(path: Path) -> bool:
    existed = path.exists()
    path.mkdir(parents=True, exist_ok=True)
    try:
        path.chmod(0o700)
    except (PermissionError, NotImplementedError):
        pass
    return not existed
