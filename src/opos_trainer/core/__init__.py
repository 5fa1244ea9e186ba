"""Core shared helpers for opos_trainer subcommands."""

from __future__ import annotations

from .ai import API_KEY_ENV, load_client, resolve_api_key
from .logging import ROOT_LOGGER, JsonLogFormatter, configure_logger
from .workspace import (
    WORKSPACE_ENV,
    WorkspaceError,
    WorkspaceLayout,
    ensure_workspace,
    resolve_home,
)

__all__ = [
    "API_KEY_ENV",
    "load_client",
    "resolve_api_key",
    "ROOT_LOGGER",
    "JsonLogFormatter",
    "configure_logger",
    "WORKSPACE_ENV",
    "WorkspaceError",
    "WorkspaceLayout",
    "ensure_workspace",
    "resolve_home",
]
