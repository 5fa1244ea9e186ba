"""TOML configuration for the quiz trainer.

The file lives at ``<workspace>/config/quiz.toml`` (or ``OPOS_TRAINER_CONFIG``).
A missing file means "all defaults"; unknown keys and bad values are
rejected with :class:`ConfigError`.
"""

from __future__ import annotations

import copy
import os
from dataclasses import dataclass
from importlib import resources
from pathlib import Path
from typing import Any, Dict, Mapping, MutableMapping, Optional

try:  # Python 3.11+
    import tomllib
except ModuleNotFoundError as exc:  # pragma: no cover - should never happen
    raise RuntimeError("Python 3.11+ required for tomllib support") from exc

from ..core import workspace as workspace_mod
from .explain import ExplanationSettings

__all__ = [
    "CONFIG_FILENAME",
    "CONFIG_PATH_ENV",
    "ConfigError",
    "QuizConfig",
    "config_template",
    "default_config",
    "default_tree",
    "load_config",
    "resolve_config_path",
    "write_template",
]

CONFIG_PATH_ENV = "OPOS_TRAINER_CONFIG"
CONFIG_FILENAME = "quiz.toml"
STORAGE_BACKENDS = ("directory", "memory")
LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


class ConfigError(RuntimeError):
    """Raised when configuration parsing or validation fails."""


@dataclass(frozen=True)
class PathsConfig:
    data_home_override: Optional[Path]


@dataclass(frozen=True)
class StorageConfig:
    backend: str


@dataclass(frozen=True)
class AIConfig:
    provider: str
    model: str
    api_base: Optional[str]
    max_tokens: int
    temperature: float
    auto_explain: bool

    @property
    def api_key_name(self) -> str:
        return f"{self.provider}-api-key"


@dataclass(frozen=True)
class RemoteConfig:
    enabled: bool
    document_path: Optional[Path]


@dataclass(frozen=True)
class LoggingConfig:
    level: str
    verbose: bool


@dataclass(frozen=True)
class QuizConfig:
    paths: PathsConfig
    storage: StorageConfig
    ai: AIConfig
    remote: RemoteConfig
    logging: LoggingConfig

    def explanation_settings(self) -> ExplanationSettings:
        return ExplanationSettings(
            model=self.ai.model,
            api_base=self.ai.api_base,
            max_tokens=self.ai.max_tokens,
            temperature=self.ai.temperature,
        )


def _merge_dict(
    base: MutableMapping[str, Any],
    override: Mapping[str, Any],
    *,
    path: str = "",
) -> None:
    for key, value in override.items():
        dotted = f"{path}{key}"
        if key not in base:
            raise ConfigError(f"Unknown configuration key '{dotted}'.")
        if isinstance(base[key], MutableMapping):
            if not isinstance(value, Mapping):
                raise ConfigError(
                    f"Expected table for '{dotted}', found "
                    f"{type(value).__name__}."
                )
            _merge_dict(base[key], value, path=f"{dotted}.")
        else:
            base[key] = value


def _require_string(value: Any, *, field: str) -> str:
    if not isinstance(value, str) or not value.strip():
        raise ConfigError(f"'{field}' must be a non-empty string.")
    return value.strip()


def _require_choice(value: Any, *, field: str, choices: tuple[str, ...]) -> str:
    text = _require_string(value, field=field)
    if text not in choices:
        raise ConfigError(f"'{field}' must be one of {', '.join(choices)}.")
    return text


def _require_positive_int(value: Any, *, field: str) -> int:
    if isinstance(value, bool) or not isinstance(value, int) or value <= 0:
        raise ConfigError(f"'{field}' must be a positive integer.")
    return value


def _require_bool(value: Any, *, field: str) -> bool:
    if not isinstance(value, bool):
        raise ConfigError(f"'{field}' must be a boolean.")
    return value


def _require_float_range(
    value: Any, *, field: str, min_value: float, max_value: float
) -> float:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ConfigError(f"'{field}' must be a number.")
    number = float(value)
    if not min_value <= number <= max_value:
        raise ConfigError(
            f"'{field}' must be between {min_value} and {max_value}."
        )
    return number


def _optional_string(value: Any, *, field: str) -> Optional[str]:
    if value is None or value == "":
        return None
    return _require_string(value, field=field)


def _optional_path(value: Any, *, field: str) -> Optional[Path]:
    text = _optional_string(value, field=field)
    return Path(text).expanduser() if text else None


def _build_config(tree: Mapping[str, Any]) -> QuizConfig:
    paths = tree["paths"]
    storage = tree["storage"]
    ai = tree["ai"]
    remote = tree["remote"]
    logging_section = tree["logging"]

    remote_config = RemoteConfig(
        enabled=_require_bool(remote["enabled"], field="remote.enabled"),
        document_path=_optional_path(
            remote["document_path"], field="remote.document_path"
        ),
    )
    if remote_config.enabled and remote_config.document_path is None:
        raise ConfigError(
            "remote.document_path is required when remote.enabled is true."
        )

    return QuizConfig(
        paths=PathsConfig(
            data_home_override=_optional_path(
                paths["data_home"], field="paths.data_home"
            )
        ),
        storage=StorageConfig(
            backend=_require_choice(
                storage["backend"],
                field="storage.backend",
                choices=STORAGE_BACKENDS,
            )
        ),
        ai=AIConfig(
            provider=_require_string(ai["provider"], field="ai.provider").lower(),
            model=_require_string(ai["model"], field="ai.model"),
            api_base=_optional_string(ai["api_base"], field="ai.api_base"),
            max_tokens=_require_positive_int(
                ai["max_tokens"], field="ai.max_tokens"
            ),
            temperature=_require_float_range(
                ai["temperature"],
                field="ai.temperature",
                min_value=0.0,
                max_value=2.0,
            ),
            auto_explain=_require_bool(
                ai["auto_explain"], field="ai.auto_explain"
            ),
        ),
        remote=remote_config,
        logging=LoggingConfig(
            level=_require_choice(
                str(logging_section["level"]).upper(),
                field="logging.level",
                choices=LOG_LEVELS,
            ),
            verbose=_require_bool(
                logging_section["verbose"], field="logging.verbose"
            ),
        ),
    )


def resolve_config_path(
    *,
    explicit_path: Optional[Path] = None,
    env: Mapping[str, str] | None = None,
    workspace_path: Optional[Path] = None,
) -> Path:
    env_map = os.environ if env is None else env
    if explicit_path is not None:
        return Path(explicit_path).expanduser()
    override = (env_map.get(CONFIG_PATH_ENV) or "").strip()
    if override:
        return Path(override).expanduser()
    home = workspace_mod.resolve_home(env=env_map, path=workspace_path)
    return home / workspace_mod.SUBDIRS["config"] / CONFIG_FILENAME


def load_config(
    *,
    explicit_path: Optional[Path] = None,
    env: Mapping[str, str] | None = None,
    workspace_path: Optional[Path] = None,
) -> QuizConfig:
    """Load the TOML config, applying defaults and validation."""

    path = resolve_config_path(
        explicit_path=explicit_path, env=env, workspace_path=workspace_path
    )
    tree = default_tree()
    if path.exists():
        try:
            with path.open("rb") as fh:
                data = tomllib.load(fh)
        except tomllib.TOMLDecodeError as exc:
            raise ConfigError(f"Failed to parse config TOML: {exc}") from exc
        _merge_dict(tree, data)
    elif explicit_path is not None:
        raise ConfigError(f"Config file not found: {path}")
    return _build_config(tree)


def default_config() -> QuizConfig:
    """Return the configuration used when no file is present."""

    return _build_config(default_tree())


def default_tree() -> Dict[str, Any]:
    """Return a copy of the default configuration tree."""

    return copy.deepcopy(_DEFAULTS)


def config_template() -> str:
    """Return the packaged TOML template for new installs."""

    resource = resources.files(__package__).joinpath(CONFIG_FILENAME)
    return resource.read_text(encoding="utf-8")


def write_template(
    path: Path, *, overwrite: bool = False, mode: int = 0o600
) -> Path:
    """Write the default template to ``path``."""

    path.parent.mkdir(parents=True, exist_ok=True)
    if path.exists() and not overwrite:
        raise ConfigError(f"Config already exists: {path}")
    path.write_text(config_template(), encoding="utf-8")
    try:
        path.chmod(mode)
    except PermissionError:
        pass
    return path


_DEFAULTS: Dict[str, Any] = {
    "paths": {
        "data_home": None,
    },
    "storage": {
        "backend": "directory",
    },
    "ai": {
        "provider": "groq",
        "model": "llama3-8b-8192",
        "api_base": "https://api.groq.com/openai/v1",
        "max_tokens": 150,
        "temperature": 0.1,
        "auto_explain": True,
    },
    "remote": {
        "enabled": False,
        "document_path": None,
    },
    "logging": {
        "level": "INFO",
        "verbose": False,
    },
}
