"""Service settings loading for sdkgen (.sdkgen.yml)."""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Mapping, Optional, Sequence

import yaml

from .errors import ConfigParseError
from .languages import DEFAULT_LANGUAGES, LanguageRule, languages_from_config

CONFIG_FILE_NAME = ".sdkgen.yml"


class ConfigError(RuntimeError):
    """Raised when the settings file cannot be parsed."""


@dataclass
class GitHubSettings:
    """Source-hosting endpoints and credentials."""

    api_url: str = "https://api.github.com"
    raw_url: str = "https://raw.githubusercontent.com"
    web_url: str = "https://github.com"
    token: Optional[str] = None


@dataclass
class Settings:
    """Represents the settings defined in .sdkgen.yml plus environment overrides."""

    root: Path
    workspace_root: Path
    blob_root: Path
    blob_container: str = "sdkgen"
    max_workers: int = 4
    default_owner: str = "Azure"
    generator: str = "autorest"
    keep_clones: bool = False
    archive_unpackaged: bool = True
    post_status_comment: bool = True
    command_timeout: Optional[float] = None
    github: GitHubSettings = field(default_factory=GitHubSettings)
    languages: Sequence[LanguageRule] = field(default_factory=lambda: tuple(DEFAULT_LANGUAGES))


def default_settings(root: Path) -> Settings:
    root = root.resolve()
    return Settings(
        root=root,
        workspace_root=root / ".sdkgen" / "workspace",
        blob_root=root / ".sdkgen" / "blobs",
    )


def load_settings(
    config_path: Path, environ: Mapping[str, str] | None = None
) -> Settings:
    """Load settings from disk and apply ``SDKGEN_*`` environment overrides."""
    environ = os.environ if environ is None else environ
    config_file = _resolve_config_path(config_path)
    settings = default_settings(config_file.parent)

    if config_file.exists():
        data = _read_config(config_file)
        if not isinstance(data, dict):
            raise ConfigError(f"{CONFIG_FILE_NAME} must contain a mapping at the root")
        _apply_file_settings(settings, data)

    _apply_environment(settings, environ)
    if settings.max_workers < 1:
        raise ConfigError("max_workers must be at least 1")
    return settings


def _apply_file_settings(settings: Settings, data: Dict[str, Any]) -> None:
    root = settings.root

    workspace = _as_dict(data.get("workspace"))
    workspace_root = _as_str(workspace.get("root"))
    if workspace_root:
        settings.workspace_root = root / workspace_root
    keep_clones = _as_bool(workspace.get("keep_clones"))
    if keep_clones is not None:
        settings.keep_clones = keep_clones

    storage = _as_dict(data.get("storage"))
    blob_root = _as_str(storage.get("root"))
    if blob_root:
        settings.blob_root = root / blob_root
    container = _as_str(storage.get("container"))
    if container:
        settings.blob_container = container

    generation = _as_dict(data.get("generation"))
    max_workers = _as_int(generation.get("max_workers"))
    if max_workers is not None:
        settings.max_workers = max_workers
    default_owner = _as_str(generation.get("default_owner"))
    if default_owner:
        settings.default_owner = default_owner
    generator = _as_str(generation.get("generator"))
    if generator:
        settings.generator = generator
    archive = _as_bool(generation.get("archive_unpackaged"))
    if archive is not None:
        settings.archive_unpackaged = archive
    timeout = _as_float(generation.get("command_timeout"))
    if timeout is not None:
        settings.command_timeout = timeout

    reporting = _as_dict(data.get("reporting"))
    post_comment = _as_bool(reporting.get("status_comment"))
    if post_comment is not None:
        settings.post_status_comment = post_comment

    github = _as_dict(data.get("github"))
    for key in ("api_url", "raw_url", "web_url"):
        value = _as_str(github.get(key))
        if value:
            setattr(settings.github, key, value)

    if "languages" in data:
        try:
            settings.languages = tuple(languages_from_config(data.get("languages")))
        except ConfigParseError as exc:
            raise ConfigError(str(exc)) from exc


def _apply_environment(settings: Settings, environ: Mapping[str, str]) -> None:
    workspace_root = environ.get("SDKGEN_WORKSPACE_ROOT")
    if workspace_root:
        settings.workspace_root = Path(workspace_root).expanduser()
    blob_root = environ.get("SDKGEN_BLOB_ROOT")
    if blob_root:
        settings.blob_root = Path(blob_root).expanduser()
    max_workers = _as_int(environ.get("SDKGEN_MAX_WORKERS"))
    if max_workers is not None:
        settings.max_workers = max_workers
    keep_clones = _as_bool(environ.get("SDKGEN_KEEP_CLONES"))
    if keep_clones is not None:
        settings.keep_clones = keep_clones
    token = environ.get("SDKGEN_GITHUB_TOKEN") or environ.get("GITHUB_TOKEN")
    if token:
        settings.github.token = token


def _resolve_config_path(config_path: Path) -> Path:
    config_path = config_path.expanduser()
    if config_path.is_dir():
        return (config_path / CONFIG_FILE_NAME).resolve()
    return config_path.resolve()


def _read_config(path: Path) -> Dict[str, Any]:
    text = path.read_text(encoding="utf-8")
    if not text.strip():
        return {}
    try:
        loaded = yaml.safe_load(text)
    except yaml.YAMLError as exc:
        raise ConfigError(f"Failed to parse {path.name}: {exc}") from exc
    return loaded or {}


def _as_dict(value: Any) -> Dict[str, Any]:
    return value if isinstance(value, dict) else {}


def _as_str(value: Any) -> Optional[str]:
    return str(value) if isinstance(value, (str, int, float)) and not isinstance(value, bool) else None


def _as_float(value: Any) -> Optional[float]:
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return float(value)
    if isinstance(value, str):
        try:
            return float(value)
        except ValueError:
            return None
    return None


def _as_int(value: Any) -> Optional[int]:
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, str):
        try:
            return int(value)
        except ValueError:
            return None
    return None


def _as_bool(value: Any) -> Optional[bool]:
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        lowered = value.strip().lower()
        if lowered in {"true", "yes", "1"}:
            return True
        if lowered in {"false", "no", "0"}:
            return False
    return None


__all__ = [
    "CONFIG_FILE_NAME",
    "ConfigError",
    "GitHubSettings",
    "Settings",
    "default_settings",
    "load_settings",
]
