from __future__ import annotations

import json
from pathlib import Path
from typing import Any, Dict, Literal, Mapping, MutableMapping, Optional, Tuple

import yaml
from pydantic import BaseModel, field_validator


class DatabaseConfig(BaseModel):
    path: Optional[str] = None


class ExportConfig(BaseModel):
    work_dir: str
    page_size: int
    spreadsheet_name: str
    bundle_name: str
    chunk_size: int

    @field_validator("page_size", "chunk_size")
    @classmethod
    def _positive(cls, value: int) -> int:
        if value <= 0:
            raise ValueError("must be a positive integer")
        return value


class ToolsConfig(BaseModel):
    combiner: Literal["xlsxwriter", "csv2xlsx"]
    combiner_command: str
    archiver: Literal["tarfile", "tar"]
    archiver_command: str
    timeout_s: float


class LoggingConfig(BaseModel):
    level: str


class AppConfig(BaseModel):
    database: DatabaseConfig
    export: ExportConfig
    tools: ToolsConfig
    logging: LoggingConfig


def _resolve_default_config_path() -> Path:
    repo_candidate = Path(__file__).resolve().parents[2] / "configs" / "default.yaml"
    package_candidate = Path(__file__).resolve().parent / "configs" / "default.yaml"
    for candidate in (repo_candidate, package_candidate):
        if candidate.exists():
            return candidate
    raise FileNotFoundError(
        "Unable to locate default configuration; expected it under "
        f"{repo_candidate} or {package_candidate}."
    )


DEFAULT_CONFIG_PATH = _resolve_default_config_path()
ENV_TO_PATH: Dict[str, Tuple[str, ...]] = {
    "COMMISSION_EXPORT_DB": ("database", "path"),
    "COMMISSION_EXPORT_WORK_DIR": ("export", "work_dir"),
    "COMMISSION_EXPORT_PAGE_SIZE": ("export", "page_size"),
    "COMMISSION_EXPORT_LOG_LEVEL": ("logging", "level"),
}


def load_config(
    default_path: Path,
    override_yaml_path_or_none: Optional[Path],
    env: Mapping[str, str],
    cli_overrides: Mapping[str, Any],
) -> AppConfig:
    data = _load_yaml(default_path)
    if override_yaml_path_or_none:
        data = _deep_merge(data, _load_yaml(override_yaml_path_or_none))

    data = _apply_env_overrides(data, env)
    data = _apply_cli_overrides(data, cli_overrides)

    return AppConfig.model_validate(data)


def _load_yaml(path: Path) -> Dict[str, Any]:
    if not path.exists():
        raise FileNotFoundError(f"Config file not found: {path}")

    content = path.read_text(encoding="utf-8")
    if not content.strip():
        return {}

    return yaml.safe_load(content) or {}


def _deep_merge(base: Dict[str, Any], override: Dict[str, Any]) -> Dict[str, Any]:
    merged = dict(base)
    for key, value in override.items():
        if key in merged and isinstance(merged[key], dict) and isinstance(value, dict):
            merged[key] = _deep_merge(merged[key], value)
        else:
            merged[key] = value
    return merged


def _apply_env_overrides(
    data: Dict[str, Any], env: Mapping[str, str]
) -> Dict[str, Any]:
    updated = json.loads(json.dumps(data))
    for var, path in ENV_TO_PATH.items():
        if var in env:
            _assign_path(updated, path, env[var])
    return updated


def _apply_cli_overrides(
    data: Dict[str, Any], overrides: Mapping[str, Any]
) -> Dict[str, Any]:
    updated = json.loads(json.dumps(data))
    for key, value in overrides.items():
        path = tuple(key.split(".")) if isinstance(key, str) else tuple(key)
        if not path:
            continue
        _assign_path(updated, path, value)
    return updated


def _assign_path(
    target: MutableMapping[str, Any], path: Tuple[str, ...], value: Any
) -> None:
    cursor: MutableMapping[str, Any] = target
    for part in path[:-1]:
        if part not in cursor or not isinstance(cursor[part], MutableMapping):
            cursor[part] = {}
        cursor = cursor[part]
    cursor[path[-1]] = value


__all__ = [
    "AppConfig",
    "DEFAULT_CONFIG_PATH",
    "load_config",
]
