"""Configuration loading helpers for Maker Radar."""

from __future__ import annotations

import json
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Mapping

import yaml

from .models import AppConfig

CONFIG_EXTENSIONS = (".yaml", ".yml", ".json")
CONFIG_FILENAME = "config.yaml"

# Secrets never live in the YAML file written to disk.
ENV_OVERRIDES: dict[str, tuple[str, str]] = {
    "SERPAPI_API_KEY": ("profile_lookup", "api_key"),
    "GOOGLE_SHEETS_ID": ("sink", "spreadsheet_id"),
    "GOOGLE_SHEET_NAME": ("sink", "sheet_name"),
    "GOOGLE_CREDENTIALS_FILE": ("sink", "credentials_file"),
    "CRON_INTERVAL_HOURS": ("schedule", "interval_hours"),
    "CACHE_EXPIRY_HOURS": ("cache", "expiry_hours"),
    "MAX_CACHE_SIZE": ("cache", "max_in_memory"),
}


def _read_file(path: Path) -> dict:
    text = path.read_text(encoding="utf-8")
    if path.suffix in (".yaml", ".yml"):
        data = yaml.safe_load(text) or {}
    else:
        data = json.loads(text)
    if not isinstance(data, dict):
        raise ValueError(f"Configuration file must contain a mapping: {path}")
    return data


def _write_file(path: Path, payload: dict) -> None:
    with path.open("w", encoding="utf-8") as stream:
        if path.suffix in (".yaml", ".yml"):
            yaml.safe_dump(payload, stream, allow_unicode=True, sort_keys=False)
        else:
            json.dump(payload, stream, indent=2, ensure_ascii=False)


@dataclass(slots=True)
class ConfigLocator:
    """Resolve important paths from project root."""

    project_root: Path | None = None
    data_dir: Path | None = None
    logs_dir: Path | None = None

    def __post_init__(self) -> None:
        env_root = os.environ.get("MAKER_RADAR_HOME")
        if env_root:
            root = Path(env_root).expanduser().resolve()
        else:
            root = (self.project_root or Path(__file__).resolve().parents[2]).resolve()
        self.project_root = root
        self.data_dir = (root / "data").resolve()
        self.logs_dir = (root / "logs").resolve()
        self.ensure_directories()

    def ensure_directories(self) -> None:
        for directory in (self.data_dir, self.logs_dir):
            directory.mkdir(parents=True, exist_ok=True)

    def config_path(self) -> Path:
        return self.data_dir / CONFIG_FILENAME

    def resolve(self, path: Path) -> Path:
        """Anchor a relative path at the project root."""

        if path.is_absolute():
            return path
        return (self.project_root / path).resolve()


class ConfigRepository:
    """Repository encapsulating config IO, env overrides and schema validation."""

    def __init__(
        self,
        locator: ConfigLocator | None = None,
        environ: Mapping[str, str] | None = None,
    ) -> None:
        self.locator = locator or ConfigLocator()
        self.environ = os.environ if environ is None else environ
        self._cache: AppConfig | None = None

    def load(self) -> AppConfig:
        if self._cache is not None:
            return self._cache
        path = self.locator.config_path()
        if path.exists():
            payload = _read_file(path)
        else:
            payload = {}
            self.save(AppConfig())
        config = AppConfig.model_validate(self._apply_env(payload))
        self._cache = config
        return config

    def save(self, config: AppConfig) -> Path:
        path = self.locator.config_path()
        payload = config.model_dump(mode="json")
        payload.get("profile_lookup", {}).pop("api_key", None)
        _write_file(path, payload)
        self._cache = None
        return path

    def reload(self) -> AppConfig:
        self._cache = None
        return self.load()

    def _apply_env(self, payload: dict) -> dict:
        merged = {key: dict(value) if isinstance(value, dict) else value for key, value in payload.items()}
        for env_name, (section, field) in ENV_OVERRIDES.items():
            value = self.environ.get(env_name)
            if value is None or value == "":
                continue
            bucket = merged.setdefault(section, {})
            if isinstance(bucket, dict):
                bucket[field] = value
        return merged


__all__ = ["CONFIG_EXTENSIONS", "ConfigLocator", "ConfigRepository", "ENV_OVERRIDES"]
