from __future__ import annotations

import json
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Mapping

import streamlit as st

from bakery.services.batch_age import AgeThresholds

CONFIG_FILE_NAME = "settings.json"
ENV_DATA_DIR = "BAKERY_DATA_DIR"
ENV_FRESH_MAX_DAYS = "BAKERY_FRESH_MAX_DAYS"
ENV_MEDIUM_MAX_DAYS = "BAKERY_MEDIUM_MAX_DAYS"
ENV_DB_TIMEOUT = "BAKERY_DB_TIMEOUT"


@dataclass(frozen=True)
class Settings:
    data_dir: Path
    db_path: Path
    log_dir: Path
    currency: str = "LKR"
    fresh_max_days: int = 2
    medium_max_days: int = 7
    db_timeout_seconds: float = 5.0

    def age_thresholds(self) -> AgeThresholds:
        return AgeThresholds(fresh_max_days=self.fresh_max_days, medium_max_days=self.medium_max_days)


def _default_data_dir() -> Path:
    # Not a hard-coded absolute path: uses the user's home directory.
    return Path.home() / ".bakery_inventory"


def _load_persisted_settings(data_dir: Path) -> dict:
    cfg = data_dir / CONFIG_FILE_NAME
    if cfg.exists():
        try:
            return json.loads(cfg.read_text(encoding="utf-8"))
        except (OSError, ValueError):
            return {}
    return {}


def _update_settings_file(data_dir: Path, updates: dict) -> None:
    data_dir.mkdir(parents=True, exist_ok=True)
    payload = _load_persisted_settings(data_dir)
    payload.update(updates)
    (data_dir / CONFIG_FILE_NAME).write_text(json.dumps(payload, indent=2), encoding="utf-8")


def persist_data_dir(data_dir_str: str) -> None:
    data_dir = Path(data_dir_str).expanduser().resolve()
    data_dir.mkdir(parents=True, exist_ok=True)

    # The pointer lives in the default folder so the next start finds it
    _update_settings_file(_default_data_dir(), {"data_dir": str(data_dir)})

    # Update session for immediate effect
    st.session_state["bakery_data_dir"] = str(data_dir)


def persist_preferences(data_dir: Path, *, currency: str, fresh_max_days: int, medium_max_days: int) -> None:
    """Save currency and freshness thresholds to the data directory's settings.json."""
    currency = currency.strip().upper()
    if not currency:
        raise ValueError("Currency is required.")
    AgeThresholds(fresh_max_days=int(fresh_max_days), medium_max_days=int(medium_max_days))

    _update_settings_file(
        Path(data_dir),
        {
            "currency": currency,
            "fresh_max_days": int(fresh_max_days),
            "medium_max_days": int(medium_max_days),
        },
    )


def _pick(environ: Mapping[str, str], persisted: dict, env_key: str, file_key: str, default, cast):
    raw = environ.get(env_key)
    if raw in (None, ""):
        raw = persisted.get(file_key)
    if raw in (None, ""):
        return default
    try:
        return cast(raw)
    except (TypeError, ValueError):
        raise ValueError(f"Invalid value for {env_key}/{file_key}: {raw!r}")


def build_settings(data_dir: Path, persisted: dict, environ: Mapping[str, str]) -> Settings:
    """Combine env vars (first) and settings.json values (second) over the defaults."""
    settings = Settings(
        data_dir=data_dir,
        db_path=data_dir / "bakery.db",
        log_dir=data_dir / "logs",
        currency=str(persisted.get("currency") or "LKR"),
        fresh_max_days=_pick(environ, persisted, ENV_FRESH_MAX_DAYS, "fresh_max_days", 2, int),
        medium_max_days=_pick(environ, persisted, ENV_MEDIUM_MAX_DAYS, "medium_max_days", 7, int),
        db_timeout_seconds=_pick(environ, persisted, ENV_DB_TIMEOUT, "db_timeout_seconds", 5.0, float),
    )
    # Fail early on inverted thresholds
    settings.age_thresholds()
    return settings


@st.cache_resource
def get_settings() -> Settings:
    # Priority order:
    # 1) Session state (set via Data Management page)
    # 2) Environment variable
    # 3) Persisted settings in default folder
    # 4) Default folder
    default_dir = _default_data_dir()
    persisted = _load_persisted_settings(default_dir)

    if "bakery_data_dir" in st.session_state:
        data_dir = Path(st.session_state["bakery_data_dir"]).expanduser().resolve()
    elif os.getenv(ENV_DATA_DIR):
        data_dir = Path(os.getenv(ENV_DATA_DIR, "")).expanduser().resolve()
    else:
        data_dir = Path(persisted.get("data_dir", default_dir)).expanduser().resolve()

    data_dir.mkdir(parents=True, exist_ok=True)
    if data_dir != default_dir.expanduser().resolve():
        persisted = {**persisted, **_load_persisted_settings(data_dir)}
    return build_settings(data_dir, persisted, os.environ)
