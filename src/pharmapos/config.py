from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Mapping, Optional
import os
import sys

from pharmapos.domain.errors import ValidationError


@dataclass(frozen=True)
class AppPaths:
    base_dir: Path
    db_path: Path
    logs_dir: Path


@dataclass(frozen=True)
class Settings:
    db_path: Optional[Path] = None
    low_stock_threshold: int = 10
    busy_timeout: float = 5.0
    gemini_api_key: Optional[str] = None
    gemini_model: str = "gemini-2.5-flash"
    ai_timeout: float = 30.0


def _windows_appdata() -> Path:
    return Path(os.environ.get("APPDATA", str(Path.home() / "AppData" / "Roaming")))


def _mac_app_support() -> Path:
    return Path.home() / "Library" / "Application Support"


def get_app_paths(app_name: str = "PharmaPOS", db_path: Path | str | None = None) -> AppPaths:
    if sys.platform.startswith("win"):
        base = _windows_appdata() / app_name
    elif sys.platform == "darwin":
        base = _mac_app_support() / app_name
    else:
        base = Path.home() / f".{app_name.lower()}"

    logs = base / "logs"
    db = Path(db_path) if db_path else base / "pharmacy.db"

    base.mkdir(parents=True, exist_ok=True)
    logs.mkdir(parents=True, exist_ok=True)
    db.parent.mkdir(parents=True, exist_ok=True)

    return AppPaths(base_dir=base, db_path=db, logs_dir=logs)


def _number(env: Mapping[str, str], key: str, default, cast):
    raw = (env.get(key) or "").strip()
    if not raw:
        return default
    try:
        value = cast(raw)
    except ValueError as e:
        raise ValidationError(f"{key} must be a number. Received: {raw!r}") from e
    if value <= 0:
        raise ValidationError(f"{key} must be > 0. Received: {raw!r}")
    return value


def load_settings(env: Mapping[str, str] | None = None) -> Settings:
    env = os.environ if env is None else env
    db_path = (env.get("PHARMAPOS_DB_PATH") or "").strip()
    return Settings(
        db_path=Path(db_path) if db_path else None,
        low_stock_threshold=_number(env, "PHARMAPOS_LOW_STOCK_THRESHOLD", 10, int),
        busy_timeout=_number(env, "PHARMAPOS_BUSY_TIMEOUT", 5.0, float),
        gemini_api_key=(env.get("GEMINI_API_KEY") or "").strip() or None,
        gemini_model=(env.get("PHARMAPOS_GEMINI_MODEL") or "").strip() or "gemini-2.5-flash",
        ai_timeout=_number(env, "PHARMAPOS_AI_TIMEOUT", 30.0, float),
    )
