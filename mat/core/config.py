from __future__ import annotations

import json
import os
from typing import Any

from pydantic import BaseModel, Field, field_validator
from PySide6.QtCore import QSettings

from mat.db.services.hierarchy_store import OrphanPolicy

# QSettings scope
ORG = "PersonalApps"
APP = "Media Album Taxonomy"

DEFAULT_VOCABULARIES = {
    "event_group": "Event groups",
    "event": "Events",
    "directory": "Directories",
}


class UIState(BaseModel):
    geometry: dict = Field(default_factory=dict)


class Config(BaseModel):
    ui: UIState = Field(default_factory=UIState)
    last_db_path: str = ""
    server_url: str = ""  # empty → talk to the store in-process
    request_timeout_s: float = 30.0
    orphan_policy: OrphanPolicy = OrphanPolicy.LEAVE
    vocabularies: dict[str, str] = Field(default_factory=lambda: dict(DEFAULT_VOCABULARIES))

    @field_validator("request_timeout_s")
    @classmethod
    def _positive_timeout(cls, v: float) -> float:
        if v <= 0:
            raise ValueError("request_timeout_s must be positive")
        return v


def _s() -> QSettings:
    return QSettings(ORG, APP)


def _read_json(s: QSettings, key: str, default: Any) -> Any:
    raw = s.value(key, "")
    if isinstance(raw, (dict, list)):
        return raw  # some backends can store native types
    if not raw:
        return default
    try:
        return json.loads(raw)
    except ValueError:
        return default


def _write_json(s: QSettings, key: str, obj: dict | list) -> None:
    s.setValue(key, json.dumps(obj, ensure_ascii=False))


def _read_policy(raw: Any) -> OrphanPolicy:
    try:
        return OrphanPolicy(str(raw))
    except ValueError:
        return OrphanPolicy.LEAVE


def load_config() -> Config:
    s = _s()

    # --- UI ---
    s.beginGroup("ui")
    geometry = _read_json(s, "geometry", {})
    s.endGroup()

    # --- Database ---
    s.beginGroup("db")
    last_db_path = str(s.value("last_path", "", str))
    orphan_policy = _read_policy(s.value("orphan_policy", OrphanPolicy.LEAVE.value, str))
    s.endGroup()

    # --- Sync ---
    s.beginGroup("sync")
    server_url = str(s.value("server_url", "", str))
    timeout = float(s.value("request_timeout_s", 30.0, float) or 30.0)
    s.endGroup()

    # --- Vocabularies ---
    s.beginGroup("taxonomy")
    vocabularies = _read_json(s, "vocabularies", dict(DEFAULT_VOCABULARIES))
    s.endGroup()

    return Config(
        ui=UIState(geometry=geometry),
        last_db_path=last_db_path,
        server_url=server_url,
        request_timeout_s=timeout if timeout > 0 else 30.0,
        orphan_policy=orphan_policy,
        vocabularies=vocabularies or dict(DEFAULT_VOCABULARIES),
    )


def save_config(cfg: Config) -> None:
    s = _s()

    # --- UI ---
    s.beginGroup("ui")
    _write_json(s, "geometry", dict(cfg.ui.geometry))
    s.endGroup()

    # --- Database ---
    s.beginGroup("db")
    s.setValue("last_path", cfg.last_db_path)
    s.setValue("orphan_policy", cfg.orphan_policy.value)
    s.endGroup()

    # --- Sync ---
    s.beginGroup("sync")
    s.setValue("server_url", cfg.server_url)
    s.setValue("request_timeout_s", cfg.request_timeout_s)
    s.endGroup()

    # --- Vocabularies ---
    s.beginGroup("taxonomy")
    _write_json(s, "vocabularies", dict(cfg.vocabularies))
    s.endGroup()


def config_from_env(environ: dict[str, str] | None = None) -> Config:
    """ Server-side configuration; the HTTP server has no QSettings profile. """
    env = os.environ if environ is None else environ
    return Config(
        last_db_path=env.get("MAT_DB_PATH", ""),
        orphan_policy=_read_policy(env.get("MAT_ORPHAN_POLICY", OrphanPolicy.LEAVE.value)),
    )
