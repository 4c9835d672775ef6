from __future__ import annotations

import os
import tempfile
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Mapping

import jsonschema
import yaml

from .errors import ConfigError
from .evolution import MAX_EVOLOG_ENTRIES
from .model import DEFAULT_CHANGE_ID_LENGTH
from .util import read_json

SCHEMA_PATH = Path(__file__).resolve().parent / "schemas" / "settings.schema.json"
CONFIG_FILENAME = "active-descriptions.yml"

DEFAULT_REVSET = "trunk()..@ ~ empty()"
MAX_STOP_RETRIES = 3

SESSION_ENV = "CLAUDE_SESSION_ID"
JJ_BINARY_ENV = "ACTIVE_DESCRIPTIONS_JJ"


@dataclass(frozen=True)
class Settings:
    jj_binary: str = "jj"
    candidate_revset: str = DEFAULT_REVSET
    max_evolog_entries: int = MAX_EVOLOG_ENTRIES
    max_stop_retries: int = MAX_STOP_RETRIES
    change_id_length: int = DEFAULT_CHANGE_ID_LENGTH
    command_timeout_s: float = 30.0
    session_id: str = "unknown"
    retry_dir: Path = Path(tempfile.gettempdir())


def _read_file(path: Path) -> dict[str, Any]:
    try:
        doc = yaml.safe_load(path.read_text(encoding="utf-8"))
    except (OSError, yaml.YAMLError) as exc:
        raise ConfigError(f"cannot read {path}: {exc}") from exc
    if doc is None:
        return {}
    if not isinstance(doc, dict):
        raise ConfigError(f"{path} must be a mapping")
    try:
        jsonschema.validate(instance=doc, schema=read_json(SCHEMA_PATH))
    except jsonschema.ValidationError as exc:
        raise ConfigError(f"{path}: {exc.message}") from exc
    return doc


def default_config_path(workspace_root: Path) -> Path:
    return workspace_root / ".jj" / CONFIG_FILENAME


def load_settings(
    path: Path | None = None,
    *,
    workspace_root: Path | None = None,
    environ: Mapping[str, str] | None = None,
) -> Settings:
    """Build settings from defaults, an optional YAML file and the environment.

    An explicit ``path`` must exist. Without one, ``.jj/active-descriptions.yml``
    under ``workspace_root`` is used when present.
    """
    env = os.environ if environ is None else environ

    raw: dict[str, Any] = {}
    if path is not None:
        if not path.exists():
            raise ConfigError(f"missing config file: {path}")
        raw = _read_file(path)
    elif workspace_root is not None and default_config_path(workspace_root).is_file():
        raw = _read_file(default_config_path(workspace_root))

    defaults = Settings()
    retry_dir = Path(str(raw.get("retry_dir", defaults.retry_dir))).expanduser()
    return Settings(
        jj_binary=str(env.get(JJ_BINARY_ENV) or raw.get("jj_binary", defaults.jj_binary)),
        candidate_revset=str(raw.get("candidate_revset", defaults.candidate_revset)),
        max_evolog_entries=int(raw.get("max_evolog_entries", defaults.max_evolog_entries)),
        max_stop_retries=int(raw.get("max_stop_retries", defaults.max_stop_retries)),
        change_id_length=int(raw.get("change_id_length", defaults.change_id_length)),
        command_timeout_s=float(raw.get("command_timeout_s", defaults.command_timeout_s)),
        session_id=str(env.get(SESSION_ENV) or defaults.session_id),
        retry_dir=retry_dir,
    )
