from __future__ import annotations

from pathlib import Path

import pytest

from active_descriptions.config import (
    DEFAULT_REVSET,
    MAX_STOP_RETRIES,
    Settings,
    default_config_path,
    load_settings,
)
from active_descriptions.errors import ConfigError


def test_defaults_without_file_or_environment() -> None:
    settings = load_settings(environ={})

    assert settings == Settings()
    assert settings.candidate_revset == DEFAULT_REVSET == "trunk()..@ ~ empty()"
    assert settings.max_evolog_entries == 200
    assert settings.max_stop_retries == MAX_STOP_RETRIES == 3
    assert settings.change_id_length == 12
    assert settings.session_id == "unknown"


def test_yaml_file_overrides_defaults(tmp_path: Path) -> None:
    cfg = tmp_path / "ad.yml"
    cfg.write_text(
        "candidate_revset: 'mine() & mutable()'\n"
        "max_stop_retries: 5\n"
        "change_id_length: 8\n"
        f"retry_dir: {tmp_path / 'state'}\n",
        encoding="utf-8",
    )

    settings = load_settings(cfg, environ={})

    assert settings.candidate_revset == "mine() & mutable()"
    assert settings.max_stop_retries == 5
    assert settings.change_id_length == 8
    assert settings.retry_dir == tmp_path / "state"
    assert settings.max_evolog_entries == 200


def test_workspace_config_is_picked_up(tmp_path: Path) -> None:
    path = default_config_path(tmp_path)
    path.parent.mkdir(parents=True)
    path.write_text("max_evolog_entries: 50\n", encoding="utf-8")

    assert load_settings(workspace_root=tmp_path, environ={}).max_evolog_entries == 50


def test_empty_file_means_defaults(tmp_path: Path) -> None:
    cfg = tmp_path / "ad.yml"
    cfg.write_text("", encoding="utf-8")

    assert load_settings(cfg, environ={}) == Settings()


def test_environment_overrides(tmp_path: Path) -> None:
    settings = load_settings(
        environ={
            "CLAUDE_SESSION_ID": "sess-42",
            "ACTIVE_DESCRIPTIONS_JJ": "/opt/jj/bin/jj",
        }
    )

    assert settings.session_id == "sess-42"
    assert settings.jj_binary == "/opt/jj/bin/jj"


@pytest.mark.parametrize(
    "body, needle",
    [
        ("unknown_key: 1\n", "unknown_key"),
        ("max_stop_retries: many\n", "many"),
        ("max_evolog_entries: 1\n", "1"),
        ("- just\n- a list\n", "mapping"),
        ("candidate_revset: [unclosed\n", "cannot read"),
    ],
)
def test_invalid_files_fail_with_config_error(tmp_path: Path, body: str, needle: str) -> None:
    cfg = tmp_path / "ad.yml"
    cfg.write_text(body, encoding="utf-8")

    with pytest.raises(ConfigError, match=needle) as exc:
        load_settings(cfg, environ={})
    assert exc.value.code == "E_CONFIG"


def test_explicit_missing_file_is_an_error(tmp_path: Path) -> None:
    with pytest.raises(ConfigError, match="missing config file"):
        load_settings(tmp_path / "nope.yml", environ={})
