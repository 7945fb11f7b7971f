"""
tests/test_config.py — YAML Configuration Loader
=================================================
"""

from __future__ import annotations

import pytest

from factionhub.config import load_config


def test_loads_full_file(tmp_path):
    path = tmp_path / "config.yaml"
    path.write_text(
        "community_name: Low West Crew Hub\n"
        "home_faction_name: Low West Crew\n"
        "guild_id: '123'\n"
        "site_url: https://hub.example.com/\n"
        "allow_owner_log_edits: true\n"
        "owner_edit_window_hours: 12\n"
        "role_map:\n"
        "  '111': admin\n"
        "  222: MEMBER\n",
        encoding="utf-8",
    )
    cfg = load_config(path)
    assert cfg.guild_id == 123
    assert cfg.site_url == "https://hub.example.com"
    assert cfg.allow_owner_log_edits is True
    assert cfg.owner_edit_window_hours == 12
    assert cfg.role_map == {111: "ADMIN", 222: "MEMBER"}


def test_defaults(tmp_path):
    path = tmp_path / "config.yaml"
    path.write_text(
        "community_name: Hub\nhome_faction_name: Crew\nguild_id: 1\n", encoding="utf-8"
    )
    cfg = load_config(path)
    assert cfg.server_timezone == "Europe/London"
    assert cfg.member_wars_require_approval is False
    assert cfg.allow_owner_log_edits is False
    assert cfg.owner_edit_window_hours == 24
    assert cfg.recent_logs_in_embed == 3
    assert cfg.role_map == {}


def test_missing_file(tmp_path):
    with pytest.raises(FileNotFoundError, match="config.yaml.example"):
        load_config(tmp_path / "nope.yaml")


def test_missing_required_key(tmp_path):
    path = tmp_path / "config.yaml"
    path.write_text("community_name: Hub\nguild_id: 1\n", encoding="utf-8")
    with pytest.raises(KeyError):
        load_config(path)


def test_config_is_frozen(tmp_path):
    path = tmp_path / "config.yaml"
    path.write_text("community_name: Hub\nhome_faction_name: Crew\nguild_id: 1\n", encoding="utf-8")
    cfg = load_config(path)
    with pytest.raises(AttributeError):
        cfg.guild_id = 2  # type: ignore[misc]
