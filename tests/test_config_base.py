# ReelTrack test scripts
from __future__ import annotations

import json
from pathlib import Path

from rt_platform import config_base as cb


def test_paths_follow_config_base(config_base: Path) -> None:
    assert cb.CONFIG_BASE() == config_base
    assert cb.config_file() == config_base / "config.json"
    assert cb.state_dir() == config_base / ".rt_state"


def test_load_config_defaults(config_base: Path) -> None:
    cfg = cb.load_config()
    assert cfg["sync"]["keep_remote_clean"] is False
    assert cfg["sync"]["skip_cooldown_days"] == 7
    assert cfg["cache"]["ttl_sec"] == 300
    assert cfg["trakt"]["batch_size"] == 100


def test_load_config_merges_and_normalizes(config_base: Path) -> None:
    (config_base / "config.json").write_text(json.dumps({
        "trakt": {"client_id": "abc"},
        "sync": {"entity_classes": ["Episodes"], "rating_scale": "10", "workers": 0},
    }), "utf-8")

    cfg = cb.load_config()

    assert cfg["trakt"]["client_id"] == "abc"
    assert cfg["trakt"]["timeout"] == 15
    assert cfg["sync"]["entity_classes"] == ["episode"]
    assert cfg["sync"]["rating_scale"] == 10
    assert cfg["sync"]["workers"] == 1


def test_save_config_round_trip(config_base: Path) -> None:
    cfg = cb.load_config()
    cfg["sync"]["keep_remote_clean"] = True
    cb.save_config(cfg)
    assert cb.load_config()["sync"]["keep_remote_clean"] is True
    assert not list(config_base.glob("*.tmp"))


def test_broken_config_falls_back_to_defaults(config_base: Path) -> None:
    (config_base / "config.json").write_text("{oops", "utf-8")
    assert cb.load_config()["scheduling"]["every_n_hours"] == 24
