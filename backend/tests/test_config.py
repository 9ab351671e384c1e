import logging
from pathlib import Path

import pytest

from tapesplit.core import config
from tapesplit.core.config import PRESETS, SegmentationOptions, Settings, get_preset


def test_no_preset_name_uses_niven():
    options = get_preset()

    assert options.noise_db == -35
    assert options.min_silence == 0.6
    assert options.min_segment == 20
    assert options.intro_trim_sec == 12
    assert options.concurrency == 2
    assert options.start_index == 1


def test_named_preset():
    options = get_preset("default")

    assert options.noise_db == -40
    assert options.min_silence == 0.5
    assert options.min_segment == 15
    assert options.intro_trim_sec == 0


def test_unknown_preset_falls_back_to_default(caplog):
    with caplog.at_level(logging.WARNING):
        options = get_preset("cassette-deluxe")

    assert options.noise_db == PRESETS["default"].noise_db
    assert 'Unknown preset "cassette-deluxe"' in caplog.text


def test_overrides_apply_and_none_is_ignored():
    options = get_preset("niven", {"noise_db": -50, "min_segment": None, "start_index": 7})

    assert options.noise_db == -50
    assert options.min_segment == 20
    assert options.start_index == 7


def test_invalid_override_rejected():
    with pytest.raises(ValueError):
        get_preset("niven", {"concurrency": 0})


def test_segmentation_defaults():
    options = SegmentationOptions()

    assert options.extension == "mp3"
    assert options.concurrency == 1


def test_settings_from_environment(tmp_path, monkeypatch):
    monkeypatch.setenv("OUTPUT_DIR", str(tmp_path / "out"))
    monkeypatch.setenv("PORT", "9001")
    monkeypatch.delenv("TRASH_DIR", raising=False)

    settings = Settings()

    assert settings.PORT == 9001
    assert settings.trash_root == Path(tmp_path / "out") / ".trash"


def test_settings_explicit_trash_dir(tmp_path, monkeypatch):
    monkeypatch.setenv("TRASH_DIR", str(tmp_path / "bin"))

    assert Settings().trash_root == tmp_path / "bin"


def test_get_settings_is_cached_until_refreshed(tmp_path, monkeypatch):
    monkeypatch.setattr(config, "_settings", None)
    monkeypatch.setenv("OUTPUT_DIR", str(tmp_path / "first"))

    first = config.get_settings()
    monkeypatch.setenv("OUTPUT_DIR", str(tmp_path / "second"))

    assert config.get_settings() is first

    config.refresh_settings()
    assert config.get_settings().OUTPUT_DIR == str(tmp_path / "second")
