"""Tests for the speech-to-text settings store."""

import pytest

from core.config import Settings
from core.transcription_settings import (
    CACHE_PATH_KEY,
    LANGUAGES_KEY,
    MODEL_TYPE_KEY,
    SettingsStore,
    resolve_language_constraint,
)


@pytest.mark.parametrize(
    "languages, expected",
    [
        (None, ("zh", [])),
        ([], ("zh", [])),
        (["ja"], ("ja", ["ja"])),
        (["en", "yue"], ("", ["en", "yue"])),
    ],
)
def test_resolve_language_constraint(languages, expected):
    assert resolve_language_constraint(languages) == expected


def test_defaults(config):
    assert config.get(MODEL_TYPE_KEY) == "int8"
    assert config.get(LANGUAGES_KEY) == []
    assert config.get(CACHE_PATH_KEY) is None
    assert config.get("unknown") is None


def test_env_overrides_default_model_type(tmp_path):
    env = Settings(DATA_DIR=tmp_path, STT_MODEL_TYPE="float32")
    store = SettingsStore(tmp_path / "settings.json", env=env)
    assert store.get(MODEL_TYPE_KEY) == "float32"


def test_values_persist_across_instances(config, env):
    config.set(MODEL_TYPE_KEY, "float32")
    config.set(LANGUAGES_KEY, ["en", "en", "zh"])

    reopened = SettingsStore(env.SETTINGS_FILE, env=env)
    assert reopened.get(MODEL_TYPE_KEY) == "float32"
    assert reopened.get(LANGUAGES_KEY) == ["en", "zh"]


def test_invalid_values_are_rejected(config):
    with pytest.raises(ValueError):
        config.set(MODEL_TYPE_KEY, "int4")
    with pytest.raises(ValueError):
        config.set(LANGUAGES_KEY, "zh")
    with pytest.raises(ValueError):
        config.set(LANGUAGES_KEY, ["zh", "de"])

    assert config.get(MODEL_TYPE_KEY) == "int8"


def test_blank_cache_path_falls_back(config):
    config.set(CACHE_PATH_KEY, "")
    assert config.get(CACHE_PATH_KEY) is None


def test_corrupt_file_is_treated_as_empty(tmp_path, env):
    path = tmp_path / "settings.json"
    path.write_text("{not json")

    store = SettingsStore(path, env=env)

    assert store.get(MODEL_TYPE_KEY) == "int8"
    store.set(LANGUAGES_KEY, ["ko"])
    assert SettingsStore(path, env=env).get(LANGUAGES_KEY) == ["ko"]


def test_all_returns_effective_values(config):
    config.set(LANGUAGES_KEY, ["yue"])
    assert config.all() == {MODEL_TYPE_KEY: "int8", CACHE_PATH_KEY: None, LANGUAGES_KEY: ["yue"]}


def test_cache_dir_defaults_to_data_dir(tmp_path):
    env = Settings(DATA_DIR=tmp_path / "data")
    assert env.CACHE_DIR == tmp_path / "data"
    assert env.MODELS_DIR == tmp_path / "data" / "models"
