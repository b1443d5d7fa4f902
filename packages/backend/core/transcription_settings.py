"""Speech-to-text settings store with JSON persistence and fallback chain."""

import json
import logging
import threading
from pathlib import Path
from typing import Any

from core.config import Settings, settings as env_settings
from core.interfaces.config import IConfigAccessor
from core.model_catalog import SENSEVOICE_MODELS

logger = logging.getLogger(__name__)

# Keys understood by the voice transcription service
MODEL_TYPE_KEY = "stt_model_type"
CACHE_PATH_KEY = "cache_path"
LANGUAGES_KEY = "stt_languages"

VALID_MODEL_TYPES = list(SENSEVOICE_MODELS)

# Languages supported by the SenseVoice model
VALID_LANGUAGES = ["zh", "en", "ja", "ko", "yue"]

# Language used when nothing is configured
FALLBACK_LANGUAGE = "zh"


def _defaults(env: Settings) -> dict[str, Any]:
    """Hardcoded defaults layered under env var overrides."""
    return {
        MODEL_TYPE_KEY: env.STT_MODEL_TYPE,
        CACHE_PATH_KEY: None,
        LANGUAGES_KEY: [],
    }


def resolve_language_constraint(languages: list[str] | None) -> tuple[str, list[str]]:
    """Map configured languages to (forced_language, allowed_languages).

    One language forces it; several leave detection open but restricted to
    that set; none falls back to Chinese.
    """
    languages = list(languages or [])
    if len(languages) == 1:
        return languages[0], languages
    if len(languages) > 1:
        return "", languages
    return FALLBACK_LANGUAGE, languages


class SettingsStore(IConfigAccessor):
    """Key-value settings persisted as a JSON file.

    Fallback chain: stored value → env var → hardcoded default.
    """

    def __init__(self, path: Path | None = None, env: Settings | None = None):
        self._env = env or env_settings
        self._path = path or self._env.SETTINGS_FILE
        self._lock = threading.Lock()
        self._values = self._load()

    @property
    def path(self) -> Path:
        return self._path

    def _load(self) -> dict[str, Any]:
        if not self._path.exists():
            return {}
        try:
            data = json.loads(self._path.read_text(encoding="utf-8"))
        except (json.JSONDecodeError, OSError, UnicodeDecodeError):
            logger.warning("Failed to read settings from %s, using defaults", self._path, exc_info=True)
            return {}
        if not isinstance(data, dict):
            logger.warning("Ignoring malformed settings file %s", self._path)
            return {}
        return data

    def _save(self) -> None:
        self._path.parent.mkdir(parents=True, exist_ok=True)
        tmp = self._path.with_suffix(".tmp")
        tmp.write_text(json.dumps(self._values, ensure_ascii=False, indent=2), encoding="utf-8")
        tmp.replace(self._path)

    def get(self, key: str) -> Any:
        with self._lock:
            if key in self._values and self._values[key] is not None:
                return self._values[key]
        return _defaults(self._env).get(key)

    def set(self, key: str, value: Any) -> None:
        value = _validate(key, value)
        with self._lock:
            self._values[key] = value
            self._save()
        logger.info("Updated setting %s", key)

    def all(self) -> dict[str, Any]:
        """Effective values for every known key."""
        effective = _defaults(self._env)
        for key in effective:
            effective[key] = self.get(key)
        return effective


def _validate(key: str, value: Any) -> Any:
    """Validate values for known keys. Unknown keys are stored as-is."""
    if key == MODEL_TYPE_KEY:
        if value not in VALID_MODEL_TYPES:
            raise ValueError(f"Invalid model type: {value}. Must be one of {VALID_MODEL_TYPES}")
    elif key == LANGUAGES_KEY:
        if value is None:
            return []
        if not isinstance(value, (list, tuple)):
            raise ValueError("stt_languages must be a list of language codes")
        invalid = [lang for lang in value if lang not in VALID_LANGUAGES]
        if invalid:
            raise ValueError(f"Invalid languages: {invalid}. Must be within {VALID_LANGUAGES}")
        return list(dict.fromkeys(value))
    elif key == CACHE_PATH_KEY:
        if value in (None, ""):
            return None
        return str(value)
    return value
