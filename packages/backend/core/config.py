"""Application configuration."""

import os
import sys
from pathlib import Path
from typing import Literal

from pydantic_settings import BaseSettings


def _default_data_dir() -> Path:
    """Return the platform-specific application-data directory."""
    if sys.platform == "win32":
        base = os.environ.get("APPDATA", str(Path.home() / "AppData" / "Roaming"))
        return Path(base) / "ciphertalk"
    if sys.platform == "darwin":
        return Path.home() / "Library" / "Application Support" / "ciphertalk"
    base = os.environ.get("XDG_CONFIG_HOME", str(Path.home() / ".config"))
    return Path(base) / "ciphertalk"


class Settings(BaseSettings):
    """Application settings."""

    # API settings
    API_HOST: str = "127.0.0.1"
    API_PORT: int = 52790

    # Data paths
    # Platform-specific application-data root. The model directory is always
    # derived from it: sherpa-onnx cannot open paths with some non-ASCII
    # characters, so models never follow the user-chosen cache location.
    DATA_DIR: Path = _default_data_dir()
    CACHE_DIR: Path | None = None  # Default cache root when the user has not picked one

    # Speech-to-text settings
    STT_MODEL_TYPE: Literal["int8", "float32"] = "int8"
    STT_NUM_THREADS: int = 2  # onnxruntime threads inside the worker process

    # Model download settings
    DOWNLOAD_CHUNK_SIZE: int = 256 * 1024
    DOWNLOAD_MAX_REDIRECTS: int = 5

    # Batch transcription window
    BATCH_CONCURRENCY: int = 3

    def __init__(self, **kwargs):
        super().__init__(**kwargs)
        if self.CACHE_DIR is None:
            self.CACHE_DIR = self.DATA_DIR

    @property
    def MODELS_DIR(self) -> Path:
        """Fixed model root under the application-data directory."""
        return self.DATA_DIR / "models"

    @property
    def SETTINGS_FILE(self) -> Path:
        """JSON file backing the key-value settings store."""
        return self.DATA_DIR / "settings.json"

    def ensure_directories(self) -> None:
        """Create required directories."""
        self.DATA_DIR.mkdir(parents=True, exist_ok=True)
        self.CACHE_DIR.mkdir(parents=True, exist_ok=True)

    model_config = {"env_prefix": "CIPHERTALK_", "env_file": ".env"}


settings = Settings()
