"""On-disk location and presence checks for SenseVoice model files."""

import logging
from dataclasses import dataclass
from pathlib import Path

import aiofiles.os

from core.config import settings
from core.model_catalog import MODEL_FAMILY, ModelVariant, all_model_file_names

logger = logging.getLogger(__name__)


@dataclass
class ModelStatus:
    """Presence of the active variant's files. Derived on demand, never stored."""

    success: bool
    exists: bool = False
    model_path: str | None = None
    tokens_path: str | None = None
    size_bytes: int | None = None
    error: str | None = None


@dataclass
class ClearResult:
    """Outcome of deleting model files."""

    success: bool
    error: str | None = None


class ModelStore:
    """Single source of truth for where model files live and whether they are present.

    The directory sits under the application-data root rather than the
    user-configurable cache path: sherpa-onnx's native decoder cannot reliably
    open paths containing some non-Latin characters.
    """

    def __init__(self, models_root: Path | None = None):
        self._directory = (models_root or settings.MODELS_DIR) / MODEL_FAMILY

    def resolve_directory(self) -> Path:
        return self._directory

    def resolve_path(self, file_name: str) -> Path:
        return self._directory / file_name

    def model_paths(self, variant: ModelVariant) -> tuple[Path, Path]:
        """(weights path, tokens path) for a variant."""
        return self.resolve_path(variant.files.model), self.resolve_path(variant.files.tokens)

    async def ensure_directory(self) -> Path:
        await aiofiles.os.makedirs(self._directory, exist_ok=True)
        return self._directory

    async def file_presence(self, variant: ModelVariant) -> tuple[bool, bool]:
        """(weights present, tokens present) for a variant."""
        model_path, tokens_path = self.model_paths(variant)
        return (
            await aiofiles.os.path.isfile(model_path),
            await aiofiles.os.path.isfile(tokens_path),
        )

    async def status(self, variant: ModelVariant) -> ModelStatus:
        """Check both files exist and report their combined size.

        Presence and size only; file contents are not validated.
        """
        model_path, tokens_path = self.model_paths(variant)
        try:
            model_exists, tokens_exists = await self.file_presence(variant)
            if not (model_exists and tokens_exists):
                return ModelStatus(
                    success=True,
                    exists=False,
                    model_path=str(model_path),
                    tokens_path=str(tokens_path),
                )

            model_size = (await aiofiles.os.stat(model_path)).st_size
            tokens_size = (await aiofiles.os.stat(tokens_path)).st_size
            return ModelStatus(
                success=True,
                exists=True,
                model_path=str(model_path),
                tokens_path=str(tokens_path),
                size_bytes=model_size + tokens_size,
            )
        except OSError as e:
            logger.exception("Failed to read model status in %s", self._directory)
            return ModelStatus(success=False, error=str(e))

    async def remove_files(self, *paths: Path) -> None:
        """Delete the given files if present."""
        for path in paths:
            if await aiofiles.os.path.exists(path):
                await aiofiles.os.remove(path)

    async def clear(self) -> ClearResult:
        """Delete every known model file (all variants), then the directory if empty."""
        try:
            if not await aiofiles.os.path.isdir(self._directory):
                return ClearResult(success=True)

            for name in all_model_file_names():
                path = self.resolve_path(name)
                if await aiofiles.os.path.exists(path):
                    await aiofiles.os.remove(path)
                    logger.info("Deleted model file: %s", path)

            try:
                if not await aiofiles.os.listdir(self._directory):
                    await aiofiles.os.rmdir(self._directory)
            except OSError:
                logger.debug("Left model directory in place: %s", self._directory, exc_info=True)

            return ClearResult(success=True)
        except OSError as e:
            logger.exception("Failed to clear model files in %s", self._directory)
            return ClearResult(success=False, error=str(e))
