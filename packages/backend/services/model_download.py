"""Acquire a complete SenseVoice variant (weights + vocabulary) as one unit."""

import asyncio
import logging
from collections.abc import Callable
from dataclasses import dataclass
from pathlib import Path

from core.model_catalog import MODEL_FAMILY, ModelUrls, ModelVariant
from services.downloader import Downloader
from services.model_store import ModelStore

logger = logging.getLogger(__name__)

# Share of overall progress given to the weights file; the vocabulary fills the rest
WEIGHTS_PROGRESS_SHARE = 60.0


@dataclass
class DownloadProgress:
    """Transient progress update for an in-flight model download."""

    model_name: str
    downloaded_bytes: int
    total_bytes: int | None = None
    percent: float | None = None


@dataclass
class DownloadResult:
    """Outcome of a model download."""

    success: bool
    model_path: str | None = None
    tokens_path: str | None = None
    error: str | None = None


ProgressCallback = Callable[[DownloadProgress], None]


class ModelAcquisition:
    """Downloads both files of a variant with single-flight de-duplication.

    Concurrent callers share one in-flight transfer and its result. On any
    failure both target files are removed, so either the complete variant is
    on disk or nothing is.
    """

    def __init__(self, store: ModelStore, downloader: Downloader | None = None):
        self._store = store
        self._downloader = downloader or Downloader()
        self._tasks: dict[str, asyncio.Task[DownloadResult]] = {}

    def is_downloading(self, key: str = MODEL_FAMILY) -> bool:
        return key in self._tasks

    async def download(
        self,
        variant: ModelVariant,
        urls: ModelUrls,
        on_progress: ProgressCallback | None = None,
        key: str = MODEL_FAMILY,
    ) -> DownloadResult:
        pending = self._tasks.get(key)
        if pending is None:
            pending = asyncio.create_task(self._run(variant, urls, on_progress, key))
            self._tasks[key] = pending
        else:
            logger.info("Joining in-flight download for %s", key)
        # One caller going away must not cancel the transfer for the others
        try:
            return await asyncio.shield(pending)
        except asyncio.CancelledError:
            current = asyncio.current_task()
            if pending.cancelled() and not (current and current.cancelling()):
                return DownloadResult(success=False, error="Download cancelled")
            raise

    async def cancel_all(self) -> None:
        """Cancel in-flight downloads and wait for their cleanup to finish."""
        tasks = list(self._tasks.values())
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
            logger.info("Cancelled %d in-flight model download(s)", len(tasks))
        # A task cancelled before it ever ran never reaches its own cleanup
        for key, task in list(self._tasks.items()):
            if task.done():
                del self._tasks[key]

    async def _run(
        self,
        variant: ModelVariant,
        urls: ModelUrls,
        on_progress: ProgressCallback | None,
        key: str,
    ) -> DownloadResult:
        model_path, tokens_path = self._store.model_paths(variant)
        try:
            await self._store.ensure_directory()
            logger.info("Downloading %s into %s", variant.name, self._store.resolve_directory())

            def weights_progress(downloaded: int, total: int | None) -> None:
                if on_progress is None:
                    return
                percent = downloaded / total * WEIGHTS_PROGRESS_SHARE if total else None
                on_progress(
                    DownloadProgress(
                        model_name=variant.name,
                        downloaded_bytes=downloaded,
                        total_bytes=variant.size_bytes,
                        percent=percent,
                    )
                )

            await self._downloader.fetch(urls.model, model_path, weights_progress)
            weights_bytes = _file_size(model_path)

            def tokens_progress(downloaded: int, total: int | None) -> None:
                if on_progress is None:
                    return
                share = 100.0 - WEIGHTS_PROGRESS_SHARE
                percent = WEIGHTS_PROGRESS_SHARE + downloaded / total * share if total else WEIGHTS_PROGRESS_SHARE
                on_progress(
                    DownloadProgress(
                        model_name=variant.name,
                        downloaded_bytes=weights_bytes + downloaded,
                        total_bytes=variant.size_bytes,
                        percent=percent,
                    )
                )

            await self._downloader.fetch(urls.tokens, tokens_path, tokens_progress)

            logger.info("Model download complete: %s", variant.name)
            return DownloadResult(success=True, model_path=str(model_path), tokens_path=str(tokens_path))
        except asyncio.CancelledError:
            logger.warning("Model download cancelled: %s", variant.name)
            await self._discard(model_path, tokens_path)
            raise
        except Exception as e:
            logger.exception("Model download failed: %s", variant.name)
            await self._discard(model_path, tokens_path)
            return DownloadResult(success=False, error=str(e) or type(e).__name__)
        finally:
            self._tasks.pop(key, None)

    async def _discard(self, *paths: Path) -> None:
        try:
            await self._store.remove_files(*paths)
        except OSError:
            logger.warning("Failed to remove partial model files", exc_info=True)


def _file_size(path: Path) -> int:
    try:
        return path.stat().st_size
    except OSError:
        return 0
