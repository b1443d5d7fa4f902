"""Voice transcription service.

Composes model management (status, download, clear), the transcript cache and
the worker dispatcher behind one façade. Every public method returns a result
value carrying ``success`` instead of raising.
"""

import asyncio
import logging
from collections.abc import Sequence
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from core.config import Settings, settings as env_settings
from core.interfaces import IConfigAccessor, TranscriptionResult, WorkerFactory
from core.model_catalog import ModelVariant, get_model_urls, get_model_variant
from core.transcription_settings import CACHE_PATH_KEY, LANGUAGES_KEY, MODEL_TYPE_KEY
from persistence import CACHE_DB_NAME
from services.downloader import Downloader
from services.model_download import DownloadResult, ModelAcquisition, ProgressCallback
from services.model_store import ClearResult, ModelStatus, ModelStore
from services.transcript_cache import CachedTranscript, TranscriptCache
from services.transcription import PartialCallback, TranscriptionDispatcher

logger = logging.getLogger(__name__)

# Settings exposed through get_settings/update_settings
STT_SETTING_KEYS = (MODEL_TYPE_KEY, LANGUAGES_KEY, CACHE_PATH_KEY)


@dataclass
class BatchItem:
    """One voice message in a batch transcription."""

    audio: bytes
    session_id: str
    create_time: int


class VoiceTranscribeService:
    """Cache-aware speech-to-text over a locally downloaded SenseVoice model.

    Constructed once by the host's composition root with an injected
    configuration accessor; call ``initialize()`` before use and
    ``dispose()`` on shutdown.
    """

    def __init__(
        self,
        config: IConfigAccessor,
        *,
        env: Settings | None = None,
        store: ModelStore | None = None,
        downloader: Downloader | None = None,
        worker_factory: WorkerFactory | None = None,
        cache: TranscriptCache | None = None,
    ):
        self._config = config
        self._env = env or env_settings
        self._store = store or ModelStore(self._env.MODELS_DIR)
        self._acquisition = ModelAcquisition(self._store, downloader or Downloader())
        self._dispatcher = TranscriptionDispatcher(
            self._store,
            config,
            worker_factory=worker_factory,
            num_threads=self._env.STT_NUM_THREADS,
        )
        self._cache = cache or TranscriptCache(self._resolve_cache_db_path())

    @classmethod
    async def create(cls, config: IConfigAccessor, **kwargs: Any) -> "VoiceTranscribeService":
        """Construct and initialize in one step."""
        service = cls(config, **kwargs)
        await service.initialize()
        return service

    def _resolve_cache_db_path(self) -> Path:
        cache_root = self._config.get(CACHE_PATH_KEY)
        base = Path(cache_root) if cache_root else self._env.CACHE_DIR
        return base / CACHE_DB_NAME

    @property
    def cache(self) -> TranscriptCache:
        return self._cache

    @property
    def model_store(self) -> ModelStore:
        return self._store

    async def initialize(self) -> None:
        """Open the transcript cache. A failure only disables caching."""
        if not await self._cache.initialize():
            logger.warning("Voice transcription running without a transcript cache")

    async def dispose(self) -> None:
        """Cancel in-flight downloads (removing their partial files) and close the cache."""
        await self._acquisition.cancel_all()
        await self._cache.close()

    # ── Model lifecycle ──────────────────────────────────────────────

    def _current_variant(self) -> ModelVariant:
        return get_model_variant(self._config.get(MODEL_TYPE_KEY))

    async def get_model_status(self) -> ModelStatus:
        try:
            return await self._store.status(self._current_variant())
        except Exception as e:
            logger.exception("Failed to get model status")
            return ModelStatus(success=False, error=str(e))

    def is_downloading(self) -> bool:
        return self._acquisition.is_downloading()

    async def download_model(self, on_progress: ProgressCallback | None = None) -> DownloadResult:
        """Download the active variant. Concurrent calls share one transfer."""
        try:
            model_type = self._config.get(MODEL_TYPE_KEY)
            return await self._acquisition.download(
                get_model_variant(model_type),
                get_model_urls(model_type),
                on_progress,
            )
        except Exception as e:
            logger.exception("Model download failed")
            return DownloadResult(success=False, error=str(e))

    async def clear_model(self) -> ClearResult:
        return await self._store.clear()

    # ── Transcription ────────────────────────────────────────────────

    async def transcribe_wav_buffer(
        self,
        audio: bytes,
        on_partial: PartialCallback | None = None,
    ) -> TranscriptionResult:
        """Transcribe without touching the cache."""
        return await self._dispatcher.transcribe(audio, on_partial)

    async def get_cached_transcript(self, session_id: str, create_time: int) -> str | None:
        return await self._cache.get(session_id, create_time)

    async def save_transcript_cache(self, session_id: str, create_time: int, transcript: str) -> None:
        await self._cache.put(session_id, create_time, transcript)

    async def transcribe_with_cache(
        self,
        audio: bytes,
        session_id: str,
        create_time: int,
        on_partial: PartialCallback | None = None,
        force: bool = False,
    ) -> TranscriptionResult:
        """Return a cached transcript when present, otherwise transcribe and cache.

        force=True skips the lookup but still writes the fresh result through.
        Failed or empty results are never cached.
        """
        if not force:
            cached = await self._cache.get(session_id, create_time)
            if cached:
                return TranscriptionResult(success=True, transcript=cached, cached=True)

        result = await self._dispatcher.transcribe(audio, on_partial)
        if result.success and result.transcript:
            await self._cache.put(session_id, create_time, result.transcript)
        result.cached = False
        return result

    async def transcribe_many(
        self,
        items: Sequence[BatchItem],
        concurrency: int | None = None,
        force: bool = False,
    ) -> list[TranscriptionResult]:
        """Transcribe several voice messages with a bounded number of live workers.

        Results are returned in input order.
        """
        limit = max(1, concurrency or self._env.BATCH_CONCURRENCY)
        semaphore = asyncio.Semaphore(limit)

        async def run(item: BatchItem) -> TranscriptionResult:
            async with semaphore:
                return await self.transcribe_with_cache(
                    item.audio,
                    item.session_id,
                    item.create_time,
                    force=force,
                )

        logger.info("Batch transcription of %d items (concurrency=%d)", len(items), limit)
        return list(await asyncio.gather(*(run(item) for item in items)))

    async def list_session_transcripts(
        self,
        session_id: str,
        start_time: int | None = None,
        end_time: int | None = None,
    ) -> list[CachedTranscript]:
        return await self._cache.list_session(session_id, start_time, end_time)

    # ── Settings ─────────────────────────────────────────────────────

    def get_settings(self) -> dict[str, Any]:
        return {key: self._config.get(key) for key in STT_SETTING_KEYS}

    def update_settings(self, values: dict[str, Any]) -> dict[str, Any]:
        """Persist STT settings.

        A new cache_path takes effect on the next start.

        Raises:
            ValueError: For unknown keys or invalid values.
        """
        unknown = [key for key in values if key not in STT_SETTING_KEYS]
        if unknown:
            raise ValueError(f"Unknown settings: {unknown}")
        for key, value in values.items():
            self._config.set(key, value)
        return self.get_settings()
