"""Dispatch one audio buffer to an isolated SenseVoice worker."""

import logging
from collections.abc import Callable
from contextlib import aclosing

from core.config import settings
from core.interfaces import (
    DEFAULT_SAMPLE_RATE,
    IConfigAccessor,
    TranscriptionJob,
    TranscriptionResult,
    WorkerFactory,
    WorkerSignal,
)
from core.model_catalog import get_model_variant
from core.transcription_settings import LANGUAGES_KEY, MODEL_TYPE_KEY, resolve_language_constraint
from services.model_store import ModelStore

logger = logging.getLogger(__name__)

# Type for partial result callback
PartialCallback = Callable[[str], None]


class ModelNotFoundError(Exception):
    """A required model file is missing."""


class TranscriptionDispatcher:
    """Runs one transcription per call in its own worker.

    The first terminal signal (final, error, fault or abnormal exit) settles
    the call; anything the worker sends afterwards is ignored. The worker is
    torn down on every path. No retries at this layer.
    """

    def __init__(
        self,
        store: ModelStore,
        config: IConfigAccessor,
        worker_factory: WorkerFactory | None = None,
        num_threads: int | None = None,
    ):
        self._store = store
        self._config = config
        self._worker_factory = worker_factory
        self._num_threads = num_threads or settings.STT_NUM_THREADS

    def _create_worker(self, job: TranscriptionJob):
        if self._worker_factory is None:
            # Imported lazily so the API can start without the worker module's heavy deps
            from adapters.transcription import create_process_worker

            self._worker_factory = create_process_worker
        return self._worker_factory(job)

    async def _build_job(self, audio: bytes) -> TranscriptionJob:
        """Resolve model paths and language constraints for the active variant.

        Raises:
            ModelNotFoundError: If either model file is missing.
        """
        variant = get_model_variant(self._config.get(MODEL_TYPE_KEY))
        model_path, tokens_path = self._store.model_paths(variant)
        model_exists, tokens_exists = await self._store.file_presence(variant)

        if not model_exists:
            logger.error("Model file not found: %s", model_path)
            raise ModelNotFoundError("Model file not found, please download the model first")
        if not tokens_exists:
            logger.error("Tokens file not found: %s", tokens_path)
            raise ModelNotFoundError("Tokens file not found, please download the model first")

        language, allowed = resolve_language_constraint(self._config.get(LANGUAGES_KEY))
        return TranscriptionJob(
            model_path=str(model_path),
            tokens_path=str(tokens_path),
            audio=bytes(audio),
            sample_rate=DEFAULT_SAMPLE_RATE,
            language=language,
            allowed_languages=allowed,
            num_threads=self._num_threads,
        )

    async def transcribe(
        self,
        audio: bytes,
        on_partial: PartialCallback | None = None,
    ) -> TranscriptionResult:
        """Transcribe a WAV buffer, forwarding partial text as it arrives."""
        try:
            job = await self._build_job(audio)
        except ModelNotFoundError as e:
            return TranscriptionResult(success=False, error=str(e))
        except Exception as e:
            logger.exception("Failed to prepare transcription")
            return TranscriptionResult(success=False, error=str(e))

        worker = None
        try:
            worker = self._create_worker(job)
            await worker.start()

            async with aclosing(worker.signals()) as signals:
                async for signal in signals:
                    if signal.kind == "partial":
                        if on_partial:
                            on_partial(signal.text or "")
                        continue
                    return _settle(signal)

            return TranscriptionResult(success=False, error="Worker stopped without reporting a result")
        except Exception as e:
            logger.exception("Transcription dispatch failed")
            return TranscriptionResult(success=False, error=str(e) or type(e).__name__)
        finally:
            if worker is not None:
                try:
                    await worker.terminate()
                except Exception:
                    logger.warning("Failed to terminate transcription worker", exc_info=True)


def _settle(signal: WorkerSignal) -> TranscriptionResult:
    """Map the first terminal signal to a result."""
    if signal.kind == "final":
        return TranscriptionResult(success=True, transcript=signal.text or "")
    if signal.kind == "error":
        logger.error("Worker reported error: %s", signal.error)
        return TranscriptionResult(success=False, error=signal.error)
    if signal.kind == "fault":
        logger.error("Worker fault: %s", signal.error)
        return TranscriptionResult(success=False, error=signal.error)
    if signal.exit_code:
        logger.error("Worker exited abnormally with code %s", signal.exit_code)
        return TranscriptionResult(success=False, error=f"Worker exited abnormally with code {signal.exit_code}")
    return TranscriptionResult(success=False, error="Worker exited without a result")
