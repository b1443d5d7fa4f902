"""Voice transcription API routes.

Provides endpoints for SenseVoice model management (status, download,
delete), cache-aware transcription of WAV voice messages, and lookups of
cached transcripts.
"""

import asyncio
import json
import logging
from collections.abc import AsyncIterator, Awaitable
from dataclasses import asdict
from typing import Any

from fastapi import APIRouter, Depends, HTTPException, Query, Request
from fastapi.responses import StreamingResponse
from pydantic import BaseModel

from api.deps import get_voice_service
from core.interfaces import TranscriptionResult
from services.model_download import DownloadProgress
from services.voice_transcribe import VoiceTranscribeService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/voice", tags=["voice"])

_SSE_HEADERS = {
    "Cache-Control": "no-cache",
    "Connection": "keep-alive",
    "X-Accel-Buffering": "no",
}


class ModelStatusResponse(BaseModel):
    """Response model for SenseVoice model status."""

    success: bool
    exists: bool = False
    model_path: str | None = None
    tokens_path: str | None = None
    size_bytes: int | None = None
    downloading: bool = False
    error: str | None = None


class OperationResponse(BaseModel):
    """Generic success/error response."""

    success: bool
    error: str | None = None


class TranscriptionResponse(BaseModel):
    """Response model for a transcription request."""

    success: bool
    transcript: str | None = None
    error: str | None = None
    cached: bool | None = None


class CachedTranscriptResponse(BaseModel):
    """One cached transcript."""

    session_id: str
    create_time: int
    transcript: str
    created_at: int | None = None


class CachedTranscriptListResponse(BaseModel):
    """Cached transcripts of one session."""

    items: list[CachedTranscriptResponse]


class VoiceSettings(BaseModel):
    """Speech-to-text settings."""

    stt_model_type: str | None = None
    stt_languages: list[str] | None = None
    cache_path: str | None = None


def _sse(payload: dict[str, Any]) -> str:
    return f"data: {json.dumps(payload, ensure_ascii=False)}\n\n"


async def _stream_until_done(queue: asyncio.Queue, task: Awaitable) -> AsyncIterator[Any]:
    """Yield queued items while task runs, then whatever is left once it finishes."""
    task = asyncio.ensure_future(task)
    while not task.done():
        getter = asyncio.ensure_future(queue.get())
        done, _ = await asyncio.wait({getter, task}, return_when=asyncio.FIRST_COMPLETED)
        if getter in done:
            yield getter.result()
        else:
            getter.cancel()
    while not queue.empty():
        yield queue.get_nowait()


# ── Model management ────────────────────────────────────────────────


@router.get("/model", response_model=ModelStatusResponse)
async def get_model_status(
    service: VoiceTranscribeService = Depends(get_voice_service),
) -> ModelStatusResponse:
    """Report whether the active SenseVoice variant is on disk."""
    status = await service.get_model_status()
    return ModelStatusResponse(**asdict(status), downloading=service.is_downloading())


@router.post("/model/download")
async def download_model(
    service: VoiceTranscribeService = Depends(get_voice_service),
) -> StreamingResponse:
    """Download the active SenseVoice variant.

    Streams progress events via SSE (Server-Sent Events). A request made while
    a download is running joins it and receives its final result.
    """

    async def stream_progress() -> AsyncIterator[str]:
        yield _sse({"status": "starting", "joined": service.is_downloading()})

        queue: asyncio.Queue[DownloadProgress] = asyncio.Queue()
        task = asyncio.ensure_future(service.download_model(queue.put_nowait))

        last_mark = None
        async for progress in _stream_until_done(queue, task):
            # Emit progress every 1% (or every MiB when the size is unknown)
            if progress.percent is not None:
                mark = int(progress.percent)
            else:
                mark = progress.downloaded_bytes // (1024 * 1024)
            if mark == last_mark:
                continue
            last_mark = mark
            yield _sse({"status": "progress", **asdict(progress)})

        result = task.result()
        if result.success:
            yield _sse({"status": "complete", "model_path": result.model_path, "tokens_path": result.tokens_path})
        else:
            yield _sse({"status": "error", "error": result.error})

    return StreamingResponse(stream_progress(), media_type="text/event-stream", headers=_SSE_HEADERS)


@router.delete("/model", response_model=OperationResponse)
async def clear_model(
    service: VoiceTranscribeService = Depends(get_voice_service),
) -> OperationResponse:
    """Delete downloaded model files of every variant."""
    result = await service.clear_model()
    return OperationResponse(success=result.success, error=result.error)


# ── Transcription ───────────────────────────────────────────────────


async def _read_audio(request: Request) -> bytes:
    audio = await request.body()
    if not audio:
        raise HTTPException(status_code=422, detail="Request body must contain WAV audio")
    return audio


def _to_response(result: TranscriptionResult) -> TranscriptionResponse:
    return TranscriptionResponse(
        success=result.success,
        transcript=result.transcript,
        error=result.error,
        cached=result.cached,
    )


@router.post("/transcribe", response_model=TranscriptionResponse)
async def transcribe(
    request: Request,
    session_id: str = Query(..., min_length=1),
    create_time: int = Query(...),
    force: bool = False,
    service: VoiceTranscribeService = Depends(get_voice_service),
) -> TranscriptionResponse:
    """Transcribe a WAV voice message, using the cache unless force is set."""
    audio = await _read_audio(request)
    result = await service.transcribe_with_cache(audio, session_id, create_time, force=force)
    return _to_response(result)


@router.post("/transcribe/stream")
async def transcribe_stream(
    request: Request,
    session_id: str = Query(..., min_length=1),
    create_time: int = Query(...),
    force: bool = False,
    service: VoiceTranscribeService = Depends(get_voice_service),
) -> StreamingResponse:
    """Transcribe a WAV voice message, streaming partial text via SSE."""
    audio = await _read_audio(request)

    async def stream_partials() -> AsyncIterator[str]:
        queue: asyncio.Queue[str] = asyncio.Queue()
        task = asyncio.ensure_future(
            service.transcribe_with_cache(audio, session_id, create_time, queue.put_nowait, force)
        )

        async for text in _stream_until_done(queue, task):
            yield _sse({"status": "partial", "text": text})

        result = task.result()
        if result.success:
            yield _sse({"status": "complete", "transcript": result.transcript, "cached": result.cached})
        else:
            yield _sse({"status": "error", "error": result.error})

    return StreamingResponse(stream_partials(), media_type="text/event-stream", headers=_SSE_HEADERS)


# ── Cached transcripts ──────────────────────────────────────────────


@router.get("/transcripts/{session_id}/{create_time}", response_model=CachedTranscriptResponse)
async def get_cached_transcript(
    session_id: str,
    create_time: int,
    service: VoiceTranscribeService = Depends(get_voice_service),
) -> CachedTranscriptResponse:
    """Get the cached transcript of one voice message."""
    transcript = await service.get_cached_transcript(session_id, create_time)
    if transcript is None:
        raise HTTPException(status_code=404, detail="Transcript not cached")
    return CachedTranscriptResponse(session_id=session_id, create_time=create_time, transcript=transcript)


@router.get("/transcripts/{session_id}", response_model=CachedTranscriptListResponse)
async def list_cached_transcripts(
    session_id: str,
    start: int | None = None,
    end: int | None = None,
    service: VoiceTranscribeService = Depends(get_voice_service),
) -> CachedTranscriptListResponse:
    """List cached transcripts of a session within an optional create_time range."""
    entries = await service.list_session_transcripts(session_id, start, end)
    return CachedTranscriptListResponse(items=[CachedTranscriptResponse(**asdict(e)) for e in entries])


# ── Settings ────────────────────────────────────────────────────────


@router.get("/settings", response_model=VoiceSettings)
async def get_settings(
    service: VoiceTranscribeService = Depends(get_voice_service),
) -> VoiceSettings:
    """Get the effective speech-to-text settings."""
    return VoiceSettings(**service.get_settings())


@router.put("/settings", response_model=VoiceSettings)
async def update_settings(
    body: VoiceSettings,
    service: VoiceTranscribeService = Depends(get_voice_service),
) -> VoiceSettings:
    """Update speech-to-text settings."""
    try:
        updated = service.update_settings(body.model_dump(exclude_unset=True))
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    logger.info("Updated voice settings: %s", sorted(body.model_dump(exclude_unset=True)))
    return VoiceSettings(**updated)
