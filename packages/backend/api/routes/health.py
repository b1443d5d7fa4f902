"""Health check endpoints."""

from fastapi import APIRouter, Depends

from api.deps import get_voice_service
from services.voice_transcribe import VoiceTranscribeService

router = APIRouter(tags=["health"])


@router.get("/health")
async def health_check() -> dict:
    """Basic health check."""
    return {"status": "healthy"}


@router.get("/health/ready")
async def readiness_check(service: VoiceTranscribeService = Depends(get_voice_service)) -> dict:
    """Readiness check including the cache and model files."""
    status = await service.get_model_status()
    return {
        "status": "ready",
        "services": {
            "transcript_cache": "healthy" if service.cache.enabled else "disabled",
            "sensevoice": "downloaded" if status.exists else "not_downloaded",
        },
    }
