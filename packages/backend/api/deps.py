"""FastAPI dependencies."""

from fastapi import HTTPException, Request

from services.voice_transcribe import VoiceTranscribeService


def get_voice_service(request: Request) -> VoiceTranscribeService:
    """Return the service instance created in the application lifespan."""
    service = getattr(request.app.state, "voice_service", None)
    if service is None:
        raise HTTPException(status_code=503, detail="Voice service is not initialized")
    return service
