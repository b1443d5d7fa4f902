"""FastAPI application entry point."""

import logging
import subprocess
from contextlib import asynccontextmanager
from pathlib import Path

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from api.routes import health, voice
from core.config import settings
from core.transcription_settings import SettingsStore
from services.voice_transcribe import VoiceTranscribeService

logger = logging.getLogger(__name__)


def _get_version() -> str:
    """Read version from pyproject.toml or git tags at startup."""
    try:
        import tomllib
        pyproject_path = Path(__file__).resolve().parents[3] / "pyproject.toml"
        if pyproject_path.exists():
            with open(pyproject_path, "rb") as f:
                data = tomllib.load(f)
                version = data.get("project", {}).get("version")
                if version:
                    return f"v{version}"
    except (OSError, ValueError, KeyError):
        pass

    # Fall back to git describe (works in development)
    try:
        result = subprocess.run(
            ["git", "describe", "--tags", "--always"],
            capture_output=True, text=True, timeout=5,
        )
        if result.returncode == 0 and result.stdout.strip():
            return result.stdout.strip()
    except (FileNotFoundError, subprocess.TimeoutExpired):
        pass
    return "dev"


APP_VERSION = _get_version()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan handler."""
    # Startup
    settings.ensure_directories()

    service = VoiceTranscribeService(SettingsStore(settings.SETTINGS_FILE), env=settings)
    await service.initialize()
    app.state.voice_service = service
    logger.info("Voice service started (data dir: %s)", settings.DATA_DIR)

    yield

    # Shutdown
    app.state.voice_service = None
    await service.dispose()


app = FastAPI(
    title="CipherTalk Voice API",
    description="Offline voice message transcription backend",
    version=APP_VERSION,
    lifespan=lifespan,
)

# CORS - wide open. This API only binds to 127.0.0.1 and is accessed by
# the local desktop shell.
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=False,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Routes
app.include_router(health.router)
app.include_router(voice.router, prefix="/api")


@app.get("/api/info")
async def api_info():
    """API info endpoint."""
    return {
        "name": "CipherTalk Voice API",
        "version": APP_VERSION,
    }


@app.get("/")
async def root():
    """Root endpoint."""
    return {
        "name": "CipherTalk Voice API",
        "version": APP_VERSION,
    }


if __name__ == "__main__":
    import uvicorn

    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(name)s: %(message)s")
    uvicorn.run(app, host=settings.API_HOST, port=settings.API_PORT, reload=False)
