"""Pytest configuration and fixtures."""

import asyncio
import os
import tempfile
from collections.abc import AsyncGenerator, AsyncIterator, Callable, Iterable
from pathlib import Path

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient

# Keep the module-level settings away from the real application-data directory
os.environ.setdefault("CIPHERTALK_DATA_DIR", tempfile.mkdtemp(prefix="ciphertalk-test-"))

from api.main import app
from core.config import Settings
from core.interfaces import ITranscriptionWorker, TranscriptionJob, WorkerSignal
from core.model_catalog import ModelVariant, get_model_variant
from core.transcription_settings import SettingsStore
from services.model_store import ModelStore
from services.voice_transcribe import VoiceTranscribeService

Script = list[WorkerSignal] | Callable[[TranscriptionJob], list[WorkerSignal]]


class ScriptedWorker(ITranscriptionWorker):
    """Worker that replays a fixed list of signals."""

    def __init__(self, job: TranscriptionJob, script: Iterable[WorkerSignal], spy: "WorkerSpy"):
        self.job = job
        self.script = list(script)
        self.spy = spy
        self.started = False
        self.terminated = False
        self.consumed = 0

    async def start(self) -> None:
        if self.spy.start_error:
            raise self.spy.start_error
        self.started = True
        self.spy.active += 1
        self.spy.max_active = max(self.spy.max_active, self.spy.active)

    async def signals(self) -> AsyncIterator[WorkerSignal]:
        for signal in self.script:
            await asyncio.sleep(self.spy.delay)
            self.consumed += 1
            yield signal

    async def terminate(self) -> None:
        if self.started and not self.terminated:
            self.spy.active -= 1
        self.terminated = True


class WorkerSpy:
    """Worker factory recording every job it is asked to run."""

    def __init__(self, script: Script | None = None):
        self.script: Script = script or [final("ok"), exit_signal(0)]
        self.jobs: list[TranscriptionJob] = []
        self.workers: list[ScriptedWorker] = []
        self.start_error: Exception | None = None
        self.delay = 0.0
        self.active = 0
        self.max_active = 0

    @property
    def calls(self) -> int:
        return len(self.jobs)

    def __call__(self, job: TranscriptionJob) -> ScriptedWorker:
        self.jobs.append(job)
        script = self.script(job) if callable(self.script) else self.script
        worker = ScriptedWorker(job, script, self)
        self.workers.append(worker)
        return worker


def partial(text: str) -> WorkerSignal:
    return WorkerSignal(kind="partial", text=text)


def final(text: str) -> WorkerSignal:
    return WorkerSignal(kind="final", text=text)


def exit_signal(code: int | None) -> WorkerSignal:
    return WorkerSignal(kind="exit", exit_code=code)


def install_model(store: ModelStore, variant: ModelVariant, weights: bytes = b"onnx", tokens: bytes = b"tokens") -> None:
    """Write placeholder model files for a variant."""
    model_path, tokens_path = store.model_paths(variant)
    model_path.parent.mkdir(parents=True, exist_ok=True)
    model_path.write_bytes(weights)
    tokens_path.write_bytes(tokens)


@pytest.fixture
def env(tmp_path: Path) -> Settings:
    """Settings rooted in a temporary application-data directory."""
    return Settings(DATA_DIR=tmp_path / "data")


@pytest.fixture
def config(env: Settings) -> SettingsStore:
    return SettingsStore(env.SETTINGS_FILE, env=env)


@pytest.fixture
def store(env: Settings) -> ModelStore:
    return ModelStore(env.MODELS_DIR)


@pytest.fixture
def installed_model(store: ModelStore) -> ModelVariant:
    """The default variant with placeholder files on disk."""
    variant = get_model_variant(None)
    install_model(store, variant)
    return variant


@pytest.fixture
def worker_spy() -> WorkerSpy:
    return WorkerSpy()


@pytest_asyncio.fixture
async def service(
    env: Settings,
    config: SettingsStore,
    store: ModelStore,
    worker_spy: WorkerSpy,
) -> AsyncGenerator[VoiceTranscribeService, None]:
    """Initialized voice service with a scripted worker."""
    svc = await VoiceTranscribeService.create(config, env=env, store=store, worker_factory=worker_spy)
    yield svc
    await svc.dispose()


@pytest_asyncio.fixture
async def client(service: VoiceTranscribeService) -> AsyncGenerator[AsyncClient, None]:
    """Create test client bound to the test service."""
    app.state.voice_service = service

    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test",
    ) as ac:
        yield ac

    app.state.voice_service = None
