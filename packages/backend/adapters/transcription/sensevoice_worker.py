"""SenseVoice inference in an isolated worker process.

Implements ITranscriptionWorker by spawning one OS process per transcription
and reading its messages over a one-way pipe. The child loads the model with
sherpa-onnx, so a slow or crashing decode never blocks the API event loop.

Worker → parent messages:
    {"type": "partial", "text": ...}   zero or more times
    {"type": "final", "text": ...}     terminal success
    {"type": "error", "error": ...}    terminal failure reported by the job
    {"type": "fault", "error": ...}    uncaught failure outside the job
"""

import asyncio
import io
import logging
import multiprocessing
import re
from collections.abc import AsyncIterator, Callable
from concurrent.futures import ThreadPoolExecutor
from contextlib import suppress
from multiprocessing.connection import Connection
from typing import Any

from core.interfaces import ITranscriptionWorker, TranscriptionJob, WorkerSignal

logger = logging.getLogger(__name__)

# Audio is decoded in windows so long clips produce partial results
WINDOW_SECONDS = 20

# Seconds to wait for a terminated worker before killing it
TERMINATE_GRACE_SECONDS = 5.0

_LANG_TAG = re.compile(r"<\|(\w+)\|>")

Emit = Callable[[dict[str, Any]], None]


class ProcessTranscriptionWorker(ITranscriptionWorker):
    """Runs one transcription job in a spawned process.

    Blocking pipe reads and joins run on a single thread owned by this
    worker, never on the event loop's default executor.
    """

    def __init__(
        self,
        job: TranscriptionJob,
        start_method: str = "spawn",
        target: Callable[[TranscriptionJob, Connection], None] | None = None,
    ):
        self._job = job
        self._target = target or run_worker
        self._context = multiprocessing.get_context(start_method)
        self._executor: ThreadPoolExecutor | None = None
        self._receiver: Connection | None = None
        self._process = None

    @property
    def pid(self) -> int | None:
        return self._process.pid if self._process is not None else None

    async def _blocking(self, func: Callable[..., Any], *args: Any) -> Any:
        if self._executor is None:
            raise RuntimeError("Worker not started")
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(self._executor, func, *args)

    async def start(self) -> None:
        if self._process is not None:
            raise RuntimeError("Worker already started")

        self._executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="sensevoice-worker")
        receiver, sender = self._context.Pipe(duplex=False)
        try:
            process = self._context.Process(
                target=self._target,
                args=(self._job, sender),
                name="sensevoice-worker",
                daemon=True,
            )
            # Pickling the job (audio included) happens during start()
            await self._blocking(process.start)
        except BaseException:
            receiver.close()
            sender.close()
            self._shutdown_executor()
            raise
        # Drop the parent's copy of the write end so recv() sees EOF when the child exits
        sender.close()

        self._receiver = receiver
        self._process = process
        logger.debug("Started transcription worker (pid=%s)", process.pid)

    async def signals(self) -> AsyncIterator[WorkerSignal]:
        if self._process is None or self._receiver is None:
            raise RuntimeError("Worker not started")

        while True:
            try:
                message = await self._blocking(self._receiver.recv)
            except (EOFError, OSError):
                break
            yield WorkerSignal.from_message(message)

        await self._blocking(self._process.join)
        yield WorkerSignal(kind="exit", exit_code=self._process.exitcode)

    async def terminate(self) -> None:
        process = self._process
        if process is None:
            self._shutdown_executor()
            return

        if process.is_alive():
            process.terminate()
            await asyncio.to_thread(process.join, TERMINATE_GRACE_SECONDS)
            if process.is_alive():
                logger.warning("Transcription worker %s ignored SIGTERM, killing", process.pid)
                process.kill()
                await asyncio.to_thread(process.join)

        if self._receiver is not None:
            self._receiver.close()
            self._receiver = None
        self._shutdown_executor()
        logger.debug("Transcription worker %s stopped (exit code %s)", process.pid, process.exitcode)

    def _shutdown_executor(self) -> None:
        if self._executor is not None:
            self._executor.shutdown(wait=False)
            self._executor = None


def create_process_worker(job: TranscriptionJob) -> ProcessTranscriptionWorker:
    """Default worker factory used by the dispatcher."""
    return ProcessTranscriptionWorker(job)


# ── Child process side ────────────────────────────────────────────────


def run_worker(job: TranscriptionJob, conn: Connection) -> None:
    """Process entry point.

    Job-level failures are reported as ``error`` by transcribe_job; anything
    else (e.g. sherpa-onnx failing to import) is reported as ``fault`` and
    the process exits non-zero.
    """
    try:
        transcribe_job(job, conn.send)
    except BaseException as exc:
        with suppress(OSError, ValueError):
            conn.send({"type": "fault", "error": f"{type(exc).__name__}: {exc}"})
        raise
    finally:
        conn.close()


def transcribe_job(job: TranscriptionJob, emit: Emit) -> None:
    """Decode job.audio and emit partial/final/error messages."""
    import sherpa_onnx

    try:
        samples, sample_rate = decode_wav(job.audio)
        recognizer = _create_recognizer(sherpa_onnx, job, job.language or "auto")
        fallback = None

        window = max(1, WINDOW_SECONDS * sample_rate)
        chunks = [samples[i : i + window] for i in range(0, len(samples), window)] or [samples]

        pieces: list[str] = []
        for index, chunk in enumerate(chunks):
            text, detected = _decode(recognizer, chunk, sample_rate)

            # Open detection restricted to a language set: redo the window with
            # the first allowed language when detection wanders outside it
            if (
                not job.language
                and job.allowed_languages
                and detected
                and detected not in job.allowed_languages
            ):
                if fallback is None:
                    fallback = _create_recognizer(sherpa_onnx, job, job.allowed_languages[0])
                text, _ = _decode(fallback, chunk, sample_rate)

            if text:
                pieces.append(text)
            if index < len(chunks) - 1:
                emit({"type": "partial", "text": join_pieces(pieces)})

        emit({"type": "final", "text": join_pieces(pieces)})
    except Exception as exc:
        logger.exception("SenseVoice decode failed")
        emit({"type": "error", "error": str(exc) or type(exc).__name__})


def decode_wav(data: bytes) -> tuple[Any, int]:
    """Decode WAV bytes into mono float32 samples and their sample rate."""
    import numpy as np
    import soundfile as sf

    samples, sample_rate = sf.read(io.BytesIO(data), dtype="float32", always_2d=True)
    mono = samples.mean(axis=1).astype(np.float32)
    return mono, int(sample_rate)


def _create_recognizer(sherpa_onnx: Any, job: TranscriptionJob, language: str) -> Any:
    return sherpa_onnx.OfflineRecognizer.from_sense_voice(
        model=job.model_path,
        tokens=job.tokens_path,
        num_threads=job.num_threads,
        sample_rate=job.sample_rate,
        language=language,
        use_itn=True,
    )


def _decode(recognizer: Any, samples: Any, sample_rate: int) -> tuple[str, str | None]:
    stream = recognizer.create_stream()
    # sherpa-onnx resamples when sample_rate differs from the model's rate
    stream.accept_waveform(sample_rate, samples)
    recognizer.decode_stream(stream)
    result = stream.result
    return result.text.strip(), parse_language_tag(getattr(result, "lang", ""))


def parse_language_tag(tag: str | None) -> str | None:
    """'<|zh|>' -> 'zh'."""
    if not tag:
        return None
    match = _LANG_TAG.search(tag)
    return match.group(1) if match else tag.strip() or None


def join_pieces(pieces: list[str]) -> str:
    """Join window transcripts, adding a space only between Latin text."""
    joined = ""
    for piece in pieces:
        if joined and joined[-1].isascii() and piece[0].isascii() and not joined[-1].isspace():
            joined += " "
        joined += piece
    return joined
