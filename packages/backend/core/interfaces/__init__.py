"""Core interfaces for the adapter pattern.

These interfaces define contracts that allow swapping implementations of the
configuration store and the inference worker.
"""

from .config import IConfigAccessor
from .transcription import (
    DEFAULT_SAMPLE_RATE,
    ITranscriptionWorker,
    TranscriptionJob,
    TranscriptionResult,
    WorkerFactory,
    WorkerSignal,
)

__all__ = [
    # Configuration
    "IConfigAccessor",
    # Transcription
    "DEFAULT_SAMPLE_RATE",
    "ITranscriptionWorker",
    "TranscriptionJob",
    "TranscriptionResult",
    "WorkerFactory",
    "WorkerSignal",
]
