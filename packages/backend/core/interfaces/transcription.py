"""Transcription worker interface definitions.

This module defines the contract between the dispatcher and the isolated
execution unit that runs model inference, allowing the process-based
implementation to be swapped (or scripted in tests) transparently.
"""

from abc import ABC, abstractmethod
from collections.abc import AsyncIterator, Callable
from dataclasses import dataclass, field
from typing import Literal

# Target sample rate of the SenseVoice feature extractor
DEFAULT_SAMPLE_RATE = 16000

SignalKind = Literal["partial", "final", "error", "fault", "exit"]

TERMINAL_KINDS: frozenset[str] = frozenset({"final", "error", "fault", "exit"})


@dataclass
class TranscriptionJob:
    """Everything the worker needs to decode one audio buffer."""

    model_path: str
    tokens_path: str
    audio: bytes
    sample_rate: int = DEFAULT_SAMPLE_RATE
    language: str = ""  # "" = auto-detect
    allowed_languages: list[str] = field(default_factory=list)
    num_threads: int = 2


@dataclass
class WorkerSignal:
    """One signal observed from a running worker.

    partial/final carry text, error/fault carry an error description,
    exit carries the process exit code.
    """

    kind: SignalKind
    text: str | None = None
    error: str | None = None
    exit_code: int | None = None

    @property
    def is_terminal(self) -> bool:
        return self.kind in TERMINAL_KINDS

    @classmethod
    def from_message(cls, message: dict) -> "WorkerSignal":
        """Build a signal from a worker message ({"type": ..., "text"/"error": ...})."""
        kind = message.get("type")
        if kind in ("partial", "final"):
            return cls(kind=kind, text=message.get("text") or "")
        if kind in ("error", "fault"):
            return cls(kind=kind, error=str(message.get("error") or "unknown error"))
        return cls(kind="fault", error=f"Unexpected worker message: {message!r}")


@dataclass
class TranscriptionResult:
    """Outcome of one transcription request."""

    success: bool
    transcript: str | None = None
    error: str | None = None
    cached: bool | None = None


class ITranscriptionWorker(ABC):
    """Interface for one isolated inference run.

    Implementations can wrap:
    - a spawned OS process (default)
    - a scripted fake in tests
    """

    @abstractmethod
    async def start(self) -> None:
        """Launch the execution unit."""
        ...

    @abstractmethod
    def signals(self) -> AsyncIterator[WorkerSignal]:
        """Yield signals in emission order.

        Messages come first; an ``exit`` signal is yielded once the worker
        has stopped.
        """
        ...

    @abstractmethod
    async def terminate(self) -> None:
        """Tear the worker down. Safe to call more than once."""
        ...


WorkerFactory = Callable[[TranscriptionJob], ITranscriptionWorker]
