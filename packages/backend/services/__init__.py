"""Services layer.

Note: the inference worker (sherpa-onnx, numpy, soundfile) is NOT imported
here so the backend can start without ML dependencies installed. The
dispatcher imports it on first transcription.
"""

from .downloader import DownloadError, Downloader
from .model_download import DownloadProgress, DownloadResult, ModelAcquisition
from .model_store import ClearResult, ModelStatus, ModelStore
from .transcript_cache import CachedTranscript, TranscriptCache
from .transcription import ModelNotFoundError, TranscriptionDispatcher
from .voice_transcribe import BatchItem, VoiceTranscribeService

__all__ = [
    "BatchItem",
    "CachedTranscript",
    "ClearResult",
    "DownloadError",
    "DownloadProgress",
    "DownloadResult",
    "Downloader",
    "ModelAcquisition",
    "ModelNotFoundError",
    "ModelStatus",
    "ModelStore",
    "TranscriptCache",
    "TranscriptionDispatcher",
    "VoiceTranscribeService",
]
