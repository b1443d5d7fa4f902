"""Transcription worker implementations.

Default: one spawned process per request running SenseVoice via sherpa-onnx.
"""

from .sensevoice_worker import ProcessTranscriptionWorker, create_process_worker

__all__ = ["ProcessTranscriptionWorker", "create_process_worker"]
