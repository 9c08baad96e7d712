"""Transcription provider clients and the status poll loop."""

from transcription_worker.asr.registry import get_transcription_client

__all__ = ["get_transcription_client"]
