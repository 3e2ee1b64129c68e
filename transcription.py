"""Record a voice note and have the server transcribe and describe it."""

from __future__ import annotations

import base64
import logging
from typing import Any, Optional
from urllib.parse import urlparse

import requests

from errors import MicrophoneDeniedError, MicrophoneUnavailableError, TranscriptionError
from models import AudioAnalysis, AudioClip
from recorder import AudioRecorder

logger = logging.getLogger(__name__)

_LOCAL_HOSTS = frozenset({"localhost", "127.0.0.1", "::1"})


def is_secure_endpoint(url: str) -> bool:
    parsed = urlparse(url)
    return parsed.scheme == "https" or (parsed.hostname or "") in _LOCAL_HOSTS


class RemoteTranscriptionClient:
    def __init__(
        self,
        base_url: str,
        capture: Any,
        session: Optional[requests.Session] = None,
        timeout_s: float = 60.0,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self._recorder = AudioRecorder(capture)
        self._session = session or requests.Session()
        self._timeout_s = timeout_s

    @property
    def recording(self) -> bool:
        return self._recorder.recording

    def record(self) -> None:
        if not is_secure_endpoint(self.base_url):
            raise TranscriptionError("Voice recording requires HTTPS. Please use a secure connection.")
        try:
            self._recorder.start()
        except MicrophoneDeniedError as exc:
            raise TranscriptionError(
                "Microphone access denied. Please allow microphone access in your settings and try again."
            ) from exc
        except MicrophoneUnavailableError as exc:
            raise TranscriptionError(
                "No microphone found. Please connect a microphone and try again."
            ) from exc

    def finish(self) -> AudioClip:
        return self._recorder.stop()

    def submit(self, clip: AudioClip) -> AudioAnalysis:
        if not clip.data:
            raise TranscriptionError("No audio recorded. Please record something first.")
        if not is_secure_endpoint(self.base_url):
            raise TranscriptionError("Voice recording requires HTTPS. Please use a secure connection.")

        payload = {
            "audio": base64.b64encode(clip.data).decode("ascii"),
            "mimeType": clip.mime_type,
        }
        try:
            response = self._session.post(
                f"{self.base_url}/api/process-audio",
                json=payload,
                timeout=self._timeout_s,
            )
            data = response.json()
        except (requests.RequestException, ValueError) as exc:
            logger.error("Audio upload failed: %s", exc)
            raise TranscriptionError(f"Failed to process audio: {exc}") from exc

        if not response.ok:
            message = data.get("error") if isinstance(data, dict) else None
            raise TranscriptionError(str(message or f"Failed to process audio (HTTP {response.status_code})"))

        if not isinstance(data, dict):
            logger.error("Unexpected audio response: %r", data)
            raise TranscriptionError("Failed to process audio: unexpected response from server")

        usage = data.get("usage")
        return AudioAnalysis(
            transcript=str(data.get("transcript", "")),
            description=str(data.get("description", "")),
            full_response=str(data.get("fullResponse", "")),
            usage=dict(usage) if isinstance(usage, dict) else {},
        )
