"""Shared error codes, user-facing messages and exceptions."""

from __future__ import annotations

# Recognition engine error codes (same vocabulary as the Web Speech API).
NO_SPEECH = "no-speech"
AUDIO_CAPTURE = "audio-capture"
NETWORK = "network"
NOT_ALLOWED = "not-allowed"
SERVICE_NOT_ALLOWED = "service-not-allowed"

FATAL_ENGINE_ERRORS = frozenset({NOT_ALLOWED, SERVICE_NOT_ALLOWED, AUDIO_CAPTURE})

ENGINE_ERROR_MESSAGES = {
    NO_SPEECH: "No speech detected. Please speak louder or closer to the microphone.",
    AUDIO_CAPTURE: "No microphone found. Please check your device and try again.",
    NETWORK: "Network error. Please check your connection.",
    NOT_ALLOWED: "Microphone permission denied. Please allow access in your system settings.",
    SERVICE_NOT_ALLOWED: "The speech recognition service refused the request. Check your API key.",
}

UNSUPPORTED_ENGINE = "Speech recognition is not supported here. Install dashscope and set an API key."
START_FAILED = "Failed to start voice recognition. Please try again."
RETRIES_EXHAUSTED = "Voice input kept stopping. Tap the microphone to try again."
PERMISSION_REVOKED = "Microphone access was turned off. Allow it again in your system settings."
MIC_DENIED = "Microphone access denied. Please allow access when prompted and try again."
MIC_NOT_FOUND = "No microphone found. Please connect a microphone and try again."
MIC_UNAVAILABLE = "Could not access microphone. Please check your settings."
MIC_BUSY = "The microphone is already in use. Stop the current recording first."

# Generation envelope messages.
IMAGE_OK = "Image generated successfully"
IMAGE_AND_VIDEO_OK = "Image and video generated successfully"
VIDEO_FAILED_SUFFIX = "video could not be created"
VIDEO_TIMED_OUT_SUFFIX = "video timed out"
IMAGE_CREATE_FAILED = "Image generation failed, using fallback"
IMAGE_NO_JOB_ID = "Job creation failed, using fallback"
IMAGE_TIMED_OUT = "Image generation timed out, using fallback"
IMAGE_NO_OUTPUT = "No image generated, using fallback"
IMAGE_API_ERROR = "API error, using fallback"
IMAGE_NOT_CONFIGURED = "Image generation is not configured (set MAGICHOUR_API_KEY), using fallback"
UNEXPECTED_ERROR = "Error occurred, using fallback"

# Presentation messages.
EMPTY_PROMPT = "Please describe what you want to color!"
GENERIC_RETRY = "Oops! Something went wrong. Please try again!"


def engine_error_message(code: str) -> str:
    return ENGINE_ERROR_MESSAGES.get(code, f"Error: {code}")


class ColorbookError(Exception):
    """Base class for errors raised inside the app."""


class ConfigurationError(ColorbookError):
    """A required key or setting is missing."""


class ProviderError(ColorbookError):
    """A third-party provider call failed."""

    def __init__(self, message: str, *, status_code: int | None = None, code: str = "") -> None:
        super().__init__(message)
        self.status_code = status_code
        self.code = code


class QuotaExceededError(ProviderError):
    pass


class InvalidAudioError(ProviderError):
    pass


class EngineBusyError(ColorbookError):
    """The recognition engine is already running."""


class MicrophoneDeniedError(ColorbookError):
    pass


class MicrophoneUnavailableError(ColorbookError):
    pass


class TranscriptionError(ColorbookError):
    pass
