"""Core data models for the app."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Optional


class ListeningState(str, Enum):
    IDLE = "IDLE"
    STARTING = "STARTING"
    LISTENING = "LISTENING"
    RESTARTING = "RESTARTING"


class DesiredState(str, Enum):
    LISTENING = "LISTENING"
    STOPPED = "STOPPED"


class MicPermission(str, Enum):
    PROMPT = "prompt"
    GRANTED = "granted"
    DENIED = "denied"


class SpeechEventKind(str, Enum):
    START = "start"
    RESULT = "result"
    ERROR = "error"
    END = "end"


@dataclass
class AudioFrame:
    pcm16_bytes: bytes
    sample_rate: int = 16000
    channels: int = 1
    timestamp_ms: int = 0


@dataclass
class AudioClip:
    data: bytes
    mime_type: str = "audio/wav"
    duration_s: float = 0.0


@dataclass
class SpeechResult:
    transcript: str
    is_final: bool = False


@dataclass
class SpeechEvent:
    kind: str
    results: list[SpeechResult] = field(default_factory=list)
    result_index: int = 0
    error: str = ""
    message: str = ""


@dataclass
class RecognitionSession:
    desired_state: DesiredState = DesiredState.LISTENING
    retry_count: int = 0
    max_retries: int = 3
    network_error_count: int = 0
    is_retrying: bool = False

    @property
    def can_retry(self) -> bool:
        return self.retry_count < self.max_retries


class JobKind(str, Enum):
    IMAGE = "image"
    VIDEO = "video"


class JobStatus(str, Enum):
    PENDING = "pending"
    COMPLETED = "completed"
    FAILED = "failed"
    TIMED_OUT = "timed_out"

    @property
    def terminal(self) -> bool:
        return self != JobStatus.PENDING


@dataclass
class GenerationJob:
    kind: JobKind
    id: str
    status: JobStatus = JobStatus.PENDING
    result_url: Optional[str] = None

    def advance(self, status: JobStatus, result_url: Optional[str] = None) -> None:
        """Move the job forward; a terminal job never changes again."""
        if self.status.terminal:
            raise ValueError(
                f"{self.kind.value} job {self.id} is already {self.status.value}"
            )
        self.status = status
        if result_url is not None:
            self.result_url = result_url


@dataclass
class GenerationRequest:
    prompt: str
    request_id: int = 0
    image_job: Optional[GenerationJob] = None
    video_job: Optional[GenerationJob] = None
    story: str = ""

    def append_story(self, chunk: str) -> None:
        self.story += chunk


@dataclass
class GenerationResult:
    success: bool
    prompt: str
    image_url: Optional[str] = None
    video_url: Optional[str] = None
    use_fallback: bool = False
    message: str = ""

    def to_payload(self) -> dict[str, Any]:
        return {
            "success": self.success,
            "prompt": self.prompt,
            "imageUrl": self.image_url,
            "videoUrl": self.video_url,
            "useFallback": self.use_fallback,
            "message": self.message,
        }

    @classmethod
    def from_payload(cls, data: dict[str, Any]) -> "GenerationResult":
        return cls(
            success=bool(data.get("success", False)),
            prompt=str(data.get("prompt", "")),
            image_url=data.get("imageUrl") or None,
            video_url=data.get("videoUrl") or None,
            use_fallback=bool(data.get("useFallback", False)),
            message=str(data.get("message", "")),
        )


@dataclass
class AudioAnalysis:
    transcript: str
    description: str
    full_response: str = ""
    usage: dict[str, Any] = field(default_factory=dict)
