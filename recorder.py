"""Microphone capture adapters."""

from __future__ import annotations

import io
import logging
import threading
import time
import wave
from queue import Empty, Full, Queue
from typing import Any, Optional

from errors import MicrophoneDeniedError, MicrophoneUnavailableError
from models import AudioClip, AudioFrame, MicPermission
from permissions import PermissionStatus

try:
    import numpy as np
except Exception:  # pragma: no cover
    np = None  # type: ignore

try:
    import sounddevice as sd
except Exception:  # pragma: no cover
    sd = None  # type: ignore

logger = logging.getLogger(__name__)

_DENIED_MARKERS = ("permission", "not authorized", "access denied")


def pcm_to_wav(
    pcm: bytes,
    sample_rate: int = 16000,
    channels: int = 1,
    sample_width: int = 2,
) -> bytes:
    """Wrap raw PCM bytes in a WAV container."""
    buf = io.BytesIO()
    with wave.open(buf, "wb") as wf:
        wf.setnchannels(channels)
        wf.setsampwidth(sample_width)
        wf.setframerate(sample_rate)
        wf.writeframes(pcm)
    return buf.getvalue()


class SoundDeviceMicStream:
    """One open input stream; ``stop()`` releases the device."""

    def __init__(
        self,
        sample_rate: int = 16000,
        channels: int = 1,
        chunk_ms: int = 100,
        queue_maxsize: int = 100,
    ) -> None:
        self.sample_rate = sample_rate
        self.channels = channels
        self.chunk_ms = chunk_ms
        self.dropped_chunks = 0
        self._frames: Queue[AudioFrame] = Queue(maxsize=queue_maxsize)
        self._stream: Any = None
        self._running = False
        self._lock = threading.Lock()

    @property
    def active(self) -> bool:
        return self._running

    def open(self) -> None:
        if sd is None:
            raise MicrophoneUnavailableError("sounddevice is not installed")
        blocksize = int(self.sample_rate * (self.chunk_ms / 1000.0))
        with self._lock:
            self._stream = sd.InputStream(
                samplerate=self.sample_rate,
                channels=self.channels,
                dtype="int16",
                blocksize=blocksize,
                callback=self._on_audio,
                finished_callback=self._on_finished,
            )
            self._stream.start()
            self._running = True

    def read(self, timeout: float = 0.2) -> Optional[AudioFrame]:
        try:
            return self._frames.get(timeout=timeout)
        except Empty:
            return None

    def stop(self) -> None:
        with self._lock:
            if self._stream is None:
                return
            self._running = False
            stream, self._stream = self._stream, None
        try:
            stream.stop()
        finally:
            stream.close()

    def _on_audio(self, indata: Any, frames: int, time_info: Any, status: Any) -> None:
        if not self._running or np is None:
            return
        frame = AudioFrame(
            pcm16_bytes=np.asarray(indata, dtype=np.int16).tobytes(),
            sample_rate=self.sample_rate,
            channels=self.channels,
            timestamp_ms=int(time.time() * 1000),
        )
        try:
            self._frames.put_nowait(frame)
        except Full:
            self.dropped_chunks += 1

    def _on_finished(self) -> None:
        self._running = False


class SoundDeviceCapture:
    """MediaCapture backed by the default input device."""

    def __init__(
        self,
        permission: Optional[PermissionStatus] = None,
        sample_rate: int = 16000,
        channels: int = 1,
    ) -> None:
        self.permission = permission or PermissionStatus()
        self.sample_rate = sample_rate
        self.channels = channels

    def request_stream(self) -> SoundDeviceMicStream:
        stream = SoundDeviceMicStream(sample_rate=self.sample_rate, channels=self.channels)
        try:
            stream.open()
        except MicrophoneUnavailableError:
            raise
        except Exception as exc:
            stream.stop()
            raise self._classify(exc) from exc
        self.permission.update(MicPermission.GRANTED)
        return stream

    def _classify(self, exc: Exception) -> Exception:
        low = str(exc).lower()
        if any(marker in low for marker in _DENIED_MARKERS):
            self.permission.update(MicPermission.DENIED)
            return MicrophoneDeniedError(str(exc))
        return MicrophoneUnavailableError(str(exc))


class AudioRecorder:
    """Record one clip from a MediaCapture for remote transcription."""

    def __init__(self, capture: Any) -> None:
        self._capture = capture
        self._stream: Any = None
        self._thread: Optional[threading.Thread] = None
        self._stop_event = threading.Event()
        self._pcm = bytearray()
        self._started_at = 0.0

    @property
    def recording(self) -> bool:
        return self._stream is not None

    def start(self) -> None:
        if self._stream is not None:
            return
        self._stream = self._capture.request_stream()
        self._pcm = bytearray()
        self._stop_event.clear()
        self._started_at = time.monotonic()
        self._thread = threading.Thread(target=self._collect, daemon=True)
        self._thread.start()

    def stop(self) -> AudioClip:
        stream = self._stream
        if stream is None:
            return AudioClip(data=b"")
        self._stop_event.set()
        if self._thread is not None:
            self._thread.join(timeout=1.0)
        self._stream = None
        try:
            stream.stop()
        except Exception:
            logger.warning("Failed to release microphone stream", exc_info=True)
        sample_rate = getattr(stream, "sample_rate", 16000)
        channels = getattr(stream, "channels", 1)
        return AudioClip(
            data=pcm_to_wav(bytes(self._pcm), sample_rate, channels),
            mime_type="audio/wav",
            duration_s=time.monotonic() - self._started_at,
        )

    def _collect(self) -> None:
        stream = self._stream
        while stream is not None and not self._stop_event.is_set():
            frame = stream.read(timeout=0.1)
            if frame is not None:
                self._pcm.extend(frame.pcm16_bytes)
