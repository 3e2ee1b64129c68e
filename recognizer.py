"""Continuous speech recognition engine using DashScope paraformer realtime.

Audio frames are pulled from a ``MicStream`` on a worker thread and pushed to
``dashscope.audio.asr.Recognition``.  Sentence updates come back through the
SDK callback and are forwarded as ``SpeechEvent``s with the same error
vocabulary as browser engines (``no-speech``, ``network``, ...).
"""

from __future__ import annotations

import logging
import os
import threading
import time
from typing import Any, Callable, Optional

from errors import AUDIO_CAPTURE, NETWORK, NO_SPEECH, SERVICE_NOT_ALLOWED, EngineBusyError
from interfaces import MicStream
from models import SpeechEvent, SpeechEventKind, SpeechResult

try:
    import dashscope
    from dashscope.audio.asr import Recognition, RecognitionCallback, RecognitionResult
except Exception:  # pragma: no cover
    dashscope = None  # type: ignore
    Recognition = None  # type: ignore
    RecognitionCallback = object  # type: ignore
    RecognitionResult = None  # type: ignore

logger = logging.getLogger(__name__)

EventCallback = Callable[[SpeechEvent], None]


def classify_error(message: str) -> str:
    """Map an SDK/network error message to an engine error code."""
    low = message.lower()
    if "401" in low or "403" in low or "auth" in low or "api key" in low or "apikey" in low:
        return SERVICE_NOT_ALLOWED
    if "timeout" in low or "network" in low or "connection" in low or "websocket" in low:
        return NETWORK
    return message or NETWORK


class _SdkCallback(RecognitionCallback):  # type: ignore[misc]
    def __init__(self, engine: "DashscopeSpeechEngine") -> None:
        self._engine = engine

    def on_open(self) -> None:
        self._engine._emit(SpeechEvent(kind=SpeechEventKind.START.value))

    def on_event(self, result: Any) -> None:
        sentence = result.get_sentence()
        if not isinstance(sentence, dict):
            return
        text = str(sentence.get("text", ""))
        if not text:
            return
        self._engine._heard_speech()
        is_final = bool(RecognitionResult.is_sentence_end(sentence))
        if not is_final and not self._engine.interim_results:
            return
        self._engine._emit(
            SpeechEvent(
                kind=SpeechEventKind.RESULT.value,
                results=[SpeechResult(transcript=text, is_final=is_final)],
            )
        )

    def on_error(self, result: Any) -> None:
        message = str(getattr(result, "message", "") or result)
        self._engine._fail(classify_error(message), message)

    def on_complete(self) -> None:
        logger.debug("Recognition completed")

    def on_close(self) -> None:
        logger.debug("Recognition connection closed")


class DashscopeSpeechEngine:
    def __init__(
        self,
        api_key: str = "",
        model: str = "paraformer-realtime-v2",
        no_speech_timeout_s: float = 8.0,
    ) -> None:
        self._api_key = api_key
        self._model = model
        self._no_speech_timeout_s = no_speech_timeout_s
        self.interim_results = True
        self._thread: Optional[threading.Thread] = None
        self._stop_event = threading.Event()
        self._aborted = False
        self._failed = False
        self._on_event: Optional[EventCallback] = None
        self._last_speech_at = 0.0
        self._lock = threading.Lock()

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def start(
        self,
        stream: MicStream,
        on_event: EventCallback,
        *,
        language: str = "en-US",
        interim_results: bool = True,
    ) -> None:
        if self.running and self._stop_event.is_set():
            self._join(timeout=1.0)
        if self.running:
            raise EngineBusyError("recognition already started")
        if Recognition is None:
            raise RuntimeError("dashscope is not installed")

        self._on_event = on_event
        api_key = self._api_key or os.getenv("DASHSCOPE_API_KEY", "")
        if not api_key:
            on_event(
                SpeechEvent(
                    kind=SpeechEventKind.ERROR.value,
                    error=SERVICE_NOT_ALLOWED,
                    message="No DashScope API key configured",
                )
            )
            return

        self.interim_results = interim_results
        self._stop_event.clear()
        self._aborted = False
        self._failed = False
        self._thread = threading.Thread(
            target=self._worker,
            args=(stream, api_key, language),
            daemon=True,
        )
        self._thread.start()

    def abort(self) -> None:
        self._aborted = True
        self._stop_event.set()
        self._join(timeout=0.5)

    # ------------------------------------------------------------------
    # Internal
    # ------------------------------------------------------------------

    def _worker(self, stream: MicStream, api_key: str, language: str) -> None:
        dashscope.api_key = api_key
        recognition = Recognition(
            model=self._model,
            format="pcm",
            sample_rate=getattr(stream, "sample_rate", 16000),
            callback=_SdkCallback(self),
            language_hints=[language.split("-")[0]],
        )
        try:
            recognition.start()
        except Exception as exc:
            logger.warning("Recognition failed to start: %s", exc)
            self._fail(classify_error(str(exc)), str(exc))
            self._emit_end()
            return

        self._last_speech_at = time.monotonic()
        try:
            while not self._stop_event.is_set():
                if not stream.active:
                    self._fail(AUDIO_CAPTURE, "microphone stream ended")
                    break
                frame = stream.read(timeout=0.1)
                if frame is not None:
                    recognition.send_audio_frame(frame.pcm16_bytes)
                if time.monotonic() - self._last_speech_at > self._no_speech_timeout_s:
                    self._fail(NO_SPEECH, "no speech detected")
                    break
        except Exception as exc:
            logger.warning("Recognition stream failed: %s", exc)
            self._fail(classify_error(str(exc)), str(exc))
        finally:
            try:
                recognition.stop()
            except Exception:
                logger.debug("Recognition stop failed", exc_info=True)
            self._emit_end()

    def _heard_speech(self) -> None:
        self._last_speech_at = time.monotonic()

    def _fail(self, code: str, message: str) -> None:
        with self._lock:
            if self._failed:
                return
            self._failed = True
        self._stop_event.set()
        self._emit(SpeechEvent(kind=SpeechEventKind.ERROR.value, error=code, message=message))

    def _emit_end(self) -> None:
        self._emit(SpeechEvent(kind=SpeechEventKind.END.value))

    def _emit(self, event: SpeechEvent) -> None:
        if self._aborted or self._on_event is None:
            return
        self._on_event(event)

    def _join(self, timeout: float) -> None:
        thread = self._thread
        if thread is not None and thread is not threading.current_thread() and thread.is_alive():
            thread.join(timeout=timeout)
