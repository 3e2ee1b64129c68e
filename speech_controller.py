"""State-machine based continuous speech capture."""

from __future__ import annotations

import logging
import threading
from typing import Callable, Optional

from errors import (
    FATAL_ENGINE_ERRORS,
    MIC_DENIED,
    MIC_NOT_FOUND,
    MIC_UNAVAILABLE,
    NETWORK,
    NO_SPEECH,
    NOT_ALLOWED,
    PERMISSION_REVOKED,
    RETRIES_EXHAUSTED,
    START_FAILED,
    UNSUPPORTED_ENGINE,
    EngineBusyError,
    MicrophoneDeniedError,
    MicrophoneUnavailableError,
    engine_error_message,
)
from interfaces import MediaCapture, MicStream, Scheduler, SpeechEngine, TimerHandle
from models import (
    DesiredState,
    ListeningState,
    MicPermission,
    RecognitionSession,
    SpeechEvent,
    SpeechEventKind,
    SpeechResult,
)
from permissions import PermissionStatus
from scheduler import ThreadingScheduler

logger = logging.getLogger(__name__)

TranscriptCallback = Callable[[str], None]
ErrorCallback = Callable[[str], None]
ListeningCallback = Callable[[bool], None]

_TRANSITIONS: dict[ListeningState, frozenset[ListeningState]] = {
    ListeningState.IDLE: frozenset({ListeningState.STARTING}),
    ListeningState.STARTING: frozenset(
        {ListeningState.LISTENING, ListeningState.RESTARTING, ListeningState.IDLE}
    ),
    ListeningState.LISTENING: frozenset({ListeningState.RESTARTING, ListeningState.IDLE}),
    ListeningState.RESTARTING: frozenset({ListeningState.LISTENING, ListeningState.IDLE}),
}

_LISTENING_STATES = frozenset({ListeningState.LISTENING, ListeningState.RESTARTING})


def compose_transcript(results: list[SpeechResult], result_index: int = 0) -> str:
    """Text to display for one result event.

    Final segments win over interim ones; each final segment is followed by
    a single space.
    """
    final_text = ""
    interim_text = ""
    for result in results[result_index:]:
        if result.is_final:
            final_text += result.transcript + " "
        else:
            interim_text += result.transcript
    return final_text or interim_text


class SpeechCaptureController:
    def __init__(
        self,
        engine: Optional[SpeechEngine],
        capture: MediaCapture,
        permission: Optional[PermissionStatus] = None,
        scheduler: Optional[Scheduler] = None,
        max_retries: int = 3,
        network_error_threshold: int = 3,
        restart_delay_s: float = 0.5,
        max_backoff_s: float = 3.0,
        language: str = "en-US",
        on_transcript: Optional[TranscriptCallback] = None,
        on_error: Optional[ErrorCallback] = None,
        on_listening_change: Optional[ListeningCallback] = None,
    ) -> None:
        self._engine = engine
        self._capture = capture
        self._permission = permission or PermissionStatus()
        self._scheduler = scheduler or ThreadingScheduler()
        self._max_retries = max_retries
        self._network_error_threshold = network_error_threshold
        self._restart_delay_s = restart_delay_s
        self._max_backoff_s = max_backoff_s
        self.language = language
        self._on_transcript = on_transcript
        self._on_error = on_error
        self._on_listening_change = on_listening_change

        self._lock = threading.RLock()
        self._state = ListeningState.IDLE
        self._session: Optional[RecognitionSession] = None
        self._stream: Optional[MicStream] = None
        self._pending_restart: Optional[TimerHandle] = None
        self._unsubscribe = self._permission.subscribe(self._handle_permission_change)

    @property
    def state(self) -> ListeningState:
        return self._state

    @property
    def session(self) -> Optional[RecognitionSession]:
        return self._session

    @property
    def permission(self) -> MicPermission:
        return self._permission.state

    @property
    def is_supported(self) -> bool:
        return self._engine is not None

    @property
    def is_listening(self) -> bool:
        return self._state in _LISTENING_STATES

    def start(self) -> bool:
        """Acquire the microphone and begin continuous recognition.

        Call only from a direct user action.
        """
        with self._lock:
            if self._engine is None:
                self._emit_error(UNSUPPORTED_ENGINE)
                return False
            if self._session is not None:
                return True

            try:
                self._stream = self._capture.request_stream()
            except MicrophoneDeniedError:
                logger.info("Microphone permission refused")
                self._permission.update(MicPermission.DENIED)
                self._emit_error(MIC_DENIED)
                return False
            except MicrophoneUnavailableError as exc:
                logger.warning("Microphone unavailable: %s", exc)
                self._emit_error(MIC_NOT_FOUND)
                return False
            except Exception:
                logger.exception("Microphone request failed")
                self._emit_error(MIC_UNAVAILABLE)
                return False
            self._permission.update(MicPermission.GRANTED)

            self._session = RecognitionSession(max_retries=self._max_retries)
            self._emit_error("")
            self._transition(ListeningState.STARTING)
            try:
                self._start_engine()
            except EngineBusyError:
                self._transition(ListeningState.LISTENING)
            except Exception:
                logger.exception("Speech engine failed to start")
                self._terminate(START_FAILED)
                return False
            return self._session is not None

    def stop(self) -> None:
        """Stop listening. Safe to call at any time."""
        with self._lock:
            if self._session is not None:
                logger.info("Stopping voice input")
            self._terminate(None)

    def close(self) -> None:
        self.stop()
        self._unsubscribe()

    # ------------------------------------------------------------------
    # Engine events
    # ------------------------------------------------------------------

    def _handle_event(self, event: SpeechEvent) -> None:
        with self._lock:
            session = self._session
            if session is None or session.desired_state != DesiredState.LISTENING:
                return
            kind = event.kind
            if kind == SpeechEventKind.START.value:
                self._handle_start()
            elif kind == SpeechEventKind.RESULT.value:
                self._handle_result(session, event)
            elif kind == SpeechEventKind.ERROR.value:
                self._handle_error(session, event.error)
            elif kind == SpeechEventKind.END.value:
                self._handle_end(session)

    def _handle_start(self) -> None:
        logger.debug("Speech engine started")
        if self._state != ListeningState.LISTENING:
            self._transition(ListeningState.LISTENING)

    def _handle_result(self, session: RecognitionSession, event: SpeechEvent) -> None:
        session.retry_count = 0
        session.network_error_count = 0
        text = compose_transcript(event.results, event.result_index)
        if text and self._on_transcript:
            self._on_transcript(text)

    def _handle_error(self, session: RecognitionSession, code: str) -> None:
        logger.info("Speech engine error: %s", code)
        if code in FATAL_ENGINE_ERRORS:
            self._terminate(engine_error_message(code))
            # After terminate, so the permission listener finds no session.
            if code == NOT_ALLOWED:
                self._permission.update(MicPermission.DENIED)
            return

        if code == NO_SPEECH:
            if session.can_retry:
                self._schedule_restart(session)
            else:
                self._terminate(engine_error_message(code))
            return

        if code == NETWORK:
            session.network_error_count += 1
            if session.network_error_count >= self._network_error_threshold:
                self._terminate(engine_error_message(code))
            return

        self._emit_error(engine_error_message(code))

    def _handle_end(self, session: RecognitionSession) -> None:
        if session.is_retrying:
            return
        if session.can_retry:
            self._schedule_restart(session)
        else:
            self._terminate(RETRIES_EXHAUSTED)

    def _handle_permission_change(self, state: MicPermission) -> None:
        if state != MicPermission.DENIED:
            return
        with self._lock:
            if self._session is None:
                return
            logger.warning("Microphone permission revoked while listening")
            self._terminate(PERMISSION_REVOKED)

    # ------------------------------------------------------------------
    # Restarts
    # ------------------------------------------------------------------

    def backoff_delay(self, retry_count: int) -> float:
        return min(self._restart_delay_s * max(retry_count, 1), self._max_backoff_s)

    def _schedule_restart(self, session: RecognitionSession) -> None:
        session.retry_count += 1
        session.is_retrying = True
        delay = self.backoff_delay(session.retry_count)
        logger.info(
            "Restarting recognition in %.1fs (attempt %d/%d)",
            delay,
            session.retry_count,
            session.max_retries,
        )
        if self._state != ListeningState.RESTARTING:
            self._transition(ListeningState.RESTARTING)
        self._cancel_pending_restart()
        self._pending_restart = self._scheduler.call_later(
            delay, lambda: self._restart(session)
        )

    def _restart(self, session: RecognitionSession) -> None:
        with self._lock:
            if self._session is not session or session.desired_state != DesiredState.LISTENING:
                return
            self._pending_restart = None
            session.is_retrying = False
            try:
                self._start_engine()
            except EngineBusyError:
                logger.debug("Recognition already running, ignoring restart")
                self._transition(ListeningState.LISTENING)
            except Exception:
                logger.warning("Restart attempt failed", exc_info=True)
                self._handle_end(session)

    def _cancel_pending_restart(self) -> None:
        handle, self._pending_restart = self._pending_restart, None
        if handle is not None:
            handle.cancel()

    # ------------------------------------------------------------------
    # Internal
    # ------------------------------------------------------------------

    def _start_engine(self) -> None:
        if self._engine is None or self._stream is None:
            raise RuntimeError("speech engine started without a microphone stream")
        self._engine.start(
            self._stream,
            self._handle_event,
            language=self.language,
            interim_results=True,
        )

    def _terminate(self, message: Optional[str]) -> None:
        """Leave the session: no restart may happen after this."""
        session = self._session
        if session is not None:
            session.desired_state = DesiredState.STOPPED
            session.is_retrying = False
        self._session = None
        self._cancel_pending_restart()
        if session is not None:
            self._safe_abort_engine()
        self._release_stream()
        if self._state != ListeningState.IDLE:
            self._transition(ListeningState.IDLE)
        if message:
            self._emit_error(message)

    def _release_stream(self) -> None:
        stream, self._stream = self._stream, None
        if stream is None:
            return
        try:
            stream.stop()
        except Exception:
            logger.warning("Failed to release microphone stream", exc_info=True)

    def _safe_abort_engine(self) -> None:
        if self._engine is None:
            return
        try:
            self._engine.abort()
        except Exception:
            logger.warning("Speech engine abort failed", exc_info=True)

    def _emit_error(self, message: str) -> None:
        if self._on_error:
            self._on_error(message)

    def _transition(self, to_state: ListeningState) -> None:
        from_state = self._state
        if to_state not in _TRANSITIONS[from_state]:
            logger.warning("Refusing transition %s -> %s", from_state.value, to_state.value)
            return
        was_listening = from_state in _LISTENING_STATES
        self._state = to_state
        logger.debug("Voice input %s -> %s", from_state.value, to_state.value)
        is_listening = to_state in _LISTENING_STATES
        if was_listening != is_listening and self._on_listening_change:
            self._on_listening_change(is_listening)
