"""Tests for DashscopeSpeechEngine."""

from __future__ import annotations

import time
from queue import Empty, Queue
from typing import Optional
from unittest.mock import MagicMock, patch

import pytest

from errors import AUDIO_CAPTURE, NETWORK, NO_SPEECH, SERVICE_NOT_ALLOWED, EngineBusyError
from models import AudioFrame, SpeechEvent, SpeechEventKind
from recognizer import DashscopeSpeechEngine, _SdkCallback, classify_error


# ---------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------

def _make_frame(n_samples: int = 1600) -> AudioFrame:
    """Generate a silent AudioFrame (all zeros)."""
    return AudioFrame(pcm16_bytes=b"\x00\x00" * n_samples, sample_rate=16000, channels=1)


class _QueueStream:
    sample_rate = 16000

    def __init__(self) -> None:
        self.frames: Queue[AudioFrame] = Queue()
        self.active = True

    def read(self, timeout: float = 0.2) -> Optional[AudioFrame]:
        try:
            return self.frames.get(timeout=timeout)
        except Empty:
            return None

    def stop(self) -> None:
        self.active = False


class _FakeRecognition:
    """Stand-in for dashscope.audio.asr.Recognition."""

    instances: list["_FakeRecognition"] = []
    start_error: Optional[Exception] = None

    def __init__(self, model: str, format: str, sample_rate: int, callback, **kwargs) -> None:  # noqa: A002, ANN001, ANN003
        self.model = model
        self.callback = callback
        self.kwargs = kwargs
        self.sent: list[bytes] = []
        self.stopped = False
        _FakeRecognition.instances.append(self)

    def start(self) -> None:
        if _FakeRecognition.start_error is not None:
            raise _FakeRecognition.start_error
        self.callback.on_open()

    def send_audio_frame(self, data: bytes) -> None:
        self.sent.append(data)

    def stop(self) -> None:
        self.stopped = True


@pytest.fixture(autouse=True)
def fake_sdk():
    _FakeRecognition.instances = []
    _FakeRecognition.start_error = None
    with patch("recognizer.Recognition", _FakeRecognition), patch("recognizer.dashscope", MagicMock()):
        yield


def _wait_for_end(events: list[SpeechEvent], *, timeout: float = 3.0) -> None:
    deadline = time.time() + timeout
    while time.time() < deadline:
        if any(e.kind == SpeechEventKind.END.value for e in events):
            return
        time.sleep(0.02)


def _kinds(events: list[SpeechEvent]) -> list[str]:
    return [e.kind for e in events]


# ---------------------------------------------------------------
# classify_error
# ---------------------------------------------------------------

@pytest.mark.parametrize(
    ("message", "code"),
    [
        ("401 Unauthorized: invalid api key", SERVICE_NOT_ALLOWED),
        ("Authentication failed", SERVICE_NOT_ALLOWED),
        ("websocket connection closed", NETWORK),
        ("read timeout", NETWORK),
        ("", NETWORK),
    ],
)
def test_classify_error(message: str, code: str) -> None:
    assert classify_error(message) == code


# ---------------------------------------------------------------
# Missing API key
# ---------------------------------------------------------------

@patch.dict("os.environ", {"DASHSCOPE_API_KEY": ""}, clear=False)
def test_missing_api_key_emits_service_not_allowed() -> None:
    engine = DashscopeSpeechEngine(api_key="")
    events: list[SpeechEvent] = []

    engine.start(_QueueStream(), events.append)

    assert len(events) == 1
    assert events[0].kind == SpeechEventKind.ERROR.value
    assert events[0].error == SERVICE_NOT_ALLOWED
    assert engine.running is False


# ---------------------------------------------------------------
# Streaming
# ---------------------------------------------------------------

def test_frames_are_forwarded_until_silence_timeout() -> None:
    engine = DashscopeSpeechEngine(api_key="test-key", no_speech_timeout_s=0.3)
    events: list[SpeechEvent] = []
    stream = _QueueStream()
    stream.frames.put(_make_frame())
    stream.frames.put(_make_frame())

    engine.start(stream, events.append, language="en-US")
    _wait_for_end(events)

    recognition = _FakeRecognition.instances[0]
    assert recognition.model == "paraformer-realtime-v2"
    assert recognition.kwargs["language_hints"] == ["en"]
    assert len(recognition.sent) == 2
    assert recognition.stopped is True
    assert _kinds(events) == ["start", "error", "end"]
    assert events[1].error == NO_SPEECH


def test_closed_microphone_reports_audio_capture() -> None:
    engine = DashscopeSpeechEngine(api_key="test-key")
    events: list[SpeechEvent] = []
    stream = _QueueStream()
    stream.active = False

    engine.start(stream, events.append)
    _wait_for_end(events)

    assert _kinds(events) == ["start", "error", "end"]
    assert events[1].error == AUDIO_CAPTURE


def test_start_failure_maps_error_and_ends() -> None:
    _FakeRecognition.start_error = ConnectionError("websocket handshake failed")
    engine = DashscopeSpeechEngine(api_key="test-key")
    events: list[SpeechEvent] = []

    engine.start(_QueueStream(), events.append)
    _wait_for_end(events)

    assert _kinds(events) == ["error", "end"]
    assert events[0].error == NETWORK


def test_start_while_running_raises_busy() -> None:
    engine = DashscopeSpeechEngine(api_key="test-key", no_speech_timeout_s=5.0)
    events: list[SpeechEvent] = []

    engine.start(_QueueStream(), events.append)
    try:
        with pytest.raises(EngineBusyError):
            engine.start(_QueueStream(), events.append)
    finally:
        engine.abort()


def test_abort_suppresses_further_events() -> None:
    engine = DashscopeSpeechEngine(api_key="test-key", no_speech_timeout_s=5.0)
    events: list[SpeechEvent] = []

    engine.start(_QueueStream(), events.append)
    deadline = time.time() + 2.0
    while not events and time.time() < deadline:
        time.sleep(0.02)
    engine.abort()
    engine.abort()
    time.sleep(0.2)

    assert _kinds(events) == ["start"]
    assert engine.running is False


# ---------------------------------------------------------------
# SDK callback
# ---------------------------------------------------------------

def test_sentence_updates_become_results() -> None:
    engine = DashscopeSpeechEngine(api_key="test-key")
    events: list[SpeechEvent] = []
    engine._on_event = events.append
    callback = _SdkCallback(engine)
    result_type = MagicMock()
    result_type.is_sentence_end.side_effect = lambda s: s.get("end_time") is not None

    with patch("recognizer.RecognitionResult", result_type):
        for sentence in (
            {"text": "a dino", "end_time": None},
            {"text": "a dinosaur", "end_time": 1200},
            {"text": ""},
        ):
            result = MagicMock()
            result.get_sentence.return_value = sentence
            callback.on_event(result)

    assert [e.results[0].transcript for e in events] == ["a dino", "a dinosaur"]
    assert [e.results[0].is_final for e in events] == [False, True]


def test_sdk_error_is_reported_once() -> None:
    engine = DashscopeSpeechEngine(api_key="test-key")
    events: list[SpeechEvent] = []
    engine._on_event = events.append
    callback = _SdkCallback(engine)

    callback.on_error(MagicMock(message="401 invalid api key"))
    callback.on_error(MagicMock(message="connection reset"))

    assert len(events) == 1
    assert events[0].error == SERVICE_NOT_ALLOWED
