from __future__ import annotations

import base64
from unittest.mock import MagicMock

import pytest
import requests

from errors import MicrophoneDeniedError, TranscriptionError
from models import AudioClip
from transcription import RemoteTranscriptionClient, is_secure_endpoint


class DeniedCapture:
    def request_stream(self):  # noqa: ANN201
        raise MicrophoneDeniedError("denied")


def _response(status: int, payload: object) -> MagicMock:
    response = MagicMock()
    response.ok = 200 <= status < 300
    response.status_code = status
    response.json.return_value = payload
    return response


@pytest.mark.parametrize(
    ("url", "secure"),
    [
        ("https://colorbook.example", True),
        ("http://localhost:8000", True),
        ("http://127.0.0.1:8000", True),
        ("http://colorbook.example", False),
    ],
)
def test_is_secure_endpoint(url: str, secure: bool) -> None:
    assert is_secure_endpoint(url) is secure


def test_submit_posts_base64_audio() -> None:
    session = MagicMock()
    session.post.return_value = _response(
        200,
        {"transcript": "a cat", "description": "A cat on a rug", "fullResponse": "...", "usage": {"t": 1}},
    )
    client = RemoteTranscriptionClient("https://colorbook.example/", capture=None, session=session)

    analysis = client.submit(AudioClip(data=b"RIFFdata", mime_type="audio/wav"))

    assert analysis.transcript == "a cat"
    assert analysis.description == "A cat on a rug"
    assert analysis.usage == {"t": 1}
    url = session.post.call_args.args[0]
    body = session.post.call_args.kwargs["json"]
    assert url == "https://colorbook.example/api/process-audio"
    assert body == {"audio": base64.b64encode(b"RIFFdata").decode("ascii"), "mimeType": "audio/wav"}


def test_submit_surfaces_server_error_message() -> None:
    session = MagicMock()
    session.post.return_value = _response(429, {"error": "DashScope API quota exceeded. Please try again later."})
    client = RemoteTranscriptionClient("https://colorbook.example", capture=None, session=session)

    with pytest.raises(TranscriptionError, match="quota exceeded"):
        client.submit(AudioClip(data=b"x"))


def test_submit_transport_failure() -> None:
    session = MagicMock()
    session.post.side_effect = requests.ConnectionError("refused")
    client = RemoteTranscriptionClient("https://colorbook.example", capture=None, session=session)

    with pytest.raises(TranscriptionError, match="Failed to process audio"):
        client.submit(AudioClip(data=b"x"))


def test_submit_rejects_empty_clip() -> None:
    session = MagicMock()
    client = RemoteTranscriptionClient("https://colorbook.example", capture=None, session=session)

    with pytest.raises(TranscriptionError, match="No audio recorded"):
        client.submit(AudioClip(data=b""))
    session.post.assert_not_called()


def test_insecure_endpoint_refuses_to_record() -> None:
    client = RemoteTranscriptionClient("http://colorbook.example", capture=DeniedCapture(), session=MagicMock())

    with pytest.raises(TranscriptionError, match="HTTPS"):
        client.record()
    assert client.recording is False


def test_denied_microphone_is_reported() -> None:
    client = RemoteTranscriptionClient("https://colorbook.example", capture=DeniedCapture(), session=MagicMock())

    with pytest.raises(TranscriptionError, match="Microphone access denied"):
        client.record()


@pytest.mark.parametrize("payload", [["a cat"], "a cat", None])
def test_submit_rejects_non_object_success_body(payload: object) -> None:
    session = MagicMock()
    session.post.return_value = _response(200, payload)
    client = RemoteTranscriptionClient("https://colorbook.example", capture=None, session=session)

    with pytest.raises(TranscriptionError, match="unexpected response"):
        client.submit(AudioClip(data=b"RIFFdata"))
