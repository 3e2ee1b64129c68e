from __future__ import annotations

from pathlib import Path
from unittest.mock import MagicMock

import pytest
import requests

from api_client import ColoringApiClient
from errors import GENERIC_RETRY
from story import fallback_story


def _response(status: int = 200, payload=None) -> MagicMock:  # noqa: ANN001
    response = MagicMock()
    response.ok = 200 <= status < 300
    response.status_code = status
    response.json.return_value = payload if payload is not None else {}
    return response


def _streaming(chunks: list, error: Exception | None = None) -> MagicMock:
    response = MagicMock()
    response.__enter__.return_value = response
    response.__exit__.return_value = False
    response.encoding = "utf-8"
    if error is not None:
        response.raise_for_status.side_effect = error
    response.iter_content.return_value = iter(chunks)
    return response


def test_generate_parses_envelope() -> None:
    session = MagicMock()
    session.post.return_value = _response(
        payload={
            "success": True,
            "prompt": "a dinosaur",
            "imageUrl": "https://cdn/d.png",
            "videoUrl": None,
            "useFallback": False,
            "message": "Image generated successfully",
        }
    )
    client = ColoringApiClient("http://localhost:8000/", session=session)

    result = client.generate("a dinosaur", video=False)

    assert result.image_url == "https://cdn/d.png"
    assert result.use_fallback is False
    assert session.post.call_args.args[0] == "http://localhost:8000/api/generate"
    assert session.post.call_args.kwargs["json"] == {"prompt": "a dinosaur", "video": False}


def test_generate_transport_failure_asks_to_retry() -> None:
    session = MagicMock()
    session.post.side_effect = requests.ConnectionError("refused")

    result = ColoringApiClient("http://localhost:8000", session=session).generate("a dinosaur")

    assert result.success is False
    assert result.message == GENERIC_RETRY


def test_generate_client_error_uses_server_message() -> None:
    session = MagicMock()
    session.post.return_value = _response(400, {"error": "Prompt is required"})

    result = ColoringApiClient("http://localhost:8000", session=session).generate(" ")

    assert result.success is False
    assert result.message == "Prompt is required"


def test_stream_story_yields_chunks() -> None:
    session = MagicMock()
    session.post.return_value = _streaming(["Once ", "", "upon"])

    chunks = list(ColoringApiClient("http://localhost:8000", session=session).stream_story("a fox"))

    assert chunks == ["Once ", "upon"]
    assert session.post.call_args.kwargs["json"] == {"messages": [{"role": "user", "content": "a fox"}]}


def test_stream_story_falls_back_when_unreachable() -> None:
    session = MagicMock()
    session.post.side_effect = requests.ConnectionError("refused")

    chunks = list(ColoringApiClient("http://localhost:8000", session=session).stream_story("a fox"))

    assert chunks == [fallback_story("a fox")]


def test_download_writes_file(tmp_path: Path) -> None:
    session = MagicMock()
    response = _streaming([b"\x89PNG", b"data"])
    session.get.return_value = response

    path = ColoringApiClient("http://localhost:8000", session=session).download(
        "https://cdn.example/pages/dino.png?sig=1", tmp_path / "out"
    )

    assert path == tmp_path / "out" / "dino.png"
    assert path.read_bytes() == b"\x89PNGdata"


def test_interrupted_download_leaves_no_file(tmp_path: Path) -> None:
    def blocks():
        yield b"\x89PNG"
        raise requests.ConnectionError("reset")

    session = MagicMock()
    response = _streaming([])
    response.iter_content.return_value = blocks()
    session.get.return_value = response
    dest = tmp_path / "out"

    with pytest.raises(requests.ConnectionError):
        ColoringApiClient("http://localhost:8000", session=session).download("https://cdn.example/dino.png", dest)

    assert list(dest.iterdir()) == []


def test_download_keeps_previous_file_on_http_error(tmp_path: Path) -> None:
    dest = tmp_path / "out"
    dest.mkdir()
    (dest / "dino.png").write_bytes(b"old")
    session = MagicMock()
    session.get.return_value = _streaming([], error=requests.HTTPError("404"))

    with pytest.raises(requests.HTTPError):
        ColoringApiClient("http://localhost:8000", session=session).download("https://cdn.example/dino.png", dest)

    assert (dest / "dino.png").read_bytes() == b"old"
    assert sorted(p.name for p in dest.iterdir()) == ["dino.png"]
