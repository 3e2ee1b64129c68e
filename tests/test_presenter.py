from __future__ import annotations

from pathlib import Path
from typing import Callable, Optional

import requests

from errors import EMPTY_PROMPT, IMAGE_CREATE_FAILED, MIC_BUSY, TranscriptionError
from models import AudioAnalysis, AudioClip, GenerationResult
from presenter import ColoringPresenter


class FakeApi:
    def __init__(self, result: Optional[GenerationResult] = None, story: Optional[list[str]] = None) -> None:
        self.result = result or GenerationResult(
            success=True,
            prompt="a dinosaur",
            image_url="https://cdn/d.png",
            video_url="https://cdn/d.mp4",
            message="Image and video generated successfully",
        )
        self.story = story if story is not None else ["Once ", "upon ", "a time"]
        self.generated: list[tuple[str, Optional[bool]]] = []
        self.downloaded: list[str] = []
        self.download_error: Optional[Exception] = None

    def generate(self, prompt: str, video: Optional[bool] = None) -> GenerationResult:
        self.generated.append((prompt, video))
        return self.result

    def stream_story(self, prompt: str):  # noqa: ANN201
        yield from self.story

    def download(self, url: str, dest_dir: Path) -> Path:
        if self.download_error is not None:
            raise self.download_error
        self.downloaded.append(url)
        return dest_dir / "file"


class FakeTranscriber:
    def __init__(self, analysis: Optional[AudioAnalysis] = None, error: Optional[Exception] = None) -> None:
        self.analysis = analysis or AudioAnalysis(transcript="a dino", description="A friendly dinosaur")
        self.error = error
        self.recording = False

    def record(self) -> None:
        if self.error is not None:
            raise self.error
        self.recording = True

    def finish(self) -> AudioClip:
        self.recording = False
        return AudioClip(data=b"RIFF")

    def submit(self, clip: AudioClip) -> AudioAnalysis:
        return self.analysis


class FakeSpeech:
    def __init__(self) -> None:
        self.is_listening = False
        self.session = None
        self.calls: list[str] = []

    def start(self) -> bool:
        # Session exists before the engine reports it is listening.
        self.calls.append("start")
        self.session = object()
        return True

    def stop(self) -> None:
        self.calls.append("stop")
        self.session = None
        self.is_listening = False

    def close(self) -> None:
        self.calls.append("close")


class Recorder:
    def __init__(self) -> None:
        self.prompts: list[str] = []
        self.statuses: list[str] = []
        self.stories: list[str] = []
        self.results: list[GenerationResult] = []
        self.errors: list[str] = []
        self.busy: list[bool] = []
        self.listening: list[bool] = []


def _presenter(
    api: Optional[FakeApi] = None,
    transcriber: Optional[FakeTranscriber] = None,
    run_async: Optional[Callable[[Callable[[], None]], None]] = None,
    tmp_path: Optional[Path] = None,
) -> tuple[ColoringPresenter, Recorder]:
    rec = Recorder()
    presenter = ColoringPresenter(
        api=api or FakeApi(),
        transcriber=transcriber,
        download_dir=tmp_path,
        run_async=run_async or (lambda task: task()),
        on_prompt=rec.prompts.append,
        on_status=rec.statuses.append,
        on_story=rec.stories.append,
        on_result=rec.results.append,
        on_error=rec.errors.append,
        on_busy=rec.busy.append,
        on_listening=rec.listening.append,
    )
    return presenter, rec


def test_empty_prompt_is_rejected() -> None:
    presenter, rec = _presenter()
    presenter.set_prompt("   ")

    assert presenter.submit() is False
    assert rec.errors == [EMPTY_PROMPT]
    assert rec.busy == []


def test_submit_streams_story_and_shows_result() -> None:
    api = FakeApi()
    presenter, rec = _presenter(api=api)
    presenter.set_prompt("  a dinosaur  ")

    assert presenter.submit(video=True) is True

    assert api.generated == [("a dinosaur", True)]
    assert rec.stories[-1] == "Once upon a time"
    assert rec.results == [api.result]
    assert rec.busy == [True, False]
    assert rec.statuses[-1] == "Image and video generated successfully"
    assert presenter.request is not None
    assert presenter.request.request_id == 1


def test_fallback_result_is_shown_as_error() -> None:
    api = FakeApi(result=GenerationResult(success=True, prompt="x", use_fallback=True, message=IMAGE_CREATE_FAILED))
    presenter, rec = _presenter(api=api)
    presenter.set_prompt("a castle")

    presenter.submit()

    assert rec.results == []
    assert rec.errors[-1] == IMAGE_CREATE_FAILED
    assert rec.busy[-1] is False


def test_superseded_request_is_dropped() -> None:
    tasks: list[Callable[[], None]] = []
    api = FakeApi()
    presenter, rec = _presenter(api=api, run_async=tasks.append)

    presenter.set_prompt("a cat")
    presenter.submit()
    first_tasks = list(tasks)
    presenter.set_prompt("a dog")
    presenter.submit()
    for task in first_tasks:
        task()

    assert rec.results == []
    assert rec.stories == ["", ""]

    for task in tasks[len(first_tasks):]:
        task()

    assert len(rec.results) == 1
    assert presenter.request is not None
    assert presenter.request.prompt == "a dog"
    assert presenter.request.request_id == 2


def test_transcript_updates_prompt_last_write_wins() -> None:
    presenter, rec = _presenter()

    presenter.handle_transcript("a")
    presenter.handle_transcript("a dino ")

    assert presenter.prompt == "a dino "
    assert rec.prompts == ["a", "a dino "]


def test_toggle_voice_starts_and_stops() -> None:
    presenter, rec = _presenter()
    speech = FakeSpeech()
    presenter.attach_voice(speech)  # type: ignore[arg-type]

    presenter.toggle_voice()
    presenter.toggle_voice()
    presenter.close()

    assert speech.calls == ["start", "stop", "close"]


def test_toggle_voice_without_controller_reports_error() -> None:
    presenter, rec = _presenter()

    presenter.toggle_voice()

    assert rec.errors == ["Voice input is not available."]


def test_voice_note_fills_prompt_with_description() -> None:
    transcriber = FakeTranscriber()
    presenter, rec = _presenter(transcriber=transcriber)  # type: ignore[arg-type]

    presenter.toggle_voice_note()
    assert presenter.recording_note is True
    presenter.toggle_voice_note()

    assert presenter.recording_note is False
    assert presenter.prompt == "A friendly dinosaur"
    assert rec.prompts == ["A friendly dinosaur"]


def test_voice_note_error_is_reported() -> None:
    transcriber = FakeTranscriber(error=TranscriptionError("Voice recording requires HTTPS."))
    presenter, rec = _presenter(transcriber=transcriber)  # type: ignore[arg-type]

    presenter.start_voice_note()

    assert rec.errors == ["Voice recording requires HTTPS."]
    assert presenter.recording_note is False


def test_download_without_result_reports_error(tmp_path: Path) -> None:
    presenter, rec = _presenter(tmp_path=tmp_path)

    assert presenter.download("image") is None
    assert rec.errors == ["No image to download yet."]


def test_download_saves_requested_artifact(tmp_path: Path) -> None:
    api = FakeApi()
    presenter, rec = _presenter(api=api, tmp_path=tmp_path)
    presenter.set_prompt("a dinosaur")
    presenter.submit()

    path = presenter.download("video")

    assert path == tmp_path / "file"
    assert api.downloaded == ["https://cdn/d.mp4"]


def test_download_failure_is_reported(tmp_path: Path) -> None:
    api = FakeApi()
    api.download_error = requests.ConnectionError("refused")
    presenter, rec = _presenter(api=api, tmp_path=tmp_path)
    presenter.set_prompt("a dinosaur")
    presenter.submit()

    assert presenter.download("image") is None
    assert rec.errors[-1] == "Download failed. Please try again!"


def test_voice_note_refused_while_speech_session_is_starting() -> None:
    transcriber = FakeTranscriber()
    presenter, rec = _presenter(transcriber=transcriber)  # type: ignore[arg-type]
    speech = FakeSpeech()
    presenter.attach_voice(speech)  # type: ignore[arg-type]

    presenter.toggle_voice()
    presenter.start_voice_note()

    assert transcriber.recording is False
    assert rec.errors[-1] == MIC_BUSY
    assert speech.calls == ["start"]


def test_speech_refused_while_voice_note_is_recording() -> None:
    transcriber = FakeTranscriber()
    presenter, rec = _presenter(transcriber=transcriber)  # type: ignore[arg-type]
    speech = FakeSpeech()
    presenter.attach_voice(speech)  # type: ignore[arg-type]

    presenter.start_voice_note()
    presenter.toggle_voice()

    assert speech.calls == []
    assert rec.errors[-1] == MIC_BUSY
    assert presenter.recording_note is True
