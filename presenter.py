"""UI-agnostic presentation logic for the coloring page app."""

from __future__ import annotations

import logging
import threading
from pathlib import Path
from typing import Callable, Optional

import requests

from api_client import ColoringApiClient
from errors import EMPTY_PROMPT, GENERIC_RETRY, MIC_BUSY, TranscriptionError
from models import GenerationRequest, GenerationResult
from speech_controller import SpeechCaptureController
from transcription import RemoteTranscriptionClient

logger = logging.getLogger(__name__)

TextCallback = Callable[[str], None]
FlagCallback = Callable[[bool], None]
ResultCallback = Callable[[GenerationResult], None]
Runner = Callable[[Callable[[], None]], None]

WORKING = "Creating your coloring page..."
DESCRIBING = "Listening to your idea..."


def _spawn(task: Callable[[], None]) -> None:
    threading.Thread(target=task, daemon=True).start()


class ColoringPresenter:
    def __init__(
        self,
        api: ColoringApiClient,
        transcriber: Optional[RemoteTranscriptionClient] = None,
        download_dir: Optional[Path] = None,
        run_async: Runner = _spawn,
        on_prompt: Optional[TextCallback] = None,
        on_status: Optional[TextCallback] = None,
        on_story: Optional[TextCallback] = None,
        on_result: Optional[ResultCallback] = None,
        on_error: Optional[TextCallback] = None,
        on_busy: Optional[FlagCallback] = None,
        on_listening: Optional[FlagCallback] = None,
    ) -> None:
        self._api = api
        self._transcriber = transcriber
        self._speech: Optional[SpeechCaptureController] = None
        self.download_dir = download_dir or Path.home() / "Downloads" / "colorbook"
        self._run_async = run_async
        self._on_prompt = on_prompt
        self._on_status = on_status
        self._on_story = on_story
        self._on_result = on_result
        self._on_error = on_error
        self._on_busy = on_busy
        self._on_listening = on_listening

        self._lock = threading.Lock()
        self._prompt = ""
        self._request: Optional[GenerationRequest] = None
        self._next_request_id = 0
        self.result: Optional[GenerationResult] = None
        self.busy = False

    @property
    def prompt(self) -> str:
        return self._prompt

    @property
    def request(self) -> Optional[GenerationRequest]:
        return self._request

    def attach_voice(self, controller: SpeechCaptureController) -> None:
        self._speech = controller

    def set_prompt(self, text: str) -> None:
        self._prompt = text

    # ------------------------------------------------------------------
    # Voice input
    # ------------------------------------------------------------------

    def handle_transcript(self, text: str) -> None:
        self._prompt = text
        if self._on_prompt:
            self._on_prompt(text)

    def handle_voice_error(self, message: str) -> None:
        self._emit(self._on_error, message)

    def handle_listening_change(self, listening: bool) -> None:
        if self._on_listening:
            self._on_listening(listening)

    @property
    def voice_active(self) -> bool:
        return self._speech is not None and (self._speech.is_listening or self._speech.session is not None)

    def toggle_voice(self) -> None:
        if self._speech is None:
            self._emit(self._on_error, "Voice input is not available.")
            return
        if self.voice_active:
            self._speech.stop()
        elif self.recording_note:
            self._emit(self._on_error, MIC_BUSY)
        else:
            self._speech.start()

    @property
    def recording_note(self) -> bool:
        return self._transcriber is not None and self._transcriber.recording

    def toggle_voice_note(self) -> None:
        if self.recording_note:
            self.finish_voice_note()
        else:
            self.start_voice_note()

    def start_voice_note(self) -> None:
        if self._transcriber is None:
            self._emit(self._on_error, "Voice notes are not available.")
            return
        if self.voice_active:
            self._emit(self._on_error, MIC_BUSY)
            return
        try:
            self._transcriber.record()
        except TranscriptionError as exc:
            self._emit(self._on_error, str(exc))
            return
        self._emit(self._on_status, "Recording... press again when you are done.")

    def finish_voice_note(self) -> None:
        if self._transcriber is None or not self._transcriber.recording:
            return
        clip = self._transcriber.finish()
        self._emit(self._on_status, DESCRIBING)
        self._run_async(lambda: self._describe(clip))

    def _describe(self, clip) -> None:  # noqa: ANN001
        if self._transcriber is None:
            return
        try:
            analysis = self._transcriber.submit(clip)
        except TranscriptionError as exc:
            self._emit(self._on_error, str(exc))
            return
        text = analysis.description or analysis.transcript
        if not text:
            self._emit(self._on_error, "We couldn't hear an idea. Please try recording again.")
            return
        self.handle_transcript(text)
        self._emit(self._on_status, "Got it! Press create when you are ready.")

    # ------------------------------------------------------------------
    # Generation
    # ------------------------------------------------------------------

    def submit(self, video: Optional[bool] = None) -> bool:
        prompt = self._prompt.strip()
        if not prompt:
            self._emit(self._on_error, EMPTY_PROMPT)
            return False

        with self._lock:
            self._next_request_id += 1
            request = GenerationRequest(prompt=prompt, request_id=self._next_request_id)
            self._request = request
            self.result = None
        self._set_busy(True)
        self._emit(self._on_error, "")
        self._emit(self._on_story, "")
        self._emit(self._on_status, WORKING)

        self._run_async(lambda: self._stream_story(request))
        self._run_async(lambda: self._generate(request, video))
        return True

    def _is_current(self, request: GenerationRequest) -> bool:
        return self._request is request

    def _stream_story(self, request: GenerationRequest) -> None:
        try:
            for chunk in self._api.stream_story(request.prompt):
                if not self._is_current(request):
                    return
                request.append_story(chunk)
                self._emit(self._on_story, request.story)
        except Exception:
            logger.exception("Story display failed")

    def _generate(self, request: GenerationRequest, video: Optional[bool]) -> None:
        try:
            result = self._api.generate(request.prompt, video=video)
        except Exception:
            logger.exception("Generation failed")
            result = GenerationResult(success=False, prompt=request.prompt, use_fallback=True, message=GENERIC_RETRY)

        if not self._is_current(request):
            logger.info("Dropping result of superseded request %d", request.request_id)
            return
        self.result = result
        self._set_busy(False)
        if result.image_url:
            self._emit(self._on_status, result.message or "Your coloring page is ready!")
            if self._on_result:
                self._on_result(result)
        else:
            self._emit(self._on_status, "")
            self._emit(self._on_error, result.message or GENERIC_RETRY)

    # ------------------------------------------------------------------
    # Downloads
    # ------------------------------------------------------------------

    def download(self, kind: str = "image") -> Optional[Path]:
        result = self.result
        url = None
        if result is not None:
            url = result.video_url if kind == "video" else result.image_url
        if not url:
            self._emit(self._on_error, f"No {kind} to download yet.")
            return None
        try:
            path = self._api.download(url, self.download_dir)
        except (requests.RequestException, OSError) as exc:
            logger.error("Download failed: %s", exc)
            self._emit(self._on_error, "Download failed. Please try again!")
            return None
        self._emit(self._on_status, f"Saved to {path}")
        return path

    def close(self) -> None:
        if self._speech is not None:
            self._speech.close()
        if self._transcriber is not None and self._transcriber.recording:
            self._transcriber.finish()

    def _set_busy(self, busy: bool) -> None:
        self.busy = busy
        if self._on_busy:
            self._on_busy(busy)

    @staticmethod
    def _emit(callback: Optional[TextCallback], text: str) -> None:
        if callback:
            callback(text)
