"""Application entrypoint: API server or desktop client."""

from __future__ import annotations

import argparse
import logging
import sys

from config import JsonConfigStore, load_settings

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"

log = logging.getLogger("colorbook")


def run_server(host: str, port: int, reload: bool) -> int:
    import uvicorn

    log.info("Starting Colorbook API on http://%s:%d", host, port)
    uvicorn.run("api:app", host=host, port=port, reload=reload)
    return 0


def run_desktop() -> int:
    try:
        from PySide6.QtCore import QObject, Signal
        from PySide6.QtWidgets import QApplication
    except Exception as exc:  # pragma: no cover
        raise SystemExit(f"PySide6 is required to run the desktop app: {exc}")

    from api_client import ColoringApiClient
    from models import GenerationResult
    from permissions import PermissionStatus
    from presenter import ColoringPresenter
    from recognizer import DashscopeSpeechEngine
    from recorder import SoundDeviceCapture
    from speech_controller import SpeechCaptureController
    from transcription import RemoteTranscriptionClient
    from window import MainWindow

    class UIBridge(QObject):
        prompt_signal = Signal(str)
        status_signal = Signal(str)
        story_signal = Signal(str)
        error_signal = Signal(str)
        busy_signal = Signal(bool)
        listening_signal = Signal(bool)
        result_signal = Signal(object)

    settings = load_settings(JsonConfigStore())
    app = QApplication(sys.argv)
    window = MainWindow()
    ui = UIBridge()

    # Callbacks arrive on worker threads; signals hop them onto the Qt thread.
    ui.prompt_signal.connect(window.set_prompt)
    ui.status_signal.connect(window.status_label.setText)
    ui.story_signal.connect(window.story_view.setPlainText)
    ui.error_signal.connect(window.error_label.setText)
    ui.busy_signal.connect(window.set_busy)
    ui.listening_signal.connect(window.set_listening)

    def _show_result(result: GenerationResult) -> None:
        window.show_result(result.image_url or "", result.video_url)

    ui.result_signal.connect(_show_result)

    api = ColoringApiClient(settings.server_url)
    permission = PermissionStatus()
    capture = SoundDeviceCapture(permission=permission)
    presenter = ColoringPresenter(
        api=api,
        transcriber=RemoteTranscriptionClient(settings.server_url, capture, session=api.session),
        on_prompt=ui.prompt_signal.emit,
        on_status=ui.status_signal.emit,
        on_story=ui.story_signal.emit,
        on_result=ui.result_signal.emit,
        on_error=ui.error_signal.emit,
        on_busy=ui.busy_signal.emit,
        on_listening=ui.listening_signal.emit,
    )
    engine = DashscopeSpeechEngine(api_key=settings.dashscope_api_key, model=settings.asr_model)
    presenter.attach_voice(
        SpeechCaptureController(
            engine=engine,
            capture=capture,
            permission=permission,
            max_retries=settings.max_voice_retries,
            language=settings.language,
            on_transcript=presenter.handle_transcript,
            on_error=presenter.handle_voice_error,
            on_listening_change=presenter.handle_listening_change,
        )
    )

    def _toggle_note() -> None:
        presenter.toggle_voice_note()
        window.set_recording_note(presenter.recording_note)

    window.prompt_edit.textChanged.connect(
        lambda: presenter.set_prompt(window.prompt_edit.toPlainText())
    )
    window.mic_button.clicked.connect(presenter.toggle_voice)
    window.note_button.clicked.connect(_toggle_note)
    window.create_button.clicked.connect(
        lambda: presenter.submit(video=window.video_check.isChecked())
    )
    window.image_download.clicked.connect(lambda: presenter.download("image"))
    window.video_download.clicked.connect(lambda: presenter.download("video"))
    app.aboutToQuit.connect(presenter.close)

    window.show()
    return app.exec()


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="colorbook", description="Coloring pages from a short idea.")
    parser.add_argument("--verbose", action="store_true", help="Enable debug logging")
    sub = parser.add_subparsers(dest="command")

    serve = sub.add_parser("serve", help="Run the HTTP API")
    serve.add_argument("--host", default="127.0.0.1")
    serve.add_argument("--port", type=int, default=8000)
    serve.add_argument("--reload", action="store_true")

    sub.add_parser("desktop", help="Run the desktop app")
    return parser


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format=LOG_FORMAT,
    )
    if args.command == "serve":
        return run_server(args.host, args.port, args.reload)
    return run_desktop()


if __name__ == "__main__":
    raise SystemExit(main())
