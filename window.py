"""Main window of the desktop app."""

from __future__ import annotations

try:
    from PySide6.QtCore import Qt
    from PySide6.QtWidgets import (
        QCheckBox,
        QHBoxLayout,
        QLabel,
        QPlainTextEdit,
        QPushButton,
        QTextBrowser,
        QVBoxLayout,
        QWidget,
    )
except Exception:  # pragma: no cover
    Qt = None  # type: ignore
    QWidget = object  # type: ignore

ERROR_STYLE = "color: #C0392B; font-weight: bold;"
STATUS_STYLE = "color: #6C3483;"


class MainWindow(QWidget):
    def __init__(self) -> None:
        if Qt is None:
            raise RuntimeError("PySide6 is not installed")
        super().__init__()
        self.setWindowTitle("Colorbook - Create Your Own Coloring Pages!")
        self.resize(720, 760)

        self.prompt_edit = QPlainTextEdit()
        self.prompt_edit.setPlaceholderText(
            "Type your idea here! Like: a happy dinosaur, a princess castle, a rocket ship..."
        )
        self.prompt_edit.setFixedHeight(90)

        self.mic_button = QPushButton("Speak")
        self.note_button = QPushButton("Record voice note")
        self.video_check = QCheckBox("Also make a short animation")
        self.video_check.setChecked(True)
        self.create_button = QPushButton("Create Coloring Page!")

        self.status_label = QLabel("")
        self.status_label.setStyleSheet(STATUS_STYLE)
        self.error_label = QLabel("")
        self.error_label.setWordWrap(True)
        self.error_label.setStyleSheet(ERROR_STYLE)

        self.result_view = QTextBrowser()
        self.result_view.setOpenExternalLinks(True)
        self.result_view.setFixedHeight(90)
        self.image_download = QPushButton("Download page")
        self.video_download = QPushButton("Download animation")
        self.image_download.setEnabled(False)
        self.video_download.setEnabled(False)

        self.story_view = QPlainTextEdit()
        self.story_view.setReadOnly(True)

        input_row = QHBoxLayout()
        input_row.addWidget(self.mic_button)
        input_row.addWidget(self.note_button)
        input_row.addWidget(self.video_check)
        input_row.addStretch(1)
        input_row.addWidget(self.create_button)

        download_row = QHBoxLayout()
        download_row.addWidget(self.image_download)
        download_row.addWidget(self.video_download)
        download_row.addStretch(1)

        layout = QVBoxLayout()
        layout.addWidget(QLabel("What do you want to color?"))
        layout.addWidget(self.prompt_edit)
        layout.addLayout(input_row)
        layout.addWidget(self.status_label)
        layout.addWidget(self.error_label)
        layout.addWidget(QLabel("Your coloring page"))
        layout.addWidget(self.result_view)
        layout.addLayout(download_row)
        layout.addWidget(QLabel("Your story"))
        layout.addWidget(self.story_view, 1)
        self.setLayout(layout)

    def set_prompt(self, text: str) -> None:
        if self.prompt_edit.toPlainText() != text:
            self.prompt_edit.setPlainText(text)

    def set_listening(self, listening: bool) -> None:
        self.mic_button.setText("Stop" if listening else "Speak")
        self.note_button.setEnabled(not listening)

    def set_recording_note(self, recording: bool) -> None:
        self.note_button.setText("Stop and describe" if recording else "Record voice note")
        self.mic_button.setEnabled(not recording)

    def set_busy(self, busy: bool) -> None:
        self.create_button.setEnabled(not busy)
        self.create_button.setText("Creating..." if busy else "Create Coloring Page!")
        if busy:
            self.result_view.clear()
            self.image_download.setEnabled(False)
            self.video_download.setEnabled(False)

    def show_result(self, image_url: str, video_url: str | None) -> None:
        links = [f'<a href="{image_url}">Open coloring page</a>']
        if video_url:
            links.append(f'<a href="{video_url}">Watch animation</a>')
        self.result_view.setHtml("<br>".join(links))
        self.image_download.setEnabled(True)
        self.video_download.setEnabled(bool(video_url))
