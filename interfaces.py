"""Protocol interfaces used by the controllers."""

from __future__ import annotations

from typing import TYPE_CHECKING, Callable, Optional, Protocol

from models import AudioFrame, SpeechEvent

if TYPE_CHECKING:
    from story import StoryStream


class MicStream(Protocol):
    @property
    def active(self) -> bool: ...

    def read(self, timeout: float = 0.2) -> Optional[AudioFrame]: ...

    def stop(self) -> None: ...


class MediaCapture(Protocol):
    def request_stream(self) -> MicStream: ...


class SpeechEngine(Protocol):
    def start(
        self,
        stream: MicStream,
        on_event: Callable[[SpeechEvent], None],
        *,
        language: str = "en-US",
        interim_results: bool = True,
    ) -> None: ...

    def abort(self) -> None: ...


class TimerHandle(Protocol):
    def cancel(self) -> None: ...


class Scheduler(Protocol):
    def call_later(self, delay_s: float, callback: Callable[[], None]) -> TimerHandle: ...


class StoryTeller(Protocol):
    def open(self, prompt: str) -> "StoryStream": ...
