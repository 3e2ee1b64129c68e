"""Transcribe a voice note and turn it into a coloring-page description."""

from __future__ import annotations

import logging
import os
import re
from http import HTTPStatus
from typing import Any

from errors import ColorbookError, ConfigurationError, InvalidAudioError, ProviderError, QuotaExceededError
from models import AudioAnalysis

try:
    import dashscope
except Exception:  # pragma: no cover
    dashscope = None  # type: ignore

logger = logging.getLogger(__name__)

DESCRIBE_INSTRUCTION = """Please transcribe this audio recording and then create a detailed, child-friendly description for a coloring page. The description should be suitable for generating a coloring book illustration.

Requirements:
1. First, transcribe what the person said
2. Then, create a detailed description for a coloring page that includes:
   - The main subject/character
   - Simple, clear lines suitable for coloring
   - Child-friendly elements
   - Background details
   - Any specific objects or scenes mentioned

Format your response as:
TRANSCRIPT: [what they said]
DESCRIPTION: [detailed coloring page description]

Make the description vivid and specific enough for AI image generation, but keep it simple and fun for children."""

_TRANSCRIPT_RE = re.compile(r"TRANSCRIPT:\s*(.+?)(?=DESCRIPTION:|$)", re.DOTALL)
_DESCRIPTION_RE = re.compile(r"DESCRIPTION:\s*(.+)$", re.DOTALL)


def split_sections(text: str) -> tuple[str, str]:
    """Return ``(transcript, description)`` from a labeled model answer.

    Without a DESCRIPTION label the whole answer is the description; without
    a TRANSCRIPT label the transcript is empty.
    """
    transcript_match = _TRANSCRIPT_RE.search(text)
    description_match = _DESCRIPTION_RE.search(text)
    transcript = transcript_match.group(1).strip() if transcript_match else ""
    description = description_match.group(1).strip() if description_match else text
    return transcript, description


def _message_text(response: Any) -> str:
    output = response.get("output") or {}
    choices = output.get("choices") or []
    if not choices:
        return ""
    content = (choices[0].get("message") or {}).get("content") or []
    if isinstance(content, str):
        return content
    return "".join(str(part.get("text", "")) for part in content if isinstance(part, dict))


def _classify_failure(code: str, message: str, status_code: int | None = None) -> ColorbookError:
    low = f"{code} {message}".lower()
    if "api key" in low or "apikey" in low or status_code == 401:
        return ConfigurationError(f"DashScope rejected the API key: {message or code}")
    if "quota" in low or "throttling" in low or status_code == 429:
        return QuotaExceededError(message or code, status_code=status_code, code=code)
    if "audio" in low:
        return InvalidAudioError(message or code, status_code=status_code, code=code)
    return ProviderError(message or code, status_code=status_code, code=code)


class DashscopeAudioDescriber:
    def __init__(self, api_key: str = "", model: str = "qwen-audio-turbo-latest") -> None:
        self._api_key = api_key
        self._model = model

    @property
    def configured(self) -> bool:
        return bool(self._api_key or os.getenv("DASHSCOPE_API_KEY"))

    def describe(self, audio_b64: str, mime_type: str = "audio/webm") -> AudioAnalysis:
        if dashscope is None:
            raise ConfigurationError("dashscope is not installed")
        api_key = self._api_key or os.getenv("DASHSCOPE_API_KEY", "")
        if not api_key:
            raise ConfigurationError("DASHSCOPE_API_KEY is not configured")

        logger.info("Processing audio with %s (%d base64 chars)", self._model, len(audio_b64))
        try:
            response = dashscope.MultiModalConversation.call(
                api_key=api_key,
                model=self._model,
                messages=[
                    {
                        "role": "user",
                        "content": [
                            {"audio": f"data:{mime_type or 'audio/webm'};base64,{audio_b64}"},
                            {"text": DESCRIBE_INSTRUCTION},
                        ],
                    }
                ],
            )
        except Exception as exc:
            raise _classify_failure("", str(exc)) from exc

        status = getattr(response, "status_code", HTTPStatus.OK)
        if status != HTTPStatus.OK:
            raise _classify_failure(
                str(getattr(response, "code", "")),
                str(getattr(response, "message", "")),
                int(status),
            )

        text = _message_text(response)
        transcript, description = split_sections(text)
        logger.info("Extracted transcript: %s", transcript)
        return AudioAnalysis(
            transcript=transcript,
            description=description,
            full_response=text,
            usage=dict(response.get("usage") or {}),
        )
