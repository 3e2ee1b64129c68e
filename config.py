"""Settings: per-user JSON preferences overlaid by environment variables."""

from __future__ import annotations

import json
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Optional

from dotenv import load_dotenv

DEFAULT_SERVER_URL = "http://localhost:8000"


class JsonConfigStore:
    def __init__(self, path: Path | None = None) -> None:
        self._path = path or Path.home() / ".config" / "colorbook" / "config.json"
        self._path.parent.mkdir(parents=True, exist_ok=True)

    def get_dashscope_key(self) -> str:
        return str(self._read_all().get("dashscope_api_key", ""))

    def set_dashscope_key(self, key: str) -> None:
        self._set("dashscope_api_key", key)

    def get_magichour_key(self) -> str:
        return str(self._read_all().get("magichour_api_key", ""))

    def set_magichour_key(self, key: str) -> None:
        self._set("magichour_api_key", key)

    def get_server_url(self) -> str:
        return str(self._read_all().get("server_url", DEFAULT_SERVER_URL))

    def set_server_url(self, url: str) -> None:
        self._set("server_url", url)

    def get_language(self) -> str:
        return str(self._read_all().get("language", "en-US"))

    def set_language(self, language: str) -> None:
        self._set("language", language)

    def _set(self, key: str, value: Any) -> None:
        data = self._read_all()
        data[key] = value
        self._write_all(data)

    def _read_all(self) -> dict:
        if not self._path.exists():
            return {}
        try:
            return json.loads(self._path.read_text(encoding="utf-8"))
        except (json.JSONDecodeError, OSError):
            return {}

    def _write_all(self, data: dict) -> None:
        self._path.write_text(json.dumps(data, ensure_ascii=False, indent=2), encoding="utf-8")


@dataclass(frozen=True)
class Settings:
    dashscope_api_key: str = ""
    magichour_api_key: str = ""
    server_url: str = DEFAULT_SERVER_URL
    language: str = "en-US"
    story_model: str = "qwen-plus"
    audio_model: str = "qwen-audio-turbo-latest"
    asr_model: str = "paraformer-realtime-v2"
    enable_video: bool = True
    max_voice_retries: int = 3


def _env_flag(value: Optional[str], default: bool) -> bool:
    if value is None or not value.strip():
        return default
    return value.strip().lower() in {"1", "true", "yes", "on"}


def load_settings(store: Optional[JsonConfigStore] = None, env_file: Optional[Path] = None) -> Settings:
    """Environment (and ``.env``) first, then the preference file, then defaults."""
    load_dotenv(dotenv_path=env_file)
    saved: dict = store._read_all() if store is not None else {}
    env = os.environ

    def pick(env_name: str, key: str, default: str) -> str:
        return env.get(env_name) or str(saved.get(key) or "") or default

    return Settings(
        dashscope_api_key=pick("DASHSCOPE_API_KEY", "dashscope_api_key", ""),
        magichour_api_key=pick("MAGICHOUR_API_KEY", "magichour_api_key", ""),
        server_url=pick("COLORBOOK_SERVER_URL", "server_url", DEFAULT_SERVER_URL),
        language=pick("COLORBOOK_LANGUAGE", "language", "en-US"),
        story_model=pick("COLORBOOK_STORY_MODEL", "story_model", "qwen-plus"),
        audio_model=pick("COLORBOOK_AUDIO_MODEL", "audio_model", "qwen-audio-turbo-latest"),
        asr_model=pick("COLORBOOK_ASR_MODEL", "asr_model", "paraformer-realtime-v2"),
        enable_video=_env_flag(env.get("COLORBOOK_ENABLE_VIDEO"), bool(saved.get("enable_video", True))),
        max_voice_retries=int(pick("COLORBOOK_MAX_VOICE_RETRIES", "max_voice_retries", "3")),
    )
