"""HTTP client the desktop app uses to reach the Colorbook API."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Iterator, Optional
from urllib.parse import urlparse

import requests

from errors import GENERIC_RETRY
from models import GenerationResult
from story import fallback_story

logger = logging.getLogger(__name__)


class ColoringApiClient:
    def __init__(
        self,
        base_url: str,
        session: Optional[requests.Session] = None,
        generate_timeout_s: float = 660.0,
        story_timeout_s: float = 45.0,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self._session = session or requests.Session()
        self._generate_timeout_s = generate_timeout_s
        self._story_timeout_s = story_timeout_s

    @property
    def session(self) -> requests.Session:
        return self._session

    def generate(self, prompt: str, video: Optional[bool] = None) -> GenerationResult:
        body: dict = {"prompt": prompt}
        if video is not None:
            body["video"] = video
        try:
            response = self._session.post(
                f"{self.base_url}/api/generate",
                json=body,
                timeout=self._generate_timeout_s,
            )
            data = response.json()
        except (requests.RequestException, ValueError) as exc:
            logger.error("Generate request failed: %s", exc)
            return GenerationResult(success=False, prompt=prompt, use_fallback=True, message=GENERIC_RETRY)

        if not response.ok:
            message = str(data.get("error") or GENERIC_RETRY) if isinstance(data, dict) else GENERIC_RETRY
            return GenerationResult(success=False, prompt=prompt, use_fallback=True, message=message)
        return GenerationResult.from_payload(data)

    def stream_story(self, prompt: str) -> Iterator[str]:
        """Yield story text as it arrives; a local fallback if the server is unreachable."""
        delivered = False
        try:
            with self._session.post(
                f"{self.base_url}/api/chat",
                json={"messages": [{"role": "user", "content": prompt}]},
                stream=True,
                timeout=self._story_timeout_s,
            ) as response:
                response.raise_for_status()
                response.encoding = response.encoding or "utf-8"
                for chunk in response.iter_content(chunk_size=None, decode_unicode=True):
                    if chunk:
                        delivered = True
                        yield chunk
        except requests.RequestException as exc:
            logger.error("Story request failed: %s", exc)
            if not delivered:
                yield fallback_story(prompt)

    def download(self, url: str, dest_dir: Path) -> Path:
        """Save a generated artifact locally and return its path."""
        dest_dir.mkdir(parents=True, exist_ok=True)
        name = Path(urlparse(url).path).name or "coloring-page.png"
        target = dest_dir / name
        partial = target.with_name(target.name + ".part")
        try:
            with self._session.get(url, stream=True, timeout=self._story_timeout_s) as response:
                response.raise_for_status()
                with partial.open("wb") as handle:
                    for block in response.iter_content(chunk_size=64 * 1024):
                        handle.write(block)
            partial.replace(target)
        except BaseException:
            partial.unlink(missing_ok=True)
            raise
        logger.info("Saved %s", target)
        return target
