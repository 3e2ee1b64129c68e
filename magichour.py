"""Thin HTTP client for the Magic Hour image and video job APIs."""

from __future__ import annotations

import logging
from typing import Any, Mapping, Optional

import requests

from errors import ProviderError

logger = logging.getLogger(__name__)

DEFAULT_BASE_URL = "https://api.magichour.ai/v1"

COMPLETED_STATUSES = frozenset({"complete", "completed"})
FAILED_STATUSES = frozenset({"error", "failed", "canceled", "cancelled"})

_OUTPUT_LISTS = ("outputs", "frames", "downloads")


def first_output_url(project: Mapping[str, Any]) -> Optional[str]:
    """Return the first resolvable artifact URL of a finished project."""
    for key in _OUTPUT_LISTS:
        for item in project.get(key) or []:
            if isinstance(item, str) and item:
                return item
            if isinstance(item, Mapping):
                url = item.get("url") or item.get("output_url")
                if url:
                    return str(url)
    return None


class MagicHourClient:
    def __init__(
        self,
        api_key: str,
        base_url: str = DEFAULT_BASE_URL,
        session: Optional[requests.Session] = None,
        timeout_s: float = 30.0,
    ) -> None:
        self._api_key = api_key
        self._base_url = base_url.rstrip("/")
        self._session = session or requests.Session()
        self._timeout_s = timeout_s

    def create_image_job(self, name: str, prompt: str, tool: str = "ai-anime-generator") -> dict[str, Any]:
        return self._post(
            "/ai-image-generator",
            {
                "name": name,
                "image_count": 1,
                "orientation": "square",
                "style": {"prompt": prompt, "tool": tool},
            },
        )

    def get_image_job(self, job_id: str) -> dict[str, Any]:
        return self._get(f"/image-projects/{job_id}")

    def create_video_job(
        self,
        name: str,
        image_url: str,
        prompt: str,
        end_seconds: float = 5.0,
    ) -> dict[str, Any]:
        return self._post(
            "/image-to-video",
            {
                "name": name,
                "end_seconds": end_seconds,
                "assets": {"image_file_path": image_url},
                "style": {"prompt": prompt},
            },
        )

    def get_video_job(self, job_id: str) -> dict[str, Any]:
        return self._get(f"/video-projects/{job_id}")

    def _headers(self) -> dict[str, str]:
        return {
            "accept": "application/json",
            "authorization": f"Bearer {self._api_key}",
        }

    def _post(self, path: str, body: dict[str, Any]) -> dict[str, Any]:
        response = self._session.post(
            f"{self._base_url}{path}",
            json=body,
            headers=self._headers(),
            timeout=self._timeout_s,
        )
        return self._decode(response, path)

    def _get(self, path: str) -> dict[str, Any]:
        response = self._session.get(
            f"{self._base_url}{path}",
            headers=self._headers(),
            timeout=self._timeout_s,
        )
        return self._decode(response, path)

    def _decode(self, response: requests.Response, path: str) -> dict[str, Any]:
        if not response.ok:
            logger.error("Magic Hour %s failed (%s): %s", path, response.status_code, response.text)
            raise ProviderError(
                f"Magic Hour request to {path} failed with HTTP {response.status_code}",
                status_code=response.status_code,
            )
        try:
            data = response.json()
        except ValueError as exc:
            raise ProviderError(f"Magic Hour returned invalid JSON for {path}") from exc
        if not isinstance(data, dict):
            raise ProviderError(f"Magic Hour returned an unexpected payload for {path}")
        return data
