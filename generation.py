"""Image and video job orchestration for coloring pages."""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from typing import Any, Callable, Optional

import requests

from errors import (
    IMAGE_AND_VIDEO_OK,
    IMAGE_API_ERROR,
    IMAGE_CREATE_FAILED,
    IMAGE_NO_JOB_ID,
    IMAGE_NO_OUTPUT,
    IMAGE_NOT_CONFIGURED,
    IMAGE_OK,
    IMAGE_TIMED_OUT,
    UNEXPECTED_ERROR,
    VIDEO_FAILED_SUFFIX,
    VIDEO_TIMED_OUT_SUFFIX,
    ProviderError,
)
from magichour import COMPLETED_STATUSES, FAILED_STATUSES, MagicHourClient, first_output_url
from models import GenerationJob, GenerationRequest, GenerationResult, JobKind, JobStatus

logger = logging.getLogger(__name__)

POLL_INTERVAL_S = 3.0
IMAGE_MAX_ATTEMPTS = 30
VIDEO_MAX_ATTEMPTS = 180


def build_image_prompt(prompt: str) -> str:
    return f"""Create a children's coloring book page featuring {prompt}.

CRITICAL REQUIREMENTS:
- Pure white background (no grey, no texture, no patterns)
- Thick, bold black outlines only (2-3px thick)
- No shading, gradients, or fill colors
- No pixelated or jagged edges
- Clean, smooth line art style
- Simple shapes suitable for ages 3-8
- Large, distinct areas to color
- No fine details or complex textures
- Cartoon/anime style, not realistic
- High contrast black lines on white background
- Professional coloring book quality

Style: Simple line art, cartoon illustration, children's coloring book page, clean vector-style drawing."""


def build_video_prompt(prompt: str) -> str:
    return (
        f"Bring this children's coloring book drawing of {prompt} gently to life. "
        "Slow, playful, looping motion. Keep the bold black outlines on the pure white "
        "background exactly as drawn, add no colors, shading or new objects, "
        "and keep the camera still."
    )


@dataclass
class PollOutcome:
    status: JobStatus
    attempts: int
    project: dict[str, Any] = field(default_factory=dict)
    transport_error: bool = False


class JobPoller:
    """Poll a job status endpoint until it finishes or the attempt bound is hit.

    One ``step()`` is one status request.  Between non-terminal steps the
    poller sleeps ``interval_s``; it never sleeps after the final attempt.
    """

    def __init__(
        self,
        fetch_status: Callable[[], dict[str, Any]],
        interval_s: float = POLL_INTERVAL_S,
        max_attempts: int = IMAGE_MAX_ATTEMPTS,
        sleep: Callable[[float], None] = time.sleep,
        label: str = "job",
    ) -> None:
        if max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        self._fetch_status = fetch_status
        self._interval_s = interval_s
        self._max_attempts = max_attempts
        self._sleep = sleep
        self._label = label
        self.status = JobStatus.PENDING
        self.attempts = 0
        self.project: dict[str, Any] = {}
        self.transport_error = False

    def run(self) -> PollOutcome:
        while self.status == JobStatus.PENDING:
            self.step()
        return PollOutcome(
            status=self.status,
            attempts=self.attempts,
            project=self.project,
            transport_error=self.transport_error,
        )

    def step(self) -> JobStatus:
        if self.status.terminal:
            return self.status
        self.attempts += 1
        try:
            self.project = self._fetch_status()
        except (ProviderError, requests.RequestException) as exc:
            logger.error("Status check for %s failed: %s", self._label, exc)
            self.transport_error = True
            self.status = JobStatus.FAILED
            return self.status

        provider_status = str(self.project.get("status", "")).lower()
        logger.info("%s status: %s (attempt %d)", self._label, provider_status or "fetching...", self.attempts)
        if provider_status in COMPLETED_STATUSES:
            self.status = JobStatus.COMPLETED
        elif provider_status in FAILED_STATUSES:
            self.status = JobStatus.FAILED
        elif self.attempts >= self._max_attempts:
            logger.error("Timed out waiting for %s after %d polls", self._label, self.attempts)
            self.status = JobStatus.TIMED_OUT
        else:
            self._sleep(self._interval_s)
        return self.status


class GenerationOrchestrator:
    def __init__(
        self,
        client: Optional[MagicHourClient],
        enable_video: bool = True,
        poll_interval_s: float = POLL_INTERVAL_S,
        image_max_attempts: int = IMAGE_MAX_ATTEMPTS,
        video_max_attempts: int = VIDEO_MAX_ATTEMPTS,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self._client = client
        self.enable_video = enable_video
        self._poll_interval_s = poll_interval_s
        self._image_max_attempts = image_max_attempts
        self._video_max_attempts = video_max_attempts
        self._sleep = sleep

    def generate(self, prompt: str, *, with_video: Optional[bool] = None) -> GenerationResult:
        """Create a coloring page (and optionally an animation). Never raises."""
        want_video = self.enable_video if with_video is None else with_video
        request = GenerationRequest(prompt=prompt)
        try:
            return self._generate(request, want_video)
        except Exception:
            logger.exception("Unexpected error while generating %r", prompt)
            return _fallback(prompt, UNEXPECTED_ERROR)

    def _generate(self, request: GenerationRequest, want_video: bool) -> GenerationResult:
        prompt = request.prompt
        if self._client is None:
            logger.error("MAGICHOUR_API_KEY is not configured")
            return _fallback(prompt, IMAGE_NOT_CONFIGURED)

        logger.info("Creating image generation job for %r", prompt)
        try:
            created = self._client.create_image_job(
                name=f"Coloring Page: {prompt}",
                prompt=build_image_prompt(prompt),
            )
        except ProviderError:
            return _fallback(prompt, IMAGE_CREATE_FAILED)
        except requests.RequestException as exc:
            logger.error("Magic Hour API error: %s", exc)
            return _fallback(prompt, IMAGE_API_ERROR)

        job_id = created.get("id")
        if not job_id:
            logger.error("No job id returned: %s", created)
            return _fallback(prompt, IMAGE_NO_JOB_ID)

        request.image_job = GenerationJob(kind=JobKind.IMAGE, id=str(job_id))
        outcome = JobPoller(
            lambda: self._client.get_image_job(str(job_id)),
            interval_s=self._poll_interval_s,
            max_attempts=self._image_max_attempts,
            sleep=self._sleep,
            label=f"image job {job_id}",
        ).run()

        if outcome.status == JobStatus.TIMED_OUT:
            request.image_job.advance(JobStatus.TIMED_OUT)
            return _fallback(prompt, IMAGE_TIMED_OUT)
        if outcome.status == JobStatus.FAILED:
            request.image_job.advance(JobStatus.FAILED)
            return _fallback(prompt, IMAGE_API_ERROR if outcome.transport_error else IMAGE_CREATE_FAILED)

        image_url = first_output_url(outcome.project)
        if not image_url:
            request.image_job.advance(JobStatus.FAILED)
            logger.error("No image URLs found in response")
            return _fallback(prompt, IMAGE_NO_OUTPUT)
        request.image_job.advance(JobStatus.COMPLETED, image_url)
        logger.info("Image generated: %s", image_url)

        if not want_video:
            return _success(prompt, image_url, None, IMAGE_OK)

        video_url, video_note = self._generate_video(self._client, request, image_url)
        if video_url:
            return _success(prompt, image_url, video_url, IMAGE_AND_VIDEO_OK)
        return _success(prompt, image_url, None, f"{IMAGE_OK}, {video_note}")

    def _generate_video(
        self, client: MagicHourClient, request: GenerationRequest, image_url: str
    ) -> tuple[Optional[str], str]:
        """Best-effort animation of a finished image."""
        prompt = request.prompt
        try:
            created = client.create_video_job(
                name=f"Coloring Animation: {prompt}",
                image_url=image_url,
                prompt=build_video_prompt(prompt),
            )
        except (ProviderError, requests.RequestException) as exc:
            logger.warning("Video job creation failed: %s", exc)
            return None, VIDEO_FAILED_SUFFIX

        job_id = created.get("id")
        if not job_id:
            logger.warning("No video job id returned: %s", created)
            return None, VIDEO_FAILED_SUFFIX

        request.video_job = GenerationJob(kind=JobKind.VIDEO, id=str(job_id))
        outcome = JobPoller(
            lambda: client.get_video_job(str(job_id)),
            interval_s=self._poll_interval_s,
            max_attempts=self._video_max_attempts,
            sleep=self._sleep,
            label=f"video job {job_id}",
        ).run()

        if outcome.status == JobStatus.TIMED_OUT:
            request.video_job.advance(JobStatus.TIMED_OUT)
            return None, VIDEO_TIMED_OUT_SUFFIX
        video_url = first_output_url(outcome.project) if outcome.status == JobStatus.COMPLETED else None
        if not video_url:
            request.video_job.advance(JobStatus.FAILED)
            return None, VIDEO_FAILED_SUFFIX
        request.video_job.advance(JobStatus.COMPLETED, video_url)
        logger.info("Video generated: %s", video_url)
        return video_url, ""


def _success(prompt: str, image_url: str, video_url: Optional[str], message: str) -> GenerationResult:
    return GenerationResult(
        success=True,
        prompt=prompt,
        image_url=image_url,
        video_url=video_url,
        use_fallback=False,
        message=message,
    )


def _fallback(prompt: str, message: str) -> GenerationResult:
    return GenerationResult(
        success=True,
        prompt=prompt,
        image_url=None,
        video_url=None,
        use_fallback=True,
        message=message,
    )
