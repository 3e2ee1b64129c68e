"""FastAPI layer: coloring page generation, story streaming and voice notes."""

from __future__ import annotations

import base64
import binascii
import logging
from typing import Any, Optional

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse, StreamingResponse
from pydantic import BaseModel, field_validator
from starlette.concurrency import run_in_threadpool

from audio_describer import DashscopeAudioDescriber
from config import Settings, load_settings
from errors import (
    UNEXPECTED_ERROR,
    ConfigurationError,
    InvalidAudioError,
    ProviderError,
    QuotaExceededError,
)
from generation import GenerationOrchestrator
from interfaces import StoryTeller
from magichour import MagicHourClient
from models import GenerationResult
from story import StoryGenerator, StoryStream, fallback_story, prompt_from_messages

logger = logging.getLogger(__name__)

KEY_MISSING = "DashScope API key not configured. Please set DASHSCOPE_API_KEY environment variable."
KEY_REJECTED = "DashScope API key not configured. Please check your environment variables."


class GenerateBody(BaseModel):
    prompt: str = ""
    video: Optional[bool] = None

    @field_validator("prompt", mode="before")
    @classmethod
    def _text_or_empty(cls, value: Any) -> str:
        return value if isinstance(value, str) else ""

    @field_validator("video", mode="before")
    @classmethod
    def _flag_or_none(cls, value: Any) -> Optional[bool]:
        return value if isinstance(value, bool) else None


class ChatMessage(BaseModel):
    role: str = "user"
    content: Any = ""

    @field_validator("role", mode="before")
    @classmethod
    def _role_or_user(cls, value: Any) -> str:
        return value if isinstance(value, str) else "user"


class ChatBody(BaseModel):
    messages: list[ChatMessage] = []

    @field_validator("messages", mode="before")
    @classmethod
    def _message_dicts(cls, value: Any) -> list:
        if not isinstance(value, list):
            return []
        return [item for item in value if isinstance(item, dict)]


class AudioBody(BaseModel):
    audio: str = ""
    mimeType: Optional[str] = None

    @field_validator("audio", mode="before")
    @classmethod
    def _text_or_empty(cls, value: Any) -> str:
        return value if isinstance(value, str) else ""

    @field_validator("mimeType", mode="before")
    @classmethod
    def _text_or_none(cls, value: Any) -> Optional[str]:
        return value if isinstance(value, str) and value else None


def _error(status_code: int, message: str) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"error": message})


async def _json_body(request: Request) -> Optional[dict]:
    """Parsed JSON object, ``{}`` for other JSON values, ``None`` when unparseable."""
    try:
        data = await request.json()
    except ValueError:
        return None
    return data if isinstance(data, dict) else {}


def create_app(
    settings: Optional[Settings] = None,
    orchestrator: Optional[GenerationOrchestrator] = None,
    storyteller: Optional[StoryTeller] = None,
    describer: Optional[DashscopeAudioDescriber] = None,
) -> FastAPI:
    settings = settings or load_settings()
    if orchestrator is None:
        client = MagicHourClient(settings.magichour_api_key) if settings.magichour_api_key else None
        orchestrator = GenerationOrchestrator(client, enable_video=settings.enable_video)
    storyteller = storyteller or StoryGenerator(
        api_key=settings.dashscope_api_key,
        model=settings.story_model,
    )
    describer = describer or DashscopeAudioDescriber(
        api_key=settings.dashscope_api_key,
        model=settings.audio_model,
    )

    app = FastAPI(
        title="Colorbook API",
        version="1.0",
        description="Coloring pages, short animations and bedtime stories from a short idea.",
    )

    @app.get("/health")
    def health() -> dict:
        return {"status": "ok"}

    @app.post("/api/generate")
    async def generate(request: Request):
        data = await _json_body(request)
        if data is None:
            logger.error("Error in generate route: request body is not valid JSON")
            result = GenerationResult(success=True, prompt="", use_fallback=True, message=UNEXPECTED_ERROR)
            return JSONResponse(status_code=200, content=result.to_payload())
        body = GenerateBody.model_validate(data)
        prompt = body.prompt.strip()
        if not prompt:
            return _error(400, "Prompt is required")

        try:
            result = await run_in_threadpool(orchestrator.generate, prompt, with_video=body.video)
        except Exception:
            logger.exception("Error in generate route")
            result = GenerationResult(success=True, prompt="", use_fallback=True, message=UNEXPECTED_ERROR)
        return JSONResponse(status_code=200, content=result.to_payload())

    @app.post("/api/chat")
    async def chat(request: Request):
        body = ChatBody.model_validate(await _json_body(request) or {})
        prompt = prompt_from_messages([m.model_dump() for m in body.messages])

        try:
            story = await run_in_threadpool(storyteller.open, prompt)
        except Exception:
            logger.exception("Story generation error")
            story = StoryStream(chunks=iter([fallback_story(prompt)]), fallback=True)
        headers = {"Cache-Control": "no-cache"}
        if story.fallback:
            headers["X-Story-Fallback"] = "1"
        return StreamingResponse(
            story.chunks,
            status_code=200,
            media_type="text/plain; charset=utf-8",
            headers=headers,
        )

    @app.post("/api/process-audio")
    async def process_audio(request: Request):
        if not describer.configured:
            return _error(500, KEY_MISSING)

        body = AudioBody.model_validate(await _json_body(request) or {})
        if not body.audio:
            return _error(400, "No audio data provided")
        try:
            audio_bytes = base64.b64decode(body.audio, validate=True)
        except (binascii.Error, ValueError):
            return _error(400, "Audio data is not valid base64")
        logger.info("Audio size: %d bytes", len(audio_bytes))

        try:
            analysis = await run_in_threadpool(describer.describe, body.audio, body.mimeType or "audio/webm")
        except ConfigurationError as exc:
            logger.error("Audio processing configuration error: %s", exc)
            return _error(500, KEY_REJECTED)
        except QuotaExceededError:
            return _error(429, "DashScope API quota exceeded. Please try again later.")
        except InvalidAudioError:
            return _error(400, "Failed to process audio. Please try recording again.")
        except ProviderError as exc:
            logger.error("Audio processing error: %s", exc)
            return _error(500, f"Audio processing failed: {exc}")
        except Exception as exc:
            logger.exception("Audio processing error")
            return _error(500, f"Audio processing failed: {exc}")

        return {
            "transcript": analysis.transcript,
            "description": analysis.description,
            "fullResponse": analysis.full_response,
            "usage": analysis.usage,
        }

    return app


app = create_app()
