"""Short children's story streaming via DashScope text generation."""

from __future__ import annotations

import logging
import os
import threading
import time
from dataclasses import dataclass
from http import HTTPStatus
from queue import Empty, Queue
from typing import Any, Iterator, Optional, Sequence

from errors import ConfigurationError, ProviderError

try:
    import dashscope
except Exception:  # pragma: no cover
    dashscope = None  # type: ignore

logger = logging.getLogger(__name__)

DEFAULT_PROMPT = "A cute kitten painting a rainbow"

_END = object()

STORYTELLER_SYSTEM_PROMPT = """You are a magical storyteller for children aged 3-12.
Write a captivating, longer story (150-250 words) based on the user's idea.
The story should:
- Be engaging and imaginative with vivid descriptions
- Include dialogue and character interactions
- Have multiple scenes or adventures
- Contain friendly characters (animals, magical creatures, heroes)
- Build excitement with a clear beginning, middle, and satisfying ending
- Use descriptive language that sparks imagination
- Include emotions and lessons about friendship, kindness, or courage
- Be perfect for inspiring detailed coloring pages

Make it a complete adventure that children will love to read and imagine!"""


def fallback_story(prompt: str) -> str:
    """Templated story used whenever the model cannot answer."""
    subject = prompt.strip() or DEFAULT_PROMPT
    return f"""Once upon a time, in a land filled with wonder and magic, there lived a special {subject}. This wasn't just any ordinary creature - it had a heart full of dreams and eyes that sparkled with curiosity.

Every morning, the {subject} would wake up and look out at the beautiful world around it. "What adventure will today bring?" it would wonder, stretching and getting ready for whatever magical moments awaited.

One day, while exploring a meadow filled with colorful flowers, the {subject} discovered something amazing. Hidden beneath a rainbow was a group of friendly animals who had been waiting for a new friend just like it!

"Welcome!" they called out cheerfully. "We've been hoping someone kind and brave would come along!"

Together, they spent the day playing games, sharing stories, and helping each other. The {subject} learned that the best adventures happen when you're kind to others and open to making new friends.

As the golden sun began to set, painting the sky in beautiful shades of pink and orange, the {subject} smiled. It had found not just an adventure, but a whole family of friends who would always be there.

And from that day forward, they all lived happily ever after, creating magical memories and wonderful adventures together!"""


def prompt_from_messages(messages: Any) -> str:
    """Content of the last chat message, or the default idea."""
    if isinstance(messages, Sequence) and not isinstance(messages, str) and messages:
        last = messages[-1]
        if isinstance(last, dict) and last.get("content"):
            return str(last["content"])
    return DEFAULT_PROMPT


@dataclass
class StoryStream:
    chunks: Iterator[str]
    fallback: bool = False


def _chunk_text(chunk: Any) -> str:
    if isinstance(chunk, dict):
        output = chunk.get("output") or {}
        choices = output.get("choices") or []
        if choices:
            message = choices[0].get("message") or {}
            return str(message.get("content") or "")
        return str(output.get("text") or "")
    return ""


class StoryGenerator:
    def __init__(
        self,
        api_key: str = "",
        model: str = "qwen-plus",
        temperature: float = 0.8,
        max_duration_s: float = 30.0,
    ) -> None:
        self._api_key = api_key
        self._model = model
        self._temperature = temperature
        self._max_duration_s = max_duration_s

    @property
    def model(self) -> str:
        return self._model

    def open(self, prompt: str) -> StoryStream:
        """Start generation and wait for the first chunk.

        Any failure before the first chunk turns into the templated story, so
        the caller knows up front whether it is streaming model output. The
        whole stream, including a stalled first chunk, is bounded by
        ``max_duration_s``.
        """
        deadline = time.monotonic() + self._max_duration_s
        chunks = _until(self._stream_model(prompt), deadline)
        try:
            first = next(chunks)
        except StopIteration:
            logger.warning("Story model returned no text for %r", prompt)
            return StoryStream(chunks=iter([fallback_story(prompt)]), fallback=True)
        except TimeoutError:
            logger.warning("Story model sent nothing within %.0fs for %r", self._max_duration_s, prompt)
            return StoryStream(chunks=iter([fallback_story(prompt)]), fallback=True)
        except Exception:
            logger.exception("Story generation error for %r", prompt)
            return StoryStream(chunks=iter([fallback_story(prompt)]), fallback=True)

        logger.info("Story generation started for %r", prompt)
        return StoryStream(chunks=self._continue(prompt, first, chunks))

    def stream(self, prompt: str) -> Iterator[str]:
        yield from self.open(prompt).chunks

    def _continue(self, prompt: str, first: str, rest: Iterator[str]) -> Iterator[str]:
        yield first
        try:
            yield from rest
        except TimeoutError:
            logger.warning("Story generation hit the %.0fs limit", self._max_duration_s)
        except Exception:
            logger.exception("Story stream interrupted for %r", prompt)

    def _stream_model(self, prompt: str) -> Iterator[str]:
        if dashscope is None:
            raise ConfigurationError("dashscope is not installed")
        api_key = self._api_key or os.getenv("DASHSCOPE_API_KEY", "")
        if not api_key:
            raise ConfigurationError("DASHSCOPE_API_KEY is not configured")

        responses = dashscope.Generation.call(
            api_key=api_key,
            model=self._model,
            messages=[
                {"role": "system", "content": STORYTELLER_SYSTEM_PROMPT},
                {"role": "user", "content": prompt},
            ],
            result_format="message",
            temperature=self._temperature,
            stream=True,
            incremental_output=True,
        )
        for response in responses:
            status = getattr(response, "status_code", HTTPStatus.OK)
            if status != HTTPStatus.OK:
                raise ProviderError(
                    f"{getattr(response, 'code', '')}: {getattr(response, 'message', '')}",
                    status_code=int(status),
                    code=str(getattr(response, "code", "")),
                )
            text = _chunk_text(response)
            if text:
                yield text


def _until(source: Iterator[str], deadline: float) -> Iterator[str]:
    """Re-yield ``source`` until ``deadline``, then raise ``TimeoutError``.

    The source is drained on a daemon thread so a blocked provider call
    cannot hold the caller past the deadline.
    """
    items: Queue[tuple[Any, Optional[BaseException]]] = Queue()

    def pump() -> None:
        try:
            for item in source:
                items.put((item, None))
        except Exception as exc:
            items.put((_END, exc))
        else:
            items.put((_END, None))

    threading.Thread(target=pump, name="story-stream", daemon=True).start()
    while True:
        try:
            item, error = items.get(timeout=max(deadline - time.monotonic(), 0.0))
        except Empty:
            raise TimeoutError("story stream exceeded its time limit") from None
        if item is _END:
            if error is not None:
                raise error
            return
        yield item
