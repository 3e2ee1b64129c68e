"""Local mirror of the microphone permission."""

from __future__ import annotations

import logging
import threading
from typing import Callable

from models import MicPermission

logger = logging.getLogger(__name__)

PermissionListener = Callable[[MicPermission], None]


class PermissionStatus:
    def __init__(self, state: MicPermission = MicPermission.PROMPT) -> None:
        self._state = state
        self._listeners: list[PermissionListener] = []
        self._lock = threading.Lock()

    @property
    def state(self) -> MicPermission:
        return self._state

    def subscribe(self, listener: PermissionListener) -> Callable[[], None]:
        with self._lock:
            self._listeners.append(listener)

        def unsubscribe() -> None:
            with self._lock:
                if listener in self._listeners:
                    self._listeners.remove(listener)

        return unsubscribe

    def update(self, state: MicPermission) -> None:
        """Record a new state and notify listeners when it changed."""
        with self._lock:
            if state == self._state:
                return
            self._state = state
            listeners = list(self._listeners)
        logger.info("Microphone permission is now %s", state.value)
        for listener in listeners:
            listener(state)
