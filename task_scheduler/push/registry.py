"""Registry of named delivery channels."""

from __future__ import annotations

import threading

from .pushers import Pusher


class RegistryError(Exception):
    """Raised on invalid registration or lookup of a pusher."""


class PusherRegistry:
    """Thread-safe mapping of names to pushers."""

    def __init__(self) -> None:
        self._pushers: dict[str, Pusher] = {}
        self._lock = threading.RLock()

    def register(self, name: str, pusher: Pusher) -> None:
        if not name:
            raise RegistryError("pusher name must not be empty")
        if pusher is None:
            raise RegistryError("pusher must not be None")
        with self._lock:
            if name in self._pushers:
                raise RegistryError(f"pusher already registered: {name}")
            self._pushers[name] = pusher

    def get(self, name: str) -> Pusher:
        with self._lock:
            try:
                return self._pushers[name]
            except KeyError:
                raise RegistryError(f"pusher not found: {name}") from None

    def names(self) -> list[str]:
        with self._lock:
            return list(self._pushers)

    def unregister(self, name: str) -> None:
        with self._lock:
            if name not in self._pushers:
                raise RegistryError(f"pusher not found: {name}")
            del self._pushers[name]

    def __contains__(self, name: object) -> bool:
        with self._lock:
            return name in self._pushers

    def __len__(self) -> int:
        with self._lock:
            return len(self._pushers)