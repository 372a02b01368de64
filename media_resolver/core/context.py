from __future__ import annotations

import asyncio
import logging
from pathlib import Path
from typing import Awaitable, Callable, Dict, Optional, TypeVar

from media_resolver.core.cache import PrefetchCache
from media_resolver.core.retry import Clock, SystemClock

logger = logging.getLogger(__name__)

T = TypeVar("T")


class AppDirs:
    """
    Centralized directory configuration.

    Provides a single source of truth for every on-disk location used by the
    engine. All paths are absolute and platform-independent.
    """

    def __init__(self, base_dir: Optional[Path] = None):
        """
        Initialize directory configuration.

        Args:
            base_dir: Base directory. Defaults to ~/.media-resolver
        """
        self.base = base_dir or (Path.home() / ".media-resolver")
        self.base.mkdir(parents=True, exist_ok=True)

    @property
    def data(self) -> Path:
        """Config database and cookie jar"""
        path = self.base / "data"
        path.mkdir(parents=True, exist_ok=True)
        return path

    @property
    def logs(self) -> Path:
        path = self.base / "logs"
        path.mkdir(parents=True, exist_ok=True)
        return path

    @property
    def downloads(self) -> Path:
        """Default destination for saved media"""
        path = self.base / "downloads"
        path.mkdir(parents=True, exist_ok=True)
        return path


class ResolutionContext:
    """
    Per-engine shared state: the two prefetch slots and the in-flight
    request registry.

    Constructed once per engine and passed to every component; there is no
    module-level state. The engine runs on one event loop, so the slots have
    a single writer at any time and only staleness needs handling.
    """

    def __init__(
        self,
        *,
        clock: Optional[Clock] = None,
        dom_ttl_seconds: Optional[float] = None,
        api_ttl_seconds: Optional[float] = None,
    ):
        self.clock = clock or SystemClock()
        cache_kwargs = {}
        if dom_ttl_seconds is not None:
            cache_kwargs["dom_ttl_seconds"] = dom_ttl_seconds
        if api_ttl_seconds is not None:
            cache_kwargs["api_ttl_seconds"] = api_ttl_seconds
        self.cache = PrefetchCache(self.clock, **cache_kwargs)
        self._in_flight: Dict[str, asyncio.Task] = {}

    def in_flight(self, key: str) -> Optional[asyncio.Task]:
        task = self._in_flight.get(key)
        if task is not None and task.done():
            return None
        return task

    def single_flight(self, key: str, factory: Callable[[], Awaitable[T]]) -> "asyncio.Task[T]":
        """
        Return the running task for `key`, or start one from `factory`.

        A second caller for the same key attaches to the existing task rather
        than starting a duplicate request.
        """
        existing = self.in_flight(key)
        if existing is not None:
            logger.debug(f"Joining in-flight request for {key}")
            return existing

        task = asyncio.ensure_future(factory())
        self._in_flight[key] = task

        def _release(done: asyncio.Task, key: str = key) -> None:
            if self._in_flight.get(key) is done:
                self._in_flight.pop(key, None)

        task.add_done_callback(_release)
        return task

    def pending_keys(self):
        return [key for key, task in self._in_flight.items() if not task.done()]
