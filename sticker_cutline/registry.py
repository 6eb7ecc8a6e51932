"""
registry.py
~~~~~~~~~~~
Per-sticker cut path ownership.

Every trace request takes a token from a per-sticker counter.  A finished
trace is only stored if its token is still the newest one for that sticker,
so a slow early request cannot overwrite the result of a later one.  Deleting
a sticker (or replacing its image) bumps the counter too, which orphans any
trace still running for it.  A sticker's counter is dropped once none of its
traces is in flight, so only stickers with pending work keep one.
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass

import anyio

from sticker_cutline.config import TraceSettings
from sticker_cutline.path_emitter import Transform
from sticker_cutline.pipeline import TraceResult, trace_sticker
from sticker_cutline.raster import RasterImage

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class AppliedTrace:
    token: int
    result: TraceResult
    applied: bool


@dataclass(frozen=True)
class StoredCutPath:
    """A sticker's current cut path and the image bytes it was traced from."""

    result: TraceResult
    source: bytes | None = None


class CutPathRegistry:
    def __init__(self) -> None:
        self._lock = threading.Lock()
        # tokens are only kept while a trace for the sticker is in flight
        self._latest: dict[str, int] = {}
        self._in_flight: dict[str, int] = {}
        self._entries: dict[str, StoredCutPath] = {}

    def begin(self, sticker_id: str) -> int:
        """Reserve a token for a new trace of *sticker_id*."""
        with self._lock:
            token = self._latest.get(sticker_id, 0) + 1
            self._latest[sticker_id] = token
            self._in_flight[sticker_id] = self._in_flight.get(sticker_id, 0) + 1
            return token

    def _release_locked(self, sticker_id: str) -> None:
        remaining = self._in_flight.get(sticker_id, 0) - 1
        if remaining > 0:
            self._in_flight[sticker_id] = remaining
            return
        self._in_flight.pop(sticker_id, None)
        self._latest.pop(sticker_id, None)

    def is_current(self, sticker_id: str, token: int) -> bool:
        with self._lock:
            return self._latest.get(sticker_id) == token

    def in_flight(self, sticker_id: str) -> int:
        with self._lock:
            return self._in_flight.get(sticker_id, 0)

    @property
    def tracked_ids(self) -> set[str]:
        """Stickers holding a cut path or a pending trace."""
        with self._lock:
            return set(self._entries) | set(self._latest)

    def apply(
        self,
        sticker_id: str,
        token: int,
        result: TraceResult,
        source: bytes | None = None,
    ) -> bool:
        """
        Store *result* (with the *source* image it came from) if *token* is
        still the newest request; else drop it.  Either way the token is spent.
        """
        with self._lock:
            latest = self._latest.get(sticker_id)
            current = latest == token
            self._release_locked(sticker_id)
            if not current:
                logger.info(
                    "Discarding stale trace for sticker %s (token %d, latest %s)",
                    sticker_id, token, latest,
                )
                return False
            if result.has_cut_path:
                self._entries[sticker_id] = StoredCutPath(result=result, source=source)
            else:
                self._entries.pop(sticker_id, None)
            return True

    def entry(self, sticker_id: str) -> StoredCutPath | None:
        with self._lock:
            return self._entries.get(sticker_id)

    def get(self, sticker_id: str) -> TraceResult | None:
        stored = self.entry(sticker_id)
        return stored.result if stored is not None else None

    def discard(self, sticker_id: str) -> bool:
        """Drop the sticker's cut path and invalidate traces still in flight."""
        with self._lock:
            if sticker_id in self._in_flight:
                self._latest[sticker_id] += 1
            return self._entries.pop(sticker_id, None) is not None

    async def retrace(
        self,
        sticker_id: str,
        image: RasterImage,
        settings: TraceSettings | None = None,
        transform: Transform | None = None,
        source: bytes | None = None,
    ) -> AppliedTrace:
        """Trace on a worker thread and store the outcome if nothing newer was requested."""
        token = self.begin(sticker_id)
        try:
            result = await anyio.to_thread.run_sync(trace_sticker, image, settings, transform)
        except BaseException:
            with self._lock:
                self._release_locked(sticker_id)
            raise
        applied = self.apply(sticker_id, token, result, source=source)
        return AppliedTrace(token=token, result=result, applied=applied)
