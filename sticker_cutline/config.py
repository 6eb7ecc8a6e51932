from __future__ import annotations

import logging
import os
from dataclasses import dataclass, replace

logger = logging.getLogger(__name__)

DEFAULT_ALPHA_THRESHOLD = 10
DEFAULT_OFFSET = 6.0
DEFAULT_SCALE = 1000


@dataclass(frozen=True)
class TraceSettings:
    """Parameters for one trace request.

    threshold          Alpha cut-off (0-255); a pixel is foreground when its
                       alpha is strictly greater.
    offset             Cut line margin in image pixels.
    scale              Fixed-point factor used while offsetting.
    min_object_px      Drop foreground specks of at most this many pixels (0 disables).
    simplify           Douglas-Peucker tolerance on the contour before offsetting (0 disables).
    max_segment        Longest edge allowed in the offset ring (None disables).
    quad_segs          Segments per quarter circle on rounded joins.
    max_steps          Hard cap on boundary walk steps (None = derived from size).
    """

    threshold: int = DEFAULT_ALPHA_THRESHOLD
    offset: float = DEFAULT_OFFSET
    scale: int = DEFAULT_SCALE
    min_object_px: int = 0
    simplify: float = 0.0
    max_segment: float | None = 4.0
    quad_segs: int = 8
    max_steps: int | None = None

    def __post_init__(self) -> None:
        if not 0 <= self.threshold <= 255:
            raise ValueError(f"threshold must be in [0, 255], got {self.threshold}")
        if self.scale < 1:
            raise ValueError(f"scale must be a positive integer, got {self.scale}")
        if self.min_object_px < 0:
            raise ValueError("min_object_px must be >= 0")
        if self.simplify < 0:
            raise ValueError("simplify must be >= 0")
        if self.max_segment is not None and self.max_segment <= 0:
            raise ValueError("max_segment must be positive (or None to disable)")
        if self.quad_segs < 1:
            raise ValueError("quad_segs must be >= 1")

    def with_overrides(self, **overrides) -> "TraceSettings":
        """Return a copy with the non-None overrides applied."""
        return replace(self, **{k: v for k, v in overrides.items() if v is not None})


def parse_max_segment(raw: str) -> float | None:
    """Parse a max segment length; "", "none" and "0" disable densification."""
    raw = raw.strip()
    if raw.lower() in ("", "none"):
        return None
    value = float(raw)
    return value if value != 0 else None


_ENV_KEYS = {
    "threshold": ("CUTLINE_ALPHA_THRESHOLD", int),
    "offset": ("CUTLINE_OFFSET", float),
    "scale": ("CUTLINE_SCALE", int),
    "min_object_px": ("CUTLINE_MIN_OBJECT_PX", int),
    "simplify": ("CUTLINE_SIMPLIFY", float),
    "max_segment": ("CUTLINE_MAX_SEGMENT", parse_max_segment),
}


def settings_from_env(environ=None) -> TraceSettings:
    """Build TraceSettings from CUTLINE_* environment variables.

    An empty, "none" or "0" CUTLINE_MAX_SEGMENT disables densification.
    """
    env = os.environ if environ is None else environ
    values = {}
    for name, (key, cast) in _ENV_KEYS.items():
        raw = env.get(key)
        if raw is None:
            continue
        try:
            values[name] = cast(raw.strip())
        except ValueError as e:
            raise ValueError(f"{key}={raw!r} is not a valid setting") from e
    if values:
        logger.info("Trace settings overridden from environment: %s", sorted(values))
    return TraceSettings(**values)
