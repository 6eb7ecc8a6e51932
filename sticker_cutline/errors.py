"""Trace outcomes that are not a usable cut line.

Both subclass ValueError so HTTP handlers that map bad input to 400 keep
working without knowing about this module.
"""


class CutLineError(ValueError):
    """Base class for cut line extraction failures."""


class NoForegroundPixels(CutLineError):
    """The mask holds no foreground, or the boundary walk found fewer than 3 cells."""

    def __init__(self, reason: str = "no pixel above the alpha threshold") -> None:
        self.reason = reason
        super().__init__(f"Could not detect a silhouette in this image: {reason}")


class OffsetComputationFailure(CutLineError):
    """Growing the contour did not produce exactly one polygon."""

    def __init__(self, reason: str) -> None:
        self.reason = reason
        super().__init__(f"Cut line offset failed: {reason}")
