from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Iterator

import numpy as np
import shapely
from shapely.geometry import LineString, MultiPolygon, Polygon
from shapely.geometry.polygon import orient
from shapely.ops import unary_union

from sticker_cutline.contour_tracer import Contour
from sticker_cutline.errors import OffsetComputationFailure

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class OffsetPolygon:
    """Contour grown outward, as an open ring of float vertices in pixel space."""

    points: tuple[tuple[float, float], ...]
    distance: float
    scale: int

    def __len__(self) -> int:
        return len(self.points)

    def __iter__(self) -> Iterator[tuple[float, float]]:
        return iter(self.points)

    @property
    def signed_area(self) -> float:
        pts = np.asarray(self.points, dtype=np.float64)
        x, y = pts[:, 0], pts[:, 1]
        return float(0.5 * (np.dot(x, np.roll(y, -1)) - np.dot(np.roll(x, -1), y)))

    @property
    def area(self) -> float:
        return abs(self.signed_area)

    @property
    def bounds(self) -> tuple[float, float, float, float]:
        pts = np.asarray(self.points, dtype=np.float64)
        return (
            float(pts[:, 0].min()),
            float(pts[:, 1].min()),
            float(pts[:, 0].max()),
            float(pts[:, 1].max()),
        )

    def to_polygon(self) -> Polygon:
        return Polygon(self.points)


def _source_geometry(ring: list[tuple[float, float]]):
    # buffer(0) drops zero-area spurs where the ring doubles back; the line keeps them
    filled = Polygon(ring).buffer(0)
    outline = LineString(ring + [ring[0]])
    return filled, unary_union([filled, outline])


def offset_contour(
    contour: Contour,
    distance: float = 6.0,
    scale: int = 1000,
    quad_segs: int = 8,
    simplify_tolerance: float = 0.0,
    max_segment_length: float | None = 4.0,
) -> OffsetPolygon:
    """
    Grow *contour* outward by *distance* pixels with rounded joins.

    Parameters
    ----------
    contour             Traced boundary in integer cell coordinates.
    distance            Margin in pixels (>= 0).
    scale               Fixed-point factor: coordinates are multiplied by it
                        and snapped to integers before offsetting, and the
                        result is snapped again before dividing back.
    quad_segs           Segments per quarter circle on rounded corners.
    simplify_tolerance  Douglas-Peucker tolerance in pixels applied to the
                        contour before growing it (0 disables).  The
                        simplified outline is merged with the original, so
                        it can only add area.
    max_segment_length  Longest edge allowed in the result (None disables).

    Raises OffsetComputationFailure when the result is empty, invalid, smaller
    than the contour or split into several regions.
    """
    if distance < 0:
        raise OffsetComputationFailure(f"distance must be >= 0, got {distance}")
    if len(contour) < 3:
        raise OffsetComputationFailure("contour has fewer than 3 points")

    pts = np.rint(np.asarray(contour.points, dtype=np.float64) * scale)
    ring = [(float(x), float(y)) for x, y in pts]
    filled, base = _source_geometry(ring)
    if simplify_tolerance > 0:
        # merged with the original, so smoothing only fills notches
        simple = base.simplify(simplify_tolerance * scale, preserve_topology=True)
        base = unary_union([base, simple])
    grown = base.buffer(distance * scale, quad_segs=quad_segs, join_style="round", cap_style="round")

    if grown.is_empty:
        raise OffsetComputationFailure("offset produced an empty shape")
    if isinstance(grown, MultiPolygon):
        raise OffsetComputationFailure(f"offset split into {len(grown.geoms)} regions")
    if not isinstance(grown, Polygon) or not grown.is_valid:
        raise OffsetComputationFailure(f"offset produced an invalid {grown.geom_type}")

    shell = Polygon(grown.exterior)
    if max_segment_length is not None:
        shell = shapely.segmentize(shell, max_segment_length * scale)

    # positive shoelace area == clockwise on screen, same sense as the contour
    shell = orient(shell, sign=1.0)

    coords = np.rint(np.asarray(shell.exterior.coords)[:-1]) / scale
    points: list[tuple[float, float]] = []
    for x, y in coords:
        p = (float(x), float(y))
        if not points or points[-1] != p:
            points.append(p)
    if len(points) > 1 and points[-1] == points[0]:
        points.pop()
    if len(points) < 3:
        raise OffsetComputationFailure("offset ring collapsed after rescaling")

    result = OffsetPolygon(points=tuple(points), distance=float(distance), scale=scale)
    if result.area + 1e-9 < contour.area:
        raise OffsetComputationFailure(
            f"offset area {result.area:.2f} is smaller than contour area {contour.area:.2f}"
        )

    logger.debug(
        "Offset contour by %.2f px — %d -> %d points, area %.1f -> %.1f (filled %.1f)",
        distance, len(contour), len(result), contour.area, result.area,
        filled.area / (scale * scale),
    )
    return result
