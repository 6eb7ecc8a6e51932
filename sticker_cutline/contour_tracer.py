"""
contour_tracer.py
~~~~~~~~~~~~~~~~~
Boundary walk over an AlphaMask.

The walk starts at the first foreground cell in row-major order and hugs the
region's edge with a left-hand rule over the four cardinal neighbours: from
the current heading it tries left, straight, right and finally back.  With
y growing downward this follows the outline clockwise on screen, foreground
on the right-hand side.

The walk is a permutation over (cell, heading) states, so it always comes
back to its first move; that state repeat ends the trace.  A step cap sized
to the number of possible states stays in place as a second limit.

Only the region that owns the start cell is traced.  Other islands and any
holes are left out.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Iterator

import numpy as np

from sticker_cutline.errors import NoForegroundPixels
from sticker_cutline.raster import AlphaMask

logger = logging.getLogger(__name__)

# Clockwise on screen: east, south, west, north.
_STEPS = ((1, 0), (0, 1), (-1, 0), (0, -1))
_EAST = 0
# left, straight, right, back relative to the current heading
_TURN_ORDER = (-1, 0, 1, 2)


@dataclass(frozen=True)
class Contour:
    """Closed loop of integer cells; the last cell is a unit step from the first."""

    points: tuple[tuple[int, int], ...]

    def __len__(self) -> int:
        return len(self.points)

    def __iter__(self) -> Iterator[tuple[int, int]]:
        return iter(self.points)

    @property
    def distinct_count(self) -> int:
        return len(set(self.points))

    @property
    def signed_area(self) -> float:
        """Shoelace area; positive when the loop runs clockwise on screen."""
        if len(self.points) < 3:
            return 0.0
        pts = np.asarray(self.points, dtype=np.float64)
        x, y = pts[:, 0], pts[:, 1]
        return float(0.5 * (np.dot(x, np.roll(y, -1)) - np.dot(np.roll(x, -1), y)))

    @property
    def area(self) -> float:
        return abs(self.signed_area)

    @property
    def bounds(self) -> tuple[int, int, int, int]:
        """(min_x, min_y, max_x, max_y)"""
        xs = [p[0] for p in self.points]
        ys = [p[1] for p in self.points]
        return min(xs), min(ys), max(xs), max(ys)


def find_start_cell(mask: AlphaMask) -> tuple[int, int] | None:
    """First foreground cell in row-major order, as (x, y)."""
    flat = mask.cells.ravel()
    idx = int(np.argmax(flat))
    if not flat[idx]:
        return None
    y, x = divmod(idx, mask.width)
    return x, y


def default_step_cap(mask: AlphaMask) -> int:
    # one visit per (cell, heading) state, plus the closing move
    return 4 * mask.width * mask.height + 4


def trace_contour(mask: AlphaMask, max_steps: int | None = None) -> Contour:
    """
    Follow the boundary of the first foreground region in *mask*.

    Raises NoForegroundPixels when the mask is empty or the region is too
    small to enclose anything (fewer than 3 distinct cells).
    """
    start = find_start_cell(mask)
    if start is None:
        raise NoForegroundPixels()

    cap = default_step_cap(mask) if max_steps is None else max_steps
    # pad by one cell so neighbour lookups never leave the grid
    grid = np.pad(mask.cells, 1, constant_values=False).tolist()

    sx, sy = start
    x, y = sx, sy
    heading = _EAST
    first_move = None
    points = [(sx, sy)]
    steps = 0

    while True:
        move = None
        for turn in _TURN_ORDER:
            d = (heading + turn) % 4
            dx, dy = _STEPS[d]
            if grid[y + dy + 1][x + dx + 1]:
                move = d
                break
        if move is None:
            # isolated cell
            break
        if first_move is None:
            first_move = move
        elif (x, y) == (sx, sy) and move == first_move:
            break
        if steps >= cap:
            logger.warning(
                "Boundary walk hit the %d step cap at (%d, %d); contour may be incomplete.",
                cap, x, y,
            )
            break
        dx, dy = _STEPS[move]
        x, y = x + dx, y + dy
        heading = move
        points.append((x, y))
        steps += 1

    if len(points) > 1 and points[-1] == points[0]:
        points.pop()

    contour = Contour(points=tuple(points))
    if contour.distinct_count < 3:
        raise NoForegroundPixels(
            f"boundary walk from {start} found only {contour.distinct_count} cell(s)"
        )

    logger.debug(
        "Traced contour from %s — %d points, %d steps, area=%.1f",
        start, len(contour), steps, contour.area,
    )
    return contour
