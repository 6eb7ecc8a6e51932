from __future__ import annotations

import base64
import io
import math
from dataclasses import dataclass, field
from pathlib import Path
from typing import Iterable, Iterator, Literal, Sequence

import numpy as np
from PIL import Image

PathOp = Literal["M", "L", "Z"]


@dataclass(frozen=True)
class Transform:
    """
    2D affine map, same coefficient order as shapely.affinity.affine_transform:

        x' = a*x + b*y + xoff
        y' = d*x + e*y + yoff
    """

    a: float = 1.0
    b: float = 0.0
    d: float = 0.0
    e: float = 1.0
    xoff: float = 0.0
    yoff: float = 0.0

    @classmethod
    def identity(cls) -> "Transform":
        return cls()

    @classmethod
    def translate(cls, dx: float, dy: float) -> "Transform":
        return cls(xoff=dx, yoff=dy)

    @classmethod
    def scaling(cls, sx: float, sy: float | None = None) -> "Transform":
        return cls(a=sx, e=sx if sy is None else sy)

    @classmethod
    def rotation(cls, degrees: float, origin: tuple[float, float] = (0.0, 0.0)) -> "Transform":
        """Rotate by *degrees* about *origin* (positive = clockwise on a y-down screen)."""
        t = math.radians(degrees)
        c, s = math.cos(t), math.sin(t)
        ox, oy = origin
        return cls(a=c, b=-s, d=s, e=c, xoff=ox - c * ox + s * oy, yoff=oy - s * ox - c * oy)

    def then(self, other: "Transform") -> "Transform":
        """Apply self first, then *other*."""
        return Transform(
            a=other.a * self.a + other.b * self.d,
            b=other.a * self.b + other.b * self.e,
            d=other.d * self.a + other.e * self.d,
            e=other.d * self.b + other.e * self.e,
            xoff=other.a * self.xoff + other.b * self.yoff + other.xoff,
            yoff=other.d * self.xoff + other.e * self.yoff + other.yoff,
        )

    @property
    def matrix(self) -> list[float]:
        return [self.a, self.b, self.d, self.e, self.xoff, self.yoff]

    def apply(self, points: np.ndarray) -> np.ndarray:
        x, y = points[:, 0], points[:, 1]
        return np.column_stack([
            self.a * x + self.b * y + self.xoff,
            self.d * x + self.e * y + self.yoff,
        ])


@dataclass(frozen=True)
class PathCommand:
    op: PathOp
    x: float | None = None
    y: float | None = None


@dataclass(frozen=True)
class CutPath:
    """Closed straight-line subpaths in the caller's target space."""

    subpaths: tuple[tuple[tuple[float, float], ...], ...] = field(default_factory=tuple)

    @property
    def is_empty(self) -> bool:
        return not any(self.subpaths)

    @property
    def point_count(self) -> int:
        return sum(len(s) for s in self.subpaths)

    def commands(self) -> Iterator[PathCommand]:
        for sub in self.subpaths:
            if not sub:
                continue
            x0, y0 = sub[0]
            yield PathCommand("M", x0, y0)
            for x, y in sub[1:]:
                yield PathCommand("L", x, y)
            yield PathCommand("Z")

    def segments(self) -> Iterator[tuple[tuple[float, float], tuple[float, float]]]:
        """Every edge, closing edge included."""
        for sub in self.subpaths:
            n = len(sub)
            for i in range(n if n > 1 else 0):
                yield sub[i], sub[(i + 1) % n]

    def to_svg_path_data(self, precision: int = 3) -> str:
        parts = []
        for cmd in self.commands():
            if cmd.op == "Z":
                parts.append("Z")
            else:
                parts.append(f"{cmd.op} {cmd.x:.{precision}f},{cmd.y:.{precision}f}")
        return " ".join(parts)

    def to_dict(self) -> dict:
        return {"subpaths": [[list(p) for p in sub] for sub in self.subpaths]}


def emit_path(
    polygon: Iterable[Sequence[float]] | None,
    transform: Transform | None = None,
) -> CutPath:
    """
    Turn a contour or offset polygon into one closed subpath, mapped through
    *transform*.  Empty input gives an empty CutPath.
    """
    if polygon is None:
        return CutPath()
    pts = np.asarray([tuple(p) for p in polygon], dtype=np.float64)
    if len(pts) == 0:
        return CutPath()
    if transform is not None:
        pts = transform.apply(pts)
    sub = tuple((float(x), float(y)) for x, y in pts)
    return CutPath(subpaths=(sub,))


def _png_data_uri(image: Image.Image) -> str:
    buf = io.BytesIO()
    image.save(buf, format="PNG")
    return "data:image/png;base64," + base64.b64encode(buf.getvalue()).decode("ascii")


def render_cut_svg(
    cut_path: CutPath,
    width: int,
    height: int,
    image: Image.Image | None = None,
    stroke: str = "#ff00ff",
    stroke_width: float = 1.0,
    opacity: float = 0.6,
) -> str:
    """
    SVG document with the source image (if given) and the cut line on top.

    The same markup serves as the on-canvas preview and as the exported
    vector file; the cut line is a separate <path id="cut-line"> so
    downstream tools can pick it out.
    """
    image_el = ""
    if image is not None:
        image_el = (
            f'  <image x="0" y="0" width="{width}" height="{height}" '
            f'href="{_png_data_uri(image)}"/>\n'
        )
    path_el = ""
    if not cut_path.is_empty:
        path_el = (
            f'  <path id="cut-line" d="{cut_path.to_svg_path_data()}" fill="none" '
            f'stroke="{stroke}" stroke-width="{stroke_width}" stroke-opacity="{opacity}"/>\n'
        )
    return f'''<svg xmlns="http://www.w3.org/2000/svg" width="{width}" height="{height}" viewBox="0 0 {width} {height}">
{image_el}{path_el}</svg>
'''


def write_cut_svg(out_path: str, cut_path: CutPath, width: int, height: int, **kwargs) -> str:
    out = Path(out_path)
    out.parent.mkdir(parents=True, exist_ok=True)
    out.write_text(render_cut_svg(cut_path, width, height, **kwargs), encoding="utf-8")
    return str(out)
