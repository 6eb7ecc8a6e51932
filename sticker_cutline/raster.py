"""
raster.py
~~~~~~~~~
Decoded raster input and the alpha mask built from it.

The pipeline never decodes files itself: callers hand over pixels, either as
a NumPy array or as an already-opened PIL image.  Only the alpha channel is
read.  Images without one (RGB, L) are treated as fully opaque.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

import numpy as np
from PIL import Image
from skimage import morphology

logger = logging.getLogger(__name__)


@dataclass(frozen=True, eq=False)
class RasterImage:
    """Read-only view of an image's alpha plane (H×W, uint8)."""

    alpha: np.ndarray

    def __post_init__(self) -> None:
        if self.alpha.ndim != 2:
            raise ValueError(f"alpha plane must be 2-D, got shape {self.alpha.shape}")
        alpha = np.ascontiguousarray(self.alpha, dtype=np.uint8)
        alpha.setflags(write=False)
        object.__setattr__(self, "alpha", alpha)

    @property
    def width(self) -> int:
        return int(self.alpha.shape[1])

    @property
    def height(self) -> int:
        return int(self.alpha.shape[0])

    @classmethod
    def from_array(cls, pixels: np.ndarray) -> "RasterImage":
        """
        Accepts H×W (alpha only), H×W×2 (LA), H×W×4 (RGBA) or H×W×3 (RGB,
        treated as opaque).
        """
        arr = np.asarray(pixels)
        if arr.ndim == 2:
            return cls(alpha=arr)
        if arr.ndim == 3 and arr.shape[2] in (2, 4):
            return cls(alpha=arr[:, :, -1])
        if arr.ndim == 3 and arr.shape[2] == 3:
            return cls(alpha=np.full(arr.shape[:2], 255, dtype=np.uint8))
        raise ValueError(f"Unsupported pixel array shape {arr.shape}")

    @classmethod
    def from_pil(cls, img: Image.Image) -> "RasterImage":
        if "A" in img.getbands() or "transparency" in img.info:
            alpha = np.array(img.convert("RGBA").split()[-1])
        else:
            alpha = np.full((img.height, img.width), 255, dtype=np.uint8)
        return cls(alpha=alpha)


@dataclass(frozen=True, eq=False)
class AlphaMask:
    """H×W boolean grid, True = foreground."""

    cells: np.ndarray

    @property
    def width(self) -> int:
        return int(self.cells.shape[1])

    @property
    def height(self) -> int:
        return int(self.cells.shape[0])

    @property
    def foreground_count(self) -> int:
        return int(np.count_nonzero(self.cells))

    def __getitem__(self, xy: tuple[int, int]) -> bool:
        x, y = xy
        if 0 <= x < self.width and 0 <= y < self.height:
            return bool(self.cells[y, x])
        return False


def build_mask(image: RasterImage, threshold: int = 10, min_object_px: int = 0) -> AlphaMask:
    """
    Foreground = alpha strictly above *threshold*.

    A low threshold (8-10) keeps nearly transparent antialiased fringes out of
    the silhouette.  *min_object_px* > 0 removes connected specks of at most
    that many pixels, as done for background-removal masks.
    """
    if not 0 <= threshold <= 255:
        raise ValueError(f"threshold must be in [0, 255], got {threshold}")

    cells = image.alpha > threshold
    if min_object_px > 0 and cells.any():
        cells = morphology.remove_small_objects(cells, max_size=min_object_px, connectivity=1)

    mask = AlphaMask(cells=cells)
    logger.debug(
        "Alpha mask %dx%d — threshold=%d foreground=%d px",
        mask.width, mask.height, threshold, mask.foreground_count,
    )
    return mask
