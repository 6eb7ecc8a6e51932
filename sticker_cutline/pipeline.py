from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from typing import Literal

from sticker_cutline.config import TraceSettings
from sticker_cutline.contour_tracer import Contour, trace_contour
from sticker_cutline.errors import NoForegroundPixels, OffsetComputationFailure
from sticker_cutline.offset import OffsetPolygon, offset_contour
from sticker_cutline.path_emitter import CutPath, Transform, emit_path
from sticker_cutline.raster import RasterImage, build_mask

logger = logging.getLogger(__name__)

TraceStatus = Literal["ok", "fallback_raw_contour", "no_silhouette"]

NO_SILHOUETTE_MESSAGE = "Could not detect a silhouette in this image."


@dataclass(frozen=True)
class TraceResult:
    status: TraceStatus
    cut_path: CutPath
    contour: Contour | None = None
    offset_polygon: OffsetPolygon | None = None
    message: str = ""
    duration_ms: float = 0.0

    @property
    def has_cut_path(self) -> bool:
        return not self.cut_path.is_empty


def trace_sticker(
    image: RasterImage,
    settings: TraceSettings | None = None,
    transform: Transform | None = None,
) -> TraceResult:
    """
    Image -> mask -> contour -> offset polygon -> cut path.

    Never raises for the two expected trace outcomes: an image without a
    silhouette yields status "no_silhouette" and an empty path; an offset
    failure falls back to the raw contour with status "fallback_raw_contour".
    """
    settings = settings or TraceSettings()
    start = time.perf_counter()

    def _elapsed() -> float:
        return (time.perf_counter() - start) * 1000.0

    mask = build_mask(image, threshold=settings.threshold, min_object_px=settings.min_object_px)
    try:
        contour = trace_contour(mask, max_steps=settings.max_steps)
    except NoForegroundPixels as e:
        logger.info("No silhouette in %dx%d image: %s", image.width, image.height, e.reason)
        return TraceResult(
            status="no_silhouette",
            cut_path=CutPath(),
            message=NO_SILHOUETTE_MESSAGE,
            duration_ms=_elapsed(),
        )

    try:
        polygon = offset_contour(
            contour,
            distance=settings.offset,
            scale=settings.scale,
            quad_segs=settings.quad_segs,
            simplify_tolerance=settings.simplify,
            max_segment_length=settings.max_segment,
        )
    except OffsetComputationFailure as e:
        logger.warning("Offset failed, using raw contour as cut line: %s", e.reason)
        return TraceResult(
            status="fallback_raw_contour",
            cut_path=emit_path(contour, transform),
            contour=contour,
            message=str(e),
            duration_ms=_elapsed(),
        )

    result = TraceResult(
        status="ok",
        cut_path=emit_path(polygon, transform),
        contour=contour,
        offset_polygon=polygon,
        duration_ms=_elapsed(),
    )
    logger.info(
        "Traced %dx%d image — contour=%d pts, cut line=%d pts, offset=%.1f px, %.1f ms",
        image.width, image.height, len(contour), result.cut_path.point_count,
        settings.offset, result.duration_ms,
    )
    return result
