import io
import logging
import sys
import time

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s %(levelname)s %(name)s %(message)s",
    datefmt="%Y-%m-%dT%H:%M:%S",
    stream=sys.stdout,
)

from fastapi import FastAPI, UploadFile, File, Form, HTTPException, Request
from fastapi.responses import JSONResponse, Response
from prometheus_client import Counter, Histogram, generate_latest, CONTENT_TYPE_LATEST

from PIL import Image as _PILImage, UnidentifiedImageError
from sticker_cutline.config import settings_from_env
from sticker_cutline.path_emitter import render_cut_svg
from sticker_cutline.raster import RasterImage
from sticker_cutline.registry import CutPathRegistry

_log = logging.getLogger(__name__)

BASE_SETTINGS = settings_from_env()

_log.info(
    "Starting Sticker Cut Line service — threshold=%d offset=%.1f scale=%d",
    BASE_SETTINGS.threshold,
    BASE_SETTINGS.offset,
    BASE_SETTINGS.scale,
)

app = FastAPI(title="Sticker Cut Line", version="0.1.0")

REGISTRY = CutPathRegistry()

# Prometheus metrics
REQUEST_COUNT = Counter(
    "http_requests_total",
    "Total HTTP requests",
    ["method", "path", "status"],
)
REQUEST_LATENCY = Histogram(
    "http_request_duration_seconds",
    "HTTP request latency",
    ["method", "path", "status"],
    buckets=(0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1, 2, 4, 8, 16),
)
TRACE_OUTCOMES = Counter(
    "cutline_trace_total",
    "Trace requests by outcome",
    ["status"],
)
TRACE_LATENCY = Histogram(
    "cutline_trace_duration_seconds",
    "Time spent in the trace pipeline",
    buckets=(0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1, 2, 4, 8),
)
STALE_TRACES = Counter(
    "cutline_trace_stale_total",
    "Trace results discarded because a newer request superseded them",
)


@app.middleware("http")
async def _metrics_middleware(request: Request, call_next):
    # Skip metrics endpoint itself to avoid recursion.
    if request.url.path == "/metrics":
        return await call_next(request)
    start = time.perf_counter()
    status_code = 500
    try:
        response = await call_next(request)
        status_code = response.status_code
        return response
    finally:
        elapsed = time.perf_counter() - start
        # route template keeps sticker ids out of the label set
        route = request.scope.get("route")
        path = getattr(route, "path", request.url.path)
        method = request.method
        REQUEST_COUNT.labels(method=method, path=path, status=status_code).inc()
        REQUEST_LATENCY.labels(method=method, path=path, status=status_code).observe(elapsed)


@app.get("/metrics")
def metrics():
    """Prometheus metrics endpoint."""
    return Response(generate_latest(), media_type=CONTENT_TYPE_LATEST)


@app.exception_handler(ValueError)
async def _value_error_handler(request: Request, exc: ValueError):
    return JSONResponse(status_code=400, content={"detail": str(exc)})

@app.exception_handler(Exception)
async def _unhandled_error_handler(request: Request, exc: Exception):
    """Return the real error message to the client while logging the stack."""
    logging.exception("Unhandled error during %s %s", request.method, request.url, exc_info=exc)
    detail = str(exc).strip() or exc.__class__.__name__
    return JSONResponse(status_code=500, content={"detail": detail})

@app.get("/healthz", include_in_schema=False)
def healthz():
    return Response(content="OK", media_type="text/plain")


def _decode_upload(filename: str, content: bytes) -> _PILImage.Image:
    try:
        img = _PILImage.open(io.BytesIO(content))
        img.load()
    except (UnidentifiedImageError, OSError):
        raise HTTPException(status_code=400, detail=f"Could not decode {filename!r} as an image") from None
    _log.info(
        "Image upload — file=%r size=%.1fKB dimensions=%dx%d mode=%s",
        filename, len(content) / 1024, img.width, img.height, img.mode,
    )
    return img


def _cut_path_payload(sticker_id: str, result) -> dict:
    return {
        "sticker_id": sticker_id,
        "status": result.status,
        "message": result.message,
        "path": result.cut_path.to_svg_path_data(),
        "subpaths": result.cut_path.to_dict()["subpaths"],
        "contour_points": len(result.contour) if result.contour is not None else 0,
        "cut_points": result.cut_path.point_count,
    }


@app.post("/stickers/{sticker_id}/trace")
async def trace_sticker_image(
    sticker_id: str,
    file: UploadFile = File(...),
    threshold: int | None = Form(None),
    offset: float | None = Form(None),
    min_object_px: int | None = Form(None),
    simplify: float | None = Form(None),
):
    filename = file.filename or ""
    if not filename.lower().endswith(".png"):
        raise HTTPException(status_code=400, detail="Upload a PNG image with transparency")

    settings = BASE_SETTINGS.with_overrides(
        threshold=threshold,
        offset=offset,
        min_object_px=min_object_px,
        simplify=simplify,
    )
    content = await file.read()
    img = _decode_upload(filename, content)
    raster = RasterImage.from_pil(img)

    outcome = await REGISTRY.retrace(sticker_id, raster, settings, source=content)
    result = outcome.result
    TRACE_OUTCOMES.labels(status=result.status).inc()
    TRACE_LATENCY.observe(result.duration_ms / 1000.0)
    if not outcome.applied:
        STALE_TRACES.inc()

    payload = _cut_path_payload(sticker_id, result)
    payload["applied"] = outcome.applied
    payload["token"] = outcome.token
    if outcome.applied and result.has_cut_path:
        payload["svg"] = f"/stickers/{sticker_id}/export.svg"
    return payload


@app.get("/stickers/{sticker_id}/cut-path")
def get_cut_path(sticker_id: str):
    result = REGISTRY.get(sticker_id)
    if result is None:
        raise HTTPException(status_code=404, detail="No cut path for this sticker. Trace it first.")
    return _cut_path_payload(sticker_id, result)


@app.get("/stickers/{sticker_id}/export.svg")
def export_svg(sticker_id: str, include_image: bool = True):
    stored = REGISTRY.entry(sticker_id)
    if stored is None or stored.source is None:
        raise HTTPException(status_code=404, detail="No cut path for this sticker. Trace it first.")
    with _PILImage.open(io.BytesIO(stored.source)) as img:
        svg = render_cut_svg(
            stored.result.cut_path,
            img.width,
            img.height,
            image=img if include_image else None,
        )
    return Response(content=svg, media_type="image/svg+xml")


@app.delete("/stickers/{sticker_id}")
def delete_sticker(sticker_id: str):
    had_path = REGISTRY.discard(sticker_id)
    return {"sticker_id": sticker_id, "discarded": had_path}
