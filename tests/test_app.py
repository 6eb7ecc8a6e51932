import io

import numpy as np
import pytest
from fastapi.testclient import TestClient
from PIL import Image

import app.main as main
from app.main import app


def _png_bytes(alpha: np.ndarray) -> bytes:
    h, w = alpha.shape
    rgba = np.zeros((h, w, 4), dtype=np.uint8)
    rgba[..., 0] = 200
    rgba[..., 3] = alpha
    buf = io.BytesIO()
    Image.fromarray(rgba).save(buf, format="PNG")
    return buf.getvalue()


def _disc_png() -> bytes:
    yy, xx = np.mgrid[0:64, 0:64]
    alpha = np.where((xx - 32) ** 2 + (yy - 32) ** 2 <= 400, 255, 0).astype(np.uint8)
    return _png_bytes(alpha)


@pytest.fixture()
def client() -> TestClient:
    return TestClient(app)


def test_healthz(client: TestClient) -> None:
    r = client.get("/healthz")
    assert r.status_code == 200
    assert r.text == "OK"


def test_trace_then_fetch_export_and_delete(client: TestClient) -> None:
    r = client.post(
        "/stickers/disc/trace",
        files={"file": ("disc.png", _disc_png(), "image/png")},
        data={"offset": "6", "threshold": "10"},
    )
    assert r.status_code == 200
    body = r.json()
    assert body["status"] == "ok"
    assert body["applied"] is True
    assert body["cut_points"] > 0
    assert body["path"].startswith("M ")
    assert body["path"].endswith("Z")
    assert body["svg"] == "/stickers/disc/export.svg"

    r = client.get("/stickers/disc/cut-path")
    assert r.status_code == 200
    assert r.json()["path"] == body["path"]

    r = client.get("/stickers/disc/export.svg")
    assert r.status_code == 200
    assert r.headers["content-type"].startswith("image/svg+xml")
    assert 'id="cut-line"' in r.text
    assert "data:image/png;base64," in r.text

    r = client.delete("/stickers/disc")
    assert r.json()["discarded"] is True
    assert client.get("/stickers/disc/cut-path").status_code == 404
    assert client.get("/stickers/disc/export.svg").status_code == 404


def test_transparent_upload_reports_no_silhouette(client: TestClient) -> None:
    r = client.post(
        "/stickers/blank/trace",
        files={"file": ("blank.png", _png_bytes(np.zeros((50, 50), dtype=np.uint8)), "image/png")},
    )
    assert r.status_code == 200
    body = r.json()
    assert body["status"] == "no_silhouette"
    assert body["cut_points"] == 0
    assert "svg" not in body
    assert client.get("/stickers/blank/cut-path").status_code == 404


def test_rejects_non_png_filename(client: TestClient) -> None:
    r = client.post(
        "/stickers/x/trace",
        files={"file": ("art.jpg", b"not really", "image/jpeg")},
    )
    assert r.status_code == 400


def test_rejects_undecodable_png(client: TestClient) -> None:
    r = client.post(
        "/stickers/x/trace",
        files={"file": ("art.png", b"garbage", "image/png")},
    )
    assert r.status_code == 400
    assert "decode" in r.json()["detail"]


def test_bad_threshold_is_a_client_error(client: TestClient) -> None:
    r = client.post(
        "/stickers/x/trace",
        files={"file": ("disc.png", _disc_png(), "image/png")},
        data={"threshold": "300"},
    )
    assert r.status_code == 400
    assert "threshold" in r.json()["detail"]


def test_metrics_count_trace_outcomes(client: TestClient) -> None:
    client.post(
        "/stickers/m/trace",
        files={"file": ("disc.png", _disc_png(), "image/png")},
    )
    r = client.get("/metrics")
    assert r.status_code == 200
    assert 'cutline_trace_total{status="ok"}' in r.text


def test_export_pairs_cut_path_with_the_image_it_came_from(client: TestClient, monkeypatch) -> None:
    exports = []
    original_apply = main.REGISTRY.apply

    def _apply(sticker_id, token, result, source=None):
        applied = original_apply(sticker_id, token, result, source=source)
        exports.append(main.export_svg(sticker_id).body.decode("utf-8"))
        return applied

    monkeypatch.setattr(main.REGISTRY, "apply", _apply)

    small = client.post(
        "/stickers/swap/trace",
        files={"file": ("small.png", _png_bytes(np.full((20, 20), 255, dtype=np.uint8)), "image/png")},
    ).json()
    large = client.post(
        "/stickers/swap/trace",
        files={"file": ("large.png", _png_bytes(np.full((200, 200), 255, dtype=np.uint8)), "image/png")},
    ).json()

    assert 'width="20"' in exports[0]
    assert small["path"] in exports[0]
    assert 'width="200"' in exports[1]
    assert large["path"] in exports[1]
    assert small["path"] not in exports[1]
    client.delete("/stickers/swap")


def test_upload_without_filename_is_a_client_error(client: TestClient) -> None:
    r = client.post(
        "/stickers/x/trace",
        files={"file": ("", _disc_png(), "image/png")},
    )
    assert r.status_code in (400, 422)
