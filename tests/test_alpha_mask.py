import numpy as np
import pytest
from PIL import Image

from sticker_cutline.raster import RasterImage, build_mask


def test_mask_is_strictly_above_threshold() -> None:
    alpha = np.array([[0, 9, 10], [11, 200, 255]], dtype=np.uint8)
    mask = build_mask(RasterImage(alpha=alpha), threshold=10)

    assert mask.cells.tolist() == [[False, False, False], [True, True, True]]
    assert mask.foreground_count == 3


def test_all_background_mask_is_valid() -> None:
    mask = build_mask(RasterImage(alpha=np.full((50, 50), 10, dtype=np.uint8)), threshold=10)
    assert mask.foreground_count == 0
    assert (mask.width, mask.height) == (50, 50)


def test_threshold_out_of_range() -> None:
    image = RasterImage(alpha=np.zeros((4, 4), dtype=np.uint8))
    with pytest.raises(ValueError):
        build_mask(image, threshold=256)
    with pytest.raises(ValueError):
        build_mask(image, threshold=-1)


def test_min_object_px_removes_specks() -> None:
    alpha = np.zeros((40, 40), dtype=np.uint8)
    alpha[5:25, 5:25] = 255
    alpha[35, 35] = 255  # one-pixel speck
    image = RasterImage(alpha=alpha)

    assert build_mask(image, threshold=10).cells[35, 35]
    cleaned = build_mask(image, threshold=10, min_object_px=4)
    assert not cleaned.cells[35, 35]
    assert cleaned.foreground_count == 400


def test_from_array_reads_alpha_channel() -> None:
    rgba = np.zeros((3, 5, 4), dtype=np.uint8)
    rgba[1, 2, 3] = 128
    image = RasterImage.from_array(rgba)

    assert (image.width, image.height) == (5, 3)
    assert image.alpha[1, 2] == 128
    assert image.alpha.sum() == 128


def test_from_array_rgb_is_opaque() -> None:
    image = RasterImage.from_array(np.zeros((4, 6, 3), dtype=np.uint8))
    assert (image.alpha == 255).all()


def test_from_array_rejects_bad_shape() -> None:
    with pytest.raises(ValueError):
        RasterImage.from_array(np.zeros((2, 2, 5), dtype=np.uint8))


def test_alpha_plane_is_read_only() -> None:
    image = RasterImage(alpha=np.zeros((2, 2), dtype=np.uint8))
    with pytest.raises(ValueError):
        image.alpha[0, 0] = 1


def test_from_pil_modes() -> None:
    la = Image.new("LA", (8, 4), color=(0, 0))
    la.putpixel((3, 2), (0, 200))
    assert RasterImage.from_pil(la).alpha[2, 3] == 200

    opaque = Image.new("L", (8, 4), color=0)
    assert (RasterImage.from_pil(opaque).alpha == 255).all()

    pal = Image.new("P", (4, 4), color=0)
    pal.info["transparency"] = 0
    assert (RasterImage.from_pil(pal).alpha == 0).all()


def test_mask_indexing_outside_grid_is_background() -> None:
    mask = build_mask(RasterImage(alpha=np.full((3, 3), 255, dtype=np.uint8)))
    assert mask[0, 0]
    assert not mask[-1, 0]
    assert not mask[3, 1]
