"""Tests for validity mask construction."""

from pathlib import Path

import cv2
import numpy as np
import pytest

from polefuse.errors import MissingResourceError
from polefuse.masks import (
    add_alpha_channel,
    build_masked_image,
    circle_alpha_cut,
    cut_pole_mask,
    feather_alpha_channel,
    load_pole_mask,
    pole_pixels,
)


def test_add_alpha_channel_opaque(make_scene):
    """Test BGR input gains a fully opaque alpha channel."""
    image = make_scene(16)

    result = add_alpha_channel(image)

    assert result.shape == (16, 16, 4)
    assert np.all(result[:, :, 3] == 255)
    np.testing.assert_array_equal(result[:, :, :3], image)


def test_add_alpha_channel_keeps_existing_alpha():
    """Test BGRA input is copied unchanged."""
    image = np.zeros((4, 4, 4), dtype=np.uint8)
    image[:, :, 3] = 10

    result = add_alpha_channel(image)

    np.testing.assert_array_equal(result, image)
    assert result is not image


def test_circle_alpha_cut():
    """Test alpha is zeroed strictly outside the usable radius."""
    image = add_alpha_channel(np.zeros((11, 11, 3), dtype=np.uint8))

    circle_alpha_cut(image, 3.0)

    alpha = image[:, :, 3]
    assert alpha[5, 5] == 255
    assert alpha[5, 8] == 255  # distance exactly 3
    assert alpha[5, 9] == 0
    assert alpha[0, 0] == 0
    assert alpha[10, 10] == 0


def test_circle_alpha_cut_fill_inside():
    """Test fill_inside rebuilds alpha from the circle, reopening interior holes."""
    image = add_alpha_channel(np.zeros((11, 11, 3), dtype=np.uint8))
    image[4:7, 4:7, 3] = 0
    image[5, 2, 3] = 90

    circle_alpha_cut(image, 3.0, fill_inside=True)

    alpha = image[:, :, 3]
    assert np.all(alpha[4:7, 4:7] == 255)
    assert alpha[5, 2] == 255
    assert alpha[0, 0] == 0
    assert alpha[5, 9] == 0


def test_pole_pixels_red_only():
    """Test only red mask pixels count as pole."""
    mask = np.zeros((2, 3, 3), dtype=np.uint8)
    mask[0, 0] = (0, 0, 255)  # red
    mask[0, 1] = (255, 255, 255)  # white
    mask[0, 2] = (0, 0, 200)  # dark red

    result = pole_pixels(mask)

    assert result.tolist() == [[True, False, True], [False, False, False]]


def test_pole_pixels_single_channel():
    """Test nonzero pixels of a grayscale mask count as pole."""
    mask = np.array([[0, 255], [1, 0]], dtype=np.uint8)

    assert pole_pixels(mask).tolist() == [[False, True], [True, False]]


def test_cut_pole_mask(make_scene, make_pole_mask):
    """Test alpha is zeroed on the pole and kept elsewhere."""
    image = add_alpha_channel(make_scene(16))
    mask = make_pole_mask(16, (4, 8, 4, 8))

    cut_pole_mask(image, mask)

    assert np.all(image[4:8, 4:8, 3] == 0)
    assert image[0, 0, 3] == 255
    assert image[12, 12, 3] == 255


def test_cut_pole_mask_size_mismatch(make_scene, make_pole_mask):
    """Test a mask of different size is rejected."""
    image = add_alpha_channel(make_scene(16))

    with pytest.raises(MissingResourceError, match="does not match"):
        cut_pole_mask(image, make_pole_mask(8, None))


def test_feather_disabled_is_copy(make_scene):
    """Test feather_size 0 leaves the image unchanged."""
    image = add_alpha_channel(make_scene(16))
    image[:, :8, 3] = 0

    result = feather_alpha_channel(image, 0)

    np.testing.assert_array_equal(result, image)
    assert result is not image


def test_feather_opaque_image_unchanged(make_scene):
    """Test an image with no mask boundary stays fully opaque."""
    image = add_alpha_channel(make_scene(32))

    result = feather_alpha_channel(image, 10)

    assert np.all(result[:, :, 3] == 255)


def test_feather_ramps_inside_valid_region():
    """Test feathering softens the edge without growing the valid region."""
    image = add_alpha_channel(np.full((20, 100, 3), 90, dtype=np.uint8))
    image[:, 50:, 3] = 0

    result = feather_alpha_channel(image, 10)
    alpha = result[:, :, 3]

    assert np.all(alpha <= image[:, :, 3])
    assert np.all(alpha[:, 50:] == 0)
    assert np.all(alpha[:, 10] == 255)
    assert 0 < alpha[10, 49] < 255
    # Non-increasing toward the cut
    row = alpha[10, 30:50].astype(int)
    assert np.all(np.diff(row) <= 0)
    np.testing.assert_array_equal(result[:, :, :3], image[:, :, :3])


def test_build_masked_image(make_scene, make_pole_mask):
    """Test usable circle and pole are both cut from alpha."""
    image = make_scene(32)
    mask = make_pole_mask(32, (14, 18, 14, 18))

    result = build_masked_image(image, 12.0, mask, 0)

    assert result.shape == (32, 32, 4)
    assert np.all(result[14:18, 14:18, 3] == 0)
    assert result[0, 0, 3] == 0
    assert result[10, 10, 3] == 255
    np.testing.assert_array_equal(result[:, :, :3], image)


def test_build_masked_image_flip180(make_scene, make_pole_mask):
    """Test an inverted camera's working image is rotated after masking."""
    image = make_scene(32)
    mask = make_pole_mask(32, (0, 4, 0, 4))  # pole in raw top-left corner

    result = build_masked_image(image, 100.0, mask, 0, flip180=True)

    np.testing.assert_array_equal(result[:, :, :3], cv2.flip(image, -1))
    assert np.all(result[28:, 28:, 3] == 0)
    assert np.all(result[:4, :4, 3] == 255)


def test_load_pole_mask(tmp_path: Path, make_pole_mask):
    """Test a mask PNG loads as 3-channel."""
    cv2.imwrite(str(tmp_path / "cam0.png"), make_pole_mask(16, (0, 4, 0, 4)))

    mask = load_pole_mask(tmp_path, "cam0")

    assert mask.shape == (16, 16, 3)
    assert pole_pixels(mask)[:4, :4].all()


def test_load_pole_mask_missing(tmp_path: Path):
    """Test a missing mask raises MissingResourceError."""
    with pytest.raises(MissingResourceError, match="pole mask"):
        load_pole_mask(tmp_path, "cam0")


def test_load_pole_mask_empty_file(tmp_path: Path):
    """Test a zero-byte mask raises MissingResourceError."""
    (tmp_path / "cam0.png").write_bytes(b"")

    with pytest.raises(MissingResourceError, match="pole mask"):
        load_pole_mask(tmp_path, "cam0")
