"""Validity masks for bottom camera images: usable circle, pole cutout, feathering."""

import logging
from pathlib import Path

import cv2
import numpy as np

from .errors import MissingResourceError
from .io import read_image

logger = logging.getLogger(__name__)

# Pole masks are painted red over the pole; a pixel counts as pole when its
# red channel is high and the other two are low.
POLE_RED_MIN = 128
POLE_OTHER_MAX = 128


def load_pole_mask(mask_dir: str | Path, camera_id: str) -> np.ndarray:
    """Load the pole mask for one camera.

    Looks for {mask_dir}/{camera_id}.png and reads it as 3-channel BGR.

    Args:
        mask_dir: Directory containing pole mask PNGs.
        camera_id: Camera identifier.

    Returns:
        Pole mask (H, W, 3) uint8.

    Raises:
        MissingResourceError: If the mask is absent, unreadable, or has zero
            rows or columns.
    """
    mask_path = Path(mask_dir) / f"{camera_id}.png"
    try:
        mask = read_image(mask_path, cv2.IMREAD_COLOR)
    except MissingResourceError as e:
        raise MissingResourceError(f"Missing or bad pole mask: {mask_path}") from e

    if mask.shape[0] == 0 or mask.shape[1] == 0:
        raise MissingResourceError(f"Missing or bad pole mask: {mask_path}")

    return mask


def pole_pixels(pole_mask: np.ndarray) -> np.ndarray:
    """Boolean map of pixels belonging to the pole.

    Args:
        pole_mask: BGR mask (H, W, 3), or single-channel (H, W) where any
            nonzero value marks the pole.

    Returns:
        Boolean array (H, W), True on the pole.
    """
    if pole_mask.ndim == 2:
        return pole_mask > 0

    b = pole_mask[:, :, 0]
    g = pole_mask[:, :, 1]
    r = pole_mask[:, :, 2]
    return (r >= POLE_RED_MIN) & (g < POLE_OTHER_MAX) & (b < POLE_OTHER_MAX)


def add_alpha_channel(image: np.ndarray) -> np.ndarray:
    """Convert a BGR image to fully opaque BGRA. BGRA input is copied as-is."""
    if image.ndim == 3 and image.shape[2] == 4:
        return image.copy()
    if image.ndim == 2:
        return cv2.cvtColor(image, cv2.COLOR_GRAY2BGRA)
    return cv2.cvtColor(image, cv2.COLOR_BGR2BGRA)


def circle_alpha_cut(
    image: np.ndarray, radius: float, fill_inside: bool = False
) -> np.ndarray:
    """Zero alpha outside a circle centered on the image center (in place).

    Args:
        image: BGRA image (H, W, 4) uint8, modified in place.
        radius: Usable pixels radius.
        fill_inside: Also set alpha to 255 inside the circle, rebuilding the
            alpha channel from the circle alone.

    Returns:
        The same image, for chaining.
    """
    H, W = image.shape[:2]
    cx = (W - 1) / 2.0
    cy = (H - 1) / 2.0
    yy, xx = np.ogrid[:H, :W]
    outside = (xx - cx) ** 2 + (yy - cy) ** 2 > radius**2
    if fill_inside:
        image[:, :, 3] = 255
    image[:, :, 3][outside] = 0
    return image


def cut_pole_mask(image: np.ndarray, pole_mask: np.ndarray) -> np.ndarray:
    """Zero alpha wherever the pole mask marks the pole (in place).

    Raises:
        MissingResourceError: If the mask size differs from the image size.
    """
    if pole_mask.shape[:2] != image.shape[:2]:
        raise MissingResourceError(
            f"Pole mask size {pole_mask.shape[:2]} does not match "
            f"image size {image.shape[:2]}"
        )
    image[:, :, 3][pole_pixels(pole_mask)] = 0
    return image


def feather_alpha_channel(image: np.ndarray, feather_size: int) -> np.ndarray:
    """Soften the alpha boundary over a band of ``feather_size`` pixels.

    The alpha channel is eroded and then box-blurred with the same kernel
    size, so the ramp lies inside the valid region. The result never exceeds
    the original alpha.

    Args:
        image: BGRA image (H, W, 4) uint8.
        feather_size: Width of the feathering band in pixels. 0 disables it.

    Returns:
        New BGRA image with feathered alpha; color channels are untouched.
    """
    result = image.copy()
    if feather_size <= 0:
        return result

    alpha = np.ascontiguousarray(image[:, :, 3])
    kernel = cv2.getStructuringElement(
        cv2.MORPH_ELLIPSE, (feather_size, feather_size)
    )
    eroded = cv2.erode(alpha, kernel)
    blurred = cv2.blur(eroded, (feather_size, feather_size))
    result[:, :, 3] = np.minimum(blurred, alpha)
    return result


def build_masked_image(
    image: np.ndarray,
    usable_radius: float,
    pole_mask: np.ndarray,
    feather_size: int,
    flip180: bool = False,
) -> np.ndarray:
    """Turn a raw camera frame into a validity-tagged BGRA working image.

    Steps: add an opaque alpha channel, cut alpha outside the usable circle,
    cut the pole, feather the alpha boundary. Pole masks are drawn in the raw
    camera frame, so an inverted camera is rotated 180 degrees only after
    masking.

    Args:
        image: Raw BGR image (H, W, 3) uint8.
        usable_radius: Usable pixels radius from calibration.
        pole_mask: Pole mask for this camera, same (H, W) as the image.
        feather_size: Alpha feathering band width in pixels.
        flip180: Rotate the working image 180 degrees.

    Returns:
        BGRA working image (H, W, 4) uint8.
    """
    masked = add_alpha_channel(image)
    circle_alpha_cut(masked, usable_radius)
    cut_pole_mask(masked, pole_mask)
    masked = feather_alpha_channel(masked, feather_size)

    if flip180:
        masked = cv2.flip(masked, -1)

    return masked


__all__ = [
    "load_pole_mask",
    "pole_pixels",
    "add_alpha_channel",
    "circle_alpha_cut",
    "cut_pole_mask",
    "feather_alpha_channel",
    "build_masked_image",
]
