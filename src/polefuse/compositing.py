"""Alpha compositing of the primary and color-matched secondary bottom images."""

import logging

import numpy as np

from .masks import circle_alpha_cut, feather_alpha_channel

logger = logging.getLogger(__name__)


def blend_images(primary: np.ndarray, secondary: np.ndarray) -> np.ndarray:
    """Fill the primary's masked-out pixels from the secondary.

    Per pixel, with a1 and a2 the primary and secondary alpha in [0, 1]:

    - a1 == 1: primary pixel unchanged.
    - a1 < 1 and a2 == 0: primary pixel unchanged.
    - a1 < 1 and a2 > 0: color = a1 * primary + (1 - a1) * secondary, alpha
      fully opaque.

    The secondary's own alpha only gates whether it contributes, not how much.

    Args:
        primary: Primary BGRA image (H, W, 4) uint8.
        secondary: Aligned, color-adjusted secondary BGRA image (H, W, 4) uint8.

    Returns:
        Blended BGRA image (H, W, 4) uint8.

    Raises:
        ValueError: If the images differ in shape.
    """
    if primary.shape != secondary.shape:
        raise ValueError(
            f"Cannot blend images of different shape: "
            f"{primary.shape} vs {secondary.shape}"
        )

    H, W = primary.shape[:2]
    p = primary.reshape(H * W, 4)
    s = secondary.reshape(H * W, 4)

    fill = (p[:, 3] < 255) & (s[:, 3] > 0)

    result = p.copy()
    a1 = p[fill, 3:4].astype(np.float32) / 255.0  # (N, 1)
    mixed = a1 * p[fill, :3] + (1.0 - a1) * s[fill, :3]
    result[fill, :3] = np.clip(np.round(mixed), 0, 255).astype(np.uint8)
    result[fill, 3] = 255

    logger.debug(
        "Filled %d of %d primary pixels from secondary", int(fill.sum()), H * W
    )
    return result.reshape(H, W, 4)


def composite(
    primary: np.ndarray,
    secondary: np.ndarray,
    usable_radius: float,
    feather_size: int,
) -> np.ndarray:
    """Blend the two views, then rebuild the alpha channel.

    The blend can leave a hole where both cameras' pole masks overlap near
    the image center. Alpha is reset to the primary's usable circle and
    feathered once, which closes the hole. Colors are not touched.

    Args:
        primary: Primary BGRA image (H, W, 4) uint8.
        secondary: Aligned, color-adjusted secondary BGRA image (H, W, 4) uint8.
        usable_radius: Primary camera's usable pixels radius.
        feather_size: Alpha feathering band width in pixels.

    Returns:
        Combined BGRA image (H, W, 4) uint8.
    """
    combined = blend_images(primary, secondary)
    circle_alpha_cut(combined, usable_radius, fill_inside=True)
    return feather_alpha_channel(combined, feather_size)


__all__ = ["blend_images", "composite"]
