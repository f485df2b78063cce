"""Per-channel color matching between the aligned bottom images."""

import logging
from dataclasses import dataclass

import numpy as np

logger = logging.getLogger(__name__)

# Minimum paired samples for a least-squares fit; fewer gives identity
MIN_SAMPLES = 16


@dataclass(frozen=True)
class ColorAdjustmentModel:
    """Affine per-channel color correction: ``out = scale * in + bias``.

    Attributes:
        scale: Per-channel gain, shape (3,), BGR order.
        bias: Per-channel offset in 0-255 units, shape (3,), BGR order.
        num_samples: Number of paired pixels the model was fit on.
    """

    scale: np.ndarray
    bias: np.ndarray
    num_samples: int = 0

    @classmethod
    def identity(cls) -> "ColorAdjustmentModel":
        """Model that leaves colors unchanged."""
        return cls(scale=np.ones(3), bias=np.zeros(3), num_samples=0)


def fit_color_adjustment(
    reference: np.ndarray,
    candidate: np.ndarray,
) -> ColorAdjustmentModel:
    """Fit a correction mapping ``candidate`` colors onto ``reference`` colors.

    Only pixels where both images have nonzero alpha are sampled. Each BGR
    channel is fit independently by least squares. Must be called on images
    that are already geometrically aligned.

    Args:
        reference: Primary BGRA image (H, W, 4) uint8.
        candidate: Warped secondary BGRA image (H, W, 4) uint8.

    Returns:
        Fitted model. Identity if fewer than ``MIN_SAMPLES`` pixels overlap.

    Raises:
        ValueError: If the images differ in shape.
    """
    if reference.shape != candidate.shape:
        raise ValueError(
            f"Color fit needs aligned images of equal shape, got "
            f"{reference.shape} and {candidate.shape}"
        )

    valid = (reference[:, :, 3] > 0) & (candidate[:, :, 3] > 0)
    n = int(valid.sum())
    if n < MIN_SAMPLES:
        logger.warning(
            "Only %d overlapping pixels for color matching (need %d); "
            "using identity color model",
            n,
            MIN_SAMPLES,
        )
        return ColorAdjustmentModel.identity()

    ref = reference[valid][:, :3].astype(np.float64)  # (N, 3)
    cand = candidate[valid][:, :3].astype(np.float64)  # (N, 3)

    scale = np.ones(3)
    bias = np.zeros(3)
    for c in range(3):
        x = cand[:, c]
        y = ref[:, c]
        x_mean = x.mean()
        y_mean = y.mean()
        var = np.mean((x - x_mean) ** 2)
        if var < 1e-6:
            # Flat channel: only the offset is observable
            bias[c] = y_mean - x_mean
            continue
        scale[c] = np.mean((x - x_mean) * (y - y_mean)) / var
        bias[c] = y_mean - scale[c] * x_mean

    logger.debug(
        "Color model from %d samples: scale=%s bias=%s",
        n,
        np.round(scale, 3),
        np.round(bias, 2),
    )
    return ColorAdjustmentModel(scale=scale, bias=bias, num_samples=n)


def apply_color_adjustment(
    model: ColorAdjustmentModel,
    image: np.ndarray,
) -> np.ndarray:
    """Map every pixel's color through the model; alpha passes through.

    Args:
        model: Fitted color model.
        image: BGRA image (H, W, 4) uint8.

    Returns:
        Adjusted BGRA image (H, W, 4) uint8.
    """
    result = image.copy()
    color = image[:, :, :3].astype(np.float64) * model.scale + model.bias
    result[:, :, :3] = np.clip(np.round(color), 0, 255).astype(np.uint8)
    return result


__all__ = [
    "MIN_SAMPLES",
    "ColorAdjustmentModel",
    "fit_color_adjustment",
    "apply_color_adjustment",
]
