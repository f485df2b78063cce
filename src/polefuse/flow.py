"""Dense motion alignment of the secondary bottom image onto the primary.

The motion field is computed by a pluggable engine selected by name from a
registry, then used to warp the secondary image with bicubic resampling.
"""

import logging
from collections.abc import Callable
from enum import Enum
from typing import Protocol, runtime_checkable

import cv2
import numpy as np
import torch
import torch.nn.functional as F

from .cache import FrameCacheEntry
from .errors import AlignmentError, ConfigurationError

logger = logging.getLogger(__name__)

# Blend weight toward the previous frame's field on fully static content
TEMPORAL_WEIGHT = 0.5
# Grayscale difference (0-255) at which a pixel stops counting as static
TEMPORAL_DIFF_SCALE = 32.0
# Sobel gradient magnitude below which a pixel counts as low-texture
LOW_TEXTURE_THRESHOLD = 8.0


class DirectionHint(Enum):
    """Coarse prior on the dominant motion direction between the two views."""

    UNKNOWN = "unknown"
    RIGHT = "right"
    LEFT = "left"
    UP = "up"
    DOWN = "down"

    @property
    def vector(self) -> tuple[float, float]:
        """Unit (dx, dy) in image coordinates (y grows downward)."""
        return {
            DirectionHint.UNKNOWN: (0.0, 0.0),
            DirectionHint.RIGHT: (1.0, 0.0),
            DirectionHint.LEFT: (-1.0, 0.0),
            DirectionHint.UP: (0.0, -1.0),
            DirectionHint.DOWN: (0.0, 1.0),
        }[self]


@runtime_checkable
class FlowEngine(Protocol):
    """Protocol for dense motion estimation engines.

    An engine maps each pixel (x, y) of ``image`` to its location
    (x + dx, y + dy) in ``image2``. Prior inputs come from the previous video
    frame and are zero-size arrays when no temporal seed is available.
    """

    def compute_flow(
        self,
        image: np.ndarray,
        image2: np.ndarray,
        prior_flow: np.ndarray,
        prior_image: np.ndarray,
        prior_image2: np.ndarray,
        hint: DirectionHint,
    ) -> np.ndarray:
        """Compute a dense motion field.

        Args:
            image: Target BGRA image (H, W, 4) uint8.
            image2: Source BGRA image (H, W, 4) uint8.
            prior_flow: Previous frame's field (H, W, 2) float32, or empty.
            prior_image: Previous frame's target image, or empty.
            prior_image2: Previous frame's source image, or empty.
            hint: Expected dominant motion direction.

        Returns:
            Motion field, shape (H, W, 2), float32.
        """
        ...


_FLOW_ENGINES: dict[str, Callable[[], FlowEngine]] = {}


def register_flow_engine(name: str):
    """Class decorator adding a flow engine factory to the registry."""

    def decorator(factory):
        if name in _FLOW_ENGINES:
            raise ValueError(f"Flow engine {name!r} is already registered")
        _FLOW_ENGINES[name] = factory
        return factory

    return decorator


def available_flow_engines() -> list[str]:
    """Names of all registered flow engines, sorted."""
    return sorted(_FLOW_ENGINES)


def create_flow_engine(name: str) -> FlowEngine:
    """Instantiate a registered flow engine by name.

    Raises:
        ConfigurationError: If no engine is registered under ``name``.
    """
    try:
        factory = _FLOW_ENGINES[name]
    except KeyError:
        raise ConfigurationError(
            f"Unknown flow engine: {name!r}. "
            f"Valid engines: {available_flow_engines()}"
        ) from None
    return factory()


def empty_prior() -> tuple[np.ndarray, np.ndarray, np.ndarray]:
    """Zero-size prior field and images for unseeded estimation."""
    return (
        np.empty((0, 0, 2), dtype=np.float32),
        np.empty((0, 0, 4), dtype=np.uint8),
        np.empty((0, 0, 4), dtype=np.uint8),
    )


def to_weighted_gray(image: np.ndarray) -> np.ndarray:
    """BGRA to 8-bit grayscale premultiplied by alpha.

    Masked-out regions go dark so the engine does not track the pole.
    """
    gray = cv2.cvtColor(image, cv2.COLOR_BGRA2GRAY).astype(np.float32)
    alpha = image[:, :, 3].astype(np.float32) / 255.0
    return np.clip(gray * alpha + 0.5, 0, 255).astype(np.uint8)


def _has_prior(prior: np.ndarray, shape: tuple[int, ...]) -> bool:
    return prior.size > 0 and prior.shape[:2] == shape[:2]


def temporal_smooth(
    flow: np.ndarray,
    prior_flow: np.ndarray,
    gray: np.ndarray,
    prior_gray: np.ndarray,
    weight: float = TEMPORAL_WEIGHT,
) -> np.ndarray:
    """Blend the field toward the previous frame's field on static content.

    The blend weight falls off linearly with the grayscale difference between
    the current and previous target image and reaches zero at
    ``TEMPORAL_DIFF_SCALE``.

    Args:
        flow: Current field (H, W, 2) float32.
        prior_flow: Previous field (H, W, 2) float32, or empty.
        gray: Current target grayscale (H, W) uint8.
        prior_gray: Previous target grayscale (H, W) uint8, or empty.
        weight: Blend weight applied to fully static pixels.

    Returns:
        Smoothed field (H, W, 2) float32. Returned unchanged when no usable
        prior exists.
    """
    if not (_has_prior(prior_flow, flow.shape) and _has_prior(prior_gray, gray.shape)):
        return flow

    diff = np.abs(gray.astype(np.float32) - prior_gray.astype(np.float32))
    static = np.clip(1.0 - diff / TEMPORAL_DIFF_SCALE, 0.0, 1.0)
    w = (weight * static)[:, :, None]
    return ((1.0 - w) * flow + w * prior_flow).astype(np.float32)


def apply_direction_hint(
    flow: np.ndarray,
    gray: np.ndarray,
    hint: DirectionHint,
    threshold: float = LOW_TEXTURE_THRESHOLD,
) -> np.ndarray:
    """Remove motion against the hinted direction in low-texture pixels.

    Textureless content near the pole gives the engine little to lock on to.
    There, any flow component pointing opposite to the hint is dropped, which
    keeps the field consistent with the rig geometry.

    Args:
        flow: Motion field (H, W, 2) float32.
        gray: Target grayscale (H, W) uint8.
        hint: Expected dominant motion direction.
        threshold: Sobel magnitude below which a pixel is low-texture.

    Returns:
        Regularized field (H, W, 2) float32.
    """
    if hint is DirectionHint.UNKNOWN:
        return flow

    gx = cv2.Sobel(gray, cv2.CV_32F, 1, 0, ksize=3)
    gy = cv2.Sobel(gray, cv2.CV_32F, 0, 1, ksize=3)
    low_texture = np.hypot(gx, gy) < threshold

    direction = np.array(hint.vector, dtype=np.float32)
    along = flow @ direction  # (H, W)
    opposing = low_texture & (along < 0)

    result = flow.copy()
    result[opposing] -= along[opposing][:, None] * direction
    return result


class _OpenCVFlowEngine:
    """Shared seeding, temporal smoothing, and hint handling for OpenCV engines."""

    def _estimate(
        self, gray: np.ndarray, gray2: np.ndarray, initial: np.ndarray | None
    ) -> np.ndarray:
        raise NotImplementedError

    def compute_flow(
        self,
        image: np.ndarray,
        image2: np.ndarray,
        prior_flow: np.ndarray,
        prior_image: np.ndarray,
        prior_image2: np.ndarray,
        hint: DirectionHint,
    ) -> np.ndarray:
        gray = to_weighted_gray(image)
        gray2 = to_weighted_gray(image2)

        seeded = _has_prior(prior_flow, image.shape)
        initial = prior_flow.astype(np.float32).copy() if seeded else None
        logger.debug(
            "%s: estimating %dx%d flow (%s)",
            type(self).__name__,
            image.shape[1],
            image.shape[0],
            "seeded" if seeded else "unseeded",
        )

        flow = self._estimate(gray, gray2, initial)

        if seeded and _has_prior(prior_image, image.shape):
            flow = temporal_smooth(
                flow, prior_flow, gray, to_weighted_gray(prior_image)
            )

        return apply_direction_hint(flow, gray, hint)


@register_flow_engine("farneback")
class FarnebackFlowEngine(_OpenCVFlowEngine):
    """Gunnar Farneback polynomial-expansion flow (cv2.calcOpticalFlowFarneback)."""

    def __init__(
        self,
        pyr_scale: float = 0.5,
        levels: int = 5,
        winsize: int = 21,
        iterations: int = 5,
        poly_n: int = 7,
        poly_sigma: float = 1.5,
    ):
        self.pyr_scale = pyr_scale
        self.levels = levels
        self.winsize = winsize
        self.iterations = iterations
        self.poly_n = poly_n
        self.poly_sigma = poly_sigma

    def _estimate(self, gray, gray2, initial):
        flags = cv2.OPTFLOW_USE_INITIAL_FLOW if initial is not None else 0
        flow = cv2.calcOpticalFlowFarneback(
            gray,
            gray2,
            initial,
            self.pyr_scale,
            self.levels,
            self.winsize,
            self.iterations,
            self.poly_n,
            self.poly_sigma,
            flags,
        )
        return flow.astype(np.float32)


@register_flow_engine("dis")
class DISFlowEngine(_OpenCVFlowEngine):
    """Dense Inverse Search flow (cv2.DISOpticalFlow)."""

    def __init__(self, preset: int = cv2.DISOPTICAL_FLOW_PRESET_MEDIUM):
        self.preset = preset

    def _estimate(self, gray, gray2, initial):
        dis = cv2.DISOpticalFlow_create(self.preset)
        # DIS refines the passed field in place when it matches the input size
        return dis.calc(gray, gray2, initial).astype(np.float32)


@register_flow_engine("identity")
class IdentityFlowEngine:
    """Zero field: assumes the two views are already registered."""

    def compute_flow(
        self,
        image: np.ndarray,
        image2: np.ndarray,
        prior_flow: np.ndarray,
        prior_image: np.ndarray,
        prior_image2: np.ndarray,
        hint: DirectionHint,
    ) -> np.ndarray:
        H, W = image.shape[:2]
        return np.zeros((H, W, 2), dtype=np.float32)


def warp_image(
    image: np.ndarray,
    flow: np.ndarray,
    device: str = "cpu",
) -> np.ndarray:
    """Resample ``image`` along a motion field with bicubic interpolation.

    Destination pixel (x, y) takes the value of ``image`` at
    (x + dx, y + dy). Samples falling outside the image are zero in every
    channel, i.e. fully transparent.

    Args:
        image: BGRA image (H, W, 4) uint8.
        flow: Motion field (H, W, 2) float32.
        device: PyTorch device for the resampling.

    Returns:
        Warped BGRA image (H, W, 4) uint8.
    """
    H, W = image.shape[:2]

    with torch.no_grad():
        flow_t = torch.from_numpy(np.ascontiguousarray(flow, dtype=np.float32)).to(
            device
        )
        ys, xs = torch.meshgrid(
            torch.arange(H, dtype=torch.float32, device=device),
            torch.arange(W, dtype=torch.float32, device=device),
            indexing="ij",
        )
        src_x = xs + flow_t[:, :, 0]
        src_y = ys + flow_t[:, :, 1]

        # grid_sample expects grid in [-1, 1] range (align_corners=True)
        grid_x = 2.0 * src_x / max(W - 1, 1) - 1.0
        grid_y = 2.0 * src_y / max(H - 1, 1) - 1.0
        grid = torch.stack([grid_x, grid_y], dim=-1).unsqueeze(0)  # (1, H, W, 2)

        src = torch.from_numpy(np.ascontiguousarray(image)).to(device)
        src = src.permute(2, 0, 1).unsqueeze(0).float()  # (1, 4, H, W)

        warped = F.grid_sample(
            src, grid, mode="bicubic", padding_mode="zeros", align_corners=True
        )  # (1, 4, H, W)

        warped = warped.squeeze(0).permute(1, 2, 0).round().clamp(0, 255)
        return warped.to(torch.uint8).cpu().numpy()


def align(
    primary: np.ndarray,
    secondary: np.ndarray,
    engine: FlowEngine,
    prior: FrameCacheEntry | None = None,
    hint: DirectionHint = DirectionHint.DOWN,
    device: str = "cpu",
) -> tuple[np.ndarray, np.ndarray]:
    """Align the secondary working image onto the primary.

    Args:
        primary: Masked primary BGRA image (H, W, 4) uint8.
        secondary: Masked secondary BGRA image (H, W, 4) uint8.
        engine: Motion estimation engine.
        prior: Previous frame's cache entry, or None for unseeded estimation.
        hint: Expected dominant motion direction.
        device: PyTorch device for the warp.

    Returns:
        Tuple of (flow, warped_secondary):
            - flow: Motion field (H, W, 2) float32.
            - warped_secondary: Secondary resampled into the primary grid,
              (H, W, 4) uint8.

    Raises:
        AlignmentError: If the images differ in size, or the engine returns a
            field whose size differs from the images.
    """
    if primary.shape[:2] != secondary.shape[:2]:
        raise AlignmentError(
            f"Primary {primary.shape[1]}x{primary.shape[0]} and secondary "
            f"{secondary.shape[1]}x{secondary.shape[0]} images differ in size"
        )

    if prior is None:
        prior_flow, prior_image, prior_image2 = empty_prior()
    else:
        prior_flow = prior.flow
        prior_image, prior_image2 = prior.primary, prior.secondary

    flow = engine.compute_flow(
        primary, secondary, prior_flow, prior_image, prior_image2, hint
    )

    H, W = primary.shape[:2]
    if flow.shape != (H, W, 2):
        raise AlignmentError(
            f"Flow engine returned field of shape {flow.shape}, expected {(H, W, 2)}"
        )

    logger.info("Warping secondary bottom camera to align with primary")
    warped = warp_image(secondary, flow, device=device)
    return flow, warped


__all__ = [
    "DirectionHint",
    "FlowEngine",
    "FarnebackFlowEngine",
    "DISFlowEngine",
    "IdentityFlowEngine",
    "register_flow_engine",
    "available_flow_engines",
    "create_flow_engine",
    "empty_prior",
    "to_weighted_gray",
    "temporal_smooth",
    "apply_direction_hint",
    "warp_image",
    "align",
]
