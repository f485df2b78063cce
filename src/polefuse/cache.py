"""Previous/next frame cache for temporally seeded alignment."""

import logging
from dataclasses import dataclass
from pathlib import Path

import cv2
import numpy as np

from .errors import MissingResourceError, SerializationError
from .io import read_flow, read_image, save_flow, write_image

logger = logging.getLogger(__name__)

# Sentinel directory value that disables temporal seeding
NO_CACHE = "NONE"

FLOW_FILE = Path("flow") / "flow_bottom_secondary.bin"
PRIMARY_IMAGE_FILE = Path("flow_images") / "bottomImage.png"
SECONDARY_IMAGE_FILE = Path("flow_images") / "bottomImage2.png"


@dataclass
class FrameCacheEntry:
    """Motion field and working images of one frame.

    Attributes:
        flow: Motion field, shape (H, W, 2), float32.
        primary: Masked primary working image, shape (H, W, 4), uint8 BGRA.
        secondary: Masked secondary working image, shape (H, W, 4), uint8 BGRA.
    """

    flow: np.ndarray
    primary: np.ndarray
    secondary: np.ndarray


def is_cache_disabled(cache_dir: str | Path | None) -> bool:
    """True for ``None`` or the ``"NONE"`` sentinel (any case)."""
    return cache_dir is None or str(cache_dir).upper() == NO_CACHE


def _read_cached_image(path: Path) -> np.ndarray:
    if not path.is_file():
        raise MissingResourceError(f"Cached image not found: {path}")
    try:
        return read_image(path, cv2.IMREAD_UNCHANGED)
    except MissingResourceError as e:
        raise SerializationError(f"Cached image cannot be decoded: {path}") from e


def load_frame_cache(cache_dir: str | Path | None) -> FrameCacheEntry | None:
    """Read the previous frame's cache entry.

    Args:
        cache_dir: Previous frame data directory, or None / "NONE".

    Returns:
        The cached entry, or None when seeding is disabled.

    Raises:
        MissingResourceError: If a cache file is absent.
        SerializationError: If the flow file or a cached image is malformed,
            or their dimensions disagree.
    """
    if is_cache_disabled(cache_dir):
        return None

    cache_dir = Path(cache_dir)
    logger.info("Reading previous frame flow and images from %s", cache_dir)

    flow = read_flow(cache_dir / FLOW_FILE)
    primary = _read_cached_image(cache_dir / PRIMARY_IMAGE_FILE)
    secondary = _read_cached_image(cache_dir / SECONDARY_IMAGE_FILE)

    for name, image in (("primary", primary), ("secondary", secondary)):
        if image.ndim != 3 or image.shape[2] != 4:
            raise SerializationError(
                f"Cached {name} image is not 4-channel BGRA: shape {image.shape}"
            )
        if image.shape[:2] != flow.shape[:2]:
            raise SerializationError(
                f"Cached flow {flow.shape[:2]} does not match cached {name} "
                f"image {image.shape[:2]}"
            )

    return FrameCacheEntry(flow=flow, primary=primary, secondary=secondary)


def save_frame_cache(cache_dir: str | Path, entry: FrameCacheEntry) -> None:
    """Write a cache entry for the next frame to seed from.

    Args:
        cache_dir: Output data directory for the current frame.
        entry: Current frame's flow and working images.
    """
    cache_dir = Path(cache_dir)
    logger.info("Serializing bottom-secondary flow and images to %s", cache_dir)
    save_flow(entry.flow, cache_dir / FLOW_FILE)
    write_image(cache_dir / PRIMARY_IMAGE_FILE, entry.primary)
    write_image(cache_dir / SECONDARY_IMAGE_FILE, entry.secondary)


__all__ = [
    "NO_CACHE",
    "FrameCacheEntry",
    "is_cache_disabled",
    "load_frame_cache",
    "save_frame_cache",
]
