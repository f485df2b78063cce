"""I/O adapters for working images and binary motion fields."""

import logging
from pathlib import Path

import cv2
import numpy as np

from .errors import MissingResourceError, SerializationError

logger = logging.getLogger(__name__)

# Flow file header: int32 rows, int32 cols (little-endian)
FLOW_HEADER_DTYPE = np.dtype("<i4")
FLOW_VALUE_DTYPE = np.dtype("<f4")


def read_image(path: str | Path, flags: int = cv2.IMREAD_COLOR) -> np.ndarray:
    """Read an image, raising instead of returning None.

    Args:
        path: Image file path.
        flags: OpenCV imread flags. ``cv2.IMREAD_COLOR`` for raw 3-channel
            camera frames, ``cv2.IMREAD_UNCHANGED`` to keep an alpha channel.

    Returns:
        Image array as decoded by OpenCV.

    Raises:
        MissingResourceError: If the file does not exist, cannot be decoded,
            or decodes to an empty image.
    """
    path = Path(path)
    if not path.is_file():
        raise MissingResourceError(f"Image not found: {path}")

    image = cv2.imread(str(path), flags)
    if image is None or image.size == 0:
        raise MissingResourceError(f"Failed to read image (invalid or empty): {path}")

    return image


def write_image(path: str | Path, image: np.ndarray) -> None:
    """Write an image, creating parent directories as needed.

    Raises:
        MissingResourceError: If OpenCV reports the write failed.
    """
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    if not cv2.imwrite(str(path), image):
        raise MissingResourceError(f"Failed to write image: {path}")


def save_flow(flow: np.ndarray, path: str | Path) -> None:
    """Serialize a motion field to the fixed binary layout.

    Layout: int32 rows, int32 cols, then rows * cols (dx, dy) float32 pairs in
    row-major order, all little-endian.

    Args:
        flow: Motion field, shape (H, W, 2), float32.
        path: Output file path.
    """
    if flow.ndim != 3 or flow.shape[2] != 2:
        raise SerializationError(f"Expected flow of shape (H, W, 2), got {flow.shape}")

    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)

    rows, cols = flow.shape[:2]
    with open(path, "wb") as f:
        f.write(np.array([rows, cols], dtype=FLOW_HEADER_DTYPE).tobytes())
        f.write(np.ascontiguousarray(flow, dtype=FLOW_VALUE_DTYPE).tobytes())


def read_flow(path: str | Path) -> np.ndarray:
    """Deserialize a motion field written by :func:`save_flow`.

    Args:
        path: Flow file path.

    Returns:
        Motion field, shape (H, W, 2), float32.

    Raises:
        MissingResourceError: If the file does not exist.
        SerializationError: If the header is truncated, the dimensions are
            negative, or the payload size does not match the header.
    """
    path = Path(path)
    if not path.is_file():
        raise MissingResourceError(f"Flow file not found: {path}")

    raw = path.read_bytes()
    header_size = 2 * FLOW_HEADER_DTYPE.itemsize
    if len(raw) < header_size:
        raise SerializationError(
            f"Flow file too short for header ({len(raw)} bytes): {path}"
        )

    rows, cols = (int(v) for v in np.frombuffer(raw[:header_size], FLOW_HEADER_DTYPE))
    if rows < 0 or cols < 0:
        raise SerializationError(f"Negative flow dimensions {rows}x{cols}: {path}")

    expected = rows * cols * 2 * FLOW_VALUE_DTYPE.itemsize
    payload = raw[header_size:]
    if len(payload) != expected:
        raise SerializationError(
            f"Flow payload size mismatch in {path}: header says {rows}x{cols} "
            f"({expected} bytes), found {len(payload)} bytes"
        )

    flow = np.frombuffer(payload, FLOW_VALUE_DTYPE).reshape(rows, cols, 2)
    logger.debug("Read %dx%d flow from %s", cols, rows, path)
    return flow.astype(np.float32)
