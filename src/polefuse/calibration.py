"""Rig camera metadata and bottom camera pair selection."""

import json
import logging
from dataclasses import dataclass
from pathlib import Path

from .errors import ConfigurationError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CameraModel:
    """Per-camera calibration record from the rig metadata.

    Attributes:
        camera_id: Camera identifier, also the image/mask file stem.
        usable_pixels_radius: Radius (pixels) of the sensor region free of
            vignetting and structural obstruction, centered on the optical axis.
        flip180: Whether the camera is mounted upside down relative to its pair.
        is_bottom: Whether this is the primary bottom-facing camera.
        is_bottom2: Whether this is the secondary bottom-facing camera.
        image_size: Image dimensions as (width, height), if known.
    """

    camera_id: str
    usable_pixels_radius: float
    flip180: bool = False
    is_bottom: bool = False
    is_bottom2: bool = False
    image_size: tuple[int, int] | None = None


def load_rig_metadata(rig_path: str | Path) -> list[CameraModel]:
    """Load camera models from a rig JSON file.

    The file holds a ``cameras`` list; each entry needs ``id`` and
    ``usable_pixels_radius`` and may set ``flip180``, ``is_bottom``,
    ``is_bottom2`` and ``image_size`` ([width, height]).

    Args:
        rig_path: Path to rig JSON file.

    Returns:
        Camera models in file order.

    Raises:
        ConfigurationError: If the file is missing, not valid JSON, or an
            entry lacks required keys.
    """
    rig_path = Path(rig_path)
    try:
        with open(rig_path) as f:
            data = json.load(f)
    except FileNotFoundError:
        raise ConfigurationError(f"Rig metadata not found: {rig_path}") from None
    except json.JSONDecodeError as e:
        raise ConfigurationError(f"Invalid JSON in rig metadata {rig_path}: {e}") from e

    if not isinstance(data, dict) or "cameras" not in data:
        raise ConfigurationError(f"Rig metadata missing 'cameras' key: {rig_path}")

    models = []
    for i, entry in enumerate(data["cameras"]):
        try:
            image_size = entry.get("image_size")
            models.append(
                CameraModel(
                    camera_id=str(entry["id"]),
                    usable_pixels_radius=float(entry["usable_pixels_radius"]),
                    flip180=bool(entry.get("flip180", False)),
                    is_bottom=bool(entry.get("is_bottom", False)),
                    is_bottom2=bool(entry.get("is_bottom2", False)),
                    image_size=tuple(image_size) if image_size else None,
                )
            )
        except (KeyError, TypeError, ValueError) as e:
            raise ConfigurationError(
                f"Invalid camera entry {i} in {rig_path}: {e!r}"
            ) from e

    logger.debug("Loaded %d camera model(s) from %s", len(models), rig_path)
    return models


def _single_with_role(rig_models: list[CameraModel], role: str) -> CameraModel:
    matches = [m for m in rig_models if getattr(m, role)]
    if len(matches) != 1:
        raise ConfigurationError(
            f"Expected exactly one camera with {role}=True, found {len(matches)}: "
            f"{[m.camera_id for m in matches]}"
        )
    return matches[0]


def select_bottom_pair(
    rig_models: list[CameraModel],
) -> tuple[CameraModel, CameraModel]:
    """Pick the primary and secondary bottom-facing cameras.

    Args:
        rig_models: All camera models of the rig (top and side cameras included).

    Returns:
        Tuple of (primary, secondary) camera models.

    Raises:
        ConfigurationError: If either role is missing or ambiguous, or both
            roles land on the same camera.
    """
    primary = _single_with_role(rig_models, "is_bottom")
    secondary = _single_with_role(rig_models, "is_bottom2")
    if primary.camera_id == secondary.camera_id:
        raise ConfigurationError(
            f"Camera {primary.camera_id} is marked as both primary and secondary bottom"
        )
    return primary, secondary


__all__ = ["CameraModel", "load_rig_metadata", "select_bottom_pair"]
