"""Fuse the two bottom camera images into one pole-free image."""

import logging
from dataclasses import dataclass
from pathlib import Path

import numpy as np

from .cache import FrameCacheEntry, load_frame_cache, save_frame_cache
from .calibration import CameraModel, select_bottom_pair
from .coloring import (
    ColorAdjustmentModel,
    apply_color_adjustment,
    fit_color_adjustment,
)
from .compositing import composite
from .config import FusionConfig
from .errors import MissingResourceError, PoleFuseError
from .flow import DirectionHint, FlowEngine, align, create_flow_engine
from .io import read_image, write_image
from .masks import build_masked_image, load_pole_mask
from .profiling import timed_stage

logger = logging.getLogger(__name__)


@dataclass
class FusionArtifacts:
    """All intermediate products of one fusion call.

    Attributes:
        primary: Masked primary working image (H, W, 4) uint8.
        secondary: Masked (and possibly flipped) secondary working image.
        flow: Motion field from primary grid into secondary (H, W, 2) float32.
        warped: Secondary warped into the primary grid.
        color_model: Color correction fit on primary vs. warped secondary.
        adjusted: Warped secondary after color correction.
        combined: Final combined image after recut and feathering.
    """

    primary: np.ndarray
    secondary: np.ndarray
    flow: np.ndarray
    warped: np.ndarray
    color_model: ColorAdjustmentModel
    adjusted: np.ndarray
    combined: np.ndarray


@dataclass
class FusionResult:
    """What the fusion hands back to its caller.

    Attributes:
        camera: Primary bottom camera model.
        image: Combined BGRA image (H, W, 4) uint8.
    """

    camera: CameraModel
    image: np.ndarray


def _check_mask(mask: np.ndarray, camera_id: str) -> None:
    if mask is None or mask.ndim < 2 or mask.shape[0] == 0 or mask.shape[1] == 0:
        raise MissingResourceError(f"Missing or bad pole mask for camera {camera_id}")


def fuse_bottom_pair(
    primary_image: np.ndarray,
    secondary_image: np.ndarray,
    primary_mask: np.ndarray,
    secondary_mask: np.ndarray,
    primary_camera: CameraModel,
    secondary_camera: CameraModel,
    engine: FlowEngine,
    feather_size: int,
    prior: FrameCacheEntry | None = None,
    hint: DirectionHint = DirectionHint.DOWN,
    device: str = "cpu",
) -> FusionArtifacts:
    """Run masking, alignment, color matching, and compositing in memory.

    Args:
        primary_image: Raw primary BGR frame (H, W, 3) uint8.
        secondary_image: Raw secondary BGR frame (H, W, 3) uint8.
        primary_mask: Primary pole mask (H, W, 3) uint8.
        secondary_mask: Secondary pole mask (H, W, 3) uint8.
        primary_camera: Primary camera model.
        secondary_camera: Secondary camera model.
        engine: Motion estimation engine.
        feather_size: Alpha feathering band width in pixels.
        prior: Previous frame's cache entry, or None.
        hint: Expected dominant motion direction.
        device: PyTorch device for the warp.

    Returns:
        FusionArtifacts with every intermediate image.

    Raises:
        MissingResourceError: If a pole mask is empty.
        AlignmentError: If the working images differ in size.
    """
    _check_mask(primary_mask, primary_camera.camera_id)
    _check_mask(secondary_mask, secondary_camera.camera_id)

    with timed_stage("masking", logger):
        primary = build_masked_image(
            primary_image,
            primary_camera.usable_pixels_radius,
            primary_mask,
            feather_size,
            flip180=primary_camera.flip180,
        )
        secondary = build_masked_image(
            secondary_image,
            secondary_camera.usable_pixels_radius,
            secondary_mask,
            feather_size,
            flip180=secondary_camera.flip180,
        )

    with timed_stage("alignment", logger):
        logger.info("Computing flow to merge bottom camera images")
        flow, warped = align(
            primary, secondary, engine, prior=prior, hint=hint, device=device
        )

    with timed_stage("color_matching", logger):
        color_model = fit_color_adjustment(primary, warped)
        adjusted = apply_color_adjustment(color_model, warped)

    with timed_stage("compositing", logger):
        logger.info("Combining the primary bottom image and the warped secondary")
        combined = composite(
            primary, adjusted, primary_camera.usable_pixels_radius, feather_size
        )

    return FusionArtifacts(
        primary=primary,
        secondary=secondary,
        flow=flow,
        warped=warped,
        color_model=color_model,
        adjusted=adjusted,
        combined=combined,
    )


def save_debug_images(output_dir: str | Path, artifacts: FusionArtifacts) -> None:
    """Write primary, secondary, warped, and combined snapshots."""
    output_dir = Path(output_dir)
    write_image(output_dir / "bottomImage.png", artifacts.primary)
    write_image(output_dir / "bottomImage2.png", artifacts.secondary)
    write_image(output_dir / "bottomWarp2.png", artifacts.warped)
    write_image(output_dir / "_bottomCombined.png", artifacts.combined)


def _write_side_effects(config: FusionConfig, artifacts: FusionArtifacts) -> None:
    """Persist the temporal seed and debug images per the runtime config.

    The combined image already exists when this runs. A failure here either
    propagates (default) or is logged and dropped when
    ``runtime.ignore_side_effect_errors`` is set.
    """
    runtime = config.runtime
    try:
        if runtime.save_flow_for_next_frame:
            save_frame_cache(
                config.output_dir,
                FrameCacheEntry(
                    flow=artifacts.flow,
                    primary=artifacts.primary,
                    secondary=artifacts.secondary,
                ),
            )
        if runtime.save_debug_images:
            logger.debug("Writing debug images to %s", config.output_dir)
            save_debug_images(config.output_dir, artifacts)
    except (PoleFuseError, OSError) as e:
        if runtime.ignore_side_effect_errors:
            logger.warning(
                "Combined image computed, but writing outputs to %s failed "
                "(ignored): %s",
                config.output_dir,
                e,
            )
            return
        logger.error(
            "Combined image computed, but writing outputs to %s failed; "
            "persisted outputs may be incomplete",
            config.output_dir,
        )
        raise


def combine_bottom_images(
    config: FusionConfig,
    rig_models: list[CameraModel],
) -> FusionResult:
    """Produce one pole-free bottom image for the current frame.

    Reads both bottom frames and pole masks, the previous frame's seed if
    configured, runs the fusion, then writes the next frame's seed and debug
    images if enabled.

    Args:
        config: Fusion configuration.
        rig_models: All camera models of the rig.

    Returns:
        FusionResult with the primary camera model and the combined image.

    Raises:
        ConfigurationError: If the bottom pair cannot be resolved or the flow
            engine is unknown.
        MissingResourceError: If a frame or pole mask is missing or empty.
        AlignmentError: If the two working images differ in size.
        SerializationError: If the previous frame's cache is malformed.
    """
    primary_camera, secondary_camera = select_bottom_pair(rig_models)
    logger.info(
        "Bottom cameras: primary=%s secondary=%s",
        primary_camera.camera_id,
        secondary_camera.camera_id,
    )

    images_dir = Path(config.images_dir)
    primary_image = read_image(images_dir / f"{primary_camera.camera_id}.png")
    secondary_image = read_image(images_dir / f"{secondary_camera.camera_id}.png")
    primary_mask = load_pole_mask(config.pole_mask_dir, primary_camera.camera_id)
    secondary_mask = load_pole_mask(config.pole_mask_dir, secondary_camera.camera_id)

    prior = load_frame_cache(config.prev_frame_dir)
    engine = create_flow_engine(config.alignment.flow_engine)

    artifacts = fuse_bottom_pair(
        primary_image,
        secondary_image,
        primary_mask,
        secondary_mask,
        primary_camera,
        secondary_camera,
        engine,
        config.masking.alpha_feather_size,
        prior=prior,
        hint=DirectionHint(config.alignment.direction_hint),
        device=config.runtime.device,
    )

    _write_side_effects(config, artifacts)

    return FusionResult(camera=primary_camera, image=artifacts.combined)


__all__ = [
    "FusionArtifacts",
    "FusionResult",
    "fuse_bottom_pair",
    "save_debug_images",
    "combine_bottom_images",
]
