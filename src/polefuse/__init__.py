"""Pole removal for panoramic rigs by fusing two bottom-facing camera views."""

from .cache import FrameCacheEntry, load_frame_cache, save_frame_cache
from .calibration import CameraModel, load_rig_metadata, select_bottom_pair
from .coloring import (
    ColorAdjustmentModel,
    apply_color_adjustment,
    fit_color_adjustment,
)
from .compositing import blend_images, composite
from .config import AlignmentConfig, FusionConfig, MaskingConfig, RuntimeConfig
from .errors import (
    AlignmentError,
    ConfigurationError,
    MissingResourceError,
    PoleFuseError,
    SerializationError,
)
from .flow import (
    DirectionHint,
    FlowEngine,
    align,
    available_flow_engines,
    create_flow_engine,
    register_flow_engine,
    warp_image,
)
from .fusion import (
    FusionArtifacts,
    FusionResult,
    combine_bottom_images,
    fuse_bottom_pair,
)
from .io import read_flow, save_flow
from .masks import build_masked_image, feather_alpha_channel, load_pole_mask

__version__ = "0.1.0"

__all__ = [
    "FusionConfig",
    "MaskingConfig",
    "AlignmentConfig",
    "RuntimeConfig",
    "PoleFuseError",
    "ConfigurationError",
    "MissingResourceError",
    "AlignmentError",
    "SerializationError",
    "CameraModel",
    "load_rig_metadata",
    "select_bottom_pair",
    "load_pole_mask",
    "build_masked_image",
    "feather_alpha_channel",
    "DirectionHint",
    "FlowEngine",
    "register_flow_engine",
    "create_flow_engine",
    "available_flow_engines",
    "warp_image",
    "align",
    "ColorAdjustmentModel",
    "fit_color_adjustment",
    "apply_color_adjustment",
    "blend_images",
    "composite",
    "FrameCacheEntry",
    "load_frame_cache",
    "save_frame_cache",
    "read_flow",
    "save_flow",
    "FusionArtifacts",
    "FusionResult",
    "fuse_bottom_pair",
    "combine_bottom_images",
]
