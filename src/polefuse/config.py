"""Configuration management for bottom-camera pole removal."""

import logging
from pathlib import Path
from typing import Literal

import yaml
from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    ValidationError,
    field_validator,
    model_validator,
)

from .cache import is_cache_disabled

logger = logging.getLogger(__name__)

VALID_DIRECTION_HINTS = ["unknown", "right", "left", "up", "down"]


class MaskingConfig(BaseModel):
    """Configuration for validity masks.

    Attributes:
        alpha_feather_size: Width (pixels) of the alpha falloff band at mask
            boundaries. 0 disables feathering.
    """

    model_config = ConfigDict(extra="allow")

    alpha_feather_size: int = 100

    @field_validator("alpha_feather_size")
    @classmethod
    def validate_feather_size(cls, v: int) -> int:
        """Validate that alpha_feather_size is non-negative."""
        if v < 0:
            raise ValueError(f"alpha_feather_size must be >= 0, got {v}")
        return v

    @model_validator(mode="after")
    def warn_extra_fields(self) -> "MaskingConfig":
        """Warn about unknown configuration keys."""
        if self.__pydantic_extra__:
            logger.warning(
                "Unknown config keys in MaskingConfig (ignored): %s",
                list(self.__pydantic_extra__.keys()),
            )
        return self


class AlignmentConfig(BaseModel):
    """Configuration for motion alignment.

    Attributes:
        flow_engine: Registered motion estimation engine name.
        direction_hint: Expected dominant motion direction between the views.
    """

    model_config = ConfigDict(extra="allow")

    flow_engine: str = "farneback"
    direction_hint: Literal["unknown", "right", "left", "up", "down"] = "down"

    @field_validator("flow_engine")
    @classmethod
    def validate_flow_engine(cls, v: str) -> str:
        """Validate that flow_engine names a registered engine."""
        from .flow import available_flow_engines

        valid = available_flow_engines()
        if v not in valid:
            raise ValueError(f"Invalid flow engine: {v!r}. Valid engines: {valid}")
        return v

    @model_validator(mode="after")
    def warn_extra_fields(self) -> "AlignmentConfig":
        """Warn about unknown configuration keys."""
        if self.__pydantic_extra__:
            logger.warning(
                "Unknown config keys in AlignmentConfig (ignored): %s",
                list(self.__pydantic_extra__.keys()),
            )
        return self


class RuntimeConfig(BaseModel):
    """Configuration for runtime settings and optional outputs.

    Attributes:
        device: PyTorch device string used for warping.
        save_debug_images: Write primary, secondary, warped, and combined
            snapshots to output_dir.
        save_flow_for_next_frame: Write the current flow and working images
            to output_dir for the next frame's temporal seed.
        ignore_side_effect_errors: Log and continue when writing debug images
            or the temporal seed fails, instead of raising.
    """

    model_config = ConfigDict(extra="allow")

    device: Literal["cpu", "cuda"] = "cpu"
    save_debug_images: bool = False
    save_flow_for_next_frame: bool = False
    ignore_side_effect_errors: bool = False

    @model_validator(mode="after")
    def warn_extra_fields(self) -> "RuntimeConfig":
        """Warn about unknown configuration keys."""
        if self.__pydantic_extra__:
            logger.warning(
                "Unknown config keys in RuntimeConfig (ignored): %s",
                list(self.__pydantic_extra__.keys()),
            )
        return self


class FusionConfig(BaseModel):
    """Top-level configuration for fusing the two bottom camera images.

    Attributes:
        rig_path: Path to rig camera metadata JSON.
        images_dir: Directory with per-camera frames ({camera_id}.png).
        pole_mask_dir: Directory with per-camera pole masks ({camera_id}.png).
        prev_frame_dir: Previous frame's output directory for temporal
            seeding, or None ("NONE" in YAML) to disable it.
        output_dir: Current frame's output directory for debug images and
            the next frame's seed.
        masking: Masking configuration.
        alignment: Alignment configuration.
        runtime: Runtime configuration.
    """

    model_config = ConfigDict(extra="allow")

    rig_path: str = ""
    images_dir: str = ""
    pole_mask_dir: str = ""
    prev_frame_dir: str | None = None
    output_dir: str = ""

    masking: MaskingConfig = Field(default_factory=MaskingConfig)
    alignment: AlignmentConfig = Field(default_factory=AlignmentConfig)
    runtime: RuntimeConfig = Field(default_factory=RuntimeConfig)

    @field_validator("prev_frame_dir")
    @classmethod
    def normalize_prev_frame_dir(cls, v: str | None) -> str | None:
        """Map the "NONE" sentinel to None."""
        return None if is_cache_disabled(v) else v

    @model_validator(mode="after")
    def check_output_constraints(self) -> "FusionConfig":
        """Validate output settings and warn about extra fields."""
        wants_output = (
            self.runtime.save_debug_images or self.runtime.save_flow_for_next_frame
        )
        if wants_output and not self.output_dir:
            raise ValueError(
                "output_dir is required when save_debug_images or "
                "save_flow_for_next_frame is enabled"
            )

        if self.prev_frame_dir is not None and self.prev_frame_dir == self.output_dir:
            logger.warning(
                "prev_frame_dir and output_dir are the same (%s); the temporal "
                "seed will be overwritten by this frame",
                self.output_dir,
            )

        if self.__pydantic_extra__:
            logger.warning(
                "Unknown config keys in FusionConfig (ignored): %s",
                list(self.__pydantic_extra__.keys()),
            )

        return self

    @classmethod
    def from_yaml(cls, path: str | Path) -> "FusionConfig":
        """Load configuration from a YAML file.

        Missing fields use their default values.

        Args:
            path: Path to YAML configuration file.

        Returns:
            Loaded configuration with defaults filled in.

        Raises:
            FileNotFoundError: If the file does not exist.
            yaml.YAMLError: If the file is not valid YAML.
            ValueError: If validation fails (with all errors collected).
        """
        path = Path(path)
        with open(path) as f:
            data = yaml.safe_load(f)

        if data is None:
            data = {}

        for section in ("masking", "alignment", "runtime"):
            if section not in data:
                logger.info("Using default: %s (all defaults)", section)

        try:
            config = cls.model_validate(data)
        except ValidationError as e:
            formatted_errors = format_validation_errors(e)
            raise ValueError(
                f"Configuration validation failed:\n{formatted_errors}"
            ) from None

        return config

    def to_yaml(self, path: str | Path) -> None:
        """Save configuration to a YAML file.

        All fields including defaults are written for explicitness. A
        disabled prev_frame_dir is written as "NONE".

        Args:
            path: Path to output YAML file.
        """
        path = Path(path)
        path.parent.mkdir(parents=True, exist_ok=True)

        data = self.model_dump(mode="json")
        if data["prev_frame_dir"] is None:
            data["prev_frame_dir"] = "NONE"

        with open(path, "w") as f:
            yaml.safe_dump(data, f, default_flow_style=False, sort_keys=False)


def format_validation_errors(error: ValidationError) -> str:
    """Format Pydantic validation errors with YAML-style paths.

    Args:
        error: Pydantic ValidationError.

    Returns:
        Formatted error string with YAML paths and messages.
    """
    lines = []
    for err in error.errors():
        path_parts = []
        for part in err["loc"]:
            if isinstance(part, int):
                path_parts[-1] = f"{path_parts[-1]}[{part}]"
            else:
                path_parts.append(str(part))

        path = ".".join(path_parts)
        lines.append(f"  {path}: {err['msg']}")

    return "\n".join(lines)
