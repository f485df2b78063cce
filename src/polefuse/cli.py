"""Command-line interface for bottom-camera pole removal."""

import argparse
import logging
import sys
from pathlib import Path

from pydantic import ValidationError

from polefuse.calibration import load_rig_metadata, select_bottom_pair
from polefuse.config import FusionConfig, RuntimeConfig
from polefuse.errors import PoleFuseError


def _configure_logging(verbose: bool = False) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%H:%M:%S",
    )


def init_config(
    rig_path: Path,
    images_dir: str,
    pole_mask_dir: str,
    output_dir: str,
    config_path: Path,
    prev_frame_dir: str | None = None,
) -> FusionConfig:
    """Generate a FusionConfig after checking the rig resolves a bottom pair.

    Args:
        rig_path: Path to rig camera metadata JSON.
        images_dir: Directory with per-camera frames.
        pole_mask_dir: Directory with per-camera pole masks.
        output_dir: Output directory for debug images and the temporal seed.
        config_path: Path where the generated config YAML will be saved.
        prev_frame_dir: Previous frame's output directory, or None.

    Returns:
        The generated FusionConfig.

    Raises:
        SystemExit: If the rig metadata cannot be loaded or has no bottom pair.
    """
    try:
        primary, secondary = select_bottom_pair(load_rig_metadata(rig_path))
    except PoleFuseError as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(1)

    print(f"[OK] Primary bottom camera:   {primary.camera_id}")
    print(f"[OK] Secondary bottom camera: {secondary.camera_id}")

    for label, directory in (("images", images_dir), ("pole masks", pole_mask_dir)):
        for camera in (primary, secondary):
            if not (Path(directory) / f"{camera.camera_id}.png").exists():
                print(f"[WARN] No {label} file for {camera.camera_id} in {directory}")

    config = FusionConfig(
        rig_path=str(rig_path),
        images_dir=images_dir,
        pole_mask_dir=pole_mask_dir,
        prev_frame_dir=prev_frame_dir,
        output_dir=output_dir,
    )
    config.to_yaml(config_path)
    print(f"[OK] Configuration saved to: {config_path}")

    return config


def fuse_command(
    config_path: Path,
    output_path: Path | None = None,
    verbose: bool = False,
    device: str | None = None,
) -> None:
    """Fuse one frame's bottom images from a config file.

    Args:
        config_path: Path to the fusion config YAML file.
        output_path: Where to write the combined image (optional).
        verbose: If True, set logging to DEBUG level.
        device: Optional device override (replaces config.runtime.device).
    """
    _configure_logging(verbose)

    if not config_path.exists():
        print(f"Error: Config file not found: {config_path}", file=sys.stderr)
        sys.exit(1)

    try:
        config = FusionConfig.from_yaml(config_path)
    except Exception as e:
        print(f"Error: Failed to load config: {e}", file=sys.stderr)
        sys.exit(1)

    if device is not None:
        try:
            config.runtime = RuntimeConfig.model_validate(
                {**config.runtime.model_dump(), "device": device}
            )
        except ValidationError as e:
            print(f"Error: Invalid device override: {e}", file=sys.stderr)
            sys.exit(1)

    from polefuse.fusion import combine_bottom_images
    from polefuse.io import write_image

    try:
        rig_models = load_rig_metadata(config.rig_path)
        result = combine_bottom_images(config, rig_models)
        if output_path is not None:
            write_image(output_path, result.image)
    except (PoleFuseError, OSError) as e:
        print(f"Error: {type(e).__name__}: {e}", file=sys.stderr)
        sys.exit(1)

    H, W = result.image.shape[:2]
    print(f"\nFused bottom image for camera {result.camera.camera_id} ({W}x{H})")
    if output_path is not None:
        print(f"Written to: {output_path}\n")


def engines_command() -> None:
    """Print the registered flow engine names."""
    from polefuse.flow import available_flow_engines

    for name in available_flow_engines():
        print(name)


def main() -> None:
    """Main entry point for the polefuse CLI."""
    parser = argparse.ArgumentParser(
        prog="polefuse",
        description=(
            "Remove the rig pole from bottom camera images by fusing two views."
        ),
    )
    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    init_parser = subparsers.add_parser("init", help="Generate a fusion config")
    init_parser.add_argument(
        "--rig", type=Path, required=True, help="Path to rig camera metadata JSON"
    )
    init_parser.add_argument(
        "--images-dir", type=str, required=True, help="Directory of per-camera frames"
    )
    init_parser.add_argument(
        "--pole-mask-dir",
        type=str,
        required=True,
        help="Directory of per-camera pole masks",
    )
    init_parser.add_argument(
        "--output-dir",
        type=str,
        required=True,
        help="Output directory for debug images and the temporal seed",
    )
    init_parser.add_argument(
        "--prev-frame-dir",
        type=str,
        default=None,
        help="Previous frame's output directory (default: NONE)",
    )
    init_parser.add_argument(
        "--config",
        type=Path,
        default=Path("config.yaml"),
        help="Path to output config YAML file (default: config.yaml)",
    )

    fuse_parser = subparsers.add_parser("fuse", help="Fuse one frame's bottom images")
    fuse_parser.add_argument("config", type=Path, help="Path to fusion config YAML")
    fuse_parser.add_argument(
        "-o",
        "--output",
        type=Path,
        default=None,
        help="Write the combined image to this path",
    )
    fuse_parser.add_argument(
        "-v", "--verbose", action="store_true", help="Enable verbose (DEBUG) logging"
    )
    fuse_parser.add_argument(
        "--device",
        type=str,
        default=None,
        help="Override device (e.g., 'cpu' or 'cuda')",
    )

    subparsers.add_parser("engines", help="List registered flow engines")

    args = parser.parse_args()

    if args.command == "init":
        init_config(
            rig_path=args.rig,
            images_dir=args.images_dir,
            pole_mask_dir=args.pole_mask_dir,
            output_dir=args.output_dir,
            config_path=args.config,
            prev_frame_dir=args.prev_frame_dir,
        )
    elif args.command == "fuse":
        fuse_command(
            config_path=args.config,
            output_path=args.output,
            verbose=args.verbose,
            device=args.device,
        )
    elif args.command == "engines":
        engines_command()
    else:
        parser.print_help()
        sys.exit(1)
