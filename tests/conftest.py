"""Shared pytest fixtures for polefuse tests."""

import json
from pathlib import Path

import cv2
import numpy as np
import pytest
import torch

from polefuse.calibration import CameraModel

SIZE = 64
RED = (0, 0, 255)


@pytest.fixture(params=["cpu", "cuda"])
def device(request):
    """Parametrized device fixture for CPU and CUDA testing.

    Raises:
        pytest.skip: If CUDA is requested but not available.
    """
    if request.param == "cuda" and not torch.cuda.is_available():
        pytest.skip("CUDA not available")
    return request.param


def _scene(size: int = SIZE, seed: int = 0) -> np.ndarray:
    """Textured BGR test scene (H, W, 3) uint8."""
    rng = np.random.default_rng(seed)
    noise = rng.integers(30, 220, size=(size // 4, size // 4, 3), dtype=np.uint8)
    return cv2.resize(noise, (size, size), interpolation=cv2.INTER_LINEAR)


def _pole_mask(size: int, box: tuple[int, int, int, int] | None) -> np.ndarray:
    """Pole mask with a red rectangle (y0, y1, x0, x1), or no pole at all."""
    mask = np.zeros((size, size, 3), dtype=np.uint8)
    if box is not None:
        y0, y1, x0, x1 = box
        mask[y0:y1, x0:x1] = RED
    return mask


@pytest.fixture
def make_scene():
    """Factory for textured BGR scenes: make_scene(size=64, seed=0)."""
    return _scene


@pytest.fixture
def make_pole_mask():
    """Factory for red pole masks: make_pole_mask(size, (y0, y1, x0, x1) or None)."""
    return _pole_mask


@pytest.fixture
def primary_camera() -> CameraModel:
    return CameraModel(
        camera_id="cam_bottom", usable_pixels_radius=200.0, is_bottom=True
    )


@pytest.fixture
def secondary_camera() -> CameraModel:
    return CameraModel(
        camera_id="cam_bottom2", usable_pixels_radius=200.0, is_bottom2=True
    )


@pytest.fixture
def rig_models(primary_camera, secondary_camera) -> list[CameraModel]:
    return [
        CameraModel(camera_id="cam_top", usable_pixels_radius=200.0),
        primary_camera,
        secondary_camera,
    ]


@pytest.fixture
def rig_json(tmp_path: Path) -> Path:
    """Rig metadata JSON with a top camera and a bottom pair."""
    path = tmp_path / "rig.json"
    data = {
        "cameras": [
            {"id": "cam_top", "usable_pixels_radius": 200.0},
            {"id": "cam_bottom", "usable_pixels_radius": 200.0, "is_bottom": True},
            {
                "id": "cam_bottom2",
                "usable_pixels_radius": 200.0,
                "is_bottom2": True,
                "flip180": False,
                "image_size": [SIZE, SIZE],
            },
        ]
    }
    with open(path, "w") as f:
        json.dump(data, f)
    return path


@pytest.fixture
def frame_dirs(tmp_path: Path) -> tuple[Path, Path]:
    """Frame and pole mask directories for the bottom pair.

    The primary sees the scene with a gray pole over its center; the
    secondary sees the clean scene and has its pole in a corner.
    """
    images_dir = tmp_path / "images"
    masks_dir = tmp_path / "masks"
    images_dir.mkdir()
    masks_dir.mkdir()

    scene = _scene()
    primary = scene.copy()
    primary[24:40, 24:40] = 128
    cv2.imwrite(str(images_dir / "cam_bottom.png"), primary)
    cv2.imwrite(str(images_dir / "cam_bottom2.png"), scene)
    cv2.imwrite(
        str(masks_dir / "cam_bottom.png"), _pole_mask(SIZE, (24, 40, 24, 40))
    )
    cv2.imwrite(str(masks_dir / "cam_bottom2.png"), _pole_mask(SIZE, (0, 8, 0, 8)))
    return images_dir, masks_dir
