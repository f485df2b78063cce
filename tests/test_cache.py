"""Tests for the previous/next frame cache."""

from pathlib import Path

import numpy as np
import pytest

from polefuse.cache import (
    FLOW_FILE,
    PRIMARY_IMAGE_FILE,
    SECONDARY_IMAGE_FILE,
    FrameCacheEntry,
    is_cache_disabled,
    load_frame_cache,
    save_frame_cache,
)
from polefuse.errors import MissingResourceError, SerializationError
from polefuse.io import save_flow, write_image
from polefuse.masks import add_alpha_channel


@pytest.fixture
def entry(make_scene) -> FrameCacheEntry:
    """Cache entry of 16x16 BGRA images with a transparent corner."""
    size = 16
    primary = add_alpha_channel(make_scene(size))
    primary[:4, :4, 3] = 0
    secondary = add_alpha_channel(make_scene(size, seed=1))
    flow = np.full((size, size, 2), 0.25, dtype=np.float32)
    return FrameCacheEntry(flow=flow, primary=primary, secondary=secondary)


@pytest.mark.parametrize("value", [None, "NONE", "none"])
def test_disabled_values(value):
    """Test None and the NONE sentinel disable seeding."""
    assert is_cache_disabled(value)
    assert load_frame_cache(value) is None


def test_real_directory_is_enabled(tmp_path: Path):
    """Test an ordinary directory path enables seeding."""
    assert not is_cache_disabled(tmp_path)


def test_save_writes_fixed_layout(tmp_path: Path, entry):
    """Test the entry lands at the fixed relative paths."""
    save_frame_cache(tmp_path, entry)

    assert (tmp_path / "flow" / "flow_bottom_secondary.bin").is_file()
    assert (tmp_path / "flow_images" / "bottomImage.png").is_file()
    assert (tmp_path / "flow_images" / "bottomImage2.png").is_file()


def test_save_then_load(tmp_path: Path, entry):
    """Test the next frame reads back this frame's field and images."""
    save_frame_cache(tmp_path, entry)

    loaded = load_frame_cache(str(tmp_path))

    assert loaded is not None
    np.testing.assert_allclose(loaded.flow, entry.flow)
    np.testing.assert_array_equal(loaded.primary, entry.primary)
    np.testing.assert_array_equal(loaded.secondary, entry.secondary)


def test_missing_flow_file(tmp_path: Path, entry):
    """Test an incomplete cache directory raises MissingResourceError."""
    write_image(tmp_path / PRIMARY_IMAGE_FILE, entry.primary)
    write_image(tmp_path / SECONDARY_IMAGE_FILE, entry.secondary)

    with pytest.raises(MissingResourceError):
        load_frame_cache(tmp_path)


def test_missing_cached_image(tmp_path: Path, entry):
    """Test a cache without its working images raises MissingResourceError."""
    save_flow(entry.flow, tmp_path / FLOW_FILE)

    with pytest.raises(MissingResourceError):
        load_frame_cache(tmp_path)


def test_flow_image_size_disagreement(tmp_path: Path, entry):
    """Test a field whose size differs from the cached images is rejected."""
    save_frame_cache(tmp_path, entry)
    save_flow(np.zeros((8, 8, 2), dtype=np.float32), tmp_path / FLOW_FILE)

    with pytest.raises(SerializationError, match="does not match"):
        load_frame_cache(tmp_path)


def test_cached_image_without_alpha(tmp_path: Path, entry, make_scene):
    """Test a 3-channel cached image is rejected."""
    save_frame_cache(tmp_path, entry)
    write_image(tmp_path / PRIMARY_IMAGE_FILE, make_scene(16))

    with pytest.raises(SerializationError, match="BGRA"):
        load_frame_cache(tmp_path)


def test_cached_image_undecodable(tmp_path: Path, entry):
    """Test a cached image that exists but cannot be decoded is malformed."""
    save_frame_cache(tmp_path, entry)
    (tmp_path / PRIMARY_IMAGE_FILE).write_bytes(b"\x89PNG garbage")

    with pytest.raises(SerializationError, match="cannot be decoded"):
        load_frame_cache(tmp_path)
