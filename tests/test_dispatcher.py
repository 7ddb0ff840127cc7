import threading

import numpy as np
import pytest

from mandelbrot import (
    Complex,
    allocate_pixels,
    default_worker_count,
    pixel_to_point,
    plan_bands,
    render_band,
    render_image,
)
from mandelbrot import dispatcher

# Plane extents that divide evenly into the image size, so every mapped
# coordinate is exact and banded and unbanded renders sample the same points.
TOP_LEFT = Complex(-2.0, 1.5)
BOTTOM_RIGHT = Complex(1.0, -1.5)
IMAGE_SIZE = (64, 48)


def test_default_worker_count_is_positive():
    assert default_worker_count() >= 1


def test_allocate_pixels():
    pixels = allocate_pixels((7, 3))
    assert pixels.dtype == np.uint8
    assert pixels.shape == (21,)


@pytest.mark.parametrize("size", [(0, 10), (10, 0), (-1, 5)])
def test_allocate_pixels_rejects_empty_image(size):
    with pytest.raises(ValueError):
        allocate_pixels(size)


def test_plan_bands_even_split():
    bands = plan_bands((10, 8), TOP_LEFT, BOTTOM_RIGHT, 4)
    assert [band.height for band in bands] == [2, 2, 2, 2]
    assert [band.top for band in bands] == [0, 2, 4, 6]
    assert [(band.start, band.stop) for band in bands] == [(0, 20), (20, 40), (40, 60), (60, 80)]


def test_plan_bands_truncates_last_band():
    bands = plan_bands((10, 10), TOP_LEFT, BOTTOM_RIGHT, 4)
    assert [band.height for band in bands] == [3, 3, 3, 1]
    assert bands[-1].stop == 100


def test_plan_bands_more_workers_than_rows():
    bands = plan_bands((8, 3), TOP_LEFT, BOTTOM_RIGHT, 5)
    assert len(bands) == 5
    assert [band.height for band in bands] == [1, 1, 1, 0, 0]
    assert all(band.start == band.stop == 24 for band in bands[3:])


@pytest.mark.parametrize("workers", [1, 2, 3, 5, 7, 48, 64])
def test_plan_bands_cover_buffer_once(workers):
    width, height = IMAGE_SIZE
    bands = plan_bands(IMAGE_SIZE, TOP_LEFT, BOTTOM_RIGHT, workers)
    assert len(bands) == workers
    assert bands[0].start == 0
    for previous, band in zip(bands, bands[1:]):
        assert band.start == previous.stop
    assert bands[-1].stop == width * height
    assert sum(band.height for band in bands) == height


def test_plan_bands_corners_follow_whole_image():
    bands = plan_bands(IMAGE_SIZE, TOP_LEFT, BOTTOM_RIGHT, 3)
    assert bands[0].top_left == TOP_LEFT
    assert bands[-1].bottom_right == BOTTOM_RIGHT
    for previous, band in zip(bands, bands[1:]):
        assert band.top_left.im == previous.bottom_right.im
        assert band.top_left == pixel_to_point(IMAGE_SIZE, (0, band.top), TOP_LEFT, BOTTOM_RIGHT)


def test_plan_bands_rejects_no_workers():
    with pytest.raises(ValueError):
        plan_bands(IMAGE_SIZE, TOP_LEFT, BOTTOM_RIGHT, 0)


def _single_band():
    width, height = IMAGE_SIZE
    pixels = np.zeros(width * height, dtype=np.uint8)
    render_band(pixels, IMAGE_SIZE, TOP_LEFT, BOTTOM_RIGHT)
    return pixels


@pytest.mark.parametrize("workers", [1, 2, 3, 4, 5, 7, 60])
def test_banded_render_matches_single_band(workers):
    pixels = render_image(IMAGE_SIZE, TOP_LEFT, BOTTOM_RIGHT, workers=workers)
    np.testing.assert_array_equal(pixels, _single_band())


def test_render_image_default_workers():
    pixels = render_image(IMAGE_SIZE, TOP_LEFT, BOTTOM_RIGHT)
    np.testing.assert_array_equal(pixels, _single_band())


def test_render_image_is_deterministic():
    first = render_image(IMAGE_SIZE, TOP_LEFT, BOTTOM_RIGHT, workers=4)
    second = render_image(IMAGE_SIZE, TOP_LEFT, BOTTOM_RIGHT, workers=4)
    np.testing.assert_array_equal(first, second)


def test_render_image_has_set_and_escaped_pixels():
    pixels = render_image(IMAGE_SIZE, TOP_LEFT, BOTTOM_RIGHT, workers=2)
    width, height = IMAGE_SIZE
    image = pixels.reshape(height, width)
    # Column 42, row 24 samples -0.03125 on the real axis, inside the set.
    assert image[24, 42] == 0
    # The top left corner escapes after one update.
    assert image[0, 0] == 254


def test_render_image_fills_supplied_buffer():
    width, height = IMAGE_SIZE
    out = np.full(width * height, 17, dtype=np.uint8)
    result = render_image(IMAGE_SIZE, TOP_LEFT, BOTTOM_RIGHT, workers=3, out=out)
    assert result is out
    np.testing.assert_array_equal(out, _single_band())


@pytest.mark.parametrize("out", [
    np.zeros(10, dtype=np.uint8),
    np.zeros(64 * 48, dtype=np.int32),
    np.zeros((48, 64), dtype=np.uint8),
])
def test_render_image_rejects_bad_buffer(out):
    with pytest.raises(ValueError):
        render_image(IMAGE_SIZE, TOP_LEFT, BOTTOM_RIGHT, workers=2, out=out)


def test_render_image_rejects_empty_image():
    with pytest.raises(ValueError):
        render_image((0, 48), TOP_LEFT, BOTTOM_RIGHT, workers=2)


def test_render_image_runs_each_band_on_its_own_slice(monkeypatch):
    calls = []
    lock = threading.Lock()

    def fake_render_band(pixels, band_size, top_left, bottom_right):
        with lock:
            calls.append((band_size, pixels.size, threading.current_thread().name))
        pixels[:] = band_size[1]

    monkeypatch.setattr(dispatcher, "render_band", fake_render_band)
    pixels = render_image((4, 10), TOP_LEFT, BOTTOM_RIGHT, workers=3)

    assert sorted(size for size, _, _ in calls) == [(4, 2), (4, 4), (4, 4)]
    assert all(count == size[0] * size[1] for size, count, _ in calls)
    assert all(name.startswith("band") for _, _, name in calls)
    assert pixels.tolist() == [4] * 32 + [2] * 8


def test_render_image_propagates_worker_failure(monkeypatch):
    def failing_render_band(pixels, band_size, top_left, bottom_right):
        if band_size[1] == 2:
            raise MemoryError("band buffer")
        pixels[:] = 1

    monkeypatch.setattr(dispatcher, "render_band", failing_render_band)
    with pytest.raises(MemoryError):
        render_image((4, 10), TOP_LEFT, BOTTOM_RIGHT, workers=3)
