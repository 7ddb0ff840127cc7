"""Split an image into horizontal bands and render them in parallel."""

from __future__ import annotations

import math
import os
from concurrent.futures import ThreadPoolExecutor, wait
from dataclasses import dataclass
from typing import Optional

import numpy as np

from .renderer import Complex, pixel_to_point, render_band


@dataclass(frozen=True)
class Band:
    """A run of full-width rows of the image and the plane region they cover."""

    index: int
    top: int
    height: int
    start: int
    stop: int
    top_left: Complex
    bottom_right: Complex


def default_worker_count() -> int:
    return os.cpu_count() or 1


def _check_image_size(image_size: tuple[int, int]) -> None:
    width, height = image_size
    if width <= 0 or height <= 0:
        raise ValueError(f"image dimensions must be positive, got {width}x{height}")


def allocate_pixels(image_size: tuple[int, int]) -> np.ndarray:
    """Allocate the flat grayscale buffer for an image of ``image_size``."""

    _check_image_size(image_size)
    return np.zeros(image_size[0] * image_size[1], dtype=np.uint8)


def plan_bands(
    image_size: tuple[int, int],
    top_left: Complex,
    bottom_right: Complex,
    workers: int,
) -> list[Band]:
    """Partition the image into ``workers`` bands of whole rows.

    Every band gets ``ceil(height / workers)`` rows except the last
    non-empty one, which is cut at the end of the buffer. When there are
    more workers than rows the surplus bands are empty.

    Band corners are mapped against the whole image so neighbouring bands
    meet on the same plane coordinate.
    """

    _check_image_size(image_size)
    if workers <= 0:
        raise ValueError(f"worker count must be positive, got {workers}")

    width, height = image_size
    total = width * height
    rows_per_band = max(1, math.ceil(height / workers))

    bands = []
    for i in range(workers):
        start = min(i * rows_per_band * width, total)
        stop = min((i + 1) * rows_per_band * width, total)
        top = start // width
        band_height = (stop - start) // width
        bands.append(
            Band(
                index=i,
                top=top,
                height=band_height,
                start=start,
                stop=stop,
                top_left=pixel_to_point(image_size, (0, top), top_left, bottom_right),
                bottom_right=pixel_to_point(image_size, (width, top + band_height), top_left, bottom_right),
            )
        )
    return bands


def render_image(
    image_size: tuple[int, int],
    top_left: Complex,
    bottom_right: Complex,
    *,
    workers: Optional[int] = None,
    out: Optional[np.ndarray] = None,
) -> np.ndarray:
    """Render the whole image with one worker thread per band.

    ``out`` may supply the flat ``uint8`` buffer to fill; otherwise one is
    allocated. Each worker only ever touches the slice of its own band. The
    call returns once every worker has finished, and re-raises the first
    worker failure after the others have been joined.
    """

    if workers is None:
        workers = default_worker_count()

    if out is None:
        pixels = allocate_pixels(image_size)
    else:
        _check_image_size(image_size)
        expected = image_size[0] * image_size[1]
        if out.dtype != np.uint8 or out.shape != (expected,):
            raise ValueError(
                f"output buffer must be a flat uint8 array of {expected} samples, "
                f"got {out.dtype} array of shape {out.shape}"
            )
        pixels = out

    bands = plan_bands(image_size, top_left, bottom_right, workers)

    with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="band") as executor:
        futures = [
            executor.submit(
                render_band,
                pixels[band.start:band.stop],
                (image_size[0], band.height),
                band.top_left,
                band.bottom_right,
            )
            for band in bands
        ]
        wait(futures)

    for future in futures:
        future.result()

    return pixels
