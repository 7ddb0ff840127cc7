"""Rendering primitives for Mandelbrot bands."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Union

import numpy as np
import tensorflow as tf

ESCAPE_RADIUS_SQR = 4.0
ITERATION_LIMIT = 255


@dataclass(frozen=True)
class Complex:
    """A point on the complex plane."""

    re: float
    im: float

    def add(self, other: Complex) -> Complex:
        return Complex(self.re + other.re, self.im + other.im)

    def multiply(self, other: Complex) -> Complex:
        return Complex(
            self.re * other.re - self.im * other.im,
            self.re * other.im + self.im * other.re,
        )

    def norm_sqr(self) -> float:
        # Squared so the escape test never needs a square root.
        return self.re * self.re + self.im * self.im

    __add__ = add
    __mul__ = multiply


@dataclass(frozen=True)
class Escaped:
    """The orbit left the radius-2 disc after ``count`` iterations."""

    count: int


@dataclass(frozen=True)
class InSet:
    """The iteration limit was reached without proving divergence."""


EscapeTime = Union[Escaped, InSet]

ORIGIN = Complex(0.0, 0.0)


def escape_time(c: Complex, limit: int) -> EscapeTime:
    """Determine the escape time for ``c`` using at most ``limit`` iterations.

    The magnitude test happens before each update, so a point that is
    already outside the disc reports ``Escaped(0)``. A count equal to
    ``limit`` is never produced.
    """

    z = ORIGIN
    for i in range(limit):
        if z.norm_sqr() > ESCAPE_RADIUS_SQR:
            return Escaped(i)
        z = z * z + c
    return InSet()


def pixel_to_point(
    image_size: tuple[int, int],
    pixel: tuple[int, int],
    top_left: Complex,
    bottom_right: Complex,
) -> Complex:
    """Map a pixel position to the point it samples on the complex plane.

    ``image_size`` is ``(width, height)`` and ``pixel`` is ``(column, row)``;
    both corners of the image, ``(0, 0)`` and ``(width, height)``, are valid
    positions and map exactly onto ``top_left`` and ``bottom_right``.

    Rows grow downwards while the imaginary axis grows upwards, hence the
    subtraction for the imaginary part.
    """

    width = bottom_right.re - top_left.re
    height = top_left.im - bottom_right.im
    return Complex(
        top_left.re + pixel[0] * width / image_size[0],
        top_left.im - pixel[1] * height / image_size[1],
    )


def _sample_grid(
    band_size: tuple[int, int],
    top_left: Complex,
    bottom_right: Complex,
) -> tuple[np.ndarray, np.ndarray]:
    """Vectorized :func:`pixel_to_point` over every pixel of a band."""

    w, h = band_size
    width = np.float64(bottom_right.re - top_left.re)
    height = np.float64(top_left.im - bottom_right.im)
    cols = np.arange(w, dtype=np.float64)
    rows = np.arange(h, dtype=np.float64)
    re = np.float64(top_left.re) + cols * width / np.float64(w)
    im = np.float64(top_left.im) - rows * height / np.float64(h)
    return np.meshgrid(re, im)


_GRID_SPEC = tf.TensorSpec(shape=[None, None], dtype=tf.float64)


@tf.function
def _escape_step(
    i: tf.Tensor,
    cr: tf.Tensor,
    ci: tf.Tensor,
    zr: tf.Tensor,
    zi: tf.Tensor,
    counts: tf.Tensor,
    active: tf.Tensor,
) -> tuple[tf.Tensor, tf.Tensor, tf.Tensor, tf.Tensor]:
    """Test then advance every orbit that has not escaped yet."""

    norm_sqr = zr * zr + zi * zi
    escaped = tf.logical_and(active, norm_sqr > ESCAPE_RADIUS_SQR)
    counts = tf.where(escaped, i, counts)
    active = tf.logical_and(active, tf.logical_not(escaped))

    # Same operation order as Complex.multiply followed by Complex.add.
    new_zr = zr * zr - zi * zi + cr
    new_zi = zr * zi + zi * zr + ci
    zr = tf.where(active, new_zr, zr)
    zi = tf.where(active, new_zi, zi)
    return zr, zi, counts, active


@tf.function(input_signature=[_GRID_SPEC, _GRID_SPEC, tf.TensorSpec(shape=[], dtype=tf.int32)])
def _escape_shades(cr: tf.Tensor, ci: tf.Tensor, limit: tf.Tensor) -> tf.Tensor:
    """Run the escape-time iteration over a grid and shade the result.

    Escaped samples become ``255 - count``; samples still bounded at
    ``limit`` become 0.
    """

    i = tf.constant(0, dtype=tf.int32)
    zr = tf.zeros_like(cr)
    zi = tf.zeros_like(ci)
    counts = tf.fill(tf.shape(cr), tf.constant(-1, dtype=tf.int32))
    active = tf.ones_like(cr, tf.bool)

    def cond(i, zr, zi, counts, active):
        return tf.logical_and(tf.less(i, limit), tf.reduce_any(active))

    def body(i, zr, zi, counts, active):
        zr, zi, counts, active = _escape_step(i, cr, ci, zr, zi, counts, active)
        return i + 1, zr, zi, counts, active

    _, _, _, counts, _ = tf.while_loop(cond, body, (i, zr, zi, counts, active))

    shades = tf.where(counts < 0, tf.zeros_like(counts), ITERATION_LIMIT - counts)
    return tf.cast(shades, tf.uint8)


def render_band(
    pixels: np.ndarray,
    band_size: tuple[int, int],
    top_left: Complex,
    bottom_right: Complex,
) -> None:
    """Render a rectangle of the Mandelbrot set into ``pixels`` in place.

    ``pixels`` is a flat ``uint8`` buffer, or a view into a larger one, that
    holds ``band_size[0] * band_size[1]`` grayscale samples row by row.
    ``top_left`` and ``bottom_right`` are the points on the complex plane at
    the band's corners; the band is its own coordinate frame.
    """

    w, h = band_size
    if pixels.shape != (w * h,):
        raise ValueError(f"band of {w}x{h} needs {w * h} pixels, got buffer of shape {pixels.shape}")
    if w == 0 or h == 0:
        return

    re, im = _sample_grid(band_size, top_left, bottom_right)
    with tf.device("/CPU:0"):
        shades = _escape_shades(
            tf.convert_to_tensor(re, dtype=tf.float64),
            tf.convert_to_tensor(im, dtype=tf.float64),
            tf.constant(ITERATION_LIMIT, dtype=tf.int32),
        )
    pixels[:] = shades.numpy().reshape(-1)
