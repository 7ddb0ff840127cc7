"""Public API for Mandelbrot rendering utilities."""

from .renderer import (
    ITERATION_LIMIT,
    Complex,
    Escaped,
    EscapeTime,
    InSet,
    escape_time,
    pixel_to_point,
    render_band,
)
from .dispatcher import (
    Band,
    allocate_pixels,
    default_worker_count,
    plan_bands,
    render_image,
)
from .parsing import parse_arg, parse_complex

__all__ = [
    "Band",
    "Complex",
    "EscapeTime",
    "Escaped",
    "ITERATION_LIMIT",
    "InSet",
    "allocate_pixels",
    "default_worker_count",
    "escape_time",
    "parse_arg",
    "parse_complex",
    "pixel_to_point",
    "plan_bands",
    "render_band",
    "render_image",
]
