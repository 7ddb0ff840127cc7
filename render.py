import os
import re
import sys
import time
from dataclasses import dataclass
from pathlib import Path

_VERBOSE_FLAGS = {"--verbose", "-v"}
_cli_verbose = any(arg in _VERBOSE_FLAGS for arg in sys.argv[1:])
_env_log_level = os.environ.get("TF_CPP_MIN_LOG_LEVEL")
_suppress_messages = (not _cli_verbose) and _env_log_level != "0"

if _suppress_messages and _env_log_level is None:
    os.environ["TF_CPP_MIN_LOG_LEVEL"] = "3"

VERBOSE = _cli_verbose


def log(message, *args, **kwargs):
    if VERBOSE:
        print(message, *args, **kwargs)


import tensorflow as tf
import numpy as np

if _suppress_messages:
    tf.get_logger().setLevel("ERROR")

import PIL.Image

from mandelbrot import (
    Complex,
    default_worker_count,
    parse_arg,
    parse_complex,
    plan_bands,
    render_image,
)

from argparse import ArgumentParser, ArgumentTypeError

_NEGATIVE_VALUE = re.compile(r"^-\.?\d")

# Formats Pillow writes losslessly for single-channel 8-bit images.
_FORMAT_SUFFIXES = {
    ".png": "png",
    ".bmp": "bmp",
    ".tif": "tiff",
    ".tiff": "tiff",
    ".pgm": "pgm",
}


@dataclass(frozen=True)
class RenderParameters:
    """Everything a single render of the Mandelbrot set needs."""

    width: int
    height: int
    top_left: Complex
    bottom_right: Complex
    workers: int

    @property
    def image_size(self) -> tuple[int, int]:
        return self.width, self.height


def resolution(text: str) -> tuple[int, int]:
    pair = parse_arg(text, "x", int)
    if pair is None:
        raise ArgumentTypeError(f"expected WIDTHxHEIGHT, got {text!r}")
    if pair[0] <= 0 or pair[1] <= 0:
        raise ArgumentTypeError(f"width and height must be positive, got {text!r}")
    return pair


def complex_point(text: str) -> Complex:
    point = parse_complex(text)
    if point is None:
        raise ArgumentTypeError(f"expected RE,IM, got {text!r}")
    return point


def worker_count(text: str) -> int:
    try:
        value = int(text)
    except ValueError:
        raise ArgumentTypeError(f"expected an integer, got {text!r}") from None
    if value <= 0:
        raise ArgumentTypeError(f"must be positive, got {value}")
    return value


class PlaneArgumentParser(ArgumentParser):
    """Argument parser that reads ``-1.2,0.35`` as a value, not an option."""

    def _parse_optional(self, arg_string):
        if _NEGATIVE_VALUE.match(arg_string):
            return None
        return super()._parse_optional(arg_string)


def build_parser():
    parser = PlaneArgumentParser(
        description="Render the Mandelbrot set as a grayscale image.",
        epilog="Example: %(prog)s mandelbrot.png 1000x750 -1.20,0.35 -1,0.20",
    )

    parser.add_argument('output', type=Path, metavar='IMAGE_FILE',
                        help='file to write the rendered image to')

    parser.add_argument('resolution', type=resolution, metavar='RESOLUTION',
                        help='image size in pixels, as WIDTHxHEIGHT')

    parser.add_argument('top_left', type=complex_point, metavar='UPPER_LEFT',
                        help='complex coordinate of the upper left corner, as RE,IM')

    parser.add_argument('bottom_right', type=complex_point, metavar='LOWER_RIGHT',
                        help='complex coordinate of the lower right corner, as RE,IM')

    parser.add_argument('--workers', type=worker_count, dest='workers', metavar='WORKERS',
                        default=None,
                        help='number of bands rendered in parallel. Default: number of CPUs.')

    parser.add_argument('--format', type=str, dest='format', metavar='FORMAT',
                        choices=sorted(set(_FORMAT_SUFFIXES.values())), default=None,
                        help='image file format. Default: inferred from IMAGE_FILE, falling back to png.')

    parser.add_argument('-v', '--verbose', action='store_true',
                        help='Enable verbose logging, including TensorFlow diagnostics.')

    return parser


def resolve_image_format(opt, parser: ArgumentParser) -> str:
    suffix = opt.output.suffix.lower()
    inferred = _FORMAT_SUFFIXES.get(suffix)
    if opt.format is None:
        return inferred or "png"
    if inferred is not None and inferred != opt.format:
        parser.error(f"IMAGE_FILE extension {opt.output.suffix} does not match --format {opt.format}.")
    return opt.format


def _pil_format_name(ext: str) -> str:
    upper = ext.upper()
    if upper == "PGM":
        return "PPM"
    return upper


def write_image(pixels: np.ndarray, image_size: tuple[int, int], output_path: Path, image_format: str) -> None:
    """Write the flat grayscale buffer ``pixels`` to ``output_path``."""

    width, height = image_size
    image = PIL.Image.fromarray(pixels.reshape(height, width))
    image.save(str(output_path), format=_pil_format_name(image_format))


def main(argv=None):
    parser = build_parser()
    opt = parser.parse_args(argv)

    image_format = resolve_image_format(opt, parser)

    global VERBOSE
    VERBOSE = bool(opt.verbose)

    log("TensorFlow version: %s" % tf.__version__)

    width, height = opt.resolution
    params = RenderParameters(
        width=width,
        height=height,
        top_left=opt.top_left,
        bottom_right=opt.bottom_right,
        workers=opt.workers or default_worker_count(),
    )

    log("Rendering %dx%d with %d workers" % (params.width, params.height, params.workers))
    if VERBOSE:
        for band in plan_bands(params.image_size, params.top_left, params.bottom_right, params.workers):
            log("  band %d: rows %d-%d" % (band.index, band.top, band.top + band.height))

    started = time.perf_counter()
    pixels = render_image(
        params.image_size,
        params.top_left,
        params.bottom_right,
        workers=params.workers,
    )
    log("Rendered in %.3fs" % (time.perf_counter() - started))

    write_image(pixels, params.image_size, opt.output, image_format)
    log("Wrote %s" % opt.output)


if __name__ == '__main__':
    main()
