import os
import sys
import threading
import warnings
from argparse import ArgumentParser
from dataclasses import dataclass
from pathlib import Path

_VERBOSE_FLAGS = {"--verbose", "-v"}
_cli_verbose = any(arg in _VERBOSE_FLAGS for arg in sys.argv[1:])
_env_log_level = os.environ.get("TF_CPP_MIN_LOG_LEVEL")
_suppress_messages = (not _cli_verbose) and _env_log_level != "0"

if _suppress_messages and _env_log_level is None:
    os.environ["TF_CPP_MIN_LOG_LEVEL"] = "3"

if _suppress_messages:
    warnings.filterwarnings(
        "ignore",
        message=r"Protobuf gencode version .* is exactly one major version older than the runtime version .*",
        category=UserWarning,
        module="google.protobuf",
    )

VERBOSE = _cli_verbose


def log(message, *args, **kwargs):
    if VERBOSE:
        print(message, *args, **kwargs)


import tensorflow as tf

if _suppress_messages:
    tf.get_logger().setLevel("ERROR")
    for handler in tf.get_logger().handlers:
        handler.setLevel("ERROR")

import PIL.Image
from tqdm import tqdm

from mandelbrot import (
    ColorMode,
    EvaluationMode,
    Region,
    RegionError,
    generate,
    parse_hex_color,
    region_from_center,
    to_image,
)

# Mirrors the original refresh cap of the terminal progress bar.
PROGRESS_REFRESH_SECONDS = 0.2


@dataclass(frozen=True)
class RenderConfig:
    output_path: Path
    image_format: str
    iterations: int
    resolution: int
    supersample: int
    progress: bool
    color: ColorMode
    style: EvaluationMode
    threshold: float | None
    flip_y: bool
    workers: int | None
    colormap: str
    inside_color: tuple[int, int, int]
    region: Region


def build_parser():
    parser = ArgumentParser(description='Render the Mandelbrot set to an image file.')

    parser.add_argument('real', type=float, nargs='?', default=-0.5,
                        help='real part of the image center', metavar='REAL')

    parser.add_argument('imaginary', type=float, nargs='?', default=0.0,
                        help='imaginary part of the image center', metavar='IMAGINARY')

    parser.add_argument('scale', type=float, nargs='?', default=1.5,
                        help='half-width of the window in the complex plane; smaller number = more zoom',
                        metavar='SCALE')

    parser.add_argument('-o', '--output', type=str, default='output.png',
                        help='where to save the generated image')

    parser.add_argument('--iterations', type=int, default=1000,
                        help='maximum number of iterations', metavar='ITERATIONS')

    parser.add_argument('--resolution', type=int, default=1024,
                        help='resolution of the (square) output image', metavar='RESOLUTION')

    parser.add_argument('--supersample', type=int, default=2,
                        help='render at RESOLUTION * SUPERSAMPLE and downsample for anti-aliasing; 1 disables it',
                        metavar='FACTOR')

    parser.add_argument('-p', '--progress', action='store_true',
                        help='display a progress bar')

    parser.add_argument('--color', choices=[m.value for m in ColorMode], default=ColorMode.GRAYSCALE.value,
                        help='how escape values become pixels')

    parser.add_argument('--style', choices=[m.value for m in EvaluationMode], default=EvaluationMode.SMOOTH.value,
                        help='smooth (fractional) or discrete escape counts')

    parser.add_argument('--escape-radius-squared', type=float, dest='threshold', default=None,
                        help='escape threshold on |z|^2 for the smooth style (default 65536)',
                        metavar='THRESHOLD')

    parser.add_argument('--origin', choices=['upper', 'lower'], default='upper',
                        help='"upper" puts the top of the plane window in the first image row')

    parser.add_argument('--workers', type=int, default=None,
                        help='number of worker threads (default: one per CPU)', metavar='WORKERS')

    parser.add_argument('--colormap', type=str, default='twilight_shifted',
                        help='matplotlib colormap used with --color colormap (e.g. "viridis", "inferno")',
                        metavar='COLORMAP')

    parser.add_argument('--inside-color', type=str, default='#000000',
                        help='hex color for points inside the set with --color colormap')

    parser.add_argument('--format', type=str, default=None,
                        help='file format for the image. Can be any extension supported by Pillow. '
                             'Default: taken from --output, else "png".',
                        metavar='FORMAT')

    parser.add_argument('-v', '--verbose', action='store_true',
                        help='Enable verbose logging, including TensorFlow diagnostics.')

    return parser


def resolve_render_config(opt, parser: ArgumentParser) -> RenderConfig:
    if opt.iterations < 1:
        parser.error("--iterations must be at least 1.")
    if opt.resolution < 1:
        parser.error("--resolution must be at least 1.")
    if opt.supersample < 1:
        parser.error("--supersample must be at least 1.")
    if opt.workers is not None and opt.workers < 1:
        parser.error("--workers must be at least 1.")
    if opt.threshold is not None and not opt.threshold >= 1:
        parser.error("--escape-radius-squared must be at least 1.")

    style = EvaluationMode(opt.style)
    if style is EvaluationMode.DISCRETE and opt.threshold is not None:
        parser.error("--escape-radius-squared only applies to the smooth style.")

    output_path = Path(opt.output).expanduser()
    if output_path.exists() and output_path.is_dir():
        parser.error("--output must point to a file, not a directory.")

    suffix = output_path.suffix.lower().lstrip(".")
    image_format = (opt.format or suffix or "png").lower().lstrip(".")
    if suffix:
        if opt.format and suffix != image_format:
            parser.error(f"--output extension .{suffix} does not match --format {image_format}.")
    else:
        output_path = output_path.with_suffix(f".{image_format}")

    try:
        inside_color = parse_hex_color(opt.inside_color)
    except ValueError as exc:
        parser.error(str(exc))

    region = region_from_center(opt.resolution * opt.supersample, opt.real, opt.imaginary, opt.scale)
    try:
        region.validate()
    except RegionError as exc:
        parser.error(f"invalid view: {exc}")

    return RenderConfig(
        output_path=output_path.resolve(),
        image_format=image_format,
        iterations=opt.iterations,
        resolution=opt.resolution,
        supersample=opt.supersample,
        progress=bool(opt.progress),
        color=ColorMode(opt.color),
        style=style,
        threshold=opt.threshold,
        flip_y=opt.origin == 'upper',
        workers=opt.workers,
        colormap=opt.colormap,
        inside_color=inside_color,
        region=region,
    )


class ProgressBar:
    """Progress sink feeding a tqdm bar; safe to call from worker threads."""

    def __init__(self, total: int, flush_every: int = 4096) -> None:
        self._bar = tqdm(total=total, unit='px', unit_scale=True, mininterval=PROGRESS_REFRESH_SECONDS)
        self._lock = threading.Lock()
        self._pending = 0
        self._flush_every = flush_every

    def __call__(self) -> None:
        with self._lock:
            self._pending += 1
            if self._pending >= self._flush_every:
                self._bar.update(self._pending)
                self._pending = 0

    def close(self) -> None:
        with self._lock:
            if self._pending:
                self._bar.update(self._pending)
                self._pending = 0
        self._bar.close()


def _pil_format_name(ext: str) -> str:
    upper = ext.upper()
    if upper == "JPG":
        return "JPEG"
    if upper == "TIF":
        return "TIFF"
    return upper


def write_single_image(image: PIL.Image.Image, output_path: Path, image_format: str) -> None:
    """Write a single image to ``output_path`` using the provided format."""

    pil_format = _pil_format_name(image_format)
    output_path.parent.mkdir(parents=True, exist_ok=True)
    image.save(str(output_path), format=pil_format)


def render_image(config: RenderConfig) -> PIL.Image.Image:
    """Generate, color and (when supersampling) downsample the configured view."""

    bar = ProgressBar(config.region.size) if config.progress else None
    try:
        grid = generate(
            config.region,
            config.iterations,
            config.style,
            bar,
            threshold=config.threshold,
            flip_y=config.flip_y,
            workers=config.workers,
        )
    finally:
        if bar is not None:
            bar.close()

    log("In set: %d of %d pixels" % (int(grid.in_set.sum()), len(grid)))

    image = to_image(grid, config.color, colormap=config.colormap, inside_color=config.inside_color)

    if config.supersample > 1:
        log("Downsampling %dx%d -> %dx%d" % (grid.width, grid.height, config.resolution, config.resolution))
        image = image.resize((config.resolution, config.resolution), PIL.Image.Resampling.LANCZOS)
    return image


def main():
    parser = build_parser()
    opt = parser.parse_args()

    global VERBOSE
    VERBOSE = bool(opt.verbose)

    config = resolve_render_config(opt, parser)
    log("TensorFlow version: %s" % tf.__version__)
    log("Region: %s" % (config.region,))

    print("Generating image...")
    image = render_image(config)

    print("Saving image...")
    try:
        write_single_image(image, config.output_path, config.image_format)
    except (OSError, ValueError, KeyError) as e:
        print(f"Failed to save image: {e}")
        sys.exit(1)

    print("Done.")


if __name__ == '__main__':
    main()
