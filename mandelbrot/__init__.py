"""Public API for Mandelbrot rendering utilities."""

from .renderer import (
    CLASSIC_ESCAPE,
    IN_SET,
    SMOOTH_ESCAPE,
    EvaluationMode,
    Region,
    RegionError,
    evaluate_point,
    evaluate_points,
    scale_convert,
)
from .generator import (
    Grid,
    ProgressCounter,
    generate,
    pixel_to_plane,
    region_from_center,
)
from .colors import ColorMode, colorize, parse_hex_color, to_bytes, to_image

__all__ = [
    "CLASSIC_ESCAPE",
    "ColorMode",
    "EvaluationMode",
    "Grid",
    "IN_SET",
    "ProgressCounter",
    "Region",
    "RegionError",
    "SMOOTH_ESCAPE",
    "colorize",
    "evaluate_point",
    "evaluate_points",
    "generate",
    "parse_hex_color",
    "pixel_to_plane",
    "region_from_center",
    "scale_convert",
    "to_bytes",
    "to_image",
]
