"""Turn escape-value grids into encodable pixel bytes."""

from __future__ import annotations

import enum

import numpy as np
import PIL.Image

try:
    from matplotlib import colormaps as _mpl_colormaps
except ImportError:  # Matplotlib < 3.5
    from matplotlib import cm as _mpl_colormaps  # type: ignore

from .generator import Grid


class ColorMode(enum.Enum):
    GRAYSCALE = "grayscale"
    RGB = "rgb"
    COLORMAP = "colormap"

    @property
    def channels(self) -> int:
        return 1 if self is ColorMode.GRAYSCALE else 3

    @property
    def pil_mode(self) -> str:
        return "L" if self is ColorMode.GRAYSCALE else "RGB"


def _intensity(grid: Grid) -> np.ndarray:
    values = np.clip(grid.values, 0, 255).astype(np.uint8)
    return np.where(grid.in_set, np.uint8(0), values)


def to_bytes(grid: Grid, mode: ColorMode = ColorMode.GRAYSCALE) -> bytes:
    """Map each grid value to one grayscale byte or an ``(0, 0, v)`` triple."""

    mode = ColorMode(mode)
    intensity = _intensity(grid)
    if mode is ColorMode.GRAYSCALE:
        return intensity.tobytes()
    if mode is ColorMode.RGB:
        rgb = np.zeros((intensity.size, 3), dtype=np.uint8)
        rgb[:, 2] = intensity
        return rgb.tobytes()
    raise ValueError("colormap rendering needs a colormap name; use colorize()")


def parse_hex_color(hex_color: str) -> tuple[int, int, int]:
    hex_color = hex_color.lstrip('#')
    if len(hex_color) != 6:
        raise ValueError('inside_color must be in the form #RRGGBB.')
    try:
        return tuple(int(hex_color[i:i + 2], 16) for i in (0, 2, 4))
    except ValueError as exc:
        raise ValueError('inside_color must contain only hexadecimal digits.') from exc


def colorize(
    grid: Grid,
    colormap: str = "twilight_shifted",
    *,
    inside_color: tuple[int, int, int] = (0, 0, 0),
    clip_low: float = 0.5,
    clip_high: float = 99.5,
    gamma: float = 0.85,
    invert: bool = False,
) -> bytes:
    """Tone-map escaped points through a matplotlib colormap.

    Values are clipped to the ``[clip_low, clip_high]`` percentiles of the
    escaped points, normalised and gamma corrected. In-set pixels take
    ``inside_color``. Returns interleaved RGB bytes.
    """

    cmap = _mpl_colormaps.get_cmap(colormap)
    inside = grid.in_set
    v = grid.values.astype(np.float64, copy=True)
    eps = 1e-12

    selection = v[~inside]
    if selection.size:
        lo = np.percentile(selection, clip_low)
        hi = np.percentile(selection, clip_high)
        hi = max(hi, lo + eps)
        v = (np.clip(v, lo, hi) - lo) / (hi - lo)
    else:
        v.fill(0.0)
    v = np.clip(v, 0.0, 1.0) ** gamma

    cmap_input = 1.0 - v if invert else v
    rgb = np.uint8(np.clip(np.asarray(cmap(cmap_input))[:, :3] * 255, 0, 255))
    rgb[inside] = np.asarray(inside_color, dtype=np.uint8)
    return rgb.tobytes()


def to_image(grid: Grid, mode: ColorMode = ColorMode.GRAYSCALE, **colormap_options) -> PIL.Image.Image:
    """Wrap the color-mapped grid in a Pillow image of the grid's size.

    ``colormap_options`` are passed to :func:`colorize` and ignored by the
    other modes.
    """

    mode = ColorMode(mode)
    if mode is ColorMode.COLORMAP:
        data = colorize(grid, **colormap_options)
    else:
        data = to_bytes(grid, mode)
    return PIL.Image.frombytes(mode.pil_mode, (grid.width, grid.height), data)
