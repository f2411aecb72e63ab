"""Escape-time evaluation primitives for Mandelbrot rasters."""

from __future__ import annotations

import enum
import math
from dataclasses import dataclass
from typing import Optional, Union

import numpy as np
import tensorflow as tf

# Escape radius squared for the classic discrete mode and the default for the
# smooth mode. The larger threshold keeps the fractional count accurate.
CLASSIC_ESCAPE = 4.0
SMOOTH_ESCAPE = float(1 << 16)

# Never produced by the smoothing formula for a finite escape magnitude.
IN_SET = -math.inf
IN_SET_BYTE = 0


class RegionError(ValueError):
    """Raised when a region cannot be mapped onto the complex plane."""


class EvaluationMode(enum.Enum):
    SMOOTH = "smooth"
    DISCRETE = "discrete"

    @property
    def dtype(self) -> np.dtype:
        return np.dtype(np.float64) if self is EvaluationMode.SMOOTH else np.dtype(np.uint8)

    @property
    def default_threshold(self) -> float:
        return SMOOTH_ESCAPE if self is EvaluationMode.SMOOTH else CLASSIC_ESCAPE


@dataclass(frozen=True)
class Region:
    """Target resolution and the window of the complex plane it covers."""

    img_w: int
    img_h: int
    real_min: float
    real_max: float
    im_min: float
    im_max: float

    @property
    def size(self) -> int:
        return self.img_w * self.img_h

    def validate(self) -> "Region":
        if self.img_w < 1 or self.img_h < 1:
            raise RegionError(f"image size must be at least 1x1, got {self.img_w}x{self.img_h}")
        bounds = (self.real_min, self.real_max, self.im_min, self.im_max)
        if not all(math.isfinite(v) for v in bounds):
            raise RegionError(f"region bounds must be finite, got {bounds}")
        if not self.real_max > self.real_min:
            raise RegionError(f"real_max ({self.real_max}) must be greater than real_min ({self.real_min})")
        if not self.im_max > self.im_min:
            raise RegionError(f"im_max ({self.im_max}) must be greater than im_min ({self.im_min})")
        return self


def scale_convert(i, i_min, i_max, o_min, o_max):
    """Linearly map ``i`` from ``[i_min, i_max)`` onto ``[o_min, o_max]``.

    Accepts scalars or numpy arrays.
    """

    i01 = (i - i_min) / (i_max - i_min)
    return i01 * (o_max - o_min) + o_min


def resolve_threshold(iterations: int, mode: EvaluationMode, threshold: Optional[float]) -> float:
    if iterations < 1:
        raise ValueError(f"iterations must be at least 1, got {iterations}")
    if threshold is None:
        return mode.default_threshold
    if mode is EvaluationMode.DISCRETE:
        # The discrete palette is tuned for the classic radius.
        raise ValueError("the discrete mode always escapes at |z|^2 > 4; do not pass a threshold")
    threshold = float(threshold)
    # log2(log2(|z|^2)) is only defined once |z|^2 > 1.
    if not math.isfinite(threshold) or threshold < 1.0:
        raise ValueError(f"escape threshold must be a finite number >= 1, got {threshold}")
    return threshold


def discrete_color(step: int) -> int:
    return min(100 + 100 * step, 255)


def smooth_count(step, magnitude_sq):
    """Fractional iteration count for an orbit that escaped at ``step``."""

    log_z = np.log2(magnitude_sq)
    log_2 = np.log2(2.0)
    nu = np.log2(log_z / log_2) / log_2
    return step + 1.0 - nu


def evaluate_point(
    x: float,
    y: float,
    iterations: int,
    mode: EvaluationMode = EvaluationMode.SMOOTH,
    threshold: Optional[float] = None,
) -> Union[float, int]:
    """Evaluate a single plane point in double precision.

    Returns the escape value, or ``IN_SET`` (``IN_SET_BYTE`` in the discrete
    mode) when the orbit stays bounded for ``iterations`` steps.
    """

    threshold = resolve_threshold(iterations, mode, threshold)
    zr = 0.0
    zi = 0.0
    for i in range(iterations):
        tmp = zr * zr - zi * zi
        zi = zr * zi * 2.0
        zr = tmp
        zr += x
        zi += y

        magnitude_sq = zr * zr + zi * zi
        if magnitude_sq > threshold:
            if mode is EvaluationMode.DISCRETE:
                return discrete_color(i)
            return float(smooth_count(i, magnitude_sq))

    return IN_SET_BYTE if mode is EvaluationMode.DISCRETE else IN_SET


_POINTS_SPEC = tf.TensorSpec(shape=[None], dtype=tf.float64)


@tf.function(
    input_signature=(
        _POINTS_SPEC,
        _POINTS_SPEC,
        tf.TensorSpec(shape=[], dtype=tf.int32),
        tf.TensorSpec(shape=[], dtype=tf.float64),
    )
)
def _escape_run(xs: tf.Tensor, ys: tf.Tensor, max_iterations: tf.Tensor, threshold: tf.Tensor) -> tuple[tf.Tensor, tf.Tensor, tf.Tensor]:
    """Iterate ``z <- z*z + c`` until every point escaped or the bound is hit.

    Returns the frozen ``(zr, zi)`` of each point and the step at which it
    escaped, or ``-1`` for points that never did.
    """

    zr = tf.zeros_like(xs)
    zi = tf.zeros_like(ys)
    steps = tf.fill(tf.shape(xs), tf.constant(-1, dtype=tf.int32))
    active = tf.ones_like(xs, dtype=tf.bool)
    i = tf.constant(0, dtype=tf.int32)

    def cond(i, zr, zi, steps, active):
        return tf.logical_and(tf.less(i, max_iterations), tf.reduce_any(active))

    def body(i, zr, zi, steps, active):
        new_zr = zr * zr - zi * zi + xs
        new_zi = zr * zi * tf.constant(2.0, dtype=tf.float64) + ys
        zr = tf.where(active, new_zr, zr)
        zi = tf.where(active, new_zi, zi)
        escaped = tf.logical_and(active, zr * zr + zi * zi > threshold)
        steps = tf.where(escaped, i, steps)
        return i + 1, zr, zi, steps, tf.logical_and(active, tf.logical_not(escaped))

    _, zr, zi, steps, _ = tf.while_loop(cond, body, (i, zr, zi, steps, active))
    return zr, zi, steps


def evaluate_points(
    xs: np.ndarray,
    ys: np.ndarray,
    iterations: int,
    mode: EvaluationMode = EvaluationMode.SMOOTH,
    threshold: Optional[float] = None,
    *,
    device: Optional[str] = None,
    with_mask: bool = False,
):
    """Evaluate many plane points at once with the TensorFlow kernel.

    With ``with_mask`` the boolean escaped mask is returned alongside the
    values as ``(values, escaped)``.
    """

    threshold = resolve_threshold(iterations, mode, threshold)
    xs = np.ascontiguousarray(xs, dtype=np.float64).reshape(-1)
    ys = np.ascontiguousarray(ys, dtype=np.float64).reshape(-1)
    if xs.shape != ys.shape:
        raise ValueError(f"coordinate arrays differ in length: {xs.size} != {ys.size}")

    with tf.device(device if device is not None else "/CPU:0"):
        zr, zi, steps = _escape_run(
            tf.convert_to_tensor(xs),
            tf.convert_to_tensor(ys),
            tf.constant(iterations, dtype=tf.int32),
            tf.constant(threshold, dtype=tf.float64),
        )

    steps = steps.numpy()
    escaped = steps >= 0

    if mode is EvaluationMode.DISCRETE:
        out = np.full(xs.shape, IN_SET_BYTE, dtype=np.uint8)
        colors = np.minimum(100 + 100 * steps[escaped].astype(np.int64), 255)
        out[escaped] = colors.astype(np.uint8)
        return (out, escaped) if with_mask else out

    zr = zr.numpy()[escaped]
    zi = zi.numpy()[escaped]
    out = np.full(xs.shape, IN_SET, dtype=np.float64)
    out[escaped] = smooth_count(steps[escaped].astype(np.float64), zr * zr + zi * zi)
    return (out, escaped) if with_mask else out
