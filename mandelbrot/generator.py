"""Fan the escape-time kernel out over every pixel of an image."""

from __future__ import annotations

import os
import threading
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from typing import Callable, Optional

import numpy as np

from .renderer import (
    EvaluationMode,
    Region,
    evaluate_points,
    resolve_threshold,
    scale_convert,
)

DEFAULT_CHUNK_PIXELS = 16384


@dataclass(frozen=True)
class Grid:
    """Row-major escape values for a rendered region, indexed ``y * width + x``.

    ``escaped`` is the authoritative classification; ``values`` holds
    ``IN_SET`` (or ``IN_SET_BYTE``) wherever it is false.
    """

    values: np.ndarray
    width: int
    height: int
    mode: EvaluationMode
    escaped: np.ndarray

    def __len__(self) -> int:
        return int(self.values.size)

    @property
    def in_set(self) -> np.ndarray:
        return ~self.escaped

    def as_array(self) -> np.ndarray:
        return self.values.reshape(self.height, self.width)


class ProgressCounter:
    """Thread-safe progress sink that counts completed pixels."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._count = 0

    def __call__(self) -> None:
        self.increment()

    def increment(self) -> None:
        with self._lock:
            self._count += 1

    @property
    def count(self) -> int:
        with self._lock:
            return self._count


def _no_progress() -> None:
    pass


def region_from_center(resolution: int, real: float, imaginary: float, scale: float) -> Region:
    """Square region spanning ``center +/- scale`` on both axes."""

    return Region(
        img_w=resolution,
        img_h=resolution,
        real_min=real - scale,
        real_max=real + scale,
        im_min=imaginary - scale,
        im_max=imaginary + scale,
    )


def pixel_to_plane(region: Region, index, *, flip_y: bool = True) -> tuple[np.ndarray, np.ndarray]:
    """Map flat pixel indices to plane coordinates.

    With ``flip_y`` the first image row sits at the top of the window
    (``im_max``), which is what image files expect. Without it row 0 maps
    to ``im_min``.
    """

    index = np.asarray(index, dtype=np.int64)
    col = index % region.img_w
    row = index // region.img_w
    if flip_y:
        row = region.img_h - row
    x = scale_convert(col.astype(np.float64), 0, region.img_w, region.real_min, region.real_max)
    y = scale_convert(row.astype(np.float64), 0, region.img_h, region.im_min, region.im_max)
    return x, y


def _chunk_bounds(total: int, chunk: int) -> list[tuple[int, int]]:
    return [(start, min(start + chunk, total)) for start in range(0, total, chunk)]


def generate(
    region: Region,
    iterations: int,
    mode: EvaluationMode = EvaluationMode.SMOOTH,
    progress: Optional[Callable[[], None]] = None,
    *,
    threshold: Optional[float] = None,
    flip_y: bool = True,
    workers: Optional[int] = None,
    chunk_size: Optional[int] = None,
    device: Optional[str] = None,
) -> Grid:
    """Evaluate every pixel of ``region`` and return the dense grid.

    The index space is cut into chunks whose size depends only on
    ``chunk_size`` and the image width, so the output is identical for any
    ``workers`` value. ``progress`` is called once per finished pixel from
    the thread that computed it. ``threshold`` applies to the smooth mode
    only; passing one with the discrete mode raises ``ValueError``.
    """

    region.validate()
    mode = EvaluationMode(mode)
    resolve_threshold(iterations, mode, threshold)
    if workers is None:
        workers = os.cpu_count() or 1
    if workers < 1:
        raise ValueError(f"workers must be at least 1, got {workers}")
    if chunk_size is None:
        chunk_size = max(1, DEFAULT_CHUNK_PIXELS // region.img_w) * region.img_w
    if chunk_size < 1:
        raise ValueError(f"chunk_size must be at least 1, got {chunk_size}")
    progress = progress if progress is not None else _no_progress

    total = region.size
    values = np.empty(total, dtype=mode.dtype)
    escaped = np.empty(total, dtype=bool)

    def work(bounds: tuple[int, int]) -> None:
        start, stop = bounds
        xs, ys = pixel_to_plane(region, np.arange(start, stop), flip_y=flip_y)
        values[start:stop], escaped[start:stop] = evaluate_points(
            xs, ys, iterations, mode, threshold, device=device, with_mask=True
        )
        for _ in range(stop - start):
            progress()

    chunks = _chunk_bounds(total, chunk_size)
    if workers == 1 or len(chunks) == 1:
        for bounds in chunks:
            work(bounds)
    else:
        with ThreadPoolExecutor(max_workers=workers) as pool:
            for _ in pool.map(work, chunks):
                pass

    values.flags.writeable = False
    escaped.flags.writeable = False
    return Grid(values=values, width=region.img_w, height=region.img_h, mode=mode, escaped=escaped)
