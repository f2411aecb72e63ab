import math

import numpy as np
import pytest

from mandelbrot import (
    IN_SET,
    EvaluationMode,
    Grid,
    ProgressCounter,
    Region,
    RegionError,
    generate,
    pixel_to_plane,
    region_from_center,
)

REFERENCE = Region(img_w=100, img_h=100, real_min=-2.0, real_max=1.0, im_min=-1.5, im_max=1.5)


def _naive_reference(region, iterations):
    """Straight double-precision loop over every pixel, row by row."""

    out = []
    for py in range(region.img_h):
        for px in range(region.img_w):
            x = (px - 0) / (region.img_w - 0) * (region.real_max - region.real_min) + region.real_min
            y = (region.img_h - py - 0) / (region.img_h - 0) * (region.im_max - region.im_min) + region.im_min
            zr = zi = 0.0
            value = IN_SET
            for i in range(iterations):
                zr, zi = zr * zr - zi * zi + x, zr * zi * 2.0 + y
                if zr * zr + zi * zi > 65536.0:
                    value = i + 1.0 - math.log2(math.log2(zr * zr + zi * zi))
                    break
            out.append(value)
    return np.array(out)


@pytest.mark.parametrize("width,height", [(1, 1), (3, 5), (7, 2), (16, 16)])
def test_grid_has_one_value_per_pixel(width, height):
    region = Region(img_w=width, img_h=height, real_min=-2.0, real_max=1.0, im_min=-1.5, im_max=1.5)
    grid = generate(region, 20)
    assert len(grid) == width * height
    assert grid.as_array().shape == (height, width)


def test_pixel_to_plane_orientation():
    region = Region(img_w=4, img_h=4, real_min=-2.0, real_max=2.0, im_min=-2.0, im_max=2.0)
    index = np.arange(16)

    x, y = pixel_to_plane(region, index)
    np.testing.assert_allclose(x[:4], [-2.0, -1.0, 0.0, 1.0])
    # first row is the top of the window
    np.testing.assert_allclose(y[::4], [2.0, 1.0, 0.0, -1.0])

    _, y_lower = pixel_to_plane(region, index, flip_y=False)
    np.testing.assert_allclose(y_lower[::4], [-2.0, -1.0, 0.0, 1.0])


@pytest.mark.parametrize("flip_y", [True, False])
@pytest.mark.parametrize("iterations", [1, 50])
def test_origin_pixel_is_in_set(flip_y, iterations):
    region = Region(img_w=4, img_h=4, real_min=-2.0, real_max=2.0, im_min=-2.0, im_max=2.0)
    grid = generate(region, iterations, flip_y=flip_y)
    assert grid.as_array()[2, 2] == IN_SET
    assert grid.in_set[2 * 4 + 2]


def test_rejects_degenerate_regions():
    with pytest.raises(RegionError):
        generate(Region(img_w=0, img_h=10, real_min=-2.0, real_max=1.0, im_min=-1.5, im_max=1.5), 10)
    with pytest.raises(RegionError):
        generate(Region(img_w=10, img_h=0, real_min=-2.0, real_max=1.0, im_min=-1.5, im_max=1.5), 10)
    with pytest.raises(RegionError):
        generate(Region(img_w=10, img_h=10, real_min=1.0, real_max=1.0, im_min=-1.5, im_max=1.5), 10)


@pytest.mark.parametrize("kwargs", [dict(workers=0), dict(chunk_size=0), dict(threshold=-1.0)])
def test_rejects_bad_options(kwargs):
    with pytest.raises(ValueError):
        generate(REFERENCE, 10, **kwargs)


def test_rejects_zero_iterations():
    with pytest.raises(ValueError):
        generate(REFERENCE, 0)


@pytest.mark.parametrize("mode", list(EvaluationMode))
def test_worker_count_does_not_change_output(mode):
    region = Region(img_w=37, img_h=23, real_min=-2.0, real_max=0.6, im_min=-1.2, im_max=1.3)
    sequential = generate(region, 300, mode, workers=1, chunk_size=50)
    parallel = generate(region, 300, mode, workers=4, chunk_size=50)
    assert sequential.values.dtype == mode.dtype
    assert sequential.values.tobytes() == parallel.values.tobytes()


def test_chunking_does_not_change_classification():
    region = Region(img_w=40, img_h=30, real_min=-2.0, real_max=1.0, im_min=-1.5, im_max=1.5)
    whole = generate(region, 200, workers=1)
    split = generate(region, 200, workers=3, chunk_size=7)
    np.testing.assert_array_equal(whole.in_set, split.in_set)
    np.testing.assert_allclose(whole.values, split.values, rtol=1e-12)


def test_repeated_generation_is_identical():
    first = generate(REFERENCE, 100)
    second = generate(REFERENCE, 100)
    assert first.values.tobytes() == second.values.tobytes()


def test_progress_called_once_per_pixel():
    region = Region(img_w=31, img_h=17, real_min=-2.0, real_max=1.0, im_min=-1.5, im_max=1.5)
    counter = ProgressCounter()
    generate(region, 50, progress=counter, workers=8, chunk_size=13)
    assert counter.count == 31 * 17


def test_progress_accepts_plain_callable():
    calls = []
    generate(Region(img_w=3, img_h=2, real_min=-2.0, real_max=1.0, im_min=-1.5, im_max=1.5), 5,
             progress=lambda: calls.append(1), workers=1)
    assert len(calls) == 6


def test_worker_errors_propagate():
    def failing():
        raise RuntimeError("sink failed")

    with pytest.raises(RuntimeError, match="sink failed"):
        generate(REFERENCE, 10, progress=failing, workers=4, chunk_size=100)


def test_grid_is_read_only():
    grid = generate(Region(img_w=2, img_h=2, real_min=-2.0, real_max=1.0, im_min=-1.5, im_max=1.5), 10)
    assert isinstance(grid, Grid)
    with pytest.raises(ValueError):
        grid.values[0] = 1.0


def test_discrete_grid_in_set_marker():
    region = Region(img_w=4, img_h=4, real_min=-2.0, real_max=2.0, im_min=-2.0, im_max=2.0)
    grid = generate(region, 50, EvaluationMode.DISCRETE)
    assert grid.values.dtype == np.uint8
    assert grid.as_array()[2, 2] == 0
    assert set(np.unique(grid.values[~grid.in_set])) <= {100, 200, 255}


def test_generate_accepts_mode_names():
    region = Region(img_w=4, img_h=4, real_min=-2.0, real_max=2.0, im_min=-2.0, im_max=2.0)
    assert generate(region, 10, "discrete").mode is EvaluationMode.DISCRETE


def test_reference_scenario_matches_naive_loop():
    grid = generate(REFERENCE, 1000)
    expected = _naive_reference(REFERENCE, 1000)

    np.testing.assert_array_equal(grid.values == IN_SET, expected == IN_SET)
    np.testing.assert_allclose(grid.values, expected, rtol=1e-9, atol=1e-9)


def test_region_from_center():
    region = region_from_center(1024, -0.5, 0.0, 1.5)
    assert region == Region(img_w=1024, img_h=1024, real_min=-2.0, real_max=1.0, im_min=-1.5, im_max=1.5)


def test_escaped_pixel_with_value_minus_one_is_not_in_set():
    # pixel 6 maps to c = (4, 0), which escapes at step 0 with value -1
    region = Region(img_w=4, img_h=2, real_min=0.0, real_max=8.0, im_min=-1.0, im_max=1.0)
    grid = generate(region, 10, threshold=4.0, workers=1)
    assert grid.values[6] == pytest.approx(-1.0)
    assert grid.escaped[6]
    assert not grid.in_set[6]


def test_in_set_follows_escape_mask():
    grid = generate(REFERENCE, 200)
    np.testing.assert_array_equal(grid.in_set, ~grid.escaped)
    np.testing.assert_array_equal(grid.in_set, grid.values == IN_SET)
    assert not grid.escaped.flags.writeable


def test_discrete_rejects_threshold():
    with pytest.raises(ValueError):
        generate(REFERENCE, 10, EvaluationMode.DISCRETE, threshold=4.0)
