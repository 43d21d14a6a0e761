import numpy as np
import pytest

from plate_utils import (
    circle_mask,
    clamp,
    ellipse_kernel,
    ensure_odd,
    odd_kernel_size,
    parse_hex_color,
    round_half_up,
)


@pytest.mark.parametrize("n, expected", [(4, 5), (5, 5), (0, 1), (-2, -1), (-3, -3)])
def test_ensure_odd(n, expected):
    assert ensure_odd(n) == expected


def test_odd_kernel_size_never_below_minimum():
    assert odd_kernel_size(0) == 1
    assert odd_kernel_size(-4) == 1
    assert odd_kernel_size(4) == 5
    assert odd_kernel_size(2, 3) == 3
    assert odd_kernel_size(2, 4) == 5


def test_clamp_and_round_half_up():
    assert clamp(12, 3, 9) == 9
    assert clamp(-1, 0, 1) == 0
    assert round_half_up(4.5) == 5
    assert round_half_up(5.5) == 6
    assert round_half_up(4.49) == 4


def test_ellipse_kernel_is_odd_square():
    assert ellipse_kernel(4).shape == (5, 5)
    assert ellipse_kernel(1).shape == (1, 1)


def test_circle_mask():
    mask = circle_mask((20, 30), (15, 10), 5)
    assert mask.shape == (20, 30)
    assert mask[10, 15] == 255
    assert mask[0, 0] == 0
    assert not circle_mask((10, 10), (5, 5), 0).any()


def test_parse_hex_color_returns_bgr():
    assert parse_hex_color("#00ff00") == (0, 255, 0)
    assert parse_hex_color("#ff0080") == (128, 0, 255)
    with pytest.raises(ValueError):
        parse_hex_color("#fff")
    with pytest.raises(ValueError):
        parse_hex_color("#gggggg")


def test_circle_mask_is_uint8():
    assert circle_mask((5, 5), (2, 2), 1).dtype == np.uint8
