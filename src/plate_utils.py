# %% ------------------------------------ Import libraries ------------------------------------ #
import math

import cv2
import numpy as np

# %% ------------------------------------ Constants ------------------------------------ #
MIN_BLOCK_SIZE = 3
MIN_KERNEL_SIZE = 1

# %% ------------------------------------ Functions ------------------------------------ #
def ensure_odd(n: int) -> int:
    """Return n if it is odd, otherwise n + 1."""
    n = int(n)
    return n if n % 2 != 0 else n + 1


def odd_kernel_size(n: int, minimum: int = MIN_KERNEL_SIZE) -> int:
    """Force a kernel size odd and never below a positive odd minimum."""
    minimum = ensure_odd(max(1, minimum))
    return max(minimum, ensure_odd(n))


def clamp(value: float, low: float, high: float) -> float:
    return min(high, max(low, value))


def round_half_up(value: float) -> int:
    """Round .5 away from zero for positives, the way pixel geometry is rounded here."""
    return int(math.floor(value + 0.5))


def ellipse_kernel(size: int) -> np.ndarray:
    size = odd_kernel_size(size)
    return cv2.getStructuringElement(cv2.MORPH_ELLIPSE, (size, size))


def circle_mask(
    shape: tuple[int, int],
    center: tuple[int, int],
    radius: int
) -> np.ndarray:
    """Filled circle of 255 on a zero uint8 canvas of the given (rows, cols) shape."""
    mask = np.zeros(shape[:2], dtype=np.uint8)
    if radius > 0:
        cv2.circle(mask, (int(center[0]), int(center[1])), int(radius), 255, -1)
    return mask


def parse_hex_color(hex_color: str) -> tuple[int, int, int]:
    """Parse '#rrggbb' into a BGR tuple for cv2 drawing calls."""
    normalized = hex_color.strip().lstrip("#")
    if len(normalized) != 6:
        raise ValueError(f"Expected a #rrggbb colour, got: {hex_color!r}")
    r = int(normalized[0:2], 16)
    g = int(normalized[2:4], 16)
    b = int(normalized[4:6], 16)
    return b, g, r
