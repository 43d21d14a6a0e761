"""
OpenCV-based plate preprocessing for colony counting.

Covers everything upstream of colony splitting and counting: loading,
grayscale conversion and blur, petri-dish localization, the square ROI around
the dish, binarization of the dish-masked ROI and morphological cleanup.

Usage:
    image = load_image("plate.jpg")
    gray = blur_gray(to_grayscale(image), blur_size=7)
    dish = locate_dish(gray)
    roi = extract_roi(dish, gray.shape)
    binary = binarize(roi.crop(mask_to_dish(gray, dish)), config.binarization)
    opened = morph_open(binary, config.morph_size)
"""

# %% ------------------------------------ Imports ------------------------------------ #
from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path

import cv2
import numpy as np
from loguru import logger

from pipeline_config import BinarizationConfig, ThresholdMode
from plate_utils import circle_mask, ellipse_kernel, odd_kernel_size, round_half_up

# %% ------------------------------------ Constants ------------------------------------ #
CANNY_LOW = 50
CANNY_HIGH = 150
ROI_MARGIN = 1.05  # ROI side relative to dish diameter

# %% ------------------------------------ Dataclass ------------------------------------ #
@dataclass(frozen=True)
class Dish:
    """Petri dish circle in source-image pixel coordinates."""
    center_x: int
    center_y: int
    radius: int


@dataclass(frozen=True)
class RoiRect:
    """Axis-aligned square crop around the dish, always inside the image."""
    x: int
    y: int
    width: int
    height: int

    def crop(self, image: np.ndarray) -> np.ndarray:
        return image[self.y:self.y + self.height, self.x:self.x + self.width]

    def to_local(self, x: float, y: float) -> tuple[float, float]:
        return x - self.x, y - self.y

    def to_source(self, x: float, y: float) -> tuple[float, float]:
        return x + self.x, y + self.y


# %% ------------------------------------ Functions ------------------------------------ #
def load_image(path: str | Path) -> np.ndarray:
    """Load an image from file as a BGR uint8 array."""
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"Image not found: {path}")

    image = cv2.imread(str(path), cv2.IMREAD_COLOR)
    if image is None:
        raise IOError(f"Failed to decode image: {path}")
    logger.debug(f"Loaded image: {path.name}, shape={image.shape}")
    return image


def to_grayscale(image: np.ndarray) -> np.ndarray:
    """Convert a BGR, BGRA or single-channel image to 8-bit grayscale."""
    if image.ndim == 2:
        return image.astype(np.uint8, copy=False)
    if image.shape[2] == 4:
        return cv2.cvtColor(image, cv2.COLOR_BGRA2GRAY)
    return cv2.cvtColor(image, cv2.COLOR_BGR2GRAY)


def to_bgr(image: np.ndarray) -> np.ndarray:
    """Three-channel view of the image, as needed by cv2.watershed and HSV conversion."""
    if image.ndim == 2:
        return cv2.cvtColor(image, cv2.COLOR_GRAY2BGR)
    if image.shape[2] == 4:
        return cv2.cvtColor(image, cv2.COLOR_BGRA2BGR)
    return image


def blur_gray(gray: np.ndarray, blur_size: int) -> np.ndarray:
    k = odd_kernel_size(blur_size)
    if k == 1:
        return gray.copy()
    return cv2.GaussianBlur(gray, (k, k), 0)


def locate_dish(blurred_gray: np.ndarray) -> Dish:
    """
    Find the petri dish as the external edge contour with the largest bounding box.

    Never fails: with no contour the dish falls back to the image center and
    half the smaller image dimension.
    """
    h, w = blurred_gray.shape[:2]
    fallback = Dish(w // 2, h // 2, max(1, min(w, h) // 2))

    edges = cv2.Canny(blurred_gray, CANNY_LOW, CANNY_HIGH)
    contours, _ = cv2.findContours(edges, cv2.RETR_EXTERNAL, cv2.CHAIN_APPROX_SIMPLE)

    best = None
    best_area = 0
    for contour in contours:
        x, y, cw, ch = cv2.boundingRect(contour)
        if cw * ch > best_area:
            best_area = cw * ch
            best = (x, y, cw, ch)

    if best is None:
        logger.warning(f"No dish contour found, using image-centred fallback {fallback}")
        return fallback

    x, y, cw, ch = best
    dish = Dish(
        center_x=x + round_half_up(cw / 2),
        center_y=y + round_half_up(ch / 2),
        radius=max(1, round_half_up(max(cw, ch) / 2)),
    )
    logger.debug(f"Dish located at ({dish.center_x}, {dish.center_y}), r={dish.radius}")
    return dish


def extract_roi(dish: Dish, image_shape: tuple[int, ...]) -> RoiRect:
    """Square ROI of side min(image, 1.05 x dish diameter) centred on the dish, shifted inside the image."""
    h, w = image_shape[:2]
    side = max(1, min(w, h, round_half_up(dish.radius * 2 * ROI_MARGIN)))
    x = min(max(0, round_half_up(dish.center_x - side / 2)), w - side)
    y = min(max(0, round_half_up(dish.center_y - side / 2)), h - side)
    return RoiRect(x, y, side, side)


def mask_to_dish(gray: np.ndarray, dish: Dish) -> np.ndarray:
    """Zero every pixel outside the dish disk."""
    mask = circle_mask(gray.shape, (dish.center_x, dish.center_y), dish.radius)
    return cv2.bitwise_and(gray, gray, mask=mask)


def invert_mask(binary: np.ndarray) -> np.ndarray:
    return cv2.bitwise_not(binary)


def binarize(gray_roi: np.ndarray, config: BinarizationConfig) -> np.ndarray:
    """Threshold the masked ROI to a 0/255 mask; colonies should end up white."""
    mode = config.mode
    if mode is ThresholdMode.OTSU:
        _, binary = cv2.threshold(gray_roi, 0, 255, cv2.THRESH_BINARY + cv2.THRESH_OTSU)
        masks = [binary]
    elif mode is ThresholdMode.FIXED:
        _, binary = cv2.threshold(gray_roi, config.fixed_level, 255, cv2.THRESH_BINARY)
        masks = [binary]
    elif mode in (ThresholdMode.ADAPTIVE_MEAN, ThresholdMode.ADAPTIVE_GAUSSIAN):
        method = (
            cv2.ADAPTIVE_THRESH_MEAN_C
            if mode is ThresholdMode.ADAPTIVE_MEAN
            else cv2.ADAPTIVE_THRESH_GAUSSIAN_C
        )
        masks = [
            cv2.adaptiveThreshold(gray_roi, 255, method, cv2.THRESH_BINARY, block, config.c)
            for block in config.block_sizes
        ]
    else:
        raise ValueError(f"Unsupported threshold mode: {mode}")

    if config.invert:
        masks = [invert_mask(m) for m in masks]

    # With two block sizes a pixel stays foreground only if both scales agree.
    binary = masks[0]
    for scale_mask in masks[1:]:
        binary = cv2.bitwise_and(binary, scale_mask)
    return binary


def morph_open(binary: np.ndarray, morph_size: int) -> np.ndarray:
    """Elliptical opening; a size of 1 leaves the mask untouched."""
    k = odd_kernel_size(morph_size)
    if k == 1:
        return binary.copy()
    return cv2.morphologyEx(binary, cv2.MORPH_OPEN, ellipse_kernel(k))


def prepare_plate(image: np.ndarray, blur_size: int) -> tuple[np.ndarray, Dish, RoiRect]:
    """Blur, locate the dish and return the dish-masked grayscale ROI with its geometry."""
    blurred = blur_gray(to_grayscale(image), blur_size)
    dish = locate_dish(blurred)
    roi = extract_roi(dish, blurred.shape)
    masked_roi = roi.crop(mask_to_dish(blurred, dish))
    return masked_roi, dish, roi
