from __future__ import annotations

import cv2
import numpy as np
import pytest

from pipeline_config import BinarizationConfig, PipelineConfig, ThresholdMode

PLATE_SIZE = 200
DISH_CENTER = (100, 100)
DISH_RADIUS = 90
DISH_GRAY = 180
COLONY_GRAY = 40
COLONY_RADIUS = 10
LEFT_COLONY = (70, 100)
RIGHT_COLONY = (130, 100)


def draw_plate(colonies=(), size: int = PLATE_SIZE) -> np.ndarray:
    """Black background, light dish, filled circles for the given ((x, y), radius, bgr) colonies."""
    image = np.zeros((size, size, 3), dtype=np.uint8)
    cv2.circle(image, DISH_CENTER, DISH_RADIUS, (DISH_GRAY,) * 3, -1)
    for center, radius, color in colonies:
        cv2.circle(image, center, radius, color, -1)
    return image


@pytest.fixture
def two_colony_plate() -> np.ndarray:
    gray = (COLONY_GRAY,) * 3
    return draw_plate([(LEFT_COLONY, COLONY_RADIUS, gray), (RIGHT_COLONY, COLONY_RADIUS, gray)])


@pytest.fixture
def colored_plate() -> np.ndarray:
    """One green (hue 60) and one magenta (hue 150) colony."""
    return draw_plate([
        (LEFT_COLONY, COLONY_RADIUS, (0, 200, 0)),
        (RIGHT_COLONY, COLONY_RADIUS, (200, 0, 200)),
    ])


@pytest.fixture
def plate_config() -> PipelineConfig:
    return PipelineConfig(
        blur_size=5,
        morph_size=5,
        binarization=BinarizationConfig(
            mode=ThresholdMode.ADAPTIVE_GAUSSIAN,
            block_size_min=33,
            c=10,
            invert=True,
        ),
        effective_radius_pct=84,
        min_area=20,
    )


@pytest.fixture
def dumbbell_mask() -> np.ndarray:
    """Two disks (r=10) joined by a 9 px tall bar: one blob that should split into two."""
    mask = np.zeros((120, 120), dtype=np.uint8)
    cv2.circle(mask, (45, 60), 10, 255, -1)
    cv2.circle(mask, (75, 60), 10, 255, -1)
    cv2.rectangle(mask, (45, 56), (75, 64), 255, -1)
    return mask


@pytest.fixture
def dumbbell_color(dumbbell_mask) -> np.ndarray:
    return cv2.cvtColor(cv2.bitwise_not(dumbbell_mask), cv2.COLOR_GRAY2BGR)
