"""
Dual-hue colony classes and colour consistency.

Hue uses the 8-bit OpenCV encoding (0-179), so hue windows wrap at 180. The
two classes are counted independently; a pixel inside both windows counts
towards both classes.
"""

# %% ------------------------------------ Imports ------------------------------------ #
from __future__ import annotations

from dataclasses import dataclass, field

import cv2
import numpy as np
from loguru import logger
from skimage import measure

from colony_counter import ColonyRegion, ComponentCount, count_components, restrict_to
from image_processing import RoiRect, to_bgr
from pipeline_config import ColorSplitConfig, HueClass
from plate_utils import ellipse_kernel

# %% ------------------------------------ Constants ------------------------------------ #
HUE_PERIOD = 180
HUE_MAX = HUE_PERIOD - 1
MAX_BGR_DISTANCE = float(np.sqrt(3) * 255)

# %% ------------------------------------ Dataclass ------------------------------------ #
@dataclass
class ColorClassCount:
    class_a: ComponentCount = field(default_factory=ComponentCount)
    class_b: ComponentCount = field(default_factory=ComponentCount)
    seeds_a: np.ndarray | None = None
    seeds_b: np.ndarray | None = None

    @property
    def count(self) -> int:
        return self.class_a.count + self.class_b.count


# %% ------------------------------------ Functions ------------------------------------ #
def circular_hue_dist(a: float, b: float) -> float:
    """Distance between two hues on the 180-step hue circle."""
    d = abs(a - b) % HUE_PERIOD
    return min(d, HUE_PERIOD - d)


def to_hsv(image: np.ndarray) -> np.ndarray:
    return cv2.cvtColor(to_bgr(image), cv2.COLOR_BGR2HSV)


def hue_mask(hsv: np.ndarray, hue_class: HueClass) -> np.ndarray:
    """Pixels inside the hue window and above the saturation/value floors."""
    center, tol = hue_class.hue_center, hue_class.hue_tolerance
    s_min, v_min = hue_class.sat_min, hue_class.val_min

    if center - tol < 0 or center + tol > HUE_MAX:
        # Window crosses the 0/179 seam: union of the low-end and high-end parts.
        low_end = cv2.inRange(
            hsv,
            np.array([0, s_min, v_min], dtype=np.uint8),
            np.array([(center + tol) % HUE_PERIOD, 255, 255], dtype=np.uint8),
        )
        high_end = cv2.inRange(
            hsv,
            np.array([(center - tol + HUE_PERIOD) % HUE_PERIOD, s_min, v_min], dtype=np.uint8),
            np.array([HUE_MAX, 255, 255], dtype=np.uint8),
        )
        return cv2.bitwise_or(low_end, high_end)

    return cv2.inRange(
        hsv,
        np.array([max(0, center - tol), s_min, v_min], dtype=np.uint8),
        np.array([min(HUE_MAX, center + tol), 255, 255], dtype=np.uint8),
    )


def class_seeds(class_mask: np.ndarray, erode_size: int, dilate_size: int) -> np.ndarray:
    seeds = cv2.erode(class_mask, ellipse_kernel(erode_size))
    return cv2.dilate(seeds, ellipse_kernel(dilate_size))


def separate_color_classes(
    image: np.ndarray,
    roi: RoiRect,
    inner_mask: np.ndarray,
    config: ColorSplitConfig,
    min_area: int,
    hsv: np.ndarray | None = None
) -> ColorClassCount:
    """Count hue class A and B colonies inside the inner circle of the ROI."""
    if hsv is None:
        hsv = to_hsv(image)

    counts = []
    seeds = []
    for hue_class in (config.class_a, config.class_b):
        class_mask = restrict_to(roi.crop(hue_mask(hsv, hue_class)), inner_mask)
        class_seed = class_seeds(class_mask, config.erode_size, config.dilate_size)
        counts.append(count_components(class_seed, min_area, roi))
        seeds.append(class_seed)

    result = ColorClassCount(counts[0], counts[1], seeds[0], seeds[1])
    logger.debug(f"Colour split: A={result.class_a.count}, B={result.class_b.count}")
    return result


def filter_consistent_regions(
    counted: ComponentCount,
    color_roi: np.ndarray,
    tolerance: float
) -> ComponentCount:
    """
    Drop regions whose mean colour strays from the typical colony colour.

    The reference colour is the per-channel median of all region means; a
    region is kept when its BGR distance to it, relative to the largest
    possible BGR distance, is within the tolerance.
    """
    if counted.count == 0 or counted.labels is None:
        return counted

    wanted = {region.label for region in counted.regions}
    props = measure.regionprops(counted.labels, intensity_image=to_bgr(color_roi))
    mean_colors = {
        prop.label: np.asarray(prop.intensity_mean, dtype=np.float64)
        for prop in props
        if prop.label in wanted
    }
    reference = np.median(np.stack(list(mean_colors.values())), axis=0)

    kept: list[ColonyRegion] = []
    for region in counted.regions:
        distance = float(np.linalg.norm(mean_colors[region.label] - reference)) / MAX_BGR_DISTANCE
        if distance <= tolerance:
            kept.append(region)
    if len(kept) < counted.count:
        logger.debug(f"Colour consistency dropped {counted.count - len(kept)} of {counted.count} regions")
    return ComponentCount(regions=kept, labels=counted.labels)
