# %% ------------------------------------ Imports ------------------------------------ #
from __future__ import annotations

from dataclasses import dataclass, field

import cv2
import numpy as np

from image_processing import Dish, RoiRect
from plate_utils import circle_mask, clamp, round_half_up

# %% ------------------------------------ Dataclass ------------------------------------ #
@dataclass
class ColonyRegion:
    """A connected component that passed the area filter."""
    label: int
    area_px: int
    centroid: tuple[float, float]  # (x, y) in source-image coordinates


@dataclass
class ComponentCount:
    regions: list[ColonyRegion] = field(default_factory=list)
    labels: np.ndarray | None = None  # int32 label map of the counted mask

    @property
    def count(self) -> int:
        return len(self.regions)


# %% ------------------------------------ Functions ------------------------------------ #
def inner_circle_mask(roi: RoiRect, dish: Dish, effective_radius_pct: float) -> np.ndarray:
    """Disk of the effective counting radius, in ROI-local coordinates, excluding the dish rim."""
    radius = round_half_up(dish.radius * effective_radius_pct / 100)
    local_x, local_y = roi.to_local(dish.center_x, dish.center_y)
    center = (
        round_half_up(clamp(local_x, 0, roi.width)),
        round_half_up(clamp(local_y, 0, roi.height)),
    )
    return circle_mask((roi.height, roi.width), center, radius)


def restrict_to(mask: np.ndarray, region: np.ndarray) -> np.ndarray:
    return cv2.bitwise_and(mask, mask, mask=region)


def count_components(
    mask: np.ndarray,
    min_area: int,
    roi: RoiRect | None = None
) -> ComponentCount:
    """8-connected components with area >= min_area; centroids mapped back to source coordinates."""
    n_labels, labels, stats, centroids = cv2.connectedComponentsWithStats(
        mask, connectivity=8, ltype=cv2.CV_32S
    )
    regions = []
    for label in range(1, n_labels):
        area = int(stats[label, cv2.CC_STAT_AREA])
        if area < min_area:
            continue
        cx, cy = float(centroids[label, 0]), float(centroids[label, 1])
        if roi is not None:
            cx, cy = roi.to_source(cx, cy)
        regions.append(ColonyRegion(label=label, area_px=area, centroid=(cx, cy)))
    return ComponentCount(regions=regions, labels=labels)


def count_in_inner_circle(
    mask: np.ndarray,
    dish: Dish,
    roi: RoiRect,
    effective_radius_pct: float,
    min_area: int
) -> ComponentCount:
    """Count an ROI mask inside the effective radius of the dish."""
    inner = inner_circle_mask(roi, dish, effective_radius_pct)
    return count_components(restrict_to(mask, inner), min_area, roi)
