"""
Watershed splitting of touching colonies.

Seeds come from repeated erosion of the opened foreground, from regional
maxima of its distance transform, or from the union of both. Seed blobs are
labelled from 2 upward, the area well outside the foreground is labelled 1
(background) and the ring in between is left 0 for cv2.watershed to flood.
The flooded label map is reduced back to a binary mask: basins > 1, minus the
-1 ridge lines and their 8-neighbours, intersected with the original
foreground so that no basin leaks into the dish background.
"""

# %% ------------------------------------ Imports ------------------------------------ #
from __future__ import annotations

from dataclasses import dataclass, replace

import cv2
import numpy as np
from loguru import logger
from scipy import ndimage

from image_processing import morph_open, to_bgr
from pipeline_config import (
    DistanceThresholdMode,
    DistanceType,
    SeedStrategy,
    WatershedConfig,
)
from plate_utils import clamp, ellipse_kernel, odd_kernel_size, round_half_up

# %% ------------------------------------ Constants ------------------------------------ #
ALPHA_FLOOR = 0.02  # alpha=0 keeps peaks above 2% of the normalized distance
ALPHA_SPAN = 0.38  # alpha=1 keeps peaks above 40%
RELATIVE_FLOOR = 0.2
RELATIVE_SPAN = 0.5
BRIDGE_BREAK_SIZE = 3
BACKGROUND_DILATE_ITERATIONS = 3

_RECT_3x3 = cv2.getStructuringElement(cv2.MORPH_RECT, (3, 3))

# %% ------------------------------------ Dataclass ------------------------------------ #
@dataclass
class SplitResult:
    """Outputs of one watershed pass over an opened foreground mask."""
    separated: np.ndarray  # uint8 0/255
    seeds: np.ndarray  # uint8 0/255
    markers: np.ndarray  # int32 label map, -1 on ridges
    seed_count: int
    distance: np.ndarray | None = None  # uint8 normalized distance map


# %% ------------------------------------ Seeds ------------------------------------ #
def alpha_to_threshold(alpha: float) -> int:
    """Map split strength in [0, 1] to an 8-bit distance cut between 2% and 40%."""
    alpha = clamp(alpha, 0.0, 1.0)
    return int(clamp(round_half_up((ALPHA_FLOOR + alpha * ALPHA_SPAN) * 255), 0, 255))


def erosion_seeds(opened: np.ndarray, kernel_size: int, iterations: int) -> np.ndarray:
    """Shrink blobs until touching colonies fall apart, then break any thin bridge left."""
    eroded = cv2.erode(opened, ellipse_kernel(kernel_size), iterations=int(clamp(iterations, 1, 10)))
    return morph_open(eroded, BRIDGE_BREAK_SIZE)


def normalized_distance(
    opened: np.ndarray,
    distance_type: DistanceType = DistanceType.L2,
    mask_size: int = 5
) -> np.ndarray:
    """Distance transform of the foreground, min-max scaled to 0..255 uint8."""
    dist = cv2.distanceTransform(opened, distance_type.cv_flag, mask_size)
    dist_norm = cv2.normalize(dist, None, 0, 1.0, cv2.NORM_MINMAX)
    return np.clip(np.rint(dist_norm * 255), 0, 255).astype(np.uint8)


def regional_maxima(dist8u: np.ndarray) -> np.ndarray:
    """Pixels left unchanged by a 3x3 dilation."""
    dilated = cv2.dilate(dist8u, _RECT_3x3)
    return np.where(cv2.absdiff(dist8u, dilated) == 0, 255, 0).astype(np.uint8)


def component_relative_gate(
    opened: np.ndarray,
    dist8u: np.ndarray,
    alpha: float
) -> np.ndarray:
    """Keep pixels whose distance reaches a fraction of their own blob's maximum distance."""
    n_labels, labels = cv2.connectedComponents(opened, connectivity=8)
    if n_labels <= 1:
        return np.zeros_like(opened)
    component_max = np.zeros(n_labels, dtype=np.float64)
    component_max[1:] = ndimage.maximum(dist8u, labels=labels, index=np.arange(1, n_labels))
    cut = component_max[labels] * (RELATIVE_FLOOR + clamp(alpha, 0.0, 1.0) * RELATIVE_SPAN)
    keep = (labels > 0) & (dist8u >= cut) & (dist8u > 0)
    return np.where(keep, 255, 0).astype(np.uint8)


def distance_seeds(opened: np.ndarray, config: WatershedConfig) -> tuple[np.ndarray, np.ndarray]:
    """Regional maxima of the distance map gated by the configured distance cut."""
    dist8u = normalized_distance(opened, config.distance_type, config.distance_mask_size)
    peaks = regional_maxima(dist8u)

    mode = config.threshold_mode
    if mode is DistanceThresholdMode.RELATIVE:
        gate = component_relative_gate(opened, dist8u, config.split_strength)
    elif mode in (DistanceThresholdMode.ALPHA, DistanceThresholdMode.ABSOLUTE):
        cut = (
            config.threshold_abs
            if mode is DistanceThresholdMode.ABSOLUTE
            else alpha_to_threshold(config.split_strength)
        )
        _, gate = cv2.threshold(dist8u, cut, 255, cv2.THRESH_BINARY)
    else:
        raise ValueError(f"Unsupported distance threshold mode: {mode}")

    peaks = cv2.bitwise_and(peaks, gate)
    if odd_kernel_size(config.peak_cleanup_size) >= 3:
        peaks = morph_open(peaks, config.peak_cleanup_size)
    return peaks, dist8u


def make_seeds(opened: np.ndarray, config: WatershedConfig) -> tuple[np.ndarray, np.ndarray | None]:
    strategy = config.seed_strategy
    if strategy is SeedStrategy.ERODE:
        return erosion_seeds(opened, config.erode_kernel_size, config.erode_iterations), None
    if strategy is SeedStrategy.DISTANCE:
        return distance_seeds(opened, config)
    if strategy is SeedStrategy.HYBRID:
        eroded = erosion_seeds(opened, config.erode_kernel_size, config.erode_iterations)
        absolute = replace(config, threshold_mode=DistanceThresholdMode.ABSOLUTE)
        peaks, dist8u = distance_seeds(opened, absolute)
        return cv2.bitwise_or(eroded, peaks), dist8u
    raise ValueError(f"Unsupported seed strategy: {strategy}")


# %% ------------------------------------ Watershed ------------------------------------ #
def build_markers(seeds: np.ndarray, opened: np.ndarray) -> tuple[np.ndarray, int]:
    """Seeds labelled 2.., far background 1, the uncertain ring around the foreground 0."""
    n_labels, labels = cv2.connectedComponents(seeds, connectivity=8, ltype=cv2.CV_32S)
    markers = labels + 1
    sure_bg = cv2.dilate(opened, _RECT_3x3, iterations=BACKGROUND_DILATE_ITERATIONS)
    markers[(sure_bg > 0) & (seeds == 0)] = 0
    return markers.astype(np.int32), n_labels - 1


def split_touching(
    opened: np.ndarray,
    color_roi: np.ndarray,
    config: WatershedConfig
) -> SplitResult:
    """
    Separate touching colonies in the opened ROI mask with a seeded watershed.

    Ridge lines are widened to 3 px before basins are kept, so each region
    loses up to one pixel along every seam with a neighbouring basin or the
    background. Blobs close to min_area can fall under the filter because of it.
    """
    seeds, dist8u = make_seeds(opened, config)
    markers, seed_count = build_markers(seeds, opened)

    if seed_count == 0:
        logger.debug("Watershed found no seeds; nothing survives this configuration")
        return SplitResult(np.zeros_like(opened), seeds, markers, 0, dist8u)

    markers = cv2.watershed(to_bgr(color_roi).copy(), markers)

    ridges = cv2.dilate(np.where(markers == -1, 255, 0).astype(np.uint8), _RECT_3x3)
    separated = np.where((markers > 1) & (ridges == 0), 255, 0).astype(np.uint8)
    separated = cv2.bitwise_and(separated, opened)
    logger.debug(f"Watershed flooded {seed_count} seeds ({config.seed_strategy.value})")
    return SplitResult(separated, seeds, markers, seed_count, dist8u)
