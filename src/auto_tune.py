"""
Grid-search auto-tuning of the binarization and morphology parameters.

The search space is a lazy, restartable generator of candidates; scoring is a
plain function of one candidate, so the two can be tested apart. The score is
the colony count inside the inner circle and the first candidate reaching the
best count wins. After the search, hue class A is calibrated once from the
colours sampled inside the colonies the winning parameters detect.

Usage:
    result = auto_tune(image, PipelineConfig.from_sensitivity(6))
    tuned_config = result.config
"""

# %% ------------------------------------ Imports ------------------------------------ #
from __future__ import annotations

import math
from dataclasses import dataclass, field, replace
from typing import Iterator

import cv2
import numpy as np
from loguru import logger
from tqdm import tqdm

from color_split import HUE_PERIOD, class_seeds, hue_mask, to_hsv
from colony_counter import count_components, count_in_inner_circle, inner_circle_mask, restrict_to
from image_processing import Dish, RoiRect, binarize, morph_open, prepare_plate
from pipeline_config import BinarizationConfig, HueClass, PipelineConfig, ThresholdMode
from plate_utils import clamp, round_half_up

# %% ------------------------------------ Constants ------------------------------------ #
MIN_CALIBRATION_SAMPLES = 20
HUE_TOLERANCE_RANGE = (6, 40)
HUE_TOLERANCE_PERCENTILE = 0.8
SAT_VAL_PERCENTILE = 0.2
DEFAULT_SAT_VAL_MIN = 40
DEFAULT_HUE_SPREAD = 10

# %% ------------------------------------ Search space ------------------------------------ #
@dataclass(frozen=True)
class SearchSpace:
    """Finite parameter grid explored by the tuner."""
    blur_sizes: tuple[int, ...] = (5, 9, 13)
    morph_sizes: tuple[int, ...] = (3, 5, 7)
    modes: tuple[ThresholdMode, ...] = (
        ThresholdMode.OTSU,
        ThresholdMode.ADAPTIVE_MEAN,
        ThresholdMode.ADAPTIVE_GAUSSIAN,
        ThresholdMode.FIXED,
    )
    adaptive_blocks: tuple[int, ...] = (11, 17, 23)
    adaptive_cs: tuple[float, ...] = (-6, -4, -2, 0, 2)
    fixed_levels: tuple[int, ...] = (64, 96, 128, 160, 192)
    inverts: tuple[bool, ...] = (True, False)
    seed_erode_sizes: tuple[int, ...] = (1, 3, 5, 7)
    seed_dilate_sizes: tuple[int, ...] = (3, 5, 7, 9)

    def __len__(self) -> int:
        per_blur = 0
        for mode in self.modes:
            per_blur += len(_mode_settings(self, mode))
        return len(self.blur_sizes) * per_blur * len(self.inverts) * len(self.morph_sizes)


@dataclass(frozen=True)
class TuneCandidate:
    blur_size: int
    morph_size: int
    binarization: BinarizationConfig


def _mode_settings(space: SearchSpace, mode: ThresholdMode) -> list[dict]:
    if mode is ThresholdMode.OTSU:
        return [{}]
    if mode is ThresholdMode.FIXED:
        return [{"fixed_level": level} for level in space.fixed_levels]
    if mode in (ThresholdMode.ADAPTIVE_MEAN, ThresholdMode.ADAPTIVE_GAUSSIAN):
        return [
            {"block_size_min": block, "block_size_max": None, "c": c}
            for block in space.adaptive_blocks
            for c in space.adaptive_cs
        ]
    raise ValueError(f"Unsupported threshold mode: {mode}")


def iter_candidates(space: SearchSpace, base: BinarizationConfig) -> Iterator[TuneCandidate]:
    """Lazily enumerate blur → mode → mode settings → invert → morph candidates."""
    for blur in space.blur_sizes:
        for mode in space.modes:
            for settings in _mode_settings(space, mode):
                for invert in space.inverts:
                    binarization = replace(base, mode=mode, invert=invert, **settings)
                    for morph in space.morph_sizes:
                        yield TuneCandidate(blur, morph, binarization)


# %% ------------------------------------ Scoring ------------------------------------ #
def score_candidate(
    masked_roi: np.ndarray,
    dish: Dish,
    roi: RoiRect,
    candidate: TuneCandidate,
    effective_radius_pct: float,
    min_area: int
) -> int:
    """Colony count inside the inner circle for one candidate on a prepared plate."""
    opened = morph_open(binarize(masked_roi, candidate.binarization), candidate.morph_size)
    return count_in_inner_circle(opened, dish, roi, effective_radius_pct, min_area).count


def tune_color_seeds(
    image: np.ndarray,
    config: PipelineConfig,
    space: SearchSpace
) -> tuple[int, int, int]:
    """Best (erode, dilate, count) for the hue class seeds at the current HSV settings."""
    _, dish, roi = prepare_plate(image, config.blur_size)
    inner = inner_circle_mask(roi, dish, config.effective_radius_pct)
    hsv = to_hsv(image)
    class_masks = [
        restrict_to(roi.crop(hue_mask(hsv, hue_class)), inner)
        for hue_class in (config.color_split.class_a, config.color_split.class_b)
    ]

    best = (config.color_split.erode_size, config.color_split.dilate_size, -1)
    for erode in space.seed_erode_sizes:
        for dilate in space.seed_dilate_sizes:
            count = sum(
                count_components(class_seeds(mask, erode, dilate), config.min_area).count
                for mask in class_masks
            )
            if count > best[2]:
                best = (erode, dilate, count)
    logger.info(f"Seed morphology: erode={best[0]}, dilate={best[1]} → {best[2]} colonies")
    return best


# %% ------------------------------------ Calibration ------------------------------------ #
def _percentile_value(sorted_values: np.ndarray, fraction: float) -> float:
    index = min(len(sorted_values) - 1, int(math.floor(len(sorted_values) * fraction)))
    return float(sorted_values[index])


def circular_hue_mean(hues: np.ndarray) -> int:
    """Mean hue on the 180-step circle, via the vector sum of unit vectors."""
    theta = hues.astype(np.float64) / HUE_PERIOD * 2 * np.pi
    mean_theta = math.atan2(float(np.sin(theta).sum()), float(np.cos(theta).sum()))
    if mean_theta < 0:
        mean_theta += 2 * np.pi
    return round_half_up(mean_theta / (2 * np.pi) * HUE_PERIOD) % HUE_PERIOD


def hue_class_from_samples(
    hues: np.ndarray,
    sats: np.ndarray,
    vals: np.ndarray,
    marker_color: str
) -> HueClass | None:
    """Derive a hue class from sampled HSV values; None when there are too few samples."""
    if hues.size <= MIN_CALIBRATION_SAMPLES:
        return None

    center = circular_hue_mean(hues)
    diffs = np.abs(hues.astype(np.int64) - center) % HUE_PERIOD
    spreads = np.sort(np.minimum(diffs, HUE_PERIOD - diffs))
    spread = _percentile_value(spreads, HUE_TOLERANCE_PERCENTILE) or DEFAULT_HUE_SPREAD
    tolerance = int(clamp(round_half_up(spread), *HUE_TOLERANCE_RANGE))

    sat_min = int(_percentile_value(np.sort(sats), SAT_VAL_PERCENTILE)) or DEFAULT_SAT_VAL_MIN
    val_min = int(_percentile_value(np.sort(vals), SAT_VAL_PERCENTILE)) or DEFAULT_SAT_VAL_MIN
    return HueClass(center, tolerance, sat_min, val_min, marker_color)


def calibrate_hue_class(image: np.ndarray, config: PipelineConfig, base: HueClass) -> HueClass | None:
    """Sample HSV inside the colonies the config detects and fit a hue class to them."""
    try:
        masked_roi, dish, roi = prepare_plate(image, config.blur_size)
        opened = morph_open(binarize(masked_roi, config.binarization), config.morph_size)
        sample_mask = restrict_to(opened, inner_circle_mask(roi, dish, config.effective_radius_pct))
        hsv_roi = roi.crop(to_hsv(image))
        samples = hsv_roi[sample_mask > 0]
        calibrated = hue_class_from_samples(samples[:, 0], samples[:, 1], samples[:, 2], base.marker_color)
    except (cv2.error, ValueError) as e:
        logger.warning(f"Hue calibration failed, keeping manual values: {e}")
        return None

    if calibrated is None:
        logger.debug(f"Only {len(samples)} colony pixels sampled; hue calibration skipped")
    else:
        logger.info(
            f"Calibrated hue class A: {calibrated.hue_center}±{calibrated.hue_tolerance}, "
            f"S>={calibrated.sat_min}, V>={calibrated.val_min}"
        )
    return calibrated


# %% ------------------------------------ Tuner ------------------------------------ #
@dataclass
class TuneResult:
    config: PipelineConfig
    count: int
    candidate: TuneCandidate | None
    evaluated: int = 0
    calibrated: bool = False
    seed_sizes: tuple[int, int] | None = None
    history: list[tuple[TuneCandidate, int]] = field(default_factory=list)


def auto_tune(
    image: np.ndarray,
    config: PipelineConfig,
    space: SearchSpace | None = None,
    show_progress: bool = False,
    keep_history: bool = False
) -> TuneResult:
    """
    One-shot grid search for the binarization and morphology that maximise the count.

    Args:
        image: Source image (BGR or grayscale).
        config: Current configuration; effective radius and min area are held fixed.
        space: Search grid; defaults to SearchSpace().
        show_progress: Show a tqdm progress bar.
        keep_history: Keep every (candidate, count) pair in the result.

    Returns:
        TuneResult whose config carries the winning parameters.
    """
    if space is None:
        space = SearchSpace()
    tuned = config

    seed_sizes = None
    if config.color_split.enabled:
        erode, dilate, _ = tune_color_seeds(image, config, space)
        seed_sizes = (erode, dilate)
        tuned = replace(tuned, color_split=replace(tuned.color_split, erode_size=erode, dilate_size=dilate))

    best_candidate = None
    best_count = -1
    evaluated = 0
    history = []
    prepared: dict[int, tuple[np.ndarray, Dish, RoiRect]] = {}

    for candidate in tqdm(iter_candidates(space, config.binarization), total=len(space),
                          desc="Auto-tuning", disable=not show_progress):
        if candidate.blur_size not in prepared:
            prepared[candidate.blur_size] = prepare_plate(image, candidate.blur_size)
        masked_roi, dish, roi = prepared[candidate.blur_size]

        count = score_candidate(masked_roi, dish, roi, candidate, config.effective_radius_pct, config.min_area)
        evaluated += 1
        if keep_history:
            history.append((candidate, count))
        if count > best_count:
            best_count = count
            best_candidate = candidate
            logger.debug(f"New best {count}: {candidate}")

    if best_candidate is not None:
        tuned = replace(
            tuned,
            blur_size=best_candidate.blur_size,
            morph_size=best_candidate.morph_size,
            binarization=best_candidate.binarization,
        )
        logger.info(
            f"Auto-tune best: {best_count} colonies with blur={best_candidate.blur_size}, "
            f"morph={best_candidate.morph_size}, mode={best_candidate.binarization.mode.value}, "
            f"invert={best_candidate.binarization.invert} ({evaluated} candidates)"
        )

    calibrated = calibrate_hue_class(image, tuned, tuned.color_split.class_a)
    if calibrated is not None:
        tuned = replace(tuned, color_split=replace(tuned.color_split, class_a=calibrated))

    return TuneResult(
        config=tuned,
        count=max(best_count, 0),
        candidate=best_candidate,
        evaluated=evaluated,
        calibrated=calibrated is not None,
        seed_sizes=seed_sizes,
        history=history,
    )
