"""
Configuration for the colony counting pipeline.

Every tunable of the pipeline lives in a frozen dataclass; the mode families
(threshold mode, watershed seed strategy, distance metric, distance threshold
mode) are closed enums. Configurations can be built from the flat camelCase
option dictionaries used by the UI layer and by saved JSON files:

    config = PipelineConfig.from_dict({"thresholdMode": "adaptive-gaussian",
                                       "adaptiveBlock": 33, "invertMask": True})
    config = load_config(Path("plate.json"))
"""

# %% ------------------------------------ Imports ------------------------------------ #
from __future__ import annotations

import json
from dataclasses import dataclass, field, replace
from enum import Enum
from pathlib import Path
from typing import Any, Callable

import cv2
from loguru import logger

from plate_utils import clamp, odd_kernel_size, round_half_up, MIN_BLOCK_SIZE

# %% ------------------------------------ Enums ------------------------------------ #
class ThresholdMode(Enum):
    OTSU = "otsu"
    ADAPTIVE_MEAN = "adaptive-mean"
    ADAPTIVE_GAUSSIAN = "adaptive-gaussian"
    FIXED = "fixed"


class SeedStrategy(Enum):
    ERODE = "erode"
    DISTANCE = "dt"
    HYBRID = "hybrid"


class DistanceType(Enum):
    L1 = "L1"
    L2 = "L2"
    C = "C"

    @property
    def cv_flag(self) -> int:
        return {
            DistanceType.L1: cv2.DIST_L1,
            DistanceType.L2: cv2.DIST_L2,
            DistanceType.C: cv2.DIST_C,
        }[self]


class DistanceThresholdMode(Enum):
    ALPHA = "alpha"
    ABSOLUTE = "absolute"
    RELATIVE = "relative"  # per connected component of the opened mask


# %% ------------------------------------ Helpers ------------------------------------ #
def min_area_from_scale(scale: float) -> int:
    """Map a 0-10 sensitivity-scale value to a minimum colony area in pixels."""
    scale = clamp(float(scale), 0.0, 10.0)
    return round_half_up(5 + scale ** 2 * 15)


def blur_from_sensitivity(sensitivity: float) -> int:
    return odd_kernel_size(int(clamp(13 - sensitivity, 3, 13)), 3)


def morph_from_sensitivity(sensitivity: float) -> int:
    return odd_kernel_size(int(clamp(7 - round_half_up(0.4 * sensitivity), 3, 9)), 3)


def _check_range(name: str, value: float, low: float, high: float) -> None:
    if not low <= value <= high:
        raise ValueError(f"{name} must be within [{low}, {high}], got {value}")


# %% ------------------------------------ Data classes ------------------------------------ #
@dataclass(frozen=True)
class BinarizationConfig:
    """Thresholding of the dish-masked grayscale ROI."""
    mode: ThresholdMode = ThresholdMode.ADAPTIVE_MEAN
    block_size_min: int = 3
    block_size_max: int | None = None  # set to intersect two adaptive scales
    c: float = 2.0
    fixed_level: int = 128
    invert: bool = True

    def __post_init__(self):
        _check_range("fixed_level", self.fixed_level, 0, 255)

    @property
    def block_sizes(self) -> tuple[int, ...]:
        """Odd block sizes (>= 3) the adaptive modes threshold at."""
        low = odd_kernel_size(self.block_size_min, MIN_BLOCK_SIZE)
        if self.block_size_max is None:
            return (low,)
        high = odd_kernel_size(self.block_size_max, MIN_BLOCK_SIZE)
        return (low,) if high == low else (low, high)


@dataclass(frozen=True)
class WatershedConfig:
    enabled: bool = False
    seed_strategy: SeedStrategy = SeedStrategy.DISTANCE
    erode_kernel_size: int = 5
    erode_iterations: int = 2
    distance_type: DistanceType = DistanceType.L2
    distance_mask_size: int = 5
    threshold_mode: DistanceThresholdMode = DistanceThresholdMode.ALPHA
    split_strength: float = 0.2
    threshold_abs: int = 100
    peak_cleanup_size: int = 1

    def __post_init__(self):
        _check_range("erode_iterations", self.erode_iterations, 1, 10)
        _check_range("split_strength", self.split_strength, 0.0, 1.0)
        _check_range("threshold_abs", self.threshold_abs, 0, 255)
        if self.distance_mask_size not in (3, 5):
            raise ValueError(f"distance_mask_size must be 3 or 5, got {self.distance_mask_size}")


@dataclass(frozen=True)
class HueClass:
    """A band on the 8-bit hue circle (0-179) plus saturation/value floors."""
    hue_center: int
    hue_tolerance: int
    sat_min: int = 40
    val_min: int = 40
    marker_color: str = "#00ff00"

    def __post_init__(self):
        _check_range("hue_center", self.hue_center, 0, 179)
        _check_range("hue_tolerance", self.hue_tolerance, 0, 90)
        _check_range("sat_min", self.sat_min, 0, 255)
        _check_range("val_min", self.val_min, 0, 255)


@dataclass(frozen=True)
class ColorSplitConfig:
    enabled: bool = False
    class_a: HueClass = field(default_factory=lambda: HueClass(19, 6, 39, 88, "#00ff00"))
    class_b: HueClass = field(default_factory=lambda: HueClass(140, 15, 40, 40, "#ff00ff"))
    erode_size: int = 5
    dilate_size: int = 7


@dataclass(frozen=True)
class ColorConsistencyConfig:
    enabled: bool = False
    tolerance: float = 0.25

    def __post_init__(self):
        _check_range("tolerance", self.tolerance, 0.0, 1.0)


@dataclass(frozen=True)
class PipelineConfig:
    """Complete, immutable parameter set for one processing pass."""
    blur_size: int = 1
    morph_size: int = 5
    binarization: BinarizationConfig = field(default_factory=BinarizationConfig)
    effective_radius_pct: float = 87.0
    min_area: int = 1
    watershed: WatershedConfig = field(default_factory=WatershedConfig)
    color_split: ColorSplitConfig = field(default_factory=ColorSplitConfig)
    color_consistency: ColorConsistencyConfig = field(default_factory=ColorConsistencyConfig)

    def __post_init__(self):
        _check_range("effective_radius_pct", self.effective_radius_pct, 50, 100)
        if self.min_area < 0:
            raise ValueError(f"min_area must be >= 0, got {self.min_area}")

    @classmethod
    def from_sensitivity(cls, sensitivity: float, **overrides) -> PipelineConfig:
        """Derive blur, morphology and minimum area from the 0-10 master sensitivity."""
        _check_range("sensitivity", sensitivity, 0, 10)
        derived = dict(
            blur_size=blur_from_sensitivity(sensitivity),
            morph_size=morph_from_sensitivity(sensitivity),
            min_area=min_area_from_scale(sensitivity),
        )
        derived.update(overrides)
        return cls(**derived)

    @classmethod
    def from_dict(cls, options: dict[str, Any]) -> PipelineConfig:
        """Build a config from camelCase option names; unknown keys are ignored."""
        config = cls()
        if options.get("sensitivity") is not None:
            config = cls.from_sensitivity(float(options["sensitivity"]))

        for key, value in options.items():
            if key == "sensitivity":
                continue
            if key not in _OPTION_PATHS:
                logger.warning(f"Ignoring unknown configuration option: {key}")
                continue
            path, convert = _OPTION_PATHS[key]
            converted = None if value is None else convert(value)
            config = _replace_path(config, path, converted)
        return config

    def to_dict(self) -> dict[str, Any]:
        options: dict[str, Any] = {}
        for key, (path, _) in _OPTION_PATHS.items():
            if key in _OPTION_ALIASES:
                continue
            value: Any = self
            for name in path:
                value = getattr(value, name)
            options[key] = value.value if isinstance(value, Enum) else value
        return options


# %% ------------------------------------ Option table ------------------------------------ #
_OPTION_PATHS: dict[str, tuple[tuple[str, ...], Callable[[Any], Any]]] = {
    "blurSize": (("blur_size",), int),
    "morphSize": (("morph_size",), int),
    "effectiveRadiusPct": (("effective_radius_pct",), float),
    "minArea": (("min_area",), int),
    "minAreaScale": (("min_area",), min_area_from_scale),
    "thresholdMode": (("binarization", "mode"), ThresholdMode),
    "adaptiveBlock": (("binarization", "block_size_min"), int),
    "adaptiveBlockMin": (("binarization", "block_size_min"), int),
    "adaptiveBlockMax": (("binarization", "block_size_max"), int),
    "adaptiveC": (("binarization", "c"), float),
    "fixedThresh": (("binarization", "fixed_level"), int),
    "invertMask": (("binarization", "invert"), bool),
    "useWatershed": (("watershed", "enabled"), bool),
    "wsMarkerMode": (("watershed", "seed_strategy"), SeedStrategy),
    "erodeKernelSize": (("watershed", "erode_kernel_size"), int),
    "erodeIterations": (("watershed", "erode_iterations"), int),
    "distType": (("watershed", "distance_type"), DistanceType),
    "distMask": (("watershed", "distance_mask_size"), int),
    "dtThreshMode": (("watershed", "threshold_mode"), DistanceThresholdMode),
    "splitStrength": (("watershed", "split_strength"), float),
    "dtThreshAbs": (("watershed", "threshold_abs"), int),
    "peakCleanupSize": (("watershed", "peak_cleanup_size"), int),
    "useColorSplit": (("color_split", "enabled"), bool),
    "erodeSize": (("color_split", "erode_size"), int),
    "dilateSize": (("color_split", "dilate_size"), int),
    "hueCenterA": (("color_split", "class_a", "hue_center"), int),
    "hueTolA": (("color_split", "class_a", "hue_tolerance"), int),
    "satMinA": (("color_split", "class_a", "sat_min"), int),
    "valMinA": (("color_split", "class_a", "val_min"), int),
    "colorA": (("color_split", "class_a", "marker_color"), str),
    "hueCenterB": (("color_split", "class_b", "hue_center"), int),
    "hueTolB": (("color_split", "class_b", "hue_tolerance"), int),
    "satMinB": (("color_split", "class_b", "sat_min"), int),
    "valMinB": (("color_split", "class_b", "val_min"), int),
    "colorB": (("color_split", "class_b", "marker_color"), str),
    "useColorConsistency": (("color_consistency", "enabled"), bool),
    "colorTolerance": (("color_consistency", "tolerance"), float),
}

# Input-only spellings that write the same field as a canonical key.
_OPTION_ALIASES = {"adaptiveBlock", "minAreaScale"}


def _replace_path(obj: Any, path: tuple[str, ...], value: Any) -> Any:
    head, *rest = path
    if not rest:
        return replace(obj, **{head: value})
    return replace(obj, **{head: _replace_path(getattr(obj, head), tuple(rest), value)})


# %% ------------------------------------ I/O ------------------------------------ #
def load_config(config_file: Path | str) -> PipelineConfig:
    """Load a pipeline configuration from a JSON file of camelCase options."""
    config_file = Path(config_file)
    if not config_file.exists():
        raise FileNotFoundError(f"Config file not found: {config_file}")
    with config_file.open("r", encoding="utf-8") as f:
        options = json.load(f)
    if not isinstance(options, dict):
        raise ValueError(f"Config file must hold a JSON object: {config_file}")
    logger.debug(f"Loaded {len(options)} options from {config_file.name}")
    return PipelineConfig.from_dict(options)


def save_config(config: PipelineConfig, config_file: Path | str) -> None:
    config_file = Path(config_file)
    config_file.parent.mkdir(parents=True, exist_ok=True)
    with config_file.open("w", encoding="utf-8") as f:
        json.dump(config.to_dict(), f, indent=2)
    logger.info(f"Config saved: {config_file}")
