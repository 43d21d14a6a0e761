"""
Parameter sweep of the distance-transform watershed against a fixed baseline.

Binarization is pinned to adaptive-gaussian (block 33, C 0, inverted) with an
opening of size 5, and the watershed is evaluated over distance metric x mask
size x peak cleanup x (alpha list + absolute threshold list). Nothing here
changes any tuning state; the report is diagnostic only and can be handed to
an external collaborator as JSON of the shape
{"baseline": int, "results": [{"id": str, "params": {...}, "count": int}]}.

Usage:
    report = run_parameter_sweep(image)
    report.improving  # configurations that beat the no-watershed count
"""

# %% ------------------------------------ Imports ------------------------------------ #
from __future__ import annotations

from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Iterator

import numpy as np
import pandas as pd
from loguru import logger
from matplotlib.figure import Figure
from tqdm import tqdm

from colony_counter import count_in_inner_circle
from image_processing import binarize, morph_open, prepare_plate, to_bgr
from pipeline_config import (
    BinarizationConfig,
    DistanceThresholdMode,
    DistanceType,
    PipelineConfig,
    SeedStrategy,
    ThresholdMode,
    WatershedConfig,
)
from watershed_split import split_touching

# %% ------------------------------------ Constants ------------------------------------ #
BASELINE_BINARIZATION = BinarizationConfig(
    mode=ThresholdMode.ADAPTIVE_GAUSSIAN,
    block_size_min=33,
    block_size_max=None,
    c=0,
    invert=True,
)
BASELINE_MORPH_SIZE = 5
BASELINE_BLUR_SIZE = 7
BASELINE_MIN_AREA = 93
BASELINE_EFFECTIVE_RADIUS_PCT = 84

TOP_RESULTS_LOGGED = 8
IMPROVING_RESULTS_LOGGED = 12

# %% ------------------------------------ Dataclass ------------------------------------ #
@dataclass(frozen=True)
class SweepGrid:
    """Watershed parameter lists crossed by the sweep."""
    distance_types: tuple[DistanceType, ...] = (DistanceType.L2,)
    mask_sizes: tuple[int, ...] = (3, 5)
    peak_cleanup_sizes: tuple[int, ...] = (1, 3, 5)
    alphas: tuple[float, ...] = (0.0, 0.02, 0.05, 0.08, 0.1, 0.12, 0.15, 0.18, 0.2)
    absolute_thresholds: tuple[int, ...] = (5, 10, 15, 20, 25, 30, 40, 50, 60)

    def __len__(self) -> int:
        return (
            len(self.distance_types)
            * len(self.mask_sizes)
            * len(self.peak_cleanup_sizes)
            * (len(self.alphas) + len(self.absolute_thresholds))
        )


@dataclass(frozen=True)
class SweepParams:
    mode: DistanceThresholdMode
    distance_type: DistanceType
    mask_size: int
    peak_cleanup_size: int
    split_strength: float | None = None
    threshold_abs: int | None = None

    @property
    def param_id(self) -> str:
        prefix, value = (
            ("a", f"{self.split_strength:g}")
            if self.mode is DistanceThresholdMode.ALPHA
            else ("t", f"{self.threshold_abs}")
        )
        return f"{prefix}-{self.distance_type.value}-{self.mask_size}-{self.peak_cleanup_size}-{value}"

    @property
    def strength_or_threshold(self) -> float:
        return self.split_strength if self.mode is DistanceThresholdMode.ALPHA else self.threshold_abs

    def watershed_config(self) -> WatershedConfig:
        settings = dict(
            enabled=True,
            seed_strategy=SeedStrategy.DISTANCE,
            distance_type=self.distance_type,
            distance_mask_size=self.mask_size,
            threshold_mode=self.mode,
            peak_cleanup_size=self.peak_cleanup_size,
        )
        if self.mode is DistanceThresholdMode.ALPHA:
            settings["split_strength"] = self.split_strength
        else:
            settings["threshold_abs"] = self.threshold_abs
        return WatershedConfig(**settings)

    def to_dict(self) -> dict:
        params = {"mode": self.mode.value}
        if self.mode is DistanceThresholdMode.ALPHA:
            params["splitStrength"] = self.split_strength
        else:
            params["dtThreshAbs"] = self.threshold_abs
        params.update(
            distType=self.distance_type.value,
            distMask=self.mask_size,
            peakCleanupSize=self.peak_cleanup_size,
        )
        return params


@dataclass(frozen=True)
class SweepResult:
    params: SweepParams
    count: int

    @property
    def param_id(self) -> str:
        return self.params.param_id

    def to_dict(self) -> dict:
        return {"id": self.param_id, "params": self.params.to_dict(), "count": self.count}


@dataclass
class SweepReport:
    """Baseline count plus every sweep result, sorted by count, highest first."""
    baseline: int
    results: list[SweepResult] = field(default_factory=list)

    @property
    def improving(self) -> list[SweepResult]:
        return [r for r in self.results if r.count > self.baseline]

    def to_json_dict(self) -> dict:
        return {"baseline": self.baseline, "results": [r.to_dict() for r in self.results]}

    def to_frame(self) -> pd.DataFrame:
        """One row per configuration tried."""
        rows = [
            {
                "parameter_set_id": r.param_id,
                "distance_type": r.params.distance_type.value,
                "distance_mask_size": r.params.mask_size,
                "split_mode": r.params.mode.value,
                "split_strength_or_threshold": r.params.strength_or_threshold,
                "peak_cleanup_size": r.params.peak_cleanup_size,
                "count": r.count,
                "improves_baseline": r.count > self.baseline,
            }
            for r in self.results
        ]
        return pd.DataFrame(rows, columns=[
            "parameter_set_id", "distance_type", "distance_mask_size", "split_mode",
            "split_strength_or_threshold", "peak_cleanup_size", "count", "improves_baseline",
        ])


# %% ------------------------------------ Functions ------------------------------------ #
def sweep_baseline_config(config: PipelineConfig | None = None) -> PipelineConfig:
    """Pin binarization and morphology to the sweep baseline, keeping the rest of the config."""
    if config is None:
        config = PipelineConfig(
            blur_size=BASELINE_BLUR_SIZE,
            min_area=BASELINE_MIN_AREA,
            effective_radius_pct=BASELINE_EFFECTIVE_RADIUS_PCT,
        )
    return replace(
        config,
        binarization=BASELINE_BINARIZATION,
        morph_size=BASELINE_MORPH_SIZE,
        watershed=replace(config.watershed, enabled=False),
    )


def iter_sweep_params(grid: SweepGrid) -> Iterator[SweepParams]:
    for distance_type in grid.distance_types:
        for mask_size in grid.mask_sizes:
            for peak_cleanup_size in grid.peak_cleanup_sizes:
                for alpha in grid.alphas:
                    yield SweepParams(
                        DistanceThresholdMode.ALPHA, distance_type, mask_size,
                        peak_cleanup_size, split_strength=alpha,
                    )
                for threshold in grid.absolute_thresholds:
                    yield SweepParams(
                        DistanceThresholdMode.ABSOLUTE, distance_type, mask_size,
                        peak_cleanup_size, threshold_abs=threshold,
                    )


def run_parameter_sweep(
    image: np.ndarray,
    grid: SweepGrid | None = None,
    config: PipelineConfig | None = None,
    show_progress: bool = False
) -> SweepReport:
    """
    Evaluate every watershed combination of the grid on one image.

    Args:
        image: Source image (BGR or grayscale).
        grid: Parameter lists to cross; defaults to SweepGrid().
        config: Supplies blur, min area and effective radius; binarization and
            morphology are always replaced by the sweep baseline.
        show_progress: Show a tqdm progress bar.

    Returns:
        SweepReport with results sorted by count, highest first.
    """
    if grid is None:
        grid = SweepGrid()
    config = sweep_baseline_config(config)

    masked_roi, dish, roi = prepare_plate(image, config.blur_size)
    opened = morph_open(binarize(masked_roi, config.binarization), config.morph_size)
    color_roi = roi.crop(to_bgr(image))

    def count_mask(mask: np.ndarray) -> int:
        return count_in_inner_circle(mask, dish, roi, config.effective_radius_pct, config.min_area).count

    baseline = count_mask(opened)
    logger.info(f"Sweep baseline (no watershed): {baseline}; {len(grid)} combinations")

    results = []
    for params in tqdm(iter_sweep_params(grid), total=len(grid), desc="Watershed sweep",
                       disable=not show_progress):
        split = split_touching(opened, color_roi, params.watershed_config())
        results.append(SweepResult(params, count_mask(split.separated)))

    results.sort(key=lambda r: r.count, reverse=True)
    report = SweepReport(baseline=baseline, results=results)
    _log_report(report)
    return report


def _log_report(report: SweepReport) -> None:
    logger.info("Top sweep results:")
    for r in report.results[:TOP_RESULTS_LOGGED]:
        logger.info(f"  count={r.count} | {_describe(r)}")

    improving = report.improving
    if not improving:
        logger.info("No watershed settings improved over baseline.")
        return
    logger.info(f"{len(improving)} configurations improve on the baseline of {report.baseline}:")
    for r in improving[:IMPROVING_RESULTS_LOGGED]:
        logger.info(f"  count={r.count} | {_describe(r)}")


def _describe(result: SweepResult) -> str:
    p = result.params
    strength = (
        f"alpha={p.split_strength:g}"
        if p.mode is DistanceThresholdMode.ALPHA
        else f"T={p.threshold_abs}"
    )
    return f"mode={p.mode.value}, {strength} | dist={p.distance_type.value}, mask={p.mask_size}, pk={p.peak_cleanup_size}"


def plot_sweep(report: SweepReport, output_path: Path | str, dpi: int = 150) -> Path:
    """Count versus split strength / absolute threshold, one line per distance setting."""
    output_path = Path(output_path)
    output_path.parent.mkdir(parents=True, exist_ok=True)

    frame = report.to_frame()
    fig = Figure(figsize=(12, 5))
    axes = fig.subplots(1, 2, sharey=True)
    for ax, mode, xlabel in zip(
        axes,
        (DistanceThresholdMode.ALPHA, DistanceThresholdMode.ABSOLUTE),
        ("split strength (alpha)", "absolute distance threshold"),
    ):
        subset = frame[frame["split_mode"] == mode.value]
        for key, group in subset.groupby(["distance_type", "distance_mask_size", "peak_cleanup_size"]):
            group = group.sort_values("split_strength_or_threshold")
            ax.plot(
                group["split_strength_or_threshold"], group["count"],
                marker="o", label=f"{key[0]}, mask={key[1]}, pk={key[2]}",
            )
        ax.axhline(report.baseline, color="gray", linestyle="--", label="baseline")
        ax.set_xlabel(xlabel)
        ax.set_title(mode.value)
    axes[0].set_ylabel("colony count")
    axes[-1].legend(fontsize=8)
    fig.tight_layout()
    fig.savefig(output_path, dpi=dpi, bbox_inches="tight")
    logger.success(f"Figure saved: {output_path}")
    return output_path
