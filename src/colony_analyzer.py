#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
Colony Analyzer - Petri Dish Colony Counting

Counts colony-like blobs on a circular petri-dish photograph. One call of
process_image runs the whole pass from the source image and a frozen
PipelineConfig; nothing is cached between calls, so every tuning trial is
independent and reproducible.

Pipeline: grayscale → blur → dish → ROI → binarize → opening →
(colour split | watershed split) → inner circle → connected components.
"""

# ============================================================
# Imports
# ============================================================
from __future__ import annotations

from dataclasses import dataclass, field

import cv2
import numpy as np
from loguru import logger

from color_split import filter_consistent_regions, separate_color_classes
from colony_counter import (
    ColonyRegion,
    count_components,
    inner_circle_mask,
    restrict_to,
)
from image_processing import (
    Dish,
    RoiRect,
    binarize,
    morph_open,
    prepare_plate,
    to_bgr,
)
from pipeline_config import PipelineConfig
from plate_utils import parse_hex_color, round_half_up
from watershed_split import split_touching


# ============================================================
# Results
# ============================================================

@dataclass
class ProcessingResult:
    """Everything one processing pass produced."""

    count: int
    regions: list[ColonyRegion]
    dish: Dish
    roi: RoiRect
    count_a: int | None = None
    count_b: int | None = None
    regions_a: list[ColonyRegion] = field(default_factory=list)
    regions_b: list[ColonyRegion] = field(default_factory=list)
    masks: dict[str, np.ndarray] = field(default_factory=dict)

    def summary(self) -> dict:
        """JSON-serializable view of the counts and colony coordinates."""
        summary = {
            "count": self.count,
            "dish": {"centerX": self.dish.center_x, "centerY": self.dish.center_y, "radius": self.dish.radius},
            "roi": {"x": self.roi.x, "y": self.roi.y, "width": self.roi.width, "height": self.roi.height},
            "regions": [_region_dict(r) for r in self.regions],
        }
        if self.count_a is not None:
            summary["countA"] = self.count_a
            summary["countB"] = self.count_b
        return summary


def _region_dict(region: ColonyRegion) -> dict:
    return {
        "label": region.label,
        "areaPx": region.area_px,
        "x": round(region.centroid[0], 2),
        "y": round(region.centroid[1], 2),
    }


# ============================================================
# Pipeline
# ============================================================

def process_image(config: PipelineConfig, image: np.ndarray | None) -> ProcessingResult | None:
    """
    Run one full counting pass over a decoded image.

    Args:
        config: Frozen pipeline parameters.
        image: BGR, BGRA or grayscale uint8 array.

    Returns:
        ProcessingResult, or None when there is no image to process yet.
    """
    if image is None or image.size == 0:
        logger.debug("No image to process; skipping")
        return None

    masked_roi, dish, roi = prepare_plate(image, config.blur_size)
    binary = binarize(masked_roi, config.binarization)
    opened = morph_open(binary, config.morph_size)
    inner = inner_circle_mask(roi, dish, config.effective_radius_pct)
    color_roi = roi.crop(to_bgr(image))

    masks = {"binary": binary, "opened": opened, "inner": inner}

    if config.color_split.enabled:
        split = separate_color_classes(image, roi, inner, config.color_split, config.min_area)
        masks["seeds_a"] = split.seeds_a
        masks["seeds_b"] = split.seeds_b
        result = ProcessingResult(
            count=split.count,
            regions=split.class_a.regions + split.class_b.regions,
            dish=dish,
            roi=roi,
            count_a=split.class_a.count,
            count_b=split.class_b.count,
            regions_a=split.class_a.regions,
            regions_b=split.class_b.regions,
            masks=masks,
        )
        logger.info(f"Counted {result.count} colonies (A={result.count_a}, B={result.count_b})")
        return result

    to_label = opened
    if config.watershed.enabled:
        split = split_touching(opened, color_roi, config.watershed)
        to_label = split.separated
        masks["seeds"] = split.seeds
        masks["separated"] = split.separated
        if split.distance is not None:
            masks["distance"] = split.distance

    counted = count_components(restrict_to(to_label, inner), config.min_area, roi)
    if config.color_consistency.enabled:
        counted = filter_consistent_regions(counted, color_roi, config.color_consistency.tolerance)

    logger.info(f"Counted {counted.count} colonies inside r={config.effective_radius_pct:.0f}% of the dish")
    return ProcessingResult(
        count=counted.count,
        regions=counted.regions,
        dish=dish,
        roi=roi,
        masks=masks,
    )


# ============================================================
# Annotation
# ============================================================

def annotate_result(
    image: np.ndarray,
    result: ProcessingResult,
    config: PipelineConfig,
    marker_radius: int = 6
) -> np.ndarray:
    """Copy of the image with the dish outline and one circle per counted colony."""
    canvas = to_bgr(image).copy()
    dish = result.dish
    cv2.circle(canvas, (dish.center_x, dish.center_y), dish.radius, (255, 255, 0), 2)

    if result.count_a is not None:
        groups = [
            (result.regions_a, parse_hex_color(config.color_split.class_a.marker_color)),
            (result.regions_b, parse_hex_color(config.color_split.class_b.marker_color)),
        ]
    else:
        groups = [(result.regions, parse_hex_color(config.color_split.class_a.marker_color))]

    for regions, color in groups:
        for region in regions:
            center = (round_half_up(region.centroid[0]), round_half_up(region.centroid[1]))
            cv2.circle(canvas, center, marker_radius, color, 2)
    return canvas
