import numpy as np
import pytest

from color_split import circular_hue_dist, class_seeds, filter_consistent_regions, hue_mask
from colony_counter import count_components
from pipeline_config import HueClass


@pytest.mark.parametrize("a, b, expected", [(170, 10, 20), (10, 170, 20), (0, 90, 90), (45, 45, 0)])
def test_circular_hue_dist(a, b, expected):
    assert circular_hue_dist(a, b) == expected


def _hsv_row(hues, sat=255, val=255):
    row = np.zeros((1, len(hues), 3), dtype=np.uint8)
    row[0, :, 0] = hues
    row[0, :, 1] = sat
    row[0, :, 2] = val
    return row


def test_hue_mask_wraps_around_zero():
    mask = hue_mask(_hsv_row([175, 5, 90, 160]), HueClass(0, 10))
    assert mask[0].tolist() == [255, 255, 0, 0]


def test_hue_mask_wraps_around_179():
    mask = hue_mask(_hsv_row([175, 5, 90, 160]), HueClass(175, 12))
    assert mask[0].tolist() == [255, 255, 0, 0]


def test_hue_mask_without_wrap():
    mask = hue_mask(_hsv_row([175, 5, 90, 100]), HueClass(90, 5))
    assert mask[0].tolist() == [0, 0, 255, 0]


def test_hue_mask_respects_saturation_and_value_floors():
    assert hue_mask(_hsv_row([90], sat=10), HueClass(90, 5, sat_min=40)).max() == 0
    assert hue_mask(_hsv_row([90], val=10), HueClass(90, 5, val_min=40)).max() == 0


def test_class_seeds_drop_thin_noise():
    mask = np.zeros((40, 40), dtype=np.uint8)
    mask[10:25, 10:25] = 255
    mask[30, 5:35] = 255
    seeds = class_seeds(mask, 3, 3)
    assert seeds[17, 17] == 255
    assert seeds[30, 20] == 0


def test_filter_consistent_regions_drops_off_color_region():
    mask = np.zeros((30, 60), dtype=np.uint8)
    color = np.zeros((30, 60, 3), dtype=np.uint8)
    for x0, bgr in ((2, (40, 40, 40)), (22, (42, 40, 38)), (42, (0, 0, 220))):
        mask[5:15, x0:x0 + 10] = 255
        color[5:15, x0:x0 + 10] = bgr
    counted = count_components(mask, 1)
    assert counted.count == 3
    kept = filter_consistent_regions(counted, color, 0.25)
    assert kept.count == 2
    assert all(region.centroid[0] < 40 for region in kept.regions)
    assert filter_consistent_regions(counted, color, 1.0).count == 3
