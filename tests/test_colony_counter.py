import numpy as np

from colony_counter import count_components, count_in_inner_circle, inner_circle_mask
from image_processing import Dish, RoiRect


def test_diagonal_touch_is_one_component():
    mask = np.zeros((20, 20), dtype=np.uint8)
    mask[2:6, 2:6] = 255
    mask[6:10, 6:10] = 255
    assert count_components(mask, 1).count == 1


def test_min_area_filter_is_inclusive():
    mask = np.zeros((20, 20), dtype=np.uint8)
    mask[1:4, 1:4] = 255  # 9 px
    mask[10:12, 10:12] = 255  # 4 px
    assert count_components(mask, 9).count == 1
    assert count_components(mask, 10).count == 0
    assert count_components(mask, 0).count == 2


def test_raising_min_area_never_increases_count():
    rng = np.random.default_rng(0)
    mask = np.where(rng.random((60, 60)) > 0.7, 255, 0).astype(np.uint8)
    counts = [count_components(mask, area).count for area in range(0, 30, 3)]
    assert counts == sorted(counts, reverse=True)


def test_centroids_mapped_to_source_coordinates():
    mask = np.zeros((20, 20), dtype=np.uint8)
    mask[4:7, 4:7] = 255
    counted = count_components(mask, 1, RoiRect(100, 50, 20, 20))
    assert counted.regions[0].centroid == (105.0, 55.0)
    assert counted.regions[0].area_px == 9


def test_inner_circle_mask():
    roi = RoiRect(10, 10, 100, 100)
    inner = inner_circle_mask(roi, Dish(60, 60, 40), 50)
    assert inner.shape == (100, 100)
    assert inner[50, 50] == 255
    assert inner[50, 75] == 0


def test_count_in_inner_circle_ignores_rim():
    roi = RoiRect(0, 0, 100, 100)
    dish = Dish(50, 50, 45)
    mask = np.zeros((100, 100), dtype=np.uint8)
    mask[45:55, 45:55] = 255
    mask[2:8, 45:55] = 255
    assert count_in_inner_circle(mask, dish, roi, 80, 5).count == 1
