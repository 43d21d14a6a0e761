import cv2
import numpy as np
import pytest

from image_processing import (
    Dish,
    RoiRect,
    binarize,
    blur_gray,
    extract_roi,
    invert_mask,
    load_image,
    locate_dish,
    morph_open,
    prepare_plate,
    to_bgr,
    to_grayscale,
)
from pipeline_config import BinarizationConfig, ThresholdMode


def test_locate_dish_finds_plate(two_colony_plate):
    dish = locate_dish(blur_gray(to_grayscale(two_colony_plate), 5))
    assert abs(dish.center_x - 100) <= 2
    assert abs(dish.center_y - 100) <= 2
    assert 87 <= dish.radius <= 93


def test_locate_dish_falls_back_on_blank_image():
    dish = locate_dish(np.zeros((100, 160), dtype=np.uint8))
    assert dish == Dish(80, 50, 50)


@pytest.mark.parametrize("dish, shape", [
    (Dish(100, 100, 90), (200, 200)),
    (Dish(10, 10, 50), (100, 100)),
    (Dish(150, 20, 40), (120, 160)),
    (Dish(5, 5, 500), (80, 60)),
])
def test_roi_is_square_and_inside_image(dish, shape):
    roi = extract_roi(dish, shape)
    h, w = shape
    assert roi.width == roi.height >= 1
    assert roi.x >= 0 and roi.y >= 0
    assert roi.x + roi.width <= w
    assert roi.y + roi.height <= h


def test_roi_side_is_dish_diameter_with_margin():
    roi = extract_roi(Dish(100, 100, 90), (200, 200))
    assert roi == RoiRect(6, 6, 189, 189)


def test_roi_coordinate_mapping():
    roi = RoiRect(10, 20, 50, 50)
    assert roi.to_source(*roi.to_local(35, 40)) == (35, 40)
    assert roi.crop(np.zeros((100, 100))).shape == (50, 50)


def test_invert_twice_is_identity():
    mask = np.zeros((10, 10), dtype=np.uint8)
    mask[2:5, 3:8] = 255
    assert np.array_equal(invert_mask(invert_mask(mask)), mask)


def test_color_conversions():
    gray = np.full((4, 4), 7, dtype=np.uint8)
    assert to_grayscale(gray) is gray
    assert to_bgr(gray).shape == (4, 4, 3)
    bgra = np.zeros((4, 4, 4), dtype=np.uint8)
    assert to_grayscale(bgra).shape == (4, 4)
    assert to_bgr(bgra).shape == (4, 4, 3)


def test_binarize_fixed_is_strictly_greater():
    gray = np.array([[99, 100, 101]], dtype=np.uint8)
    config = BinarizationConfig(mode=ThresholdMode.FIXED, fixed_level=100, invert=False)
    assert binarize(gray, config).tolist() == [[0, 0, 255]]
    inverted = BinarizationConfig(mode=ThresholdMode.FIXED, fixed_level=100, invert=True)
    assert binarize(gray, inverted).tolist() == [[255, 255, 0]]


def test_binarize_makes_dark_colonies_foreground(two_colony_plate, plate_config):
    masked_roi, dish, roi = prepare_plate(two_colony_plate, plate_config.blur_size)
    binary = binarize(masked_roi, plate_config.binarization)
    assert set(np.unique(binary)) <= {0, 255}
    cx, cy = roi.to_local(70, 100)
    assert binary[int(cy), int(cx)] == 255
    dx, dy = roi.to_local(100, 60)
    assert binary[int(dy), int(dx)] == 0


def test_binarize_two_scales_never_adds_foreground(two_colony_plate):
    masked_roi, _, _ = prepare_plate(two_colony_plate, 5)
    single = binarize(masked_roi, BinarizationConfig(ThresholdMode.ADAPTIVE_MEAN, 15, None, 5))
    dual = binarize(masked_roi, BinarizationConfig(ThresholdMode.ADAPTIVE_MEAN, 15, 41, 5))
    assert not np.any((dual > 0) & (single == 0))


def test_morph_open_removes_specks():
    mask = np.zeros((30, 30), dtype=np.uint8)
    mask[5, 5] = 255
    cv2.circle(mask, (20, 20), 5, 255, -1)
    opened = morph_open(mask, 5)
    assert opened[5, 5] == 0
    assert opened[20, 20] == 255
    assert np.array_equal(morph_open(mask, 1), mask)


def test_load_image_errors(tmp_path):
    with pytest.raises(FileNotFoundError):
        load_image(tmp_path / "missing.png")
    broken = tmp_path / "broken.png"
    broken.write_bytes(b"not an image")
    with pytest.raises(IOError):
        load_image(broken)


def test_load_image_reads_bgr(tmp_path, two_colony_plate):
    path = tmp_path / "plate.png"
    cv2.imwrite(str(path), two_colony_plate)
    assert np.array_equal(load_image(path), two_colony_plate)
