import json

import pytest

from parameter_sweep import (
    SweepGrid,
    iter_sweep_params,
    plot_sweep,
    run_parameter_sweep,
    sweep_baseline_config,
)
from pipeline_config import DistanceThresholdMode, SeedStrategy, ThresholdMode


@pytest.fixture
def small_grid() -> SweepGrid:
    return SweepGrid(mask_sizes=(3,), peak_cleanup_sizes=(1,), alphas=(0.0, 0.2), absolute_thresholds=(0, 255))


def test_default_grid_size():
    grid = SweepGrid()
    assert len(grid) == 1 * 2 * 3 * 18
    assert len(list(iter_sweep_params(grid))) == len(grid)


def test_param_ids_and_params(small_grid):
    params = list(iter_sweep_params(small_grid))
    assert [p.param_id for p in params] == ["a-L2-3-1-0", "a-L2-3-1-0.2", "t-L2-3-1-0", "t-L2-3-1-255"]
    assert params[1].to_dict() == {
        "mode": "alpha", "splitStrength": 0.2, "distType": "L2", "distMask": 3, "peakCleanupSize": 1,
    }
    assert params[3].to_dict()["dtThreshAbs"] == 255
    ws = params[3].watershed_config()
    assert ws.enabled
    assert ws.seed_strategy is SeedStrategy.DISTANCE
    assert ws.threshold_mode is DistanceThresholdMode.ABSOLUTE


def test_baseline_config_is_pinned(plate_config):
    config = sweep_baseline_config(plate_config)
    assert config.binarization.mode is ThresholdMode.ADAPTIVE_GAUSSIAN
    assert config.binarization.block_sizes == (33,)
    assert config.binarization.c == 0
    assert config.morph_size == 5
    assert config.min_area == plate_config.min_area
    default = sweep_baseline_config()
    assert (default.blur_size, default.min_area, default.effective_radius_pct) == (7, 93, 84)


def test_sweep_report(two_colony_plate, plate_config, small_grid):
    report = run_parameter_sweep(two_colony_plate, small_grid, plate_config)
    counts = [r.count for r in report.results]
    assert len(counts) == 4
    assert counts == sorted(counts, reverse=True)
    by_id = {r.param_id: r.count for r in report.results}
    assert by_id["t-L2-3-1-255"] == 0
    assert by_id["t-L2-3-1-0"] >= by_id["t-L2-3-1-255"]
    assert all(r.count > report.baseline for r in report.improving)

    payload = json.loads(json.dumps(report.to_json_dict()))
    assert set(payload) == {"baseline", "results"}
    assert payload["baseline"] == report.baseline
    assert set(payload["results"][0]) == {"id", "params", "count"}


def test_sweep_table_and_figure(two_colony_plate, plate_config, small_grid, tmp_path):
    report = run_parameter_sweep(two_colony_plate, small_grid, plate_config)
    frame = report.to_frame()
    assert len(frame) == 4
    assert list(frame["count"]) == [r.count for r in report.results]
    figure = plot_sweep(report, tmp_path / "figures" / "sweep.png")
    assert figure.exists()


def test_empty_grid_runs_nothing(two_colony_plate, plate_config):
    grid = SweepGrid(alphas=(), absolute_thresholds=())
    assert len(grid) == 0
    report = run_parameter_sweep(two_colony_plate, grid, plate_config)
    assert report.results == []
    assert report.improving == []
    assert report.to_json_dict()["results"] == []
