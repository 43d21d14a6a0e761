"""
Watershed parameter sweep for one plate image.

Headless diagnostic run: fixed adaptive-gaussian baseline, then every distance
transform watershed setting of the sweep grid. Writes the JSON report
({"baseline", "results"}), a CSV table and a count-vs-threshold figure.

Usage:
    python scripts/run_parameter_sweep.py plate.jpg --output-dir ../results/sweep
"""

import argparse
import json
import sys
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from loguru import logger

sys.path.append(str(Path(__file__).parent.parent / "src"))

from image_processing import load_image
from parameter_sweep import plot_sweep, run_parameter_sweep
from pipeline_config import load_config

# %% ------------------------------------ Configuration ------------------------------------ #
@dataclass
class SweepRunConfig:
    image_path: Path
    output_dir: Path = Path("sweep_results")
    config_path: Optional[Path] = None  # supplies blur, min area and effective radius


def parse_args() -> SweepRunConfig:
    parser = argparse.ArgumentParser(description="Sweep watershed parameters against a fixed baseline.")
    parser.add_argument("image", type=Path)
    parser.add_argument("--output-dir", type=Path, default=Path("sweep_results"))
    parser.add_argument("--config", type=Path, default=None)
    args = parser.parse_args()
    return SweepRunConfig(args.image, args.output_dir, args.config)


# %% ------------------------------------ Main ------------------------------------ #
@logger.catch
def main() -> None:
    run = parse_args()
    config = load_config(run.config_path) if run.config_path is not None else None

    try:
        image = load_image(run.image_path)
    except (FileNotFoundError, IOError) as e:
        logger.error(str(e))
        return

    report = run_parameter_sweep(image, config=config, show_progress=True)

    run.output_dir.mkdir(parents=True, exist_ok=True)
    stem = run.image_path.stem
    json_path = run.output_dir / f"{stem}_sweep.json"
    with json_path.open("w", encoding="utf-8") as f:
        json.dump(report.to_json_dict(), f, indent=2)
    logger.info(f"JSON report saved: {json_path}")

    csv_path = run.output_dir / f"{stem}_sweep.csv"
    report.to_frame().to_csv(csv_path, index=False)
    logger.info(f"Table saved: {csv_path}")

    plot_sweep(report, run.output_dir / f"{stem}_sweep.png")


if __name__ == "__main__":
    main()
