"""
Auto-tune the binarization and morphology for one plate image.

Runs the grid search once, logs the winning parameters and writes the tuned
configuration as a JSON file that count_colonies.py accepts via --config.

Usage:
    python scripts/auto_tune_plate.py plate.jpg --output tuned.json --sensitivity 6
"""

import argparse
import sys
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from loguru import logger

sys.path.append(str(Path(__file__).parent.parent / "src"))

from auto_tune import auto_tune
from image_processing import load_image
from pipeline_config import PipelineConfig, load_config, save_config

# %% ------------------------------------ Configuration ------------------------------------ #
@dataclass
class TuneRunConfig:
    image_path: Path
    output_path: Path = Path("tuned_config.json")
    config_path: Optional[Path] = None
    sensitivity: Optional[float] = None
    log_file: Optional[Path] = None


def parse_args() -> TuneRunConfig:
    parser = argparse.ArgumentParser(description="Grid-search the counting parameters for one plate.")
    parser.add_argument("image", type=Path)
    parser.add_argument("--output", type=Path, default=Path("tuned_config.json"))
    parser.add_argument("--config", type=Path, default=None, help="Starting JSON config")
    parser.add_argument("--sensitivity", type=float, default=None, help="Starting master sensitivity 0-10")
    parser.add_argument("--log-file", type=Path, default=None, help="Also log every candidate to this file")
    args = parser.parse_args()
    return TuneRunConfig(args.image, args.output, args.config, args.sensitivity, args.log_file)


def setup_logging(log_file: Optional[Path]) -> None:
    logger.remove()
    logger.add(
        sys.stdout,
        format="<green>{time:YYYY-MM-DD HH:mm:ss}</green> | "
               "<level>{level: <8}</level> | "
               "<cyan>{module: <20}</cyan>:<cyan>{line: <4}</cyan> - | "
               "<level>{message}</level>",
        level="INFO"
    )
    if log_file is not None:
        logger.add(
            str(log_file),
            format="{time:YYYY-MM-DD HH:mm:ss} | {level: <8} | {module: <20}:{line: <4} - | {message}",
            level="DEBUG",
            mode="w"
        )


# %% ------------------------------------ Main ------------------------------------ #
@logger.catch
def main() -> None:
    run = parse_args()
    setup_logging(run.log_file)

    if run.config_path is not None:
        config = load_config(run.config_path)
    elif run.sensitivity is not None:
        config = PipelineConfig.from_sensitivity(run.sensitivity)
    else:
        config = PipelineConfig()

    try:
        image = load_image(run.image_path)
    except (FileNotFoundError, IOError) as e:
        logger.error(str(e))
        return

    result = auto_tune(image, config, show_progress=True)
    logger.success(f"Best count {result.count} after {result.evaluated} candidates")
    if not result.calibrated:
        logger.info("Hue class A left at its previous values")
    save_config(result.config, run.output_path)


if __name__ == "__main__":
    main()
