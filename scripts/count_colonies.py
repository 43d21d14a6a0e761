"""
Count colonies on one petri-dish photograph.

Loads the image, builds the pipeline configuration (defaults, a master
sensitivity, or a saved JSON config), runs one processing pass and reports the
count. Optionally writes the JSON summary and an annotated image.

Usage:
    python scripts/count_colonies.py plate.jpg --config plate.json --annotate plate_counted.png
"""

import argparse
import json
import sys
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

import cv2
from loguru import logger

sys.path.append(str(Path(__file__).parent.parent / "src"))

from colony_analyzer import annotate_result, process_image
from image_processing import load_image
from pipeline_config import PipelineConfig, load_config

# %% ------------------------------------ Configuration ------------------------------------ #
@dataclass
class CountConfig:
    """Inputs and outputs of one counting run."""
    image_path: Path
    config_path: Optional[Path] = None
    sensitivity: Optional[float] = None
    summary_path: Optional[Path] = None
    annotate_path: Optional[Path] = None


def parse_args() -> CountConfig:
    parser = argparse.ArgumentParser(description="Count colonies on a petri-dish image.")
    parser.add_argument("image", type=Path, help="Plate image (any format OpenCV decodes)")
    parser.add_argument("--config", type=Path, default=None, help="JSON file of camelCase options")
    parser.add_argument("--sensitivity", type=float, default=None, help="Master sensitivity 0-10")
    parser.add_argument("--summary", type=Path, default=None, help="Write the JSON summary here")
    parser.add_argument("--annotate", type=Path, default=None, help="Write an annotated image here")
    args = parser.parse_args()
    return CountConfig(args.image, args.config, args.sensitivity, args.summary, args.annotate)


# %% ------------------------------------ Main ------------------------------------ #
@logger.catch
def main() -> None:
    run = parse_args()

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

    result = process_image(config, image)
    if result is None:
        logger.error(f"Nothing to process in {run.image_path}")
        return

    if result.count_a is not None:
        logger.success(f"{run.image_path.name}: {result.count} colonies (A={result.count_a}, B={result.count_b})")
    else:
        logger.success(f"{run.image_path.name}: {result.count} colonies")

    if run.summary_path is not None:
        run.summary_path.parent.mkdir(parents=True, exist_ok=True)
        with run.summary_path.open("w", encoding="utf-8") as f:
            json.dump(result.summary(), f, indent=2)
        logger.info(f"Summary saved: {run.summary_path}")

    if run.annotate_path is not None:
        run.annotate_path.parent.mkdir(parents=True, exist_ok=True)
        cv2.imwrite(str(run.annotate_path), annotate_result(image, result, config))
        logger.info(f"Annotated image saved: {run.annotate_path}")


if __name__ == "__main__":
    main()
