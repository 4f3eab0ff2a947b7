"""
Reconstruct a 3D face from a single photo and save every asset.

Runs the full pipeline (landmarks, mesh, depth, displacement) on one
image and writes a zip archive with the base image, displacement map,
overlays and a GLB model.
"""

import argparse
import asyncio
import json
import logging
import sys
from pathlib import Path

# Add project root to path
PROJECT_ROOT = Path(__file__).parent.parent
sys.path.append(str(PROJECT_ROOT))

from facerecon.config import DEPTH_CONFIG, LANDMARK_CONFIG, LOGGING_CONFIG, OUTPUT_DIR
from facerecon.depth_estimation import MiDaSDepthEstimator
from facerecon.landmarks import MediaPipeLandmarkDetector
from facerecon.pipeline import PipelineOrchestrator, ProgressEvent
from facerecon.style import StyleConfig
from facerecon.utils import LoggerFactory, get_logger
from facerecon.utils.exceptions import FaceReconstructionError

logger = get_logger(__name__)


def load_style(path):
    """Load style overrides from a JSON file."""
    if path is None:
        return StyleConfig()
    with open(path, 'r') as f:
        return StyleConfig.from_dict(json.load(f))


def print_progress(event: ProgressEvent):
    logger.info(f"{event.percentage:3d}% {event.message}")


async def reconstruct(args) -> int:
    style = load_style(args.style)

    with MediaPipeLandmarkDetector(model_path=args.landmark_model) as detector:
        estimator = MiDaSDepthEstimator(model_type=args.model_type, device=args.device)
        orchestrator = PipelineOrchestrator(detector, estimator, style=style, progress=print_progress)
        result = await orchestrator.run(Path(args.image))

    archive_path = Path(args.output)
    await result.download(archive_path)

    if args.show:
        await result.add.image()
        await result.add.overlays()
        await result.add.displaced_face()
        result.scene.to_trimesh().show()

    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description='Single-image 3D Face Reconstruction')

    parser.add_argument('image', type=str,
                        help='Path to the input photo')
    parser.add_argument('--output', type=str, default=str(OUTPUT_DIR),
                        help='Archive file or directory to write assets to')
    parser.add_argument('--style', type=str,
                        help='JSON file with style overrides')
    parser.add_argument('--model-type', type=str, default=DEPTH_CONFIG['model_type'],
                        choices=list(DEPTH_CONFIG['input_sizes']),
                        help='MiDaS depth model variant')
    parser.add_argument('--landmark-model', type=str, default=str(LANDMARK_CONFIG['model_path']),
                        help='Face landmarker .task file (downloaded when missing)')
    parser.add_argument('--device', type=str, default=DEPTH_CONFIG['device'],
                        choices=['auto', 'cpu', 'cuda'],
                        help='Device for depth estimation')
    parser.add_argument('--show', action='store_true',
                        help='Open the reconstructed scene in a viewer')
    parser.add_argument('--log-file', action='store_true',
                        help='Also write logs to the log directory')
    parser.add_argument('--log-level', type=str, default=LOGGING_CONFIG['level'],
                        choices=['DEBUG', 'INFO', 'WARNING', 'ERROR'],
                        help='Logging level')

    return parser


def main():
    """Main reconstruction function."""
    args = build_parser().parse_args()

    LoggerFactory.setup(
        log_dir=LOGGING_CONFIG['log_dir'],
        level=getattr(logging, args.log_level),
        enable_file_logging=args.log_file or LOGGING_CONFIG['file_logging']
    )

    try:
        sys.exit(asyncio.run(reconstruct(args)))
    except FaceReconstructionError as e:
        logger.error(f"Reconstruction failed: {e}")
        sys.exit(1)


if __name__ == "__main__":
    main()
