"""
Register a source point cloud onto a target point cloud with ICP.

Example:
    uv run scripts/run_registration.py data/source.laz data/target.laz \
        --config config/default.yaml --output results/source_to_target.txt
"""

import sys
import argparse
from pathlib import Path

import numpy as np

# Add the src to the path to import modules
sys.path.append(str(Path(__file__).parent.parent / "src"))

from point_cloud_registration.geometry import PointCloud
from point_cloud_registration.registration import ICPRegistration
from point_cloud_registration.acceleration import to_device
from point_cloud_registration.errors import RegistrationError
from point_cloud_registration.utils.config import load_config
from point_cloud_registration.utils.logging import setup_logger, set_package_log_level
from point_cloud_registration.utils.transform_io import load_transform_matrix, save_transform_matrix

logger = setup_logger("point_cloud_registration.scripts.run_registration")


def parse_args(argv=None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="ICP point cloud registration")
    parser.add_argument("source", type=str, help="Source point cloud (.npy, .txt/.xyz/.csv, .las/.laz)")
    parser.add_argument("target", type=str, help="Target point cloud (.npy, .txt/.xyz/.csv, .las/.laz)")
    parser.add_argument(
        "--config",
        type=str,
        default=None,
        help="YAML configuration file or profile name under config/profiles (defaults to config/default.yaml)",
    )
    parser.add_argument(
        "--init",
        type=str,
        default=None,
        help="Text file with an initial 4x4 source-to-target transform (identity if omitted)",
    )
    parser.add_argument(
        "--output",
        type=str,
        default=None,
        help="Where to write the estimated 4x4 transform",
    )
    parser.add_argument(
        "--max-distance",
        type=float,
        default=None,
        help="Override icp.max_correspondence_distance",
    )
    parser.add_argument(
        "--max-iteration",
        type=int,
        default=None,
        help="Override icp.max_iteration",
    )
    parser.add_argument(
        "--log-level",
        type=str,
        default=None,
        choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
        help="Override logging.level",
    )
    return parser.parse_args(argv)


def main(argv=None) -> int:
    args = parse_args(argv)
    cfg = load_config(args.config)

    if args.max_distance is not None:
        cfg.icp.max_correspondence_distance = args.max_distance
    if args.max_iteration is not None:
        cfg.icp.max_iteration = args.max_iteration
    if args.log_level is not None:
        cfg.logging.level = args.log_level
    set_package_log_level(cfg.logging.level, log_file=cfg.logging.file)

    dtype = np.dtype(cfg.input.dtype)
    device = cfg.input.device
    source = PointCloud.from_file(args.source, dtype=dtype, device=device)
    target = PointCloud.from_file(args.target, dtype=dtype, device=device)

    if cfg.icp.estimation == "point_to_plane":
        target.estimate_normals(k=cfg.icp.normals_k)

    init = None
    if args.init is not None:
        init = to_device(load_transform_matrix(args.init, dtype=dtype), device)

    icp = ICPRegistration.from_config(cfg.icp, use_gpu=cfg.acceleration.use_gpu)
    try:
        result = icp.register(source, target, init)
    except RegistrationError as e:
        logger.error(f"Registration failed: {e}")
        return 1

    logger.info(
        f"Result: fitness={result.fitness:.6f}, inlier_rmse={result.inlier_rmse:.6f}, "
        f"iterations={result.num_iterations}, termination={result.termination.value}"
    )
    transform = to_device(result.transformation, "CPU:0")
    logger.info("Estimated transform:\n%s", np.array2string(transform, precision=6, suppress_small=True))

    if args.output is not None:
        save_transform_matrix(transform, args.output)
    return 0


if __name__ == "__main__":
    sys.exit(main())
