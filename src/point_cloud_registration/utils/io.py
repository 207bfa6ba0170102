"""
Point cloud file reading.

Supported formats:
- .npy: (N, 3) array (extra columns are ignored)
- .txt / .xyz / .csv / .pts: whitespace or comma separated, first three columns XYZ
- .las / .laz: via laspy (LAZ needs the lazrs or laszip backend)
"""

from pathlib import Path

import laspy
import numpy as np

from .logging import setup_logger

logger = setup_logger(__name__)

TEXT_SUFFIXES = ('.txt', '.xyz', '.csv', '.pts')
LAS_SUFFIXES = ('.las', '.laz')


def read_points(file_path: str | Path, dtype=np.float64) -> np.ndarray:
    """
    Read XYZ coordinates from a point cloud file.

    Args:
        file_path: Path to the point cloud file
        dtype: Output precision

    Returns:
        (N, 3) array of points

    Raises:
        FileNotFoundError: If the file does not exist
        ValueError: If the format is unsupported or the file holds fewer than 3 columns
    """
    file_path = Path(file_path)
    if not file_path.exists():
        raise FileNotFoundError(f"File not found: {file_path}")

    suffix = file_path.suffix.lower()
    if suffix == '.npy':
        data = np.load(file_path)
    elif suffix in TEXT_SUFFIXES:
        delimiter = ',' if suffix == '.csv' else None
        data = np.loadtxt(file_path, delimiter=delimiter, ndmin=2)
    elif suffix in LAS_SUFFIXES:
        las = laspy.read(file_path)
        data = np.column_stack([
            np.array(las.x, dtype=np.float64),
            np.array(las.y, dtype=np.float64),
            np.array(las.z, dtype=np.float64),
        ])
    else:
        raise ValueError(f"Unsupported file format: {file_path.suffix}")

    if data.ndim != 2 or data.shape[1] < 3:
        raise ValueError(f"Expected at least 3 columns of coordinates in {file_path}, got shape {data.shape}")

    points = np.ascontiguousarray(data[:, :3], dtype=dtype)
    logger.info(f"Loaded {len(points)} points from {file_path}")
    return points
