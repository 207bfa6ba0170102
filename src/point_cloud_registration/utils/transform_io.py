"""
Reading and writing 4x4 transformation matrices as text files.
"""

from pathlib import Path

import numpy as np

from .logging import setup_logger

logger = setup_logger(__name__)


def save_transform_matrix(transform: np.ndarray, output_file: str | Path) -> None:
    """Save a transformation matrix to a text file.

    Args:
        transform: 4x4 transformation matrix
        output_file: Path to output file
    """
    transform = np.asarray(transform)
    if transform.shape != (4, 4):
        raise ValueError(f"Transform must be 4x4 matrix, got {transform.shape}")
    Path(output_file).parent.mkdir(parents=True, exist_ok=True)
    np.savetxt(output_file, transform, fmt='%.18e', header='4x4 transformation matrix')
    logger.info(f"Saved transformation matrix to {output_file}")


def load_transform_matrix(input_file: str | Path, dtype=np.float64) -> np.ndarray:
    """Load a transformation matrix from a text file.

    Args:
        input_file: Path to input file
        dtype: Precision of the returned matrix

    Returns:
        4x4 transformation matrix
    """
    transform = np.loadtxt(input_file, dtype=dtype)
    if transform.shape != (4, 4):
        raise ValueError(f"Expected 4x4 matrix, got shape {transform.shape}")
    logger.info(f"Loaded transformation matrix from {input_file}")
    return transform
