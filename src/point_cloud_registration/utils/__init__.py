"""
Utility Functions Module

This module provides common utility functions used across the package.
- Logging setup
- Typed YAML configuration
- Point cloud file reading
- Transformation matrix file IO
"""

from .logging import setup_logger, set_package_log_level
from .config import AppConfig, ICPConfig, load_config
from .io import read_points
from .transform_io import save_transform_matrix, load_transform_matrix

__all__ = [
    "setup_logger",
    "set_package_log_level",
    "AppConfig",
    "ICPConfig",
    "load_config",
    "read_points",
    "save_transform_matrix",
    "load_transform_matrix",
]
