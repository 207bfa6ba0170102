"""
Geometry Module

Point cloud container and rigid-transform validation helpers.
"""

from .point_cloud import (
    PointCloud,
    check_compatible,
    identity_transformation,
    validate_transformation,
)

__all__ = [
    "PointCloud",
    "check_compatible",
    "identity_transformation",
    "validate_transformation",
]
