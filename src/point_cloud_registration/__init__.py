"""
Point Cloud Registration Package

Rigid alignment of a source point cloud onto a target point cloud with the
Iterative Closest Point (ICP) algorithm. The ICP loop, correspondence search
and transform estimators are implemented from scratch on NumPy arrays (or
CuPy arrays for CUDA-resident clouds), with scikit-learn providing the
nearest-neighbor index.
"""

__version__ = "0.1.0"

from .errors import *
from .geometry import *
from .registration import *

__all__ = [
    "errors",
    "geometry",
    "registration",
    "acceleration",
    "utils",
]
