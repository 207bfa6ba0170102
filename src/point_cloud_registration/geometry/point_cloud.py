"""
Point Cloud Container

A point cloud is an ordered (N, 3) array of points with optional per-point
normals. The array type decides the device (NumPy -> CPU:0, CuPy -> CUDA:<id>)
and its dtype the precision. Clouds taking part in one registration must share
both, and every transform applied to a cloud must be a 4x4 matrix on the same
device with the same precision.
"""

from __future__ import annotations

from typing import Optional

import numpy as np
from sklearn.neighbors import NearestNeighbors

from ..acceleration.array_backend import (
    ArrayType,
    device_of,
    ensure_cpu_array,
    get_array_module,
    to_device,
)
from ..errors import DeviceMismatchError, DtypeMismatchError, PreconditionViolation
from ..utils.io import read_points
from ..utils.logging import setup_logger

logger = setup_logger(__name__)

SUPPORTED_DTYPES = (np.dtype(np.float32), np.dtype(np.float64))


def check_compatible(source: "PointCloud", target: "PointCloud") -> None:
    """
    Ensure two point clouds share device and precision.

    Raises:
        DeviceMismatchError: Devices differ
        DtypeMismatchError: Precisions differ
    """
    if target.device != source.device:
        raise DeviceMismatchError(
            f"Target point cloud device {target.device} != source point cloud device {source.device}."
        )
    if target.dtype != source.dtype:
        raise DtypeMismatchError(
            f"Target point cloud dtype {target.dtype} != source point cloud dtype {source.dtype}."
        )


def validate_transformation(transformation: ArrayType, device: str, dtype) -> None:
    """
    Ensure ``transformation`` is a 4x4 matrix on ``device`` with ``dtype``.

    Raises:
        PreconditionViolation: Wrong shape
        DeviceMismatchError: Wrong device
        DtypeMismatchError: Wrong precision
    """
    shape = tuple(getattr(transformation, "shape", ()))
    if shape != (4, 4):
        raise PreconditionViolation(f"Transformation must be a 4x4 matrix, got shape {shape}")
    t_device = device_of(transformation)
    if t_device != device:
        raise DeviceMismatchError(f"Transformation device {t_device} != point cloud device {device}.")
    if transformation.dtype != dtype:
        raise DtypeMismatchError(
            f"Transformation dtype {transformation.dtype} != point cloud dtype {dtype}."
        )


def identity_transformation(device: str = "CPU:0", dtype=np.float64) -> ArrayType:
    """4x4 identity on ``device`` with ``dtype``."""
    return to_device(np.eye(4, dtype=dtype), device)


class PointCloud:
    """
    Ordered set of 3D points with optional normals.

    The points array is stored without copying. ``transform`` rebinds the
    cloud to a new array and leaves the caller's array untouched.
    """

    def __init__(self, points: ArrayType, normals: Optional[ArrayType] = None):
        if points.ndim != 2 or points.shape[1] != 3:
            raise PreconditionViolation(f"Points must have shape (N, 3), got {tuple(points.shape)}")
        if np.dtype(points.dtype) not in SUPPORTED_DTYPES:
            raise PreconditionViolation(
                f"Points must be float32 or float64, got {points.dtype}"
            )
        self._points = points
        self._normals = None
        if normals is not None:
            self.normals = normals

    @classmethod
    def from_array(
        cls,
        points,
        normals=None,
        dtype=np.float64,
        device: str = "CPU:0",
    ) -> "PointCloud":
        """Build a cloud from array-likes, converting to ``dtype`` on ``device``."""
        pts = to_device(np.asarray(ensure_cpu_array(points), dtype=dtype), device)
        nrm = None
        if normals is not None:
            nrm = to_device(np.asarray(ensure_cpu_array(normals), dtype=dtype), device)
        return cls(pts, nrm)

    @classmethod
    def from_file(cls, file_path, dtype=np.float64, device: str = "CPU:0") -> "PointCloud":
        """Read XYZ points from .npy, text or LAS/LAZ files."""
        return cls.from_array(read_points(file_path, dtype=dtype), dtype=dtype, device=device)

    # ------------------------ Properties ------------------------
    @property
    def points(self) -> ArrayType:
        return self._points

    @property
    def normals(self) -> Optional[ArrayType]:
        return self._normals

    @normals.setter
    def normals(self, normals: Optional[ArrayType]) -> None:
        if normals is None:
            self._normals = None
            return
        if tuple(normals.shape) != tuple(self._points.shape):
            raise PreconditionViolation(
                f"Normals shape {tuple(normals.shape)} != points shape {tuple(self._points.shape)}"
            )
        if device_of(normals) != self.device:
            raise DeviceMismatchError(f"Normals device {device_of(normals)} != points device {self.device}.")
        if normals.dtype != self.dtype:
            raise DtypeMismatchError(f"Normals dtype {normals.dtype} != points dtype {self.dtype}.")
        self._normals = normals

    @property
    def has_normals(self) -> bool:
        return self._normals is not None

    @property
    def device(self) -> str:
        return device_of(self._points)

    @property
    def dtype(self):
        return self._points.dtype

    def __len__(self) -> int:
        return int(self._points.shape[0])

    @property
    def is_empty(self) -> bool:
        return len(self) == 0

    def __repr__(self) -> str:
        return (
            f"PointCloud(n_points={len(self)}, device={self.device}, dtype={self.dtype}, "
            f"has_normals={self.has_normals})"
        )

    # ------------------------ Copies and conversion ------------------------
    def clone(self) -> "PointCloud":
        normals = None if self._normals is None else self._normals.copy()
        return PointCloud(self._points.copy(), normals)

    def to(self, device: str) -> "PointCloud":
        """Copy of this cloud on ``device``."""
        normals = None if self._normals is None else to_device(self._normals, device)
        return PointCloud(to_device(self._points, device), normals)

    def astype(self, dtype) -> "PointCloud":
        """Copy of this cloud with precision ``dtype``."""
        normals = None if self._normals is None else self._normals.astype(dtype)
        return PointCloud(self._points.astype(dtype), normals)

    # ------------------------ Geometry ------------------------
    def transform(self, transformation: ArrayType) -> "PointCloud":
        """
        Apply a rigid transform in place: p' = R p + t, normals rotated.

        Args:
            transformation: 4x4 matrix on this cloud's device and precision

        Returns:
            self
        """
        validate_transformation(transformation, self.device, self.dtype)
        if self.is_empty:
            return self

        R = transformation[:3, :3]
        t = transformation[:3, 3]
        self._points = self._points @ R.T + t
        if self._normals is not None:
            self._normals = self._normals @ R.T
        return self

    def get_center(self) -> ArrayType:
        xp = get_array_module(self._points)
        return xp.mean(self._points, axis=0)

    def get_min_bound(self) -> ArrayType:
        xp = get_array_module(self._points)
        return xp.min(self._points, axis=0)

    def get_max_bound(self) -> ArrayType:
        xp = get_array_module(self._points)
        return xp.max(self._points, axis=0)

    def estimate_normals(self, k: int = 20) -> "PointCloud":
        """
        Estimate unit normals by PCA over each point's k nearest neighbors.

        The normal is the direction of least variance of the neighborhood. Its
        sign is ambiguous; normals are not oriented.

        Args:
            k: Neighborhood size (including the point itself)

        Returns:
            self
        """
        n = len(self)
        if n < 3:
            raise PreconditionViolation(f"Need at least 3 points to estimate normals, got {n}")
        k = min(k, n)

        points = ensure_cpu_array(self._points)
        nbrs = NearestNeighbors(n_neighbors=k, algorithm="kd_tree").fit(points)
        idx_matrix = nbrs.kneighbors(points, return_distance=False)

        neighborhoods = points[idx_matrix]  # (n, k, 3)
        centered = neighborhoods - neighborhoods.mean(axis=1, keepdims=True)
        cov = np.einsum("nki,nkj->nij", centered, centered) / k
        # eigh returns eigenvalues ascending, so column 0 is the normal
        _, eigvecs = np.linalg.eigh(cov)
        normals = eigvecs[:, :, 0].astype(self.dtype)

        self._normals = to_device(normals, self.device)
        logger.debug("Estimated normals for %d points (k=%d).", n, k)
        return self
