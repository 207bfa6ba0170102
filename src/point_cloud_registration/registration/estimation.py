"""
Transformation Estimation

Strategies turning matched source/target pairs into an incremental rigid
transform. The ICP driver only relies on ``TransformationEstimation``; any
subclass can be plugged in.

Strategies implemented:
- point-to-point: closed-form SVD (Kabsch) on the matched pairs
- point-to-plane: one linearized Gauss-Newton step on the distances of source
  points to the tangent planes of their target matches, optionally reweighted
  by a robust kernel
"""

from __future__ import annotations

import math
from abc import ABC, abstractmethod
from typing import Optional, Tuple

import numpy as np

from .robust_kernels import L2Loss, RobustKernel
from ..acceleration.array_backend import (
    ArrayType,
    device_of,
    ensure_cpu_array,
    get_array_module,
    to_device,
)
from ..errors import InsufficientCorrespondenceError, PreconditionViolation
from ..geometry.point_cloud import PointCloud, check_compatible


class TransformationEstimation(ABC):
    """
    Interface for incremental transform solvers.

    Attributes:
        min_correspondences: Fewest matched pairs the strategy can solve with
    """

    min_correspondences: int = 3

    @abstractmethod
    def compute_transformation(
        self,
        source: PointCloud,
        target: PointCloud,
        correspondence_mask: ArrayType,
        correspondence_indices: ArrayType,
    ) -> ArrayType:
        """
        Solve for the transform that moves matched source points onto their targets.

        Args:
            source: Source cloud in the current aligned frame
            target: Target cloud
            correspondence_mask: (N,) bool mask over source points
            correspondence_indices: (M,) target index for each True mask entry

        Returns:
            4x4 incremental transform on the source's device and precision

        Raises:
            InsufficientCorrespondenceError: Too few or degenerate pairs
        """

    @abstractmethod
    def compute_rmse(
        self,
        source: PointCloud,
        target: PointCloud,
        correspondence_mask: ArrayType,
        correspondence_indices: ArrayType,
    ) -> float:
        """Root-mean-square of this strategy's residual over the matched pairs."""

    def _matched_pairs(
        self,
        source: PointCloud,
        target: PointCloud,
        correspondence_mask: ArrayType,
        correspondence_indices: ArrayType,
    ) -> Tuple[ArrayType, ArrayType, ArrayType]:
        """Return (matched source points, matched target points, target indices)."""
        check_compatible(source, target)
        if tuple(correspondence_mask.shape) != (len(source),):
            raise PreconditionViolation(
                f"Correspondence mask shape {tuple(correspondence_mask.shape)} "
                f"does not match {len(source)} source points"
            )
        n_matched = int(correspondence_mask.sum())
        if int(correspondence_indices.shape[0]) != n_matched:
            raise PreconditionViolation(
                f"{correspondence_indices.shape[0]} correspondence indices for "
                f"{n_matched} matched source points"
            )
        if n_matched < self.min_correspondences:
            raise InsufficientCorrespondenceError(
                f"{type(self).__name__} needs at least {self.min_correspondences} "
                f"correspondences, got {n_matched}"
            )
        return (
            source.points[correspondence_mask],
            target.points[correspondence_indices],
            correspondence_indices,
        )

    @staticmethod
    def _to_transform(R: np.ndarray, t: np.ndarray, like: ArrayType) -> ArrayType:
        transform = np.eye(4)
        transform[:3, :3] = R
        transform[:3, 3] = t
        return to_device(transform.astype(like.dtype), device_of(like))

    def __repr__(self) -> str:
        return f"{type(self).__name__}()"


class TransformationEstimationPointToPoint(TransformationEstimation):
    """
    Least-squares rigid fit between matched point pairs.

    Needs at least 3 pairs whose source points are not collinear.
    """

    min_correspondences = 3

    def compute_transformation(self, source, target, correspondence_mask, correspondence_indices):
        src, tgt, _ = self._matched_pairs(source, target, correspondence_mask, correspondence_indices)
        source_points = ensure_cpu_array(src).astype(np.float64)
        target_points = ensure_cpu_array(tgt).astype(np.float64)

        # Center the point sets
        source_centroid = np.mean(source_points, axis=0)
        target_centroid = np.mean(target_points, axis=0)
        source_centered = source_points - source_centroid
        target_centered = target_points - target_centroid

        spread = np.linalg.svd(source_centered, compute_uv=False)
        tol = math.sqrt(np.finfo(source.dtype).eps)
        if spread[1] <= tol * spread[0]:
            raise InsufficientCorrespondenceError(
                "Matched source points are collinear; rotation is not determined"
            )

        # Cross-covariance and its SVD
        H = source_centered.T @ target_centered
        U, _, Vt = np.linalg.svd(H)
        R = Vt.T @ U.T

        # Ensure proper rotation (det(R) should be 1)
        if np.linalg.det(R) < 0:
            Vt[-1, :] *= -1
            R = Vt.T @ U.T

        t = target_centroid - R @ source_centroid
        return self._to_transform(R, t, source.points)

    def compute_rmse(self, source, target, correspondence_mask, correspondence_indices):
        src, tgt, _ = self._matched_pairs(source, target, correspondence_mask, correspondence_indices)
        xp = get_array_module(src)
        squared = xp.sum((src - tgt) ** 2, axis=1)
        return math.sqrt(float(xp.mean(squared, dtype=xp.float64)))


class TransformationEstimationPointToPlane(TransformationEstimation):
    """
    Linearized point-to-plane fit using target normals.

    Minimizes sum_i w_i * ((R p_i + t - q_i) . n_i)^2 for one Gauss-Newton
    step with the small-angle approximation R ~ I + [w]_x, then turns the
    solved rotation vector into a proper rotation. Weights w_i come from
    ``kernel`` (plain least squares by default).

    Needs target normals and at least 6 pairs spanning all six degrees of
    freedom.
    """

    min_correspondences = 6

    def __init__(self, kernel: Optional[RobustKernel] = None):
        self.kernel = kernel if kernel is not None else L2Loss()

    def _residuals(self, source, target, correspondence_mask, correspondence_indices):
        if not target.has_normals:
            raise PreconditionViolation(
                "Point-to-plane estimation requires target normals; call target.estimate_normals()"
            )
        src, tgt, idx = self._matched_pairs(source, target, correspondence_mask, correspondence_indices)
        xp = get_array_module(src)
        normals = target.normals[idx]
        residuals = xp.sum((src - tgt) * normals, axis=1)
        return src, normals, residuals

    def compute_transformation(self, source, target, correspondence_mask, correspondence_indices):
        src, normals, residuals = self._residuals(
            source, target, correspondence_mask, correspondence_indices
        )
        points = ensure_cpu_array(src).astype(np.float64)
        normals = ensure_cpu_array(normals).astype(np.float64)
        residuals = ensure_cpu_array(residuals).astype(np.float64)
        weights = ensure_cpu_array(self.kernel.weight(residuals)).astype(np.float64)

        # Jacobian rows: d(residual)/d(rotation, translation) = [p x n, n]
        J = np.hstack([np.cross(points, normals), normals])
        JtW = J.T * weights
        A = JtW @ J
        b = -JtW @ residuals

        if np.linalg.matrix_rank(A) < 6:
            raise InsufficientCorrespondenceError(
                "Point-to-plane normal equations are rank deficient; "
                "correspondences do not constrain all six degrees of freedom"
            )
        x = np.linalg.solve(A, b)

        R = _rotation_from_vector(x[:3])
        return self._to_transform(R, x[3:], source.points)

    def compute_rmse(self, source, target, correspondence_mask, correspondence_indices):
        _, _, residuals = self._residuals(source, target, correspondence_mask, correspondence_indices)
        xp = get_array_module(residuals)
        return math.sqrt(float(xp.mean(residuals ** 2, dtype=xp.float64)))

    def __repr__(self) -> str:
        return f"{type(self).__name__}(kernel={self.kernel!r})"


def _rotation_from_vector(omega: np.ndarray) -> np.ndarray:
    """Rotation matrix for the axis-angle vector ``omega`` (Rodrigues)."""
    theta = float(np.linalg.norm(omega))
    if theta < 1e-12:
        return np.eye(3)
    k = omega / theta
    K = np.array([
        [0.0, -k[2], k[1]],
        [k[2], 0.0, -k[0]],
        [-k[1], k[0], 0.0],
    ])
    return np.eye(3) + math.sin(theta) * K + (1.0 - math.cos(theta)) * (K @ K)


def get_estimation(name: str, kernel: Optional[RobustKernel] = None) -> TransformationEstimation:
    """Estimator by name: 'point_to_point' or 'point_to_plane'."""
    key = name.lower()
    if key == "point_to_point":
        if kernel is not None and not isinstance(kernel, L2Loss):
            raise ValueError("Robust kernels are only supported by point_to_plane estimation")
        return TransformationEstimationPointToPoint()
    if key == "point_to_plane":
        return TransformationEstimationPointToPlane(kernel=kernel)
    raise ValueError(f"Unknown estimation '{name}', expected 'point_to_point' or 'point_to_plane'")
