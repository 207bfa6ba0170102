"""
Tests for transform estimators and robust kernels.
"""

from pathlib import Path
import sys

import numpy as np
import pytest

sys.path.append(str(Path(__file__).parent.parent / "src"))

from point_cloud_registration.errors import (
    InsufficientCorrespondenceError,
    PreconditionViolation,
)
from point_cloud_registration.geometry import PointCloud
from point_cloud_registration.registration import (
    CauchyLoss,
    HuberLoss,
    L2Loss,
    TransformationEstimationPointToPlane,
    TransformationEstimationPointToPoint,
    TukeyLoss,
    get_estimation,
    get_robust_kernel,
)


def _rotation_z(deg: float) -> np.ndarray:
    th = np.deg2rad(deg)
    return np.array([
        [np.cos(th), -np.sin(th), 0.0],
        [np.sin(th), np.cos(th), 0.0],
        [0.0, 0.0, 1.0],
    ])


def _rigid(R: np.ndarray, t) -> np.ndarray:
    T = np.eye(4)
    T[:3, :3] = R
    T[:3, 3] = t
    return T


def _all_pairs(n: int):
    return np.ones(n, dtype=bool), np.arange(n, dtype=np.int64)


def test_point_to_point_recovers_exact_transform():
    rng = np.random.default_rng(0)
    src = rng.normal(size=(200, 3)) * np.array([10.0, 5.0, 2.0])
    T_true = _rigid(_rotation_z(20.0), [1.0, -2.0, 0.5])
    tgt = src @ T_true[:3, :3].T + T_true[:3, 3]

    mask, idx = _all_pairs(200)
    T = TransformationEstimationPointToPoint().compute_transformation(
        PointCloud(src), PointCloud(tgt), mask, idx
    )

    assert T.shape == (4, 4)
    np.testing.assert_allclose(T, T_true, atol=1e-9)
    assert np.linalg.det(T[:3, :3]) == pytest.approx(1.0)


def test_point_to_point_uses_only_matched_pairs():
    rng = np.random.default_rng(1)
    src = rng.normal(size=(100, 3)) * 5.0
    T_true = _rigid(_rotation_z(-10.0), [0.3, 0.2, -0.1])
    tgt = src @ T_true[:3, :3].T + T_true[:3, 3]
    # Corrupt the unmatched half of the source; it must be ignored
    src_corrupted = src.copy()
    src_corrupted[50:] += 100.0

    mask = np.zeros(100, dtype=bool)
    mask[:50] = True
    idx = np.arange(50, dtype=np.int64)

    T = TransformationEstimationPointToPoint().compute_transformation(
        PointCloud(src_corrupted), PointCloud(tgt), mask, idx
    )
    np.testing.assert_allclose(T, T_true, atol=1e-9)


def test_point_to_point_keeps_precision():
    rng = np.random.default_rng(2)
    src = rng.normal(size=(50, 3)).astype(np.float32)
    mask, idx = _all_pairs(50)
    T = TransformationEstimationPointToPoint().compute_transformation(
        PointCloud(src), PointCloud(src.copy()), mask, idx
    )
    assert T.dtype == np.float32
    np.testing.assert_allclose(T, np.eye(4), atol=1e-5)


def test_point_to_point_needs_three_pairs():
    rng = np.random.default_rng(3)
    src = rng.normal(size=(10, 3))
    mask = np.zeros(10, dtype=bool)
    mask[:2] = True
    with pytest.raises(InsufficientCorrespondenceError):
        TransformationEstimationPointToPoint().compute_transformation(
            PointCloud(src), PointCloud(src.copy()), mask, np.array([0, 1])
        )


def test_point_to_point_rejects_collinear_pairs():
    src = np.column_stack([np.arange(10.0), np.zeros(10), np.zeros(10)])
    mask, idx = _all_pairs(10)
    with pytest.raises(InsufficientCorrespondenceError):
        TransformationEstimationPointToPoint().compute_transformation(
            PointCloud(src), PointCloud(src.copy()), mask, idx
        )


def test_inconsistent_mask_and_indices_rejected():
    src = np.random.default_rng(4).normal(size=(10, 3))
    mask, _ = _all_pairs(10)
    with pytest.raises(PreconditionViolation):
        TransformationEstimationPointToPoint().compute_transformation(
            PointCloud(src), PointCloud(src.copy()), mask, np.arange(5)
        )


def _bumpy_surface(n: int = 3000, seed: int = 5) -> np.ndarray:
    rng = np.random.default_rng(seed)
    xy = rng.uniform(0.0, 10.0, size=(n, 2))
    z = 0.5 * np.sin(xy[:, 0]) + 0.5 * np.cos(xy[:, 1])
    return np.column_stack([xy, z])


def test_point_to_plane_requires_normals():
    pts = _bumpy_surface(n=100)
    mask, idx = _all_pairs(100)
    with pytest.raises(PreconditionViolation):
        TransformationEstimationPointToPlane().compute_transformation(
            PointCloud(pts), PointCloud(pts.copy()), mask, idx
        )


def test_point_to_plane_identity_on_aligned_clouds():
    pts = _bumpy_surface(n=500)
    target = PointCloud(pts.copy()).estimate_normals(k=15)
    mask, idx = _all_pairs(500)

    T = TransformationEstimationPointToPlane().compute_transformation(
        PointCloud(pts.copy()), target, mask, idx
    )
    np.testing.assert_allclose(T, np.eye(4), atol=1e-9)


def test_point_to_plane_reduces_plane_residual():
    pts = _bumpy_surface(n=2000)
    target = PointCloud(pts.copy()).estimate_normals(k=15)
    T_true = _rigid(_rotation_z(1.0), [0.05, -0.03, 0.02])
    # Source is the target moved by the inverse of T_true
    T_inv = np.linalg.inv(T_true)
    source = PointCloud(pts @ T_inv[:3, :3].T + T_inv[:3, 3])
    mask, idx = _all_pairs(2000)

    estimator = TransformationEstimationPointToPlane()
    before = estimator.compute_rmse(source, target, mask, idx)
    T = estimator.compute_transformation(source, target, mask, idx)
    after = estimator.compute_rmse(source.clone().transform(T), target, mask, idx)

    assert after < before * 0.2
    np.testing.assert_allclose(T, T_true, atol=2e-2)


def test_point_to_plane_needs_six_pairs():
    pts = _bumpy_surface(n=50)
    target = PointCloud(pts.copy()).estimate_normals(k=10)
    mask = np.zeros(50, dtype=bool)
    mask[:5] = True
    with pytest.raises(InsufficientCorrespondenceError):
        TransformationEstimationPointToPlane().compute_transformation(
            PointCloud(pts.copy()), target, mask, np.arange(5)
        )


def test_point_to_plane_rejects_planar_degeneracy():
    rng = np.random.default_rng(6)
    pts = np.column_stack([rng.uniform(size=(200, 2)), np.zeros(200)])
    normals = np.tile([0.0, 0.0, 1.0], (200, 1))
    mask, idx = _all_pairs(200)
    # A flat plane does not constrain in-plane translation or rotation about z
    with pytest.raises(InsufficientCorrespondenceError):
        TransformationEstimationPointToPlane().compute_transformation(
            PointCloud(pts), PointCloud(pts.copy(), normals), mask, idx
        )


def test_robust_kernel_weights():
    r = np.array([0.0, 0.5, 1.0, 2.0, 4.0])

    np.testing.assert_allclose(L2Loss().weight(r), np.ones(5))
    np.testing.assert_allclose(HuberLoss(k=1.0).weight(r), [1.0, 1.0, 1.0, 0.5, 0.25])
    np.testing.assert_allclose(CauchyLoss(k=1.0).weight(r), 1.0 / (1.0 + r ** 2))
    np.testing.assert_allclose(TukeyLoss(k=2.0).weight(r), [1.0, 0.87890625, 0.5625, 0.0, 0.0])


def test_kernel_and_estimation_factories():
    assert isinstance(get_robust_kernel("huber", 0.5), HuberLoss)
    assert get_robust_kernel("Tukey", 2.0).k == 2.0
    with pytest.raises(ValueError):
        get_robust_kernel("welsch")
    with pytest.raises(ValueError):
        HuberLoss(k=0.0)

    assert isinstance(get_estimation("point_to_point"), TransformationEstimationPointToPoint)
    p2l = get_estimation("point_to_plane", kernel=CauchyLoss(0.3))
    assert isinstance(p2l, TransformationEstimationPointToPlane)
    assert isinstance(p2l.kernel, CauchyLoss)
    with pytest.raises(ValueError):
        get_estimation("point_to_point", kernel=HuberLoss())
    with pytest.raises(ValueError):
        get_estimation("colored")
