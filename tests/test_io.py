"""
Tests for point cloud file reading and transform matrix IO.
"""

from pathlib import Path
import sys

import laspy
import numpy as np
import pytest

sys.path.append(str(Path(__file__).parent.parent / "src"))

from point_cloud_registration.geometry import PointCloud
from point_cloud_registration.utils.io import read_points
from point_cloud_registration.utils.transform_io import (
    load_transform_matrix,
    save_transform_matrix,
)


@pytest.fixture
def sample_points():
    rng = np.random.default_rng(0)
    return rng.uniform(0.0, 100.0, size=(50, 3))


def test_read_npy_ignores_extra_columns(tmp_path, sample_points):
    path = tmp_path / "cloud.npy"
    np.save(path, np.column_stack([sample_points, np.arange(50)]))

    points = read_points(path)

    assert points.shape == (50, 3)
    np.testing.assert_array_equal(points, sample_points)


def test_read_text_formats(tmp_path, sample_points):
    xyz_path = tmp_path / "cloud.xyz"
    np.savetxt(xyz_path, sample_points)
    csv_path = tmp_path / "cloud.csv"
    np.savetxt(csv_path, sample_points, delimiter=",")

    np.testing.assert_allclose(read_points(xyz_path), sample_points)
    np.testing.assert_allclose(read_points(csv_path), sample_points)


def test_read_single_point_text_file(tmp_path):
    path = tmp_path / "one.txt"
    path.write_text("1.0 2.0 3.0\n", encoding="utf-8")
    assert read_points(path).shape == (1, 3)


def test_read_las(tmp_path, sample_points):
    path = tmp_path / "cloud.las"
    hdr = laspy.LasHeader(point_format=6, version="1.4")
    hdr.scales = np.array([0.001, 0.001, 0.001])
    hdr.offsets = np.zeros(3)
    las = laspy.LasData(hdr)
    las.x = sample_points[:, 0]
    las.y = sample_points[:, 1]
    las.z = sample_points[:, 2]
    las.write(str(path))

    points = read_points(path, dtype=np.float32)

    assert points.dtype == np.float32
    # Coordinates are quantized to the header scale
    np.testing.assert_allclose(points, sample_points, atol=1e-3)


def test_read_errors(tmp_path):
    with pytest.raises(FileNotFoundError):
        read_points(tmp_path / "missing.npy")

    bad_suffix = tmp_path / "cloud.ply"
    bad_suffix.write_text("ply\n", encoding="utf-8")
    with pytest.raises(ValueError):
        read_points(bad_suffix)

    two_columns = tmp_path / "flat.npy"
    np.save(two_columns, np.zeros((10, 2)))
    with pytest.raises(ValueError):
        read_points(two_columns)


def test_point_cloud_from_file(tmp_path, sample_points):
    path = tmp_path / "cloud.npy"
    np.save(path, sample_points)

    cloud = PointCloud.from_file(path, dtype=np.float32)

    assert len(cloud) == 50
    assert cloud.dtype == np.float32


def test_transform_matrix_roundtrip(tmp_path):
    T = np.eye(4)
    T[:3, 3] = [1.5, -2.25, 0.125]
    path = tmp_path / "nested" / "transform.txt"

    save_transform_matrix(T, path)
    loaded = load_transform_matrix(path)

    np.testing.assert_array_equal(loaded, T)
    assert load_transform_matrix(path, dtype=np.float32).dtype == np.float32


def test_transform_matrix_shape_checked(tmp_path):
    with pytest.raises(ValueError):
        save_transform_matrix(np.eye(3), tmp_path / "bad.txt")

    path = tmp_path / "three.txt"
    np.savetxt(path, np.eye(3))
    with pytest.raises(ValueError):
        load_transform_matrix(path)
