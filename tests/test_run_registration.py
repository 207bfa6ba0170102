"""
End-to-end test of the registration command-line script.
"""

import importlib.util
from pathlib import Path
import sys

import numpy as np

sys.path.append(str(Path(__file__).parent.parent / "src"))

from point_cloud_registration.utils.transform_io import load_transform_matrix, save_transform_matrix

SCRIPT = Path(__file__).parent.parent / "scripts" / "run_registration.py"


def _load_script():
    module_spec = importlib.util.spec_from_file_location("run_registration", SCRIPT)
    module = importlib.util.module_from_spec(module_spec)
    module_spec.loader.exec_module(module)
    return module


def _clouds(tmp_path):
    rng = np.random.default_rng(0)
    src = rng.normal(size=(500, 3)) * np.array([10.0, 5.0, 2.0])
    T = np.eye(4)
    T[:3, 3] = [0.3, -0.2, 0.1]
    tgt = src + T[:3, 3]
    src_path = tmp_path / "source.npy"
    tgt_path = tmp_path / "target.npy"
    np.save(src_path, src)
    np.save(tgt_path, tgt)
    return src_path, tgt_path, T


def test_cli_writes_estimated_transform(tmp_path):
    src_path, tgt_path, T_true = _clouds(tmp_path)
    out = tmp_path / "out" / "transform.txt"

    code = _load_script().main([
        str(src_path), str(tgt_path),
        "--max-distance", "2.0",
        "--max-iteration", "50",
        "--output", str(out),
        "--log-level", "WARNING",
    ])

    assert code == 0
    np.testing.assert_allclose(load_transform_matrix(out), T_true, atol=1e-6)


def test_cli_accepts_initial_guess(tmp_path):
    src_path, tgt_path, T_true = _clouds(tmp_path)
    init_path = tmp_path / "init.txt"
    save_transform_matrix(T_true, init_path)
    out = tmp_path / "transform.txt"

    code = _load_script().main([
        str(src_path), str(tgt_path),
        "--init", str(init_path),
        "--max-distance", "0.5",
        "--output", str(out),
    ])

    assert code == 0
    np.testing.assert_allclose(load_transform_matrix(out), T_true, atol=1e-9)


def test_cli_reports_failure(tmp_path):
    src_path, tgt_path, _ = _clouds(tmp_path)
    far = tmp_path / "far.npy"
    np.save(far, np.load(tgt_path) + 1000.0)

    code = _load_script().main([str(src_path), str(far), "--max-distance", "1.0"])

    assert code == 1
