"""
Configuration management for point-cloud-registration.

Provides a typed pydantic model and YAML loader with sensible defaults.
"""

from __future__ import annotations

from pathlib import Path
from typing import Optional, Literal, Any, Dict

from pydantic import BaseModel, Field, ValidationError
import yaml


# -----------------------
# Typed config structures
# -----------------------


class ICPConfig(BaseModel):
    max_correspondence_distance: float = Field(
        default=1.0,
        description="Maximum source-to-target distance for a correspondence (same units as the points)",
    )
    max_iteration: int = Field(default=30, ge=0, description="Maximum number of transform updates")
    relative_fitness: float = Field(
        default=1e-6,
        description="Stop when fitness changes by less than this (and RMSE also converged)",
    )
    relative_rmse: float = Field(
        default=1e-6,
        description="Stop when inlier RMSE changes by less than this (and fitness also converged)",
    )
    estimation: Literal["point_to_point", "point_to_plane"] = Field(default="point_to_point")
    search_method: Literal["hybrid", "knn"] = Field(
        default="hybrid",
        description="'hybrid' = radius-bounded nearest neighbor, 'knn' = exact nearest then threshold",
    )
    update_policy: Literal["incremental", "recompute"] = Field(
        default="incremental",
        description="'incremental' moves the working cloud by each update; "
        "'recompute' re-transforms the original source every iteration",
    )
    kernel: Literal["l2", "huber", "cauchy", "tukey"] = Field(
        default="l2", description="Robust kernel (point_to_plane only)"
    )
    kernel_k: float = Field(default=1.0, gt=0, description="Robust kernel scale")
    normals_k: int = Field(
        default=20, ge=3, description="Neighbors used to estimate target normals for point_to_plane"
    )


class InputConfig(BaseModel):
    dtype: Literal["float32", "float64"] = Field(default="float64")
    device: str = Field(default="CPU:0", description="'CPU:0' or 'CUDA:<id>'")


class AccelerationConfig(BaseModel):
    use_gpu: bool = Field(
        default=True,
        description="Use cuML for nearest-neighbor search of CUDA-resident clouds when installed",
    )


class LoggingConfig(BaseModel):
    level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = Field(default="INFO")
    file: Optional[str] = Field(default=None)


class AppConfig(BaseModel):
    icp: ICPConfig = Field(default_factory=ICPConfig)
    input: InputConfig = Field(default_factory=InputConfig)
    acceleration: AccelerationConfig = Field(default_factory=AccelerationConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)


# -----------------------
# Loader
# -----------------------


def _project_root() -> Path:
    # repo_root/src/point_cloud_registration/utils/config.py
    return Path(__file__).resolve().parents[3]


def _resolve_config_path(path: Optional[str | Path]) -> Path:
    """
    Map ``path`` to a YAML file.

    None selects config/default.yaml. A bare name without suffix or directory
    (e.g. "point_to_plane") selects config/profiles/<name>.yaml. Anything else
    is taken as a file path.
    """
    config_dir = _project_root() / "config"
    if path is None:
        return config_dir / "default.yaml"
    candidate = Path(path)
    if candidate.suffix == "" and candidate.parent == Path("."):
        return config_dir / "profiles" / f"{candidate.name}.yaml"
    return candidate


def load_config(path: Optional[str | Path] = None, *, allow_missing: bool = True) -> AppConfig:
    """
    Load configuration from YAML into a typed AppConfig.

    Args:
        path: YAML file path, profile name, or None for config/default.yaml.
        allow_missing: If True, returns defaults when the file is missing; otherwise raises.

    Returns:
        AppConfig instance

    Raises:
        FileNotFoundError: File missing and ``allow_missing`` is False
        ValueError: The YAML does not describe a valid configuration
    """
    cfg_path = _resolve_config_path(path)

    if not cfg_path.exists():
        if allow_missing:
            return AppConfig()
        raise FileNotFoundError(f"Config file not found: {cfg_path}")

    with cfg_path.open("r", encoding="utf-8") as f:
        raw: Dict[str, Any] = yaml.safe_load(f) or {}

    try:
        cfg = AppConfig.model_validate(raw)
    except ValidationError as e:
        raise ValueError(f"Invalid configuration in {cfg_path}: {e}")

    if cfg.icp.estimation == "point_to_point" and cfg.icp.kernel != "l2":
        raise ValueError(
            f"Invalid configuration in {cfg_path}: icp.kernel '{cfg.icp.kernel}' "
            "requires icp.estimation: point_to_plane"
        )
    return cfg
