"""
CUDA device detection.

Decides whether point clouds may be placed on a ``CUDA:<id>`` device. Detection
never raises; an unusable GPU is reported through ``GPUInfo.error_message``.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import List, Optional

logger = logging.getLogger(__name__)


@dataclass
class GPUInfo:
    """CUDA devices visible to CuPy."""

    available: bool
    device_count: int = 0
    device_names: List[str] = field(default_factory=list)
    memory_gb: List[float] = field(default_factory=list)
    cuda_version: Optional[str] = None
    error_message: Optional[str] = None

    def has_device(self, device_id: int) -> bool:
        return self.available and 0 <= device_id < self.device_count


def _unavailable(reason: str) -> GPUInfo:
    return GPUInfo(available=False, error_message=reason)


def detect_gpu() -> GPUInfo:
    """
    Query CuPy for usable CUDA devices.

    Returns:
        GPUInfo listing every device, or an unavailable marker with the reason
    """
    try:
        import cupy as cp
    except ImportError as e:
        logger.debug("CuPy not installed, clouds stay on CPU:0: %s", e)
        return _unavailable("CuPy not installed")

    try:
        if not cp.cuda.is_available():
            logger.info("CUDA runtime not available, clouds stay on CPU:0")
            return _unavailable("CUDA runtime not available")

        count = cp.cuda.runtime.getDeviceCount()
        names = [
            cp.cuda.runtime.getDeviceProperties(i)["name"].decode("utf-8") for i in range(count)
        ]
        memory = [cp.cuda.Device(i).mem_info[1] / 1024**3 for i in range(count)]
    except Exception as e:
        logger.warning(f"CUDA detection failed, clouds stay on CPU:0: {e}")
        return _unavailable(str(e))

    if count == 0:
        return _unavailable("No CUDA devices detected")

    info = GPUInfo(
        available=True,
        device_count=count,
        device_names=names,
        memory_gb=memory,
        cuda_version=str(cp.cuda.runtime.runtimeGetVersion()),
    )
    for i, (name, mem) in enumerate(zip(names, memory)):
        logger.info(f"CUDA:{i} {name} ({mem:.1f} GB)")
    return info


_gpu_info_cache: Optional[GPUInfo] = None


def get_gpu_info() -> GPUInfo:
    """Return cached device information, detecting on first call."""
    global _gpu_info_cache

    if _gpu_info_cache is None:
        _gpu_info_cache = detect_gpu()

    return _gpu_info_cache


def clear_gpu_cache() -> None:
    """Forget cached device information so the next call re-detects."""
    global _gpu_info_cache
    _gpu_info_cache = None
