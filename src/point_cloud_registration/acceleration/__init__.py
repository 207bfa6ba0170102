"""
Acceleration Module

Device handling and nearest-neighbor search:
- hardware_detection.py: CUDA availability
- array_backend.py: NumPy/CuPy dispatch and device tags
- spatial_index.py: kNN and hybrid (radius-bounded) search over target points
"""

from .hardware_detection import GPUInfo, detect_gpu, get_gpu_info, clear_gpu_cache
from .array_backend import (
    CPU_DEVICE,
    device_of,
    ensure_cpu_array,
    get_array_module,
    is_gpu_array,
    to_device,
)
from .spatial_index import NearestNeighborSearch

__all__ = [
    "GPUInfo",
    "detect_gpu",
    "get_gpu_info",
    "clear_gpu_cache",
    "CPU_DEVICE",
    "device_of",
    "ensure_cpu_array",
    "get_array_module",
    "is_gpu_array",
    "to_device",
    "NearestNeighborSearch",
]
