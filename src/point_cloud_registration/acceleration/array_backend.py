"""
NumPy/CuPy array dispatch.

Point clouds and transforms are plain arrays: NumPy arrays live on ``CPU:0``
and CuPy arrays on ``CUDA:<id>``. This module maps arrays to their device tag
and array module so the rest of the package can stay backend agnostic.
"""

from __future__ import annotations

import logging
from typing import Any, Tuple, Union

import numpy as np

from .hardware_detection import get_gpu_info

logger = logging.getLogger(__name__)

ArrayType = Union[np.ndarray, Any]  # Any to support cupy.ndarray without import

CPU_DEVICE = "CPU:0"


def _cupy():
    """Return the cupy module when a CUDA device is usable, else None."""
    if not get_gpu_info().available:
        return None
    try:
        import cupy as cp
    except ImportError:
        return None
    return cp


def parse_device(device: str) -> Tuple[str, int]:
    """
    Split a device tag such as ``"CUDA:1"`` into ``("CUDA", 1)``.

    Raises:
        ValueError: If the tag is not ``CPU:<n>`` or ``CUDA:<n>``
    """
    kind, _, index = str(device).partition(":")
    kind = kind.upper()
    if kind not in ("CPU", "CUDA"):
        raise ValueError(f"Unknown device '{device}', expected 'CPU:0' or 'CUDA:<id>'")
    try:
        device_id = int(index) if index else 0
    except ValueError:
        raise ValueError(f"Invalid device index in '{device}'")
    return kind, device_id


def is_gpu_array(arr: ArrayType) -> bool:
    """True if ``arr`` is a CuPy array."""
    cp = _cupy()
    return cp is not None and isinstance(arr, cp.ndarray)


def get_array_module(arr: ArrayType):
    """Return ``cupy`` for CuPy arrays and ``numpy`` otherwise."""
    cp = _cupy()
    if cp is not None and isinstance(arr, cp.ndarray):
        return cp
    return np


def device_of(arr: ArrayType) -> str:
    """Device tag of an array: ``CPU:0`` or ``CUDA:<id>``."""
    if is_gpu_array(arr):
        return f"CUDA:{arr.device.id}"
    return CPU_DEVICE


def ensure_cpu_array(arr: ArrayType) -> np.ndarray:
    """Return ``arr`` as a NumPy array, copying from the GPU if needed."""
    if is_gpu_array(arr):
        return arr.get()
    return np.asarray(arr)


def to_device(arr: ArrayType, device: str) -> ArrayType:
    """
    Move an array to ``device``.

    Args:
        arr: NumPy or CuPy array
        device: Target device tag

    Returns:
        Array on the requested device (the same object if already there)

    Raises:
        ValueError: If a CUDA device is requested but CuPy/CUDA is unavailable
    """
    kind, device_id = parse_device(device)
    if kind == "CPU":
        return ensure_cpu_array(arr)

    cp = _cupy()
    info = get_gpu_info()
    if cp is None:
        raise ValueError(f"Cannot move array to {device}: {info.error_message}")
    if not info.has_device(device_id):
        raise ValueError(f"Cannot move array to {device}: only {info.device_count} CUDA device(s) visible")
    if isinstance(arr, cp.ndarray) and arr.device.id == device_id:
        return arr
    with cp.cuda.Device(device_id):
        return cp.asarray(arr)
