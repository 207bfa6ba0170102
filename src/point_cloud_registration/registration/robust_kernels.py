"""
Robust kernels for point-to-plane estimation.

A kernel maps residuals to per-pair weights for iteratively reweighted least
squares. Large residuals (likely outliers) are down-weighted by every kernel
except L2.
"""

from __future__ import annotations

from abc import ABC, abstractmethod

from ..acceleration.array_backend import ArrayType, get_array_module


class RobustKernel(ABC):
    """Weight function over residuals."""

    def __init__(self, k: float = 1.0):
        if k <= 0:
            raise ValueError(f"Kernel scale k must be positive, got {k}")
        self.k = k

    @abstractmethod
    def weight(self, residual: ArrayType) -> ArrayType:
        """Per-residual weights, same shape as ``residual``."""

    def __repr__(self) -> str:
        return f"{type(self).__name__}(k={self.k})"


class L2Loss(RobustKernel):
    """Plain least squares, every pair weighted 1."""

    def weight(self, residual: ArrayType) -> ArrayType:
        xp = get_array_module(residual)
        return xp.ones_like(residual)


class HuberLoss(RobustKernel):
    def weight(self, residual: ArrayType) -> ArrayType:
        xp = get_array_module(residual)
        return self.k / xp.maximum(xp.abs(residual), self.k)


class CauchyLoss(RobustKernel):
    def weight(self, residual: ArrayType) -> ArrayType:
        return 1.0 / (1.0 + (residual / self.k) ** 2)


class TukeyLoss(RobustKernel):
    def weight(self, residual: ArrayType) -> ArrayType:
        xp = get_array_module(residual)
        inside = xp.abs(residual) <= self.k
        return xp.where(inside, (1.0 - (residual / self.k) ** 2) ** 2, 0.0)


_KERNELS = {
    "l2": L2Loss,
    "huber": HuberLoss,
    "cauchy": CauchyLoss,
    "tukey": TukeyLoss,
}


def get_robust_kernel(name: str, k: float = 1.0) -> RobustKernel:
    """Kernel by name: 'l2', 'huber', 'cauchy' or 'tukey'."""
    try:
        kernel_cls = _KERNELS[name.lower()]
    except KeyError:
        raise ValueError(f"Unknown robust kernel '{name}', expected one of {sorted(_KERNELS)}")
    return kernel_cls(k)
