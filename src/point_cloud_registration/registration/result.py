"""
Registration result and convergence criteria types.
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Optional

import numpy as np

from ..acceleration.array_backend import ArrayType, ensure_cpu_array, get_array_module


class TerminationReason(Enum):
    """Why the ICP loop stopped."""

    CONVERGED = "converged"
    MAX_ITERATION = "max_iteration"


@dataclass(frozen=True)
class ICPConvergenceCriteria:
    """
    Stopping rule for ICP.

    Iteration stops once the change in fitness is below ``relative_fitness``
    and the change in inlier RMSE is below ``relative_rmse``, or after
    ``max_iteration`` transform updates.
    """

    relative_fitness: float = 1e-6
    relative_rmse: float = 1e-6
    max_iteration: int = 30

    def __post_init__(self):
        if self.max_iteration < 0:
            raise ValueError(f"max_iteration must be >= 0, got {self.max_iteration}")

    def is_converged(self, previous: "RegistrationResult", current: "RegistrationResult") -> bool:
        return (
            abs(previous.fitness - current.fitness) < self.relative_fitness
            and abs(previous.inlier_rmse - current.inlier_rmse) < self.relative_rmse
        )


@dataclass(frozen=True)
class RegistrationResult:
    """
    Outcome of evaluating (or running) a registration.

    Attributes:
        transformation: 4x4 transform the correspondences were evaluated under
        correspondence_mask: (N,) bool, True where source point i has a match
        correspondence_indices: (M,) int64 target indices, one per True mask
            entry, in ascending source order
        fitness: Fraction of source points with a match
        inlier_rmse: RMS distance over matched pairs
        num_iterations: Transform updates applied (0 for a plain evaluation)
        termination: Why ICP stopped, None for a plain evaluation
    """

    transformation: ArrayType
    correspondence_mask: ArrayType
    correspondence_indices: ArrayType
    fitness: float = 0.0
    inlier_rmse: float = 0.0
    num_iterations: int = 0
    termination: Optional[TerminationReason] = field(default=None)

    @classmethod
    def empty(cls, transformation: ArrayType, num_source_points: int) -> "RegistrationResult":
        """Result with no correspondences under ``transformation``."""
        xp = get_array_module(transformation)
        return cls(
            transformation=transformation,
            correspondence_mask=xp.zeros(num_source_points, dtype=bool),
            correspondence_indices=xp.zeros(0, dtype=np.int64),
        )

    @property
    def num_correspondences(self) -> int:
        return int(self.correspondence_indices.shape[0])

    @property
    def converged(self) -> bool:
        return self.termination is TerminationReason.CONVERGED

    @property
    def correspondence_set(self) -> np.ndarray:
        """(M, 2) array of (source_index, target_index) pairs on the CPU."""
        mask = ensure_cpu_array(self.correspondence_mask)
        source_idx = np.flatnonzero(mask).astype(np.int64)
        target_idx = ensure_cpu_array(self.correspondence_indices).astype(np.int64)
        return np.column_stack([source_idx, target_idx])

    def with_termination(self, reason: TerminationReason, num_iterations: int) -> "RegistrationResult":
        return replace(self, termination=reason, num_iterations=num_iterations)

    def __repr__(self) -> str:
        reason = None if self.termination is None else self.termination.value
        return (
            f"RegistrationResult(fitness={self.fitness:.6f}, inlier_rmse={self.inlier_rmse:.6f}, "
            f"correspondences={self.num_correspondences}, iterations={self.num_iterations}, "
            f"termination={reason})"
        )
