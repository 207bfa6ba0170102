"""
ICP Registration Driver

Implements the Iterative Closest Point loop:
1. Builds a nearest-neighbor index on the target once
2. Transforms a working copy of the source by the initial guess and
   evaluates correspondences
3. Repeatedly asks the estimator for an incremental update, left-composes it
   into the running transform (T <- update @ T), moves the working source and
   re-evaluates correspondences
4. Stops when both fitness and inlier RMSE change less than the convergence
   criteria, or after max_iteration updates
"""

from __future__ import annotations

import time
from enum import Enum
from typing import Optional

from .correspondence import CorrespondenceEvaluator, SearchMethod
from .estimation import (
    TransformationEstimation,
    TransformationEstimationPointToPoint,
    get_estimation,
)
from .result import ICPConvergenceCriteria, RegistrationResult, TerminationReason
from .robust_kernels import get_robust_kernel
from ..acceleration.array_backend import ArrayType
from ..acceleration.spatial_index import NearestNeighborSearch
from ..errors import RegistrationError
from ..geometry.point_cloud import (
    PointCloud,
    check_compatible,
    identity_transformation,
    validate_transformation,
)
from ..utils.config import ICPConfig
from ..utils.logging import setup_logger

logger = setup_logger(__name__)


class TransformUpdatePolicy(Enum):
    """How the working source cloud follows the running transform."""

    # Apply each update to the already-moved points (one small transform per iteration)
    INCREMENTAL = "incremental"
    # Re-transform the original source by the cumulative transform (no drift)
    RECOMPUTE_FROM_ORIGINAL = "recompute"


class ICPRegistration:
    """
    Rigid ICP registration of a source point cloud onto a target point cloud.

    The estimator is pluggable; the driver never inspects how an update was
    computed. Estimator and evaluator errors propagate unchanged.
    """

    def __init__(
        self,
        max_correspondence_distance: float = 1.0,
        estimation: Optional[TransformationEstimation] = None,
        criteria: Optional[ICPConvergenceCriteria] = None,
        search_method: SearchMethod | str = SearchMethod.HYBRID,
        update_policy: TransformUpdatePolicy | str = TransformUpdatePolicy.INCREMENTAL,
        use_gpu: bool = True,
    ):
        """
        Initialize ICP parameters.

        Args:
            max_correspondence_distance: Maximum distance for point correspondences.
            estimation: Transform solver, point-to-point if None.
            criteria: Convergence criteria, defaults if None.
            search_method: Correspondence search strategy (HYBRID or KNN).
            update_policy: INCREMENTAL moves the working cloud by each update;
                RECOMPUTE_FROM_ORIGINAL re-transforms the original source by the
                cumulative transform every iteration.
            use_gpu: Allow cuML for the nearest-neighbor index of CUDA clouds.
        """
        self.max_correspondence_distance = max_correspondence_distance
        self.estimation = estimation if estimation is not None else TransformationEstimationPointToPoint()
        self.criteria = criteria if criteria is not None else ICPConvergenceCriteria()
        self.evaluator = CorrespondenceEvaluator(search_method)
        self.update_policy = TransformUpdatePolicy(update_policy)
        self.use_gpu = use_gpu

    @classmethod
    def from_config(cls, config: ICPConfig, use_gpu: bool = True) -> "ICPRegistration":
        """Build a driver from the ``icp`` section of the application config."""
        kernel = None
        if config.estimation == "point_to_plane":
            kernel = get_robust_kernel(config.kernel, config.kernel_k)
        return cls(
            max_correspondence_distance=config.max_correspondence_distance,
            estimation=get_estimation(config.estimation, kernel=kernel),
            criteria=ICPConvergenceCriteria(
                relative_fitness=config.relative_fitness,
                relative_rmse=config.relative_rmse,
                max_iteration=config.max_iteration,
            ),
            search_method=config.search_method,
            update_policy=config.update_policy,
            use_gpu=use_gpu,
        )

    def register(
        self,
        source: PointCloud,
        target: PointCloud,
        init_source_to_target: Optional[ArrayType] = None,
    ) -> RegistrationResult:
        """
        Align ``source`` onto ``target``.

        Args:
            source: Source cloud (left untouched).
            target: Target cloud.
            init_source_to_target: Initial 4x4 guess, identity if None.

        Returns:
            The last evaluated RegistrationResult; its transformation is the
            cumulative source-to-target transform.
        """
        check_compatible(source, target)
        if init_source_to_target is None:
            init_source_to_target = identity_transformation(source.device, source.dtype)
        validate_transformation(init_source_to_target, source.device, source.dtype)

        max_distance = self.max_correspondence_distance
        criteria = self.criteria
        logger.info(
            "Starting ICP alignment with %d source points and %d target points "
            "(max distance %.4g, %s, %s).",
            len(source),
            len(target),
            max_distance,
            self.estimation,
            self.evaluator.search_method.value,
        )

        index = NearestNeighborSearch(use_gpu=self.use_gpu)
        if max_distance > 0.0:
            index.build(target.points)

        transformation = init_source_to_target
        source_transformed = source.clone().transform(transformation)

        icp_start = time.time()
        result = self.evaluator.evaluate(
            source_transformed, target, index, max_distance, transformation
        )

        termination = TerminationReason.MAX_ITERATION
        n_iterations = 0
        for iteration in range(criteria.max_iteration):
            logger.debug(
                "ICP Iteration #%d: Fitness %.4f, RMSE %.4f",
                iteration,
                result.fitness,
                result.inlier_rmse,
            )
            try:
                update = self.estimation.compute_transformation(
                    source_transformed,
                    target,
                    result.correspondence_mask,
                    result.correspondence_indices,
                )
                transformation = update @ transformation

                if self.update_policy is TransformUpdatePolicy.INCREMENTAL:
                    source_transformed.transform(update)
                else:
                    source_transformed = source.clone().transform(transformation)

                previous = result
                result = self.evaluator.evaluate(
                    source_transformed, target, index, max_distance, transformation
                )
            except RegistrationError as e:
                logger.error("ICP failed at iteration %d: %s", iteration, e)
                raise
            n_iterations = iteration + 1

            if criteria.is_converged(previous, result):
                termination = TerminationReason.CONVERGED
                break

        logger.info(
            "ICP finished in %.4f s (%d iterations, %s). Fitness: %.6f, inlier RMSE: %.6f",
            time.time() - icp_start,
            n_iterations,
            termination.value,
            result.fitness,
            result.inlier_rmse,
        )
        return result.with_termination(termination, n_iterations)


def registration_icp(
    source: PointCloud,
    target: PointCloud,
    max_correspondence_distance: float,
    init_source_to_target: Optional[ArrayType] = None,
    estimation: Optional[TransformationEstimation] = None,
    criteria: Optional[ICPConvergenceCriteria] = None,
    search_method: SearchMethod | str = SearchMethod.HYBRID,
    update_policy: TransformUpdatePolicy | str = TransformUpdatePolicy.INCREMENTAL,
) -> RegistrationResult:
    """
    Functional form of ``ICPRegistration(...).register(source, target, init)``.
    """
    icp = ICPRegistration(
        max_correspondence_distance=max_correspondence_distance,
        estimation=estimation,
        criteria=criteria,
        search_method=search_method,
        update_policy=update_policy,
    )
    return icp.register(source, target, init_source_to_target)
