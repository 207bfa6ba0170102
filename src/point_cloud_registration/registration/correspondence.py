"""
Correspondence Evaluation

Matches every point of an (already transformed) source cloud to its nearest
target point through a prebuilt spatial index, and scores the match set:

- fitness: matched source points / all source points
- inlier_rmse: sqrt(sum of squared pair distances / matched pairs)

Two search methods are available. KNN queries the exact nearest neighbor and
keeps pairs whose linear distance is within the threshold. HYBRID asks the
index for the nearest neighbor inside a radius; the index works with squared
distances, so the threshold is squared before the query.
"""

from __future__ import annotations

import math
from enum import Enum
from typing import Optional

from .result import RegistrationResult
from ..acceleration.array_backend import ArrayType, get_array_module
from ..acceleration.spatial_index import NearestNeighborSearch
from ..errors import EmptyCorrespondenceError, IndexNotBuiltError
from ..geometry.point_cloud import (
    PointCloud,
    check_compatible,
    identity_transformation,
    validate_transformation,
)
from ..utils.logging import setup_logger

logger = setup_logger(__name__)


class SearchMethod(Enum):
    """Correspondence search strategy."""

    KNN = "knn"
    HYBRID = "hybrid"


class CorrespondenceEvaluator:
    """
    Finds source-to-target correspondences and computes fitness / inlier RMSE.

    Attributes:
        search_method: KNN (exact nearest, linear-distance threshold) or
            HYBRID (radius-bounded nearest, squared-distance threshold)
    """

    def __init__(self, search_method: SearchMethod | str = SearchMethod.HYBRID):
        self.search_method = SearchMethod(search_method)

    def evaluate(
        self,
        source: PointCloud,
        target: PointCloud,
        index: NearestNeighborSearch,
        max_correspondence_distance: float,
        transformation: ArrayType,
    ) -> RegistrationResult:
        """
        Evaluate correspondences of ``source`` against the indexed ``target``.

        Args:
            source: Source cloud, already transformed by ``transformation``
            target: Target cloud the index was built on
            index: Built spatial index over ``target.points``
            max_correspondence_distance: Linear distance cutoff for a match
            transformation: Transform recorded in the result (not applied here)

        Returns:
            RegistrationResult with mask, indices, fitness and inlier RMSE

        Raises:
            PreconditionViolation: Device/precision mismatch or malformed transform
            IndexNotBuiltError: ``index`` has not been built
            EmptyCorrespondenceError: No source point found a match
        """
        check_compatible(source, target)
        validate_transformation(transformation, source.device, source.dtype)

        if max_correspondence_distance <= 0.0:
            return RegistrationResult.empty(transformation, len(source))

        if not index.is_built:
            raise IndexNotBuiltError(
                "Correspondence evaluation requires a built nearest-neighbor index."
            )
        if source.is_empty:
            raise EmptyCorrespondenceError("Source point cloud is empty; fitness is undefined.")

        if self.search_method is SearchMethod.KNN:
            mask, indices, squared = self._knn_correspondences(
                source.points, index, max_correspondence_distance
            )
        else:
            mask, indices, squared = self._hybrid_correspondences(
                source.points, index, max_correspondence_distance
            )

        n_source = len(source)
        n_matched = int(mask.sum())
        if n_matched == 0:
            raise EmptyCorrespondenceError(
                f"No correspondences within distance {max_correspondence_distance} "
                f"for {n_source} source points; fitness and inlier RMSE are undefined."
            )

        xp = get_array_module(squared)
        squared_error = float(xp.sum(squared, dtype=xp.float64))
        return RegistrationResult(
            transformation=transformation,
            correspondence_mask=mask,
            correspondence_indices=indices,
            fitness=n_matched / n_source,
            inlier_rmse=math.sqrt(squared_error / n_matched),
        )

    @staticmethod
    def _knn_correspondences(points, index, max_correspondence_distance):
        nn_indices, distances = index.knn_search(points, k=1)
        nn_indices = nn_indices.reshape(-1)
        distances = distances.reshape(-1)

        mask = distances <= max_correspondence_distance
        # knn_search returns linear distances
        return mask, nn_indices[mask], distances[mask] ** 2

    @staticmethod
    def _hybrid_correspondences(points, index, max_correspondence_distance):
        radius = max_correspondence_distance * max_correspondence_distance
        nn_indices, squared_distances = index.hybrid_search(points, radius, k=1)
        nn_indices = nn_indices.reshape(-1)
        squared_distances = squared_distances.reshape(-1)

        mask = nn_indices != -1
        return mask, nn_indices[mask], squared_distances[mask]


def evaluate_registration(
    source: PointCloud,
    target: PointCloud,
    max_correspondence_distance: float,
    transformation: Optional[ArrayType] = None,
    search_method: SearchMethod | str = SearchMethod.HYBRID,
) -> RegistrationResult:
    """
    Score how well ``transformation`` aligns ``source`` onto ``target``.

    Builds an index on the target, applies ``transformation`` to a copy of the
    source and evaluates correspondences once.

    Args:
        source: Source cloud (left untouched)
        target: Target cloud
        max_correspondence_distance: Linear distance cutoff for a match
        transformation: 4x4 transform, identity if None
        search_method: Correspondence search strategy

    Returns:
        RegistrationResult
    """
    check_compatible(source, target)
    if transformation is None:
        transformation = identity_transformation(source.device, source.dtype)
    validate_transformation(transformation, source.device, source.dtype)

    index = NearestNeighborSearch()
    if max_correspondence_distance > 0.0:
        index.build(target.points)

    source_transformed = source.clone().transform(transformation)
    return CorrespondenceEvaluator(search_method).evaluate(
        source_transformed, target, index, max_correspondence_distance, transformation
    )
