"""
Nearest-neighbor search over a fixed target point set.

The index is built once and queried repeatedly. Two query modes are offered:

- ``knn_search``: k nearest target points per query, with **linear** distances.
- ``hybrid_search``: nearest target points within a radius, with **squared**
  distances. The radius is given in the same squared units, and queries with
  no target point inside it get index ``-1``.

Backends:
- CPU:0 data: sklearn KDTree (NumPy arrays)
- CUDA data: cuML NearestNeighbors when installed, otherwise sklearn on a CPU
  copy with results moved back to the query's device
"""

import logging
import time
from typing import Literal, Optional, Tuple

import numpy as np
from sklearn.neighbors import NearestNeighbors as SklearnNN

from .array_backend import ArrayType, device_of, ensure_cpu_array, to_device
from ..errors import DeviceMismatchError, IndexNotBuiltError, PreconditionViolation

logger = logging.getLogger(__name__)


class NearestNeighborSearch:
    """
    Spatial index over target points with kNN and hybrid (radius-bounded) queries.

    Parameters
    ----------
    dataset_points : array, shape (n_points, 3), optional
        Target points. If given, the index is built immediately.
    algorithm : {'auto', 'ball_tree', 'kd_tree', 'brute'}, default='kd_tree'
        Algorithm used by the sklearn backend
    leaf_size : int, default=30
        Leaf size passed to the sklearn tree
    n_jobs : int, optional
        Parallel jobs for sklearn queries (None = 1, -1 = all cores)
    use_gpu : bool, default=True
        Use cuML for CUDA-resident data when it is installed

    Attributes
    ----------
    backend_ : str
        Backend in use: 'sklearn-cpu', 'cuml' or 'sklearn-gpu'
    device : str
        Device tag of the indexed points
    dtype : numpy.dtype
        Precision of the indexed points
    """

    def __init__(
        self,
        dataset_points: Optional[ArrayType] = None,
        algorithm: Literal['auto', 'ball_tree', 'kd_tree', 'brute'] = 'kd_tree',
        leaf_size: int = 30,
        n_jobs: Optional[int] = None,
        use_gpu: bool = True,
    ):
        self.algorithm = algorithm
        self.leaf_size = leaf_size
        self.n_jobs = n_jobs
        self.use_gpu = use_gpu

        self._model = None
        self._is_built = False
        self.backend_ = 'sklearn-cpu'
        self.device: Optional[str] = None
        self.dtype = None
        self.n_points = 0

        if dataset_points is not None:
            self.build(dataset_points)

    @property
    def is_built(self) -> bool:
        return self._is_built

    def build(self, dataset_points: ArrayType) -> 'NearestNeighborSearch':
        """
        Build the index on ``dataset_points``.

        Parameters
        ----------
        dataset_points : array, shape (n_points, 3)
            Target points (NumPy or CuPy)

        Returns
        -------
        self : NearestNeighborSearch
        """
        if dataset_points.ndim != 2 or dataset_points.shape[1] != 3:
            raise PreconditionViolation(
                f"Index points must have shape (N, 3), got {tuple(dataset_points.shape)}"
            )
        if dataset_points.shape[0] == 0:
            raise PreconditionViolation("Cannot build a nearest-neighbor index on zero points")

        self._is_built = False
        start = time.time()
        self.device = device_of(dataset_points)
        self.dtype = dataset_points.dtype
        self.n_points = int(dataset_points.shape[0])

        if self.device.startswith("CUDA") and self.use_gpu:
            try:
                from cuml.neighbors import NearestNeighbors as CuMLNN

                self._model = CuMLNN(n_neighbors=1)
                self._model.fit(dataset_points)
                self.backend_ = 'cuml'
            except ImportError:
                logger.warning("cuML not available; indexing CUDA points with sklearn on a CPU copy")
                self._model = self._fit_sklearn(ensure_cpu_array(dataset_points))
                self.backend_ = 'sklearn-gpu'
        else:
            self._model = self._fit_sklearn(ensure_cpu_array(dataset_points))
            self.backend_ = 'sklearn-cpu' if self.device.startswith("CPU") else 'sklearn-gpu'

        self._is_built = True
        logger.debug(
            "Nearest-neighbor index on %d points built in %.4f s (backend=%s).",
            self.n_points,
            time.time() - start,
            self.backend_,
        )
        return self

    def _fit_sklearn(self, points: np.ndarray) -> SklearnNN:
        model = SklearnNN(
            n_neighbors=1,
            algorithm=self.algorithm,
            leaf_size=self.leaf_size,
            metric='euclidean',
            n_jobs=self.n_jobs,
        )
        return model.fit(points)

    def _check_query(self, query_points: ArrayType, k: int) -> None:
        if not self._is_built:
            raise IndexNotBuiltError("Nearest-neighbor index is not built; call build() first")
        query_device = device_of(query_points)
        if query_device != self.device:
            raise DeviceMismatchError(
                f"Query points on {query_device} but index built on {self.device}"
            )
        if query_points.ndim != 2 or query_points.shape[1] != 3:
            raise PreconditionViolation(
                f"Query points must have shape (N, 3), got {tuple(query_points.shape)}"
            )
        if k < 1:
            raise ValueError(f"k must be >= 1, got {k}")
        if k > self.n_points:
            raise ValueError(f"k={k} exceeds the {self.n_points} indexed points")

    def _kneighbors(self, query_points: ArrayType, k: int) -> Tuple[ArrayType, ArrayType]:
        if self.backend_ == 'cuml':
            distances, indices = self._model.kneighbors(query_points, n_neighbors=k)
            return distances, indices

        distances, indices = self._model.kneighbors(ensure_cpu_array(query_points), n_neighbors=k)
        if self.backend_ == 'sklearn-gpu':
            distances = to_device(distances, self.device)
            indices = to_device(indices, self.device)
        return distances, indices

    def knn_search(self, query_points: ArrayType, k: int = 1) -> Tuple[ArrayType, ArrayType]:
        """
        Find the k nearest indexed points of each query point.

        Parameters
        ----------
        query_points : array, shape (n_queries, 3)
        k : int, default=1

        Returns
        -------
        indices : array, shape (n_queries, k), int64
        distances : array, shape (n_queries, k)
            Linear (Euclidean) distances, ascending per row
        """
        self._check_query(query_points, k)
        distances, indices = self._kneighbors(query_points, k)
        return indices.astype(np.int64), distances.astype(self.dtype)

    def hybrid_search(
        self,
        query_points: ArrayType,
        radius: float,
        k: int = 1,
    ) -> Tuple[ArrayType, ArrayType]:
        """
        Find up to k nearest indexed points within ``radius`` of each query point.

        ``radius`` is compared against squared distances, matching the squared
        distances this method returns.

        Parameters
        ----------
        query_points : array, shape (n_queries, 3)
        radius : float
            Squared search radius
        k : int, default=1

        Returns
        -------
        indices : array, shape (n_queries, k), int64
            Neighbor indices, -1 where no indexed point lies within the radius
        squared_distances : array, shape (n_queries, k)
            Squared distances, 0 where the index is -1
        """
        self._check_query(query_points, k)
        distances, indices = self._kneighbors(query_points, k)

        squared = distances.astype(self.dtype) ** 2
        indices = indices.astype(np.int64)
        outside = squared > radius
        indices[outside] = -1
        squared[outside] = 0
        return indices, squared
