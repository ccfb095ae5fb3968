"""Spectral clustering with bounded recursive separation of notes.

Rows ``0..num_notes-1`` of the adjacency matrix are notes. Clusters that end
up holding two or more notes are split again on their induced submatrix, at
most ``max_depth`` levels deep.
"""

import logging
import warnings
from enum import Enum

import numpy as np
from sklearn.cluster import KMeans
from sklearn.exceptions import ConvergenceWarning

from ..errors import ConfigurationError, IndexOutOfBounds, NotSquare

logger = logging.getLogger(__name__)

DEGREE_EPSILON = 1e-5
EIGENVALUE_THRESHOLD = 1e-5
GAP_FLOOR = 1e-4
MAX_DEPTH = 4
KMEANS_TRIALS = 15
KMEANS_TOLERANCE = 1e-5


class LaplacianCandidate(Enum):
    UNNORMALIZED = "unnormalized"
    RANDOM_WALK = "random_walk"
    SYMMETRIC = "symmetric"


class NumClustersCandidate(Enum):
    THRESHOLD = "threshold"
    BIGGEST_DISTANCE_IN_PERCENTAGES = "biggest_distance_in_percentages"
    BIGGEST_DISTANCE_IN_ABSOLUTE = "biggest_distance_in_absolute"


def degree_vectors(adjacency: np.ndarray) -> tuple[np.ndarray, np.ndarray]:
    """Row sums and their reciprocals.

    Degrees under DEGREE_EPSILON are kept as they are instead of inverted.
    """
    d = adjacency.sum(axis=1)
    d1 = d.copy()
    big = d >= DEGREE_EPSILON
    d1[big] = 1.0 / d[big]
    return d, d1


def laplacian(adjacency: np.ndarray, candidate: LaplacianCandidate) -> np.ndarray:
    d, d1 = degree_vectors(adjacency)
    unnormalized = np.diag(d) - adjacency

    if candidate == LaplacianCandidate.UNNORMALIZED:
        return unnormalized
    elif candidate == LaplacianCandidate.RANDOM_WALK:
        return np.diag(d1) @ unnormalized
    elif candidate == LaplacianCandidate.SYMMETRIC:
        sqrt_d1 = np.diag(np.sqrt(d1))
        return sqrt_d1 @ unnormalized @ sqrt_d1
    raise ConfigurationError(f"Unknown laplacian candidate: {candidate}")


def sorted_eigen(matrix: np.ndarray, symmetric: bool) -> tuple[np.ndarray, np.ndarray]:
    """Eigenpairs sorted by ascending eigenvalue; vectors are columns."""
    if symmetric:
        values, vectors = np.linalg.eigh(matrix)
    else:
        values, vectors = np.linalg.eig(matrix)
        values = np.real(values)
        vectors = np.real(vectors)
    order = np.argsort(values, kind="stable")
    return values[order], vectors[:, order]


def choose_num_clusters(eigenvalues: np.ndarray, candidate: NumClustersCandidate) -> int:
    if candidate == NumClustersCandidate.THRESHOLD:
        return int(np.sum(eigenvalues < EIGENVALUE_THRESHOLD))

    if len(eigenvalues) < 2:
        return 1
    previous = eigenvalues[:-1]
    deltas = np.abs(np.diff(eigenvalues))

    if candidate == NumClustersCandidate.BIGGEST_DISTANCE_IN_PERCENTAGES:
        gaps = deltas / np.maximum(previous, GAP_FLOOR)
    elif candidate == NumClustersCandidate.BIGGEST_DISTANCE_IN_ABSOLUTE:
        gaps = np.round(deltas, 2)
    else:
        raise ConfigurationError(f"Unknown cluster count candidate: {candidate}")
    return int(np.argmax(gaps)) + 1


def submatrix(matrix: np.ndarray, indices: list[int]) -> np.ndarray:
    """Rows and columns restricted to the sorted ``indices``."""
    if matrix.shape[0] != matrix.shape[1]:
        raise NotSquare(matrix.shape)
    indices = sorted(indices)
    if indices and indices[-1] >= matrix.shape[0]:
        raise IndexOutOfBounds(indices[-1], matrix.shape[0])
    return matrix[np.ix_(indices, indices)]


class SpectralClustering:
    """Spectral clustering tuned for mixed notes and pages."""

    def __init__(
        self,
        laplacian_candidate: LaplacianCandidate = LaplacianCandidate.RANDOM_WALK,
        num_clusters_candidate: NumClustersCandidate = NumClustersCandidate.BIGGEST_DISTANCE_IN_PERCENTAGES,
        trials: int = KMEANS_TRIALS,
        max_depth: int = MAX_DEPTH,
    ):
        self.laplacian_candidate = laplacian_candidate
        self.num_clusters_candidate = num_clusters_candidate
        self.trials = trials
        self.max_depth = max_depth

    def fit_predict(
        self,
        adjacency: np.ndarray,
        num_groups: int | None = None,
        num_notes: int = 0,
        depth: int = 0,
    ) -> list[int]:
        """Cluster the rows of ``adjacency``.

        Args:
            adjacency: Symmetric n x n adjacency matrix.
            num_groups: Force this many clusters instead of reading the spectrum.
            num_notes: How many leading rows are notes.
            depth: Recursion level, callers leave it at 0.

        Returns:
            One raw label per row. Only the grouping is meaningful.
        """
        n = adjacency.shape[0]
        if n < 2:
            return [0] * n
        if depth >= self.max_depth:
            logger.debug(f"Depth {depth} reached, keeping {n} rows together")
            return [0] * n

        matrix = laplacian(adjacency, self.laplacian_candidate)
        symmetric = self.laplacian_candidate != LaplacianCandidate.RANDOM_WALK
        eigenvalues, eigenvectors = sorted_eigen(matrix, symmetric)

        if num_groups is not None:
            num_clusters = min(num_groups, n)
        else:
            num_clusters = choose_num_clusters(eigenvalues, self.num_clusters_candidate)
        if num_clusters <= 1:
            return [0] * n

        points = eigenvectors[:, :num_clusters]
        labels = self._best_kmeans(points, num_clusters, num_notes)
        return self._separate_notes(adjacency, labels, num_notes, depth)

    def _best_kmeans(self, points: np.ndarray, num_clusters: int, num_notes: int) -> list[int]:
        """Lowest scoring of several k-means runs.

        The score multiplies inertia by how many requested clusters went
        unused and by how many notes share a cluster.
        """
        best_labels: list[int] = []
        best_score: float | None = None

        for trial in range(self.trials):
            kmeans = KMeans(n_clusters=num_clusters, n_init=1, tol=KMEANS_TOLERANCE,
                            random_state=trial)
            with warnings.catch_warnings():
                warnings.simplefilter("ignore", ConvergenceWarning)
                predicted = kmeans.fit_predict(points)

            labels = [int(label) for label in predicted]
            score = float(kmeans.inertia_)
            score *= 1 + num_clusters - len(set(labels))
            score *= num_notes - len(set(labels[:num_notes]))

            if best_score is None or score < best_score:
                best_score = score
                best_labels = labels

        return best_labels

    def _separate_notes(
        self,
        adjacency: np.ndarray,
        labels: list[int],
        num_notes: int,
        depth: int,
    ) -> list[int]:
        for label in sorted(set(labels[:num_notes])):
            indices = [i for i, current in enumerate(labels) if current == label]
            notes_in_cluster = sum(1 for i in indices if i < num_notes)
            if notes_in_cluster < 2:
                continue

            split = self.fit_predict(
                submatrix(adjacency, indices),
                num_groups=2,
                num_notes=notes_in_cluster,
                depth=depth + 1,
            )
            offset = max(labels) + 1
            for index, new_label in zip(indices, split):
                labels[index] = new_label + offset

        return labels
