"""Square similarity matrices over notes and pages.

Rows and columns follow one ordering: every note precedes every page. An
index is only valid until the next insertion or removal.
"""

import logging
from enum import Enum
from itertools import combinations
from typing import Sequence

import numpy as np

from ..errors import DimensionMismatch, IndexOutOfBounds, NotSquare
from ..models import DataPointType

logger = logging.getLogger(__name__)


class WhereToAdd(Enum):
    FIRST = "first"
    LAST = "last"
    MIDDLE = "middle"


class SimilarityMatrix:
    """Pairwise scores between data points with positional insert/remove.

    The empty state is the 1x1 zero matrix, the same as holding one point.
    """

    def __init__(self, matrix: np.ndarray | Sequence[Sequence[float]] | None = None):
        if matrix is None:
            self.matrix = np.zeros((1, 1))
        else:
            self.matrix = np.array(matrix, dtype=float)

    @property
    def size(self) -> int:
        return self.matrix.shape[0]

    def reset(self) -> None:
        self.matrix = np.zeros((1, 1))

    def _check_square(self) -> None:
        if self.matrix.ndim != 2 or self.matrix.shape[0] != self.matrix.shape[1]:
            raise NotSquare(self.matrix.shape)

    def add_data_point(
        self,
        similarities: Sequence[float],
        kind: DataPointType,
        num_existing_notes: int,
        num_existing_pages: int,
    ) -> None:
        """Insert a data point.

        Args:
            similarities: Scores against every existing point, in matrix order.
            kind: Page or note.
            num_existing_notes: Notes already in the matrix.
            num_existing_pages: Pages already in the matrix.
        """
        self._check_square()

        if num_existing_notes == 0 and num_existing_pages == 0:
            self.reset()
            return

        if len(similarities) != self.size:
            raise DimensionMismatch(self.size, len(similarities))

        if kind == DataPointType.PAGE or num_existing_pages == 0:
            where = WhereToAdd.LAST
            position = self.size
        elif num_existing_notes == 0:
            where = WhereToAdd.FIRST
            position = 0
        else:
            where = WhereToAdd.MIDDLE
            position = num_existing_notes

        logger.debug(f"Inserting {kind.value} at {where.value} (index {position})")
        self._insert(position, np.asarray(similarities, dtype=float))

    def _insert(self, position: int, similarities: np.ndarray) -> None:
        column = np.insert(similarities, position, 0.0)
        grown = np.insert(self.matrix, position, similarities, axis=0)
        self.matrix = np.insert(grown, position, column, axis=1)

    def update_data_point(self, index: int, similarities: Sequence[float]) -> None:
        """Rewrite the row and column of an existing point in place.

        ``similarities`` covers every other point in matrix order, skipping
        ``index`` itself.
        """
        self._check_square()
        if not 0 <= index < self.size:
            raise IndexOutOfBounds(index, self.size)
        if len(similarities) != self.size - 1:
            raise DimensionMismatch(self.size - 1, len(similarities))

        row = np.insert(np.asarray(similarities, dtype=float), index, 0.0)
        self.matrix[index, :] = row
        self.matrix[:, index] = row

    def remove_data_point(self, index: int) -> None:
        """Delete row and column ``index``; later indices shift down by one."""
        self._check_square()
        if not 0 <= index < self.size:
            raise IndexOutOfBounds(index, self.size)

        keep = [i for i in range(self.size) if i != index]
        self.matrix = self.matrix[np.ix_(keep, keep)]


class NavigationMatrix(SimilarityMatrix):
    """Navigation links. Removing a node links its neighbours together."""

    def remove_data_point(self, index: int) -> None:
        self._check_square()
        if not 0 <= index < self.size:
            raise IndexOutOfBounds(index, self.size)

        neighbours = [i for i in np.flatnonzero(self.matrix[index]) if i != index]
        for a, b in combinations(neighbours, 2):
            self.matrix[a, b] = 1.0
            self.matrix[b, a] = 1.0
        if len(neighbours) > 1:
            logger.debug(f"Rewired {len(neighbours)} neighbours of removed node {index}")

        super().remove_data_point(index)
