"""Fusion of the similarity signals into one adjacency matrix."""

import logging
from dataclasses import dataclass
from enum import Enum

import numpy as np

from ..errors import ConfigurationError, DimensionMismatch

logger = logging.getLogger(__name__)

SIGMOID_BETA = 10.0
FIXED_WEIGHTS = {"navigation": 1.0, "text": 0.5, "entities": 0.5}


class AdjacencyCandidate(Enum):
    NAVIGATION = "navigation"
    WEIGHTED_SUM = "weighted_sum"
    BINARIZED_SUM = "binarized_sum"
    SIGMOID_WITH_CONSTRAINTS = "sigmoid_with_constraints"
    FIXED = "fixed"


class NoteCandidate(Enum):
    """How note rows and columns are scored (notes carry no navigation)."""
    SIGMOID = "sigmoid"
    WEIGHTED_POST_SIGMOID = "weighted_post_sigmoid"
    ENTITIES_SIGMOID = "entities_sigmoid"
    WEIGHTED_PRE_SIGMOID = "weighted_pre_sigmoid"


@dataclass
class SimilaritySignals:
    """Read-only view of the five matrices, all in the same order."""
    navigation: np.ndarray
    text: np.ndarray
    entities: np.ndarray
    be_together: np.ndarray
    be_apart: np.ndarray

    def check_shapes(self) -> int:
        size = self.navigation.shape[0]
        for matrix in (self.text, self.entities, self.be_together, self.be_apart):
            if matrix.shape != (size, size):
                raise DimensionMismatch(size, matrix.shape[0])
        return size


def sigmoid(matrix: np.ndarray, middle: float, beta: float = SIGMOID_BETA) -> np.ndarray:
    return 1.0 / (1.0 + np.exp(-beta * (matrix - middle)))


def binarize(matrix: np.ndarray, cutoff: float) -> np.ndarray:
    """1 where the value is over the cutoff, 0 elsewhere."""
    return (matrix > cutoff).astype(float)


def threshold(matrix: np.ndarray, epsilon: float) -> np.ndarray:
    """Zero every value below epsilon."""
    result = matrix.copy()
    result[result < epsilon] = 0.0
    return result


def _note_scores(
    signals: SimilaritySignals,
    note_candidate: NoteCandidate,
    weights: dict[str, float],
    text_middle: float,
    entities_middle: float,
    beta: float,
) -> np.ndarray:
    if note_candidate == NoteCandidate.SIGMOID:
        return sigmoid(signals.text + signals.entities, text_middle, beta)
    elif note_candidate == NoteCandidate.WEIGHTED_POST_SIGMOID:
        return (weights["text"] * sigmoid(signals.text, text_middle, beta)
                + weights["entities"] * sigmoid(signals.entities, entities_middle, beta))
    elif note_candidate == NoteCandidate.ENTITIES_SIGMOID:
        return sigmoid(signals.entities, entities_middle, beta)
    elif note_candidate == NoteCandidate.WEIGHTED_PRE_SIGMOID:
        return sigmoid(weights["text"] * signals.text + weights["entities"] * signals.entities,
                       text_middle, beta)
    raise ConfigurationError(f"Unknown note candidate: {note_candidate}")


def build_adjacency(
    signals: SimilaritySignals,
    num_notes: int,
    candidate: AdjacencyCandidate,
    note_candidate: NoteCandidate,
    weights: dict[str, float],
    text_middle: float = 0.5,
    entities_middle: float = 0.5,
    beta: float = SIGMOID_BETA,
    epsilon: float = 1e-2,
) -> np.ndarray:
    """Combine the five matrices into one adjacency matrix.

    Args:
        signals: Navigation, text, entity and constraint matrices.
        num_notes: Number of leading rows that are notes.
        candidate: Fusion rule for page rows.
        note_candidate: Fusion rule for note rows and columns.
        weights: Per-signal weights keyed navigation/text/entities.
        text_middle: Sigmoid inflection point for text similarity.
        entities_middle: Sigmoid inflection point for entity similarity.
        beta: Sigmoid steepness.
        epsilon: Entries below this are zeroed.

    Returns:
        Symmetric adjacency matrix with an empty diagonal.
    """
    signals.check_shapes()

    if candidate == AdjacencyCandidate.NAVIGATION:
        adjacency = signals.navigation.copy()
    elif candidate == AdjacencyCandidate.WEIGHTED_SUM:
        adjacency = (weights["navigation"] * signals.navigation
                     + weights["text"] * signals.text
                     + weights["entities"] * signals.entities)
    elif candidate == AdjacencyCandidate.BINARIZED_SUM:
        adjacency = (binarize(signals.navigation, weights["navigation"])
                     + binarize(signals.text, weights["text"])
                     + binarize(signals.entities, weights["entities"]))
    elif candidate == AdjacencyCandidate.SIGMOID_WITH_CONSTRAINTS:
        combined = (weights["navigation"] * signals.navigation
                    + weights["text"] * sigmoid(signals.text, text_middle, beta)
                    + weights["entities"] * sigmoid(signals.entities, entities_middle, beta))
        adjacency = combined * signals.be_apart + signals.be_together
    elif candidate == AdjacencyCandidate.FIXED:
        adjacency = (FIXED_WEIGHTS["navigation"] * signals.navigation
                     + FIXED_WEIGHTS["text"] * signals.text
                     + FIXED_WEIGHTS["entities"] * signals.entities)
    else:
        raise ConfigurationError(f"Unknown adjacency candidate: {candidate}")

    if num_notes > 0:
        notes = _note_scores(signals, note_candidate, weights, text_middle, entities_middle, beta)
        adjacency[:num_notes, :] = notes[:num_notes, :]
        adjacency[:, :num_notes] = notes[:, :num_notes]

    adjacency = threshold(adjacency, epsilon)
    np.fill_diagonal(adjacency, 0.0)

    logger.debug(f"Built {candidate.value} adjacency over {adjacency.shape[0]} points ({num_notes} notes)")
    return adjacency
