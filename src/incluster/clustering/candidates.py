"""Preset strategy combinations selectable by id."""

from dataclasses import dataclass

from ..errors import ConfigurationError
from .adjacency import AdjacencyCandidate, NoteCandidate
from .spectral import LaplacianCandidate, NumClustersCandidate


@dataclass(frozen=True)
class Candidate:
    adjacency: AdjacencyCandidate
    laplacian: LaplacianCandidate
    num_clusters: NumClustersCandidate


CANDIDATES: dict[int, Candidate] = {
    1: Candidate(AdjacencyCandidate.NAVIGATION,
                 LaplacianCandidate.RANDOM_WALK,
                 NumClustersCandidate.THRESHOLD),
    2: Candidate(AdjacencyCandidate.SIGMOID_WITH_CONSTRAINTS,
                 LaplacianCandidate.RANDOM_WALK,
                 NumClustersCandidate.BIGGEST_DISTANCE_IN_PERCENTAGES),
    3: Candidate(AdjacencyCandidate.WEIGHTED_SUM,
                 LaplacianCandidate.SYMMETRIC,
                 NumClustersCandidate.BIGGEST_DISTANCE_IN_PERCENTAGES),
    4: Candidate(AdjacencyCandidate.BINARIZED_SUM,
                 LaplacianCandidate.RANDOM_WALK,
                 NumClustersCandidate.BIGGEST_DISTANCE_IN_ABSOLUTE),
    5: Candidate(AdjacencyCandidate.FIXED,
                 LaplacianCandidate.UNNORMALIZED,
                 NumClustersCandidate.BIGGEST_DISTANCE_IN_PERCENTAGES),
}


def get_candidate(strategy_id: int) -> Candidate:
    try:
        return CANDIDATES[int(strategy_id)]
    except (KeyError, TypeError, ValueError):
        raise ConfigurationError(
            f"Unknown candidate: {strategy_id}. Valid ids: {sorted(CANDIDATES)}",
            {"candidate": strategy_id},
        ) from None


def get_note_candidate(name: str) -> NoteCandidate:
    try:
        return NoteCandidate(name)
    except ValueError:
        valid = [c.value for c in NoteCandidate]
        raise ConfigurationError(
            f"Unknown note_candidate: {name}. Valid values: {valid}",
            {"note_candidate": name},
        ) from None
