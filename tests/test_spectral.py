"""Tests for spectral clustering and label stabilization."""

import numpy as np

from incluster.clustering.spectral import (
    LaplacianCandidate,
    NumClustersCandidate,
    SpectralClustering,
    choose_num_clusters,
    degree_vectors,
    laplacian,
)
from incluster.clustering.stabilizer import clusterize_ids, stabilize

EXAMPLE = np.array([
    [0, 1, 0, 0, 0, 0, 0, 0, 1, 1],
    [1, 0, 0, 0, 0, 0, 0, 0, 0, 0],
    [0, 0, 0, 1, 0, 0, 0, 0, 0, 0],
    [0, 0, 1, 0, 0, 0, 0, 0, 0, 0],
    [0, 0, 0, 0, 0, 0, 0, 0, 0, 0],
    [0, 0, 0, 0, 0, 0, 1, 0, 0, 0],
    [0, 0, 0, 0, 0, 1, 0, 0, 0, 0],
    [0, 0, 0, 0, 0, 0, 0, 0, 0, 0],
    [1, 0, 0, 0, 0, 0, 0, 0, 0, 0],
    [1, 0, 0, 0, 0, 0, 0, 0, 0, 0],
], dtype=float)


def _two_blocks(size=3, strength=0.9):
    block = np.full((size, size), strength)
    adjacency = np.block([
        [block, np.zeros((size, size))],
        [np.zeros((size, size)), block],
    ])
    np.fill_diagonal(adjacency, 0)
    return adjacency


def test_spectral_clustering_on_components():
    labels = SpectralClustering().fit_predict(EXAMPLE)
    assert stabilize(labels) == [0, 0, 1, 1, 2, 3, 3, 4, 0, 0]


def test_each_laplacian_separates_blocks():
    for candidate in LaplacianCandidate:
        labels = SpectralClustering(laplacian_candidate=candidate).fit_predict(_two_blocks())
        assert stabilize(labels) == [0, 0, 0, 1, 1, 1], candidate


def test_tiny_inputs():
    clusterer = SpectralClustering()
    assert clusterer.fit_predict(np.zeros((1, 1))) == [0]
    assert clusterer.fit_predict(np.zeros((0, 0))) == []


def test_fully_connected_graph_is_one_cluster():
    adjacency = np.ones((4, 4)) - np.eye(4)
    labels = SpectralClustering(num_clusters_candidate=NumClustersCandidate.THRESHOLD).fit_predict(adjacency)
    assert labels == [0, 0, 0, 0]


def test_notes_never_share_a_cluster():
    # Two notes (rows 0-1) strongly tied to the same block of pages
    adjacency = np.full((5, 5), 0.8)
    np.fill_diagonal(adjacency, 0)
    adjacency[0, 1] = adjacency[1, 0] = 0.1
    labels = SpectralClustering().fit_predict(adjacency, num_groups=2, num_notes=2)
    assert labels[0] != labels[1]


def test_many_notes_are_separated_over_several_splits():
    # Four topics, each one note (rows 0-3) and two pages (rows 4-11).
    # Topics 0/1 and 2/3 are close, so the top level pairs them up.
    topics = [0, 1, 2, 3, 0, 0, 1, 1, 2, 2, 3, 3]
    size = len(topics)
    adjacency = np.zeros((size, size))
    for i in range(size):
        for j in range(size):
            if i == j:
                continue
            if topics[i] == topics[j]:
                adjacency[i, j] = 1.0
            elif {topics[i], topics[j]} in ({0, 1}, {2, 3}):
                adjacency[i, j] = 0.3
            else:
                adjacency[i, j] = 0.05

    depths = []

    class Recording(SpectralClustering):
        def fit_predict(self, adjacency, num_groups=None, num_notes=0, depth=0):
            depths.append(depth)
            return super().fit_predict(adjacency, num_groups, num_notes, depth)

    labels = Recording().fit_predict(adjacency, num_groups=2, num_notes=4)

    assert len(set(labels[:4])) == 4
    for note in range(4):
        pages = [i for i in range(4, size) if topics[i] == note]
        assert all(labels[i] == labels[note] for i in pages)
    assert depths.count(1) == 2


def test_depth_limit_stops_recursion():
    adjacency = _two_blocks()
    clusterer = SpectralClustering(max_depth=0)
    assert clusterer.fit_predict(adjacency) == [0] * 6


def test_degree_vectors_leave_isolated_nodes_alone():
    d, d1 = degree_vectors(np.array([[0, 2.0, 0], [2.0, 0, 0], [0, 0, 0]]))
    assert d.tolist() == [2, 2, 0]
    assert d1.tolist() == [0.5, 0.5, 0]


def test_random_walk_laplacian_rows_sum_to_zero():
    matrix = laplacian(_two_blocks(), LaplacianCandidate.RANDOM_WALK)
    np.testing.assert_allclose(matrix.sum(axis=1), 0, atol=1e-12)


def test_choose_num_clusters():
    eigenvalues = np.array([0, 0, 0, 1, 1.1, 2])
    assert choose_num_clusters(eigenvalues, NumClustersCandidate.THRESHOLD) == 3
    assert choose_num_clusters(eigenvalues, NumClustersCandidate.BIGGEST_DISTANCE_IN_PERCENTAGES) == 3
    assert choose_num_clusters(np.array([0, 0.5, 0.6, 1.6]),
                               NumClustersCandidate.BIGGEST_DISTANCE_IN_ABSOLUTE) == 3


def test_stabilize_is_idempotent():
    labels = stabilize([4, 4, 2, 7, 2, 0])
    assert labels == [0, 0, 1, 2, 1, 3]
    assert stabilize(labels) == labels


def test_clusterize_ids_splits_notes_and_pages():
    page_groups, note_groups = clusterize_ids([0, 1, 1, 0, 1], ["n1", "n2"], [10, 11, 12])
    assert note_groups == [["n1"], ["n2"]]
    assert page_groups == [[11], [10, 12]]


def test_clusterize_ids_without_points():
    assert clusterize_ids([0], [], []) == ([], [])
