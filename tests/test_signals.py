"""Tests for the text, entity and co-cluster similarity signals."""

import numpy as np
import pytest

from incluster.clustering.relationships import create_similarities
from incluster.embeddings.embedder import SentenceTransformerEncoder, cosine_similarity
from incluster.enrichment.entities import HeuristicEntityExtractor, entity_similarity
from incluster.errors import EncodingError

FEDERER = "Roger Federer is the best tennis player to ever play the game, but Rafael Nadal is best on clay"
NADAL = "Rafael Nadal won Roland Garros 13 times"


def test_cosine_similarity():
    assert cosine_similarity([0, 1.5, 3, 4.5, 6], [2, 4, 6, 8, 10]) == pytest.approx(0.9847319, abs=1e-6)


def test_cosine_similarity_degenerate_vectors():
    assert cosine_similarity(None, [1, 2]) == 0.0
    assert cosine_similarity([], []) == 0.0
    assert cosine_similarity([0, 0], [1, 2]) == 0.0


def test_encoder_refuses_empty_text():
    # Raises before the model is ever loaded
    with pytest.raises(EncodingError):
        SentenceTransformerEncoder().encode(None, "   ")


def test_finding_entities():
    found = HeuristicEntityExtractor().extract(FEDERER)
    assert found.entities["PersonalName"] == {"roger federer", "rafael nadal"}
    assert found.entities["PlaceName"] == set()
    assert found.entities["OrganizationName"] == set()


def test_entity_cues():
    found = HeuristicEntityExtractor().extract(
        "She studied at Stanford University before moving to Buenos Aires with [[Ada Lovelace]]."
    )
    assert "stanford university" in found.entities["OrganizationName"]
    assert "buenos aires" in found.entities["PlaceName"]
    assert "ada lovelace" in found.entities["PersonalName"]


def test_entity_overlap():
    extractor = HeuristicEntityExtractor()
    similarity = entity_similarity(extractor.extract(FEDERER), extractor.extract(NADAL))
    assert similarity == pytest.approx(0.5)


def test_entity_overlap_without_entities():
    extractor = HeuristicEntityExtractor()
    assert entity_similarity(extractor.extract(FEDERER), extractor.extract("no names here")) == 0.0
    assert entity_similarity(None, extractor.extract(FEDERER)) == 0.0


def test_similarities_cover_notes_and_active_pages():
    # Order: note n1, pages 10, 11, 12
    text = np.array([
        [0, 0.7, 0.2, 0.0],
        [0.7, 0, 0.5, 0.1],
        [0.2, 0.5, 0, 0.3],
        [0.0, 0.1, 0.3, 0],
    ])
    page_groups = [[10, 11], [12]]
    note_groups = [["n1"], []]

    sims = create_similarities(page_groups, note_groups, text, ["n1"], [10, 11, 12], active_sources=[10])
    assert sims == {"n1": {10: 0.7, 11: 0.2}, 10: {11: 0.5}}

    everything = create_similarities(page_groups, note_groups, text, ["n1"], [10, 11, 12])
    assert set(everything) == {"n1", 10, 11, 12}
    assert everything[12] == {}
