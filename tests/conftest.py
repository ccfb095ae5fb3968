"""Shared fixtures: a deterministic encoder so no model is downloaded."""

import re

import numpy as np
import pytest

from incluster.engine import ClusteringEngine
from incluster.errors import EncodingError

DIMENSIONS = 512


class FakeEncoder:
    """Bag-of-words encoder. Every new word gets its own dimension."""

    def __init__(self):
        self.vocabulary: dict[str, int] = {}

    def encode(self, title, content):
        words = re.findall(r"\w+", f"{title or ''} {content or ''}".lower())
        if not words:
            raise EncodingError("Nothing to encode: empty title and content")
        vector = np.zeros(DIMENSIONS)
        for word in words:
            index = self.vocabulary.setdefault(word, len(self.vocabulary) % DIMENSIONS)
            vector[index] += 1.0
        return vector


@pytest.fixture
def encoder():
    return FakeEncoder()


@pytest.fixture
def make_engine(encoder):
    engines = []

    def _make(**config):
        engine = ClusteringEngine(config or None, encoder=encoder)
        engines.append(engine)
        return engine

    yield _make
    for engine in engines:
        engine.close()


@pytest.fixture
def engine(make_engine):
    return make_engine()
