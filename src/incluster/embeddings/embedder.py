"""Text embedding using sentence-transformers."""

import logging
from typing import Protocol

import numpy as np

from ..errors import EncodingError

logger = logging.getLogger(__name__)

DEFAULT_MODEL = "sentence-transformers/paraphrase-multilingual-MiniLM-L12-v2"


class TextEncoder(Protocol):
    """Anything that turns a (title, content) pair into a vector.

    Must be deterministic for identical input and raise EncodingError when
    there is no text to encode.
    """

    def encode(self, title: str | None, content: str | None) -> np.ndarray: ...


def cosine_similarity(vector1, vector2) -> float:
    """Cosine similarity, 0.0 when either vector is missing or has zero norm."""
    if vector1 is None or vector2 is None:
        return 0.0
    a = np.asarray(vector1, dtype=float)
    b = np.asarray(vector2, dtype=float)
    if a.size == 0 or b.size == 0:
        return 0.0
    norm_a = np.linalg.norm(a)
    norm_b = np.linalg.norm(b)
    if norm_a == 0 or norm_b == 0:
        return 0.0
    return float(np.dot(a, b) / (norm_a * norm_b))


def mean_vectors(vector1: np.ndarray, vector2: np.ndarray) -> np.ndarray:
    return (np.asarray(vector1, dtype=float) + np.asarray(vector2, dtype=float)) / 2


class SentenceTransformerEncoder:
    """Embeds titles and contents with a sentence-transformers model.

    When both title and content exist their embeddings are averaged.
    """

    def __init__(self, model_name: str = DEFAULT_MODEL):
        self.model_name = model_name
        self._model = None

    @property
    def model(self):
        """Lazy-load the embedding model."""
        if self._model is None:
            from sentence_transformers import SentenceTransformer
            logger.info(f"Loading embedding model {self.model_name}")
            self._model = SentenceTransformer(self.model_name)
        return self._model

    def _embed(self, text: str) -> np.ndarray:
        return np.asarray(self.model.encode(text), dtype=float)

    def encode(self, title: str | None, content: str | None) -> np.ndarray:
        title = (title or "").strip()
        content = (content or "").strip()

        if title and content:
            return mean_vectors(self._embed(title), self._embed(content))
        if content:
            return self._embed(content)
        if title:
            return self._embed(title)
        raise EncodingError("Nothing to encode: empty title and content")
