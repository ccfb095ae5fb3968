"""Similarity scores between co-clustered data points."""

from typing import Hashable, Iterable, Sequence

import numpy as np


def create_similarities(
    page_groups: Sequence[Sequence[Hashable]],
    note_groups: Sequence[Sequence[Hashable]],
    text_matrix: np.ndarray,
    note_ids: Sequence[Hashable],
    page_ids: Sequence[Hashable],
    active_sources: Iterable[Hashable] | None = None,
) -> dict[Hashable, dict[Hashable, float]]:
    """Score notes and active pages against the pages of their own group.

    When ``active_sources`` is None every page counts as active.

    Returns:
        ``{id: {page_id: text_similarity}}``
    """
    note_index = {note_id: i for i, note_id in enumerate(note_ids)}
    page_index = {page_id: len(note_ids) + i for i, page_id in enumerate(page_ids)}
    active = None if active_sources is None else set(active_sources)

    similarities: dict[Hashable, dict[Hashable, float]] = {}

    for page_group, note_group in zip(page_groups, note_groups):
        for note_id in note_group:
            if note_id not in note_index:
                continue
            row = note_index[note_id]
            similarities[note_id] = {
                page_id: float(text_matrix[row, page_index[page_id]])
                for page_id in page_group
                if page_id in page_index
            }

        for page_id in page_group:
            if page_id not in page_index or (active is not None and page_id not in active):
                continue
            row = page_index[page_id]
            similarities[page_id] = {
                other: float(text_matrix[row, page_index[other]])
                for other in page_group
                if other != page_id and other in page_index
            }

    return similarities
