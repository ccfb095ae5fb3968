"""Canonical renumbering of cluster labels."""

from typing import Hashable, Sequence


def stabilize(labels: Sequence[int]) -> list[int]:
    """Renumber labels 0..k-1 by order of first appearance."""
    mapping: dict[int, int] = {}
    stable = []
    for label in labels:
        if label not in mapping:
            mapping[label] = len(mapping)
        stable.append(mapping[label])
    return stable


def clusterize_ids(
    labels: Sequence[int],
    note_ids: Sequence[Hashable],
    page_ids: Sequence[Hashable],
) -> tuple[list[list[Hashable]], list[list[Hashable]]]:
    """Split stabilized labels back into page groups and note groups.

    Both lists have one entry per label, so ``page_groups[i]`` and
    ``note_groups[i]`` belong to the same cluster.
    """
    if not labels or not (note_ids or page_ids):
        return [], []

    num_groups = max(labels) + 1
    page_groups: list[list[Hashable]] = [[] for _ in range(num_groups)]
    note_groups: list[list[Hashable]] = [[] for _ in range(num_groups)]

    num_notes = len(note_ids)
    for index, label in enumerate(labels):
        if index < num_notes:
            note_groups[label].append(note_ids[index])
        else:
            page_groups[label].append(page_ids[index - num_notes])

    return page_groups, note_groups
