"""Data models used throughout incluster."""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Hashable, Union

import numpy as np

ENTITY_TYPES = ("PersonalName", "PlaceName", "OrganizationName")


class DataPointType(Enum):
    PAGE = "page"
    NOTE = "note"


class Flag(Enum):
    """Advisory flag returned alongside a clustering result."""
    NONE = "none"
    SEND_RANKING = "sendRanking"
    ADD_NOTES = "addNotes"


@dataclass
class EntitiesInText:
    """Named entities found in a text, case-folded."""
    entities: dict[str, set[str]] = field(
        default_factory=lambda: {name: set() for name in ENTITY_TYPES}
    )

    def add(self, kind: str, name: str) -> None:
        self.entities.setdefault(kind, set()).add(name.casefold())

    def all(self) -> set[str]:
        merged: set[str] = set()
        for names in self.entities.values():
            merged |= names
        return merged

    def __or__(self, other: "EntitiesInText") -> "EntitiesInText":
        result = EntitiesInText()
        for source in (self, other):
            for kind, names in source.entities.items():
                result.entities.setdefault(kind, set()).update(names)
        return result

    def is_empty(self) -> bool:
        return not any(self.entities.values())


@dataclass
class Page:
    """A web page. Navigation and constraint fields only exist on pages."""
    id: Hashable
    parent_id: Hashable | None = None
    title: str | None = None
    content: str | None = None
    url: str | None = None
    must_be_with: list[Hashable] = field(default_factory=list)
    must_be_apart: list[Hashable] = field(default_factory=list)
    # Filled in by the engine
    embedding: np.ndarray | None = field(default=None, repr=False)
    entities: EntitiesInText | None = field(default=None, repr=False)
    entities_in_title: EntitiesInText | None = field(default=None, repr=False)
    attached_pages: list[Hashable] = field(default_factory=list)

    kind = DataPointType.PAGE

    @property
    def has_content(self) -> bool:
        return bool(self.content and self.content.strip())


@dataclass
class Note:
    """A user note."""
    id: Hashable
    title: str | None = None
    content: str | None = None
    # Filled in by the engine
    embedding: np.ndarray | None = field(default=None, repr=False)
    entities: EntitiesInText | None = field(default=None, repr=False)
    entities_in_title: EntitiesInText | None = field(default=None, repr=False)

    kind = DataPointType.NOTE


DataPoint = Union[Page, Note]


@dataclass
class ClusteringResult:
    """Outcome of one clustering pass.

    ``page_groups[i]`` and ``note_groups[i]`` describe the same cluster.
    """
    page_groups: list[list[Hashable]] = field(default_factory=list)
    note_groups: list[list[Hashable]] = field(default_factory=list)
    flag: Flag = Flag.NONE
    similarities: dict[Hashable, dict[Hashable, float]] = field(default_factory=dict)


@dataclass
class InformationForId:
    """Snapshot of what the engine knows about a data point, for export."""
    title: str | None = None
    content: str | None = None
    entities: EntitiesInText | None = None
    entities_in_title: EntitiesInText | None = None
    parent_id: Hashable | None = None

    @property
    def is_empty(self) -> bool:
        return self.title is None and self.content is None and self.entities is None

    def to_dict(self) -> dict[str, Any]:
        def _entities(value: EntitiesInText | None) -> dict[str, list[str]] | None:
            if value is None:
                return None
            return {kind: sorted(names) for kind, names in value.entities.items()}

        return {
            "title": self.title,
            "content": self.content,
            "entities": _entities(self.entities),
            "entities_in_title": _entities(self.entities_in_title),
            "parent_id": self.parent_id,
        }
