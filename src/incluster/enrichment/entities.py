"""Named-entity extraction and entity-overlap scoring."""

import re
from typing import Protocol

from ..models import EntitiesInText

# Words that start a capitalised phrase without being part of a name
_LEADING_NOISE = {
    "The", "This", "That", "These", "Those", "A", "An", "In", "On", "At",
    "Monday", "Tuesday", "Wednesday", "Thursday", "Friday", "Saturday", "Sunday",
    "January", "February", "March", "April", "May", "June",
    "July", "August", "September", "October", "November", "December",
}

_ORGANIZATION_CUES = {
    "Inc", "Corp", "Corporation", "Ltd", "Llc", "Company", "Group", "Bank",
    "University", "Institute", "Association", "Foundation", "Agency",
    "Committee", "Club", "Council", "Ministry", "Department", "Party",
}

_PLACE_CUES = {
    "City", "County", "River", "Lake", "Mountain", "Mountains", "Island",
    "Islands", "Street", "Avenue", "Park", "Valley", "Bay", "Republic",
    "Kingdom", "States",
}

_PLACE_PREPOSITIONS = {"in", "at", "from", "near", "to", "across"}

_PHRASE = re.compile(r"\b([A-Z][a-z]+(?:\s[A-Z][a-z]+){1,3})\b")
_WIKILINK = re.compile(r"\[\[([^\]|]+)(?:\|[^\]]+)?\]\]")


class EntityExtractor(Protocol):
    def extract(self, text: str) -> EntitiesInText: ...


class HeuristicEntityExtractor:
    """Finds capitalised multi-word phrases and wikilinks.

    Phrases are typed as organisations or places when they carry an
    obvious cue, and as personal names otherwise.
    """

    def extract(self, text: str | None) -> EntitiesInText:
        found = EntitiesInText()
        if not text:
            return found

        for match in _WIKILINK.finditer(text):
            name = match.group(1).strip()
            found.add(self._classify(name, text[:match.start()]), name)

        for match in _PHRASE.finditer(text):
            words = match.group(1).split()
            while words and words[0] in _LEADING_NOISE:
                words.pop(0)
            if len(words) < 2:
                continue
            name = " ".join(words)
            found.add(self._classify(name, text[:match.start()]), name)

        return found

    def _classify(self, name: str, preceding: str) -> str:
        words = {w.capitalize() for w in name.split()}
        if words & _ORGANIZATION_CUES:
            return "OrganizationName"
        if words & _PLACE_CUES:
            return "PlaceName"
        previous = preceding.rstrip().rsplit(" ", 1)[-1].lower() if preceding.strip() else ""
        if previous in _PLACE_PREPOSITIONS:
            return "PlaceName"
        return "PersonalName"


def entity_similarity(entities1: EntitiesInText | None, entities2: EntitiesInText | None) -> float:
    """Shared entities over the size of the larger entity set.

    Entity types are pooled; 0.0 when either side has no entities.
    """
    if entities1 is None or entities2 is None:
        return 0.0
    names1 = entities1.all()
    names2 = entities2.all()
    if not names1 or not names2:
        return 0.0
    return len(names1 & names2) / max(len(names1), len(names2))
