"""
Sheet-Type Inferencer
Guesses which entity a tab holds from its header row.
"""
from typing import Iterable, Optional, Tuple, FrozenSet

from models.records import EntityKind
from services.schema_mapper import normalize_header


# Checked in this order; the rarer, more distinctive vocabularies come first.
# The sets are disjoint: generic columns such as "hired" or "name" appear in
# several shapes and are deliberately left out.
KEYWORD_PRIORITY: Tuple[Tuple[EntityKind, FrozenSet[str]], ...] = (
    (EntityKind.CANDIDATES, frozenset({
        "position", "role", "applieddate", "applied date", "salary", "doj", "skills",
    })),
    (EntityKind.CLIENTS, frozenset({
        "company", "industry", "total hired", "totalhired", "avgdaystofill",
        "avg daystofill", "last activity", "lastactivity",
    })),
    (EntityKind.RECRUITERS, frozenset({
        "territory", "trend", "join date", "joindate", "department",
    })),
    (EntityKind.PERFORMANCE, frozenset({
        "month", "target", "recruiters",
    })),
)


def infer_kind(headers: Iterable[str]) -> Optional[EntityKind]:
    """
    Return the entity kind whose keywords match the header row, or None
    when nothing matches (unknown).
    """
    normalized = {normalize_header(h) for h in headers}
    normalized.discard("")
    for kind, keywords in KEYWORD_PRIORITY:
        if normalized & keywords:
            return kind
    return None


def route_kind(headers: Iterable[str], nominal: EntityKind, enabled: bool = True) -> EntityKind:
    """
    Kind a tab's rows should be stored as: the inferred kind when it is known
    and inference is enabled, otherwise the kind the tab was requested as.
    """
    if not enabled:
        return nominal
    return infer_kind(headers) or nominal
