"""
Schema Mapper
Maps a header-keyed spreadsheet row onto one of the four dashboard records.

Lookup order per field:
1. the first non-empty value among the field's header aliases (case-insensitive)
2. the legacy fixed column position, when positional cells are supplied
3. the field default ("" / 0 / enum default)

Everything here is pure; the same row always maps to the same record.
"""
import math
import re
from dataclasses import dataclass
from typing import Dict, List, Mapping, Optional, Sequence, Set, Tuple

from models.records import (
    EntityKind,
    DashboardRecord,
    RecruiterStatus,
    Trend,
    CandidateStatus,
    ClientStatus,
    model_for,
)
from services.tabular_parser import Table


_NON_NUMERIC = re.compile(r"[^0-9.\-]+")
_SKILL_SEPARATORS = re.compile(r"[,;|]")
_WHITESPACE = re.compile(r"\s+")

TEXT = "text"
COUNT = "count"
SKILLS = "skills"
CHOICE = "choice"


@dataclass(frozen=True)
class FieldSpec:
    name: str
    aliases: Tuple[str, ...]
    position: Optional[int] = None
    kind: str = TEXT
    default: str = ""
    choices: Tuple[str, ...] = ()


def _choices(enum_cls) -> Tuple[str, ...]:
    return tuple(member.value for member in enum_cls)


FIELD_SPECS: Dict[EntityKind, Tuple[FieldSpec, ...]] = {
    EntityKind.RECRUITERS: (
        FieldSpec("name", ("name", "full name", "recruiter", "recruiter name"), 0),
        FieldSpec("email", ("email", "email id", "email address"), 1),
        FieldSpec("phone", ("phone", "contact number", "mobile"), 2),
        FieldSpec("department", ("department",), 3),
        FieldSpec("territory", ("territory", "locations"), 4),
        FieldSpec("hired_count", ("hired", "total hired", "hires", "hired count"), 5, COUNT),
        FieldSpec("join_date", ("joindate", "join date", "start date", "doj"), 6),
        FieldSpec("status", ("status",), 7, CHOICE, RecruiterStatus.ACTIVE.value, _choices(RecruiterStatus)),
        FieldSpec("trend", ("trend",), 8, CHOICE, Trend.UP.value, _choices(Trend)),
        FieldSpec("location", ("location",), 9),
        FieldSpec("reporting_manager", ("reporting manager", "reportingmanager")),
        FieldSpec("remarks", ("remarks",)),
        FieldSpec("backend_callings_remarks", ("backend callings remarks", "backendcallingsremarks")),
        FieldSpec("recruiter_backend_callings", ("recruiter backend callings", "recruiterbackendcallings")),
    ),
    EntityKind.CANDIDATES: (
        FieldSpec("name", ("name", "candidate", "candidate name", "full name"), 0),
        FieldSpec("email", ("email", "email id", "email address"), 1),
        FieldSpec("phone", ("phone", "contact number", "mobile"), 2),
        FieldSpec("position", ("position", "role"), 3),
        FieldSpec("experience_text", ("experience", "exp"), 4),
        FieldSpec("skills", ("skills", "skill set", "skillset"), 5, SKILLS),
        FieldSpec("status", ("status",), 6, CHOICE, CandidateStatus.PENDING.value, _choices(CandidateStatus)),
        FieldSpec("salary", ("salary", "salary details", "ctc"), 7, COUNT),
        FieldSpec("recruiter", ("recruiter",), 8),
        FieldSpec("client", ("client",), 9),
        FieldSpec("applied_date", ("applieddate", "applied date", "doj"), 10),
        FieldSpec("location", ("location",), 11),
        FieldSpec("reporting_manager", ("reporting manager", "reportingmanager")),
        FieldSpec("doj", ("doj",)),
        FieldSpec("salary_details", ("salary details",)),
        FieldSpec("remarks", ("remarks",)),
        FieldSpec("backend_callings_remarks", ("backend callings remarks", "backendcallingsremarks")),
    ),
    EntityKind.CLIENTS: (
        FieldSpec("name", ("name", "client", "client name"), 0),
        FieldSpec("company", ("company",), 1),
        FieldSpec("email", ("email", "email id", "email address"), 2),
        FieldSpec("phone", ("phone", "contact number"), 3),
        FieldSpec("industry", ("industry",), 4),
        FieldSpec("total_hired", ("total hired", "totalhired", "hires", "hired"), 5, COUNT),
        FieldSpec("avg_days_to_fill", ("avg daystofill", "avgdaystofill", "avg days to fill", "avgdays"), 6, COUNT),
        FieldSpec("status", ("status",), 7, CHOICE, ClientStatus.ACTIVE.value, _choices(ClientStatus)),
        FieldSpec("location", ("location", "locations"), 8),
        FieldSpec("contact_number", ("contact number",)),
        FieldSpec("last_activity", ("lastactivity", "last activity"), 9),
        FieldSpec("remarks", ("remarks",)),
        FieldSpec("backend_callings_remarks", ("backend callings remarks", "backendcallingsremarks")),
    ),
    EntityKind.PERFORMANCE: (
        FieldSpec("month", ("month", "date"), 0),
        FieldSpec("recruiter_count", ("recruiters", "recruiter count"), 1, COUNT),
        FieldSpec("hired_count", ("hired", "hires"), 2, COUNT),
        FieldSpec("target_count", ("target", "targets"), 3, COUNT),
    ),
}


def normalize_header(header: str) -> str:
    return _WHITESPACE.sub(" ", str(header or "")).strip().lower()


def coerce_number(value) -> int:
    """
    Strip everything but digits, '.' and '-' and parse what is left.

    Empty or unparsable input yields 0; fractions truncate toward zero.
    """
    if value is None:
        return 0
    if isinstance(value, bool):
        return int(value)
    if isinstance(value, (int, float)):
        text = format(value, "f") if isinstance(value, float) else str(value)
    else:
        text = str(value)

    cleaned = _NON_NUMERIC.sub("", text)
    if not cleaned:
        return 0
    try:
        number = float(cleaned)
    except ValueError:
        return 0
    if math.isnan(number) or math.isinf(number):
        return 0
    return int(number)


def coerce_count(value) -> int:
    """coerce_number clamped at zero, for counts and amounts"""
    return max(0, coerce_number(value))


def split_skills(value: Optional[str]) -> List[str]:
    """Split on comma, semicolon or pipe; trim and drop empty tokens"""
    if not value:
        return []
    return [token.strip() for token in _SKILL_SEPARATORS.split(str(value)) if token.strip()]


def coerce_choice(value: str, default: str, choices: Sequence[str]) -> str:
    """Known values are normalised to lower case, unknown ones pass through"""
    text = (value or "").strip()
    if not text:
        return default
    lowered = text.lower()
    return lowered if lowered in choices else text


def _lookup_table(row: Mapping[str, str]) -> Dict[str, str]:
    table: Dict[str, str] = {}
    for header, value in row.items():
        key = normalize_header(header)
        text = "" if value is None else str(value)
        if key not in table or (not table[key].strip() and text.strip()):
            table[key] = text
    return table


def _named_positions(headers: Sequence[str], kind: EntityKind) -> Set[int]:
    """Column positions whose header already names some field of ``kind``"""
    known = {alias for spec in FIELD_SPECS[kind] for alias in spec.aliases}
    return {i for i, header in enumerate(headers) if normalize_header(header) in known}


def _raw_value(
    spec: FieldSpec,
    lookup: Mapping[str, str],
    cells: Optional[Sequence[str]],
    named: Set[int],
) -> str:
    for alias in spec.aliases:
        value = lookup.get(alias, "")
        if value.strip():
            return value.strip()
    position = spec.position
    if cells is None or position is None or position >= len(cells) or position in named:
        return ""
    value = cells[position]
    return "" if value is None else str(value).strip()


def _convert(spec: FieldSpec, raw: str):
    if spec.kind == COUNT:
        return coerce_count(raw)
    if spec.kind == SKILLS:
        return split_skills(raw)
    if spec.kind == CHOICE:
        return coerce_choice(raw, spec.default, spec.choices)
    return raw or spec.default


def map_row(
    row: Mapping[str, str],
    kind: EntityKind,
    cells: Optional[Sequence[str]] = None,
    headers: Optional[Sequence[str]] = None,
) -> DashboardRecord:
    """
    Map one header-keyed row to the record model for ``kind``.

    Pass ``cells`` (the row's positional values) only for payloads that may
    use the legacy fixed-column layout; it enables the positional fallback.
    A column is never used positionally when its header names another field.
    """
    lookup = _lookup_table(row)
    named: Set[int] = set()
    if cells is not None:
        named = _named_positions(headers if headers is not None else list(row.keys()), kind)
    values = {
        spec.name: _convert(spec, _raw_value(spec, lookup, cells, named))
        for spec in FIELD_SPECS[kind]
    }
    return model_for(kind)(**values)


def map_rows(
    rows: Sequence[Mapping[str, str]],
    kind: EntityKind,
    cells: Optional[Sequence[Sequence[str]]] = None,
) -> List[DashboardRecord]:
    if cells is None:
        return [map_row(row, kind) for row in rows]
    return [map_row(row, kind, cells=row_cells) for row, row_cells in zip(rows, cells)]


def map_table(table: Table, kind: EntityKind, positional: bool = False) -> List[DashboardRecord]:
    """Map every row of a parsed tab; ``positional`` enables the legacy column fallback"""
    if not positional:
        return map_rows(list(table.records()), kind)
    return [
        map_row(table.row(i), kind, cells=table.cells[i], headers=table.headers)
        for i in range(len(table))
    ]
