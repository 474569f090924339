"""
Tabular Parser
Turns published-CSV text or a Sheets values array into header-keyed rows.

Parsing is best-effort and total: malformed input degrades (short rows are
padded, stray quotes are kept as text) but never raises.
"""
from dataclasses import dataclass, field
from typing import Any, Dict, Iterator, List, Optional, Sequence


@dataclass
class Table:
    """
    One tab's contents: the header row plus every data row as positional cells.

    Positional cells are kept alongside the header-keyed view because
    values-API payloads may follow the legacy fixed-column layout.
    """
    headers: List[str] = field(default_factory=list)
    cells: List[List[str]] = field(default_factory=list)

    def __len__(self) -> int:
        return len(self.cells)

    @property
    def is_empty(self) -> bool:
        return not self.cells

    def row(self, index: int) -> Dict[str, str]:
        cells = self.cells[index]
        return {
            header: (cells[i] if i < len(cells) else "")
            for i, header in enumerate(self.headers)
        }

    def records(self) -> Iterator[Dict[str, str]]:
        for index in range(len(self.cells)):
            yield self.row(index)


def _cell_text(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, bool):
        return "TRUE" if value else "FALSE"
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value)


def _is_blank(cells: Sequence[str]) -> bool:
    return all(not c.strip() for c in cells)


def split_records(text: str, delimiter: str = ",") -> List[List[str]]:
    """
    Split delimited text into records of raw cells (RFC4180).

    Handles quoted fields containing the delimiter or newlines and doubled
    quotes inside quoted fields. Bare CR characters are ignored outside quotes.
    Blank lines are dropped.
    """
    records: List[List[str]] = []
    current: List[str] = []
    buf: List[str] = []
    in_quotes = False
    i = 0
    n = len(text)

    while i < n:
        ch = text[i]

        if in_quotes:
            if ch == '"':
                if i + 1 < n and text[i + 1] == '"':
                    buf.append('"')
                    i += 1
                else:
                    in_quotes = False
            else:
                buf.append(ch)
        elif ch == '"':
            # Quotes only open a quoted section at the start of a field
            if not buf:
                in_quotes = True
            else:
                buf.append(ch)
        elif ch == delimiter:
            current.append("".join(buf))
            buf = []
        elif ch == "\n":
            current.append("".join(buf))
            buf = []
            if not _is_blank(current):
                records.append(current)
            current = []
        elif ch == "\r":
            pass
        else:
            buf.append(ch)
        i += 1

    if buf or current:
        current.append("".join(buf))
        if not _is_blank(current):
            records.append(current)

    return records


def parse_table(text: Optional[str], delimiter: str = ",") -> Table:
    """Parse delimited text; the first record is the header row"""
    if not text:
        return Table()

    # Strip a UTF-8 BOM left by spreadsheet exports
    if text.startswith("\ufeff"):
        text = text[1:]

    records = split_records(text, delimiter)
    if not records:
        return Table()

    headers = [h.strip() for h in records[0]]
    return Table(headers=headers, cells=records[1:])


def table_from_values(values: Optional[Sequence[Sequence[Any]]]) -> Table:
    """Build a Table from a Sheets API ``values`` array (first row = headers)"""
    if not values:
        return Table()

    headers = [_cell_text(h).strip() for h in values[0]]
    cells: List[List[str]] = []
    for raw in values[1:]:
        row = [_cell_text(c) for c in (raw or [])]
        if row and not _is_blank(row):
            cells.append(row)
    return Table(headers=headers, cells=cells)


def parse_delimited(text: Optional[str], delimiter: str = ",") -> List[Dict[str, str]]:
    """CSV text -> ordered list of header-keyed rows"""
    return list(parse_table(text, delimiter).records())


def rows_from_values(values: Optional[Sequence[Sequence[Any]]]) -> List[Dict[str, str]]:
    """Values array -> ordered list of header-keyed rows"""
    return list(table_from_values(values).records())
