from __future__ import annotations

import re
from dataclasses import dataclass, field

from .accessor import Element

_WS_PATTERN = re.compile(r"\s+")
_CELL_TAGS = ("td", "th")


def normalize_header(text: str | None) -> str:
    """Header vocabulary shared by table decoding and label lookups."""

    if not text:
        return ""
    return _WS_PATTERN.sub("_", text.strip().lower().rstrip(":").strip())


def whole_word_pattern(needle: str) -> str:
    """Regex for ``needle`` that does not start or end inside a word."""

    head = r"(?<![a-z0-9])" if needle[:1].isalnum() else ""
    tail = r"(?![a-z0-9])" if needle[-1:].isalnum() else ""
    return f"{head}{re.escape(needle)}{tail}"


def header_contains(header: str, label_key: str) -> bool:
    if not label_key:
        return False
    return re.search(whole_word_pattern(label_key), header) is not None


def placeholder_header(index: int) -> str:
    return f"column_{index + 1}"


@dataclass(slots=True)
class DecodedTable:
    headers: list[str] = field(default_factory=list)
    rows: list[dict[str, str]] = field(default_factory=list)
    inferred_headers: bool = False

    def find_column(self, label: str) -> str | None:
        wanted = normalize_header(label)
        if not wanted:
            return None
        for header in self.headers:
            if header_contains(header, wanted):
                return header
        return None

    def first_value(self, label: str) -> str | None:
        column = self.find_column(label)
        if column is None:
            return None
        for row in self.rows:
            value = row.get(column, "").strip()
            if value:
                return value
        return None


def _cells(row: Element) -> list[Element]:
    return [child for child in row.children() if child.tag in _CELL_TAGS]


def _rows(table: Element) -> list[Element]:
    rows: list[Element] = []
    for section in table.children():
        if section.tag == "tr":
            rows.append(section)
        elif section.tag in ("thead", "tbody", "tfoot"):
            rows.extend(child for child in section.children() if child.tag == "tr")
    return rows


class TableDecoder:
    """Turns a table element into header-keyed row records.

    Headers come from header cells when the table has them; otherwise the
    first row's text is promoted to headers. Unlabeled columns are named
    ``column_N``. A row is dropped only when every cell is empty.
    """

    def decode(self, table: Element) -> DecodedTable:
        rows = _rows(table)
        if not rows:
            return DecodedTable()

        header_row, body_rows = self._split_header(table, rows)
        inferred = False
        if header_row is None:
            header_row, body_rows = rows[0], rows[1:]
            inferred = True

        headers = [
            normalize_header(cell.text()) or placeholder_header(index)
            for index, cell in enumerate(_cells(header_row))
        ]

        decoded_rows: list[dict[str, str]] = []
        for row in body_rows:
            cells = _cells(row)
            if not cells:
                continue
            record: dict[str, str] = {}
            for index, cell in enumerate(cells):
                key = headers[index] if index < len(headers) else placeholder_header(index)
                record[key] = cell.text()
            if any(value for value in record.values()):
                decoded_rows.append(record)

        return DecodedTable(headers=headers, rows=decoded_rows, inferred_headers=inferred)

    def _split_header(self, table: Element, rows: list[Element]) -> tuple[Element | None, list[Element]]:
        head = next((child for child in table.children() if child.tag == "thead"), None)
        if head is not None:
            head_rows = [child for child in head.children() if child.tag == "tr"]
            if head_rows and _cells(head_rows[0]):
                body = [row for row in rows if row not in head_rows]
                return head_rows[0], body

        first_cells = _cells(rows[0])
        if first_cells and all(cell.tag == "th" for cell in first_cells):
            return rows[0], rows[1:]
        return None, rows

    def key_value_pairs(self, scope: Element) -> list[tuple[str, str]]:
        """Label/value pairs from row-oriented tables and definition lists.

        Each ``<tr>`` with at least two cells yields (first cell, last cell);
        each ``<dt>`` yields (term, following ``<dd>``).
        """

        pairs: list[tuple[str, str]] = []
        tables = [scope] if scope.tag == "table" else scope.select("table")
        for table in tables:
            for row in _rows(table):
                cells = _cells(row)
                if len(cells) < 2 or all(cell.tag == "th" for cell in cells):
                    continue
                pairs.append((cells[0].text(), cells[-1].text()))

        lists = [scope] if scope.tag == "dl" else scope.select("dl")
        for definition_list in lists:
            term: str | None = None
            for child in definition_list.children():
                if child.tag == "dt":
                    term = child.text()
                elif child.tag == "dd" and term is not None:
                    pairs.append((term, child.text()))
                    term = None

        for row in scope.select(".table-row, [data-row]"):
            cells = row.children()
            if len(cells) >= 2:
                pairs.append((cells[0].text(), cells[-1].text()))
        return pairs

    def tables_in(self, scope: Element) -> list[Element]:
        if scope.tag == "table":
            return [scope]
        return scope.select("table")

