"""Shared HTML helpers for VTOP report extractors.

VTOP responses are server-rendered fragments with nested tables and no
stable ids, so extractors walk rows and cells positionally.
"""

import re

from bs4 import BeautifulSoup, Tag

_WHITESPACE = re.compile(r"\s+")
_NUMBER = re.compile(r"-?\d+(?:\.\d+)?")
_DIGITS = re.compile(r"\d+")

# Shape of a course code: 2-4 letters then 3-4 digits, e.g. "CSE2005", "MAT1001"
COURSE_CODE = re.compile(r"\b[A-Z]{2,4}\d{3,4}[A-Z]?\b")


def make_soup(html: str) -> BeautifulSoup:
    return BeautifulSoup(html or "", "html.parser")


def clean_text(text: str) -> str:
    """Collapse whitespace (including &nbsp;) into single spaces."""
    return _WHITESPACE.sub(" ", text.replace("\xa0", " ")).strip()


def cell_text(cell: Tag) -> str:
    return clean_text(cell.get_text(" "))


def row_cells(row: Tag) -> list[Tag]:
    """The row's own <td> cells, excluding cells of nested tables."""
    return row.find_all("td", recursive=False)


def row_texts(row: Tag) -> list[str]:
    return [cell_text(cell) for cell in row_cells(row)]


def leaf_rows(soup: BeautifulSoup | Tag) -> list[Tag]:
    """All <tr> elements, in document order, that hold no nested table.

    Layout rows wrapping a whole report are dropped; data rows are kept
    however deeply they are nested.
    """
    return [row for row in soup.find_all("tr") if row.find("table") is None]


def table_rows(table: Tag) -> list[Tag]:
    """Rows belonging to ``table`` itself, not to tables nested in it."""
    return [row for row in table.find_all("tr") if row.find_parent("table") is table]


def parse_float(text: str, default: float = 0.0) -> float:
    """First number in ``text`` ("85.5 %", "12.00"), or ``default``."""
    match = _NUMBER.search(text.replace(",", ""))
    return float(match.group(0)) if match else default


def parse_int(text: str) -> int | None:
    """``text`` as a whole number, or None when it isn't one."""
    text = text.strip()
    return int(text) if _DIGITS.fullmatch(text) else None


def looks_like_course_code(text: str) -> bool:
    return bool(COURSE_CODE.search(text))
