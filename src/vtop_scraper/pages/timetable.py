"""Timetable extraction from /vtop/processViewTimeTable.

Response structure (two tables of interest):

  Registered courses table, one row per course:
    ... | "CSE2005 - Object Oriented Programming ( Embedded Theory )" | ...
        | "A1+TA1 - 301" | "JOHN DOE - SCOPE" | ...
    Embedded courses appear twice, once with an "( Embedded Lab )" hint and
    usually a different faculty.

  Day grid:
    tr -> THEORY | Start | 08:00 | 09:00 | ...      (timing header rows,
    tr ->          End   | 08:50 | 09:50 | ...       one Start/End pair
    tr -> LAB    | Start | 08:00 | 08:50 | ...       per row kind)
    tr ->          End   | 08:50 | 09:40 | ...
    tr -> MON    | THEORY | A1-CSE2005-ETH-301-AB-ALL | B1 | Lunch | ...
    tr ->          LAB    | L1 | L2 | ... | L11-CSE2005-ELA-309-AB-1-ALL
    ...
    Day and THEORY/LAB labels use rowspan, so later rows of a block omit
    them. Class cells are hyphen-delimited SLOT-CODE-TYPE-ROOM-BLOCK-...;
    empty slots just show the slot label.

Timings are joined to class cells by column ordinal (position after the
leading label cells), separately for theory and lab rows.
"""

import re
from collections import defaultdict

from bs4 import Tag

from vtop_scraper.logging import get_logger
from vtop_scraper.models import ParseResult, TimetableSlot, Weekday
from vtop_scraper.pages.html import (
    COURSE_CODE,
    make_soup,
    row_texts,
    table_rows,
)

log = get_logger(__name__)

# "CSE2005 - Object Oriented Programming ( Embedded Theory )"
_COURSE_CELL = re.compile(
    r"\b([A-Z]{2,4}\d{3,4}[A-Z]?)\s*-\s*([^()]+?)\s*(?:\(\s*([^)]*?)\s*\))?\s*$"
)
# "JOHN DOE - SCOPE": name then school, no digits
_FACULTY_CELL = re.compile(r"^([A-Za-z][A-Za-z .']*?)\s*-\s*([A-Za-z]{2,}[A-Za-z ]*)$")
_TIME = re.compile(r"(\d{1,2})\s*:\s*(\d{2})\s*([AaPp][Mm])?")

_SKIP_CELLS = frozenset({"", "-", "--", "lunch"})
_ROW_KIND_LABELS = {"THEORY": False, "LAB": True}
_TIMING_LABELS = frozenset({"START", "END"})
_MAX_LABEL_CELLS = 3

_COURSE_TYPES = {
    "ETH": "Theory",
    "TH": "Theory",
    "ELA": "Lab",
    "LA": "Lab",
}


def normalize_course_type(token: str) -> str:
    """ETH/TH -> "Theory", ELA/LA -> "Lab"; other tokens are kept as-is."""
    token = token.strip().upper()
    return _COURSE_TYPES.get(token, token)


def normalize_time(text: str) -> str | None:
    """Return ``HH:MM`` (24-hour) for "8:00", "08:00", "1:30 PM"; else None."""
    match = _TIME.search(text)
    if not match:
        return None
    hour, minute = int(match.group(1)), int(match.group(2))
    meridiem = (match.group(3) or "").upper()
    if meridiem == "PM" and hour < 12:
        hour += 12
    elif meridiem == "AM" and hour == 12:
        hour = 0
    if hour > 23 or minute > 59:
        return None
    return f"{hour:02d}:{minute:02d}"


def _is_lab_label(slot_label: str) -> bool:
    # Lab slots are L-numbered; combined labels like "L1+L2" join lab slots
    return "+" in slot_label or slot_label.startswith("L")


def decode_slot_cell(text: str, lab_row: bool = False) -> dict | None:
    """Decode a SLOT-CODE-TYPE-ROOM-BLOCK-... class cell.

    Args:
        text: Cell text, e.g. "L11-CSE2005-ELA-309-AB-1-ALL".
        lab_row: Whether the cell sits in a LAB row of the grid.

    Returns:
        Dict of TimetableSlot fields (without day, times, names), or None
        when the cell is not a class (fewer than 3 segments or no course code).
    """
    parts = [part.strip() for part in text.split("-") if part.strip()]
    if len(parts) < 3:
        return None
    slot_label, course_code, type_token = parts[0], parts[1], parts[2]
    if not COURSE_CODE.fullmatch(course_code):
        return None

    course_type = normalize_course_type(type_token)
    return {
        "slot_label": slot_label,
        "course_code": course_code,
        "course_type": course_type,
        "venue": parts[3] if len(parts) > 3 else "",
        "block": parts[4] if len(parts) > 4 else "",
        "is_lab": lab_row or course_type == "Lab" or _is_lab_label(slot_label),
    }


def _is_day_grid(table: Tag) -> bool:
    for row in table_rows(table):
        for text in row_texts(row)[:_MAX_LABEL_CELLS]:
            if Weekday.parse(text) is not None:
                return True
    return False


def _find_day_grid(tables: list[Tag]) -> Tag | None:
    for table in tables:
        if _is_day_grid(table):
            return table
    return None


def build_course_maps(
    tables: list[Tag], grid: Tag | None = None
) -> tuple[dict[str, str], dict[str, str], dict[str, str]]:
    """Scan non-grid tables for course names and faculty.

    Returns:
        (course_names, theory_faculty, lab_faculty), all keyed by course code.
        Rows without a Theory/Lab hint feed both faculty maps.
    """
    course_names: dict[str, str] = {}
    theory_faculty: dict[str, str] = {}
    lab_faculty: dict[str, str] = {}

    for table in tables:
        if table is grid:
            continue
        for row in table_rows(table):
            texts = row_texts(row)
            for index, text in enumerate(texts):
                match = _COURSE_CELL.search(text)
                if not match:
                    continue
                code = match.group(1)
                name = match.group(2).strip(" -")
                hint = (match.group(3) or "").lower()
                if name:
                    course_names.setdefault(code, name)

                faculty = ""
                for later in texts[index + 1 :]:
                    faculty_match = _FACULTY_CELL.match(later)
                    if faculty_match:
                        faculty = faculty_match.group(1).strip()
                if faculty:
                    if "lab" in hint:
                        lab_faculty.setdefault(code, faculty)
                    elif "theory" in hint:
                        theory_faculty.setdefault(code, faculty)
                    else:
                        theory_faculty.setdefault(code, faculty)
                        lab_faculty.setdefault(code, faculty)
                break

    return course_names, theory_faculty, lab_faculty


def parse_timetable(html: str) -> ParseResult[TimetableSlot]:
    """Extract timetable slots from a timetable response.

    Best-effort: unknown cells are ignored and class cells seen before any
    day label are counted in ``skipped_rows``.
    """
    soup = make_soup(html)
    tables = soup.find_all("table")
    grid = _find_day_grid(tables)
    course_names, theory_faculty, lab_faculty = build_course_maps(tables, grid)

    if grid is None:
        log.info("timetable_grid_missing", tables=len(tables))
        return ParseResult(records=[])

    # (lab_row, "start"|"end") -> ordinal -> HH:MM
    timings: dict[tuple[bool, str], dict[int, str]] = defaultdict(dict)
    pending: list[tuple[Weekday, int, bool, dict]] = []
    skipped = 0
    current_day: Weekday | None = None
    lab_row = False

    for row in table_rows(grid):
        texts = row_texts(row)
        if not texts:
            continue

        # Leading label cells: day, THEORY/LAB, Start/End
        start = 0
        timing: str | None = None
        while start < min(len(texts), _MAX_LABEL_CELLS):
            label = texts[start].upper()
            day = Weekday.parse(label)
            if day is not None:
                current_day = day
            elif label in _ROW_KIND_LABELS:
                lab_row = _ROW_KIND_LABELS[label]
            elif label in _TIMING_LABELS:
                timing = label.lower()
            else:
                break
            start += 1

        data = texts[start:]
        if timing is not None:
            for ordinal, text in enumerate(data):
                value = normalize_time(text)
                if value:
                    timings[(lab_row, timing)][ordinal] = value
            continue

        for ordinal, text in enumerate(data):
            if text.lower() in _SKIP_CELLS:
                continue
            fields = decode_slot_cell(text, lab_row)
            if fields is None:
                continue
            if current_day is None:
                skipped += 1
                continue
            pending.append((current_day, ordinal, lab_row, fields))

    slots: list[TimetableSlot] = []
    for day, ordinal, row_is_lab, fields in pending:
        starts = timings.get((row_is_lab, "start")) or timings.get((not row_is_lab, "start"), {})
        ends = timings.get((row_is_lab, "end")) or timings.get((not row_is_lab, "end"), {})
        code = fields["course_code"]
        if fields["is_lab"]:
            faculty = lab_faculty.get(code) or theory_faculty.get(code, "")
        else:
            faculty = theory_faculty.get(code) or lab_faculty.get(code, "")
        slots.append(
            TimetableSlot(
                day=day,
                course_name=course_names.get(code, ""),
                start_time=starts.get(ordinal),
                end_time=ends.get(ordinal),
                faculty=faculty,
                ordinal=ordinal,
                **fields,
            )
        )

    log.info(
        "timetable_parsed",
        slots=len(slots),
        courses=len(course_names),
        timed=sum(1 for s in slots if s.start_time),
        skipped=skipped,
    )
    return ParseResult(records=slots, skipped_rows=skipped)


def merge_lab_slots(slots: list[TimetableSlot]) -> list[TimetableSlot]:
    """Merge back-to-back lab slots of one course on one day into one block.

    "L1" 08:00-08:50 and "L2" 08:50-09:40 become "L1+L2" 08:00-09:40. Other
    slots pass through; the result is ordered by day then start time.
    """
    by_day: dict[Weekday, list[TimetableSlot]] = defaultdict(list)
    for slot in slots:
        by_day[slot.day].append(slot)

    merged: list[TimetableSlot] = []
    for day in sorted(by_day, key=lambda d: d.order):
        day_slots = sorted(
            by_day[day],
            key=lambda s: (s.start_time is None, s.start_time or "", s.ordinal),
        )
        block: TimetableSlot | None = None
        for slot in day_slots:
            if (
                block is not None
                and slot.is_lab
                and block.is_lab
                and slot.course_code == block.course_code
            ):
                block = block.model_copy(
                    update={
                        "slot_label": f"{block.slot_label}+{slot.slot_label}",
                        "end_time": slot.end_time or block.end_time,
                    }
                )
                continue
            if block is not None:
                merged.append(block)
            block = slot
        if block is not None:
            merged.append(block)
    return merged
