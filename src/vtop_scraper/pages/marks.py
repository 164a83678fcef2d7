"""Marks extraction from /vtop/examinations/doStudentMarkView.

Rows of the outer table alternate:
  tr.tableContent -> Sl.No | ClassNbr | Course Code | Course Title | Course Type
                     | Course System | Faculty | Slot | ...
  tr.tableContent -> td colspan=... containing table.customTable-level1:
      tr.tableContent-level1 -> Sl.No | Mark Title | Max. Mark | Weightage %
                                | Status | Scored Mark | Weightage Mark | Remark

Each course header is paired with the component table that follows it.
"""

from bs4 import Tag

from vtop_scraper.logging import get_logger
from vtop_scraper.models import CourseMarks, MarkComponent, ParseResult
from vtop_scraper.pages.html import (
    cell_text,
    leaf_rows,
    looks_like_course_code,
    make_soup,
    parse_float,
    parse_int,
    row_cells,
)

log = get_logger(__name__)

MIN_HEADER_CELLS = 8
MIN_COMPONENT_CELLS = 7


def _parse_components(container: Tag) -> tuple[list[MarkComponent], int]:
    components: list[MarkComponent] = []
    skipped = 0
    for row in leaf_rows(container):
        texts = [cell_text(cell) for cell in row_cells(row)]
        if len(texts) < MIN_COMPONENT_CELLS:
            if any(texts):
                skipped += 1
            continue
        if parse_int(texts[0]) is None:
            # Column header row
            continue
        components.append(
            MarkComponent(
                serial=texts[0],
                name=texts[1],
                max_marks=parse_float(texts[2]),
                weightage=parse_float(texts[3]),
                status=texts[4],
                scored_marks=parse_float(texts[5]),
                weighted_score=parse_float(texts[6]),
                remark=texts[7] if len(texts) > 7 else "",
            )
        )
    return components, skipped


def _course_header(texts: list[str]) -> CourseMarks:
    return CourseMarks(
        serial=texts[0],
        course_code=texts[2],
        course_name=texts[3],
        course_type=texts[4],
        faculty=texts[6],
        slot=texts[7],
    )


def parse_marks(html: str) -> ParseResult[CourseMarks]:
    """Extract courses with their mark components.

    A header with no component table before the next header is kept with
    no components. A row holding a nested table while no header is pending
    is page layout and is ignored.
    """
    soup = make_soup(html)
    courses: list[CourseMarks] = []
    skipped = 0
    pending: CourseMarks | None = None
    consumed: set[int] = set()

    for row in soup.find_all("tr"):
        if id(row) in consumed:
            continue

        nested = row.find("table")
        if nested is not None:
            if pending is None:
                continue
            components, bad_rows = _parse_components(nested)
            skipped += bad_rows
            consumed.update(id(inner) for inner in nested.find_all("tr"))
            courses.append(pending.model_copy(update={"components": components}))
            pending = None
            continue

        texts = [cell_text(cell) for cell in row_cells(row)]
        if len(texts) < MIN_HEADER_CELLS:
            continue
        if parse_int(texts[0]) is None or not looks_like_course_code(texts[2]):
            continue

        if pending is not None:
            courses.append(pending)
        pending = _course_header(texts)

    if pending is not None:
        courses.append(pending)

    log.info(
        "marks_parsed",
        courses=len(courses),
        components=sum(len(c.components) for c in courses),
        skipped=skipped,
    )
    return ParseResult(records=courses, skipped_rows=skipped)
