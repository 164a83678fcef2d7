"""Attendance extraction from /vtop/processViewStudentAttendance and
/vtop/processViewAttendanceDetail.

Summary table columns (by position):
  0 Sl.No | 1 Category | 2 Course Name | 3 Course Code | 4 Faculty
  5 Attended | 6 Total | 7 Percentage
  [8 Between-exams percentage] [9 Debar status] [View link]
The View link's click handler carries the course id and course type needed
for the detail request: onclick="...('AP2024254000123','ETH')".

Detail table columns: 0 Sl.No | 1 Date | 2 Slot | 3 Day/Time | 4 Status | 5 Remark
"""

import re

from bs4 import Tag

from vtop_scraper.logging import get_logger
from vtop_scraper.models import AttendanceCourse, AttendanceDetail, ParseResult
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

MIN_SUMMARY_CELLS = 8
MIN_DETAIL_CELLS = 5
# Leading rows of the detail page that are course info and column headers
DETAIL_HEADER_ROWS = 3

_HANDLER_ARGS = re.compile(r"'([^']+)'\s*,\s*'([^']+)'\s*\)")
_PERCENT = re.compile(r"^\d+(?:\.\d+)?\s*%?$")


def _handler_args(row: Tag) -> tuple[str, str] | None:
    """(course_id, course_type) from the row's click handler, if any."""
    for element in [row, *row.find_all(attrs={"onclick": True})]:
        onclick = element.get("onclick")
        if onclick:
            match = _HANDLER_ARGS.search(onclick)
            if match:
                return match.group(1), match.group(2)
    match = _HANDLER_ARGS.search(str(row))
    if match:
        return match.group(1), match.group(2)
    return None


def _is_action_cell(cell: Tag) -> bool:
    if cell.has_attr("onclick") or cell.find(attrs={"onclick": True}) is not None:
        return True
    return cell_text(cell).lower() in ("", "view")


def _trailing_columns(cells: list[Tag]) -> tuple[float | None, str]:
    """Optional between-exams percentage and debar status after column 7."""
    extras = [cell_text(cell) for cell in cells[MIN_SUMMARY_CELLS:] if not _is_action_cell(cell)]
    if len(extras) >= 2:
        between = parse_float(extras[0]) if _PERCENT.match(extras[0]) else None
        return between, extras[1]
    if len(extras) == 1:
        if _PERCENT.match(extras[0]):
            return parse_float(extras[0]), ""
        return None, extras[0]
    return None, ""


def parse_attendance(html: str) -> ParseResult[AttendanceCourse]:
    """Extract per-course attendance summaries.

    Rows shorter than 8 cells, rows whose code column is not a course code,
    and rows with unreadable counts are discarded.
    """
    soup = make_soup(html)
    courses: list[AttendanceCourse] = []
    skipped = 0

    for row in leaf_rows(soup):
        cells = row_cells(row)
        if not cells:
            continue
        if len(cells) < MIN_SUMMARY_CELLS:
            if any(cell_text(cell) for cell in cells):
                skipped += 1
            continue

        texts = [cell_text(cell) for cell in cells[:MIN_SUMMARY_CELLS]]
        course_code = texts[3]
        if not looks_like_course_code(course_code):
            # Header or spacer row
            continue

        attended = parse_int(texts[5])
        total = parse_int(texts[6])
        if attended is None or total is None or attended > total:
            log.debug("attendance_row_rejected", course_code=course_code, attended=texts[5], total=texts[6])
            skipped += 1
            continue

        computed = attended / total * 100 if total else 0.0
        percentage = min(max(parse_float(texts[7], default=computed), 0.0), 100.0)
        between_exams, debar_status = _trailing_columns(cells)

        category = texts[1]
        course_id, course_type = _handler_args(row) or ("", "")
        courses.append(
            AttendanceCourse(
                course_code=course_code,
                course_name=texts[2],
                course_type=course_type or category,
                faculty=texts[4],
                total_classes=total,
                attended_classes=attended,
                percentage=percentage,
                course_id=course_id,
                category=category,
                debar_status=debar_status,
                between_exams_percentage=between_exams,
            )
        )

    log.info("attendance_parsed", courses=len(courses), skipped=skipped)
    return ParseResult(records=courses, skipped_rows=skipped)


def parse_attendance_detail(html: str) -> ParseResult[AttendanceDetail]:
    """Extract per-class attendance records for one course.

    The first DETAIL_HEADER_ROWS rows are skipped; after that a row is data
    only if its first cell is a serial number.
    """
    soup = make_soup(html)
    records: list[AttendanceDetail] = []
    skipped = 0

    for row in leaf_rows(soup)[DETAIL_HEADER_ROWS:]:
        cells = row_cells(row)
        texts = [cell_text(cell) for cell in cells]
        if len(texts) < MIN_DETAIL_CELLS:
            if any(texts):
                skipped += 1
            continue

        serial = parse_int(texts[0])
        if serial is None:
            continue

        records.append(
            AttendanceDetail(
                serial=serial,
                date=texts[1],
                slot=texts[2],
                day_time=texts[3],
                status=texts[4],
                remark=texts[5] if len(texts) > 5 else "",
            )
        )

    log.info("attendance_detail_parsed", records=len(records), skipped=skipped)
    return ParseResult(records=records, skipped_rows=skipped)
