"""Exam schedule extraction from /vtop/examinations/doSearchExamScheduleForStudent.

One table, grouped by exam type:
  tr -> td colspan=13 "FAT"                   (section header, < 3 cells)
  tr -> S.No | Course Code | Course Title | Course Type | Class Id | Slot
        | Exam Date | Exam Session | Reporting Time | Exam Time | Venue
        | Seat Location | Seat No.              (entry, 13 cells)
"""

from vtop_scraper.logging import get_logger
from vtop_scraper.models import ExamSlot, ExamTypeGroup, ParseResult
from vtop_scraper.pages.html import cell_text, leaf_rows, make_soup, parse_int, row_cells

log = get_logger(__name__)

MAX_HEADER_CELLS = 2
MIN_ENTRY_CELLS = 13


def _exam_slot(texts: list[str]) -> ExamSlot:
    return ExamSlot(
        serial=texts[0],
        course_code=texts[1],
        course_name=texts[2],
        course_type=texts[3],
        course_id=texts[4],
        slot=texts[5],
        exam_date=texts[6],
        exam_session=texts[7],
        reporting_time=texts[8],
        exam_time=texts[9],
        venue=texts[10],
        seat_location=texts[11],
        seat_no=texts[12],
    )


def parse_exam_schedule(html: str) -> ParseResult[ExamTypeGroup]:
    """Extract exams grouped under their exam-type section headers.

    Entries seen before any section header, and rows with 3-12 cells, are
    counted as skipped. Column header rows (non-numeric serial) are ignored.
    """
    soup = make_soup(html)
    groups: list[ExamTypeGroup] = []
    current_type: str | None = None
    current_exams: list[ExamSlot] = []
    skipped = 0

    def flush() -> None:
        if current_type is not None:
            groups.append(ExamTypeGroup(exam_type=current_type, exams=list(current_exams)))

    for row in leaf_rows(soup):
        texts = [cell_text(cell) for cell in row_cells(row)]
        if not any(texts):
            continue

        if len(texts) <= MAX_HEADER_CELLS:
            label = next(text for text in texts if text)
            flush()
            current_type, current_exams = label, []
            continue

        if len(texts) < MIN_ENTRY_CELLS:
            skipped += 1
            continue
        if parse_int(texts[0]) is None:
            continue
        if current_type is None:
            skipped += 1
            continue
        current_exams.append(_exam_slot(texts))

    flush()
    log.info(
        "exam_schedule_parsed",
        groups=len(groups),
        exams=sum(len(g.exams) for g in groups),
        skipped=skipped,
    )
    return ParseResult(records=groups, skipped_rows=skipped)

