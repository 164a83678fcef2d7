"""Authenticated report fetchers.

Each fetch issues one POST carrying the CSRF token, semester id and subject
id, checks the response for the login-page signal, and hands the body to the
matching extractor in ``vtop_scraper.pages``. Fetchers never log in; a
SessionExpired is for the caller to handle.
"""

import time
from typing import Callable, TypeVar

from vtop_scraper.errors import SessionExpired, TransportError
from vtop_scraper.logging import get_logger
from vtop_scraper.models import (
    AttendanceData,
    AttendanceDetailData,
    ExamScheduleData,
    MarksData,
    ParseResult,
    Semester,
    TimetableData,
)
from vtop_scraper.pages.attendance import parse_attendance, parse_attendance_detail
from vtop_scraper.pages.exams import parse_exam_schedule
from vtop_scraper.pages.marks import parse_marks
from vtop_scraper.pages.semesters import parse_semesters
from vtop_scraper.pages.timetable import parse_timetable
from vtop_scraper.session import SessionManager, SessionSnapshot

logger = get_logger(__name__)

R = TypeVar("R")

# Any authenticated page that mentions this was replaced by the login page
SESSION_EXPIRED_MARKER = "login"

SEMESTERS_PATH = "/vtop/academics/common/StudentTimeTable"
TIMETABLE_PATH = "/vtop/processViewTimeTable"
ATTENDANCE_PATH = "/vtop/processViewStudentAttendance"
ATTENDANCE_DETAIL_PATH = "/vtop/processViewAttendanceDetail"
MARKS_PATH = "/vtop/examinations/doStudentMarkView"
EXAM_SCHEDULE_PATH = "/vtop/examinations/doSearchExamScheduleForStudent"


class ReportFetcher:
    """Fetches semester-scoped reports through an authenticated SessionManager."""

    def __init__(self, session: SessionManager) -> None:
        self.session = session

    def _report_fields(self, snapshot: SessionSnapshot, semester_id: str) -> dict[str, str]:
        return {
            "_csrf": snapshot.csrf_token or "",
            "semesterSubId": semester_id,
            "authorizedID": snapshot.subject_id or "",
        }

    async def _fetch(
        self,
        report: str,
        path: str,
        parse: Callable[[str], ParseResult[R]],
        *,
        snapshot: SessionSnapshot,
        form: dict[str, str] | None = None,
        multipart: dict[str, str] | None = None,
    ) -> ParseResult[R]:
        """POST one report request and extract its records.

        Raises:
            TransportError: Network failure or a non-200 answer.
            SessionExpired: The portal answered with its login page.
        """
        response = await self.session.request(
            "POST",
            path,
            form=form,
            multipart=multipart,
            cookie_header=snapshot.cookie_header or "",
        )
        if response.status_code != 200:
            logger.warning("report_http_error", report=report, status=response.status_code)
            raise TransportError(f"{report} request returned HTTP {response.status_code}")
        if SESSION_EXPIRED_MARKER in response.body:
            self.session.invalidate()
            logger.warning("session_expired", report=report)
            raise SessionExpired(f"Session expired while fetching {report}")

        result = parse(response.body)
        if result.incomplete:
            logger.info("rows_skipped", report=report, skipped=result.skipped_rows)
        logger.info(
            "report_fetched",
            report=report,
            records=len(result.records),
            length=len(response.body),
        )
        return result

    async def fetch_semesters(self) -> list[Semester]:
        """Semesters offered by the timetable landing page, in server order."""
        snapshot = self.session.require_authenticated()
        result = await self._fetch(
            "semesters",
            SEMESTERS_PATH,
            parse_semesters,
            snapshot=snapshot,
            form={
                "verifyMenu": "true",
                "authorizedID": snapshot.subject_id or "",
                "_csrf": snapshot.csrf_token or "",
                "nocache": str(time.time_ns() // 1_000_000),
            },
        )
        return result.records

    async def fetch_timetable(self, semester_id: str) -> TimetableData:
        snapshot = self.session.require_authenticated()
        result = await self._fetch(
            "timetable",
            TIMETABLE_PATH,
            parse_timetable,
            snapshot=snapshot,
            form=self._report_fields(snapshot, semester_id),
        )
        return TimetableData(
            semester_id=semester_id, slots=result.records, skipped_rows=result.skipped_rows
        )

    async def fetch_attendance(self, semester_id: str) -> AttendanceData:
        snapshot = self.session.require_authenticated()
        result = await self._fetch(
            "attendance",
            ATTENDANCE_PATH,
            parse_attendance,
            snapshot=snapshot,
            form=self._report_fields(snapshot, semester_id),
        )
        return AttendanceData(
            semester_id=semester_id, courses=result.records, skipped_rows=result.skipped_rows
        )

    async def fetch_attendance_detail(
        self, semester_id: str, course_id: str, course_type: str
    ) -> AttendanceDetailData:
        """Per-class attendance for one course.

        ``course_id`` and ``course_type`` come from the AttendanceCourse of the
        summary report.
        """
        snapshot = self.session.require_authenticated()
        form = self._report_fields(snapshot, semester_id)
        form.update(courseId=course_id, courseType=course_type)
        result = await self._fetch(
            "attendance_detail",
            ATTENDANCE_DETAIL_PATH,
            parse_attendance_detail,
            snapshot=snapshot,
            form=form,
        )
        return AttendanceDetailData(
            semester_id=semester_id,
            course_id=course_id,
            course_type=course_type,
            records=result.records,
            skipped_rows=result.skipped_rows,
        )

    async def fetch_marks(self, semester_id: str) -> MarksData:
        snapshot = self.session.require_authenticated()
        # Marks and exam endpoints only accept multipart bodies
        result = await self._fetch(
            "marks",
            MARKS_PATH,
            parse_marks,
            snapshot=snapshot,
            multipart=self._report_fields(snapshot, semester_id),
        )
        return MarksData(
            semester_id=semester_id, courses=result.records, skipped_rows=result.skipped_rows
        )

    async def fetch_exam_schedule(self, semester_id: str) -> ExamScheduleData:
        snapshot = self.session.require_authenticated()
        result = await self._fetch(
            "exam_schedule",
            EXAM_SCHEDULE_PATH,
            parse_exam_schedule,
            snapshot=snapshot,
            multipart=self._report_fields(snapshot, semester_id),
        )
        return ExamScheduleData(
            semester_id=semester_id, groups=result.records, skipped_rows=result.skipped_rows
        )
