"""Pydantic models for VTOP session and academic report data.

All fetched-data structures use Pydantic v2 for validation, serialization and
type safety. Report records are frozen: each fetch builds fresh instances.
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Generic, TypeVar

from pydantic import BaseModel, ConfigDict, Field, computed_field, model_validator

T = TypeVar("T")

_TIME_PATTERN = r"^\d{2}:\d{2}$"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Weekday(str, Enum):
    """Day of week as shown in the timetable grid."""

    MONDAY = "Monday"
    TUESDAY = "Tuesday"
    WEDNESDAY = "Wednesday"
    THURSDAY = "Thursday"
    FRIDAY = "Friday"
    SATURDAY = "Saturday"
    SUNDAY = "Sunday"

    @classmethod
    def parse(cls, text: str) -> "Weekday | None":
        """Map "MON", "Mon" or "Monday" to a Weekday, or None."""
        label = text.strip().upper()
        for day in cls:
            if label in (day.value[:3].upper(), day.value.upper()):
                return day
        return None

    @property
    def order(self) -> int:
        return list(Weekday).index(self)


class ParseResult(BaseModel, Generic[T]):
    """Records extracted from one response body.

    Extraction is best-effort against an unversioned HTML contract, so a
    result is never an error: ``skipped_rows`` counts candidate rows that
    were discarded as malformed.
    """

    model_config = ConfigDict(frozen=True)

    records: list[T] = Field(default_factory=list)
    skipped_rows: int = 0

    @property
    def incomplete(self) -> bool:
        return self.skipped_rows > 0


class Semester(BaseModel):
    """An academic term option from the semester selector."""

    model_config = ConfigDict(frozen=True)

    id: str
    display_name: str


class TimetableSlot(BaseModel):
    """One class meeting in the weekly timetable grid.

    ``ordinal`` is the grid column of the cell; it is what ties a class cell to
    the Start/End timing header rows above it.
    """

    model_config = ConfigDict(frozen=True)

    day: Weekday
    slot_label: str  # "L11", "A1+TA1"
    course_code: str  # "CSE2005"
    course_name: str = ""
    course_type: str = ""  # "Theory" / "Lab" / raw token
    venue: str = ""  # Room number, e.g. "309"
    block: str = ""  # Building block, e.g. "AB"
    start_time: str | None = Field(default=None, pattern=_TIME_PATTERN)
    end_time: str | None = Field(default=None, pattern=_TIME_PATTERN)
    is_lab: bool = False
    faculty: str = ""
    ordinal: int = 0


class TimetableData(BaseModel):
    """Timetable for one semester."""

    model_config = ConfigDict(frozen=True)

    semester_id: str
    slots: list[TimetableSlot] = Field(default_factory=list)
    fetched_at: datetime = Field(default_factory=_utcnow)
    skipped_rows: int = 0

    def days(self) -> list[Weekday]:
        """Days that have at least one class, in week order."""
        return sorted({slot.day for slot in self.slots}, key=lambda d: d.order)

    def slots_for(self, day: Weekday) -> list[TimetableSlot]:
        """Slots on ``day`` sorted by start time (untimed slots last)."""
        return sorted(
            (slot for slot in self.slots if slot.day == day),
            key=lambda s: (s.start_time is None, s.start_time or "", s.ordinal),
        )


def _check_threshold(threshold: int) -> None:
    # 0 and 100 have no finite answer
    if not 0 < threshold < 100:
        raise ValueError(f"threshold must be between 1 and 99 percent, got {threshold}")


class AttendanceCourse(BaseModel):
    """Attendance summary row for one registered course."""

    model_config = ConfigDict(frozen=True)

    course_code: str
    course_name: str = ""
    course_type: str = ""
    faculty: str = ""
    total_classes: int = Field(default=0, ge=0)
    attended_classes: int = Field(default=0, ge=0)
    percentage: float = Field(default=0.0, ge=0.0, le=100.0)
    course_id: str = ""  # Needed to fetch the per-class detail
    category: str = ""
    debar_status: str = ""
    between_exams_percentage: float | None = None

    @model_validator(mode="after")
    def _attended_within_total(self) -> "AttendanceCourse":
        if self.attended_classes > self.total_classes:
            raise ValueError(
                f"attended_classes ({self.attended_classes}) exceeds "
                f"total_classes ({self.total_classes})"
            )
        return self

    @computed_field  # type: ignore[prop-decorator]
    @property
    def absent_classes(self) -> int:
        return self.total_classes - self.attended_classes

    def classes_needed(self, threshold: int = 75) -> int:
        """Consecutive classes to attend before reaching ``threshold`` percent.

        Smallest x with (attended + x) / (total + x) >= threshold / 100, in
        integer arithmetic so boundary cases are exact.
        """
        _check_threshold(threshold)
        deficit = threshold * self.total_classes - 100 * self.attended_classes
        if deficit <= 0:
            return 0
        return -(-deficit // (100 - threshold))

    def classes_can_skip(self, threshold: int = 75) -> int:
        """Consecutive classes that can be missed while staying at ``threshold``."""
        _check_threshold(threshold)
        surplus = 100 * self.attended_classes - threshold * self.total_classes
        if surplus <= 0:
            return 0
        return surplus // threshold


class AttendanceData(BaseModel):
    """Attendance summary for one semester."""

    model_config = ConfigDict(frozen=True)

    semester_id: str
    courses: list[AttendanceCourse] = Field(default_factory=list)
    fetched_at: datetime = Field(default_factory=_utcnow)
    skipped_rows: int = 0

    @property
    def overall_percentage(self) -> float:
        total = sum(c.total_classes for c in self.courses)
        if total == 0:
            return 0.0
        attended = sum(c.attended_classes for c in self.courses)
        return attended / total * 100


class AttendanceDetail(BaseModel):
    """One scheduled class meeting for a course."""

    model_config = ConfigDict(frozen=True)

    serial: int
    date: str
    slot: str = ""
    day_time: str = ""
    status: str = ""  # "Present" / "Absent" / "On Duty"
    remark: str = ""


class AttendanceDetailData(BaseModel):
    """Per-class attendance for one course."""

    model_config = ConfigDict(frozen=True)

    semester_id: str
    course_id: str
    course_type: str
    records: list[AttendanceDetail] = Field(default_factory=list)
    fetched_at: datetime = Field(default_factory=_utcnow)
    skipped_rows: int = 0


class MarkComponent(BaseModel):
    """One assessment (CAT-1, Quiz, FAT...) within a course."""

    model_config = ConfigDict(frozen=True)

    name: str
    max_marks: float = 0.0
    scored_marks: float = 0.0
    weightage: float = 0.0
    weighted_score: float = 0.0
    serial: str = ""
    status: str = ""
    remark: str = ""


class CourseMarks(BaseModel):
    """Marks for one registered course."""

    model_config = ConfigDict(frozen=True)

    course_code: str
    course_name: str = ""
    course_type: str = ""
    faculty: str = ""
    slot: str = ""
    serial: str = ""
    components: list[MarkComponent] = Field(default_factory=list)

    @property
    def total_weighted_score(self) -> float:
        return sum(c.weighted_score for c in self.components)

    @property
    def total_weightage(self) -> float:
        return sum(c.weightage for c in self.components)


class MarksData(BaseModel):
    """Marks for one semester."""

    model_config = ConfigDict(frozen=True)

    semester_id: str
    courses: list[CourseMarks] = Field(default_factory=list)
    fetched_at: datetime = Field(default_factory=_utcnow)
    skipped_rows: int = 0


class ExamSlot(BaseModel):
    """One scheduled exam."""

    model_config = ConfigDict(frozen=True)

    course_code: str
    course_name: str = ""
    course_type: str = ""
    course_id: str = ""
    slot: str = ""
    exam_date: str = ""
    exam_session: str = ""
    reporting_time: str = ""
    exam_time: str = ""
    venue: str = ""
    seat_location: str = ""
    seat_no: str = ""
    serial: str = ""


class ExamTypeGroup(BaseModel):
    """Exams grouped under one exam type (CAT1, CAT2, FAT...)."""

    model_config = ConfigDict(frozen=True)

    exam_type: str
    exams: list[ExamSlot] = Field(default_factory=list)


class ExamScheduleData(BaseModel):
    """Exam schedule for one semester."""

    model_config = ConfigDict(frozen=True)

    semester_id: str
    groups: list[ExamTypeGroup] = Field(default_factory=list)
    fetched_at: datetime = Field(default_factory=_utcnow)
    skipped_rows: int = 0

    @property
    def all_exams(self) -> list[ExamSlot]:
        return [exam for group in self.groups for exam in group.exams]


class SavedSession(BaseModel):
    """Session triple handed to the persistence collaborator after login."""

    model_config = ConfigDict(frozen=True)

    cookie_header: str
    csrf_token: str
    subject_id: str
    saved_at: datetime = Field(default_factory=_utcnow)
