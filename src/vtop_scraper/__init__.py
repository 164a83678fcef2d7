"""VTOP portal scraping client.

Logs in through the captcha-protected VTOP login flow, keeps the resulting
session, and extracts timetable, attendance, marks and exam schedule data
from the portal's server-rendered HTML.
"""

from vtop_scraper.client import VtopClient
from vtop_scraper.errors import (
    PermanentError,
    ScrapingError,
    SessionExpired,
    TransientError,
)
from vtop_scraper.models import (
    AttendanceData,
    ExamScheduleData,
    MarksData,
    SavedSession,
    Semester,
    TimetableData,
)
from vtop_scraper.store import SessionStore

__all__ = [
    "VtopClient",
    "SessionStore",
    "ScrapingError",
    "TransientError",
    "PermanentError",
    "SessionExpired",
    "Semester",
    "TimetableData",
    "AttendanceData",
    "MarksData",
    "ExamScheduleData",
    "SavedSession",
]
