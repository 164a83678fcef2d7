"""VtopClient: one VTOP session, its login loop and its report fetchers.

    async with VtopClient.from_config() as client:
        saved = await client.login()
        semesters = await client.fetch_semesters()
        attendance = await client.fetch_attendance(semesters[0].id)

Calls are serialised on an asyncio.Lock, so one client may be shared between
tasks; logins and fetches never interleave.
"""

import asyncio

import httpx

from vtop_scraper.captcha import CaptchaSolver
from vtop_scraper.config import VtopConfig, get_config
from vtop_scraper.fetchers import ReportFetcher
from vtop_scraper.logging import get_logger
from vtop_scraper.models import (
    AttendanceData,
    AttendanceDetailData,
    ExamScheduleData,
    MarksData,
    SavedSession,
    Semester,
    TimetableData,
)
from vtop_scraper.session import LoginPhase, SessionManager, SessionSnapshot
from vtop_scraper.transport import HttpTransport

logger = get_logger(__name__)


class VtopClient:
    """Authenticated scraping client for the VTOP portal."""

    def __init__(
        self,
        config: VtopConfig | None = None,
        *,
        http_transport: httpx.AsyncBaseTransport | None = None,
        solver_transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        """Initialize VtopClient.

        Args:
            config: Settings; defaults to the environment-backed singleton.
            http_transport: Optional httpx transport for portal traffic.
            solver_transport: Optional httpx transport for the captcha solver.
        """
        self.config = config or get_config()
        self.transport = HttpTransport(
            httpx.URL(self.config.base_url).host,
            user_agent=self.config.user_agent,
            max_redirects=self.config.max_redirects,
            timeout=self.config.request_timeout,
            http_transport=http_transport,
        )
        self.solver = CaptchaSolver(
            self.config.captcha_solver_url,
            timeout=self.config.captcha_timeout,
            http_transport=solver_transport,
        )
        self.session = SessionManager(
            self.transport,
            self.solver,
            base_url=self.config.base_url,
            max_login_attempts=self.config.max_login_attempts,
            max_captcha_reloads=self.config.max_captcha_reloads,
        )
        self.fetcher = ReportFetcher(self.session)
        self._lock = asyncio.Lock()

    @classmethod
    def from_config(cls) -> "VtopClient":
        return cls(get_config())

    @property
    def is_authenticated(self) -> bool:
        return self.session.is_authenticated

    @property
    def phase(self) -> LoginPhase:
        return self.session.phase

    def snapshot(self) -> SessionSnapshot:
        return self.session.snapshot()

    async def login(
        self,
        username: str | None = None,
        password: str | None = None,
        *,
        cancel: asyncio.Event | None = None,
    ) -> SavedSession:
        """Log in with the given or configured credentials.

        Returns:
            The session triple to persist.

        Raises:
            PermanentError: Login failed for good (see SessionManager.login).
            LoginCancelled: ``cancel`` was set between attempts.
        """
        async with self._lock:
            return await self.session.login(
                username if username is not None else self.config.username,
                password if password is not None else self.config.password,
                cancel=cancel,
            )

    async def restore(self, saved: SavedSession) -> None:
        async with self._lock:
            self.session.restore(saved)

    async def logout(self) -> None:
        async with self._lock:
            self.session.logout()

    async def fetch_semesters(self) -> list[Semester]:
        async with self._lock:
            return await self.fetcher.fetch_semesters()

    async def fetch_timetable(self, semester_id: str) -> TimetableData:
        async with self._lock:
            return await self.fetcher.fetch_timetable(semester_id)

    async def fetch_attendance(self, semester_id: str) -> AttendanceData:
        async with self._lock:
            return await self.fetcher.fetch_attendance(semester_id)

    async def fetch_attendance_detail(
        self, semester_id: str, course_id: str, course_type: str
    ) -> AttendanceDetailData:
        async with self._lock:
            return await self.fetcher.fetch_attendance_detail(
                semester_id, course_id, course_type
            )

    async def fetch_marks(self, semester_id: str) -> MarksData:
        async with self._lock:
            return await self.fetcher.fetch_marks(semester_id)

    async def fetch_exam_schedule(self, semester_id: str) -> ExamScheduleData:
        async with self._lock:
            return await self.fetcher.fetch_exam_schedule(semester_id)

    async def aclose(self) -> None:
        await self.transport.aclose()
        await self.solver.aclose()
        logger.debug("client_closed")

    async def __aenter__(self) -> "VtopClient":
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.aclose()
