"""Fetch VTOP reports as JSON.

Standalone CLI script around VtopClient. Restores the saved session when it
is still fresh, otherwise logs in (captcha loop included), then fetches the
requested reports and prints them as JSON on stdout.

Run with: python scripts/fetch_vtop.py
Semester: python scripts/fetch_vtop.py --semester AP2024252
Reports:  python scripts/fetch_vtop.py --report attendance --report marks
Fresh:    python scripts/fetch_vtop.py --fresh
Detail:   python scripts/fetch_vtop.py --report attendance --with-detail

Credentials come from VTOP_USERNAME / VTOP_PASSWORD (.env is loaded).

Exit codes:
  0 = success (JSON on stdout)
  1 = error (message on stderr)
"""

import argparse
import asyncio
import json
import sys
from typing import Any, Awaitable, Callable, TypeVar

from dotenv import load_dotenv
from tenacity import (
    AsyncRetrying,
    retry_if_exception_type,
    stop_after_attempt,
    wait_fixed,
)

load_dotenv()

from vtop_scraper.client import VtopClient  # noqa: E402
from vtop_scraper.config import get_config  # noqa: E402
from vtop_scraper.errors import ScrapingError, SessionExpired, TransientError  # noqa: E402
from vtop_scraper.logging import get_logger, setup_logging  # noqa: E402
from vtop_scraper.pages.timetable import merge_lab_slots  # noqa: E402
from vtop_scraper.store import SessionStore  # noqa: E402

logger = get_logger("fetch_vtop")

REPORTS = ("semesters", "timetable", "attendance", "marks", "exams")

T = TypeVar("T")


def _log(msg: str) -> None:
    """Write diagnostic messages to stderr so stdout stays clean for JSON."""
    print(msg, file=sys.stderr)


def _parse_args() -> argparse.Namespace:
    """Parse CLI arguments using argparse."""
    parser = argparse.ArgumentParser(
        description="Fetch VTOP reports as JSON.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument(
        "--semester",
        type=str,
        default=None,
        help="Semester id (default: the first semester the portal lists).",
    )
    parser.add_argument(
        "--report",
        action="append",
        choices=REPORTS,
        default=None,
        help="Report to fetch; repeat for several (default: all).",
    )
    parser.add_argument(
        "--fresh",
        action="store_true",
        help="Ignore the saved session and log in again.",
    )
    parser.add_argument(
        "--with-detail",
        action="store_true",
        help="Also fetch per-class attendance for every course.",
    )
    parser.add_argument(
        "--merge-labs",
        action="store_true",
        help="Merge back-to-back lab slots in the timetable output.",
    )
    return parser.parse_args()


async def _connect(client: VtopClient, store: SessionStore, fresh: bool) -> None:
    """Restore a fresh saved session, or log in and save the new one."""
    saved = None if fresh else store.load_valid()
    if saved is not None:
        await client.restore(saved)
        _log("  Restored saved session")
        return

    _log("  Logging in (solving captcha)...")
    saved = await client.login()
    store.save(saved)
    _log(f"  Logged in as {saved.subject_id}")


async def _with_relogin(
    client: VtopClient,
    store: SessionStore,
    call: Callable[[], Awaitable[T]],
) -> T:
    """Run a fetch, retrying transient errors; re-login and retry once on expiry."""

    async def attempt() -> T:
        async for retry_state in AsyncRetrying(
            stop=stop_after_attempt(3),
            wait=wait_fixed(2),
            retry=retry_if_exception_type(TransientError),
            reraise=True,
        ):
            with retry_state:
                result = await call()
        return result

    try:
        return await attempt()
    except SessionExpired:
        _log("  Session expired, logging in again...")
        store.clear()
        await _connect(client, store, fresh=True)
        return await attempt()


async def main(args: argparse.Namespace) -> None:
    config = get_config()
    reports = args.report or list(REPORTS)
    store = SessionStore(config.state_dir, config.max_session_age_minutes)

    if not config.username or not config.password:
        if store.load_valid() is None or args.fresh:
            _log("  ERROR: No session and no credentials (VTOP_USERNAME / VTOP_PASSWORD)")
            sys.exit(1)

    output: dict[str, Any] = {}
    async with VtopClient(config) as client:
        await _connect(client, store, args.fresh)

        semesters = await _with_relogin(client, store, client.fetch_semesters)
        if "semesters" in reports:
            output["semesters"] = [s.model_dump(mode="json") for s in semesters]

        semester_id = args.semester or (semesters[0].id if semesters else None)
        if semester_id is None:
            _log("  ERROR: Portal listed no semesters; pass --semester")
            sys.exit(1)
        _log(f"  Semester: {semester_id}")
        output["semester_id"] = semester_id

        if "timetable" in reports:
            timetable = await _with_relogin(
                client, store, lambda: client.fetch_timetable(semester_id)
            )
            if args.merge_labs:
                timetable = timetable.model_copy(
                    update={"slots": merge_lab_slots(timetable.slots)}
                )
            output["timetable"] = timetable.model_dump(mode="json")
            _log(f"    timetable: {len(timetable.slots)} slots")

        if "attendance" in reports:
            attendance = await _with_relogin(
                client, store, lambda: client.fetch_attendance(semester_id)
            )
            attendance_out = attendance.model_dump(mode="json")
            attendance_out["overall_percentage"] = round(attendance.overall_percentage, 2)
            for course_out, course in zip(attendance_out["courses"], attendance.courses):
                course_out["classes_needed"] = course.classes_needed()
                course_out["classes_can_skip"] = course.classes_can_skip()

            if args.with_detail:
                for course_out, course in zip(attendance_out["courses"], attendance.courses):
                    if not course.course_id:
                        continue
                    detail = await _with_relogin(
                        client,
                        store,
                        lambda course=course: client.fetch_attendance_detail(
                            semester_id, course.course_id, course.course_type
                        ),
                    )
                    course_out["detail"] = [
                        record.model_dump(mode="json") for record in detail.records
                    ]
            output["attendance"] = attendance_out
            _log(f"    attendance: {len(attendance.courses)} courses")

        if "marks" in reports:
            marks = await _with_relogin(
                client, store, lambda: client.fetch_marks(semester_id)
            )
            output["marks"] = marks.model_dump(mode="json")
            _log(f"    marks: {len(marks.courses)} courses")

        if "exams" in reports:
            exams = await _with_relogin(
                client, store, lambda: client.fetch_exam_schedule(semester_id)
            )
            output["exams"] = exams.model_dump(mode="json")
            _log(f"    exams: {len(exams.all_exams)} exams")

    print(json.dumps(output, indent=2, ensure_ascii=False))
    logger.info("fetch_vtop_done", reports=reports, semester_id=output.get("semester_id"))


if __name__ == "__main__":
    args = _parse_args()
    _config = get_config()
    setup_logging(json_output=_config.log_json, log_level=_config.log_level)
    try:
        asyncio.run(main(args))
    except ScrapingError as e:
        print(f"ERROR [{e.kind}]: {e.message}", file=sys.stderr)
        sys.exit(1)
    except Exception as e:
        print(f"ERROR: {e}", file=sys.stderr)
        sys.exit(1)
