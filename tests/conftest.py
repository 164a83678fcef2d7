"""Shared fixtures: saved-page HTML and an offline fake of the VTOP portal."""

import json

import httpx
import pytest

from vtop_scraper.captcha import CaptchaSolver
from vtop_scraper.config import VtopConfig
from vtop_scraper.session import SessionManager
from vtop_scraper.transport import HttpTransport

BASE_URL = "https://vtop.test"
SOLVER_URL = "https://solver.test/captcha"
CAPTCHA_URI = "data:image/jpeg;base64,/9j/4AAQSkZJRg=="

LANDING_HTML = """
<html><body>
<form id="stdForm" method="post">
  <input type="hidden" name="_csrf" value="tok-1"/>
</form>
</body></html>
"""

PRELOGIN_HTML = f"""
<form id="vtopLoginForm" action="/vtop/login" method="post">
  <input type="hidden" name="_csrf" value="tok-2"/>
  <input type="text" name="username"/>
  <img class="form-control img-fluid bg-light border-0" src="{CAPTCHA_URI}" style="height: 40px;"/>
  <input type="text" name="captchaStr"/>
</form>
"""

PRELOGIN_NO_CAPTCHA_HTML = """
<form id="vtopLoginForm" action="/vtop/login" method="post">
  <input type="hidden" name="_csrf" value="tok-2"/>
  <span>Loading...</span>
</form>
"""

SUCCESS_HTML = """
<html><body>
<input type="hidden" name="_csrf" value="tok-3"/>
<input type="hidden" name="authorizedIDX" value="23BCE7777"/>
<div class="menu">Academics</div>
</body></html>
"""

INVALID_CAPTCHA_HTML = """
<form id="vtopLoginForm" action="/vtop/login">
<div class="alert alert-danger" role="alert">Invalid Captcha</div>
</form>
"""

INVALID_CREDENTIALS_HTML = """
<form id="vtopLoginForm" action="/vtop/login">
<div class="alert alert-danger" role="alert">Invalid Username/Password</div>
</form>
"""

SEMESTERS_HTML = """
<select name="semesterSubId" id="semesterSubId" class="form-control">
  <option value="">-- Choose Semester --</option>
  <option value="AP2024252">Winter Semester 2024-25 - AMR</option>
  <option value="AP2024251">Fall Semester 2024-25 - AMR</option>
  <option value="0">Select</option>
</select>
"""

TIMETABLE_HTML = """
<table class="table" id="studentDetailsList">
  <tr><th>Sl.No</th><th>Course</th><th>Slot - Venue</th><th>Faculty</th></tr>
  <tr><td>1</td><td>CSE2005 - Object Oriented Programming ( Embedded Theory )</td>
      <td>A1+TA1 - 301</td><td>JOHN DOE - SCOPE</td></tr>
  <tr><td>2</td><td>CSE2005 - Object Oriented Programming ( Embedded Lab )</td>
      <td>L1+L2 - 309</td><td>JANE ROE - SCOPE</td></tr>
  <tr><td>3</td><td>MAT1001 - Calculus ( Theory Only )</td>
      <td>B1 - 201</td><td>ALAN TURING - SAS</td></tr>
</table>
<table id="timeTableStyle">
  <tr><td rowspan="2">THEORY</td><td>Start</td><td>08:00</td><td>09:00</td><td>10:00</td><td>Lunch</td></tr>
  <tr><td>End</td><td>08:50</td><td>09:50</td><td>10:50</td><td>Lunch</td></tr>
  <tr><td rowspan="2">LAB</td><td>Start</td><td>08:00</td><td>08:50</td><td>10:00</td><td>Lunch</td></tr>
  <tr><td>End</td><td>08:50</td><td>09:40</td><td>10:50</td><td>Lunch</td></tr>
  <tr><td rowspan="2">MON</td><td>THEORY</td><td>A1-CSE2005-ETH-301-AB-ALL</td>
      <td>B1-MAT1001-TH-201-CB-ALL</td><td>C1</td><td>Lunch</td></tr>
  <tr><td>LAB</td><td>L1-CSE2005-ELA-309-AB-1-ALL</td><td>L2-CSE2005-ELA-309-AB-1-ALL</td>
      <td>L3</td><td>Lunch</td></tr>
  <tr><td rowspan="2">TUE</td><td>THEORY</td><td>-</td><td>A1-CSE2005-ETH-301-AB-ALL</td>
      <td>D1</td><td>Lunch</td></tr>
  <tr><td>LAB</td><td>L7</td><td>L8</td><td>L9</td><td>Lunch</td></tr>
</table>
"""

ATTENDANCE_HTML = """
<div class="table-responsive">
<table class="table">
  <tr><th>Sl.No.</th><th>Category</th><th>Course Name</th><th>Course Code</th>
      <th>Faculty</th><th>Attended</th><th>Total</th><th>Percentage</th></tr>
  <tr>
    <td>1</td><td>Embedded Theory</td><td>Object Oriented Programming</td><td>CSE2005</td>
    <td>JOHN DOE - SCOPE</td><td>30</td><td>40</td><td>75%</td><td>80%</td><td>-</td>
    <td><a href="javascript:void(0);"
           onclick="javascript:processViewAttendanceDetail('AP2024254000123','ETH');">View</a></td>
  </tr>
  <tr>
    <td>2</td><td>Theory Only</td><td>Calculus</td><td>MAT1001</td>
    <td>ALAN TURING - SAS</td><td>18</td><td>20</td><td>90%</td>
    <td><a href="javascript:void(0);"
           onclick="javascript:processViewAttendanceDetail('AP2024254000456','TH');">View</a></td>
  </tr>
  <tr><td>3</td><td>garbage</td><td>x</td><td>y</td></tr>
  <tr>
    <td>4</td><td>Lab Only</td><td>Physics Lab</td><td>PHY1701</td>
    <td>MARIE CURIE - SAS</td><td>12</td><td>10</td><td>120%</td>
  </tr>
</table>
</div>
"""

ATTENDANCE_DETAIL_HTML = """
<table class="table">
  <tr><td>CSE2005</td><td>Object Oriented Programming</td></tr>
  <tr><td>Faculty</td><td>JOHN DOE</td></tr>
  <tr><td>Sl.No.</td><td>Date</td><td>Slot</td><td>Day / Time</td><td>Status</td><td>Remark</td></tr>
  <tr><td>1</td><td>01-Jul-2024</td><td>A1</td><td>MON / 08:00-08:50</td><td>Present</td><td></td></tr>
  <tr><td>2</td><td>03-Jul-2024</td><td>A1</td><td>WED / 09:00-09:50</td><td>Absent</td><td>-</td></tr>
  <tr><td>Total</td><td>2</td></tr>
</table>
"""

MARKS_HTML = """
<table class="customTable">
  <tr class="tableHeader"><td>Sl.No.</td><td>ClassNbr</td><td>Course Code</td><td>Course Title</td>
      <td>Course Type</td><td>Course System</td><td>Faculty</td><td>Slot</td><td>Mode</td></tr>
  <tr class="tableContent"><td>1</td><td>AP2024254000123</td><td>CSE2005</td>
      <td>Object Oriented Programming</td><td>Embedded Theory</td><td>CBCS</td>
      <td>JOHN DOE</td><td>A1+TA1</td><td>Regular</td></tr>
  <tr class="tableContent"><td colspan="9">
    <table class="customTable-level1">
      <tr class="tableContent-level1"><td>Sl.No.</td><td>Mark Title</td><td>Max. Mark</td>
          <td>Weightage %</td><td>Status</td><td>Scored Mark</td><td>Weightage Mark</td><td>Remark</td></tr>
      <tr class="tableContent-level1"><td>1</td><td>CAT-1</td><td>50.00</td><td>15.00</td>
          <td>Present</td><td>40.00</td><td>12.00</td><td></td></tr>
      <tr class="tableContent-level1"><td>2</td><td>Quiz-1</td><td>10.00</td><td>10.00</td>
          <td>Present</td><td>8.50</td><td>8.50</td><td>-</td></tr>
    </table>
  </td></tr>
  <tr class="tableContent"><td>2</td><td>AP2024254000456</td><td>MAT1001</td>
      <td>Calculus</td><td>Theory Only</td><td>CBCS</td>
      <td>ALAN TURING</td><td>B1</td><td>Regular</td></tr>
</table>
"""


def exam_row(serial: str, code: str, name: str, date: str) -> str:
    cells = [
        serial, code, name, "ETH", "AP2024254000123", "A1+TA1", date, "FN",
        "09:15 AM", "09:30 AM - 11:00 AM", "AB-301", "AB-301-R2", "12",
    ]
    return "<tr>" + "".join(f"<td>{cell}</td>" for cell in cells) + "</tr>"


EXAMS_HTML = f"""
<table class="customTable">
  <tr class="tableHeader"><td>S.No.</td><td>Course Code</td><td>Course Title</td><td>Course Type</td>
      <td>Class Id</td><td>Slot</td><td>Exam Date</td><td>Exam Session</td><td>Reporting Time</td>
      <td>Exam Time</td><td>Venue</td><td>Seat Location</td><td>Seat No.</td></tr>
  <tr class="panelHead-secondary"><td colspan="13">CAT1</td></tr>
  {exam_row("1", "CSE2005", "Object Oriented Programming", "15-Sep-2024")}
  <tr class="panelHead-secondary"><td colspan="13">FAT</td></tr>
  {exam_row("1", "CSE2005", "Object Oriented Programming", "20-Nov-2024")}
  {exam_row("2", "MAT1001", "Calculus", "22-Nov-2024")}
</table>
"""


class FakePortal:
    """In-memory VTOP portal served through httpx.MockTransport."""

    def __init__(self) -> None:
        self.requests: list[httpx.Request] = []
        self.landing_html = LANDING_HTML
        self.prelogin_html = PRELOGIN_HTML
        # Consumed in order; the last one repeats
        self.login_responses = [SUCCESS_HTML]
        self.reports: dict[str, str] = {}
        self.landing_failures = 0

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        path = request.url.path

        if path == "/vtop/open/page":
            if self.landing_failures:
                self.landing_failures -= 1
                raise httpx.ConnectError("connection reset", request=request)
            return httpx.Response(
                200,
                text=self.landing_html,
                headers=[("set-cookie", "JSESSIONID=abc123; Path=/vtop; HttpOnly")],
            )
        if path == "/vtop/prelogin/setup":
            return httpx.Response(
                200,
                text=self.prelogin_html,
                headers=[("set-cookie", "SERVERID=s1; Path=/")],
            )
        if path == "/vtop/login":
            if len(self.login_responses) > 1:
                body = self.login_responses.pop(0)
            else:
                body = self.login_responses[0]
            return httpx.Response(200, text=body)
        if path in self.reports:
            return httpx.Response(200, text=self.reports[path])
        return httpx.Response(404, text="not found")

    def requests_to(self, path: str) -> list[httpx.Request]:
        return [r for r in self.requests if r.url.path == path]


class FakeSolver:
    """Captcha solver endpoint; an answer of None makes it fail with HTTP 500."""

    def __init__(self) -> None:
        self.answers: list[str | None] = ["ABC123"]
        self.calls: list[dict] = []

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.calls.append(json.loads(request.content))
        if len(self.answers) > 1:
            answer = self.answers.pop(0)
        else:
            answer = self.answers[0]
        if answer is None:
            return httpx.Response(500, text="model unavailable")
        return httpx.Response(200, text=answer)


@pytest.fixture
def portal() -> FakePortal:
    return FakePortal()


@pytest.fixture
def solver() -> FakeSolver:
    return FakeSolver()


@pytest.fixture
async def manager(portal, solver):
    transport = HttpTransport(
        "vtop.test", http_transport=httpx.MockTransport(portal.handler)
    )
    captcha = CaptchaSolver(SOLVER_URL, http_transport=httpx.MockTransport(solver.handler))
    session = SessionManager(
        transport,
        captcha,
        base_url=BASE_URL,
        max_login_attempts=5,
        max_captcha_reloads=3,
    )
    yield session
    await transport.aclose()
    await captcha.aclose()


@pytest.fixture
def config() -> VtopConfig:
    return VtopConfig(
        base_url=BASE_URL,
        captcha_solver_url=SOLVER_URL,
        username="23BCE1000",
        password="secret-pass",
        max_login_attempts=3,
        max_captcha_reloads=2,
    )
