"""Semester selector extraction.

The timetable landing page (and every report page) carries
``<select name="semesterSubId">`` whose options are the terms the student
can query, most recent first.
"""

from vtop_scraper.logging import get_logger
from vtop_scraper.models import ParseResult, Semester
from vtop_scraper.pages.html import clean_text, make_soup

log = get_logger(__name__)

SELECT_NAME = "semesterSubId"

# Campus tags the portal appends to term names
NAME_SUFFIXES: tuple[str, ...] = ("- AMR",)


def _clean_name(name: str) -> str:
    for suffix in NAME_SUFFIXES:
        name = name.replace(suffix, "")
    return clean_text(name)


def parse_semesters(html: str) -> ParseResult[Semester]:
    """Extract semesters in server order, skipping the placeholder option.

    Falls back to every <option> on the page when the named select is missing.
    """
    soup = make_soup(html)
    select = soup.find("select", attrs={"name": SELECT_NAME})
    options = (select or soup).find_all("option")

    semesters: list[Semester] = []
    for option in options:
        value = (option.get("value") or "").strip()
        name = clean_text(option.get_text(" "))
        if not value or value == "0" or not name or "select" in name.lower():
            continue
        semesters.append(Semester(id=value, display_name=_clean_name(name)))

    log.debug("semesters_parsed", count=len(semesters), select_found=select is not None)
    return ParseResult(records=semesters)
