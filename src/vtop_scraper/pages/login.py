"""Login-page extraction and login-response classification.

The portal exposes no login API. Everything the login loop needs (CSRF token,
captcha bitmap, form action, subject id, outcome of a submission) is pulled
out of server-rendered HTML with patterns kept together here, so that a
markup change upstream is a one-file fix.

Confirmed page flow:
  GET  /vtop/open/page          -> landing page, hidden input _csrf
  POST /vtop/prelogin/setup     -> login form with <img src="data:image/...;base64,...">
                                   (sometimes needs several reloads before the image appears)
  POST <form action>            -> dashboard with hidden input authorizedIDX on success,
                                   the login form plus an alert on failure
"""

import re
from enum import Enum

from vtop_scraper.pages.html import clean_text

_CSRF_PATTERNS = (
    re.compile(r"""<input[^>]+name=["']_csrf["'][^>]+value=["']([^"']+)["']""", re.I),
    re.compile(r"""<input[^>]+value=["']([^"']+)["'][^>]+name=["']_csrf["']""", re.I),
    re.compile(r"""<meta[^>]+name=["']_csrf["'][^>]+content=["']([^"']+)["']""", re.I),
)

_CAPTCHA_PATTERNS = (
    re.compile(r"""<img[^>]+class=["'][^"']*form-control[^"']*["'][^>]+src=["'](data:image[^"']+)["']"""),
    re.compile(r"""<img[^>]+src=["'](data:image/[^;"']+;base64,[^"']+)["'][^>]*class=["'][^"']*form-control"""),
    re.compile(r"""src=["'](data:image/[^;"']+;base64,[^"']+)["']"""),
)

_FORM_ACTION_PATTERNS = (
    re.compile(r"""<form[^>]+id=["']?login[^"'\s>]*["']?[^>]+action=["']([^"']+)["']""", re.I),
    re.compile(r"""<form[^>]+action=["']([^"']+)["'][^>]+id=["']?login""", re.I),
    re.compile(r"""<form[^>]+action=["'](/vtop/[^"']+)["']""", re.I),
)

_SUBJECT_ID_PATTERNS = (
    re.compile(r"""<input[^>]+name=["']authorizedIDX["'][^>]+value=["']([^"']+)["']"""),
    re.compile(r"""<input[^>]+value=["']([^"']+)["'][^>]+name=["']authorizedIDX["']"""),
)

_ALERT_PATTERN = re.compile(
    r"""<(div|span|p)[^>]*class=["'][^"']*\b(?:alert|error)\b[^"']*["'][^>]*>(.*?)</\1>""",
    re.I | re.S,
)
_TAG = re.compile(r"<[^>]+>")

# Marker text, matched case-insensitively on whitespace-collapsed HTML
INVALID_CAPTCHA_MARKERS: tuple[str, ...] = ("invalid captcha",)
INVALID_CREDENTIALS_MARKERS: tuple[str, ...] = (
    "invalid loginid/password",
    "invalid username/password",
    "invalid credentials",
)
# Matched case-sensitively on the raw body
SUCCESS_MARKERS: tuple[str, ...] = (
    "authorizedIDX",
    "authorizedID",
    "Student Portal",
    "vtop/content",
    "Academics",
    "Time Table",
)


class LoginOutcome(str, Enum):
    SUCCESS = "success"
    INVALID_CAPTCHA = "invalid_captcha"
    INVALID_CREDENTIALS = "invalid_credentials"
    UNRECOGNIZED = "unrecognized"


def _first_match(patterns: tuple[re.Pattern[str], ...], html: str) -> str | None:
    for pattern in patterns:
        match = pattern.search(html)
        if match:
            return match.group(1)
    return None


def extract_csrf_token(html: str) -> str | None:
    """Value of the hidden ``_csrf`` input (or meta tag)."""
    return _first_match(_CSRF_PATTERNS, html)


def extract_captcha_image(html: str) -> str | None:
    """The captcha bitmap as a ``data:image/...;base64,...`` URI."""
    src = _first_match(_CAPTCHA_PATTERNS, html)
    if src and "base64," in src:
        return src
    return None


def extract_form_action(html: str) -> str | None:
    """Action URL of the login form, possibly relative."""
    return _first_match(_FORM_ACTION_PATTERNS, html)


def extract_subject_id(html: str) -> str | None:
    """Authenticated subject (registration number) from ``authorizedIDX``."""
    return _first_match(_SUBJECT_ID_PATTERNS, html)


def extract_alert(html: str) -> str | None:
    """Text of the first alert/error box on the page, if any."""
    for match in _ALERT_PATTERN.finditer(html):
        text = clean_text(_TAG.sub(" ", match.group(2)))
        if text:
            return text
    return None


def classify_login_response(html: str) -> LoginOutcome:
    """Decide what a login submission's response means.

    Known failure texts are checked before success markers: a rejected login
    re-renders the whole form, and generic portal words can appear on it.
    """
    normalized = " ".join(html.split()).lower()
    if any(marker in normalized for marker in INVALID_CAPTCHA_MARKERS):
        return LoginOutcome.INVALID_CAPTCHA
    if any(marker in normalized for marker in INVALID_CREDENTIALS_MARKERS):
        return LoginOutcome.INVALID_CREDENTIALS
    if any(marker in html for marker in SUCCESS_MARKERS):
        return LoginOutcome.SUCCESS
    return LoginOutcome.UNRECOGNIZED
