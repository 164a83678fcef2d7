"""Error hierarchy for VTOP login and scraping retry classification.

This hierarchy lets the login loop (and tenacity retry decorators in callers)
tell transient failures (should retry) from permanent failures (should not).

Example usage with tenacity:
    @retry(retry=retry_if_exception_type(TransientError), stop=stop_after_attempt(3))
    async def fetch(client: VtopClient, semester_id: str):
        ...
"""


class ScrapingError(Exception):
    """Base exception for all VTOP client errors.

    Every error carries a stable ``kind`` string and a human-readable ``message``
    so UI code can surface a structured failure instead of a traceback.
    """

    kind = "scraping_error"

    def __init__(self, message: str = "") -> None:
        super().__init__(message)
        self.message = message or self.__class__.__doc__.strip().splitlines()[0]

    def __str__(self) -> str:
        return self.message


class TransientError(ScrapingError):
    """Temporary failure that may succeed on retry.

    Examples: network timeouts, a rejected captcha, a solver outage.
    """

    kind = "transient_error"


class TransportError(TransientError):
    """Network error, timeout or redirect bound exceeded."""

    kind = "transport_error"


class CaptchaSolveFailure(TransientError):
    """Captcha solver returned no answer."""

    kind = "captcha_solve_failure"


class InvalidCaptcha(TransientError):
    """Portal rejected the solved captcha text."""

    kind = "invalid_captcha"


class PermanentError(ScrapingError):
    """Failure that won't succeed on retry.

    Examples: a structural page change, exhausted retry budget.
    """

    kind = "permanent_error"


class CaptchaUnavailable(PermanentError):
    """No captcha image found after reloading the login form."""

    kind = "captcha_unavailable"


class UnexpectedLoginResponse(PermanentError):
    """Login response matched neither success nor a known failure."""

    kind = "unexpected_login_response"


class LoginRetriesExhausted(PermanentError):
    """Login did not succeed within the attempt budget."""

    kind = "login_retries_exhausted"


class AuthenticationError(PermanentError):
    """Session expired or invalid credentials - need re-authentication.

    Requires human intervention or a fresh login, cannot be fixed by retry.
    """

    kind = "authentication_error"


class InvalidCredentials(AuthenticationError):
    """Portal rejected the username or password."""

    kind = "invalid_credentials"


class NotAuthenticated(AuthenticationError):
    """No authenticated session; log in first."""

    kind = "not_authenticated"


class SessionExpired(AuthenticationError):
    """Portal answered with its login page; the session has expired."""

    kind = "session_expired"


class LoginCancelled(ScrapingError):
    """Login was cancelled by the caller."""

    kind = "login_cancelled"
