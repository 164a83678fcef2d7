"""VTOP session state and the captcha login state machine.

SessionManager owns the SessionState (cookie header, CSRF token, subject id,
authenticated flag) and is the only code that mutates it. Login walks:

    Idle -> LoadingInitialPage -> AwaitingCaptcha -> SolvingCaptcha
         -> SubmittingCredentials -> Authenticated | Failed

A rejected or unsolvable captcha sends the machine back to AwaitingCaptcha
without reloading the landing page. Bad credentials and unrecognized
responses fail fast.
"""

import asyncio
from enum import Enum

from pydantic import BaseModel, ConfigDict
from tenacity import AsyncRetrying, retry_if_exception_type, stop_after_attempt

from vtop_scraper.captcha import CaptchaSolver
from vtop_scraper.errors import (
    CaptchaSolveFailure,
    CaptchaUnavailable,
    InvalidCaptcha,
    InvalidCredentials,
    LoginCancelled,
    LoginRetriesExhausted,
    NotAuthenticated,
    PermanentError,
    TransientError,
    TransportError,
    UnexpectedLoginResponse,
)
from vtop_scraper.logging import get_logger
from vtop_scraper.models import SavedSession
from vtop_scraper.pages.html import clean_text
from vtop_scraper.pages.login import (
    LoginOutcome,
    classify_login_response,
    extract_alert,
    extract_captcha_image,
    extract_csrf_token,
    extract_form_action,
    extract_subject_id,
)
from vtop_scraper.transport import HttpTransport, TransportResponse, join_url

logger = get_logger(__name__)


class LoginPhase(str, Enum):
    IDLE = "idle"
    LOADING_INITIAL_PAGE = "loading_initial_page"
    AWAITING_CAPTCHA = "awaiting_captcha"
    SOLVING_CAPTCHA = "solving_captcha"
    SUBMITTING_CREDENTIALS = "submitting_credentials"
    AUTHENTICATED = "authenticated"
    FAILED = "failed"


class SessionSnapshot(BaseModel):
    """Consistent read-only copy of the session taken at the start of a fetch."""

    model_config = ConfigDict(frozen=True)

    cookie_header: str | None
    csrf_token: str | None
    subject_id: str | None
    authenticated: bool


class SessionState(BaseModel):
    """Mutable session fields; owned by SessionManager."""

    cookie_header: str | None = None
    csrf_token: str | None = None
    subject_id: str | None = None
    authenticated: bool = False

    def reset(self) -> None:
        self.cookie_header = None
        self.csrf_token = None
        self.subject_id = None
        self.authenticated = False

    def snapshot(self) -> SessionSnapshot:
        return SessionSnapshot(**self.model_dump())


class LoginAttempt(BaseModel):
    """Captcha-bearing login form from one prelogin round."""

    model_config = ConfigDict(frozen=True)

    page_html: str
    captcha_image: str
    form_action: str | None = None


class _CaptchaNotRendered(Exception):
    """Prelogin setup answered without a captcha image yet."""


class SessionManager:
    """Drives the VTOP login flow and holds the resulting session.

    Transient failures (network, unsolvable or rejected captcha) are retried
    inside the attempt budget; permanent ones propagate immediately.
    """

    LANDING_PATH = "/vtop/open/page"
    PRELOGIN_PATH = "/vtop/prelogin/setup"
    DEFAULT_LOGIN_PATH = "/vtop/doLogin"
    PRELOGIN_FLAG = "VTOP"

    def __init__(
        self,
        transport: HttpTransport,
        solver: CaptchaSolver,
        *,
        base_url: str,
        max_login_attempts: int = 40,
        max_captcha_reloads: int = 20,
    ) -> None:
        """Initialize SessionManager.

        Args:
            transport: Redirect-aware HTTP transport.
            solver: Captcha solver client.
            base_url: Portal origin, e.g. https://vtop.vitap.ac.in.
            max_login_attempts: Captcha rounds before giving up.
            max_captcha_reloads: Prelogin reloads per round while no captcha shows.
        """
        self.transport = transport
        self.solver = solver
        self.base_url = base_url
        self.max_login_attempts = max_login_attempts
        self.max_captcha_reloads = max_captcha_reloads
        self.state = SessionState()
        self.phase = LoginPhase.IDLE

    @property
    def is_authenticated(self) -> bool:
        return self.state.authenticated

    def _set_phase(self, phase: LoginPhase) -> None:
        if phase != self.phase:
            logger.debug("login_phase", previous=self.phase.value, phase=phase.value)
        self.phase = phase

    async def request(
        self,
        method: str,
        path: str,
        *,
        form: dict[str, str] | None = None,
        multipart: dict[str, str] | None = None,
        cookie_header: str | None = None,
    ) -> TransportResponse:
        """Send a portal request and fold its cookies into the session.

        ``cookie_header`` overrides the live cookie header (fetches pass the
        one from their snapshot).
        """
        response = await self.transport.execute(
            method,
            join_url(self.base_url, path),
            form=form,
            multipart=multipart,
            cookie_header=cookie_header if cookie_header is not None else self.state.cookie_header,
        )
        if response.cookie_header:
            self.state.cookie_header = response.cookie_header
        return response

    async def login(
        self,
        username: str,
        password: str,
        *,
        cancel: asyncio.Event | None = None,
    ) -> SavedSession:
        """Log in, retrying captcha rounds up to ``max_login_attempts``.

        Args:
            username: VTOP login id.
            password: VTOP password.
            cancel: Optional event; when set, login stops before the next attempt.

        Returns:
            SavedSession triple for the persistence collaborator.

        Raises:
            InvalidCredentials: Portal rejected the username/password.
            CaptchaUnavailable: No captcha image after all prelogin reloads.
            UnexpectedLoginResponse: Unrecognized page during login.
            LoginRetriesExhausted: Attempt budget used up by transient failures.
            LoginCancelled: ``cancel`` was set.
        """
        self.state.reset()
        self._set_phase(LoginPhase.IDLE)
        last_error: TransientError | None = None

        for attempt in range(1, self.max_login_attempts + 1):
            if cancel is not None and cancel.is_set():
                self._set_phase(LoginPhase.FAILED)
                logger.info("login_cancelled", attempt=attempt)
                raise LoginCancelled(f"Login cancelled before attempt {attempt}")

            logger.debug("login_attempt_started", attempt=attempt)
            try:
                if self.state.csrf_token is None:
                    await self._load_landing_page()
                login_attempt = await self._load_captcha()

                self._set_phase(LoginPhase.SOLVING_CAPTCHA)
                answer = await self.solver.solve(login_attempt.captcha_image)
                if answer is None:
                    raise CaptchaSolveFailure("Captcha solver returned no answer")

                await self._submit_credentials(
                    username, password, answer, login_attempt.form_action
                )
            except TransientError as e:
                last_error = e
                logger.info(
                    "login_attempt_failed",
                    attempt=attempt,
                    kind=e.kind,
                    error=e.message,
                )
                continue
            except PermanentError as e:
                self._set_phase(LoginPhase.FAILED)
                logger.warning("login_failed", attempt=attempt, kind=e.kind, error=e.message)
                raise

            self._set_phase(LoginPhase.AUTHENTICATED)
            logger.info(
                "login_succeeded", attempt=attempt, subject_id=self.state.subject_id
            )
            return self.saved_session()

        self._set_phase(LoginPhase.FAILED)
        logger.warning("login_retries_exhausted", attempts=self.max_login_attempts)
        raise LoginRetriesExhausted(
            f"Login failed after {self.max_login_attempts} attempts"
        ) from last_error

    async def _load_landing_page(self) -> None:
        """GET the landing page for session cookies and the first CSRF token."""
        self._set_phase(LoginPhase.LOADING_INITIAL_PAGE)
        response = await self.request("GET", self.LANDING_PATH)
        if response.status_code >= 400:
            raise TransportError(f"Landing page returned HTTP {response.status_code}")

        token = extract_csrf_token(response.body)
        if token is None:
            # The landing page is stable; a missing token means the markup changed
            raise UnexpectedLoginResponse("CSRF token not found on the landing page")
        self.state.csrf_token = token
        logger.debug("landing_page_loaded", cookie=self.state.cookie_header)

    async def _load_captcha(self) -> LoginAttempt:
        """POST prelogin setup until the response carries a captcha image."""
        self._set_phase(LoginPhase.AWAITING_CAPTCHA)
        try:
            async for retry_state in AsyncRetrying(
                stop=stop_after_attempt(self.max_captcha_reloads),
                retry=retry_if_exception_type(_CaptchaNotRendered),
                reraise=True,
            ):
                with retry_state:
                    login_attempt = await self._fetch_login_form()
        except _CaptchaNotRendered as e:
            raise CaptchaUnavailable(
                f"Captcha not found after {self.max_captcha_reloads} reloads"
            ) from e
        return login_attempt

    async def _fetch_login_form(self) -> LoginAttempt:
        response = await self.request(
            "POST",
            self.PRELOGIN_PATH,
            form={"_csrf": self.state.csrf_token or "", "flag": self.PRELOGIN_FLAG},
        )
        if response.status_code >= 400:
            raise TransportError(f"Prelogin setup returned HTTP {response.status_code}")

        image = extract_captcha_image(response.body)
        if image is None:
            logger.debug("captcha_not_rendered", length=len(response.body))
            raise _CaptchaNotRendered()

        # The form may carry a refreshed token
        token = extract_csrf_token(response.body)
        if token:
            self.state.csrf_token = token
        return LoginAttempt(
            page_html=response.body,
            captcha_image=image,
            form_action=extract_form_action(response.body),
        )

    async def _submit_credentials(
        self, username: str, password: str, captcha: str, form_action: str | None
    ) -> None:
        self._set_phase(LoginPhase.SUBMITTING_CREDENTIALS)
        response = await self.request(
            "POST",
            form_action or self.DEFAULT_LOGIN_PATH,
            form={
                "_csrf": self.state.csrf_token or "",
                "username": username,
                "password": password,
                "captchaStr": captcha,
            },
        )
        if response.status_code >= 400:
            raise TransportError(f"Login submit returned HTTP {response.status_code}")

        outcome = classify_login_response(response.body)
        logger.debug("login_response_classified", outcome=outcome.value)

        if outcome is LoginOutcome.SUCCESS:
            token = extract_csrf_token(response.body)
            if token:
                self.state.csrf_token = token
            self.state.subject_id = extract_subject_id(response.body) or username
            self.state.authenticated = True
            return
        if outcome is LoginOutcome.INVALID_CAPTCHA:
            raise InvalidCaptcha("Portal rejected the captcha answer")
        if outcome is LoginOutcome.INVALID_CREDENTIALS:
            raise InvalidCredentials("Invalid username or password")

        detail = extract_alert(response.body) or clean_text(response.body)[:200]
        raise UnexpectedLoginResponse(
            f"Unexpected login response (HTTP {response.status_code}): {detail}"
        )

    def restore(self, saved: SavedSession) -> None:
        """Adopt a previously saved session instead of logging in."""
        self.state.cookie_header = saved.cookie_header
        self.state.csrf_token = saved.csrf_token
        self.state.subject_id = saved.subject_id
        self.state.authenticated = True
        self._set_phase(LoginPhase.AUTHENTICATED)
        logger.info("session_restored", subject_id=saved.subject_id)

    def logout(self) -> None:
        self.state.reset()
        self._set_phase(LoginPhase.IDLE)
        logger.info("session_cleared")

    def invalidate(self) -> None:
        """Mark the session expired; cookies are kept for the next login."""
        self.state.authenticated = False
        self._set_phase(LoginPhase.IDLE)
        logger.info("session_invalidated", subject_id=self.state.subject_id)

    def snapshot(self) -> SessionSnapshot:
        return self.state.snapshot()

    def require_authenticated(self) -> SessionSnapshot:
        """Snapshot of an authenticated session.

        Raises:
            NotAuthenticated: If there is no authenticated session.
        """
        snapshot = self.state.snapshot()
        if not snapshot.authenticated:
            raise NotAuthenticated("Not logged in to VTOP")
        return snapshot

    def saved_session(self) -> SavedSession:
        """Current session as the triple handed to the persistence collaborator."""
        snapshot = self.require_authenticated()
        return SavedSession(
            cookie_header=snapshot.cookie_header or "",
            csrf_token=snapshot.csrf_token or "",
            subject_id=snapshot.subject_id or "",
        )
