"""Saved-session persistence for VTOP.

SessionStore writes the (cookie, CSRF token, subject id) triple to disk after
a successful login and hands it back on later runs so the client can skip the
captcha loop while the portal session is still alive. Credentials are never
stored.
"""

from datetime import datetime, timedelta, timezone
from pathlib import Path

from pydantic import ValidationError

from vtop_scraper.logging import get_logger
from vtop_scraper.models import SavedSession

logger = get_logger(__name__)


class SessionStore:
    """JSON file store for the last VTOP session."""

    def __init__(
        self, state_dir: str = "data/state", max_session_age_minutes: int = 30
    ) -> None:
        """Initialize SessionStore.

        Args:
            state_dir: Directory to store the session file.
            max_session_age_minutes: Age after which a saved session is stale.
        """
        self.state_dir = Path(state_dir)
        self.state_file = self.state_dir / "vtop_session.json"
        self.max_session_age_minutes = max_session_age_minutes

        logger.debug(
            "session_store_initialized",
            state_file=str(self.state_file),
            max_age_minutes=max_session_age_minutes,
        )

    def save(self, session: SavedSession) -> None:
        self.state_dir.mkdir(parents=True, exist_ok=True)
        self.state_file.write_text(session.model_dump_json(), encoding="utf-8")
        logger.info("session_saved", path=str(self.state_file))

    def load(self) -> SavedSession | None:
        """Read the saved session, or None if missing or unreadable."""
        if not self.state_file.exists():
            return None
        try:
            return SavedSession.model_validate_json(
                self.state_file.read_text(encoding="utf-8")
            )
        except (ValidationError, UnicodeDecodeError, OSError) as e:
            logger.warning(
                "session_file_invalid",
                path=str(self.state_file),
                error_type=type(e).__name__,
            )
            return None

    def is_session_valid(self, now: datetime | None = None) -> bool:
        """Check if a saved session exists and is still fresh.

        Args:
            now: Reference time (defaults to the current UTC time).

        Returns:
            True if the session was saved less than max_session_age_minutes ago.
        """
        session = self.load()
        if session is None:
            logger.debug("session_check", result="missing")
            return False

        now = now or datetime.now(timezone.utc)
        age = now - session.saved_at
        if age > timedelta(minutes=self.max_session_age_minutes):
            logger.info(
                "session_check",
                result="expired",
                age_minutes=round(age.total_seconds() / 60, 1),
                max_minutes=self.max_session_age_minutes,
            )
            return False

        logger.debug(
            "session_check", result="valid", age_minutes=round(age.total_seconds() / 60, 1)
        )
        return True

    def load_valid(self, now: datetime | None = None) -> SavedSession | None:
        """The saved session if it is still fresh, else None."""
        if not self.is_session_valid(now):
            return None
        return self.load()

    def clear(self) -> None:
        """Delete the saved session file."""
        if self.state_file.exists():
            self.state_file.unlink()
            logger.info("session_cleared", path=str(self.state_file))
        else:
            logger.debug("session_clear_skipped", reason="file_not_found")
