"""VTOP client configuration loaded from environment variables."""

from pydantic import Field
from pydantic_settings import BaseSettings

DEFAULT_USER_AGENT = (
    "Mozilla/5.0 (Linux; U; Linux x86_64; en-US) Gecko/20100101 Firefox/130.5"
)


class VtopConfig(BaseSettings):
    """VTOP client configuration loaded from environment variables.

    Settings are read from ``VTOP_*`` environment variables with sensible
    defaults. For local development, create a .env file in the project root.
    """

    # Portal (server-rendered HTML, no API exists)
    base_url: str = Field(
        default="https://vtop.vitap.ac.in",
        description="VTOP portal origin",
    )
    username: str = Field(
        default="",
        description="VTOP login id",
    )
    password: str = Field(
        default="",
        description="VTOP password",
    )
    user_agent: str = Field(
        default=DEFAULT_USER_AGENT,
        description="User-Agent header sent to the portal",
    )

    # Captcha solver
    captcha_solver_url: str = Field(
        default="https://cap.va.synaptic.gg/captcha",
        description="External captcha solving endpoint",
    )
    captcha_timeout: float = Field(
        default=10.0,
        description="Seconds to wait for the captcha solver",
    )

    # Login loop bounds
    max_login_attempts: int = Field(
        default=40,
        description="Captcha rounds per login before giving up",
    )
    max_captcha_reloads: int = Field(
        default=20,
        description="Prelogin setup reloads per round while waiting for a captcha",
    )

    # Transport
    max_redirects: int = Field(
        default=10,
        description="Redirect hops followed per request",
    )
    request_timeout: float = Field(
        default=30.0,
        description="Seconds to wait for a portal response",
    )

    # Paths
    state_dir: str = Field(
        default="data/state",
        description="Directory for the saved VTOP session",
    )

    # Session settings
    max_session_age_minutes: int = Field(
        default=30,
        description="Maximum age of a saved session before logging in again",
    )

    # Logging
    log_json: bool = Field(
        default=False,
        description="Output logs in JSON format (for production)",
    )
    log_level: str = Field(
        default="INFO",
        description="Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)",
    )

    model_config = {
        "env_prefix": "VTOP_",
        "case_sensitive": False,
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "extra": "ignore",
    }


# Singleton pattern
_config: VtopConfig | None = None


def get_config() -> VtopConfig:
    """Get the VTOP configuration singleton.

    Returns:
        VtopConfig: VTOP configuration instance
    """
    global _config
    if _config is None:
        _config = VtopConfig()
    return _config
