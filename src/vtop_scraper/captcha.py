"""Client for the external captcha solving service."""

import base64

import httpx

from vtop_scraper.logging import get_logger

logger = get_logger(__name__)


class CaptchaSolver:
    """Sends a captcha image to the solver and returns its guess.

    The solver expects the whole data URI, ``data:image/...;base64,`` prefix
    included, re-encoded as URL-safe base64 in a JSON ``imgstring`` field. It
    answers with the captcha text as a plain-text body.
    """

    def __init__(
        self,
        url: str,
        *,
        timeout: float = 10.0,
        http_transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.url = url
        self._client = httpx.AsyncClient(timeout=timeout, transport=http_transport)

    @staticmethod
    def encode(image_data_uri: str) -> str:
        return base64.urlsafe_b64encode(image_data_uri.encode("utf-8")).decode("ascii")

    async def solve(self, image_data_uri: str) -> str | None:
        """Solve a captcha.

        Never raises: a non-200 answer, an empty body, a timeout or a network
        error all yield None, which the login loop reads as "try another
        captcha".

        Args:
            image_data_uri: ``data:image/...;base64,...`` string from the login form.

        Returns:
            The predicted captcha text, or None.
        """
        try:
            response = await self._client.post(
                self.url, json={"imgstring": self.encode(image_data_uri)}
            )
        except httpx.HTTPError as e:
            logger.warning("captcha_solver_unreachable", error=str(e))
            return None

        if response.status_code != 200:
            logger.warning("captcha_solver_rejected", status=response.status_code)
            return None

        answer = response.text.strip()
        if not answer:
            logger.warning("captcha_solver_empty_answer")
            return None

        logger.debug("captcha_solved", length=len(answer))
        return answer

    async def aclose(self) -> None:
        await self._client.aclose()
