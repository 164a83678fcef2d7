"""Redirect-aware HTTP transport for the VTOP portal.

Redirects are followed by hand rather than by httpx so that the Set-Cookie
header of every hop lands in the running cookie header. Cookie state is a
single ``Cookie:`` header string owned by the caller; the transport only
returns the merged value and never keeps cookies between calls.
"""

from datetime import datetime, timezone
from email.utils import parsedate_to_datetime
from typing import Mapping

import httpx
from pydantic import BaseModel, ConfigDict

from vtop_scraper.config import DEFAULT_USER_AGENT
from vtop_scraper.errors import TransportError
from vtop_scraper.logging import get_logger

logger = get_logger(__name__)

REDIRECT_STATUSES: frozenset[int] = frozenset({301, 302, 303, 307, 308})

# Statuses after which a redirected POST is replayed as a bodiless GET
_METHOD_CHANGING_STATUSES: frozenset[int] = frozenset({302, 303})

_DEFAULT_HEADERS = {
    "Accept": "text/html,application/xhtml+xml,application/xml;q=0.9,*/*;q=0.8",
    "Accept-Language": "en-US,en;q=0.5",
    "Upgrade-Insecure-Requests": "1",
}


class TransportResponse(BaseModel):
    """Final hop of a request: status, body and the merged cookie header."""

    model_config = ConfigDict(frozen=True)

    status_code: int
    body: str
    cookie_header: str | None = None
    url: str = ""


def join_url(base_url: str, path: str) -> str:
    """Resolve ``path`` (absolute URL, absolute path or relative) against ``base_url``."""
    return str(httpx.URL(base_url).join(path))


def parse_cookie_header(header: str | None) -> dict[str, str]:
    """Split a ``name=value; name2=value2`` header into an ordered dict."""
    cookies: dict[str, str] = {}
    if not header:
        return cookies
    for pair in header.split(";"):
        name, sep, value = pair.strip().partition("=")
        if sep and name:
            cookies[name] = value
    return cookies


def _is_expired(attributes: list[str]) -> bool:
    """True when Set-Cookie attributes tell the client to delete the cookie."""
    for attribute in attributes:
        key, _, value = attribute.strip().partition("=")
        key = key.lower()
        if key == "max-age":
            try:
                # Max-Age wins over Expires
                return int(value.strip()) <= 0
            except ValueError:
                continue
    for attribute in attributes:
        key, _, value = attribute.strip().partition("=")
        if key.lower() == "expires":
            try:
                expires = parsedate_to_datetime(value.strip())
            except (TypeError, ValueError):
                return False
            if expires.tzinfo is None:
                expires = expires.replace(tzinfo=timezone.utc)
            return expires <= datetime.now(timezone.utc)
    return False


def merge_cookie_header(current: str | None, set_cookie_values: list[str]) -> str | None:
    """Fold Set-Cookie values into a Cookie header.

    A cookie whose name already exists is overwritten in place; unrelated
    cookies are kept. A Set-Cookie with ``Max-Age<=0`` or a past ``Expires``
    removes the cookie. Other attributes (Path, HttpOnly...) are dropped.

    Args:
        current: Existing Cookie header, or None.
        set_cookie_values: Raw Set-Cookie header values in arrival order.

    Returns:
        The merged header, or None if there are no cookies at all.
    """
    cookies = parse_cookie_header(current)
    for raw in set_cookie_values:
        pair, *attributes = raw.split(";")
        name, sep, value = pair.strip().partition("=")
        if not (sep and name):
            continue
        if _is_expired(attributes):
            cookies.pop(name, None)
        else:
            cookies[name] = value
    if not cookies:
        return None
    return "; ".join(f"{name}={value}" for name, value in cookies.items())


class HttpTransport:
    """GET/POST executor that follows redirects and accumulates cookies.

    The portal's TLS certificate is known to be broken, so verification is
    relaxed for ``insecure_host`` only. Every other host, subdomains
    included, goes through a verifying client.
    """

    def __init__(
        self,
        insecure_host: str | None = None,
        *,
        user_agent: str = DEFAULT_USER_AGENT,
        max_redirects: int = 10,
        timeout: float = 30.0,
        http_transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        """Initialize HttpTransport.

        Args:
            insecure_host: Host whose certificate errors are tolerated.
            user_agent: User-Agent header for every request.
            max_redirects: Redirect hops followed before giving up.
            timeout: Default per-request timeout in seconds.
            http_transport: Optional httpx transport (tests pass a MockTransport).
        """
        self.insecure_host = insecure_host.lower() if insecure_host else None
        self.max_redirects = max_redirects
        self.timeout = timeout

        headers = {"User-Agent": user_agent, **_DEFAULT_HEADERS}
        self._secure = httpx.AsyncClient(
            headers=headers, timeout=timeout, transport=http_transport
        )
        self._insecure = httpx.AsyncClient(
            headers=headers, timeout=timeout, verify=False, transport=http_transport
        )

    def _client_for(self, url: httpx.URL) -> httpx.AsyncClient:
        if self.insecure_host and url.host.lower() == self.insecure_host:
            return self._insecure
        return self._secure

    async def execute(
        self,
        method: str,
        url: str,
        *,
        form: Mapping[str, str] | None = None,
        multipart: Mapping[str, str] | None = None,
        cookie_header: str | None = None,
        timeout: float | None = None,
    ) -> TransportResponse:
        """Send a request, following redirects by hand.

        Args:
            method: "GET" or "POST".
            url: Absolute URL.
            form: Fields sent form-urlencoded.
            multipart: Fields sent as multipart/form-data.
            cookie_header: Cookie header to start from.
            timeout: Per-hop timeout override in seconds.

        Returns:
            TransportResponse for the final hop, with the merged cookie header.

        Raises:
            TransportError: Network error, timeout, or more than
                ``max_redirects`` redirects.
        """
        current_url = httpx.URL(url)
        current_method = method.upper()
        cookies = cookie_header
        hop_timeout = timeout if timeout is not None else self.timeout

        for hop in range(self.max_redirects + 1):
            client = self._client_for(current_url)
            request_kwargs: dict = {}
            if current_method == "POST":
                if multipart is not None:
                    # (None, value) makes httpx emit a plain field, no filename
                    request_kwargs["files"] = {
                        name: (None, value) for name, value in multipart.items()
                    }
                else:
                    request_kwargs["data"] = dict(form or {})
            headers = {"Cookie": cookies} if cookies else {}

            try:
                response = await client.request(
                    current_method,
                    current_url,
                    headers=headers,
                    follow_redirects=False,
                    timeout=hop_timeout,
                    **request_kwargs,
                )
            except httpx.TimeoutException as e:
                logger.warning("http_timeout", url=str(current_url), hop=hop)
                raise TransportError(f"Request to {current_url} timed out") from e
            except httpx.HTTPError as e:
                logger.warning(
                    "http_error", url=str(current_url), error=str(e), hop=hop
                )
                raise TransportError(f"Request to {current_url} failed: {e}") from e
            finally:
                # Cookie state lives in the header string, not the client jar
                client.cookies.clear()

            cookies = merge_cookie_header(
                cookies, response.headers.get_list("set-cookie")
            )

            location = response.headers.get("location")
            if response.status_code in REDIRECT_STATUSES and location:
                logger.debug(
                    "http_redirect",
                    status=response.status_code,
                    url=str(current_url),
                    location=location,
                )
                current_url = current_url.join(location)
                if response.status_code in _METHOD_CHANGING_STATUSES:
                    current_method = "GET"
                continue

            logger.debug(
                "http_response",
                method=current_method,
                url=str(current_url),
                status=response.status_code,
                hops=hop,
                length=len(response.text),
            )
            return TransportResponse(
                status_code=response.status_code,
                body=response.text,
                cookie_header=cookies,
                url=str(current_url),
            )

        raise TransportError(
            f"Exceeded {self.max_redirects} redirects starting at {url}"
        )

    async def aclose(self) -> None:
        await self._secure.aclose()
        await self._insecure.aclose()
