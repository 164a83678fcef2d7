import httpx
import pytest

from vtop_scraper.errors import TransportError
from vtop_scraper.transport import (
    HttpTransport,
    join_url,
    merge_cookie_header,
    parse_cookie_header,
)


def make_transport(handler, **kwargs) -> HttpTransport:
    return HttpTransport("vtop.test", http_transport=httpx.MockTransport(handler), **kwargs)


class TestCookieMerge:
    def test_latest_value_wins_without_duplicates(self):
        header = merge_cookie_header(None, ["JSESSIONID=one; Path=/vtop; HttpOnly"])
        header = merge_cookie_header(header, ["SERVERID=a", "JSESSIONID=two; Secure"])
        header = merge_cookie_header(header, ["loginUserType=student; Path=/"])

        cookies = parse_cookie_header(header)
        assert cookies == {
            "JSESSIONID": "two",
            "SERVERID": "a",
            "loginUserType": "student",
        }
        assert header.count("JSESSIONID=") == 1

    def test_unrelated_cookies_are_preserved(self):
        header = merge_cookie_header("a=1; b=2", ["b=3"])
        assert header == "a=1; b=3"

    @pytest.mark.parametrize(
        "deletion",
        [
            "SERVERID=; Max-Age=0; Path=/",
            "SERVERID=gone; max-age=-1",
            "SERVERID=; Expires=Thu, 01 Jan 1970 00:00:00 GMT; Path=/",
        ],
    )
    def test_expiring_set_cookie_removes_cookie(self, deletion):
        header = merge_cookie_header("JSESSIONID=abc; SERVERID=s1", [deletion])

        assert header == "JSESSIONID=abc"

    def test_future_expiry_and_positive_max_age_are_kept(self):
        header = merge_cookie_header(
            None,
            [
                "a=1; Expires=Fri, 31 Dec 2100 23:59:59 GMT",
                "b=2; Max-Age=3600",
                "c=3; Max-Age=60; Expires=Thu, 01 Jan 1970 00:00:00 GMT",
            ],
        )

        assert header == "a=1; b=2; c=3"

    def test_deleting_last_cookie_gives_none(self):
        assert merge_cookie_header("a=1", ["a=; Max-Age=0"]) is None

    def test_no_cookies_gives_none(self):
        assert merge_cookie_header(None, []) is None
        assert merge_cookie_header("", ["garbage-without-equals"]) is None

    def test_parse_ignores_malformed_pairs(self):
        assert parse_cookie_header("a=1; junk; =x; b=") == {"a": "1", "b": ""}


def test_join_url_resolves_relative_and_absolute_paths():
    assert join_url("https://vtop.test", "/vtop/doLogin") == "https://vtop.test/vtop/doLogin"
    assert join_url("https://vtop.test/vtop/", "login") == "https://vtop.test/vtop/login"
    assert join_url("https://vtop.test", "https://other.test/x") == "https://other.test/x"


async def test_redirect_chain_collects_every_hop_cookie():
    seen: list[httpx.Request] = []
    hops = {
        "/start": ("/hop2", "a=1; Path=/"),
        "/hop2": ("/hop3", "b=2; Path=/"),
        "/hop3": ("/final", "c=3; HttpOnly"),
    }

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        if request.url.path in hops:
            location, cookie = hops[request.url.path]
            return httpx.Response(302, headers=[("location", location), ("set-cookie", cookie)])
        return httpx.Response(200, text="final body")

    transport = make_transport(handler)
    response = await transport.execute("POST", "https://vtop.test/start", form={"x": "1"})
    await transport.aclose()

    assert response.status_code == 200
    assert response.body == "final body"
    assert parse_cookie_header(response.cookie_header) == {"a": "1", "b": "2", "c": "3"}
    assert response.url == "https://vtop.test/final"
    assert [r.url.path for r in seen] == ["/start", "/hop2", "/hop3", "/final"]
    # Cookies from earlier hops are replayed on later ones
    assert seen[-1].headers["cookie"] == "a=1; b=2; c=3"


async def test_post_becomes_get_after_302_but_not_after_307():
    methods: list[tuple[str, str]] = []

    def handler(request: httpx.Request) -> httpx.Response:
        methods.append((request.url.path, request.method))
        if request.url.path == "/a":
            return httpx.Response(307, headers={"location": "/b"})
        if request.url.path == "/b":
            return httpx.Response(302, headers={"location": "/c"})
        return httpx.Response(200, text="ok")

    transport = make_transport(handler)
    await transport.execute("POST", "https://vtop.test/a", form={"k": "v"})
    await transport.aclose()

    assert methods == [("/a", "POST"), ("/b", "POST"), ("/c", "GET")]


async def test_redirect_bound_raises_transport_error():
    calls = []

    def handler(request: httpx.Request) -> httpx.Response:
        calls.append(request)
        return httpx.Response(302, headers={"location": "/loop"})

    transport = make_transport(handler, max_redirects=4)
    with pytest.raises(TransportError):
        await transport.execute("GET", "https://vtop.test/loop")
    await transport.aclose()

    assert len(calls) == 5


async def test_starting_cookie_header_is_sent_and_kept():
    def handler(request: httpx.Request) -> httpx.Response:
        assert request.headers["cookie"] == "JSESSIONID=s1"
        return httpx.Response(200, text="ok", headers={"set-cookie": "SERVERID=x"})

    transport = make_transport(handler)
    response = await transport.execute(
        "GET", "https://vtop.test/page", cookie_header="JSESSIONID=s1"
    )
    await transport.aclose()

    assert response.cookie_header == "JSESSIONID=s1; SERVERID=x"


async def test_client_jar_does_not_leak_between_calls():
    cookie_headers: list[str | None] = []

    def handler(request: httpx.Request) -> httpx.Response:
        cookie_headers.append(request.headers.get("cookie"))
        return httpx.Response(200, text="ok", headers={"set-cookie": "JSESSIONID=new"})

    transport = make_transport(handler)
    await transport.execute("GET", "https://vtop.test/one")
    await transport.execute("GET", "https://vtop.test/two")
    await transport.aclose()

    assert cookie_headers == [None, None]


async def test_multipart_fields_are_sent_as_form_data():
    captured: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        captured.append(request)
        return httpx.Response(200, text="ok")

    transport = make_transport(handler)
    await transport.execute(
        "POST",
        "https://vtop.test/vtop/examinations/doStudentMarkView",
        multipart={"semesterSubId": "AP2024252", "_csrf": "tok"},
    )
    await transport.aclose()

    request = captured[0]
    assert request.headers["content-type"].startswith("multipart/form-data")
    assert b'name="semesterSubId"' in request.content
    assert b"AP2024252" in request.content
    assert b"filename" not in request.content


async def test_network_error_becomes_transport_error():
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    transport = make_transport(handler)
    with pytest.raises(TransportError) as excinfo:
        await transport.execute("GET", "https://vtop.test/")
    await transport.aclose()

    assert isinstance(excinfo.value.__cause__, httpx.ConnectError)


async def test_timeout_becomes_transport_error():
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ReadTimeout("too slow", request=request)

    transport = make_transport(handler)
    with pytest.raises(TransportError, match="timed out"):
        await transport.execute("GET", "https://vtop.test/")
    await transport.aclose()


class TestTlsScope:
    def test_relaxed_verification_only_for_exact_portal_host(self):
        transport = HttpTransport("vtop.vitap.ac.in")

        assert transport._client_for(httpx.URL("https://vtop.vitap.ac.in/vtop")) is transport._insecure
        assert transport._client_for(httpx.URL("https://cdn.vtop.vitap.ac.in/x")) is transport._secure
        assert transport._client_for(httpx.URL("https://cap.va.synaptic.gg/captcha")) is transport._secure
        assert (
            transport._client_for(httpx.URL("https://vtop.vitap.ac.in.example.com/"))
            is transport._secure
        )

    def test_no_host_means_everything_verified(self):
        transport = HttpTransport()
        assert transport._client_for(httpx.URL("https://vtop.vitap.ac.in/")) is transport._secure
