# tests/test_fetch_client.py
from __future__ import annotations

import asyncio

import httpx
import pytest
import respx

from src.exceptions import ErrorKind, FetchTimeoutError, NetworkError
from src.fetch.client import RedirectingFetcher
from src.fetch.cookies import CookieJar

BASE = "https://movie.douban.test"
HEADERS = {"User-Agent": "pytest", "Accept": "text/html"}


def _redirect(location: str, cookie: str | None = None, status: int = 302) -> httpx.Response:
    headers = [("Location", location)]
    if cookie:
        headers.append(("Set-Cookie", cookie))
    return httpx.Response(status, headers=headers)


async def _fetch(url: str, **kwargs):
    async with RedirectingFetcher(max_redirects=kwargs.pop("max_redirects", 3)) as fetcher:
        return await fetcher.fetch_following_redirects(url, HEADERS, **kwargs)


# ------------------------------ redirects + cookies -----------------------------------


@respx.mock
def test_three_hop_chain_accumulates_every_cookie():
    respx.get(f"{BASE}/a").mock(return_value=_redirect("/b", "c1=one; Path=/"))
    respx.get(f"{BASE}/b").mock(return_value=_redirect("/c", "c2=two; Path=/"))
    respx.get(f"{BASE}/c").mock(return_value=_redirect(f"{BASE}/final", "c3=three; HttpOnly"))
    final = respx.get(f"{BASE}/final").mock(return_value=httpx.Response(200, text="<html>ok</html>"))

    ctx = asyncio.run(_fetch(f"{BASE}/a"))

    assert ctx.status == 200
    assert ctx.current_url == f"{BASE}/final"
    assert ctx.text == "<html>ok</html>"
    assert dict(ctx.cookie_jar.items()) == {"c1": "one", "c2": "two", "c3": "three"}

    sent = final.calls.last.request.headers
    assert sent["cookie"] == "c1=one; c2=two; c3=three"
    assert sent["referer"] == f"{BASE}/c"


@respx.mock
def test_relative_location_resolves_against_current_url():
    respx.get(f"{BASE}/dir/page").mock(return_value=_redirect("next", status=301))
    hit = respx.get(f"{BASE}/dir/next").mock(return_value=httpx.Response(200, text="x"))

    ctx = asyncio.run(_fetch(f"{BASE}/dir/page"))
    assert ctx.current_url == f"{BASE}/dir/next"
    assert hit.called


@respx.mock
def test_redirects_stop_after_the_cap():
    for i in range(6):
        respx.get(f"{BASE}/r{i}").mock(return_value=_redirect(f"/r{i + 1}"))

    ctx = asyncio.run(_fetch(f"{BASE}/r0"))

    # initial request + 3 hops; the 3rd hop's redirect response is returned as-is
    assert ctx.status == 302
    assert ctx.current_url == f"{BASE}/r3"
    assert len(respx.calls) == 4


@respx.mock
def test_redirect_without_location_is_returned():
    respx.get(f"{BASE}/x").mock(return_value=httpx.Response(302))
    ctx = asyncio.run(_fetch(f"{BASE}/x"))
    assert ctx.status == 302
    assert ctx.current_url == f"{BASE}/x"


@respx.mock
def test_non_2xx_final_status_is_returned_not_raised():
    respx.get(f"{BASE}/gone").mock(return_value=httpx.Response(404, text="nope"))
    ctx = asyncio.run(_fetch(f"{BASE}/gone"))
    assert ctx.status == 404
    assert ctx.ok is False


@respx.mock
def test_seed_jar_is_sent_and_not_mutated():
    route = respx.get(f"{BASE}/p").mock(
        return_value=httpx.Response(200, headers=[("Set-Cookie", "new=1")], text="")
    )
    seed = CookieJar({"bid": "abc"})

    ctx = asyncio.run(_fetch(f"{BASE}/p", cookie_jar=seed))

    assert route.calls.last.request.headers["cookie"] == "bid=abc"
    assert ctx.cookie_jar.to_header() == "bid=abc; new=1"
    assert "new" not in seed


@respx.mock
def test_client_never_persists_cookies_on_its_own():
    respx.get(f"{BASE}/one").mock(
        return_value=httpx.Response(200, headers=[("Set-Cookie", "sticky=1")])
    )
    second = respx.get(f"{BASE}/two").mock(return_value=httpx.Response(200))

    async def run():
        async with RedirectingFetcher() as fetcher:
            await fetcher.fetch_following_redirects(f"{BASE}/one", HEADERS)
            await fetcher.fetch_following_redirects(f"{BASE}/two", HEADERS)

    asyncio.run(run())
    assert "cookie" not in second.calls.last.request.headers


# ------------------------------ transport errors --------------------------------------


@respx.mock
def test_timeout_maps_to_timeout_error():
    respx.get(f"{BASE}/slow").mock(side_effect=httpx.ReadTimeout)

    with pytest.raises(FetchTimeoutError) as ei:
        asyncio.run(_fetch(f"{BASE}/slow"))
    assert ei.value.kind is ErrorKind.TIMEOUT
    assert ei.value.status == 504


@respx.mock
def test_connect_error_maps_to_network_error():
    respx.get(f"{BASE}/down").mock(side_effect=httpx.ConnectError)

    with pytest.raises(NetworkError) as ei:
        asyncio.run(_fetch(f"{BASE}/down"))
    assert ei.value.kind is ErrorKind.NETWORK
    assert ei.value.status is None


@respx.mock
def test_post_sends_form_body():
    route = respx.post(f"{BASE}/c").mock(return_value=httpx.Response(200))

    async def run():
        async with RedirectingFetcher() as fetcher:
            return await fetcher.request(
                "POST",
                f"{BASE}/c",
                {"Content-Type": "application/x-www-form-urlencoded"},
                data="a=1&b=2",
            )

    resp = asyncio.run(run())
    assert resp.status_code == 200
    assert route.calls.last.request.content == b"a=1&b=2"
