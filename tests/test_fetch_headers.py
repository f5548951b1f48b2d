# tests/test_fetch_headers.py
from __future__ import annotations

from src.fetch import headers as headers_mod
from src.fetch.headers import BROWSER_PROFILES, build_request_headers

CHROME = next(p for p in BROWSER_PROFILES if p.browser == "chrome")
FIREFOX = next(p for p in BROWSER_PROFILES if p.browser == "firefox")


def test_navigation_headers_point_at_target_origin():
    h = build_request_headers("https://movie.douban.com/subject/1/", profile=CHROME)
    assert h["Referer"] == "https://movie.douban.com/"
    assert h["Origin"] == "https://movie.douban.com"
    assert h["Accept-Encoding"] == "gzip, deflate, br"
    assert h["Sec-Fetch-Mode"] == "navigate"
    assert h["User-Agent"] == CHROME.user_agent


def test_client_hints_match_the_user_agent():
    h = build_request_headers("https://movie.douban.com/", profile=CHROME)
    assert f'v="{CHROME.version}"' in h["Sec-CH-UA"]
    assert h["Sec-CH-UA-Platform"] == f'"{CHROME.platform}"'


def test_firefox_profile_sends_no_client_hints():
    h = build_request_headers("https://movie.douban.com/", profile=FIREFOX)
    assert not any(k.lower().startswith("sec-ch-ua") for k in h)


def test_caller_headers_override_defaults_case_insensitively():
    h = build_request_headers(
        "https://movie.douban.com/",
        {"accept-language": "en-US", "X-Trace": "1"},
        profile=CHROME,
    )
    assert h["accept-language"] == "en-US"
    assert "Accept-Language" not in h
    assert h["X-Trace"] == "1"


def test_generated_identity_wins_over_caller_identity():
    h = build_request_headers(
        "https://movie.douban.com/", {"user-agent": "curl/8.0"}, profile=CHROME
    )
    assert h["User-Agent"] == CHROME.user_agent
    assert "user-agent" not in h


def test_keep_identity_preserves_caller_user_agent():
    h = build_request_headers(
        "https://movie.douban.com/",
        {"User-Agent": "curl/8.0"},
        keep_identity=True,
        profile=CHROME,
    )
    assert h["User-Agent"] == "curl/8.0"


def test_random_profile_comes_from_the_pool(monkeypatch):
    monkeypatch.setattr(headers_mod.random, "choice", lambda seq: seq[-1])
    assert headers_mod.random_profile() is BROWSER_PROFILES[-1]
