# src/fetch/headers.py
from __future__ import annotations

import random
from collections.abc import Mapping
from dataclasses import dataclass
from urllib.parse import urlsplit

from src import config

FETCH_ACCEPT = (
    "text/html,application/xhtml+xml,application/xml;q=0.9,"
    "image/avif,image/webp,image/apng,*/*;q=0.8"
)
FETCH_ACCEPT_ENCODING = "gzip, deflate, br"

# Headers that identify the client; they must stay mutually consistent.
IDENTITY_HEADERS = ("User-Agent", "Sec-CH-UA", "Sec-CH-UA-Mobile", "Sec-CH-UA-Platform")


@dataclass(frozen=True)
class BrowserProfile:
    user_agent: str
    browser: str  # "chrome" | "edge" | "firefox" | "safari"
    platform: str  # "Windows" | "macOS" | "Linux"
    version: str


BROWSER_PROFILES: tuple[BrowserProfile, ...] = (
    BrowserProfile(
        "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
        "(KHTML, like Gecko) Chrome/131.0.0.0 Safari/537.36",
        "chrome",
        "Windows",
        "131",
    ),
    BrowserProfile(
        "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/537.36 "
        "(KHTML, like Gecko) Chrome/131.0.0.0 Safari/537.36",
        "chrome",
        "macOS",
        "131",
    ),
    BrowserProfile(
        "Mozilla/5.0 (X11; Linux x86_64) AppleWebKit/537.36 "
        "(KHTML, like Gecko) Chrome/130.0.0.0 Safari/537.36",
        "chrome",
        "Linux",
        "130",
    ),
    BrowserProfile(
        "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
        "(KHTML, like Gecko) Chrome/131.0.0.0 Safari/537.36 Edg/131.0.0.0",
        "edge",
        "Windows",
        "131",
    ),
    BrowserProfile(
        "Mozilla/5.0 (Windows NT 10.0; Win64; x64; rv:133.0) Gecko/20100101 Firefox/133.0",
        "firefox",
        "Windows",
        "133",
    ),
    BrowserProfile(
        "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/605.1.15 "
        "(KHTML, like Gecko) Version/18.1 Safari/605.1.15",
        "safari",
        "macOS",
        "18",
    ),
)


def random_profile() -> BrowserProfile:
    return random.choice(BROWSER_PROFILES)


def sec_ch_ua_headers(profile: BrowserProfile) -> dict[str, str]:
    """Client-hint headers; only Chromium-based browsers send them."""
    if profile.browser == "chrome":
        brand = f'"Google Chrome";v="{profile.version}"'
    elif profile.browser == "edge":
        brand = f'"Microsoft Edge";v="{profile.version}"'
    else:
        return {}
    return {
        "Sec-CH-UA": f'{brand}, "Chromium";v="{profile.version}", "Not_A Brand";v="24"',
        "Sec-CH-UA-Mobile": "?0",
        "Sec-CH-UA-Platform": f'"{profile.platform}"',
    }


def origin_of(url: str) -> str:
    parts = urlsplit(url)
    return f"{parts.scheme}://{parts.netloc}"


def normalize_headers(headers: Mapping[str, str] | None) -> dict[str, str]:
    if not headers:
        return {}
    return {str(k): str(v) for k, v in headers.items()}


def remove_header(headers: dict[str, str], key: str) -> None:
    target = key.lower()
    for name in [n for n in headers if n.lower() == target]:
        del headers[name]


def build_request_headers(
    target_url: str,
    extra: Mapping[str, str] | None = None,
    *,
    keep_identity: bool = False,
    profile: BrowserProfile | None = None,
) -> dict[str, str]:
    """
    Browser-like navigation headers for target_url merged with caller overrides.

    Generated User-Agent / Sec-CH-UA* replace whatever the caller passed, so the
    UA and its client hints always describe the same browser. Pass
    keep_identity=True to send the caller's identity headers untouched.
    """
    profile = profile or random_profile()
    origin = origin_of(target_url)
    base: dict[str, str] = {
        "Accept": FETCH_ACCEPT,
        "Accept-Language": config.app_config.fetch.accept_language,
        "Accept-Encoding": FETCH_ACCEPT_ENCODING,
        "Cache-Control": "max-age=0",
        "DNT": "1",
        **sec_ch_ua_headers(profile),
        "Sec-Fetch-Dest": "document",
        "Sec-Fetch-Mode": "navigate",
        "Sec-Fetch-Site": "same-site",
        "Sec-Fetch-User": "?1",
        "Upgrade-Insecure-Requests": "1",
        "User-Agent": profile.user_agent,
        "Referer": f"{origin}/",
        "Origin": origin,
    }

    overrides = normalize_headers(extra)
    merged = dict(base)
    for name, value in overrides.items():
        remove_header(merged, name)
        merged[name] = value

    if keep_identity:
        return merged

    for name in IDENTITY_HEADERS:
        remove_header(merged, name)
        if name in base:
            merged[name] = base[name]
    return merged


__all__ = [
    "BrowserProfile",
    "BROWSER_PROFILES",
    "IDENTITY_HEADERS",
    "build_request_headers",
    "normalize_headers",
    "origin_of",
    "random_profile",
    "remove_header",
    "sec_ch_ua_headers",
]
