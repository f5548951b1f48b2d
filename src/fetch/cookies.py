# src/fetch/cookies.py
from __future__ import annotations

import re
from collections.abc import Iterable, Iterator, Mapping
from typing import Any

# A comma only separates two cookies when the next segment starts a new "name=".
# Commas inside Expires dates ("Wed, 21 Oct 2015 ...") are followed by text that
# reaches a ';' before any '=' and therefore never match.
_SET_COOKIE_SPLIT = re.compile(r",(?=[^;,]+=)")


def split_set_cookie_header(header: str) -> list[str]:
    """Split a single comma-joined Set-Cookie header into individual cookies."""
    return [part.strip() for part in _SET_COOKIE_SPLIT.split(header) if part.strip()]


def set_cookie_values(headers: Any) -> list[str]:
    """
    Return every Set-Cookie value from a response header collection.

    Accepts httpx.Headers (multi-value via get_list), plain mappings, or an
    iterable of (name, value) pairs. Each value is additionally comma-split so a
    server (or proxy) that folded several cookies into one header is handled too.
    """
    raw: list[str] = []
    get_list = getattr(headers, "get_list", None)
    if callable(get_list):
        raw = list(get_list("set-cookie"))
    elif isinstance(headers, Mapping):
        for k, v in headers.items():
            if str(k).lower() == "set-cookie":
                raw.extend(v if isinstance(v, (list, tuple)) else [v])
    else:
        for k, v in headers:
            if str(k).lower() == "set-cookie":
                raw.append(v)

    out: list[str] = []
    for value in raw:
        out.extend(split_set_cookie_header(str(value)))
    return out


class CookieJar:
    """
    Name -> value session cookies for one fetch-and-resolve sequence.

    Last write wins; attributes (Path, Domain, Expires...) are ignored because the
    jar never outlives a single resolution chain.
    """

    def __init__(self, initial: Mapping[str, str] | Iterable[tuple[str, str]] | None = None):
        self._cookies: dict[str, str] = {}
        if initial:
            items = initial.items() if isinstance(initial, Mapping) else initial
            for name, value in items:
                self._cookies[str(name)] = str(value)

    # ---- updates ---------------------------------------------------------------------

    def merge(self, set_cookies: Iterable[str]) -> None:
        for set_cookie in set_cookies:
            pair = set_cookie.split(";", 1)[0].strip()
            if not pair:
                continue
            idx = pair.find("=")
            if idx <= 0:
                continue
            name = pair[:idx].strip()
            value = pair[idx + 1 :].strip()
            if name:
                self._cookies[name] = value

    def merge_response(self, headers: Any) -> None:
        self.merge(set_cookie_values(headers))

    def set(self, name: str, value: str) -> None:
        self._cookies[name] = value

    # ---- views -----------------------------------------------------------------------

    def to_header(self) -> str:
        return "; ".join(f"{name}={value}" for name, value in self._cookies.items())

    def apply(self, headers: Mapping[str, str]) -> dict[str, str]:
        """Return a copy of headers with Cookie set from the jar (if non-empty)."""
        out = {k: v for k, v in headers.items() if k.lower() != "cookie"} if self else dict(headers)
        if self:
            out["Cookie"] = self.to_header()
        return out

    def copy(self) -> CookieJar:
        return CookieJar(self._cookies)

    def get(self, name: str, default: str | None = None) -> str | None:
        return self._cookies.get(name, default)

    def __getitem__(self, name: str) -> str:
        return self._cookies[name]

    def __contains__(self, name: object) -> bool:
        return name in self._cookies

    def __iter__(self) -> Iterator[str]:
        return iter(self._cookies)

    def __len__(self) -> int:
        return len(self._cookies)

    def __bool__(self) -> bool:
        return bool(self._cookies)

    def items(self):
        return self._cookies.items()

    def __repr__(self) -> str:
        return f"CookieJar({self._cookies!r})"


__all__ = ["CookieJar", "split_set_cookie_header", "set_cookie_values"]
