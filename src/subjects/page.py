# src/subjects/page.py
from __future__ import annotations

import re
from dataclasses import asdict, dataclass
from typing import Any

from bs4 import BeautifulSoup

from src.exceptions import ParseError

_YEAR_RE = re.compile(r"(\d{4})")
_SITE_SUFFIX_RE = re.compile(r"\s*\(豆瓣\)\s*$")


@dataclass
class SubjectPage:
    id: str
    title: str
    year: str | None = None
    url: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


def _text(node) -> str:
    return node.get_text(" ", strip=True) if node is not None else ""


def parse_subject_page(html: str, subject_id: str) -> SubjectPage:
    """
    Pull the identity of a resolved subject page: title, release year, canonical URL.

    Raises ParseError when the page has no recognisable title, which means the
    markup changed (or we were handed something other than a subject page).
    """
    soup = BeautifulSoup(html or "", "html.parser")

    title = _text(soup.find(attrs={"property": "v:itemreviewed"}))
    if not title:
        title = _SITE_SUFFIX_RE.sub("", _text(soup.title))
    if not title:
        raise ParseError(f"subject {subject_id}: page has no title; structure may have changed")

    year = None
    m = _YEAR_RE.search(_text(soup.find("span", class_="year")))
    if m:
        year = m.group(1)

    url = None
    canonical = soup.find("link", rel="canonical")
    if canonical is not None and canonical.get("href"):
        url = str(canonical["href"])

    return SubjectPage(id=subject_id, title=title, year=year, url=url)


__all__ = ["SubjectPage", "parse_subject_page"]
