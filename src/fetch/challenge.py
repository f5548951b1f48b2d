# src/fetch/challenge.py
"""
Detection of the proof-of-work challenge form embedded in an HTML page.

The challenge page carries three hidden inputs (tok, cha, red) and a form
(usually id="sec") whose action is the submit endpoint. Detection is a plain
regex scan over <input>/<form> start tags; no DOM is built.
"""

from __future__ import annotations

import re
from dataclasses import dataclass

_INPUT_TAG = re.compile(r"<input\b[^>]*>", re.IGNORECASE)
_FORM_TAG = re.compile(r"<form\b[^>]*>", re.IGNORECASE)
_ATTR = re.compile(
    r"""([a-zA-Z0-9:_-]+)(?:\s*=\s*(?:"([^"]*)"|'([^']*)'|([^\s"'=<>`]+)))?"""
)

TOKEN_FIELD = "tok"
PUZZLE_FIELD = "cha"
REDIRECT_FIELD = "red"
SOLUTION_FIELD = "sol"
FORM_ID = "sec"


@dataclass(frozen=True)
class Challenge:
    token: str
    puzzle: str
    redirect_target: str
    submit_action: str | None = None


def parse_attributes(tag: str) -> dict[str, str]:
    """
    Tolerant attribute tokenizer for a single start tag.

    Keys are lower-cased; bare attributes map to "". The tag name itself shows up
    as a bare key, which is harmless for lookups.
    """
    attrs: dict[str, str] = {}
    for m in _ATTR.finditer(tag):
        key = m.group(1).lower()
        value = m.group(2)
        if value is None:
            value = m.group(3)
        if value is None:
            value = m.group(4)
        attrs[key] = value if value is not None else ""
    return attrs


def find_input_value(html: str, key: str) -> str | None:
    target = key.lower()
    for tag in _INPUT_TAG.findall(html):
        attrs = parse_attributes(tag)
        name = attrs.get("name")
        if name is None:
            name = attrs.get("id", "")
        if name.lower() == target:
            return attrs.get("value")
    return None


def find_form_action(html: str) -> str | None:
    forms = [parse_attributes(tag) for tag in _FORM_TAG.findall(html)]
    for attrs in forms:
        form_id = attrs.get("id", "").lower()
        form_name = attrs.get("name", "").lower()
        if attrs.get("action") and (form_id == FORM_ID or form_name == FORM_ID):
            return attrs["action"]
    for attrs in forms:
        if attrs.get("action"):
            return attrs["action"]
    return None


def parse_challenge(html: str) -> Challenge | None:
    """Return the embedded Challenge, or None if any of tok/cha/red is missing."""
    if not html:
        return None
    token = find_input_value(html, TOKEN_FIELD)
    puzzle = find_input_value(html, PUZZLE_FIELD)
    redirect_target = find_input_value(html, REDIRECT_FIELD)
    if not token or not puzzle or not redirect_target:
        return None
    return Challenge(
        token=token,
        puzzle=puzzle,
        redirect_target=redirect_target,
        submit_action=find_form_action(html),
    )


def has_challenge(html: str) -> bool:
    return parse_challenge(html) is not None


__all__ = [
    "Challenge",
    "parse_attributes",
    "find_input_value",
    "find_form_action",
    "parse_challenge",
    "has_challenge",
    "SOLUTION_FIELD",
]
