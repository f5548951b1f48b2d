# src/subjects/__init__.py
"""
Subject details: page identity parsing plus the retry / negative-cache envelope
that the HTTP route sits on.
"""

from .page import SubjectPage, parse_subject_page
from .service import (
    DetailsOutcome,
    SubjectDetailsService,
    call_with_retry,
    classify,
    http_status_for,
    is_retryable,
)

__all__ = [
    "SubjectPage",
    "parse_subject_page",
    "DetailsOutcome",
    "SubjectDetailsService",
    "call_with_retry",
    "classify",
    "http_status_for",
    "is_retryable",
]
