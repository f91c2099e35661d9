#!/usr/bin/env python3
"""Ordered filename/URL guesses for the report published on a given day."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from typing import List, Optional

from refugee_flows_catalog import (
    DATE_FORMAT_PATTERNS,
    DEFAULT_URL_PREFIX,
    SEPARATOR_ORDER,
    Language,
    Separator,
    english_filename,
    greek_filename,
)


@dataclass(frozen=True)
class Candidate:
    language: Language
    separator: Optional[Separator]
    pattern: str
    filename: str
    url: str


def document_url(url_prefix: str, filename: str) -> str:
    return url_prefix + filename


def candidates(day: date, language: Language, url_prefix: str = DEFAULT_URL_PREFIX) -> List[Candidate]:
    """Return the candidates for ``day`` in brute-force order.

    English yields 24 entries (separator-major, pattern-minor), Greek yields 12.
    The result is a fresh list on every call and may contain duplicates if the
    pattern table ever does; callers must treat it as a sequence, not a set.
    """
    rows: List[Candidate] = []
    if language is Language.ENGLISH:
        for separator in SEPARATOR_ORDER:
            for pattern in DATE_FORMAT_PATTERNS:
                filename = english_filename(day, separator, pattern)
                rows.append(
                    Candidate(
                        language=language,
                        separator=separator,
                        pattern=pattern,
                        filename=filename,
                        url=document_url(url_prefix, filename),
                    )
                )
    elif language is Language.GREEK:
        for pattern in DATE_FORMAT_PATTERNS:
            filename = greek_filename(day, pattern)
            rows.append(
                Candidate(
                    language=language,
                    separator=None,
                    pattern=pattern,
                    filename=filename,
                    url=document_url(url_prefix, filename),
                )
            )
    else:
        raise ValueError(f"Unsupported language: {language!r}")
    return rows
