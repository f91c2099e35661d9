#!/usr/bin/env python3
"""Naming catalog for the refugee flows daily reports published on media.gov.gr."""

from __future__ import annotations

import re
from datetime import date
from enum import Enum
from typing import Dict, List, Tuple

DEFAULT_URL_PREFIX = "http://media.gov.gr/images/prosfygiko/"
EARLIEST_PUBLICATION_DATE = date(2016, 3, 21)
ENGLISH_FILENAME_STEM = "REFUGEE_FLOWS"
DOCUMENT_SUFFIX = ".pdf"


class Language(Enum):
    ENGLISH = "ENGLISH"
    GREEK = "GREEK"


class Separator(Enum):
    HYPHEN = "HYPHEN"
    UNDERSCORE = "UNDERSCORE"


# Brute-force priority. English first, then Greek.
LANGUAGE_ORDER: Tuple[Language, ...] = (Language.ENGLISH, Language.GREEK)
SEPARATOR_ORDER: Tuple[Separator, ...] = (Separator.HYPHEN, Separator.UNDERSCORE)

# Day padding is the outer loop, month padding the inner one, grouped by the
# character used inside the date token. The order is part of the cache contract.
DATE_FORMAT_PATTERNS: Tuple[str, ...] = (
    "dd.MM.yyyy",
    "dd.M.yyyy",
    "d.MM.yyyy",
    "d.M.yyyy",
    "dd-MM-yyyy",
    "dd-M-yyyy",
    "d-MM-yyyy",
    "d-M-yyyy",
    "dd_MM_yyyy",
    "dd_M_yyyy",
    "d_MM_yyyy",
    "d_M_yyyy",
)

LANGUAGE_LABELS: Dict[Language, str] = {
    Language.ENGLISH: "english",
    Language.GREEK: "greek",
}

SEPARATOR_CHARS: Dict[Separator, str] = {
    Separator.HYPHEN: "-",
    Separator.UNDERSCORE: "_",
}

_PATTERN_TOKEN_RE = re.compile(r"yyyy|dd|d|MM|M")


def language_label(language: Language) -> str:
    return LANGUAGE_LABELS[language]


def separator_char(separator: Separator) -> str:
    return SEPARATOR_CHARS[separator]


def parse_language(value: str) -> Language:
    """Map a persisted label (``english``/``greek``) or enum name back to a Language."""
    cleaned = value.strip().lower()
    for language, label in LANGUAGE_LABELS.items():
        if cleaned in (label, language.value.lower()):
            return language
    raise ValueError(f"Unknown language '{value}'. Choices: {', '.join(available_languages())}")


def available_languages() -> List[str]:
    return [LANGUAGE_LABELS[language] for language in LANGUAGE_ORDER]


def format_date_token(day: date, pattern: str) -> str:
    """Render ``day`` with a ``dd``/``d``/``MM``/``M``/``yyyy`` layout."""

    def _replace(match: "re.Match[str]") -> str:
        token = match.group(0)
        if token == "yyyy":
            return f"{day.year:04d}"
        if token == "dd":
            return f"{day.day:02d}"
        if token == "d":
            return str(day.day)
        if token == "MM":
            return f"{day.month:02d}"
        return str(day.month)

    return _PATTERN_TOKEN_RE.sub(_replace, pattern)


def english_filename(day: date, separator: Separator, pattern: str) -> str:
    return f"{ENGLISH_FILENAME_STEM}{separator_char(separator)}{format_date_token(day, pattern)}{DOCUMENT_SUFFIX}"


def greek_filename(day: date, pattern: str) -> str:
    return f"{format_date_token(day, pattern)}{DOCUMENT_SUFFIX}"
