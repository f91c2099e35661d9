#!/usr/bin/env python3
"""Show the ordered filename guesses tried for a given publication date."""

from __future__ import annotations

import argparse
import json
from datetime import date
from typing import Dict, List, Optional, Sequence

from date_range_input import start_date_arg
from refugee_flows_candidates import candidates
from refugee_flows_catalog import (
    DEFAULT_URL_PREFIX,
    LANGUAGE_ORDER,
    Language,
    available_languages,
    language_label,
    parse_language,
    separator_char,
)


def _build_payload(day: date, languages: List[Language], url_prefix: str) -> Dict[str, object]:
    rows = []
    for language in languages:
        for rank, candidate in enumerate(candidates(day, language, url_prefix=url_prefix), 1):
            rows.append(
                {
                    "rank": rank,
                    "language": language_label(language),
                    "separator": separator_char(candidate.separator) if candidate.separator else None,
                    "pattern": candidate.pattern,
                    "filename": candidate.filename,
                    "url": candidate.url,
                }
            )
    return {
        "date": day.isoformat(),
        "languages": [language_label(language) for language in languages],
        "candidate_count": len(rows),
        "candidates": rows,
    }


def _print_text(payload: Dict[str, object]) -> None:
    print(f"Candidates for {payload['date']}")
    print("===========================")
    print(f"Languages: {', '.join(payload['languages'])}")  # type: ignore[arg-type]
    print(f"Total candidates: {payload['candidate_count']}")
    for row in payload["candidates"]:  # type: ignore[attr-defined]
        print(f"- [{row['language']} #{row['rank']:02d}] {row['filename']}")
        print(f"  url: {row['url']}")


def parse_args(argv: Optional[Sequence[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description=__doc__)
    parser.add_argument("date", type=start_date_arg, help="Publication date (YYYY-MM-DD or 'beginning').")
    parser.add_argument(
        "--language",
        choices=available_languages(),
        help="Only list candidates for this language. Defaults to all, in search order.",
    )
    parser.add_argument("--url-prefix", default=DEFAULT_URL_PREFIX, help="Remote directory the reports live in.")
    parser.add_argument("--json", action="store_true", help="Emit JSON instead of text output.")
    return parser.parse_args(argv)


def main(argv: Optional[Sequence[str]] = None) -> None:
    args = parse_args(argv)
    languages = [parse_language(args.language)] if args.language else list(LANGUAGE_ORDER)
    payload = _build_payload(args.date, languages, args.url_prefix)
    if args.json:
        print(json.dumps(payload, indent=2))
    else:
        _print_text(payload)


if __name__ == "__main__":
    main()
