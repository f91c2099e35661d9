#!/usr/bin/env python3
"""Start/end date parsing with the ``beginning``/``today`` aliases, plus interactive prompts."""

from __future__ import annotations

import argparse
import sys
from datetime import date, timedelta
from typing import Callable, Iterator, Optional, TextIO, Tuple

from refugee_flows_catalog import EARLIEST_PUBLICATION_DATE

BEGINNING_ALIAS = "beginning"
TODAY_ALIAS = "today"

Today = Callable[[], date]


def parse_start_date(value: str) -> date:
    cleaned = value.strip()
    if cleaned == BEGINNING_ALIAS:
        return EARLIEST_PUBLICATION_DATE
    return date.fromisoformat(cleaned)


def parse_end_date(value: str, today: Today = date.today) -> date:
    cleaned = value.strip()
    if cleaned == TODAY_ALIAS:
        return today()
    return date.fromisoformat(cleaned)


def start_date_arg(value: str) -> date:
    try:
        return parse_start_date(value)
    except ValueError as exc:
        raise argparse.ArgumentTypeError(
            f"Invalid start date '{value}'. Use YYYY-MM-DD or '{BEGINNING_ALIAS}'."
        ) from exc


def end_date_arg(value: str) -> date:
    try:
        return parse_end_date(value)
    except ValueError as exc:
        raise argparse.ArgumentTypeError(f"Invalid end date '{value}'. Use YYYY-MM-DD or '{TODAY_ALIAS}'.") from exc


def _prompt_until_valid(
    prompt: str,
    kind: str,
    parse: Callable[[str], date],
    input_fn: Callable[[str], str],
    output: TextIO,
) -> date:
    while True:
        line = input_fn(prompt)
        try:
            return parse(line)
        except ValueError:
            output.write(f"\nsorry, i couldn't understand this {kind} date: \"{line}\"\n\n")


def prompt_date_range(
    input_fn: Optional[Callable[[str], str]] = None,
    output: Optional[TextIO] = None,
    today: Today = date.today,
    start: Optional[date] = None,
    end: Optional[date] = None,
) -> Tuple[date, date]:
    """Ask for whichever of ``start``/``end`` is missing until the range is valid.

    A start after the end discards both and asks again for both.
    """
    read = input_fn if input_fn is not None else input
    out = output if output is not None else sys.stdout
    while True:
        start_day = start
        if start_day is None:
            start_day = _prompt_until_valid(
                f"please enter a start date (e.g. {EARLIEST_PUBLICATION_DATE.isoformat()}, or \"{BEGINNING_ALIAS}\"): ",
                "start",
                parse_start_date,
                read,
                out,
            )
        end_day = end
        if end_day is None:
            end_day = _prompt_until_valid(
                f"please enter an end date (e.g. {today().isoformat()}, or \"{TODAY_ALIAS}\"): ",
                "end",
                lambda line: parse_end_date(line, today),
                read,
                out,
            )
        if start_day <= end_day:
            return start_day, end_day
        out.write("\nwe can't go backwards in time yet...\n\n")
        start = None
        end = None


def iter_days(start: date, end: date) -> Iterator[date]:
    day = start
    while day <= end:
        yield day
        day += timedelta(days=1)
