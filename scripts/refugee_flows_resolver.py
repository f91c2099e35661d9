#!/usr/bin/env python3
"""Resolve the report published on a day: cached filename first, then brute force."""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from datetime import date
from pathlib import Path
from typing import Callable, List, Optional, Sequence, Set, Tuple

from document_fetcher import DocumentFetcher, FetchError
from refugee_flows_candidates import Candidate, candidates, document_url
from refugee_flows_catalog import DEFAULT_URL_PREFIX, LANGUAGE_ORDER, Language, language_label
from resolution_cache import ResolutionCache, ResolutionRecord
from run_logging import format_exception_message

DEFAULT_OUTPUT_ROOT = Path("output") / "documents"
DEFAULT_REQUEST_INTERVAL_SECONDS = 0.05

SOURCE_CACHE = "cache"
SOURCE_SEARCH = "search"

CandidateSource = Callable[..., Sequence[Candidate]]


@dataclass(frozen=True)
class RetryPolicy:
    """Pacing of consecutive GETs. ``max_attempts=None`` tries every candidate."""

    delay_seconds: float = DEFAULT_REQUEST_INTERVAL_SECONDS
    max_attempts: Optional[int] = None
    sleep: Callable[[float], None] = time.sleep

    def pause(self) -> None:
        if self.delay_seconds > 0:
            self.sleep(self.delay_seconds)

    def allows(self, attempts_made: int) -> bool:
        return self.max_attempts is None or attempts_made < self.max_attempts


@dataclass
class ResolutionOutcome:
    day: date
    resolved: bool = False
    language: Optional[Language] = None
    filename: Optional[str] = None
    path: Optional[Path] = None
    source: Optional[str] = None
    attempts: int = 0
    errors: List[Tuple[str, str]] = field(default_factory=list)


def document_path(output_root: Path, day: date, language: Language, filename: str) -> Path:
    return output_root / str(day.year) / f"{day.month:02d}" / language_label(language) / filename


class Resolver:
    def __init__(
        self,
        fetcher: DocumentFetcher,
        cache: ResolutionCache,
        output_root: Path = DEFAULT_OUTPUT_ROOT,
        url_prefix: str = DEFAULT_URL_PREFIX,
        retry_policy: Optional[RetryPolicy] = None,
        candidate_source: CandidateSource = candidates,
    ) -> None:
        self.fetcher = fetcher
        self.cache = cache
        self.output_root = output_root
        self.url_prefix = url_prefix
        self.retry_policy = retry_policy or RetryPolicy()
        self.candidate_source = candidate_source

    def _attempt(self, outcome: ResolutionOutcome, tried: Set[str], url: str, destination: Path) -> bool:
        tried.add(url)
        outcome.attempts += 1
        try:
            return self.fetcher.fetch(url, destination)
        except FetchError as exc:
            message = format_exception_message(exc.cause)
            logging.debug("Fetch failed for %s: %s", url, message)
            outcome.errors.append((url, message))
            return False
        finally:
            self.retry_policy.pause()

    def _try_cached(self, outcome: ResolutionOutcome, tried: Set[str], record: ResolutionRecord) -> bool:
        url = document_url(self.url_prefix, record.filename)
        destination = document_path(self.output_root, outcome.day, record.language, record.filename)
        if not self._attempt(outcome, tried, url, destination):
            logging.debug("Cached filename for %s no longer resolves: %s", outcome.day, url)
            return False
        outcome.resolved = True
        outcome.language = record.language
        outcome.filename = record.filename
        outcome.path = destination
        outcome.source = SOURCE_CACHE
        return True

    def _search(self, outcome: ResolutionOutcome, tried: Set[str], language: Language) -> bool:
        made = 0
        for candidate in self.candidate_source(outcome.day, language, url_prefix=self.url_prefix):
            if candidate.url in tried:
                continue
            if not self.retry_policy.allows(made):
                break
            made += 1
            destination = document_path(self.output_root, outcome.day, language, candidate.filename)
            if not self._attempt(outcome, tried, candidate.url, destination):
                continue
            self.cache.record(outcome.day, language, candidate.filename)
            outcome.resolved = True
            outcome.language = language
            outcome.filename = candidate.filename
            outcome.path = destination
            outcome.source = SOURCE_SEARCH
            return True
        return False

    def resolve(self, day: date) -> ResolutionOutcome:
        """Download the document for ``day``.

        A cached record is tried once without re-checking brute-force order. If
        it misses, every English candidate is tried before any Greek one. A URL
        is requested at most once per date, so patterns that render the same
        filename cost a single GET. An exhausted search leaves the cache
        untouched so a later run retries.
        """
        outcome = ResolutionOutcome(day=day)
        tried: Set[str] = set()
        record = self.cache.lookup(day)
        if record is not None and self._try_cached(outcome, tried, record):
            return outcome
        for language in LANGUAGE_ORDER:
            if self._search(outcome, tried, language):
                return outcome
        return outcome
