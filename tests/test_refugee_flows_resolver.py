"""Tests for the per-date resolver: fast path, brute-force order, pacing."""

from __future__ import annotations

from datetime import date

import requests

from conftest import StubSession, remote
from document_fetcher import DocumentFetcher
from refugee_flows_candidates import candidates
from refugee_flows_catalog import Language
from refugee_flows_resolver import (
    SOURCE_CACHE,
    SOURCE_SEARCH,
    Resolver,
    RetryPolicy,
    document_path,
)
from resolution_cache import ResolutionCache, ResolutionRecord

ENGLISH_22 = "REFUGEE_FLOWS-22-03-2016.pdf"


class CountingCandidates:
    def __init__(self) -> None:
        self.calls = []

    def __call__(self, day, language, url_prefix):
        self.calls.append((day, language))
        return candidates(day, language, url_prefix=url_prefix)


def distinct_urls(rows):
    return list(dict.fromkeys(row.url for row in rows))


def _resolver(session, cache, output_root, policy, source=candidates):
    return Resolver(
        fetcher=DocumentFetcher(session=session),
        cache=cache,
        output_root=output_root,
        retry_policy=policy,
        candidate_source=source,
    )


def test_document_path_layout(tmp_path):
    path = document_path(tmp_path, date(2016, 3, 21), Language.GREEK, "21.03.2016.pdf")
    assert path == tmp_path / "2016" / "03" / "greek" / "21.03.2016.pdf"


class TestFastPath:
    def test_cache_hit_skips_candidate_generation(self, first_day, output_root, retry_policy):
        session = StubSession(pages={remote("21.03.2016.pdf"): b"pdf"})
        cache = ResolutionCache()
        cache.record(first_day, Language.GREEK, "21.03.2016.pdf")
        counter = CountingCandidates()

        outcome = _resolver(session, cache, output_root, retry_policy, counter).resolve(first_day)

        assert counter.calls == []
        assert session.calls == [remote("21.03.2016.pdf")]
        assert outcome.resolved is True
        assert outcome.source == SOURCE_CACHE
        assert outcome.language is Language.GREEK
        assert outcome.attempts == 1
        assert outcome.path == output_root / "2016" / "03" / "greek" / "21.03.2016.pdf"
        assert outcome.path.read_bytes() == b"pdf"

    def test_cache_hit_does_not_recheck_priority(self, first_day, output_root, retry_policy):
        # An earlier English candidate exists, but the cached Greek one still wins.
        session = StubSession(pages={
            remote("21.03.2016.pdf"): b"greek",
            remote("REFUGEE_FLOWS-21.03.2016.pdf"): b"english",
        })
        cache = ResolutionCache()
        cache.record(first_day, Language.GREEK, "21.03.2016.pdf")
        outcome = _resolver(session, cache, output_root, retry_policy).resolve(first_day)
        assert outcome.language is Language.GREEK
        assert outcome.source == SOURCE_CACHE

    def test_stale_cache_falls_back_and_overwrites(self, output_root, retry_policy):
        day = date(2016, 3, 22)
        session = StubSession(pages={remote(ENGLISH_22): b"pdf"})
        cache = ResolutionCache()
        cache.record(day, Language.GREEK, "22.03.2016.pdf")
        counter = CountingCandidates()

        outcome = _resolver(session, cache, output_root, retry_policy, counter).resolve(day)

        assert counter.calls == [(day, Language.ENGLISH)]
        assert session.calls[0] == remote("22.03.2016.pdf")
        assert session.calls[1:] == distinct_urls(candidates(day, Language.ENGLISH)[:5])
        assert outcome.resolved is True
        assert outcome.source == SOURCE_SEARCH
        assert outcome.attempts == 4
        assert cache.lookup(day) == ResolutionRecord(Language.ENGLISH, ENGLISH_22)

    def test_cache_fetch_error_falls_back(self, first_day, output_root, retry_policy):
        cached_url = remote("REFUGEE_FLOWS-21-03-2016.pdf")
        session = StubSession(
            pages={remote("21.03.2016.pdf"): b"pdf"},
            errors={cached_url: requests.ConnectTimeout("timed out")},
        )
        cache = ResolutionCache()
        cache.record(first_day, Language.ENGLISH, "REFUGEE_FLOWS-21-03-2016.pdf")

        outcome = _resolver(session, cache, output_root, retry_policy).resolve(first_day)

        assert outcome.language is Language.GREEK
        assert cache.lookup(first_day) == ResolutionRecord(Language.GREEK, "21.03.2016.pdf")
        english_urls = [url for url in distinct_urls(candidates(first_day, Language.ENGLISH)) if url != cached_url]
        assert session.calls[0] == cached_url
        assert session.calls[1:12] == english_urls
        assert session.calls[12] == remote("21.03.2016.pdf")
        assert [url for url, _ in outcome.errors] == [cached_url]


class TestBruteForce:
    def test_english_tried_in_full_before_greek(self, first_day, output_root, retry_policy):
        session = StubSession(pages={remote("21.03.2016.pdf"): b"pdf"})
        cache = ResolutionCache()
        outcome = _resolver(session, cache, output_root, retry_policy).resolve(first_day)

        english_urls = distinct_urls(candidates(first_day, Language.ENGLISH))
        assert session.calls[:12] == english_urls
        assert session.calls[12:] == [remote("21.03.2016.pdf")]
        assert outcome.resolved is True
        assert outcome.language is Language.GREEK
        assert outcome.attempts == 13
        assert cache.lookup(first_day) == ResolutionRecord(Language.GREEK, "21.03.2016.pdf")

    def test_english_preferred_when_both_exist(self, first_day, output_root, retry_policy):
        session = StubSession(pages={
            remote("21.03.2016.pdf"): b"greek",
            remote("REFUGEE_FLOWS_21_03_2016.pdf"): b"english",
        })
        outcome = _resolver(session, ResolutionCache(), output_root, retry_policy).resolve(first_day)
        assert outcome.language is Language.ENGLISH
        assert outcome.filename == "REFUGEE_FLOWS_21_03_2016.pdf"
        assert outcome.path.parent.name == "english"

    def test_exhaustion_leaves_no_record_and_no_file(self, output_root, retry_policy, sleep_recorder):
        day = date(2016, 3, 23)
        session = StubSession()
        cache = ResolutionCache()
        outcome = _resolver(session, cache, output_root, retry_policy).resolve(day)

        assert outcome.resolved is False
        assert outcome.attempts == 18
        assert len(session.calls) == 18
        assert len(set(session.calls)) == 18
        assert cache.lookup(day) is None
        assert not output_root.exists()
        assert sleep_recorder.delays == [0.05] * 18

    def test_transport_errors_skip_to_next_candidate(self, first_day, output_root, retry_policy):
        rows = candidates(first_day, Language.ENGLISH)
        session = StubSession(
            pages={rows[1].url: b"pdf"},
            errors={rows[0].url: requests.ConnectionError("dns failure")},
        )
        outcome = _resolver(session, ResolutionCache(), output_root, retry_policy).resolve(first_day)
        assert outcome.filename == rows[1].filename
        assert outcome.errors == [(rows[0].url, "dns failure")]


class TestRetryPolicy:
    def test_pause_after_every_attempt(self, first_day, output_root, sleep_recorder):
        session = StubSession(pages={remote("REFUGEE_FLOWS-21.3.2016.pdf"): b"pdf"})
        policy = RetryPolicy(delay_seconds=0.2, sleep=sleep_recorder)
        outcome = _resolver(session, ResolutionCache(), output_root, policy).resolve(first_day)
        assert outcome.attempts == 2
        assert sleep_recorder.delays == [0.2, 0.2]

    def test_zero_delay_never_sleeps(self, first_day, output_root, sleep_recorder):
        policy = RetryPolicy(delay_seconds=0, sleep=sleep_recorder)
        _resolver(StubSession(), ResolutionCache(), output_root, policy).resolve(first_day)
        assert sleep_recorder.delays == []

    def test_max_attempts_caps_each_language(self, first_day, output_root, sleep_recorder):
        session = StubSession()
        policy = RetryPolicy(delay_seconds=0, max_attempts=3, sleep=sleep_recorder)
        outcome = _resolver(session, ResolutionCache(), output_root, policy).resolve(first_day)
        assert outcome.attempts == 6
        assert session.calls[3] == remote("21.03.2016.pdf")


class TestRepeatedUrls:
    def test_each_url_requested_once_in_priority_order(self, output_root, retry_policy, sleep_recorder):
        # Two-digit day and month: every d/dd and M/MM variant renders alike.
        day = date(2016, 11, 15)
        session = StubSession()
        outcome = _resolver(session, ResolutionCache(), output_root, retry_policy).resolve(day)

        expected = distinct_urls(candidates(day, Language.ENGLISH)) + distinct_urls(candidates(day, Language.GREEK))
        assert session.calls == expected
        assert session.calls == [
            remote("REFUGEE_FLOWS-15.11.2016.pdf"),
            remote("REFUGEE_FLOWS-15-11-2016.pdf"),
            remote("REFUGEE_FLOWS-15_11_2016.pdf"),
            remote("REFUGEE_FLOWS_15.11.2016.pdf"),
            remote("REFUGEE_FLOWS_15-11-2016.pdf"),
            remote("REFUGEE_FLOWS_15_11_2016.pdf"),
            remote("15.11.2016.pdf"),
            remote("15-11-2016.pdf"),
            remote("15_11_2016.pdf"),
        ]
        assert outcome.attempts == 9
        assert sleep_recorder.delays == [0.05] * 9

    def test_cached_miss_is_not_retried_by_search(self, first_day, output_root, retry_policy):
        rows = candidates(first_day, Language.ENGLISH)
        session = StubSession(pages={rows[1].url: b"pdf"})
        cache = ResolutionCache()
        cache.record(first_day, Language.ENGLISH, rows[0].filename)

        outcome = _resolver(session, cache, output_root, retry_policy).resolve(first_day)

        assert session.calls == [rows[0].url, rows[1].url]
        assert outcome.attempts == 2
        assert outcome.source == SOURCE_SEARCH
        assert cache.lookup(first_day) == ResolutionRecord(Language.ENGLISH, rows[1].filename)

    def test_cap_counts_requests_not_skipped_rows(self, first_day, output_root, sleep_recorder):
        session = StubSession()
        policy = RetryPolicy(delay_seconds=0, max_attempts=3, sleep=sleep_recorder)
        _resolver(session, ResolutionCache(), output_root, policy).resolve(first_day)
        rows = candidates(first_day, Language.ENGLISH)
        assert session.calls[:3] == [rows[0].url, rows[1].url, rows[4].url]


def test_interrupted_download_leaves_output_root_absent(first_day, output_root, retry_policy):
    session = StubSession()
    session.interrupted.add(remote("21.03.2016.pdf"))
    outcome = _resolver(session, ResolutionCache(), output_root, retry_policy).resolve(first_day)

    assert outcome.resolved is False
    assert outcome.errors == [(remote("21.03.2016.pdf"), "connection reset")]
    assert not output_root.exists()
