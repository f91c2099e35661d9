"""Shared fixtures: an in-memory stand-in for ``requests.Session`` and pacing recorders.

No test touches the network; the stub session serves 200 for the URLs it
knows, 404 for everything else, and raises for URLs registered as errors.
URLs in ``interrupted`` answer 200 and then drop the connection mid-body.
"""

from __future__ import annotations

from datetime import date
from typing import Dict, Iterator, List, Optional, Set

import pytest
import requests

from document_fetcher import DocumentFetcher
from refugee_flows_catalog import DEFAULT_URL_PREFIX
from refugee_flows_resolver import RetryPolicy


class StubResponse:
    def __init__(self, status_code: int, body: bytes = b"") -> None:
        self.status_code = status_code
        self.body = body
        self.closed = False

    def iter_content(self, chunk_size: int = 1) -> Iterator[bytes]:
        for start in range(0, len(self.body), chunk_size):
            yield self.body[start : start + chunk_size]

    def close(self) -> None:
        self.closed = True

    def __enter__(self) -> "StubResponse":
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()


class InterruptedResponse(StubResponse):
    """200 response whose body stream drops after the first chunk."""

    def iter_content(self, chunk_size: int = 1) -> Iterator[bytes]:
        yield self.body[:4]
        raise requests.exceptions.ChunkedEncodingError("connection reset")


class StubSession:
    def __init__(
        self,
        pages: Optional[Dict[str, bytes]] = None,
        errors: Optional[Dict[str, BaseException]] = None,
    ) -> None:
        self.pages: Dict[str, bytes] = dict(pages or {})
        self.errors: Dict[str, BaseException] = dict(errors or {})
        self.statuses: Dict[str, int] = {}
        self.interrupted: Set[str] = set()
        self.calls: List[str] = []
        self.timeouts: List[Optional[float]] = []
        self.closed = False

    def get(self, url: str, stream: bool = False, timeout: Optional[float] = None) -> StubResponse:
        self.calls.append(url)
        self.timeouts.append(timeout)
        if url in self.errors:
            raise self.errors[url]
        if url in self.interrupted:
            return InterruptedResponse(200, self.pages.get(url, b"%PDF-1.4"))
        if url in self.statuses:
            return StubResponse(self.statuses[url])
        if url in self.pages:
            return StubResponse(200, self.pages[url])
        return StubResponse(404)

    def close(self) -> None:
        self.closed = True


class SleepRecorder:
    def __init__(self) -> None:
        self.delays: List[float] = []

    def __call__(self, seconds: float) -> None:
        self.delays.append(seconds)


def remote(filename: str) -> str:
    return DEFAULT_URL_PREFIX + filename


@pytest.fixture
def first_day() -> date:
    return date(2016, 3, 21)


@pytest.fixture
def stub_session() -> StubSession:
    return StubSession()


@pytest.fixture
def fetcher(stub_session: StubSession) -> DocumentFetcher:
    return DocumentFetcher(session=stub_session)


@pytest.fixture
def sleep_recorder() -> SleepRecorder:
    return SleepRecorder()


@pytest.fixture
def retry_policy(sleep_recorder: SleepRecorder) -> RetryPolicy:
    return RetryPolicy(delay_seconds=0.05, sleep=sleep_recorder)


@pytest.fixture
def output_root(tmp_path):
    return tmp_path / "output" / "documents"
