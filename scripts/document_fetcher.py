#!/usr/bin/env python3
"""Single-shot HTTP GET of a candidate document onto disk."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import List, Optional

import requests

DOWNLOAD_CHUNK_SIZE = 64 * 1024


class FetchError(RuntimeError):
    """Transport or filesystem failure while fetching a candidate URL."""

    def __init__(self, url: str, cause: BaseException) -> None:
        super().__init__(f"{type(cause).__name__} while getting {url}: {cause}")
        self.url = url
        self.cause = cause


def _discard_partial(tmp_path: Path, created_dirs: List[Path]) -> None:
    """Remove a half-written download and the directories created for it, deepest first."""
    try:
        tmp_path.unlink(missing_ok=True)
    except OSError as exc:
        logging.debug("Could not remove %s: %s", tmp_path, exc)
        return
    for path in created_dirs:
        try:
            path.rmdir()
        except OSError:
            break


class DocumentFetcher:
    def __init__(
        self,
        timeout_seconds: Optional[float] = None,
        session: Optional[requests.Session] = None,
    ) -> None:
        self.timeout_seconds = timeout_seconds if timeout_seconds else None
        # No custom headers, no auth. Redirects follow the Requests default.
        self.session = session if session is not None else requests.Session()

    def fetch(self, url: str, destination: Path) -> bool:
        """GET ``url`` and store the body at ``destination`` on HTTP 200.

        Any other status is a plain miss and returns False. Network and disk
        failures raise :class:`FetchError` and leave nothing behind on disk.
        """
        tmp_path = destination.with_suffix(destination.suffix + ".part")
        created_dirs: List[Path] = []
        try:
            with self.session.get(url, stream=True, timeout=self.timeout_seconds) as response:
                status = response.status_code
                logging.debug("HTTP GET %s %s", url, status)
                if status != 200:
                    return False
                created_dirs = [path for path in (destination.parent, *destination.parent.parents) if not path.exists()]
                destination.parent.mkdir(parents=True, exist_ok=True)
                with open(tmp_path, "wb") as handle:
                    for chunk in response.iter_content(chunk_size=DOWNLOAD_CHUNK_SIZE):
                        if chunk:
                            handle.write(chunk)
            tmp_path.replace(destination)
            return True
        except (requests.RequestException, OSError) as exc:
            _discard_partial(tmp_path, created_dirs)
            raise FetchError(url, exc) from exc

    def close(self) -> None:
        self.session.close()
