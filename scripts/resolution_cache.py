#!/usr/bin/env python3
"""Date -> (language, filename) memory of past successful resolutions.

Persisted as two Java-style ``.properties`` files under a metadata directory:
``language.properties`` maps ISO dates to ``english``/``greek`` and
``filename.properties`` maps ISO dates to the remote filename. Records are only
written after a successful download, so a missing date means "never resolved",
not "known to be missing".
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass
from datetime import date, datetime
from pathlib import Path
from typing import Dict, Iterable, Iterator, List, Optional, Set, Tuple

from refugee_flows_catalog import Language, language_label, parse_language
from run_logging import format_exception_message

LANGUAGE_PROPERTIES_FILE = "language.properties"
FILENAME_PROPERTIES_FILE = "filename.properties"

_ESCAPES = {"t": "\t", "n": "\n", "r": "\r", "f": "\f"}
_KEY_TERMINATORS = "=: \t\f"
_WHITESPACE = " \t\f"


@dataclass(frozen=True)
class ResolutionRecord:
    language: Language
    filename: str


def _iter_logical_lines(text: str) -> Iterator[str]:
    pending = ""
    continuing = False
    for raw in text.splitlines():
        line = raw.lstrip(_WHITESPACE)
        if not continuing and (not line or line[0] in "#!"):
            continue
        trailing = len(line) - len(line.rstrip("\\"))
        if trailing % 2 == 1:
            pending += line[:-1]
            continuing = True
            continue
        yield pending + line
        pending = ""
        continuing = False
    if pending:
        yield pending


def _unescape(text: str) -> str:
    out: List[str] = []
    index = 0
    while index < len(text):
        char = text[index]
        if char != "\\" or index + 1 >= len(text):
            out.append(char)
            index += 1
            continue
        nxt = text[index + 1]
        if nxt == "u":
            digits = text[index + 2 : index + 6]
            if len(digits) != 4:
                raise ValueError(f"Malformed \\uXXXX escape: {text!r}")
            out.append(chr(int(digits, 16)))
            index += 6
            continue
        out.append(_ESCAPES.get(nxt, nxt))
        index += 2
    return "".join(out)


def _split_entry(line: str) -> Tuple[str, str]:
    index = 0
    while index < len(line):
        char = line[index]
        if char == "\\":
            index += 2
            continue
        if char in _KEY_TERMINATORS:
            break
        index += 1
    key = line[:index]
    rest = line[index:].lstrip(_WHITESPACE)
    if rest and rest[0] in "=:":
        rest = rest[1:].lstrip(_WHITESPACE)
    return _unescape(key), _unescape(rest)


def parse_properties(text: str) -> Dict[str, str]:
    entries: Dict[str, str] = {}
    for line in _iter_logical_lines(text):
        try:
            key, value = _split_entry(line)
        except ValueError as exc:
            logging.warning("Skipping unreadable properties line %r: %s", line, exc)
            continue
        entries[key] = value
    return entries


def _escape(text: str, is_key: bool) -> str:
    out: List[str] = []
    for position, char in enumerate(text):
        if char == " ":
            out.append("\\ " if is_key or position == 0 else " ")
        elif char == "\\":
            out.append("\\\\")
        elif char in "=:#!":
            out.append("\\" + char)
        elif char == "\t":
            out.append("\\t")
        elif char == "\n":
            out.append("\\n")
        elif char == "\r":
            out.append("\\r")
        elif char == "\f":
            out.append("\\f")
        else:
            out.append(char)
    return "".join(out)


def format_properties(entries: Dict[str, str]) -> str:
    lines = ["#" + datetime.now().strftime("%a %b %d %H:%M:%S %Y")]
    for key in sorted(entries):
        lines.append(f"{_escape(key, True)}={_escape(entries[key], False)}")
    return "\n".join(lines) + "\n"


def load_properties(path: Path) -> Dict[str, str]:
    if not path.exists():
        return {}
    return parse_properties(path.read_text(encoding="utf-8"))


def save_properties(path: Path, entries: Dict[str, str]) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    tmp_path = path.with_suffix(path.suffix + ".tmp")
    tmp_path.write_text(format_properties(entries), encoding="utf-8")
    tmp_path.replace(path)


class ResolutionCache:
    def __init__(
        self,
        metadata_dir: Optional[Path] = None,
        languages: Optional[Dict[str, str]] = None,
        filenames: Optional[Dict[str, str]] = None,
        checkpoint_every: int = 0,
        unreadable: Iterable[str] = (),
    ) -> None:
        self.metadata_dir = metadata_dir
        # Files that exist but could not be loaded are never overwritten.
        self.unreadable: Set[str] = set(unreadable)
        self.checkpoint_every = max(0, checkpoint_every)
        self._languages: Dict[str, str] = dict(languages or {})
        self._filenames: Dict[str, str] = dict(filenames or {})
        self._unflushed = 0
        self._lock = threading.RLock()

    @classmethod
    def load(cls, metadata_dir: Path, checkpoint_every: int = 0) -> "ResolutionCache":
        """Build a cache from the files in ``metadata_dir``; unreadable files load as empty."""
        snapshots: List[Dict[str, str]] = []
        unreadable: List[str] = []
        for name in (LANGUAGE_PROPERTIES_FILE, FILENAME_PROPERTIES_FILE):
            path = metadata_dir / name
            try:
                snapshots.append(load_properties(path))
            except (OSError, ValueError) as exc:
                logging.warning("Could not read %s: %s", path, format_exception_message(exc))
                snapshots.append({})
                unreadable.append(name)
        return cls(
            metadata_dir=metadata_dir,
            languages=snapshots[0],
            filenames=snapshots[1],
            checkpoint_every=checkpoint_every,
            unreadable=unreadable,
        )

    def lookup(self, day: date) -> Optional[ResolutionRecord]:
        key = day.isoformat()
        with self._lock:
            raw_language = self._languages.get(key)
            filename = self._filenames.get(key)
        if raw_language is None or filename is None or not filename.strip():
            return None
        try:
            language = parse_language(raw_language)
        except ValueError:
            logging.debug("Ignoring cached record for %s with language %r", key, raw_language)
            return None
        return ResolutionRecord(language=language, filename=filename)

    def record(self, day: date, language: Language, filename: str) -> None:
        key = day.isoformat()
        with self._lock:
            self._languages[key] = language_label(language)
            self._filenames[key] = filename
            self._unflushed += 1
            if self.checkpoint_every and self._unflushed >= self.checkpoint_every:
                self.flush()

    def flush(self) -> bool:
        """Rewrite both properties files. Returns False (after logging) on I/O errors.

        Nothing is written while a file that failed to load is still in place,
        so a damaged store is left for the operator to repair.
        """
        if self.metadata_dir is None:
            return True
        if self.unreadable:
            logging.warning(
                "Not writing resolution cache to %s: could not load %s earlier",
                self.metadata_dir,
                ", ".join(sorted(self.unreadable)),
            )
            return False
        with self._lock:
            try:
                save_properties(self.metadata_dir / LANGUAGE_PROPERTIES_FILE, self._languages)
                save_properties(self.metadata_dir / FILENAME_PROPERTIES_FILE, self._filenames)
            except OSError as exc:
                logging.warning(
                    "Could not write resolution cache to %s: %s",
                    self.metadata_dir,
                    format_exception_message(exc),
                )
                return False
            self._unflushed = 0
        return True

    def records(self) -> Dict[date, ResolutionRecord]:
        rows: Dict[date, ResolutionRecord] = {}
        with self._lock:
            keys = sorted(set(self._languages) & set(self._filenames))
        for key in keys:
            try:
                day = date.fromisoformat(key)
            except ValueError:
                continue
            record = self.lookup(day)
            if record is not None:
                rows[day] = record
        return rows

    def __len__(self) -> int:
        return len(self.records())

    def __contains__(self, day: object) -> bool:
        return isinstance(day, date) and self.lookup(day) is not None
