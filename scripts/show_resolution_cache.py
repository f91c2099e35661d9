#!/usr/bin/env python3
"""Print the persisted date -> language/filename resolutions from metadata/*.properties."""

from __future__ import annotations

import argparse
import os
from pathlib import Path
from typing import Optional, Sequence

from refugee_flows_catalog import language_label
from resolution_cache import ResolutionCache


def parse_args(argv: Optional[Sequence[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description=__doc__)
    parser.add_argument(
        "--metadata-dir",
        default=os.getenv("METADATA_DIR", "metadata"),
        help="Directory holding language.properties and filename.properties (env: METADATA_DIR).",
    )
    return parser.parse_args(argv)


def main(argv: Optional[Sequence[str]] = None) -> None:
    args = parse_args(argv)
    metadata_dir = Path(args.metadata_dir)
    records = ResolutionCache.load(metadata_dir).records()

    print(f"Metadata directory: {metadata_dir}")
    if not records:
        print("No resolved dates recorded.")
        return

    print("date\tlanguage\tfilename")
    for day, record in records.items():
        print(f"{day.isoformat()}\t{language_label(record.language)}\t{record.filename}")
    print(f"{len(records)} resolved date(s)")


if __name__ == "__main__":
    main()
