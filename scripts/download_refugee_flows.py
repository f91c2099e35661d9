#!/usr/bin/env python3
"""Download the daily refugee flows reports from media.gov.gr for a date range."""

from __future__ import annotations

import argparse
import csv
import json
import sys
import threading
import time
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import asdict, dataclass
from datetime import date, datetime
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Sequence
from urllib.parse import urlparse

import yaml
from tqdm import tqdm

from date_range_input import (
    end_date_arg,
    iter_days,
    parse_end_date,
    parse_start_date,
    prompt_date_range,
    start_date_arg,
)
from document_fetcher import DocumentFetcher
from refugee_flows_candidates import candidates
from refugee_flows_catalog import DEFAULT_URL_PREFIX, LANGUAGE_ORDER, language_label
from refugee_flows_resolver import (
    DEFAULT_OUTPUT_ROOT,
    DEFAULT_REQUEST_INTERVAL_SECONDS,
    SOURCE_CACHE,
    ResolutionOutcome,
    Resolver,
    RetryPolicy,
)
from resolution_cache import ResolutionCache
from run_logging import TeeStream, configure_logging, log_event, utc_now_iso

DEFAULT_METADATA_DIR = "metadata"
DEFAULT_LOGS_DIR = "logs/downloads"
DEFAULT_TIMEOUT_SECONDS = 60.0


@dataclass
class RunStats:
    dates: int = 0
    resolved: int = 0
    resolved_from_cache: int = 0
    resolved_by_search: int = 0
    unresolved: int = 0
    attempts: int = 0
    fetch_errors: int = 0


def _parse_bool(value: object) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        normalized = value.strip().lower()
        if normalized in {"1", "true", "yes", "y", "on"}:
            return True
        if normalized in {"0", "false", "no", "n", "off"}:
            return False
    if isinstance(value, (int, float)):
        return bool(value)
    raise ValueError(f"Cannot parse boolean from value '{value}'.")


def load_config_file(path: Path) -> Dict[str, Any]:
    if not path.exists():
        raise SystemExit(f"Config file not found: {path}")
    suffix = path.suffix.lower()
    raw = path.read_text(encoding="utf-8")
    if suffix in {".yaml", ".yml"}:
        data = yaml.safe_load(raw)
    elif suffix == ".json":
        data = json.loads(raw)
    else:
        raise SystemExit("Unsupported config file extension. Use .yaml/.yml or .json.")
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise SystemExit("Config root must be a mapping/object.")
    return data


def flatten_config(data: Dict[str, Any]) -> Dict[str, Any]:
    flattened: Dict[str, Any] = {}
    for key, value in data.items():
        if isinstance(value, dict):
            for nested_key, nested_value in value.items():
                flattened[f"{key}_{nested_key}"] = nested_value
        else:
            flattened[key] = value
    return flattened


def _coerce_config_date(value: object, key: str, parse: Callable[[str], date]) -> date:
    if isinstance(value, date):
        return value
    if isinstance(value, str):
        try:
            return parse(value)
        except ValueError as exc:
            raise SystemExit(f"Config key '{key}' must be YYYY-MM-DD or a date alias.") from exc
    raise SystemExit(f"Config key '{key}' must be a date string (YYYY-MM-DD).")


def config_to_parser_defaults(config_data: Dict[str, Any]) -> Dict[str, Any]:
    cfg = flatten_config(config_data)
    defaults: Dict[str, Any] = {}
    scalar_map = {
        "outdir": "outdir",
        "download_outdir": "outdir",
        "metadata_dir": "metadata_dir",
        "cache_metadata_dir": "metadata_dir",
        "url_prefix": "url_prefix",
        "remote_url_prefix": "url_prefix",
        "timeout_seconds": "timeout_seconds",
        "network_timeout_seconds": "timeout_seconds",
        "request_interval_seconds": "request_interval_seconds",
        "network_request_interval_seconds": "request_interval_seconds",
        "workers": "workers",
        "download_workers": "workers",
        "checkpoint_every": "checkpoint_every",
        "cache_checkpoint_every": "checkpoint_every",
        "logs_dir": "logs_dir",
        "logging_logs_dir": "logs_dir",
    }
    bool_map = {
        "dry_run": "dry_run",
        "download_dry_run": "dry_run",
        "verbose": "verbose",
        "logging_verbose": "verbose",
    }
    for source_key, target_key in scalar_map.items():
        if source_key in cfg:
            defaults[target_key] = cfg[source_key]
    for source_key, target_key in bool_map.items():
        if source_key in cfg:
            defaults[target_key] = _parse_bool(cfg[source_key])

    for key in ("from_date", "download_from_date"):
        if key in cfg:
            defaults["from_date"] = _coerce_config_date(cfg[key], key, parse_start_date)
            break
    for key in ("to_date", "download_to_date"):
        if key in cfg:
            defaults["to_date"] = _coerce_config_date(cfg[key], key, parse_end_date)
            break
    return defaults


def validate_url_prefix(value: str) -> str:
    parsed = urlparse(value)
    if parsed.scheme not in ("http", "https") or not parsed.netloc:
        raise SystemExit(f"Malformed --url-prefix '{value}'. Expected http(s)://host/path/.")
    if parsed.query or parsed.fragment:
        raise SystemExit(f"--url-prefix must not carry a query or fragment: '{value}'.")
    return value if value.endswith("/") else value + "/"


def run_range(
    days: Sequence[date],
    resolver_factory: Callable[[], Resolver],
    workers: int = 1,
    on_outcome: Optional[Callable[[ResolutionOutcome], None]] = None,
    show_progress: bool = True,
) -> List[ResolutionOutcome]:
    """Resolve every day once and return the outcomes ordered by day.

    With ``workers > 1`` days are spread over a thread pool. Each worker owns one
    resolver (one HTTP session, one pacing delay) and handles its days in
    sequence. ``on_outcome`` always runs on the calling thread.
    """
    outcomes: List[ResolutionOutcome] = []
    created: List[Resolver] = []
    created_lock = threading.Lock()

    def _new_resolver() -> Resolver:
        resolver = resolver_factory()
        with created_lock:
            created.append(resolver)
        return resolver

    def _handle(outcome: ResolutionOutcome) -> None:
        outcomes.append(outcome)
        if on_outcome is not None:
            on_outcome(outcome)

    try:
        if workers <= 1:
            resolver = _new_resolver()
            for day in tqdm(days, desc="Dates", unit="day", disable=not show_progress):
                _handle(resolver.resolve(day))
        else:
            local = threading.local()

            def _resolve(day: date) -> ResolutionOutcome:
                resolver = getattr(local, "resolver", None)
                if resolver is None:
                    resolver = _new_resolver()
                    local.resolver = resolver
                return resolver.resolve(day)

            with ThreadPoolExecutor(max_workers=workers) as pool:
                futures = [pool.submit(_resolve, day) for day in days]
                for future in tqdm(
                    as_completed(futures),
                    total=len(futures),
                    desc="Dates",
                    unit="day",
                    disable=not show_progress,
                ):
                    _handle(future.result())
    finally:
        for resolver in created:
            resolver.fetcher.close()
    outcomes.sort(key=lambda outcome: outcome.day)
    return outcomes


def parse_args(argv: Optional[Sequence[str]] = None) -> argparse.Namespace:
    pre_parser = argparse.ArgumentParser(add_help=False)
    pre_parser.add_argument("--config", help="Path to YAML/JSON config file.")
    pre_args, _ = pre_parser.parse_known_args(argv)
    config_defaults: Dict[str, Any] = {}
    if pre_args.config:
        config_defaults = config_to_parser_defaults(load_config_file(Path(pre_args.config)))

    parser = argparse.ArgumentParser(description=__doc__)
    parser.add_argument("--config", help="Path to YAML/JSON config file.")
    parser.add_argument(
        "--from-date",
        type=start_date_arg,
        default=None,
        help="Start date (YYYY-MM-DD or 'beginning' for 2016-03-21). Prompted for if omitted.",
    )
    parser.add_argument(
        "--to-date",
        type=end_date_arg,
        default=None,
        help="End date, inclusive (YYYY-MM-DD or 'today'). Prompted for if omitted.",
    )
    parser.add_argument(
        "--outdir",
        default=str(DEFAULT_OUTPUT_ROOT),
        help="Root directory for downloaded documents (<outdir>/<year>/<month>/<language>/).",
    )
    parser.add_argument(
        "--metadata-dir",
        default=DEFAULT_METADATA_DIR,
        help="Directory holding language.properties and filename.properties.",
    )
    parser.add_argument("--url-prefix", default=DEFAULT_URL_PREFIX, help="Remote directory the reports live in.")
    parser.add_argument(
        "--request-interval-seconds",
        type=float,
        default=DEFAULT_REQUEST_INTERVAL_SECONDS,
        help="Delay after every HTTP attempt, per worker.",
    )
    parser.add_argument(
        "--timeout-seconds",
        type=float,
        default=DEFAULT_TIMEOUT_SECONDS,
        help="HTTP timeout in seconds (0 disables the timeout).",
    )
    parser.add_argument(
        "--workers",
        type=int,
        default=1,
        help="Number of dates resolved in parallel. Each worker keeps its own request pacing.",
    )
    parser.add_argument(
        "--checkpoint-every",
        type=int,
        default=0,
        help="Also persist the resolution cache after every N new resolutions (0: only at the end).",
    )
    parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Print the candidate URLs for each date without downloading anything.",
    )
    parser.add_argument("--logs-dir", default=DEFAULT_LOGS_DIR, help="Directory where per-run logs are written.")
    parser.add_argument("--verbose", action="store_true", help="Log every HTTP attempt at debug level.")

    if config_defaults:
        parser.set_defaults(**config_defaults)

    return parser.parse_args(argv)


def main(argv: Optional[Sequence[str]] = None) -> None:
    args = parse_args(argv)
    run_started_at = utc_now_iso()
    run_started_monotonic = time.monotonic()
    run_dir = Path(args.logs_dir) / datetime.now().strftime("%Y%m%d_%H%M%S")
    run_dir.mkdir(parents=True, exist_ok=True)
    run_log_path = run_dir / "run.log"
    failures_csv_path = run_dir / "failures.csv"
    summary_json_path = run_dir / "summary.json"

    original_stdout = sys.stdout
    original_stderr = sys.stderr
    run_log_handle = open(run_log_path, "a", encoding="utf-8")
    failures_handle = open(failures_csv_path, "w", encoding="utf-8", newline="")
    failure_writer = csv.DictWriter(failures_handle, fieldnames=("timestamp", "date", "stage", "url", "error"))
    failure_writer.writeheader()
    failures_handle.flush()
    sys.stdout = TeeStream(original_stdout, run_log_handle)
    sys.stderr = TeeStream(original_stderr, run_log_handle)
    configure_logging(args.verbose)

    stats = RunStats()
    unresolved_days: List[str] = []
    summary_status = "completed"
    fatal_error: Optional[str] = None

    def record_failure(*, day: str, stage: str, error: str, url: str = "") -> None:
        failure_writer.writerow(
            {
                "timestamp": datetime.now().astimezone().isoformat(timespec="seconds"),
                "date": day,
                "stage": stage,
                "url": url,
                "error": error,
            }
        )
        failures_handle.flush()

    def on_outcome(outcome: ResolutionOutcome) -> None:
        day = outcome.day.isoformat()
        stats.attempts += outcome.attempts
        stats.fetch_errors += len(outcome.errors)
        for url, error in outcome.errors:
            record_failure(day=day, stage="fetch", url=url, error=error)
        if outcome.resolved and outcome.language is not None:
            stats.resolved += 1
            if outcome.source == SOURCE_CACHE:
                stats.resolved_from_cache += 1
            else:
                stats.resolved_by_search += 1
            log_event(
                "DATE_RESOLVED",
                date=day,
                language=language_label(outcome.language),
                filename=outcome.filename,
                source=outcome.source,
                attempts=outcome.attempts,
                path=outcome.path,
            )
        else:
            stats.unresolved += 1
            unresolved_days.append(day)
            record_failure(day=day, stage="unresolved", error="no candidate matched")
            log_event("DATE_UNRESOLVED", date=day, attempts=outcome.attempts, errors=len(outcome.errors))

    try:
        log_event("RUN_PATHS", run_dir=run_dir, run_log=run_log_path, failure_log=failures_csv_path)
        if args.config:
            log_event("RUN_CONFIG", config=args.config)

        args.url_prefix = validate_url_prefix(args.url_prefix)
        if args.workers < 1:
            raise SystemExit("--workers must be at least 1.")
        if args.request_interval_seconds < 0:
            raise SystemExit("--request-interval-seconds must not be negative.")
        if args.checkpoint_every < 0:
            raise SystemExit("--checkpoint-every must be 0 or a positive integer.")
        if args.from_date is not None and args.to_date is not None:
            if args.from_date > args.to_date:
                raise SystemExit("--from-date must be on or before --to-date.")
        else:
            try:
                args.from_date, args.to_date = prompt_date_range(start=args.from_date, end=args.to_date)
            except EOFError as exc:
                raise SystemExit("No date range entered.") from exc

        days = list(iter_days(args.from_date, args.to_date))
        stats.dates = len(days)
        log_event("DATE_RANGE", from_date=args.from_date.isoformat(), to_date=args.to_date.isoformat(), days=len(days))

        if args.dry_run:
            for day in days:
                for language in LANGUAGE_ORDER:
                    for candidate in candidates(day, language, url_prefix=args.url_prefix):
                        log_event(
                            "CANDIDATE",
                            date=day.isoformat(),
                            language=language_label(language),
                            url=candidate.url,
                        )
            return

        cache = ResolutionCache.load(Path(args.metadata_dir), checkpoint_every=args.checkpoint_every)
        log_event("CACHE_LOADED", metadata_dir=args.metadata_dir, records=len(cache))

        retry_policy = RetryPolicy(delay_seconds=args.request_interval_seconds)
        output_root = Path(args.outdir)

        def resolver_factory() -> Resolver:
            return Resolver(
                fetcher=DocumentFetcher(timeout_seconds=args.timeout_seconds),
                cache=cache,
                output_root=output_root,
                url_prefix=args.url_prefix,
                retry_policy=retry_policy,
            )

        run_range(days, resolver_factory, workers=args.workers, on_outcome=on_outcome)

        flushed = cache.flush()
        log_event("CACHE_FLUSHED", ok=flushed, metadata_dir=args.metadata_dir, records=len(cache))
        log_event("RUN_SUMMARY", **asdict(stats))
    except SystemExit as exc:
        summary_status = "failed"
        fatal_error = str(exc)
        record_failure(day="RUN", stage="fatal", error=fatal_error)
        raise
    except Exception as exc:  # noqa: BLE001
        summary_status = "failed"
        fatal_error = f"{type(exc).__name__}: {exc}"
        record_failure(day="RUN", stage="fatal", error=fatal_error)
        raise
    finally:
        elapsed_seconds = time.monotonic() - run_started_monotonic
        safe_args: Dict[str, Any] = {}
        for key, value in vars(args).items():
            if isinstance(value, date):
                safe_args[key] = value.isoformat()
            else:
                safe_args[key] = value
        run_summary = {
            "started_at": run_started_at,
            "finished_at": utc_now_iso(),
            "status": summary_status,
            "fatal_error": fatal_error,
            "elapsed_seconds": round(elapsed_seconds, 3),
            "run_dir": str(run_dir),
            "run_log": str(run_log_path),
            "failures_csv": str(failures_csv_path),
            "summary_json": str(summary_json_path),
            "args": safe_args,
            "stats": asdict(stats),
            "unresolved_dates": unresolved_days,
        }
        try:
            summary_json_path.write_text(json.dumps(run_summary, indent=2), encoding="utf-8")
            log_event("SUMMARY_WRITTEN", path=summary_json_path)
        except Exception as exc:  # noqa: BLE001
            log_event("SUMMARY_WRITE_WARN", error=str(exc))
        finally:
            sys.stdout = original_stdout
            sys.stderr = original_stderr
            failures_handle.close()
            run_log_handle.close()


if __name__ == "__main__":
    main()
