"""
Scan driver: find EVT/EVTX logs, decode each one, detect jump anomalies and
pairs per file, then cluster every file's pairs into incidents.

Decode errors are scoped to one file: the file is recorded as a failure and
the scan moves on. Clustering always sees files in discovery order, even
when decoding runs on a thread pool.
"""

import logging
import os
from collections.abc import Callable, Iterable, Iterator
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from pathlib import Path

from . import evt_parser, evtx_parser
from .anomaly import (
    AnomalyCollection,
    AnomalyPair,
    IncidentClusterer,
    LoggedAnomaly,
    detect_anomalies,
    extract_pairs,
)
from .byte_source import ByteSource, FileByteSource
from .config import ScanConfig
from .errors import LogParseError
from .events import LogEvent, LogSource

logger = logging.getLogger(__name__)

Parser = Callable[[ByteSource], list[LogEvent]]


@dataclass
class LogResult:
    """Per-file outcome of decode -> detect -> pair."""
    source: LogSource
    log_format: str
    event_count: int
    anomaly_count: int
    pairs: list[AnomalyPair]

    def logged(self) -> list[LoggedAnomaly]:
        return [LoggedAnomaly(self.source, pair) for pair in self.pairs]


@dataclass
class FileFailure:
    source: LogSource
    error_type: str
    message: str


@dataclass
class ScanResult:
    collections: list[AnomalyCollection] = field(default_factory=list)
    logs: list[LogResult] = field(default_factory=list)
    failures: list[FileFailure] = field(default_factory=list)

    def sorted_collections(self) -> list[AnomalyCollection]:
        """Incidents with the most member windows first."""
        return sorted(self.collections, key=lambda c: len(c.logs), reverse=True)


def has_ending(name: str, ending: str) -> bool:
    """Case-insensitive suffix match; the name must be longer than the suffix."""
    return len(name) > len(ending) and name.lower().endswith(ending.lower())


def select_parser(name: str, config: ScanConfig | None = None) -> tuple[str, Parser] | None:
    """Pick the decoder for a file name, or None if it is not a candidate log."""
    config = config or ScanConfig()
    if has_ending(name, config.evtx_suffix):
        return evtx_parser.EXTENSION, evtx_parser.parse_evtx
    if has_ending(name, config.evt_suffix):
        return evt_parser.EXTENSION, evt_parser.parse_evt
    return None


def process_log(source: LogSource, data: ByteSource, log_format: str, parser: Parser) -> LogResult:
    """Run one file through decode, jump detection and pair extraction."""
    events = parser(data)
    logger.debug("%d events found in %s", len(events), source.full_path())
    anomalies = detect_anomalies(events)
    if logger.isEnabledFor(logging.DEBUG):
        for a in anomalies:
            logger.debug("  %s jump: %s -> %s", a.kind.value, a.before.created_iso(), a.after.created_iso())
    pairs = extract_pairs(anomalies)
    if pairs:
        logger.debug("%d anomalous pairs found in %s", len(pairs), source.full_path())
    return LogResult(source, log_format, len(events), len(anomalies), pairs)


def _source_for(path: Path) -> LogSource:
    return LogSource(path=str(path.parent) + os.sep, name=path.name)


def iter_candidate_logs(roots: Iterable[Path | str], config: ScanConfig | None = None) -> Iterator[Path]:
    """Yield candidate log files under each root in a stable (sorted) order."""
    config = config or ScanConfig()
    for root in roots:
        root = Path(root)
        if root.is_file():
            if select_parser(root.name, config):
                yield root
            continue
        for dirpath, dirnames, filenames in os.walk(root, followlinks=config.follow_symlinks):
            dirnames.sort()
            for name in sorted(filenames):
                if select_parser(name, config):
                    yield Path(dirpath) / name


def _analyze_path(path: Path, config: ScanConfig) -> LogResult | FileFailure:
    source = _source_for(path)
    log_format, parser = select_parser(path.name, config)
    try:
        with FileByteSource.open(path) as data:
            return process_log(source, data, log_format, parser)
    except (LogParseError, OSError) as e:
        logger.warning("Failed to parse %s: %s", path, e)
        return FileFailure(source, type(e).__name__, str(e))


def _analyze_source(source: LogSource, data: ByteSource, config: ScanConfig) -> LogResult | FileFailure:
    selected = select_parser(source.name, config)
    if selected is None:
        return FileFailure(source, "UnsupportedLog", f"no decoder for {source.name}")
    log_format, parser = selected
    try:
        return process_log(source, data, log_format, parser)
    except (LogParseError, OSError) as e:
        logger.warning("Failed to parse %s: %s", source.full_path(), e)
        return FileFailure(source, type(e).__name__, str(e))


def _collect(outcomes: Iterable[LogResult | FileFailure]) -> ScanResult:
    result = ScanResult()
    clusterer = IncidentClusterer()
    for outcome in outcomes:
        if isinstance(outcome, FileFailure):
            result.failures.append(outcome)
            continue
        result.logs.append(outcome)
        clusterer.extend(outcome.logged())
    result.collections = clusterer.collections
    logger.info("Scanned %d logs (%d failed): %d incidents",
                len(result.logs) + len(result.failures), len(result.failures), len(result.collections))
    return result


def scan_sources(
    sources: Iterable[tuple[LogSource, ByteSource]],
    config: ScanConfig | None = None,
) -> ScanResult:
    """Scan logs supplied by an external enumeration layer (e.g. a disk image reader)."""
    config = config or ScanConfig()
    return _collect(_analyze_source(src, data, config) for src, data in sources)


def scan_logs(roots: Iterable[Path | str], config: ScanConfig | None = None) -> ScanResult:
    """Find and scan every EVT/EVTX file under the given roots."""
    config = config or ScanConfig()
    paths = list(iter_candidate_logs(roots, config))
    logger.info("Found %d candidate logs", len(paths))
    if config.workers > 1 and len(paths) > 1:
        with ThreadPoolExecutor(max_workers=config.workers) as pool:
            # map() preserves input order
            outcomes = list(pool.map(lambda p: _analyze_path(p, config), paths))
    else:
        outcomes = (_analyze_path(p, config) for p in paths)
    return _collect(outcomes)
