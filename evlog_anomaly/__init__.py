"""Event Log Anomaly Finder: timestamp tampering detection for Windows EVT/EVTX logs."""

from .anomaly import (
    Anomaly,
    AnomalyCollection,
    AnomalyPair,
    AnomalyType,
    IncidentClusterer,
    LoggedAnomaly,
    cluster_incidents,
    detect_anomalies,
    extract_pairs,
    pairs_intersect,
)
from .byte_source import ByteSource, BytesByteSource, FileByteSource
from .errors import FormatError, LogParseError, TruncatedReadError
from .events import FileRef, LogEvent, LogSource, filetime_to_unix
from .evt_parser import parse_evt
from .evtx_parser import parse_evtx
from .log_processor import ScanResult, scan_logs, scan_sources

__version__ = "0.1.0"
