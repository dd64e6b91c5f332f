"""
Timestamp-jump detection and cross-log clustering.

Per log file: adjacent events whose timestamps run backward by more than
BACKWARD_JUMP_DELTA or forward by more than FORWARD_JUMP_DELTA are flagged;
adjacent opposite-type jumps form an AnomalyPair (a suspicious window).
Across files: windows whose anomalous intervals overlap are merged into
AnomalyCollection incidents in a single pass.
"""

import logging
from collections.abc import Iterable
from dataclasses import dataclass, field
from enum import Enum

from .events import FileRef, LogEvent, LogSource

logger = logging.getLogger(__name__)

# Seconds of tolerated clock movement between adjacent records
FORWARD_JUMP_DELTA = 3600
BACKWARD_JUMP_DELTA = 300

_AXES = ("created", "written")


class AnomalyType(Enum):
    BACKWARD_JUMP = "backward"
    FORWARD_JUMP = "forward"


@dataclass
class Anomaly:
    """One timestamp jump between two adjacent records (before -> after)."""
    kind: AnomalyType
    before: LogEvent
    after: LogEvent

    def copy(self) -> "Anomaly":
        return Anomaly(self.kind, self.before.copy(), self.after.copy())


@dataclass
class AnomalyPair:
    """
    Window bounded by two opposite-type jumps.

    Real interval:      [opening.before, closing.after]  (last/first trusted records)
    Anomalous interval: [opening.after, closing.before]  (the out-of-order span)
    """
    opening: Anomaly
    closing: Anomaly

    def copy(self) -> "AnomalyPair":
        return AnomalyPair(self.opening.copy(), self.closing.copy())

    def anomaly_interval(self, axis: str) -> tuple[int, int]:
        return getattr(self.opening.after, axis), getattr(self.closing.before, axis)

    def real_interval(self, axis: str) -> tuple[int, int]:
        return getattr(self.opening.before, axis), getattr(self.closing.after, axis)

    def times(self) -> dict[str, int]:
        """The eight reported bounds, keyed as in the XML report."""
        return {
            "realstartcreated": self.opening.before.created,
            "realstartwritten": self.opening.before.written,
            "realendcreated": self.closing.after.created,
            "realendwritten": self.closing.after.written,
            "anomalystartcreated": self.opening.after.created,
            "anomalystartwritten": self.opening.after.written,
            "anomalyendcreated": self.closing.before.created,
            "anomalyendwritten": self.closing.before.written,
        }


@dataclass
class LoggedAnomaly:
    """AnomalyPair tagged with the log file it came from."""
    source: LogSource
    pair: AnomalyPair


@dataclass
class AnomalyCollection:
    """
    Incident: windows from any number of logs whose anomalous intervals overlap.
    `anchor` is owned by the collection; its real interval narrows to the
    intersection and its anomalous interval widens to the union of its members.
    """
    anchor: AnomalyPair
    logs: list[LoggedAnomaly] = field(default_factory=list)
    files: list[FileRef] = field(default_factory=list)

    def add_log(self, log: LoggedAnomaly) -> None:
        self.logs.append(log)
        p = log.pair
        a = self.anchor
        for axis in _AXES:
            # real interval tightens
            _set_max(a.opening.before, p.opening.before, axis)
            _set_min(a.closing.after, p.closing.after, axis)
            # anomalous interval widens
            _set_min(a.opening.after, p.opening.after, axis)
            _set_max(a.closing.before, p.closing.before, axis)

    def add_file(self, file: FileRef) -> None:
        self.files.append(file)


def _set_max(target: LogEvent, other: LogEvent, axis: str) -> None:
    if getattr(other, axis) > getattr(target, axis):
        setattr(target, axis, getattr(other, axis))


def _set_min(target: LogEvent, other: LogEvent, axis: str) -> None:
    if getattr(other, axis) < getattr(target, axis):
        setattr(target, axis, getattr(other, axis))


def detect_anomalies(events: list[LogEvent]) -> list[Anomaly]:
    """
    Compare each record with its predecessor (on-disk order).
    Backward jumps take priority; at most one anomaly per adjacent pair.
    """
    anomalies: list[Anomaly] = []
    for previous, nxt in zip(events, events[1:]):
        if (nxt.created + BACKWARD_JUMP_DELTA < previous.created
                or nxt.written + BACKWARD_JUMP_DELTA < previous.written):
            kind = AnomalyType.BACKWARD_JUMP
        elif (nxt.created - FORWARD_JUMP_DELTA > previous.created
                or nxt.written - FORWARD_JUMP_DELTA > previous.written):
            kind = AnomalyType.FORWARD_JUMP
        else:
            continue
        anomalies.append(Anomaly(kind, previous.copy(), nxt.copy()))
    return anomalies


def extract_pairs(anomalies: list[Anomaly]) -> list[AnomalyPair]:
    """Pair each anomaly with its predecessor when their types differ."""
    return [
        AnomalyPair(previous.copy(), nxt.copy())
        for previous, nxt in zip(anomalies, anomalies[1:])
        if previous.kind != nxt.kind
    ]


def pairs_intersect(a: AnomalyPair, b: AnomalyPair) -> bool:
    """Inclusive overlap of the anomalous intervals on the created or the written axis."""
    for axis in _AXES:
        a_start, a_end = a.anomaly_interval(axis)
        b_start, b_end = b.anomaly_interval(axis)
        if a_start <= b_end and b_start <= a_end:
            return True
    return False


class IncidentClusterer:
    """
    Single-pass, first-match clustering. Each window joins the first existing
    collection whose anchor it overlaps, else starts a new one. Not a
    transitive closure: results depend on insertion order.
    """

    def __init__(self) -> None:
        self.collections: list[AnomalyCollection] = []

    def add(self, log: LoggedAnomaly) -> AnomalyCollection:
        for collection in self.collections:
            if pairs_intersect(log.pair, collection.anchor):
                collection.add_log(log)
                return collection
        collection = AnomalyCollection(anchor=log.pair.copy())
        collection.add_log(log)
        self.collections.append(collection)
        logger.debug("New incident #%d from %s", len(self.collections), log.source.full_path())
        return collection

    def extend(self, logs: Iterable[LoggedAnomaly]) -> None:
        for log in logs:
            self.add(log)


def cluster_incidents(logs: Iterable[LoggedAnomaly]) -> list[AnomalyCollection]:
    clusterer = IncidentClusterer()
    clusterer.extend(logs)
    return clusterer.collections
