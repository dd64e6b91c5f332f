"""
Tests for jump detection, pair extraction and incident clustering.
"""

import pytest

from evlog_anomaly.anomaly import (
    BACKWARD_JUMP_DELTA,
    FORWARD_JUMP_DELTA,
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
from evlog_anomaly.events import FileRef, LogEvent, LogSource

BACK = AnomalyType.BACKWARD_JUMP
FWD = AnomalyType.FORWARD_JUMP


def ev(i: int, created: int, written: int | None = None) -> LogEvent:
    return LogEvent(i, created, created if written is None else written)


def window(real_start: int, anomaly_start: int, anomaly_end: int, real_end: int) -> AnomalyPair:
    """Pair whose created and written axes share the same bounds."""
    return AnomalyPair(
        Anomaly(BACK, ev(1, real_start), ev(2, anomaly_start)),
        Anomaly(FWD, ev(3, anomaly_end), ev(4, real_end)),
    )


def tagged(pair: AnomalyPair, name: str = "System.evt") -> LoggedAnomaly:
    return LoggedAnomaly(LogSource("/WINDOWS/system32/config/", name), pair)


# =============================================================================
# Jump detector
# =============================================================================


class TestDetectAnomalies:
    """Adjacent-record timestamp jumps."""

    def test_backward_jump(self):
        anomalies = detect_anomalies([ev(1, 1000), ev(2, 1000 - 301)])
        assert [a.kind for a in anomalies] == [BACK]

    def test_forward_jump(self):
        anomalies = detect_anomalies([ev(1, 1000), ev(2, 1000 + 3601)])
        assert [a.kind for a in anomalies] == [FWD]

    def test_small_movement_is_normal(self):
        assert detect_anomalies([ev(1, 1000), ev(2, 1100)]) == []

    def test_thresholds_are_exclusive(self):
        assert detect_anomalies([ev(1, 1000), ev(2, 1000 - BACKWARD_JUMP_DELTA)]) == []
        assert detect_anomalies([ev(1, 1000), ev(2, 1000 + FORWARD_JUMP_DELTA)]) == []

    def test_identical_timestamps_are_normal(self):
        assert detect_anomalies([ev(1, 1000), ev(2, 1000), ev(3, 1000)]) == []

    @pytest.mark.parametrize("events", [[], [ev(1, 1000)]])
    def test_zero_or_one_event(self, events):
        assert detect_anomalies(events) == []

    def test_written_axis_alone_triggers(self):
        anomalies = detect_anomalies([ev(1, 1000, 1000), ev(2, 1000, 500)])
        assert [a.kind for a in anomalies] == [BACK]

    def test_backward_takes_priority(self):
        # created jumps forward, written jumps backward
        anomalies = detect_anomalies([ev(1, 1000, 10000), ev(2, 10000, 1000)])
        assert [a.kind for a in anomalies] == [BACK]

    def test_before_and_after_are_snapshots(self):
        events = [ev(1, 1000), ev(2, 100)]
        anomaly = detect_anomalies(events)[0]
        events[0].created = 0
        assert anomaly.before.created == 1000
        assert anomaly.before is not events[0]

    def test_one_anomaly_per_adjacent_pair(self):
        events = [ev(1, 10000), ev(2, 100), ev(3, 50000), ev(4, 50010)]
        anomalies = detect_anomalies(events)
        assert [a.kind for a in anomalies] == [BACK, FWD]
        assert (anomalies[0].before.event_id, anomalies[0].after.event_id) == (1, 2)
        assert (anomalies[1].before.event_id, anomalies[1].after.event_id) == (2, 3)


# =============================================================================
# Pair extractor
# =============================================================================


def _anomaly(kind: AnomalyType, n: int) -> Anomaly:
    return Anomaly(kind, ev(n, n * 10), ev(n + 1, n * 10 + 1))


class TestExtractPairs:
    """Adjacent opposite-type anomalies form windows."""

    def test_alternating_sequence(self):
        a = [_anomaly(BACK, 0), _anomaly(FWD, 1), _anomaly(BACK, 2)]
        pairs = extract_pairs(a)
        assert len(pairs) == 2
        assert (pairs[0].opening.kind, pairs[0].closing.kind) == (BACK, FWD)
        assert (pairs[1].opening.kind, pairs[1].closing.kind) == (FWD, BACK)
        assert pairs[0].closing == pairs[1].opening

    def test_same_type_never_pairs(self):
        assert extract_pairs([_anomaly(BACK, 0), _anomaly(BACK, 1)]) == []

    def test_empty_and_single(self):
        assert extract_pairs([]) == []
        assert extract_pairs([_anomaly(FWD, 0)]) == []

    def test_pairs_hold_copies(self):
        a = [_anomaly(BACK, 0), _anomaly(FWD, 1)]
        pair = extract_pairs(a)[0]
        a[0].after.created = -1
        assert pair.opening.after.created == 1

    def test_intervals(self):
        pair = window(100, 50, 80, 200)
        assert pair.real_interval("created") == (100, 200)
        assert pair.anomaly_interval("written") == (50, 80)
        assert pair.times()["realendwritten"] == 200
        assert list(pair.times())[:2] == ["realstartcreated", "realstartwritten"]


# =============================================================================
# Overlap test
# =============================================================================


class TestPairsIntersect:
    """Inclusive overlap of anomalous intervals on either axis."""

    def test_overlap(self):
        assert pairs_intersect(window(0, 10, 20, 30), window(0, 15, 25, 30))

    def test_containment(self):
        assert pairs_intersect(window(0, 10, 40, 50), window(0, 15, 25, 30))

    def test_boundary_touch_counts(self):
        assert pairs_intersect(window(0, 10, 20, 30), window(0, 20, 25, 30))

    def test_disjoint(self):
        assert not pairs_intersect(window(0, 10, 20, 30), window(0, 21, 25, 30))

    def test_symmetric(self):
        a, b = window(0, 10, 20, 30), window(0, 18, 40, 50)
        assert pairs_intersect(a, b) == pairs_intersect(b, a)

    def test_either_axis(self):
        a = AnomalyPair(Anomaly(BACK, ev(1, 0, 0), ev(2, 10, 1000)), Anomaly(FWD, ev(3, 20, 1100), ev(4, 30, 1200)))
        b = AnomalyPair(Anomaly(BACK, ev(1, 0, 0), ev(2, 500, 1050)), Anomaly(FWD, ev(3, 600, 1060), ev(4, 700, 1200)))
        # created axes disjoint, written axes overlap
        assert pairs_intersect(a, b)


# =============================================================================
# Incident clusterer
# =============================================================================


class TestIncidentClusterer:
    """First-match, single-pass clustering with tightening/widening anchors."""

    def test_same_window_twice(self):
        pair = window(100, 50, 80, 200)
        clusterer = IncidentClusterer()
        clusterer.add(tagged(pair))
        before = clusterer.collections[0].anchor.times()
        clusterer.add(tagged(pair))
        assert len(clusterer.collections) == 1
        assert len(clusterer.collections[0].logs) == 2
        assert clusterer.collections[0].anchor.times() == before

    def test_disjoint_windows_separate(self):
        collections = cluster_incidents([tagged(window(0, 10, 20, 30)), tagged(window(100, 110, 120, 130))])
        assert len(collections) == 2

    def test_anchor_bounds(self):
        a = window(100, 50, 80, 200)
        b = window(120, 60, 90, 180)
        collection = cluster_incidents([tagged(a, "A.evt"), tagged(b, "B.evtx")])[0]
        times = collection.anchor.times()
        # real interval is the intersection
        assert times["realstartcreated"] == 120
        assert times["realendcreated"] == 180
        # anomalous interval is the union
        assert times["anomalystartcreated"] == 50
        assert times["anomalyendcreated"] == 90
        assert times["anomalyendwritten"] == 90

    def test_members_not_mutated_by_merges(self):
        a = window(100, 50, 80, 200)
        b = window(120, 60, 90, 180)
        collection = cluster_incidents([tagged(a), tagged(b)])[0]
        assert collection.logs[0].pair.times() == window(100, 50, 80, 200).times()
        assert collection.anchor is not collection.logs[0].pair

    def test_order_dependence(self):
        a = window(0, 10, 20, 100)
        b = window(0, 30, 40, 100)
        c = window(0, 18, 32, 100)
        assert pairs_intersect(a, c) and pairs_intersect(b, c) and not pairs_intersect(a, b)

        collections = cluster_incidents([tagged(a, "A"), tagged(b, "B"), tagged(c, "C")])
        assert len(collections) == 2
        assert [log.source.name for log in collections[0].logs] == ["A", "C"]
        assert [log.source.name for log in collections[1].logs] == ["B"]

    def test_widened_anchor_absorbs_later_window(self):
        a = window(0, 10, 20, 100)
        c = window(0, 18, 32, 100)
        b = window(0, 30, 40, 100)
        # After A+C the anchor spans 10..32, so B now overlaps it
        collections = cluster_incidents([tagged(a), tagged(c), tagged(b)])
        assert len(collections) == 1
        assert len(collections[0].logs) == 3

    def test_first_match_wins(self):
        first = window(0, 10, 20, 100)
        second = window(0, 30, 40, 100)
        bridge = window(0, 15, 35, 100)
        clusterer = IncidentClusterer()
        clusterer.extend([tagged(first), tagged(second)])
        target = clusterer.add(tagged(bridge))
        assert target is clusterer.collections[0]
        assert len(clusterer.collections[1].logs) == 1

    def test_add_file(self):
        collection = AnomalyCollection(anchor=window(0, 10, 20, 30))
        collection.add_file(FileRef("/Users/x/", "evil.exe"))
        assert collection.files[0].full_path() == "/Users/x/evil.exe"
