import itertools
import random

import pytest

from clinic_core.audit.budget import Deadline
from clinic_core.audit.exceptions import ReportTimeout
from clinic_core.audit.sessions import (
    SessionStrategy,
    cluster,
    coalesce_bursts,
    merge_windows,
    session_sort_key,
)


def _bounds(sessions):
    return [((s.start - sessions[0].start).total_seconds(), (s.end - sessions[0].start).total_seconds()) for s in sessions]


def test_burst_splits_on_gap_larger_than_threshold(record):
    events = [record(t) for t in (0, 2, 5, 40, 42, 44, 46)]

    sessions = coalesce_bursts(events, gap=30)

    assert len(sessions) == 2
    assert _bounds(sessions) == [(0.0, 5.0), (40.0, 46.0)]
    assert [s.event_count for s in sessions] == [3, 4]


def test_burst_gap_equal_to_threshold_stays_in_session(record):
    sessions = coalesce_bursts([record(0), record(30), record(61)], gap=30)

    assert [s.event_count for s in sessions] == [2, 1]


def test_burst_intra_and_inter_session_gaps(record):
    rng = random.Random(7)
    t = 0.0
    events = []
    for _ in range(200):
        t += rng.choice([1, 5, 29, 30, 31, 90])
        events.append(record(t))

    sessions = coalesce_bursts(events, gap=30)
    by_id = {e.id: e for e in events}

    for s in sessions:
        stamps = [by_id[eid].timestamp for eid in s.member_event_ids]
        gaps = [(b - a).total_seconds() for a, b in zip(stamps, stamps[1:])]
        assert all(g <= 30 for g in gaps)

    for a, b in zip(sessions, sessions[1:]):
        assert (b.start - a.end).total_seconds() > 30


def test_sessions_are_keyed_by_actor_and_resource(record):
    events = [
        record(0, actor="U1", resource="P1"),
        record(1, actor="U2", resource="P1"),
        record(2, actor="U1", resource="P2"),
        record(3, actor="U1", resource="P1"),
    ]

    sessions = coalesce_bursts(events, gap=30)

    keys = sorted((s.actor_id, s.resource_id, s.event_count) for s in sessions)
    assert keys == [("U1", "P1", 2), ("U1", "P2", 1), ("U2", "P1", 1)]


def test_window_merge_groups_events_within_window(record):
    events = [record(0), record(200), record(450), record(800)]

    sessions = merge_windows(events, window=300)

    assert _bounds(sessions) == [(0.0, 450.0), (800.0, 800.0)]
    assert sessions[0].event_count == 3


def test_window_merge_is_order_independent(record):
    rng = random.Random(11)
    events = [
        record(rng.uniform(0, 7200), actor=rng.choice(["U1", "U2"]), resource=rng.choice(["P1", "P2", "P3"]))
        for _ in range(150)
    ]

    def partition(evts):
        return [(s.actor_id, s.resource_id, s.start, s.end, frozenset(s.member_event_ids)) for s in merge_windows(evts, window=300)]

    expected = partition(events)
    for _ in range(5):
        shuffled = events[:]
        rng.shuffle(shuffled)
        assert partition(shuffled) == expected


def test_burst_coalescing_is_order_independent(record):
    rng = random.Random(23)
    # Whole seconds over a short span, so many events share a timestamp.
    events = [
        record(
            rng.randint(0, 400),
            actor=rng.choice(["U1", "U2", "U3", None]),
            resource=rng.choice(["P1", "P2", "P3", "P4"]),
            action=rng.choice(["VIEW_DETAILED", "UPDATE"]),
        )
        for _ in range(200)
    ]

    def partition(evts):
        return [
            (s.actor_id, s.resource_id, s.start, s.end, frozenset(s.member_event_ids), s.access_types)
            for s in coalesce_bursts(evts, gap=20)
        ]

    expected = partition(events)
    assert sum(len(p[4]) for p in expected) == len(events)
    for _ in range(8):
        shuffled = events[:]
        rng.shuffle(shuffled)
        assert partition(shuffled) == expected
        assert partition(list(reversed(shuffled))) == expected


def test_session_intervals_never_overlap_for_same_key(record):
    rng = random.Random(3)
    events = [record(rng.uniform(0, 3600), resource=rng.choice(["P1", "P2"])) for _ in range(100)]

    sessions = merge_windows(events, window=120)

    for key, group in itertools.groupby(sorted(sessions, key=lambda s: (s.resource_id, s.start)), key=lambda s: s.resource_id):
        group = list(group)
        for a, b in zip(group, group[1:]):
            assert a.end < b.start


def test_session_carries_access_types_and_client_details(record):
    events = [
        record(0, action="VIEW_LIST", ip="10.0.0.1", user_agent="ua-1"),
        record(5, action="VIEW_DETAILED", ip="10.0.0.2", user_agent="ua-1"),
    ]

    (session,) = merge_windows(events, window=300)

    assert session.access_types == frozenset({"VIEW_LIST", "VIEW_DETAILED"})
    assert session.ip_addresses == frozenset({"10.0.0.1", "10.0.0.2"})
    assert session.user_agents == frozenset({"ua-1"})
    assert session.member_event_ids == tuple(e.id for e in events)


def test_output_is_sorted_by_start_actor_resource(record):
    events = [
        record(10, actor="U2", resource="P1"),
        record(10, actor="U1", resource="P2"),
        record(10, actor="U1", resource="P1"),
        record(0, actor="U3", resource="P9"),
    ]

    sessions = coalesce_bursts(events, gap=30)

    assert sessions == sorted(sessions, key=session_sort_key)
    assert [(s.actor_id, s.resource_id) for s in sessions] == [("U3", "P9"), ("U1", "P1"), ("U1", "P2"), ("U2", "P1")]


def test_presorted_input_out_of_order_raises(record):
    events = [record(10), record(0)]

    with pytest.raises(ValueError):
        merge_windows(iter(events), presorted=True)


def test_presorted_stream_matches_sorted_result(record):
    events = sorted((record(t) for t in (0, 100, 1000, 1100, 5000)), key=lambda e: (e.timestamp, e.id))

    assert merge_windows(iter(events), window=300, presorted=True) == merge_windows(list(reversed(events)), window=300)


def test_many_interleaved_keys_flush_correctly(record):
    events = []
    for i in range(50):
        for k in range(10):
            events.append(record(i * 100 + k, resource=f"P{k}"))

    sessions = coalesce_bursts(events, gap=30)

    # every 100s each key gets one event: 50 sessions per key
    assert len(sessions) == 500
    assert all(s.event_count == 1 for s in sessions)


def test_cluster_selects_strategy_by_name(record):
    events = [record(0), record(60)]

    assert len(cluster(events, SessionStrategy.BURST)) == 2
    assert len(cluster(events, SessionStrategy.WINDOW)) == 1
    assert len(cluster(events, SessionStrategy.WINDOW, span=30)) == 2


def test_cluster_rejects_unknown_strategy(record):
    with pytest.raises(ValueError):
        cluster([record(0)], "sliding")


def test_negative_span_is_rejected(record):
    with pytest.raises(ValueError):
        coalesce_bursts([record(0)], gap=-1)


def test_deadline_aborts_clustering(record):
    ticks = itertools.count()
    deadline = Deadline(3, clock=lambda: next(ticks))

    with pytest.raises(ReportTimeout):
        merge_windows([record(t) for t in range(10)], deadline=deadline)


def test_empty_input_yields_no_sessions():
    assert coalesce_bursts([]) == []
    assert merge_windows([]) == []
