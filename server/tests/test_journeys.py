"""Tests for journey segmentation between anchor visits."""

from journeys import build_journey, journey_confidence, segment_journeys, split_by_mode
from processing import detect_visits, filter_by_accuracy, smooth_pings
from scoring import select_visits
from tests.ping_fixtures import DAY_TRACE, as_raw_pings, make_ping, make_visit


def _ids(segments):
    return [[p.id for p in seg] for seg in segments]


class TestSplitByMode:
    def test_mode_switch_starts_new_segment(self):
        pings = [
            make_ping("w1", 12, 0, 0, motion="walking"),
            make_ping("w2", 14, 100, 0, motion="walking"),
            make_ping("a1", 20, 600, 0, motion="automotive"),
            make_ping("a2", 30, 5000, 0, motion="automotive"),
            make_ping("w3", 50, 9000, 0, motion="walking"),
        ]
        assert _ids(split_by_mode(pings)) == [["w1", "w2"], ["a1", "a2"], ["w3"]]

    def test_still_joins_open_segment(self):
        pings = [
            make_ping("s0", 11, 0, 0, motion="still"),
            make_ping("w1", 12, 50, 0, motion="walking"),
            make_ping("s1", 14, 60, 0, motion="still"),
            make_ping("u1", 15, 70, 0, motion="unknown"),
            make_ping("w2", 16, 150, 0, motion="walking"),
        ]
        assert _ids(split_by_mode(pings)) == [["w1", "s1", "u1", "w2"]]

    def test_no_active_pings_no_segments(self):
        pings = [make_ping("s0", 11, 0, 0, motion="still"), make_ping("u0", 12, 0, 0, motion="unknown")]
        assert split_by_mode(pings) == []


class TestBuildJourney:
    def test_proportions_and_primary(self):
        home = make_visit("home", 0, 10)
        cafe = make_visit("cafe", 30, 40)
        segment = [
            make_ping("w1", 12, 0, 0, motion="walking"),
            make_ping("s1", 14, 100, 0, motion="still"),
            make_ping("w2", 16, 200, 0, motion="walking"),
        ]
        journey = build_journey(segment, home, cafe)
        assert journey.id == "w1"
        assert journey.member_ping_ids == ("w1", "s1", "w2")
        assert journey.primary_transport == "walking"
        assert journey.transport_proportions == {"walking": 0.67, "still": 0.33}
        assert (journey.from_visit_id, journey.to_visit_id) == ("home", "cafe")
        assert journey.duration_s == 240
        assert journey.ping_count == 3
        assert not journey.is_synthetic

    def test_plausible_walk_is_high(self):
        home, cafe = make_visit("home", 0, 10), make_visit("cafe", 30, 40)
        segment = [make_ping("w1", 12, 0, 0, motion="walking"), make_ping("w2", 22, 500, 0, motion="walking")]
        assert build_journey(segment, home, cafe).confidence == "high"

    def test_implausible_speed_is_penalised(self):
        # 5 km in 10 minutes on foot
        home, cafe = make_visit("home", 0, 10), make_visit("cafe", 30, 40)
        segment = [make_ping("w1", 12, 0, 0, motion="walking"), make_ping("w2", 22, 5000, 0, motion="walking")]
        assert build_journey(segment, home, cafe).confidence == "low"

    def test_anchor_confidence_contributes(self):
        segment = [make_ping("w1", 12, 0, 0, motion="walking"), make_ping("w2", 22, 500, 0, motion="walking")]
        high = make_visit("a", 0, 10, confidence="high")
        medium = make_visit("b", 30, 40, confidence="medium")
        proportions = {"walking": 1.0}
        # 0.40 + 0.14 + 0.2075 = 0.7475
        assert journey_confidence(segment, "walking", proportions, 600, high, medium) == "medium"
        assert journey_confidence(segment, "walking", proportions, 600, high, high) == "high"

    def test_zero_duration_counts_as_dense(self):
        home, cafe = make_visit("home", 0, 10), make_visit("cafe", 30, 40)
        journey = build_journey([make_ping("c1", 15, 0, 0, motion="cycling")], home, cafe)
        assert journey.duration_s == 0
        assert journey.confidence == "high"


class TestSegmentJourneys:
    def test_one_journey_per_mode_run(self):
        a, b = make_visit("A", 0, 10), make_visit("B", 60, 70)
        pings = [
            make_ping("w1", 12, 0, 0, motion="walking"),
            make_ping("w2", 14, 100, 0, motion="walking"),
            make_ping("a1", 20, 600, 0, motion="automotive"),
            make_ping("a2", 30, 5000, 0, motion="automotive"),
            make_ping("a3", 40, 9000, 0, motion="automotive"),
            make_ping("w3", 50, 9100, 0, motion="walking"),
            make_ping("w4", 52, 9200, 0, motion="walking"),
        ]
        journeys = segment_journeys(pings, [a, b])
        assert [j.primary_transport for j in journeys] == ["walking", "automotive", "walking"]
        assert all((j.from_visit_id, j.to_visit_id) == ("A", "B") for j in journeys)

    def test_gap_bounds_are_exclusive(self):
        a, b = make_visit("A", 0, 10), make_visit("B", 20, 30)
        pings = [
            make_ping("edge1", 10, 0, 0, motion="walking"),
            make_ping("mid", 15, 50, 0, motion="walking"),
            make_ping("edge2", 20, 100, 0, motion="walking"),
        ]
        journeys = segment_journeys(pings, [a, b])
        assert [j.member_ping_ids for j in journeys] == [("mid",)]

    def test_low_visits_are_not_anchors(self):
        a = make_visit("A", 0, 10)
        stop = make_visit("stop", 20, 21, confidence="low", visit_type="brief_stop")
        b = make_visit("B", 40, 50, confidence="medium")
        pings = [
            make_ping("w1", 15, 0, 0, motion="walking"),
            make_ping("w2", 20, 300, 0, motion="walking"),
            make_ping("w3", 30, 600, 0, motion="walking"),
        ]
        journeys = segment_journeys(pings, [a, stop, b])
        assert len(journeys) == 1
        assert journeys[0].member_ping_ids == ("w1", "w2", "w3")
        assert (journeys[0].from_visit_id, journeys[0].to_visit_id) == ("A", "B")

    def test_overlapping_anchors_skipped(self):
        a, b = make_visit("A", 0, 30), make_visit("B", 20, 40)
        pings = [make_ping("w1", 25, 0, 0, motion="walking")]
        assert segment_journeys(pings, [a, b]) == []

    def test_still_only_gap_has_no_journey(self):
        a, b = make_visit("A", 0, 10), make_visit("B", 30, 40)
        pings = [make_ping("s1", 15, 0, 0, motion="still"), make_ping("s2", 20, 0, 0, motion="still")]
        assert segment_journeys(pings, [a, b]) == []

    def test_fewer_than_two_anchors(self):
        pings = [make_ping("w1", 15, 0, 0, motion="walking")]
        assert segment_journeys(pings, []) == []
        assert segment_journeys(pings, [make_visit("A", 0, 10)]) == []

    def test_full_trace(self):
        clean = filter_by_accuracy(as_raw_pings(DAY_TRACE))
        visits = select_visits(detect_visits(smooth_pings(clean)))
        journeys = segment_journeys(clean, visits)

        assert [j.id for j in journeys] == ["p07", "p16"]
        walk, drive = journeys
        assert walk.primary_transport == "walking"
        assert (walk.from_visit_id, walk.to_visit_id) == ("p01", "p11")
        assert walk.member_ping_ids == ("p07", "p08", "p09", "p10")
        assert drive.primary_transport == "automotive"
        assert (drive.from_visit_id, drive.to_visit_id) == ("p11", "p23")
        assert drive.ping_count == 7
        assert walk.transport_proportions == {"walking": 1.0}
        assert drive.transport_proportions == {"automotive": 1.0}
        assert all(j.confidence == "high" for j in journeys)
