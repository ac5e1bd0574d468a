"""Tests for collaborative filtering."""

import pytest

from services.pipeline.collaborative import CollaborativeFilter, pearson_similarity


class TestPearson:
    def test_perfect_correlation(self):
        a = {"t1": 5, "t2": 3, "t3": 1}
        b = {"t1": 4, "t2": 3, "t3": 2}
        assert pearson_similarity(a, b) == pytest.approx(1.0)

    def test_negative_correlation(self):
        a = {"t1": 5, "t2": 1}
        b = {"t1": 1, "t2": 5}
        assert pearson_similarity(a, b) == pytest.approx(-1.0)

    def test_no_common_items(self):
        assert pearson_similarity({"t1": 5}, {"t2": 5}) == 0.0

    def test_zero_variance(self):
        assert pearson_similarity({"t1": 3, "t2": 3}, {"t1": 1, "t2": 5}) == 0.0


class TestCollaborativeFilter:
    def test_no_peers_leaves_rule_score_unchanged(self):
        cf = CollaborativeFilter("p1", [("t1", 5.0)], {})
        assert not cf.has_peers
        assert cf.blend("t9", 63.0) == 63.0

    def test_empty_own_history(self):
        cf = CollaborativeFilter("p1", [], {"p2": [("t1", 5.0), ("t2", 1.0)]})
        assert cf.blend("t1", 50.0) == 50.0

    def test_blend_with_similar_peer(self):
        own = [("t1", 5.0), ("t2", 1.0)]
        others = {"p2": [("t1", 5.0), ("t2", 2.0), ("t3", 5.0)]}
        cf = CollaborativeFilter("p1", own, others)
        # peer rated t3 5/5 -> 20 points on top of 80% of the rule score
        assert cf.blend("t3", 50.0) == pytest.approx(0.8 * 50.0 + 20.0)

    def test_unrated_candidate_unchanged(self):
        own = [("t1", 5.0), ("t2", 1.0)]
        others = {"p2": [("t1", 5.0), ("t2", 2.0)]}
        cf = CollaborativeFilter("p1", own, others)
        assert cf.blend("t3", 50.0) == 50.0

    def test_negative_peers_ignored(self):
        own = [("t1", 5.0), ("t2", 1.0)]
        others = {"p2": [("t1", 1.0), ("t2", 5.0), ("t3", 5.0)]}
        cf = CollaborativeFilter("p1", own, others)
        assert cf.blend("t3", 50.0) == 50.0

    def test_querying_user_excluded(self):
        own = [("t1", 5.0), ("t2", 1.0), ("t3", 5.0)]
        cf = CollaborativeFilter("p1", own, {"p1": own})
        assert not cf.has_peers

    def test_weighted_average_across_peers(self):
        own = [("t1", 5.0), ("t2", 1.0)]
        others = {
            "p2": [("t1", 5.0), ("t2", 1.0), ("t3", 5.0)],
            "p3": [("t1", 4.0), ("t2", 2.0), ("t3", 1.0)],
        }
        cf = CollaborativeFilter("p1", own, others)
        # both peers correlate perfectly (sim = 1): mean of 20 and 4 points
        assert cf.contribution("t3") == pytest.approx((20.0 + 4.0) / 2)
