"""Tests for the recommendation engine."""

import pytest

from models.requests import FeedbackRequest, RecommendOptions
from services.errors import InvalidInputError, NotFoundError
from services.pipeline.orchestrator import RecommendationEngine


class TestRecommendForParent:
    @pytest.mark.asyncio
    async def test_rule_path_ranking(self, engine):
        response = await engine.recommend_for_parent("p1")

        assert response.scoring_method == "rule"
        assert response.count == 2
        first, second = response.data
        assert first.tutor_id == "t1"
        assert first.match_score == 100
        assert first.predicted is True
        assert second.tutor_id == "t2"
        # same city only: 40% of the location weight
        assert second.match_score == 8
        assert second.predicted is False

    @pytest.mark.asyncio
    async def test_payload_carries_entity_fields(self, engine):
        response = await engine.recommend_for_parent("p1")
        payload = response.data[0].model_dump(by_alias=True)
        assert payload["matchScore"] == 100
        assert payload["tutor_id"] == "t1"
        assert payload["pricing"] == {"base_price": 250.0}

    @pytest.mark.asyncio
    async def test_radius_reaches_other_city(self, engine):
        response = await engine.recommend_for_parent("p1", RecommendOptions(max_distance=200))
        scores = {c.tutor_id: c.match_score for c in response.data}
        assert scores["t3"] == 80  # no location points

    @pytest.mark.asyncio
    async def test_limit(self, engine):
        response = await engine.recommend_for_parent("p1", RecommendOptions(limit=1))
        assert [c.tutor_id for c in response.data] == ["t1"]

    @pytest.mark.asyncio
    async def test_unknown_parent(self, engine):
        with pytest.raises(NotFoundError):
            await engine.recommend_for_parent("ghost")

    @pytest.mark.asyncio
    async def test_empty_pool(self, engine, repository, make_parent):
        repository.add_parent(make_parent("remote", location={"city": "拉萨", "coordinates": [91.1, 29.6]}))
        response = await engine.recommend_for_parent("remote")
        assert response.data == []
        assert response.count == 0

    @pytest.mark.asyncio
    async def test_collaborative_blend(self, engine, repository, match_factory):
        repository.add_match(match_factory("a", "p1", "t1", parent_rating=5))
        repository.add_match(match_factory("b", "p1", "t3", parent_rating=1))
        repository.add_match(match_factory("c", "p2", "t1", parent_rating=5))
        repository.add_match(match_factory("d", "p2", "t3", parent_rating=2))
        repository.add_match(match_factory("e", "p2", "t2", parent_rating=5))

        response = await engine.recommend_for_parent("p1")
        scores = {c.tutor_id: c.match_score for c in response.data}
        # t2: 0.8 * 8 + 20 = 26.4
        assert scores["t2"] == 26
        # p2 also rated t1 5/5: 0.8 * 100 + 20
        assert scores["t1"] == 100


class TestRecommendForTutor:
    @pytest.mark.asyncio
    async def test_requests_in_city(self, engine):
        response = await engine.recommend_for_tutor("t1")
        assert [c.request_id for c in response.data] == ["r1"]
        assert response.data[0].match_score == 100

    @pytest.mark.asyncio
    async def test_radius_includes_remote_request(self, engine):
        response = await engine.recommend_for_tutor("t1", RecommendOptions(max_distance=200))
        ids = [c.request_id for c in response.data]
        assert ids == ["r1", "r2"]

    @pytest.mark.asyncio
    async def test_unknown_tutor(self, engine):
        with pytest.raises(NotFoundError):
            await engine.recommend_for_tutor("ghost")


class TestFeedback:
    @pytest.mark.asyncio
    async def test_invalid_rating(self, engine, repository, match_factory):
        repository.add_match(match_factory("m1"))
        with pytest.raises(InvalidInputError):
            await engine.collect_feedback("m1", FeedbackRequest(match_id="m1", rating=7, role="parent"))

    @pytest.mark.asyncio
    async def test_records_rating(self, engine, repository, match_factory):
        repository.add_match(match_factory("m1"))
        result = await engine.collect_feedback("m1", FeedbackRequest(match_id="m1", rating=4, role="parent"))
        assert result.success is True
        assert (await repository.get_match("m1")).parent_rating == 4


@pytest.mark.training
class TestTrainedEngine:
    @pytest.mark.asyncio
    async def test_ml_path_after_training(self, training_repository):
        engine = RecommendationEngine(training_repository)
        result = await engine.train_models()
        assert result.success is True

        response = await engine.recommend_for_parent("p0", RecommendOptions(limit=5))
        assert response.scoring_method == "ml"
        assert response.count == 5
        assert all(0 <= c.match_score <= 100 for c in response.data)
        assert len({c.tutor_id for c in response.data}) == 5

    @pytest.mark.asyncio
    async def test_use_ml_false_forces_rules(self, training_repository):
        engine = RecommendationEngine(training_repository)
        await engine.train_models()
        response = await engine.recommend_for_parent("p0", RecommendOptions(use_ml=False))
        assert response.scoring_method == "rule"

    @pytest.mark.asyncio
    async def test_models_reload_from_store(self, training_repository):
        await RecommendationEngine(training_repository).train_models()

        fresh = RecommendationEngine(training_repository)
        assert fresh.holder.current().classifier is None
        await fresh.start()
        try:
            assert fresh.holder.current().classifier is not None
            status = await fresh.model_status()
            assert status.classifier.version == 1
            assert status.classifier.loaded is True
            assert status.tutor_clusters is not None
        finally:
            await fresh.stop()
