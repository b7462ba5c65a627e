from datetime import datetime, timezone
from unittest.mock import MagicMock

import pytest

from autopublish.db import crud
from autopublish.db.models import ArticleStatus
from autopublish.errors import AnalysisError, GenerationError, PreconditionError
from autopublish.services.pipeline import ArticlePipeline
from autopublish.services.schemas import ContentProfile

from conftest import NOW, PROFILE, FakeGenerator


def test_generates_ready_article(db, make_schedule):
    s = make_schedule()
    article = ArticlePipeline(FakeGenerator()).generate(db, s, NOW)

    assert article.status is ArticleStatus.READY
    assert article.title == "Growing Tomatoes"
    assert article.category == "Vegetables"
    assert article.tags == ["garden", "tomatoes"]
    assert article.scheduled_for == datetime(2024, 1, 2, 9, 0, tzinfo=timezone.utc)
    assert article.scheduled_for > NOW


def test_generation_does_not_touch_next_run(db, make_schedule):
    s = make_schedule()
    before = s.next_run_at
    ArticlePipeline(FakeGenerator()).generate(db, s, NOW)
    assert s.next_run_at == before


def test_missing_profile_is_a_precondition_failure(db, make_schedule):
    s = make_schedule(profile=None)
    generator = FakeGenerator()
    with pytest.raises(PreconditionError) as exc:
        ArticlePipeline(generator).generate(db, s, NOW)
    assert exc.value.schedule_id == s.id
    assert generator.calls == []


def test_unusable_profile_is_a_precondition_failure(db, make_schedule):
    s = make_schedule(topics=[])
    with pytest.raises(PreconditionError):
        ArticlePipeline(FakeGenerator()).generate(db, s, NOW)


def test_no_ideas_creates_nothing(db, make_schedule):
    s = make_schedule()
    with pytest.raises(GenerationError) as exc:
        ArticlePipeline(FakeGenerator(ideas_empty=True)).generate(db, s, NOW)
    assert exc.value.stage == "ideas"
    assert crud.list_articles_for_schedule(db, s.id) == []


def test_generator_error_gets_schedule_context(db, make_schedule):
    s = make_schedule()
    with pytest.raises(GenerationError) as exc:
        ArticlePipeline(FakeGenerator(fail_stage="ideas")).generate(db, s, NOW)
    assert exc.value.schedule_id == s.id
    assert exc.value.stage == "ideas"
    assert f"schedule={s.id}" in str(exc.value)


def test_unexpected_error_is_wrapped_with_stage(db, make_schedule):
    s = make_schedule()
    with pytest.raises(GenerationError) as exc:
        ArticlePipeline(FakeGenerator(fail_stage="article")).generate(db, s, NOW)
    assert exc.value.stage == "article"
    assert "connection reset" in str(exc.value)
    assert crud.list_articles_for_schedule(db, s.id) == []


def test_analyze_stores_profile(db, make_schedule):
    s = make_schedule(profile=None)
    analyzer = MagicMock()
    analyzer.analyze.return_value = ContentProfile.model_validate(PROFILE)

    profile = ArticlePipeline(FakeGenerator(), analyzer=analyzer).analyze(db, s, NOW)

    assert profile.niche == "home gardening"
    assert s.profile["writing_style"]["average_length"] == 900
    assert s.last_analyzed_at == NOW
    assert [x.id for x in crud.list_active_due(db, NOW)] == [s.id]


def test_analyze_failure_keeps_schedule_unanalyzed(db, make_schedule):
    s = make_schedule(profile=None)
    analyzer = MagicMock()
    analyzer.analyze.side_effect = AnalysisError("site unreachable", stage="fetch")

    with pytest.raises(AnalysisError) as exc:
        ArticlePipeline(FakeGenerator(), analyzer=analyzer).analyze(db, s, NOW)
    assert exc.value.schedule_id == s.id
    assert s.profile is None
