"""Tests for generation queue scheduling and the cron drainer."""
from datetime import datetime, timedelta, timezone

import pytest

from contentbot.models import Article, GenerationQueueItem, GenerationRecord
from contentbot.services import queue_service
from contentbot.services.errors import InvalidStatusTransitionError

from conftest import USER_ID

NOW = datetime(2026, 3, 1, 9, 0, tzinfo=timezone.utc)


def _naive(value):
    return value.replace(tzinfo=None) if value.tzinfo else value


@pytest.fixture
def enqueue(db_session):
    def _enqueue(article, when, position=0):
        item = GenerationQueueItem(
            article_id=article.id,
            user_id=article.user_id,
            project_id=article.project_id,
            scheduled_for_date=when,
            queue_position=position,
        )
        db_session.add(item)
        article.status = "queued"
        db_session.commit()
        return item
    return _enqueue


class TestScheduleGeneration:
    def test_future_time_marks_article_scheduled(self, db_session, make_article, give_credits):
        give_credits()
        article = make_article()
        item = queue_service.schedule_generation(
            db_session, USER_ID, article.id, NOW + timedelta(days=1), now=NOW,
        )
        assert item.status == "queued"
        assert db_session.get(Article, article.id).status == "scheduled"

    def test_past_time_marks_article_queued(self, db_session, make_article, give_credits):
        give_credits()
        article = make_article()
        queue_service.schedule_generation(db_session, USER_ID, article.id, NOW - timedelta(minutes=5), now=NOW)
        assert db_session.get(Article, article.id).status == "queued"

    def test_rescheduling_replaces_the_row(self, db_session, make_article, give_credits):
        give_credits()
        article = make_article()
        queue_service.schedule_generation(db_session, USER_ID, article.id, NOW + timedelta(days=1), now=NOW)
        queue_service.schedule_generation(db_session, USER_ID, article.id, NOW + timedelta(days=2), now=NOW)
        assert db_session.query(GenerationQueueItem).count() == 1

    def test_cannot_schedule_from_wait_for_publish(self, db_session, make_article, give_credits):
        give_credits()
        article = make_article(status="wait_for_publish")
        with pytest.raises(InvalidStatusTransitionError):
            queue_service.schedule_generation(db_session, USER_ID, article.id, NOW, now=NOW)

    def test_cancel_returns_article_to_board(self, db_session, make_article, give_credits):
        give_credits()
        article = make_article()
        queue_service.schedule_generation(db_session, USER_ID, article.id, NOW + timedelta(days=1), now=NOW)
        assert queue_service.cancel_scheduled_generation(db_session, USER_ID, article.id) == 1
        assert db_session.get(Article, article.id).status == "to_generate"
        assert db_session.query(GenerationQueueItem).count() == 0


class TestProcessDueQueue:
    def test_due_item_starts_generation(self, db_session, make_article, give_credits, dispatcher, enqueue):
        give_credits()
        article = make_article()
        due = NOW - timedelta(minutes=1)
        enqueue(article, due)

        result = queue_service.process_due_queue(db_session, now=NOW, dispatch=dispatcher)

        assert result["processed"] == 1
        assert result["started"] == 1
        record = db_session.query(GenerationRecord).one()
        assert record.status == "pending"
        assert _naive(record.scheduled_at) == _naive(due)
        assert dispatcher.calls == [(record.id,)]
        assert db_session.get(Article, article.id).status == "generating"
        assert db_session.query(GenerationQueueItem).count() == 0

    def test_future_items_wait(self, db_session, make_article, give_credits, dispatcher, enqueue):
        give_credits()
        enqueue(make_article(), NOW + timedelta(hours=1))
        result = queue_service.process_due_queue(db_session, now=NOW, dispatch=dispatcher)
        assert result["processed"] == 0
        assert dispatcher.calls == []
        assert db_session.query(GenerationQueueItem).count() == 1

    def test_items_run_in_queue_position_order(self, db_session, make_project, make_article, give_credits, dispatcher, enqueue):
        give_credits()
        project = make_project()
        later = make_article(project=project, title="Second")
        sooner = make_article(project=project, title="First")
        enqueue(later, NOW - timedelta(minutes=1), position=2)
        enqueue(sooner, NOW - timedelta(minutes=1), position=1)

        queue_service.process_due_queue(db_session, now=NOW, dispatch=dispatcher)

        started = [db_session.get(GenerationRecord, call[0]).article_id for call in dispatcher.calls]
        assert started == [sooner.id, later.id]

    def test_already_generating_article_drops_the_row(self, db_session, make_article, give_credits, dispatcher, enqueue):
        give_credits()
        article = make_article()
        enqueue(article, NOW - timedelta(minutes=1))
        article.status = "generating"
        db_session.commit()

        result = queue_service.process_due_queue(db_session, now=NOW, dispatch=dispatcher)

        assert result["skipped"] == 1
        assert result["started"] == 0
        assert dispatcher.calls == []
        assert db_session.query(GenerationQueueItem).count() == 0
        assert db_session.query(GenerationRecord).count() == 0

    def test_validation_failure_keeps_row_as_failed(self, db_session, make_article, dispatcher, enqueue):
        article = make_article()
        item = enqueue(article, NOW - timedelta(minutes=1))

        result = queue_service.process_due_queue(db_session, now=NOW, dispatch=dispatcher)

        assert result["failed"] == 1
        stored = db_session.get(GenerationQueueItem, item.id)
        assert stored.status == "failed"
        assert stored.attempts == 1
        assert "Insufficient credits" in stored.error_message
        assert db_session.get(Article, article.id).status == "queued"

    def test_failed_items_are_not_retried(self, db_session, make_article, dispatcher, enqueue):
        enqueue(make_article(), NOW - timedelta(minutes=1))
        queue_service.process_due_queue(db_session, now=NOW, dispatch=dispatcher)
        result = queue_service.process_due_queue(db_session, now=NOW, dispatch=dispatcher)
        assert result["processed"] == 0

    def test_one_failure_does_not_stop_the_sweep(self, db_session, make_project, make_article, give_credits, dispatcher, enqueue):
        give_credits()
        broke_project = make_project(user_id="broke_user")
        enqueue(make_article(project=broke_project), NOW - timedelta(minutes=2), position=0)
        enqueue(make_article(), NOW - timedelta(minutes=1), position=1)

        result = queue_service.process_due_queue(db_session, now=NOW, dispatch=dispatcher)

        assert result["failed"] == 1
        assert result["started"] == 1
        assert len(dispatcher.calls) == 1

    def test_dispatch_error_fails_the_record(self, db_session, make_article, give_credits, make_dispatcher, enqueue):
        give_credits()
        article = make_article()
        enqueue(article, NOW - timedelta(minutes=1))
        broken = make_dispatcher(error=RuntimeError("broker unreachable"))

        result = queue_service.process_due_queue(db_session, now=NOW, dispatch=broken)

        assert result["failed"] == 1
        record = db_session.query(GenerationRecord).one()
        assert record.status == "failed"
        assert "broker unreachable" in record.error
        assert db_session.get(Article, article.id).status == "idea"

        item = db_session.query(GenerationQueueItem).one()
        assert item.status == "failed"
        assert item.attempts == 1
        assert item.error_message == "broker unreachable"


class TestRunNow:
    def test_run_now_starts_and_clears_queue(self, db_session, make_article, give_credits, dispatcher):
        give_credits()
        article = make_article()
        queue_service.schedule_generation(db_session, USER_ID, article.id, NOW + timedelta(days=1), now=NOW)

        record = queue_service.run_now(db_session, USER_ID, article.id, dispatch=dispatcher)

        assert dispatcher.calls == [(record.id,)]
        assert db_session.get(Article, article.id).status == "generating"
        assert db_session.query(GenerationQueueItem).count() == 0
