"""HTTP tests for generation, kanban and cron endpoints."""
import pytest

from contentbot.config import get_settings
from contentbot.models import Article, GenerationRecord

from conftest import USER_ID

HEADERS = {"X-User-Id": USER_ID}


class TestHealth:
    def test_health(self, api_client):
        response = api_client.get("/health")
        assert response.status_code == 200
        assert response.json()["status"] == "healthy"


class TestStartGeneration:
    def test_accepted_and_dispatched(self, api_client, db_session, make_article, give_credits, dispatcher):
        give_credits()
        article = make_article()

        response = api_client.post(f"/api/v1/articles/{article.id}/generate", headers=HEADERS)

        assert response.status_code == 202
        body = response.json()
        assert body["status"] == "pending"
        assert dispatcher.calls == [(body["generation_id"],)]
        db_session.expire_all()
        assert db_session.get(Article, article.id).status == "generating"

    def test_requires_caller(self, api_client, make_article):
        article = make_article()
        assert api_client.post(f"/api/v1/articles/{article.id}/generate").status_code == 401

    def test_insufficient_credits(self, api_client, db_session, make_article, dispatcher):
        article = make_article()

        response = api_client.post(f"/api/v1/articles/{article.id}/generate", headers=HEADERS)

        assert response.status_code == 402
        assert response.json()["detail"]["error"] == "insufficient_credits"
        assert dispatcher.calls == []
        db_session.expire_all()
        assert db_session.get(Article, article.id).status == "idea"
        assert db_session.query(GenerationRecord).count() == 0

    def test_second_start_conflicts(self, api_client, make_article, give_credits, dispatcher):
        give_credits()
        article = make_article()
        url = f"/api/v1/articles/{article.id}/generate"

        assert api_client.post(url, headers=HEADERS).status_code == 202
        second = api_client.post(url, headers=HEADERS)

        assert second.status_code == 409
        assert second.json()["detail"]["error"] == "already_generating"
        assert len(dispatcher.calls) == 1

    def test_force_regenerate_reuses_record(self, api_client, make_article, give_credits, dispatcher):
        give_credits()
        article = make_article()
        url = f"/api/v1/articles/{article.id}/generate"

        first = api_client.post(url, headers=HEADERS).json()
        forced = api_client.post(url, headers=HEADERS, json={"force_regenerate": True})

        assert forced.status_code == 202
        assert forced.json()["generation_id"] == first["generation_id"]

    def test_other_users_article_is_not_found(self, api_client, make_article, give_credits):
        give_credits(user_id="someone_else")
        article = make_article()
        response = api_client.post(
            f"/api/v1/articles/{article.id}/generate", headers={"X-User-Id": "someone_else"},
        )
        assert response.status_code == 404


class TestRetryGeneration:
    def _failed_record(self, db_session, article, artifacts):
        record = GenerationRecord(
            article_id=article.id,
            user_id=article.user_id,
            project_id=article.project_id,
            status="failed",
            progress=60,
            error="quality-control failed: provider error",
            artifacts=artifacts,
        )
        db_session.add(record)
        db_session.commit()
        return record

    def test_retry_resumes_from_failed_phase(self, api_client, db_session, make_article, give_credits, dispatcher):
        give_credits()
        article = make_article()
        failed = self._failed_record(db_session, article, {
            "failed_phase": "quality-control",
            "research": {"research_data": "brief", "sources": []},
            "write": {"title": "Cold Brew", "content": "# Cold Brew"},
            "content": "# Cold Brew",
        })

        response = api_client.post(f"/api/v1/articles/{article.id}/retry", headers=HEADERS)

        assert response.status_code == 202
        body = response.json()
        assert body["restart_phase"] == "quality-control"
        assert body["previous_generation_id"] == failed.id
        assert body["available_artifacts"] == ["research", "write"]
        assert dispatcher.calls == [(body["generation_id"], "quality-control")]
        db_session.expire_all()
        assert db_session.get(Article, article.id).status == "generating"
        retried = db_session.get(GenerationRecord, body["generation_id"])
        assert retried.artifacts["content"] == "# Cold Brew"

    def test_nothing_to_retry(self, api_client, make_article, give_credits, dispatcher):
        give_credits()
        article = make_article()

        response = api_client.post(f"/api/v1/articles/{article.id}/retry", headers=HEADERS)

        assert response.status_code == 409
        assert response.json()["detail"]["error"] == "not_retryable"
        assert dispatcher.calls == []


class TestGenerationStatus:
    def test_status_after_start(self, api_client, make_article, give_credits):
        give_credits()
        article = make_article()
        started = api_client.post(f"/api/v1/articles/{article.id}/generate", headers=HEADERS).json()

        response = api_client.get(f"/api/v1/articles/{article.id}/generation-status", headers=HEADERS)

        assert response.status_code == 200
        body = response.json()
        assert body["generation_id"] == started["generation_id"]
        assert body["status"] == "pending"
        assert body["article_status"] == "generating"
        assert body["progress"] == 0

    def test_never_generated(self, api_client, make_article):
        article = make_article()
        body = api_client.get(f"/api/v1/articles/{article.id}/generation-status", headers=HEADERS).json()
        assert body["generation_id"] is None
        assert body["status"] is None

    def test_hidden_from_other_users(self, api_client, make_article):
        article = make_article()
        response = api_client.get(
            f"/api/v1/articles/{article.id}/generation-status", headers={"X-User-Id": "intruder"},
        )
        assert response.status_code == 404


class TestScheduling:
    def test_schedule_and_cancel(self, api_client, db_session, make_article, give_credits):
        give_credits()
        article = make_article()
        url = f"/api/v1/articles/{article.id}/schedule-generation"

        created = api_client.post(url, headers=HEADERS, json={"scheduled_for": "2099-01-01T09:00:00Z"})
        assert created.status_code == 201
        assert created.json()["status"] == "queued"
        db_session.expire_all()
        assert db_session.get(Article, article.id).status == "scheduled"

        cancelled = api_client.delete(url, headers=HEADERS)
        assert cancelled.status_code == 200
        db_session.expire_all()
        assert db_session.get(Article, article.id).status == "to_generate"

    def test_run_now(self, api_client, make_article, give_credits, dispatcher):
        give_credits()
        article = make_article()
        response = api_client.post(f"/api/v1/articles/{article.id}/run-now", headers=HEADERS)
        assert response.status_code == 202
        assert dispatcher.calls == [(response.json()["generation_id"],)]


class TestKanbanStatus:
    def test_manual_move(self, api_client, make_article):
        article = make_article()
        response = api_client.patch(
            f"/api/v1/articles/{article.id}/status", headers=HEADERS, json={"status": "to_generate"},
        )
        assert response.status_code == 200
        assert response.json()["status"] == "to_generate"

    @pytest.mark.parametrize("target", ["generating", "queued", "scheduled"])
    def test_system_only_targets(self, api_client, make_article, target):
        article = make_article()
        response = api_client.patch(
            f"/api/v1/articles/{article.id}/status", headers=HEADERS, json={"status": target},
        )
        assert response.status_code == 400

    def test_published_is_final(self, api_client, make_article):
        article = make_article(status="published")
        response = api_client.patch(
            f"/api/v1/articles/{article.id}/status", headers=HEADERS, json={"status": "idea"},
        )
        assert response.status_code == 409
        assert response.json()["detail"]["error"] == "invalid_transition"


class TestCron:
    @pytest.fixture
    def cron_secret(self, monkeypatch):
        monkeypatch.setattr(get_settings(), "CRON_SECRET", "cron-s3cret")
        return "cron-s3cret"

    def test_rejects_missing_secret(self, api_client, cron_secret):
        assert api_client.get("/api/v1/cron/process-generation-queue").status_code == 401
        assert api_client.post(
            "/api/v1/cron/publish-articles", headers={"Authorization": "Bearer wrong"},
        ).status_code == 401

    def test_queue_sweep(self, api_client, cron_secret):
        response = api_client.get(
            "/api/v1/cron/process-generation-queue", headers={"Authorization": f"Bearer {cron_secret}"},
        )
        assert response.status_code == 200
        assert response.json() == {"processed": 0, "started": 0, "failed": 0, "skipped": 0, "queue_item_ids": []}

    def test_publish_sweep(self, api_client, cron_secret):
        response = api_client.post(
            "/api/v1/cron/publish-articles", headers={"Authorization": f"Bearer {cron_secret}"},
        )
        assert response.status_code == 200
        assert response.json() == {"checked": 0, "published": 0, "article_ids": []}
