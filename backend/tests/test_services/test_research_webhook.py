"""Tests for research webhook signature checks and resumption handling."""
import pytest

from contentbot.models import Article, GenerationRecord
from contentbot.schemas.webhook import ResearchWebhookPayload
from contentbot.services.research_webhook import (
    compute_webhook_signature,
    handle_research_notification,
    verify_webhook_signature,
)

SECRET = "whsec-test"
BODY = '{"type":"task_run.status","data":{"run_id":"run_1","status":"completed"}}'


def _payload(status="completed", run_id="run_1", type_="task_run.status", error=None):
    data = {"run_id": run_id, "status": status}
    if error:
        data["error"] = {"message": error}
    return ResearchWebhookPayload.model_validate({"type": type_, "timestamp": "2026-03-01T09:00:00Z", "data": data})


@pytest.fixture
def researching_record(db_session, make_article):
    article = make_article(status="generating")
    record = GenerationRecord(
        article_id=article.id,
        user_id=article.user_id,
        project_id=article.project_id,
        status="researching",
        progress=15,
        current_phase="research-waiting",
        research_run_id="run_1",
        artifacts={"research_run_id": "run_1", "research_status": "pending"},
    )
    db_session.add(record)
    db_session.commit()
    return record


class TestVerifySignature:
    def test_valid_signature(self):
        sig = compute_webhook_signature("wh_1", "1700000000", BODY, SECRET)
        assert verify_webhook_signature("wh_1", "1700000000", BODY, f"v1,{sig}", SECRET) is True

    def test_any_entry_may_match(self):
        sig = compute_webhook_signature("wh_1", "1700000000", BODY, SECRET)
        header = f"v1,bm90LXRoZS1zaWduYXR1cmU= v1,{sig}"
        assert verify_webhook_signature("wh_1", "1700000000", BODY, header, SECRET) is True

    def test_tampered_body_fails(self):
        sig = compute_webhook_signature("wh_1", "1700000000", BODY, SECRET)
        assert verify_webhook_signature("wh_1", "1700000000", BODY + " ", f"v1,{sig}", SECRET) is False

    def test_unknown_version_is_ignored(self):
        sig = compute_webhook_signature("wh_1", "1700000000", BODY, SECRET)
        assert verify_webhook_signature("wh_1", "1700000000", BODY, f"v2,{sig}", SECRET) is False

    def test_missing_secret_fails(self):
        sig = compute_webhook_signature("wh_1", "1700000000", BODY, SECRET)
        assert verify_webhook_signature("wh_1", "1700000000", BODY, f"v1,{sig}", "") is False


class TestHandleNotification:
    @pytest.mark.asyncio
    async def test_completed_advances_and_resumes_once(
        self, db_session, researching_record, make_research_client, dispatcher,
    ):
        client = make_research_client()

        action = await handle_research_notification(db_session, _payload(), client, dispatcher)
        duplicate = await handle_research_notification(db_session, _payload(), client, dispatcher)

        assert action == "resumed"
        assert duplicate == "no_op"
        assert dispatcher.calls == [(researching_record.id, "outline")]
        assert client.fetched == ["run_1"]
        record = db_session.get(GenerationRecord, researching_record.id)
        assert record.status == "outline"
        assert record.progress == 25
        assert record.artifacts["research"]["research_data"]
        assert record.artifacts["research_status"] == "completed"
        assert record.artifacts["research_run_id"] == "run_1"

    @pytest.mark.asyncio
    async def test_failed_run_marks_research_failed(
        self, db_session, researching_record, make_research_client, dispatcher,
    ):
        action = await handle_research_notification(
            db_session, _payload(status="failed", error="quota exhausted"), make_research_client(), dispatcher,
        )

        assert action == "research_failed"
        assert dispatcher.calls == []
        record = db_session.get(GenerationRecord, researching_record.id)
        assert record.status == "research_failed"
        assert record.error == "quota exhausted"
        assert record.artifacts["research_error"] == "quota exhausted"
        assert db_session.get(Article, record.article_id).status == "idea"

    @pytest.mark.asyncio
    async def test_duplicate_failed_delivery_changes_nothing(
        self, db_session, researching_record, make_research_client, dispatcher,
    ):
        client = make_research_client()
        first = await handle_research_notification(
            db_session, _payload(status="failed", error="quota exhausted"), client, dispatcher,
        )
        duplicate = await handle_research_notification(
            db_session, _payload(status="failed", error="a later error"), client, dispatcher,
        )

        assert first == "research_failed"
        assert duplicate == "no_op"
        assert dispatcher.calls == []
        record = db_session.get(GenerationRecord, researching_record.id)
        assert record.status == "research_failed"
        assert record.error == "quota exhausted"
        assert record.artifacts["research_error"] == "quota exhausted"

    @pytest.mark.asyncio
    async def test_fetch_failure_fails_the_record(
        self, db_session, researching_record, make_research_client, dispatcher,
    ):
        client = make_research_client(fetch_error=RuntimeError("502 from research service"))

        action = await handle_research_notification(db_session, _payload(), client, dispatcher)

        assert action == "fetch_failed"
        record = db_session.get(GenerationRecord, researching_record.id)
        assert record.status == "failed"
        assert "502 from research service" in record.artifacts["research_error"]
        assert dispatcher.calls == []

    @pytest.mark.asyncio
    async def test_other_event_types_are_ignored(
        self, db_session, researching_record, make_research_client, dispatcher,
    ):
        action = await handle_research_notification(
            db_session, _payload(type_="task_run.progress"), make_research_client(), dispatcher,
        )
        assert action == "ignored"
        assert db_session.get(GenerationRecord, researching_record.id).status == "researching"

    @pytest.mark.asyncio
    async def test_unknown_run_is_a_no_op(self, db_session, researching_record, make_research_client, dispatcher):
        action = await handle_research_notification(
            db_session, _payload(run_id="run_unknown"), make_research_client(), dispatcher,
        )
        assert action == "no_op"
        assert dispatcher.calls == []

    @pytest.mark.asyncio
    async def test_running_status_waits(self, db_session, researching_record, make_research_client, dispatcher):
        action = await handle_research_notification(
            db_session, _payload(status="running"), make_research_client(), dispatcher,
        )
        assert action == "ignored"
        assert db_session.get(GenerationRecord, researching_record.id).status == "researching"
