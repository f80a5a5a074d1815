"""Tests for the atomic article claim and credit deduction."""
from contentbot.models import Article, UserCredit
from contentbot.schemas.common import ClaimResult
from contentbot.services import credits
from contentbot.services.orchestrator import claim_article_for_generation

from conftest import USER_ID


class TestClaimArticle:
    def test_claim_then_already_claimed(self, db_session, make_article):
        article = make_article(status="to_generate")
        assert claim_article_for_generation(db_session, article.id) == ClaimResult.CLAIMED
        assert db_session.get(Article, article.id).status == "generating"
        assert claim_article_for_generation(db_session, article.id) == ClaimResult.ALREADY_CLAIMED

    def test_competing_sessions_only_one_wins(self, session_factory, make_article):
        article = make_article()
        first, second = session_factory(), session_factory()
        try:
            results = [
                claim_article_for_generation(first, article.id),
                claim_article_for_generation(second, article.id),
            ]
        finally:
            first.close()
            second.close()
        assert results.count(ClaimResult.CLAIMED) == 1
        assert results.count(ClaimResult.ALREADY_CLAIMED) == 1

    def test_sink_status_is_invalid_state(self, db_session, make_article):
        article = make_article(status="published")
        assert claim_article_for_generation(db_session, article.id) == ClaimResult.INVALID_STATE
        assert db_session.get(Article, article.id).status == "published"

    def test_missing_article_is_invalid_state(self, db_session):
        assert claim_article_for_generation(db_session, "missing") == ClaimResult.INVALID_STATE

    def test_wait_for_publish_can_be_regenerated(self, db_session, make_article):
        article = make_article(status="wait_for_publish")
        assert claim_article_for_generation(db_session, article.id) == ClaimResult.CLAIMED


class TestCredits:
    def test_missing_row_gets_starting_grant(self, db_session):
        assert credits.get_user_credits(db_session, "new_user") == 3
        assert db_session.get(UserCredit, "new_user").amount == 3

    def test_read_only_lookup_creates_nothing(self, db_session):
        assert credits.has_enough_credits(db_session, "new_user", cost=10) is False
        assert db_session.get(UserCredit, "new_user") is None

    def test_deduct(self, db_session, give_credits):
        give_credits(25)
        assert credits.deduct_credits(db_session, USER_ID, 10) is True
        assert credits.get_user_credits(db_session, USER_ID) == 15

    def test_deduct_never_goes_negative(self, db_session, give_credits):
        give_credits(5)
        assert credits.deduct_credits(db_session, USER_ID, 10) is False
        assert credits.get_user_credits(db_session, USER_ID) == 5
